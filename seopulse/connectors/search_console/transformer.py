"""SEOPULSE — Search Console Raw → MetricRow Transformer.

Validates raw Search Analytics rows. A malformed row is logged and skipped;
it never fails the batch.
"""

import math
from typing import Any, Dict, List, Optional

from seopulse.models.analysis_models import TechnicalIssue
from seopulse.models.metric_models import MetricRow
from seopulse.core.errors import ValidationError
from seopulse.core.logging import get_logger

logger = get_logger("search_console.transformer")

# Sitemaps indexed below this share of submitted URLs are flagged
LOW_INDEXING_RATIO = 0.8


def _as_number(value: Any, field: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValidationError(f"{field} is not numeric: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} is not numeric: {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{field} is not finite: {value!r}")
    if number < 0:
        raise ValidationError(f"{field} is negative: {value!r}")
    return number


def parse_row(row: Dict[str, Any], keyed: bool) -> MetricRow:
    """Convert one API row. Raises ValidationError if malformed."""
    if not isinstance(row, dict):
        raise ValidationError(f"Row is not an object: {row!r}")

    key = ""
    if keyed:
        keys = row.get("keys") or []
        if not keys or not isinstance(keys[0], str) or not keys[0].strip():
            raise ValidationError(f"Row has no dimension key: {row!r}")
        key = keys[0]

    return MetricRow(
        key=key,
        clicks=int(_as_number(row.get("clicks"), "clicks")),
        impressions=int(_as_number(row.get("impressions"), "impressions")),
        ctr=_as_number(row.get("ctr"), "ctr"),
        position=_as_number(row.get("position"), "position"),
    )


def transform_rows(
    raw_rows: Optional[List[Dict[str, Any]]], keyed: bool, context: str = ""
) -> List[MetricRow]:
    """Validate a batch, skipping and logging malformed rows."""
    rows: List[MetricRow] = []
    skipped = 0
    for raw in raw_rows or []:
        try:
            rows.append(parse_row(raw, keyed))
        except ValidationError as e:
            skipped += 1
            logger.warning(f"Skipping malformed row ({context}): {e}", extra={"error_kind": e.kind.value})
    if skipped:
        logger.info(f"Transformed {len(rows)} rows, skipped {skipped} ({context})")
    return rows


def transform_sitemaps(payload: Dict[str, Any]) -> List[TechnicalIssue]:
    """Derive indexing issues from a sitemaps.list response."""
    issues: List[TechnicalIssue] = []
    for sitemap in payload.get("sitemap") or []:
        path = sitemap.get("path") or "Unknown sitemap"

        errors = int(sitemap.get("errors") or 0)
        if errors > 0:
            issues.append(
                TechnicalIssue(
                    source=path,
                    issue=f"Sitemap reports {errors} processing error(s)",
                    severity="error",
                )
            )

        for content in sitemap.get("contents") or []:
            try:
                submitted = int(content.get("submitted") or 0)
                indexed = int(content.get("indexed") or 0)
            except (TypeError, ValueError):
                continue
            if submitted <= 0:
                continue
            if indexed == 0:
                issues.append(
                    TechnicalIssue(
                        source=path,
                        issue=f"Sitemap has {submitted} URLs but none are indexed",
                        severity="error",
                    )
                )
            elif indexed < submitted * LOW_INDEXING_RATIO:
                issues.append(
                    TechnicalIssue(
                        source=path,
                        issue=(
                            f"Low indexing rate: {indexed}/{submitted} URLs indexed "
                            f"({round(indexed / submitted * 100)}%)"
                        ),
                        severity="warning",
                    )
                )
    return issues
