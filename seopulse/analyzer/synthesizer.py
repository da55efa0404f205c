"""SEOPULSE — Insight Synthesizer.

Baseline rules always run. When an AI provider is configured, enrichment is
attempted on top of the baseline inside a timeout-and-fallback wrapper: any
failure (unavailable, timeout, exception, malformed JSON) returns the
baseline result unmodified.
"""

import asyncio
import json
import re
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from seopulse.ai.base_provider import AIProvider
from seopulse.analyzer import insight_engine
from seopulse.config import settings
from seopulse.core.errors import EnrichmentError
from seopulse.models.analysis_models import (
    GeneratedTask,
    PeriodComparison,
    RankedItem,
    SynthesisResult,
    TechnicalIssue,
)
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("analyzer.synthesizer")

T = TypeVar("T")

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_PRIORITIES = {"URGENT", "HIGH", "MEDIUM", "LOW"}

ENRICHMENT_INSTRUCTION = (
    "Write the executive summary, key insights, recommendations and up to {task_count} "
    "tasks for this search performance report. Use only the numbers in the data."
)


async def with_fallback(
    make_call: Callable[[], Awaitable[T]],
    timeout: float,
    fallback: T,
    what: str = "enrichment",
) -> T:
    """Await make_call() within `timeout`; return `fallback` on any failure."""
    try:
        return await asyncio.wait_for(make_call(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{what} timed out after {timeout}s, using fallback")
    except Exception as e:
        logger.warning(f"{what} failed ({type(e).__name__}: {e}), using fallback")
    return fallback


def _string_list(value: Any, field: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise EnrichmentError(f"'{field}' must be a list of strings")
    return [v.strip() for v in value if v.strip()]


def _parse_tasks(value: Any) -> List[GeneratedTask]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise EnrichmentError("'tasks' must be a list")
    tasks: List[GeneratedTask] = []
    for item in value:
        if not isinstance(item, dict):
            raise EnrichmentError("task entries must be objects")
        title = str(item.get("title") or "").strip()
        description = str(item.get("description") or "").strip()
        priority = str(item.get("priority") or "MEDIUM").upper()
        if not title or not description:
            continue
        if priority not in _PRIORITIES:
            priority = "MEDIUM"
        tasks.append(
            GeneratedTask(title=title, description=description, priority=priority, origin="enrichment")
        )
    return tasks


def parse_enrichment(raw: str) -> dict:
    """Parse provider output into summary, insights, recommendations and tasks.

    Raises EnrichmentError if the output is not the expected JSON object.
    """
    if not raw or not raw.strip():
        raise EnrichmentError("Empty enrichment response")

    match = _FENCE.search(raw)
    text = match.group(1) if match else raw
    try:
        parsed = json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise EnrichmentError(f"Enrichment is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise EnrichmentError("Enrichment is not a JSON object")

    summary = parsed.get("executive_summary")
    if not isinstance(summary, str) or not summary.strip():
        raise EnrichmentError("'executive_summary' missing")

    return {
        "executive_summary": summary.strip(),
        "insights": _string_list(parsed.get("insights"), "insights"),
        "recommendations": _string_list(parsed.get("recommendations"), "recommendations"),
        "tasks": _parse_tasks(parsed.get("tasks")),
    }


def _baseline_summary(comparison: PeriodComparison, domain: str) -> str:
    current = comparison.current
    if current.days_with_data == 0:
        return f"No search data was collected for {domain or 'this site'} in this period."
    return (
        f"{domain or 'The site'} received {current.total_clicks} clicks from "
        f"{current.total_impressions} impressions ({comparison.clicks_change:+.1f}% clicks, "
        f"{comparison.impressions_change:+.1f}% impressions vs the previous period). "
        f"Average position was {current.average_position:.1f} "
        f"({comparison.position_change:+.1f}); data covers "
        f"{current.days_with_data} of {current.expected_days} days."
    )


class InsightSynthesizer:
    """Baseline strategy plus optional AI enrichment."""

    def __init__(
        self,
        provider: Optional[AIProvider] = None,
        timeout: Optional[float] = None,
        task_count: Optional[int] = None,
        store: Optional[MetricsStore] = None,
    ):
        self.provider = provider
        self.timeout = settings.ai_timeout_seconds if timeout is None else timeout
        self.task_count = settings.task_count if task_count is None else task_count
        self.store = store

    @property
    def instruction(self) -> str:
        return ENRICHMENT_INSTRUCTION.format(task_count=self.task_count)

    def baseline(
        self,
        comparison: PeriodComparison,
        top_pages: List[RankedItem],
        top_queries: List[RankedItem],
        issues: Optional[List[TechnicalIssue]] = None,
        generate_tasks: bool = False,
        domain: str = "",
    ) -> SynthesisResult:
        """Deterministic result from the rule tables."""
        insights = insight_engine.compute_insights(comparison)
        tasks: List[GeneratedTask] = []
        if generate_tasks:
            tasks = insight_engine.assemble_tasks(
                self.task_count,
                issues=issues,
                baseline_tasks=insight_engine.compute_tasks(comparison, top_pages, top_queries),
            )
        return SynthesisResult(
            insights=[i.render() for i in insights],
            recommendations=insight_engine.compute_recommendations(comparison, top_pages, top_queries),
            tasks=tasks,
            executive_summary=_baseline_summary(comparison, domain),
            source="baseline",
        )

    def _context(
        self,
        comparison: PeriodComparison,
        top_pages: List[RankedItem],
        top_queries: List[RankedItem],
        issues: Optional[List[TechnicalIssue]],
        baseline: SynthesisResult,
        domain: str,
    ) -> dict:
        return {
            "domain": domain,
            "comparison": comparison.model_dump(mode="json"),
            "top_pages": [p.model_dump() for p in top_pages[:5]],
            "top_queries": [q.model_dump() for q in top_queries[:5]],
            "technical_issues": [i.model_dump() for i in issues or []],
            "baseline_insights": baseline.insights,
        }

    async def _enrich(
        self,
        context: dict,
        baseline: SynthesisResult,
        comparison: PeriodComparison,
        top_pages: List[RankedItem],
        top_queries: List[RankedItem],
        issues: Optional[List[TechnicalIssue]],
        generate_tasks: bool,
    ) -> SynthesisResult:
        try:
            raw = await self.provider.generate(context, self.instruction)
        except Exception as e:
            self._record(False, str(e))
            raise EnrichmentError(f"{self.provider.name} failed: {e}") from e
        self._record(True)

        parsed = parse_enrichment(raw)
        tasks: List[GeneratedTask] = []
        if generate_tasks:
            tasks = insight_engine.assemble_tasks(
                self.task_count,
                issues=issues,
                enrichment_tasks=parsed["tasks"],
                baseline_tasks=insight_engine.compute_tasks(comparison, top_pages, top_queries),
            )
        return SynthesisResult(
            insights=parsed["insights"] or baseline.insights,
            recommendations=(parsed["recommendations"] or baseline.recommendations)[
                : insight_engine.MAX_RECOMMENDATIONS
            ],
            tasks=tasks,
            executive_summary=parsed["executive_summary"],
            source="enriched",
        )

    def _record(self, success: bool, error: Optional[str] = None) -> None:
        if self.store is not None:
            self.store.record_api_usage("AI", self.provider.name, success, error)

    async def synthesize(
        self,
        comparison: PeriodComparison,
        top_pages: List[RankedItem],
        top_queries: List[RankedItem],
        issues: Optional[List[TechnicalIssue]] = None,
        generate_tasks: bool = False,
        domain: str = "",
    ) -> SynthesisResult:
        """Baseline result, enriched when a provider is available and well-behaved."""
        baseline = self.baseline(comparison, top_pages, top_queries, issues, generate_tasks, domain)

        if self.provider is None or not self.provider.is_available():
            return baseline

        context = self._context(comparison, top_pages, top_queries, issues, baseline, domain)
        return await with_fallback(
            lambda: self._enrich(
                context, baseline, comparison, top_pages, top_queries, issues, generate_tasks
            ),
            timeout=self.timeout,
            fallback=baseline,
            what=f"{self.provider.name} enrichment",
        )
