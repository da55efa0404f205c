"""SEOPULSE — Metrics Collector.

Pulls one (site, date) from the analytics source and upserts daily, page and
query rows. All three fetches finish before anything is written, and the
writes share one transaction, so a failed call leaves no partial data.
Fetch errors are converted to a failed CollectionResult here and never
propagate to the reconciler.
"""

import asyncio
import time
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, List, Optional, TypeVar

from seopulse.config import settings
from seopulse.connectors.base_source import AnalyticsSource
from seopulse.connectors.search_console.client import is_valid_site_ref
from seopulse.core.errors import ErrorKind, FetchError, TransientFetchError
from seopulse.models.metric_models import MetricRow
from seopulse.models.result_models import CollectionResult
from seopulse.models.tenant_models import Site
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("collector")

T = TypeVar("T")


def latest_collectable_date(today: Optional[date] = None) -> date:
    """Newest date the analytics source reports completely."""
    today = today or datetime.now(timezone.utc).date()
    return today - timedelta(days=settings.reporting_lag_days)


class MetricsCollector:
    """Collects one (site, date) at a time."""

    def __init__(
        self,
        source: AnalyticsSource,
        store: MetricsStore,
        timeout: Optional[float] = None,
        today: Optional[date] = None,
    ):
        self.source = source
        self.store = store
        self.timeout = settings.fetch_timeout_seconds if timeout is None else timeout
        self._today = today

    @property
    def today(self) -> date:
        return self._today or datetime.now(timezone.utc).date()

    async def _bounded(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransientFetchError(f"{what} timed out after {self.timeout}s") from e

    async def _fetch_all(
        self, site_ref: str, day: date
    ) -> tuple[List[MetricRow], List[MetricRow], List[MetricRow]]:
        daily = await self._bounded(
            self.source.fetch_daily_totals(site_ref, day), "daily totals"
        )
        pages = await self._bounded(
            self.source.fetch_page_breakdown(site_ref, day), "page breakdown"
        )
        queries = await self._bounded(
            self.source.fetch_query_breakdown(site_ref, day), "query breakdown"
        )
        return daily, pages, queries

    async def collect(self, site: Site, day: date) -> CollectionResult:
        """Fetch and upsert all metrics for one site and day."""
        log_extra = {"site_id": site.id, "date": day.isoformat()}
        started = time.monotonic()

        floor = latest_collectable_date(self.today)
        if day > floor:
            message = f"{day} is newer than the reporting floor {floor}"
            logger.warning(message, extra={**log_extra, "error_kind": ErrorKind.VALIDATION.value})
            return CollectionResult.failure(site.id, day, ErrorKind.VALIDATION, message)

        if not is_valid_site_ref(site.analytics_ref):
            message = f"Invalid Search Console property for {site.domain}: {site.analytics_ref!r}"
            logger.error(message, extra={**log_extra, "error_kind": ErrorKind.VALIDATION.value})
            return CollectionResult.failure(site.id, day, ErrorKind.VALIDATION, message)

        # ── Step 1: Fetch everything before writing anything ──
        try:
            daily, pages, queries = await self._fetch_all(site.analytics_ref, day)
        except FetchError as e:
            logger.error(
                f"Collection failed for {site.domain} on {day}: {e}",
                extra={**log_extra, "error_kind": e.kind.value},
            )
            self.store.record_api_usage("GOOGLE", "searchAnalytics/query", False, str(e))
            return CollectionResult.failure(site.id, day, e.kind, str(e))

        # ── Step 2: Upsert in one transaction ──
        try:
            clicks_written = self.store.upsert_daily(site.id, day, daily[0]) if daily else 0
            pages_written = self.store.upsert_pages(site.id, day, pages)
            queries_written = self.store.upsert_queries(site.id, day, queries)
            self.store.commit()
        except Exception as e:
            self.store.rollback()
            logger.error(
                f"Storing metrics failed for {site.domain} on {day}: {e}",
                extra={**log_extra, "error_kind": ErrorKind.TRANSIENT.value},
            )
            return CollectionResult.failure(site.id, day, ErrorKind.TRANSIENT, str(e))

        self.store.record_api_usage("GOOGLE", "searchAnalytics/query", True)

        if not daily:
            logger.info(f"No daily data available for {site.domain} on {day}", extra=log_extra)

        logger.info(
            f"✓ Stored {clicks_written} daily, {pages_written} page, {queries_written} query rows for {site.domain}",
            extra={**log_extra, "duration_ms": int((time.monotonic() - started) * 1000)},
        )
        return CollectionResult(
            site_id=site.id,
            date=day,
            ok=True,
            clicks_written=clicks_written,
            pages_written=pages_written,
            queries_written=queries_written,
        )
