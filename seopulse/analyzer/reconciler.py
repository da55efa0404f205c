"""SEOPULSE — Gap Reconciler.

Finds dates inside a trailing window for which any active site lacks a daily
row, and re-collects them. A date counts as synced when at least one site
succeeds, and as failed only when every site fails. Per-site failures are
isolated: they are logged and listed, never raised.

On-demand runs are detached: start_reconciliation() records a job row,
schedules the pass as a background task and returns at once; the job row is
the only way to observe the outcome.
"""

import asyncio
from datetime import date, timedelta
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Set

from seopulse.collector.collector import MetricsCollector, latest_collectable_date
from seopulse.config import settings
from seopulse.core.errors import ErrorKind
from seopulse.models.report_models import JobStatus, ReconciliationJob
from seopulse.models.result_models import (
    CollectionResult,
    ReconciliationAck,
    ReconciliationResult,
    SiteFailure,
)
from seopulse.models.tenant_models import Site
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("analyzer.reconciler")


class GapReconciler:
    """Detects and backfills missing (site, date) coverage."""

    def __init__(
        self,
        collector: MetricsCollector,
        store: MetricsStore,
        today: Optional[date] = None,
        concurrency: Optional[int] = None,
    ):
        self.collector = collector
        self.store = store
        self._today = today
        self.concurrency = settings.collection_concurrency if concurrency is None else concurrency
        # Strong references so detached runs are not garbage collected
        self.background_tasks: Set[asyncio.Task] = set()

    @property
    def today(self) -> date:
        return self._today or self.collector.today

    # ── Gap detection ──

    def candidate_dates(self, window_days: int) -> List[date]:
        """window_days dates ending at the reporting floor, newest first."""
        anchor = latest_collectable_date(self.today)
        return [anchor - timedelta(days=i) for i in range(max(window_days, 0))]

    def find_missing_dates(self, active_sites: Sequence[Site], window_days: int) -> List[date]:
        """Dates for which at least one active site has no daily row."""
        candidates = self.candidate_dates(window_days)
        if not active_sites or not candidates:
            return []

        site_ids = {s.id for s in active_sites}
        covered = self.store.coverage_map(site_ids, candidates[-1], candidates[0])
        return [d for d in candidates if not site_ids <= covered.get(d, set())]

    # ── Collection ──

    async def _collect_site(
        self, semaphore: asyncio.Semaphore, site: Site, day: date
    ) -> CollectionResult:
        async with semaphore:
            try:
                return await self.collector.collect(site, day)
            except Exception as e:
                # Anything escaping the collector still only fails this site
                logger.exception(
                    f"Unexpected error collecting {site.domain} on {day}",
                    extra={"site_id": site.id, "date": day.isoformat()},
                )
                return CollectionResult.failure(site.id, day, ErrorKind.TRANSIENT, str(e))

    async def _reconcile_date(
        self, semaphore: asyncio.Semaphore, sites: Sequence[Site], day: date
    ) -> List[CollectionResult]:
        return list(
            await asyncio.gather(*(self._collect_site(semaphore, s, day) for s in sites))
        )

    async def reconcile_dates(
        self, active_sites: Sequence[Site], missing: Iterable[date]
    ) -> ReconciliationResult:
        result = ReconciliationResult()
        semaphore = asyncio.Semaphore(self.concurrency)

        for day in missing:
            result.dates_found.append(day)
            outcomes = await self._reconcile_date(semaphore, active_sites, day)

            for outcome in outcomes:
                if outcome.ok:
                    continue
                result.failures.append(
                    SiteFailure(
                        site_id=outcome.site_id,
                        date=day,
                        error_kind=outcome.error_kind or ErrorKind.TRANSIENT,
                        message=outcome.error_message,
                    )
                )
                logger.warning(
                    f"Site {outcome.site_id} failed for {day}: {outcome.error_message}",
                    extra={
                        "site_id": outcome.site_id,
                        "date": day.isoformat(),
                        "error_kind": (outcome.error_kind or ErrorKind.TRANSIENT).value,
                    },
                )

            if any(o.ok for o in outcomes):
                result.synced_dates.append(day)
            else:
                result.failed_dates.append(day)

        logger.info(
            f"Reconciliation finished: {len(result.synced_dates)} synced, "
            f"{len(result.failed_dates)} failed, {len(result.failures)} site failures"
        )
        return result

    async def reconcile_window(
        self, active_sites: Sequence[Site], window_days: int
    ) -> ReconciliationResult:
        """Find and backfill every missing date in the trailing window."""
        missing = self.find_missing_dates(active_sites, window_days)
        if not missing:
            logger.info(f"No missing dates in the last {window_days} days")
            return ReconciliationResult()
        logger.info(f"Found {len(missing)} missing dates in the last {window_days} days")
        return await self.reconcile_dates(active_sites, missing)

    # ── On-demand background runs ──

    def start_reconciliation(
        self,
        active_sites: Sequence[Site],
        requested_days: Optional[int] = None,
        on_finish: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> ReconciliationAck:
        """Queue a background pass and return immediately.

        Must be called from inside a running event loop. `on_finish` is
        awaited when the background pass ends; it is not called when nothing
        was queued (ack.job_id is None).
        """
        requested = settings.default_reconcile_days if requested_days is None else requested_days
        lookback = max(requested, settings.reconcile_lookback_days)
        missing = self.find_missing_dates(active_sites, lookback)

        requested_range = set(self.candidate_dates(requested))
        in_range = [d for d in missing if d in requested_range]

        if not missing:
            return ReconciliationAck(
                message=f"All data is up to date for the last {lookback} days"
            )

        job = self.store.create_job(window_days=lookback, dates_queued=len(missing))
        task = asyncio.create_task(self._run_job(job, list(active_sites), missing, on_finish))
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)

        logger.info(
            f"Queued reconciliation of {len(missing)} dates ({len(in_range)} in the requested range)",
            extra={"job_id": job.id},
        )
        return ReconciliationAck(
            job_id=job.id,
            dates_queued=len(missing),
            total_missing=len(missing),
            dates_in_range=in_range,
            message=f"Syncing {len(missing)} missing dates in the background",
        )

    async def _run_job(
        self,
        job: ReconciliationJob,
        active_sites: List[Site],
        missing: List[date],
        on_finish: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        try:
            await self._execute_job(job, active_sites, missing)
        finally:
            if on_finish is not None:
                await on_finish()

    async def _execute_job(
        self, job: ReconciliationJob, active_sites: List[Site], missing: List[date]
    ) -> None:
        self.store.update_job(job, status=JobStatus.RUNNING.value)
        try:
            result = await self.reconcile_dates(active_sites, missing)
        except Exception as e:
            logger.exception("Background reconciliation crashed", extra={"job_id": job.id})
            self.store.rollback()
            self.store.update_job(job, status=JobStatus.FAILED.value, error=str(e))
            return

        if not result.failed_dates and not result.failures:
            status = JobStatus.COMPLETED
        elif result.synced_dates:
            status = JobStatus.COMPLETED_WITH_ERRORS
        else:
            status = JobStatus.FAILED

        self.store.update_job(
            job,
            status=status.value,
            dates_synced=len(result.synced_dates),
            dates_failed=len(result.failed_dates),
            outcome_json=result.model_dump_json(),
        )
        logger.info(f"Reconciliation job {job.id} {status.value}", extra={"job_id": job.id})

    def get_job(self, job_id: int) -> Optional[ReconciliationJob]:
        return self.store.get_job(job_id)
