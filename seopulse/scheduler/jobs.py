"""SEOPULSE — Scheduler Jobs.

APScheduler cron jobs for daily collection and weekly reporting. Cron
expressions come from persisted ScheduleConfig rows (seeded from settings).
Each trigger re-reads its config: a disabled job is a no-op, and a trigger
that finds the job already running is skipped.
"""

from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlmodel import Session

from seopulse.ai.selector import select_provider
from seopulse.analyzer.pipeline import generate_reports_for_sites
from seopulse.analyzer.reconciler import GapReconciler
from seopulse.analyzer.synthesizer import InsightSynthesizer
from seopulse.collector.collector import MetricsCollector, latest_collectable_date
from seopulse.config import settings
from seopulse.connectors.search_console.client import SearchConsoleClient
from seopulse.core.errors import JobAlreadyRunningError
from seopulse.database import engine
from seopulse.delivery.webhook import default_delivery
from seopulse.models.report_models import Granularity, JobType
from seopulse.registry.sites import list_active_sites
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler(timezone="UTC")

DEFAULT_CRONS = {
    JobType.COLLECTION.value: lambda: settings.collection_cron,
    JobType.REPORTING.value: lambda: settings.reporting_cron,
}

# Days the daily run looks back to pick up dates missed by earlier runs
COLLECTION_CATCHUP_DAYS = 3


async def run_scheduled_job(
    session: Session, job_type: str, fn: Callable[[Session], Awaitable[object]]
) -> Optional[str]:
    """Run one trigger of a job type under its persisted config.

    Returns "success", "failed", or None when the trigger was skipped
    (disabled or already running).
    """
    store = MetricsStore(session)
    config = store.ensure_schedule(job_type, DEFAULT_CRONS[job_type]())
    if not config.is_enabled:
        logger.info(f"{job_type} job is disabled; skipping", extra={"job_type": job_type})
        return None

    try:
        store.acquire_run(job_type)
    except JobAlreadyRunningError as e:
        logger.warning(f"{e}; skipping this trigger", extra={"job_type": job_type})
        return None

    started = datetime.now(timezone.utc)
    try:
        await fn(session)
    except Exception as e:
        session.rollback()
        logger.exception(f"{job_type} job failed", extra={"job_type": job_type})
        store.release_run(job_type, "failed", str(e)[:1000])
        return "failed"

    duration_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)
    store.release_run(job_type, "success")
    logger.info(
        f"{job_type} job finished", extra={"job_type": job_type, "duration_ms": duration_ms}
    )
    return "success"


# ── Job bodies ──


async def collect_recent(session: Session, today: Optional[date] = None) -> None:
    """Collect the newest collectable date and backfill the last few days."""
    sites = list_active_sites(session)
    if not sites:
        logger.info("No active sites to collect")
        return

    store = MetricsStore(session)
    source = SearchConsoleClient()
    try:
        collector = MetricsCollector(source, store, today=today)
        reconciler = GapReconciler(collector, store, today=today)

        floor = latest_collectable_date(collector.today)
        result = await reconciler.reconcile_dates(sites, [floor])

        backfill = [
            d for d in reconciler.find_missing_dates(sites, COLLECTION_CATCHUP_DAYS) if d != floor
        ]
        if backfill:
            logger.info(f"Backfilling {len(backfill)} recent date(s)")
            backfilled = await reconciler.reconcile_dates(sites, backfill)
            result.failed_dates += backfilled.failed_dates
    finally:
        await source.close()

    if result.failed_dates:
        logger.warning(
            f"Collection failed for every site on {len(result.failed_dates)} date(s)"
        )


async def report_weekly(session: Session, reference: Optional[date] = None) -> None:
    """Build and deliver last week's report for every active site."""
    sites = list_active_sites(session)
    source = SearchConsoleClient()
    try:
        synthesizer = InsightSynthesizer(provider=select_provider(), store=MetricsStore(session))
        await generate_reports_for_sites(
            session,
            sites,
            granularity=Granularity.WEEK.value,
            reference=reference,
            source=source,
            synthesizer=synthesizer,
            delivery=default_delivery(),
        )
    finally:
        await source.close()


async def daily_collection_job():
    """Scheduled entry point for COLLECTION."""
    with Session(engine) as session:
        await run_scheduled_job(session, JobType.COLLECTION.value, collect_recent)


async def weekly_report_job():
    """Scheduled entry point for REPORTING."""
    with Session(engine) as session:
        await run_scheduled_job(session, JobType.REPORTING.value, report_weekly)


JOB_FUNCTIONS = {
    JobType.COLLECTION.value: daily_collection_job,
    JobType.REPORTING.value: weekly_report_job,
}


def register_job(job_type: str, cron_expression: str) -> None:
    """(Re)register a job with a new cron expression."""
    scheduler.add_job(
        JOB_FUNCTIONS[job_type],
        CronTrigger.from_crontab(cron_expression, timezone="UTC"),
        id=job_type.lower(),
        replace_existing=True,
        misfire_grace_time=3600,
        max_instances=1,
    )
    logger.info(f"Scheduled {job_type} at '{cron_expression}' UTC", extra={"job_type": job_type})


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    with Session(engine) as session:
        store = MetricsStore(session)
        for job_type, default_cron in DEFAULT_CRONS.items():
            config = store.ensure_schedule(job_type, default_cron())
            if config.is_running:
                # A previous process died mid-run
                store.release_run(job_type, "failed", "Interrupted by restart")
            register_job(job_type, config.cron_expression)

    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
