"""SEOPULSE — Metrics Store.

The only writer of metric, report, schedule and job rows. Metric writes are
dialect-native INSERT ... ON CONFLICT DO UPDATE on the compound unique keys,
so re-collecting a date overwrites values and concurrent writers converge.
Nothing here caches: every read goes to the database.
"""

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import func, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import Session, select

from seopulse.core.errors import JobAlreadyRunningError
from seopulse.models.analysis_models import GeneratedTask
from seopulse.models.metric_models import DailyMetric, PageMetric, QueryMetric, MetricRow
from seopulse.models.report_models import (
    ApiUsage,
    JobStatus,
    ReconciliationJob,
    Report,
    ScheduleConfig,
    Task,
)
from seopulse.core.logging import get_logger

logger = get_logger("store")

UPSERT_CHUNK_SIZE = 500
METRIC_COLUMNS = ("clicks", "impressions", "ctr", "position")

# Report columns that are regenerated when an undelivered report is rebuilt
_REPORT_IMMUTABLE = {"id", "site_id", "period_start", "period_end", "created_at", "delivered_at"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MetricsStore:
    """Repository over one SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    # ── Upserts ──

    def _insert(self, table):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(table)
        if dialect == "sqlite":
            return sqlite_insert(table)
        raise RuntimeError(f"Upsert not supported for dialect {dialect!r}")

    def _upsert(self, model, key_columns: Sequence[str], values: List[dict]) -> int:
        """Upsert rows on a compound key. Does not commit."""
        if not values:
            return 0
        table = model.__table__
        for i in range(0, len(values), UPSERT_CHUNK_SIZE):
            chunk = values[i : i + UPSERT_CHUNK_SIZE]
            stmt = self._insert(table).values(chunk)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(key_columns),
                set_={
                    **{col: stmt.excluded[col] for col in METRIC_COLUMNS},
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            self.session.connection().execute(stmt)
        return len(values)

    @staticmethod
    def _metric_values(row: MetricRow) -> dict:
        return {
            "clicks": row.clicks,
            "impressions": row.impressions,
            "ctr": row.ctr,
            "position": row.position,
            "updated_at": _now(),
        }

    def upsert_daily(self, site_id: int, day: date, row: MetricRow) -> int:
        return self._upsert(
            DailyMetric,
            ("site_id", "date"),
            [{"site_id": site_id, "date": day, **self._metric_values(row)}],
        )

    def upsert_pages(self, site_id: int, day: date, rows: Iterable[MetricRow]) -> int:
        # Last row wins when upstream repeats a key within one batch
        by_key = {r.key: r for r in rows}
        return self._upsert(
            PageMetric,
            ("site_id", "date", "page"),
            [
                {"site_id": site_id, "date": day, "page": key, **self._metric_values(r)}
                for key, r in by_key.items()
            ],
        )

    def upsert_queries(self, site_id: int, day: date, rows: Iterable[MetricRow]) -> int:
        by_key = {r.key: r for r in rows}
        return self._upsert(
            QueryMetric,
            ("site_id", "date", "query"),
            [
                {"site_id": site_id, "date": day, "query": key, **self._metric_values(r)}
                for key, r in by_key.items()
            ],
        )

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    # ── Metric reads ──

    def coverage_map(
        self, site_ids: Iterable[int], start: date, end: date
    ) -> Dict[date, Set[int]]:
        """date → set of site IDs that have a DailyMetric row."""
        ids = list(site_ids)
        if not ids:
            return {}
        rows = self.session.exec(
            select(DailyMetric.date, DailyMetric.site_id).where(
                DailyMetric.site_id.in_(ids),  # type: ignore
                DailyMetric.date >= start,
                DailyMetric.date <= end,
            )
        ).all()
        covered: Dict[date, Set[int]] = defaultdict(set)
        for day, site_id in rows:
            covered[day].add(site_id)
        return dict(covered)

    def daily_rows(
        self, site_ids: Iterable[int], start: date, end: date
    ) -> List[DailyMetric]:
        ids = list(site_ids)
        if not ids:
            return []
        return list(
            self.session.exec(
                select(DailyMetric)
                .where(
                    DailyMetric.site_id.in_(ids),  # type: ignore
                    DailyMetric.date >= start,
                    DailyMetric.date <= end,
                )
                .order_by(DailyMetric.date.desc())  # type: ignore
            ).all()
        )

    def _ranked(
        self, model, key_column, site_id: int, start: date, end: date, limit: int
    ) -> List[Tuple[str, int, int, float, float]]:
        clicks = func.sum(model.clicks)
        impressions = func.sum(model.impressions)
        stmt = (
            select(
                key_column,
                clicks,
                impressions,
                func.avg(model.ctr),
                func.avg(model.position),
            )
            .where(model.site_id == site_id, model.date >= start, model.date <= end)
            .group_by(key_column)
            .order_by(clicks.desc(), impressions.desc(), key_column)
            .limit(limit)
        )
        return [
            (key, int(c or 0), int(i or 0), float(ctr or 0), float(pos or 0))
            for key, c, i, ctr, pos in self.session.exec(stmt).all()
        ]

    def top_pages(self, site_id: int, start: date, end: date, limit: int):
        return self._ranked(PageMetric, PageMetric.page, site_id, start, end, limit)

    def top_queries(self, site_id: int, start: date, end: date, limit: int):
        return self._ranked(QueryMetric, QueryMetric.query, site_id, start, end, limit)

    # ── Reports ──

    def get_report(self, site_id: int, start: date, end: date) -> Optional[Report]:
        return self.session.exec(
            select(Report).where(
                Report.site_id == site_id,
                Report.period_start == start,
                Report.period_end == end,
            )
        ).first()

    def save_report(self, report: Report) -> Report:
        """Insert a report, or rebuild an existing one that was never delivered.

        A delivered report is returned unchanged.
        """
        existing = self.get_report(report.site_id, report.period_start, report.period_end)
        if existing is None:
            self.session.add(report)
            self.session.commit()
            self.session.refresh(report)
            return report

        if existing.delivered_at is not None:
            logger.info(
                f"Report {existing.id} already delivered — keeping stored version",
                extra={"site_id": existing.site_id},
            )
            return existing

        for field, value in report.model_dump().items():
            if field not in _REPORT_IMMUTABLE:
                setattr(existing, field, value)
        self.session.add(existing)
        self.session.commit()
        self.session.refresh(existing)
        return existing

    def mark_delivered(self, report_id: int) -> Report:
        report = self.session.get(Report, report_id)
        if report is None:
            raise LookupError(f"Report {report_id} not found")
        report.delivered_at = _now()
        self.session.add(report)
        self.session.commit()
        self.session.refresh(report)
        return report

    def latest_report(self, site_ids: Iterable[int]) -> Optional[Report]:
        ids = list(site_ids)
        if not ids:
            return None
        return self.session.exec(
            select(Report)
            .where(Report.site_id.in_(ids))  # type: ignore
            .order_by(Report.period_start.desc(), Report.created_at.desc())  # type: ignore
            .limit(1)
        ).first()

    # ── Tasks ──

    def tasks_for_period(self, site_id: int, period_start: date) -> List[Task]:
        return list(
            self.session.exec(
                select(Task)
                .where(Task.site_id == site_id, Task.period_start == period_start)
                .order_by(Task.id)  # type: ignore
            ).all()
        )

    def save_tasks(
        self, site_id: int, period_start: date, period_end: date, tasks: Iterable[GeneratedTask]
    ) -> List[Task]:
        """Store the period's tasks unless some already exist; returns the stored set."""
        existing = self.tasks_for_period(site_id, period_start)
        if existing:
            logger.info(
                f"{len(existing)} tasks already stored for period starting {period_start}",
                extra={"site_id": site_id},
            )
            return existing

        rows = [
            Task(
                site_id=site_id,
                period_start=period_start,
                period_end=period_end,
                title=t.title,
                description=t.description,
                priority=t.priority,
                origin=t.origin,
                due_date=period_end,
            )
            for t in tasks
        ]
        self.session.add_all(rows)
        self.session.commit()
        for row in rows:
            self.session.refresh(row)
        return rows

    # ── Schedule configs ──

    def get_schedule(self, job_type: str) -> Optional[ScheduleConfig]:
        return self.session.exec(
            select(ScheduleConfig).where(ScheduleConfig.job_type == job_type)
        ).first()

    def ensure_schedule(self, job_type: str, cron_expression: str) -> ScheduleConfig:
        """Return the persisted config, seeding it with a default if missing."""
        config = self.get_schedule(job_type)
        if config is None:
            config = ScheduleConfig(job_type=job_type, cron_expression=cron_expression)
            self.session.add(config)
            self.session.commit()
            self.session.refresh(config)
        return config

    def update_schedule(
        self,
        job_type: str,
        cron_expression: Optional[str] = None,
        is_enabled: Optional[bool] = None,
    ) -> ScheduleConfig:
        config = self.get_schedule(job_type)
        if config is None:
            if cron_expression is None:
                raise LookupError(f"No schedule for {job_type} and no cron expression given")
            config = ScheduleConfig(job_type=job_type, cron_expression=cron_expression)
        if cron_expression is not None:
            config.cron_expression = cron_expression
        if is_enabled is not None:
            config.is_enabled = is_enabled
        config.updated_at = _now()
        self.session.add(config)
        self.session.commit()
        self.session.refresh(config)
        return config

    def try_acquire_run(self, job_type: str) -> bool:
        """Atomically flip is_running False → True. Returns False if already running."""
        result = self.session.connection().execute(
            update(ScheduleConfig)
            .where(
                ScheduleConfig.job_type == job_type,
                ScheduleConfig.is_running == False,  # noqa: E712
            )
            .values(is_running=True, updated_at=_now())
        )
        self.session.commit()
        return result.rowcount == 1

    def acquire_run(self, job_type: str) -> None:
        """Like try_acquire_run, but raises JobAlreadyRunningError on overlap."""
        if not self.try_acquire_run(job_type):
            raise JobAlreadyRunningError(f"{job_type} job is already running")

    def release_run(self, job_type: str, status: str, error: Optional[str] = None) -> None:
        """Return the job to Idle and record the run."""
        self.session.connection().execute(
            update(ScheduleConfig)
            .where(ScheduleConfig.job_type == job_type)
            .values(
                is_running=False,
                last_run=_now(),
                last_status=status,
                last_error=error,
                updated_at=_now(),
            )
        )
        self.session.commit()

    # ── Reconciliation jobs ──

    def create_job(self, window_days: int, dates_queued: int) -> ReconciliationJob:
        job = ReconciliationJob(window_days=window_days, dates_queued=dates_queued)
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def get_job(self, job_id: int) -> Optional[ReconciliationJob]:
        return self.session.get(ReconciliationJob, job_id)

    def update_job(self, job: ReconciliationJob, **fields) -> ReconciliationJob:
        for key, value in fields.items():
            setattr(job, key, value)
        if job.status not in (JobStatus.QUEUED.value, JobStatus.RUNNING.value):
            job.finished_at = _now()
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    # ── API usage ──

    def record_api_usage(
        self, api_type: str, endpoint: str, success: bool, error: Optional[str] = None
    ) -> None:
        """Best-effort audit row; never breaks the caller."""
        try:
            self.session.add(
                ApiUsage(
                    api_type=api_type,
                    endpoint=endpoint,
                    success=success,
                    error_message=(error or "")[:500] or None,
                )
            )
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.warning(f"Failed to record API usage: {e}")
