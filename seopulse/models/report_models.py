"""SEOPULSE — Report, Schedule & Job Tables."""

from datetime import date as date_type, datetime, timezone
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class Granularity(str, Enum):
    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"


class Report(SQLModel, table=True):
    """Comparative report for one site and period.

    Created by the aggregator; after it is stored, only delivered_at changes.
    """

    __tablename__ = "reports"
    __table_args__ = (
        UniqueConstraint("site_id", "period_start", "period_end", name="uq_report_period"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    granularity: str = Field(default=Granularity.WEEK.value)
    period_start: date_type = Field(index=True)
    period_end: date_type
    previous_start: date_type
    previous_end: date_type

    # Current period aggregates
    total_clicks: int = 0
    total_impressions: int = 0
    average_ctr: float = 0.0
    average_position: float = 0.0

    # Deltas vs previous period (percent; position in points)
    clicks_change: float = 0.0
    impressions_change: float = 0.0
    ctr_change: float = 0.0
    position_change: float = 0.0

    # Coverage
    days_with_data: int = 0
    expected_days: int = 0
    data_coverage: float = 0.0

    # Snapshots (JSON)
    top_pages_json: str = Field(default="[]")
    top_queries_json: str = Field(default="[]")
    comparison_json: str = Field(default="null")
    wide_comparison_json: str = Field(default="null")
    tasks_json: str = Field(default="[]")

    # Narrative
    insights: str = ""
    recommendations: str = ""
    executive_summary: str = ""
    insight_source: str = Field(default="baseline", description="baseline | enriched")

    delivered_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Task(SQLModel, table=True):
    """Follow-up task generated for one site and report period.

    Written once per (site, period_start); later runs for the same period
    keep the stored tasks so their status survives.
    """

    __tablename__ = "tasks"

    id: Optional[int] = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    period_start: date_type = Field(index=True)
    period_end: date_type
    title: str
    description: str = ""
    priority: str = Field(default="MEDIUM", description="URGENT | HIGH | MEDIUM | LOW")
    status: str = Field(default=TaskStatus.PENDING.value, index=True)
    origin: str = Field(default="baseline", description="technical | enrichment | baseline | generic")
    due_date: Optional[date_type] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class JobType(str, Enum):
    COLLECTION = "COLLECTION"
    REPORTING = "REPORTING"


class ScheduleConfig(SQLModel, table=True):
    """Persisted state for one scheduled job type.

    Re-read at every trigger: a disabled job is a no-op, and is_running is
    the overlap guard.
    """

    __tablename__ = "schedule_configs"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_type: str = Field(index=True, unique=True)
    cron_expression: str
    is_enabled: bool = True
    is_running: bool = False
    last_run: Optional[datetime] = None
    last_status: Optional[str] = Field(default=None, description="success | failed")
    last_error: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class ReconciliationJob(SQLModel, table=True):
    """Pollable record of one background reconciliation pass."""

    __tablename__ = "reconciliation_jobs"

    id: Optional[int] = Field(default=None, primary_key=True)
    status: str = Field(default=JobStatus.QUEUED.value, index=True)
    window_days: int = 0
    dates_queued: int = 0
    dates_synced: int = 0
    dates_failed: int = 0
    outcome_json: str = Field(default="{}", description="ReconciliationResult as JSON")
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None


class ApiUsage(SQLModel, table=True):
    """Audit trail of upstream API calls."""

    __tablename__ = "api_usage"

    id: Optional[int] = Field(default=None, primary_key=True)
    api_type: str = Field(index=True, description="GOOGLE | AI")
    endpoint: str
    success: bool
    error_message: Optional[str] = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )
