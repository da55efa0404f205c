"""SEOPULSE — Schedule Configuration Routes."""

from typing import Optional

from apscheduler.triggers.cron import CronTrigger
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from seopulse.api.deps import require_elevated
from seopulse.database import get_session
from seopulse.models.report_models import JobType, ScheduleConfig
from seopulse.models.tenant_models import Principal
from seopulse.scheduler.jobs import register_job, scheduler
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("api.schedules")

router = APIRouter(tags=["Schedules"])


class ScheduleUpdate(BaseModel):
    """Request body for PUT /schedules/{job_type}."""

    cron_expression: Optional[str] = None
    """Five-field crontab, evaluated in UTC."""
    is_enabled: Optional[bool] = None

    model_config = {
        "json_schema_extra": {"examples": [{"cron_expression": "0 4 * * *", "is_enabled": True}]}
    }


@router.put("/schedules/{job_type}", response_model=ScheduleConfig)
async def update_schedule(
    job_type: str,
    update: ScheduleUpdate,
    principal: Principal = Depends(require_elevated),
    session: Session = Depends(get_session),
):
    """Change a job's cron expression or enable/disable it."""
    try:
        job = JobType(job_type.upper())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown job type {job_type!r}")

    if update.cron_expression is not None:
        try:
            CronTrigger.from_crontab(update.cron_expression, timezone="UTC")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid cron expression: {e}")

    try:
        config = MetricsStore(session).update_schedule(
            job.value, cron_expression=update.cron_expression, is_enabled=update.is_enabled
        )
    except LookupError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if update.cron_expression is not None and scheduler.running:
        register_job(job.value, config.cron_expression)

    logger.info(
        f"Schedule {job.value} updated by {principal.id}: cron='{config.cron_expression}' enabled={config.is_enabled}",
        extra={"job_type": job.value},
    )
    return config
