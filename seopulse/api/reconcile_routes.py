"""SEOPULSE — Reconciliation API Routes."""

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from seopulse.analyzer.reconciler import GapReconciler
from seopulse.api.deps import get_engine, get_source_factory, require_elevated
from seopulse.collector.collector import MetricsCollector
from seopulse.database import get_session
from seopulse.models.result_models import ReconciliationAck
from seopulse.models.tenant_models import Principal
from seopulse.registry.sites import list_active_sites
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("api.reconcile")

router = APIRouter(tags=["Reconciliation"])


# ── Request / Response Models ──


class ReconcileRequest(BaseModel):
    """Request body for POST /reconcile."""

    days: Optional[int] = Field(None, ge=1, le=365)
    """Requested window. The check always covers at least the lookback window."""

    model_config = {"json_schema_extra": {"examples": [{"days": 7}]}}


class JobStatusResponse(BaseModel):
    job_id: int
    status: str
    window_days: int
    dates_queued: int
    dates_synced: int
    dates_failed: int
    outcome: dict
    error: Optional[str] = None
    created_at: str
    finished_at: Optional[str] = None


# ── Endpoints ──


@router.post("/reconcile", response_model=ReconciliationAck, status_code=202)
async def trigger_reconciliation(
    request: Optional[ReconcileRequest] = None,
    principal: Principal = Depends(require_elevated),
    db_engine=Depends(get_engine),
    source_factory=Depends(get_source_factory),
):
    """Find missing dates and backfill them in the background.

    Returns at once with a job ID to poll.
    """
    # The background task outlives this request, so it gets its own session
    session = Session(db_engine)
    source = source_factory()

    async def cleanup() -> None:
        await source.close()
        session.close()

    store = MetricsStore(session)
    reconciler = GapReconciler(MetricsCollector(source, store), store)
    try:
        ack = reconciler.start_reconciliation(
            list_active_sites(session), request.days if request else None, on_finish=cleanup
        )
    except Exception as e:
        await cleanup()
        logger.error(f"Could not start reconciliation: {e}")
        raise HTTPException(status_code=500, detail=f"Could not start reconciliation: {e}")

    if ack.job_id is None:
        await cleanup()
    logger.info(f"Reconciliation requested by {principal.id}", extra={"job_id": ack.job_id})
    return ack


@router.get("/reconcile/{job_id}", response_model=JobStatusResponse)
async def get_reconciliation_job(
    job_id: int,
    principal: Principal = Depends(require_elevated),
    session: Session = Depends(get_session),
):
    """Poll a background reconciliation job."""
    job = MetricsStore(session).get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobStatusResponse(
        job_id=job.id,
        status=job.status,
        window_days=job.window_days,
        dates_queued=job.dates_queued,
        dates_synced=job.dates_synced,
        dates_failed=job.dates_failed,
        outcome=json.loads(job.outcome_json or "{}"),
        error=job.error,
        created_at=job.created_at.isoformat(),
        finished_at=job.finished_at.isoformat() if job.finished_at else None,
    )
