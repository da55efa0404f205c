"""SEOPULSE — Dashboard API Routes.

Every read here is scoped to the sites the principal may see.
"""

from datetime import date as date_type, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from seopulse.analyzer.access_scoper import accessible_site_ids, scoped_daily_metrics
from seopulse.analyzer.aggregator import ReportAggregator
from seopulse.api.deps import get_principal
from seopulse.collector.collector import latest_collectable_date
from seopulse.database import get_session
from seopulse.models.analysis_models import PeriodComparison
from seopulse.models.tenant_models import Principal
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("api.dashboard")

router = APIRouter(tags=["Dashboard"])

DEFAULT_DASHBOARD_DAYS = 7


class DailyPoint(BaseModel):
    site_id: int
    date: date_type
    clicks: int
    impressions: int
    ctr: float
    position: float


class DashboardResponse(BaseModel):
    site_ids: List[int]
    start: date_type
    end: date_type
    summary: PeriodComparison
    daily: List[DailyPoint]


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    start_date: Optional[date_type] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[date_type] = Query(None, description="YYYY-MM-DD"),
    site_id: Optional[int] = Query(None, description="Restrict to one site"),
    principal: Principal = Depends(get_principal),
    session: Session = Depends(get_session),
):
    """Aggregated metrics and daily series for the principal's sites."""
    end = end_date or latest_collectable_date()
    start = start_date or end - timedelta(days=DEFAULT_DASHBOARD_DAYS - 1)
    if end < start:
        raise HTTPException(status_code=400, detail="end_date is before start_date")

    site_ids = accessible_site_ids(session, principal)
    if site_id is not None:
        if site_id not in site_ids:
            raise HTTPException(status_code=403, detail="You do not have access to this site")
        site_ids = {site_id}

    summary = ReportAggregator(MetricsStore(session)).summarize(site_ids, start, end)
    rows = [r for r in scoped_daily_metrics(session, principal, start, end) if r.site_id in site_ids]

    return DashboardResponse(
        site_ids=sorted(site_ids),
        start=start,
        end=end,
        summary=summary,
        daily=[
            DailyPoint(
                site_id=r.site_id,
                date=r.date,
                clicks=r.clicks,
                impressions=r.impressions,
                ctr=r.ctr,
                position=r.position,
            )
            for r in rows
        ],
    )
