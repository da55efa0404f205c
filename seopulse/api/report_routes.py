"""SEOPULSE — Report API Routes."""

import json
from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from seopulse.ai.selector import select_provider
from seopulse.analyzer.access_scoper import accessible_site_ids, user_has_site_access
from seopulse.analyzer.pipeline import generate_report
from seopulse.analyzer.synthesizer import InsightSynthesizer
from seopulse.api.deps import get_analytics_source, get_delivery, get_principal
from seopulse.connectors.base_source import AnalyticsSource
from seopulse.core.errors import SiteRegistryError
from seopulse.database import get_session
from seopulse.delivery.webhook import ReportDelivery
from seopulse.models.analysis_models import ReportPayload
from seopulse.models.report_models import Granularity
from seopulse.models.tenant_models import Principal
from seopulse.registry.sites import get_site
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("api.reports")

router = APIRouter(tags=["Reports"])


def get_synthesizer(session: Session = Depends(get_session)) -> InsightSynthesizer:
    return InsightSynthesizer(provider=select_provider(), store=MetricsStore(session))


# ── Request / Response Models ──


class GenerateReportRequest(BaseModel):
    """Request body for POST /reports."""

    site_id: int
    granularity: Granularity = Granularity.WEEK
    start_date: Optional[date_type] = None
    """Required for custom reports, with end_date."""
    end_date: Optional[date_type] = None
    deliver: bool = False
    """Hand the report to the delivery webhook after storing it."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"site_id": 1, "granularity": "week"},
                {"site_id": 1, "granularity": "custom", "start_date": "2026-02-01", "end_date": "2026-02-14"},
            ]
        }
    }


# ── Endpoints ──


@router.post("/reports", response_model=ReportPayload)
async def create_report(
    request: GenerateReportRequest,
    principal: Principal = Depends(get_principal),
    session: Session = Depends(get_session),
    source: AnalyticsSource = Depends(get_analytics_source),
    synthesizer: InsightSynthesizer = Depends(get_synthesizer),
    delivery: Optional[ReportDelivery] = Depends(get_delivery),
):
    """Generate (or refresh) the report for one site and period."""
    if not user_has_site_access(session, principal, request.site_id):
        raise HTTPException(status_code=403, detail="You do not have access to this site")
    try:
        site = get_site(session, request.site_id)
        return await generate_report(
            session,
            site,
            granularity=request.granularity.value,
            start_date=request.start_date,
            end_date=request.end_date,
            source=source,
            synthesizer=synthesizer,
            delivery=delivery if request.deliver else None,
        )
    except SiteRegistryError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/reports/latest")
async def get_latest_report(
    site_id: Optional[int] = Query(None),
    principal: Principal = Depends(get_principal),
    session: Session = Depends(get_session),
):
    """Most recent stored report across the principal's sites."""
    site_ids = accessible_site_ids(session, principal)
    if site_id is not None:
        if site_id not in site_ids:
            raise HTTPException(status_code=403, detail="You do not have access to this site")
        site_ids = {site_id}

    report = MetricsStore(session).latest_report(site_ids)
    if not report:
        return {"status": "no_data", "message": "No report has been generated yet."}

    data = report.model_dump(
        exclude={"top_pages_json", "top_queries_json", "wide_comparison_json", "tasks_json"}
    )
    data.update(
        top_pages=json.loads(report.top_pages_json),
        top_queries=json.loads(report.top_queries_json),
        wide_comparison=json.loads(report.wide_comparison_json),
        tasks=json.loads(report.tasks_json),
    )
    return {"status": "success", "report": data}
