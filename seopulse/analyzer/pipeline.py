"""SEOPULSE — Report Pipeline Orchestrator.

Runs the reporting flow for one site:
  resolve period → aggregate → technical issues → synthesize → store → deliver

A stored report that was already delivered is never rebuilt or re-sent.
"""

import json
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence

from sqlmodel import Session

from seopulse.analyzer.aggregator import ReportAggregator, resolve_period
from seopulse.analyzer.synthesizer import InsightSynthesizer, with_fallback
from seopulse.config import settings
from seopulse.connectors.base_source import AnalyticsSource
from seopulse.core.errors import DeliveryError
from seopulse.delivery.webhook import ReportDelivery
from seopulse.models.analysis_models import ReportPayload, TechnicalIssue
from seopulse.models.report_models import Granularity, Report
from seopulse.models.tenant_models import Site
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("analyzer.pipeline")


def resolve_dates(
    granularity: str,
    reference: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> tuple[date, date]:
    """Explicit dates win; otherwise the last complete week/month."""
    if start_date and end_date:
        if end_date < start_date:
            raise ValueError(f"end_date {end_date} is before start_date {start_date}")
        return start_date, end_date
    if granularity == Granularity.CUSTOM.value:
        raise ValueError("Custom reports need start_date and end_date")
    return resolve_period(granularity, reference or datetime.now(timezone.utc).date())


async def _technical_issues(
    source: Optional[AnalyticsSource], site: Site
) -> List[TechnicalIssue]:
    if source is None:
        return []
    return await with_fallback(
        lambda: source.fetch_sitemap_issues(site.analytics_ref),
        timeout=settings.fetch_timeout_seconds,
        fallback=[],
        what=f"sitemap check for {site.domain}",
    )


async def deliver_report(
    store: MetricsStore, report: Report, payload: ReportPayload, delivery: ReportDelivery
) -> bool:
    """Send the payload; set delivered_at only on success."""
    try:
        await delivery.send(payload)
    except DeliveryError as e:
        logger.error(
            f"Delivery failed for report {report.id}: {e}", extra={"site_id": report.site_id}
        )
        return False
    store.mark_delivered(report.id)
    return True


async def generate_report(
    session: Session,
    site: Site,
    granularity: str = Granularity.WEEK.value,
    reference: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    source: Optional[AnalyticsSource] = None,
    synthesizer: Optional[InsightSynthesizer] = None,
    delivery: Optional[ReportDelivery] = None,
) -> ReportPayload:
    """Build, store and (optionally) deliver the report for one site and period."""
    start, end = resolve_dates(granularity, reference, start_date, end_date)
    logger.info(
        f"Generating {granularity} report for {site.domain}: {start} → {end}",
        extra={"site_id": site.id},
    )

    store = MetricsStore(session)
    existing = store.get_report(site.id, start, end)
    if existing is not None and existing.delivered_at is not None:
        logger.info(
            f"Report {existing.id} for {site.domain} already delivered; not regenerating",
            extra={"site_id": site.id},
        )
        return payload_from_report(existing, site)

    # ── Step 1: Aggregate ──
    aggregator = ReportAggregator(store)
    inputs = aggregator.report_inputs(site, start, end)

    # ── Step 2: Technical issues + synthesis ──
    issues = await _technical_issues(source, site)
    synthesizer = synthesizer or InsightSynthesizer(store=store)
    synthesis = await synthesizer.synthesize(
        inputs.comparison,
        inputs.top_pages,
        inputs.top_queries,
        issues=issues,
        generate_tasks=True,
        domain=site.domain,
    )

    # ── Step 3: Store ──
    report = aggregator.to_report(site, granularity, inputs)
    report.insights = "\n".join(synthesis.insights)
    report.recommendations = "\n".join(synthesis.recommendations)
    report.executive_summary = synthesis.executive_summary
    report.insight_source = synthesis.source
    report.tasks_json = json.dumps([t.model_dump() for t in synthesis.tasks])
    report = store.save_report(report)
    store.save_tasks(site.id, start, end, synthesis.tasks)

    payload = ReportPayload(
        report_id=report.id,
        site_id=site.id,
        domain=site.domain,
        granularity=granularity,
        period_start=start,
        period_end=end,
        comparison=inputs.comparison,
        wide_comparison=inputs.wide,
        top_pages=inputs.top_pages,
        top_queries=inputs.top_queries,
        synthesis=synthesis,
    )

    # ── Step 4: Deliver ──
    if delivery is not None and report.delivered_at is None:
        await deliver_report(store, report, payload, delivery)

    logger.info(
        f"Report {report.id} ready for {site.domain} (insights: {synthesis.source})",
        extra={"site_id": site.id},
    )
    return payload


def payload_from_report(report: Report, site: Site) -> ReportPayload:
    """Rebuild the payload from a stored report's snapshots."""
    return ReportPayload.model_validate(
        {
            "report_id": report.id,
            "site_id": site.id,
            "domain": site.domain,
            "granularity": report.granularity,
            "period_start": report.period_start,
            "period_end": report.period_end,
            "comparison": json.loads(report.comparison_json),
            "wide_comparison": json.loads(report.wide_comparison_json or "null"),
            "top_pages": json.loads(report.top_pages_json or "[]"),
            "top_queries": json.loads(report.top_queries_json or "[]"),
            "synthesis": {
                "insights": [line for line in report.insights.splitlines() if line],
                "recommendations": [line for line in report.recommendations.splitlines() if line],
                "tasks": json.loads(report.tasks_json or "[]"),
                "executive_summary": report.executive_summary,
                "source": report.insight_source,
            },
        }
    )


async def generate_reports_for_sites(
    session: Session,
    sites: Sequence[Site],
    granularity: str = Granularity.WEEK.value,
    reference: Optional[date] = None,
    source: Optional[AnalyticsSource] = None,
    synthesizer: Optional[InsightSynthesizer] = None,
    delivery: Optional[ReportDelivery] = None,
) -> List[ReportPayload]:
    """One report per site; a failing site does not stop the others."""
    payloads: List[ReportPayload] = []
    for site in sites:
        try:
            payloads.append(
                await generate_report(
                    session,
                    site,
                    granularity=granularity,
                    reference=reference,
                    source=source,
                    synthesizer=synthesizer,
                    delivery=delivery,
                )
            )
        except Exception:
            session.rollback()
            logger.exception(f"Report generation failed for {site.domain}", extra={"site_id": site.id})
    logger.info(f"Generated {len(payloads)}/{len(sites)} reports")
    return payloads
