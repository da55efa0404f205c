"""SEOPULSE — Report Aggregator.

Turns stored daily rows into period aggregates, current-vs-previous
comparisons, top page/query rankings and coverage figures. Reads only
through the Metrics Store; callers restrict site IDs (dashboard reads always
pass IDs from the access scoper).
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional

from pydantic import BaseModel

from seopulse.analyzer.trend_engine import compare, previous_period
from seopulse.config import settings
from seopulse.core.metric_registry import SEARCH_METRICS, Aggregation, MetricDefinition
from seopulse.models.analysis_models import PeriodAggregate, PeriodComparison, RankedItem
from seopulse.models.report_models import Granularity, Report
from seopulse.models.tenant_models import Site
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("analyzer.aggregator")


def resolve_period(granularity: str, reference: date) -> tuple[date, date]:
    """Last complete period ending on or before `reference`.

    week  → Monday–Sunday
    month → first to last day of a calendar month
    """
    if granularity == Granularity.WEEK.value:
        # weekday(): Monday=0 … Sunday=6
        end = reference - timedelta(days=(reference.weekday() + 1) % 7)
        return end - timedelta(days=6), end

    if granularity == Granularity.MONTH.value:
        if (reference + timedelta(days=1)).day == 1:
            end = reference
        else:
            end = reference.replace(day=1) - timedelta(days=1)
        return end.replace(day=1), end

    raise ValueError(f"Cannot resolve a period for granularity {granularity!r}")


class ReportInputs(BaseModel):
    """Everything a report is built from."""

    comparison: PeriodComparison
    wide: Optional[PeriodComparison] = None
    top_pages: List[RankedItem] = []
    top_queries: List[RankedItem] = []


def _combine(metric: MetricDefinition, series: List[float]) -> float:
    if metric.aggregation == Aggregation.SUM:
        return sum(series)
    return sum(series) / len(series) if series else 0.0


def _ranked_items(rows) -> List[RankedItem]:
    return [
        RankedItem(
            rank=rank,
            key=key,
            clicks=clicks,
            impressions=impressions,
            ctr=ctr,
            position=position,
        )
        for rank, (key, clicks, impressions, ctr, position) in enumerate(rows, 1)
    ]


def _json_list(items: List[RankedItem]) -> str:
    return "[" + ",".join(item.model_dump_json() for item in items) + "]"


class ReportAggregator:
    """Aggregation and comparison over stored metrics."""

    def __init__(
        self,
        store: MetricsStore,
        top_n: Optional[int] = None,
        wide_window_days: Optional[int] = None,
    ):
        self.store = store
        self.top_n = settings.top_n if top_n is None else top_n
        self.wide_window_days = settings.wide_window_days if wide_window_days is None else wide_window_days

    def aggregate_period(self, site_ids: Iterable[int], start: date, end: date) -> PeriodAggregate:
        """Sum clicks/impressions and average CTR/position over [start, end]."""
        rows = self.store.daily_rows(site_ids, start, end)
        expected_days = (end - start).days + 1

        if not rows:
            return PeriodAggregate(start=start, end=end, expected_days=expected_days)

        days_with_data = len({r.date for r in rows})
        values = {name: _combine(metric, [getattr(r, name) for r in rows])
                  for name, metric in SEARCH_METRICS.items()}
        return PeriodAggregate(
            start=start,
            end=end,
            total_clicks=int(values["clicks"]),
            total_impressions=int(values["impressions"]),
            average_ctr=values["ctr"],
            average_position=values["position"],
            days_with_data=days_with_data,
            expected_days=expected_days,
            data_coverage=days_with_data / expected_days if expected_days > 0 else 0.0,
        )

    def compare_periods(self, site_ids: Iterable[int], start: date, end: date) -> PeriodComparison:
        ids = list(site_ids)
        prev_start, prev_end = previous_period(start, end)
        current = self.aggregate_period(ids, start, end)
        previous = self.aggregate_period(ids, prev_start, prev_end)
        return compare(current, previous)

    def wide_comparison(self, site_ids: Iterable[int], end: date) -> PeriodComparison:
        """Trailing wide window ending at `end` vs the window before it."""
        start = end - timedelta(days=self.wide_window_days - 1)
        return self.compare_periods(site_ids, start, end)

    def top_pages(self, site_id: int, start: date, end: date) -> List[RankedItem]:
        return _ranked_items(self.store.top_pages(site_id, start, end, self.top_n))

    def top_queries(self, site_id: int, start: date, end: date) -> List[RankedItem]:
        return _ranked_items(self.store.top_queries(site_id, start, end, self.top_n))

    def report_inputs(
        self, site: Site, start: date, end: date, include_wide: bool = True
    ) -> ReportInputs:
        """Comparison, optional wide comparison and rankings for one site."""
        if end < start:
            raise ValueError(f"Period end {end} is before start {start}")

        comparison = self.compare_periods([site.id], start, end)
        if comparison.current.days_with_data == 0:
            logger.warning(
                f"No data for {site.domain} between {start} and {end}",
                extra={"site_id": site.id},
            )
        return ReportInputs(
            comparison=comparison,
            wide=self.wide_comparison([site.id], end) if include_wide else None,
            top_pages=self.top_pages(site.id, start, end),
            top_queries=self.top_queries(site.id, start, end),
        )

    def aggregate(
        self,
        site: Site,
        start: date,
        end: date,
        granularity: str = Granularity.WEEK.value,
        include_wide: bool = True,
    ) -> Report:
        """Build an unsaved Report with aggregates, deltas and snapshots."""
        return self.to_report(site, granularity, self.report_inputs(site, start, end, include_wide))

    @staticmethod
    def to_report(site: Site, granularity: str, inputs: ReportInputs) -> Report:
        comparison = inputs.comparison
        current = comparison.current
        return Report(
            site_id=site.id,
            granularity=granularity,
            period_start=current.start,
            period_end=current.end,
            previous_start=comparison.previous.start,
            previous_end=comparison.previous.end,
            total_clicks=current.total_clicks,
            total_impressions=current.total_impressions,
            average_ctr=current.average_ctr,
            average_position=current.average_position,
            clicks_change=comparison.clicks_change,
            impressions_change=comparison.impressions_change,
            ctr_change=comparison.ctr_change,
            position_change=comparison.position_change,
            days_with_data=current.days_with_data,
            expected_days=current.expected_days,
            data_coverage=current.data_coverage,
            top_pages_json=_json_list(inputs.top_pages),
            top_queries_json=_json_list(inputs.top_queries),
            comparison_json=comparison.model_dump_json(),
            wide_comparison_json=inputs.wide.model_dump_json() if inputs.wide else "null",
        )

    def summarize(self, site_ids: Iterable[int], start: date, end: date) -> PeriodComparison:
        """Multi-site comparison for dashboard reads."""
        return self.compare_periods(site_ids, start, end)
