"""SEOPULSE — Trend Engine.

Period arithmetic and current-vs-previous change math.
Percent change is defined as 0 when the previous value is 0; position
change is an absolute point difference where negative means better ranking.
"""

from datetime import date, timedelta
from typing import List

from seopulse.core.metric_registry import SEARCH_METRICS, ChangeKind, get_metric
from seopulse.models.analysis_models import PeriodAggregate, PeriodComparison, TrendSignal
from seopulse.core.logging import get_logger

logger = get_logger("analyzer.trend")

# |change| at or below this is "flat" (percent for rates/counts, points for position)
FLAT_PERCENT = 2.0
FLAT_POINTS = 0.5


def previous_period(start: date, end: date) -> tuple[date, date]:
    """The immediately preceding period of equal length."""
    prev_end = start - timedelta(days=1)
    prev_start = prev_end - (end - start)
    return prev_start, prev_end


def pct_change(current: float, previous: float) -> float:
    """(current - previous) / previous * 100, or 0 when previous is 0."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def point_change(current: float, previous: float) -> float:
    return current - previous


def _direction(change: float, change_kind: ChangeKind) -> str:
    threshold = FLAT_POINTS if change_kind == ChangeKind.POINTS else FLAT_PERCENT
    if change > threshold:
        return "up"
    elif change < -threshold:
        return "down"
    return "flat"


def _signal(metric_name: str, direction: str) -> str:
    """Determine signal based on metric semantics."""
    metric = get_metric(metric_name)
    if direction == "flat":
        return "stable"
    improved = (direction == "up") == metric.higher_is_better
    return "improving" if improved else "declining"


def _metric_value(agg: PeriodAggregate, metric_name: str) -> float:
    return {
        "clicks": float(agg.total_clicks),
        "impressions": float(agg.total_impressions),
        "ctr": agg.average_ctr,
        "position": agg.average_position,
    }[metric_name]


def compute_trends(current: PeriodAggregate, previous: PeriodAggregate) -> List[TrendSignal]:
    """Trend signal per registered metric."""
    signals: List[TrendSignal] = []
    has_baseline = previous.days_with_data > 0

    for name, metric in SEARCH_METRICS.items():
        curr_val = _metric_value(current, name)
        prev_val = _metric_value(previous, name)

        if metric.change_kind == ChangeKind.POINTS:
            change = point_change(curr_val, prev_val) if has_baseline else 0.0
            unit = "points"
        else:
            change = pct_change(curr_val, prev_val)
            unit = "%"

        # No prior data: report the zero change, never a trend
        if not has_baseline or (metric.change_kind == ChangeKind.PERCENT and prev_val == 0):
            signals.append(
                TrendSignal(
                    metric_name=name,
                    current_value=curr_val,
                    previous_value=prev_val,
                    change=0.0,
                    unit=unit,
                    direction="flat",
                    signal="insufficient_data",
                    previous_period_available=False,
                )
            )
            continue

        d = _direction(change, metric.change_kind)
        signals.append(
            TrendSignal(
                metric_name=name,
                current_value=curr_val,
                previous_value=prev_val,
                change=change,
                unit=unit,
                direction=d,
                signal=_signal(name, d),
            )
        )

    return signals


def compare(current: PeriodAggregate, previous: PeriodAggregate) -> PeriodComparison:
    """Build the comparison with the four headline deltas."""
    comparison = PeriodComparison(
        current=current,
        previous=previous,
        clicks_change=pct_change(current.total_clicks, previous.total_clicks),
        impressions_change=pct_change(current.total_impressions, previous.total_impressions),
        ctr_change=pct_change(current.average_ctr, previous.average_ctr),
        position_change=(
            point_change(current.average_position, previous.average_position)
            if current.days_with_data and previous.days_with_data
            else 0.0
        ),
        trend_signals=compute_trends(current, previous),
    )
    logger.debug(
        f"Compared {current.start}→{current.end} with {previous.start}→{previous.end}"
    )
    return comparison
