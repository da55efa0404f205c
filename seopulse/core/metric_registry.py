"""SEOPULSE — Search Metric Registry.

Defines the canonical search metrics, how they aggregate over a period and
which direction counts as an improvement. The aggregator and trend engine
read these definitions instead of hard-coding per-metric rules.
"""

from enum import Enum
from typing import Dict


class Aggregation(str, Enum):
    """How daily values combine over a period."""

    SUM = "sum"  # Counts: clicks, impressions
    MEAN = "mean"  # Pre-computed rates: ctr, position


class ChangeKind(str, Enum):
    """How period-over-period change is expressed."""

    PERCENT = "percent"
    POINTS = "points"


class MetricDefinition:
    """Describes a single metric."""

    def __init__(
        self,
        name: str,
        aggregation: Aggregation,
        change_kind: ChangeKind = ChangeKind.PERCENT,
        higher_is_better: bool = True,
        unit: str = "",
        description: str = "",
    ):
        self.name = name
        self.aggregation = aggregation
        self.change_kind = change_kind
        self.higher_is_better = higher_is_better
        self.unit = unit
        self.description = description

    def __repr__(self) -> str:
        return f"<Metric {self.name} ({self.aggregation.value})>"


SEARCH_METRICS: Dict[str, MetricDefinition] = {
    "clicks": MetricDefinition(
        "clicks", Aggregation.SUM, unit="count", description="Clicks from search results"
    ),
    "impressions": MetricDefinition(
        "impressions",
        Aggregation.SUM,
        unit="count",
        description="Times a result was shown",
    ),
    "ctr": MetricDefinition(
        "ctr", Aggregation.MEAN, unit="ratio", description="Click-through rate"
    ),
    # Lower numeric position is a better ranking
    "position": MetricDefinition(
        "position",
        Aggregation.MEAN,
        change_kind=ChangeKind.POINTS,
        higher_is_better=False,
        unit="rank",
        description="Average ranking position",
    ),
}


def get_metric(name: str) -> MetricDefinition | None:
    """Look up a metric by name."""
    return SEARCH_METRICS.get(name)
