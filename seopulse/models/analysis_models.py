"""SEOPULSE — Analysis Output Models."""

from datetime import date
from typing import Optional, List
from pydantic import BaseModel


# ─────────────────────────────────────────────
# AGGREGATES & DELTAS
# ─────────────────────────────────────────────


class PeriodAggregate(BaseModel):
    """Sums and averages for one inclusive date range."""

    start: date
    end: date
    total_clicks: int = 0
    total_impressions: int = 0
    average_ctr: float = 0.0
    average_position: float = 0.0
    days_with_data: int = 0
    expected_days: int = 0
    data_coverage: float = 0.0


class TrendSignal(BaseModel):
    """Change of one metric between two periods."""

    metric_name: str
    current_value: float
    previous_value: float
    change: float  # percent, or points for position
    unit: str = "%"  # "%" | "points"
    direction: str = "flat"  # "up" | "down" | "flat"
    signal: str = "stable"  # "improving" | "declining" | "stable" | "insufficient_data"
    previous_period_available: bool = True


class PeriodComparison(BaseModel):
    """Current period vs the immediately preceding period of equal length."""

    current: PeriodAggregate
    previous: PeriodAggregate
    clicks_change: float = 0.0
    impressions_change: float = 0.0
    ctr_change: float = 0.0
    position_change: float = 0.0
    trend_signals: List[TrendSignal] = []


class RankedItem(BaseModel):
    """A page or query ranked by clicks, then impressions."""

    rank: int
    key: str
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float = 0.0


# ─────────────────────────────────────────────
# INSIGHTS
# ─────────────────────────────────────────────


class TechnicalIssue(BaseModel):
    """Indexing / sitemap problem detected upstream."""

    source: str  # sitemap path or page
    issue: str
    severity: str = "warning"  # "error" | "warning" | "info"


class Insight(BaseModel):
    """Severity-tagged finding."""

    severity: str  # "critical" | "warning" | "positive" | "info"
    category: str  # "traffic" | "visibility" | "ctr" | "ranking" | "diagnosis"
    message: str

    def render(self) -> str:
        return f"[{self.severity.upper()}] {self.message}"


class GeneratedTask(BaseModel):
    """Actionable follow-up for the period."""

    title: str
    description: str
    priority: str = "MEDIUM"  # "URGENT" | "HIGH" | "MEDIUM" | "LOW"
    origin: str = "baseline"  # "technical" | "enrichment" | "baseline" | "generic"


class SynthesisResult(BaseModel):
    """Output of the insight synthesizer."""

    insights: List[str]
    recommendations: List[str]
    tasks: List[GeneratedTask] = []
    executive_summary: str = ""
    source: str = "baseline"  # "baseline" | "enriched"


# ─────────────────────────────────────────────
# REPORT PAYLOAD — handed to delivery
# ─────────────────────────────────────────────


class ReportPayload(BaseModel):
    """Plain data structure passed to the external renderer/sender."""

    report_id: int
    site_id: int
    domain: str
    granularity: str
    period_start: date
    period_end: date
    comparison: PeriodComparison
    wide_comparison: Optional[PeriodComparison] = None
    top_pages: List[RankedItem] = []
    top_queries: List[RankedItem] = []
    synthesis: SynthesisResult
