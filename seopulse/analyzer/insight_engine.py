"""SEOPULSE — Baseline Insight Engine.

Deterministic rules over period deltas and top page/query rankings:
- Delta buckets → severity-tagged insights and diagnoses
- Same buckets + page/query heuristics → recommendations (capped)
- Same buckets → follow-up tasks

Always produces at least one insight and one recommendation.
"""

from typing import Iterable, List, Optional

from seopulse.models.analysis_models import (
    GeneratedTask,
    Insight,
    PeriodComparison,
    RankedItem,
    TechnicalIssue,
)
from seopulse.core.logging import get_logger

logger = get_logger("analyzer.insight")

# Thresholds (percent, except position which is in points)
CRITICAL_DROP = -20.0
WARNING_DROP = -10.0
POSITIVE_GAIN = 10.0
CTR_WARNING_DROP = -10.0
POSITION_SHIFT = 2.0
FLAT_BAND = 5.0

# Page/query heuristics; CTR is a fraction as reported upstream
LOW_CTR = 0.02
LOW_CTR_MIN_IMPRESSIONS = 100
STRIKING_DISTANCE = (5.0, 15.0)
DEEP_POSITION = 10.0

MAX_RECOMMENDATIONS = 5

REC_TECHNICAL_AUDIT = (
    "Run a technical SEO audit: check indexing coverage, crawl errors and any "
    "recent site changes that could explain the traffic drop."
)
REC_ALGORITHM_REVIEW = (
    "Clicks and impressions fell together, which points at rankings. Review "
    "content quality on the top pages against recent Google core updates."
)
REC_METADATA_REWRITE = (
    "Rewrite title tags and meta descriptions on high-impression pages to make "
    "the search listing more compelling."
)
REC_CONTENT_GAP = (
    "Average position worsened. Run a content-gap review against the pages "
    "now outranking you for your main queries."
)
REC_VISIBILITY = (
    "Impressions are down. Expand coverage of the topics behind your top "
    "queries and confirm key pages are still indexed."
)
REC_RISING = (
    "Rankings are improving ahead of clicks. Strengthen internal links to the "
    "pages gaining position to turn visibility into traffic."
)
REC_RANKING_DEPTH = (
    "Average position is beyond page one. Prioritize on-page optimization for "
    "queries ranking just outside the top 10."
)
REC_MAINTAIN = (
    "Performance is steady. Keep publishing and refreshing content on the "
    "pages that drive the most clicks."
)


def _is_flat(change: float) -> bool:
    return abs(change) <= FLAT_BAND


# ─────────────────────────────────────────────
# INSIGHTS
# ─────────────────────────────────────────────


def _volume_insights(name: str, category: str, change: float) -> List[Insight]:
    if change < CRITICAL_DROP:
        return [Insight(severity="critical", category=category, message=f"{name} dropped {change:.1f}% vs the previous period")]
    if change < WARNING_DROP:
        return [Insight(severity="warning", category=category, message=f"{name} declined {change:.1f}% vs the previous period")]
    if change > POSITIVE_GAIN:
        return [Insight(severity="positive", category=category, message=f"{name} grew {change:+.1f}% vs the previous period")]
    return []


def compute_insights(comparison: PeriodComparison) -> List[Insight]:
    """Apply the decision table to the headline deltas."""
    if comparison.current.days_with_data == 0:
        return [
            Insight(
                severity="info",
                category="data",
                message="No search data was collected for this period.",
            )
        ]

    clicks = comparison.clicks_change
    impressions = comparison.impressions_change
    ctr = comparison.ctr_change
    position = comparison.position_change

    insights: List[Insight] = []
    insights += _volume_insights("Clicks", "traffic", clicks)
    insights += _volume_insights("Impressions", "visibility", impressions)

    if ctr < CTR_WARNING_DROP:
        insights.append(Insight(severity="warning", category="ctr", message=f"Click-through rate fell {ctr:.1f}%"))

    # Position: positive change means a worse (higher) ranking number
    if position > POSITION_SHIFT:
        insights.append(
            Insight(severity="critical", category="ranking", message=f"Average position worsened by {position:.1f} places")
        )
    elif position < -POSITION_SHIFT:
        insights.append(
            Insight(severity="positive", category="ranking", message=f"Average position improved by {abs(position):.1f} places")
        )

    # ── Diagnoses ──
    if clicks < WARNING_DROP and impressions < WARNING_DROP:
        insights.append(
            Insight(
                severity="warning",
                category="diagnosis",
                message="Clicks and impressions fell together: likely a ranking or algorithm shift",
            )
        )
    if _is_flat(impressions) and ctr < -FLAT_BAND:
        insights.append(
            Insight(
                severity="warning",
                category="diagnosis",
                message="Visibility held steady but fewer searchers clicked: listing attractiveness is slipping",
            )
        )
    if position < 0 and _is_flat(clicks):
        insights.append(
            Insight(
                severity="info",
                category="diagnosis",
                message="Rankings are improving while clicks hold flat: a rising opportunity to convert visibility into traffic",
            )
        )

    if not insights:
        insights.append(
            Insight(severity="info", category="traffic", message="Search performance is stable compared with the previous period")
        )
    return insights


# ─────────────────────────────────────────────
# RECOMMENDATIONS
# ─────────────────────────────────────────────


def low_ctr_pages(pages: Iterable[RankedItem]) -> List[RankedItem]:
    return [p for p in pages if p.impressions >= LOW_CTR_MIN_IMPRESSIONS and p.ctr < LOW_CTR]


def striking_distance_queries(queries: Iterable[RankedItem]) -> List[RankedItem]:
    low, high = STRIKING_DISTANCE
    return [q for q in queries if low <= q.position <= high]


def compute_recommendations(
    comparison: PeriodComparison,
    top_pages: List[RankedItem],
    top_queries: List[RankedItem],
) -> List[str]:
    """Templated recommendations, most urgent first, capped at MAX_RECOMMENDATIONS."""
    clicks = comparison.clicks_change
    impressions = comparison.impressions_change
    ctr = comparison.ctr_change
    position = comparison.position_change

    recs: List[str] = []
    if clicks < CRITICAL_DROP:
        recs.append(REC_TECHNICAL_AUDIT)
    if clicks < WARNING_DROP and impressions < WARNING_DROP:
        recs.append(REC_ALGORITHM_REVIEW)
    if ctr < CTR_WARNING_DROP or (_is_flat(impressions) and ctr < -FLAT_BAND):
        recs.append(REC_METADATA_REWRITE)
    if position > POSITION_SHIFT:
        recs.append(REC_CONTENT_GAP)
    if impressions < WARNING_DROP:
        recs.append(REC_VISIBILITY)
    if position < 0 and _is_flat(clicks):
        recs.append(REC_RISING)

    for page in low_ctr_pages(top_pages)[:2]:
        recs.append(
            f"{page.key} earns {page.impressions} impressions at {page.ctr * 100:.2f}% CTR. "
            f"Rewrite its title and meta description."
        )
    for query in striking_distance_queries(top_queries)[:2]:
        recs.append(
            f'"{query.key}" ranks at position {query.position:.1f}. Strengthen the matching '
            f"page to move it onto page one."
        )

    if comparison.current.average_position > DEEP_POSITION:
        recs.append(REC_RANKING_DEPTH)
    if not recs:
        recs.append(REC_MAINTAIN)

    # Order-preserving dedupe before the cap
    return list(dict.fromkeys(recs))[:MAX_RECOMMENDATIONS]


# ─────────────────────────────────────────────
# TASKS
# ─────────────────────────────────────────────

GENERIC_TASKS = [
    GeneratedTask(
        title="Refresh meta descriptions on top pages",
        description="Review titles and meta descriptions of the five highest-traffic pages and tighten them around their main queries.",
        priority="MEDIUM",
        origin="generic",
    ),
    GeneratedTask(
        title="Audit internal links",
        description="Add internal links from high-authority pages to pages ranking on positions 5-15.",
        priority="MEDIUM",
        origin="generic",
    ),
    GeneratedTask(
        title="Check Core Web Vitals",
        description="Review page speed and mobile usability reports and fix any pages flagged as poor.",
        priority="LOW",
        origin="generic",
    ),
    GeneratedTask(
        title="Update stale content",
        description="Refresh the oldest pages that still receive impressions with current information.",
        priority="LOW",
        origin="generic",
    ),
    GeneratedTask(
        title="Review structured data",
        description="Validate schema markup on key templates to keep rich results eligible.",
        priority="LOW",
        origin="generic",
    ),
]

_ISSUE_PRIORITY = {"error": "URGENT", "warning": "HIGH"}
_ISSUE_ORDER = {"error": 0, "warning": 1}


def issue_tasks(issues: Optional[Iterable[TechnicalIssue]]) -> List[GeneratedTask]:
    """One task per technical issue, errors before warnings."""
    ordered = sorted(issues or [], key=lambda i: _ISSUE_ORDER.get(i.severity, 2))
    return [
        GeneratedTask(
            title=f"Fix indexing issue: {issue.source}",
            description=issue.issue,
            priority=_ISSUE_PRIORITY.get(issue.severity, "MEDIUM"),
            origin="technical",
        )
        for issue in ordered
    ]


def compute_tasks(
    comparison: PeriodComparison,
    top_pages: List[RankedItem],
    top_queries: List[RankedItem],
) -> List[GeneratedTask]:
    """Follow-up tasks from the delta buckets and page/query heuristics."""
    tasks: List[GeneratedTask] = []
    if comparison.clicks_change < CRITICAL_DROP:
        tasks.append(
            GeneratedTask(
                title="Investigate traffic drop",
                description=f"Clicks changed {comparison.clicks_change:.1f}%. Check indexing, crawl errors and recent deployments.",
                priority="URGENT",
            )
        )
    if comparison.position_change > POSITION_SHIFT:
        tasks.append(
            GeneratedTask(
                title="Recover lost rankings",
                description=f"Average position worsened by {comparison.position_change:.1f}. Compare top pages with the results now outranking them.",
                priority="HIGH",
            )
        )
    if comparison.ctr_change < CTR_WARNING_DROP:
        tasks.append(
            GeneratedTask(
                title="Improve search listing CTR",
                description=f"CTR changed {comparison.ctr_change:.1f}%. Rewrite titles and meta descriptions on high-impression pages.",
                priority="HIGH",
            )
        )
    for page in low_ctr_pages(top_pages)[:1]:
        tasks.append(
            GeneratedTask(
                title=f"Optimize listing for {page.key}",
                description=f"{page.impressions} impressions at {page.ctr * 100:.2f}% CTR. Rewrite its title and meta description.",
                priority="MEDIUM",
            )
        )
    for query in striking_distance_queries(top_queries)[:1]:
        tasks.append(
            GeneratedTask(
                title=f'Push "{query.key}" onto page one',
                description=f"Currently at position {query.position:.1f}. Expand the ranking page and add internal links to it.",
                priority="MEDIUM",
            )
        )
    return tasks


def assemble_tasks(
    count: int,
    issues: Optional[Iterable[TechnicalIssue]] = None,
    enrichment_tasks: Optional[List[GeneratedTask]] = None,
    baseline_tasks: Optional[List[GeneratedTask]] = None,
) -> List[GeneratedTask]:
    """Exactly `count` tasks: technical issues, enrichment, baseline, then generic padding."""
    tasks = issue_tasks(issues) + list(enrichment_tasks or []) + list(baseline_tasks or [])

    seen = {t.title for t in tasks}
    padding = [t for t in GENERIC_TASKS if t.title not in seen]
    i = 0
    while len(tasks) < count:
        if i < len(padding):
            tasks.append(padding[i])
        else:
            # Ran out of distinct generic tasks
            n = i - len(padding) + 1
            tasks.append(
                GeneratedTask(
                    title=f"Review search performance ({n})",
                    description="Review the period's top pages and queries for new optimization opportunities.",
                    priority="LOW",
                    origin="generic",
                )
            )
        i += 1

    return tasks[:count]
