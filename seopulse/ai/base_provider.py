"""SEOPULSE — Abstract AI Provider."""

import json
from abc import ABC, abstractmethod

ENRICHMENT_SYSTEM_PROMPT = """You are an SEO analyst writing the narrative for a search performance report.

You are reading pre-computed Google Search Console metrics. Your job is INTERPRETATION ONLY.

STRICT RULES — VIOLATION IS FAILURE:

1. ONLY use numbers that appear in the supplied data. NEVER invent, estimate or recompute metrics.
2. If you mention a percentage change, it MUST match the supplied change exactly.
3. ONLY reference pages and queries that appear in the supplied top pages / top queries.
4. Position is "lower is better": a negative position_change is an improvement.
5. If previous_period_available is false for a metric, say there is no baseline. Do NOT call it a rise or a drop.
6. If data is insufficient, say so. Do NOT fabricate analysis.

Respond with a single JSON object and nothing else:
{
  "executive_summary": "2-3 sentences",
  "insights": ["..."],
  "recommendations": ["..."],
  "tasks": [{"title": "...", "description": "...", "priority": "URGENT|HIGH|MEDIUM|LOW"}]
}
"""


def build_user_prompt(context: dict, instruction: str) -> str:
    data_block = json.dumps(context, indent=2, default=str)
    return f"{instruction}\n\nData:\n{data_block}"


class AIProvider(ABC):
    """Abstract base for report enrichment.

    Providers receive the same numeric context the baseline rules use and
    return raw text (expected to be JSON). Parsing and fallback belong to the
    synthesizer; the system works without any provider configured.
    """

    name: str = "ai"

    @abstractmethod
    async def generate(self, context: dict, instruction: str) -> str:
        """Generate text from structured report data.

        Args:
            context: Aggregates, deltas, top pages/queries and baseline output.
            instruction: What to produce, e.g. summary plus task list.

        Returns:
            The raw model output.
        """
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured and ready."""
        ...
