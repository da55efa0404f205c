"""SEOPULSE — Abstract Analytics Source."""

from abc import ABC, abstractmethod
from datetime import date
from typing import List

from seopulse.models.analysis_models import TechnicalIssue
from seopulse.models.metric_models import MetricRow


class AnalyticsSource(ABC):
    """Fetch capability for one site property and one day.

    Implementations raise a FetchError subclass (TransientFetchError,
    AuthorizationError, NotFoundError, ValidationError) on failure.
    """

    @abstractmethod
    async def fetch_daily_totals(self, site_ref: str, day: date) -> List[MetricRow]:
        """Site-wide totals for the day: zero or one row."""
        ...

    @abstractmethod
    async def fetch_page_breakdown(self, site_ref: str, day: date) -> List[MetricRow]:
        """One row per page, keyed by page URL."""
        ...

    @abstractmethod
    async def fetch_query_breakdown(self, site_ref: str, day: date) -> List[MetricRow]:
        """One row per search query, keyed by query string."""
        ...

    async def fetch_sitemap_issues(self, site_ref: str) -> List[TechnicalIssue]:
        """Indexing problems for the property. Optional; none by default."""
        return []

    async def close(self) -> None:
        """Release any underlying connections."""
        return None
