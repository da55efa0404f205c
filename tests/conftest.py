"""
Pytest configuration and shared fixtures for the SEOPULSE test suite.

In-memory SQLite (StaticPool, so every connection sees the same database),
site/metric factories, and a scriptable AnalyticsSource that never touches
the network.
"""

import asyncio
import os
from datetime import date, timedelta
from typing import Dict, List, Optional

# Configure BEFORE importing seopulse: settings and the engine are built at import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["GSC_ACCESS_TOKEN"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["SARVAM_API_KEY"] = ""
os.environ["REPORT_WEBHOOK_URL"] = ""

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import seopulse.models.metric_models  # noqa: F401
import seopulse.models.report_models  # noqa: F401
import seopulse.models.tenant_models  # noqa: F401
from seopulse.connectors.base_source import AnalyticsSource
from seopulse.models.analysis_models import TechnicalIssue
from seopulse.models.metric_models import DailyMetric, MetricRow, PageMetric, QueryMetric
from seopulse.models.tenant_models import AccessGrant, Principal, Role, Site

# Wednesday; with the default 3-day lag the newest collectable date is 2026-03-15
TODAY = date(2026, 3, 18)
FLOOR = TODAY - timedelta(days=3)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_site(
    session: Session,
    domain: str = "www.example.com",
    owner_id: str = "owner-1",
    analytics_ref: Optional[str] = None,
    is_active: bool = True,
) -> Site:
    """Insert a site directly, bypassing registry validation."""
    site = Site(
        domain=domain,
        display_name=domain,
        analytics_ref=analytics_ref if analytics_ref is not None else f"https://{domain}/",
        owner_id=owner_id,
        is_active=is_active,
    )
    session.add(site)
    session.commit()
    session.refresh(site)
    return site


def grant(session: Session, principal_id: str, site: Site) -> AccessGrant:
    g = AccessGrant(principal_id=principal_id, site_id=site.id)
    session.add(g)
    session.commit()
    return g


def add_daily(
    session: Session,
    site: Site,
    day: date,
    clicks: int = 10,
    impressions: int = 100,
    ctr: float = 0.1,
    position: float = 5.0,
) -> DailyMetric:
    row = DailyMetric(
        site_id=site.id, date=day, clicks=clicks, impressions=impressions, ctr=ctr, position=position
    )
    session.add(row)
    session.commit()
    return row


def add_page(session: Session, site: Site, day: date, page: str, clicks: int, impressions: int,
             ctr: float = 0.05, position: float = 4.0) -> None:
    session.add(PageMetric(site_id=site.id, date=day, page=page, clicks=clicks,
                           impressions=impressions, ctr=ctr, position=position))
    session.commit()


def add_query(session: Session, site: Site, day: date, query: str, clicks: int, impressions: int,
              ctr: float = 0.05, position: float = 4.0) -> None:
    session.add(QueryMetric(site_id=site.id, date=day, query=query, clicks=clicks,
                            impressions=impressions, ctr=ctr, position=position))
    session.commit()


def fill_days(session: Session, site: Site, end: date, days: int, **metrics) -> None:
    """One daily row for each of the `days` dates ending at `end`."""
    for i in range(days):
        add_daily(session, site, end - timedelta(days=i), **metrics)


def principal(role: Role = Role.CLIENT, pid: str = "client-1") -> Principal:
    return Principal(id=pid, role=role)


def run(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Fake analytics source
# ---------------------------------------------------------------------------


class FakeAnalyticsSource(AnalyticsSource):
    """Scriptable source.

    failures: site_ref → exception raised at the `fail_on` stage
    ("daily" | "pages" | "queries").
    """

    def __init__(
        self,
        clicks: int = 10,
        impressions: int = 100,
        ctr: float = 0.1,
        position: float = 5.0,
        pages: Optional[List[MetricRow]] = None,
        queries: Optional[List[MetricRow]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        fail_on: str = "daily",
        issues: Optional[List[TechnicalIssue]] = None,
        delay: float = 0.0,
    ):
        self.row = MetricRow(clicks=clicks, impressions=impressions, ctr=ctr, position=position)
        self.pages = pages if pages is not None else [
            MetricRow(key="https://www.example.com/", clicks=6, impressions=60, ctr=0.1, position=3.0),
            MetricRow(key="https://www.example.com/about", clicks=4, impressions=40, ctr=0.1, position=7.0),
        ]
        self.queries = queries if queries is not None else [
            MetricRow(key="example widgets", clicks=7, impressions=70, ctr=0.1, position=4.0),
        ]
        self.failures = failures or {}
        self.fail_on = fail_on
        self.issues = issues or []
        self.delay = delay
        self.calls: List[tuple] = []
        self.closed = False

    async def _step(self, stage: str, site_ref: str, day: date) -> None:
        self.calls.append((stage, site_ref, day))
        if self.delay:
            await asyncio.sleep(self.delay)
        if stage == self.fail_on and site_ref in self.failures:
            raise self.failures[site_ref]

    async def fetch_daily_totals(self, site_ref, day):
        await self._step("daily", site_ref, day)
        return [self.row]

    async def fetch_page_breakdown(self, site_ref, day):
        await self._step("pages", site_ref, day)
        return list(self.pages)

    async def fetch_query_breakdown(self, site_ref, day):
        await self._step("queries", site_ref, day)
        return list(self.queries)

    async def fetch_sitemap_issues(self, site_ref):
        return list(self.issues)

    async def close(self):
        self.closed = True
