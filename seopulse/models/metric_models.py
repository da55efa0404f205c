"""SEOPULSE — Search Metric Models.

One table per grain: site/day, site/day/page, site/day/query. Each has a
unique constraint on its compound key so collection is an upsert, never a
duplicate insert.
"""

from datetime import date as date_type, datetime, timezone
from typing import Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, Field, UniqueConstraint


class DailyMetric(SQLModel, table=True):
    """Site-wide totals for one day."""

    __tablename__ = "daily_metrics"
    __table_args__ = (UniqueConstraint("site_id", "date", name="uq_daily_metric"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    date: date_type = Field(index=True)
    clicks: int = Field(default=0, ge=0)
    impressions: int = Field(default=0, ge=0)
    ctr: float = Field(default=0.0, description="Fraction, 0.0-1.0")
    position: float = Field(default=0.0, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PageMetric(SQLModel, table=True):
    """Per-page metrics for one day."""

    __tablename__ = "page_metrics"
    __table_args__ = (
        UniqueConstraint("site_id", "date", "page", name="uq_page_metric"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    date: date_type = Field(index=True)
    page: str = Field(index=True)
    clicks: int = Field(default=0, ge=0)
    impressions: int = Field(default=0, ge=0)
    ctr: float = 0.0
    position: float = Field(default=0.0, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class QueryMetric(SQLModel, table=True):
    """Per-query metrics for one day."""

    __tablename__ = "query_metrics"
    __table_args__ = (
        UniqueConstraint("site_id", "date", "query", name="uq_query_metric"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    date: date_type = Field(index=True)
    query: str = Field(index=True)
    clicks: int = Field(default=0, ge=0)
    impressions: int = Field(default=0, ge=0)
    ctr: float = 0.0
    position: float = Field(default=0.0, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — Normalized upstream rows
# ─────────────────────────────────────────────


class MetricRow(BaseModel):
    """One validated row from the analytics source.

    `key` is the page URL or query string for breakdown rows, empty for
    daily totals.
    """

    key: str = ""
    clicks: int = 0
    impressions: int = 0
    ctr: float = 0.0
    position: float = 0.0
