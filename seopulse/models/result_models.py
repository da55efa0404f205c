"""SEOPULSE — Tagged Results at Component Boundaries."""

from datetime import date as date_type
from typing import Optional, List
from pydantic import BaseModel

from seopulse.core.errors import ErrorKind


class CollectionResult(BaseModel):
    """Outcome of collecting one (site, date)."""

    site_id: int
    date: date_type
    ok: bool
    clicks_written: int = 0
    pages_written: int = 0
    queries_written: int = 0
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""

    @classmethod
    def failure(
        cls, site_id: int, day: date_type, kind: ErrorKind, message: str
    ) -> "CollectionResult":
        return cls(
            site_id=site_id, date=day, ok=False, error_kind=kind, error_message=message
        )


class SiteFailure(BaseModel):
    """One failed (site, date) pair."""

    site_id: int
    date: date_type
    error_kind: ErrorKind
    message: str = ""


class ReconciliationResult(BaseModel):
    """Per-date outcome of a reconciliation pass."""

    dates_found: List[date_type] = []
    synced_dates: List[date_type] = []
    failed_dates: List[date_type] = []
    failures: List[SiteFailure] = []


class ReconciliationAck(BaseModel):
    """Immediate response to an on-demand reconciliation trigger."""

    job_id: Optional[int] = None
    dates_queued: int = 0
    total_missing: int = 0
    dates_in_range: List[date_type] = []
    message: str = ""
