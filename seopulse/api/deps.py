"""SEOPULSE — Shared API Dependencies."""

from typing import AsyncIterator, Callable, Optional

from fastapi import Depends, Header, HTTPException

from seopulse.connectors.base_source import AnalyticsSource
from seopulse.connectors.search_console.client import SearchConsoleClient
from seopulse.database import engine
from seopulse.delivery.webhook import ReportDelivery, default_delivery
from seopulse.models.tenant_models import Principal, Role


def get_principal(
    x_principal_id: Optional[str] = Header(None),
    x_principal_role: Optional[str] = Header(None),
) -> Principal:
    """Principal resolved by the upstream auth layer and forwarded as headers."""
    if not x_principal_id:
        raise HTTPException(status_code=401, detail="Missing X-Principal-Id header")
    try:
        role = Role((x_principal_role or Role.CLIENT.value).lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown role {x_principal_role!r}")
    return Principal(id=x_principal_id, role=role)


def require_elevated(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_elevated:
        raise HTTPException(status_code=403, detail="Admin or employee role required")
    return principal


def get_engine():
    """Engine for work that outlives the request (background reconciliation)."""
    return engine


async def get_analytics_source() -> AsyncIterator[AnalyticsSource]:
    source = SearchConsoleClient()
    try:
        yield source
    finally:
        await source.close()


def get_delivery() -> Optional[ReportDelivery]:
    return default_delivery()


def get_source_factory() -> Callable[[], AnalyticsSource]:
    """Builds sources for work that outlives the request."""
    return SearchConsoleClient
