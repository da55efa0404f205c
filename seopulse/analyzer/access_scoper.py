"""SEOPULSE — Access Scoper.

Resolves which sites a principal may read. Every dashboard query takes its
site IDs from here; raw metric reads for the HTTP layer go through
scoped_daily_metrics() so a principal never sees rows of a site outside its
set.
"""

from datetime import date
from typing import List, Set

from sqlmodel import Session, select

from seopulse.models.metric_models import DailyMetric
from seopulse.models.tenant_models import AccessGrant, Principal, Site
from seopulse.store.metrics_store import MetricsStore
from seopulse.core.logging import get_logger

logger = get_logger("analyzer.access")


def accessible_site_ids(session: Session, principal: Principal) -> Set[int]:
    """Active site IDs readable by the principal.

    Admins and employees: every active site.
    Clients: owned sites plus sites granted through AccessGrant.
    """
    active = select(Site.id).where(Site.is_active == True)  # noqa: E712

    if principal.is_elevated:
        return set(session.exec(active).all())

    owned = set(session.exec(active.where(Site.owner_id == principal.id)).all())
    granted = set(
        session.exec(
            select(Site.id)
            .join(AccessGrant, AccessGrant.site_id == Site.id)
            .where(
                AccessGrant.principal_id == principal.id,
                Site.is_active == True,  # noqa: E712
            )
        ).all()
    )
    return owned | granted


def user_has_site_access(session: Session, principal: Principal, site_id: int) -> bool:
    return site_id in accessible_site_ids(session, principal)


def scoped_daily_metrics(
    session: Session, principal: Principal, start: date, end: date
) -> List[DailyMetric]:
    """Daily rows in [start, end] for the principal's sites only."""
    site_ids = accessible_site_ids(session, principal)
    if not site_ids:
        logger.info(f"Principal {principal.id} has no accessible sites")
        return []
    return MetricsStore(session).daily_rows(site_ids, start, end)
