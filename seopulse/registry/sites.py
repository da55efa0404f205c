"""SEOPULSE — Tenant Registry.

Sites are created once and soft-disabled afterwards; the domain never
changes. Access grants extend a client's read scope beyond owned sites.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from seopulse.connectors.search_console.client import is_valid_site_ref
from seopulse.core.errors import SiteRegistryError
from seopulse.models.tenant_models import AccessGrant, Site
from seopulse.core.logging import get_logger

logger = get_logger("registry")


def _normalize_domain(domain: str) -> str:
    domain = domain.strip().lower()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    return domain.rstrip("/")


def create_site(
    session: Session,
    domain: str,
    analytics_ref: str,
    owner_id: str,
    display_name: str = "",
) -> Site:
    """Register a site. Raises SiteRegistryError on duplicate domain or bad property."""
    domain = _normalize_domain(domain)
    if not domain:
        raise SiteRegistryError("Domain is required")
    if not is_valid_site_ref(analytics_ref):
        raise SiteRegistryError(
            f"Invalid Search Console property {analytics_ref!r}: expected a URL "
            f"(https://www.example.com/) or sc-domain:example.com"
        )
    if session.exec(select(Site).where(Site.domain == domain)).first():
        raise SiteRegistryError(f"Site {domain} already exists")

    site = Site(
        domain=domain,
        display_name=display_name or domain,
        analytics_ref=analytics_ref,
        owner_id=owner_id,
    )
    session.add(site)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise SiteRegistryError(f"Site {domain} already exists") from e
    session.refresh(site)
    logger.info(f"Registered site {domain}", extra={"site_id": site.id})
    return site


def get_site(session: Session, site_id: int) -> Site:
    site = session.get(Site, site_id)
    if site is None:
        raise SiteRegistryError(f"Site {site_id} not found")
    return site


def list_active_sites(session: Session) -> List[Site]:
    return list(
        session.exec(
            select(Site).where(Site.is_active == True).order_by(Site.id)  # noqa: E712
        ).all()
    )


def deactivate_site(session: Session, site_id: int) -> Site:
    """Soft-disable a site. Its history is kept."""
    site = get_site(session, site_id)
    site.is_active = False
    site.updated_at = datetime.now(timezone.utc)
    session.add(site)
    session.commit()
    session.refresh(site)
    logger.info(f"Deactivated site {site.domain}", extra={"site_id": site.id})
    return site


def grant_access(session: Session, principal_id: str, site_id: int) -> AccessGrant:
    """Grant read access; granting twice returns the existing grant."""
    get_site(session, site_id)
    existing = _find_grant(session, principal_id, site_id)
    if existing:
        return existing
    grant = AccessGrant(principal_id=principal_id, site_id=site_id)
    session.add(grant)
    session.commit()
    session.refresh(grant)
    return grant


def revoke_access(session: Session, principal_id: str, site_id: int) -> bool:
    grant = _find_grant(session, principal_id, site_id)
    if grant is None:
        return False
    session.delete(grant)
    session.commit()
    return True


def _find_grant(session: Session, principal_id: str, site_id: int) -> Optional[AccessGrant]:
    return session.exec(
        select(AccessGrant).where(
            AccessGrant.principal_id == principal_id,
            AccessGrant.site_id == site_id,
        )
    ).first()
