"""SEOPULSE — Tenant Models (Sites, Access Grants, Principals)."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel
from sqlmodel import SQLModel, Field, UniqueConstraint


class Site(SQLModel, table=True):
    """A monitored website — the unit of data isolation.

    Sites are soft-disabled (is_active=False), never deleted. The domain is
    immutable once created.
    """

    __tablename__ = "sites"

    id: Optional[int] = Field(default=None, primary_key=True)
    domain: str = Field(index=True, unique=True, description="e.g. www.example.com")
    display_name: str = Field(default="")
    analytics_ref: str = Field(
        description="Search Console property: https://www.example.com/ or sc-domain:example.com"
    )
    owner_id: str = Field(index=True, description="Principal who owns this site")
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AccessGrant(SQLModel, table=True):
    """Grants a principal read access to a site beyond ownership."""

    __tablename__ = "access_grants"
    __table_args__ = (
        UniqueConstraint("principal_id", "site_id", name="uq_access_grant"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    principal_id: str = Field(index=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Role(str, Enum):
    """Principal roles. Admins and employees see every active site."""

    ADMIN = "admin"
    EMPLOYEE = "employee"
    CLIENT = "client"


ELEVATED_ROLES = {Role.ADMIN, Role.EMPLOYEE}


class Principal(BaseModel):
    """An authenticated actor, resolved upstream by the auth layer."""

    id: str
    role: Role = Role.CLIENT

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES
