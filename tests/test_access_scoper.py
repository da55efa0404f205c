"""
Access scoping and the tenant registry.
"""

import pytest

from conftest import FLOOR, fill_days, grant, make_site, principal
from seopulse.analyzer.access_scoper import (
    accessible_site_ids,
    scoped_daily_metrics,
    user_has_site_access,
)
from seopulse.core.errors import SiteRegistryError
from seopulse.models.tenant_models import Role
from seopulse.registry import sites as registry


class TestAccessibleSites:
    def test_admin_and_employee_see_all_active_sites(self, session):
        a = make_site(session, domain="a.example.com")
        b = make_site(session, domain="b.example.com")
        make_site(session, domain="off.example.com", is_active=False)

        for role in (Role.ADMIN, Role.EMPLOYEE):
            assert accessible_site_ids(session, principal(role, "staff")) == {a.id, b.id}

    def test_client_sees_owned_and_granted(self, session):
        owned = make_site(session, domain="owned.example.com", owner_id="client-1")
        shared = make_site(session, domain="shared.example.com", owner_id="someone-else")
        make_site(session, domain="private.example.com", owner_id="someone-else")
        grant(session, "client-1", shared)

        assert accessible_site_ids(session, principal()) == {owned.id, shared.id}

    def test_inactive_granted_site_is_hidden(self, session):
        site = make_site(session, owner_id="someone-else", is_active=False)
        grant(session, "client-1", site)

        assert accessible_site_ids(session, principal()) == set()
        assert not user_has_site_access(session, principal(), site.id)

    def test_client_without_sites(self, session):
        make_site(session, owner_id="someone-else")
        assert accessible_site_ids(session, principal()) == set()


class TestScopedMetrics:
    def test_grant_only_client_never_sees_other_sites(self, session):
        x = make_site(session, domain="x.example.com", owner_id="owner")
        y = make_site(session, domain="y.example.com", owner_id="owner")
        fill_days(session, x, FLOOR, 3)
        fill_days(session, y, FLOOR, 3)
        grant(session, "client-1", x)

        rows = scoped_daily_metrics(session, principal(), FLOOR.replace(day=1), FLOOR)

        assert len(rows) == 3
        assert {r.site_id for r in rows} == {x.id}

    def test_no_access_returns_nothing(self, session):
        site = make_site(session, owner_id="owner")
        fill_days(session, site, FLOOR, 2)
        assert scoped_daily_metrics(session, principal(), FLOOR.replace(day=1), FLOOR) == []


class TestRegistry:
    def test_create_site_normalizes_domain(self, session):
        site = registry.create_site(session, "https://WWW.Example.com/", "sc-domain:example.com", "owner")
        assert site.domain == "www.example.com"
        assert site.display_name == "www.example.com"
        assert site.is_active

    def test_duplicate_domain_rejected(self, session):
        registry.create_site(session, "www.example.com", "https://www.example.com/", "owner")
        with pytest.raises(SiteRegistryError):
            registry.create_site(session, "http://www.example.com", "https://www.example.com/", "other")

    def test_invalid_property_rejected(self, session):
        with pytest.raises(SiteRegistryError):
            registry.create_site(session, "www.example.com", "example.com", "owner")

    def test_deactivate_keeps_row(self, session):
        site = registry.create_site(session, "www.example.com", "https://www.example.com/", "owner")
        registry.deactivate_site(session, site.id)

        assert registry.get_site(session, site.id).is_active is False
        assert registry.list_active_sites(session) == []

    def test_unknown_site(self, session):
        with pytest.raises(SiteRegistryError):
            registry.get_site(session, 999)

    def test_grant_is_idempotent_and_revocable(self, session):
        site = make_site(session, owner_id="owner")
        first = registry.grant_access(session, "client-1", site.id)
        second = registry.grant_access(session, "client-1", site.id)

        assert first.id == second.id
        assert user_has_site_access(session, principal(), site.id)
        assert registry.revoke_access(session, "client-1", site.id) is True
        assert registry.revoke_access(session, "client-1", site.id) is False
        assert not user_has_site_access(session, principal(), site.id)
