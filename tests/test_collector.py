"""
Metrics collector: one (site, date) per call.

Covers idempotent upserts, the reporting-lag floor, invalid properties,
fetch error isolation, timeouts, and all-or-nothing writes.
"""

from datetime import timedelta

from sqlmodel import select

from conftest import FLOOR, TODAY, FakeAnalyticsSource, make_site, run
from seopulse.collector.collector import MetricsCollector, latest_collectable_date
from seopulse.core.errors import AuthorizationError, ErrorKind, NotFoundError
from seopulse.models.metric_models import DailyMetric, MetricRow, PageMetric, QueryMetric
from seopulse.models.report_models import ApiUsage
from seopulse.store.metrics_store import MetricsStore


def _collector(session, source, **kwargs):
    return MetricsCollector(source, MetricsStore(session), today=TODAY, **kwargs)


class TestCollect:
    def test_writes_all_three_grains(self, session):
        site = make_site(session)
        result = run(_collector(session, FakeAnalyticsSource()).collect(site, FLOOR))

        assert result.ok
        assert (result.clicks_written, result.pages_written, result.queries_written) == (1, 2, 1)

        daily = session.exec(select(DailyMetric)).all()
        assert len(daily) == 1
        assert daily[0].date == FLOOR and daily[0].clicks == 10
        assert len(session.exec(select(PageMetric)).all()) == 2
        assert len(session.exec(select(QueryMetric)).all()) == 1

    def test_recollecting_overwrites_instead_of_duplicating(self, session):
        site = make_site(session)
        run(_collector(session, FakeAnalyticsSource(clicks=10)).collect(site, FLOOR))
        run(_collector(session, FakeAnalyticsSource(clicks=25)).collect(site, FLOOR))

        session.expire_all()
        daily = session.exec(select(DailyMetric)).all()
        assert len(daily) == 1
        assert daily[0].clicks == 25
        assert len(session.exec(select(PageMetric)).all()) == 2

    def test_duplicate_keys_in_one_batch_keep_last(self, session):
        site = make_site(session)
        pages = [
            MetricRow(key="/a", clicks=1, impressions=10),
            MetricRow(key="/a", clicks=3, impressions=30),
        ]
        run(_collector(session, FakeAnalyticsSource(pages=pages)).collect(site, FLOOR))

        rows = session.exec(select(PageMetric)).all()
        assert len(rows) == 1
        assert rows[0].clicks == 3

    def test_date_newer_than_floor_is_rejected(self, session):
        site = make_site(session)
        source = FakeAnalyticsSource()
        result = run(_collector(session, source).collect(site, FLOOR + timedelta(days=1)))

        assert not result.ok
        assert result.error_kind == ErrorKind.VALIDATION
        assert source.calls == []

    def test_invalid_property_fails_without_upstream_call(self, session):
        site = make_site(session, analytics_ref="example.com")
        source = FakeAnalyticsSource()
        result = run(_collector(session, source).collect(site, FLOOR))

        assert not result.ok
        assert result.error_kind == ErrorKind.VALIDATION
        assert source.calls == []


class TestFailures:
    def test_fetch_error_becomes_tagged_failure(self, session):
        site = make_site(session)
        source = FakeAnalyticsSource(failures={site.analytics_ref: AuthorizationError("denied", 403)})
        result = run(_collector(session, source).collect(site, FLOOR))

        assert not result.ok
        assert result.error_kind == ErrorKind.AUTHORIZATION
        assert "denied" in result.error_message

    def test_late_failure_writes_nothing(self, session):
        """Queries fail after daily and pages succeeded: no table is touched."""
        site = make_site(session)
        source = FakeAnalyticsSource(
            failures={site.analytics_ref: NotFoundError("gone", 404)}, fail_on="queries"
        )
        result = run(_collector(session, source).collect(site, FLOOR))

        assert result.error_kind == ErrorKind.NOT_FOUND
        assert session.exec(select(DailyMetric)).all() == []
        assert session.exec(select(PageMetric)).all() == []

    def test_timeout_is_transient(self, session):
        site = make_site(session)
        source = FakeAnalyticsSource(delay=0.5)
        result = run(_collector(session, source, timeout=0.01).collect(site, FLOOR))

        assert not result.ok
        assert result.error_kind == ErrorKind.TRANSIENT
        assert session.exec(select(DailyMetric)).all() == []

    def test_api_usage_is_recorded(self, session):
        ok_site = make_site(session, domain="ok.example.com")
        bad_site = make_site(session, domain="bad.example.com")
        source = FakeAnalyticsSource(failures={bad_site.analytics_ref: AuthorizationError("no")})
        collector = _collector(session, source)

        run(collector.collect(ok_site, FLOOR))
        run(collector.collect(bad_site, FLOOR))

        usage = session.exec(select(ApiUsage)).all()
        assert [u.success for u in usage] == [True, False]
        assert all(u.api_type == "GOOGLE" for u in usage)


def test_latest_collectable_date_applies_lag():
    assert latest_collectable_date(TODAY) == FLOOR
