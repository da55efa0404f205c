"""
Report pipeline and webhook delivery.
"""

import json
from datetime import date, timedelta

import httpx
import pytest
from sqlmodel import select

from conftest import FLOOR, FakeAnalyticsSource, fill_days, make_site, run
from seopulse.analyzer.pipeline import (
    generate_report,
    generate_reports_for_sites,
    payload_from_report,
    resolve_dates,
)
from seopulse.analyzer.synthesizer import InsightSynthesizer
from seopulse.core.errors import DeliveryError
from seopulse.delivery.webhook import ReportDelivery, WebhookDelivery
from seopulse.models.analysis_models import TechnicalIssue
from seopulse.models.report_models import Report, Task, TaskStatus

START = FLOOR - timedelta(days=6)


class RecordingDelivery(ReportDelivery):
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, payload):
        if self.fail:
            raise DeliveryError("renderer down")
        self.sent.append(payload)


def _generate(session, site, **kwargs):
    kwargs.setdefault("synthesizer", InsightSynthesizer(provider=None))
    return run(generate_report(
        session, site, granularity="custom", start_date=START, end_date=FLOOR, **kwargs
    ))


class TestResolveDates:
    def test_explicit_dates_win(self):
        assert resolve_dates("week", start_date=START, end_date=FLOOR) == (START, FLOOR)

    def test_custom_needs_dates(self):
        with pytest.raises(ValueError):
            resolve_dates("custom", reference=FLOOR)

    def test_week_from_reference(self):
        assert resolve_dates("week", reference=date(2026, 3, 18)) == (date(2026, 3, 9), date(2026, 3, 15))


class TestGenerateReport:
    def test_stores_report_with_tasks_and_issues(self, session):
        site = make_site(session)
        fill_days(session, site, FLOOR, 14)
        source = FakeAnalyticsSource(issues=[
            TechnicalIssue(source="/sitemap.xml", issue="Sitemap has 10 URLs but none are indexed", severity="error"),
        ])

        payload = _generate(session, site, source=source)

        report = session.exec(select(Report)).one()
        assert payload.report_id == report.id
        assert report.insights and report.recommendations and report.executive_summary
        tasks = json.loads(report.tasks_json)
        assert len(tasks) == 5
        assert tasks[0]["origin"] == "technical"
        assert report.delivered_at is None

    def test_undelivered_report_is_rebuilt_in_place(self, session):
        site = make_site(session)
        fill_days(session, site, FLOOR, 7, clicks=10)
        first = _generate(session, site)

        fill_days(session, site, FLOOR - timedelta(days=7), 7, clicks=5)
        second = _generate(session, site)

        assert second.report_id == first.report_id
        assert len(session.exec(select(Report)).all()) == 1
        assert second.comparison.clicks_change == 100.0

    def test_delivery_marks_report_delivered(self, session):
        site = make_site(session)
        fill_days(session, site, FLOOR, 7)
        delivery = RecordingDelivery()

        payload = _generate(session, site, delivery=delivery)

        assert [p.report_id for p in delivery.sent] == [payload.report_id]
        session.expire_all()
        assert session.get(Report, payload.report_id).delivered_at is not None

    def test_delivered_report_is_never_regenerated_or_resent(self, session):
        site = make_site(session)
        fill_days(session, site, FLOOR, 7, clicks=10)
        delivery = RecordingDelivery()
        first = _generate(session, site, delivery=delivery)

        fill_days(session, site, FLOOR - timedelta(days=7), 7, clicks=5)
        again = _generate(session, site, delivery=delivery)

        assert len(delivery.sent) == 1
        assert again.report_id == first.report_id
        assert again.comparison.current.total_clicks == first.comparison.current.total_clicks
        assert again.synthesis.insights == first.synthesis.insights

    def test_failed_delivery_leaves_report_undelivered(self, session):
        site = make_site(session)
        fill_days(session, site, FLOOR, 7)

        payload = _generate(session, site, delivery=RecordingDelivery(fail=True))

        assert session.get(Report, payload.report_id).delivered_at is None

    def test_failing_site_does_not_stop_others(self, session, monkeypatch):
        good = make_site(session, domain="good.example.com")
        bad = make_site(session, domain="bad.example.com")
        fill_days(session, good, FLOOR, 7)

        original = InsightSynthesizer.synthesize

        async def flaky(self, comparison, *args, **kwargs):
            if kwargs.get("domain") == bad.domain:
                raise RuntimeError("boom")
            return await original(self, comparison, *args, **kwargs)

        monkeypatch.setattr(InsightSynthesizer, "synthesize", flaky)

        payloads = run(generate_reports_for_sites(
            session, [good, bad], reference=date(2026, 3, 18), synthesizer=InsightSynthesizer(provider=None)
        ))

        assert [p.domain for p in payloads] == [good.domain]


def test_payload_round_trips_from_stored_report(session):
    site = make_site(session)
    fill_days(session, site, FLOOR, 14)
    payload = _generate(session, site)

    rebuilt = payload_from_report(session.get(Report, payload.report_id), site)

    assert rebuilt.synthesis.tasks == payload.synthesis.tasks
    assert rebuilt.wide_comparison == payload.wide_comparison
    assert rebuilt.comparison == payload.comparison
    assert rebuilt.comparison.previous.days_with_data == 7
    assert len(rebuilt.comparison.trend_signals) == 4


def test_delivered_report_keeps_previous_period_figures(session):
    site = make_site(session)
    fill_days(session, site, FLOOR, 7, clicks=20)
    fill_days(session, site, START - timedelta(days=1), 7, clicks=10)
    first = _generate(session, site, delivery=RecordingDelivery())

    again = _generate(session, site)

    assert again.comparison.previous.total_clicks == 70
    assert again.comparison.clicks_change == 100.0
    assert again.comparison.trend_signals == first.comparison.trend_signals


class TestStoredTasks:
    def test_tasks_written_as_rows(self, session):
        site = make_site(session)
        fill_days(session, site, FLOOR, 7)

        payload = _generate(session, site)

        tasks = session.exec(select(Task).order_by(Task.id)).all()
        assert [t.title for t in tasks] == [t.title for t in payload.synthesis.tasks]
        assert all(t.status == TaskStatus.PENDING.value for t in tasks)
        assert {(t.site_id, t.period_start, t.period_end) for t in tasks} == {(site.id, START, FLOOR)}
        assert tasks[0].due_date == FLOOR

    def test_existing_period_tasks_are_kept(self, session):
        site = make_site(session)
        fill_days(session, site, FLOOR, 7, clicks=10)
        _generate(session, site)
        started = session.exec(select(Task).order_by(Task.id)).first()
        started.status = TaskStatus.IN_PROGRESS.value
        session.add(started)
        session.commit()

        fill_days(session, site, FLOOR - timedelta(days=7), 7, clicks=50)
        _generate(session, site)

        tasks = session.exec(select(Task)).all()
        assert len(tasks) == 5
        assert session.get(Task, started.id).status == TaskStatus.IN_PROGRESS.value

    def test_other_periods_get_their_own_tasks(self, session):
        site = make_site(session)
        fill_days(session, site, FLOOR, 14)
        _generate(session, site)

        run(generate_report(
            session, site, granularity="custom",
            start_date=START - timedelta(days=7), end_date=START - timedelta(days=1),
            synthesizer=InsightSynthesizer(provider=None),
        ))

        assert len(session.exec(select(Task)).all()) == 10


class TestWebhookDelivery:
    def _payload(self, session):
        site = make_site(session)
        return _generate(session, site)

    def test_posts_json(self, session):
        received = {}

        def handler(request):
            received["body"] = json.loads(request.content)
            return httpx.Response(204)

        payload = self._payload(session)
        delivery = WebhookDelivery(url="https://render.example.com/hook", transport=httpx.MockTransport(handler))
        run(delivery.send(payload))

        assert received["body"]["report_id"] == payload.report_id

    def test_error_status_raises(self, session):
        delivery = WebhookDelivery(
            url="https://render.example.com/hook",
            transport=httpx.MockTransport(lambda request: httpx.Response(502)),
        )
        with pytest.raises(DeliveryError):
            run(delivery.send(self._payload(session)))

    def test_missing_url_raises(self, session):
        with pytest.raises(DeliveryError):
            run(WebhookDelivery(url="").send(self._payload(session)))
