"""
Scheduled job runner: persisted enable flag, overlap guard and run recording.
"""

from datetime import timedelta

import pytest
from sqlmodel import select

from conftest import FLOOR, TODAY, FakeAnalyticsSource, fill_days, make_site, run
from seopulse.core.errors import JobAlreadyRunningError
from seopulse.models.metric_models import DailyMetric
from seopulse.models.report_models import JobType
from seopulse.scheduler import jobs
from seopulse.store.metrics_store import MetricsStore

COLLECTION = JobType.COLLECTION.value


def _recorder():
    calls = []

    async def fn(session):
        calls.append(session)

    return fn, calls


class TestRunScheduledJob:
    def test_seeds_config_and_records_success(self, session):
        fn, calls = _recorder()

        status = run(jobs.run_scheduled_job(session, COLLECTION, fn))

        assert status == "success"
        assert len(calls) == 1
        config = MetricsStore(session).get_schedule(COLLECTION)
        assert config.cron_expression == jobs.settings.collection_cron
        assert config.last_status == "success"
        assert config.is_running is False
        assert config.last_run is not None

    def test_disabled_job_is_a_noop(self, session):
        MetricsStore(session).update_schedule(COLLECTION, "0 3 * * *", is_enabled=False)
        fn, calls = _recorder()

        assert run(jobs.run_scheduled_job(session, COLLECTION, fn)) is None
        assert calls == []
        assert MetricsStore(session).get_schedule(COLLECTION).last_run is None

    def test_overlapping_trigger_is_skipped(self, session):
        store = MetricsStore(session)
        store.ensure_schedule(COLLECTION, "0 3 * * *")
        assert store.try_acquire_run(COLLECTION) is True
        fn, calls = _recorder()

        assert run(jobs.run_scheduled_job(session, COLLECTION, fn)) is None
        assert calls == []
        with pytest.raises(JobAlreadyRunningError):
            store.acquire_run(COLLECTION)

    def test_failure_is_recorded_and_job_stays_enabled(self, session):
        async def boom(session):
            raise RuntimeError("upstream exploded")

        status = run(jobs.run_scheduled_job(session, COLLECTION, boom))

        assert status == "failed"
        session.expire_all()
        config = MetricsStore(session).get_schedule(COLLECTION)
        assert config.last_status == "failed"
        assert "upstream exploded" in config.last_error
        assert config.is_enabled is True
        assert config.is_running is False

        fn, calls = _recorder()
        assert run(jobs.run_scheduled_job(session, COLLECTION, fn)) == "success"


class TestCollectRecent:
    def test_collects_floor_and_backfills(self, session, monkeypatch):
        source = FakeAnalyticsSource()
        monkeypatch.setattr(jobs, "SearchConsoleClient", lambda: source)
        site = make_site(session)
        already = FLOOR - timedelta(days=1)
        fill_days(session, site, already, 1)

        run(jobs.collect_recent(session, today=TODAY))

        dates = sorted(r.date for r in session.exec(select(DailyMetric)).all())
        assert len(dates) == jobs.COLLECTION_CATCHUP_DAYS
        assert dates[-1] == FLOOR
        fetched = {day for stage, _, day in source.calls if stage == "daily"}
        assert already not in fetched
        assert source.closed

    def test_no_sites_makes_no_calls(self, session, monkeypatch):
        source = FakeAnalyticsSource()
        monkeypatch.setattr(jobs, "SearchConsoleClient", lambda: source)

        run(jobs.collect_recent(session, today=TODAY))

        assert source.calls == []
