from datetime import timedelta

import pytest
from apscheduler.triggers.cron import CronTrigger

import scheduler
from conftest import NOW, FakeMailer
from dispatcher import NotificationRunError


def _fields(trigger):
    return {f.name: str(f) for f in trigger.fields}


def test_create_scheduler_registers_cron_job():
    sched = scheduler.create_scheduler("30 6 * * 1-5")

    jobs = sched.get_jobs()
    assert [job.id for job in jobs] == [scheduler.JOB_ID]
    job = jobs[0]
    assert isinstance(job.trigger, CronTrigger)
    fields = _fields(job.trigger)
    assert fields["minute"] == "30"
    assert fields["hour"] == "6"
    assert fields["day_of_week"] == "1-5"
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.func is scheduler.scheduled_run


def test_start_scheduler_respects_disabled_flag():
    sched = scheduler.create_scheduler()
    scheduler.start_scheduler(sched)
    assert sched.running is False
    scheduler.stop_scheduler(sched)


def test_run_now_records_health(db, make_subscription):
    make_subscription(ends_in=timedelta(days=2))

    summary = scheduler.run_now(db, FakeMailer(), days_before=5, now=NOW)

    assert summary.counts() == (1, 0)
    assert scheduler.health_state["last_sent"] == 1
    assert scheduler.health_state["last_failed"] == 0
    assert scheduler.health_state["last_error"] is None


def test_run_now_skips_when_run_in_progress(db):
    assert scheduler._run_lock.acquire(blocking=False)
    try:
        assert scheduler.run_now(db, FakeMailer(), days_before=5, now=NOW) is None
    finally:
        scheduler._run_lock.release()


def test_run_now_releases_lock_after_fatal_error(db, monkeypatch):
    def broken(*args, **kwargs):
        raise NotificationRunError("failed to find expiring subscriptions")

    monkeypatch.setattr(scheduler, "dispatch_reminders", broken)

    with pytest.raises(NotificationRunError):
        scheduler.run_now(db, FakeMailer(), days_before=5, now=NOW)
    assert scheduler.health_state["last_error"] == "failed to find expiring subscriptions"
    assert scheduler._run_lock.acquire(blocking=False)
    scheduler._run_lock.release()


def test_scheduled_run_logs_fatal_errors(db, monkeypatch, caplog):
    def broken(*args, **kwargs):
        raise NotificationRunError("failed to find expiring subscriptions")

    monkeypatch.setattr(scheduler, "dispatch_reminders", broken)
    monkeypatch.setattr(scheduler, "SessionLocal", lambda: db)
    monkeypatch.setattr(scheduler, "get_mailer", FakeMailer)

    scheduler.scheduled_run()

    assert "Error running notification check" in caplog.text


def test_scheduled_run_uses_configured_lead_time(db, monkeypatch):
    calls = []

    def fake_dispatch(session, mailer, days_before, now=None):
        calls.append(days_before)
        return scheduler.RunSummary(started_at=NOW, days_before=days_before)

    monkeypatch.setattr(scheduler, "dispatch_reminders", fake_dispatch)
    monkeypatch.setattr(scheduler, "SessionLocal", lambda: db)
    monkeypatch.setattr(scheduler, "get_mailer", FakeMailer)
    monkeypatch.setattr(scheduler.config, "NOTIFICATION_DAYS_BEFORE", 7)

    scheduler.scheduled_run()

    assert calls == [7]
