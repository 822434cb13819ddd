from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import NOW
from eligibility import (
    REASON_ALREADY_NOTIFIED,
    REASON_DISABLED,
    REASON_DUE,
    REASON_EXPIRED,
    REASON_OUTSIDE_WINDOW,
    days_until_expiration,
    evaluate,
    expiring_window,
    should_notify,
)
from models import Subscription


def _sub(ends_in=timedelta(days=3), enabled=True, last_sent=None, duration_days=30):
    return Subscription(
        name="Netflix",
        email="owner@example.com",
        start_date=NOW + ends_in - timedelta(days=duration_days),
        duration_days=duration_days,
        notification_enabled=enabled,
        last_notification_sent=last_sent,
    )


def test_enabled_never_notified_inside_window_is_eligible():
    verdict = evaluate(_sub(ends_in=timedelta(days=3)), days_before=5, now=NOW)
    assert verdict.eligible is True
    assert verdict.reason == REASON_DUE
    assert verdict.days_left == 3


@pytest.mark.parametrize("ends_in_days", [-2, 0, 1, 3, 5, 40])
def test_disabled_is_never_eligible(ends_in_days):
    sub = _sub(ends_in=timedelta(days=ends_in_days), enabled=False)
    verdict = evaluate(sub, days_before=5, now=NOW)
    assert verdict.eligible is False
    assert verdict.reason == REASON_DISABLED


@pytest.mark.parametrize("ends_in", [timedelta(0), timedelta(seconds=-1), timedelta(days=-3)])
def test_expired_or_expiring_now_is_not_eligible(ends_in):
    verdict = evaluate(_sub(ends_in=ends_in), days_before=5, now=NOW)
    assert verdict.eligible is False
    assert verdict.reason == REASON_EXPIRED


def test_beyond_lead_time_is_not_eligible():
    verdict = evaluate(_sub(ends_in=timedelta(days=6)), days_before=5, now=NOW)
    assert verdict.eligible is False
    assert verdict.reason == REASON_OUTSIDE_WINDOW


def test_days_left_is_floored():
    sub = _sub(ends_in=timedelta(days=2, hours=23))
    assert days_until_expiration(sub, NOW) == 2

    last_hours = _sub(ends_in=timedelta(hours=5))
    verdict = evaluate(last_hours, days_before=5, now=NOW)
    assert verdict.eligible is True
    assert verdict.days_left == 0


def test_already_notified_same_calendar_day_is_not_eligible():
    early_today = NOW.replace(hour=0, minute=5)
    verdict = evaluate(_sub(last_sent=early_today), days_before=5, now=NOW)
    assert verdict.eligible is False
    assert verdict.reason == REASON_ALREADY_NOTIFIED


def test_notified_yesterday_is_eligible_again():
    yesterday_late = (NOW - timedelta(days=1)).replace(hour=23, minute=59)
    assert should_notify(_sub(last_sent=yesterday_late), days_before=5, now=NOW) is True


def test_same_day_dedup_then_next_day_eligible():
    sent_at = NOW
    sub = _sub(ends_in=timedelta(days=3), last_sent=sent_at)

    assert should_notify(sub, 5, sent_at + timedelta(hours=11)) is False
    assert should_notify(sub, 5, sent_at.replace(hour=0)) is False
    assert should_notify(sub, 5, sent_at + timedelta(days=1)) is True


def test_calendar_day_uses_configured_time_zone():
    # 2026-03-09 18:00 UTC is 2026-03-10 01:00 in Jakarta (UTC+7)
    last_sent = datetime(2026, 3, 9, 18, 0, tzinfo=timezone.utc)
    sub = _sub(last_sent=last_sent)

    assert should_notify(sub, 5, NOW, tz=ZoneInfo("UTC")) is True
    assert should_notify(sub, 5, NOW, tz=ZoneInfo("Asia/Jakarta")) is False


def test_naive_timestamps_are_read_as_utc():
    sub = _sub(last_sent=NOW.replace(tzinfo=None) - timedelta(hours=1))
    verdict = evaluate(sub, 5, NOW.replace(tzinfo=None))
    assert verdict.reason == REASON_ALREADY_NOTIFIED


def test_expiring_window_bounds():
    window = expiring_window(5, NOW)
    assert window.start == NOW
    assert window.end == NOW + timedelta(days=5)
