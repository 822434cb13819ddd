"""Reminder eligibility rules and the store pre-filter window.

Both functions here are pure: they take the current time as an argument so a
whole dispatch run is judged against a single timestamp.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from config import app_tz
from models import as_utc

REASON_DUE = "due"
REASON_DISABLED = "notifications_disabled"
REASON_EXPIRED = "expired"
REASON_OUTSIDE_WINDOW = "outside_window"
REASON_ALREADY_NOTIFIED = "already_notified_today"

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    reason: str
    days_left: int


@dataclass(frozen=True)
class ExpiryWindow:
    start: datetime
    end: datetime


def expiring_window(days_before: int, now: datetime) -> ExpiryWindow:
    """Bounds for the coarse store query: end_date in [now, now + days_before]."""
    now = as_utc(now)
    return ExpiryWindow(start=now, end=now + timedelta(days=days_before))


def days_until_expiration(sub, now: datetime) -> int:
    """Whole days left before end_date, floored (negative once expired)."""
    return (as_utc(sub.end_date) - as_utc(now)) // ONE_DAY


def calendar_date(value: datetime, tz: ZoneInfo = app_tz) -> date:
    return as_utc(value).astimezone(tz).date()


def evaluate(sub, days_before: int, now: datetime, tz: ZoneInfo | None = None) -> Eligibility:
    tz = tz or app_tz
    now = as_utc(now)
    days_left = days_until_expiration(sub, now)

    if not sub.notification_enabled:
        return Eligibility(False, REASON_DISABLED, days_left)

    if now >= as_utc(sub.end_date):
        return Eligibility(False, REASON_EXPIRED, days_left)

    if days_left < 0 or days_left > days_before:
        return Eligibility(False, REASON_OUTSIDE_WINDOW, days_left)

    # one reminder per calendar day
    last_sent = sub.last_notification_sent
    if last_sent is not None and calendar_date(last_sent, tz) == calendar_date(now, tz):
        return Eligibility(False, REASON_ALREADY_NOTIFIED, days_left)

    return Eligibility(True, REASON_DUE, days_left)


def should_notify(sub, days_before: int, now: datetime, tz: ZoneInfo | None = None) -> bool:
    return evaluate(sub, days_before, now, tz).eligible
