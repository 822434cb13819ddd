"""Expiration reminder run.

One run fetches the subscriptions whose end_date falls inside the reminder
window, re-checks each one against a single captured "now", emails the owner
of every eligible subscription and records the outcome. Only the initial
fetch can fail the run; anything that goes wrong for one subscription is
logged and the loop moves on.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import email_templates
from eligibility import evaluate
from models import STATUS_FAILED, STATUS_SUCCESS, as_utc, utc_now

logger = logging.getLogger(__name__)


class NotificationRunError(Exception):
    """The candidate fetch failed, nothing was sent."""


@dataclass(frozen=True)
class ReminderResult:
    subscription_id: int
    status: str
    days_left: int
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS


@dataclass
class RunSummary:
    started_at: datetime
    days_before: int
    candidate_count: int = 0
    results: list[ReminderResult] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def skipped_count(self) -> int:
        return self.candidate_count - len(self.results)

    def counts(self) -> tuple[int, int]:
        return self.sent_count, self.failed_count


def dispatch_reminders(db: Session, mailer, days_before: int, now: datetime | None = None) -> RunSummary:
    if not isinstance(days_before, int) or days_before <= 0:
        raise ValueError(f"days_before must be a positive integer, got {days_before!r}")

    now = as_utc(now) if now is not None else utc_now()
    logger.info(f"[DISPATCH] Checking subscriptions expiring within {days_before} day(s)")

    try:
        candidates = crud.find_expiring(db, now, days_before)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[DISPATCH] Candidate fetch failed: {e}")
        raise NotificationRunError("failed to find expiring subscriptions") from e

    # detach: per-item commits must not expire/reload the batch copies
    for sub in candidates:
        db.expunge(sub)

    summary = RunSummary(started_at=now, days_before=days_before, candidate_count=len(candidates))
    logger.info(f"[DISPATCH] Found {len(candidates)} candidate(s)")

    for sub in candidates:
        verdict = evaluate(sub, days_before, now)
        if not verdict.eligible:
            logger.debug(f"[DISPATCH] Skip subscription {sub.id}: {verdict.reason}")
            continue
        summary.results.append(_send_reminder(db, mailer, sub, verdict.days_left, now))

    logger.info(
        f"[DISPATCH] Run complete: {summary.sent_count} sent, {summary.failed_count} failed, "
        f"{summary.skipped_count} skipped"
    )
    return summary


def _send_reminder(db: Session, mailer, sub, days_left: int, now: datetime) -> ReminderResult:
    sub_id, name, email = sub.id, sub.name, sub.email
    subject, body = email_templates.expiration_warning(name, days_left, as_utc(sub.end_date))

    try:
        mailer.deliver(email, subject, body)
    except Exception as e:
        error = str(e) or e.__class__.__name__
        logger.warning(f"[DISPATCH] Reminder for subscription {sub_id} to {email} failed: {error}")
        _append_log(db, sub_id, now, STATUS_FAILED, error)
        return ReminderResult(sub_id, STATUS_FAILED, days_left, error)

    # already sent: bookkeeping errors are logged, not escalated
    try:
        crud.update_last_notified(db, sub_id, now)
    except Exception as e:
        db.rollback()
        logger.error(f"[DISPATCH] Could not stamp last_notification_sent for subscription {sub_id}: {e}")
    _append_log(db, sub_id, now, STATUS_SUCCESS)

    logger.info(f"[DISPATCH] Reminder sent for subscription {sub_id} ({name}) to {email}")
    return ReminderResult(sub_id, STATUS_SUCCESS, days_left)


def _append_log(db: Session, sub_id: int, now: datetime, status: str, error: str | None = None) -> None:
    try:
        crud.add_notification_log(db, sub_id, now, status, error)
    except Exception as e:
        db.rollback()
        logger.error(f"[DISPATCH] Could not write {status} log for subscription {sub_id}: {e}")
