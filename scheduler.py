"""Periodic and on-demand reminder runs.

The cron job and the manual trigger share one process-wide lock so two runs
never read the same "not notified today" state concurrently.
"""
import logging
import threading
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

import config
from database import SessionLocal
from dispatcher import NotificationRunError, RunSummary, dispatch_reminders
from mailer import get_mailer

logger = logging.getLogger(__name__)

JOB_ID = "notification_check"

_run_lock = threading.Lock()

# ========= Health state =========
health_state = {
    "boot_time": datetime.now(config.app_tz),
    "last_run": None,
    "last_sent": None,
    "last_failed": None,
    "last_error": None,
}


def _touch_health(summary: RunSummary | None = None, error: str | None = None):
    health_state["last_run"] = datetime.now(config.app_tz)
    health_state["last_error"] = error
    if summary is not None:
        health_state["last_sent"] = summary.sent_count
        health_state["last_failed"] = summary.failed_count


def run_now(db: Session, mailer, days_before: int | None = None, now: datetime | None = None) -> RunSummary | None:
    """Run one reminder batch unless another run is in flight (then return None)."""
    if not _run_lock.acquire(blocking=False):
        logger.warning("[SCHEDULER] Notification run already in progress, skipped")
        return None
    try:
        days_before = days_before or config.NOTIFICATION_DAYS_BEFORE
        try:
            summary = dispatch_reminders(db, mailer, days_before, now=now)
        except NotificationRunError as e:
            _touch_health(error=str(e))
            raise
        _touch_health(summary)
        return summary
    finally:
        _run_lock.release()


def scheduled_run():
    logger.info("[SCHEDULER] Running scheduled notification check...")
    db = SessionLocal()
    try:
        summary = run_now(db, get_mailer())
        if summary is not None:
            sent, failed = summary.counts()
            logger.info(f"[SCHEDULER] Notification check done: {sent} sent, {failed} failed")
    except NotificationRunError as e:
        logger.error(f"[SCHEDULER] Error running notification check: {e}")
    finally:
        db.close()


def create_scheduler(cron_expression: str | None = None) -> BackgroundScheduler:
    cron_expression = cron_expression or config.SCHEDULER_CRON
    scheduler = BackgroundScheduler(timezone=config.app_tz)
    scheduler.add_job(
        scheduled_run,
        CronTrigger.from_crontab(cron_expression, timezone=config.app_tz),
        id=JOB_ID,
        name=f"Expiration reminders ({cron_expression})",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"[SCHEDULER] Notification check scheduled with cron '{cron_expression}'")
    return scheduler


def start_scheduler(scheduler: BackgroundScheduler) -> None:
    if not config.SCHEDULER_ENABLED:
        logger.info("[SCHEDULER] Disabled (SCHEDULER_ENABLED=false)")
        return
    if scheduler.running:
        logger.warning("[SCHEDULER] Already running")
        return
    scheduler.start()
    logger.info("[SCHEDULER] OK ✅")


def stop_scheduler(scheduler: BackgroundScheduler) -> None:
    if not scheduler.running:
        return
    scheduler.shutdown(wait=False)
    logger.info("[SCHEDULER] Stopped")
