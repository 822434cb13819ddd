from datetime import datetime

from sqlalchemy import desc
from sqlalchemy.orm import Session

from eligibility import expiring_window
from models import Subscription, NotificationLog
from schemas import SubscriptionCreate, SubscriptionUpdate


# ========== Subscription ==========
def get_subscriptions_for_user(db: Session, user_id: int):
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.end_date.asc())
        .all()
    )


def get_subscription(db: Session, sub_id: int):
    return db.query(Subscription).filter(Subscription.id == sub_id).first()


def create_subscription(db: Session, user_id: int, sub: SubscriptionCreate):
    db_sub = Subscription(
        user_id=user_id,
        email=sub.email,
        name=sub.name,
        start_date=sub.start_date,
        duration_days=sub.duration_days,
        notification_enabled=True,
    )
    db.add(db_sub)
    db.commit()
    db.refresh(db_sub)
    return db_sub


def update_subscription(db: Session, db_sub: Subscription, sub: SubscriptionUpdate):
    for key, value in sub.model_dump().items():
        setattr(db_sub, key, value)
    db.commit()
    db.refresh(db_sub)
    return db_sub


def set_notification_enabled(db: Session, db_sub: Subscription, enabled: bool):
    db_sub.notification_enabled = enabled
    db.commit()
    db.refresh(db_sub)
    return db_sub


def delete_subscription(db: Session, db_sub: Subscription):
    db.delete(db_sub)
    db.commit()
    return True


def find_expiring(db: Session, as_of: datetime, days_before: int):
    """Candidates for a reminder run; eligibility is re-checked per item by the caller."""
    window = expiring_window(days_before, as_of)
    return (
        db.query(Subscription)
        .filter(Subscription.notification_enabled == True)
        .filter(Subscription.end_date >= window.start)
        .filter(Subscription.end_date <= window.end)
        .order_by(Subscription.end_date.asc())
        .all()
    )


def update_last_notified(db: Session, sub_id: int, sent_at: datetime):
    db.query(Subscription).filter(Subscription.id == sub_id).update(
        {"last_notification_sent": sent_at},
        synchronize_session=False,
    )
    db.commit()


# ========== Notification logs ==========
def add_notification_log(
    db: Session,
    sub_id: int,
    sent_at: datetime,
    status: str,
    error_message: str | None = None,
):
    entry = NotificationLog(
        subscription_id=sub_id,
        sent_at=sent_at,
        status=status,
        error_message=error_message,
    )
    db.add(entry)
    db.commit()
    return entry


def get_notification_logs(db: Session, sub_id: int, limit: int = 100):
    return (
        db.query(NotificationLog)
        .filter(NotificationLog.subscription_id == sub_id)
        .order_by(desc(NotificationLog.sent_at), desc(NotificationLog.id))
        .limit(limit)
        .all()
    )
