from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import relationship, validates

from database import Base

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive timestamps (SQLite drops tzinfo) are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Subscription(Base):
    __tablename__ = "subscription"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    email = Column(String, nullable=False, default="")  # owner contact at creation
    name = Column(String, nullable=False)

    start_date = Column(DateTime(timezone=True), nullable=False)
    duration_days = Column(Integer, nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)

    notification_enabled = Column(Boolean, nullable=False, default=True)
    last_notification_sent = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    notification_logs = relationship(
        "NotificationLog",
        back_populates="subscription",
        cascade="all, delete-orphan",
    )

    @validates("start_date", "duration_days")
    def _recompute_end_date(self, key, value):
        if key == "start_date" and value is not None:
            value = as_utc(value)
        start = value if key == "start_date" else self.start_date
        days = value if key == "duration_days" else self.duration_days
        if start is not None and days is not None:
            self.end_date = as_utc(start) + timedelta(days=days)
        return value

    def compute_end_date(self):
        if self.start_date is not None and self.duration_days is not None:
            self.end_date = as_utc(self.start_date) + timedelta(days=self.duration_days)


@event.listens_for(Subscription, "before_insert")
@event.listens_for(Subscription, "before_update")
def _end_date_before_flush(mapper, connection, target):
    target.compute_end_date()


class NotificationLog(Base):
    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(
        Integer,
        ForeignKey("subscription.id", ondelete="CASCADE"),
        nullable=False,
    )
    sent_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    status = Column(String, nullable=False)  # "success" | "failed"
    error_message = Column(Text, nullable=True)

    subscription = relationship("Subscription", back_populates="notification_logs")

    __table_args__ = (
        Index("idx_subscription_sent", "subscription_id", "sent_at"),
    )
