from datetime import datetime
from pydantic import BaseModel


class SubscriptionCreate(BaseModel):
    name: str
    email: str
    start_date: datetime
    duration_days: int


class SubscriptionUpdate(BaseModel):
    name: str
    start_date: datetime
    duration_days: int
    notification_enabled: bool = True


class NotificationToggle(BaseModel):
    enabled: bool


class Subscription(BaseModel):
    id: int
    user_id: int
    email: str
    name: str
    start_date: datetime
    duration_days: int
    end_date: datetime
    notification_enabled: bool = True
    last_notification_sent: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class NotificationLog(BaseModel):
    id: int
    subscription_id: int
    sent_at: datetime
    status: str
    error_message: str | None = None

    class Config:
        from_attributes = True


class RunResult(BaseModel):
    started_at: datetime
    days_before: int
    candidates: int
    sent: int
    failed: int
    skipped: int


class TestEmailRequest(BaseModel):
    name: str
    email: str
