import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Configure the app for tests before any project module reads the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["MAIL_BACKEND"] = "console"
os.environ["APP_TIMEZONE"] = "UTC"

# Ensure project root is on sys.path so the flat modules import
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import database
from database import Base
from mailer import DeliveryError, get_mailer
from models import Subscription

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeMailer:
    """Records deliveries; raises for addresses listed in fail_for."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def deliver(self, to, subject, html_body):
        if to in self.fail_for:
            raise DeliveryError("connection refused")
        self.sent.append((to, subject, html_body))


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def make_subscription(db):
    """Persist a subscription ending `ends_in` after NOW."""

    def _make(
        name="Netflix",
        email="owner@example.com",
        ends_in=timedelta(days=3),
        duration_days=30,
        user_id=1,
        notification_enabled=True,
        last_notification_sent=None,
    ):
        sub = Subscription(
            user_id=user_id,
            email=email,
            name=name,
            start_date=NOW + ends_in - timedelta(days=duration_days),
            duration_days=duration_days,
            notification_enabled=notification_enabled,
            last_notification_sent=last_notification_sent,
        )
        db.add(sub)
        db.commit()
        db.refresh(sub)
        return sub

    return _make


@pytest.fixture()
def client(db, mailer):
    from main import app

    app.dependency_overrides[database.get_db] = lambda: db
    app.dependency_overrides[get_mailer] = lambda: mailer
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
