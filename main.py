import logging, re
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from fastapi import FastAPI, Depends, HTTPException, Header, Query, BackgroundTasks
from sqlalchemy.orm import Session

import config
import crud
import email_templates
import schemas
from database import engine, Base, get_db
from dispatcher import NotificationRunError
from mailer import DeliveryError, get_mailer
from models import as_utc
from scheduler import create_scheduler, start_scheduler, stop_scheduler, run_now, health_state

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger("RenewGuard")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_DURATION_DAYS = 36500


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("[BOOT] DB connect...")
    Base.metadata.create_all(bind=engine)
    logger.info("[BOOT] DB OK ✅")

    scheduler = create_scheduler()
    start_scheduler(scheduler)
    try:
        yield
    finally:
        stop_scheduler(scheduler)


app = FastAPI(title="RenewGuard", openapi_url="/openapi.json", docs_url="/docs", lifespan=lifespan)


# ===================================
# CALLER
# ===================================
def require_user(x_user_id: int = Header(...)):
    """Owner id set by the upstream gateway after authentication."""
    return x_user_id


def get_owned_subscription(sub_id: int, user_id: int, db: Session):
    sub = crud.get_subscription(db, sub_id)
    if not sub:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if sub.user_id != user_id:
        raise HTTPException(status_code=403, detail="Unauthorized access")
    return sub


# ===================================
# VALIDATION
# ===================================
def validate_email(email: str) -> str:
    email = email.strip()
    if not EMAIL_RE.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    return email


def validate_input(name: str, start_date: datetime, duration_days: int):
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    if duration_days <= 0:
        raise HTTPException(status_code=400, detail="duration_days must be a positive integer")
    if duration_days > MAX_DURATION_DAYS:
        raise HTTPException(status_code=400, detail=f"duration_days must be at most {MAX_DURATION_DAYS}")
    try:
        as_utc(start_date) + timedelta(days=duration_days)
    except OverflowError:
        raise HTTPException(status_code=400, detail="start_date + duration_days is out of range")
    return name


# ===================================
# BACKGROUND MAIL
# ===================================
def send_confirmation(mailer, to: str, name: str, start_date, end_date):
    subject, body = email_templates.subscription_confirmation(name, start_date, end_date)
    try:
        mailer.deliver(to, subject, body)
    except DeliveryError as e:
        logger.error(f"[MAIL] Confirmation for '{name}' to {to} failed: {e}")


def send_test_email(mailer, to: str, name: str):
    subject, body = email_templates.smtp_test_email(name)
    try:
        mailer.deliver(to, subject, body)
    except DeliveryError as e:
        logger.error(f"[MAIL] Test email to {to} failed: {e}")


# ===================================
# ROUTES: subscriptions
# ===================================
@app.get("/api/subscriptions", response_model=list[schemas.Subscription])
def list_subscriptions(user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    return crud.get_subscriptions_for_user(db, user_id)


@app.post("/api/subscriptions", response_model=schemas.Subscription, status_code=201)
def create_subscription(
    payload: schemas.SubscriptionCreate,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
):
    name = validate_input(payload.name, payload.start_date, payload.duration_days)
    email = validate_email(payload.email)
    sub = crud.create_subscription(
        db, user_id, payload.model_copy(update={"name": name, "email": email})
    )
    logger.info(f"Add: {sub.name} (id={sub.id}, user={user_id})")

    background_tasks.add_task(send_confirmation, mailer, sub.email, sub.name, sub.start_date, sub.end_date)
    return sub


@app.get("/api/subscriptions/{sub_id}", response_model=schemas.Subscription)
def read_subscription(sub_id: int, user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    return get_owned_subscription(sub_id, user_id, db)


@app.put("/api/subscriptions/{sub_id}", response_model=schemas.Subscription)
def update_subscription(
    sub_id: int,
    payload: schemas.SubscriptionUpdate,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    sub = get_owned_subscription(sub_id, user_id, db)
    name = validate_input(payload.name, payload.start_date, payload.duration_days)
    sub = crud.update_subscription(db, sub, payload.model_copy(update={"name": name}))
    logger.info(f"Update: {sub.name} (id={sub.id})")
    return sub


@app.delete("/api/subscriptions/{sub_id}")
def delete_subscription(sub_id: int, user_id: int = Depends(require_user), db: Session = Depends(get_db)):
    sub = get_owned_subscription(sub_id, user_id, db)
    crud.delete_subscription(db, sub)
    logger.warning(f"Delete id={sub_id}")
    return {"ok": True}


@app.patch("/api/subscriptions/{sub_id}/notifications", response_model=schemas.Subscription)
def toggle_notifications(
    sub_id: int,
    payload: schemas.NotificationToggle,
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    sub = get_owned_subscription(sub_id, user_id, db)
    return crud.set_notification_enabled(db, sub, payload.enabled)


@app.get("/api/subscriptions/{sub_id}/notifications", response_model=list[schemas.NotificationLog])
def notification_history(
    sub_id: int,
    limit: int = Query(100, ge=1, le=500),
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
):
    get_owned_subscription(sub_id, user_id, db)
    return crud.get_notification_logs(db, sub_id, limit)


# ===================================
# ROUTES: operations
# ===================================
@app.post("/api/notifications/run", response_model=schemas.RunResult)
def trigger(
    days_before: int | None = Query(None, ge=1),
    user_id: int = Depends(require_user),
    db: Session = Depends(get_db),
    mailer=Depends(get_mailer),
):
    logger.info(f"[TRIGGER] Manual run requested by user={user_id}")
    try:
        summary = run_now(db, mailer, days_before)
    except NotificationRunError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if summary is None:
        raise HTTPException(status_code=409, detail="Notification run already in progress")

    return schemas.RunResult(
        started_at=summary.started_at,
        days_before=summary.days_before,
        candidates=summary.candidate_count,
        sent=summary.sent_count,
        failed=summary.failed_count,
        skipped=summary.skipped_count,
    )


@app.post("/api/test/email")
def email_test(
    payload: schemas.TestEmailRequest,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(require_user),
    mailer=Depends(get_mailer),
):
    email = validate_email(payload.email)
    background_tasks.add_task(send_test_email, mailer, email, payload.name)
    return {"ok": True, "recipient": email, "name": payload.name}


@app.get("/health")
def health(user_id: int = Depends(require_user)):
    return {k: (str(v) if v is not None else None) for k, v in health_state.items()}
