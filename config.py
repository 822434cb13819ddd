import os
from zoneinfo import ZoneInfo


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _database_url() -> str:
    url = os.getenv("DATABASE_URL", "") or "sqlite:///./renewguard.db"

    # FIX format Render
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql+psycopg2://"):
        url = url.replace("postgresql+psycopg2://", "postgresql+psycopg://", 1)
    return url


DATABASE_URL = _database_url()

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "UTC")
app_tz = ZoneInfo(APP_TIMEZONE)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ========== Scheduler ==========
SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)
SCHEDULER_CRON = os.getenv("SCHEDULER_CRON", "0 0 * * *")
NOTIFICATION_DAYS_BEFORE = _env_int("NOTIFICATION_DAYS_BEFORE", 5)
if NOTIFICATION_DAYS_BEFORE <= 0:
    NOTIFICATION_DAYS_BEFORE = 5

# ========== Mail ==========
MAIL_BACKEND = os.getenv("MAIL_BACKEND", "smtp").lower()  # "smtp" | "console"
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = _env_int("SMTP_PORT", 587)
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "noreply@renewguard.com")
SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", "RenewGuard")
SMTP_TIMEOUT = _env_int("SMTP_TIMEOUT", 30)
