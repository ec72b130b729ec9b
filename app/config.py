import os

from dotenv import load_dotenv

# Load .env file with explicit UTF-8 encoding
load_dotenv(encoding="utf-8")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///./order_loyalty.db"

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

# ─── Loyalty ──────────────────────────────────────────────────────
# 1 point per 100 currency units (CFA)
LOYALTY_CURRENCY_UNITS_PER_POINT = _int_env("LOYALTY_CURRENCY_UNITS_PER_POINT", 100)
LOYALTY_AWARD_MAX_RETRIES = _int_env("LOYALTY_AWARD_MAX_RETRIES", 3)

# (key, name, min_lifetime_points, rank) used when no tier rows are configured
DEFAULT_TIER_TABLE = (
    ("BRONZE", "Bronze", 0, 0),
    ("SILVER", "Silver", 1000, 1),
    ("GOLD", "Gold", 2500, 2),
    ("PLATINUM", "Platinum", 5000, 3),
)

# ─── Payment reminders ────────────────────────────────────────────
REMINDER_DEFAULT_DELAYS = (24, 72, 120)
REMINDER_MAX_DELAYS = (168, 336, 504)

REMINDER_MAX_ATTEMPTS = _int_env("REMINDER_MAX_ATTEMPTS", 3)
REMINDER_BATCH_SIZE = _int_env("REMINDER_BATCH_SIZE", 50)
REMINDER_LOCK_TTL_SECONDS = _int_env("REMINDER_LOCK_TTL_SECONDS", 600)
REMINDER_WORKER_ID = os.getenv("REMINDER_WORKER_ID") or os.getenv("HOSTNAME") or "worker"

# ─── Notification gateway ─────────────────────────────────────────
NOTIFICATION_API_URL = os.getenv("NOTIFICATION_API_URL")
NOTIFICATION_API_KEY = os.getenv("NOTIFICATION_API_KEY")
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS") or "10")
NOTIFICATION_CHANNELS = tuple(
    c.strip().upper()
    for c in (os.getenv("NOTIFICATION_CHANNELS") or "SMS,WHATSAPP").split(",")
    if c.strip()
)
NOTIFICATION_TEST_PHONE = os.getenv("NOTIFICATION_TEST_PHONE") or None
