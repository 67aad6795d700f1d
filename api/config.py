import os
import logging

from dotenv import load_dotenv

load_dotenv()


def _int(name, default):
    value = os.environ.get(name, "")
    try:
        return int(value) if value.strip() else default
    except ValueError:
        return default


def _id_list(raw):
    return [int(x) for x in raw.split(',') if x.strip().lstrip('-').isdigit()]


# --- Configuration ---
TOKEN = os.environ.get("TOKEN")
DATABASE_URL = os.environ.get("DATABASE_URL")
WEB_APP_URL = os.environ.get("WEB_APP_URL", "")
ADMIN_IDS = _id_list(os.environ.get("ADMIN_IDS", ""))
ADMIN_CHAT_ID = os.environ.get("ADMIN_CHAT_ID") or (str(ADMIN_IDS[0]) if ADMIN_IDS else None)
SUPPORT_HANDLE = os.environ.get("SUPPORT_HANDLE", "@ZebiSupportBot")
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
WEBHOOK_SECRET = os.environ.get("WEBHOOK_SECRET", "")

# Where players send deposits
TELEBIRR_ACCOUNT = os.environ.get("TELEBIRR_ACCOUNT", "")
CBE_ACCOUNT = os.environ.get("CBE_ACCOUNT", "")
CBE_ACCOUNT_NAME = os.environ.get("CBE_ACCOUNT_NAME", "")

# Game rules
MIN_PLAYERS = _int("MIN_PLAYERS", 2)
COMMISSION_PERCENT = _int("COMMISSION_PERCENT", 10)
WAITING_PERIOD_SECONDS = _int("WAITING_PERIOD_SECONDS", 30)
COUNTDOWN_SECONDS = _int("COUNTDOWN_SECONDS", 10)
GRACE_PERIOD_SECONDS = _int("GRACE_PERIOD_SECONDS", 10)
STUCK_GAME_MINUTES = _int("STUCK_GAME_MINUTES", 10)
MAX_GAME_MINUTES = _int("MAX_GAME_MINUTES", 10)

# Wallet
STARTING_BONUS = _int("STARTING_BONUS", 10)
MINIMUM_DEPOSIT = _int("MINIMUM_DEPOSIT", 10)
MINIMUM_WITHDRAWAL = _int("MINIMUM_WITHDRAWAL", 50)
REFERRAL_BONUS = _int("REFERRAL_BONUS", 10)
REFERRAL_THRESHOLD = _int("REFERRAL_THRESHOLD", 20)

# Admin auth
ADMIN_SESSION_HOURS = _int("ADMIN_SESSION_HOURS", 12)
LOGIN_RATE_LIMIT = _int("LOGIN_RATE_LIMIT", 5)
LOGIN_RATE_WINDOW_SECONDS = _int("LOGIN_RATE_WINDOW_SECONDS", 600)
RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")

# DB pool
DB_POOL_MIN = _int("DB_POOL_MIN", 1)
DB_POOL_MAX = _int("DB_POOL_MAX", 5)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def require(*names):
    """Raise if any of the named settings is empty."""
    names = names or ("TOKEN", "DATABASE_URL")
    missing = [name for name in names if not globals().get(name)]
    if missing:
        raise ValueError(f"Missing required environment variables: {' or '.join(missing)}")


# --- Logging ---
def configure_logging():
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
