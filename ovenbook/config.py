# config.py
import logging
import os
import secrets
from dataclasses import dataclass
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ovenbook.db")


def load_secret_key() -> str:
    """SECRET_KEY from the environment, or a random key that lives as long as this process."""
    key = os.getenv("SECRET_KEY")
    if key:
        return key
    logger.warning("SECRET_KEY is not set; using a random key, tokens will not survive a restart")
    return secrets.token_urlsafe(32)


SECRET_KEY = load_secret_key()
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 30))

# Seeded on startup if no identity with this email exists
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@ovenbook.local")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Lab Admin")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Bind address for `python -m ovenbook`
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", 8000))


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BookingPolicy:
    """Limits applied by the reservation ledger."""
    max_duration: timedelta = timedelta(days=7)
    max_active_bookings: int = 2
    grace_period: timedelta = timedelta(hours=1)
    # Re-run the quota check inside the booking transaction
    strict_quota: bool = False
    transaction_attempts: int = 8

    @classmethod
    def from_env(cls) -> "BookingPolicy":
        return cls(
            max_duration=timedelta(hours=int(os.getenv("MAX_BOOKING_DURATION_HOURS", 7 * 24))),
            max_active_bookings=int(os.getenv("MAX_ACTIVE_BOOKINGS", 2)),
            grace_period=timedelta(minutes=int(os.getenv("GRACE_PERIOD_MINUTES", 60))),
            strict_quota=_env_flag("STRICT_QUOTA"),
            transaction_attempts=int(os.getenv("TRANSACTION_ATTEMPTS", 8)),
        )


SNAPSHOT_POLL_SECONDS = float(os.getenv("SNAPSHOT_POLL_SECONDS", 5))


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
