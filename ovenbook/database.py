# database.py
import asyncio
import logging
import random
import sqlite3
from typing import Awaitable, Callable, TypeVar

from databases import Database
from sqlalchemy import create_engine, MetaData

from ovenbook.config import DATABASE_URL
from ovenbook.errors import ConflictError, TransactionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Create the core database objects
database = Database(DATABASE_URL)
metadata = MetaData()
engine = create_engine(DATABASE_URL)

# SQLSTATE codes for serialization failure and deadlock
_RETRYABLE_SQLSTATES = ("40001", "40P01")

RETRY_BASE_DELAY = 0.02
RETRY_MAX_DELAY = 1.0


def is_write_conflict(exc: BaseException) -> bool:
    """True if the driver aborted the transaction because of a concurrent writer."""
    if isinstance(exc, TransactionConflict):
        return True
    if isinstance(exc, sqlite3.OperationalError):
        message = str(exc).lower()
        return "locked" in message or "busy" in message
    return getattr(exc, "sqlstate", None) in _RETRYABLE_SQLSTATES


def retry_delay(attempt: int) -> float:
    """Exponential backoff with full jitter, so retrying writers spread out."""
    ceiling = min(RETRY_MAX_DELAY, RETRY_BASE_DELAY * (2 ** (attempt - 1)))
    return random.uniform(0, ceiling)


async def run_in_transaction(db: Database, work: Callable[[], Awaitable[T]], attempts: int = 8) -> T:
    """
    Run `work` inside a single transaction, re-running the whole transaction
    when it loses a race against another writer.
    """
    for attempt in range(1, attempts + 1):
        try:
            async with db.transaction():
                return await work()
        except Exception as exc:
            if not is_write_conflict(exc):
                raise
            logger.warning("Transaction conflict on attempt %d/%d: %s", attempt, attempts, exc)
            if attempt < attempts:
                await asyncio.sleep(retry_delay(attempt))
    raise ConflictError("The resource is busy with another booking. Please try again.")
