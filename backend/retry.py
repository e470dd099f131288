"""
Retry wrapper for store operations.

Every public storage call runs through with_retry(). Lock contention
(SQLITE_BUSY / SQLITE_LOCKED) is retried with linear backoff; everything
else propagates on the first failure.
"""
import asyncio
import logging
import sqlite3
from typing import Callable, TypeVar

from errors import StorageBusyError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.1  # seconds

# Primary result codes; extended codes carry the primary code in the low byte
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
CONTENTION_MESSAGES = ("database is locked", "database table is locked", "database is busy")


def is_contention_error(exc: BaseException) -> bool:
    """True when exc (or the driver error it wraps) means another writer holds the lock."""
    # SQLAlchemy DBAPIError keeps the driver exception in .orig
    orig = getattr(exc, "orig", None) or exc
    if not isinstance(orig, sqlite3.OperationalError):
        return False

    code = getattr(orig, "sqlite_errorcode", None)
    if code is not None and (code & 0xFF) in (SQLITE_BUSY, SQLITE_LOCKED):
        return True

    message = str(orig).lower()
    return any(m in message for m in CONTENTION_MESSAGES)


async def with_retry(
    operation: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> T:
    """
    Run a blocking store operation in a worker thread, retrying on contention.

    Args:
        operation: Zero-argument callable doing the store work
        max_attempts: Total attempts before giving up
        base_delay: Sleep before retry n is base_delay * n seconds

    Returns:
        Whatever operation returns

    Raises:
        StorageBusyError: If every attempt hit lock contention
        Exception: Any non-contention error from operation, unchanged
    """
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.to_thread(operation)
        except Exception as e:
            if not is_contention_error(e):
                raise
            if attempt == attempts:
                logger.error("Store operation still locked after %s attempts: %s", attempts, e)
                raise StorageBusyError(attempts, e) from e

            logger.warning("Store is locked, retrying (%s/%s): %s", attempt, attempts, e)
            await asyncio.sleep(base_delay * attempt)

    # Unreachable: the loop either returns or raises
    raise StorageBusyError(attempts, RuntimeError("no attempt made"))
