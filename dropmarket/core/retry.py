"""
Retry policy for transient write conflicts.

The booking path retries a unit of work when the store rejects it with an
error the classifier considers transient (row-level security races on
Postgres surface as SQLSTATE 42501). Delay is linear: attempt * backoff.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# insufficient_privilege, serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = {"42501", "40001", "40P01"}

SQLITE_TRANSIENT_MESSAGES = ("database is locked", "database table is locked")


def _sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for source in (orig, exc):
        if source is None:
            continue
        code = getattr(source, "sqlstate", None) or getattr(source, "pgcode", None)
        if code:
            return str(code)
    return None


def is_transient_write_conflict(exc: BaseException) -> bool:
    """Default classifier: Postgres conflict SQLSTATEs and SQLite lock errors."""
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in TRANSIENT_SQLSTATES:
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(text in message for text in SQLITE_TRANSIENT_MESSAGES)
    return False


class RetryExhaustedError(Exception):
    """All attempts failed with transient errors."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


class RetryPolicy:
    """
    Run an async operation, retrying transient failures.

    ``max_retries`` counts additional attempts, so the operation runs at
    most ``max_retries + 1`` times. Non-transient errors propagate at once.
    """

    def __init__(
        self,
        max_retries: int = 2,
        backoff_seconds: float = 0.5,
        is_transient: Callable[[BaseException], bool] = is_transient_write_conflict,
    ):
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.is_transient = is_transient

    def delay_for(self, attempt: int) -> float:
        return attempt * self.backoff_seconds

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: Optional[Callable[[BaseException], Awaitable[None]]] = None,
    ) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.is_transient(e):
                    raise
                attempt += 1
                if attempt > self.max_retries:
                    logger.error(f"Transient error persisted after {attempt} attempts: {e}")
                    raise RetryExhaustedError(attempt, e) from e
                delay = self.delay_for(attempt)
                logger.warning(
                    f"Transient write conflict (attempt {attempt}/{self.max_retries + 1}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                if on_retry is not None:
                    await on_retry(e)
                await asyncio.sleep(delay)
