# Hey future me - this is the "retry on failure" switch from the connection config!
#
# Transient database errors (SQL Server failover, Azure throttling, deadlock victim, SQLite
# "database is locked") usually go away if you wait and try again. The execution strategy
# re-runs the WHOLE unit of work - a callable that opens its own session - so a retry never
# sees half-applied state from the failed attempt.
#
# USAGE:
#   strategy = create_execution_strategy(settings.database)
#   count = await strategy.execute(lambda: count_in_new_session())
#
#   @with_db_retry(RetryPolicy(max_retry_count=3))
#   async def add_occurrence(...): ...
#
# THE CATCH:
# A lazy result stream can't be re-run once rows reached the caller. The retrying strategy
# refuses streams (StreamingNotSupportedException) instead of guessing how to replay them.
"""Execution strategies: retry database work on transient failures."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from eventsdb.domain.exceptions import (
    RetryLimitExceededException,
    StreamingNotSupportedException,
)

if TYPE_CHECKING:
    from eventsdb.config import DatabaseSettings

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

# Server error numbers SQL Server / Azure SQL report for conditions that clear up on their own:
# deadlock victim, timeouts, throttling, failover and dropped connections.
SQL_SERVER_TRANSIENT_ERROR_NUMBERS: frozenset[int] = frozenset(
    {
        -2,  # client timeout
        20,
        64,
        121,
        233,
        1205,  # deadlock victim
        4060,
        4221,
        10053,
        10054,
        10060,
        10928,
        10929,
        10936,
        12015,
        40143,
        40197,
        40501,
        40540,
        40613,
        41301,
        41302,
        41305,
        41325,
        41839,
        49918,
        49919,
        49920,
    }
)

# ODBC SQLSTATEs for timeouts and broken communication links
TRANSIENT_SQLSTATES: frozenset[str] = frozenset({"HYT00", "HYT01", "08S01", "08001"})

# pyodbc ends every diagnostic record with the native error number, optionally followed by
# the ODBC call name, e.g. "...is (20). (2627) (SQLExecDirectW)". Records are joined by "; ".
# Only that trailing number counts; parenthesised values earlier in the text are user data.
_ERROR_NUMBER_RE = re.compile(r"\((-?\d+)\)\s*(?:\(SQL\w+\)\s*)?(?=;|$)")
# Each record starts with its SQLSTATE in brackets: "[HYT00] [Microsoft]..."
_SQLSTATE_RE = re.compile(r"(?:^|;\s*)\[([0-9A-Z]{5})\]")


def _driver_error_text(exception: BaseException) -> str:
    """Message of the underlying driver error (pyodbc style args: sqlstate, message)."""
    orig = getattr(exception, "orig", None)
    source = orig if orig is not None else exception
    args = getattr(source, "args", ())
    if args and isinstance(args[-1], str):
        return args[-1].strip()
    return str(source).strip()


def sql_server_error_numbers(exception: BaseException) -> set[int]:
    """Extract native SQL Server error numbers, e.g. ``(40613)``, from a driver error message."""
    return {int(n) for n in _ERROR_NUMBER_RE.findall(_driver_error_text(exception))}


def is_lock_error(exception: BaseException) -> bool:
    """Check if an exception is a SQLite lock/busy error."""
    if not isinstance(exception, OperationalError):
        return False
    error_msg = str(exception).lower()
    return "locked" in error_msg or "busy" in error_msg


def is_transient_error(
    exception: BaseException,
    extra_error_numbers: frozenset[int] = frozenset(),
) -> bool:
    """Check if an exception is worth retrying.

    Transient means: the connection was invalidated, SQLite reported a lock, the driver
    timed out or lost its link, or SQL Server reported one of the well-known transient
    error numbers (plus any configured extras). Everything else fails fast.
    """
    if isinstance(exception, (TimeoutError, ConnectionError)):
        return True
    if not isinstance(exception, DBAPIError):
        return False
    if exception.connection_invalidated:
        return True
    if is_lock_error(exception):
        return True

    numbers = sql_server_error_numbers(exception)
    if numbers & (SQL_SERVER_TRANSIENT_ERROR_NUMBERS | extra_error_numbers):
        return True

    orig = exception.orig
    args = getattr(orig, "args", ()) if orig is not None else ()
    sqlstate = args[0] if args else None
    if isinstance(sqlstate, str) and sqlstate in TRANSIENT_SQLSTATES:
        return True
    return any(
        state in TRANSIENT_SQLSTATES
        for state in _SQLSTATE_RE.findall(_driver_error_text(exception))
    )


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how long to retry.

    max_retry_count counts RETRIES, so an operation runs at most max_retry_count + 1 times.
    Delays grow exponentially: initial_delay, initial_delay*factor, ... capped at max_delay.
    """

    max_retry_count: int = 6
    initial_delay: float = 0.5
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    extra_error_numbers: frozenset[int] = frozenset()

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> RetryPolicy:
        """Build a policy from database settings."""
        return cls(
            max_retry_count=settings.max_retry_count,
            initial_delay=settings.initial_retry_delay,
            max_delay=settings.max_retry_delay,
            backoff_factor=settings.retry_backoff_factor,
            extra_error_numbers=frozenset(settings.extra_transient_error_numbers),
        )

    def delay_for(self, retry_number: int) -> float:
        """Delay before the given retry (0-based)."""
        return min(self.initial_delay * (self.backoff_factor**retry_number), self.max_delay)


class ExecutionMetrics:
    """Counters for one execution strategy.

    Metrics tracked:
    - attempts: operations started
    - successes: operations that succeeded (possibly after retries)
    - failures: operations that failed (non-transient or retries exhausted)
    - retries: total retry attempts made
    - total_wait_time_ms / max_wait_time_ms: time spent sleeping between attempts
    """

    def __init__(self) -> None:
        """Initialize metrics counters."""
        self.attempts: int = 0
        self.successes: int = 0
        self.failures: int = 0
        self.retries: int = 0
        self.total_wait_time_ms: float = 0.0
        self.max_wait_time_ms: float = 0.0
        self.last_failure_at: float | None = None

    def record_attempt(self) -> None:
        """Record an operation attempt."""
        self.attempts += 1

    def record_success(self, wait_time_ms: float = 0.0) -> None:
        """Record a successful operation.

        Args:
            wait_time_ms: Time spent waiting between retries (0 if none)
        """
        self.successes += 1
        self.total_wait_time_ms += wait_time_ms
        if wait_time_ms > self.max_wait_time_ms:
            self.max_wait_time_ms = wait_time_ms

    def record_failure(self) -> None:
        """Record a failed operation."""
        self.failures += 1
        self.last_failure_at = time.time()

    def record_retry(self) -> None:
        """Record a retry attempt."""
        self.retries += 1

    def get_stats(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "retries": self.retries,
            "total_wait_time_ms": round(self.total_wait_time_ms, 2),
            "max_wait_time_ms": round(self.max_wait_time_ms, 2),
            "failure_rate": round(
                self.failures / self.attempts if self.attempts > 0 else 0, 4
            ),
            "last_failure_at": self.last_failure_at,
        }

    def reset(self) -> None:
        """Reset all metrics (for testing)."""
        self.attempts = 0
        self.successes = 0
        self.failures = 0
        self.retries = 0
        self.total_wait_time_ms = 0.0
        self.max_wait_time_ms = 0.0
        self.last_failure_at = None


class ExecutionStrategy(ABC):
    """Runs database work, deciding what happens when it fails."""

    def __init__(self) -> None:
        self.metrics = ExecutionMetrics()

    @abstractmethod
    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a complete unit of work and return its result."""

    @abstractmethod
    def stream(self, factory: Callable[[], AsyncIterator[T]]) -> AsyncIterator[T]:
        """Return a lazily produced sequence from the iterator the factory builds."""


class NonRetryingExecutionStrategy(ExecutionStrategy):
    """Run everything exactly once; failures propagate unchanged."""

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        self.metrics.record_attempt()
        try:
            result = await operation()
        except Exception:
            self.metrics.record_failure()
            raise
        self.metrics.record_success()
        return result

    def stream(self, factory: Callable[[], AsyncIterator[T]]) -> AsyncIterator[T]:
        # Nothing to replay, so the caller gets the real lazy iterator
        return factory()


class _RefusedStream(AsyncIterator[T]):
    """Async iterator whose first pull raises StreamingNotSupportedException."""

    def __init__(self, strategy: str) -> None:
        self._strategy = strategy

    async def __anext__(self) -> T:
        raise StreamingNotSupportedException(self._strategy)

    async def aclose(self) -> None:
        """Nothing was opened, so nothing to close."""


class RetryingExecutionStrategy(ExecutionStrategy):
    """Re-run units of work on transient failures with exponential backoff."""

    def __init__(self, policy: RetryPolicy | None = None, sleep: Sleep | None = None) -> None:
        super().__init__()
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        name = getattr(operation, "__qualname__", repr(operation))
        start_time = time.monotonic()
        total_wait_ms = 0.0
        self.metrics.record_attempt()

        retry_number = 0
        while True:
            try:
                result = await operation()
            except Exception as e:
                if not is_transient_error(e, self.policy.extra_error_numbers):
                    self.metrics.record_failure()
                    raise

                if retry_number >= self.policy.max_retry_count:
                    elapsed = (time.monotonic() - start_time) * 1000
                    logger.error(
                        "Transient database error persisted after %d attempts (%.0fms total), giving up: %s",
                        retry_number + 1,
                        elapsed,
                        name,
                    )
                    self.metrics.record_failure()
                    raise RetryLimitExceededException(retry_number + 1, e) from e

                delay = self.policy.delay_for(retry_number)
                retry_number += 1
                self.metrics.record_retry()
                logger.warning(
                    "Transient database error (attempt %d/%d), retrying in %.1fs: %s: %s",
                    retry_number,
                    self.policy.max_retry_count + 1,
                    delay,
                    name,
                    e,
                )
                await self._sleep(delay)
                total_wait_ms += delay * 1000
                continue

            self.metrics.record_success(total_wait_ms)
            return result

    def stream(self, factory: Callable[[], AsyncIterator[T]]) -> AsyncIterator[T]:
        # factory is never called, so no session or cursor gets opened
        logger.debug("Refusing lazy stream under %s", type(self).__name__)
        return _RefusedStream(type(self).__name__)


def create_execution_strategy(
    settings: DatabaseSettings, sleep: Sleep | None = None
) -> ExecutionStrategy:
    """Pick the execution strategy the settings ask for."""
    if settings.retry_on_failure:
        return RetryingExecutionStrategy(RetryPolicy.from_settings(settings), sleep=sleep)
    return NonRetryingExecutionStrategy()


def with_db_retry(
    policy: RetryPolicy | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for retrying an async database operation on transient errors.

    Example:
        @with_db_retry(RetryPolicy(max_retry_count=3))
        async def rename(db: Database, occurrence_id: int, title: str) -> None:
            ...

    Notes:
        - The decorated function is re-run from the top, so it must open its own session
        - Non-async functions are NOT supported
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        strategy = RetryingExecutionStrategy(policy)

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async def attempt() -> T:
                return await func(*args, **kwargs)

            attempt.__qualname__ = f"{func.__module__}.{func.__qualname__}"
            return await strategy.execute(attempt)

        return wrapper

    return decorator
