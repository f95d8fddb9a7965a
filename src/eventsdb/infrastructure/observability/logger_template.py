"""Shared logger utilities.

USAGE:
    from eventsdb.infrastructure.observability.logger_template import (
        get_module_logger,
        log_operation,
    )

    logger = get_module_logger(__name__)

    async with log_operation(logger, "seed_occurrences", count=10):
        await seed()
"""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any


def get_module_logger(name: str) -> logging.Logger:
    """Get logger for module (always pass __name__)."""
    return logging.getLogger(name)


# Yo, this logs {operation}.started / .completed / .failed with a duration_ms field. On failure
# it logs with exc_info and RE-RAISES - it never swallows anything.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncGenerator[dict[str, Any], None]:
    """Context manager for logging operation start/end with automatic timing.

    The yielded dict can be filled with result fields (e.g. ``rows=10``); they are
    added to the completion log.

    Example:
        >>> async with log_operation(logger, "read_occurrences", mode="buffered") as result:
        ...     result["rows"] = len(await read())
    """
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)
    result: dict[str, Any] = {}

    try:
        yield result
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, **result, "duration_ms": duration_ms},
    )
