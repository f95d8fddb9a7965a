"""Command-line entry point: seed, then read everything back twice.

Steps, each in its own session:

1. Seed ten occurrences ("Test 0".."Test 9") if the table is empty.
2. Buffered read of all occurrences with prices, printing ``<title> (<token>)``.
3. Streamed read of the same query, printing the same lines as they arrive.

With retry on failure enabled (the default) step 3 fails with
StreamingNotSupportedException and the process exits non-zero.
"""

import asyncio
import logging
import sys
from contextlib import aclosing
from typing import TextIO

from eventsdb.application.use_cases import (
    ListOccurrencesRequest,
    ListOccurrencesUseCase,
    ReadMode,
    SeedOccurrencesRequest,
    SeedOccurrencesUseCase,
)
from eventsdb.config import Settings, get_settings
from eventsdb.infrastructure.observability import (
    configure_logging,
    log_operation,
    set_correlation_id,
)
from eventsdb.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


async def run(settings: Settings, out: TextIO | None = None) -> int:
    """Run the access routine and return the number of lines printed."""
    out = out or sys.stdout
    database = Database(settings)
    printed = 0
    try:
        if settings.database.create_schema:
            await database.create_tables()

        await SeedOccurrencesUseCase(database).execute(SeedOccurrencesRequest())

        reader = ListOccurrencesUseCase(database)
        buffered = await reader.execute(ListOccurrencesRequest(mode=ReadMode.BUFFERED))
        for occurrence in buffered.occurrences:
            print(occurrence.describe(), file=out)
            printed += 1

        async with log_operation(logger, "stream_occurrences") as result:
            streamed = 0
            async with aclosing(reader.stream()) as stream:
                async for occurrence in stream:
                    print(occurrence.describe(), file=out)
                    streamed += 1
            result["rows"] = streamed
        printed += streamed
    finally:
        await database.close()
    return printed


def main() -> None:
    """Console script entry point. No arguments; configuration comes from Settings."""
    settings = get_settings()
    configure_logging(
        log_level=settings.logging.level,
        json_format=settings.logging.json_format,
        app_name=settings.app_name,
        log_sql=settings.logging.log_sql,
    )
    set_correlation_id()
    # Uncaught errors propagate: traceback on stderr, exit status 1
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
