"""Use case for reading every occurrence with its prices.

Two ways to read the same LEFT OUTER JOIN query:

- BUFFERED: the whole result is fetched into a list inside one session, then returned.
  Goes through the execution strategy like any other unit of work, so with retry on
  failure a transient error simply re-runs the query.
- STREAMED: occurrences are produced one at a time while the session stays open. The
  retrying strategy refuses this (StreamingNotSupportedException) because it could not
  replay a stream the caller already started consuming.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from eventsdb.application.use_cases import UseCase
from eventsdb.domain.entities import Occurrence
from eventsdb.infrastructure.observability.logger_template import log_operation
from eventsdb.infrastructure.persistence.database import Database
from eventsdb.infrastructure.persistence.repositories import OccurrenceRepository

logger = logging.getLogger(__name__)


class ReadMode(str, Enum):
    """How results are pulled from the database."""

    BUFFERED = "buffered"
    STREAMED = "streamed"


@dataclass
class ListOccurrencesRequest:
    """Request to list occurrences with prices."""

    mode: ReadMode = ReadMode.BUFFERED


@dataclass
class ListOccurrencesResponse:
    """All occurrences in retrieval order."""

    occurrences: list[Occurrence] = field(default_factory=list)

    @property
    def titles(self) -> list[str]:
        """Titles in retrieval order."""
        return [o.title for o in self.occurrences]


class ListOccurrencesUseCase(UseCase[ListOccurrencesRequest, ListOccurrencesResponse]):
    """Read all occurrences with their prices eagerly joined."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def execute(self, request: ListOccurrencesRequest) -> ListOccurrencesResponse:
        """Read everything; STREAMED mode still collects, but pulls lazily."""
        async with log_operation(
            logger, "list_occurrences", mode=request.mode.value
        ) as result:
            if request.mode is ReadMode.STREAMED:
                occurrences = []
                async with aclosing(self.stream()) as stream:
                    async for occurrence in stream:
                        occurrences.append(occurrence)
            else:
                occurrences = await self._database.run(self._read_buffered)
            result["rows"] = len(occurrences)
        return ListOccurrencesResponse(occurrences=occurrences)

    def stream(self) -> AsyncIterator[Occurrence]:
        """Lazily produce occurrences; each pull may suspend on database I/O.

        Close the iterator (``contextlib.aclosing``) when stopping early so the session
        is released.
        """
        return self._database.stream(self._read_streamed)

    @staticmethod
    async def _read_buffered(session: AsyncSession) -> list[Occurrence]:
        return await OccurrenceRepository(session).list_with_prices()

    @staticmethod
    def _read_streamed(session: AsyncSession) -> AsyncIterator[Occurrence]:
        return OccurrenceRepository(session).stream_with_prices()
