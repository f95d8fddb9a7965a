"""Use case for seeding the Occurrence table on first run.

Hey future me - the guard is "table is EMPTY", not "these titles are missing". If there is
even one occurrence, nothing is inserted, so running the seed any number of times never
produces more than the first batch. The count and the insert happen in the same session,
and with retry on failure the whole thing (count included) is re-run on a transient error.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from eventsdb.application.use_cases import UseCase
from eventsdb.domain.entities import Occurrence
from eventsdb.domain.exceptions import ValidationException
from eventsdb.infrastructure.observability.logger_template import log_operation
from eventsdb.infrastructure.persistence.database import Database
from eventsdb.infrastructure.persistence.repositories import OccurrenceRepository

logger = logging.getLogger(__name__)


@dataclass
class SeedOccurrencesRequest:
    """Request to seed occurrences (no prices) into an empty table."""

    count: int = 10
    title_prefix: str = "Test "

    def titles(self) -> list[str]:
        """Titles to insert: "<prefix>0" .. "<prefix>{count-1}"."""
        return [f"{self.title_prefix}{i}" for i in range(self.count)]


@dataclass
class SeedOccurrencesResponse:
    """Response from seeding."""

    created: int
    total: int

    @property
    def seeded(self) -> bool:
        """True if this call inserted rows."""
        return self.created > 0


class SeedOccurrencesUseCase(UseCase[SeedOccurrencesRequest, SeedOccurrencesResponse]):
    """Insert the initial occurrences when the table is empty."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def execute(self, request: SeedOccurrencesRequest) -> SeedOccurrencesResponse:
        """Seed if empty; report how many rows were created and how many exist."""
        if request.count < 0:
            raise ValidationException(f"Seed count must not be negative, got {request.count}")

        async def seed(session: AsyncSession) -> SeedOccurrencesResponse:
            repo = OccurrenceRepository(session)
            existing = await repo.count()
            if existing:
                logger.info("Occurrences already present (%d), skipping seed", existing)
                return SeedOccurrencesResponse(created=0, total=existing)

            occurrences = [Occurrence(title=title) for title in request.titles()]
            await repo.add_many(occurrences)
            return SeedOccurrencesResponse(created=len(occurrences), total=len(occurrences))

        async with log_operation(logger, "seed_occurrences", count=request.count) as result:
            response = await self._database.run(seed)
            result["rows_created"] = response.created
        return response
