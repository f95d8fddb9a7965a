"""Repository implementations for domain entities."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
from sqlalchemy.orm.exc import StaleDataError

from eventsdb.domain.entities import Occurrence, Price
from eventsdb.domain.exceptions import (
    ConcurrencyConflictException,
    EntityNotFoundException,
)
from eventsdb.domain.ports import IOccurrenceRepository

from .models import OccurrenceModel, PriceModel

logger = logging.getLogger(__name__)


class OccurrenceRepository(IOccurrenceRepository):
    """SQLAlchemy implementation of the Occurrence repository."""

    # Hey future me, this is the Repository pattern! The session is injected and owned by the
    # caller (Database.run / Database.stream). The repo flushes so ids and version tokens come
    # back from the database, but it never commits - that happens when the session scope ends.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    @staticmethod
    def _with_prices() -> Select[tuple[OccurrenceModel]]:
        # joinedload = LEFT OUTER JOIN, so occurrences without prices still come back.
        # Ordered by Id like the collection-include query the schema was designed for.
        return (
            select(OccurrenceModel)
            .options(joinedload(OccurrenceModel.prices))
            .order_by(OccurrenceModel.id)
        )

    async def count(self) -> int:
        """Count stored occurrences."""
        stmt = select(func.count()).select_from(OccurrenceModel)
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def add(self, occurrence: Occurrence) -> Occurrence:
        """Insert an occurrence and write back its id and version token."""
        model = OccurrenceModel.from_entity(occurrence)
        self.session.add(model)
        await self.session.flush()
        occurrence.id = model.id
        occurrence.timestamp = model.timestamp
        return occurrence

    async def add_many(self, occurrences: Sequence[Occurrence]) -> list[Occurrence]:
        """Insert several occurrences with a single flush."""
        models = [OccurrenceModel.from_entity(o) for o in occurrences]
        self.session.add_all(models)
        await self.session.flush()
        for occurrence, model in zip(occurrences, models, strict=True):
            occurrence.id = model.id
            occurrence.timestamp = model.timestamp
        return list(occurrences)

    async def get_by_id(self, occurrence_id: int) -> Occurrence | None:
        """Get an occurrence by id with its prices eager loaded."""
        stmt = self._with_prices().where(OccurrenceModel.id == occurrence_id)
        result = await self.session.execute(stmt)
        model = result.unique().scalar_one_or_none()
        if not model:
            return None
        return model.to_entity()

    # Yo, two layers of optimistic concurrency here. First we only load the row if it still has
    # the token the caller read. Then the ORM's UPDATE itself is "WHERE Id = ? AND Timestamp = ?"
    # (version_id_col), so a writer sneaking in between the SELECT and the UPDATE shows up as
    # StaleDataError. Both end as ConcurrencyConflictException.
    async def update(self, occurrence: Occurrence) -> Occurrence:
        """Update the title of an occurrence, guarded by its version token."""
        if occurrence.id is None:
            raise EntityNotFoundException("Occurrence", None)

        stmt = select(OccurrenceModel).where(OccurrenceModel.id == occurrence.id)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()

        if not model:
            raise EntityNotFoundException("Occurrence", occurrence.id)
        if occurrence.timestamp is not None and model.timestamp != occurrence.timestamp:
            raise ConcurrencyConflictException("Occurrence", occurrence.id)

        model.title = occurrence.title
        try:
            await self.session.flush()
        except StaleDataError as e:
            raise ConcurrencyConflictException("Occurrence", occurrence.id) from e

        occurrence.timestamp = model.timestamp
        logger.debug("Updated occurrence %s", occurrence.id)
        return occurrence

    async def add_price(self, price: Price) -> Price:
        """Insert a price for an existing occurrence."""
        stmt = select(func.count()).where(OccurrenceModel.id == price.occurrence_id)
        exists = (await self.session.execute(stmt)).scalar_one()
        if not exists:
            raise EntityNotFoundException("Occurrence", price.occurrence_id)

        model = PriceModel.from_entity(price)
        self.session.add(model)
        await self.session.flush()
        price.timestamp = model.timestamp
        return price

    async def list_with_prices(self) -> list[Occurrence]:
        """All occurrences with prices, materialized before returning."""
        result = await self.session.execute(self._with_prices())
        return [model.to_entity() for model in result.unique().scalars().all()]

    async def stream_with_prices(self) -> AsyncIterator[Occurrence]:
        """All occurrences with prices, yielded one at a time from a streaming result."""
        result = await self.session.stream(self._with_prices())
        async for model in result.scalars().unique():
            yield model.to_entity()
