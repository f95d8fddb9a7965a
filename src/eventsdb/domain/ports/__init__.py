"""Domain ports - interfaces the infrastructure layer implements."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from eventsdb.domain.entities import Occurrence, Price


class IOccurrenceRepository(ABC):
    """Repository interface for Occurrence aggregates (with their prices)."""

    @abstractmethod
    async def count(self) -> int:
        """Number of stored occurrences."""
        pass

    @abstractmethod
    async def add(self, occurrence: Occurrence) -> Occurrence:
        """Insert an occurrence; id and version token are written back."""
        pass

    @abstractmethod
    async def add_many(self, occurrences: Sequence[Occurrence]) -> list[Occurrence]:
        """Insert several occurrences in one flush."""
        pass

    @abstractmethod
    async def get_by_id(self, occurrence_id: int) -> Occurrence | None:
        """Get an occurrence with its prices, or None."""
        pass

    @abstractmethod
    async def update(self, occurrence: Occurrence) -> Occurrence:
        """Update title, guarded by the occurrence's version token."""
        pass

    @abstractmethod
    async def add_price(self, price: Price) -> Price:
        """Insert a price for an existing occurrence."""
        pass

    @abstractmethod
    async def list_with_prices(self) -> list[Occurrence]:
        """All occurrences with prices, fully materialized."""
        pass

    @abstractmethod
    def stream_with_prices(self) -> AsyncIterator[Occurrence]:
        """All occurrences with prices, produced lazily one at a time."""
        pass
