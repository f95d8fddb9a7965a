"""Application use cases - business logic orchestration."""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")


class UseCase(ABC, Generic[TRequest, TResponse]):
    """Base class for all use cases following command pattern."""

    @abstractmethod
    async def execute(self, request: TRequest) -> TResponse:
        """Execute the use case with the given request."""
        pass


# Import concrete use cases (after UseCase definition to avoid circular imports)
from eventsdb.application.use_cases.list_occurrences import (  # noqa: E402
    ListOccurrencesRequest,
    ListOccurrencesResponse,
    ListOccurrencesUseCase,
    ReadMode,
)
from eventsdb.application.use_cases.seed_occurrences import (  # noqa: E402
    SeedOccurrencesRequest,
    SeedOccurrencesResponse,
    SeedOccurrencesUseCase,
)

__all__ = [
    "UseCase",
    "ListOccurrencesRequest",
    "ListOccurrencesResponse",
    "ListOccurrencesUseCase",
    "ReadMode",
    "SeedOccurrencesRequest",
    "SeedOccurrencesResponse",
    "SeedOccurrencesUseCase",
]
