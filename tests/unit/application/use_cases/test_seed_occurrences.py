"""Unit tests for SeedOccurrencesUseCase with a mocked Database."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from eventsdb.application.use_cases.seed_occurrences import (
    SeedOccurrencesRequest,
    SeedOccurrencesResponse,
    SeedOccurrencesUseCase,
)
from eventsdb.domain.exceptions import ValidationException


def database_running_with(session: MagicMock) -> MagicMock:
    """A Database stub whose run() calls the operation with the given session."""
    database = MagicMock()

    async def run(operation):
        return await operation(session)

    database.run = AsyncMock(side_effect=run)
    return database


class TestSeedOccurrencesRequest:
    """Request defaults match the original seed."""

    def test_default_titles(self) -> None:
        """Test default titles."""
        assert SeedOccurrencesRequest().titles() == [f"Test {i}" for i in range(10)]

    def test_custom_prefix_and_count(self) -> None:
        """Test custom prefix and count."""
        assert SeedOccurrencesRequest(count=2, title_prefix="Gig ").titles() == [
            "Gig 0",
            "Gig 1",
        ]


class TestSeedOccurrencesUseCase:
    """Seeding only happens on an empty table."""

    @pytest.mark.asyncio
    async def test_seeds_when_empty(self) -> None:
        """Test that the use case seeds an empty table."""
        session = MagicMock()
        repo = MagicMock()
        repo.count = AsyncMock(return_value=0)
        repo.add_many = AsyncMock(side_effect=lambda occurrences: occurrences)

        with patch(
            "eventsdb.application.use_cases.seed_occurrences.OccurrenceRepository",
            return_value=repo,
        ):
            response = await SeedOccurrencesUseCase(database_running_with(session)).execute(
                SeedOccurrencesRequest()
            )

        assert response == SeedOccurrencesResponse(created=10, total=10)
        inserted = repo.add_many.await_args.args[0]
        assert [o.title for o in inserted] == [f"Test {i}" for i in range(10)]
        assert all(o.prices == [] for o in inserted)

    @pytest.mark.asyncio
    async def test_skips_when_rows_exist(self) -> None:
        """Test that the use case skips when rows exist."""
        repo = MagicMock()
        repo.count = AsyncMock(return_value=3)
        repo.add_many = AsyncMock()

        with patch(
            "eventsdb.application.use_cases.seed_occurrences.OccurrenceRepository",
            return_value=repo,
        ):
            response = await SeedOccurrencesUseCase(
                database_running_with(MagicMock())
            ).execute(SeedOccurrencesRequest())

        assert response.created == 0
        assert response.total == 3
        assert not response.seeded
        repo.add_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_negative_count_rejected(self) -> None:
        """Test that a negative count is rejected."""
        database = MagicMock()
        database.run = AsyncMock()

        with pytest.raises(ValidationException):
            await SeedOccurrencesUseCase(database).execute(SeedOccurrencesRequest(count=-1))
        database.run.assert_not_awaited()
