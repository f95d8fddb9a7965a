"""Shared fixtures: SQLite databases on disk, one per test."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from eventsdb.config import DatabaseSettings, LoggingSettings, Settings
from eventsdb.infrastructure.persistence import Database


def make_settings(db_path: Path, retry_on_failure: bool) -> Settings:
    """Settings for an on-disk SQLite database with schema creation enabled."""
    return Settings(
        database=DatabaseSettings(
            url=f"sqlite+aiosqlite:///{db_path}",
            retry_on_failure=retry_on_failure,
            create_schema=True,
            initial_retry_delay=0.0,
        ),
        logging=LoggingSettings(level="DEBUG", log_sql=False),
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings without retry on failure."""
    return make_settings(tmp_path / "events.db", retry_on_failure=False)


@pytest.fixture
def retrying_settings(tmp_path: Path) -> Settings:
    """Settings with retry on failure (the default configuration)."""
    return make_settings(tmp_path / "events.db", retry_on_failure=True)


@pytest_asyncio.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Database with tables created and a non-retrying strategy."""
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def retrying_database(
    retrying_settings: Settings,
) -> AsyncGenerator[Database, None]:
    """Database with tables created and retry on failure enabled."""
    db = Database(retrying_settings)
    await db.create_tables()
    yield db
    await db.close()
