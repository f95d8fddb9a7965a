"""Database session management."""

import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import aclosing, asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from eventsdb.config import Settings

from .retry import ExecutionStrategy, create_execution_strategy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Database:
    """Database connection, session and execution-strategy manager.

    Hey future me - there is NO global Database. Whoever needs one builds it from an explicit
    Settings object and passes it down. Each unit of work gets its own session via
    session_scope()/run()/stream(); sessions are never shared between steps.
    """

    def __init__(
        self, settings: Settings, strategy: ExecutionStrategy | None = None
    ) -> None:
        """Initialize database with settings."""
        self.settings = settings
        db = settings.database
        self.url = db.resolved_url

        engine_kwargs: dict[str, Any] = {
            "echo": db.echo,
            "pool_pre_ping": db.pool_pre_ping,
            "hide_parameters": not db.sensitive_data_logging,
        }
        if db.is_sqlite:
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": db.connect_timeout,  # Wait this long for a lock
            }

        self._engine = create_async_engine(self.url, **engine_kwargs)

        if db.is_sqlite:
            self._enable_sqlite_foreign_keys()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self.strategy = strategy or create_execution_strategy(db)
        logger.debug(
            "Database configured (dialect=%s, strategy=%s)",
            self._engine.dialect.name,
            type(self.strategy).__name__,
        )

    @property
    def dialect_name(self) -> str:
        """Name of the SQLAlchemy dialect in use (sqlite, mssql, ...)."""
        return self._engine.dialect.name

    def _enable_sqlite_foreign_keys(self) -> None:
        """Enable foreign key constraints for SQLite.

        SQLite has foreign keys disabled by default. This method enables them
        for all connections.
        """

        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            """Set SQLite pragmas on connection."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            logger.debug("Enabled foreign keys for SQLite connection")

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                # Intentionally broad to keep the transaction clean; always re-raised.
                # Cancellation and closed streams skip this and rely on close() below.
                await session.rollback()
                raise
            finally:
                await session.close()

    async def run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run operation in its own session through the execution strategy.

        With retry on failure, a failed attempt's session is rolled back and closed and
        the operation is called again with a brand new session.
        """

        async def attempt() -> T:
            async with self.session_scope() as session:
                return await operation(session)

        attempt.__qualname__ = getattr(operation, "__qualname__", attempt.__qualname__)
        return await self.strategy.execute(attempt)

    def stream(
        self, operation: Callable[[AsyncSession], AsyncIterator[T]]
    ) -> AsyncIterator[T]:
        """Lazily produce operation's items, holding one session open while iterating.

        The session is opened on the first pull and released when the iterator is
        exhausted, fails, or is closed. Close abandoned iterators with
        ``contextlib.aclosing``.
        """

        async def scoped() -> AsyncGenerator[T, None]:
            async with self.session_scope() as session:
                async with aclosing(operation(session)) as items:  # type: ignore[type-var]
                    async for item in items:
                        yield item

        return self.strategy.stream(scoped)

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables (tests and SQLite development databases)."""
        from eventsdb.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    def get_pool_stats(self) -> dict[str, Any]:
        """Get connection pool statistics for monitoring.

        Returns empty-ish info for SQLite as it doesn't use real connection pooling.
        """
        if self.settings.database.is_sqlite:
            return {
                "pool_type": "sqlite",
                "note": "SQLite does not use connection pooling",
            }

        pool = self._engine.pool
        return {
            "pool_size": getattr(pool, "size", lambda: 0)(),
            "checked_out": getattr(pool, "checkedout", lambda: 0)(),
            "overflow": getattr(pool, "overflow", lambda: 0)(),
            "checked_in": getattr(pool, "checkedin", lambda: 0)(),
        }
