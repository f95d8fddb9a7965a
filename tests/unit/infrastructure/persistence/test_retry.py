"""Tests for execution strategies and transient-error detection."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from eventsdb.config import DatabaseSettings
from eventsdb.domain.exceptions import (
    RetryLimitExceededException,
    StreamingNotSupportedException,
)
from eventsdb.infrastructure.persistence.retry import (
    NonRetryingExecutionStrategy,
    RetryingExecutionStrategy,
    RetryPolicy,
    create_execution_strategy,
    is_lock_error,
    is_transient_error,
    sql_server_error_numbers,
    with_db_retry,
)


class FakeDriverError(Exception):
    """Stand-in for a DBAPI exception (pyodbc style args: sqlstate, message)."""


def locked_error() -> OperationalError:
    return OperationalError("INSERT ...", {}, Exception("database is locked"))


def sql_server_error(number: int, sqlstate: str = "42000") -> DBAPIError:
    orig = FakeDriverError(
        sqlstate,
        f"[Microsoft][ODBC Driver 18 for SQL Server][SQL Server]Something happened. ({number}) (SQLExecDirectW)",
    )
    return DBAPIError("SELECT ...", {}, orig)


def duplicate_key_error(key: int) -> IntegrityError:
    orig = FakeDriverError(
        "23000",
        "[23000] [Microsoft][ODBC Driver 18 for SQL Server][SQL Server]Violation of PRIMARY KEY "
        "constraint 'pk_Occurrence'. Cannot insert duplicate key in object 'dbo.Occurrence'. "
        f"The duplicate key value is ({key}). (2627) (SQLExecDirectW)",
    )
    return IntegrityError("INSERT ...", {}, orig)


class TestIsTransientError:
    """Which errors are worth retrying."""

    def test_sqlite_lock_is_transient(self) -> None:
        """Test that a SQLite lock is transient."""
        assert is_lock_error(locked_error())
        assert is_transient_error(locked_error())

    def test_deadlock_victim_is_transient(self) -> None:
        """Test that a deadlock victim is transient."""
        assert is_transient_error(sql_server_error(1205))

    def test_azure_unavailable_is_transient(self) -> None:
        """Test that Azure database unavailable is transient."""
        assert is_transient_error(sql_server_error(40613))

    def test_timeout_sqlstate_is_transient(self) -> None:
        """Test that a timeout SQLSTATE is transient."""
        assert is_transient_error(sql_server_error(0, sqlstate="HYT00"))

    def test_unknown_error_number_is_not_transient(self) -> None:
        """Test that an unlisted error number is not transient."""
        assert not is_transient_error(sql_server_error(2627))

    def test_extra_error_numbers_are_honoured(self) -> None:
        """Test extra error numbers are honoured."""
        assert is_transient_error(sql_server_error(50000), frozenset({50000}))

    def test_invalidated_connection_is_transient(self) -> None:
        """Test that an invalidated connection is transient."""
        error = DBAPIError("SELECT 1", {}, FakeDriverError("x"), connection_invalidated=True)
        assert is_transient_error(error)

    def test_integrity_error_is_not_transient(self) -> None:
        """Test that an integrity error is not transient."""
        error = IntegrityError("INSERT ...", {}, Exception("UNIQUE constraint failed"))
        assert not is_transient_error(error)

    def test_plain_exceptions(self) -> None:
        """Test classification of non-driver exceptions."""
        assert is_transient_error(ConnectionResetError())
        assert is_transient_error(TimeoutError())
        assert not is_transient_error(ValueError("nope"))

    def test_error_numbers_are_parsed_from_message(self) -> None:
        """Test error numbers are parsed from message."""
        assert sql_server_error_numbers(sql_server_error(4060)) == {4060}

    def test_duplicate_key_value_is_not_an_error_number(self) -> None:
        """Test that key values echoed in the message are not read as error numbers."""
        error = duplicate_key_error(20)
        assert sql_server_error_numbers(error) == {2627}
        assert not is_transient_error(error)

    def test_every_diagnostic_record_is_checked(self) -> None:
        """Test that each record in a multi-record message contributes its number."""
        orig = FakeDriverError(
            "01000",
            "[01000] [Microsoft][SQL Server]Statement terminated. (3621); "
            "[40001] [Microsoft][SQL Server]Chosen as deadlock victim. (1205) (SQLExecDirectW)",
        )
        assert sql_server_error_numbers(DBAPIError("UPDATE ...", {}, orig)) == {3621, 1205}

    def test_sqlstate_lookalike_in_message_is_ignored(self) -> None:
        """Test that only the bracketed leading SQLSTATE counts."""
        orig = FakeDriverError(
            "23000",
            "[23000] [Microsoft][SQL Server]Cannot insert duplicate key. The duplicate key "
            "value is (HYT00). (2627) (SQLExecDirectW)",
        )
        assert not is_transient_error(IntegrityError("INSERT ...", {}, orig))

    def test_bracketed_sqlstate_in_message_is_transient(self) -> None:
        """Test that a link failure SQLSTATE is read from the message prefix."""
        orig = FakeDriverError("[08S01] [Microsoft][ODBC Driver 18]Communication link failure")
        assert is_transient_error(DBAPIError("SELECT 1", {}, orig))


class TestRetryPolicy:
    """Exponential backoff with a cap."""

    def test_delays_grow_and_cap(self) -> None:
        """Test delays grow and cap."""
        policy = RetryPolicy(initial_delay=0.5, backoff_factor=2.0, max_delay=3.0)
        assert [policy.delay_for(n) for n in range(4)] == [0.5, 1.0, 2.0, 3.0]

    def test_from_settings(self) -> None:
        """Test building a policy from settings."""
        policy = RetryPolicy.from_settings(
            DatabaseSettings(max_retry_count=2, extra_transient_error_numbers=[123])
        )
        assert policy.max_retry_count == 2
        assert policy.extra_error_numbers == frozenset({123})


class TestRetryingExecutionStrategy:
    """Retries re-run the whole operation."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self) -> None:
        """Test succeeds after transient failures."""
        sleep = AsyncMock()
        strategy = RetryingExecutionStrategy(
            RetryPolicy(max_retry_count=3, initial_delay=0.5), sleep=sleep
        )
        operation = AsyncMock(side_effect=[locked_error(), locked_error(), "done"])

        result = await strategy.execute(operation)

        assert result == "done"
        assert operation.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]
        stats = strategy.metrics.get_stats()
        assert stats["retries"] == 2
        assert stats["successes"] == 1
        assert stats["total_wait_time_ms"] == 1500.0

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        """Test gives up after max retries."""
        strategy = RetryingExecutionStrategy(
            RetryPolicy(max_retry_count=2), sleep=AsyncMock()
        )
        last = locked_error()
        operation = AsyncMock(side_effect=[locked_error(), locked_error(), last])

        with pytest.raises(RetryLimitExceededException) as exc_info:
            await strategy.execute(operation)

        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is last
        assert operation.await_count == 3
        assert strategy.metrics.failures == 1

    @pytest.mark.asyncio
    async def test_non_transient_error_fails_fast(self) -> None:
        """Test that a non-transient error fails fast."""
        sleep = AsyncMock()
        strategy = RetryingExecutionStrategy(RetryPolicy(), sleep=sleep)
        operation = AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            await strategy.execute(operation)

        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_integrity_error_propagates_unchanged(self) -> None:
        """Test that a duplicate key error is raised as is, without retries."""
        sleep = AsyncMock()
        strategy = RetryingExecutionStrategy(RetryPolicy(max_retry_count=6), sleep=sleep)
        error = duplicate_key_error(20)
        operation = AsyncMock(side_effect=error)

        with pytest.raises(IntegrityError) as exc_info:
            await strategy.execute(operation)

        assert exc_info.value is error
        assert operation.await_count == 1
        sleep.assert_not_awaited()
        assert strategy.metrics.retries == 0

    @pytest.mark.asyncio
    async def test_zero_retries_runs_once(self) -> None:
        """Test that zero retries runs the operation once."""
        strategy = RetryingExecutionStrategy(RetryPolicy(max_retry_count=0), sleep=AsyncMock())
        operation = AsyncMock(side_effect=locked_error())

        with pytest.raises(RetryLimitExceededException):
            await strategy.execute(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_stream_is_refused_without_calling_factory(self) -> None:
        """Test stream is refused without calling factory."""
        strategy = RetryingExecutionStrategy()
        factory_calls = []

        def factory():
            factory_calls.append(1)
            raise AssertionError("factory must not be called")

        stream = strategy.stream(factory)

        with pytest.raises(StreamingNotSupportedException) as exc_info:
            await stream.__anext__()
        assert exc_info.value.strategy == "RetryingExecutionStrategy"
        assert factory_calls == []
        await stream.aclose()  # type: ignore[attr-defined]


class TestNonRetryingExecutionStrategy:
    """Everything runs once; streams pass straight through."""

    @pytest.mark.asyncio
    async def test_transient_error_propagates(self) -> None:
        """Test transient error propagates."""
        strategy = NonRetryingExecutionStrategy()
        operation = AsyncMock(side_effect=locked_error())

        with pytest.raises(OperationalError):
            await strategy.execute(operation)
        assert operation.await_count == 1
        assert strategy.metrics.failures == 1

    @pytest.mark.asyncio
    async def test_stream_is_lazy_passthrough(self) -> None:
        """Test that the stream passes through lazily."""
        produced = []

        async def numbers():
            for n in range(3):
                produced.append(n)
                yield n

        stream = NonRetryingExecutionStrategy().stream(numbers)

        assert produced == []
        assert await stream.__anext__() == 0
        assert produced == [0]
        assert [n async for n in stream] == [1, 2]


class TestFactoryAndDecorator:
    """create_execution_strategy and with_db_retry."""

    def test_settings_pick_the_strategy(self) -> None:
        """Test settings pick the strategy."""
        assert isinstance(
            create_execution_strategy(DatabaseSettings(retry_on_failure=True)),
            RetryingExecutionStrategy,
        )
        assert isinstance(
            create_execution_strategy(DatabaseSettings(retry_on_failure=False)),
            NonRetryingExecutionStrategy,
        )

    @pytest.mark.asyncio
    async def test_decorator_retries(self) -> None:
        """Test decorator retries."""
        calls = []

        @with_db_retry(RetryPolicy(max_retry_count=2, initial_delay=0.0))
        async def flaky(value: int) -> int:
            calls.append(value)
            if len(calls) < 2:
                raise locked_error()
            return value * 2

        assert await flaky(21) == 42
        assert calls == [21, 21]
        assert flaky.__name__ == "flaky"
