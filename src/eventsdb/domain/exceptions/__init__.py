"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - use a specific subclass so callers can catch
    # precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when entity validation fails (title too long, bad currency code)."""

    pass


# Listen up, this is what optimistic concurrency looks like from the outside: the UPDATE ran
# with "WHERE Timestamp = <token we read>" and matched zero rows, so somebody else changed the
# row since we loaded it. Reload and reapply - never just retry the same write blindly.
class ConcurrencyConflictException(DomainException):
    """Raised when a row's version token changed between read and write."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity_type} with id {entity_id} was modified by another writer"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class RetryLimitExceededException(DomainException):
    """Raised when a transient database error persists after every retry."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"Operation failed after {attempts} attempts: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


# Hey future me - this is the known-failing path! A retrying execution strategy re-runs the
# WHOLE query after a transient failure. A lazy stream has already handed rows to the caller,
# so a re-run would either duplicate them or silently restart. Instead of guessing, the
# retrying strategy refuses lazy streams outright. Use the buffered read, or turn off
# retry_on_failure, until there is a real answer for replaying partially consumed streams.
class StreamingNotSupportedException(DomainException):
    """Raised when a lazy result stream is requested under a retrying strategy."""

    def __init__(self, strategy: str) -> None:
        super().__init__(
            f"{strategy} does not support lazily streamed results; "
            "materialize the query or disable retry_on_failure"
        )
        self.strategy = strategy


__all__ = [
    "ConcurrencyConflictException",
    "DomainException",
    "EntityNotFoundException",
    "RetryLimitExceededException",
    "StreamingNotSupportedException",
    "ValidationException",
]
