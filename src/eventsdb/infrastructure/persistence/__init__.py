"""Infrastructure persistence layer."""

from .database import Database
from .models import Base, OccurrenceModel, PriceModel
from .repositories import OccurrenceRepository
from .retry import (
    ExecutionMetrics,
    ExecutionStrategy,
    NonRetryingExecutionStrategy,
    RetryingExecutionStrategy,
    RetryPolicy,
    create_execution_strategy,
    is_lock_error,
    is_transient_error,
    with_db_retry,
)
from .types import RowVersion

__all__ = [
    # Database
    "Database",
    "Base",
    # Models
    "OccurrenceModel",
    "PriceModel",
    "RowVersion",
    # Repositories
    "OccurrenceRepository",
    # Execution strategies
    "ExecutionMetrics",
    "ExecutionStrategy",
    "NonRetryingExecutionStrategy",
    "RetryingExecutionStrategy",
    "RetryPolicy",
    "create_execution_strategy",
    "is_lock_error",
    "is_transient_error",
    "with_db_retry",
]
