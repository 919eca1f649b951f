"""
Database subsystem: engine/session management, declarative base, retry policy.
"""

from emerge.core.database.base import Base, TimestampMixin
from emerge.core.database.retry_policy import (
    RetryConfig,
    RetryStats,
    TransactionRetryPolicy,
)
from emerge.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "RetryConfig",
    "RetryStats",
    "TransactionRetryPolicy",
]
