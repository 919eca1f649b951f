"""
Exception foundations for the Emerge progression backend.

Purpose
-------
One structured error shape for the whole engine, plus the infrastructure
errors raised by stores, caches and configuration.

Error Shape
-----------
Every `EmergeError` carries:
  - `message`: readable text, also the `str()` payload
  - `details`: JSON-friendly context for structured logs
  - `severity`: how loudly handlers should log it
  - `is_retryable`: True when repeating the same call may succeed
  - `error_code`: stable identifier, defaults to the class name

Hierarchy
---------
EmergeError
├── EmergeInfrastructureException (here)
│   ├── ConfigurationError
│   ├── DatabaseError
│   ├── TransactionConflictError
│   └── CacheError
└── EmergeDomainException (emerge.modules.shared.exceptions)

`is_transient_error`, `get_error_severity` and `should_alert` classify any
exception, Emerge or not, for retry loops and log routing.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"  # expected rejections, e.g. malformed payloads
    WARNING = "warning"  # handled and usually retried
    ERROR = "error"
    CRITICAL = "critical"  # misconfiguration, the process cannot do its job


class EmergeError(Exception):
    """
    Base class for every error the engine raises on purpose.

    Subclasses set `DEFAULT_SEVERITY` / `DEFAULT_RETRYABLE` and usually pass a
    fixed `error_code`; callers may override either per instance.
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = (
            self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        )
        self.error_code = error_code or type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view for API bodies and dead-letter records."""
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | Details: {self.details}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, "
            f"error_code={self.error_code!r}, severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r})"
        )


def _describe(error: Optional[BaseException]) -> Dict[str, Optional[str]]:
    if error is None:
        return {"error": None, "error_type": None}
    return {"error": str(error), "error_type": type(error).__name__}


# ============================================================================
# Infrastructure errors
# ============================================================================


class EmergeInfrastructureException(EmergeError):
    """Failure in storage, caching or configuration rather than in the rules."""


class ConfigurationError(EmergeInfrastructureException):
    """A configuration key is missing, unreadable or out of range."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class DatabaseError(EmergeInfrastructureException):
    """
    A store operation failed for a reason other than a write race.

    Args:
        operation: What the store was doing, e.g. "commit"
        original_error: Driver or ORM exception
    """

    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Database error during {operation}: {original_error}",
            details={"operation": operation, **_describe(original_error)},
            error_code="DATABASE_ERROR",
        )


class TransactionConflictError(EmergeInfrastructureException):
    """
    A per-user read-modify-write lost a race with another writer.

    The store raises it; `TransactionRetryPolicy` re-runs the whole
    transaction against the fresh row.

    Args:
        user_id: Owner of the contended record
        expected_version: Version seen when the transaction read the row
        actual_version: Version found at commit time, when known
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        user_id: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ) -> None:
        self.user_id = user_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent update detected for progression of user {user_id}",
            details={
                "user_id": user_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
            error_code="TRANSACTION_CONFLICT",
        )


class CacheError(EmergeInfrastructureException):
    """
    A cache backend call failed. Callers fall back to the store.

    Args:
        operation: Backend command, e.g. "GET"
        cache_key: Key involved
        original_error: Transport exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        cache_key: str,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.operation = operation
        self.cache_key = cache_key
        self.original_error = original_error
        reason = str(original_error) if original_error else "no response"
        super().__init__(
            f"Cache {operation} failed for key '{cache_key}': {reason}",
            details={
                "operation": operation,
                "cache_key": cache_key,
                **_describe(original_error),
            },
            error_code="CACHE_ERROR",
        )


# ============================================================================
# Classification helpers
# ============================================================================


def is_transient_error(exc: BaseException) -> bool:
    """True for Emerge errors flagged retryable; foreign exceptions are not."""
    return isinstance(exc, EmergeError) and exc.is_retryable


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, EmergeError):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """True when the error should reach an on-call log level (ERROR or above)."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
