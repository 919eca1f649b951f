"""
Domain exceptions for the Emerge progression engine.

Raised by the parser and the services when input is unusable or an event
could not be committed. They share the `EmergeError` shape, so the
dispatcher routes them with the same helpers as infrastructure errors.

- `MalformedEventError` is never retryable: a payload that failed to parse
  fails the same way on redelivery.
- `ProgressionApplyError` is always retryable: nothing was committed and the
  event should come back.
"""

from __future__ import annotations

from typing import Optional

from emerge.core.exceptions import (
    EmergeError,
    ErrorSeverity,
    get_error_severity,
    is_transient_error,
    should_alert,
)


class EmergeDomainException(EmergeError):
    """Base for errors about activity content and progression rules."""


class ValidationError(EmergeDomainException):
    """A service argument failed validation (blank user id and the like)."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class MalformedEventError(EmergeDomainException):
    """
    An activity payload could not be turned into an ActivityEvent.

    Covers missing identifiers, out-of-vocabulary enum values, invalid
    streak counters and events addressed to a different user.

    Args:
        reason: Why the payload was rejected
        field: Offending payload key, if a single one is to blame
        event_id: Event id from the payload, when it could be read
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(
        self,
        reason: str,
        field: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> None:
        self.reason = reason
        self.field = field
        self.event_id = event_id
        super().__init__(
            f"Malformed activity event: {reason}",
            details={"reason": reason, "field": field, "event_id": event_id},
            error_code="MALFORMED_EVENT",
        )


class ProgressionApplyError(EmergeDomainException):
    """
    An activity could not be committed after retrying transient failures.

    Args:
        user_id: Owner of the progression record
        event_id: Activity event that failed to apply
        attempts: Transaction attempts made
        original_error: Last error raised by the store
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        user_id: str,
        event_id: str,
        attempts: int,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.user_id = user_id
        self.event_id = event_id
        self.attempts = attempts
        self.original_error = original_error
        super().__init__(
            f"Failed to apply event {event_id} for user {user_id} "
            f"after {attempts} attempt(s)",
            details={
                "user_id": user_id,
                "event_id": event_id,
                "attempts": attempts,
                "error": str(original_error) if original_error else None,
                "error_type": type(original_error).__name__ if original_error else None,
            },
            error_code="PROGRESSION_APPLY_FAILED",
        )


__all__ = [
    "EmergeDomainException",
    "MalformedEventError",
    "ProgressionApplyError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]
