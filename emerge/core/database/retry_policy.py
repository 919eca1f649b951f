"""
Transaction Retry Policy

Purpose
-------
Execute an async read-modify-write with bounded retries, exponential backoff
and jitter when the store reports a transient failure (write conflict,
dropped connection, deadlock).

Responsibilities
----------------
- Classify errors as retriable or non-retriable
- Back off exponentially, capped, with random jitter
- Log every failed attempt and the final give-up with structured context
- Keep simple per-policy counters for health snapshots

Non-Responsibilities
--------------------
- Transaction management (the operation opens its own transaction)
- Translating the final error for callers (services do that)

Architecture Notes
------------------
**Retry Classification**:
- Retriable: TransactionConflictError, OperationalError, driver errors that
  invalidated the connection or carry SQLSTATE 40001/40P01, and any
  infrastructure exception flagged `is_retryable`
- IntegrityError, DataError, ProgrammingError: raised on the first attempt
- Non-retriable: everything else, raised immediately

**Backoff Strategy**:
- Formula: min(initial * 2^(attempt-1), max) + random(0, jitter)

Retry Patterns
--------------
Retry the whole operation, including the transaction it opens:

```python
async def operation():
    async with store.transaction(user_id) as tx:
        ...

await retry_policy.execute(operation, operation_name="progression.apply")
```

Never call `execute` from inside an open transaction.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from emerge.core.config.config import Config
from emerge.core.exceptions import TransactionConflictError, is_transient_error
from emerge.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class RetryConfig:
    """
    Retry behavior for transactional operations.

    Attributes
    ----------
    max_attempts : int
        Maximum number of attempts, including the first one.
    initial_backoff_ms : int
        Backoff before the second attempt.
    max_backoff_ms : int
        Upper bound for the exponential part of the backoff.
    jitter_ms : int
        Maximum random jitter added on top.
    retriable_exceptions : Tuple[Type[BaseException], ...]
        Exception types considered transient.
    """

    max_attempts: int = 5
    initial_backoff_ms: int = 20
    max_backoff_ms: int = 500
    jitter_ms: int = 20
    retriable_exceptions: Tuple[Type[BaseException], ...] = (
        TransactionConflictError,
        OperationalError,
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if min(self.initial_backoff_ms, self.max_backoff_ms, self.jitter_ms) < 0:
            raise ValueError("backoff and jitter durations must be non-negative")

    @classmethod
    def from_config(cls) -> RetryConfig:
        """Build from the PROGRESSION_RETRY_* settings on Config."""
        return cls(
            max_attempts=Config.PROGRESSION_RETRY_MAX_ATTEMPTS,
            initial_backoff_ms=Config.PROGRESSION_RETRY_INITIAL_BACKOFF_MS,
            max_backoff_ms=Config.PROGRESSION_RETRY_MAX_BACKOFF_MS,
            jitter_ms=Config.PROGRESSION_RETRY_JITTER_MS,
        )


@dataclass
class RetryStats:
    attempts: int = 0
    retries: int = 0
    give_ups: int = 0
    errors_by_type: Dict[str, int] = field(default_factory=dict)


# ============================================================================
# Retry Policy
# ============================================================================


class TransactionRetryPolicy:
    """
    Execute async operations with retry semantics for transient failures.

    Usage
    -----
    >>> policy = TransactionRetryPolicy.from_config()
    >>> await policy.execute(do_apply, operation_name="progression.apply")
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config or RetryConfig()
        self._sleep = sleep
        self.stats = RetryStats()

    @classmethod
    def from_config(cls) -> TransactionRetryPolicy:
        return cls(RetryConfig.from_config())

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    def is_retriable(self, exc: BaseException) -> bool:
        if isinstance(exc, self._config.retriable_exceptions):
            return True
        if isinstance(exc, DBAPIError):
            # constraint, data and syntax errors fail the same way every time
            return exc.connection_invalidated or _sqlstate(exc) in TRANSIENT_SQLSTATES
        return is_transient_error(exc)

    def compute_backoff_ms(self, attempt: int) -> int:
        """
        Backoff before the attempt that follows `attempt` (1-indexed).

        min(initial * 2^(attempt-1), max) + random(0, jitter)
        """
        exponent = max(attempt - 1, 0)
        capped = min(
            self._config.initial_backoff_ms * (2**exponent),
            self._config.max_backoff_ms,
        )
        jitter = (
            random.randint(0, self._config.jitter_ms)
            if self._config.jitter_ms > 0
            else 0
        )
        return capped + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> T:
        """
        Run `operation`, retrying retriable failures up to `max_attempts`.

        Raises
        ------
        BaseException
            The last exception, once retries are exhausted, or the first
            non-retriable exception.
        """
        ctx_extra = dict(context or {})
        ctx_extra["operation"] = operation_name

        attempt = 0
        while True:
            attempt += 1
            self.stats.attempts += 1

            try:
                return await operation()
            except Exception as exc:
                error_type = type(exc).__name__
                retriable = self.is_retriable(exc)
                will_retry = retriable and attempt < self._config.max_attempts
                self.stats.errors_by_type[error_type] = (
                    self.stats.errors_by_type.get(error_type, 0) + 1
                )

                logger.warning(
                    "Transactional operation failed",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": error_type,
                        "retriable": retriable,
                        "will_retry": will_retry,
                    },
                )

                if not will_retry:
                    self.stats.give_ups += 1
                    logger.error(
                        "Transactional operation retries exhausted or not retriable",
                        extra={
                            **ctx_extra,
                            "attempt": attempt,
                            "error_type": error_type,
                            "retriable": retriable,
                            "max_attempts": self._config.max_attempts,
                        },
                    )
                    raise

                backoff_ms = self.compute_backoff_ms(attempt)
                self.stats.retries += 1
                logger.debug(
                    "Backing off before retry",
                    extra={**ctx_extra, "attempt": attempt, "backoff_ms": backoff_ms},
                )
                await self._sleep(backoff_ms / 1000.0)
