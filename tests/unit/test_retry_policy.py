"""
Unit tests for TransactionRetryPolicy.
"""

import pytest
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError

from emerge.core.database.retry_policy import RetryConfig, TransactionRetryPolicy
from emerge.core.exceptions import CacheError, ConfigurationError, TransactionConflictError


class RecordingSleep:
    def __init__(self) -> None:
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class DriverError(Exception):
    def __init__(self, sqlstate=None):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def flaky(failures, error_factory, value="done"):
    calls = {"n": 0}

    async def operation():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise error_factory()
        return value

    return operation, calls


@pytest.mark.unit
class TestRetryConfig:
    def test_defaults(self):
        config = RetryConfig()

        assert config.max_attempts == 5
        assert config.initial_backoff_ms == 20
        assert config.max_backoff_ms == 500

    @pytest.mark.parametrize(
        "kwargs", [{"max_attempts": 0}, {"jitter_ms": -1}, {"initial_backoff_ms": -5}]
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            RetryConfig(**kwargs)


@pytest.mark.unit
class TestBackoff:
    def test_exponential_and_capped_without_jitter(self):
        policy = TransactionRetryPolicy(
            RetryConfig(initial_backoff_ms=20, max_backoff_ms=100, jitter_ms=0)
        )

        assert [policy.compute_backoff_ms(a) for a in range(1, 6)] == [20, 40, 80, 100, 100]

    def test_jitter_bounded(self):
        policy = TransactionRetryPolicy(
            RetryConfig(initial_backoff_ms=20, max_backoff_ms=500, jitter_ms=10)
        )

        for _ in range(50):
            assert 20 <= policy.compute_backoff_ms(1) <= 30


@pytest.mark.unit
class TestExecute:
    async def test_success_after_conflicts(self):
        sleep = RecordingSleep()
        policy = TransactionRetryPolicy(RetryConfig(jitter_ms=0), sleep=sleep)
        operation, calls = flaky(2, lambda: TransactionConflictError("u1"))

        result = await policy.execute(operation, operation_name="test")

        assert result == "done"
        assert calls["n"] == 3
        assert sleep.delays == [0.02, 0.04]
        assert policy.stats.retries == 2
        assert policy.stats.errors_by_type == {"TransactionConflictError": 2}

    async def test_gives_up_after_max_attempts(self):
        policy = TransactionRetryPolicy(RetryConfig(max_attempts=3), sleep=RecordingSleep())
        operation, calls = flaky(10, lambda: TransactionConflictError("u1"))

        with pytest.raises(TransactionConflictError):
            await policy.execute(operation, operation_name="test")

        assert calls["n"] == 3
        assert policy.stats.give_ups == 1

    async def test_non_retriable_raised_immediately(self):
        sleep = RecordingSleep()
        policy = TransactionRetryPolicy(sleep=sleep)
        operation, calls = flaky(1, lambda: KeyError("missing"))

        with pytest.raises(KeyError):
            await policy.execute(operation, operation_name="test")

        assert calls["n"] == 1
        assert sleep.delays == []

    async def test_sqlalchemy_operational_error_retried(self):
        policy = TransactionRetryPolicy(sleep=RecordingSleep())
        operation, calls = flaky(
            1, lambda: OperationalError("SELECT 1", {}, Exception("deadlock detected"))
        )

        assert await policy.execute(operation, operation_name="test") == "done"
        assert calls["n"] == 2

    def test_classification_follows_retryable_flag(self):
        policy = TransactionRetryPolicy()

        assert policy.is_retriable(CacheError("GET", "k"))
        assert not policy.is_retriable(ConfigurationError("k", "bad"))
        assert not policy.is_retriable(ValueError("x"))

    async def test_integrity_error_not_retried(self):
        sleep = RecordingSleep()
        policy = TransactionRetryPolicy(sleep=sleep)
        operation, calls = flaky(
            1, lambda: IntegrityError("INSERT", {}, DriverError("23514"))
        )

        with pytest.raises(IntegrityError):
            await policy.execute(operation, operation_name="test")

        assert calls["n"] == 1
        assert sleep.delays == []

    async def test_serialization_failure_retried(self):
        policy = TransactionRetryPolicy(sleep=RecordingSleep())
        operation, calls = flaky(2, lambda: DBAPIError("UPDATE", {}, DriverError("40001")))

        assert await policy.execute(operation, operation_name="test") == "done"
        assert calls["n"] == 3

    @pytest.mark.parametrize(
        "error,retriable",
        [
            (DBAPIError("UPDATE", {}, DriverError("40P01")), True),
            (DBAPIError("SELECT 1", {}, DriverError(), connection_invalidated=True), True),
            (DBAPIError("SELECT 1", {}, DriverError("XX000")), False),
            (IntegrityError("INSERT", {}, DriverError("23505")), False),
            (DataError("INSERT", {}, DriverError("22003")), False),
        ],
        ids=["deadlock", "dropped-connection", "internal", "constraint", "data"],
    )
    def test_driver_error_classification(self, error, retriable):
        assert TransactionRetryPolicy().is_retriable(error) is retriable
