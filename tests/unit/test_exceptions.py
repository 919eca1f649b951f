"""
Unit tests for exception classification helpers.
"""

import pytest

from emerge.core import exceptions as infra
from emerge.core.exceptions import (
    ConfigurationError,
    DatabaseError,
    ErrorSeverity,
    TransactionConflictError,
)
from emerge.modules.shared import exceptions as domain
from emerge.modules.shared.exceptions import (
    MalformedEventError,
    ProgressionApplyError,
    ValidationError,
)


@pytest.mark.unit
class TestDomainExceptions:
    def test_apply_error_serializes(self):
        error = ProgressionApplyError("u1", "e1", 5, TransactionConflictError("u1"))

        data = error.to_dict()

        assert data["error_code"] == "PROGRESSION_APPLY_FAILED"
        assert data["severity"] == "warning"
        assert data["is_retryable"] is True
        assert data["details"]["error_type"] == "TransactionConflictError"
        assert str(error).startswith("[PROGRESSION_APPLY_FAILED]")

    def test_validation_error_code(self):
        assert ValidationError("user_id", "blank").error_code == "VALIDATION_USER_ID"

    @pytest.mark.parametrize(
        "exc,transient,alert",
        [
            (MalformedEventError("bad"), False, False),
            (ProgressionApplyError("u1", "e1", 5), True, False),
            (RuntimeError("boom"), False, True),
        ],
    )
    def test_classification(self, exc, transient, alert):
        assert domain.is_transient_error(exc) is transient
        assert domain.should_alert(exc) is alert


@pytest.mark.unit
class TestInfrastructureExceptions:
    def test_conflict_details(self):
        error = TransactionConflictError("u1", expected_version=3, actual_version=4)

        assert error.details == {"user_id": "u1", "expected_version": 3, "actual_version": 4}
        assert infra.is_transient_error(error)
        assert infra.get_error_severity(error) is ErrorSeverity.WARNING

    def test_configuration_error_alerts(self):
        error = ConfigurationError("cache.ttl.insight", "must be positive")

        assert not infra.is_transient_error(error)
        assert infra.should_alert(error)

    def test_database_error_keeps_original(self):
        original = ConnectionError("reset")
        error = DatabaseError("commit", original)

        assert error.original_error is original
        assert error.is_retryable
