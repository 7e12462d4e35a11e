"""Tests for the shared exception-to-result mapping."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import RepositoryError
from app.services.base import ErrorCode


def wrapped(cause):
    error = RepositoryError("Database operation failed")
    error.__cause__ = cause
    return error


@pytest.mark.unit
class TestExceptionMapping:
    """Test which failures callers are told to retry."""

    @pytest.mark.parametrize(
        "exception",
        [
            IntegrityError("INSERT INTO plans", {}, Exception("UNIQUE constraint failed")),
            ProgrammingError("SELECT * FROM missing", {}, Exception("no such table")),
            wrapped(IntegrityError("INSERT INTO plans", {}, Exception("UNIQUE constraint failed"))),
        ],
    )
    def test_constraint_and_sql_errors_are_not_retryable(self, catalog, exception):
        result = catalog._handle_exception(exception, "create plan", entity_ref="plan-1")

        assert result.code == ErrorCode.INTERNAL_ERROR.value
        assert result.error.details == {"entity_ref": "plan-1", "retryable": False}

    @pytest.mark.parametrize(
        "exception",
        [
            OperationalError("UPDATE plans", {}, Exception("database is locked")),
            wrapped(OperationalError("UPDATE plans", {}, Exception("database is locked"))),
            TimeoutError("pool timed out"),
        ],
    )
    def test_lock_and_timeout_errors_are_retryable(self, catalog, exception):
        result = catalog._handle_exception(exception, "update plan")

        assert result.code == ErrorCode.TRANSIENT_ERROR.value
        assert result.error.details["retryable"] is True

    def test_stale_row_is_a_conflict(self, catalog):
        result = catalog._handle_exception(StaleDataError("row changed"), "renew subscription")

        assert result.code == ErrorCode.CONFLICT.value
        assert result.error.details["retryable"] is False

    def test_unknown_error_is_internal(self, catalog):
        result = catalog._handle_exception(RuntimeError("boom"), "list plans")

        assert result.code == ErrorCode.INTERNAL_ERROR.value
        assert result.message == "Failed to list plans"
