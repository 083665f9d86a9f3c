"""Tests for hive_queen.exceptions module."""

import pytest

from hive_queen.exceptions import (
    CommandError,
    ConfigurationError,
    ExternalServiceError,
    HiveQueenError,
    ReconciliationError,
    UnitFailure,
)


class TestHiveQueenError:
    """Test base HiveQueenError class."""

    def test_init_with_message(self):
        error = HiveQueenError("Test error message")

        assert error.message == "Test error message"
        assert str(error) == "Test error message"

    @pytest.mark.parametrize("cls", [ConfigurationError, ExternalServiceError, CommandError, ReconciliationError])
    def test_subclasses_caught_by_base(self, cls):
        assert issubclass(cls, HiveQueenError)


class TestConfigurationError:
    def test_missing_variables(self):
        error = ConfigurationError("Missing required environment variables", missing=["APP_ID", "WEBHOOK_SECRET"])

        assert error.missing == ["APP_ID", "WEBHOOK_SECRET"]

    def test_missing_defaults_to_empty(self):
        assert ConfigurationError("bad").missing == []


class TestExternalServiceError:
    """Test ExternalServiceError."""

    def test_status_in_str_not_in_message(self):
        error = ExternalServiceError("GraphQL request failed", status_code=502, response_text="Bad Gateway")

        assert str(error) == "GraphQL request failed (HTTP 502)"
        assert error.message == "GraphQL request failed"
        assert error.response_text == "Bad Gateway"
        assert error.status == 502

    def test_without_status(self):
        error = ExternalServiceError("timeout")

        assert str(error) == "timeout"
        assert error.status is None
        assert error.headers == {}


class TestCommandError:
    def test_context_in_str(self):
        error = CommandError("already voting", verb="vote", issue_number=5)

        assert str(error) == "already voting (command: /vote, issue: #5)"
        assert error.message == "already voting"


class TestReconciliationError:
    """Test the combined reconciliation failure."""

    def test_counts_failures_and_keeps_order(self):
        first, second = RuntimeError("first"), ValueError("second")
        error = ReconciliationError(
            [UnitFailure("acme/hive", "pr#50", first), UnitFailure("acme/comb", "issue#3", second)],
            job_name="merge-ready",
        )

        assert error.message == "2 unit(s) failed reconciliation in merge-ready"
        assert error.errors == [first, second]
        assert error.__cause__ is first

    def test_single_failure(self):
        error = ReconciliationError([UnitFailure("acme/hive", "pr#50", RuntimeError("x"))])

        assert len(error.errors) == 1
        assert "1" in error.message
