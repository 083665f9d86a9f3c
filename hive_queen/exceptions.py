"""Custom exception hierarchy for the hive-queen governance bot.

This module defines the structured exception hierarchy used across the
governance engine, the webhook server and the scheduled reconciliation jobs.

Exception Hierarchy:
    HiveQueenError (base)
    ├── ConfigurationError
    ├── ExternalServiceError
    ├── CommandError
    └── ReconciliationError

Parse misses and validation failures (cap exceeded, malformed repository
config) are deliberately *not* exceptions: the parser returns ``None`` and
validation failures are reported back to the tracker as comments.

Example Usage:
    >>> from hive_queen.exceptions import ConfigurationError
    >>> try:
    ...     settings = load_app_settings()
    ... except ConfigurationError as e:
    ...     raise SystemExit(e.message)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple


class HiveQueenError(Exception):
    """Base exception for all hive-queen errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(HiveQueenError):
    """Process-level configuration errors.

    Raised when the app credentials or global settings are missing or
    invalid. This is fatal: a run aborts before any unit of work is
    attempted.

    Attributes:
        missing: Names of the environment variables that were missing
    """

    def __init__(self, message: str, missing: Sequence[str] | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            missing: Missing environment variable names, if applicable
        """
        self.missing = list(missing or [])
        super().__init__(message)


class ExternalServiceError(HiveQueenError):
    """External service communication errors.

    Raised when communication with GitHub (REST or GraphQL) or the
    text-generation endpoint fails in a way that is not already
    represented by the client library's own exception type.

    Attributes:
        status_code: HTTP status code (if applicable)
        response_text: Response body text (if applicable)
        headers: Response headers (if applicable)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
            headers: Response headers (if applicable)
        """
        self.status_code = status_code
        self.response_text = response_text
        self.headers = dict(headers or {})

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)
        # Preserve original message (super sets self.message to full_message)
        self.message = message

    @property
    def status(self) -> int | None:
        """HTTP status, under the name the transient-error predicate inspects."""
        return self.status_code


class CommandError(HiveQueenError):
    """A recognised command failed while executing.

    Attributes:
        verb: The command verb that failed
        issue_number: Issue or PR the command was issued on
    """

    def __init__(self, message: str, verb: str | None = None, issue_number: int | None = None) -> None:
        """Initialize exception.

        Args:
            message: Error message
            verb: Command verb
            issue_number: Issue or PR number
        """
        self.verb = verb
        self.issue_number = issue_number

        parts = [message]
        if verb:
            parts.append(f"command: /{verb}")
        if issue_number is not None:
            parts.append(f"issue: #{issue_number}")

        full_message = message if len(parts) == 1 else f"{message} ({', '.join(parts[1:])})"
        super().__init__(full_message)
        self.message = message


class UnitFailure(NamedTuple):
    """One failed unit of work inside a reconciliation batch."""

    repo_full_name: str
    unit_id: str
    error: BaseException


class ReconciliationError(HiveQueenError):
    """Combined failure of a scheduled reconciliation run.

    Raised once, after every unit of the run has been attempted, when at
    least one unit failed. The message states the number of failed units;
    ``errors`` preserves each original exception in encounter order.

    Attributes:
        failures: Failed units as ``(repo_full_name, unit_id, error)``
        errors: The original exceptions, in encounter order
    """

    def __init__(self, failures: Sequence[UnitFailure], job_name: str | None = None) -> None:
        """Initialize exception.

        Args:
            failures: Failed units in encounter order
            job_name: Name of the job that produced the failures
        """
        self.failures = list(failures)
        self.errors: list[BaseException] = [failure.error for failure in self.failures]
        self.job_name = job_name

        count = len(self.failures)
        message = f"{count} unit(s) failed reconciliation"
        if job_name:
            message = f"{message} in {job_name}"
        super().__init__(message)
        if self.errors:
            self.__cause__ = self.errors[0]
