"""
Abstract base classes for the external collaborators.

The governance engine never talks to GitHub or a model endpoint directly.
It goes through these interfaces so the evaluators stay testable with mocks
and the transport details stay in the provider implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from hive_queen.models.domain import (
    CheckRunsSummary,
    CombinedStatus,
    Comment,
    Issue,
    LinkedIssue,
    PullRequest,
    Reaction,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


class IssueTracker(ABC):
    """Issue and pull request operations for one repository.

    Implementations propagate API errors unchanged; callers decide whether
    an error is transient using ``hive_queen.utils.transient``.
    """

    owner: str
    repo: str

    @property
    def repo_full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    # Issues and labels

    @abstractmethod
    async def get_issue(self, number: int) -> Issue:
        """Fetch an issue (or a pull request through the issues API)."""
        pass

    @abstractmethod
    async def list_issues(self, label: str) -> list[Issue]:
        """List open issues carrying ``label``, pull requests excluded."""
        pass

    @abstractmethod
    async def get_labels(self, number: int) -> list[str]:
        pass

    @abstractmethod
    async def add_labels(self, number: int, labels: list[str]) -> None:
        pass

    @abstractmethod
    async def remove_label(self, number: int, label: str) -> None:
        """Remove a label; removing a label that is not present is a no-op."""
        pass

    @abstractmethod
    async def get_label_added_time(self, number: int, label: str) -> datetime | None:
        """When ``label`` was most recently added, or None if never."""
        pass

    @abstractmethod
    async def close_issue(self, number: int, reason: str = "not_planned") -> None:
        pass

    @abstractmethod
    async def lock_issue(self, number: int, reason: str = "resolved") -> None:
        pass

    @abstractmethod
    async def unlock_issue(self, number: int) -> None:
        pass

    # Comments and reactions

    @abstractmethod
    async def list_comments(self, number: int) -> list[Comment]:
        """All comments on an issue or pull request, oldest first."""
        pass

    @abstractmethod
    async def create_comment(self, number: int, body: str) -> Comment:
        pass

    @abstractmethod
    async def update_comment(self, number: int, comment_id: int, body: str) -> None:
        pass

    @abstractmethod
    async def list_comment_reactions(self, number: int, comment_id: int) -> list[Reaction]:
        pass

    @abstractmethod
    async def add_comment_reaction(self, number: int, comment_id: int, content: str) -> None:
        pass

    # Pull requests

    @abstractmethod
    async def get_pull_request(self, number: int) -> PullRequest:
        pass

    @abstractmethod
    async def list_pull_requests(self, label: str | None = None) -> list[PullRequest]:
        """List open pull requests, optionally only those carrying ``label``."""
        pass

    @abstractmethod
    async def close_pull_request(self, number: int) -> None:
        pass

    @abstractmethod
    async def get_approvers(self, number: int) -> set[str]:
        """Lowercased logins whose latest review is an approval."""
        pass

    @abstractmethod
    async def get_check_runs(self, sha: str) -> CheckRunsSummary:
        pass

    @abstractmethod
    async def get_combined_status(self, sha: str) -> CombinedStatus:
        pass

    @abstractmethod
    async def get_latest_author_activity(self, number: int, since: datetime) -> datetime:
        """Latest commit or author comment on a pull request, at least ``since``."""
        pass

    # Repository

    @abstractmethod
    async def get_collaborator_permission(self, username: str) -> str:
        """Permission level: admin, maintain, write, triage, read or none."""
        pass

    @abstractmethod
    async def get_file_content(self, path: str) -> str | None:
        """Text of a file on the default branch, or None when it does not exist."""
        pass


class LinkedIssuesClient(ABC):
    """Graph-query collaborator resolving the issues a pull request closes."""

    @abstractmethod
    async def get_linked_issues(self, owner: str, repo: str, pr_number: int) -> list[LinkedIssue]:
        pass

    @abstractmethod
    async def get_pr_body_last_edited_at(self, owner: str, repo: str, pr_number: int) -> datetime | None:
        """When the pull request description was last edited, or None if never."""
        pass


@dataclass
class GenerationResult(Generic[ModelT]):
    """Outcome of a structured generation; failures carry a reason, never raise."""

    success: bool
    data: ModelT | None = None
    reason: str | None = None


RepairHook = Callable[[str], str | None]


class TextGenerator(ABC):
    """Structured-object generation from a prompt."""

    @abstractmethod
    async def generate_object(
        self,
        prompt: str,
        schema: type[ModelT],
        repair: RepairHook | None = None,
        **options: Any,
    ) -> GenerationResult[ModelT]:
        """Generate an instance of ``schema`` from ``prompt``.

        Args:
            prompt: Complete prompt text
            schema: Pydantic model the output must validate against
            repair: Called with malformed raw output; a returned string is
                validated once more
            **options: Provider-specific options (temperature, ...)

        Returns:
            GenerationResult with ``data`` on success or ``reason`` on failure
        """
        pass
