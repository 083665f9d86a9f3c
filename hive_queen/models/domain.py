"""
Domain models for the governance bot.

This module contains the data classes representing tracker entities as the
bot sees them: issues, pull requests, comments, reactions, check runs and
installation metadata. They are the normalized internal representation,
converted from PyGithub objects and GraphQL payloads by the providers.

Every instance is a snapshot of the tracker's current state. Nothing here is
persisted; the tracker's labels, comments and reactions are the only durable
state.

Example:
    Building a pull request snapshot::

        pr = PullRequest(
            number=17,
            title="Add voting summary",
            state="open",
            merged=False,
            mergeable=True,
            head_sha="3f2a9c1",
            author="octocat",
            labels=["hivemoot:candidate"],
            created_at=datetime.now(UTC),
        )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Repository:
    """A repository an installation has access to."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class Installation:
    """A GitHub App installation."""

    id: int
    account_login: str | None = None


@dataclass
class Issue:
    """An issue (or pull request viewed through the issues API)."""

    number: int
    title: str
    labels: list[str]
    state: str = "open"
    author: str = ""
    body: str = ""
    locked: bool = False
    is_pull_request: bool = False
    created_at: datetime | None = None


@dataclass
class PullRequest:
    """Pull request details needed by intake and merge readiness."""

    number: int
    title: str
    state: str
    merged: bool
    mergeable: bool | None
    head_sha: str
    author: str
    labels: list[str] = field(default_factory=list)
    created_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.state == "open" and not self.merged


@dataclass
class Comment:
    """An issue or pull request comment."""

    id: int
    body: str
    author: str
    author_is_bot: bool = False
    created_at: datetime | None = None


@dataclass(frozen=True)
class Reaction:
    """A single reaction left by a user on a comment."""

    user: str
    content: str
    user_is_bot: bool = False


@dataclass
class LinkedIssue:
    """An issue a pull request closes, as resolved by the GraphQL client."""

    number: int
    title: str = ""
    state: str = "OPEN"
    labels: list[str] = field(default_factory=list)

    def has_label(self, label: str) -> bool:
        return label in self.labels


@dataclass
class CheckRun:
    """A check run on a commit."""

    id: int
    name: str
    status: str
    conclusion: str | None = None


@dataclass
class CheckRunsSummary:
    """Check runs on a commit plus the total reported by the API.

    ``total_count`` larger than ``len(check_runs)`` means the listing was
    truncated.
    """

    total_count: int
    check_runs: list[CheckRun] = field(default_factory=list)


@dataclass
class CombinedStatus:
    """Legacy commit status rollup for a commit."""

    state: str
    total_count: int = 0


@dataclass
class ImplementationScore:
    """A candidate pull request and its approval count, for the leaderboard."""

    number: int
    author: str
    approvals: int
    title: str = ""
