"""
Per-repository governance configuration.

Each repository opts into features through ``.github/hive-queen.yml``::

    version: 1
    governance:
      discussion:
        exits:
          - afterMinutes: 1440
      voting:
        trustedVoters: [alice]
        exits:
          - afterMinutes: 60
            minVoters: 3
            requires: unanimous
          - afterMinutes: 1440
      pr:
        maxPRsPerIssue: 3
        trustedReviewers: [alice, bob]
        intake:
          - method: update
          - method: approval
            minApprovals: 1
        mergeReady:
          minApprovals: 1

A missing file, a missing section or a ``null`` section disables the
corresponding feature. Out-of-range numbers are clamped, not rejected. A
file that cannot be parsed at all is logged and treated as "every feature
disabled"; it never raises to the caller.
"""

from __future__ import annotations

import re
from typing import Any, Literal

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

log = structlog.get_logger(__name__)

CONFIG_PATH = ".github/hive-queen.yml"

PHASE_MINUTES_MIN = 1
PHASE_MINUTES_MAX = 30 * 24 * 60
PHASE_MINUTES_DEFAULT = 24 * 60
MIN_VOTERS_MAX = 50
MAX_PRS_PER_ISSUE_MIN = 1
MAX_PRS_PER_ISSUE_MAX = 10
MAX_PRS_PER_ISSUE_DEFAULT = 3

_GITHUB_LOGIN = re.compile(r"^[a-z\d](?:[a-z\d]|-(?=[a-z\d])){0,38}$")


def _clamp(value: Any, low: int, high: int, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field} must be a number")
    clamped = max(low, min(high, round(value)))
    if clamped != value:
        log.info("config_value_clamped", field=field, value=value, clamped=clamped)
    return clamped


def normalize_logins(value: Any, field: str = "users") -> list[str]:
    """Trim, strip ``@``, lowercase, de-duplicate and validate usernames.

    Invalid entries are dropped with a warning; order is preserved.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field} must be a list of usernames")

    logins: list[str] = []
    for entry in value:
        if not isinstance(entry, str):
            log.warning("config_login_invalid", field=field, value=entry)
            continue
        login = entry.strip().lstrip("@").lower()
        if not _GITHUB_LOGIN.match(login):
            log.warning("config_login_invalid", field=field, value=entry)
            continue
        if login not in logins:
            logins.append(login)
    return logins


class _ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class RequiredParticipants(_ConfigModel):
    """Named users of whom at least ``min_count`` must take part.

    ``min_count`` defaults to every listed user and is clamped to the list.
    """

    min_count: int | None = Field(default=None, alias="minCount")
    users: list[str] = Field(default_factory=list, validation_alias="voters")

    @field_validator("users", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> list[str]:
        return normalize_logins(value, "requiredVoters")

    @field_validator("min_count", mode="before")
    @classmethod
    def _clamp_min_count(cls, value: Any) -> int | None:
        if value is None:
            return None
        return _clamp(value, 0, MIN_VOTERS_MAX, "minCount")

    @model_validator(mode="after")
    def _bound_min_count(self) -> RequiredParticipants:
        count = len(self.users) if self.min_count is None else min(self.min_count, len(self.users))
        object.__setattr__(self, "min_count", count)
        return self

    @property
    def required(self) -> int:
        return self.min_count or 0


class RequiredReady(RequiredParticipants):
    """Discussion-phase variant of ``RequiredParticipants`` keyed by ``users``."""

    users: list[str] = Field(default_factory=list, validation_alias="users")


class VotingExit(_ConfigModel):
    """One point in time at which a voting round may close.

    Attributes:
        after_minutes: Minutes since the phase label was added
        requires: ``majority`` (decisive) or ``unanimous``
        min_voters: Quorum of valid voters
        required_voters: Named voters who must participate
        decisive_margin: Minimum approve/reject differential for a decisive result
        min_approvals: Minimum absolute approvals for a decisive approval
    """

    after_minutes: int = Field(default=PHASE_MINUTES_DEFAULT, alias="afterMinutes")
    requires: Literal["majority", "unanimous"] = "majority"
    min_voters: int = Field(default=0, alias="minVoters")
    required_voters: RequiredParticipants = Field(default_factory=RequiredParticipants, alias="requiredVoters")
    decisive_margin: int = Field(default=1, alias="decisiveMargin")
    min_approvals: int = Field(default=0, alias="minApprovals")

    @field_validator("after_minutes", mode="before")
    @classmethod
    def _clamp_after(cls, value: Any) -> int:
        return _clamp(value, PHASE_MINUTES_MIN, PHASE_MINUTES_MAX, "afterMinutes")

    @field_validator("min_voters", "min_approvals", mode="before")
    @classmethod
    def _clamp_counts(cls, value: Any) -> int:
        return _clamp(value, 0, MIN_VOTERS_MAX, "minVoters")

    @field_validator("decisive_margin", mode="before")
    @classmethod
    def _clamp_margin(cls, value: Any) -> int:
        return _clamp(value, 1, MIN_VOTERS_MAX, "decisiveMargin")

    @field_validator("required_voters", mode="before")
    @classmethod
    def _null_required(cls, value: Any) -> Any:
        return {} if value is None else value


class DiscussionExit(_ConfigModel):
    """One point in time at which discussion may move to voting."""

    after_minutes: int = Field(default=PHASE_MINUTES_DEFAULT, alias="afterMinutes")
    min_ready: int = Field(default=0, alias="minReady")
    required_ready: RequiredReady = Field(default_factory=RequiredReady, alias="requiredReady")

    @field_validator("after_minutes", mode="before")
    @classmethod
    def _clamp_after(cls, value: Any) -> int:
        return _clamp(value, PHASE_MINUTES_MIN, PHASE_MINUTES_MAX, "afterMinutes")

    @field_validator("min_ready", mode="before")
    @classmethod
    def _clamp_ready(cls, value: Any) -> int:
        return _clamp(value, 0, MIN_VOTERS_MAX, "minReady")

    @field_validator("required_ready", mode="before")
    @classmethod
    def _null_required(cls, value: Any) -> Any:
        return {} if value is None else value


def _sorted_exits(value: Any, field: str) -> Any:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError(f"{field} must be a list")
    entries = [entry for entry in value if isinstance(entry, dict)]
    if len(entries) != len(value):
        log.warning("config_exit_entry_skipped", field=field, skipped=len(value) - len(entries))
    return entries


class DiscussionConfig(_ConfigModel):
    """Discussion phase exits, ascending by time; the last is the deadline."""

    exits: list[DiscussionExit] = Field(default_factory=lambda: [DiscussionExit()])

    @field_validator("exits", mode="before")
    @classmethod
    def _validate_exits(cls, value: Any) -> Any:
        entries = _sorted_exits(value, "discussion.exits")
        return entries or [{}]

    @field_validator("exits")
    @classmethod
    def _sort(cls, exits: list[DiscussionExit]) -> list[DiscussionExit]:
        return sorted(exits, key=lambda e: e.after_minutes)

    @property
    def deadline_minutes(self) -> int:
        return self.exits[-1].after_minutes


class VotingConfig(_ConfigModel):
    """Voting phase exits plus the voters whose flag forces a manual exit."""

    exits: list[VotingExit] = Field(default_factory=lambda: [VotingExit()])
    trusted_voters: list[str] = Field(default_factory=list, alias="trustedVoters")

    @field_validator("exits", mode="before")
    @classmethod
    def _validate_exits(cls, value: Any) -> Any:
        entries = _sorted_exits(value, "voting.exits")
        return entries or [{}]

    @field_validator("exits")
    @classmethod
    def _sort(cls, exits: list[VotingExit]) -> list[VotingExit]:
        return sorted(exits, key=lambda e: e.after_minutes)

    @field_validator("trusted_voters", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> list[str]:
        return normalize_logins(value, "trustedVoters")

    @property
    def deadline_minutes(self) -> int:
        return self.exits[-1].after_minutes

    @property
    def deadline_exit(self) -> VotingExit:
        return self.exits[-1]


class IntakeMethod(_ConfigModel):
    """How a pull request opened before the ready label can still be admitted."""

    method: Literal["update", "approval"]
    min_approvals: int = Field(default=1, alias="minApprovals")

    @field_validator("min_approvals", mode="before")
    @classmethod
    def _clamp_approvals(cls, value: Any) -> int:
        if value is None:
            return 1
        return _clamp(value, 1, MIN_VOTERS_MAX, "intake.minApprovals")


class MergeReadyConfig(_ConfigModel):
    """Merge-readiness labeling; requires trusted reviewers."""

    min_approvals: int = Field(default=1, alias="minApprovals")

    @field_validator("min_approvals", mode="before")
    @classmethod
    def _clamp_approvals(cls, value: Any) -> int:
        if value is None:
            return 1
        return _clamp(value, 1, MIN_VOTERS_MAX, "mergeReady.minApprovals")


class PRConfig(_ConfigModel):
    """Implementation pull request workflow settings."""

    max_prs_per_issue: int = Field(default=MAX_PRS_PER_ISSUE_DEFAULT, alias="maxPRsPerIssue")
    trusted_reviewers: list[str] = Field(default_factory=list, alias="trustedReviewers")
    intake: list[IntakeMethod] = Field(default_factory=lambda: [IntakeMethod(method="update")])
    merge_ready: MergeReadyConfig | None = Field(default=None, alias="mergeReady")

    @field_validator("max_prs_per_issue", mode="before")
    @classmethod
    def _clamp_max_prs(cls, value: Any) -> int:
        if value is None:
            return MAX_PRS_PER_ISSUE_DEFAULT
        return _clamp(value, MAX_PRS_PER_ISSUE_MIN, MAX_PRS_PER_ISSUE_MAX, "maxPRsPerIssue")

    @field_validator("trusted_reviewers", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> list[str]:
        return normalize_logins(value, "trustedReviewers")

    @field_validator("intake", mode="before")
    @classmethod
    def _filter_intake(cls, value: Any) -> Any:
        if value is None:
            return [{"method": "update"}]
        if not isinstance(value, list):
            raise ValueError("intake must be a list")
        methods = [e for e in value if isinstance(e, dict) and e.get("method") in ("update", "approval")]
        if len(methods) != len(value):
            log.warning("config_intake_entry_skipped", skipped=len(value) - len(methods))
        return methods or [{"method": "update"}]

    @model_validator(mode="after")
    def _bind_to_reviewers(self) -> PRConfig:
        reviewers = len(self.trusted_reviewers)

        intake: list[IntakeMethod] = []
        for rule in self.intake:
            if rule.method == "approval":
                if not reviewers:
                    log.warning("config_intake_approval_without_reviewers")
                    continue
                rule = rule.model_copy(update={"min_approvals": min(rule.min_approvals, reviewers)})
            intake.append(rule)
        object.__setattr__(self, "intake", intake or [IntakeMethod(method="update")])

        if self.merge_ready is not None:
            if not reviewers:
                log.warning("config_merge_ready_without_reviewers")
                object.__setattr__(self, "merge_ready", None)
            else:
                bounded = min(self.merge_ready.min_approvals, reviewers)
                object.__setattr__(self, "merge_ready", MergeReadyConfig(min_approvals=bounded))
        return self


class GovernanceConfig(_ConfigModel):
    discussion: DiscussionConfig | None = None
    voting: VotingConfig | None = None
    extended_voting: VotingConfig | None = Field(default=None, alias="extendedVoting")
    pr: PRConfig | None = None

    @model_validator(mode="after")
    def _extended_defaults_to_voting(self) -> GovernanceConfig:
        if self.extended_voting is None and self.voting is not None:
            object.__setattr__(self, "extended_voting", self.voting)
        return self


class RepoConfig(_ConfigModel):
    """Effective configuration of one repository."""

    version: int = 1
    governance: GovernanceConfig | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _version(cls, value: Any) -> int:
        return value if isinstance(value, int) and not isinstance(value, bool) else 1

    @property
    def discussion(self) -> DiscussionConfig | None:
        return self.governance.discussion if self.governance else None

    @property
    def voting(self) -> VotingConfig | None:
        return self.governance.voting if self.governance else None

    @property
    def extended_voting(self) -> VotingConfig | None:
        return self.governance.extended_voting if self.governance else None

    @property
    def pr(self) -> PRConfig | None:
        return self.governance.pr if self.governance else None

    @property
    def merge_ready(self) -> MergeReadyConfig | None:
        return self.pr.merge_ready if self.pr else None


DISABLED = RepoConfig()


def parse_repo_config(content: str | None, repo_full_name: str = "") -> RepoConfig:
    """Parse the YAML text of a repository config file.

    Args:
        content: File content, or None when the file does not exist
        repo_full_name: Repository name for log context

    Returns:
        The effective RepoConfig; ``DISABLED`` for a missing, empty or
        malformed file
    """
    if content is None:
        log.debug("repo_config_missing", repo=repo_full_name, path=CONFIG_PATH)
        return DISABLED

    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        log.warning("repo_config_invalid_yaml", repo=repo_full_name, error=str(e))
        return DISABLED

    if raw is None:
        return DISABLED

    if not isinstance(raw, dict):
        log.warning("repo_config_not_a_mapping", repo=repo_full_name)
        return DISABLED

    try:
        config = RepoConfig.model_validate(raw)
    except ValidationError as e:
        log.warning("repo_config_invalid", repo=repo_full_name, errors=e.error_count(), error=str(e))
        return DISABLED

    log.info("repo_config_loaded", repo=repo_full_name, path=CONFIG_PATH)
    return config
