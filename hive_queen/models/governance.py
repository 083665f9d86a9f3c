"""
Value objects produced by the governance evaluators.

All of these are derived, never stored: they are recomputed from the
tracker's current labels, reactions and checks on every evaluation.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from hive_queen.enums import (
    CheckSeverity,
    CommandVerb,
    ExitType,
    MergeReadyAction,
    ReactionKind,
)
from hive_queen.models.domain import CheckRunsSummary, CombinedStatus


@dataclass(frozen=True)
class ParsedCommand:
    """A command recognised in a comment body."""

    verb: CommandVerb
    free_text: str | None = None


@dataclass(frozen=True)
class ReactionTally:
    """Reaction counts on the designated voting comment."""

    approve: int = 0
    reject: int = 0
    concern: int = 0
    flag_for_human: int = 0

    def __post_init__(self) -> None:
        for kind in ReactionKind:
            if self.count(kind) < 0:
                raise ValueError(f"Reaction count for {kind} must be non-negative")

    @classmethod
    def from_counts(cls, counts: Mapping[ReactionKind, int]) -> ReactionTally:
        return cls(
            approve=counts.get(ReactionKind.APPROVE, 0),
            reject=counts.get(ReactionKind.REJECT, 0),
            concern=counts.get(ReactionKind.CONCERN, 0),
            flag_for_human=counts.get(ReactionKind.FLAG_FOR_HUMAN, 0),
        )

    def count(self, kind: ReactionKind) -> int:
        return {
            ReactionKind.APPROVE: self.approve,
            ReactionKind.REJECT: self.reject,
            ReactionKind.CONCERN: self.concern,
            ReactionKind.FLAG_FOR_HUMAN: self.flag_for_human,
        }[kind]

    @property
    def total(self) -> int:
        return self.approve + self.reject + self.concern + self.flag_for_human


@dataclass(frozen=True)
class ValidatedVotes:
    """A tally together with who voted.

    Attributes:
        tally: Counts from users who cast exactly one voting reaction
        voters: Users counted in the tally (and toward quorum)
        participants: Every user who left any voting reaction, including
            those discarded for casting more than one kind
        flaggers: Users who left the flag-for-human reaction
    """

    tally: ReactionTally
    voters: tuple[str, ...] = ()
    participants: tuple[str, ...] = ()
    flaggers: tuple[str, ...] = ()


@dataclass(frozen=True)
class VotingOutcome:
    """Exit evaluation result for one voting or discussion round.

    ``escalate`` is set whenever a flag-for-human reaction is present; it
    short-circuits the normal tally, so ``decisive`` and ``unanimous`` are
    then always False.
    """

    decisive: bool
    unanimous: bool
    exit_type: ExitType
    escalate: bool = False

    @property
    def should_exit(self) -> bool:
        return self.exit_type != ExitType.NONE


@dataclass(frozen=True)
class LabelDelta:
    """Labels to add and remove on an issue or pull request."""

    add: tuple[str, ...] = ()
    remove: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.add and not self.remove


@dataclass(frozen=True)
class PreflightCheckItem:
    """One merge-readiness check and its result."""

    name: str
    severity: CheckSeverity
    passed: bool
    detail: str = ""


@dataclass(frozen=True)
class MergeReadinessResult:
    """Decision of one merge-readiness evaluation.

    The caller applies the label side effect; ``labeled`` tells whether the
    pull request carries the merge-ready label once it has.
    """

    action: MergeReadyAction
    labeled: bool
    checks: tuple[PreflightCheckItem, ...] = ()

    @property
    def blocking_passed(self) -> bool:
        return all(c.passed for c in self.checks if c.severity == CheckSeverity.BLOCKING)


@dataclass
class PullRequestMergeState:
    """Everything the merge-readiness evaluator reads about a pull request."""

    number: int
    state: str
    merged: bool
    mergeable: bool | None
    head_sha: str
    approvers: frozenset[str] = frozenset()
    check_runs: CheckRunsSummary = field(default_factory=lambda: CheckRunsSummary(total_count=0))
    combined_status: CombinedStatus = field(default_factory=lambda: CombinedStatus(state="pending"))

    @property
    def is_open(self) -> bool:
        return self.state == "open" and not self.merged
