"""Enumerations for hive-queen governance phases, votes and decisions."""

from enum import Enum


class ReactionKind(str, Enum):
    """Voting reaction kinds counted on the designated voting comment.

    Each kind maps to one fixed GitHub reaction content symbol.
    """

    APPROVE = "approve"
    REJECT = "reject"
    CONCERN = "concern"
    FLAG_FOR_HUMAN = "flag-for-human"

    def __str__(self) -> str:
        return self.value

    @property
    def symbol(self) -> str:
        """GitHub reaction content for this kind."""
        return REACTION_SYMBOLS[self]

    @classmethod
    def from_symbol(cls, content: str) -> "ReactionKind | None":
        """Map a GitHub reaction content to a voting kind, if it is one."""
        for kind, symbol in REACTION_SYMBOLS.items():
            if symbol == content:
                return kind
        return None


REACTION_SYMBOLS: dict[ReactionKind, str] = {
    ReactionKind.APPROVE: "+1",
    ReactionKind.REJECT: "-1",
    ReactionKind.CONCERN: "confused",
    ReactionKind.FLAG_FOR_HUMAN: "eyes",
}


class ExitType(str, Enum):
    """Which exit condition fired for a voting outcome."""

    AUTO = "auto"
    MANUAL = "manual"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


class ProposalPhase(str, Enum):
    """Phases of a proposal, encoded on the tracker as label membership."""

    DISCUSSION = "discussion"
    VOTING = "voting"
    EXTENDED_VOTING = "extendedVoting"
    READY_TO_IMPLEMENT = "readyToImplement"

    def __str__(self) -> str:
        return self.value


class ProposalDecision(str, Enum):
    """Result of closing a voting round."""

    READY_TO_IMPLEMENT = "ready-to-implement"
    REJECTED = "rejected"
    INCONCLUSIVE = "inconclusive"
    NEEDS_HUMAN = "needs-human"
    NEEDS_MORE_DISCUSSION = "needs-more-discussion"

    def __str__(self) -> str:
        return self.value


class MergeReadyAction(str, Enum):
    """Label mutation decided by the merge-readiness evaluator."""

    ADDED = "added"
    REMOVED = "removed"
    NOOP = "noop"

    def __str__(self) -> str:
        return self.value


class CheckSeverity(str, Enum):
    """Whether a failed preflight check blocks merge readiness."""

    BLOCKING = "blocking"
    ADVISORY = "advisory"

    def __str__(self) -> str:
        return self.value


class IntakeTrigger(str, Enum):
    """Pull request event that started implementation intake."""

    CREATED = "created"
    UPDATED = "updated"

    def __str__(self) -> str:
        return self.value


class CommandVerb(str, Enum):
    """Recognised comment command verbs."""

    VOTE = "vote"
    IMPLEMENT = "implement"

    def __str__(self) -> str:
        return self.value
