"""Domain models and evaluator value objects."""

from hive_queen.models.domain import (
    CheckRun,
    CheckRunsSummary,
    CombinedStatus,
    Comment,
    ImplementationScore,
    Installation,
    Issue,
    LinkedIssue,
    PullRequest,
    Reaction,
    Repository,
)
from hive_queen.models.governance import (
    LabelDelta,
    MergeReadinessResult,
    ParsedCommand,
    PreflightCheckItem,
    PullRequestMergeState,
    ReactionTally,
    ValidatedVotes,
    VotingOutcome,
)

__all__ = [
    "CheckRun",
    "CheckRunsSummary",
    "CombinedStatus",
    "Comment",
    "ImplementationScore",
    "Installation",
    "Issue",
    "LabelDelta",
    "LinkedIssue",
    "MergeReadinessResult",
    "ParsedCommand",
    "PreflightCheckItem",
    "PullRequest",
    "PullRequestMergeState",
    "Reaction",
    "ReactionTally",
    "Repository",
    "ValidatedVotes",
    "VotingOutcome",
]
