"""
Vote tally and phase-exit evaluation.

Everything here is a pure function of reactions, labels and configuration.
Nothing reads the tracker; callers fetch reactions and labels first and
apply the returned ``LabelDelta`` themselves, so evaluating the same state
twice always yields the same answer.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass

from hive_queen.config.repo_config import DiscussionExit, RequiredParticipants, VotingExit
from hive_queen.config.settings import LabelsConfig
from hive_queen.enums import ExitType, ProposalDecision, ProposalPhase, ReactionKind
from hive_queen.models.domain import Reaction
from hive_queen.models.governance import LabelDelta, ReactionTally, ValidatedVotes, VotingOutcome


@dataclass(frozen=True)
class RequirementsShortfall:
    """Why a voting round could not be decided on its tally."""

    min_voters: int
    valid_voters: int
    missing_required: tuple[str, ...] = ()


def tally_reactions(reactions: Iterable[Reaction]) -> ValidatedVotes:
    """Count voting reactions on the voting comment.

    Bot reactions and non-voting reactions are ignored. A user who left more
    than one kind of voting reaction is dropped from the tally and from the
    voter list but is still a participant.
    """
    kinds_by_user: dict[str, set[ReactionKind]] = {}
    for reaction in reactions:
        if reaction.user_is_bot:
            continue
        kind = ReactionKind.from_symbol(reaction.content)
        if kind is None:
            continue
        kinds_by_user.setdefault(reaction.user.lower(), set()).add(kind)

    counts: dict[ReactionKind, int] = {}
    voters: list[str] = []
    flaggers: list[str] = []
    for user, kinds in kinds_by_user.items():
        if ReactionKind.FLAG_FOR_HUMAN in kinds:
            flaggers.append(user)
        if len(kinds) != 1:
            continue
        (kind,) = kinds
        counts[kind] = counts.get(kind, 0) + 1
        voters.append(user)

    return ValidatedVotes(
        tally=ReactionTally.from_counts(counts),
        voters=tuple(voters),
        participants=tuple(kinds_by_user),
        flaggers=tuple(flaggers),
    )


def ready_users(reactions: Iterable[Reaction]) -> set[str]:
    """Users who reacted 👍 on the discussion comment."""
    return {
        r.user.lower()
        for r in reactions
        if not r.user_is_bot and r.content == ReactionKind.APPROVE.symbol
    }


def is_unanimous(tally: ReactionTally) -> bool:
    """At least one approval and nothing but approvals."""
    return tally.approve > 0 and tally.approve == tally.total


def is_decisive(tally: ReactionTally, exit_config: VotingExit | None = None) -> bool:
    """Whether the tally resolves to something other than a tie.

    A flag or concern majority is decisive on its own. Otherwise the
    approve/reject differential must reach ``decisive_margin``, and an
    approving result must also carry ``min_approvals`` approvals.
    """
    if tally.flag_for_human > tally.approve + tally.reject + tally.concern:
        return True
    if tally.concern > tally.approve + tally.reject:
        return True

    margin = exit_config.decisive_margin if exit_config else 1
    min_approvals = exit_config.min_approvals if exit_config else 0

    if abs(tally.approve - tally.reject) < margin:
        return False
    if tally.approve > tally.reject and tally.approve < min_approvals:
        return False
    return True


def missing_participants(required: RequiredParticipants, participants: Collection[str]) -> tuple[str, ...] | None:
    """Required users who did not participate, or None when enough did."""
    if not required.users or required.required <= 0:
        return None
    present = set(participants)
    participated = [u for u in required.users if u in present]
    if len(participated) >= required.required:
        return None
    return tuple(u for u in required.users if u not in present)


def check_requirements(validated: ValidatedVotes, exit_config: VotingExit | None) -> RequirementsShortfall | None:
    """Quorum over valid voters, then required voters over participants."""
    if exit_config is None:
        return None

    if len(validated.voters) < exit_config.min_voters:
        return RequirementsShortfall(min_voters=exit_config.min_voters, valid_voters=len(validated.voters))

    missing = missing_participants(exit_config.required_voters, validated.participants)
    if missing is not None:
        return RequirementsShortfall(
            min_voters=exit_config.min_voters,
            valid_voters=len(validated.voters),
            missing_required=missing,
        )
    return None


def evaluate(
    validated: ValidatedVotes,
    exit_config: VotingExit,
    trusted_voters: Collection[str] = (),
) -> VotingOutcome:
    """Evaluate one voting exit against the current tally.

    A flag-for-human reaction short-circuits the tally: the outcome
    escalates, and the exit is manual only when a trusted voter raised the
    flag. Otherwise the exit is automatic when quorum and required voters
    are met and the tally is unanimous or decisive, as ``requires`` says.
    """
    tally = validated.tally

    if tally.flag_for_human > 0:
        trusted = {u.lower() for u in trusted_voters}
        manual = any(user in trusted for user in validated.flaggers)
        return VotingOutcome(
            decisive=False,
            unanimous=False,
            exit_type=ExitType.MANUAL if manual else ExitType.NONE,
            escalate=True,
        )

    unanimous = is_unanimous(tally)
    decisive = is_decisive(tally, exit_config)

    if check_requirements(validated, exit_config) is not None:
        eligible = False
    elif exit_config.requires == "unanimous":
        eligible = unanimous
    else:
        eligible = decisive

    return VotingOutcome(
        decisive=decisive,
        unanimous=unanimous,
        exit_type=ExitType.AUTO if eligible else ExitType.NONE,
    )


def evaluate_discussion_exit(readiness: Collection[str], exit_config: DiscussionExit) -> bool:
    """Whether discussion may move to voting at this exit."""
    if len(readiness) < exit_config.min_ready:
        return False
    return missing_participants(exit_config.required_ready, readiness) is None


def determine_decision(tally: ReactionTally) -> ProposalDecision:
    """Decision from the tally alone.

    Priority: flag majority over everything else, then concern majority
    over approve and reject combined, then approve vs reject, with a tie
    being inconclusive.
    """
    if tally.flag_for_human > tally.approve + tally.reject + tally.concern:
        return ProposalDecision.NEEDS_HUMAN
    if tally.concern > tally.approve + tally.reject:
        return ProposalDecision.NEEDS_MORE_DISCUSSION
    if tally.approve > tally.reject:
        return ProposalDecision.READY_TO_IMPLEMENT
    if tally.reject > tally.approve:
        return ProposalDecision.REJECTED
    return ProposalDecision.INCONCLUSIVE


def decide_outcome(
    validated: ValidatedVotes,
    exit_config: VotingExit | None = None,
) -> tuple[ProposalDecision, RequirementsShortfall | None]:
    """Decision for closing a voting round.

    Unmet quorum or required voters, or a non-unanimous tally where the
    exit requires unanimity, force an inconclusive result.
    """
    shortfall = check_requirements(validated, exit_config)
    if shortfall is not None:
        return ProposalDecision.INCONCLUSIVE, shortfall
    if exit_config is not None and exit_config.requires == "unanimous" and not is_unanimous(validated.tally):
        return ProposalDecision.INCONCLUSIVE, None
    return determine_decision(validated.tally), None


def early_decision_reason(exit_config: VotingExit | None) -> str:
    required = exit_config.required_voters if exit_config else None
    if required is None or not required.users or required.required <= 0:
        return "quorum reached"
    if required.required >= len(required.users):
        return "all required voters have participated"
    if required.required == 1:
        return "a required voter has participated"
    return f"{required.required} of {len(required.users)} required voters have participated"


def phase_label(phase: ProposalPhase, labels: LabelsConfig) -> str:
    return {
        ProposalPhase.DISCUSSION: labels.discussion,
        ProposalPhase.VOTING: labels.voting,
        ProposalPhase.EXTENDED_VOTING: labels.extended_voting,
        ProposalPhase.READY_TO_IMPLEMENT: labels.ready_to_implement,
    }[phase]


def current_phase(current_labels: Collection[str], labels: LabelsConfig) -> ProposalPhase | None:
    """Phase encoded by the labels; the most advanced phase wins on conflict."""
    for phase in (
        ProposalPhase.READY_TO_IMPLEMENT,
        ProposalPhase.EXTENDED_VOTING,
        ProposalPhase.VOTING,
        ProposalPhase.DISCUSSION,
    ):
        if phase_label(phase, labels) in current_labels:
            return phase
    return None


def decision_label(decision: ProposalDecision, phase: ProposalPhase, labels: LabelsConfig) -> str:
    """Label a decision lands on; an inconclusive first round extends voting."""
    if decision == ProposalDecision.INCONCLUSIVE:
        return labels.extended_voting if phase == ProposalPhase.VOTING else labels.inconclusive
    return {
        ProposalDecision.READY_TO_IMPLEMENT: labels.ready_to_implement,
        ProposalDecision.REJECTED: labels.rejected,
        ProposalDecision.NEEDS_MORE_DISCUSSION: labels.discussion,
        ProposalDecision.NEEDS_HUMAN: labels.needs_human,
    }[decision]


def plan_transition(
    current_labels: Collection[str],
    decision: ProposalDecision,
    phase: ProposalPhase,
    labels: LabelsConfig,
) -> LabelDelta:
    """Labels to change when a voting round in ``phase`` ends with ``decision``."""
    source = phase_label(phase, labels)
    target = decision_label(decision, phase, labels)

    remove = (source,) if source in current_labels and source != target else ()
    add = (target,) if target not in current_labels else ()
    return LabelDelta(add=add, remove=remove)


def plan_phase_change(current_labels: Collection[str], target: ProposalPhase, labels: LabelsConfig) -> LabelDelta:
    """Move to ``target`` from whatever phase (or escalation) the labels show."""
    target_label = phase_label(target, labels)
    stale = (*labels.phase_labels, labels.needs_human)
    remove = tuple(label for label in stale if label in current_labels and label != target_label)
    add = (target_label,) if target_label not in current_labels else ()
    return LabelDelta(add=add, remove=remove)
