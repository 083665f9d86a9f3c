"""
Proposal lifecycle side effects.

``GovernanceService`` turns evaluator decisions into tracker mutations:
labels, outcome comments, close/lock/unlock. Decisions themselves come from
``hive_queen.engine.voting``; this module only reads the tracker to find the
voting comment and its reactions, then applies the planned label delta.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from hive_queen import messages
from hive_queen.config.repo_config import VotingExit
from hive_queen.config.settings import LabelsConfig
from hive_queen.engine import voting
from hive_queen.engine.summary import DiscussionSummary, build_summary_prompt, repair_json_text
from hive_queen.enums import ProposalDecision, ProposalPhase
from hive_queen.models.domain import Comment
from hive_queen.models.governance import LabelDelta, ValidatedVotes
from hive_queen.providers.base import IssueTracker, TextGenerator

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OutcomeAction:
    """Tracker side effects for one decision."""

    message: str
    close: bool = False
    lock: bool = False
    unlock: bool = False


class GovernanceService:
    """Applies phase transitions to proposals in one repository."""

    def __init__(
        self,
        tracker: IssueTracker,
        labels: LabelsConfig,
        generator: TextGenerator | None = None,
    ):
        self.tracker = tracker
        self.labels = labels
        self.generator = generator

    # Discussion

    async def start_discussion(self, number: int) -> None:
        log.info("discussion_started", repo=self.tracker.repo_full_name, issue=number)
        await self.tracker.add_labels(number, [self.labels.discussion])
        await self.tracker.create_comment(number, messages.discussion_welcome(number))

    async def find_discussion_comment(self, number: int) -> Comment | None:
        for comment in await self.tracker.list_comments(number):
            if comment.author_is_bot and messages.find_marker(comment.body, messages.DISCUSSION, issue=number):
                return comment
        return None

    async def get_ready_users(self, number: int) -> set[str]:
        """Users who marked the discussion ready; empty without a discussion comment."""
        comment = await self.find_discussion_comment(number)
        if comment is None:
            return set()
        return voting.ready_users(await self.tracker.list_comment_reactions(number, comment.id))

    # Voting comment

    async def find_voting_comment(self, number: int) -> Comment | None:
        """The bot's voting comment for the latest voting cycle."""
        latest: Comment | None = None
        latest_cycle = -1
        for comment in await self.tracker.list_comments(number):
            if not comment.author_is_bot:
                continue
            marker = messages.find_marker(comment.body, messages.VOTING, issue=number)
            if marker is None:
                continue
            cycle = marker.int_attr("cycle") or 0
            if cycle >= latest_cycle:
                latest, latest_cycle = comment, cycle
        return latest

    async def count_voting_comments(self, number: int) -> int:
        return sum(
            1
            for c in await self.tracker.list_comments(number)
            if c.author_is_bot and messages.find_marker(c.body, messages.VOTING, issue=number)
        )

    async def get_validated_votes(self, number: int, comment_id: int) -> ValidatedVotes:
        return voting.tally_reactions(await self.tracker.list_comment_reactions(number, comment_id))

    async def _voting_message(self, number: int) -> str:
        if self.generator is None:
            return messages.voting_start()

        try:
            issue = await self.tracker.get_issue(number)
            comments = await self.tracker.list_comments(number)
            result = await self.generator.generate_object(
                build_summary_prompt(issue, comments),
                DiscussionSummary,
                repair=repair_json_text,
            )
        except Exception as e:
            log.warning("voting_summary_failed", issue=number, error=str(e))
            return messages.voting_start()

        if not result.success or result.data is None:
            log.debug("voting_summary_unavailable", issue=number, reason=result.reason)
            return messages.voting_start()

        log.info("voting_summary_generated", issue=number)
        return messages.voting_start(result.data.render(), issue.title)

    async def _voting_comment_body(self, number: int) -> str:
        cycle = await self.count_voting_comments(number) + 1
        return messages.voting_comment(await self._voting_message(number), number, cycle)

    async def post_voting_comment(self, number: int) -> bool:
        """Post a voting comment if the issue has none. Labels are untouched.

        Returns:
            True if a comment was posted, False if one already existed
        """
        if await self.find_voting_comment(number) is not None:
            log.info("voting_comment_exists", issue=number)
            return False
        await self.tracker.create_comment(number, await self._voting_comment_body(number))
        return True

    async def transition_to_voting(self, number: int, current_labels: list[str] | None = None) -> None:
        if current_labels is None:
            current_labels = await self.tracker.get_labels(number)

        body = await self._voting_comment_body(number)
        delta = voting.plan_phase_change(current_labels, ProposalPhase.VOTING, self.labels)
        await self.apply_delta(number, delta)
        await self.tracker.create_comment(number, body)
        log.info("voting_started", repo=self.tracker.repo_full_name, issue=number)

    # Ending a round

    async def end_voting(
        self,
        number: int,
        exit_config: VotingExit | None = None,
        early: bool = False,
        validated: ValidatedVotes | None = None,
        current_labels: list[str] | None = None,
    ) -> ProposalDecision | None:
        """Close the first voting round.

        Returns:
            The applied decision, or None when the voting comment was missing
        """
        return await self._close_round(number, ProposalPhase.VOTING, exit_config, early, validated, current_labels)

    async def resolve_extended_voting(
        self,
        number: int,
        exit_config: VotingExit | None = None,
        early: bool = False,
        validated: ValidatedVotes | None = None,
        current_labels: list[str] | None = None,
    ) -> ProposalDecision | None:
        """Close extended voting; a tie now closes the issue as inconclusive."""
        return await self._close_round(
            number, ProposalPhase.EXTENDED_VOTING, exit_config, early, validated, current_labels
        )

    async def close_for_human(
        self,
        number: int,
        phase: ProposalPhase,
        validated: ValidatedVotes,
        current_labels: list[str] | None = None,
    ) -> ProposalDecision | None:
        """Close a round immediately because a trusted voter flagged it."""
        return await self._close_round(
            number, phase, None, False, validated, current_labels, forced=ProposalDecision.NEEDS_HUMAN
        )

    async def _close_round(
        self,
        number: int,
        phase: ProposalPhase,
        exit_config: VotingExit | None,
        early: bool,
        validated: ValidatedVotes | None,
        current_labels: list[str] | None,
        forced: ProposalDecision | None = None,
    ) -> ProposalDecision | None:
        if validated is None:
            comment = await self.find_voting_comment(number)
            if comment is None:
                await self._handle_missing_voting_comment(number)
                return None
            validated = await self.get_validated_votes(number, comment.id)

        if forced is not None:
            decision, shortfall = forced, None
        else:
            decision, shortfall = voting.decide_outcome(validated, exit_config)
        action = self._outcome_action(decision, phase, validated, exit_config, shortfall, early)

        if current_labels is None:
            current_labels = await self.tracker.get_labels(number)
        delta = voting.plan_transition(current_labels, decision, phase, self.labels)

        log.info(
            "voting_round_closed",
            repo=self.tracker.repo_full_name,
            issue=number,
            phase=str(phase),
            decision=str(decision),
            approve=validated.tally.approve,
            reject=validated.tally.reject,
            concern=validated.tally.concern,
            flag=validated.tally.flag_for_human,
        )

        await self.apply_delta(number, delta)
        await self.tracker.create_comment(number, action.message)
        if action.unlock:
            await self.tracker.unlock_issue(number)
        if action.close:
            await self.tracker.close_issue(number, reason="not_planned")
        if action.lock:
            await self.tracker.lock_issue(number, reason="resolved")
        return decision

    def _outcome_action(
        self,
        decision: ProposalDecision,
        phase: ProposalPhase,
        validated: ValidatedVotes,
        exit_config: VotingExit | None,
        shortfall: voting.RequirementsShortfall | None,
        early: bool,
    ) -> OutcomeAction:
        tally = validated.tally
        final = phase == ProposalPhase.EXTENDED_VOTING
        reason = voting.early_decision_reason(exit_config) if early else None

        if decision == ProposalDecision.READY_TO_IMPLEMENT:
            return OutcomeAction(messages.voting_ready(tally, reason))
        if decision == ProposalDecision.REJECTED:
            return OutcomeAction(messages.voting_rejected(tally, reason), close=True, lock=True)
        if decision == ProposalDecision.NEEDS_MORE_DISCUSSION:
            return OutcomeAction(messages.voting_needs_discussion(tally), unlock=True)
        if decision == ProposalDecision.NEEDS_HUMAN:
            return OutcomeAction(messages.voting_needs_human(tally))

        if shortfall is not None:
            message = messages.voting_requirements_not_met(
                tally,
                min_voters=shortfall.min_voters,
                valid_voters=shortfall.valid_voters,
                missing_required=list(shortfall.missing_required),
                final=final,
            )
        else:
            message = messages.voting_inconclusive_final(tally) if final else messages.voting_inconclusive(tally)
        return OutcomeAction(message, close=final, lock=final)

    async def _handle_missing_voting_comment(self, number: int) -> None:
        try:
            posted = await self.post_voting_comment(number)
        except Exception as e:
            log.warning("voting_comment_self_heal_failed", issue=number, error=str(e))
        else:
            log.info("voting_comment_self_healed" if posted else "voting_comment_concurrent", issue=number)
            return

        for comment in await self.tracker.list_comments(number):
            if comment.author_is_bot and messages.find_marker(
                comment.body, messages.HUMAN_HELP, code=messages.VOTING_COMMENT_NOT_FOUND
            ):
                log.info("human_help_already_requested", issue=number)
                return

        await self.tracker.create_comment(number, messages.voting_comment_not_found(number))
        await self.tracker.add_labels(number, [self.labels.needs_human])
        log.warning("human_help_requested", issue=number, code=messages.VOTING_COMMENT_NOT_FOUND)

    # Escalation and labels

    async def escalate(self, number: int, current_labels: list[str]) -> bool:
        """Mark a flagged proposal for human attention; voting continues.

        Returns:
            True when the needs-human label was newly added
        """
        if self.labels.needs_human in current_labels:
            return False

        await self.tracker.add_labels(number, [self.labels.needs_human])
        already_notified = any(
            c.author_is_bot and messages.find_marker(c.body, messages.NOTIFICATION, kind="escalated", issue=number)
            for c in await self.tracker.list_comments(number)
        )
        if not already_notified:
            await self.tracker.create_comment(number, messages.escalated_to_human(number))
        log.info("proposal_escalated", repo=self.tracker.repo_full_name, issue=number)
        return True

    async def apply_delta(self, number: int, delta: LabelDelta) -> None:
        for label in delta.remove:
            await self.tracker.remove_label(number, label)
        if delta.add:
            await self.tracker.add_labels(number, list(delta.add))
