"""
Command execution for ``@queen /verb`` comments.

Only collaborators with write access or above may run commands; anyone else
is ignored without a reply. The bot acknowledges a command with 👀 before
running it, which doubles as the idempotency marker for webhook retries:
a comment already carrying the bot's 👀 is never executed twice.

Outcome reactions: 👍 on success, 😕 plus a reply explaining why on
rejection, 😕 on failure (the error is re-raised).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from hive_queen import messages
from hive_queen.config.settings import LabelsConfig
from hive_queen.engine import voting
from hive_queen.engine.governance import GovernanceService
from hive_queen.enums import CommandVerb, ProposalPhase, ReactionKind
from hive_queen.exceptions import CommandError
from hive_queen.models.governance import ParsedCommand
from hive_queen.providers.base import IssueTracker

log = structlog.get_logger(__name__)

AUTHORIZED_PERMISSIONS = frozenset({"admin", "maintain", "write"})

ACK_REACTION = ReactionKind.FLAG_FOR_HUMAN.symbol
SUCCESS_REACTION = ReactionKind.APPROVE.symbol
FAILURE_REACTION = ReactionKind.CONCERN.symbol


class CommandStatus(str, Enum):
    EXECUTED = "executed"
    IGNORED = "ignored"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CommandResult:
    status: CommandStatus
    message: str = ""


@dataclass(frozen=True)
class CommandRequest:
    """A parsed command together with where and by whom it was issued."""

    command: ParsedCommand
    issue_number: int
    comment_id: int
    sender: str
    is_pull_request: bool
    labels: tuple[str, ...] = ()


class CommandExecutor:
    """Authorizes, acknowledges and runs commands in one repository."""

    def __init__(self, tracker: IssueTracker, labels: LabelsConfig, governance: GovernanceService):
        self.tracker = tracker
        self.labels = labels
        self.governance = governance

    async def execute(self, request: CommandRequest) -> CommandResult:
        verb = request.command.verb

        if not await self._is_authorized(request.sender):
            log.info("command_unauthorized", verb=str(verb), sender=request.sender, issue=request.issue_number)
            return CommandResult(CommandStatus.IGNORED)

        if await self._already_processed(request):
            log.info("command_already_processed", verb=str(verb), comment_id=request.comment_id)
            return CommandResult(CommandStatus.IGNORED)

        await self._react(request, ACK_REACTION)
        log.info("command_executing", verb=str(verb), sender=request.sender, issue=request.issue_number)

        try:
            if verb == CommandVerb.VOTE:
                message = await self._vote(request)
            else:
                message = await self._implement(request)
        except CommandError as e:
            await self._react(request, FAILURE_REACTION)
            await self.tracker.create_comment(request.issue_number, messages.command_rejected(e.message))
            log.info("command_rejected", verb=str(verb), issue=request.issue_number, reason=e.message)
            return CommandResult(CommandStatus.REJECTED, e.message)
        except Exception as e:
            await self._react(request, FAILURE_REACTION)
            log.error("command_failed", verb=str(verb), issue=request.issue_number, error=str(e), exc_info=True)
            raise

        await self._react(request, SUCCESS_REACTION)
        return CommandResult(CommandStatus.EXECUTED, message)

    async def _is_authorized(self, sender: str) -> bool:
        return await self.tracker.get_collaborator_permission(sender) in AUTHORIZED_PERMISSIONS

    async def _already_processed(self, request: CommandRequest) -> bool:
        reactions = await self.tracker.list_comment_reactions(request.issue_number, request.comment_id)
        return any(r.content == ACK_REACTION and r.user_is_bot for r in reactions)

    async def _react(self, request: CommandRequest, content: str) -> None:
        await self.tracker.add_comment_reaction(request.issue_number, request.comment_id, content)

    def _reject(self, request: CommandRequest, reason: str) -> CommandError:
        return CommandError(reason, verb=str(request.command.verb), issue_number=request.issue_number)

    async def _vote(self, request: CommandRequest) -> str:
        if request.is_pull_request:
            raise self._reject(request, "The `/vote` command can only be used on issues, not pull requests.")

        labels = set(request.labels)
        already = {
            self.labels.voting: "This issue is already in the voting phase.",
            self.labels.extended_voting: "This issue is already in extended voting.",
            self.labels.ready_to_implement: "This issue is already ready to implement.",
            self.labels.rejected: "This issue has been rejected.",
        }
        for label, reason in already.items():
            if label in labels:
                raise self._reject(request, reason)
        if self.labels.discussion not in labels:
            raise self._reject(
                request,
                f"This issue is not in the discussion phase. The `/vote` command requires `{self.labels.discussion}`.",
            )

        await self.governance.transition_to_voting(request.issue_number, list(request.labels))
        return "Moved to voting phase."

    async def _implement(self, request: CommandRequest) -> str:
        if request.is_pull_request:
            raise self._reject(request, "The `/implement` command can only be used on issues, not pull requests.")

        labels = set(request.labels)
        if self.labels.ready_to_implement in labels:
            raise self._reject(request, "This issue is already ready to implement.")
        if self.labels.rejected in labels:
            raise self._reject(request, "This issue has been rejected.")

        movable = (self.labels.discussion, self.labels.voting, self.labels.extended_voting, self.labels.needs_human)
        if not any(label in labels for label in movable):
            raise self._reject(request, "This issue is not in a phase that can transition to ready-to-implement.")

        delta = voting.plan_phase_change(labels, ProposalPhase.READY_TO_IMPLEMENT, self.labels)
        await self.governance.apply_delta(request.issue_number, delta)
        await self.tracker.create_comment(request.issue_number, messages.fast_tracked(request.sender, request.issue_number))
        await self.tracker.unlock_issue(request.issue_number)
        return "Fast-tracked to ready-to-implement."
