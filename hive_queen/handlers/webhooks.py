"""
GitHub webhook handlers.

Each handler reads what it needs from the event payload and the shared
``RepoContext`` (stored under ``context["repo"]``), checks that its feature
is enabled in the repository config, then delegates to the engine.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

import structlog

from hive_queen.commands.handlers import CommandExecutor, CommandRequest
from hive_queen.commands.parser import parse_command
from hive_queen.engine import leaderboard
from hive_queen.engine.governance import GovernanceService
from hive_queen.engine.intake import IntakeController
from hive_queen.engine.merge_readiness import MergeReadinessService
from hive_queen.engine.reconciliation import RepoContext
from hive_queen.enums import IntakeTrigger
from hive_queen.handlers.dispatcher import Handler, HandlerEvent

log = structlog.get_logger(__name__)


def repo_context(context: dict[str, Any]) -> RepoContext:
    return context["repo"]


def _is_bot(user: Mapping[str, Any] | None) -> bool:
    if not user:
        return False
    return user.get("type") == "Bot" or str(user.get("login", "")).endswith("[bot]")


def _label_names(item: Mapping[str, Any]) -> list[str]:
    return [label["name"] for label in item.get("labels") or [] if isinstance(label, Mapping) and "name" in label]


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _merge_service(ctx: RepoContext) -> MergeReadinessService:
    trusted = ctx.config.pr.trusted_reviewers if ctx.config.pr else ()
    return MergeReadinessService(ctx.tracker, ctx.labels, ctx.config.merge_ready, trusted)


class IssueOpenedHandler(Handler):
    """Opens the discussion phase on new issues."""

    name = "issue-opened"

    async def handle(self, event: HandlerEvent, context: dict[str, Any]) -> None:
        ctx = repo_context(context)
        issue = event.payload.get("issue", {})
        if ctx.config.discussion is None or "pull_request" in issue:
            return
        governance = GovernanceService(ctx.tracker, ctx.labels, ctx.generator)
        await governance.start_discussion(issue["number"])


class IssueCommentHandler(Handler):
    """Runs ``@queen`` commands; other comments on PRs re-run intake."""

    name = "issue-comment"

    async def handle(self, event: HandlerEvent, context: dict[str, Any]) -> None:
        ctx = repo_context(context)
        comment = event.payload.get("comment", {})
        issue = event.payload.get("issue", {})
        if _is_bot(comment.get("user")):
            return

        is_pull_request = "pull_request" in issue
        command = parse_command(comment.get("body"))
        if command is not None:
            executor = CommandExecutor(ctx.tracker, ctx.labels, GovernanceService(ctx.tracker, ctx.labels, ctx.generator))
            result = await executor.execute(
                CommandRequest(
                    command=command,
                    issue_number=issue["number"],
                    comment_id=comment["id"],
                    sender=str(comment.get("user", {}).get("login", "")).lower(),
                    is_pull_request=is_pull_request,
                    labels=tuple(_label_names(issue)),
                )
            )
            log.info("command_result", issue=issue["number"], verb=str(command.verb), status=str(result.status))
            return

        if is_pull_request and ctx.config.pr is not None:
            controller = IntakeController(ctx.tracker, ctx.linked, ctx.labels, ctx.config.pr)
            await controller.process_pr(issue["number"], IntakeTrigger.UPDATED)


class PullRequestIntakeHandler(Handler):
    """Intake on PR opened (created) and on edits and pushes (updated)."""

    name = "pr-intake"

    async def handle(self, event: HandlerEvent, context: dict[str, Any]) -> None:
        ctx = repo_context(context)
        if ctx.config.pr is None:
            return
        pr = event.payload.get("pull_request", {})
        if _is_bot(pr.get("user")):
            return

        trigger = IntakeTrigger.CREATED if event.action == "opened" else IntakeTrigger.UPDATED
        edited_at = _parse_timestamp(pr.get("updated_at")) if event.action == "edited" else None

        controller = IntakeController(ctx.tracker, ctx.linked, ctx.labels, ctx.config.pr)
        await controller.process_pr(pr["number"], trigger, edited_at=edited_at)


class MergeReadinessHandler(Handler):
    """Re-evaluates the merge-ready label when a PR's inputs change."""

    name = "merge-readiness"

    async def handle(self, event: HandlerEvent, context: dict[str, Any]) -> None:
        ctx = repo_context(context)
        if ctx.config.merge_ready is None:
            return

        service = _merge_service(ctx)
        for number in await self._pull_request_numbers(ctx, event):
            await service.reconcile(number)

    async def _pull_request_numbers(self, ctx: RepoContext, event: HandlerEvent) -> Sequence[int]:
        payload = event.payload
        if "pull_request" in payload:
            return [payload["pull_request"]["number"]]

        if event.event == "check_suite":
            return [pr["number"] for pr in payload.get("check_suite", {}).get("pull_requests") or []]

        if event.event == "status":
            sha = payload.get("sha")
            candidates = await ctx.tracker.list_pull_requests(label=ctx.labels.candidate)
            return [pr.number for pr in candidates if pr.head_sha == sha]

        return []


class LeaderboardHandler(Handler):
    """Refreshes the leaderboard when a candidate PR is reviewed."""

    name = "leaderboard"

    async def handle(self, event: HandlerEvent, context: dict[str, Any]) -> None:
        ctx = repo_context(context)
        if ctx.config.pr is None:
            return
        pr = event.payload.get("pull_request", {})
        if ctx.labels.candidate not in _label_names(pr):
            return
        await leaderboard.recalculate_for_pr(
            ctx.tracker, ctx.linked, ctx.labels, pr["number"], ctx.config.pr.trusted_reviewers
        )


def build_event_map() -> dict[str, list[Handler]]:
    """Event tag to handlers, in the order they run."""
    intake = PullRequestIntakeHandler()
    merge = MergeReadinessHandler()
    board = LeaderboardHandler()

    return {
        "issues.opened": [IssueOpenedHandler()],
        "issue_comment.created": [IssueCommentHandler()],
        "pull_request.opened": [intake, merge],
        "pull_request.edited": [intake],
        "pull_request.synchronize": [intake, merge],
        "pull_request.reopened": [merge],
        "pull_request.labeled": [merge],
        "pull_request.unlabeled": [merge],
        "pull_request_review.submitted": [board, merge],
        "pull_request_review.dismissed": [board, merge],
        "check_suite.completed": [merge],
        "status": [merge],
    }
