"""
Implementation intake.

Decides whether a pull request that links a ready proposal becomes an
implementation candidate. Three gates apply per linked issue:

1. The issue must carry the ready-to-implement label.
2. The author's latest activity on the PR must follow the moment the issue
   became ready, unless an ``approval`` intake method is satisfied by
   trusted reviewers. Pre-made PRs cannot claim slots without new work.
3. At most ``max_prs_per_issue`` open candidates per issue. The PR being
   evaluated counts itself, so the ``max``-th PR is still admitted.

Rejections are reported as comments on the PR, never raised. Tracker errors
are logged with context and re-raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from hive_queen import messages
from hive_queen.config.repo_config import PRConfig
from hive_queen.config.settings import LabelsConfig
from hive_queen.engine import leaderboard
from hive_queen.enums import IntakeTrigger
from hive_queen.models.domain import LinkedIssue, PullRequest
from hive_queen.providers.base import IssueTracker, LinkedIssuesClient

log = structlog.get_logger(__name__)


def has_room(other_active: int, max_prs_per_issue: int) -> bool:
    """Whether one more candidate fits next to ``other_active`` others."""
    return other_active + 1 <= max_prs_per_issue


@dataclass(frozen=True)
class IntakeRequest:
    """One intake evaluation for a pull request."""

    pr_number: int
    linked_issues: Sequence[LinkedIssue]
    trigger: IntakeTrigger
    edited_at: datetime | None = None


class IntakeController:
    """Admits implementation pull requests in one repository."""

    def __init__(
        self,
        tracker: IssueTracker,
        linked: LinkedIssuesClient,
        labels: LabelsConfig,
        pr_config: PRConfig,
    ):
        self.tracker = tracker
        self.linked = linked
        self.labels = labels
        self.pr_config = pr_config

    async def process(self, request: IntakeRequest) -> bool:
        """Run intake for a pull request.

        Returns:
            True if the PR was admitted as a candidate for at least one issue

        Raises:
            Any tracker or graph-query error, after logging it with the
            repository and PR number
        """
        try:
            return await self._process(request)
        except Exception as e:
            log.error(
                "implementation_intake_failed",
                repo=self.tracker.repo_full_name,
                pr=request.pr_number,
                issues=[i.number for i in request.linked_issues],
                error=str(e),
            )
            raise

    async def process_pr(self, pr_number: int, trigger: IntakeTrigger, edited_at: datetime | None = None) -> bool:
        """Resolve the PR's linked issues, then run intake."""
        linked_issues = await self.linked.get_linked_issues(self.tracker.owner, self.tracker.repo, pr_number)
        return await self.process(IntakeRequest(pr_number, linked_issues, trigger, edited_at))

    async def _process(self, request: IntakeRequest) -> bool:
        if not request.linked_issues:
            return False

        pr_number = request.pr_number
        pr = await self.tracker.get_pull_request(pr_number)
        if self.labels.candidate in pr.labels:
            log.debug("intake_already_candidate", pr=pr_number)
            return False

        activation = await self._activation_time(pr, request.edited_at)

        ready_numbers = [i.number for i in request.linked_issues if i.has_label(self.labels.ready_to_implement)]
        active_by_issue = await leaderboard.find_active_candidates(
            self.tracker, self.linked, self.labels, ready_numbers
        )

        created = request.trigger == IntakeTrigger.CREATED
        admitted = False
        welcomed = False

        for issue in request.linked_issues:
            if not issue.has_label(self.labels.ready_to_implement):
                if created:
                    await self.tracker.create_comment(pr_number, messages.pr_issue_not_ready(issue.number))
                continue

            ready_at = await self.tracker.get_label_added_time(issue.number, self.labels.ready_to_implement)
            if ready_at is None:
                log.warning("intake_ready_time_missing", issue=issue.number, pr=pr_number)
                continue

            if activation < ready_at and not await self._approved_for_intake(pr_number, issue.number):
                if created:
                    await self.tracker.create_comment(pr_number, messages.pr_needs_update(issue.number))
                continue

            others = [p.number for p in active_by_issue.get(issue.number, []) if p.number != pr_number]
            if not has_room(len(others), self.pr_config.max_prs_per_issue):
                log.info(
                    "intake_limit_reached",
                    repo=self.tracker.repo_full_name,
                    pr=pr_number,
                    issue=issue.number,
                    active=len(others),
                    max_prs=self.pr_config.max_prs_per_issue,
                )
                if created:
                    await self.tracker.create_comment(
                        pr_number, messages.pr_limit_reached(self.pr_config.max_prs_per_issue, others)
                    )
                    await self.tracker.close_pull_request(pr_number)
                else:
                    await self.tracker.create_comment(
                        pr_number, messages.pr_no_room_yet(self.pr_config.max_prs_per_issue, others)
                    )
                return admitted

            await self.tracker.add_labels(pr_number, [self.labels.candidate])
            admitted = True
            log.info("intake_admitted", repo=self.tracker.repo_full_name, pr=pr_number, issue=issue.number)

            await leaderboard.recalculate_for_pr(
                self.tracker, self.linked, self.labels, pr_number, self.pr_config.trusted_reviewers
            )

            if not welcomed:
                welcomed = True
                if not await self._has_notification(pr_number, messages.IMPLEMENTATION_WELCOME, issue=issue.number):
                    await self.tracker.create_comment(pr_number, messages.implementation_welcome(issue.number))

            if not await self._has_notification(issue.number, messages.ISSUE_NEW_PR, pr=pr_number):
                await self.tracker.create_comment(
                    issue.number, messages.issue_new_pr(issue.number, pr_number, len(others) + 1)
                )

        return admitted

    async def _activation_time(self, pr: PullRequest, edited_at: datetime | None) -> datetime:
        since = pr.created_at or datetime.min.replace(tzinfo=UTC)
        activation = await self.tracker.get_latest_author_activity(pr.number, since)
        if edited_at is not None and edited_at > activation:
            return edited_at
        return activation

    async def _approved_for_intake(self, pr_number: int, issue_number: int) -> bool:
        """Whether an ``approval`` intake method admits a PR that predates the ready label."""
        for rule in self.pr_config.intake:
            if rule.method != "approval":
                continue
            approvers = await self.tracker.get_approvers(pr_number)
            trusted = sum(1 for reviewer in self.pr_config.trusted_reviewers if reviewer in approvers)
            if trusted >= rule.min_approvals:
                log.info(
                    "intake_activated_by_approval",
                    pr=pr_number,
                    issue=issue_number,
                    approvals=trusted,
                    required=rule.min_approvals,
                )
                return True
        return False

    async def _has_notification(self, number: int, kind: str, **attrs: object) -> bool:
        return any(
            c.author_is_bot and messages.find_marker(c.body, messages.NOTIFICATION, kind=kind, **attrs)
            for c in await self.tracker.list_comments(number)
        )

    async def notify_pending_prs(self, issue_number: int) -> int:
        """Tell authors of open, not-yet-admitted PRs that the issue became ready.

        Returns:
            Number of PRs notified
        """
        notified = 0
        for pr in await self.tracker.list_pull_requests():
            if self.labels.candidate in pr.labels:
                continue
            linked_issues = await self.linked.get_linked_issues(self.tracker.owner, self.tracker.repo, pr.number)
            if not any(i.number == issue_number for i in linked_issues):
                continue
            if await self._has_notification(pr.number, messages.VOTING_PASSED, issue=issue_number):
                continue
            await self.tracker.create_comment(pr.number, messages.voting_passed(issue_number, pr.author))
            notified += 1

        if notified:
            log.info("pending_prs_notified", repo=self.tracker.repo_full_name, issue=issue_number, count=notified)
        return notified
