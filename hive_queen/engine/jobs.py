"""
Scheduled reconciliation jobs.

Webhooks can be missed or arrive out of order; these jobs re-derive the
right state from the tracker on a schedule:

    merge-ready  units are candidate and merge-ready PRs; applies the label
    phases       units are issues in discussion, voting or extended voting;
                 applies time-gated and early exits
    intake       units are open PRs that are not candidates yet
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import structlog

from hive_queen.config.repo_config import CONFIG_PATH, RepoConfig, VotingConfig, parse_repo_config
from hive_queen.config.settings import AppSettings
from hive_queen.engine import voting
from hive_queen.engine.governance import GovernanceService
from hive_queen.engine.intake import IntakeController
from hive_queen.engine.merge_readiness import MergeReadinessService
from hive_queen.engine.reconciliation import ReconciliationJob, RepoContext, RepositorySource, WorkUnit
from hive_queen.enums import ExitType, IntakeTrigger, ProposalDecision, ProposalPhase
from hive_queen.models.domain import Installation, Issue, Repository
from hive_queen.providers.base import IssueTracker, TextGenerator
from hive_queen.providers.github_app import GitHubApp

log = structlog.get_logger(__name__)


async def load_repo_config(tracker: IssueTracker) -> RepoConfig:
    """Fetch and parse the repository config; a missing file disables everything."""
    return parse_repo_config(await tracker.get_file_content(CONFIG_PATH), tracker.repo_full_name)


class GitHubAppSource(RepositorySource):
    """Installations and repositories visible to the GitHub App."""

    def __init__(self, app: GitHubApp, settings: AppSettings, generator: TextGenerator | None = None):
        self.app = app
        self.settings = settings
        self.generator = generator

    async def list_installations(self) -> list[Installation]:
        return await self.app.list_installations()

    async def list_repositories(self, installation: Installation) -> list[Repository]:
        return await self.app.list_repositories(installation)

    @asynccontextmanager
    async def open_repository(self, installation: Installation, repository: Repository) -> AsyncIterator[RepoContext]:
        tracker = await self.app.tracker_for(installation, repository)
        try:
            linked = await self.app.graphql_for(installation)
            try:
                yield RepoContext(
                    installation=installation,
                    repository=repository,
                    tracker=tracker,
                    linked=linked,
                    config=await load_repo_config(tracker),
                    labels=self.settings.labels,
                    generator=self.generator,
                )
            finally:
                await linked.close()
        finally:
            await tracker.disconnect()


class MergeReadyJob(ReconciliationJob):
    """Applies or removes the merge-ready label on candidate pull requests."""

    name = "merge-ready"

    async def load_units(self, ctx: RepoContext) -> list[WorkUnit] | None:
        if ctx.config.merge_ready is None:
            return None

        units: dict[int, WorkUnit] = {}
        for label in (ctx.labels.candidate, ctx.labels.merge_ready):
            for pr in await ctx.tracker.list_pull_requests(label=label):
                units.setdefault(pr.number, WorkUnit(id=f"pr#{pr.number}", number=pr.number, payload=pr.labels))
        return list(units.values())

    async def process_unit(self, ctx: RepoContext, unit: WorkUnit) -> Any:
        service = MergeReadinessService(
            ctx.tracker, ctx.labels, ctx.config.merge_ready, ctx.config.pr.trusted_reviewers if ctx.config.pr else ()
        )
        result = await service.reconcile(unit.number, list(unit.payload))
        return result.action


class IntakeSweepJob(ReconciliationJob):
    """Re-runs intake for open PRs that webhooks may have missed."""

    name = "intake"

    async def load_units(self, ctx: RepoContext) -> list[WorkUnit] | None:
        if ctx.config.pr is None:
            return None
        return [
            WorkUnit(id=f"pr#{pr.number}", number=pr.number)
            for pr in await ctx.tracker.list_pull_requests()
            if ctx.labels.candidate not in pr.labels
        ]

    async def process_unit(self, ctx: RepoContext, unit: WorkUnit) -> Any:
        controller = IntakeController(ctx.tracker, ctx.linked, ctx.labels, ctx.config.pr)
        edited_at = await ctx.linked.get_pr_body_last_edited_at(ctx.tracker.owner, ctx.tracker.repo, unit.number)
        return await controller.process_pr(unit.number, IntakeTrigger.UPDATED, edited_at=edited_at)


class PhaseCloserJob(ReconciliationJob):
    """Closes discussion and voting phases whose exits are due."""

    name = "phases"

    def __init__(self, now: Callable[[], datetime] | None = None):
        self.now = now or (lambda: datetime.now(UTC))

    async def load_units(self, ctx: RepoContext) -> list[WorkUnit] | None:
        phases = [
            (ProposalPhase.DISCUSSION, ctx.config.discussion),
            (ProposalPhase.VOTING, ctx.config.voting),
            (ProposalPhase.EXTENDED_VOTING, ctx.config.extended_voting),
        ]
        enabled = [phase for phase, section in phases if section is not None]
        if not enabled:
            return None

        units: list[WorkUnit] = []
        for phase in enabled:
            for issue in await ctx.tracker.list_issues(voting.phase_label(phase, ctx.labels)):
                units.append(WorkUnit(id=f"{phase}#{issue.number}", number=issue.number, payload=(phase, issue)))
        return units

    async def process_unit(self, ctx: RepoContext, unit: WorkUnit) -> Any:
        phase, issue = unit.payload
        label = voting.phase_label(phase, ctx.labels)

        added = await ctx.tracker.get_label_added_time(issue.number, label)
        if added is None:
            log.warning("phase_label_time_missing", issue=issue.number, label=label)
            return None
        elapsed = (self.now() - added).total_seconds() / 60

        governance = GovernanceService(ctx.tracker, ctx.labels, ctx.generator)
        if phase == ProposalPhase.DISCUSSION:
            return await self._close_discussion(ctx, governance, issue, elapsed)

        voting_config = ctx.config.voting if phase == ProposalPhase.VOTING else ctx.config.extended_voting
        decision = await self._close_voting(governance, issue, phase, voting_config, elapsed)
        if decision == ProposalDecision.READY_TO_IMPLEMENT and ctx.config.pr is not None:
            controller = IntakeController(ctx.tracker, ctx.linked, ctx.labels, ctx.config.pr)
            await controller.notify_pending_prs(issue.number)
        return decision

    async def _close_discussion(
        self, ctx: RepoContext, governance: GovernanceService, issue: Issue, elapsed: float
    ) -> str | None:
        discussion = ctx.config.discussion
        if elapsed >= discussion.deadline_minutes:
            await governance.transition_to_voting(issue.number, issue.labels)
            return "voting"

        due = [e for e in discussion.exits[:-1] if elapsed >= e.after_minutes]
        if not due:
            return None

        ready = await governance.get_ready_users(issue.number)
        if any(voting.evaluate_discussion_exit(ready, e) for e in due):
            log.info("discussion_exit_early", issue=issue.number, ready=len(ready))
            await governance.transition_to_voting(issue.number, issue.labels)
            return "voting"
        return None

    async def _close_voting(
        self,
        governance: GovernanceService,
        issue: Issue,
        phase: ProposalPhase,
        config: VotingConfig,
        elapsed: float,
    ) -> ProposalDecision | None:
        close = governance.end_voting if phase == ProposalPhase.VOTING else governance.resolve_extended_voting

        comment = await governance.find_voting_comment(issue.number)
        if comment is None:
            # Self-heals the voting comment or asks for human help
            return await close(issue.number, config.deadline_exit, current_labels=issue.labels)

        validated = await governance.get_validated_votes(issue.number, comment.id)

        flagged = voting.evaluate(validated, config.deadline_exit, config.trusted_voters)
        if flagged.escalate:
            if flagged.exit_type == ExitType.MANUAL:
                return await governance.close_for_human(issue.number, phase, validated, issue.labels)
            await governance.escalate(issue.number, issue.labels)

        if elapsed >= config.deadline_minutes:
            return await close(issue.number, config.deadline_exit, validated=validated, current_labels=issue.labels)

        for exit_config in config.exits[:-1]:
            if elapsed < exit_config.after_minutes:
                break
            outcome = voting.evaluate(validated, exit_config, config.trusted_voters)
            if outcome.exit_type == ExitType.AUTO:
                return await close(
                    issue.number, exit_config, early=True, validated=validated, current_labels=issue.labels
                )
        return None


JOBS: dict[str, type[ReconciliationJob]] = {
    MergeReadyJob.name: MergeReadyJob,
    PhaseCloserJob.name: PhaseCloserJob,
    IntakeSweepJob.name: IntakeSweepJob,
}
