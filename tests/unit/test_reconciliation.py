"""Tests for hive_queen/engine/reconciliation.py and the scheduled jobs."""

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hive_queen import messages
from hive_queen.config.repo_config import DISABLED, parse_repo_config
from hive_queen.config.settings import AppSettings
from hive_queen.engine.jobs import GitHubAppSource, IntakeSweepJob, MergeReadyJob, PhaseCloserJob, load_repo_config
from hive_queen.engine.reconciliation import (
    INSTALLATION_UNIT,
    REPOSITORY_UNIT,
    ReconciliationJob,
    ReconciliationRunner,
    RepoContext,
    RepositorySource,
    WorkUnit,
)
from hive_queen.enums import IntakeTrigger, MergeReadyAction, ProposalDecision, ProposalPhase
from hive_queen.exceptions import ReconciliationError
from hive_queen.models.domain import Installation, Issue, Repository

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class StaticSource(RepositorySource):
    """One installation; each repository gets the context built by ``make_context``."""

    def __init__(self, repositories, make_context):
        self.repositories = repositories
        self.make_context = make_context
        self.opened = []

    async def list_installations(self):
        return [Installation(id=1, account_login="acme")]

    async def list_repositories(self, installation):
        return list(self.repositories)

    @asynccontextmanager
    async def open_repository(self, installation, repository):
        self.opened.append(repository.full_name)
        yield self.make_context(installation, repository)


class RecordingJob(ReconciliationJob):
    """Three units; the one listed in ``failing`` raises."""

    name = "recording"

    def __init__(self, failing=(), units=3, skip=False):
        self.failing = set(failing)
        self.units = units
        self.skip = skip
        self.process_unit_calls = []

    async def load_units(self, ctx):
        if self.skip:
            return None
        return [WorkUnit(id=f"unit-{n}", number=n) for n in range(1, self.units + 1)]

    async def process_unit(self, ctx, unit):
        self.process_unit_calls.append(unit.number)
        if unit.number in self.failing:
            raise RuntimeError(f"unit {unit.number} exploded")
        return unit.number * 10


@pytest.fixture
def context_factory(repo_context):
    def make(installation, repository):
        return RepoContext(
            installation=installation,
            repository=repository,
            tracker=repo_context.tracker,
            linked=repo_context.linked,
            config=repo_context.config,
            labels=repo_context.labels,
        )

    return make


class TestReconciliationRunner:
    """Per-unit isolation and the combined failure."""

    @pytest.mark.asyncio
    async def test_all_units_succeed(self, context_factory):
        source = StaticSource([Repository("acme", "hive")], context_factory)
        job = RecordingJob()

        result = await ReconciliationRunner(source).run(job)

        assert job.process_unit_calls == [1, 2, 3]
        assert result.processed == 3
        assert result.failed == 0
        assert [outcome for _, _, outcome in result.results] == [10, 20, 30]

    @pytest.mark.asyncio
    async def test_failing_unit_does_not_stop_batch(self, context_factory):
        source = StaticSource([Repository("acme", "hive")], context_factory)
        job = RecordingJob(failing={2})

        with pytest.raises(ReconciliationError) as exc_info:
            await ReconciliationRunner(source).run(job)

        assert job.process_unit_calls == [1, 2, 3]
        error = exc_info.value
        assert len(error.errors) == 1
        assert "1" in error.message
        assert str(error.errors[0]) == "unit 2 exploded"
        assert error.failures[0].repo_full_name == "acme/hive"
        assert error.failures[0].unit_id == "unit-2"

    @pytest.mark.asyncio
    async def test_errors_kept_in_encounter_order(self, context_factory):
        source = StaticSource([Repository("acme", "hive"), Repository("acme", "comb")], context_factory)
        job = RecordingJob(failing={1, 3})

        with pytest.raises(ReconciliationError) as exc_info:
            await ReconciliationRunner(source).run(job)

        failures = [(f.repo_full_name, f.unit_id) for f in exc_info.value.failures]
        assert failures == [
            ("acme/hive", "unit-1"),
            ("acme/hive", "unit-3"),
            ("acme/comb", "unit-1"),
            ("acme/comb", "unit-3"),
        ]
        assert "4" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_skipped_repository_never_processed(self, context_factory):
        source = StaticSource([Repository("acme", "hive")], context_factory)
        job = RecordingJob(skip=True)

        result = await ReconciliationRunner(source).run(job)

        assert job.process_unit_calls == []
        assert result.summaries[0].skipped is True
        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_repository_failure_recorded_and_next_repository_runs(self, context_factory):
        def make(installation, repository):
            if repository.name == "broken":
                raise RuntimeError("config unreadable")
            return context_factory(installation, repository)

        source = StaticSource([Repository("acme", "broken"), Repository("acme", "hive")], make)
        job = RecordingJob()

        with pytest.raises(ReconciliationError) as exc_info:
            await ReconciliationRunner(source).run(job)

        assert job.process_unit_calls == [1, 2, 3]
        assert exc_info.value.failures[0].unit_id == REPOSITORY_UNIT

    @pytest.mark.asyncio
    async def test_installation_failure_recorded_and_next_installation_runs(self, context_factory):
        class TwoInstallations(StaticSource):
            async def list_installations(self):
                return [Installation(id=1, account_login="revoked"), Installation(id=2, account_login="acme")]

            async def list_repositories(self, installation):
                if installation.id == 1:
                    raise RuntimeError("installation token revoked")
                return list(self.repositories)

        source = TwoInstallations([Repository("acme", "hive")], context_factory)
        job = RecordingJob()

        with pytest.raises(ReconciliationError) as exc_info:
            await ReconciliationRunner(source).run(job)

        assert job.process_unit_calls == [1, 2, 3]
        assert source.opened == ["acme/hive"]
        failure = exc_info.value.failures[0]
        assert (failure.repo_full_name, failure.unit_id) == ("installation:1", INSTALLATION_UNIT)
        assert str(failure.error) == "installation token revoked"


class TestGitHubAppSource:
    """Per-repository client lifecycle."""

    @pytest.fixture
    def app(self, tracker):
        app = MagicMock()
        app.tracker_for = AsyncMock(return_value=tracker)
        return app

    @pytest.mark.asyncio
    async def test_clients_released_after_use(self, app, tracker, linked):
        app.graphql_for = AsyncMock(return_value=linked)
        tracker.get_file_content.return_value = None
        source = GitHubAppSource(app, AppSettings(webhook_secret=None))

        async with source.open_repository(Installation(id=1, account_login="acme"), Repository("acme", "hive")) as ctx:
            assert ctx.config == DISABLED

        linked.close.assert_awaited_once()
        tracker.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tracker_released_when_graphql_client_fails(self, app, tracker):
        app.graphql_for = AsyncMock(side_effect=RuntimeError("token mint failed"))
        source = GitHubAppSource(app, AppSettings(webhook_secret=None))

        with pytest.raises(RuntimeError, match="token mint failed"):
            async with source.open_repository(Installation(id=1, account_login="acme"), Repository("acme", "hive")):
                pass

        tracker.disconnect.assert_awaited_once()


class TestMergeReadyJob:
    """Tests for MergeReadyJob."""

    @pytest.mark.asyncio
    async def test_disabled_repository_skipped_before_evaluation(self, repo_context, tracker):
        repo_context.config = DISABLED
        source = StaticSource([Repository("acme", "hive")], lambda i, r: repo_context)

        with patch("hive_queen.engine.jobs.MergeReadinessService") as service_cls:
            result = await ReconciliationRunner(source).run(MergeReadyJob())

        service_cls.assert_not_called()
        tracker.list_pull_requests.assert_not_awaited()
        assert result.summaries[0].skipped is True

    @pytest.mark.asyncio
    async def test_units_are_candidate_and_labeled_prs(self, repo_context, tracker, labels, make_pr):
        tracker.list_pull_requests.side_effect = lambda label=None: {
            labels.candidate: [make_pr(50, labels=[labels.candidate]), make_pr(51, labels=[labels.candidate])],
            labels.merge_ready: [make_pr(51, labels=[labels.candidate, labels.merge_ready]), make_pr(52)],
        }[label]

        units = await MergeReadyJob().load_units(repo_context)

        assert [u.number for u in units] == [50, 51, 52]

    @pytest.mark.asyncio
    async def test_process_unit_uses_prefetched_labels(self, repo_context, tracker, labels, make_pr):
        tracker.get_pull_request.return_value = make_pr(50, labels=[labels.candidate])
        tracker.get_approvers.return_value = {"alice"}
        unit = WorkUnit(id="pr#50", number=50, payload=[labels.candidate])

        action = await MergeReadyJob().process_unit(repo_context, unit)

        assert action == MergeReadyAction.ADDED
        tracker.get_labels.assert_not_awaited()


class TestIntakeSweepJob:
    """Tests for IntakeSweepJob."""

    @pytest.mark.asyncio
    async def test_units_skip_candidates(self, repo_context, tracker, labels, make_pr):
        tracker.list_pull_requests.return_value = [make_pr(50), make_pr(51, labels=[labels.candidate])]

        units = await IntakeSweepJob().load_units(repo_context)

        assert [u.number for u in units] == [50]

    @pytest.mark.asyncio
    async def test_process_unit_runs_updated_intake(self, repo_context, linked):
        linked.get_pr_body_last_edited_at.return_value = NOW

        with patch("hive_queen.engine.jobs.IntakeController") as controller_cls:
            controller_cls.return_value.process_pr = AsyncMock(return_value=False)
            await IntakeSweepJob().process_unit(repo_context, WorkUnit(id="pr#50", number=50))

        controller_cls.return_value.process_pr.assert_awaited_once_with(50, IntakeTrigger.UPDATED, edited_at=NOW)


class TestPhaseCloserJob:
    """Tests for PhaseCloserJob."""

    @pytest.fixture
    def voting_issue(self, labels):
        return Issue(number=5, title="Proposal", labels=[labels.voting])

    def unit(self, issue, phase):
        return WorkUnit(id=f"{phase}#{issue.number}", number=issue.number, payload=(phase, issue))

    @pytest.mark.asyncio
    async def test_loads_issues_per_enabled_phase(self, repo_context, tracker, labels, voting_issue):
        tracker.list_issues.side_effect = lambda label: [voting_issue] if label == labels.voting else []

        units = await PhaseCloserJob().load_units(repo_context)

        assert [u.number for u in units] == [5]

    @pytest.mark.asyncio
    async def test_disabled_repository_skipped(self, repo_context):
        repo_context.config = DISABLED

        assert await PhaseCloserJob().load_units(repo_context) is None

    @pytest.mark.asyncio
    async def test_deadline_closes_voting(self, repo_context, tracker, labels, voting_issue, make_bot_comment, make_reactions):
        tracker.get_label_added_time.return_value = NOW - timedelta(minutes=121)
        tracker.list_comments.return_value = [
            make_bot_comment(30, messages.voting_comment(messages.voting_start(), 5, 1))
        ]
        tracker.list_comment_reactions.return_value = make_reactions(("alice", "-1"), ("bob", "-1"))
        job = PhaseCloserJob(now=lambda: NOW)

        decision = await job.process_unit(repo_context, self.unit(voting_issue, ProposalPhase.VOTING))

        assert decision == ProposalDecision.REJECTED
        tracker.close_issue.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_before_deadline_nothing_happens(self, repo_context, tracker, labels, voting_issue, make_bot_comment, make_reactions):
        tracker.get_label_added_time.return_value = NOW - timedelta(minutes=30)
        tracker.list_comments.return_value = [
            make_bot_comment(30, messages.voting_comment(messages.voting_start(), 5, 1))
        ]
        tracker.list_comment_reactions.return_value = make_reactions(("alice", "+1"))
        job = PhaseCloserJob(now=lambda: NOW)

        assert await job.process_unit(repo_context, self.unit(voting_issue, ProposalPhase.VOTING)) is None
        tracker.add_labels.assert_not_awaited()
        tracker.create_comment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_flag_escalates_without_closing(self, repo_context, tracker, labels, voting_issue, make_bot_comment, make_reactions):
        tracker.get_label_added_time.return_value = NOW - timedelta(minutes=30)
        tracker.list_comments.return_value = [
            make_bot_comment(30, messages.voting_comment(messages.voting_start(), 5, 1))
        ]
        tracker.list_comment_reactions.return_value = make_reactions(("mallory", "eyes"))
        job = PhaseCloserJob(now=lambda: NOW)

        assert await job.process_unit(repo_context, self.unit(voting_issue, ProposalPhase.VOTING)) is None
        tracker.add_labels.assert_awaited_once_with(5, [labels.needs_human])
        tracker.close_issue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_discussion_deadline_moves_to_voting(self, repo_context, tracker, labels):
        issue = Issue(number=6, title="Idea", labels=[labels.discussion])
        tracker.get_label_added_time.return_value = NOW - timedelta(minutes=61)
        job = PhaseCloserJob(now=lambda: NOW)

        assert await job.process_unit(repo_context, self.unit(issue, ProposalPhase.DISCUSSION)) == "voting"
        tracker.add_labels.assert_awaited_once_with(6, [labels.voting])


class TestLoadRepoConfig:
    """Tests for load_repo_config."""

    @pytest.mark.asyncio
    async def test_missing_file_disables(self, tracker):
        assert await load_repo_config(tracker) is DISABLED

    @pytest.mark.asyncio
    async def test_reads_config_file(self, tracker):
        tracker.get_file_content.return_value = "governance:\n  pr: {}\n"

        config = await load_repo_config(tracker)

        assert config == parse_repo_config("governance:\n  pr: {}\n")
        tracker.get_file_content.assert_awaited_once_with(".github/hive-queen.yml")
