"""Tests for hive_queen/engine/leaderboard.py."""

import pytest
from github import GithubException

from hive_queen import messages
from hive_queen.engine.leaderboard import (
    find_active_candidates,
    format_leaderboard,
    recalculate_for_pr,
    upsert_leaderboard,
)
from hive_queen.models.domain import ImplementationScore, LinkedIssue


class TestFormatLeaderboard:
    def test_ranked_by_approvals_then_age(self):
        body = format_leaderboard(
            [
                ImplementationScore(number=52, author="carol", approvals=1),
                ImplementationScore(number=50, author="alice", approvals=2),
                ImplementationScore(number=51, author="bob", approvals=1),
            ]
        )

        rows = [line for line in body.splitlines() if line.startswith("| #")]
        assert rows == ["| #50 | @alice | 2 |", "| #51 | @bob | 1 |", "| #52 | @carol | 1 |"]

    def test_empty_board_explains_eligibility(self):
        body = format_leaderboard([])

        assert "No linked PRs are eligible" in body
        assert "| #" not in body


class TestUpsertLeaderboard:
    """One leaderboard comment per issue, edited in place."""

    @pytest.mark.asyncio
    async def test_creates_when_missing(self, tracker):
        await upsert_leaderboard(tracker, 10, [])

        body = tracker.create_comment.await_args.args[1]
        assert messages.find_marker(body, messages.LEADERBOARD, issue=10)
        tracker.update_comment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_updates_existing(self, tracker, make_bot_comment):
        existing = make_bot_comment(44, messages.with_marker("old", messages.LEADERBOARD, issue=10))
        other_issue = make_bot_comment(45, messages.with_marker("old", messages.LEADERBOARD, issue=11))
        tracker.list_comments.return_value = [other_issue, existing]

        await upsert_leaderboard(tracker, 10, [ImplementationScore(number=50, author="alice", approvals=1)])

        tracker.update_comment.assert_awaited_once()
        assert tracker.update_comment.await_args.args[:2] == (10, 44)
        tracker.create_comment.assert_not_awaited()


class TestFindActiveCandidates:
    @pytest.mark.asyncio
    async def test_groups_candidates_by_issue(self, tracker, linked, labels, make_pr):
        tracker.list_pull_requests.return_value = [
            make_pr(50, labels=[labels.candidate]),
            make_pr(51, labels=[labels.candidate]),
        ]
        linked.get_linked_issues.side_effect = lambda owner, repo, number: [LinkedIssue(number=10 if number == 50 else 11)]

        result = await find_active_candidates(tracker, linked, labels, [10])

        assert [pr.number for pr in result[10]] == [50]

    @pytest.mark.asyncio
    async def test_vanished_candidate_skipped(self, tracker, linked, labels, make_pr):
        tracker.list_pull_requests.return_value = [
            make_pr(50, labels=[labels.candidate]),
            make_pr(51, labels=[labels.candidate]),
        ]

        def resolve(owner, repo, number):
            if number == 50:
                raise GithubException(404, {"message": "Not Found"}, {})
            return [LinkedIssue(number=10)]

        linked.get_linked_issues.side_effect = resolve

        result = await find_active_candidates(tracker, linked, labels, [10])

        assert [pr.number for pr in result[10]] == [51]

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, tracker, linked, labels, make_pr):
        tracker.list_pull_requests.return_value = [make_pr(50, labels=[labels.candidate])]
        linked.get_linked_issues.side_effect = GithubException(500, {"message": "boom"}, {})

        with pytest.raises(GithubException):
            await find_active_candidates(tracker, linked, labels, [10])

    @pytest.mark.asyncio
    async def test_ensure_pr_added_when_listing_lags(self, tracker, linked, labels, make_pr):
        tracker.get_pull_request.return_value = make_pr(50, labels=[labels.candidate])
        linked.get_linked_issues.return_value = [LinkedIssue(number=10)]

        result = await find_active_candidates(tracker, linked, labels, [10], ensure_pr=50)

        assert [pr.number for pr in result[10]] == [50]


class TestRecalculateForPr:
    @pytest.mark.asyncio
    async def test_counts_trusted_approvals_only(self, tracker, linked, labels, make_pr):
        ready = LinkedIssue(number=10, title="Leaderboard", labels=[labels.ready_to_implement])
        linked.get_linked_issues.return_value = [ready]
        tracker.list_pull_requests.return_value = [make_pr(50, labels=[labels.candidate])]
        tracker.get_approvers.return_value = {"alice", "mallory"}

        await recalculate_for_pr(tracker, linked, labels, 50, ["alice", "bob"])

        body = tracker.create_comment.await_args.args[1]
        assert "| #50 | @worker-bee | 1 |" in body

    @pytest.mark.asyncio
    async def test_no_ready_issue_does_nothing(self, tracker, linked, labels):
        linked.get_linked_issues.return_value = [LinkedIssue(number=10)]

        await recalculate_for_pr(tracker, linked, labels, 50)

        tracker.list_pull_requests.assert_not_awaited()
        tracker.create_comment.assert_not_awaited()
