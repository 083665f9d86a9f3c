"""
Implementation leaderboard.

Each ready proposal carries one bot comment ranking its active candidate
pull requests by trusted approvals. The comment is found through its hidden
marker and edited in place; it is created only when none exists.
"""

from __future__ import annotations

from collections.abc import Collection

import structlog

from hive_queen import messages
from hive_queen.config.settings import LabelsConfig
from hive_queen.models.domain import ImplementationScore, LinkedIssue, PullRequest
from hive_queen.providers.base import IssueTracker, LinkedIssuesClient
from hive_queen.utils.transient import get_error_status

log = structlog.get_logger(__name__)

_TABLE_HEADER = "| PR | Author | Approvals |\n|----|--------|-----------|"


def format_leaderboard(scores: list[ImplementationScore]) -> str:
    """Render the leaderboard; most approvals first, older PRs win ties."""
    ranked = sorted(scores, key=lambda s: (-s.approvals, s.number))

    if not ranked:
        return (
            "# 🐝 Implementation Leaderboard\n\n"
            "No linked PRs are eligible for the leaderboard yet.\n\n"
            "- Open a PR that links this issue with a closing keyword (e.g. `Fixes #<issue>`).\n"
            "- If your PR predates the ready label, push a commit or leave a comment to activate it.\n\n"
            f"{_TABLE_HEADER}\n\nBest implementation gets merged.{messages.SIGNATURE}"
        )

    rows = "\n".join(f"| #{s.number} | @{s.author} | {s.approvals} |" for s in ranked)
    return (
        "# 🐝 Implementation Leaderboard\n\n"
        f"{_TABLE_HEADER}\n{rows}\n\n"
        "Keep changes clean, respond to reviews and keep checks green.\n\n"
        f"Best implementation gets merged.{messages.SIGNATURE}"
    )


async def find_active_candidates(
    tracker: IssueTracker,
    linked: LinkedIssuesClient,
    labels: LabelsConfig,
    issue_numbers: Collection[int],
    ensure_pr: int | None = None,
    linked_cache: dict[int, list[LinkedIssue]] | None = None,
) -> dict[int, list[PullRequest]]:
    """Open candidate pull requests linked to each of ``issue_numbers``.

    A candidate that disappeared (404) is skipped; any other error
    propagates.

    Args:
        tracker: Repository tracker
        linked: Linked-issue resolver
        labels: Label taxonomy
        issue_numbers: Issues to collect candidates for
        ensure_pr: A PR just labeled that the listing may not show yet
        linked_cache: Already-resolved linked issues by PR number
    """
    wanted = set(issue_numbers)
    results: dict[int, list[PullRequest]] = {number: [] for number in wanted}
    if not wanted:
        return results

    candidates = {pr.number: pr for pr in await tracker.list_pull_requests(label=labels.candidate)}
    if ensure_pr is not None and ensure_pr not in candidates:
        pr = await tracker.get_pull_request(ensure_pr)
        if pr.is_open and labels.candidate in pr.labels:
            candidates[ensure_pr] = pr
            log.debug("candidate_added_directly", pr=ensure_pr)

    cache = linked_cache if linked_cache is not None else {}
    for number, pr in candidates.items():
        if not pr.is_open:
            continue
        try:
            if number not in cache:
                cache[number] = await linked.get_linked_issues(tracker.owner, tracker.repo, number)
        except Exception as e:
            if get_error_status(e) != 404:
                raise
            log.warning("candidate_pr_skipped", pr=number, error=str(e))
            continue

        for issue in cache[number]:
            if issue.number in wanted:
                results[issue.number].append(pr)

    return results


async def upsert_leaderboard(tracker: IssueTracker, issue_number: int, scores: list[ImplementationScore]) -> None:
    body = messages.with_marker(format_leaderboard(scores), messages.LEADERBOARD, issue=issue_number)

    existing = None
    for comment in await tracker.list_comments(issue_number):
        if comment.author_is_bot and messages.find_marker(comment.body, messages.LEADERBOARD, issue=issue_number):
            existing = comment

    if existing is not None:
        await tracker.update_comment(issue_number, existing.id, body)
    else:
        await tracker.create_comment(issue_number, body)


async def recalculate_for_pr(
    tracker: IssueTracker,
    linked: LinkedIssuesClient,
    labels: LabelsConfig,
    pr_number: int,
    trusted_reviewers: Collection[str] = (),
) -> None:
    """Refresh the leaderboard on every ready issue a pull request links to.

    Approvals count only from trusted reviewers when any are configured.
    """
    linked_issues = await linked.get_linked_issues(tracker.owner, tracker.repo, pr_number)
    ready = [issue for issue in linked_issues if issue.has_label(labels.ready_to_implement)]
    if not ready:
        return

    by_issue = await find_active_candidates(
        tracker,
        linked,
        labels,
        [issue.number for issue in ready],
        ensure_pr=pr_number,
        linked_cache={pr_number: linked_issues},
    )

    trusted = set(trusted_reviewers)
    for issue in ready:
        scores = []
        for pr in by_issue.get(issue.number, []):
            approvers = await tracker.get_approvers(pr.number)
            approvals = len(approvers & trusted) if trusted else len(approvers)
            scores.append(ImplementationScore(number=pr.number, author=pr.author, approvals=approvals, title=pr.title))

        await upsert_leaderboard(tracker, issue.number, scores)
        log.info("leaderboard_updated", repo=tracker.repo_full_name, issue=issue.number, candidates=len(scores))
