"""
Merge-readiness preflight.

The evaluator is pure: it reads a pre-fetched ``PullRequestMergeState`` and
the pull request's current labels and returns the itemized checks plus the
label action. ``MergeReadinessService`` does the fetching and applies the
action.

Blocking checks:
    - PR is open (not closed, not merged)
    - Trusted approvals reach ``min_approvals``
    - No merge conflicts (unknown mergeability passes)
    - CI: every check run completed with a passing conclusion, a truncated
      check run listing fails, and legacy commit statuses are "success"
      when there are any

Advisory checks report the candidate and merge-ready labels.
"""

from __future__ import annotations

from collections.abc import Collection

import structlog

from hive_queen.config.repo_config import MergeReadyConfig
from hive_queen.config.settings import LabelsConfig
from hive_queen.enums import CheckSeverity, MergeReadyAction
from hive_queen.models.domain import CheckRunsSummary, CombinedStatus
from hive_queen.models.governance import MergeReadinessResult, PreflightCheckItem, PullRequestMergeState
from hive_queen.providers.base import IssueTracker

log = structlog.get_logger(__name__)

PASSING_CONCLUSIONS = frozenset({"success", "neutral", "skipped"})

CHECK_OPEN = "PR is open"
CHECK_APPROVALS = "Approved by trusted reviewers"
CHECK_CONFLICTS = "No merge conflicts"
CHECK_CI = "CI checks passing"
CHECK_CANDIDATE_LABEL = "Candidate label"
CHECK_MERGE_READY_LABEL = "Merge-ready label"


def _ci_check(check_runs: CheckRunsSummary, status: CombinedStatus) -> PreflightCheckItem:
    def item(passed: bool, detail: str) -> PreflightCheckItem:
        return PreflightCheckItem(CHECK_CI, CheckSeverity.BLOCKING, passed, detail)

    if check_runs.total_count > len(check_runs.check_runs):
        return item(False, f"Too many check runs ({check_runs.total_count}) to verify")

    pending = [r for r in check_runs.check_runs if r.status != "completed"]
    if pending:
        return item(False, f"{len(pending)} check run(s) still in progress")

    failing = [
        f"{r.name}: {r.conclusion or 'no conclusion'}"
        for r in check_runs.check_runs
        if r.conclusion not in PASSING_CONCLUSIONS
    ]
    if failing:
        return item(False, "Failing: " + ", ".join(failing))

    if status.total_count > 0 and status.state != "success":
        return item(False, f"Legacy status: {status.state}")

    total = len(check_runs.check_runs) + status.total_count
    return item(True, f"All {total} check(s) passed" if total else "No CI configured")


def evaluate_preflight_checks(
    state: PullRequestMergeState,
    current_labels: Collection[str],
    trusted_reviewers: Collection[str],
    labels: LabelsConfig,
    min_approvals: int = 1,
) -> tuple[PreflightCheckItem, ...]:
    """Itemized preflight checks, in a fixed order, independent of labeling."""
    blocking = CheckSeverity.BLOCKING
    advisory = CheckSeverity.ADVISORY

    if state.merged:
        open_detail = "PR is already merged"
    elif state.state != "open":
        open_detail = f"PR is {state.state}"
    else:
        open_detail = "PR is open"

    trusted = [r for r in trusted_reviewers if r in state.approvers]
    approved = len(trusted) >= min_approvals
    approval_detail = f"{len(trusted)}/{min_approvals} trusted approvals"
    if approved and trusted:
        approval_detail += f" ({', '.join(trusted)})"

    if state.mergeable is False:
        conflict_detail = "PR has merge conflicts"
    elif state.mergeable is None:
        conflict_detail = "Mergeability not computed yet"
    else:
        conflict_detail = "Branch is mergeable"

    has_candidate = labels.candidate in current_labels
    has_merge_ready = labels.merge_ready in current_labels

    return (
        PreflightCheckItem(CHECK_OPEN, blocking, state.is_open, open_detail),
        PreflightCheckItem(CHECK_APPROVALS, blocking, approved, approval_detail),
        PreflightCheckItem(CHECK_CONFLICTS, blocking, state.mergeable is not False, conflict_detail),
        _ci_check(state.check_runs, state.combined_status),
        PreflightCheckItem(
            CHECK_CANDIDATE_LABEL,
            advisory,
            has_candidate,
            f"{'Has' if has_candidate else 'Missing'} `{labels.candidate}` label",
        ),
        PreflightCheckItem(
            CHECK_MERGE_READY_LABEL,
            advisory,
            has_merge_ready,
            f"{'Has' if has_merge_ready else 'Missing'} `{labels.merge_ready}` label",
        ),
    )


def evaluate_merge_readiness(
    state: PullRequestMergeState,
    current_labels: Collection[str],
    config: MergeReadyConfig | None,
    trusted_reviewers: Collection[str],
    labels: LabelsConfig,
) -> MergeReadinessResult:
    """Decide the merge-ready label action from pre-fetched state.

    ``current_labels`` is authoritative for what the PR carries now; the
    evaluator never re-reads labels.
    """
    labeled = labels.merge_ready in current_labels

    if config is None:
        return MergeReadinessResult(action=MergeReadyAction.NOOP, labeled=labeled)

    if labels.candidate not in current_labels:
        if labeled:
            return MergeReadinessResult(action=MergeReadyAction.REMOVED, labeled=False)
        return MergeReadinessResult(action=MergeReadyAction.NOOP, labeled=False)

    checks = evaluate_preflight_checks(state, current_labels, trusted_reviewers, labels, config.min_approvals)
    passed = all(c.passed for c in checks if c.severity == CheckSeverity.BLOCKING)

    if passed and not labeled:
        return MergeReadinessResult(action=MergeReadyAction.ADDED, labeled=True, checks=checks)
    if not passed and labeled:
        return MergeReadinessResult(action=MergeReadyAction.REMOVED, labeled=False, checks=checks)
    return MergeReadinessResult(action=MergeReadyAction.NOOP, labeled=labeled, checks=checks)


def render_preflight_report(pr_number: int, checks: Collection[PreflightCheckItem]) -> str:
    """Markdown table of preflight results."""
    blocking_ok = all(c.passed for c in checks if c.severity == CheckSeverity.BLOCKING)
    lines = [
        f"# 🐝 Preflight for #{pr_number}",
        "",
        "| Check | Severity | Result | Detail |",
        "|-------|----------|--------|--------|",
    ]
    for check in checks:
        mark = "✅" if check.passed else ("❌" if check.severity == CheckSeverity.BLOCKING else "⚠️")
        lines.append(f"| {check.name} | {check.severity} | {mark} | {check.detail} |")
    lines += ["", "All blocking checks pass." if blocking_ok else "Blocking checks are failing."]
    return "\n".join(lines)


async def fetch_merge_state(tracker: IssueTracker, pr_number: int) -> PullRequestMergeState:
    pr = await tracker.get_pull_request(pr_number)
    approvers = await tracker.get_approvers(pr_number)
    check_runs = await tracker.get_check_runs(pr.head_sha)
    combined = await tracker.get_combined_status(pr.head_sha)
    return PullRequestMergeState(
        number=pr.number,
        state=pr.state,
        merged=pr.merged,
        mergeable=pr.mergeable,
        head_sha=pr.head_sha,
        approvers=frozenset(approvers),
        check_runs=check_runs,
        combined_status=combined,
    )


class MergeReadinessService:
    """Fetches state, evaluates and applies the merge-ready label."""

    def __init__(
        self,
        tracker: IssueTracker,
        labels: LabelsConfig,
        config: MergeReadyConfig | None,
        trusted_reviewers: Collection[str],
    ):
        self.tracker = tracker
        self.labels = labels
        self.config = config
        self.trusted_reviewers = tuple(trusted_reviewers)

    async def reconcile(self, pr_number: int, current_labels: list[str] | None = None) -> MergeReadinessResult:
        if self.config is None:
            return MergeReadinessResult(action=MergeReadyAction.NOOP, labeled=False)

        if current_labels is None:
            current_labels = await self.tracker.get_labels(pr_number)

        if self.labels.candidate in current_labels:
            state = await fetch_merge_state(self.tracker, pr_number)
        else:
            # Not evaluated past the candidate gate
            state = PullRequestMergeState(number=pr_number, state="open", merged=False, mergeable=None, head_sha="")

        result = evaluate_merge_readiness(state, current_labels, self.config, self.trusted_reviewers, self.labels)

        if result.action == MergeReadyAction.ADDED:
            await self.tracker.add_labels(pr_number, [self.labels.merge_ready])
        elif result.action == MergeReadyAction.REMOVED:
            await self.tracker.remove_label(pr_number, self.labels.merge_ready)

        if result.action != MergeReadyAction.NOOP:
            failing = [c.name for c in result.checks if not c.passed and c.severity == CheckSeverity.BLOCKING]
            log.info(
                f"merge_ready_{result.action}",
                repo=self.tracker.repo_full_name,
                pr=pr_number,
                failing=failing,
            )
        return result
