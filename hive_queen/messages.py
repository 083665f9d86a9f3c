"""
Bot comment markers and message templates.

Every comment the bot writes that it later needs to find again (voting
comment, leaderboard, notifications) carries a hidden HTML marker::

    <!-- hive-queen:voting issue=12 cycle=2 -->
    <!-- hive-queen:notification kind=issue-new-pr issue=12 pr=31 -->

Markers are only trusted on bot-authored comments.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from hive_queen.models.governance import ReactionTally

MARKER_PREFIX = "hive-queen"
SIGNATURE = "\n\n---\n_hive-queen governance bot_"

VOTING = "voting"
DISCUSSION = "discussion"
LEADERBOARD = "leaderboard"
NOTIFICATION = "notification"
HUMAN_HELP = "human-help"

IMPLEMENTATION_WELCOME = "implementation-welcome"
ISSUE_NEW_PR = "issue-new-pr"
VOTING_PASSED = "voting-passed"

VOTING_COMMENT_NOT_FOUND = "voting-comment-not-found"

_MARKER = re.compile(r"<!--\s*" + MARKER_PREFIX + r":([a-z-]+)((?:\s+[a-z_]+=[\w-]+)*)\s*-->")
_ATTR = re.compile(r"([a-z_]+)=([\w-]+)")


@dataclass(frozen=True)
class Marker:
    """A parsed hidden marker."""

    kind: str
    attrs: dict[str, str] = field(default_factory=dict)

    def int_attr(self, name: str) -> int | None:
        value = self.attrs.get(name)
        return int(value) if value is not None and value.isdigit() else None


def build_marker(kind: str, /, **attrs: object) -> str:
    rendered = "".join(f" {key}={value}" for key, value in attrs.items())
    return f"<!-- {MARKER_PREFIX}:{kind}{rendered} -->"


def parse_markers(body: str | None) -> list[Marker]:
    if not body:
        return []
    return [Marker(kind=m.group(1), attrs=dict(_ATTR.findall(m.group(2)))) for m in _MARKER.finditer(body)]


def find_marker(body: str | None, kind: str, /, **attrs: object) -> Marker | None:
    """Return the first marker of ``kind`` whose attributes include ``attrs``."""
    wanted = {key: str(value) for key, value in attrs.items()}
    for marker in parse_markers(body):
        if marker.kind == kind and all(marker.attrs.get(k) == v for k, v in wanted.items()):
            return marker
    return None


def with_marker(body: str, kind: str, /, **attrs: object) -> str:
    return f"{build_marker(kind, **attrs)}\n{body}"


def format_votes(tally: ReactionTally) -> str:
    return f"**Results:** 👍 {tally.approve} | 👎 {tally.reject} | 😕 {tally.concern} | 👀 {tally.flag_for_human}"


def _issue_list(numbers: Iterable[int]) -> str:
    return ", ".join(f"#{n}" for n in numbers) or "none"


# Issue lifecycle


def discussion_welcome(issue_number: int) -> str:
    body = (
        "# 🐝 Discussion Phase\n\n"
        "Share analysis, proposals and concerns below. "
        "React with 👍 on this comment once you think the proposal is ready for a vote."
        f"{SIGNATURE}"
    )
    return with_marker(body, DISCUSSION, issue=issue_number)


def voting_start(summary: str | None = None, title: str | None = None) -> str:
    lines = ["# 🐝 Voting Phase", ""]
    if summary:
        heading = f"**{title}**" if title else "**Discussion summary**"
        lines += [heading, "", summary.strip(), ""]
    lines += [
        "**React to THIS comment to vote:**",
        "- 👍 Ready: approve for implementation",
        "- 👎 Not ready: close this proposal",
        "- 😕 Needs discussion: back to discussion",
        "- 👀 Needs a human: escalate to maintainers",
        "",
        "Only one reaction per voter counts. Voters with conflicting reactions are not counted.",
    ]
    return "\n".join(lines) + SIGNATURE


def voting_comment(message: str, issue_number: int, cycle: int) -> str:
    return with_marker(message, VOTING, issue=issue_number, cycle=cycle)


def voting_ready(tally: ReactionTally, early_reason: str | None = None) -> str:
    prefix = f"**Early decision**: {early_reason}.\n\n" if early_reason else ""
    return (
        f"{prefix}# 🐝 Ready to Implement ✅\n\n{format_votes(tally)}\n\n"
        "The hive has spoken. Open a PR that links this issue (e.g. `Fixes #<issue>`); "
        "implementation slots are limited."
        f"{SIGNATURE}"
    )


def voting_rejected(tally: ReactionTally, early_reason: str | None = None) -> str:
    prefix = f"**Early decision**: {early_reason}.\n\n" if early_reason else ""
    return f"{prefix}# 🐝 Rejected ❌\n\n{format_votes(tally)}\n\nThis proposal is closed.{SIGNATURE}"


def voting_needs_discussion(tally: ReactionTally) -> str:
    return f"# 🐝 Needs More Discussion 💬\n\n{format_votes(tally)}\n\nReturning to the discussion phase.{SIGNATURE}"


def voting_needs_human(tally: ReactionTally) -> str:
    return f"# 🐝 Needs Human Input 👀\n\n{format_votes(tally)}\n\nEscalated to maintainers.{SIGNATURE}"


def voting_inconclusive(tally: ReactionTally) -> str:
    return f"# 🐝 Inconclusive ⚖️\n\n{format_votes(tally)}\n\nThe hive is split. Extended voting begins; keep voting above.{SIGNATURE}"


def voting_inconclusive_final(tally: ReactionTally) -> str:
    return (
        f"# 🐝 Inconclusive (Final) 🔒\n\n{format_votes(tally)}\n\n"
        "No consensus after extended voting. Closing; a maintainer can reopen."
        f"{SIGNATURE}"
    )


def voting_requirements_not_met(
    tally: ReactionTally,
    min_voters: int,
    valid_voters: int,
    missing_required: list[str],
    final: bool,
) -> str:
    lines = [f"# 🐝 Inconclusive{' (Final) 🔒' if final else ' ⚖️'}", "", format_votes(tally), ""]
    if valid_voters < min_voters:
        lines.append(f"Quorum not reached: {valid_voters}/{min_voters} valid voters.")
    if missing_required:
        lines.append("Required voters who did not vote: " + ", ".join(f"@{u}" for u in missing_required))
    lines += ["", "Closing this issue." if final else "Extended voting begins; keep voting above."]
    return "\n".join(lines) + SIGNATURE


def escalated_to_human(issue_number: int) -> str:
    body = (
        "# 🐝 Flagged for Human Attention 👀\n\n"
        "A voter flagged this proposal. Maintainers, please take a look; voting continues meanwhile."
        f"{SIGNATURE}"
    )
    return with_marker(body, NOTIFICATION, kind="escalated", issue=issue_number)


def voting_comment_not_found(issue_number: int) -> str:
    body = (
        "# 🐝 Help Needed\n\n"
        "This issue is in a voting phase but its voting comment could not be found or recreated. "
        "Please restart voting or resolve the issue manually."
        f"{SIGNATURE}"
    )
    return with_marker(body, HUMAN_HELP, issue=issue_number, code=VOTING_COMMENT_NOT_FOUND)


def fast_tracked(sender: str, issue_number: int) -> str:
    return (
        "# 🐝 Fast-tracked to Implementation ⚡\n\n"
        f"Moved to ready-to-implement by @{sender} via `/implement`.\n\n"
        f"Open a PR that links this issue (e.g. `Fixes #{issue_number}`)."
        f"{SIGNATURE}"
    )


def command_rejected(reason: str) -> str:
    return f"{reason}{SIGNATURE}"


# Implementation pull requests


def pr_issue_not_ready(issue_number: int) -> str:
    return f"# 🐝 Not Ready Yet ⚠️\n\nIssue #{issue_number} has not passed voting; this PR is not tracked.{SIGNATURE}"


def pr_needs_update(issue_number: int) -> str:
    return (
        "# 🐝 Update Needed ⏳\n\n"
        f"Issue #{issue_number} is approved, but this PR predates the approval. "
        "Push a commit or leave a comment to activate it."
        f"{SIGNATURE}"
    )


def pr_limit_reached(max_prs: int, existing: Iterable[int]) -> str:
    return (
        "# 🐝 PR Limit Reached 🚫\n\n"
        f"Already {max_prs} competing implementations: {_issue_list(existing)}\n\n"
        "Closing this PR. Consider improving an existing one."
        f"{SIGNATURE}"
    )


def pr_no_room_yet(max_prs: int, existing: Iterable[int]) -> str:
    return (
        "# 🐝 No Room Yet ⏳\n\n"
        f"Already {max_prs} active implementations: {_issue_list(existing)}\n\n"
        "This PR is not tracked yet; try again once a slot opens."
        f"{SIGNATURE}"
    )


def implementation_welcome(issue_number: int) -> str:
    body = (
        "# 🐝 Implementation PR\n\n"
        f"Competing implementations for #{issue_number} are ranked by trusted approvals. "
        "Keep it clean and respond to reviews quickly."
        f"{SIGNATURE}"
    )
    return with_marker(body, NOTIFICATION, kind=IMPLEMENTATION_WELCOME, issue=issue_number)


def issue_new_pr(issue_number: int, pr_number: int, total: int) -> str:
    plural = "" if total == 1 else "s"
    body = f"# 🐝 New Implementation 🔨\n\n#{pr_number} submitted. {total} competing implementation{plural} now.{SIGNATURE}"
    return with_marker(body, NOTIFICATION, kind=ISSUE_NEW_PR, issue=issue_number, pr=pr_number)


def voting_passed(issue_number: int, author: str) -> str:
    body = (
        f"# 🐝 Issue #{issue_number} Ready to Implement ✅\n\n"
        f"@{author}, the linked issue passed voting. Push a commit or leave a comment to activate this PR."
        f"{SIGNATURE}"
    )
    return with_marker(body, NOTIFICATION, kind=VOTING_PASSED, issue=issue_number)
