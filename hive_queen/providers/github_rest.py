"""GitHub issue tracker implementation using PyGithub and the REST API."""

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

import structlog
from github import Auth, Github, GithubException  # type: ignore[import-not-found]
from github.Issue import Issue as GHIssue  # type: ignore[import-not-found]
from github.IssueComment import IssueComment as GHComment  # type: ignore[import-not-found]
from github.PullRequest import PullRequest as GHPullRequest  # type: ignore[import-not-found]
from github.Repository import Repository as GHRepository  # type: ignore[import-not-found]

from hive_queen.models.domain import (
    CheckRun,
    CheckRunsSummary,
    CombinedStatus,
    Comment,
    Issue,
    PullRequest,
    Reaction,
)
from hive_queen.providers.base import IssueTracker

log = structlog.get_logger(__name__)

T = TypeVar("T")

# Review states that replace a reviewer's previous verdict; COMMENTED does not
_VERDICT_STATES = frozenset({"APPROVED", "CHANGES_REQUESTED", "DISMISSED"})


async def _run_sync(func: Callable[[], T]) -> T:
    """Run a synchronous function in a thread pool.

    This prevents blocking the event loop when calling synchronous
    PyGithub methods.
    """
    return await asyncio.to_thread(func)


def _is_bot(user) -> bool:
    return user is not None and (user.type == "Bot" or user.login.endswith("[bot]"))


class GitHubTrackerProvider(IssueTracker):
    """Issue tracker for one GitHub repository, backed by PyGithub."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
    ):
        """Initialize GitHub provider.

        Args:
            token: Installation access token or personal access token
            owner: Repository owner (user or organization)
            repo: Repository name
            base_url: GitHub API base URL (for GitHub Enterprise)
        """
        self.token = token.strip() if token else token
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self._client: Github | None = None
        self._repo: GHRepository | None = None

    async def connect(self) -> None:
        """Initialize GitHub client."""

        def _connect() -> tuple[Github, GHRepository]:
            client = Github(auth=Auth.Token(self.token), base_url=self.base_url)
            repo = client.get_repo(f"{self.owner}/{self.repo}")
            return client, repo

        self._client, self._repo = await _run_sync(_connect)
        log.info("github_connected", base_url=self.base_url, repo=self.repo_full_name)

    async def disconnect(self) -> None:
        """Close GitHub client."""
        if self._client:
            await _run_sync(self._client.close)
            self._client = None
            self._repo = None

    # Issues and labels

    async def get_issue(self, number: int) -> Issue:
        log.debug("get_issue", repo=self.repo_full_name, number=number)

        try:
            gh_issue = await _run_sync(lambda: self._repo.get_issue(number))
            return self._convert_issue(gh_issue)

        except GithubException as e:
            log.error("github_get_issue_failed", number=number, error=str(e))
            raise

    async def list_issues(self, label: str) -> list[Issue]:
        log.debug("list_issues", repo=self.repo_full_name, label=label)

        try:
            gh_issues = await _run_sync(lambda: list(self._repo.get_issues(state="open", labels=[label])))
            return [self._convert_issue(i) for i in gh_issues if i.pull_request is None]

        except GithubException as e:
            log.error("github_list_issues_failed", label=label, error=str(e))
            raise

    async def get_labels(self, number: int) -> list[str]:
        try:
            gh_labels = await _run_sync(lambda: list(self._repo.get_issue(number).get_labels()))
            return [label.name for label in gh_labels]

        except GithubException as e:
            log.error("github_get_labels_failed", number=number, error=str(e))
            raise

    async def add_labels(self, number: int, labels: list[str]) -> None:
        log.info("add_labels", repo=self.repo_full_name, number=number, labels=labels)

        try:
            await _run_sync(lambda: self._repo.get_issue(number).add_to_labels(*labels))

        except GithubException as e:
            log.error("github_add_labels_failed", number=number, labels=labels, error=str(e))
            raise

    async def remove_label(self, number: int, label: str) -> None:
        log.info("remove_label", repo=self.repo_full_name, number=number, label=label)

        try:
            await _run_sync(lambda: self._repo.get_issue(number).remove_from_labels(label))

        except GithubException as e:
            if e.status == 404:
                log.debug("github_label_not_present", number=number, label=label)
                return
            log.error("github_remove_label_failed", number=number, label=label, error=str(e))
            raise

    async def get_label_added_time(self, number: int, label: str) -> datetime | None:
        def _latest() -> datetime | None:
            latest = None
            for event in self._repo.get_issue(number).get_events():
                if event.event == "labeled" and event.label is not None and event.label.name == label:
                    if latest is None or event.created_at > latest:
                        latest = event.created_at
            return latest

        try:
            return await _run_sync(_latest)

        except GithubException as e:
            log.error("github_label_events_failed", number=number, label=label, error=str(e))
            raise

    async def close_issue(self, number: int, reason: str = "not_planned") -> None:
        log.info("close_issue", repo=self.repo_full_name, number=number, reason=reason)

        try:
            await _run_sync(lambda: self._repo.get_issue(number).edit(state="closed", state_reason=reason))

        except GithubException as e:
            log.error("github_close_issue_failed", number=number, error=str(e))
            raise

    async def lock_issue(self, number: int, reason: str = "resolved") -> None:
        log.info("lock_issue", repo=self.repo_full_name, number=number, reason=reason)

        try:
            await _run_sync(lambda: self._repo.get_issue(number).lock(reason))

        except GithubException as e:
            log.error("github_lock_issue_failed", number=number, error=str(e))
            raise

    async def unlock_issue(self, number: int) -> None:
        try:
            await _run_sync(lambda: self._repo.get_issue(number).unlock())

        except GithubException as e:
            log.error("github_unlock_issue_failed", number=number, error=str(e))
            raise

    # Comments and reactions

    async def list_comments(self, number: int) -> list[Comment]:
        try:
            gh_comments = await _run_sync(lambda: list(self._repo.get_issue(number).get_comments()))
            return [self._convert_comment(c) for c in gh_comments]

        except GithubException as e:
            log.error("github_list_comments_failed", number=number, error=str(e))
            raise

    async def create_comment(self, number: int, body: str) -> Comment:
        log.info("create_comment", repo=self.repo_full_name, number=number)

        try:
            gh_comment = await _run_sync(lambda: self._repo.get_issue(number).create_comment(body))
            return self._convert_comment(gh_comment)

        except GithubException as e:
            log.error("github_create_comment_failed", number=number, error=str(e))
            raise

    async def update_comment(self, number: int, comment_id: int, body: str) -> None:
        log.info("update_comment", repo=self.repo_full_name, number=number, comment_id=comment_id)

        try:
            await _run_sync(lambda: self._repo.get_issue(number).get_comment(comment_id).edit(body))

        except GithubException as e:
            log.error("github_update_comment_failed", comment_id=comment_id, error=str(e))
            raise

    async def list_comment_reactions(self, number: int, comment_id: int) -> list[Reaction]:
        def _reactions() -> list[Reaction]:
            gh_comment = self._repo.get_issue(number).get_comment(comment_id)
            return [
                Reaction(user=r.user.login.lower(), content=r.content, user_is_bot=_is_bot(r.user))
                for r in gh_comment.get_reactions()
                if r.user is not None
            ]

        try:
            return await _run_sync(_reactions)

        except GithubException as e:
            log.error("github_list_reactions_failed", comment_id=comment_id, error=str(e))
            raise

    async def add_comment_reaction(self, number: int, comment_id: int, content: str) -> None:
        try:
            await _run_sync(lambda: self._repo.get_issue(number).get_comment(comment_id).create_reaction(content))

        except GithubException as e:
            log.error("github_add_reaction_failed", comment_id=comment_id, content=content, error=str(e))
            raise

    # Pull requests

    async def get_pull_request(self, number: int) -> PullRequest:
        log.debug("get_pull_request", repo=self.repo_full_name, number=number)

        try:
            gh_pr = await _run_sync(lambda: self._repo.get_pull(number))
            return self._convert_pull_request(gh_pr)

        except GithubException as e:
            log.error("github_get_pr_failed", number=number, error=str(e))
            raise

    async def list_pull_requests(self, label: str | None = None) -> list[PullRequest]:
        def _list() -> list[GHPullRequest]:
            pulls = self._repo.get_pulls(state="open")
            if label is None:
                return list(pulls)
            return [p for p in pulls if any(lbl.name == label for lbl in p.labels)]

        try:
            return [self._convert_pull_request(p) for p in await _run_sync(_list)]

        except GithubException as e:
            log.error("github_list_prs_failed", label=label, error=str(e))
            raise

    async def close_pull_request(self, number: int) -> None:
        log.info("close_pull_request", repo=self.repo_full_name, number=number)

        try:
            await _run_sync(lambda: self._repo.get_pull(number).edit(state="closed"))

        except GithubException as e:
            log.error("github_close_pr_failed", number=number, error=str(e))
            raise

    async def get_approvers(self, number: int) -> set[str]:
        def _approvers() -> set[str]:
            latest: dict[str, str] = {}
            for review in self._repo.get_pull(number).get_reviews():
                if review.user is None or review.state not in _VERDICT_STATES:
                    continue
                latest[review.user.login.lower()] = review.state
            return {login for login, state in latest.items() if state == "APPROVED"}

        try:
            return await _run_sync(_approvers)

        except GithubException as e:
            log.error("github_get_reviews_failed", number=number, error=str(e))
            raise

    async def get_check_runs(self, sha: str) -> CheckRunsSummary:
        def _check_runs() -> CheckRunsSummary:
            paginated = self._repo.get_commit(sha).get_check_runs()
            runs = [CheckRun(id=r.id, name=r.name, status=r.status, conclusion=r.conclusion) for r in paginated]
            return CheckRunsSummary(total_count=max(paginated.totalCount, len(runs)), check_runs=runs)

        try:
            return await _run_sync(_check_runs)

        except GithubException as e:
            log.error("github_check_runs_failed", sha=sha, error=str(e))
            raise

    async def get_combined_status(self, sha: str) -> CombinedStatus:
        try:
            status = await _run_sync(lambda: self._repo.get_commit(sha).get_combined_status())
            return CombinedStatus(state=status.state, total_count=status.total_count)

        except GithubException as e:
            log.error("github_combined_status_failed", sha=sha, error=str(e))
            raise

    async def get_latest_author_activity(self, number: int, since: datetime) -> datetime:
        def _latest() -> datetime:
            gh_pr = self._repo.get_pull(number)
            author = gh_pr.user.login
            latest = since
            for commit in gh_pr.get_commits():
                date = commit.commit.committer.date if commit.commit.committer else None
                if date and date > latest:
                    latest = date
            for comment in gh_pr.get_issue_comments():
                if comment.user is not None and comment.user.login == author and comment.created_at > latest:
                    latest = comment.created_at
            return latest

        try:
            return await _run_sync(_latest)

        except GithubException as e:
            log.error("github_author_activity_failed", number=number, error=str(e))
            raise

    # Repository

    async def get_collaborator_permission(self, username: str) -> str:
        try:
            return await _run_sync(lambda: self._repo.get_collaborator_permission(username))

        except GithubException as e:
            if e.status == 404:
                return "none"
            log.error("github_permission_check_failed", user=username, error=str(e))
            raise

    async def get_file_content(self, path: str) -> str | None:
        def _get_file() -> str | None:
            contents = self._repo.get_contents(path)
            if isinstance(contents, list):
                return None
            return contents.decoded_content.decode("utf-8")

        try:
            return await _run_sync(_get_file)

        except GithubException as e:
            if e.status == 404:
                log.debug("github_file_not_found", path=path)
                return None
            log.error("github_get_file_failed", path=path, error=str(e))
            raise

    # Conversions

    def _convert_issue(self, gh_issue: GHIssue) -> Issue:
        return Issue(
            number=gh_issue.number,
            title=gh_issue.title,
            labels=[label.name for label in gh_issue.labels],
            state=gh_issue.state,
            author=gh_issue.user.login if gh_issue.user else "",
            body=gh_issue.body or "",
            locked=bool(gh_issue.locked),
            is_pull_request=gh_issue.pull_request is not None,
            created_at=gh_issue.created_at,
        )

    def _convert_comment(self, gh_comment: GHComment) -> Comment:
        return Comment(
            id=gh_comment.id,
            body=gh_comment.body or "",
            author=gh_comment.user.login if gh_comment.user else "",
            author_is_bot=_is_bot(gh_comment.user),
            created_at=gh_comment.created_at,
        )

    def _convert_pull_request(self, gh_pr: GHPullRequest) -> PullRequest:
        return PullRequest(
            number=gh_pr.number,
            title=gh_pr.title,
            state=gh_pr.state,
            merged=bool(gh_pr.merged),
            mergeable=gh_pr.mergeable,
            head_sha=gh_pr.head.sha,
            author=gh_pr.user.login if gh_pr.user else "",
            labels=[label.name for label in gh_pr.labels],
            created_at=gh_pr.created_at,
        )
