"""GitHub App authentication: installations, repositories and scoped clients."""

import asyncio

import structlog
from github import Auth, GithubException, GithubIntegration  # type: ignore[import-not-found]

from hive_queen.config.settings import AppSettings
from hive_queen.models.domain import Installation, Repository
from hive_queen.providers.github_graphql import GitHubGraphQLClient
from hive_queen.providers.github_rest import GitHubTrackerProvider

log = structlog.get_logger(__name__)


class GitHubApp:
    """App-level client that lists installations and mints installation tokens."""

    def __init__(self, settings: AppSettings):
        self.settings = settings
        self._integration = GithubIntegration(
            auth=Auth.AppAuth(settings.app_id, settings.private_key),
            base_url=settings.github_api_url,
        )

    async def list_installations(self) -> list[Installation]:
        def _list() -> list[Installation]:
            return [
                Installation(id=i.id, account_login=(i.raw_data.get("account") or {}).get("login"))
                for i in self._integration.get_installations()
            ]

        try:
            installations = await asyncio.to_thread(_list)
        except GithubException as e:
            log.error("github_list_installations_failed", error=str(e))
            raise

        log.info("installations_listed", count=len(installations))
        return installations

    async def list_repositories(self, installation: Installation) -> list[Repository]:
        def _list() -> list[Repository]:
            app_installation = self._integration.get_app_installation(installation.id)
            return [Repository(owner=r.owner.login, name=r.name) for r in app_installation.get_repos()]

        try:
            return await asyncio.to_thread(_list)
        except GithubException as e:
            log.error("github_list_repositories_failed", installation_id=installation.id, error=str(e))
            raise

    async def installation_token(self, installation_id: int) -> str:
        token = await asyncio.to_thread(lambda: self._integration.get_access_token(installation_id))
        return token.token

    async def tracker_for(self, installation: Installation, repository: Repository) -> GitHubTrackerProvider:
        """Build and connect a tracker scoped to one installation repository."""
        token = await self.installation_token(installation.id)
        tracker = GitHubTrackerProvider(
            token=token,
            owner=repository.owner,
            repo=repository.name,
            base_url=self.settings.github_api_url,
        )
        await tracker.connect()
        return tracker

    async def graphql_for(self, installation: Installation) -> GitHubGraphQLClient:
        token = await self.installation_token(installation.id)
        return GitHubGraphQLClient(token=token, graphql_url=self.settings.github_graphql_url)

    def close(self) -> None:
        self._integration.close()
