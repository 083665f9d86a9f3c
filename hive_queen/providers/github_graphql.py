"""GitHub GraphQL client for pull request to issue links."""

from datetime import datetime
from typing import Any

import httpx
import structlog

from hive_queen.exceptions import ExternalServiceError
from hive_queen.models.domain import LinkedIssue
from hive_queen.providers.base import LinkedIssuesClient

log = structlog.get_logger(__name__)

# Capped at 10; a PR closing more issues than that is not a normal implementation
LINKED_ISSUES_QUERY = """
query getLinkedIssues($owner: String!, $repo: String!, $pr: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) {
      closingIssuesReferences(first: 10) {
        nodes {
          number
          title
          state
          labels(first: 20) { nodes { name } }
        }
      }
    }
  }
}
"""

PR_BODY_EDITED_QUERY = """
query getPRBodyLastEdited($owner: String!, $repo: String!, $pr: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) { lastEditedAt }
  }
}
"""


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GitHubGraphQLClient(LinkedIssuesClient):
    """Resolves closing issue references through the GraphQL API."""

    def __init__(
        self,
        token: str,
        graphql_url: str = "https://api.github.com/graphql",
        timeout: float = 30.0,
    ):
        self.graphql_url = graphql_url
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token.strip()}",
                "Content-Type": "application/json",
            },
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Execute a GraphQL query and return its ``data`` member.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response
            ExternalServiceError: When the response carries GraphQL errors
        """
        response = await self.client.post(self.graphql_url, json={"query": query, "variables": variables})
        response.raise_for_status()

        payload = response.json()
        if payload.get("errors"):
            messages = "; ".join(e.get("message", "unknown error") for e in payload["errors"])
            log.error("graphql_query_failed", errors=messages)
            raise ExternalServiceError(
                f"GraphQL query failed: {messages}",
                status_code=response.status_code,
                response_text=response.text,
            )
        return payload.get("data") or {}

    async def get_linked_issues(self, owner: str, repo: str, pr_number: int) -> list[LinkedIssue]:
        log.debug("get_linked_issues", repo=f"{owner}/{repo}", pr=pr_number)

        data = await self.query(LINKED_ISSUES_QUERY, {"owner": owner, "repo": repo, "pr": pr_number})
        pull_request = (data.get("repository") or {}).get("pullRequest")
        if pull_request is None:
            return []

        issues = []
        for node in pull_request["closingIssuesReferences"]["nodes"]:
            if node is None:
                continue
            issues.append(
                LinkedIssue(
                    number=node["number"],
                    title=node.get("title", ""),
                    state=node.get("state", "OPEN"),
                    labels=[label["name"] for label in (node.get("labels") or {}).get("nodes", []) if label],
                )
            )
        return issues

    async def get_pr_body_last_edited_at(self, owner: str, repo: str, pr_number: int) -> datetime | None:
        data = await self.query(PR_BODY_EDITED_QUERY, {"owner": owner, "repo": repo, "pr": pr_number})
        pull_request = (data.get("repository") or {}).get("pullRequest")
        if pull_request is None:
            return None
        return _parse_timestamp(pull_request.get("lastEditedAt"))
