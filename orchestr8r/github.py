"""GitHub lookups used to confirm that context identifiers still resolve."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from .errors import GitHubAPIError, IssueNotFoundError, ProjectNotFoundError

logger = logging.getLogger("orchestr8r.github")

DEFAULT_API_URL = "https://api.github.com/graphql"

PROJECT_QUERY = """
query($id: ID!) {
  node(id: $id) {
    ... on ProjectV2 { id title number url closed }
  }
}
"""

ISSUE_QUERY = """
query($id: ID!) {
  node(id: $id) {
    ... on Issue { id title number url state }
  }
}
"""


class ProjectLookup(Protocol):
    """Request/response contract of the external system of record."""

    async def get_project(self, project_id: str) -> Dict[str, Any]:
        ...

    async def get_issue(self, issue_id: str) -> Dict[str, Any]:
        ...


class GitHubClient:
    """Minimal GraphQL client resolving project and issue node ids."""

    def __init__(
        self,
        token: Optional[str],
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            r = await client.post(
                self.api_url,
                json={"query": query, "variables": variables},
                headers=self._headers(),
            )
        if not r.is_success:
            raise GitHubAPIError(f"GitHub API error '{r.status_code} {r.reason_phrase}': {_error_detail(r)}")

        payload = r.json()
        errors = payload.get("errors") or []
        not_found = [e for e in errors if e.get("type") == "NOT_FOUND"]
        if errors and len(not_found) != len(errors):
            messages = "; ".join(e.get("message", str(e)) for e in errors)
            raise GitHubAPIError(f"GitHub GraphQL error: {messages}")
        return payload.get("data") or {}

    async def get_project(self, project_id: str) -> Dict[str, Any]:
        """Return the ProjectV2 node, raising ProjectNotFoundError if it does not resolve."""
        data = await self._graphql(PROJECT_QUERY, {"id": project_id})
        node = data.get("node")
        if not node or "title" not in node:
            raise ProjectNotFoundError(f"Project '{project_id}' not found")
        logger.debug(f"Resolved project {project_id}: {node.get('title')}")
        return node

    async def get_issue(self, issue_id: str) -> Dict[str, Any]:
        """Return the Issue node, raising IssueNotFoundError if it does not resolve."""
        data = await self._graphql(ISSUE_QUERY, {"id": issue_id})
        node = data.get("node")
        if not node or "title" not in node:
            raise IssueNotFoundError(f"Issue '{issue_id}' not found")
        logger.debug(f"Resolved issue {issue_id}: {node.get('title')}")
        return node


def _error_detail(r: httpx.Response) -> str:
    """Extract a human-readable error from an HTTP response."""
    try:
        data = r.json()
    except ValueError:
        return r.text[:200] if r.text else f"HTTP {r.status_code}"
    if isinstance(data, dict):
        return str(data.get("message", data))
    return str(data)
