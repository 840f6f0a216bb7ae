"""Unit tests for the GitHub lookup client."""

import asyncio
import json

import httpx
import pytest

from orchestr8r.errors import GitHubAPIError, IssueNotFoundError, ProjectNotFoundError
from orchestr8r.github import GitHubClient


def _client(handler, token="ghp_test"):
    return GitHubClient(token, transport=httpx.MockTransport(handler))


class TestGetProject:
    """Test cases for project lookups."""

    def test_resolves_project(self):
        """Test a successful node lookup and the request it sends."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"data": {"node": {
                "id": "PVT_1", "title": "Roadmap", "number": 3, "url": "https://github.com/orgs/acme/projects/3",
                "closed": False,
            }}})

        node = asyncio.run(_client(handler).get_project("PVT_1"))

        assert node["title"] == "Roadmap"
        request = requests[0]
        assert request.url == "https://api.github.com/graphql"
        assert request.headers["Authorization"] == "Bearer ghp_test"
        body = json.loads(request.content)
        assert body["variables"] == {"id": "PVT_1"}
        assert "ProjectV2" in body["query"]

    def test_missing_node(self):
        """Test that a NOT_FOUND response raises ProjectNotFoundError."""

        def handler(request):
            return httpx.Response(200, json={
                "data": {"node": None},
                "errors": [{"type": "NOT_FOUND", "message": "Could not resolve to a node"}],
            })

        with pytest.raises(ProjectNotFoundError, match="PVT_missing"):
            asyncio.run(_client(handler).get_project("PVT_missing"))

    def test_node_of_another_type(self):
        """Test that a node which is not a project does not resolve."""

        def handler(request):
            return httpx.Response(200, json={"data": {"node": {}}})

        with pytest.raises(ProjectNotFoundError):
            asyncio.run(_client(handler).get_project("I_123"))

    def test_http_error(self):
        """Test that non-success statuses raise GitHubAPIError."""

        def handler(request):
            return httpx.Response(401, json={"message": "Bad credentials"})

        with pytest.raises(GitHubAPIError, match="Bad credentials"):
            asyncio.run(_client(handler).get_project("PVT_1"))

    def test_graphql_error(self):
        """Test that non-NOT_FOUND GraphQL errors raise GitHubAPIError."""

        def handler(request):
            return httpx.Response(200, json={
                "data": None,
                "errors": [{"type": "RATE_LIMITED", "message": "API rate limit exceeded"}],
            })

        with pytest.raises(GitHubAPIError, match="rate limit"):
            asyncio.run(_client(handler).get_project("PVT_1"))

    def test_no_token_sends_no_authorization(self):
        """Test anonymous requests."""
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"data": {"node": {"id": "PVT_1", "title": "Roadmap"}}})

        asyncio.run(_client(handler, token=None).get_project("PVT_1"))

        assert seen["auth"] is None


class TestGetIssue:
    """Test cases for issue lookups."""

    def test_resolves_issue(self):
        """Test a successful issue lookup."""

        def handler(request):
            assert "on Issue" in json.loads(request.content)["query"]
            return httpx.Response(200, json={"data": {"node": {"id": "I_1", "title": "Fix login", "state": "OPEN"}}})

        assert asyncio.run(_client(handler).get_issue("I_1"))["state"] == "OPEN"

    def test_missing_issue(self):
        """Test that an unknown issue raises IssueNotFoundError."""

        def handler(request):
            return httpx.Response(200, json={"data": {"node": None}})

        with pytest.raises(IssueNotFoundError):
            asyncio.run(_client(handler).get_issue("I_missing"))
