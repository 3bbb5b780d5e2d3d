"""
Unit tests for GitHub browsing.
"""

import base64
import json
from typing import Any

import httpx
import pytest
from httpx import AsyncClient

from devhub.api.deps import get_chat_client, get_github_service
from devhub.clients.chat_backend import ChatBackendClient
from devhub.clients.github import GitHubClient
from devhub.core.config import GitHubSettings
from devhub.core.exceptions import ChangedFileNotFoundError, GitHubError, InvalidRequestError
from devhub.main import app
from devhub.repositories.cache_repo import InMemoryCacheRepository
from devhub.services.github_service import GitHubService, parse_repository


PULL_FILES = [
    {
        "filename": "src/classes/Account Service.cls",
        "additions": 12,
        "deletions": 3,
        "patch": "@@ -1,3 +1,12 @@\n+public class AccountService {}",
    },
    {"filename": "docs/README.md", "additions": 4, "deletions": 0},
]

PULL = {
    "number": 7,
    "title": "PLAT-12 Add AccountService",
    "body": "Adds the service",
    "state": "closed",
    "merged": True,
    "merged_at": "2024-03-02T10:00:00Z",
    "created_at": "2024-03-01T10:00:00Z",
    "updated_at": "2024-03-02T10:00:00Z",
    "user": {"login": "ada", "avatar_url": "https://avatars.test/ada"},
    "head": {"ref": "feature/account-service", "sha": "h7"},
    "base": {"ref": "main", "sha": "b0"},
    "additions": 16,
    "deletions": 3,
    "changed_files": 2,
    "commits": 3,
    "comments": 1,
    "review_comments": 4,
    "html_url": "https://github.test/acme/api/pull/7",
    "mergeable": None,
}

PULLS = [
    {"number": 7, "title": "Add AccountService", "merge_commit_sha": "m1", "head": {"ref": "feature/account-service", "sha": "h7"}},
    {"number": 8, "title": "Fix null check", "merge_commit_sha": "m2", "head": {"ref": "fix/npe", "sha": "h8"}},
]

COMMITS = [
    {"sha": "m1", "commit": {"message": "Merge feature\n\nLong body", "author": {"name": "Ada", "date": "2024-03-02T10:00:00Z"}}},
    {"sha": "c2", "commit": {"message": "Guard against null (#8)", "author": {"name": "Grace", "date": "2024-03-01T09:00:00Z"}}},
    {"sha": "c3", "commit": {"message": "Initial import", "author": {"name": "Ada", "date": "2024-02-01T09:00:00Z"}}},
]

COMMIT = {
    "sha": "abc123",
    "html_url": "https://github.test/acme/api/commit/abc123",
    "commit": {
        "message": "Guard against null",
        "author": {"name": "Grace", "date": "2024-03-01T09:00:00Z"},
        "committer": {"name": "GitHub", "date": "2024-03-01T09:00:00Z"},
    },
    "files": [{"filename": "src/Guard.cls", "patch": "@@ -1 +1 @@\n-old\n+new"}],
}


class FakeGitHub:
    """Canned GitHub REST responses; counts the requests it serves."""

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.pulls_fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path == "/orgs/acme/repos":
            repos: list[dict[str, Any]] = [
                {"name": "api", "archived": False},
                {"name": "legacy", "archived": True},
            ]
            return httpx.Response(200, json=repos)
        if path == "/repos/acme/api/contents/src/classes/AccountService.cls":
            return httpx.Response(
                200,
                json={
                    "name": "AccountService.cls",
                    "path": "src/classes/AccountService.cls",
                    "sha": "abc123",
                    "size": 27,
                    "encoding": "base64",
                    "content": base64.b64encode(b"public class AccountService {}").decode(),
                },
            )
        if path == "/repos/acme/api/contents/src":
            return httpx.Response(200, json=[{"name": "classes", "type": "dir"}])
        if path == "/repos/acme/api/pulls/7/files":
            return httpx.Response(200, json=PULL_FILES)
        if path == "/repos/acme/api/pulls/7":
            return httpx.Response(200, json=PULL)
        if path == "/repos/acme/api/pulls":
            if self.pulls_fail:
                return httpx.Response(500, json={"message": "boom"})
            return httpx.Response(200, json=PULLS)
        if path == "/repos/acme/api/commits/abc123":
            return httpx.Response(200, json=COMMIT)
        if path == "/repos/acme/api/commits":
            return httpx.Response(200, json=COMMITS)
        if path == "/orgs/acme/members":
            page = int(request.url.params["page"])
            count = 100 if page == 1 else 3
            return httpx.Response(200, json=[{"login": f"dev{page}-{i}"} for i in range(count)])
        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def github_service(fake_github: FakeGitHub) -> GitHubService:
    client = GitHubClient("token", base_url="https://api.github.test", transport=httpx.MockTransport(fake_github))
    config = GitHubSettings(default_org="acme", default_repo="api", repos_cache_ttl=60)
    return GitHubService(client, InMemoryCacheRepository(), config=config)


class TestParseRepository:
    def test_owner_and_name(self) -> None:
        assert parse_repository("acme/api", "other", "x") == ("acme", "api")

    def test_bare_name_uses_default_org(self) -> None:
        assert parse_repository("api", "acme", "x") == ("acme", "api")

    def test_empty_uses_defaults(self) -> None:
        assert parse_repository(None, "acme", "web") == ("acme", "web")
        assert parse_repository("", "acme", "web") == ("acme", "web")


class TestGitHubService:
    @pytest.mark.asyncio
    async def test_repositories_are_cached_and_filtered(
        self,
        github_service: GitHubService,
        fake_github: FakeGitHub,
    ) -> None:
        first = await github_service.list_repositories(per_page=2)
        assert [r["name"] for r in first["data"]] == ["api"]
        assert first["cached"] is False
        assert first["pagination"] == {"page": 1, "per_page": 2, "has_next": True, "has_prev": False}
        assert first["filters"]["org"] == "acme"

        second = await github_service.list_repositories(per_page=2)
        assert second["cached"] is True
        assert len(fake_github.calls) == 1

        archived = await github_service.list_repositories(per_page=2, include_archived=True)
        assert [r["name"] for r in archived["data"]] == ["api", "legacy"]

        refreshed = await github_service.list_repositories(per_page=2, force_refresh=True)
        assert refreshed["cached"] is False

    @pytest.mark.asyncio
    async def test_page_size_is_clamped(self, github_service: GitHubService, fake_github: FakeGitHub) -> None:
        result = await github_service.list_repositories(per_page=500)
        assert result["pagination"]["per_page"] == 100
        assert fake_github.calls[0].url.params["per_page"] == "100"

        with pytest.raises(InvalidRequestError):
            await github_service.list_repositories(page=0)

    @pytest.mark.asyncio
    async def test_file_content_is_decoded(self, github_service: GitHubService) -> None:
        file = await github_service.get_file_content("acme/api", "src/classes/AccountService.cls")
        assert file["content"] == "public class AccountService {}"
        assert file["language"] == "apex"
        assert file["sha"] == "abc123"

    @pytest.mark.asyncio
    async def test_file_content_errors(self, github_service: GitHubService) -> None:
        with pytest.raises(InvalidRequestError):
            await github_service.get_file_content("acme/api", "")

        with pytest.raises(GitHubError):
            await github_service.get_file_content("api", "src")

        with pytest.raises(GitHubError) as exc_info:
            await github_service.get_file_content("api", "missing.txt")
        assert exc_info.value.details["status_code"] == 404

    @pytest.mark.asyncio
    async def test_pull_files_are_totalled(self, github_service: GitHubService) -> None:
        result = await github_service.list_pull_files("api", 7)
        assert result["summary"] == {"additions": 16, "deletions": 3, "changed_files": 2}
        assert len(result["files"]) == 2

        with pytest.raises(InvalidRequestError):
            await github_service.list_pull_files("api", None)

    @pytest.mark.asyncio
    async def test_file_diff_matching(self, github_service: GitHubService) -> None:
        exact = await github_service.get_pull_file_diff("api", 7, "src/classes/Account Service.cls")
        assert exact.startswith("@@ -1,3 +1,12 @@")

        encoded = await github_service.get_pull_file_diff("api", 7, "src/classes/Account%20Service.cls")
        assert encoded == exact

        folded = await github_service.get_pull_file_diff("api", 7, "SRC/classes/account service.cls")
        assert folded == exact

        assert await github_service.get_pull_file_diff("api", 7, "docs/README.md") == (
            "No diff available for this file"
        )

    @pytest.mark.asyncio
    async def test_missing_diff_file_lists_alternatives(self, github_service: GitHubService) -> None:
        with pytest.raises(ChangedFileNotFoundError) as exc_info:
            await github_service.get_pull_file_diff("api", 7, "nope.cls")
        assert exc_info.value.status_code == 404
        assert exc_info.value.details["availableFiles"] == [
            "src/classes/Account Service.cls",
            "docs/README.md",
        ]
        assert exc_info.value.details["searchedFor"] == "nope.cls"

        with pytest.raises(ChangedFileNotFoundError, match="not found in commit"):
            await github_service.get_commit_file_diff("api", "abc123", "nope.cls")

        diff = await github_service.get_commit_file_diff("api", "abc123", "src/Guard.cls")
        assert diff.endswith("+new")

    @pytest.mark.asyncio
    async def test_repo_commits_by_sha_or_branch(
        self,
        github_service: GitHubService,
        fake_github: FakeGitHub,
    ) -> None:
        single = await github_service.get_repo_commits("api", commit_sha="abc123")
        assert single["commit"]["url"] == "https://github.test/acme/api/commit/abc123"
        assert single["commit"]["message"] == "Guard against null"
        assert single["stats"] == {"additions": 0, "deletions": 0, "total": 0}
        assert [f["filename"] for f in single["files"]] == ["src/Guard.cls"]

        listed = await github_service.get_repo_commits("api", branch="develop")
        assert [c["sha"] for c in listed["commits"]] == ["m1", "c2", "c3"]
        assert fake_github.calls[-1].url.params["sha"] == "develop"

    @pytest.mark.asyncio
    async def test_file_timeline_links_pull_requests(
        self,
        github_service: GitHubService,
        fake_github: FakeGitHub,
    ) -> None:
        result = await github_service.get_file_timeline("acme/api", "src/Guard.cls")

        assert result["totalCommits"] == 3
        merged, referenced, orphan = result["timeline"]
        assert (merged["prNumber"], merged["branchName"]) == (7, "feature/account-service")
        assert merged["message"] == "Merge feature"
        assert (referenced["prNumber"], referenced["prTitle"]) == (8, "Fix null check")
        assert orphan["prNumber"] is None and orphan["branchName"] is None

        commit_call = fake_github.calls[0]
        assert commit_call.url.params["path"] == "src/Guard.cls"
        assert commit_call.url.params["per_page"] == "50"
        assert sum(1 for c in fake_github.calls if c.url.path.endswith("/pulls")) == 1

    @pytest.mark.asyncio
    async def test_file_timeline_without_pull_requests(
        self,
        github_service: GitHubService,
        fake_github: FakeGitHub,
    ) -> None:
        fake_github.pulls_fail = True
        result = await github_service.get_file_timeline("api", "src/Guard.cls")
        assert [item["prNumber"] for item in result["timeline"]] == [None, None, None]

    @pytest.mark.asyncio
    async def test_pr_summary_and_details(self, github_service: GitHubService) -> None:
        summary = (await github_service.get_pr_summary("acme/api", 7))["pr"]
        assert summary["head"] == {"ref": "feature/account-service", "sha": "h7"}
        assert summary["user"] == {"login": "ada", "avatar_url": "https://avatars.test/ada"}
        assert len(summary["files"]) == 2

        details = await github_service.get_pr_details("api", 7)
        assert details["author"] == "ada"
        assert details["branch"] == "feature/account-service"
        assert details["baseBranch"] == "main"
        assert details["changedFiles"] == 2

        with pytest.raises(InvalidRequestError):
            await github_service.get_pr_details("api", None)

    @pytest.mark.asyncio
    async def test_org_members_follow_pages(self, github_service: GitHubService) -> None:
        members = await github_service.list_org_members()
        assert len(members) == 103
        assert members[-1]["login"] == "dev2-2"


@pytest.mark.asyncio
async def test_routes_need_a_token(async_client: AsyncClient, auth_headers: dict[str, str]) -> None:
    response = await async_client.get("/api/v1/github/repos")
    assert response.status_code == 401

    response = await async_client.get("/api/v1/github/repos", headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTHORIZATION_FAILED"


@pytest.mark.asyncio
async def test_repos_route(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
    github_service: GitHubService,
) -> None:
    app.dependency_overrides[get_github_service] = lambda: github_service

    response = await async_client.get(
        "/api/v1/github/repos", params={"org": "acme", "per_page": 2}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "success"

    response = await async_client.post(
        "/api/v1/github/file-content",
        json={"repository": "acme/api", "filePath": "src/classes/AccountService.cls"},
        headers=auth_headers,
    )
    assert response.json()["language"] == "apex"


@pytest.mark.asyncio
async def test_insights_query_forwards_last_question(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
) -> None:
    seen: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"answer": "Three PRs touched AccountService."})

    chat_client = ChatBackendClient(transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_chat_client] = lambda: chat_client
    headers = {**auth_headers, "X-GitHub-Token": "ghp_token"}

    response = await async_client.post(
        "/api/v1/github/fastapi",
        json={
            "repository": "acme/api",
            "messages": [
                {"role": "user", "content": "What changed?"},
                {"role": "assistant", "content": "Which file?"},
                {"role": "user", "content": "AccountService"},
            ],
        },
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["answer"].startswith("Three PRs")

    payload = seen[0]
    assert payload["query"] == "AccountService"
    assert (payload["orgName"], payload["repository"]) == ("acme", "api")
    assert payload["contextTypes"] == ["commits", "prs", "files"]
    assert payload["github_token"] == "ghp_token"
    assert payload["user_info"]["email"] == "ada@example.com"

    response = await async_client.post(
        "/api/v1/github/fastapi",
        json={"messages": [{"role": "assistant", "content": "Hi"}]},
        headers=headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_insights_chat_streams(async_client: AsyncClient, auth_headers: dict[str, str]) -> None:
    chat_client = ChatBackendClient(
        transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b'data: {"content": "ok"}\n\n'))
    )
    app.dependency_overrides[get_chat_client] = lambda: chat_client

    response = await async_client.post(
        "/api/v1/github/chat",
        json={"messages": [{"role": "user", "content": "Summarise"}]},
        headers={**auth_headers, "X-GitHub-Token": "ghp_token"},
    )
    assert response.status_code == 200
    assert response.headers["x-accel-buffering"] == "no"
    assert response.text == 'data: {"content": "ok"}\n\n'


@pytest.mark.asyncio
async def test_diff_routes_return_plain_text(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
    github_service: GitHubService,
) -> None:
    app.dependency_overrides[get_github_service] = lambda: github_service

    response = await async_client.get(
        "/api/v1/github/pulls/files/diff",
        params={"repo": "api", "pull_number": 7, "filename": "src/classes/Account Service.cls"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text.startswith("@@")

    response = await async_client.get(
        "/api/v1/github/commits/files/diff",
        params={"repo": "api", "commit_sha": "abc123", "filename": "missing.cls"},
        headers=auth_headers,
    )
    assert response.status_code == 404
    assert response.json()["error"]["details"]["availableFiles"] == ["src/Guard.cls"]

    response = await async_client.get(
        "/api/v1/github/pulls/files", params={"repo": "api", "pull_number": 7}, headers=auth_headers
    )
    assert response.json()["summary"]["changed_files"] == 2


@pytest.mark.asyncio
async def test_timeline_and_pr_routes(
    async_client: AsyncClient,
    auth_headers: dict[str, str],
    github_service: GitHubService,
) -> None:
    app.dependency_overrides[get_github_service] = lambda: github_service

    response = await async_client.post(
        "/api/v1/github/file-timeline",
        json={"repository": "acme/api", "filePath": "src/Guard.cls"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["totalCommits"] == 3

    response = await async_client.post(
        "/api/v1/github/pr-details", json={"repository": "api", "prNumber": 7}, headers=auth_headers
    )
    assert response.json()["title"] == "PLAT-12 Add AccountService"

    response = await async_client.get(
        "/api/v1/github/pr-summary", params={"repo": "api", "pr": 7}, headers=auth_headers
    )
    assert response.json()["pr"]["number"] == 7

    response = await async_client.post("/api/v1/github/file-timeline", json={}, headers=auth_headers)
    assert response.status_code == 400
