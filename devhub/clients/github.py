"""
GitHub REST API client (github.com or GitHub Enterprise).
"""

import base64
from typing import Any, Optional

import httpx

from devhub.clients.base import BaseHTTPClient
from devhub.core.config import settings
from devhub.core.constants import GITHUB_ACCEPT_HEADER
from devhub.core.exceptions import GitHubError
from devhub.core.logging import get_logger

logger = get_logger(__name__)


class GitHubClient(BaseHTTPClient):
    """
    Thin async wrapper over the GitHub v3 API.

    One instance is created per request because the token belongs to the
    signed-in user.
    """

    error_class = GitHubError

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url=base_url or settings.github.api_base,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": GITHUB_ACCEPT_HEADER,
            },
            transport=transport,
        )

    @property
    def service_name(self) -> str:
        return "GitHub"

    # =========================================================================
    # Repositories
    # =========================================================================

    async def list_org_repos(
        self,
        org: str,
        page: int = 1,
        per_page: int = 30,
        type: str = "all",
        sort: str = "updated",
        direction: str = "desc",
    ) -> list[dict[str, Any]]:
        """List repositories of an organization."""
        return await self._get(
            f"/orgs/{org}/repos",
            params={
                "page": page,
                "per_page": per_page,
                "type": type,
                "sort": sort,
                "direction": direction,
            },
        )

    async def get_file_content(
        self,
        org: str,
        repo: str,
        path: str,
        ref: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Fetch a file and decode its base64 payload.

        Returns:
            Dict with content, size, sha, path and name
        """
        data = await self._get(
            f"/repos/{org}/{repo}/contents/{path.lstrip('/')}",
            params={"ref": ref},
        )
        if isinstance(data, list):
            raise GitHubError(
                message=f"'{path}' is a directory",
                details={"path": path},
                status_code=400,
            )

        raw = data.get("content") or ""
        if data.get("encoding", "base64") == "base64":
            content = base64.b64decode(raw).decode("utf-8", errors="replace")
        else:
            content = raw

        return {
            "content": content,
            "size": data.get("size", 0),
            "sha": data.get("sha"),
            "path": data.get("path", path),
            "name": data.get("name"),
        }

    # =========================================================================
    # Commits
    # =========================================================================

    async def list_commits(
        self,
        org: str,
        repo: str,
        branch: Optional[str] = None,
        per_page: int = 30,
        page: int = 1,
        path: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """List commits, optionally on a branch or touching one path."""
        return await self._get(
            f"/repos/{org}/{repo}/commits",
            params={"sha": branch, "path": path, "per_page": per_page, "page": page},
        )

    async def get_commit(self, org: str, repo: str, sha: str) -> dict[str, Any]:
        """Get a single commit including its changed files."""
        return await self._get(f"/repos/{org}/{repo}/commits/{sha}")

    # =========================================================================
    # Pull requests
    # =========================================================================

    async def list_pulls(
        self,
        org: str,
        repo: str,
        state: str = "all",
        sort: str = "updated",
        direction: str = "desc",
        per_page: int = 100,
        page: int = 1,
    ) -> list[dict[str, Any]]:
        """List pull requests."""
        return await self._get(
            f"/repos/{org}/{repo}/pulls",
            params={
                "state": state,
                "sort": sort,
                "direction": direction,
                "per_page": per_page,
                "page": page,
            },
        )

    async def get_pull(self, org: str, repo: str, number: int) -> dict[str, Any]:
        """Get a single pull request."""
        return await self._get(f"/repos/{org}/{repo}/pulls/{number}")

    async def list_pull_files(self, org: str, repo: str, number: int) -> list[dict[str, Any]]:
        """List the files changed by a pull request."""
        return await self._get(
            f"/repos/{org}/{repo}/pulls/{number}/files",
            params={"per_page": 100},
        )

    # =========================================================================
    # Issues and search
    # =========================================================================

    async def list_issues(
        self,
        org: str,
        repo: str,
        state: str = "all",
        labels: Optional[str] = None,
        assignee: Optional[str] = None,
        creator: Optional[str] = None,
        mentioned: Optional[str] = None,
        sort: str = "updated",
        direction: str = "desc",
        per_page: int = 100,
        page: int = 1,
    ) -> list[dict[str, Any]]:
        """
        List issues. The issues endpoint also returns pull requests;
        those are dropped.
        """
        items = await self._get(
            f"/repos/{org}/{repo}/issues",
            params={
                "state": state,
                "labels": labels,
                "assignee": assignee,
                "creator": creator,
                "mentioned": mentioned,
                "sort": sort,
                "direction": direction,
                "per_page": per_page,
                "page": page,
            },
        )
        return [item for item in items if "pull_request" not in item]

    async def search_issues(
        self,
        q: str,
        sort: str = "created",
        order: str = "desc",
        per_page: int = 100,
        page: int = 1,
    ) -> dict[str, Any]:
        """Run an issue/PR search query."""
        return await self._get(
            "/search/issues",
            params={"q": q, "sort": sort, "order": order, "per_page": per_page, "page": page},
        )

    # =========================================================================
    # Users
    # =========================================================================

    async def list_org_members(self, org: str) -> list[dict[str, Any]]:
        """All members of an organization, following pages of 100."""
        members: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = await self._get(f"/orgs/{org}/members", params={"per_page": 100, "page": page})
            members.extend(batch)
            if len(batch) < 100:
                return members
            page += 1

    async def get_user(self) -> dict[str, Any]:
        """Get the user owning the token."""
        data = await self._get("/user")
        return {
            "login": data.get("login"),
            "id": data.get("id"),
            "name": data.get("name"),
            "email": data.get("email"),
            "avatar_url": data.get("avatar_url"),
        }

    async def health_check(self) -> bool:
        try:
            await self._get("/rate_limit")
            return True
        except GitHubError:
            return False
