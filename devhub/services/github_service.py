"""
GitHub browsing service.

Wraps a per-user GitHubClient with defaults, validation and a process-local
cache for repository listings.
"""

import re
from typing import Any, Optional
from urllib.parse import unquote

from devhub.clients.github import GitHubClient
from devhub.core.config import GitHubSettings, settings
from devhub.core.constants import (
    MAX_PAGE_SIZE,
    NO_DIFF_MESSAGE,
    REPOS_CACHE_KEY,
    TIMELINE_COMMIT_LIMIT,
)
from devhub.core.exceptions import ChangedFileNotFoundError, GitHubError, InvalidRequestError
from devhub.core.logging import get_logger
from devhub.repositories.cache_repo import InMemoryCacheRepository
from devhub.services.code_utils import detect_language_and_type

logger = get_logger(__name__)

_PR_REFERENCE_RE = re.compile(r"#(\d+)")


def parse_repository(
    value: Optional[str],
    default_org: Optional[str] = None,
    default_repo: Optional[str] = None,
) -> tuple[str, str]:
    """
    Split ``org/repo`` into its parts.

    A bare repository name uses the default org; an empty value uses the
    configured default repository.
    """
    org = default_org or settings.github.default_org
    repo = default_repo or settings.github.default_repo
    if not value:
        return org, repo
    if "/" in value:
        owner, _, name = value.partition("/")
        return owner or org, name or repo
    return org, value


def find_changed_file(
    files: list[dict[str, Any]],
    filename: str,
    not_found_message: str,
) -> dict[str, Any]:
    """
    Pick a changed file by name.

    Tries the exact name, then the URL-decoded name, then a
    case-insensitive match.
    """
    decoded = unquote(filename)
    for matches in (
        lambda name: name == filename,
        lambda name: name == decoded,
        lambda name: name.lower() == decoded.lower(),
    ):
        for changed in files:
            if matches(changed.get("filename", "")):
                return changed

    raise ChangedFileNotFoundError(
        filename, not_found_message, [f.get("filename", "") for f in files]
    )


class GitHubService:
    """Repository, commit, pull request and issue queries for one user."""

    def __init__(
        self,
        client: GitHubClient,
        cache: InMemoryCacheRepository,
        config: Optional[GitHubSettings] = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.config = config or settings.github

    def _org(self, org: Optional[str]) -> str:
        return org or self.config.default_org

    async def list_repositories(
        self,
        org: Optional[str] = None,
        page: int = 1,
        per_page: int = 30,
        include_archived: bool = False,
        sort: str = "updated",
        direction: str = "desc",
        type: str = "all",
        force_refresh: bool = False,
    ) -> dict[str, Any]:
        """
        List an organisation's repositories, cached for a few minutes.

        Args:
            org: Organisation; defaults to the configured one
            page: 1-based page number
            per_page: Page size, clamped to 1..100
            include_archived: Keep archived repositories
            force_refresh: Skip the cache read and refetch

        Returns:
            Dict with status, data, pagination, cached and filters
        """
        if page < 1:
            raise InvalidRequestError("page must be 1 or greater", field="page")
        per_page = min(max(per_page, 1), MAX_PAGE_SIZE)
        org = self._org(org)

        key = REPOS_CACHE_KEY.format(
            org=org,
            page=page,
            per_page=per_page,
            archived=include_archived,
            sort=sort,
            direction=direction,
            type=type,
        )

        if force_refresh:
            await self.cache.delete(key)

        raw = await self.cache.get(key)
        cached = raw is not None
        if raw is None:
            raw = await self.client.list_org_repos(
                org, page=page, per_page=per_page, type=type, sort=sort, direction=direction
            )
            await self.cache.set(key, raw, self.config.repos_cache_ttl)

        repos = raw if include_archived else [r for r in raw if not r.get("archived")]
        logger.debug("Listed repositories", org=org, count=len(repos), cached=cached)

        return {
            "status": "success",
            "data": repos,
            "pagination": {
                "page": page,
                "per_page": per_page,
                "has_next": len(raw) == per_page,
                "has_prev": page > 1,
            },
            "cached": cached,
            "filters": {
                "org": org,
                "include_archived": include_archived,
                "sort": sort,
                "direction": direction,
                "type": type,
            },
        }

    async def get_file_content(
        self,
        repository: Optional[str],
        path: Optional[str],
        ref: Optional[str] = None,
    ) -> dict[str, Any]:
        if not repository:
            raise InvalidRequestError("repository is required", field="repository")
        if not path:
            raise InvalidRequestError("filePath is required", field="filePath")

        org, repo = parse_repository(repository, default_org=self.config.default_org)
        file = await self.client.get_file_content(org, repo, path, ref)
        return {**file, **detect_language_and_type(file["name"] or path)}

    async def list_commits(
        self,
        repo: str,
        org: Optional[str] = None,
        branch: Optional[str] = None,
        per_page: int = 30,
    ) -> list[dict[str, Any]]:
        return await self.client.list_commits(self._org(org), repo, branch=branch, per_page=per_page)

    async def get_commit(self, repo: str, sha: str, org: Optional[str] = None) -> dict[str, Any]:
        return await self.client.get_commit(self._org(org), repo, sha)

    async def list_pulls(
        self,
        repo: str,
        org: Optional[str] = None,
        state: str = "all",
        page: int = 1,
        per_page: int = 100,
    ) -> list[dict[str, Any]]:
        return await self.client.list_pulls(
            self._org(org), repo, state=state, page=page, per_page=per_page
        )

    async def get_pull_with_files(
        self,
        repo: str,
        number: int,
        org: Optional[str] = None,
    ) -> dict[str, Any]:
        """A pull request together with its changed files."""
        org = self._org(org)
        pull = await self.client.get_pull(org, repo, number)
        files = await self.client.list_pull_files(org, repo, number)
        return {**pull, "files": files}

    async def list_pull_files(
        self,
        repo: Optional[str],
        pull_number: Optional[int],
        org: Optional[str] = None,
    ) -> dict[str, Any]:
        """Changed files of a pull request with line totals."""
        if not repo or not pull_number:
            raise InvalidRequestError("Missing required parameters: repo and pull_number")

        files = await self.client.list_pull_files(self._org(org), repo, pull_number)
        return {
            "status": "success",
            "files": files,
            "summary": {
                "additions": sum(f.get("additions", 0) for f in files),
                "deletions": sum(f.get("deletions", 0) for f in files),
                "changed_files": len(files),
            },
        }

    async def get_pull_file_diff(
        self,
        repo: Optional[str],
        pull_number: Optional[int],
        filename: Optional[str],
        org: Optional[str] = None,
    ) -> str:
        if not repo or not pull_number or not filename:
            raise InvalidRequestError("Missing required parameters: repo, pull_number and filename")

        files = await self.client.list_pull_files(self._org(org), repo, pull_number)
        changed = find_changed_file(files, filename, f"File '{filename}' not found in PR")
        return changed.get("patch") or NO_DIFF_MESSAGE

    async def get_commit_file_diff(
        self,
        repo: Optional[str],
        commit_sha: Optional[str],
        filename: Optional[str],
        org: Optional[str] = None,
    ) -> str:
        if not repo or not commit_sha or not filename:
            raise InvalidRequestError("Missing required parameters: repo, commit_sha and filename")

        commit = await self.client.get_commit(self._org(org), repo, commit_sha)
        changed = find_changed_file(
            commit.get("files") or [], filename, f"File '{filename}' not found in commit"
        )
        return changed.get("patch") or NO_DIFF_MESSAGE

    async def get_repo_commits(
        self,
        repo: Optional[str],
        org: Optional[str] = None,
        commit_sha: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        One commit's files and stats when ``commit_sha`` is given,
        otherwise the commit list of the branch.
        """
        if not repo:
            raise InvalidRequestError("Repository name is required", field="repo")
        org = self._org(org)

        if not commit_sha:
            commits = await self.client.list_commits(org, repo, branch=branch)
            return {"status": "success", "commits": commits}

        commit = await self.client.get_commit(org, repo, commit_sha)
        details = commit.get("commit") or {}
        return {
            "status": "success",
            "files": commit.get("files") or [],
            "stats": commit.get("stats") or {"additions": 0, "deletions": 0, "total": 0},
            "commit": {
                "sha": commit.get("sha"),
                "message": details.get("message"),
                "author": details.get("author"),
                "committer": details.get("committer"),
                "url": commit.get("html_url"),
            },
        }

    async def get_file_timeline(
        self,
        repository: Optional[str],
        file_path: Optional[str],
    ) -> dict[str, Any]:
        """
        Commits touching a file, each linked to the pull request that
        brought it in when one can be found.

        A commit matches a PR by merge or head SHA, then by a ``#123``
        reference in its message.
        """
        if not repository or not file_path:
            raise InvalidRequestError("Repository and filePath are required")

        org, repo = parse_repository(repository, default_org=self.config.default_org)
        commits = await self.client.list_commits(
            org, repo, path=file_path, per_page=TIMELINE_COMMIT_LIMIT
        )

        try:
            pulls = await self.client.list_pulls(org, repo, state="all", sort="updated")
        except GitHubError as e:
            logger.warning("Could not load pull requests for timeline", repo=repo, error=e.message)
            pulls = []

        by_sha: dict[str, dict[str, Any]] = {}
        by_number: dict[int, dict[str, Any]] = {}
        for pull in pulls:
            by_number[pull["number"]] = pull
            for sha in (pull.get("merge_commit_sha"), (pull.get("head") or {}).get("sha")):
                if sha:
                    by_sha.setdefault(sha, pull)

        timeline = []
        for commit in commits:
            details = commit.get("commit") or {}
            message = details.get("message") or ""
            pull = by_sha.get(commit.get("sha", ""))
            if pull is None:
                reference = _PR_REFERENCE_RE.search(message)
                if reference:
                    pull = by_number.get(int(reference.group(1)))

            timeline.append({
                "sha": commit.get("sha"),
                "date": (details.get("author") or {}).get("date"),
                "author": (details.get("author") or {}).get("name"),
                "message": message.split("\n", 1)[0],
                "prNumber": pull["number"] if pull else None,
                "prTitle": pull.get("title") if pull else None,
                "branchName": (pull.get("head") or {}).get("ref") if pull else None,
            })

        logger.debug("Built file timeline", repo=repo, path=file_path, commits=len(timeline))
        return {"timeline": timeline, "totalCommits": len(timeline)}

    async def get_pr_summary(self, repository: Optional[str], number: Optional[int]) -> dict[str, Any]:
        """
        A pull request trimmed to the fields the summary panel shows.

        The changed files are best effort; ``files`` is None when they
        cannot be listed.
        """
        if not repository or not number:
            raise InvalidRequestError("Missing required parameters: repo and pr")

        org, repo = parse_repository(repository, default_org=self.config.default_org)
        pull = await self.client.get_pull(org, repo, number)

        try:
            files: Optional[list[dict[str, Any]]] = await self.client.list_pull_files(org, repo, number)
        except GitHubError as e:
            logger.warning("Could not load pull request files", repo=repo, number=number, error=e.message)
            files = None

        user = pull.get("user") or {}
        head = pull.get("head") or {}
        base = pull.get("base") or {}
        return {
            "pr": {
                "number": pull.get("number"),
                "title": pull.get("title"),
                "body": pull.get("body"),
                "state": pull.get("state"),
                "merged": pull.get("merged"),
                "merged_at": pull.get("merged_at"),
                "created_at": pull.get("created_at"),
                "updated_at": pull.get("updated_at"),
                "user": {"login": user.get("login"), "avatar_url": user.get("avatar_url")},
                "head": {"ref": head.get("ref"), "sha": head.get("sha")},
                "base": {"ref": base.get("ref"), "sha": base.get("sha")},
                "additions": pull.get("additions"),
                "deletions": pull.get("deletions"),
                "changed_files": pull.get("changed_files"),
                "commits": pull.get("commits"),
                "comments": pull.get("comments"),
                "review_comments": pull.get("review_comments"),
                "html_url": pull.get("html_url"),
                "mergeable": pull.get("mergeable"),
                "files": files,
            }
        }

    async def get_pr_details(self, repository: Optional[str], number: Optional[int]) -> dict[str, Any]:
        if not repository or not number:
            raise InvalidRequestError("Repository and prNumber are required")

        org, repo = parse_repository(repository, default_org=self.config.default_org)
        pull = await self.client.get_pull(org, repo, number)
        return {
            "number": pull.get("number"),
            "title": pull.get("title"),
            "state": pull.get("state"),
            "author": (pull.get("user") or {}).get("login"),
            "branch": (pull.get("head") or {}).get("ref"),
            "baseBranch": (pull.get("base") or {}).get("ref"),
            "description": pull.get("body") or "",
            "changedFiles": pull.get("changed_files"),
            "additions": pull.get("additions"),
            "deletions": pull.get("deletions"),
            "createdAt": pull.get("created_at"),
            "updatedAt": pull.get("updated_at"),
            "mergedAt": pull.get("merged_at"),
        }

    async def list_org_members(self, org: Optional[str] = None) -> list[dict[str, Any]]:
        return await self.client.list_org_members(self._org(org))

    async def list_issues(self, repo: str, org: Optional[str] = None, **filters: Any) -> list[dict[str, Any]]:
        return await self.client.list_issues(self._org(org), repo, **filters)

    async def search_issues(self, q: str, **options: Any) -> dict[str, Any]:
        if not q:
            raise InvalidRequestError("Search query 'q' is required", field="q")
        return await self.client.search_issues(q, **options)

    async def get_user(self) -> dict[str, Any]:
        return await self.client.get_user()
