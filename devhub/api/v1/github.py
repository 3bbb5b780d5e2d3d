"""
GitHub endpoints.

Direct REST browsing runs with the caller's token; the ``/github/fastapi``
and ``/github/chat`` routes proxy the GitHub insights service that sits
beside the chat backend.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field

from devhub.api.deps import (
    get_chat_client,
    get_current_user,
    get_github_service,
    get_github_token,
    get_pr_insights_service,
)
from devhub.clients.chat_backend import ChatBackendClient
from devhub.core.constants import MAX_PAGE_SIZE, SSE_HEADERS, MessageRole
from devhub.core.exceptions import InvalidRequestError, ValidationError
from devhub.core.logging import get_logger
from devhub.domain.user import CurrentUser
from devhub.services.github_service import GitHubService, parse_repository
from devhub.services.pr_insights_service import PullRequestInsightsService
from devhub.services.sse import prime_stream

logger = get_logger(__name__)

router = APIRouter()

DEFAULT_CONTEXT_TYPES = ["commits", "prs", "files"]


# Request models
class FileContentRequest(BaseModel):
    repository: Optional[str] = Field(default=None, description="org/repo or repo")
    file_path: Optional[str] = Field(default=None, alias="filePath")
    ref: Optional[str] = Field(default=None, description="Branch, tag or commit")

    class Config:
        populate_by_name = True


class FileTimelineRequest(BaseModel):
    repository: Optional[str] = Field(default=None, description="org/repo or repo")
    file_path: Optional[str] = Field(default=None, alias="filePath")

    class Config:
        populate_by_name = True


class PullRequestDetailsRequest(BaseModel):
    repository: Optional[str] = Field(default=None, description="org/repo or repo")
    pr_number: Optional[int] = Field(default=None, alias="prNumber")

    class Config:
        populate_by_name = True


class SummarizeRequest(BaseModel):
    """Text or structured data to summarise; ``data`` is used when ``content`` is empty."""

    content: Optional[str] = Field(default=None)
    data: Any = Field(default=None)
    type: Optional[str] = Field(default=None, description="pull_request, commit, repository or other")
    title: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    branch_name: Optional[str] = Field(default=None, alias="branchName")
    selected_model: Optional[str] = Field(default=None, alias="selectedModel")

    class Config:
        populate_by_name = True


class PullRequestAnalyticsRequest(BaseModel):
    pr_data: Any = Field(default=None, alias="prData")
    user_info: Optional[dict[str, Any]] = Field(default=None, alias="userInfo")

    class Config:
        populate_by_name = True


class ChatMessage(BaseModel):
    role: str
    content: str


class GitHubInsightsRequest(BaseModel):
    """A question for the GitHub insights service, with the conversation so far."""

    messages: list[ChatMessage] = Field(default_factory=list)
    repository: Optional[str] = Field(default=None)
    org_name: Optional[str] = Field(default=None, alias="orgName")
    context_types: list[str] = Field(default_factory=lambda: list(DEFAULT_CONTEXT_TYPES), alias="contextTypes")
    selected_model: Optional[str] = Field(default=None, alias="selectedModel")

    class Config:
        populate_by_name = True


def _insights_payload(
    request: GitHubInsightsRequest,
    user: CurrentUser,
    github_token: str,
) -> dict[str, Any]:
    if not request.messages:
        raise ValidationError("Messages are required for chat")

    question = next(
        (m for m in reversed(request.messages) if m.role == MessageRole.USER.value),
        None,
    )
    if question is None:
        raise ValidationError("No user message found in chat")

    org, repo = parse_repository(request.repository, default_org=request.org_name)
    return {
        "query": question.content,
        "orgName": org,
        "repository": repo,
        "contextTypes": request.context_types,
        "selectedModel": request.selected_model,
        "messages": [m.model_dump() for m in request.messages],
        "github_token": github_token,
        "user_info": {
            "name": user.display_name,
            "email": user.email,
            "session_id": user.id,
        },
    }


# =============================================================================
# REST browsing
# =============================================================================


@router.get("/github/repos")
async def list_repositories(
    org: Optional[str] = Query(default=None),
    page: int = Query(default=1),
    per_page: int = Query(default=MAX_PAGE_SIZE),
    include_archived: bool = Query(default=False),
    sort: str = Query(default="updated"),
    direction: str = Query(default="desc"),
    type: str = Query(default="all"),
    force_refresh: bool = Query(default=False),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    """Organisation repositories, cached for a few minutes."""
    return await github.list_repositories(
        org=org,
        page=page,
        per_page=per_page,
        include_archived=include_archived,
        sort=sort,
        direction=direction,
        type=type,
        force_refresh=force_refresh,
    )


@router.get("/github/commits")
async def list_commits(
    repo: Optional[str] = Query(default=None),
    org: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    per_page: int = Query(default=30, ge=1, le=MAX_PAGE_SIZE),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    if not repo:
        raise InvalidRequestError("Repository name is required", field="repo")
    commits = await github.list_commits(repo, org=org, branch=branch, per_page=per_page)
    return {"status": "success", "data": commits}


@router.get("/github/commit-details")
async def get_commit_details(
    repo: Optional[str] = Query(default=None),
    sha: Optional[str] = Query(default=None),
    org: Optional[str] = Query(default=None),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    if not repo or not sha:
        raise InvalidRequestError("Missing repo or sha parameter")
    return await github.get_commit(repo, sha, org=org)


@router.get("/github/pulls")
async def list_pulls(
    repo: Optional[str] = Query(default=None),
    org: Optional[str] = Query(default=None),
    state: str = Query(default="all"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    if not repo:
        raise InvalidRequestError("Repository name is required", field="repo")
    pulls = await github.list_pulls(repo, org=org, state=state, page=page, per_page=per_page)
    return {"status": "success", "data": pulls}


@router.get("/github/pulls/files")
async def list_pull_files(
    repo: Optional[str] = Query(default=None),
    pull_number: Optional[int] = Query(default=None),
    org: Optional[str] = Query(default=None),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    """Changed files of a pull request with addition and deletion totals."""
    return await github.list_pull_files(repo, pull_number, org=org)


@router.get("/github/pulls/files/diff", response_class=PlainTextResponse)
async def get_pull_file_diff(
    repo: Optional[str] = Query(default=None),
    pull_number: Optional[int] = Query(default=None),
    filename: Optional[str] = Query(default=None),
    org: Optional[str] = Query(default=None),
    github: GitHubService = Depends(get_github_service),
) -> PlainTextResponse:
    """The unified diff of one file in a pull request."""
    return PlainTextResponse(await github.get_pull_file_diff(repo, pull_number, filename, org=org))


@router.get("/github/pulls/{repo}/{number}")
async def get_pull(
    repo: str,
    number: int,
    org: Optional[str] = Query(default=None),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    """A pull request with its changed files."""
    return {"status": "success", "data": await github.get_pull_with_files(repo, number, org=org)}


@router.get("/github/issues")
async def list_issues(
    repo: Optional[str] = Query(default=None),
    org: Optional[str] = Query(default=None),
    state: str = Query(default="all"),
    labels: Optional[str] = Query(default=None),
    assignee: Optional[str] = Query(default=None),
    creator: Optional[str] = Query(default=None),
    mentioned: Optional[str] = Query(default=None),
    sort: str = Query(default="updated"),
    direction: str = Query(default="desc"),
    per_page: int = Query(default=MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    page: int = Query(default=1, ge=1),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    if not repo:
        raise InvalidRequestError("Repository name is required", field="repo")
    issues = await github.list_issues(
        repo,
        org=org,
        state=state,
        labels=labels,
        assignee=assignee,
        creator=creator,
        mentioned=mentioned,
        sort=sort,
        direction=direction,
        per_page=per_page,
        page=page,
    )
    return {"status": "success", "data": issues}


@router.get("/github/search/issues")
async def search_issues(
    q: Optional[str] = Query(default=None),
    sort: str = Query(default="created"),
    order: str = Query(default="desc"),
    per_page: int = Query(default=MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    page: int = Query(default=1, ge=1),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    return await github.search_issues(q or "", sort=sort, order=order, per_page=per_page, page=page)


@router.get("/github/user")
async def get_github_user(github: GitHubService = Depends(get_github_service)) -> dict[str, Any]:
    return await github.get_user()


@router.post("/github/file-content")
async def get_file_content(
    request: FileContentRequest,
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    """Decoded file content from a repository."""
    return await github.get_file_content(request.repository, request.file_path, request.ref)


@router.get("/github/commits/files/diff", response_class=PlainTextResponse)
async def get_commit_file_diff(
    repo: Optional[str] = Query(default=None),
    commit_sha: Optional[str] = Query(default=None),
    filename: Optional[str] = Query(default=None),
    org: Optional[str] = Query(default=None),
    github: GitHubService = Depends(get_github_service),
) -> PlainTextResponse:
    return PlainTextResponse(await github.get_commit_file_diff(repo, commit_sha, filename, org=org))


@router.get("/github/repos/commits")
async def get_repo_commits(
    repo: Optional[str] = Query(default=None),
    org: Optional[str] = Query(default=None),
    commit_sha: Optional[str] = Query(default=None),
    branch: Optional[str] = Query(default=None),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    """Files and stats of one commit, or the commit list of a branch."""
    return await github.get_repo_commits(repo, org=org, commit_sha=commit_sha, branch=branch)


@router.post("/github/file-timeline")
async def get_file_timeline(
    request: FileTimelineRequest,
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    """Commits that touched a file, linked to their pull requests."""
    return await github.get_file_timeline(request.repository, request.file_path)


@router.get("/github/pr-summary")
async def get_pr_summary(
    repo: Optional[str] = Query(default=None),
    pr: Optional[int] = Query(default=None),
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    return await github.get_pr_summary(repo, pr)


@router.post("/github/pr-details")
async def get_pr_details(
    request: PullRequestDetailsRequest,
    github: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    return await github.get_pr_details(request.repository, request.pr_number)


@router.get("/organization/members")
async def list_organization_members(
    org: Optional[str] = Query(default=None),
    github: GitHubService = Depends(get_github_service),
) -> list[dict[str, Any]]:
    return await github.list_org_members(org)


# =============================================================================
# Summaries and analytics
# =============================================================================


@router.post("/github/summarize")
async def summarize(
    request: SummarizeRequest,
    user: CurrentUser = Depends(get_current_user),
    insights: PullRequestInsightsService = Depends(get_pr_insights_service),
) -> dict[str, Any]:
    """Summarise a pull request, commit or repository with the chat backend."""
    return await insights.summarize(
        content=request.content,
        data=request.data,
        content_type=request.type,
        title=request.title,
        description=request.description,
        branch_name=request.branch_name,
        selected_model=request.selected_model,
    )


@router.post("/github/pr-analytics")
async def pr_analytics(
    request: PullRequestAnalyticsRequest,
    user: CurrentUser = Depends(get_current_user),
    insights: PullRequestInsightsService = Depends(get_pr_insights_service),
) -> dict[str, Any]:
    """Insights into a developer's pull request habits."""
    return await insights.analyze_pull_requests(request.pr_data, request.user_info)


# =============================================================================
# GitHub insights service
# =============================================================================


@router.get("/github/fastapi/health")
async def insights_health(
    user: CurrentUser = Depends(get_current_user),
    github_token: str = Depends(get_github_token),
    chat_client: ChatBackendClient = Depends(get_chat_client),
) -> dict[str, Any]:
    return await chat_client.github_health(github_token)


@router.post("/github/fastapi")
async def insights_query(
    request: GitHubInsightsRequest,
    user: CurrentUser = Depends(get_current_user),
    github_token: str = Depends(get_github_token),
    chat_client: ChatBackendClient = Depends(get_chat_client),
) -> dict[str, Any]:
    payload = _insights_payload(request, user, github_token)
    logger.info("GitHub insights query", repository=payload["repository"], org=payload["orgName"])
    return await chat_client.github_query(payload)


@router.get("/github/fastapi/summary")
async def insights_summary(
    repo: Optional[str] = Query(default=None),
    org: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    chat_client: ChatBackendClient = Depends(get_chat_client),
) -> dict[str, Any]:
    org, repo = parse_repository(repo, default_org=org)
    return await chat_client.github_repository_summary(org, repo)


@router.post("/github/chat")
async def insights_chat_stream(
    request: GitHubInsightsRequest,
    user: CurrentUser = Depends(get_current_user),
    github_token: str = Depends(get_github_token),
    chat_client: ChatBackendClient = Depends(get_chat_client),
) -> StreamingResponse:
    """Stream the insights service's answer unchanged."""
    payload = _insights_payload(request, user, github_token)
    logger.info("GitHub insights stream", repository=payload["repository"], org=payload["orgName"])
    stream = await prime_stream(chat_client.github_query_stream(payload))
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)
