"""
JIRA endpoints: issue lookup, comments and issue creation from feedback.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from devhub.api.deps import get_current_user, get_jira_service
from devhub.core.exceptions import InvalidRequestError
from devhub.domain.user import CurrentUser
from devhub.services.jira_service import JiraService

router = APIRouter()


# Request models
class ExtractFrom(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    branch_name: Optional[str] = Field(default=None, alias="branchName")

    class Config:
        populate_by_name = True


class JiraLookupRequest(BaseModel):
    """One key, several keys, or PR metadata to scan for keys."""

    issue_key: Optional[str] = Field(default=None, alias="issueKey")
    issue_keys: Optional[list[str]] = Field(default=None, alias="issueKeys")
    extract_from: Optional[ExtractFrom] = Field(default=None, alias="extractFrom")

    class Config:
        populate_by_name = True


class AddCommentRequest(BaseModel):
    issue_key: Optional[str] = Field(default=None, alias="issueKey")
    comment: Optional[str] = None

    class Config:
        populate_by_name = True


class CreateIssueRequest(BaseModel):
    summary: Optional[str] = None
    description: Optional[str] = None
    project_key: Optional[str] = Field(default=None, alias="projectKey")
    issue_type: Optional[str] = Field(default=None, alias="issueType")
    priority: Optional[str] = None
    labels: list[str] = Field(default_factory=list)
    reporter_name: Optional[str] = Field(default=None, alias="reporterName")
    reporter_email: Optional[str] = Field(default=None, alias="reporterEmail")
    attachments: list[Any] = Field(default_factory=list, description="{fileName, content, mimeType} objects or JSON strings")

    class Config:
        populate_by_name = True


class CreateSubtaskRequest(BaseModel):
    parent_task_key: Optional[str] = Field(default=None, alias="parentTaskKey")
    summary: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    labels: list[str] = Field(default_factory=list)
    usability_percentage: Optional[int] = Field(default=None, alias="usabilityPercentage")
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    message_id: Optional[str] = Field(default=None, alias="messageId")
    reporter_name: Optional[str] = Field(default=None, alias="reporterName")
    reporter_email: Optional[str] = Field(default=None, alias="reporterEmail")
    attachments: list[Any] = Field(default_factory=list)

    class Config:
        populate_by_name = True


@router.post("/jira")
async def lookup_issues(
    request: JiraLookupRequest,
    user: CurrentUser = Depends(get_current_user),
    jira: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    extract_from = request.extract_from.model_dump(by_alias=True) if request.extract_from else None
    return await jira.lookup(
        issue_key=request.issue_key,
        issue_keys=request.issue_keys,
        extract_from=extract_from,
    )


@router.get("/jira/comments")
async def get_comments(
    issue_key: Optional[str] = Query(default=None, alias="issueKey"),
    user: CurrentUser = Depends(get_current_user),
    jira: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    if not issue_key:
        raise InvalidRequestError("Issue key is required", field="issueKey")
    comments = await jira.get_comments(issue_key)
    return {"success": True, "comments": comments, "count": len(comments)}


@router.post("/jira/comments")
async def add_comment(
    request: AddCommentRequest,
    user: CurrentUser = Depends(get_current_user),
    jira: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    if not request.issue_key or not request.comment:
        raise InvalidRequestError("Issue key and comment are required")
    comment = await jira.add_comment(request.issue_key, request.comment)
    return {"success": True, "comment": comment}


@router.post("/jira/create-issue")
async def create_issue(
    request: CreateIssueRequest,
    user: CurrentUser = Depends(get_current_user),
    jira: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    """Create an issue; the reporter defaults to the signed-in user."""
    return await jira.create_issue(
        summary=request.summary,
        description=request.description,
        project_key=request.project_key,
        issue_type=request.issue_type,
        priority=request.priority,
        labels=request.labels,
        reporter_name=request.reporter_name or user.display_name,
        reporter_email=request.reporter_email or user.email,
        attachments=request.attachments,
    )


@router.get("/jira/subtask")
async def get_parent_task(
    parent_task_key: Optional[str] = Query(default=None, alias="parentTaskKey"),
    user: CurrentUser = Depends(get_current_user),
    jira: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    """Validate a parent task before filing a feedback sub-task under it."""
    if not parent_task_key:
        raise InvalidRequestError("Missing required parameters", field="parentTaskKey")

    parent = await jira.get_parent_task(parent_task_key)
    return {
        "status": "success",
        "data": {
            "parentTask": {
                "key": parent["key"],
                "summary": parent["summary"],
                "description": parent.get("description"),
                "status": (parent.get("status") or {}).get("name"),
                "issuetype": parent.get("issuetype"),
            }
        },
    }


@router.post("/jira/subtask")
async def create_subtask(
    request: CreateSubtaskRequest,
    user: CurrentUser = Depends(get_current_user),
    jira: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    result = await jira.create_feedback_subtask(
        parent_task_key=request.parent_task_key,
        summary=request.summary,
        description=request.description,
        usability_percentage=request.usability_percentage,
        chat_id=request.chat_id,
        message_id=request.message_id,
        priority=request.priority,
        labels=request.labels,
        reporter_name=request.reporter_name or user.display_name,
        reporter_email=request.reporter_email or user.email,
        attachments=request.attachments,
    )
    return {"status": "success", "data": result}


@router.get("/jira/issue-types")
async def get_issue_types(
    project_key: Optional[str] = Query(default=None, alias="projectKey"),
    user: CurrentUser = Depends(get_current_user),
    jira: JiraService = Depends(get_jira_service),
) -> dict[str, Any]:
    if not project_key:
        raise InvalidRequestError("projectKey is required", field="projectKey")
    issue_types = await jira.get_issue_types(project_key)
    return {"success": True, "issueTypes": issue_types}
