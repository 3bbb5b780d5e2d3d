"""
Message feedback endpoints: history and JIRA status tracking.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from devhub.api.deps import get_current_user, get_feedback_repository
from devhub.core.constants import MAX_PAGE_SIZE
from devhub.core.exceptions import NotFoundError, ValidationError
from devhub.db.models import utcnow
from devhub.domain.user import CurrentUser
from devhub.repositories.feedback_repo import FeedbackRepository

router = APIRouter()


class JiraStatusUpdate(BaseModel):
    feedback_id: Optional[str] = Field(default=None, alias="feedbackId")
    status: Optional[str] = Field(default=None)
    assignee: Optional[str] = Field(default=None)
    priority: Optional[str] = Field(default=None)
    labels: Optional[list[str]] = Field(default=None)

    class Config:
        populate_by_name = True


@router.get("/feedback")
async def feedback_status(user: CurrentUser = Depends(get_current_user)) -> dict[str, Any]:
    """Probe used by the UI to confirm the feedback API is reachable."""
    return {
        "message": "Feedback system API is working",
        "user": user.id,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/feedback/history")
async def feedback_history(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    user: CurrentUser = Depends(get_current_user),
    feedback_repository: FeedbackRepository = Depends(get_feedback_repository),
) -> dict[str, Any]:
    history = await feedback_repository.get_user_feedback_history(user.id, page, page_size)
    return {"success": True, **history}


@router.patch("/feedback/update-jira-status")
async def update_jira_status(
    request: JiraStatusUpdate,
    user: CurrentUser = Depends(get_current_user),
    feedback_repository: FeedbackRepository = Depends(get_feedback_repository),
) -> dict[str, Any]:
    if not request.feedback_id or not request.status:
        raise ValidationError("feedbackId and status are required")

    updated = await feedback_repository.update_jira_issue(
        request.feedback_id,
        user.id,
        request.model_dump(include={"status", "assignee", "priority", "labels"}, exclude_none=True),
    )
    if updated is None:
        raise NotFoundError("Feedback", message="Feedback not found or not owned by user")

    return {"success": True, "updated": updated}
