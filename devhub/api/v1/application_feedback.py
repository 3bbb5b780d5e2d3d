"""
Application feedback endpoints: bug reports, feature requests and the
admin triage that follows.
"""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from devhub.api.deps import get_app_feedback_repository, get_optional_user
from devhub.core.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    FeedbackPriority,
    FeedbackStatus,
    FeedbackType,
    VoteType,
)
from devhub.core.exceptions import AuthenticationError, ValidationError
from devhub.domain.user import CurrentUser
from devhub.repositories.app_feedback_repo import ApplicationFeedbackRepository

router = APIRouter()


class CreateFeedbackRequest(BaseModel):
    """New application feedback. Type and priority are checked against the enums."""

    feedback_type: Optional[str] = Field(default=None, alias="feedbackType")
    title: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    category: Optional[str] = Field(default=None)
    priority: Optional[str] = Field(default=None)
    tags: list[str] = Field(default_factory=list)
    browser_info: Optional[dict[str, Any]] = Field(default=None, alias="browserInfo")
    contact_info: Optional[dict[str, Any]] = Field(default=None, alias="contactInfo")
    rating: Optional[int] = Field(default=None, ge=1, le=5)

    class Config:
        populate_by_name = True


class UpdateFeedbackRequest(BaseModel):
    """Either a status change (status, adminNotes) or a vote."""

    feedback_id: Optional[str] = Field(default=None, alias="feedbackId")
    vote: Optional[str] = Field(default=None)
    status: Optional[str] = Field(default=None)
    admin_notes: Optional[str] = Field(default=None, alias="adminNotes")

    class Config:
        populate_by_name = True


def _values(enum) -> set[str]:
    return {member.value for member in enum}


@router.get("/application-feedback")
async def list_application_feedback(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    feedback_type: Optional[FeedbackType] = Query(default=None, alias="feedbackType"),
    status: Optional[FeedbackStatus] = Query(default=None),
    priority: Optional[FeedbackPriority] = Query(default=None),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder"),
    stats: bool = Query(default=False),
    export: Optional[str] = Query(default=None),
    repository: ApplicationFeedbackRepository = Depends(get_app_feedback_repository),
) -> Any:
    """
    List feedback, or return stats with ``stats=true``, or a CSV download
    with ``export=csv``.
    """
    filters = {
        "feedback_type": feedback_type.value if feedback_type else None,
        "status": status.value if status else None,
        "priority": priority.value if priority else None,
        "user_id": user_id,
    }

    if export == "csv":
        csv_data = await repository.export_csv(sort_by=sort_by, sort_order=sort_order, **filters)
        filename = f"application-feedback-{date.today().isoformat()}.csv"
        return Response(
            content=csv_data,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    if stats:
        return {"stats": await repository.stats()}

    return await repository.list(
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        **filters,
    )


@router.post("/application-feedback")
async def create_application_feedback(
    request: CreateFeedbackRequest,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    repository: ApplicationFeedbackRepository = Depends(get_app_feedback_repository),
) -> dict[str, Any]:
    if not request.feedback_type or not request.title or not request.description or not request.priority:
        raise ValidationError("Missing required fields")
    if request.feedback_type not in _values(FeedbackType):
        raise ValidationError("Invalid feedback type", details={"feedbackType": request.feedback_type})
    if request.priority not in _values(FeedbackPriority):
        raise ValidationError("Invalid priority", details={"priority": request.priority})

    feedback_id = await repository.create(
        user.id if user else None,
        request.model_dump(by_alias=True),
    )
    return {"success": True, "id": feedback_id, "message": "Feedback created successfully"}


@router.put("/application-feedback")
async def update_application_feedback(
    request: UpdateFeedbackRequest,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    repository: ApplicationFeedbackRepository = Depends(get_app_feedback_repository),
) -> dict[str, Any]:
    if not request.feedback_id:
        raise ValidationError("Missing feedbackId")

    if request.status:
        if request.status not in _values(FeedbackStatus):
            raise ValidationError("Invalid status", details={"status": request.status})
        await repository.update_status(request.feedback_id, request.status, request.admin_notes)
        return {"success": True, "message": "Feedback status updated successfully"}

    if request.vote:
        if request.vote not in _values(VoteType):
            raise ValidationError("Invalid vote. Must be 'up' or 'down'")
        if user is None:
            raise AuthenticationError("Sign in to vote on feedback")
        counts = await repository.vote(request.feedback_id, user.id, request.vote)
        return {"success": True, **counts}

    raise ValidationError("Provide either status or vote")
