"""
Message vote endpoints.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from devhub.api.deps import get_current_user, get_feedback_repository
from devhub.core.constants import VoteType
from devhub.core.exceptions import ValidationError
from devhub.domain.user import CurrentUser
from devhub.repositories.feedback_repo import FeedbackRepository

router = APIRouter()


class VoteRequest(BaseModel):
    """A vote on one assistant message, optionally with a JIRA ticket."""

    chat_id: Optional[str] = Field(default=None, alias="chatId")
    message_id: Optional[str] = Field(default=None, alias="messageId")
    type: Optional[str] = Field(default=None, description="up or down")
    comments: str = Field(default="")
    rating: Optional[int] = Field(default=None, ge=0, le=100)
    category: Optional[str] = Field(default=None)
    jira_issue: Optional[dict[str, Any]] = Field(default=None, alias="jiraIssue")

    class Config:
        populate_by_name = True


@router.get("/vote")
async def get_votes(
    chat_id: Optional[str] = Query(default=None, alias="chatId"),
    user: CurrentUser = Depends(get_current_user),
    feedback_repository: FeedbackRepository = Depends(get_feedback_repository),
) -> list[dict[str, Any]]:
    """Votes for one chat, or every vote when no chat is given."""
    if chat_id:
        return await feedback_repository.get_votes_by_chat(chat_id)
    return await feedback_repository.get_all_votes()


@router.patch("/vote")
async def vote_message(
    request: VoteRequest,
    user: CurrentUser = Depends(get_current_user),
    feedback_repository: FeedbackRepository = Depends(get_feedback_repository),
) -> dict[str, Any]:
    if not request.chat_id or not request.message_id or not request.type:
        raise ValidationError("chatId, messageId and type are required")
    if request.type not in {v.value for v in VoteType}:
        raise ValidationError("type must be 'up' or 'down'", details={"type": request.type})

    vote = await feedback_repository.vote_message(
        chat_id=request.chat_id,
        message_id=request.message_id,
        user_id=user.id,
        vote_type=request.type,
        comments=request.comments,
        rating=request.rating,
        category=request.category,
        jira_issue=request.jira_issue,
    )
    return {"success": True, "message": "Message voted", "vote": vote}
