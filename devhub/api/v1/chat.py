"""
Chat endpoints: streamed answers, titles and message history.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from devhub.api.deps import (
    get_chat_repository,
    get_chat_service,
    get_current_user,
    get_title_generator,
)
from devhub.core.constants import SSE_HEADERS
from devhub.core.exceptions import ChatNotFoundError, ValidationError
from devhub.core.logging import get_logger
from devhub.domain.user import CurrentUser
from devhub.repositories.chat_repo import ChatRepository, serialize_message
from devhub.services.chat_service import ChatService
from devhub.services.model_catalog import get_fallback_model
from devhub.services.title_generator import TitleGenerator

logger = get_logger(__name__)

router = APIRouter()


# Request models
class QueryStreamRequest(BaseModel):
    """Request body for a streamed chat answer."""

    query: str = Field(default="", description="User question")
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    selected_model: Optional[str] = Field(default=None, alias="selectedModel")

    class Config:
        populate_by_name = True


class GenerateTitleRequest(BaseModel):
    query: str = Field(default="")


class UpdateTitleRequest(BaseModel):
    chat_id: str = Field(..., alias="chatId")
    title: str = Field(..., min_length=1)

    class Config:
        populate_by_name = True


@router.post("/query/stream")
async def stream_query(
    request: QueryStreamRequest,
    user: CurrentUser = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """
    Stream an answer from the chat backend as server-sent events.

    Frames are JSON objects with ``content``, ``type`` (content, progress,
    code, error, done) and ``done``.
    """
    model = get_fallback_model(request.selected_model)
    stream = await chat_service.stream_query(user, request.chat_id, request.query, model)

    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/chat/generate-title")
async def generate_title(
    request: GenerateTitleRequest,
    user: CurrentUser = Depends(get_current_user),
    title_generator: TitleGenerator = Depends(get_title_generator),
) -> dict[str, str]:
    query = request.query.strip()
    if not query:
        raise ValidationError("Query is required")
    return {"title": await title_generator.generate(query)}


@router.post("/chat/update-title")
async def update_title(
    request: UpdateTitleRequest,
    user: CurrentUser = Depends(get_current_user),
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> dict[str, Any]:
    chat = await chat_repository.get_chat_with_permissions(request.chat_id, user.id, user.email)
    if chat is None:
        raise ChatNotFoundError(request.chat_id)

    await chat_repository.update_chat_title(request.chat_id, request.title)
    logger.info("Chat renamed", chat_id=request.chat_id)
    return {"success": True, "chatId": request.chat_id, "title": request.title}


@router.get("/chat/{chat_id}/messages")
async def get_messages(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> dict[str, Any]:
    """Messages of a chat the caller can open, oldest first."""
    chat = await chat_repository.get_chat_with_permissions(chat_id, user.id, user.email)
    if chat is None:
        raise ChatNotFoundError(chat_id)

    messages = await chat_repository.get_messages(chat_id)
    return {
        "chatId": chat_id,
        "title": chat.title,
        "messages": [serialize_message(m) for m in messages],
    }
