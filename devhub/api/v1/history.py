"""
Chat history endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends

from devhub.api.deps import get_chat_repository, get_current_user
from devhub.core.exceptions import ChatNotFoundError
from devhub.domain.user import CurrentUser
from devhub.repositories.chat_repo import ChatRepository

router = APIRouter()


@router.get("/history")
async def list_history(
    user: CurrentUser = Depends(get_current_user),
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> list[dict[str, Any]]:
    """The caller's chats and chats shared with them, most recent first."""
    return await chat_repository.list_user_chats(user.id, user.email)


@router.delete("/history/{chat_id}")
async def delete_chat(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> dict[str, Any]:
    # Someone else's chat answers 404 as well, so ids cannot be guessed
    if not await chat_repository.delete_chat(chat_id, user.id):
        raise ChatNotFoundError(chat_id)
    return {"success": True, "chatId": chat_id}
