"""
Chat sharing endpoints. Only a chat's owner may change who it is shared with.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from devhub.api.deps import get_chat_repository, get_current_user
from devhub.core.exceptions import ValidationError
from devhub.domain.user import CurrentUser
from devhub.repositories.chat_repo import ChatRepository

router = APIRouter()


class ShareUser(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    name: Optional[str] = Field(default=None)
    email: str = Field(..., min_length=3)

    class Config:
        populate_by_name = True


class ShareRequest(BaseModel):
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    users_to_share_with: Optional[list[ShareUser]] = Field(default=None, alias="usersToShareWith")

    class Config:
        populate_by_name = True


@router.post("/share")
async def share_chat(
    request: ShareRequest,
    user: CurrentUser = Depends(get_current_user),
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> dict[str, Any]:
    if not request.chat_id or request.users_to_share_with is None:
        raise ValidationError("Missing required fields")

    shared_with = await chat_repository.share_chat(
        request.chat_id,
        user.id,
        [u.model_dump(by_alias=True) for u in request.users_to_share_with],
    )
    return {"success": True, "sharedWith": shared_with}


@router.delete("/share")
async def unshare_chat(
    chat_id: Optional[str] = Query(default=None, alias="chatId"),
    user_to_remove: str = Query(default="all", alias="userId"),
    user: CurrentUser = Depends(get_current_user),
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> dict[str, Any]:
    if not chat_id:
        raise ValidationError("Missing chatId parameter")

    shared_with = await chat_repository.unshare_chat(chat_id, user.id, user_to_remove)
    return {"success": True, "sharedWith": shared_with}


@router.get("/share")
async def get_shared_users(
    chat_id: Optional[str] = Query(default=None, alias="chatId"),
    user: CurrentUser = Depends(get_current_user),
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> dict[str, Any]:
    """
    Who a chat is shared with.

    Callers who may not see the list get an empty one rather than an error,
    flagged with ``userIsNotOwner``.
    """
    if not chat_id:
        raise ValidationError("Missing chatId parameter")

    result = await chat_repository.get_shared_users(chat_id, user.id, user.email)
    if result is None:
        return {"success": True, "sharedWith": [], "owner": None, "userIsNotOwner": True}
    return result
