"""Repository for users, chats, messages and chat sharing."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import delete, select

from devhub.core.constants import ChatVisibility, MessageRole
from devhub.core.exceptions import AuthorizationError, ChatNotFoundError
from devhub.core.logging import get_logger
from devhub.db.models import ChatDB, MessageDB, MessageFeedbackDB, UserDB, utcnow
from devhub.db.session import get_async_session

logger = get_logger(__name__)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_chat(chat: ChatDB) -> dict[str, Any]:
    return {
        "id": chat.id,
        "title": chat.title,
        "userId": chat.user_id,
        "visibility": chat.visibility.value,
        "sharedWith": list(chat.shared_with or []),
        "createdAt": _iso(chat.created_at),
        "lastModifiedAt": _iso(chat.last_modified_at),
    }


def serialize_message(message: MessageDB) -> dict[str, Any]:
    return {
        "id": message.id,
        "chatId": message.chat_id,
        "role": message.role.value,
        "content": message.content,
        "model": message.model,
        "createdAt": _iso(message.created_at),
    }


class ChatRepository:
    """Persistence for chats and everything hanging off them.

    Access rules live here: a chat is visible to its owner, to anyone in
    its ``shared_with`` list and, once its visibility is ``shared``, to any
    signed-in user. Only the owner may share, unshare or delete.
    """

    # =========================================================================
    # Users
    # =========================================================================

    async def get_or_create_user(self, email: str, name: Optional[str] = None) -> UserDB:
        """Find a user by email, creating it on first sight.

        Stamps ``last_login_at`` on every call so the dashboard can tell
        who is active.
        """
        async with get_async_session() as session:
            result = await session.execute(select(UserDB).where(UserDB.email == email))
            user = result.scalar_one_or_none()

            if user is None:
                user = UserDB(email=email, name=name)
                session.add(user)
                logger.info("Created user", email=email)
            elif name and not user.name:
                user.name = name

            user.last_login_at = utcnow()
            await session.flush()
            return user

    # =========================================================================
    # Chats
    # =========================================================================

    async def get_chat(self, chat_id: str) -> Optional[ChatDB]:
        async with get_async_session() as session:
            return await session.get(ChatDB, chat_id)

    async def save_chat(self, chat_id: str, user_id: str, title: str) -> ChatDB:
        async with get_async_session() as session:
            chat = ChatDB(
                id=chat_id,
                user_id=user_id,
                title=title,
                visibility=ChatVisibility.PRIVATE,
                shared_with=[],
            )
            session.add(chat)
            await session.flush()
            logger.info("Created chat", chat_id=chat_id, user_id=user_id)
            return chat

    async def get_chat_with_permissions(
        self,
        chat_id: str,
        user_id: str,
        user_email: str,
    ) -> Optional[ChatDB]:
        """Return the chat only if the user may read it."""
        chat = await self.get_chat(chat_id)
        if chat is None:
            return None

        if (
            chat.user_id == user_id
            or chat.is_shared_with(user_email)
            or chat.visibility == ChatVisibility.SHARED
        ):
            return chat
        return None

    async def delete_chat(self, chat_id: str, user_id: str) -> bool:
        """Delete an owned chat together with its messages and votes."""
        async with get_async_session() as session:
            chat = await session.get(ChatDB, chat_id)
            if chat is None or chat.user_id != user_id:
                return False

            await session.execute(delete(MessageFeedbackDB).where(MessageFeedbackDB.chat_id == chat_id))
            await session.execute(delete(MessageDB).where(MessageDB.chat_id == chat_id))
            await session.execute(delete(ChatDB).where(ChatDB.id == chat_id))

        logger.info("Deleted chat", chat_id=chat_id)
        return True

    async def update_chat_title(self, chat_id: str, title: str) -> None:
        async with get_async_session() as session:
            chat = await session.get(ChatDB, chat_id)
            if chat is None:
                raise ChatNotFoundError(chat_id)
            chat.title = title
            chat.last_modified_at = utcnow()

    async def list_user_chats(self, user_id: str, user_email: str) -> list[dict[str, Any]]:
        """Owned chats plus chats shared with this email, newest first."""
        async with get_async_session() as session:
            owned = (
                await session.execute(select(ChatDB).where(ChatDB.user_id == user_id))
            ).scalars().all()

            # shared_with is a JSON list, so membership is checked in Python
            candidates = (
                await session.execute(
                    select(ChatDB, UserDB)
                    .join(UserDB, ChatDB.user_id == UserDB.id)
                    .where(ChatDB.user_id != user_id)
                    .where(ChatDB.visibility == ChatVisibility.SHARED)
                )
            ).all()

        chats: dict[str, dict[str, Any]] = {}
        for chat in owned:
            chats[chat.id] = serialize_chat(chat)

        for chat, owner in candidates:
            if chat.id in chats or not chat.is_shared_with(user_email):
                continue
            item = serialize_chat(chat)
            item["ownerName"] = owner.display_name
            item["isShared"] = True
            chats[chat.id] = item

        return sorted(chats.values(), key=lambda c: c["lastModifiedAt"] or "", reverse=True)

    # =========================================================================
    # Messages
    # =========================================================================

    async def save_messages(self, chat_id: str, messages: list[dict[str, Any]]) -> list[str]:
        """Append messages to a chat and bump its modification time.

        Args:
            chat_id: Target chat
            messages: Dicts with role, content and optionally id and model

        Returns:
            Ids of the stored messages
        """
        async with get_async_session() as session:
            rows = [
                MessageDB(
                    **({"id": m["id"]} if m.get("id") else {}),
                    chat_id=chat_id,
                    role=MessageRole(m["role"]),
                    content=m.get("content", ""),
                    model=m.get("model"),
                )
                for m in messages
            ]
            session.add_all(rows)

            chat = await session.get(ChatDB, chat_id)
            if chat is not None:
                chat.last_modified_at = utcnow()

            await session.flush()
            return [row.id for row in rows]

    async def get_messages(self, chat_id: str) -> list[MessageDB]:
        async with get_async_session() as session:
            result = await session.execute(
                select(MessageDB)
                .where(MessageDB.chat_id == chat_id)
                .order_by(MessageDB.created_at.asc())
            )
            return list(result.scalars().all())

    async def count_messages(self, chat_id: str) -> int:
        return len(await self.get_messages(chat_id))

    # =========================================================================
    # Sharing
    # =========================================================================

    async def share_chat(
        self,
        chat_id: str,
        owner_id: str,
        users: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Share an owned chat with more users.

        Users already on the list (matched by email) are skipped.

        Returns:
            The updated shared_with list
        """
        async with get_async_session() as session:
            chat = await session.get(ChatDB, chat_id)
            if chat is None:
                raise ChatNotFoundError(chat_id)
            if chat.user_id != owner_id:
                raise AuthorizationError("Only the chat owner can share this chat")

            now = utcnow().isoformat()
            current = list(chat.shared_with or [])
            known = {entry.get("email") for entry in current}

            for user in users:
                email = user.get("email")
                if not email or email in known:
                    continue
                current.append({
                    "userId": user.get("userId") or user.get("id") or email,
                    "name": user.get("name") or email,
                    "email": email,
                    "addedAt": now,
                })
                known.add(email)

            # reassign so the JSON column is flagged dirty
            chat.shared_with = current
            chat.visibility = ChatVisibility.SHARED
            chat.last_modified_at = utcnow()

        logger.info("Shared chat", chat_id=chat_id, shared_count=len(current))
        return current

    async def unshare_chat(
        self,
        chat_id: str,
        owner_id: str,
        user_to_remove: str = "all",
    ) -> list[dict[str, Any]]:
        """Remove one user, or everyone, from a chat's share list."""
        async with get_async_session() as session:
            chat = await session.get(ChatDB, chat_id)
            if chat is None:
                raise ChatNotFoundError(chat_id)
            if chat.user_id != owner_id:
                raise AuthorizationError("Only the chat owner can unshare this chat")

            if user_to_remove == "all":
                remaining: list[dict[str, Any]] = []
            else:
                remaining = [
                    entry for entry in (chat.shared_with or [])
                    if user_to_remove not in (entry.get("userId"), entry.get("email"))
                ]

            chat.shared_with = remaining
            if not remaining:
                chat.visibility = ChatVisibility.PRIVATE
            chat.last_modified_at = utcnow()

        return remaining

    async def get_shared_users(
        self,
        chat_id: str,
        user_id: str,
        user_email: str,
    ) -> Optional[dict[str, Any]]:
        """Share list for the owner or a user it was shared with; None otherwise."""
        chat = await self.get_chat(chat_id)
        if chat is None:
            return None
        if chat.user_id != user_id and not chat.is_shared_with(user_email):
            return None

        return {
            "success": True,
            "sharedWith": list(chat.shared_with or []),
            "owner": {"userId": chat.user_id},
        }
