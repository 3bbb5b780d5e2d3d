"""
Chat service.

Relays answers from the LLM chat backend to the UI as server-sent events
while persisting both sides of the conversation.
"""

import asyncio
from typing import Any, AsyncIterator, Optional

import anyio

from devhub.clients.chat_backend import ChatBackendClient
from devhub.core.constants import (
    NEW_CHAT_TITLE,
    MessageRole,
    StreamEventType,
)
from devhub.core.exceptions import AuthorizationError, DevHubError, ValidationError
from devhub.core.logging import LogContext, get_logger
from devhub.domain.user import CurrentUser
from devhub.repositories.chat_repo import ChatRepository
from devhub.services.code_utils import detect_code_language
from devhub.services.sse import SSEEvent, format_sse, iter_sse_events
from devhub.services.title_generator import TitleGenerator, fallback_title

logger = get_logger(__name__)


def map_upstream_event(event: SSEEvent) -> tuple[Optional[dict[str, Any]], bool]:
    """
    Translate one chat backend event into a UI frame.

    Returns:
        Tuple of (frame or None, upstream finished)
    """
    data = event.data
    if not isinstance(data, dict):
        logger.debug("Skipping non-JSON chat event", raw=event.raw[:200])
        return None, False

    if data.get("done"):
        return None, True

    details = data.get("details") if isinstance(data.get("details"), dict) else {}

    if event.event == "progress" and data.get("content"):
        frame: dict[str, Any] = {
            "content": data["content"],
            "type": StreamEventType.PROGRESS.value,
            "done": False,
        }
        if data.get("details"):
            frame["details"] = data["details"]
        return frame, False

    if event.event == "code" and details.get("response"):
        code = details["response"]
        return {
            "content": code,
            "type": StreamEventType.CODE.value,
            "done": False,
            "codeMetadata": {
                "language": data.get("language") or detect_code_language(code),
                "filename": data.get("filename") or "",
                "codeType": data.get("codeType") or "",
                "metadata": data.get("metadata") or {},
                "description": details.get("description") or "",
            },
        }, False

    if not event.event and data.get("content"):
        return {
            "content": data["content"],
            "type": StreamEventType.CONTENT.value,
            "done": False,
        }, False

    return None, False


class ChatService:
    """
    Streams chat answers and owns chat bookkeeping around them.

    Title generation for new chats runs as background tasks tracked here so
    they can be cancelled on shutdown.
    """

    def __init__(
        self,
        chat_repository: ChatRepository,
        chat_client: ChatBackendClient,
        title_generator: TitleGenerator,
    ) -> None:
        self.chat_repository = chat_repository
        self.chat_client = chat_client
        self.title_generator = title_generator
        self._title_tasks: set[asyncio.Task] = set()

    async def stream_query(
        self,
        user: CurrentUser,
        chat_id: str,
        query: str,
        selected_model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Prepare the chat and return the SSE frame stream.

        Validation, permission checks and storing the user message happen
        here, before any byte is streamed, so they fail as normal errors.
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("Query must not be empty")
        if not chat_id:
            raise ValidationError("chatId is required")

        chat = await self.chat_repository.get_chat_with_permissions(chat_id, user.id, user.email)
        if chat is None:
            if await self.chat_repository.get_chat(chat_id) is not None:
                raise AuthorizationError("You do not have access to this chat")
            await self.chat_repository.save_chat(chat_id, user.id, NEW_CHAT_TITLE)
            self.schedule_title_generation(chat_id, query)
        elif await self.chat_repository.count_messages(chat_id) == 0:
            self.schedule_title_generation(chat_id, query)

        await self.chat_repository.save_messages(
            chat_id,
            [{"role": MessageRole.USER.value, "content": query}],
        )

        logger.info("Chat stream starting", chat_id=chat_id, model=selected_model)
        return self._relay(user, chat_id, query, selected_model)

    async def _relay(
        self,
        user: CurrentUser,
        chat_id: str,
        query: str,
        selected_model: Optional[str],
    ) -> AsyncIterator[str]:
        collected: list[str] = []
        failed = False

        with LogContext(chat_id=chat_id):
            try:
                lines = self.chat_client.stream_query(
                    query=query,
                    chat_id=chat_id,
                    user=user.upstream_handle,
                    selected_model=selected_model,
                )
                async for event in iter_sse_events(lines):
                    frame, finished = map_upstream_event(event)
                    if finished:
                        break
                    if frame is None:
                        continue
                    if frame["type"] in (StreamEventType.CODE.value, StreamEventType.CONTENT.value):
                        collected.append(frame["content"])
                    yield format_sse(frame)
            except DevHubError as e:
                failed = True
                logger.error("Chat stream failed", error=e.message)
                yield format_sse({
                    "type": StreamEventType.ERROR.value,
                    "content": e.message,
                    "done": True,
                })
            finally:
                if collected:
                    # A client disconnect cancels this generator; the save must still complete
                    with anyio.CancelScope(shield=True):
                        await self._save_answer(chat_id, "".join(collected), selected_model)

        if not failed:
            yield format_sse({"content": "", "type": StreamEventType.DONE.value, "done": True})

    async def _save_answer(self, chat_id: str, content: str, model: Optional[str]) -> None:
        try:
            await self.chat_repository.save_messages(
                chat_id,
                [{"role": MessageRole.ASSISTANT.value, "content": content, "model": model}],
            )
        except DevHubError as e:
            logger.error("Failed to store assistant message", chat_id=chat_id, error=e.message)

    # =========================================================================
    # Titles
    # =========================================================================

    def schedule_title_generation(self, chat_id: str, query: str) -> asyncio.Task:
        task = asyncio.create_task(self.generate_title_in_background(chat_id, query))
        self._title_tasks.add(task)
        task.add_done_callback(self._title_tasks.discard)
        return task

    async def generate_title_in_background(self, chat_id: str, query: str) -> None:
        try:
            title = await self.title_generator.generate(query)
        except DevHubError as e:
            logger.warning("Title generation failed", chat_id=chat_id, error=e.message)
            title = fallback_title(query)

        try:
            await self.chat_repository.update_chat_title(chat_id, title)
            logger.info("Chat title updated", chat_id=chat_id, title=title)
        except DevHubError as e:
            logger.error("Failed to store chat title", chat_id=chat_id, error=e.message)

    async def wait_for_titles(self) -> None:
        """Wait for pending title tasks to finish."""
        if self._title_tasks:
            await asyncio.gather(*list(self._title_tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending title tasks."""
        for task in list(self._title_tasks):
            task.cancel()
        await self.wait_for_titles()
