"""
Client for the LLM chat backend and the GitHub insights service
deployed beside it.
"""

from typing import Any, AsyncIterator, Optional

import httpx

from devhub.clients.base import BaseHTTPClient
from devhub.core.config import ChatBackendSettings, settings
from devhub.core.exceptions import ChatBackendError
from devhub.core.logging import get_logger

logger = get_logger(__name__)


class ChatBackendClient(BaseHTTPClient):
    """HTTP and streaming calls to CHAT_API_URL."""

    error_class = ChatBackendError

    def __init__(
        self,
        config: Optional[ChatBackendSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or settings.chat_api
        super().__init__(
            base_url=self.config.url,
            timeout=self.config.timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def service_name(self) -> str:
        return "Chat backend"

    # =========================================================================
    # Chat
    # =========================================================================

    async def stream_query(
        self,
        query: str,
        chat_id: str,
        user: str,
        selected_model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Stream a chat answer.

        Yields:
            Raw SSE lines, without line terminators
        """
        payload = {
            "query": query,
            "chat_id": chat_id,
            "user": user,
            "selected_model": selected_model,
        }
        async with self._stream("POST", self.config.stream_path, json=payload) as response:
            async for line in response.aiter_lines():
                yield line

    async def generate_text(self, prompt: str, model: Optional[str] = None) -> str:
        """Single-shot completion used for short generations such as titles."""
        data = await self._post(self.config.generate_path, {"prompt": prompt, "model": model})
        if not isinstance(data, dict):
            return ""
        return str(data.get("text") or data.get("response") or "")

    # =========================================================================
    # GitHub insights service
    # =========================================================================

    async def github_health(self, github_token: Optional[str] = None) -> dict[str, Any]:
        return await self._get("/api/github/health", params={"github_token": github_token})

    async def github_query(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._post("/api/github/query", payload)

    async def github_repository_summary(self, org: str, repo: str) -> dict[str, Any]:
        return await self._get(f"/api/github/repository/{org}/{repo}/summary")

    async def github_query_stream(self, payload: dict[str, Any]) -> AsyncIterator[bytes]:
        async with self._stream("POST", "/api/github/query/stream", json=payload) as response:
            async for chunk in response.aiter_bytes():
                yield chunk

    async def health_check(self) -> bool:
        return await self._is_reachable("/health")
