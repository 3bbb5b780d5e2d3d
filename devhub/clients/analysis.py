"""
Client for the log analysis and requirement analysis services.
Both live on the chat backend host but report their own failures.
"""

from typing import Any, AsyncIterator, Optional

import httpx

from devhub.clients.base import BaseHTTPClient
from devhub.core.config import ChatBackendSettings, settings
from devhub.core.exceptions import AnalysisServiceError


class AnalysisServiceClient(BaseHTTPClient):
    """Streaming calls to the analysis endpoints."""

    error_class = AnalysisServiceError

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
        return "Analysis service"

    async def log_analysis_stream(self, payload: dict[str, Any]) -> AsyncIterator[bytes]:
        """Relay the log analysis SSE body as raw bytes."""
        async with self._stream(
            "POST",
            "/api/logs/analyze/stream",
            json=payload,
            timeout=self.config.analysis_timeout,
        ) as response:
            async for chunk in response.aiter_bytes():
                yield chunk

    async def requirement_analysis_stream(
        self,
        requirement: str,
        options: Optional[dict[str, Any]] = None,
    ) -> AsyncIterator[str]:
        """
        Stream a requirement analysis.

        Yields:
            Raw SSE lines
        """
        payload = {"requirement": requirement, "options": options or {}}
        async with self._stream(
            "POST",
            "/api/requirements/analyze/stream",
            json=payload,
            timeout=self.config.analysis_timeout,
        ) as response:
            async for line in response.aiter_lines():
                yield line

    async def health_check(self) -> bool:
        return await self._is_reachable("/api/logs/health")
