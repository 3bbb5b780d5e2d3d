"""
Base HTTP client for upstream services.
Provides connection reuse, retries on transport failures and error mapping.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from devhub.core.exceptions import ExternalServiceError, RateLimitError
from devhub.core.logging import get_logger

logger = get_logger(__name__)


class BaseHTTPClient(ABC):
    """
    Abstract base class for upstream HTTP clients.

    Subclasses set ``error_class`` to the ExternalServiceError subclass
    raised for their service and implement ``health_check``.
    """

    error_class: type[ExternalServiceError]

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        headers: Optional[dict[str, str]] = None,
        auth: Optional[httpx.Auth | tuple[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Base URL of the upstream service
            timeout: Request timeout in seconds
            headers: Headers sent with every request
            auth: Optional httpx auth (e.g. basic credentials)
            transport: Optional transport override, used by tests
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = headers or {}
        self.auth = auth
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Human readable upstream name used in errors and logs."""
        ...

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers=self.headers,
                auth=self.auth,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _raise_for_status(self, response: httpx.Response, endpoint: str) -> None:
        if response.is_success:
            return

        text = response.text
        logger.error(
            "Upstream request failed",
            service=self.service_name,
            endpoint=endpoint,
            status_code=response.status_code,
            response_text=text[:500],
        )
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(int(retry_after) if retry_after and retry_after.isdigit() else None)

        raise self.error_class(
            message=f"HTTP {response.status_code}: {text[:500]}",
            details={"endpoint": endpoint, "status_code": response.status_code},
            status_code=response.status_code,
        )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> httpx.Response:
        client = await self._get_client()
        return await client.request(method=method, url=endpoint, **kwargs)

    async def _request_raw(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request and return the response without status checks.

        Transport failures are retried, then mapped to the service error.
        """
        try:
            return await self._send(method, endpoint, **kwargs)
        except httpx.TransportError as e:
            logger.error(
                "Upstream request error",
                service=self.service_name,
                endpoint=endpoint,
                error=str(e),
            )
            raise self.error_class(
                message=f"Request failed: {e}",
                details={"endpoint": endpoint},
            ) from e

    async def _is_reachable(self, endpoint: str) -> bool:
        """True when a GET on the endpoint answers 2xx, whatever the body."""
        try:
            response = await self._request_raw("GET", endpoint)
        except self.error_class:
            return False
        return response.is_success

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Make an HTTP request and decode the JSON body.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Path relative to the base URL
            json: Request body
            params: Query parameters

        Returns:
            Decoded JSON response (None for empty bodies)

        Raises:
            ExternalServiceError subclass: If the request fails
        """
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        response = await self._request_raw(method, endpoint, json=json, params=params, **kwargs)
        self._raise_for_status(response, endpoint)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(
                "Upstream returned a non-JSON body",
                service=self.service_name,
                endpoint=endpoint,
                content_type=response.headers.get("content-type"),
            )
            raise self.error_class(
                message="Upstream response was not valid JSON",
                details={"endpoint": endpoint, "status_code": response.status_code},
            ) from e

    async def _get(
        self,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make a GET request."""
        return await self._request("GET", endpoint, params=params)

    async def _post(
        self,
        endpoint: str,
        data: Optional[Any] = None,
    ) -> Any:
        """Make a POST request."""
        return await self._request("POST", endpoint, json=data)

    @asynccontextmanager
    async def _stream(
        self,
        method: str,
        endpoint: str,
        json: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[httpx.Response]:
        """
        Open a streaming response.

        The status is checked before the body is handed to the caller, so
        upstream failures surface as errors rather than as a broken stream.
        """
        client = await self._get_client()
        request_timeout = httpx.Timeout(timeout) if timeout else httpx.USE_CLIENT_DEFAULT
        try:
            async with client.stream(
                method, endpoint, json=json, timeout=request_timeout
            ) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status(response, endpoint)
                yield response
        except httpx.TransportError as e:
            logger.error(
                "Upstream stream error",
                service=self.service_name,
                endpoint=endpoint,
                error=str(e),
            )
            raise self.error_class(
                message=f"Stream failed: {e}",
                details={"endpoint": endpoint},
            ) from e

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the upstream service is reachable.

        Returns:
            True if healthy, False otherwise
        """
        ...

    async def __aenter__(self) -> "BaseHTTPClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
