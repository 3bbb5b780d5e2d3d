"""
Log analysis pass-through.
"""

from typing import Any, AsyncIterator, Optional

from devhub.clients.analysis import AnalysisServiceClient
from devhub.core.exceptions import InvalidRequestError
from devhub.core.logging import get_logger
from devhub.domain.user import CurrentUser
from devhub.services.sse import prime_stream

logger = get_logger(__name__)


class LogAnalysisService:
    """Forwards log analysis requests with the caller's identity and GitHub token."""

    def __init__(self, client: AnalysisServiceClient) -> None:
        self.client = client

    def build_payload(
        self,
        request: dict[str, Any],
        user: CurrentUser,
        github_token: Optional[str],
    ) -> dict[str, Any]:
        if not request.get("query") and not request.get("log_message"):
            raise InvalidRequestError("Either query or log_message is required", field="query")

        payload = {
            "sf_connection_id": request.get("sf_connection_id"),
            "query": request.get("query") or "",
            "log_message": request.get("log_message") or "",
            "attached_documents": request.get("attached_documents") or [],
            "selected_model": request.get("selected_model"),
            "github_org": request.get("github_org"),
            "github_repo": request.get("github_repo"),
            "github_token": github_token,
            "user_info": {
                "name": user.display_name,
                "email": user.email,
                "session_id": user.id,
            },
        }
        # github_token is masked by the logging processor
        logger.info("Log analysis request", payload=payload)
        return payload

    async def stream(self, payload: dict[str, Any]) -> AsyncIterator[bytes]:
        """
        Start the upstream stream.

        The first chunk is read here, so a failing upstream raises
        AnalysisServiceError before any response is sent.
        """
        return await prime_stream(self.client.log_analysis_stream(payload))
