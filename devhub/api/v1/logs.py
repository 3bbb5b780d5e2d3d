"""
Log analysis endpoint.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from devhub.api.deps import (
    get_current_user,
    get_log_analysis_service,
    get_optional_github_token,
)
from devhub.core.constants import SSE_HEADERS
from devhub.domain.user import CurrentUser
from devhub.services.log_analysis import LogAnalysisService

router = APIRouter()


class LogAnalysisRequest(BaseModel):
    """A log excerpt or question for the log analysis service."""

    sf_connection_id: Optional[str] = Field(default=None)
    query: Optional[str] = Field(default=None)
    log_message: Optional[str] = Field(default=None)
    attached_documents: list[Any] = Field(default_factory=list)
    selected_model: Optional[str] = Field(default=None)
    github_org: Optional[str] = Field(default=None)
    github_repo: Optional[str] = Field(default=None)


@router.post("/logs/analyze/stream")
async def analyze_logs_stream(
    request: LogAnalysisRequest,
    user: CurrentUser = Depends(get_current_user),
    github_token: Optional[str] = Depends(get_optional_github_token),
    log_analysis: LogAnalysisService = Depends(get_log_analysis_service),
) -> StreamingResponse:
    """Relay the upstream analysis stream byte for byte."""
    payload = log_analysis.build_payload(request.model_dump(), user, github_token)
    stream = await log_analysis.stream(payload)
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)
