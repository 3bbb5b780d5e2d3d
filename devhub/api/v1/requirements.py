"""
Requirement analysis endpoints.
"""

from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from devhub.api.deps import get_current_user, get_requirement_service
from devhub.core.constants import SSE_HEADERS
from devhub.core.exceptions import ValidationError
from devhub.core.logging import get_logger
from devhub.domain.user import CurrentUser
from devhub.services.requirement_service import RequirementAnalysisService
from devhub.services.sse import format_sse

logger = get_logger(__name__)

router = APIRouter()


class RequirementRequest(BaseModel):
    requirement: str = Field(default="", description="Free-text requirement")
    options: Optional[dict[str, Any]] = Field(default=None)
    files: list[Any] = Field(default_factory=list)


def _require_text(request: RequirementRequest) -> str:
    requirement = request.requirement.strip()
    if not requirement:
        raise ValidationError("Requirement is required")
    return requirement


@router.post("/analyze-requirement")
async def analyze_requirement_mock(
    request: RequirementRequest,
    user: CurrentUser = Depends(get_current_user),
    requirement_service: RequirementAnalysisService = Depends(get_requirement_service),
) -> dict[str, Any]:
    """Sample blueprint for the demo screen."""
    return requirement_service.mock_analysis(request.requirement)


@router.post("/requirements/analyze/stream")
async def analyze_requirement_stream(
    request: RequirementRequest,
    user: CurrentUser = Depends(get_current_user),
    requirement_service: RequirementAnalysisService = Depends(get_requirement_service),
) -> StreamingResponse:
    """
    Stream progress, then a single result or error frame.

    Upstream failures and timeouts arrive as error frames, so the
    response itself always starts with 200.
    """
    requirement = _require_text(request)
    logger.info("Requirement analysis started", length=len(requirement))

    async def frames() -> AsyncIterator[str]:
        async for frame in requirement_service.analyze_stream(requirement, request.options):
            yield format_sse(frame)

    return StreamingResponse(frames(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/requirements/analyze")
async def analyze_requirement(
    request: RequirementRequest,
    user: CurrentUser = Depends(get_current_user),
    requirement_service: RequirementAnalysisService = Depends(get_requirement_service),
) -> dict[str, Any]:
    requirement = _require_text(request)
    result = await requirement_service.analyze(requirement, request.options)
    return {"success": True, **result}
