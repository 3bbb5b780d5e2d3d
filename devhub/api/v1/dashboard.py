"""
Dashboard analytics endpoints.
"""

from datetime import date
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from devhub.api.deps import get_analytics_service, get_current_user
from devhub.core.exceptions import ValidationError
from devhub.core.logging import get_logger
from devhub.domain.user import CurrentUser
from devhub.services.analytics_service import AnalyticsService

logger = get_logger(__name__)

router = APIRouter()


class UpdateRoleRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, alias="userId")
    new_role: Optional[str] = Field(default=None, alias="newRole")

    class Config:
        populate_by_name = True


@router.get("/dashboard/users", response_model=None)
async def user_analytics(
    action: Optional[str] = Query(default=None),
    format: Optional[str] = Query(default=None),
    limit: int = Query(default=10, ge=0),
    user: CurrentUser = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> Union[dict[str, Any], Response]:
    """
    User analytics by ``action``.

    Unknown or missing actions fall back to the per-user analytics list.
    ``action=export`` only supports ``format=csv``.
    """
    logger.info("User analytics requested", action=action)

    if action == "growth":
        return {"data": await analytics.user_growth()}
    if action == "activity":
        return {"data": await analytics.user_activity()}
    if action == "top-users":
        return {"data": await analytics.top_users(limit)}
    if action == "export":
        if format != "csv":
            raise ValidationError("Invalid export format", details={"format": format})
        filename = f"user-analytics-{date.today().isoformat()}.csv"
        return Response(
            content=await analytics.export_user_analytics_csv(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return {"data": await analytics.user_analytics()}


@router.post("/dashboard/users")
async def user_actions(user: CurrentUser = Depends(get_current_user)) -> JSONResponse:
    return JSONResponse(status_code=501, content={"message": "Not implemented yet"})


@router.get("/dashboard/metrics")
async def feedback_metrics(
    user: CurrentUser = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return {"success": True, "data": await analytics.feedback_metrics()}


@router.get("/dashboard/model-performance")
async def model_performance(
    user: CurrentUser = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return {"success": True, "data": await analytics.model_performance()}


@router.get("/dashboard/chats")
async def chat_overview(
    user: CurrentUser = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return {"success": True, "data": await analytics.chat_overview()}


@router.get("/dashboard/feedback")
async def feedback_overview(
    user: CurrentUser = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return {"success": True, "data": await analytics.feedback_overview()}


@router.get("/dashboard/messages-count")
async def messages_count(
    user: CurrentUser = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, int]:
    return await analytics.messages_count()


@router.put("/users/update-role")
async def update_user_role(
    request: UpdateRoleRequest,
    user: CurrentUser = Depends(get_current_user),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    """Change a user's dashboard role; 404 when the user does not exist."""
    return await analytics.update_user_role(request.user_id or "", request.new_role or "")
