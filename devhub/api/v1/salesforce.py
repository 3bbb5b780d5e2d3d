"""
Saved Salesforce org connections.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from devhub.api.deps import get_current_user, get_salesforce_repository
from devhub.core.constants import SalesforceAuthType
from devhub.core.exceptions import ValidationError
from devhub.core.logging import get_logger
from devhub.domain.user import CurrentUser
from devhub.repositories.salesforce_repo import SalesforceConnectionRepository

logger = get_logger(__name__)

router = APIRouter()


# Request models
class SaveConnectionRequest(BaseModel):
    """A connection as the org picker submits it."""

    connection_id: str = Field(..., min_length=1, alias="connectionId")
    name: Optional[str] = None
    auth_type: SalesforceAuthType = Field(..., alias="authType")
    instance_url: str = Field(..., min_length=1, alias="instanceUrl")
    org_id: Optional[str] = Field(default=None, alias="orgId")
    org_name: Optional[str] = Field(default=None, alias="orgName")
    user_name: Optional[str] = Field(default=None, alias="userName")
    user_email: Optional[str] = Field(default=None, alias="userEmail")
    version: Optional[str] = None
    is_active: bool = Field(default=True, alias="isActive")
    org_info: Optional[dict[str, Any]] = Field(default=None, alias="orgInfo")
    user_info: Optional[dict[str, Any]] = Field(default=None, alias="userInfo")
    auth_data: Optional[Any] = Field(default=None, alias="authData")

    class Config:
        populate_by_name = True
        use_enum_values = True


class UpdateConnectionRequest(BaseModel):
    name: Optional[str] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    org_info: Optional[dict[str, Any]] = Field(default=None, alias="orgInfo")
    user_info: Optional[dict[str, Any]] = Field(default=None, alias="userInfo")

    class Config:
        populate_by_name = True


class VerifyConnectionRequest(BaseModel):
    auth_data: Any = Field(..., alias="authData")

    class Config:
        populate_by_name = True


@router.get("/salesforce/connections")
async def list_connections(
    user: CurrentUser = Depends(get_current_user),
    repository: SalesforceConnectionRepository = Depends(get_salesforce_repository),
) -> dict[str, Any]:
    """The caller's connections, most recently used first."""
    return {"success": True, "connections": await repository.list_for_user(user.id)}


@router.post("/salesforce/connections")
async def save_connection(
    request: SaveConnectionRequest,
    user: CurrentUser = Depends(get_current_user),
    repository: SalesforceConnectionRepository = Depends(get_salesforce_repository),
) -> dict[str, Any]:
    connection = await repository.save(user.id, request.model_dump(by_alias=True))
    return {"success": True, "connection": connection}


@router.get("/salesforce/connections/{connection_id}")
async def get_connection(
    connection_id: str,
    user: CurrentUser = Depends(get_current_user),
    repository: SalesforceConnectionRepository = Depends(get_salesforce_repository),
) -> dict[str, Any]:
    return {"success": True, "connection": await repository.get(user.id, connection_id)}


@router.patch("/salesforce/connections/{connection_id}")
async def update_connection(
    connection_id: str,
    request: UpdateConnectionRequest,
    user: CurrentUser = Depends(get_current_user),
    repository: SalesforceConnectionRepository = Depends(get_salesforce_repository),
) -> dict[str, Any]:
    """Rename a connection and/or change its active flag."""
    if request.name is None and request.is_active is None:
        raise ValidationError("Nothing to update: provide name or isActive")
    if request.name is not None:
        if not request.name.strip():
            raise ValidationError("Connection name cannot be empty")
        await repository.update_name(user.id, connection_id, request.name.strip())
    if request.is_active is not None:
        await repository.update_status(
            user.id,
            connection_id,
            request.is_active,
            org_info=request.org_info,
            user_info=request.user_info,
        )
    return {"success": True, "connection": await repository.get(user.id, connection_id)}


@router.post("/salesforce/connections/{connection_id}/touch")
async def touch_connection(
    connection_id: str,
    user: CurrentUser = Depends(get_current_user),
    repository: SalesforceConnectionRepository = Depends(get_salesforce_repository),
) -> dict[str, Any]:
    await repository.update_last_used(user.id, connection_id)
    return {"success": True}


@router.post("/salesforce/connections/{connection_id}/verify")
async def verify_connection(
    connection_id: str,
    request: VerifyConnectionRequest,
    user: CurrentUser = Depends(get_current_user),
    repository: SalesforceConnectionRepository = Depends(get_salesforce_repository),
) -> dict[str, Any]:
    """Whether the supplied credentials match the ones saved with the connection."""
    valid = await repository.verify_credentials(user.id, connection_id, request.auth_data)
    return {"success": True, "valid": valid}


@router.delete("/salesforce/connections/{connection_id}")
async def delete_connection(
    connection_id: str,
    user: CurrentUser = Depends(get_current_user),
    repository: SalesforceConnectionRepository = Depends(get_salesforce_repository),
) -> dict[str, Any]:
    await repository.delete(user.id, connection_id)
    return {"success": True, "message": "Connection deleted"}
