"""
Signed-in user domain model.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from devhub.core.constants import UserRole


class CurrentUser(BaseModel):
    """The user a request is made on behalf of."""

    id: str = Field(..., description="Database id of the user")
    email: str = Field(..., description="Email forwarded by the session layer")
    name: Optional[str] = Field(default=None, description="Display name, if known")
    role: UserRole = Field(default=UserRole.USER)

    class Config:
        use_enum_values = True

    @property
    def display_name(self) -> str:
        return self.name or self.email

    @property
    def upstream_handle(self) -> str:
        """Name as the chat backend expects it: lowercase, underscores for spaces."""
        return (self.name or "").replace(" ", "_").lower()
