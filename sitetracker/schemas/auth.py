"""Login and current-user payloads.

These keep snake_case keys (OAuth2 clients expect ``access_token``), unlike
the camelCase import schemas.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from sitetracker.utils.constants import IMPORT_ROLES


class TokenResponse(BaseModel):
    access_token: str = Field(..., description="JWT for the Authorization: Bearer header")
    token_type: str = Field(default="bearer", description="Always 'bearer'")
    expires_in: int = Field(..., description="Token lifetime in seconds")
    role: str = Field(..., description="Role of the authenticated user")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "token_type": "bearer",
                "expires_in": 28800,
                "role": "Editor",
            }
        }
    )


class UserResponse(BaseModel):
    """Profile of the caller, without the password hash."""

    id: int
    username: str
    email: str
    full_name: str
    role: str
    is_active: bool
    last_login: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def can_import(self) -> bool:
        """Whether the role may submit and manage CSV imports."""
        return self.role in IMPORT_ROLES
