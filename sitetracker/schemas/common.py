"""
Shared Pydantic v2 schemas reused across modules.

``CamelModel`` is the base of every response body so that the JSON the
frontend sees uses camelCase keys while Python code keeps snake_case.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaginationParams(BaseModel):
    """Pagination parameters for list endpoints.

    Attributes:
        page: 1-based page number.
        limit: Rows per page (capped at 100).
    """

    page: int = Field(default=1, ge=1, description="Page number (1-based).")
    limit: int = Field(default=20, ge=1, le=100, description="Rows per page (max 100).")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationMeta(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class MessageResponse(BaseModel):
    """Generic confirmation for operations that do not return a resource."""

    message: str = Field(..., description="Short human-readable result summary.")
    detail: str | None = Field(default=None, description="Optional extra context.")
