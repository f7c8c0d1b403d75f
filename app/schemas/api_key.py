"""API key management schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

Permission = Literal["security:read", "admin:manage"]


class ApiKeyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    permissions: list[Permission] = Field(default_factory=list)
    rate_limit_per_minute: int | None = Field(None, ge=1, le=100_000)
    rate_limit_per_hour: int | None = Field(None, ge=1, le=1_000_000)
    expires_at: datetime | None = None


class ApiKeyCreateResponse(BaseModel):
    id: UUID
    name: str
    key: str  # full key, shown ONLY at creation time
    permissions: list[str]
    rate_limit_per_minute: int
    rate_limit_per_hour: int
    created_at: datetime
    expires_at: datetime | None


class ApiKeyListItem(BaseModel):
    id: UUID
    name: str
    description: str | None
    key_prefix: str  # first 8 chars of the hash + "..."
    permissions: list[str]
    rate_limit_per_minute: int
    rate_limit_per_hour: int
    is_active: bool
    last_used_at: datetime | None
    created_at: datetime
    expires_at: datetime | None


class ApiKeyListResponse(BaseModel):
    items: list[ApiKeyListItem]
    total: int


class CallerInfoResponse(BaseModel):
    authenticated: bool
    name: str | None = None
    permissions: list[str] = Field(default_factory=list)
    rate_limit_per_minute: int
    rate_limit_per_hour: int


class MessageResponse(BaseModel):
    message: str
