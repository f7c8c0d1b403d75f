"""API Key management endpoints — create, list, revoke API keys, inspect the caller."""

import uuid

from fastapi import APIRouter, Depends, Request

from app.aggregator.access import PERMISSION_ADMIN, CallerContext
from app.aggregator.service import ServiceContainer
from app.aggregator.stores import ApiKeyRecord
from app.core.config import settings
from app.core.dependencies import get_admitted_caller, get_container, require_permission
from app.core.exceptions import NotFoundError
from app.core.rate_limit import limiter
from app.core.security import generate_api_key
from app.schemas.api_key import (
    ApiKeyCreateRequest,
    ApiKeyCreateResponse,
    ApiKeyListItem,
    ApiKeyListResponse,
    CallerInfoResponse,
    MessageResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/api-keys", response_model=ApiKeyListResponse, dependencies=[Depends(require_permission(PERMISSION_ADMIN))])
async def list_api_keys(container: ServiceContainer = Depends(get_container)):
    """List all API keys (masked). Requires admin:manage."""
    keys = await container.key_store.list()
    return ApiKeyListResponse(
        items=[
            ApiKeyListItem(
                id=k.id,
                name=k.name,
                description=k.description,
                key_prefix=k.key_hash[:8] + "...",
                permissions=k.permissions,
                rate_limit_per_minute=k.rate_limit_per_minute,
                rate_limit_per_hour=k.rate_limit_per_hour,
                is_active=k.is_active,
                last_used_at=k.last_used_at,
                created_at=k.created_at,
                expires_at=k.expires_at,
            )
            for k in keys
        ],
        total=len(keys),
    )


@router.post(
    "/api-keys",
    response_model=ApiKeyCreateResponse,
    status_code=201,
    dependencies=[Depends(require_permission(PERMISSION_ADMIN))],
)
@limiter.limit("10/minute")
async def create_api_key(
    request: Request,
    body: ApiKeyCreateRequest,
    container: ServiceContainer = Depends(get_container),
):
    """Create a new API key. The full key is returned ONLY at creation time. Requires admin:manage."""
    raw_key, key_hash = generate_api_key()

    record = await container.key_store.create(
        ApiKeyRecord(
            id=uuid.uuid4(),
            key_hash=key_hash,
            name=body.name,
            description=body.description,
            permissions=sorted(set(body.permissions)),
            rate_limit_per_minute=body.rate_limit_per_minute or settings.default_rate_limit_per_minute,
            rate_limit_per_hour=body.rate_limit_per_hour or settings.default_rate_limit_per_hour,
            expires_at=body.expires_at,
        )
    )

    return ApiKeyCreateResponse(
        id=record.id,
        name=record.name,
        key=raw_key,
        permissions=record.permissions,
        rate_limit_per_minute=record.rate_limit_per_minute,
        rate_limit_per_hour=record.rate_limit_per_hour,
        created_at=record.created_at,
        expires_at=record.expires_at,
    )


@router.delete(
    "/api-keys/{key_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_permission(PERMISSION_ADMIN))],
)
async def revoke_api_key(
    key_id: uuid.UUID,
    container: ServiceContainer = Depends(get_container),
):
    """Deactivate an API key. Requires admin:manage."""
    if not await container.key_store.revoke(key_id):
        raise NotFoundError("API key not found")
    return MessageResponse(message="API key revoked")


@router.get("/me", response_model=CallerInfoResponse)
async def whoami(caller: CallerContext = Depends(get_admitted_caller)):
    """Describe the calling credential and its limits."""
    return CallerInfoResponse(
        authenticated=not caller.is_anonymous,
        name=caller.key.name if caller.key else None,
        permissions=sorted(caller.permissions),
        rate_limit_per_minute=caller.policy.per_minute,
        rate_limit_per_hour=caller.policy.per_hour,
    )
