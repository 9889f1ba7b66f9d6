"""
API Key Routes - Key management for bearer-authenticated accounts.

The plaintext key is returned exactly once, at creation.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from speedformat.api.dependencies import get_current_identity
from speedformat.db.models import APIKey
from speedformat.db.session import get_read_db, get_write_db
from speedformat.models.api import (
    APIKeyCreateRequest,
    APIKeyCreateResponse,
    APIKeyListResponse,
    APIKeyRenameRequest,
    APIKeyResponse,
    MessageResponse,
    UsageStatsResponse,
)
from speedformat.models.domain import CallerIdentity
from speedformat.services.api_key import APIKeyService
from speedformat.services.stats import UsageStatsService, parse_period

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


def _key_response(api_key: APIKey) -> APIKeyResponse:
    return APIKeyResponse(
        id=api_key.id,
        key_name=api_key.key_name,
        key_prefix=api_key.key_prefix,
        is_active=api_key.is_active,
        last_used_at=api_key.last_used_at,
        created_at=api_key.created_at,
    )


@router.get("", response_model=APIKeyListResponse)
async def list_api_keys(
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_read_db),
) -> APIKeyListResponse:
    keys = await APIKeyService(db).list_api_keys(identity.account_id)
    return APIKeyListResponse(api_keys=[_key_response(k) for k in keys], total=len(keys))


@router.post("", response_model=APIKeyCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    request: APIKeyCreateRequest,
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_write_db),
) -> APIKeyCreateResponse:
    """
    Create an API key.

    Returns 409 once the account holds the maximum number of active keys.
    """
    generated = await APIKeyService(db).create_api_key(identity.account_id, request.key_name)
    return APIKeyCreateResponse(
        id=generated.key_id,
        key_name=generated.key_name,
        key_prefix=generated.key_prefix,
        is_active=True,
        last_used_at=None,
        created_at=generated.created_at,
        api_key=generated.plaintext_key,
    )


@router.get("/{key_id}/usage", response_model=UsageStatsResponse)
async def get_api_key_usage(
    key_id: int = Path(..., ge=1),
    period: str = Query("month", description="Aggregation window: day or month"),
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_read_db),
) -> UsageStatsResponse:
    """Usage totals for one key plus a seven-day daily breakdown."""
    parsed = parse_period(period)
    await APIKeyService(db).get_owned_key(identity.account_id, key_id)
    return await UsageStatsService(db).api_key_usage(key_id, parsed)


@router.patch("/{key_id}", response_model=APIKeyResponse)
async def rename_api_key(
    request: APIKeyRenameRequest,
    key_id: int = Path(..., ge=1),
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_write_db),
) -> APIKeyResponse:
    api_key = await APIKeyService(db).rename_api_key(
        identity.account_id, key_id, request.key_name
    )
    return _key_response(api_key)


@router.patch("/{key_id}/deactivate", response_model=APIKeyResponse)
async def deactivate_api_key(
    key_id: int = Path(..., ge=1),
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_write_db),
) -> APIKeyResponse:
    """Deactivated keys stop resolving on the next request."""
    api_key = await APIKeyService(db).deactivate_api_key(identity.account_id, key_id)
    return _key_response(api_key)


@router.delete("/{key_id}", response_model=MessageResponse)
async def delete_api_key(
    key_id: int = Path(..., ge=1),
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_write_db),
) -> MessageResponse:
    await APIKeyService(db).delete_api_key(identity.account_id, key_id)
    return MessageResponse(message="API key deleted successfully")
