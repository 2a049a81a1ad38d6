"""
API key management endpoints
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from travelvoice.core.api_keys import (
    API_KEY_SCOPES,
    SCOPE_PRESETS,
    get_scope_description,
    invalid_scopes,
    mask_api_key,
)
from travelvoice.core.database import get_db
from travelvoice.models import ApiKey, User
from travelvoice.schemas import ApiKeyCreate, ApiKeyResponse, ApiKeyUpdate
from travelvoice.services.api_keys import create_api_key
from travelvoice.api.dependencies import get_current_admin, get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()

RAW_KEY_WARNING = "Store this key securely. It will not be shown again."


def _to_response(api_key: ApiKey) -> ApiKeyResponse:
    return ApiKeyResponse(
        id=api_key.id,
        name=api_key.name,
        description=api_key.description,
        key_prefix=api_key.key_prefix,
        key_hint=api_key.key_hint,
        masked_key=mask_api_key(api_key.key_prefix, api_key.key_hint),
        scopes=list(api_key.scopes or []),
        is_active=api_key.is_active,
        expires_at=api_key.expires_at,
        last_used_at=api_key.last_used_at,
        last_used_ip=api_key.last_used_ip,
        usage_count=api_key.usage_count or 0,
        created_at=api_key.created_at,
    )


def _check_scopes(scopes) -> None:
    if not scopes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one scope is required"
        )
    unknown = invalid_scopes(scopes)
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid scope: {unknown[0]}"
        )


async def _get_org_key(db: AsyncSession, organization_id: str, key_id: str) -> ApiKey:
    result = await db.execute(
        select(ApiKey).where(ApiKey.id == key_id, ApiKey.organization_id == organization_id)
    )
    api_key = result.scalar_one_or_none()
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="API key not found"
        )
    return api_key


@router.get("")
async def list_api_keys(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List the organization's keys (masked) and the scopes a key can carry.
    """
    result = await db.execute(
        select(ApiKey)
        .where(ApiKey.organization_id == current_user.organization_id)
        .order_by(ApiKey.created_at.desc())
    )
    return {
        "apiKeys": [_to_response(key) for key in result.scalars().all()],
        "availableScopes": [
            {"scope": scope, "description": get_scope_description(scope)}
            for scope in API_KEY_SCOPES.values()
        ],
        "scopePresets": SCOPE_PRESETS,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_key(
    request: ApiKeyCreate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    name = (request.name or "").strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Key name is required"
        )
    _check_scopes(request.scopes)

    api_key, raw_key = await create_api_key(
        db,
        organization_id=current_user.organization_id,
        created_by_id=current_user.id,
        name=name,
        scopes=request.scopes,
        description=request.description,
        expires_at=request.expires_at,
    )
    return {
        "apiKey": _to_response(api_key),
        "rawKey": raw_key,
        "warning": RAW_KEY_WARNING,
    }


@router.get("/{key_id}")
async def get_key(
    key_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    api_key = await _get_org_key(db, current_user.organization_id, key_id)
    return {"apiKey": _to_response(api_key)}


@router.patch("/{key_id}")
async def update_key(
    key_id: str,
    request: ApiKeyUpdate,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    api_key = await _get_org_key(db, current_user.organization_id, key_id)

    if request.name is not None:
        if not request.name.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Key name is required"
            )
        api_key.name = request.name.strip()
    if request.description is not None:
        api_key.description = request.description
    if request.scopes is not None:
        _check_scopes(request.scopes)
        api_key.scopes = request.scopes
    if request.is_active is not None:
        api_key.is_active = request.is_active

    await db.flush()
    logger.info(f"API key {api_key.id} updated by {current_user.email}")
    return {"apiKey": _to_response(api_key)}


@router.delete("/{key_id}")
async def delete_key(
    key_id: str,
    current_user: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    api_key = await _get_org_key(db, current_user.organization_id, key_id)
    await db.delete(api_key)
    await db.flush()
    logger.info(f"API key {key_id} ({api_key.key_prefix}...) deleted by {current_user.email}")
    return {"success": True}
