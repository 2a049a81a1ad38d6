"""
API key persistence and validation.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from travelvoice.core.api_keys import generate_api_key, hash_api_key, is_valid_key_format
from travelvoice.models import ApiKey, ApiKeyUsageLog
from travelvoice.models.base import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ApiKeyValidation:
    is_valid: bool
    api_key: Optional[ApiKey] = None
    error: Optional[str] = None

    @property
    def organization_id(self) -> Optional[str]:
        return self.api_key.organization_id if self.api_key else None

    @property
    def scopes(self) -> List[str]:
        return list(self.api_key.scopes or []) if self.api_key else []


async def create_api_key(
    db: AsyncSession,
    organization_id: str,
    created_by_id: str,
    name: str,
    scopes: List[str],
    description: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> Tuple[ApiKey, str]:
    """Store a new key and return it along with the raw value, which is never stored."""
    generated = generate_api_key()
    api_key = ApiKey(
        organization_id=organization_id,
        created_by_id=created_by_id,
        name=name,
        description=description,
        key_prefix=generated.key_prefix,
        key_hint=generated.key_hint,
        key_hash=generated.key_hash,
        scopes=scopes,
        is_active=True,
        expires_at=expires_at,
        usage_count=0,
    )
    db.add(api_key)
    await db.flush()
    logger.info(f"API key {api_key.id} ({api_key.key_prefix}...) created for organization {organization_id}")
    return api_key, generated.raw_key


async def validate_api_key(
    db: AsyncSession,
    raw_key: Optional[str],
    endpoint: Optional[str] = None,
    method: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ApiKeyValidation:
    """
    Check a presented key and record its use.

    Malformed keys are rejected without touching the database. A valid key
    gets its usage counters bumped and a usage log row.
    """
    if not raw_key:
        return ApiKeyValidation(False, error="API key required")
    if not is_valid_key_format(raw_key):
        return ApiKeyValidation(False, error="Invalid API key format")

    result = await db.execute(select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key)))
    api_key = result.scalar_one_or_none()

    if api_key is None:
        return ApiKeyValidation(False, error="Invalid API key")
    if not api_key.is_active:
        return ApiKeyValidation(False, error="API key is inactive")
    if api_key.is_expired:
        return ApiKeyValidation(False, error="API key has expired")

    api_key.last_used_at = utcnow()
    api_key.last_used_ip = ip_address
    api_key.usage_count = (api_key.usage_count or 0) + 1
    db.add(
        ApiKeyUsageLog(
            api_key_id=api_key.id,
            organization_id=api_key.organization_id,
            endpoint=endpoint,
            method=method,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500] or None,
        )
    )
    await db.flush()
    return ApiKeyValidation(True, api_key=api_key)
