"""
Dependencies for API endpoints
"""
import logging
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from travelvoice.core.api_keys import extract_api_key, has_scope
from travelvoice.core.database import get_db
from travelvoice.core.security import get_current_admin, get_current_user
from travelvoice.models import Agent, Organization, User
from travelvoice.services.api_keys import ApiKeyValidation, validate_api_key

logger = logging.getLogger(__name__)

API_KEY_CHALLENGE = {"WWW-Authenticate": 'Bearer realm="API", error="invalid_token"'}

__all__ = [
    "get_current_user",
    "get_current_admin",
    "get_current_organization",
    "get_org_agent",
    "get_client_ip",
    "require_api_key",
]


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


# Dependency to get the current user's organization
async def get_current_organization(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Organization:
    organization = await db.get(Organization, current_user.organization_id)
    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found"
        )
    return organization


# Dependency to load an agent owned by the current user's organization
async def get_org_agent(
    agent_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Agent:
    result = await db.execute(
        select(Agent).where(Agent.id == agent_id, Agent.organization_id == current_user.organization_id)
    )
    agent = result.scalar_one_or_none()
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Agent not found"
        )
    return agent


def require_api_key(scope: Optional[str] = None) -> Callable:
    """
    Dependency factory authenticating a request by API key and, when
    ``scope`` is given, checking the key grants it.
    """

    async def _dependency(request: Request, db: AsyncSession = Depends(get_db)) -> ApiKeyValidation:
        validation = await validate_api_key(
            db,
            extract_api_key(request.headers),
            endpoint=request.url.path,
            method=request.method,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        if not validation.is_valid:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=validation.error or "Invalid API key",
                headers=API_KEY_CHALLENGE,
            )
        if scope and not has_scope(validation.scopes, scope):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Insufficient permissions. Required scope: {scope}",
                headers=API_KEY_CHALLENGE,
            )
        return validation

    return _dependency
