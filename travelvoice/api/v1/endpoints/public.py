"""
Read-only API for integrations, authenticated by API key
"""
import logging
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from travelvoice.core.config import settings
from travelvoice.core.database import get_db
from travelvoice.core.middleware import limiter
from travelvoice.models import Agent
from travelvoice.services.api_keys import ApiKeyValidation
from travelvoice.api.dependencies import require_api_key

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/agents")
@limiter.limit(settings.PUBLIC_API_RATE_LIMIT)
async def list_public_agents(
    request: Request,
    auth: ApiKeyValidation = Depends(require_api_key("agents:read")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Agent).where(Agent.organization_id == auth.organization_id).order_by(Agent.name)
    )
    return {
        "agents": [
            {
                "id": agent.id,
                "name": agent.name,
                "image": agent.image,
                "firstMessage": agent.first_message,
                "voiceId": agent.voice_id,
                "createdAt": agent.created_at,
            }
            for agent in result.scalars().all()
        ]
    }
