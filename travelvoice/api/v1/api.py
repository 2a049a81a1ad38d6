"""
API v1 Router Configuration
"""
from fastapi import APIRouter
from .endpoints import (
    agents,
    api_keys,
    auth,
    billing,
    calls,
    documents,
    generate_prompt,
    health,
    phone_numbers,
    public,
    storage,
    team,
    vapi_webhook,
)

# Create main API router
api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
api_router.include_router(agents.router, prefix="/agents", tags=["agents"])
api_router.include_router(documents.router, prefix="/agents", tags=["documents"])
api_router.include_router(phone_numbers.router, prefix="/phone-numbers", tags=["phone-numbers"])
api_router.include_router(api_keys.router, prefix="/api-keys", tags=["api-keys"])
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
api_router.include_router(team.router, prefix="/team", tags=["team"])
api_router.include_router(vapi_webhook.router, prefix="/vapi", tags=["webhooks"])
api_router.include_router(calls.router, prefix="/calls", tags=["calls"])
api_router.include_router(public.router, prefix="/public", tags=["public"])
api_router.include_router(generate_prompt.router, prefix="/generate-prompt", tags=["prompts"])
api_router.include_router(storage.router, prefix="/storage", tags=["storage"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
