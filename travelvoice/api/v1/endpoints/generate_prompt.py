"""
Prompt generation endpoint
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status

from travelvoice.models import User
from travelvoice.schemas import GeneratePromptRequest
from travelvoice.services.ai_service import AIService, get_ai_service
from travelvoice.api.dependencies import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("")
async def generate_prompt(
    request: GeneratePromptRequest,
    current_user: User = Depends(get_current_user),
    ai: AIService = Depends(get_ai_service),
):
    """
    Draft a system prompt and first message for a new agent.
    """
    if not ai.available:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Prompt generation is not configured"
        )
    try:
        generated = await ai.generate_agent_prompt(
            agent_role=request.agent_role,
            primary_goal=request.primary_goal,
            company_name=request.company_name,
            key_info=request.key_info,
        )
    except Exception as e:
        logger.error(f"Prompt generation failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate prompt"
        )

    if not generated.get("system_prompt"):
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to generate prompt"
        )
    return {"systemPrompt": generated["system_prompt"], "firstMessage": generated["first_message"]}
