"""
Agent management endpoints
"""
import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import httpx

from travelvoice.core.config import settings
from travelvoice.core.database import get_db
from travelvoice.core.prompts import render_external_prompt
from travelvoice.integrations.vapi import (
    DEFAULT_FIRST_MESSAGE,
    VapiClient,
    VapiError,
    current_model_settings,
    get_vapi_client,
)
from travelvoice.integrations.webhooks import WebhookDispatcher, get_webhook_dispatcher
from travelvoice.models import Agent, User
from travelvoice.models.base import utcnow
from travelvoice.schemas import (
    AdvancedConfig,
    AgentCreate,
    AgentResponse,
    AgentUpdate,
    DataExtractionConfig,
    TestWebhookRequest,
)
from travelvoice.api.dependencies import get_current_user, get_org_agent

logger = logging.getLogger(__name__)
router = APIRouter()

MODEL_FIELDS = ("model", "model_provider", "temperature", "max_tokens")


def webhook_server_url() -> str:
    """Where the voice platform posts call events for our assistants."""
    if settings.VAPI_WEBHOOK_URL:
        return settings.VAPI_WEBHOOK_URL
    return f"{settings.APP_BASE_URL.rstrip('/')}{settings.API_V1_STR}/vapi/webhook"


def build_extraction_schema(config: DataExtractionConfig) -> Dict[str, Any]:
    properties = {}
    for field in config.fields:
        prop = {"type": field.type}
        if field.description:
            prop["description"] = field.description
        properties[field.name] = prop
    return {"type": "object", "properties": properties}


async def _sync_structured_output(
    agent: Agent,
    config: DataExtractionConfig,
    vapi: VapiClient,
) -> Optional[Dict[str, Any]]:
    """
    Create or update the agent's structured output and return the
    ``artifactPlan`` to push, or None when nothing should change.
    """
    if not config.enabled or not config.fields:
        if agent.structured_output_id:
            return {"structuredOutputIds": []}
        return None

    name = config.name or f"{agent.name} call data"
    schema = build_extraction_schema(config)
    if agent.structured_output_id:
        await vapi.update_structured_output(agent.structured_output_id, name, schema)
    else:
        created = await vapi.create_structured_output(name, schema)
        agent.structured_output_id = created["id"]
    return {"structuredOutputIds": [agent.structured_output_id]}


@router.get("")
async def list_agents(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Agent)
        .where(Agent.organization_id == current_user.organization_id)
        .order_by(Agent.created_at.desc())
    )
    agents = result.scalars().all()
    return {"agents": [AgentResponse.model_validate(agent) for agent in agents]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_agent(
    agent_data: AgentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    """
    Create an agent.

    The assistant is created on the voice platform first; if the database
    insert then fails the assistant is deleted again.
    """
    system_prompt = agent_data.system_prompt or ""
    first_message = agent_data.first_message or DEFAULT_FIRST_MESSAGE

    try:
        assistant = await vapi.create_assistant(
            name=agent_data.name,
            system_prompt=render_external_prompt(system_prompt),
            first_message=first_message,
            voice_id=agent_data.voice_id,
            server_url=webhook_server_url(),
        )
    except VapiError as e:
        logger.error(f"Failed to create assistant for {agent_data.name}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to create assistant: {e.body}"
        )

    try:
        agent = Agent(
            organization_id=current_user.organization_id,
            name=agent_data.name,
            image=agent_data.image,
            voice_id=agent_data.voice_id,
            first_message=first_message,
            system_prompt=system_prompt,
            vapi_assistant_id=assistant["id"],
            advanced_config={},
        )
        db.add(agent)
        await db.flush()
    except Exception as e:
        logger.error(f"Failed to save agent, removing assistant {assistant['id']}: {str(e)}", exc_info=True)
        try:
            await vapi.delete_assistant(assistant["id"])
        except Exception as cleanup_error:
            logger.error(f"Failed to delete orphaned assistant {assistant['id']}: {cleanup_error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save agent"
        )

    logger.info(f"Agent {agent.id} created with assistant {agent.vapi_assistant_id}")
    return {"agent": AgentResponse.model_validate(agent)}


@router.get("/{agent_id}")
async def get_agent(agent: Agent = Depends(get_org_agent)):
    return {"agent": AgentResponse.model_validate(agent)}


@router.patch("/{agent_id}")
async def update_agent(
    agent_data: AgentUpdate,
    agent: Agent = Depends(get_org_agent),
    db: AsyncSession = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    """
    Update an agent and push the change to its assistant.

    Voice platform failures are logged; the database update still goes through.
    """
    changes = agent_data.model_dump(exclude_unset=True)
    advanced: Optional[AdvancedConfig] = agent_data.advanced_config
    extraction: Optional[DataExtractionConfig] = agent_data.data_extraction_config

    if agent.vapi_assistant_id:
        try:
            push: Dict[str, Any] = {
                "name": agent_data.name,
                "voice_id": agent_data.voice_id,
                "first_message": agent_data.first_message,
            }
            advanced_values = advanced.model_dump(exclude_none=True) if advanced else {}
            advanced_values.pop("notification_emails", None)
            push.update(advanced_values)

            if agent_data.system_prompt is not None or any(f in advanced_values for f in MODEL_FIELDS):
                # The model block is replaced as a whole, so carry over what is live.
                assistant = await vapi.get_assistant(agent.vapi_assistant_id) or {}
                model_settings = current_model_settings(assistant)
                model_settings.update({f: advanced_values[f] for f in MODEL_FIELDS if f in advanced_values})
                push.update(model_settings)
                push["tool_ids"] = list((assistant.get("model") or {}).get("toolIds") or [])
                prompt = agent_data.system_prompt if agent_data.system_prompt is not None else agent.system_prompt
                push["system_prompt"] = render_external_prompt(prompt)

            if extraction is not None:
                artifact_plan = await _sync_structured_output(agent, extraction, vapi)
                if artifact_plan is not None:
                    push["artifact_plan"] = artifact_plan

            push = {key: value for key, value in push.items() if value is not None}
            if push:
                await vapi.update_assistant(agent.vapi_assistant_id, **push)
        except Exception as e:
            logger.error(f"Vapi update error for agent {agent.id}: {str(e)}")

    for field in ("name", "image", "voice_id", "first_message", "system_prompt", "custom_webhook_url"):
        if field in changes:
            setattr(agent, field, changes[field])
    if advanced is not None:
        merged = dict(agent.advanced_config or {})
        merged.update(advanced.model_dump(by_alias=True, exclude_none=True, mode="json"))
        agent.advanced_config = merged
    if extraction is not None:
        agent.data_extraction_config = extraction.model_dump()
    agent.updated_at = utcnow()

    await db.flush()
    return {"agent": AgentResponse.model_validate(agent)}


@router.delete("/{agent_id}")
async def delete_agent(
    agent: Agent = Depends(get_org_agent),
    db: AsyncSession = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    if agent.vapi_assistant_id:
        try:
            await vapi.delete_assistant(agent.vapi_assistant_id)
        except Exception as e:
            logger.error(f"Vapi delete error for assistant {agent.vapi_assistant_id}: {str(e)}")

    await db.delete(agent)
    await db.flush()
    logger.info(f"Agent {agent.id} deleted")
    return {"success": True}


@router.post("/{agent_id}/test-webhook")
async def test_webhook(
    request: TestWebhookRequest,
    agent: Agent = Depends(get_org_agent),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """
    Send a sample call payload to a customer webhook URL.
    """
    if not request.webhook_url.startswith(("http://", "https://")):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook URL must start with http:// or https://"
        )

    payload = {
        "event": "test_webhook",
        "timestamp": utcnow().isoformat(),
        "agent": {"id": agent.id, "name": agent.name},
        "call": {
            "id": "test-call-id",
            "durationSeconds": 42,
            "summary": "This is a test call summary.",
            "transcript": "AI: Hello! How can I help you today?\nUser: This is a test.",
            "recordingUrl": None,
            "structuredData": {"example_field": "example value"},
        },
    }
    try:
        response = await dispatcher.post(
            request.webhook_url, payload, agent.id, agent.organization_id, "test_webhook"
        )
    except httpx.HTTPError as e:
        logger.warning(f"Test webhook to {request.webhook_url} failed: {str(e)}")
        return {"success": False, "status": None, "responseText": str(e)[:500]}

    return {
        "success": response.is_success,
        "status": response.status_code,
        "responseText": response.text[:500],
    }
