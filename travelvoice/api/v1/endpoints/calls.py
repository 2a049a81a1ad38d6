"""
Programmatic call endpoints, authenticated by API key
"""
import logging
import re
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from travelvoice.core.config import settings
from travelvoice.core.database import get_db
from travelvoice.core.middleware import limiter
from travelvoice.integrations.vapi import VapiClient, VapiError, get_vapi_client
from travelvoice.models import Agent, PhoneNumber
from travelvoice.schemas import OutboundCallRequest
from travelvoice.services.api_keys import ApiKeyValidation
from travelvoice.api.dependencies import require_api_key

logger = logging.getLogger(__name__)
router = APIRouter()

E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def _error(status_code: int, error: str, details: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": error, "details": details})


@router.post("/outbound")
@limiter.limit(settings.PUBLIC_API_RATE_LIMIT)
async def create_outbound_call(
    request: Request,
    call_request: OutboundCallRequest,
    auth: ApiKeyValidation = Depends(require_api_key("calls:write")),
    db: AsyncSession = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    """
    Place an outbound phone call from one of the organization's numbers.

    ``assistantId`` and ``phoneNumberId`` are our own ids; ``customer.number``
    must be E.164. ``variables`` are passed to the assistant as variable values.
    """
    customer = call_request.customer
    if not call_request.assistant_id or not call_request.phone_number_id or not customer or not customer.number:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "Missing required fields",
            "assistantId, phoneNumberId, and customer.number are required",
        )
    if not E164_RE.match(customer.number):
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "Invalid phone number format",
            "Phone number must be in E.164 format (e.g., +11231231234)",
        )

    result = await db.execute(
        select(Agent).where(Agent.id == call_request.assistant_id, Agent.organization_id == auth.organization_id)
    )
    agent = result.scalar_one_or_none()
    if agent is None:
        raise _error(
            status.HTTP_404_NOT_FOUND,
            "Assistant not found",
            "The specified assistant does not exist or does not belong to your organization",
        )
    if not agent.vapi_assistant_id:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "Assistant not configured",
            "This assistant has not been synced with Vapi",
        )

    result = await db.execute(
        select(PhoneNumber).where(
            PhoneNumber.id == call_request.phone_number_id,
            PhoneNumber.organization_id == auth.organization_id,
            PhoneNumber.status == "active",
        )
    )
    phone_number = result.scalar_one_or_none()
    if phone_number is None:
        raise _error(
            status.HTTP_404_NOT_FOUND,
            "Phone number not found",
            "The specified phone number does not exist, is inactive, or does not belong to your organization",
        )
    if not phone_number.provider_id:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "Phone number not configured",
            "This phone number has not been imported to Vapi",
        )

    params = {
        "assistantId": agent.vapi_assistant_id,
        "phoneNumberId": phone_number.provider_id,
        "customer": {"number": customer.number},
    }
    if customer.name:
        params["customer"]["name"] = customer.name
    if call_request.variables:
        params["assistantOverrides"] = {"variableValues": call_request.variables}

    try:
        vapi_call = await vapi.create_outbound_call(params)
    except VapiError as e:
        logger.error(f"Outbound call failed for agent {agent.id}: {str(e)}")
        raise _error(status.HTTP_502_BAD_GATEWAY, "Failed to initiate call", str(e))

    logger.info(f"Outbound call {vapi_call.get('id')} queued for agent {agent.id}")
    return {
        "success": True,
        "callId": vapi_call.get("id"),
        "status": vapi_call.get("status"),
        "assistant": {"id": agent.id, "name": agent.name},
        "phoneNumber": {"id": phone_number.id, "number": phone_number.phone_number},
        "customer": {"number": customer.number, "name": customer.name},
    }
