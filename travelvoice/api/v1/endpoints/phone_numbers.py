"""
Phone number endpoints
"""
import logging
from typing import Dict, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from travelvoice.core.database import get_db
from travelvoice.core.plans import phone_numbers_included
from travelvoice.integrations.stripe_billing import StripeBilling, get_billing
from travelvoice.integrations.telephony import TelephonyService, get_telephony
from travelvoice.integrations.vapi import VapiClient, get_vapi_client
from travelvoice.models import Agent, Organization, PhoneNumber, User
from travelvoice.schemas import PhoneNumberAssign, PhoneNumberBuy, PhoneNumberResponse
from travelvoice.services import phone_numbers as phone_number_service
from travelvoice.services.phone_numbers import PhoneNumberError
from travelvoice.api.dependencies import get_current_organization, get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()


def _to_response(phone_number: PhoneNumber, agent_names: Dict[str, str]) -> PhoneNumberResponse:
    return PhoneNumberResponse(
        id=phone_number.id,
        phone_number=phone_number.phone_number,
        agent_id=phone_number.agent_id,
        assistant_name=agent_names.get(phone_number.agent_id) if phone_number.agent_id else None,
        status=phone_number.status,
        is_paid=phone_number.is_paid,
        created_at=phone_number.created_at,
    )


async def _resolve_agent(db: AsyncSession, organization_id: str, agent_id: Optional[str]) -> Optional[Agent]:
    if not agent_id:
        return None
    result = await db.execute(
        select(Agent).where(Agent.id == agent_id, Agent.organization_id == organization_id)
    )
    agent = result.scalar_one_or_none()
    if agent is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Agent not found"
        )
    return agent


async def _get_org_number(db: AsyncSession, organization_id: str, phone_number_id: str) -> PhoneNumber:
    result = await db.execute(
        select(PhoneNumber).where(
            PhoneNumber.id == phone_number_id,
            PhoneNumber.organization_id == organization_id,
        )
    )
    phone_number = result.scalar_one_or_none()
    if phone_number is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Phone number not found"
        )
    return phone_number


@router.get("")
async def list_phone_numbers(
    organization: Organization = Depends(get_current_organization),
    db: AsyncSession = Depends(get_db)
):
    """
    List the organization's numbers with plan usage.
    """
    result = await db.execute(
        select(PhoneNumber)
        .where(PhoneNumber.organization_id == organization.id)
        .order_by(PhoneNumber.created_at)
    )
    numbers = result.scalars().all()

    agents = await db.execute(
        select(Agent.id, Agent.name).where(Agent.organization_id == organization.id)
    )
    agent_names = {row.id: row.name for row in agents}

    active = [n for n in numbers if n.status == "active"]
    return {
        "phoneNumbers": [_to_response(n, agent_names) for n in numbers],
        "usage": {
            "included": phone_numbers_included(organization.subscription_plan),
            "active": len(active),
            "paid": sum(1 for n in active if n.is_paid),
        },
    }


@router.get("/search")
async def search_phone_numbers(
    country_code: str = Query("GB", alias="countryCode", min_length=2, max_length=2),
    area_code: Optional[str] = Query(None, alias="areaCode"),
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    telephony: TelephonyService = Depends(get_telephony),
):
    try:
        numbers = await telephony.search_available_numbers(country_code.upper(), area_code, limit)
    except Exception as e:
        logger.error(f"Number search failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to search numbers: {str(e)}"
        )
    return {"numbers": numbers}


@router.post("/buy", status_code=status.HTTP_201_CREATED)
async def buy_phone_number(
    request: PhoneNumberBuy,
    organization: Organization = Depends(get_current_organization),
    db: AsyncSession = Depends(get_db),
    billing: StripeBilling = Depends(get_billing),
    telephony: TelephonyService = Depends(get_telephony),
    vapi: VapiClient = Depends(get_vapi_client),
):
    """
    Buy a number, billing it when the plan allowance is used up.
    """
    agent = await _resolve_agent(db, organization.id, request.assistant_id)
    try:
        phone_number = await phone_number_service.purchase_number(
            db, organization, request.phone_number, agent, billing, telephony, vapi
        )
    except PhoneNumberError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    agent_names = {agent.id: agent.name} if agent else {}
    return {"phoneNumber": _to_response(phone_number, agent_names)}


@router.patch("/{phone_number_id}")
async def assign_phone_number(
    phone_number_id: str,
    request: PhoneNumberAssign,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    vapi: VapiClient = Depends(get_vapi_client),
):
    """
    Point a number at an agent, or detach it with a null ``assistantId``.
    """
    phone_number = await _get_org_number(db, current_user.organization_id, phone_number_id)
    agent = await _resolve_agent(db, current_user.organization_id, request.assistant_id)

    try:
        await phone_number_service.assign_number(db, phone_number, agent, vapi)
    except Exception as e:
        logger.error(f"Failed to assign {phone_number.phone_number}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to update phone number: {str(e)}"
        )

    agent_names = {agent.id: agent.name} if agent else {}
    return {"phoneNumber": _to_response(phone_number, agent_names)}


@router.delete("/{phone_number_id}")
async def delete_phone_number(
    phone_number_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    billing: StripeBilling = Depends(get_billing),
    telephony: TelephonyService = Depends(get_telephony),
    vapi: VapiClient = Depends(get_vapi_client),
):
    phone_number = await _get_org_number(db, current_user.organization_id, phone_number_id)
    converted = await phone_number_service.release_number(db, phone_number, billing, telephony, vapi)
    return {
        "success": True,
        "convertedToIncluded": converted.id if converted else None,
    }
