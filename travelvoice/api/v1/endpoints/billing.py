"""
Billing endpoints: Stripe checkout, customer portal, invoices and webhooks
"""
import logging
from typing import Any, Dict
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from travelvoice.core.config import settings
from travelvoice.core.database import get_db
from travelvoice.core.plans import PLANS, get_plan
from travelvoice.integrations.stripe_billing import (
    BillingError,
    StripeBilling,
    WebhookSignatureError,
    get_billing,
)
from travelvoice.models import Organization, User
from travelvoice.schemas import CheckoutRequest
from travelvoice.api.dependencies import get_current_organization, get_current_user

logger = logging.getLogger(__name__)
router = APIRouter()

HANDLED_EVENTS = {
    "checkout.session.completed",
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
}


@router.get("/plans")
async def list_plans():
    return {"plans": [plan.to_dict() for plan in PLANS.values()]}


@router.post("/checkout")
async def create_checkout(
    request: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    organization: Organization = Depends(get_current_organization),
    billing: StripeBilling = Depends(get_billing),
):
    """
    Start a subscription checkout, creating the Stripe customer on first use.
    """
    plan = get_plan(request.plan_id)
    if plan is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown plan: {request.plan_id}"
        )
    price_id = request.price_id or plan.stripe_price_id
    if not price_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"No Stripe price configured for plan {plan.id}"
        )

    try:
        if not organization.stripe_customer_id:
            organization.stripe_customer_id = await billing.create_customer(
                email=current_user.email,
                name=organization.name,
                organization_id=organization.id,
            )
        session = await billing.create_checkout_session(
            customer_id=organization.stripe_customer_id,
            price_id=price_id,
            organization_id=organization.id,
            plan_id=plan.id,
            success_url=f"{settings.DASHBOARD_URL}/payment/confirmation?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{settings.DASHBOARD_URL}/payment",
        )
    except BillingError as e:
        logger.error(f"Checkout error for organization {organization.id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e)
        )

    return {"sessionId": session["id"], "url": session["url"]}


@router.post("/portal")
async def create_portal(
    organization: Organization = Depends(get_current_organization),
    billing: StripeBilling = Depends(get_billing),
):
    if not organization.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No billing account found"
        )
    try:
        url = await billing.create_portal_session(
            organization.stripe_customer_id, return_url=f"{settings.DASHBOARD_URL}/settings"
        )
    except BillingError as e:
        logger.error(f"Portal error for organization {organization.id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e)
        )
    return {"url": url}


@router.get("/invoices")
async def list_invoices(
    organization: Organization = Depends(get_current_organization),
    billing: StripeBilling = Depends(get_billing),
):
    if not organization.stripe_customer_id:
        return {"invoices": []}
    try:
        invoices = await billing.list_invoices(organization.stripe_customer_id)
    except BillingError as e:
        logger.error(f"Invoice listing failed for organization {organization.id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e)
        )
    return {"invoices": invoices}


async def _organization_by_customer(db: AsyncSession, customer_id: str):
    result = await db.execute(
        select(Organization).where(Organization.stripe_customer_id == customer_id)
    )
    return result.scalar_one_or_none()


async def apply_billing_event(db: AsyncSession, event: Dict[str, Any]) -> bool:
    """
    Update the organization a Stripe event refers to. Returns False when the
    event type is not one we act on.
    """
    event_type = event.get("type")
    if event_type not in HANDLED_EVENTS:
        return False
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        metadata = obj.get("metadata") or {}
        plan = get_plan(metadata.get("plan_id"))
        organization_id = metadata.get("organization_id")
        if not organization_id or plan is None:
            logger.warning(f"Checkout session {obj.get('id')} is missing organization or plan metadata")
            return True
        organization = await db.get(Organization, organization_id)
        if organization is None:
            logger.warning(f"Checkout session {obj.get('id')} refers to unknown organization {organization_id}")
            return True
        organization.subscription_plan = plan.name
        organization.stripe_subscription_id = obj.get("subscription")
        organization.subscription_status = "active"
        organization.time_remaining_seconds = plan.seconds_included
        if obj.get("customer") and not organization.stripe_customer_id:
            organization.stripe_customer_id = obj["customer"]
        logger.info(f"Organization {organization.id} subscribed to {plan.name}")

    else:
        organization = await _organization_by_customer(db, obj.get("customer"))
        if organization is None:
            logger.warning(f"No organization for Stripe customer {obj.get('customer')} ({event_type})")
            return True
        if event_type == "customer.subscription.deleted":
            organization.subscription_status = "canceled"
            organization.subscription_plan = "free"
        else:
            organization.subscription_status = obj.get("status")
            organization.stripe_subscription_id = obj.get("id")
        logger.info(f"Organization {organization.id} subscription is now {organization.subscription_status}")

    await db.flush()
    return True


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    billing: StripeBilling = Depends(get_billing),
):
    """
    Stripe webhook receiver. The payload must carry a valid signature.
    """
    payload = await request.body()
    try:
        event = billing.construct_event(payload, request.headers.get("stripe-signature"))
    except WebhookSignatureError as e:
        logger.warning(f"Webhook signature verification failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {str(e)}"
        )

    try:
        await apply_billing_event(db, event)
    except Exception as e:
        logger.error(f"Webhook handler error for {event.get('type')}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook handler failed"
        )

    return {"received": True}
