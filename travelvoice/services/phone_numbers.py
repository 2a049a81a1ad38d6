"""
Phone number provisioning and plan quota reconciliation.

Each plan includes a number of phone numbers; every active number beyond
that carries its own Stripe subscription item and is billed. Purchases run
Stripe, then Twilio, then the voice platform, undoing earlier steps in
reverse when a later one fails. Releases reconcile billing first and then
clean up each provider on a best-effort basis.
"""
import logging
from typing import Optional

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from travelvoice.core.config import settings
from travelvoice.core.plans import phone_numbers_included
from travelvoice.integrations.stripe_billing import StripeBilling
from travelvoice.integrations.telephony import TelephonyService
from travelvoice.integrations.vapi import VapiClient
from travelvoice.models import Agent, Organization, PhoneNumber

logger = logging.getLogger(__name__)


class PhoneNumberError(Exception):
    """A provisioning step failed; carries the HTTP status to report."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


async def count_active_numbers(db: AsyncSession, organization_id: str) -> int:
    result = await db.execute(
        select(func.count(PhoneNumber.id)).where(
            PhoneNumber.organization_id == organization_id,
            PhoneNumber.status == "active",
        )
    )
    return result.scalar_one()


async def reconcile_after_delete(
    db: AsyncSession,
    phone_number: PhoneNumber,
    billing: StripeBilling,
) -> Optional[PhoneNumber]:
    """
    Keep billed numbers at ``max(0, active - included)`` when ``phone_number``
    goes away.

    A paid number just has its subscription item cancelled. Removing an
    included number frees a slot, so the oldest paid number of the
    organization is converted to included. Returns the converted number.
    """
    if phone_number.is_paid:
        try:
            await billing.delete_subscription_item(phone_number.stripe_subscription_item_id)
        except Exception as e:
            logger.error(
                f"Failed to cancel subscription item {phone_number.stripe_subscription_item_id} "
                f"for {phone_number.phone_number}: {e}"
            )
        return None

    result = await db.execute(
        select(PhoneNumber)
        .where(
            PhoneNumber.organization_id == phone_number.organization_id,
            PhoneNumber.id != phone_number.id,
            PhoneNumber.status == "active",
            PhoneNumber.stripe_subscription_item_id.is_not(None),
        )
        .order_by(PhoneNumber.created_at, PhoneNumber.id)
        .limit(1)
    )
    paid_number = result.scalar_one_or_none()
    if paid_number is None:
        return None

    try:
        await billing.delete_subscription_item(paid_number.stripe_subscription_item_id)
    except Exception as e:
        logger.error(
            f"Failed to cancel subscription item {paid_number.stripe_subscription_item_id} "
            f"while converting {paid_number.phone_number} to included: {e}"
        )
        return None

    paid_number.stripe_subscription_item_id = None
    await db.flush()
    logger.info(f"Converted {paid_number.phone_number} to an included number")
    return paid_number


async def purchase_number(
    db: AsyncSession,
    organization: Organization,
    number: str,
    agent: Optional[Agent],
    billing: StripeBilling,
    telephony: TelephonyService,
    vapi: VapiClient,
) -> PhoneNumber:
    if not organization.stripe_subscription_id or organization.subscription_status != "active":
        raise PhoneNumberError(
            "Active subscription required. Please upgrade your plan to purchase phone numbers.",
            status.HTTP_400_BAD_REQUEST,
        )

    included = phone_numbers_included(organization.subscription_plan)
    active_count = await count_active_numbers(db, organization.id)
    needs_payment = active_count >= included

    subscription_item_id = None
    if needs_payment:
        if not settings.STRIPE_PHONE_NUMBER_PRICE_ID:
            raise PhoneNumberError("Phone number pricing not configured.")
        try:
            subscription_item_id = await billing.create_subscription_item(
                organization.stripe_subscription_id,
                settings.STRIPE_PHONE_NUMBER_PRICE_ID,
                metadata={"phoneNumber": number, "organization_id": organization.id},
            )
        except Exception as e:
            logger.error(f"Stripe subscription error: {e}")
            raise PhoneNumberError(f"Failed to update subscription: {e}")

    async def _undo_billing():
        if subscription_item_id:
            try:
                await billing.delete_subscription_item(subscription_item_id)
            except Exception as rollback_error:
                logger.error(f"Failed to rollback Stripe subscription item: {rollback_error}")

    try:
        purchased = await telephony.purchase_number(number)
    except Exception as e:
        logger.error(f"Twilio purchase error: {e}")
        await _undo_billing()
        raise PhoneNumberError(f"Failed to purchase number from Twilio: {e}")

    try:
        imported = await vapi.import_twilio_phone_number(
            number=purchased["phoneNumber"],
            twilio_account_sid=telephony.account_sid,
            twilio_auth_token=telephony.auth_token,
            assistant_id=agent.vapi_assistant_id if agent else None,
        )
    except Exception as e:
        logger.error(f"Vapi import error: {e}")
        try:
            await telephony.release_number_by_sid(purchased["sid"])
        except Exception as rollback_error:
            logger.error(f"Failed to release Twilio number during rollback: {rollback_error}")
        await _undo_billing()
        raise PhoneNumberError(f"Failed to import number to Vapi: {e}")

    phone_number = PhoneNumber(
        organization_id=organization.id,
        agent_id=agent.id if agent else None,
        phone_number=purchased["phoneNumber"],
        provider="twilio",
        provider_id=imported.get("id"),
        stripe_subscription_item_id=subscription_item_id,
        status="active",
    )
    db.add(phone_number)
    await db.flush()
    logger.info(
        f"Provisioned {phone_number.phone_number} for organization {organization.id} "
        f"({'paid' if subscription_item_id else 'included'})"
    )
    return phone_number


async def assign_number(
    db: AsyncSession,
    phone_number: PhoneNumber,
    agent: Optional[Agent],
    vapi: VapiClient,
) -> PhoneNumber:
    """Route inbound calls on ``phone_number`` to ``agent`` (or nobody)."""
    if phone_number.provider_id:
        await vapi.update_phone_number(
            phone_number.provider_id, agent.vapi_assistant_id if agent else None
        )
    phone_number.agent_id = agent.id if agent else None
    await db.flush()
    return phone_number


async def release_number(
    db: AsyncSession,
    phone_number: PhoneNumber,
    billing: StripeBilling,
    telephony: TelephonyService,
    vapi: VapiClient,
) -> Optional[PhoneNumber]:
    """Delete a number everywhere. Returns the number converted to included, if any."""
    converted = await reconcile_after_delete(db, phone_number, billing)

    if phone_number.provider_id:
        try:
            await vapi.delete_phone_number(phone_number.provider_id)
        except Exception as e:
            logger.error(f"Failed to delete {phone_number.phone_number} from Vapi: {e}")

    try:
        await telephony.release_number(phone_number.phone_number)
    except Exception as e:
        logger.error(f"Failed to release {phone_number.phone_number} from Twilio: {e}")

    await db.delete(phone_number)
    await db.flush()
    logger.info(f"Released phone number {phone_number.phone_number}")
    return converted
