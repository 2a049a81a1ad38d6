"""
Stripe billing service: customers, checkout, portal, subscription items,
invoices and webhook verification.

The Stripe SDK is synchronous, so every call runs in a worker thread.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import stripe

from travelvoice.core.config import settings

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Base exception for Stripe operations"""
    pass


class WebhookSignatureError(BillingError):
    """The webhook payload could not be verified"""
    pass


class StripeBilling:
    """Async facade over the Stripe SDK."""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not configured - Stripe functionality will be disabled")

    async def _call(self, func, *args, **kwargs) -> Any:
        if not self.api_key:
            raise BillingError("Stripe is not configured")
        try:
            return await asyncio.to_thread(func, *args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as e:
            raise BillingError(str(e)) from e

    async def create_customer(self, email: str, name: str, organization_id: str) -> str:
        customer = await self._call(
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"organization_id": organization_id},
        )
        logger.info(f"Created Stripe customer {customer.id} for organization {organization_id}")
        return customer.id

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        organization_id: str,
        plan_id: str,
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        metadata = {"organization_id": organization_id, "plan_id": plan_id}
        session = await self._call(
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return {"id": session.id, "url": session.url}

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = await self._call(
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return session.url

    async def create_subscription_item(
        self, subscription_id: str, price_id: str, metadata: Optional[Dict[str, str]] = None
    ) -> str:
        item = await self._call(
            stripe.SubscriptionItem.create,
            subscription=subscription_id,
            price=price_id,
            quantity=1,
            metadata=metadata or {},
        )
        return item.id

    async def delete_subscription_item(self, item_id: str) -> None:
        await self._call(stripe.SubscriptionItem.delete, item_id)
        logger.info(f"Cancelled Stripe subscription item {item_id}")

    async def list_invoices(self, customer_id: str, limit: int = 24) -> List[Dict[str, Any]]:
        invoices = await self._call(stripe.Invoice.list, customer=customer_id, limit=limit)
        return [
            {
                "id": invoice.id,
                "number": invoice.number,
                "status": invoice.status,
                "amountDue": invoice.amount_due,
                "amountPaid": invoice.amount_paid,
                "currency": invoice.currency,
                "created": invoice.created,
                "hostedInvoiceUrl": invoice.hosted_invoice_url,
                "invoicePdf": invoice.invoice_pdf,
            }
            for invoice in invoices.data
        ]

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe-Signature header and decode the event."""
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE
            )
            return json.loads(body)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise WebhookSignatureError(str(e)) from e


_billing: Optional[StripeBilling] = None


def get_billing() -> StripeBilling:
    """FastAPI dependency returning the shared billing service."""
    global _billing
    if _billing is None:
        _billing = StripeBilling()
    return _billing
