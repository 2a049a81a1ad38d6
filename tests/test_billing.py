"""Tests for Stripe checkout, portal and webhook handling."""

import hashlib
import hmac
import json
import time

import pytest

from travelvoice.integrations.stripe_billing import StripeBilling, get_billing
from travelvoice.models import Organization

WEBHOOK_SECRET = "whsec_test"


def sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def stripe_billing(app):
    billing = StripeBilling(api_key="sk_test_123", webhook_secret=WEBHOOK_SECRET)
    app.dependency_overrides[get_billing] = lambda: billing
    return billing


async def post_event(client, event, secret=WEBHOOK_SECRET):
    payload = json.dumps(event)
    return await client.post(
        "/api/v1/billing/webhook",
        content=payload,
        headers={"Content-Type": "application/json", "Stripe-Signature": sign(payload, secret)},
    )


async def load_org(session_factory, organization_id):
    async with session_factory() as session:
        return await session.get(Organization, organization_id)


class TestStripeWebhook:
    """Tests for the Stripe webhook receiver."""

    async def test_checkout_completed_activates_plan(self, client, stripe_billing, organization, session_factory):
        event = {
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_1",
                    "customer": "cus_existing",
                    "subscription": "sub_new",
                    "metadata": {"organization_id": organization.id, "plan_id": "standard"},
                }
            },
        }

        response = await post_event(client, event)

        assert response.status_code == 200
        assert response.json() == {"received": True}
        org = await load_org(session_factory, organization.id)
        assert org.subscription_plan == "Standard"
        assert org.subscription_status == "active"
        assert org.stripe_subscription_id == "sub_new"
        assert org.time_remaining_seconds == 1000 * 60

    async def test_subscription_updated(self, client, stripe_billing, organization, session_factory):
        event = {
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_456", "customer": "cus_existing", "status": "past_due"}},
        }

        assert (await post_event(client, event)).status_code == 200

        org = await load_org(session_factory, organization.id)
        assert org.subscription_status == "past_due"
        assert org.stripe_subscription_id == "sub_456"

    async def test_subscription_created(self, client, stripe_billing, organization, session_factory):
        event = {
            "type": "customer.subscription.created",
            "data": {"object": {"id": "sub_789", "customer": "cus_existing", "status": "trialing"}},
        }

        assert (await post_event(client, event)).status_code == 200

        org = await load_org(session_factory, organization.id)
        assert org.subscription_status == "trialing"

    async def test_subscription_deleted(self, client, stripe_billing, organization, session_factory):
        event = {
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_123", "customer": "cus_existing", "status": "canceled"}},
        }

        assert (await post_event(client, event)).status_code == 200

        org = await load_org(session_factory, organization.id)
        assert org.subscription_status == "canceled"
        assert org.subscription_plan == "free"

    async def test_unknown_customer_is_acknowledged(self, client, stripe_billing):
        event = {
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_x", "customer": "cus_unknown", "status": "active"}},
        }
        assert (await post_event(client, event)).status_code == 200

    async def test_unhandled_event_type(self, client, stripe_billing):
        response = await post_event(client, {"type": "invoice.paid", "data": {"object": {}}})
        assert response.status_code == 200
        assert response.json() == {"received": True}

    async def test_bad_signature(self, client, stripe_billing, organization, session_factory):
        event = {
            "type": "customer.subscription.deleted",
            "data": {"object": {"customer": "cus_existing"}},
        }

        response = await post_event(client, event, secret="whsec_wrong")

        assert response.status_code == 400
        assert response.json()["error"].startswith("Webhook Error:")
        org = await load_org(session_factory, organization.id)
        assert org.subscription_status == "active"

    async def test_missing_signature(self, client, stripe_billing):
        response = await client.post("/api/v1/billing/webhook", content="{}")
        assert response.status_code == 400


class TestBillingEndpoints:
    """Tests for checkout, portal, plans and invoices."""

    async def test_plans(self, client):
        plans = (await client.get("/api/v1/billing/plans")).json()["plans"]
        assert [plan["id"] for plan in plans] == ["lite", "standard", "professional"]
        assert plans[0]["phoneNumbersIncluded"] == 1

    async def test_checkout(self, client, admin_headers):
        response = await client.post(
            "/api/v1/billing/checkout", json={"planId": "standard", "priceId": "price_std"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["url"] == "https://checkout.test/standard"

    async def test_checkout_creates_customer(self, client, other_org_headers, fake_billing):
        response = await client.post(
            "/api/v1/billing/checkout", json={"planId": "lite", "priceId": "price_lite"}, headers=other_org_headers
        )
        assert response.status_code == 200
        assert len(fake_billing.customers) == 1

    async def test_checkout_unknown_plan(self, client, admin_headers):
        response = await client.post("/api/v1/billing/checkout", json={"planId": "platinum"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Unknown plan: platinum"}

    async def test_portal(self, client, admin_headers, other_org_headers):
        response = await client.post("/api/v1/billing/portal", headers=admin_headers)
        assert response.json() == {"url": "https://billing.test/cus_existing"}

        response = await client.post("/api/v1/billing/portal", headers=other_org_headers)
        assert response.status_code == 404
        assert response.json() == {"error": "No billing account found"}

    async def test_invoices(self, client, admin_headers, other_org_headers):
        invoices = (await client.get("/api/v1/billing/invoices", headers=admin_headers)).json()["invoices"]
        assert invoices[0]["id"] == "in_1"
        assert (await client.get("/api/v1/billing/invoices", headers=other_org_headers)).json() == {"invoices": []}
