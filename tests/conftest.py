"""Shared pytest fixtures for testing."""

import itertools
import json
import os
import re
from typing import Any, AsyncGenerator, Dict, List

# Set test environment before the application modules read their settings
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["STRIPE_PHONE_NUMBER_PRICE_ID"] = "price_phone_number"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.pop("RESEND_API_KEY", None)

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from travelvoice.core.database import get_db
from travelvoice.core.security import create_access_token, get_password_hash
from travelvoice.integrations.mailer import get_email_service
from travelvoice.integrations.storage import FileStorage, get_storage
from travelvoice.integrations.stripe_billing import get_billing
from travelvoice.integrations.telephony import get_telephony
from travelvoice.integrations.vapi import VapiClient, get_vapi_client
from travelvoice.integrations.webhooks import WebhookDispatcher, get_webhook_dispatcher
from travelvoice.models import Base, Organization, User
from travelvoice.services.ai_service import get_ai_service


# =============================================================================
# Fake providers
# =============================================================================


class FakeVapiServer:
    """In-memory stand-in for the Vapi REST API, served through httpx.MockTransport."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.assistants: Dict[str, Dict[str, Any]] = {}
        self.tools: Dict[str, Dict[str, Any]] = {}
        self.files: Dict[str, Dict[str, Any]] = {}
        self.structured_outputs: Dict[str, Dict[str, Any]] = {}
        self.phone_numbers: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.requests: List[httpx.Request] = []
        self.fail: Dict[str, int] = {}  # "METHOD /resource" -> status code

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def patches_to(self, path: str) -> List[Dict[str, Any]]:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == "PATCH" and r.url.path == path
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")
        resource = parts[0]
        item_id = parts[1] if len(parts) > 1 else None
        method = request.method

        failure = self.fail.get(f"{method} /{resource}")
        if failure:
            return httpx.Response(failure, json={"message": "simulated failure"})

        body = json.loads(request.content) if request.content and resource != "file" else {}
        store = {
            "assistant": self.assistants,
            "tool": self.tools,
            "file": self.files,
            "structured-output": self.structured_outputs,
            "phone-number": self.phone_numbers,
        }.get(resource)

        if resource == "call" and method == "POST":
            call = {"id": self._new_id("call"), "status": "queued", **body}
            self.calls.append(call)
            return httpx.Response(201, json=call)
        if store is None:
            return httpx.Response(404, json={"message": "unknown resource"})

        if method == "POST":
            if resource == "file":
                match = re.search(rb'filename="([^"]+)"', request.content)
                body = {"name": match.group(1).decode() if match else None}
            record = {"id": self._new_id(resource.replace("-", "_")), **body}
            store[record["id"]] = record
            return httpx.Response(201, json=record)
        if method == "GET" and item_id is None:
            return httpx.Response(200, json=list(store.values()))
        if item_id not in store:
            return httpx.Response(404, json={"message": "not found"})
        if method == "GET":
            return httpx.Response(200, json=store[item_id])
        if method == "PATCH":
            store[item_id].update(body)
            return httpx.Response(200, json=store[item_id])
        if method == "DELETE":
            return httpx.Response(200, json=store.pop(item_id))
        return httpx.Response(405)


class FakeBilling:
    def __init__(self):
        self._ids = itertools.count(1)
        self.created_items: List[str] = []
        self.deleted_items: List[str] = []
        self.customers: List[str] = []
        self.fail_delete = False

    async def create_customer(self, email, name, organization_id):
        customer_id = f"cus_{next(self._ids)}"
        self.customers.append(customer_id)
        return customer_id

    async def create_checkout_session(self, customer_id, price_id, organization_id, plan_id, success_url, cancel_url):
        return {"id": f"cs_{next(self._ids)}", "url": f"https://checkout.test/{plan_id}"}

    async def create_portal_session(self, customer_id, return_url):
        return f"https://billing.test/{customer_id}"

    async def create_subscription_item(self, subscription_id, price_id, metadata=None):
        item_id = f"si_{next(self._ids)}"
        self.created_items.append(item_id)
        return item_id

    async def delete_subscription_item(self, item_id):
        if self.fail_delete:
            raise RuntimeError("stripe unavailable")
        self.deleted_items.append(item_id)

    async def list_invoices(self, customer_id, limit=24):
        return [{"id": "in_1", "status": "paid", "amountPaid": 5000}]


class FakeTelephony:
    account_sid = "AC_test"
    auth_token = "twilio-token"

    def __init__(self):
        self.purchased: List[str] = []
        self.released: List[str] = []
        self.fail_purchase = False

    async def search_available_numbers(self, country_code="GB", area_code=None, limit=10):
        return [{"phoneNumber": "+441234567890", "locality": "London", "isoCountry": country_code}][:limit]

    async def purchase_number(self, phone_number):
        if self.fail_purchase:
            raise RuntimeError("number no longer available")
        self.purchased.append(phone_number)
        return {"sid": f"PN{len(self.purchased)}", "phoneNumber": phone_number}

    async def release_number_by_sid(self, sid):
        self.released.append(sid)

    async def release_number(self, phone_number):
        self.released.append(phone_number)
        return True


class FakeEmailService:
    enabled = True

    def __init__(self):
        self.invitations: List[Dict[str, Any]] = []
        self.call_reports: List[Dict[str, Any]] = []
        self.fail = False

    async def send_invitation(self, email, organization_name, inviter_name, role, invite_url):
        if self.fail:
            raise RuntimeError("email provider down")
        self.invitations.append({"email": email, "role": role, "invite_url": invite_url})
        return "email_1"

    async def send_call_report(self, recipients, **kwargs):
        self.call_reports.append({"recipients": recipients, **kwargs})
        return "email_2"


class FakeAIService:
    def __init__(self, available: bool = True):
        self.available = available
        self.describe_calls = 0

    async def describe_knowledge_base(self, agent_name, file_names):
        self.describe_calls += 1
        return {
            "tool_description": f"Search {agent_name}'s documents.",
            "prompt_instruction": f"Use the knowledge base for questions about {', '.join(file_names)}.",
        }

    async def generate_agent_prompt(self, agent_role, primary_goal, company_name=None, key_info=None):
        return {
            "system_prompt": f"You are a {agent_role}. Your goal: {primary_goal}.",
            "first_message": "Hi there!",
        }


class WebhookRecorder:
    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="ok")


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture
def vapi_server() -> FakeVapiServer:
    return FakeVapiServer()


@pytest_asyncio.fixture
async def vapi_client(vapi_server) -> AsyncGenerator[VapiClient, None]:
    client = VapiClient(api_key="test-key", base_url="https://vapi.test", transport=httpx.MockTransport(vapi_server.handler))
    yield client
    await client.close()


@pytest.fixture
def fake_billing() -> FakeBilling:
    return FakeBilling()


@pytest.fixture
def fake_telephony() -> FakeTelephony:
    return FakeTelephony()


@pytest.fixture
def fake_email() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def fake_ai() -> FakeAIService:
    return FakeAIService()


@pytest.fixture
def webhook_recorder() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
def storage(tmp_path) -> FileStorage:
    return FileStorage(root=str(tmp_path / "storage"), base_url="http://test")


# =============================================================================
# API Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def app(
    session_factory,
    vapi_client,
    fake_billing,
    fake_telephony,
    fake_email,
    fake_ai,
    webhook_recorder,
    storage,
) -> AsyncGenerator[FastAPI, None]:
    """The application wired to the test database and fake providers."""
    from travelvoice.main import app as fastapi_app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    dispatcher = WebhookDispatcher(transport=httpx.MockTransport(webhook_recorder.handler))

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_vapi_client] = lambda: vapi_client
    fastapi_app.dependency_overrides[get_billing] = lambda: fake_billing
    fastapi_app.dependency_overrides[get_telephony] = lambda: fake_telephony
    fastapi_app.dependency_overrides[get_email_service] = lambda: fake_email
    fastapi_app.dependency_overrides[get_ai_service] = lambda: fake_ai
    fastapi_app.dependency_overrides[get_webhook_dispatcher] = lambda: dispatcher
    fastapi_app.dependency_overrides[get_storage] = lambda: storage
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Test Data Fixtures
# =============================================================================


async def create_member(
    session_factory,
    organization_id: str,
    email: str,
    role: str = "customer",
) -> User:
    async with session_factory() as session:
        user = User(
            email=email,
            first_name="Test",
            last_name="User",
            hashed_password=get_password_hash("password123"),
            role=role,
            is_active=True,
            organization_id=organization_id,
        )
        session.add(user)
        await session.commit()
        return user


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user.id})}"}


@pytest_asyncio.fixture
async def organization(session_factory) -> Organization:
    async with session_factory() as session:
        org = Organization(
            name="Acme Travel",
            subscription_plan="lite",
            subscription_status="active",
            stripe_customer_id="cus_existing",
            stripe_subscription_id="sub_123",
            time_remaining_seconds=600,
        )
        session.add(org)
        await session.commit()
        return org


@pytest_asyncio.fixture
async def admin_user(session_factory, organization) -> User:
    return await create_member(session_factory, organization.id, "admin@acmetravel.com", role="admin")


@pytest_asyncio.fixture
async def customer_user(session_factory, organization) -> User:
    return await create_member(session_factory, organization.id, "agent@acmetravel.com", role="customer")


@pytest.fixture
def admin_headers(admin_user) -> Dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture
def customer_headers(customer_user) -> Dict[str, str]:
    return auth_headers(customer_user)


@pytest_asyncio.fixture
async def agent(client, admin_headers) -> Dict[str, Any]:
    """An agent created through the API, with an empty prompt."""
    response = await client.post(
        "/api/v1/agents", json={"name": "Holiday Helper", "system_prompt": ""}, headers=admin_headers
    )
    assert response.status_code == 201, response.text
    return response.json()["agent"]


@pytest_asyncio.fixture
async def other_org_headers(session_factory) -> Dict[str, str]:
    """An admin of a second, unrelated organization."""
    async with session_factory() as session:
        org = Organization(name="Rival Tours", subscription_plan="free")
        session.add(org)
        await session.commit()
    outsider = await create_member(session_factory, org.id, "admin@rivaltours.com", role="admin")
    return auth_headers(outsider)
