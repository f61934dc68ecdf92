"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PUBLIC_URL"] = "https://example.test"
os.environ["TWILIO_MESSAGING_SERVICE_SID"] = ""
os.environ["TWILIO_FROM_E164"] = ""
os.environ["TWILIO_PHONE_NUMBER"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["MOCK_LLM"] = "false"

from typing import Dict
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import httpx
import pytest

from src.config import Role, settings
from src.infrastructure.database import close_database, create_tables, init_database
from src.infrastructure.telephony import (
    MediaContent,
    ProvisionedNumber,
    twilio_media_url_pattern,
)
from src.intake.infrastructure import TwilioSignatureVerifier
from src.shared.infrastructure.media import ProxyMediaStore
from src.shared.infrastructure.ratelimit import InMemoryRateLimiter
from src.triage.application import TriageService
from tests.helpers import (
    OWNER_EMAIL,
    OWNER_ID,
    PUBLIC_URL,
    TEST_ACCOUNT_SID,
    TEST_AUTH_TOKEN,
    add_member,
    user_headers,
)


@pytest.fixture
def telephony():
    """Twilio client double."""
    pattern = twilio_media_url_pattern(TEST_ACCOUNT_SID)
    client = MagicMock()
    client.credentials = (TEST_ACCOUNT_SID, TEST_AUTH_TOKEN)
    client.is_media_url = MagicMock(side_effect=lambda url: bool(pattern.match(url or "")))
    client.send_sms = AsyncMock(return_value="SMoutbound")
    client.fetch_media = AsyncMock(return_value=MediaContent(data=b"\x89PNG", content_type="image/png"))
    client.find_incoming_number = AsyncMock(return_value=None)
    client.set_sms_webhook = AsyncMock(return_value=None)
    client.purchase_number = AsyncMock(
        return_value=ProvisionedNumber(sid="PNpurchased", e164="+15551230000")
    )
    client.release_number = AsyncMock(return_value=None)
    return client


@pytest.fixture
async def app(telephony):
    """Application wired to an in-memory database and test doubles."""
    from src.main import app as application

    init_database("sqlite+aiosqlite:///:memory:")
    await create_tables()

    application.state.settings = settings
    application.state.telephony = telephony
    application.state.triage_service = TriageService()
    application.state.rate_limiter = InMemoryRateLimiter(limit=20, window_seconds=300)
    application.state.media_store = ProxyMediaStore()
    application.state.signature_verifier = TwilioSignatureVerifier(
        auth_token=TEST_AUTH_TOKEN,
        public_url=PUBLIC_URL
    )

    yield application

    await close_database()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


@pytest.fixture
async def org_id(client) -> UUID:
    """Organisation owned by OWNER_ID."""
    response = await client.post(
        "/api/orgs",
        json={"name": "Acme Property", "slug": "acme"},
        headers=user_headers(OWNER_ID, OWNER_EMAIL)
    )
    assert response.status_code == 201
    return UUID(response.json()["id"])


@pytest.fixture
def owner(org_id) -> Dict[str, str]:
    return user_headers(OWNER_ID, OWNER_EMAIL, org_id)


@pytest.fixture
async def staff(org_id) -> Dict[str, str]:
    await add_member(org_id, "user-staff", Role.STAFF)
    return user_headers("user-staff", "staff@acme.test", org_id)


@pytest.fixture
async def tenant_member(org_id) -> Dict[str, str]:
    await add_member(org_id, "user-tenant", Role.TENANT)
    return user_headers("user-tenant", "tenant@acme.test", org_id)


@pytest.fixture
async def property_id(client, owner) -> UUID:
    response = await client.post(
        "/api/properties",
        json={"name": "Maple Court", "address": "12 Maple Street", "phoneNumber": "(555) 000-1111"},
        headers=owner
    )
    assert response.status_code == 201
    return UUID(response.json()["id"])


@pytest.fixture
async def tenant_id(client, owner, property_id) -> UUID:
    response = await client.post(
        "/api/tenants",
        json={
            "propertyId": str(property_id),
            "phoneNumber": "(555) 222-3333",
            "name": "Ann Tenant",
            "unitNumber": "4B"
        },
        headers=owner
    )
    assert response.status_code == 201
    return UUID(response.json()["id"])
