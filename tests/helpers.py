"""Shared test helpers: identities, webhook signing and direct seeding."""

from typing import Dict, Optional
from uuid import UUID, uuid4

import httpx
from twilio.request_validator import RequestValidator

from src.config import WEBHOOK_PATH, Role
from src.infrastructure.database import get_session_context
from src.organisations.infrastructure.models import OrgNumberModel
from src.organisations.infrastructure.repositories import SQLAlchemyMembershipRepository

TEST_ACCOUNT_SID = "ACtest"
TEST_AUTH_TOKEN = "test-token"
PUBLIC_URL = "https://example.test"
WEBHOOK_URL = PUBLIC_URL + WEBHOOK_PATH

OWNER_ID = "user-owner"
OWNER_EMAIL = "owner@acme.test"


def media_url(message_sid: str = "MM1", media_sid: str = "ME1") -> str:
    return (
        f"https://api.twilio.com/2010-04-01/Accounts/{TEST_ACCOUNT_SID}"
        f"/Messages/{message_sid}/Media/{media_sid}"
    )


def user_headers(user_id: str, email: Optional[str] = None, org_id: Optional[UUID] = None) -> Dict[str, str]:
    headers = {"X-User-Id": user_id}
    if email:
        headers["X-User-Email"] = email
    if org_id:
        headers["X-Org-Id"] = str(org_id)
    return headers


def sign(params: Dict[str, str], url: str = WEBHOOK_URL) -> str:
    return RequestValidator(TEST_AUTH_TOKEN).compute_signature(url, params)


async def post_sms(client: httpx.AsyncClient, params: Dict[str, str], **headers: str) -> httpx.Response:
    """POST a correctly signed Twilio webhook."""
    request_headers = {"X-Twilio-Signature": sign(params)}
    request_headers.update(headers)
    return await client.post(WEBHOOK_PATH, data=params, headers=request_headers)


async def add_member(org_id: UUID, user_id: str, role: Role) -> None:
    async with get_session_context() as session:
        await SQLAlchemyMembershipRepository(session).upsert(user_id, org_id, role)


async def add_number(
    org_id: UUID,
    e164: str,
    property_id: Optional[UUID] = None,
    is_active: bool = True,
    twilio_sid: Optional[str] = "PN0001"
) -> UUID:
    number_id = uuid4()
    async with get_session_context() as session:
        session.add(OrgNumberModel(
            id=number_id,
            org_id=org_id,
            e164=e164,
            property_id=property_id,
            twilio_sid=twilio_sid,
            is_active=is_active
        ))
    return number_id
