"""
Integration tests for organisations, their Twilio numbers, staff invites
and access requests.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

from src.config import NumberType
from src.infrastructure.database import get_session_context
from src.infrastructure.telephony import ProvisionedNumber
from src.organisations.infrastructure import SQLAlchemyInviteRepository
from src.shared.infrastructure.ratelimit import InMemoryRateLimiter
from tests.helpers import OWNER_ID, add_number, user_headers

ORG_NUMBER = "+15557770000"
SECOND_NUMBER = "+15557770001"
SMS_URL = "https://example.test/api/webhooks/twilio"


def numbers_path(org_id, *parts):
    return "/".join([f"/api/orgs/{org_id}/twilio/numbers", *[str(p) for p in parts]]).rstrip("/")


async def list_numbers(client, org_id, headers):
    response = await client.get(numbers_path(org_id), headers=headers)
    return {n["id"]: n for n in response.json()["items"]}


class TestOrganisations:

    async def test_creator_becomes_owner(self, client, org_id):
        response = await client.get("/api/orgs", headers=user_headers(OWNER_ID))

        assert response.status_code == 200
        memberships = response.json()
        assert len(memberships) == 1
        assert memberships[0]["orgId"] == str(org_id)
        assert memberships[0]["role"] == "OWNER"
        assert memberships[0]["organisation"]["slug"] == "acme"

    async def test_slug_is_normalized(self, client):
        response = await client.post(
            "/api/orgs",
            json={"name": "  Birch Homes ", "slug": " Birch-Homes "},
            headers=user_headers("someone")
        )

        assert response.status_code == 201
        assert response.json()["name"] == "Birch Homes"
        assert response.json()["slug"] == "birch-homes"

    async def test_invalid_slug(self, client):
        response = await client.post(
            "/api/orgs",
            json={"name": "Birch Homes", "slug": "birch homes"},
            headers=user_headers("someone")
        )
        assert response.status_code == 400

    async def test_duplicate_slug(self, client, org_id):
        response = await client.post(
            "/api/orgs",
            json={"name": "Acme Again", "slug": "ACME"},
            headers=user_headers("someone")
        )
        assert response.status_code == 409

    async def test_requires_identity(self, client):
        response = await client.post("/api/orgs", json={"name": "Birch Homes", "slug": "birch"})
        assert response.status_code == 401


class TestNumbers:

    async def test_list_requires_admin(self, client, org_id, staff):
        response = await client.get(numbers_path(org_id), headers=staff)
        assert response.status_code == 403

    async def test_admin_of_other_org_is_rejected(self, client, org_id):
        await client.post("/api/orgs", json={"name": "Other", "slug": "other"}, headers=user_headers("other"))

        response = await client.get(numbers_path(org_id), headers=user_headers("other"))

        assert response.status_code == 403

    async def test_exclusive_assignment(self, client, owner, org_id, property_id):
        first = await add_number(org_id, ORG_NUMBER, property_id=property_id)
        second = await add_number(org_id, SECOND_NUMBER, twilio_sid="PN0002")

        response = await client.patch(
            numbers_path(org_id, second),
            json={"propertyId": str(property_id), "exclusive": True},
            headers=owner
        )

        assert response.status_code == 200
        assert response.json()["propertyId"] == str(property_id)
        numbers = await list_numbers(client, org_id, owner)
        assert numbers[str(second)]["isActive"] is True
        assert numbers[str(first)]["isActive"] is False

    async def test_unmap_to_org_wide(self, client, owner, org_id, property_id):
        number = await add_number(org_id, ORG_NUMBER, property_id=property_id)

        response = await client.patch(numbers_path(org_id, number), json={"propertyId": None}, headers=owner)

        assert response.json()["propertyId"] is None

    async def test_assign_to_foreign_property(self, client, owner, org_id):
        number = await add_number(org_id, ORG_NUMBER)

        response = await client.patch(
            numbers_path(org_id, number),
            json={"propertyId": str(uuid4())},
            headers=owner
        )

        assert response.status_code == 400

    async def test_unknown_number(self, client, owner, org_id):
        response = await client.patch(numbers_path(org_id, uuid4()), json={}, headers=owner)
        assert response.status_code == 404

    async def test_exclusive_activation_of_org_wide_number(self, client, owner, org_id):
        first = await add_number(org_id, ORG_NUMBER)
        second = await add_number(org_id, SECOND_NUMBER, is_active=False, twilio_sid="PN0002")

        response = await client.post(
            numbers_path(org_id, second, "activate"),
            params={"exclusive": "true"},
            headers=owner
        )

        assert response.json()["isActive"] is True
        numbers = await list_numbers(client, org_id, owner)
        assert numbers[str(first)]["isActive"] is False

    async def test_activation_is_throttled_per_org(self, app, client, owner, org_id):
        number = await add_number(org_id, ORG_NUMBER)
        app.state.rate_limiter = InMemoryRateLimiter(limit=1, window_seconds=60)

        first = await client.post(numbers_path(org_id, number, "activate"), headers=owner)
        second = await client.post(numbers_path(org_id, number, "activate"), headers=owner)

        assert first.status_code == 200
        assert second.status_code == 429
        assert "Retry-After" in second.headers

    async def test_delete_only_deactivates(self, client, owner, org_id, telephony):
        number = await add_number(org_id, ORG_NUMBER)

        response = await client.delete(numbers_path(org_id, number), headers=owner)

        assert response.status_code == 204
        assert (await list_numbers(client, org_id, owner))[str(number)]["isActive"] is False
        telephony.release_number.assert_not_awaited()

    async def test_release(self, client, owner, org_id, telephony):
        number = await add_number(org_id, ORG_NUMBER)

        response = await client.delete(numbers_path(org_id, number), params={"release": "true"}, headers=owner)

        assert response.status_code == 204
        assert await list_numbers(client, org_id, owner) == {}
        telephony.release_number.assert_awaited_once_with("PN0001")


class TestProvisioning:

    async def test_attach_points_webhook_here(self, client, owner, org_id, property_id, telephony):
        telephony.find_incoming_number.return_value = ProvisionedNumber(sid="PNowned", e164=ORG_NUMBER)

        response = await client.post(
            f"/api/orgs/{org_id}/twilio/provision",
            json={"mode": "attach", "e164": "(555) 777-0000", "propertyId": str(property_id)},
            headers=owner
        )

        assert response.status_code == 200
        number = response.json()
        assert number["e164"] == ORG_NUMBER
        assert number["twilioSid"] == "PNowned"
        assert number["propertyId"] == str(property_id)
        assert number["isActive"] is True
        telephony.find_incoming_number.assert_awaited_once_with(e164=ORG_NUMBER, sid=None)
        telephony.set_sms_webhook.assert_awaited_once_with("PNowned", SMS_URL)

    async def test_attach_unknown_number(self, client, owner, org_id):
        response = await client.post(
            f"/api/orgs/{org_id}/twilio/provision",
            json={"mode": "attach", "sid": "PNmissing"},
            headers=owner
        )
        assert response.status_code == 404

    async def test_attach_needs_identifier(self, client, owner, org_id):
        response = await client.post(f"/api/orgs/{org_id}/twilio/provision", json={"mode": "attach"}, headers=owner)
        assert response.status_code == 400

    async def test_attach_number_of_other_org(self, client, owner, org_id, telephony):
        other = await client.post("/api/orgs", json={"name": "Other", "slug": "other"}, headers=user_headers("other"))
        await add_number(UUID(other.json()["id"]), ORG_NUMBER)
        telephony.find_incoming_number.return_value = ProvisionedNumber(sid="PN0001", e164=ORG_NUMBER)

        response = await client.post(
            f"/api/orgs/{org_id}/twilio/provision",
            json={"mode": "attach", "sid": "PN0001"},
            headers=owner
        )

        assert response.status_code == 409

    async def test_purchase(self, client, owner, org_id, telephony):
        response = await client.post(
            f"/api/orgs/{org_id}/twilio/provision",
            json={"mode": "purchase", "areaCode": "555", "country": "us"},
            headers=owner
        )

        assert response.status_code == 200
        assert response.json()["e164"] == "+15551230000"
        assert response.json()["propertyId"] is None
        telephony.purchase_number.assert_awaited_once_with(
            sms_url=SMS_URL,
            country="US",
            number_type=NumberType.LOCAL,
            area_code="555"
        )

    async def test_bad_area_code(self, client, owner, org_id):
        response = await client.post(
            f"/api/orgs/{org_id}/twilio/provision",
            json={"mode": "purchase", "areaCode": "55"},
            headers=owner
        )
        assert response.status_code == 400

    async def test_requires_twilio(self, app, client, owner, org_id):
        app.state.telephony = None

        response = await client.post(f"/api/orgs/{org_id}/twilio/provision", json={"mode": "purchase"}, headers=owner)

        assert response.status_code == 503


class TestInvites:

    async def _invite(self, client, owner, org_id, email="New.Staff@Acme.test", role="STAFF"):
        response = await client.post(
            f"/api/orgs/{org_id}/invites",
            json={"email": email, "role": role},
            headers=owner
        )
        assert response.status_code == 201
        return response.json()

    async def test_create_and_list(self, client, owner, org_id):
        invite = await self._invite(client, owner, org_id)

        assert invite["email"] == "new.staff@acme.test"
        assert invite["role"] == "STAFF"
        assert len(invite["token"]) == 32

        pending = (await client.get(f"/api/orgs/{org_id}/invites", headers=owner)).json()
        assert [i["id"] for i in pending] == [invite["id"]]

    async def test_owner_role_cannot_be_invited(self, client, owner, org_id):
        response = await client.post(
            f"/api/orgs/{org_id}/invites",
            json={"email": "boss@acme.test", "role": "OWNER"},
            headers=owner
        )
        assert response.status_code == 400

    async def test_accept_flow(self, client, owner, org_id):
        invite = await self._invite(client, owner, org_id, role="MANAGER")
        payload = {"token": invite["token"]}

        wrong = await client.post("/api/invites/accept", json=payload, headers=user_headers("new-user", "other@acme.test"))
        assert wrong.status_code == 403

        accepted = await client.post("/api/invites/accept", json=payload, headers=user_headers("new-user", "NEW.STAFF@acme.test"))
        assert accepted.status_code == 200
        assert accepted.json() == {"ok": True, "orgId": str(org_id), "role": "MANAGER", "alreadyAccepted": False}

        again = await client.post("/api/invites/accept", json=payload, headers=user_headers("new-user", "new.staff@acme.test"))
        assert again.json()["alreadyAccepted"] is True

        # the new manager can now act in the organisation
        response = await client.get(numbers_path(org_id), headers=user_headers("new-user"))
        assert response.status_code == 200
        assert (await client.get(f"/api/orgs/{org_id}/invites", headers=owner)).json() == []

    async def test_expired_invite(self, client, owner, org_id):
        invite = await self._invite(client, owner, org_id)
        async with get_session_context() as session:
            model = await SQLAlchemyInviteRepository(session).get_by_token(invite["token"])
            model.expires_at = datetime.now(timezone.utc) - timedelta(days=1)

        response = await client.post(
            "/api/invites/accept",
            json={"token": invite["token"]},
            headers=user_headers("new-user", "new.staff@acme.test")
        )

        assert response.status_code == 410

    async def test_accepted_invite_past_expiry_is_gone(self, client, owner, org_id):
        invite = await self._invite(client, owner, org_id)
        headers = user_headers("new-user", "new.staff@acme.test")
        assert (await client.post("/api/invites/accept", json={"token": invite["token"]}, headers=headers)).status_code == 200
        async with get_session_context() as session:
            model = await SQLAlchemyInviteRepository(session).get_by_token(invite["token"])
            model.expires_at = datetime.now(timezone.utc) - timedelta(days=1)

        response = await client.post("/api/invites/accept", json={"token": invite["token"]}, headers=headers)

        assert response.status_code == 410

    async def test_unknown_token(self, client):
        response = await client.post("/api/invites/accept", json={"token": "nope"}, headers=user_headers("new-user"))
        assert response.status_code == 404

    async def test_delete(self, client, owner, org_id):
        invite = await self._invite(client, owner, org_id)

        response = await client.delete(f"/api/orgs/{org_id}/invites/{invite['id']}", headers=owner)

        assert response.status_code == 204
        assert (await client.get(f"/api/orgs/{org_id}/invites", headers=owner)).json() == []


class TestAccessRequests:

    async def _submit(self, client, org_ref="acme", email="Jo@Example.com"):
        return await client.post(
            f"/api/orgs/{org_ref}/access-requests",
            json={"email": email, "name": "Jo", "message": "I manage the east wing."}
        )

    async def test_public_submission(self, client, org_id):
        response = await self._submit(client)

        assert response.status_code == 201
        assert response.json()["email"] == "jo@example.com"
        assert response.json()["status"] == "OPEN"

    async def test_submission_by_org_id(self, client, org_id):
        response = await self._submit(client, org_ref=str(org_id))
        assert response.status_code == 201

    async def test_unknown_org(self, client):
        response = await self._submit(client, org_ref="nobody")
        assert response.status_code == 404

    async def test_one_open_request_per_email(self, client, org_id):
        await self._submit(client)
        response = await self._submit(client, email="jo@example.com")
        assert response.status_code == 409

    async def test_listing_requires_admin(self, client, org_id, staff):
        await self._submit(client)

        assert (await client.get("/api/orgs/acme/access-requests", headers=staff)).status_code == 403
        assert (await client.get("/api/orgs/acme/access-requests")).status_code == 401

    async def test_approve_sends_invite(self, client, owner, org_id):
        submitted = (await self._submit(client)).json()

        listed = (await client.get("/api/orgs/acme/access-requests", headers=owner)).json()
        assert [r["id"] for r in listed] == [submitted["id"]]

        response = await client.patch(
            "/api/orgs/acme/access-requests",
            json={"requestId": submitted["id"], "action": "approve", "role": "MANAGER"},
            headers=owner
        )

        assert response.status_code == 200
        decision = response.json()
        assert decision["request"]["status"] == "INVITED"
        assert decision["invite"]["email"] == "jo@example.com"
        assert decision["invite"]["role"] == "MANAGER"

        again = await client.patch(
            "/api/orgs/acme/access-requests",
            json={"requestId": submitted["id"], "action": "deny"},
            headers=owner
        )
        assert again.status_code == 409

        assert (await client.get("/api/orgs/acme/access-requests", headers=owner)).json() == []
        approved = (await client.get("/api/orgs/acme/access-requests", params={"status": "approved"}, headers=owner)).json()
        assert len(approved) == 1

    async def test_deny(self, client, owner, org_id):
        submitted = (await self._submit(client)).json()

        response = await client.patch(
            "/api/orgs/acme/access-requests",
            json={"requestId": submitted["id"], "action": "deny"},
            headers=owner
        )

        assert response.json()["request"]["status"] == "DISMISSED"
        assert response.json()["invite"] is None
        # a new request may be filed once the old one is decided
        assert (await self._submit(client)).status_code == 201

    async def test_unknown_status_filter(self, client, owner, org_id):
        response = await client.get("/api/orgs/acme/access-requests", params={"status": "lost"}, headers=owner)
        assert response.status_code == 400
