"""
Integration tests for the Twilio webhook: signature, routing, tenant
resolution, idempotency and the tenant SMS that follow a ticket.
"""

from unittest.mock import AsyncMock, MagicMock

from src.config import UNASSIGNED_PROPERTY_NAME, WEBHOOK_PATH
from src.infrastructure.database import get_session_context
from src.maintenance.infrastructure import (
    SQLAlchemyConversationRepository,
    SQLAlchemyTenantRepository,
    SQLAlchemyTicketRepository,
)
from src.shared.domain import messages
from src.shared.infrastructure.ratelimit import InMemoryRateLimiter
from tests.helpers import add_number, media_url, post_sms, sign

PROPERTY_PHONE = "+15550001111"
ORG_NUMBER = "+15557770000"
TENANT_PHONE = "+15552223333"


def sms(sid="SM0001", body="Water leaking under the kitchen sink", to=PROPERTY_PHONE, sender=TENANT_PHONE, **extra):
    params = {"MessageSid": sid, "From": sender, "To": to, "Body": body, "NumMedia": "0"}
    params.update(extra)
    return params


class TestWebhookAuthentication:

    async def test_reachability_check(self, client):
        response = await client.get(WEBHOOK_PATH)
        assert response.status_code == 200
        assert response.text == "ok"

    async def test_unsigned_request_rejected(self, client):
        response = await client.post(WEBHOOK_PATH, data=sms())
        assert response.status_code == 403
        assert response.json()["detail"] == "Forbidden"

    async def test_wrong_signature_rejected(self, client):
        params = sms()
        response = await client.post(
            WEBHOOK_PATH,
            data=dict(params, Body="changed"),
            headers={"X-Twilio-Signature": sign(params)}
        )
        assert response.status_code == 403

    async def test_stale_request_rejected(self, client):
        response = await post_sms(client, sms(), **{"X-Twilio-Request-Timestamp": "1000"})
        assert response.status_code == 403
        assert response.json()["detail"] == "Stale request"


class TestWebhookRouting:

    async def test_unknown_destination(self, client, org_id):
        response = await post_sms(client, sms(to="+15559998888"))
        assert response.status_code == 404
        assert response.json()["detail"] == "Destination not configured"

    async def test_missing_sender(self, client, property_id):
        response = await post_sms(client, sms(sender=""))
        assert response.status_code == 400

    async def test_known_tenant_by_property_phone(self, client, owner, property_id, tenant_id):
        response = await post_sms(client, sms())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True

        ticket = (await client.get(f"/api/tickets/{body['ticketId']}", headers=owner)).json()
        assert ticket["tenantId"] == str(tenant_id)
        assert ticket["propertyId"] == str(property_id)
        assert ticket["category"] == "PLUMBING"
        assert ticket["priority"] == "MEDIUM"
        assert ticket["status"] == "OPEN"
        assert ticket["externalMessageSid"] == "SM0001"
        assert ticket["triageSource"] == "keyword"
        assert ticket["description"] == "Water leaking under the kitchen sink"

    async def test_property_phone_replies_from_property_phone(self, client, tenant_id, telephony):
        response = await post_sms(client, sms())

        telephony.send_sms.assert_awaited_once_with(
            to=TENANT_PHONE,
            body=messages.confirmation(response.json()["ticketId"], "MEDIUM"),
            from_=PROPERTY_PHONE,
            messaging_service_sid=None
        )

    async def test_reply_uses_texted_number_among_several(self, client, org_id, property_id, tenant_id, telephony):
        await add_number(org_id, ORG_NUMBER, property_id=property_id)
        await add_number(org_id, "+15557770001", property_id=property_id, twilio_sid="PN0002")

        await post_sms(client, sms(to=ORG_NUMBER))

        assert telephony.send_sms.await_args.kwargs["from_"] == ORG_NUMBER

    async def test_inactive_number_does_not_route(self, client, org_id):
        await add_number(org_id, ORG_NUMBER, is_active=False)

        response = await post_sms(client, sms(to=ORG_NUMBER))

        assert response.status_code == 404

    async def test_number_mapped_to_property(self, client, owner, org_id, property_id, tenant_id, telephony):
        await add_number(org_id, ORG_NUMBER, property_id=property_id)

        response = await post_sms(client, sms(to=ORG_NUMBER))

        assert response.status_code == 200
        ticket_id = response.json()["ticketId"]
        ticket = (await client.get(f"/api/tickets/{ticket_id}", headers=owner)).json()
        assert ticket["propertyId"] == str(property_id)

        # confirmation goes out from the number the tenant texted
        telephony.send_sms.assert_awaited_once_with(
            to=TENANT_PHONE,
            body=messages.confirmation(ticket_id, "MEDIUM"),
            from_=ORG_NUMBER,
            messaging_service_sid=None
        )

    async def test_stored_phone_is_backfilled_to_e164(self, client, owner, org_id, property_id):
        async with get_session_context() as session:
            await SQLAlchemyTenantRepository(session).create(
                org_id=org_id, property_id=property_id, phone_number="5552223333", name="Legacy"
            )

        response = await post_sms(client, sms())
        assert response.status_code == 200

        tenants = (await client.get("/api/tenants", headers=owner)).json()
        assert tenants["total"] == 1
        assert tenants["items"][0]["phoneNumber"] == TENANT_PHONE
        assert tenants["items"][0]["name"] == "Legacy"


class TestUnknownTenants:

    async def test_org_wide_number_files_into_unassigned_inbox(self, client, owner, org_id, telephony):
        await add_number(org_id, ORG_NUMBER)

        response = await post_sms(client, sms(to=ORG_NUMBER, body="The heat is broken"))

        assert response.status_code == 200
        tenants = (await client.get("/api/tenants", headers=owner)).json()
        assert tenants["total"] == 1
        tenant = tenants["items"][0]
        assert tenant["phoneNumber"] == TENANT_PHONE
        assert tenant["property"]["name"] == UNASSIGNED_PROPERTY_NAME

        async with get_session_context() as session:
            conversation = await SQLAlchemyConversationRepository(session).get(org_id, TENANT_PHONE)
        assert conversation.state == "ASK_PROPERTY"

        bodies = [call.kwargs["body"] for call in telephony.send_sms.await_args_list]
        assert bodies[0] == messages.address_prompt()
        assert bodies[1].startswith("✅ Maintenance request received!")
        assert {call.kwargs["from_"] for call in telephony.send_sms.await_args_list} == {ORG_NUMBER}

    async def test_second_message_reuses_inbox_tenant(self, client, owner, org_id, telephony):
        await add_number(org_id, ORG_NUMBER)

        await post_sms(client, sms(sid="SM1", to=ORG_NUMBER))
        await post_sms(client, sms(sid="SM2", to=ORG_NUMBER))

        tenants = (await client.get("/api/tenants", headers=owner)).json()
        assert tenants["total"] == 1
        tickets = (await client.get("/api/tickets", headers=owner)).json()
        assert tickets["total"] == 2
        prompts = [
            call for call in telephony.send_sms.await_args_list
            if call.kwargs["body"] == messages.address_prompt()
        ]
        assert len(prompts) == 1

    async def test_unknown_sender_on_property_number_joins_property(self, client, owner, property_id, telephony):
        response = await post_sms(client, sms(sender="+15554445555"))

        assert response.status_code == 200
        tenants = (await client.get("/api/tenants", headers=owner)).json()
        assert tenants["items"][0]["propertyId"] == str(property_id)
        assert all(
            call.kwargs["body"] != messages.address_prompt()
            for call in telephony.send_sms.await_args_list
        )


class TestIdempotency:

    async def test_redelivery_is_acknowledged_without_new_ticket(self, client, owner, tenant_id):
        first = await post_sms(client, sms(sid="SMdup"))
        second = await post_sms(client, sms(sid="SMdup"))

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json() == {"ok": True, "duplicate": True}

        tickets = (await client.get("/api/tickets", headers=owner)).json()
        assert tickets["total"] == 1

    async def test_concurrent_redelivery_hits_unique_constraint(self, client, owner, tenant_id, telephony, monkeypatch):
        # Both deliveries pass the lookup, as when they arrive at the same time
        monkeypatch.setattr(SQLAlchemyTicketRepository, "get_by_message_sid", AsyncMock(return_value=None))

        first = await post_sms(client, sms(sid="SMrace"))
        second = await post_sms(client, sms(sid="SMrace"))

        assert first.status_code == 200
        assert first.json()["success"] is True
        assert second.status_code == 200
        assert second.json() == {"ok": True, "duplicate": True}

        tickets = (await client.get("/api/tickets", headers=owner)).json()
        assert tickets["total"] == 1
        assert tickets["items"][0]["externalMessageSid"] == "SMrace"
        assert telephony.send_sms.await_count == 1


class TestMediaAndTriage:

    async def test_only_account_media_is_stored(self, client, owner, tenant_id):
        params = sms(
            body="",
            NumMedia="2",
            MediaUrl0=media_url(),
            MediaContentType0="image/jpeg",
            MediaUrl1="https://evil.example/x.jpg",
            MediaContentType1="image/jpeg",
        )
        response = await post_sms(client, params)

        ticket = (await client.get(f"/api/tickets/{response.json()['ticketId']}", headers=owner)).json()
        assert len(ticket["imageUrls"]) == 1
        assert ticket["imageUrls"][0].startswith("/api/twilio/media?u=https%3A%2F%2Fapi.twilio.com")
        assert ticket["category"] == "UNKNOWN"

    async def test_triage_failure_still_files_ticket(self, app, client, owner, tenant_id):
        failing = MagicMock()
        failing.analyze = AsyncMock(side_effect=RuntimeError("triage down"))
        app.state.triage_service = failing

        response = await post_sms(client, sms())

        ticket = (await client.get(f"/api/tickets/{response.json()['ticketId']}", headers=owner)).json()
        assert ticket["category"] == "UNKNOWN"
        assert ticket["priority"] == "MEDIUM"
        assert ticket["triageSource"] == "default"
        assert ticket["triageConfidence"] == 0.0


class TestWebhookFailures:

    async def test_rate_limited_sender(self, app, client, tenant_id):
        app.state.rate_limiter = InMemoryRateLimiter(limit=1, window_seconds=60)

        assert (await post_sms(client, sms(sid="SM1"))).status_code == 200
        response = await post_sms(client, sms(sid="SM2"))

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1

    async def test_unexpected_error_returns_500(self, app, client, tenant_id):
        broken = MagicMock()
        broken.limit = AsyncMock(side_effect=RuntimeError("limiter down"))
        app.state.rate_limiter = broken

        response = await post_sms(client, sms())

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    async def test_confirmation_send_failure_does_not_fail_webhook(self, client, org_id, property_id, tenant_id, telephony):
        await add_number(org_id, ORG_NUMBER, property_id=property_id)
        telephony.send_sms.side_effect = RuntimeError("twilio down")

        response = await post_sms(client, sms(to=ORG_NUMBER))

        assert response.status_code == 200
        assert response.json()["success"] is True


class TestMediaProxy:

    async def test_staff_can_view_media(self, client, staff, telephony):
        response = await client.get(
            "/api/twilio/media",
            params={"u": media_url(), "ct": "image/jpeg"},
            headers=staff
        )

        assert response.status_code == 200
        assert response.content == b"\x89PNG"
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["cache-control"].startswith("private")
        telephony.fetch_media.assert_awaited_once_with(media_url())

    async def test_other_urls_rejected(self, client, staff, telephony):
        response = await client.get("/api/twilio/media", params={"u": "https://evil.example/x.jpg"}, headers=staff)

        assert response.status_code == 400
        telephony.fetch_media.assert_not_awaited()

    async def test_tenant_role_forbidden(self, client, tenant_member):
        response = await client.get("/api/twilio/media", params={"u": media_url()}, headers=tenant_member)
        assert response.status_code == 403

    async def test_requires_telephony(self, app, client, staff):
        app.state.telephony = None

        response = await client.get("/api/twilio/media", params={"u": media_url()}, headers=staff)

        assert response.status_code == 503
