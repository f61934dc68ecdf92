"""
Tests for the inbound message pipeline pieces that do not need a database:
form parsing, signature checks, sender selection and the intake service
wired to mocks.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from starlette.requests import Request
from twilio.request_validator import RequestValidator

from src.config import ConversationState
from src.core import (
    ConfigurationException,
    ConflictException,
    PermissionDeniedException,
    RateLimitExceededException,
    TelephonyException,
    UnroutableDestinationException,
    ValidationException,
)
from src.intake.application import InboundMessageService, SmsNotifier
from src.intake.domain import InboundMessage, OutboundSms, parse_form_body
from src.intake.infrastructure import TwilioSignatureVerifier
from src.shared.domain import messages
from src.shared.infrastructure.media import ProxyMediaStore
from src.shared.infrastructure.ratelimit import InMemoryRateLimiter
from src.triage.application import TriageService
from tests.helpers import TEST_AUTH_TOKEN, WEBHOOK_URL, media_url, sign


class TestFormParsing:

    def test_repeated_keys_keep_first(self):
        params = parse_form_body(b"Body=first&Body=second&To=%2B15550001111")
        assert params == {"Body": "first", "To": "+15550001111"}

    def test_blank_values_kept(self):
        assert parse_form_body(b"Body=&From=x") == {"Body": "", "From": "x"}

    def test_message_from_params(self):
        message = InboundMessage.from_params({
            "From": " +15552223333 ",
            "To": "+15550001111",
            "Body": "  Leak  ",
            "SmsMessageSid": "SM1",
            "NumMedia": "2",
            "MediaUrl0": media_url(),
            "MediaUrl1": media_url(media_sid="ME2"),
            "MediaContentType1": "video/mp4",
        })

        assert message.from_number == "+15552223333"
        assert message.body == "Leak"
        assert message.message_sid == "SM1"
        assert [m.content_type for m in message.media] == ["image/jpeg", "video/mp4"]
        assert [m.is_image for m in message.media] == [True, False]

    def test_bad_media_count_means_no_media(self):
        message = InboundMessage.from_params({"From": "a", "To": "b", "NumMedia": "lots"})
        assert message.media == []
        assert message.message_sid is None


def _request(headers, query=b""):
    return Request({
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "path": "/api/webhooks/twilio",
        "query_string": query,
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "server": ("internal", 8000),
    })


class TestTwilioSignatureVerifier:

    PARAMS = {"From": "+15552223333", "To": "+15550001111", "Body": "Leak"}

    def setup_method(self):
        self.verifier = TwilioSignatureVerifier(
            auth_token=TEST_AUTH_TOKEN,
            public_url="https://example.test",
            max_skew_seconds=300,
            clock=lambda: 10_000.0
        )

    def test_valid_signature(self):
        headers = {"x-twilio-signature": sign(self.PARAMS)}
        self.verifier.verify(WEBHOOK_URL, headers, b"", self.PARAMS)

    def test_missing_signature(self):
        with pytest.raises(PermissionDeniedException, match="Forbidden"):
            self.verifier.verify(WEBHOOK_URL, {}, b"", self.PARAMS)

    def test_tampered_params(self):
        headers = {"x-twilio-signature": sign(self.PARAMS)}
        tampered = dict(self.PARAMS, Body="Free rent")
        with pytest.raises(PermissionDeniedException, match="Forbidden"):
            self.verifier.verify(WEBHOOK_URL, headers, b"", tampered)

    def test_stale_timestamp(self):
        headers = {
            "x-twilio-signature": sign(self.PARAMS),
            "x-twilio-request-timestamp": "9000",
        }
        with pytest.raises(PermissionDeniedException, match="Stale request"):
            self.verifier.verify(WEBHOOK_URL, headers, b"", self.PARAMS)

    def test_recent_timestamp_accepted(self):
        headers = {
            "x-twilio-signature": sign(self.PARAMS),
            "x-twilio-request-timestamp": "9900",
        }
        self.verifier.verify(WEBHOOK_URL, headers, b"", self.PARAMS)

    def test_missing_auth_token_rejects(self):
        verifier = TwilioSignatureVerifier(auth_token="", public_url="https://example.test")
        with pytest.raises(PermissionDeniedException):
            verifier.verify(WEBHOOK_URL, {"x-twilio-signature": "abc"}, b"", self.PARAMS)

    def test_json_body_signed_by_hash(self):
        body = '{"event":"inbound"}'
        validator = RequestValidator(TEST_AUTH_TOKEN)
        url = f"{WEBHOOK_URL}?bodySHA256={validator.compute_hash(body)}"
        headers = {"x-twilio-signature": validator.compute_signature(url, {})}

        self.verifier.verify(url, headers, body.encode(), {})

    def test_expected_url_prefers_public_url(self):
        request = _request({"host": "internal:8000"}, query=b"a=1")
        assert self.verifier.expected_url(request) == WEBHOOK_URL + "?a=1"

    def test_expected_url_from_forwarded_headers(self):
        verifier = TwilioSignatureVerifier(auth_token=TEST_AUTH_TOKEN, public_url="")
        request = _request({
            "host": "internal:8000",
            "x-forwarded-proto": "https",
            "x-forwarded-host": "api.example.com",
        })
        assert verifier.expected_url(request) == "https://api.example.com/api/webhooks/twilio"


class TestSmsNotifier:
    """Sender selection order."""

    ORG_ID = uuid4()
    PROPERTY_ID = uuid4()

    def _notifier(self, messaging_service_sid="", default_from="", sender=None):
        numbers = MagicMock()
        numbers.find_sender = AsyncMock(return_value=sender)
        telephony = MagicMock()
        telephony.send_sms = AsyncMock(return_value="SM1")
        notifier = SmsNotifier(
            telephony,
            numbers,
            messaging_service_sid=messaging_service_sid,
            default_from=default_from
        )
        return notifier, numbers, telephony

    async def test_messaging_service_first(self):
        notifier, numbers, _ = self._notifier(messaging_service_sid="MG1", sender="+15557770000")

        sms = await notifier.resolve("+15552223333", "hi", self.ORG_ID, self.PROPERTY_ID, from_="+1555")

        assert sms == OutboundSms(to="+15552223333", body="hi", messaging_service_sid="MG1")
        numbers.find_sender.assert_not_awaited()

    async def test_explicit_from_before_org_numbers(self):
        notifier, numbers, _ = self._notifier(sender="+15557770000")

        sms = await notifier.resolve("+15552223333", "hi", self.ORG_ID, from_="+15550009999")

        assert sms.from_ == "+15550009999"
        numbers.find_sender.assert_not_awaited()

    async def test_org_number_for_property(self):
        notifier, numbers, _ = self._notifier(default_from="+15550000000", sender="+15557770000")

        sms = await notifier.resolve("+15552223333", "hi", self.ORG_ID, self.PROPERTY_ID)

        assert sms.from_ == "+15557770000"
        numbers.find_sender.assert_awaited_once_with(self.ORG_ID, self.PROPERTY_ID)

    async def test_env_fallback(self):
        notifier, _, _ = self._notifier(default_from="+15550000000")

        sms = await notifier.resolve("+15552223333", "hi", self.ORG_ID)

        assert sms.from_ == "+15550000000"

    async def test_no_sender(self):
        notifier, _, _ = self._notifier()
        with pytest.raises(ConfigurationException):
            await notifier.resolve("+15552223333", "hi", self.ORG_ID)

    async def test_deliver_reports_failure(self):
        notifier, _, telephony = self._notifier()

        assert await notifier.deliver("+15552223333", "hi", self.ORG_ID) is False
        telephony.send_sms.assert_not_awaited()

    async def test_deliver_sends(self):
        notifier, _, telephony = self._notifier(sender="+15557770000")

        assert await notifier.deliver("+15552223333", "hi", self.ORG_ID) is True
        telephony.send_sms.assert_awaited_once_with(
            to="+15552223333", body="hi", from_="+15557770000", messaging_service_sid=None
        )

    async def test_dispatch_logs_send_errors(self):
        notifier, _, telephony = self._notifier()
        telephony.send_sms.side_effect = TelephonyException("down")

        await notifier.dispatch(OutboundSms(to="+15552223333", body="hi", from_="+15557770000"))

        telephony.send_sms.assert_awaited_once()


class TestInboundMessageService:
    """Pipeline decisions with every collaborator mocked."""

    def setup_method(self):
        self.org_id = uuid4()
        self.prop = SimpleNamespace(id=uuid4(), org_id=self.org_id, name="Maple Court")
        self.tenant = SimpleNamespace(id=uuid4(), property_id=self.prop.id, phone_number="+15552223333")

        self.properties = MagicMock()
        self.properties.get_by_phone = AsyncMock(return_value=self.prop)
        self.properties.get = AsyncMock(return_value=self.prop)
        self.numbers = MagicMock()
        self.numbers.get_active_by_e164 = AsyncMock(return_value=None)
        self.tenants = MagicMock()
        self.tenants.find_in_org_by_phones = AsyncMock(return_value=self.tenant)
        self.conversations = MagicMock()
        self.conversations.upsert = AsyncMock()
        self.tickets = MagicMock()
        self.tickets.get_by_message_sid = AsyncMock(return_value=None)
        self.tickets.create = AsyncMock(return_value=SimpleNamespace(id=uuid4()))
        self.notifier = MagicMock()
        self.notifier.deliver = AsyncMock(return_value=True)
        self.notifier.resolve = AsyncMock(
            side_effect=lambda to, body, org_id, property_id, from_=None: OutboundSms(to=to, body=body, from_=from_)
        )

        self.service = InboundMessageService(
            properties=self.properties,
            numbers=self.numbers,
            tenants=self.tenants,
            conversations=self.conversations,
            tickets=self.tickets,
            triage=TriageService(),
            media_store=ProxyMediaStore(),
            rate_limiter=InMemoryRateLimiter(limit=2),
            notifier=self.notifier,
            is_media_url=lambda url: url.startswith("https://api.twilio.com/")
        )

    def _message(self, sid="SM1", **overrides):
        params = {
            "From": "(555) 222-3333",
            "To": "+15550001111",
            "Body": "Toilet is clogged",
            "MessageSid": sid,
        }
        params.update(overrides)
        return InboundMessage.from_params(params)

    async def test_creates_ticket_and_confirmation(self):
        result = await self.service.process(self._message())

        fields = self.tickets.create.await_args.kwargs
        assert fields["org_id"] == self.org_id
        assert fields["tenant_id"] == self.tenant.id
        assert fields["category"] == "PLUMBING"
        assert fields["external_message_sid"] == "SM1"
        assert fields["triage_source"] == "keyword"
        assert result.duplicate is False
        assert result.confirmation.body == messages.confirmation(result.ticket_id, fields["priority"])
        assert result.confirmation.from_ == "+15550001111"
        self.conversations.upsert.assert_awaited_once_with(
            self.org_id, "+15552223333", ConversationState.IDLE, self.prop.id, self.tenant.id
        )

    async def test_missing_sender(self):
        with pytest.raises(ValidationException):
            await self.service.process(self._message(From=""))

    async def test_redelivery_is_duplicate(self):
        self.tickets.get_by_message_sid.return_value = SimpleNamespace(id=uuid4())

        result = await self.service.process(self._message())

        assert result.duplicate is True
        self.tickets.create.assert_not_awaited()

    async def test_insert_race_is_duplicate(self):
        self.tickets.create.side_effect = ConflictException("Ticket already exists for this message")

        result = await self.service.process(self._message())

        assert result.duplicate is True
        self.notifier.resolve.assert_not_awaited()

    async def test_unknown_destination(self):
        self.properties.get_by_phone.return_value = None

        with pytest.raises(UnroutableDestinationException):
            await self.service.process(self._message())

    async def test_rate_limit_per_sender(self):
        await self.service.process(self._message(sid="SM1"))
        await self.service.process(self._message(sid="SM2"))

        with pytest.raises(RateLimitExceededException):
            await self.service.process(self._message(sid="SM3"))

    async def test_only_twilio_media_is_kept(self):
        await self.service.process(self._message(
            NumMedia="2",
            MediaUrl0=media_url(),
            MediaUrl1="https://evil.example/x.jpg",
        ))

        image_urls = self.tickets.create.await_args.kwargs["image_urls"]
        assert len(image_urls) == 1
        assert image_urls[0].startswith("/api/twilio/media?u=")

    async def test_triage_failure_uses_defaults(self):
        self.service._triage = MagicMock()
        self.service._triage.analyze = AsyncMock(side_effect=RuntimeError("boom"))

        await self.service.process(self._message())

        fields = self.tickets.create.await_args.kwargs
        assert fields["category"] == "UNKNOWN"
        assert fields["priority"] == "MEDIUM"
        assert fields["triage_confidence"] == 0.0
        assert fields["triage_source"] == "default"

    async def test_confirmation_without_sender_still_creates_ticket(self):
        self.notifier.resolve.side_effect = ConfigurationException("No SMS sender configured")

        result = await self.service.process(self._message())

        assert result.ticket_id is not None
        assert result.confirmation is None
