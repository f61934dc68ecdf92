"""
Tenant SMS Notifier
===================

Chooses the sender identity for outbound SMS and delivers it through the
telephony client.

Sender order:
1. Messaging service SID
2. Explicit from number
3. Newest active org number mapped to the property
4. Newest active org-wide number
5. TWILIO_FROM_E164 / TWILIO_PHONE_NUMBER
"""

from typing import Any, Optional
from uuid import UUID

from src.config import settings
from src.core import ApplicationException, ConfigurationException
from src.intake.domain import OutboundSms
from src.maintenance.application import ITenantNotifier
from src.shared.domain import mask_phone
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class SmsNotifier(ITenantNotifier):
    """Sends SMS to tenants from the number they know."""

    def __init__(
        self,
        telephony: Optional[Any],
        numbers: Optional[Any] = None,
        messaging_service_sid: Optional[str] = None,
        default_from: Optional[str] = None
    ):
        self._telephony = telephony
        self._numbers = numbers
        self._messaging_service_sid = (
            messaging_service_sid
            if messaging_service_sid is not None
            else settings.twilio_messaging_service_sid
        )
        self._default_from = (
            default_from
            if default_from is not None
            else (settings.twilio_from_e164 or settings.twilio_phone_number)
        )

    async def resolve(
        self,
        to: str,
        body: str,
        org_id: Optional[UUID] = None,
        property_id: Optional[UUID] = None,
        from_: Optional[str] = None
    ) -> OutboundSms:
        """
        Build the outbound message with its sender.

        Raises:
            ConfigurationException: If no sender can be determined
        """
        if self._messaging_service_sid:
            return OutboundSms(to=to, body=body, messaging_service_sid=self._messaging_service_sid)

        if from_:
            return OutboundSms(to=to, body=body, from_=from_)

        if org_id is not None and self._numbers is not None:
            sender = await self._numbers.find_sender(org_id, property_id)
            if sender:
                return OutboundSms(to=to, body=body, from_=sender)

        if self._default_from:
            return OutboundSms(to=to, body=body, from_=self._default_from)

        raise ConfigurationException("No SMS sender configured")

    async def send(self, sms: OutboundSms) -> str:
        if self._telephony is None:
            raise ConfigurationException("Twilio is not configured")
        return await self._telephony.send_sms(
            to=sms.to,
            body=sms.body,
            from_=sms.from_,
            messaging_service_sid=sms.messaging_service_sid
        )

    async def deliver(
        self,
        to: str,
        body: str,
        org_id: Optional[UUID] = None,
        property_id: Optional[UUID] = None,
        from_: Optional[str] = None
    ) -> bool:
        try:
            sms = await self.resolve(to, body, org_id, property_id, from_)
            await self.send(sms)
        except ApplicationException as e:
            logger.error(
                "SMS delivery failed",
                extra={"to": mask_phone(to), "error": e.message, "error_type": type(e).__name__}
            )
            return False
        return True

    async def dispatch(self, sms: OutboundSms) -> None:
        """Send a resolved message from a background task."""
        try:
            await self.send(sms)
        except Exception as e:
            logger.error(
                "Background SMS failed",
                extra={"to": mask_phone(sms.to), "error": str(e), "error_type": type(e).__name__}
            )
