"""
Telephony Infrastructure
========================

Wrapper around the Twilio REST client providing a clean interface for
messaging, number management and media downloads.

The Twilio SDK is synchronous; calls are pushed to a worker thread so the
event loop is never blocked.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from src.config import NumberType, settings
from src.core import ConfigurationException, TelephonyException
from src.shared.domain import mask_phone
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProvisionedNumber:
    """A Twilio incoming phone number."""
    sid: str
    e164: str


@dataclass(frozen=True)
class MediaContent:
    """Downloaded media body."""
    data: bytes
    content_type: str


def twilio_media_url_pattern(account_sid: Optional[str] = None) -> re.Pattern:
    """Media URLs of account_sid, or of any account when it is not set."""
    account = re.escape(account_sid) if account_sid else r"[^/]+"
    return re.compile(
        r"^https://api\.twilio\.com/2010-04-01/Accounts/"
        + account
        + r"/Messages/[^/]+/Media/[^/]+$"
    )


class ITelephonyClient(ABC):
    """Interface for telephony vendor operations."""

    @abstractmethod
    async def send_sms(
        self,
        to: str,
        body: str,
        from_: Optional[str] = None,
        messaging_service_sid: Optional[str] = None
    ) -> str:
        """Send an SMS and return the message SID."""

    @abstractmethod
    def is_media_url(self, url: str) -> bool:
        """Whether url points at media owned by our account."""

    @abstractmethod
    async def fetch_media(self, url: str) -> MediaContent:
        """Download message media with account credentials."""

    @abstractmethod
    async def find_incoming_number(
        self,
        e164: Optional[str] = None,
        sid: Optional[str] = None
    ) -> Optional[ProvisionedNumber]:
        """Look up a number already owned by the account."""

    @abstractmethod
    async def set_sms_webhook(self, sid: str, sms_url: str) -> None:
        """Point a number's inbound SMS webhook at sms_url."""

    @abstractmethod
    async def purchase_number(
        self,
        sms_url: str,
        country: str = "US",
        number_type: NumberType = NumberType.LOCAL,
        area_code: Optional[str] = None
    ) -> ProvisionedNumber:
        """Buy the first available number matching the criteria."""

    @abstractmethod
    async def release_number(self, sid: str) -> None:
        """Release a number back to Twilio."""


class TwilioTelephonyClient(ITelephonyClient):
    """
    Twilio client implementation.

    Raises:
        ConfigurationException: If account credentials are missing
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        client: Optional[Client] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._account_sid = account_sid or settings.twilio_account_sid
        self._auth_token = auth_token or settings.twilio_auth_token
        if not self._account_sid or not self._auth_token:
            raise ConfigurationException("Twilio is not configured")

        self._client = client or Client(self._account_sid, self._auth_token)
        self._media_pattern = twilio_media_url_pattern(self._account_sid)
        self._http_transport = http_transport

    @property
    def credentials(self) -> Tuple[str, str]:
        return (self._account_sid, self._auth_token)

    async def send_sms(
        self,
        to: str,
        body: str,
        from_: Optional[str] = None,
        messaging_service_sid: Optional[str] = None
    ) -> str:
        kwargs = {"to": to, "body": body}
        if messaging_service_sid:
            kwargs["messaging_service_sid"] = messaging_service_sid
        elif from_:
            kwargs["from_"] = from_
        else:
            raise ConfigurationException("No SMS sender configured")

        try:
            message = await asyncio.to_thread(self._client.messages.create, **kwargs)
        except TwilioException as e:
            raise TelephonyException(f"SMS send failed: {e}")

        logger.info("SMS sent", extra={"message_sid": message.sid, "to": mask_phone(to)})
        return message.sid

    def is_media_url(self, url: str) -> bool:
        return bool(self._media_pattern.match(url or ""))

    async def fetch_media(self, url: str) -> MediaContent:
        if not self.is_media_url(url):
            raise TelephonyException("Not a Twilio media URL for this account")

        try:
            async with httpx.AsyncClient(
                timeout=settings.twilio_timeout_seconds,
                follow_redirects=True,
                transport=self._http_transport
            ) as http:
                response = await http.get(url, auth=self.credentials)
        except httpx.HTTPError as e:
            raise TelephonyException(f"Media fetch failed: {e}")

        if response.status_code != 200:
            raise TelephonyException(
                f"Media fetch failed with status {response.status_code}"
            )

        return MediaContent(
            data=response.content,
            content_type=response.headers.get("content-type", "application/octet-stream")
        )

    async def find_incoming_number(
        self,
        e164: Optional[str] = None,
        sid: Optional[str] = None
    ) -> Optional[ProvisionedNumber]:
        try:
            if sid:
                number = await asyncio.to_thread(self._client.incoming_phone_numbers(sid).fetch)
                return ProvisionedNumber(sid=number.sid, e164=number.phone_number)
            if e164:
                numbers = await asyncio.to_thread(
                    self._client.incoming_phone_numbers.list, phone_number=e164, limit=1
                )
                if numbers:
                    return ProvisionedNumber(sid=numbers[0].sid, e164=numbers[0].phone_number)
        except TwilioException as e:
            raise TelephonyException(f"Number lookup failed: {e}")
        return None

    async def set_sms_webhook(self, sid: str, sms_url: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.incoming_phone_numbers(sid).update,
                sms_url=sms_url,
                sms_method="POST"
            )
        except TwilioException as e:
            raise TelephonyException(f"Webhook update failed: {e}")

    async def purchase_number(
        self,
        sms_url: str,
        country: str = "US",
        number_type: NumberType = NumberType.LOCAL,
        area_code: Optional[str] = None
    ) -> ProvisionedNumber:
        search = {"sms_enabled": True, "limit": 1}
        if area_code:
            search["area_code"] = area_code

        available = self._client.available_phone_numbers(country)
        listing = available.toll_free if number_type == NumberType.TOLLFREE else available.local

        try:
            candidates = await asyncio.to_thread(listing.list, **search)
            if not candidates:
                raise TelephonyException("No numbers available for the requested criteria")

            number = await asyncio.to_thread(
                self._client.incoming_phone_numbers.create,
                phone_number=candidates[0].phone_number,
                sms_url=sms_url,
                sms_method="POST"
            )
        except TwilioException as e:
            raise TelephonyException(f"Number purchase failed: {e}")

        logger.info("Number purchased", extra={"number_sid": number.sid})
        return ProvisionedNumber(sid=number.sid, e164=number.phone_number)

    async def release_number(self, sid: str) -> None:
        try:
            await asyncio.to_thread(self._client.incoming_phone_numbers(sid).delete)
        except TwilioException as e:
            raise TelephonyException(f"Number release failed: {e}")
