"""
Twilio Webhook Signature Verification
======================================

Checks that an inbound webhook was signed by Twilio with our auth token
and is recent.
"""

import time
from typing import Callable, Mapping, Optional
from urllib.parse import parse_qs, urlparse

from fastapi import Request
from twilio.request_validator import RequestValidator

from src.config import WEBHOOK_PATH, settings
from src.core import PermissionDeniedException
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-twilio-signature"
TIMESTAMP_HEADER = "x-twilio-request-timestamp"


class TwilioSignatureVerifier:
    """
    Validates X-Twilio-Signature with twilio.request_validator.

    The signed URL must match what Twilio called. Behind a proxy that is
    PUBLIC_URL, or else the forwarded scheme and host.
    """

    def __init__(
        self,
        auth_token: Optional[str] = None,
        public_url: Optional[str] = None,
        max_skew_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time
    ):
        self._auth_token = auth_token if auth_token is not None else settings.twilio_auth_token
        self._public_url = public_url if public_url is not None else settings.public_url
        self._max_skew = max_skew_seconds or settings.webhook_max_skew_seconds
        self._clock = clock

    def expected_url(self, request: Request) -> str:
        query = request.url.query
        if self._public_url:
            url = self._public_url.rstrip("/") + WEBHOOK_PATH
        else:
            proto = request.headers.get("x-forwarded-proto") or request.url.scheme
            host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
            url = f"{proto}://{host}{request.url.path}"
        return f"{url}?{query}" if query else url

    def check_timestamp(self, headers: Mapping[str, str]) -> None:
        raw = headers.get(TIMESTAMP_HEADER)
        if raw is None:
            return
        try:
            timestamp = float(raw)
        except ValueError:
            raise PermissionDeniedException("Stale request")
        if abs(self._clock() - timestamp) > self._max_skew:
            raise PermissionDeniedException("Stale request")

    def verify(
        self,
        url: str,
        headers: Mapping[str, str],
        raw_body: bytes,
        params: Mapping[str, str]
    ) -> None:
        """
        Raises:
            PermissionDeniedException: If the signature is missing, stale or invalid
        """
        signature = headers.get(SIGNATURE_HEADER)
        if not signature:
            raise PermissionDeniedException("Forbidden")

        self.check_timestamp(headers)

        if not self._auth_token:
            logger.error("Twilio auth token not configured; rejecting webhook")
            raise PermissionDeniedException("Forbidden")

        validator = RequestValidator(self._auth_token)
        if "bodySHA256" in parse_qs(urlparse(url).query):
            valid = validator.validate(url, raw_body.decode("utf-8"), signature)
        else:
            valid = validator.validate(url, dict(params), signature)

        if not valid:
            logger.warning("Twilio signature failed", extra={"expected_url": url})
            raise PermissionDeniedException("Forbidden")
