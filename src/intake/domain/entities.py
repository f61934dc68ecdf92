"""
Intake Domain
=============

Inbound SMS/MMS messages as delivered by the Twilio webhook, and the
outcome of processing one.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional
from urllib.parse import parse_qsl

DEFAULT_MEDIA_CONTENT_TYPE = "image/jpeg"


def parse_form_body(raw: bytes) -> Dict[str, str]:
    """
    Decode an application/x-www-form-urlencoded body.

    Repeated keys keep their first value. Blank values are kept, since the
    signature covers every posted parameter.
    """
    params: Dict[str, str] = {}
    for key, value in parse_qsl(raw.decode("utf-8"), keep_blank_values=True):
        params.setdefault(key, value)
    return params


@dataclass(frozen=True)
class InboundMedia:
    """One attachment of an MMS."""
    url: str
    content_type: str = DEFAULT_MEDIA_CONTENT_TYPE

    @property
    def is_image(self) -> bool:
        return self.content_type.lower().startswith("image/")


@dataclass(frozen=True)
class InboundMessage:
    """A message a tenant texted to one of our numbers."""
    from_number: str
    to_number: str
    body: str = ""
    message_sid: Optional[str] = None
    media: List[InboundMedia] = field(default_factory=list)

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "InboundMessage":
        try:
            num_media = max(0, int(params.get("NumMedia") or 0))
        except ValueError:
            num_media = 0

        media = []
        for i in range(num_media):
            url = params.get(f"MediaUrl{i}")
            if url:
                content_type = params.get(f"MediaContentType{i}") or DEFAULT_MEDIA_CONTENT_TYPE
                media.append(InboundMedia(url=url, content_type=content_type))

        return cls(
            from_number=(params.get("From") or "").strip(),
            to_number=(params.get("To") or "").strip(),
            body=(params.get("Body") or "").strip(),
            message_sid=params.get("MessageSid") or params.get("SmsMessageSid") or None,
            media=media,
        )


@dataclass(frozen=True)
class OutboundSms:
    """A message queued for delivery after the webhook responds."""
    to: str
    body: str
    from_: Optional[str] = None
    messaging_service_sid: Optional[str] = None


@dataclass
class IntakeResult:
    """Outcome of processing an inbound message."""
    ticket_id: Optional[str] = None
    duplicate: bool = False
    tenant_created: bool = False
    confirmation: Optional[OutboundSms] = None
