"""
Intake Domain Layer
===================

Inbound message parsing and processing outcomes.
"""

from src.intake.domain.entities import (
    DEFAULT_MEDIA_CONTENT_TYPE,
    InboundMedia,
    InboundMessage,
    IntakeResult,
    OutboundSms,
    parse_form_body,
)

__all__ = [
    "DEFAULT_MEDIA_CONTENT_TYPE",
    "InboundMedia",
    "InboundMessage",
    "IntakeResult",
    "OutboundSms",
    "parse_form_body",
]
