"""
Intake Infrastructure Layer
============================

Contains:
- Signature: Twilio webhook signature verification
"""

from src.intake.infrastructure.signature import TwilioSignatureVerifier

__all__ = [
    "TwilioSignatureVerifier",
]
