"""
Intake Application Layer
=========================

Contains:
- InboundMessageService: inbound SMS to ticket pipeline
- SmsNotifier: sender resolution and delivery of tenant SMS
"""

from src.intake.application.notifier import SmsNotifier
from src.intake.application.services import InboundMessageService

__all__ = [
    "SmsNotifier",
    "InboundMessageService",
]
