"""
Intake Interfaces Layer
=======================

API controllers for the inbound webhook and media proxy.
"""

from src.intake.interfaces.controllers import intake_router, get_sms_notifier

__all__ = ["intake_router", "get_sms_notifier"]
