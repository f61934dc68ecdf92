"""
Intake Module
=============

Bounded Context for tenant SMS/MMS arriving through Twilio.

Responsibilities:
- Verify and parse Twilio messaging webhooks
- Route messages to an organisation and property by destination number
- Find or register the tenant, triage the request and open a ticket
- Text tenants from the organisation's own numbers
"""

__version__ = "1.0.0"
