"""
Organisations Module
====================

Bounded Context for the accounts that own properties and numbers.

Responsibilities:
- Organisation creation and staff memberships
- Twilio number attach, purchase, mapping and release
- Staff invites and public access requests
"""

__version__ = "1.0.0"
