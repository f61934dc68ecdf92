"""
Triage Module
=============

Bounded Context for classifying maintenance requests.

Responsibilities:
- Keyword classification of the tenant's text into category and priority
- Vision model classification of attached photos, when configured
- Staff preview endpoint for the same cascade
"""

__version__ = "1.0.0"
