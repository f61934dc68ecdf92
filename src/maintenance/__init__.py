"""
Maintenance Module
==================

Bounded Context for the buildings an organisation manages.

Responsibilities:
- Property CRUD with ticket and tenant counts
- Tenant registration, search, reassignment and spreadsheet import
- Ticket listing, editing and status notifications to tenants
"""

__version__ = "1.0.0"
