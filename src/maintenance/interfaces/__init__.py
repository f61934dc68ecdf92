"""
Maintenance Interfaces Layer
=============================

API controllers for properties, tenants and tickets.
"""

from src.maintenance.interfaces.controllers import maintenance_router

__all__ = ["maintenance_router"]
