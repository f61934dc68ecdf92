"""
Organisation Interfaces Layer
==============================

API controllers for organisations, numbers, invites and access requests.
"""

from src.organisations.interfaces.controllers import organisations_router

__all__ = ["organisations_router"]
