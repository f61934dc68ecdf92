"""
Maintenance Infrastructure Layer
=================================

Infrastructure implementations for the maintenance module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Data access implementations
"""

from src.maintenance.infrastructure.models import (
    PropertyModel,
    TenantModel,
    ConversationModel,
    TicketModel,
)
from src.maintenance.infrastructure.repositories import (
    SQLAlchemyPropertyRepository,
    SQLAlchemyTenantRepository,
    SQLAlchemyConversationRepository,
    SQLAlchemyTicketRepository,
)

__all__ = [
    "PropertyModel",
    "TenantModel",
    "ConversationModel",
    "TicketModel",
    "SQLAlchemyPropertyRepository",
    "SQLAlchemyTenantRepository",
    "SQLAlchemyConversationRepository",
    "SQLAlchemyTicketRepository",
]
