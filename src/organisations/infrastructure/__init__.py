"""
Organisation Infrastructure Layer
==================================

Infrastructure implementations for the organisations module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Data access implementations
"""

from src.organisations.infrastructure.models import (
    OrganisationModel,
    MembershipModel,
    OrgNumberModel,
    InviteModel,
    AccessRequestModel,
)
from src.organisations.infrastructure.repositories import (
    SQLAlchemyOrganisationRepository,
    SQLAlchemyMembershipRepository,
    SQLAlchemyOrgNumberRepository,
    SQLAlchemyInviteRepository,
    SQLAlchemyAccessRequestRepository,
)

__all__ = [
    "OrganisationModel",
    "MembershipModel",
    "OrgNumberModel",
    "InviteModel",
    "AccessRequestModel",
    "SQLAlchemyOrganisationRepository",
    "SQLAlchemyMembershipRepository",
    "SQLAlchemyOrgNumberRepository",
    "SQLAlchemyInviteRepository",
    "SQLAlchemyAccessRequestRepository",
]
