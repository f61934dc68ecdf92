"""
Organisation Application Layer
===============================

Contains:
- Services: organisation, number, invite and access request use cases
- DTOs: Data transfer objects for API serialization
- Repository interfaces
"""

from src.organisations.application.dto import (
    CreateOrganisationRequest,
    AssignNumberRequest,
    ProvisionNumberRequest,
    CreateInviteRequest,
    AcceptInviteRequest,
    CreateAccessRequest,
    DecideAccessRequest,
    OrganisationResponse,
    MembershipResponse,
    OrgNumberResponse,
    NumberListResponse,
    InviteResponse,
    AcceptInviteResponse,
    AccessRequestResponse,
    AccessRequestDecisionResponse,
)
from src.organisations.application.services import (
    OrganisationService,
    NumberService,
    InviteService,
    AccessRequestService,
    IOrganisationRepository,
    IMembershipRepository,
    IOrgNumberRepository,
    IInviteRepository,
    IAccessRequestRepository,
)

__all__ = [
    "CreateOrganisationRequest",
    "AssignNumberRequest",
    "ProvisionNumberRequest",
    "CreateInviteRequest",
    "AcceptInviteRequest",
    "CreateAccessRequest",
    "DecideAccessRequest",
    "OrganisationResponse",
    "MembershipResponse",
    "OrgNumberResponse",
    "NumberListResponse",
    "InviteResponse",
    "AcceptInviteResponse",
    "AccessRequestResponse",
    "AccessRequestDecisionResponse",
    "OrganisationService",
    "NumberService",
    "InviteService",
    "AccessRequestService",
    "IOrganisationRepository",
    "IMembershipRepository",
    "IOrgNumberRepository",
    "IInviteRepository",
    "IAccessRequestRepository",
]
