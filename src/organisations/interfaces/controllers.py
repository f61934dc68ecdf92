"""
Organisation Controllers (API Routes)
======================================

FastAPI routes for organisations, their Twilio numbers, staff invites and
access requests.

Controllers are thin - they delegate to application services.
"""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import ADMIN_ROLES, Role
from src.infrastructure.database import get_session
from src.maintenance.infrastructure import SQLAlchemyPropertyRepository
from src.organisations.application import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    AccessRequestDecisionResponse,
    AccessRequestResponse,
    AccessRequestService,
    AssignNumberRequest,
    CreateAccessRequest,
    CreateInviteRequest,
    CreateOrganisationRequest,
    DecideAccessRequest,
    InviteResponse,
    InviteService,
    MembershipResponse,
    NumberListResponse,
    NumberService,
    OrganisationResponse,
    OrganisationService,
    OrgNumberResponse,
    ProvisionNumberRequest,
)
from src.organisations.infrastructure import (
    SQLAlchemyAccessRequestRepository,
    SQLAlchemyInviteRepository,
    SQLAlchemyMembershipRepository,
    SQLAlchemyOrganisationRepository,
    SQLAlchemyOrgNumberRepository,
)
from src.shared.api.auth import (
    OrgContext,
    Principal,
    get_principal,
    require_org_role,
    resolve_org_context,
)
from src.shared.api.dependencies import get_telephony, rate_limit
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api")

org_admin = require_org_role(*ADMIN_ROLES)

number_activate_limit = rate_limit("org:{org_id}:numbers:activate")
number_remove_limit = rate_limit("org:{org_id}:numbers:delete", limit=10, window_seconds=300)
invite_create_limit = rate_limit("invite:create:{org_id}", limit=10, window_seconds=60)


# ========== Dependencies ==========

async def get_organisation_service(
    session: AsyncSession = Depends(get_session)
) -> OrganisationService:
    return OrganisationService(
        SQLAlchemyOrganisationRepository(session),
        SQLAlchemyMembershipRepository(session)
    )


async def get_number_service(
    session: AsyncSession = Depends(get_session),
    telephony: Optional[Any] = Depends(get_telephony)
) -> NumberService:
    return NumberService(
        numbers=SQLAlchemyOrgNumberRepository(session),
        properties=SQLAlchemyPropertyRepository(session),
        telephony=telephony
    )


async def get_invite_service(
    session: AsyncSession = Depends(get_session)
) -> InviteService:
    return InviteService(
        SQLAlchemyInviteRepository(session),
        SQLAlchemyMembershipRepository(session)
    )


async def get_access_request_service(
    session: AsyncSession = Depends(get_session),
    invites: InviteService = Depends(get_invite_service)
) -> AccessRequestService:
    return AccessRequestService(SQLAlchemyAccessRequestRepository(session), invites)


async def require_access_request_admin(
    org_ref: str,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
    orgs: OrganisationService = Depends(get_organisation_service)
) -> OrgContext:
    """Admin of the organisation named by slug or id in the path."""
    org = await orgs.resolve(org_ref)
    return await resolve_org_context(session, principal, org.id, ADMIN_ROLES)


# ========== Organisations ==========

@router.post(
    "/orgs",
    response_model=OrganisationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Organisations"]
)
async def create_organisation(
    request: CreateOrganisationRequest,
    principal: Principal = Depends(get_principal),
    service: OrganisationService = Depends(get_organisation_service)
):
    return await service.create(principal.user_id, request.name, request.slug)


@router.get("/orgs", response_model=List[MembershipResponse], tags=["Organisations"])
async def list_organisations(
    principal: Principal = Depends(get_principal),
    service: OrganisationService = Depends(get_organisation_service)
):
    memberships = await service.list_memberships(principal.user_id)
    return [
        MembershipResponse(
            org_id=org.id,
            role=Role(membership.role),
            organisation=OrganisationResponse.model_validate(org)
        )
        for membership, org in memberships
    ]


# ========== Twilio Numbers ==========

@router.get(
    "/orgs/{org_id}/twilio/numbers",
    response_model=NumberListResponse,
    tags=["Numbers"]
)
async def list_numbers(
    ctx: OrgContext = Depends(org_admin),
    service: NumberService = Depends(get_number_service)
):
    numbers = await service.list(ctx.org_id)
    return NumberListResponse(items=[OrgNumberResponse.model_validate(n) for n in numbers])


@router.patch(
    "/orgs/{org_id}/twilio/numbers/{number_id}",
    response_model=OrgNumberResponse,
    tags=["Numbers"],
    summary="Map a number to a property",
    description="""
    Set `propertyId` to route the number's messages to that property, or
    `null` for org-wide routing. With `exclusive`, other numbers on the
    same property are deactivated.
    """
)
async def assign_number(
    number_id: str,
    request: AssignNumberRequest,
    ctx: OrgContext = Depends(org_admin),
    service: NumberService = Depends(get_number_service)
):
    return await service.assign(
        ctx.org_id,
        number_id,
        request.property_id,
        exclusive=request.exclusive,
        activate=request.activate
    )


@router.post(
    "/orgs/{org_id}/twilio/numbers/{number_id}/activate",
    response_model=OrgNumberResponse,
    tags=["Numbers"]
)
async def activate_number(
    number_id: str,
    exclusive: bool = Query(False),
    ctx: OrgContext = Depends(org_admin),
    _: None = Depends(number_activate_limit),
    service: NumberService = Depends(get_number_service)
):
    return await service.activate(ctx.org_id, number_id, exclusive=exclusive)


@router.delete(
    "/orgs/{org_id}/twilio/numbers/{number_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Numbers"],
    summary="Deactivate or release a number",
    description="Without `release` the number is only deactivated. With it, the number is released at Twilio and removed."
)
async def remove_number(
    number_id: str,
    release: bool = Query(False),
    ctx: OrgContext = Depends(org_admin),
    _: None = Depends(number_remove_limit),
    service: NumberService = Depends(get_number_service)
):
    await service.remove(ctx.org_id, number_id, release=release)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/orgs/{org_id}/twilio/provision",
    response_model=OrgNumberResponse,
    tags=["Numbers"],
    summary="Attach or purchase a Twilio number",
    description="""
    - `attach`: an existing number on the Twilio account, by `sid` or `e164`
    - `purchase`: the first available number for `country`, `type` and
      optional `areaCode`

    Either way the number's SMS webhook is pointed at this service, so
    PUBLIC_URL must be publicly reachable.
    """
)
async def provision_number(
    request: ProvisionNumberRequest,
    ctx: OrgContext = Depends(org_admin),
    service: NumberService = Depends(get_number_service)
):
    return await service.provision(
        ctx.org_id,
        mode=request.mode,
        e164=request.e164,
        sid=request.sid,
        area_code=request.area_code,
        country=request.country,
        number_type=request.type,
        property_id=request.property_id
    )


# ========== Invites ==========

@router.get(
    "/orgs/{org_id}/invites",
    response_model=List[InviteResponse],
    tags=["Invites"]
)
async def list_invites(
    ctx: OrgContext = Depends(org_admin),
    service: InviteService = Depends(get_invite_service)
):
    return await service.list_pending(ctx.org_id)


@router.post(
    "/orgs/{org_id}/invites",
    response_model=InviteResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Invites"]
)
async def create_invite(
    request: CreateInviteRequest,
    ctx: OrgContext = Depends(org_admin),
    _: None = Depends(invite_create_limit),
    service: InviteService = Depends(get_invite_service)
):
    return await service.create(
        ctx.org_id,
        request.email,
        role=Role(request.role),
        expires_in_days=request.expires_in_days,
        invited_by=ctx.user_id
    )


@router.delete(
    "/orgs/{org_id}/invites/{invite_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Invites"]
)
async def delete_invite(
    invite_id: str,
    ctx: OrgContext = Depends(org_admin),
    service: InviteService = Depends(get_invite_service)
):
    await service.delete(ctx.org_id, invite_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/invites/accept", response_model=AcceptInviteResponse, tags=["Invites"])
async def accept_invite(
    request: AcceptInviteRequest,
    principal: Principal = Depends(get_principal),
    service: InviteService = Depends(get_invite_service)
):
    invite, already_accepted = await service.accept(request.token, principal.user_id, principal.email)
    return AcceptInviteResponse(
        org_id=invite.org_id,
        role=Role(invite.role),
        already_accepted=already_accepted
    )


# ========== Access Requests ==========

@router.post(
    "/orgs/{org_ref}/access-requests",
    response_model=AccessRequestResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Access Requests"],
    summary="Ask to join an organisation",
    description="Public. The organisation may be given by slug or id."
)
async def create_access_request(
    org_ref: str,
    request: CreateAccessRequest,
    orgs: OrganisationService = Depends(get_organisation_service),
    service: AccessRequestService = Depends(get_access_request_service)
):
    org = await orgs.resolve(org_ref)
    return await service.submit(org.id, request.email, request.name, request.message)


@router.get(
    "/orgs/{org_ref}/access-requests",
    response_model=List[AccessRequestResponse],
    tags=["Access Requests"]
)
async def list_access_requests(
    status_filter: Optional[str] = Query("pending", alias="status"),
    ctx: OrgContext = Depends(require_access_request_admin),
    service: AccessRequestService = Depends(get_access_request_service)
):
    return await service.list(ctx.org_id, status_filter)


@router.patch(
    "/orgs/{org_ref}/access-requests",
    response_model=AccessRequestDecisionResponse,
    tags=["Access Requests"]
)
async def decide_access_request(
    request: DecideAccessRequest,
    ctx: OrgContext = Depends(require_access_request_admin),
    service: AccessRequestService = Depends(get_access_request_service)
):
    access_request, invite = await service.decide(
        ctx.org_id,
        request.request_id,
        request.action,
        decided_by=ctx.user_id,
        role=Role(request.role),
        expires_in_days=request.expires_in_days
    )
    return AccessRequestDecisionResponse(
        request=AccessRequestResponse.model_validate(access_request),
        invite=InviteResponse.model_validate(invite) if invite is not None else None
    )


organisations_router = router
