"""
Maintenance Controllers (API Routes)
=====================================

FastAPI routes for properties, tenants and tickets of the caller's active
organisation.

Controllers are thin - they delegate to application services.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import (
    ADMIN_ROLES,
    STAFF_ROLES,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from src.infrastructure.database import get_session
from src.intake.interfaces import get_sms_notifier
from src.maintenance.application import (
    AssignTenantRequest,
    AssignTenantResponse,
    CreatePropertyRequest,
    CreateTenantRequest,
    CreateTicketRequest,
    PropertyRef,
    PropertyResponse,
    PropertyService,
    PropertySummaryResponse,
    TenantDetailResponse,
    TenantImportResponse,
    TenantImportService,
    TenantPage,
    TenantResponse,
    TenantService,
    TicketPage,
    TicketResponse,
    TicketService,
    UpdatePropertyRequest,
    UpdateTenantRequest,
    UpdateTicketRequest,
)
from src.maintenance.infrastructure import (
    SQLAlchemyConversationRepository,
    SQLAlchemyPropertyRepository,
    SQLAlchemyTenantRepository,
    SQLAlchemyTicketRepository,
)
from src.shared.api.auth import OrgContext, require_session_org_role
from src.shared.api.dependencies import rate_limit
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api")

any_member = require_session_org_role()
staff = require_session_org_role(*STAFF_ROLES)
admin = require_session_org_role(*ADMIN_ROLES)

property_create_limit = rate_limit("prop-create", limit=2, window_seconds=60, per_client=True)
property_update_limit = rate_limit("prop-patch:{property_id}")
tenant_create_limit = rate_limit("tenant-create", limit=10, window_seconds=60, per_client=True)
tenant_assign_limit = rate_limit("tenant-assign:{tenant_id}", limit=10, window_seconds=60)
ticket_create_limit = rate_limit("ticket-create", limit=5, window_seconds=60, per_client=True)
ticket_update_limit = rate_limit("ticket-patch:{ticket_id}")


# ========== Example payloads for Swagger ==========

TICKET_RESPONSE_EXAMPLE = {
    "id": "5f0c7a1e-2b1d-4c4e-9a55-0f8e7d6c5b4a",
    "orgId": "0b6f6c2e-8d57-4d8e-b9a8-3c2f1e0d9c8b",
    "propertyId": "c1d2e3f4-a5b6-4c7d-8e9f-0a1b2c3d4e5f",
    "tenantId": "9e8d7c6b-5a4f-4e3d-2c1b-0a9f8e7d6c5b",
    "description": "Water leaking under the kitchen sink",
    "category": "PLUMBING",
    "priority": "HIGH",
    "status": "OPEN",
    "imageUrls": [],
    "externalMessageSid": "SM0123456789abcdef0123456789abcdef",
    "triageConfidence": 0.8,
    "triageSource": "keyword",
    "createdAt": "2024-01-15T10:00:00Z",
    "updatedAt": None
}


# ========== Dependencies ==========

async def get_property_service(
    session: AsyncSession = Depends(get_session)
) -> PropertyService:
    return PropertyService(SQLAlchemyPropertyRepository(session))


async def get_tenant_service(
    session: AsyncSession = Depends(get_session),
    notifier=Depends(get_sms_notifier)
) -> TenantService:
    return TenantService(
        tenants=SQLAlchemyTenantRepository(session),
        properties=SQLAlchemyPropertyRepository(session),
        conversations=SQLAlchemyConversationRepository(session),
        tickets=SQLAlchemyTicketRepository(session),
        notifier=notifier
    )


async def get_ticket_service(
    session: AsyncSession = Depends(get_session),
    notifier=Depends(get_sms_notifier)
) -> TicketService:
    return TicketService(
        tickets=SQLAlchemyTicketRepository(session),
        tenants=SQLAlchemyTenantRepository(session),
        properties=SQLAlchemyPropertyRepository(session),
        notifier=notifier
    )


async def get_import_service(
    session: AsyncSession = Depends(get_session)
) -> TenantImportService:
    return TenantImportService(
        tenants=SQLAlchemyTenantRepository(session),
        properties=SQLAlchemyPropertyRepository(session),
        conversations=SQLAlchemyConversationRepository(session)
    )


def _tenant_response(tenant, prop, response_class=TenantResponse):
    response = response_class.model_validate(tenant)
    if prop is not None:
        response.property = PropertyRef.model_validate(prop)
    return response


# ========== Properties ==========

@router.get("/properties", response_model=List[PropertySummaryResponse], tags=["Properties"])
async def list_properties(
    search: Optional[str] = Query(None, max_length=120),
    ctx: OrgContext = Depends(any_member),
    service: PropertyService = Depends(get_property_service)
):
    rows = await service.list(ctx.org_id, search)
    results = []
    for prop, ticket_count, tenant_count in rows:
        summary = PropertySummaryResponse.model_validate(prop)
        summary.ticket_count = ticket_count
        summary.tenant_count = tenant_count
        results.append(summary)
    return results


@router.post(
    "/properties",
    response_model=PropertyResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Properties"]
)
async def create_property(
    request: CreatePropertyRequest,
    ctx: OrgContext = Depends(admin),
    _: None = Depends(property_create_limit),
    service: PropertyService = Depends(get_property_service)
):
    return await service.create(ctx.org_id, request.name, request.address, request.phone_number)


@router.get("/properties/{property_id}", response_model=PropertyResponse, tags=["Properties"])
async def get_property(
    property_id: str,
    ctx: OrgContext = Depends(any_member),
    service: PropertyService = Depends(get_property_service)
):
    return await service.get(ctx.org_id, property_id)


@router.patch("/properties/{property_id}", response_model=PropertyResponse, tags=["Properties"])
async def update_property(
    property_id: str,
    request: UpdatePropertyRequest,
    ctx: OrgContext = Depends(admin),
    _: None = Depends(property_update_limit),
    service: PropertyService = Depends(get_property_service)
):
    changes = request.model_dump(include=request.model_fields_set, exclude_none=True)
    return await service.update(ctx.org_id, property_id, changes)


@router.delete(
    "/properties/{property_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Properties"]
)
async def delete_property(
    property_id: str,
    ctx: OrgContext = Depends(admin),
    service: PropertyService = Depends(get_property_service)
):
    await service.delete(ctx.org_id, property_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/properties/{property_id}/tenants/import",
    response_model=TenantImportResponse,
    tags=["Tenants"],
    summary="Import tenants from CSV or XLSX",
    description="""
    Upload a spreadsheet with a header row. Recognised columns (case and
    punctuation are ignored):

    - phone: `phone`, `phone number`, `tel`, `mobile`
    - name: `name`, `tenant`
    - unit: `unit`, `unit number`, `apartment`, `apt`

    Rows are upserted on (phone, property). With `dryRun` nothing is written.
    """
)
async def import_tenants(
    property_id: str,
    file: UploadFile = File(...),
    dry_run: bool = Form(False, alias="dryRun"),
    ctx: OrgContext = Depends(staff),
    service: TenantImportService = Depends(get_import_service)
):
    content = await file.read()
    report = await service.run(ctx.org_id, property_id, file.filename or "", content, dry_run)
    return TenantImportResponse(
        total=report.total,
        created=report.created,
        updated=report.updated,
        skipped=report.skipped,
        errors=report.errors,
        dry_run=report.dry_run
    )


# ========== Tenants ==========

@router.get("/tenants", response_model=TenantPage, tags=["Tenants"])
async def list_tenants(
    q: Optional[str] = Query(None, max_length=120),
    property_id: Optional[UUID] = Query(None, alias="propertyId"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
    ctx: OrgContext = Depends(any_member),
    service: TenantService = Depends(get_tenant_service)
):
    total, rows = await service.list(ctx.org_id, q, property_id, page, page_size)
    return TenantPage(
        total=total,
        items=[_tenant_response(tenant, prop) for tenant, prop in rows],
        page=page,
        page_size=page_size
    )


@router.post(
    "/tenants",
    response_model=TenantResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Tenants"]
)
async def create_tenant(
    request: CreateTenantRequest,
    ctx: OrgContext = Depends(staff),
    _: None = Depends(tenant_create_limit),
    service: TenantService = Depends(get_tenant_service)
):
    return await service.create(
        ctx.org_id,
        request.property_id,
        request.phone_number,
        name=request.name,
        unit_number=request.unit_number
    )


@router.get("/tenants/{tenant_id}", response_model=TenantDetailResponse, tags=["Tenants"])
async def get_tenant(
    tenant_id: str,
    ctx: OrgContext = Depends(any_member),
    service: TenantService = Depends(get_tenant_service)
):
    tenant, prop, tickets = await service.get(ctx.org_id, tenant_id)
    response = _tenant_response(tenant, prop, TenantDetailResponse)
    response.tickets = [TicketResponse.model_validate(t) for t in tickets]
    return response


@router.patch("/tenants/{tenant_id}", response_model=TenantResponse, tags=["Tenants"])
async def update_tenant(
    tenant_id: str,
    request: UpdateTenantRequest,
    ctx: OrgContext = Depends(staff),
    service: TenantService = Depends(get_tenant_service)
):
    changes = request.model_dump(include=request.model_fields_set)
    return await service.update(ctx.org_id, tenant_id, changes)


@router.delete(
    "/tenants/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Tenants"]
)
async def delete_tenant(
    tenant_id: str,
    ctx: OrgContext = Depends(admin),
    service: TenantService = Depends(get_tenant_service)
):
    await service.delete(ctx.org_id, tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/tenants/{tenant_id}/assign",
    response_model=AssignTenantResponse,
    tags=["Tenants"],
    summary="Move a tenant to another property"
)
async def assign_tenant(
    tenant_id: str,
    request: AssignTenantRequest,
    ctx: OrgContext = Depends(staff),
    _: None = Depends(tenant_assign_limit),
    service: TenantService = Depends(get_tenant_service)
):
    moved, message = await service.assign(
        ctx.org_id,
        tenant_id,
        request.property_id,
        move_open_tickets=request.move_open_tickets,
        notify=request.notify,
        notify_message=request.notify_message
    )
    return AssignTenantResponse(success=True, moved=moved, message=message)


# ========== Tickets ==========

@router.get("/tickets", response_model=TicketPage, tags=["Tickets"])
async def list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    priority: Optional[TicketPriority] = Query(None),
    category: Optional[TicketCategory] = Query(None),
    property_id: Optional[UUID] = Query(None, alias="propertyId"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200, alias="pageSize"),
    ctx: OrgContext = Depends(any_member),
    service: TicketService = Depends(get_ticket_service)
):
    total, tickets = await service.list(
        ctx.org_id,
        status=status_filter,
        priority=priority,
        category=category,
        property_id=property_id,
        page=page,
        page_size=page_size
    )
    return TicketPage(
        total=total,
        items=[TicketResponse.model_validate(t) for t in tickets],
        page=page,
        page_size=page_size
    )


@router.post(
    "/tickets",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Tickets"],
    responses={201: {"content": {"application/json": {"example": TICKET_RESPONSE_EXAMPLE}}}}
)
async def create_ticket(
    request: CreateTicketRequest,
    ctx: OrgContext = Depends(admin),
    _: None = Depends(ticket_create_limit),
    service: TicketService = Depends(get_ticket_service)
):
    return await service.create(
        ctx.org_id,
        tenant_id=request.tenant_id,
        property_id=request.property_id,
        description=request.description,
        category=request.category,
        priority=request.priority,
        image_urls=request.image_urls
    )


@router.get("/tickets/{ticket_id}", response_model=TicketResponse, tags=["Tickets"])
async def get_ticket(
    ticket_id: str,
    ctx: OrgContext = Depends(any_member),
    service: TicketService = Depends(get_ticket_service)
):
    return await service.get(ctx.org_id, ticket_id)


@router.patch(
    "/tickets/{ticket_id}",
    response_model=TicketResponse,
    tags=["Tickets"],
    summary="Update a ticket",
    description="""
    Change status, priority or description. With `notifyTenant`, a status
    change is texted to the tenant (the completion message when the new
    status is `COMPLETED`). `note` is appended to that SMS.
    """
)
async def update_ticket(
    ticket_id: str,
    request: UpdateTicketRequest,
    ctx: OrgContext = Depends(staff),
    _: None = Depends(ticket_update_limit),
    service: TicketService = Depends(get_ticket_service)
):
    return await service.update(
        ctx.org_id,
        ticket_id,
        request.changes(),
        notify_tenant=request.notify_tenant,
        note=request.note
    )


@router.delete(
    "/tickets/{ticket_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Tickets"]
)
async def delete_ticket(
    ticket_id: str,
    ctx: OrgContext = Depends(admin),
    service: TicketService = Depends(get_ticket_service)
):
    await service.delete(ctx.org_id, ticket_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


maintenance_router = router
