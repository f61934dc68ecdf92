"""
Maintenance Application Layer
==============================

Contains:
- Services: property, tenant, ticket and tenant import use cases
- DTOs: Data transfer objects for API serialization
- Repository interfaces
"""

from src.maintenance.application.dto import (
    CreatePropertyRequest,
    UpdatePropertyRequest,
    PropertyResponse,
    PropertySummaryResponse,
    PropertyRef,
    CreateTenantRequest,
    UpdateTenantRequest,
    AssignTenantRequest,
    AssignTenantResponse,
    TenantResponse,
    TenantDetailResponse,
    TenantImportResponse,
    CreateTicketRequest,
    UpdateTicketRequest,
    TicketResponse,
    TicketPage,
    TenantPage,
)
from src.maintenance.application.services import (
    PropertyService,
    TenantService,
    TicketService,
    TenantImportService,
    IPropertyRepository,
    ITenantRepository,
    IConversationRepository,
    ITicketRepository,
    ITenantNotifier,
)

__all__ = [
    "CreatePropertyRequest",
    "UpdatePropertyRequest",
    "PropertyResponse",
    "PropertySummaryResponse",
    "PropertyRef",
    "CreateTenantRequest",
    "UpdateTenantRequest",
    "AssignTenantRequest",
    "AssignTenantResponse",
    "TenantResponse",
    "TenantDetailResponse",
    "TenantImportResponse",
    "CreateTicketRequest",
    "UpdateTicketRequest",
    "TicketResponse",
    "TicketPage",
    "TenantPage",
    "PropertyService",
    "TenantService",
    "TicketService",
    "TenantImportService",
    "IPropertyRepository",
    "ITenantRepository",
    "IConversationRepository",
    "ITicketRepository",
    "ITenantNotifier",
]
