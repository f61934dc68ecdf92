"""
Maintenance Application DTOs
=============================

Pydantic models for request/response validation.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import Field, field_validator

from src.config import TicketCategory, TicketPriority, TicketStatus
from src.shared.api.schemas import ApiModel, Page

URL_PATTERN = r"^https?://\S+$"


def _strip(v: Optional[str]) -> Optional[str]:
    return v.strip() if isinstance(v, str) else v


# ========== Property DTOs ==========

class CreatePropertyRequest(ApiModel):
    """Request model for creating a property."""
    name: str = Field(..., min_length=2, max_length=100)
    address: str = Field(..., min_length=5, max_length=255)
    phone_number: Optional[str] = Field(None, min_length=7, max_length=20)

    strip_fields = field_validator("name", "address", "phone_number", mode="before")(_strip)


class UpdatePropertyRequest(ApiModel):
    """Request model for updating a property. Only sent fields change."""
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    address: Optional[str] = Field(None, min_length=5, max_length=255)
    phone_number: Optional[str] = Field(None, min_length=7, max_length=20)

    strip_fields = field_validator("name", "address", "phone_number", mode="before")(_strip)


class PropertyResponse(ApiModel):
    id: UUID
    org_id: UUID
    name: str
    address: str
    phone_number: str
    created_at: datetime


class PropertySummaryResponse(PropertyResponse):
    """Property with usage counts, as listed."""
    ticket_count: int = 0
    tenant_count: int = 0


class PropertyRef(ApiModel):
    id: UUID
    name: str
    address: str


# ========== Tenant DTOs ==========

class CreateTenantRequest(ApiModel):
    """Request model for registering a tenant on a property."""
    property_id: UUID
    phone_number: str = Field(..., min_length=7, max_length=32)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    unit_number: Optional[str] = Field(None, max_length=20)


class UpdateTenantRequest(ApiModel):
    """Request model for updating a tenant. Only sent fields change."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    unit_number: Optional[str] = Field(None, max_length=20)
    phone_number: Optional[str] = Field(None, min_length=7, max_length=20)


class AssignTenantRequest(ApiModel):
    """Request model for moving a tenant to another property."""
    property_id: UUID
    move_open_tickets: bool = True
    notify: bool = True
    notify_message: Optional[str] = Field(None, max_length=1600)


class AssignTenantResponse(ApiModel):
    success: bool = True
    moved: int = 0
    message: Optional[str] = None


class TenantResponse(ApiModel):
    id: UUID
    org_id: UUID
    property_id: UUID
    phone_number: str
    name: Optional[str] = None
    unit_number: Optional[str] = None
    created_at: datetime
    property: Optional[PropertyRef] = None


class TenantImportError(ApiModel):
    row: int
    message: str


class TenantImportResponse(ApiModel):
    total: int
    created: int
    updated: int
    skipped: int
    errors: List[TenantImportError]
    dry_run: bool


# ========== Ticket DTOs ==========

class CreateTicketRequest(ApiModel):
    """Request model for opening a ticket on behalf of a tenant."""
    description: Optional[str] = Field(None, max_length=500)
    category: TicketCategory = TicketCategory.OTHER
    priority: TicketPriority = TicketPriority.MEDIUM
    image_urls: List[str] = Field(default_factory=list, max_length=5)
    tenant_id: UUID
    property_id: UUID

    @field_validator("image_urls")
    @classmethod
    def validate_urls(cls, v: List[str]) -> List[str]:
        for url in v:
            if not re.match(URL_PATTERN, url):
                raise ValueError(f"Invalid URL: {url}")
        return v


class UpdateTicketRequest(ApiModel):
    """
    Request model for updating a ticket.

    With notify_tenant, a status change is texted to the tenant.
    """
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    description: Optional[str] = Field(None, max_length=500)
    notify_tenant: bool = False
    note: Optional[str] = Field(None, max_length=500)

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly sent, excluding notification options."""
        return {
            name: getattr(self, name)
            for name in ("status", "priority", "description")
            if name in self.model_fields_set
        }


class TicketResponse(ApiModel):
    id: UUID
    org_id: UUID
    property_id: UUID
    tenant_id: UUID
    description: Optional[str] = None
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    image_urls: List[str] = Field(default_factory=list)
    external_message_sid: Optional[str] = None
    triage_confidence: Optional[float] = None
    triage_source: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class TenantDetailResponse(TenantResponse):
    """Tenant with their tickets, newest first."""
    tickets: List[TicketResponse] = Field(default_factory=list)


TicketPage = Page[TicketResponse]
TenantPage = Page[TenantResponse]
