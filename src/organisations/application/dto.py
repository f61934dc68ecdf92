"""
Organisation Application DTOs
==============================

Pydantic models for request/response validation.
"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator

from src.config import AccessRequestStatus, NumberType, Role
from src.organisations.domain import normalize_slug
from src.shared.api.schemas import ApiModel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ========== Request DTOs ==========

class CreateOrganisationRequest(ApiModel):
    """Request model for creating an organisation."""
    name: str = Field(..., min_length=2, max_length=80)
    slug: str = Field(..., min_length=2, max_length=50)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        return normalize_slug(v)


class AssignNumberRequest(ApiModel):
    """Request model for mapping a number to a property."""
    property_id: Optional[UUID] = None
    exclusive: bool = False
    activate: bool = True


class ProvisionNumberRequest(ApiModel):
    """Request model for attaching or purchasing a number."""
    mode: Literal["attach", "purchase"]
    e164: Optional[str] = None
    sid: Optional[str] = None
    area_code: Optional[str] = Field(None, pattern=r"^\d{3}$")
    country: str = Field(default="US", min_length=2, max_length=2)
    type: NumberType = NumberType.LOCAL
    property_id: Optional[UUID] = None


class CreateInviteRequest(ApiModel):
    """Request model for inviting a staff member."""
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    role: Literal["MANAGER", "STAFF"] = "STAFF"
    expires_in_days: int = Field(default=14, ge=1, le=90)


class AcceptInviteRequest(ApiModel):
    """Request model for accepting an invite."""
    token: str = Field(..., min_length=1)


class CreateAccessRequest(ApiModel):
    """Request model for asking to join an organisation."""
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    name: Optional[str] = Field(None, max_length=120)
    message: Optional[str] = Field(None, max_length=1000)


class DecideAccessRequest(ApiModel):
    """Request model for approving or denying an access request."""
    request_id: UUID
    action: Literal["approve", "deny"]
    role: Literal["MANAGER", "STAFF"] = "STAFF"
    expires_in_days: int = Field(default=7, ge=1, le=90)


# ========== Response DTOs ==========

class OrganisationResponse(ApiModel):
    id: UUID
    name: str
    slug: str
    created_at: datetime


class MembershipResponse(ApiModel):
    org_id: UUID
    role: Role
    organisation: OrganisationResponse


class OrgNumberResponse(ApiModel):
    id: UUID
    org_id: UUID
    property_id: Optional[UUID] = None
    e164: str
    twilio_sid: Optional[str] = None
    is_active: bool
    created_at: datetime


class InviteResponse(ApiModel):
    id: UUID
    org_id: UUID
    email: str
    role: Role
    token: str
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: datetime


class AcceptInviteResponse(ApiModel):
    ok: bool = True
    org_id: UUID
    role: Role
    already_accepted: bool = False


class AccessRequestResponse(ApiModel):
    id: UUID
    org_id: UUID
    email: str
    name: Optional[str] = None
    message: Optional[str] = None
    status: AccessRequestStatus
    created_at: datetime


class AccessRequestDecisionResponse(ApiModel):
    request: AccessRequestResponse
    invite: Optional[InviteResponse] = None


class NumberListResponse(ApiModel):
    items: List[OrgNumberResponse]
