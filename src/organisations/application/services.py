"""
Organisation Application Services
==================================

Application services for organisations, memberships, phone numbers,
invites and access requests.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple
from uuid import UUID

from src.config import AccessRequestStatus, NumberType, Role, WEBHOOK_PATH, settings
from src.core import (
    ConfigurationException,
    ConflictException,
    GoneException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ValidationException,
)
from src.organisations.domain import (
    ACCESS_REQUEST_STATUS_FILTERS,
    invite_expiry,
    is_expired,
    is_public_base_url,
    new_invite_token,
)
from src.shared.domain import normalize_us_phone
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IOrganisationRepository(ABC):
    """Interface for organisation data access."""

    @abstractmethod
    async def get_by_id(self, org_id: Any) -> Optional[Any]:
        """Get organisation by id."""

    @abstractmethod
    async def get_by_slug(self, slug: str) -> Optional[Any]:
        """Get organisation by slug."""

    @abstractmethod
    async def create(self, name: str, slug: str) -> Any:
        """Create organisation. Raises ConflictException on duplicate slug."""


class IMembershipRepository(ABC):
    """Interface for membership data access."""

    @abstractmethod
    async def get(self, user_id: str, org_id: UUID) -> Optional[Any]:
        """Get a user's membership in an organisation."""

    @abstractmethod
    async def upsert(self, user_id: str, org_id: UUID, role: Role) -> Any:
        """Create or update a membership role."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[Tuple[Any, Any]]:
        """List (membership, organisation) pairs for a user."""


class IOrgNumberRepository(ABC):
    """Interface for organisation phone number data access."""

    @abstractmethod
    async def list_for_org(self, org_id: UUID) -> List[Any]:
        """List numbers, newest first."""

    @abstractmethod
    async def get(self, org_id: UUID, number_id: str) -> Optional[Any]:
        """Get a number within an organisation."""

    @abstractmethod
    async def get_by_e164(self, e164: str) -> Optional[Any]:
        """Get a number by E.164 regardless of organisation."""

    @abstractmethod
    async def get_active_by_e164(self, e164: str) -> Optional[Any]:
        """Get an active number by E.164."""

    @abstractmethod
    async def upsert(
        self,
        org_id: UUID,
        e164: str,
        twilio_sid: Optional[str],
        property_id: Optional[UUID]
    ) -> Any:
        """Create or update a number as active."""

    @abstractmethod
    async def save(self, number: Any) -> Any:
        """Persist changes to a number."""

    @abstractmethod
    async def deactivate_others(
        self,
        org_id: UUID,
        keep_id: UUID,
        property_id: Optional[UUID],
        org_wide: bool = False
    ) -> int:
        """Deactivate numbers on property_id (or all org numbers) except keep_id."""

    @abstractmethod
    async def delete(self, number: Any) -> None:
        """Delete a number."""

    @abstractmethod
    async def find_sender(self, org_id: UUID, property_id: Optional[UUID]) -> Optional[str]:
        """Newest active property-scoped number, else newest active org-wide number."""


class IInviteRepository(ABC):
    """Interface for invite data access."""

    @abstractmethod
    async def list_pending(self, org_id: UUID) -> List[Any]:
        """List invites not yet accepted."""

    @abstractmethod
    async def create(
        self,
        org_id: UUID,
        email: str,
        role: Role,
        token: str,
        expires_at: datetime,
        invited_by: Optional[str]
    ) -> Any:
        """Create invite."""

    @abstractmethod
    async def get(self, org_id: UUID, invite_id: str) -> Optional[Any]:
        """Get invite within an organisation."""

    @abstractmethod
    async def get_by_token(self, token: str) -> Optional[Any]:
        """Get invite by token."""

    @abstractmethod
    async def save(self, invite: Any) -> Any:
        """Persist changes to an invite."""

    @abstractmethod
    async def delete(self, invite: Any) -> None:
        """Delete invite."""


class IAccessRequestRepository(ABC):
    """Interface for access request data access."""

    @abstractmethod
    async def find_open(self, org_id: UUID, email: str) -> Optional[Any]:
        """Get the open request for an email, if any."""

    @abstractmethod
    async def create(
        self,
        org_id: UUID,
        email: str,
        name: Optional[str],
        message: Optional[str]
    ) -> Any:
        """Create access request."""

    @abstractmethod
    async def list(self, org_id: UUID, status: Optional[AccessRequestStatus]) -> List[Any]:
        """List requests, newest first."""

    @abstractmethod
    async def get(self, org_id: UUID, request_id: UUID) -> Optional[Any]:
        """Get a request within an organisation."""

    @abstractmethod
    async def save(self, access_request: Any) -> Any:
        """Persist changes to a request."""


# ========== Application Services ==========

class OrganisationService:
    """Organisation creation and membership listing."""

    def __init__(self, orgs: IOrganisationRepository, memberships: IMembershipRepository):
        self._orgs = orgs
        self._memberships = memberships

    async def create(self, user_id: str, name: str, slug: str) -> Any:
        """Create an organisation owned by user_id."""
        if await self._orgs.get_by_slug(slug):
            raise ConflictException("Slug already in use")

        org = await self._orgs.create(name=name, slug=slug)
        await self._memberships.upsert(user_id, org.id, Role.OWNER)

        logger.info("Organisation created", extra={"org_id": str(org.id), "slug": slug})
        return org

    async def list_memberships(self, user_id: str) -> List[Tuple[Any, Any]]:
        return await self._memberships.list_for_user(user_id)

    async def resolve(self, slug_or_id: str) -> Any:
        """Find an organisation by slug, falling back to id."""
        org = await self._orgs.get_by_slug(slug_or_id.lower())
        if org is None:
            org = await self._orgs.get_by_id(slug_or_id)
        if org is None:
            raise ResourceNotFoundException("Organisation", slug_or_id)
        return org


class NumberService:
    """
    Management of the Twilio numbers an organisation receives SMS on.

    Routing picks the property from the number a tenant texted, so a
    property should normally have one active number.
    """

    def __init__(
        self,
        numbers: IOrgNumberRepository,
        properties: Any,
        telephony: Optional[Any] = None,
        public_url: Optional[str] = None
    ):
        self._numbers = numbers
        self._properties = properties
        self._telephony = telephony
        self._public_url = public_url if public_url is not None else settings.public_url

    async def list(self, org_id: UUID) -> List[Any]:
        return await self._numbers.list_for_org(org_id)

    async def _get(self, org_id: UUID, number_id: str) -> Any:
        number = await self._numbers.get(org_id, number_id)
        if number is None:
            raise ResourceNotFoundException("Number", number_id)
        return number

    async def _check_property(self, org_id: UUID, property_id: Optional[UUID]) -> None:
        if property_id is None:
            return
        if await self._properties.get(org_id, property_id) is None:
            raise ValidationException("Property does not belong to this organisation")

    async def assign(
        self,
        org_id: UUID,
        number_id: str,
        property_id: Optional[UUID],
        exclusive: bool = False,
        activate: bool = True
    ) -> Any:
        """Map a number to a property, or to none for org-wide routing."""
        number = await self._get(org_id, number_id)
        await self._check_property(org_id, property_id)

        number.property_id = property_id
        if activate:
            number.is_active = True
        await self._numbers.save(number)

        if exclusive and property_id is not None:
            await self._numbers.deactivate_others(org_id, number.id, property_id)

        return number

    async def activate(self, org_id: UUID, number_id: str, exclusive: bool = False) -> Any:
        """
        Activate a number.

        With exclusive, other numbers on the same property are deactivated,
        or every other org number when this one is unmapped.
        """
        number = await self._get(org_id, number_id)
        number.is_active = True
        await self._numbers.save(number)

        if exclusive:
            await self._numbers.deactivate_others(
                org_id,
                number.id,
                number.property_id,
                org_wide=number.property_id is None
            )
        return number

    async def remove(self, org_id: UUID, number_id: str, release: bool = False) -> None:
        """Deactivate a number, or release it at Twilio and delete it."""
        number = await self._get(org_id, number_id)

        if not release:
            number.is_active = False
            await self._numbers.save(number)
            return

        if number.twilio_sid:
            telephony = self._require_telephony()
            await telephony.release_number(number.twilio_sid)

        await self._numbers.delete(number)
        logger.info("Number released", extra={"org_id": str(org_id), "number_id": str(number.id)})

    async def provision(
        self,
        org_id: UUID,
        mode: str,
        e164: Optional[str] = None,
        sid: Optional[str] = None,
        area_code: Optional[str] = None,
        country: str = "US",
        number_type: NumberType = NumberType.LOCAL,
        property_id: Optional[UUID] = None
    ) -> Any:
        """
        Attach an owned Twilio number or purchase a new one.

        Either way the number's SMS webhook is pointed at this service.
        """
        telephony = self._require_telephony()
        if not is_public_base_url(self._public_url):
            raise ValidationException("PUBLIC_URL must be a public URL to provision numbers")

        await self._check_property(org_id, property_id)
        sms_url = self._public_url.rstrip("/") + WEBHOOK_PATH

        if mode == "attach":
            normalized = normalize_us_phone(e164) if e164 else None
            if not sid and not normalized:
                raise ValidationException("Provide the number's SID or E.164 to attach")

            provisioned = await telephony.find_incoming_number(e164=normalized, sid=sid)
            if provisioned is None:
                raise ResourceNotFoundException("Twilio number", sid or normalized)
            await telephony.set_sms_webhook(provisioned.sid, sms_url)
        else:
            provisioned = await telephony.purchase_number(
                sms_url=sms_url,
                country=country.upper(),
                number_type=number_type,
                area_code=area_code
            )

        existing = await self._numbers.get_by_e164(provisioned.e164)
        if existing is not None and existing.org_id != org_id:
            raise ConflictException("Number is attached to another organisation")

        number = await self._numbers.upsert(
            org_id=org_id,
            e164=provisioned.e164,
            twilio_sid=provisioned.sid,
            property_id=property_id
        )

        logger.info(
            "Number provisioned",
            extra={"org_id": str(org_id), "mode": mode, "number_sid": provisioned.sid}
        )
        return number

    def _require_telephony(self) -> Any:
        if self._telephony is None:
            raise ConfigurationException("Twilio is not configured")
        return self._telephony


class InviteService:
    """Staff invitations."""

    def __init__(self, invites: IInviteRepository, memberships: IMembershipRepository):
        self._invites = invites
        self._memberships = memberships

    async def list_pending(self, org_id: UUID) -> List[Any]:
        return await self._invites.list_pending(org_id)

    async def create(
        self,
        org_id: UUID,
        email: str,
        role: Role = Role.STAFF,
        expires_in_days: int = 14,
        invited_by: Optional[str] = None
    ) -> Any:
        invite = await self._invites.create(
            org_id=org_id,
            email=email.strip().lower(),
            role=Role(role),
            token=new_invite_token(),
            expires_at=invite_expiry(expires_in_days),
            invited_by=invited_by
        )
        logger.info("Invite created", extra={"org_id": str(org_id), "invite_id": str(invite.id)})
        return invite

    async def delete(self, org_id: UUID, invite_id: str) -> None:
        invite = await self._invites.get(org_id, invite_id)
        if invite is None:
            raise ResourceNotFoundException("Invite", invite_id)
        await self._invites.delete(invite)

    async def accept(self, token: str, user_id: str, email: Optional[str]) -> Tuple[Any, bool]:
        """
        Accept an invite on behalf of the caller.

        Returns:
            (invite, already_accepted)
        """
        invite = await self._invites.get_by_token(token)
        if invite is None:
            raise ResourceNotFoundException("Invite")

        if is_expired(invite.expires_at):
            raise GoneException("Invite has expired")

        if invite.accepted_at is not None:
            return invite, True

        if not email or email.strip().lower() != invite.email.lower():
            raise PermissionDeniedException("Invite was sent to a different email address")

        await self._memberships.upsert(user_id, invite.org_id, Role(invite.role))
        invite.accepted_at = datetime.now(timezone.utc)
        await self._invites.save(invite)

        logger.info(
            "Invite accepted",
            extra={"org_id": str(invite.org_id), "invite_id": str(invite.id)}
        )
        return invite, False


class AccessRequestService:
    """Requests to join an organisation, decided by its managers."""

    def __init__(self, requests: IAccessRequestRepository, invites: InviteService):
        self._requests = requests
        self._invites = invites

    async def submit(
        self,
        org_id: UUID,
        email: str,
        name: Optional[str] = None,
        message: Optional[str] = None
    ) -> Any:
        email = email.strip().lower()
        if await self._requests.find_open(org_id, email):
            raise ConflictException("A request for this email is already pending")
        return await self._requests.create(org_id, email, name, message)

    async def list(self, org_id: UUID, status_filter: Optional[str] = "pending") -> List[Any]:
        key = (status_filter or "pending").lower()
        if key not in ACCESS_REQUEST_STATUS_FILTERS:
            raise ValidationException(f"Unknown status filter: {status_filter}")
        return await self._requests.list(org_id, ACCESS_REQUEST_STATUS_FILTERS[key])

    async def decide(
        self,
        org_id: UUID,
        request_id: UUID,
        action: str,
        decided_by: str,
        role: Role = Role.STAFF,
        expires_in_days: int = 7
    ) -> Tuple[Any, Optional[Any]]:
        """
        Approve (invite) or deny an open request.

        Returns:
            (access_request, invite or None)
        """
        access_request = await self._requests.get(org_id, request_id)
        if access_request is None:
            raise ResourceNotFoundException("Access request", str(request_id))
        if access_request.status != AccessRequestStatus.OPEN.value:
            raise ConflictException("Request has already been decided")

        invite = None
        if action == "approve":
            invite = await self._invites.create(
                org_id=org_id,
                email=access_request.email,
                role=role,
                expires_in_days=expires_in_days,
                invited_by=decided_by
            )
            access_request.status = AccessRequestStatus.INVITED.value
        else:
            access_request.status = AccessRequestStatus.DISMISSED.value

        access_request.updated_at = datetime.now(timezone.utc)
        await self._requests.save(access_request)
        return access_request, invite
