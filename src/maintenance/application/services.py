"""
Maintenance Application Services
=================================

Application services for properties, tenants and tickets.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import io
import zipfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

import pandas as pd

from src.config import (
    ConversationState,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from src.core import ConflictException, ResourceNotFoundException, ValidationException
from src.maintenance.domain import (
    MIN_IMPORT_PHONE_LENGTH,
    ImportReport,
    ImportRow,
    synthetic_property_phone,
)
from src.shared.domain import messages, normalize_us_phone
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IPropertyRepository(ABC):
    """Interface for property data access."""

    @abstractmethod
    async def get(self, org_id: UUID, property_id: Any) -> Optional[Any]:
        """Get a property within an organisation."""

    @abstractmethod
    async def get_by_phone(self, phone_number: str) -> Optional[Any]:
        """Get a property by its phone number, across organisations."""

    @abstractmethod
    async def list_with_counts(
        self,
        org_id: UUID,
        search: Optional[str] = None
    ) -> List[Tuple[Any, int, int]]:
        """List (property, ticket_count, tenant_count), newest first."""

    @abstractmethod
    async def create(self, org_id: UUID, name: str, address: str, phone_number: str) -> Any:
        """Create property."""

    @abstractmethod
    async def save(self, property_model: Any) -> Any:
        """Persist changes to a property."""

    @abstractmethod
    async def delete(self, property_model: Any) -> None:
        """Delete property and everything on it."""

    @abstractmethod
    async def get_or_create_unassigned(self, org_id: UUID) -> Any:
        """The organisation's inbox for tenants without a known property."""


class ITenantRepository(ABC):
    """Interface for tenant data access."""

    @abstractmethod
    async def get(self, org_id: UUID, tenant_id: Any) -> Optional[Any]:
        """Get a tenant within an organisation."""

    @abstractmethod
    async def find_in_org_by_phones(self, org_id: UUID, phones: Sequence[str]) -> Optional[Any]:
        """Oldest tenant of the organisation stored under any of phones."""

    @abstractmethod
    async def get_by_phone_and_property(self, phone_number: str, property_id: UUID) -> Optional[Any]:
        """Get the tenant registered with phone_number on property_id."""

    @abstractmethod
    async def list(
        self,
        org_id: UUID,
        q: Optional[str] = None,
        property_id: Optional[UUID] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[int, List[Tuple[Any, Any]]]:
        """Return (total, [(tenant, property)]), newest first."""

    @abstractmethod
    async def create(
        self,
        org_id: UUID,
        property_id: UUID,
        phone_number: str,
        name: Optional[str] = None,
        unit_number: Optional[str] = None
    ) -> Any:
        """Create tenant."""

    @abstractmethod
    async def save(self, tenant: Any) -> Any:
        """Persist changes to a tenant."""

    @abstractmethod
    async def delete(self, tenant: Any) -> None:
        """Delete tenant."""

    @abstractmethod
    async def count_tickets(self, tenant_id: UUID) -> int:
        """Number of tickets filed by a tenant."""


class IConversationRepository(ABC):
    """Interface for SMS conversation data access."""

    @abstractmethod
    async def upsert(
        self,
        org_id: UUID,
        phone_number: str,
        state: ConversationState,
        property_id: Optional[UUID],
        tenant_id: Optional[UUID]
    ) -> Any:
        """Create or update the conversation for (org_id, phone_number)."""


class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, org_id: UUID, ticket_id: Any) -> Optional[Any]:
        """Get a ticket within an organisation."""

    @abstractmethod
    async def get_by_message_sid(self, message_sid: str) -> Optional[Any]:
        """Get the ticket created from an inbound message."""

    @abstractmethod
    async def list(
        self,
        org_id: UUID,
        filters: Dict[str, Any],
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[int, List[Any]]:
        """Return (total, tickets), newest first."""

    @abstractmethod
    async def list_for_tenant(self, tenant_id: UUID) -> List[Any]:
        """A tenant's tickets, newest first."""

    @abstractmethod
    async def create(self, **fields: Any) -> Any:
        """Create ticket."""

    @abstractmethod
    async def save(self, ticket: Any) -> Any:
        """Persist changes to a ticket."""

    @abstractmethod
    async def delete(self, ticket: Any) -> None:
        """Delete ticket."""

    @abstractmethod
    async def move_open_tickets(
        self,
        tenant_id: UUID,
        from_property_id: UUID,
        to_property_id: UUID
    ) -> int:
        """Re-home a tenant's OPEN and IN_PROGRESS tickets. Returns the count."""


class ITenantNotifier(ABC):
    """Interface for texting a tenant."""

    @abstractmethod
    async def deliver(
        self,
        to: str,
        body: str,
        org_id: Optional[UUID] = None,
        property_id: Optional[UUID] = None,
        from_: Optional[str] = None
    ) -> bool:
        """Send an SMS. Failures are logged and reported as False."""


# ========== Application Services ==========

class PropertyService:
    """Property management."""

    def __init__(self, properties: IPropertyRepository):
        self._properties = properties

    async def list(self, org_id: UUID, search: Optional[str] = None) -> List[Tuple[Any, int, int]]:
        return await self._properties.list_with_counts(org_id, (search or "").strip() or None)

    async def get(self, org_id: UUID, property_id: Any) -> Any:
        prop = await self._properties.get(org_id, property_id)
        if prop is None:
            raise ResourceNotFoundException("Property", str(property_id))
        return prop

    async def _check_phone(self, phone_number: str, exclude_id: Optional[UUID] = None) -> None:
        existing = await self._properties.get_by_phone(phone_number)
        if existing is not None and existing.id != exclude_id:
            raise ConflictException("Phone number already in use")

    async def create(
        self,
        org_id: UUID,
        name: str,
        address: str,
        phone_number: Optional[str] = None
    ) -> Any:
        if phone_number:
            phone_number = normalize_us_phone(phone_number) or phone_number
        else:
            phone_number = synthetic_property_phone(org_id)

        await self._check_phone(phone_number)
        prop = await self._properties.create(org_id, name, address, phone_number)

        logger.info("Property created", extra={"org_id": str(org_id), "property_id": str(prop.id)})
        return prop

    async def update(self, org_id: UUID, property_id: Any, changes: Dict[str, Any]) -> Any:
        if not changes:
            raise ValidationException("No fields to update")

        prop = await self.get(org_id, property_id)
        if changes.get("phone_number"):
            phone_number = normalize_us_phone(changes["phone_number"]) or changes["phone_number"]
            await self._check_phone(phone_number, exclude_id=prop.id)
            prop.phone_number = phone_number
        if changes.get("name"):
            prop.name = changes["name"]
        if changes.get("address"):
            prop.address = changes["address"]

        return await self._properties.save(prop)

    async def delete(self, org_id: UUID, property_id: Any) -> None:
        prop = await self.get(org_id, property_id)
        await self._properties.delete(prop)
        logger.info("Property deleted", extra={"org_id": str(org_id), "property_id": str(prop.id)})


class TenantService:
    """Tenant registration, editing and reassignment."""

    def __init__(
        self,
        tenants: ITenantRepository,
        properties: IPropertyRepository,
        conversations: IConversationRepository,
        tickets: ITicketRepository,
        notifier: Optional[ITenantNotifier] = None
    ):
        self._tenants = tenants
        self._properties = properties
        self._conversations = conversations
        self._tickets = tickets
        self._notifier = notifier

    async def _get_property(self, org_id: UUID, property_id: Any) -> Any:
        prop = await self._properties.get(org_id, property_id)
        if prop is None:
            raise ResourceNotFoundException("Property", str(property_id))
        return prop

    async def _get_tenant(self, org_id: UUID, tenant_id: Any) -> Any:
        tenant = await self._tenants.get(org_id, tenant_id)
        if tenant is None:
            raise ResourceNotFoundException("Tenant", str(tenant_id))
        return tenant

    async def list(
        self,
        org_id: UUID,
        q: Optional[str] = None,
        property_id: Optional[UUID] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[int, List[Tuple[Any, Any]]]:
        return await self._tenants.list(
            org_id,
            q=(q or "").strip() or None,
            property_id=property_id,
            page=page,
            page_size=page_size
        )

    async def get(self, org_id: UUID, tenant_id: Any) -> Tuple[Any, Any, List[Any]]:
        """Returns (tenant, property, tickets)."""
        tenant = await self._get_tenant(org_id, tenant_id)
        prop = await self._properties.get(org_id, tenant.property_id)
        tickets = await self._tickets.list_for_tenant(tenant.id)
        return tenant, prop, tickets

    async def create(
        self,
        org_id: UUID,
        property_id: UUID,
        phone_number: str,
        name: Optional[str] = None,
        unit_number: Optional[str] = None
    ) -> Any:
        """Register a tenant, updating the existing record for the same phone and property."""
        phone = normalize_us_phone(phone_number)
        if not phone:
            raise ValidationException("Invalid phone number")

        prop = await self._get_property(org_id, property_id)

        tenant = await self._tenants.get_by_phone_and_property(phone, prop.id)
        if tenant is None:
            tenant = await self._tenants.create(
                org_id=org_id,
                property_id=prop.id,
                phone_number=phone,
                name=name,
                unit_number=unit_number
            )
        else:
            if name:
                tenant.name = name
            if unit_number:
                tenant.unit_number = unit_number
            await self._tenants.save(tenant)

        await self._conversations.upsert(
            org_id, phone, ConversationState.IDLE, prop.id, tenant.id
        )
        return tenant

    async def update(self, org_id: UUID, tenant_id: Any, changes: Dict[str, Any]) -> Any:
        if not changes:
            raise ValidationException("No fields to update")

        tenant = await self._get_tenant(org_id, tenant_id)

        if "phone_number" in changes and changes["phone_number"]:
            phone = normalize_us_phone(changes["phone_number"])
            if not phone:
                raise ValidationException("Invalid phone number")
            clash = await self._tenants.get_by_phone_and_property(phone, tenant.property_id)
            if clash is not None and clash.id != tenant.id:
                raise ConflictException("Phone number already registered for this property")
            tenant.phone_number = phone
        if "name" in changes:
            tenant.name = changes["name"]
        if "unit_number" in changes:
            tenant.unit_number = changes["unit_number"]

        return await self._tenants.save(tenant)

    async def delete(self, org_id: UUID, tenant_id: Any) -> None:
        tenant = await self._get_tenant(org_id, tenant_id)
        if await self._tenants.count_tickets(tenant.id) > 0:
            raise ConflictException("Tenant has tickets and cannot be deleted")
        await self._tenants.delete(tenant)

    async def assign(
        self,
        org_id: UUID,
        tenant_id: Any,
        property_id: UUID,
        move_open_tickets: bool = True,
        notify: bool = True,
        notify_message: Optional[str] = None
    ) -> Tuple[int, Optional[str]]:
        """
        Move a tenant to another property of the same organisation.

        Returns:
            (moved ticket count, informational message or None)
        """
        tenant = await self._get_tenant(org_id, tenant_id)
        target = await self._get_property(org_id, property_id)

        if tenant.property_id == target.id:
            return 0, "Tenant already in property"

        clash = await self._tenants.get_by_phone_and_property(tenant.phone_number, target.id)
        if clash is not None:
            raise ConflictException("Phone number already registered for the target property")

        moved = 0
        if move_open_tickets:
            moved = await self._tickets.move_open_tickets(tenant.id, tenant.property_id, target.id)

        tenant.property_id = target.id
        await self._tenants.save(tenant)
        await self._conversations.upsert(
            org_id, tenant.phone_number, ConversationState.IDLE, target.id, tenant.id
        )

        logger.info(
            "Tenant assigned",
            extra={
                "org_id": str(org_id),
                "tenant_id": str(tenant.id),
                "property_id": str(target.id),
                "moved_tickets": moved
            }
        )

        if notify and self._notifier is not None:
            body = (notify_message or "").strip() or messages.assignment(target.name)
            await self._notifier.deliver(tenant.phone_number, body, org_id, target.id)

        return moved, None


class TicketService:
    """Ticket management from the staff dashboard."""

    def __init__(
        self,
        tickets: ITicketRepository,
        tenants: ITenantRepository,
        properties: IPropertyRepository,
        notifier: Optional[ITenantNotifier] = None
    ):
        self._tickets = tickets
        self._tenants = tenants
        self._properties = properties
        self._notifier = notifier

    async def list(
        self,
        org_id: UUID,
        status: Optional[TicketStatus] = None,
        priority: Optional[TicketPriority] = None,
        category: Optional[TicketCategory] = None,
        property_id: Optional[UUID] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[int, List[Any]]:
        filters = {
            "status": status.value if status else None,
            "priority": priority.value if priority else None,
            "category": category.value if category else None,
            "property_id": property_id,
        }
        return await self._tickets.list(
            org_id,
            {k: v for k, v in filters.items() if v is not None},
            page=page,
            page_size=page_size
        )

    async def get(self, org_id: UUID, ticket_id: Any) -> Any:
        ticket = await self._tickets.get(org_id, ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    async def create(
        self,
        org_id: UUID,
        tenant_id: UUID,
        property_id: UUID,
        description: Optional[str] = None,
        category: TicketCategory = TicketCategory.OTHER,
        priority: TicketPriority = TicketPriority.MEDIUM,
        image_urls: Optional[List[str]] = None
    ) -> Any:
        prop = await self._properties.get(org_id, property_id)
        if prop is None:
            raise ResourceNotFoundException("Property", str(property_id))

        tenant = await self._tenants.get(org_id, tenant_id)
        if tenant is None:
            raise ResourceNotFoundException("Tenant", str(tenant_id))
        if tenant.property_id != prop.id:
            raise ValidationException("Tenant does not belong to that property")

        ticket = await self._tickets.create(
            org_id=org_id,
            property_id=prop.id,
            tenant_id=tenant.id,
            description=description,
            category=TicketCategory(category).value,
            priority=TicketPriority(priority).value,
            status=TicketStatus.OPEN.value,
            image_urls=list(image_urls or [])
        )
        logger.info("Ticket created", extra={"org_id": str(org_id), "ticket_id": str(ticket.id)})
        return ticket

    async def update(
        self,
        org_id: UUID,
        ticket_id: Any,
        changes: Dict[str, Any],
        notify_tenant: bool = False,
        note: Optional[str] = None
    ) -> Any:
        """
        Apply staff edits to a ticket.

        A status change is texted to the tenant when notify_tenant is set:
        the completion message for COMPLETED, a status update otherwise.
        """
        if not changes:
            raise ValidationException("No fields to update")

        ticket = await self.get(org_id, ticket_id)
        previous_status = ticket.status

        if changes.get("status") is not None:
            ticket.status = TicketStatus(changes["status"]).value
        if changes.get("priority") is not None:
            ticket.priority = TicketPriority(changes["priority"]).value
        if "description" in changes:
            ticket.description = changes["description"]
        ticket.updated_at = datetime.now(timezone.utc)

        await self._tickets.save(ticket)

        if notify_tenant and ticket.status != previous_status:
            await self._notify_status(org_id, ticket, note)

        return ticket

    async def _notify_status(self, org_id: UUID, ticket: Any, note: Optional[str]) -> None:
        if self._notifier is None:
            return

        tenant = await self._tenants.get(org_id, ticket.tenant_id)
        if tenant is None:
            return

        if ticket.status == TicketStatus.COMPLETED.value:
            body = messages.completion(ticket.id, note)
        else:
            body = messages.maintenance_update(ticket.id, ticket.status, note)
        await self._notifier.deliver(tenant.phone_number, body, org_id, ticket.property_id)

    async def delete(self, org_id: UUID, ticket_id: Any) -> None:
        ticket = await self.get(org_id, ticket_id)
        await self._tickets.delete(ticket)


class TenantImportService:
    """
    Bulk tenant registration from a CSV or XLSX upload.

    Rows are upserted on (phone, property). A dry run reports what would
    happen without writing.
    """

    def __init__(
        self,
        tenants: ITenantRepository,
        properties: IPropertyRepository,
        conversations: IConversationRepository
    ):
        self._tenants = tenants
        self._properties = properties
        self._conversations = conversations

    @staticmethod
    def read_records(filename: str, content: bytes) -> List[Dict[str, Any]]:
        """Parse the upload into row dicts. Spreadsheets use their first sheet."""
        name = (filename or "").lower()
        buffer = io.BytesIO(content)
        try:
            if name.endswith((".xlsx", ".xlsm")):
                frame = pd.read_excel(buffer, sheet_name=0, dtype=str, engine="openpyxl")
            else:
                frame = pd.read_csv(buffer, dtype=str, keep_default_na=False)
        except (ValueError, zipfile.BadZipFile) as e:
            raise ValidationException(f"Could not read upload: {e}")

        frame = frame.fillna("")
        return frame.to_dict(orient="records")

    async def run(
        self,
        org_id: UUID,
        property_id: Any,
        filename: str,
        content: bytes,
        dry_run: bool = False
    ) -> ImportReport:
        prop = await self._properties.get(org_id, property_id)
        if prop is None:
            raise ResourceNotFoundException("Property", str(property_id))

        records = self.read_records(filename, content)
        report = ImportReport(total=len(records), dry_run=dry_run)

        for index, record in enumerate(records):
            row_number = index + 2  # header is row 1
            row = ImportRow.from_record(record)

            if not row.phone or len(row.phone) < MIN_IMPORT_PHONE_LENGTH:
                report.skip(row_number, "Invalid row (missing phone/name/unit?)")
                continue

            phone = normalize_us_phone(row.phone)
            if not phone:
                report.skip(row_number, "Invalid phone number")
                continue

            existing = await self._tenants.get_by_phone_and_property(phone, prop.id)
            if dry_run:
                if existing is not None:
                    report.updated += 1
                else:
                    report.created += 1
                continue

            if existing is None:
                tenant = await self._tenants.create(
                    org_id=org_id,
                    property_id=prop.id,
                    phone_number=phone,
                    name=row.name,
                    unit_number=row.unit
                )
                report.created += 1
            else:
                tenant = existing
                if row.name:
                    tenant.name = row.name
                if row.unit:
                    tenant.unit_number = row.unit
                await self._tenants.save(tenant)
                report.updated += 1

            await self._conversations.upsert(
                org_id, phone, ConversationState.IDLE, prop.id, tenant.id
            )

        logger.info(
            "Tenant import finished",
            extra={
                "org_id": str(org_id),
                "property_id": str(prop.id),
                "total": report.total,
                "created": report.created,
                "updated": report.updated,
                "skipped": report.skipped,
                "dry_run": dry_run
            }
        )
        return report
