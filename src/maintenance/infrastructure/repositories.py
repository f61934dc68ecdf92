"""
Maintenance Infrastructure Repositories
========================================

SQLAlchemy implementations of maintenance repositories.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import (
    OPEN_STATUSES,
    UNASSIGNED_PROPERTY_ADDRESS,
    UNASSIGNED_PROPERTY_NAME,
    ConversationState,
)
from src.core import ConflictException
from src.maintenance.application.services import (
    IConversationRepository,
    IPropertyRepository,
    ITenantRepository,
    ITicketRepository,
)
from src.maintenance.domain import unassigned_inbox_phone
from src.maintenance.infrastructure.models import (
    ConversationModel,
    PropertyModel,
    TenantModel,
    TicketModel,
)
from src.organisations.infrastructure.models import OrgNumberModel
from src.shared.domain import digits_only
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MIN_PHONE_SEARCH_DIGITS = 4


def _as_uuid(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


async def _count(session: AsyncSession, stmt) -> int:
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    return (await session.execute(count_stmt)).scalar_one()


class SQLAlchemyPropertyRepository(IPropertyRepository):
    """SQLAlchemy implementation for properties."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, org_id: UUID, property_id: Any) -> Optional[PropertyModel]:
        property_uuid = _as_uuid(property_id)
        if property_uuid is None:
            return None
        stmt = select(PropertyModel).where(
            PropertyModel.id == property_uuid,
            PropertyModel.org_id == org_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_phone(self, phone_number: str) -> Optional[PropertyModel]:
        stmt = select(PropertyModel).where(PropertyModel.phone_number == phone_number)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_with_counts(
        self,
        org_id: UUID,
        search: Optional[str] = None
    ) -> List[Tuple[PropertyModel, int, int]]:
        ticket_counts = (
            select(TicketModel.property_id, func.count(TicketModel.id).label("n"))
            .group_by(TicketModel.property_id)
            .subquery()
        )
        tenant_counts = (
            select(TenantModel.property_id, func.count(TenantModel.id).label("n"))
            .group_by(TenantModel.property_id)
            .subquery()
        )

        stmt = (
            select(
                PropertyModel,
                func.coalesce(ticket_counts.c.n, 0),
                func.coalesce(tenant_counts.c.n, 0)
            )
            .outerjoin(ticket_counts, ticket_counts.c.property_id == PropertyModel.id)
            .outerjoin(tenant_counts, tenant_counts.c.property_id == PropertyModel.id)
            .where(PropertyModel.org_id == org_id)
        )
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(
                PropertyModel.name.ilike(pattern),
                PropertyModel.address.ilike(pattern)
            ))
        stmt = stmt.order_by(PropertyModel.created_at.desc())

        result = await self._session.execute(stmt)
        return [(row[0], int(row[1]), int(row[2])) for row in result.all()]

    async def create(self, org_id: UUID, name: str, address: str, phone_number: str) -> PropertyModel:
        model = PropertyModel(
            id=uuid4(),
            org_id=org_id,
            name=name,
            address=address,
            phone_number=phone_number
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError:
            raise ConflictException("Phone number already in use")
        return model

    async def save(self, property_model: PropertyModel) -> PropertyModel:
        try:
            await self._session.flush()
        except IntegrityError:
            raise ConflictException("Phone number already in use")
        return property_model

    async def delete(self, property_model: PropertyModel) -> None:
        property_id = property_model.id
        await self._session.execute(
            update(OrgNumberModel)
            .where(OrgNumberModel.property_id == property_id)
            .values(property_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self._session.execute(
            delete(ConversationModel).where(ConversationModel.property_id == property_id)
        )
        await self._session.execute(
            delete(TicketModel).where(TicketModel.property_id == property_id)
        )
        await self._session.execute(
            delete(TenantModel).where(TenantModel.property_id == property_id)
        )
        await self._session.delete(property_model)
        await self._session.flush()

    async def get_or_create_unassigned(self, org_id: UUID) -> PropertyModel:
        stmt = (
            select(PropertyModel)
            .where(
                PropertyModel.org_id == org_id,
                PropertyModel.name == UNASSIGNED_PROPERTY_NAME
            )
            .order_by(PropertyModel.created_at)
            .limit(1)
        )
        model = (await self._session.execute(stmt)).scalar_one_or_none()
        if model is not None:
            return model

        model = PropertyModel(
            id=uuid4(),
            org_id=org_id,
            name=UNASSIGNED_PROPERTY_NAME,
            address=UNASSIGNED_PROPERTY_ADDRESS,
            phone_number=unassigned_inbox_phone(org_id)
        )
        self._session.add(model)
        await self._session.flush()

        logger.info("Unassigned inbox created", extra={"org_id": str(org_id)})
        return model


class SQLAlchemyTenantRepository(ITenantRepository):
    """SQLAlchemy implementation for tenants."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, org_id: UUID, tenant_id: Any) -> Optional[TenantModel]:
        tenant_uuid = _as_uuid(tenant_id)
        if tenant_uuid is None:
            return None
        stmt = select(TenantModel).where(
            TenantModel.id == tenant_uuid,
            TenantModel.org_id == org_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_in_org_by_phones(
        self,
        org_id: UUID,
        phones: Sequence[str]
    ) -> Optional[TenantModel]:
        if not phones:
            return None
        stmt = (
            select(TenantModel)
            .where(TenantModel.org_id == org_id, TenantModel.phone_number.in_(list(phones)))
            .order_by(TenantModel.created_at)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_phone_and_property(
        self,
        phone_number: str,
        property_id: UUID
    ) -> Optional[TenantModel]:
        stmt = select(TenantModel).where(
            TenantModel.phone_number == phone_number,
            TenantModel.property_id == property_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        org_id: UUID,
        q: Optional[str] = None,
        property_id: Optional[UUID] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[int, List[Tuple[TenantModel, PropertyModel]]]:
        stmt = (
            select(TenantModel, PropertyModel)
            .join(PropertyModel, PropertyModel.id == TenantModel.property_id)
            .where(TenantModel.org_id == org_id)
        )
        if property_id is not None:
            stmt = stmt.where(TenantModel.property_id == property_id)
        if q:
            pattern = f"%{q}%"
            conditions = [
                TenantModel.name.ilike(pattern),
                TenantModel.unit_number.ilike(pattern),
                TenantModel.phone_number.ilike(pattern),
                PropertyModel.name.ilike(pattern),
                PropertyModel.address.ilike(pattern),
            ]
            digits = digits_only(q)
            if len(digits) >= MIN_PHONE_SEARCH_DIGITS:
                conditions.append(TenantModel.phone_number.contains(digits))
            stmt = stmt.where(or_(*conditions))

        total = await _count(self._session, stmt)

        stmt = (
            stmt.order_by(TenantModel.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self._session.execute(stmt)
        return total, [(row[0], row[1]) for row in result.all()]

    async def create(
        self,
        org_id: UUID,
        property_id: UUID,
        phone_number: str,
        name: Optional[str] = None,
        unit_number: Optional[str] = None
    ) -> TenantModel:
        model = TenantModel(
            id=uuid4(),
            org_id=org_id,
            property_id=property_id,
            phone_number=phone_number,
            name=name,
            unit_number=unit_number
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError:
            raise ConflictException("Phone number already registered for this property")
        return model

    async def save(self, tenant: TenantModel) -> TenantModel:
        try:
            await self._session.flush()
        except IntegrityError:
            raise ConflictException("Phone number already registered for this property")
        return tenant

    async def delete(self, tenant: TenantModel) -> None:
        await self._session.execute(
            update(ConversationModel)
            .where(ConversationModel.tenant_id == tenant.id)
            .values(tenant_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self._session.delete(tenant)
        await self._session.flush()

    async def count_tickets(self, tenant_id: UUID) -> int:
        stmt = select(func.count(TicketModel.id)).where(TicketModel.tenant_id == tenant_id)
        return (await self._session.execute(stmt)).scalar_one()


class SQLAlchemyConversationRepository(IConversationRepository):
    """SQLAlchemy implementation for SMS conversations."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, org_id: UUID, phone_number: str) -> Optional[ConversationModel]:
        stmt = select(ConversationModel).where(
            ConversationModel.org_id == org_id,
            ConversationModel.phone_number == phone_number
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        org_id: UUID,
        phone_number: str,
        state: ConversationState,
        property_id: Optional[UUID],
        tenant_id: Optional[UUID]
    ) -> ConversationModel:
        model = await self.get(org_id, phone_number)
        if model is None:
            model = ConversationModel(id=uuid4(), org_id=org_id, phone_number=phone_number)
            self._session.add(model)

        model.state = ConversationState(state).value
        model.property_id = property_id
        model.tenant_id = tenant_id
        model.last_message_at = datetime.now(timezone.utc)
        await self._session.flush()
        return model


class SQLAlchemyTicketRepository(ITicketRepository):
    """SQLAlchemy implementation for tickets."""

    FILTER_COLUMNS = {
        "status": TicketModel.status,
        "priority": TicketModel.priority,
        "category": TicketModel.category,
        "property_id": TicketModel.property_id,
        "tenant_id": TicketModel.tenant_id,
    }

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, org_id: UUID, ticket_id: Any) -> Optional[TicketModel]:
        ticket_uuid = _as_uuid(ticket_id)
        if ticket_uuid is None:
            return None
        stmt = select(TicketModel).where(
            TicketModel.id == ticket_uuid,
            TicketModel.org_id == org_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_message_sid(self, message_sid: str) -> Optional[TicketModel]:
        stmt = select(TicketModel).where(TicketModel.external_message_sid == message_sid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list(
        self,
        org_id: UUID,
        filters: Dict[str, Any],
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[int, List[TicketModel]]:
        stmt = select(TicketModel).where(TicketModel.org_id == org_id)
        for key, value in filters.items():
            stmt = stmt.where(self.FILTER_COLUMNS[key] == value)

        total = await _count(self._session, stmt)

        stmt = (
            stmt.order_by(TicketModel.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self._session.execute(stmt)
        return total, list(result.scalars().all())

    async def list_for_tenant(self, tenant_id: UUID) -> List[TicketModel]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.tenant_id == tenant_id)
            .order_by(TicketModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **fields: Any) -> TicketModel:
        """
        Create ticket.

        Raises:
            ConflictException: If external_message_sid was already used. The
                session is rolled back, discarding the caller's pending work.
        """
        model = TicketModel(id=uuid4(), **fields)
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            raise ConflictException(
                "Ticket already exists for this message",
                details={"message_sid": fields.get("external_message_sid")}
            )
        return model

    async def save(self, ticket: TicketModel) -> TicketModel:
        await self._session.flush()
        return ticket

    async def delete(self, ticket: TicketModel) -> None:
        await self._session.delete(ticket)
        await self._session.flush()

    async def move_open_tickets(
        self,
        tenant_id: UUID,
        from_property_id: UUID,
        to_property_id: UUID
    ) -> int:
        stmt = (
            update(TicketModel)
            .where(
                TicketModel.tenant_id == tenant_id,
                TicketModel.property_id == from_property_id,
                TicketModel.status.in_(OPEN_STATUSES)
            )
            .values(property_id=to_property_id, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
