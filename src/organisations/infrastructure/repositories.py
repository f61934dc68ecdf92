"""
Organisation Infrastructure Repositories
=========================================

SQLAlchemy implementations of organisation repositories.
"""

from datetime import datetime
from typing import Any, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import AccessRequestStatus, Role
from src.core import ConflictException
from src.organisations.application.services import (
    IAccessRequestRepository,
    IInviteRepository,
    IMembershipRepository,
    IOrganisationRepository,
    IOrgNumberRepository,
)
from src.organisations.infrastructure.models import (
    AccessRequestModel,
    InviteModel,
    MembershipModel,
    OrganisationModel,
    OrgNumberModel,
)


def _as_uuid(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class SQLAlchemyOrganisationRepository(IOrganisationRepository):
    """SQLAlchemy implementation for organisations."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, org_id: Any) -> Optional[OrganisationModel]:
        org_uuid = _as_uuid(org_id)
        if org_uuid is None:
            return None
        return await self._session.get(OrganisationModel, org_uuid)

    async def get_by_slug(self, slug: str) -> Optional[OrganisationModel]:
        stmt = select(OrganisationModel).where(OrganisationModel.slug == slug)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, name: str, slug: str) -> OrganisationModel:
        model = OrganisationModel(id=uuid4(), name=name, slug=slug)
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError:
            raise ConflictException("Slug already in use")
        return model


class SQLAlchemyMembershipRepository(IMembershipRepository):
    """SQLAlchemy implementation for memberships."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, user_id: str, org_id: UUID) -> Optional[MembershipModel]:
        stmt = select(MembershipModel).where(
            MembershipModel.user_id == user_id,
            MembershipModel.org_id == org_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, user_id: str, org_id: UUID, role: Role) -> MembershipModel:
        model = await self.get(user_id, org_id)
        if model is None:
            model = MembershipModel(id=uuid4(), user_id=user_id, org_id=org_id, role=Role(role).value)
            self._session.add(model)
        else:
            model.role = Role(role).value
        await self._session.flush()
        return model

    async def list_for_user(self, user_id: str) -> List[Tuple[MembershipModel, OrganisationModel]]:
        stmt = (
            select(MembershipModel, OrganisationModel)
            .join(OrganisationModel, OrganisationModel.id == MembershipModel.org_id)
            .where(MembershipModel.user_id == user_id)
            .order_by(OrganisationModel.name)
        )
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]


class SQLAlchemyOrgNumberRepository(IOrgNumberRepository):
    """SQLAlchemy implementation for organisation numbers."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_for_org(self, org_id: UUID) -> List[OrgNumberModel]:
        stmt = (
            select(OrgNumberModel)
            .where(OrgNumberModel.org_id == org_id)
            .order_by(OrgNumberModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get(self, org_id: UUID, number_id: str) -> Optional[OrgNumberModel]:
        number_uuid = _as_uuid(number_id)
        if number_uuid is None:
            return None
        stmt = select(OrgNumberModel).where(
            OrgNumberModel.id == number_uuid,
            OrgNumberModel.org_id == org_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_e164(self, e164: str) -> Optional[OrgNumberModel]:
        stmt = select(OrgNumberModel).where(OrgNumberModel.e164 == e164)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_by_e164(self, e164: str) -> Optional[OrgNumberModel]:
        stmt = select(OrgNumberModel).where(
            OrgNumberModel.e164 == e164,
            OrgNumberModel.is_active.is_(True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        org_id: UUID,
        e164: str,
        twilio_sid: Optional[str],
        property_id: Optional[UUID]
    ) -> OrgNumberModel:
        model = await self.get_by_e164(e164)
        if model is None:
            model = OrgNumberModel(id=uuid4(), org_id=org_id, e164=e164)
            self._session.add(model)
        model.twilio_sid = twilio_sid
        model.property_id = property_id
        model.is_active = True
        await self._session.flush()
        return model

    async def save(self, number: OrgNumberModel) -> OrgNumberModel:
        await self._session.flush()
        return number

    async def deactivate_others(
        self,
        org_id: UUID,
        keep_id: UUID,
        property_id: Optional[UUID],
        org_wide: bool = False
    ) -> int:
        conditions = [OrgNumberModel.org_id == org_id, OrgNumberModel.id != keep_id]
        if not org_wide:
            conditions.append(OrgNumberModel.property_id == property_id)

        stmt = (
            update(OrgNumberModel)
            .where(and_(*conditions))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def delete(self, number: OrgNumberModel) -> None:
        await self._session.delete(number)
        await self._session.flush()

    async def find_sender(self, org_id: UUID, property_id: Optional[UUID]) -> Optional[str]:
        if property_id is not None:
            stmt = (
                select(OrgNumberModel.e164)
                .where(
                    OrgNumberModel.org_id == org_id,
                    OrgNumberModel.property_id == property_id,
                    OrgNumberModel.is_active.is_(True)
                )
                .order_by(OrgNumberModel.created_at.desc())
                .limit(1)
            )
            e164 = (await self._session.execute(stmt)).scalar_one_or_none()
            if e164:
                return e164

        stmt = (
            select(OrgNumberModel.e164)
            .where(
                OrgNumberModel.org_id == org_id,
                OrgNumberModel.property_id.is_(None),
                OrgNumberModel.is_active.is_(True)
            )
            .order_by(OrgNumberModel.created_at.desc())
            .limit(1)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()


class SQLAlchemyInviteRepository(IInviteRepository):
    """SQLAlchemy implementation for invites."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_pending(self, org_id: UUID) -> List[InviteModel]:
        stmt = (
            select(InviteModel)
            .where(InviteModel.org_id == org_id, InviteModel.accepted_at.is_(None))
            .order_by(InviteModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create(
        self,
        org_id: UUID,
        email: str,
        role: Role,
        token: str,
        expires_at: datetime,
        invited_by: Optional[str]
    ) -> InviteModel:
        model = InviteModel(
            id=uuid4(),
            org_id=org_id,
            email=email,
            role=Role(role).value,
            token=token,
            expires_at=expires_at,
            invited_by=invited_by
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def get(self, org_id: UUID, invite_id: str) -> Optional[InviteModel]:
        invite_uuid = _as_uuid(invite_id)
        if invite_uuid is None:
            return None
        stmt = select(InviteModel).where(
            InviteModel.id == invite_uuid,
            InviteModel.org_id == org_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_token(self, token: str) -> Optional[InviteModel]:
        stmt = select(InviteModel).where(InviteModel.token == token)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, invite: InviteModel) -> InviteModel:
        await self._session.flush()
        return invite

    async def delete(self, invite: InviteModel) -> None:
        await self._session.delete(invite)
        await self._session.flush()


class SQLAlchemyAccessRequestRepository(IAccessRequestRepository):
    """SQLAlchemy implementation for access requests."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find_open(self, org_id: UUID, email: str) -> Optional[AccessRequestModel]:
        stmt = select(AccessRequestModel).where(
            AccessRequestModel.org_id == org_id,
            AccessRequestModel.email == email,
            AccessRequestModel.status == AccessRequestStatus.OPEN.value
        ).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        org_id: UUID,
        email: str,
        name: Optional[str],
        message: Optional[str]
    ) -> AccessRequestModel:
        model = AccessRequestModel(
            id=uuid4(),
            org_id=org_id,
            email=email,
            name=name,
            message=message,
            status=AccessRequestStatus.OPEN.value
        )
        self._session.add(model)
        await self._session.flush()
        return model

    async def list(
        self,
        org_id: UUID,
        status: Optional[AccessRequestStatus]
    ) -> List[AccessRequestModel]:
        stmt = select(AccessRequestModel).where(AccessRequestModel.org_id == org_id)
        if status is not None:
            stmt = stmt.where(AccessRequestModel.status == status.value)
        stmt = stmt.order_by(AccessRequestModel.created_at.desc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get(self, org_id: UUID, request_id: UUID) -> Optional[AccessRequestModel]:
        stmt = select(AccessRequestModel).where(
            AccessRequestModel.id == request_id,
            AccessRequestModel.org_id == org_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, access_request: AccessRequestModel) -> AccessRequestModel:
        await self._session.flush()
        return access_request
