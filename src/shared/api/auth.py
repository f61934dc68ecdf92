"""
Auth Dependencies
=================

Request identity and organisation role checks.

Sessions are terminated by an upstream gateway, which forwards the verified
identity in trusted headers:
- X-User-Id: stable user identifier
- X-User-Email: verified email address
- X-Org-Id: the caller's active organisation

Roles are always read from the membership table, never from headers.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Role
from src.core import AuthenticationException, PermissionDeniedException
from src.infrastructure.database import get_session


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""
    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class OrgContext:
    """The caller acting within one organisation."""
    user_id: str
    email: Optional[str]
    org_id: UUID
    role: Role


def get_principal(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None)
) -> Principal:
    if not x_user_id:
        raise AuthenticationException("Unauthorized")
    return Principal(user_id=x_user_id, email=(x_user_email or None))


def _parse_org_id(value: Optional[str]) -> UUID:
    if not value:
        raise PermissionDeniedException("No active organisation")
    try:
        return UUID(value)
    except ValueError:
        raise PermissionDeniedException("No active organisation")


async def resolve_org_context(
    session: AsyncSession,
    principal: Principal,
    org_id: UUID,
    roles: tuple
) -> OrgContext:
    """Membership of principal in org_id, restricted to roles when given."""
    from src.organisations.infrastructure.repositories import SQLAlchemyMembershipRepository

    membership = await SQLAlchemyMembershipRepository(session).get(principal.user_id, org_id)
    if membership is None:
        raise PermissionDeniedException("Not a member of this organisation")

    role = Role(membership.role)
    if roles and role not in roles:
        raise PermissionDeniedException("Insufficient role")

    return OrgContext(
        user_id=principal.user_id,
        email=principal.email,
        org_id=org_id,
        role=role
    )


def require_session_org_role(*roles: Role):
    """
    Dependency factory: caller must hold one of roles in the active organisation.

    With no roles given, any membership is enough.
    """

    async def dependency(
        principal: Principal = Depends(get_principal),
        x_org_id: Optional[str] = Header(None),
        session: AsyncSession = Depends(get_session)
    ) -> OrgContext:
        return await resolve_org_context(session, principal, _parse_org_id(x_org_id), roles)

    return dependency


def require_org_role(*roles: Role):
    """
    Dependency factory: caller must hold one of roles in the {org_id} path organisation.
    """

    async def dependency(
        org_id: str,
        principal: Principal = Depends(get_principal),
        session: AsyncSession = Depends(get_session)
    ) -> OrgContext:
        return await resolve_org_context(session, principal, _parse_org_id(org_id), roles)

    return dependency
