"""
SQLAlchemy policy store reading the roles/permissions/user_roles/user_permissions tables.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from edunexia_authz.core.auth.context import Grant, RoleAssignment, ScopedGrant
from edunexia_authz.models.rbac import Permission, Role, UserPermission, UserRole, role_permissions


class DatabasePolicyStore:
    """
    Read-only policy store over the relational schema.

    Each call opens its own short session, so the store can be shared
    across requests. Expired assignments (valid_until in the past) and
    expired direct grants (expires_at in the past) are ignored.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_user_role_ids(self, user_id: int) -> set[int]:
        return {a.role_id for a in await self.get_user_assignments(user_id)}

    async def get_user_assignments(self, user_id: int) -> set[RoleAssignment]:
        now = datetime.now(timezone.utc)
        stmt = select(UserRole.role_id, UserRole.institution_id, UserRole.polo_id).where(
            UserRole.user_id == user_id,
            or_(UserRole.valid_until.is_(None), UserRole.valid_until > now),
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return {RoleAssignment(*row) for row in result.all()}

    async def get_user_grants(self, user_id: int) -> set[ScopedGrant]:
        now = datetime.now(timezone.utc)
        stmt = (
            select(
                Permission.resource,
                Permission.action,
                UserPermission.institution_id,
                UserPermission.polo_id,
            )
            .join(Permission, Permission.id == UserPermission.permission_id)
            .where(
                UserPermission.user_id == user_id,
                or_(UserPermission.expires_at.is_(None), UserPermission.expires_at > now),
            )
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return {
                ScopedGrant(Grant(resource, action), institution_id, polo_id)
                for resource, action, institution_id, polo_id in result.all()
            }

    async def get_role_grants(self, role_ids: set[int]) -> dict[int, set[Grant]]:
        if not role_ids:
            return {}
        stmt = (
            select(role_permissions.c.role_id, Permission.resource, Permission.action)
            .join(Permission, Permission.id == role_permissions.c.permission_id)
            .where(role_permissions.c.role_id.in_(role_ids))
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        grants: dict[int, set[Grant]] = {}
        for role_id, resource, action in rows:
            grants.setdefault(role_id, set()).add(Grant(resource, action))
        return grants

    async def get_role_holders(self, role_id: int) -> set[int]:
        stmt = select(UserRole.user_id).where(UserRole.role_id == role_id)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return set(result.scalars().all())

    async def get_role_names(self, role_ids: set[int]) -> dict[int, str]:
        if not role_ids:
            return {}
        stmt = select(Role.id, Role.name).where(Role.id.in_(role_ids))
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return {role_id: name for role_id, name in result.all()}
