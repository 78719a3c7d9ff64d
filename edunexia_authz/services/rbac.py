"""
Role administration service.

Mutations are staged on the session together with their audit rows;
commit() persists them and then invalidates the policy cache for every
affected subject.
"""

from datetime import datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from edunexia_authz.core.auth.cache import PolicyCache
from edunexia_authz.core.auth.context import Grant
from edunexia_authz.models.rbac import Permission, Role, UserPermission, UserRole
from edunexia_authz.services.audit import AuditAction, AuditActor, PermissionAuditService

logger = structlog.get_logger()


class SystemRoleError(Exception):
    """System roles cannot be updated or deleted."""


def _scope(institution_id: int | None, polo_id: int | None) -> dict[str, int]:
    scope = {"institution_id": institution_id, "polo_id": polo_id}
    return {k: v for k, v in scope.items() if v is not None}


class RBACService:
    """Role/permission management service."""

    def __init__(
        self,
        db: AsyncSession,
        cache: PolicyCache | None = None,
        actor: AuditActor | None = None,
    ):
        self.db = db
        self.cache = cache
        self.audit = PermissionAuditService(db, actor)
        self._dirty_users: set[int] = set()
        self._dirty_roles: set[int] = set()

    # ============================================================
    # ROLES
    # ============================================================

    async def get_role(self, role_id: int) -> Role | None:
        """Get role by ID."""
        stmt = select(Role).where(Role.id == role_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_role_by_name(self, name: str) -> Role | None:
        stmt = select(Role).where(Role.name == name)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_roles(self) -> list[Role]:
        stmt = select(Role).order_by(Role.name)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_role(
        self,
        name: str,
        description: str | None = None,
        permissions: list[str] | None = None,
        is_system: bool = False,
    ) -> Role:
        """
        Create a role with its permissions.

        Raises:
            ValueError: name taken or malformed permission
        """
        if await self.get_role_by_name(name):
            raise ValueError(f"Role '{name}' already exists")

        perms = [await self.get_or_create_permission(Grant.parse(p)) for p in permissions or []]

        role = Role(name=name, description=description, is_system=is_system, permissions=perms)
        self.db.add(role)
        await self.db.flush()

        self.audit.record(
            AuditAction.CREATE_ROLE,
            f"role:{role.id}",
            {"name": name, "permissions": sorted(p.name for p in perms)},
        )
        logger.info("Role created", role_id=role.id, name=name, permissions=len(perms))
        return role

    async def update_role(
        self,
        role_id: int,
        name: str | None = None,
        description: str | None = None,
        permissions: list[str] | None = None,
    ) -> Role | None:
        """
        Update a role. A given permission list replaces the current one.

        Returns None if the role does not exist.

        Raises:
            SystemRoleError: the role is a system role
            ValueError: name taken by another role or malformed permission
        """
        role = await self.get_role(role_id)
        if not role:
            return None
        if role.is_system:
            raise SystemRoleError(f"Role '{role.name}' is a system role")

        changes: dict = {}
        if name is not None and name != role.name:
            if await self.get_role_by_name(name):
                raise ValueError(f"Role '{name}' already exists")
            changes["name"] = {"old": role.name, "new": name}
            role.name = name
        if description is not None and description != role.description:
            changes["description"] = {"old": role.description, "new": description}
            role.description = description
        if permissions is not None:
            old = sorted(p.name for p in role.permissions)
            role.permissions = [await self.get_or_create_permission(Grant.parse(p)) for p in dict.fromkeys(permissions)]
            new = sorted(p.name for p in role.permissions)
            if old != new:
                changes["permissions"] = {"old": old, "new": new}
            self._dirty_roles.add(role_id)

        await self.db.flush()
        self.audit.record(AuditAction.UPDATE_ROLE, f"role:{role_id}", changes)
        logger.info("Role updated", role_id=role_id, fields=sorted(changes))
        return role

    async def delete_role(self, role_id: int) -> bool:
        """
        Delete role and its assignments.

        Raises:
            SystemRoleError: the role is a system role
        """
        role = await self.get_role(role_id)
        if not role:
            return False
        if role.is_system:
            raise SystemRoleError(f"Role '{role.name}' is a system role")

        name = role.name
        holders = await self.db.execute(select(UserRole.user_id).where(UserRole.role_id == role_id))
        self._dirty_users.update(holders.scalars().all())
        self._dirty_roles.add(role_id)

        await self.db.execute(delete(UserRole).where(UserRole.role_id == role_id))
        await self.db.delete(role)
        await self.db.flush()

        self.audit.record(AuditAction.DELETE_ROLE, f"role:{role_id}", {"name": name})
        logger.info("Role deleted", role_id=role_id)
        return True

    # ============================================================
    # PERMISSIONS
    # ============================================================

    async def list_permissions(self) -> list[Permission]:
        stmt = select(Permission).order_by(Permission.resource, Permission.action)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_or_create_permission(self, grant: Grant, description: str | None = None) -> Permission:
        stmt = select(Permission).where(
            Permission.resource == grant.resource,
            Permission.action == grant.action,
        )
        result = await self.db.execute(stmt)
        permission = result.scalar_one_or_none()
        if permission:
            return permission

        permission = Permission(resource=grant.resource, action=grant.action, description=description)
        self.db.add(permission)
        await self.db.flush()
        return permission

    async def add_permissions(self, role_id: int, permissions: list[str]) -> Role | None:
        """Grant permissions to a role. Returns None if the role does not exist."""
        role = await self.get_role(role_id)
        if not role:
            return None

        held = {(p.resource, p.action) for p in role.permissions}
        added = []
        for name in permissions:
            grant = Grant.parse(name)
            if (grant.resource, grant.action) in held:
                continue
            role.permissions.append(await self.get_or_create_permission(grant))
            held.add((grant.resource, grant.action))
            added.append(str(grant))

        self._dirty_roles.add(role_id)
        await self.db.flush()
        self.audit.record(AuditAction.GRANT, f"role:{role_id}", {"permissions": added})
        return role

    async def remove_permissions(self, role_id: int, permissions: list[str]) -> Role | None:
        """Revoke permissions from a role. Returns None if the role does not exist."""
        role = await self.get_role(role_id)
        if not role:
            return None

        revoked = {Grant.parse(p) for p in permissions}
        role.permissions = [p for p in role.permissions if Grant(p.resource, p.action) not in revoked]

        self._dirty_roles.add(role_id)
        await self.db.flush()
        self.audit.record(AuditAction.REVOKE, f"role:{role_id}", {"permissions": sorted(map(str, revoked))})
        return role

    # ============================================================
    # ROLE ASSIGNMENTS
    # ============================================================

    async def get_user_roles(self, user_id: int) -> list[UserRole]:
        stmt = select(UserRole).where(UserRole.user_id == user_id).order_by(UserRole.role_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def assign_role(
        self,
        user_id: int,
        role_id: int,
        institution_id: int | None = None,
        polo_id: int | None = None,
        valid_until: datetime | None = None,
    ) -> UserRole | None:
        """
        Give a role to a user, updating the scope if already held.

        Returns None if the role does not exist.
        """
        if not await self.get_role(role_id):
            return None

        stmt = select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        result = await self.db.execute(stmt)
        assignment = result.scalar_one_or_none()

        if assignment is None:
            assignment = UserRole(user_id=user_id, role_id=role_id)
            self.db.add(assignment)

        assignment.institution_id = institution_id
        assignment.polo_id = polo_id
        assignment.valid_until = valid_until

        self._dirty_users.add(user_id)
        await self.db.flush()
        await self.db.refresh(assignment, ["role"])

        self.audit.record(
            AuditAction.ASSIGN_ROLE,
            f"user:{user_id}",
            {"role_id": role_id, **_scope(institution_id, polo_id)},
        )
        logger.info("Role assigned", user_id=user_id, role_id=role_id)
        return assignment

    async def revoke_role(self, user_id: int, role_id: int) -> bool:
        stmt = delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        result = await self.db.execute(stmt)
        if not result.rowcount:
            return False

        self._dirty_users.add(user_id)
        self.audit.record(AuditAction.REVOKE_ROLE, f"user:{user_id}", {"role_id": role_id})
        logger.info("Role revoked", user_id=user_id, role_id=role_id)
        return True

    # ============================================================
    # DIRECT USER PERMISSIONS
    # ============================================================

    async def get_user_permissions(self, user_id: int) -> list[UserPermission]:
        """Permissions granted to the user directly, outside roles."""
        stmt = select(UserPermission).where(UserPermission.user_id == user_id).order_by(UserPermission.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _find_user_permission(
        self,
        user_id: int,
        permission_id: int,
        institution_id: int | None,
        polo_id: int | None,
    ) -> UserPermission | None:
        stmt = select(UserPermission).where(
            UserPermission.user_id == user_id,
            UserPermission.permission_id == permission_id,
            UserPermission.institution_id.is_(None) if institution_id is None
            else UserPermission.institution_id == institution_id,
            UserPermission.polo_id.is_(None) if polo_id is None
            else UserPermission.polo_id == polo_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def grant_user_permission(
        self,
        user_id: int,
        permission: str,
        institution_id: int | None = None,
        polo_id: int | None = None,
        expires_at: datetime | None = None,
    ) -> UserPermission:
        """
        Grant a permission directly to a user in a scope.

        Granting the same permission in the same scope again only updates
        the expiry.

        Raises:
            ValueError: malformed permission
        """
        perm = await self.get_or_create_permission(Grant.parse(permission))

        grant = await self._find_user_permission(user_id, perm.id, institution_id, polo_id)
        if grant is None:
            grant = UserPermission(
                user_id=user_id,
                permission_id=perm.id,
                institution_id=institution_id,
                polo_id=polo_id,
            )
            self.db.add(grant)
        grant.expires_at = expires_at

        self._dirty_users.add(user_id)
        await self.db.flush()
        await self.db.refresh(grant, ["permission"])

        self.audit.record(
            AuditAction.GRANT,
            f"user:{user_id}",
            {"permission": perm.name, **_scope(institution_id, polo_id)},
        )
        logger.info("Permission granted to user", user_id=user_id, permission=perm.name)
        return grant

    async def revoke_user_permission(
        self,
        user_id: int,
        permission: str,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> bool:
        """Remove a direct grant in exactly the given scope."""
        grant = Grant.parse(permission)
        stmt = select(Permission).where(Permission.resource == grant.resource, Permission.action == grant.action)
        perm = (await self.db.execute(stmt)).scalar_one_or_none()
        if perm is None:
            return False

        held = await self._find_user_permission(user_id, perm.id, institution_id, polo_id)
        if held is None:
            return False

        await self.db.delete(held)
        await self.db.flush()

        self._dirty_users.add(user_id)
        self.audit.record(
            AuditAction.REVOKE,
            f"user:{user_id}",
            {"permission": perm.name, **_scope(institution_id, polo_id)},
        )
        logger.info("Permission revoked from user", user_id=user_id, permission=perm.name)
        return True

    # ============================================================
    # COMMIT
    # ============================================================

    async def commit(self) -> set[int]:
        """
        Commit staged changes and invalidate cached permissions.

        Returns the subjects whose cached permissions were dropped.
        """
        await self.db.commit()

        affected = set(self._dirty_users)
        if self.cache is not None:
            for role_id in self._dirty_roles:
                affected |= await self.cache.invalidate_role(role_id)
            if self._dirty_users:
                self.cache.invalidate(self._dirty_users)

        self._dirty_users.clear()
        self._dirty_roles.clear()
        return affected
