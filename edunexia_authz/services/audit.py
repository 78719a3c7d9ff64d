"""Audit trail for role and permission administration."""

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from edunexia_authz.models.audit import PermissionAudit

logger = structlog.get_logger()


class AuditAction:
    """Audit action names."""
    CREATE_ROLE = "create_role"
    UPDATE_ROLE = "update_role"
    DELETE_ROLE = "delete_role"
    GRANT = "grant"
    REVOKE = "revoke"
    ASSIGN_ROLE = "assign_role"
    REVOKE_ROLE = "revoke_role"


@dataclass(frozen=True)
class AuditActor:
    """Who made a change, as seen from the request."""
    actor_id: int | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


class PermissionAuditService:
    """
    Writes and reads permission_audits.

    record() only stages the row; it is committed together with the
    change it describes.
    """

    def __init__(self, db: AsyncSession, actor: AuditActor | None = None):
        self.db = db
        self.actor = actor or AuditActor()

    def record(
        self,
        action: str,
        resource: str,
        details: dict[str, Any] | None = None,
    ) -> PermissionAudit:
        entry = PermissionAudit(
            actor_id=self.actor.actor_id,
            ip_address=self.actor.ip_address,
            user_agent=self.actor.user_agent,
            request_id=self.actor.request_id,
            action=action,
            resource=resource,
            details=details,
        )
        self.db.add(entry)

        logger.info(
            "Permission change",
            action=action,
            resource=resource,
            actor_id=self.actor.actor_id,
        )
        return entry

    async def list_entries(
        self,
        limit: int = 50,
        actor_id: int | None = None,
        resource: str | None = None,
    ) -> list[PermissionAudit]:
        """Most recent entries first."""
        stmt = select(PermissionAudit).order_by(PermissionAudit.id.desc()).limit(limit)
        if actor_id is not None:
            stmt = stmt.where(PermissionAudit.actor_id == actor_id)
        if resource is not None:
            stmt = stmt.where(PermissionAudit.resource == resource)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
