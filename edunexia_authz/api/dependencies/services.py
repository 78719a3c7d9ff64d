"""
Service dependencies.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from edunexia_authz.core.auth import CurrentSubject
from edunexia_authz.services.audit import AuditActor
from edunexia_authz.services.rbac import RBACService
from edunexia_authz.utils.context import get_request_id
from .database import get_db


async def get_rbac_service(
    request: Request,
    subject: CurrentSubject,
    db: AsyncSession = Depends(get_db),
) -> RBACService:
    """RBAC service wired to the application's policy cache, auditing as the caller."""
    actor = AuditActor(
        actor_id=subject.id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        request_id=get_request_id(),
    )
    return RBACService(db, cache=request.app.state.policy_cache, actor=actor)
