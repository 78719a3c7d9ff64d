"""
Permission query routes for the authenticated subject.
"""

from fastapi import APIRouter, Query

from edunexia_authz.core.auth import Authorize
from edunexia_authz.schemas.permissions import (
    ConditionCheckRequest,
    PermissionCheckRequest,
    PermissionCheckResponse,
)

router = APIRouter()


@router.get("/user", response_model=dict[str, bool])
async def get_user_permissions(
    auth: Authorize,
    institution_id: int | None = Query(None, alias="institutionId"),
    polo_id: int | None = Query(None, alias="poloId"),
):
    """Caller's permissions as {"resource:action": true}, in the given tenant."""
    return auth.permissions_map(institution_id, polo_id)


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(data: PermissionCheckRequest, auth: Authorize):
    """Static (RBAC) permission check."""
    allowed = auth.has_permission(data.resource, data.action, data.institution_id, data.polo_id)
    return PermissionCheckResponse(has_permission=allowed)


@router.post("/abac/check", response_model=PermissionCheckResponse)
async def check_condition(data: ConditionCheckRequest, auth: Authorize):
    """Permission check with contextual conditions."""
    decision = await auth.authorize(data.to_context())
    return PermissionCheckResponse(has_permission=decision.allowed, reason=decision.reason)
