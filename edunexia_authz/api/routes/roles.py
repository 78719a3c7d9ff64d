"""
Role administration routes.

Every mutation is audited, commits, and then drops the cached
permissions of the affected users.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from edunexia_authz.core.auth import AuthorizationService, require_permission
from edunexia_authz.schemas.permissions import (
    PermissionAuditResponse,
    PermissionListRequest,
    PermissionResponse,
    RoleAssignRequest,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    UserPermissionGrant,
    UserPermissionResponse,
    UserPermissionRevoke,
    UserRoleResponse,
)
from edunexia_authz.services.rbac import RBACService, SystemRoleError
from edunexia_authz.api.dependencies.services import get_rbac_service

router = APIRouter()


@router.get("", response_model=list[PermissionResponse])
async def list_permissions(
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "read")),
):
    """Every known permission."""
    permissions = await rbac.list_permissions()
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.get("/roles", response_model=list[RoleResponse])
async def list_roles(
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "read")),
):
    """List roles with their permissions."""
    roles = await rbac.list_roles()
    return [RoleResponse.model_validate(r) for r in roles]


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "create")),
):
    """Create a role."""
    try:
        role = await rbac.create_role(
            name=data.name,
            description=data.description,
            permissions=data.permissions,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    await rbac.commit()
    return RoleResponse.model_validate(role)


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    data: RoleUpdate,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "update")),
):
    """Update a role; a permissions list replaces the current one."""
    try:
        role = await rbac.update_role(
            role_id,
            name=data.name,
            description=data.description,
            permissions=data.permissions,
        )
    except SystemRoleError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    await rbac.commit()
    return RoleResponse.model_validate(role)


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "delete")),
):
    """Delete a role and its assignments."""
    try:
        deleted = await rbac.delete_role(role_id)
    except SystemRoleError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    await rbac.commit()


@router.post("/roles/{role_id}/permissions", response_model=RoleResponse)
async def add_role_permissions(
    role_id: int,
    data: PermissionListRequest,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "update")),
):
    """Grant permissions to a role."""
    role = await rbac.add_permissions(role_id, data.permissions)
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    await rbac.commit()
    return RoleResponse.model_validate(role)


@router.delete("/roles/{role_id}/permissions", response_model=RoleResponse)
async def remove_role_permissions(
    role_id: int,
    data: PermissionListRequest,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "update")),
):
    """Revoke permissions from a role."""
    role = await rbac.remove_permissions(role_id, data.permissions)
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    await rbac.commit()
    return RoleResponse.model_validate(role)


@router.get("/users/{user_id}/roles", response_model=list[UserRoleResponse])
async def list_user_roles(
    user_id: int,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "read")),
):
    """Roles held by a user."""
    assignments = await rbac.get_user_roles(user_id)
    return [UserRoleResponse.model_validate(a) for a in assignments]


@router.post("/users/{user_id}/roles", response_model=UserRoleResponse, status_code=status.HTTP_201_CREATED)
async def assign_role(
    user_id: int,
    data: RoleAssignRequest,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "update")),
):
    """Give a role to a user."""
    assignment = await rbac.assign_role(
        user_id=user_id,
        role_id=data.role_id,
        institution_id=data.institution_id,
        polo_id=data.polo_id,
        valid_until=data.valid_until,
    )
    if not assignment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    await rbac.commit()
    return UserRoleResponse.model_validate(assignment)


@router.delete("/users/{user_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_role(
    user_id: int,
    role_id: int,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "update")),
):
    """Take a role away from a user."""
    revoked = await rbac.revoke_role(user_id, role_id)
    if not revoked:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    await rbac.commit()


@router.get("/users/{user_id}/permissions", response_model=list[UserPermissionResponse])
async def list_user_permissions(
    user_id: int,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "read")),
):
    """Permissions granted to a user directly."""
    grants = await rbac.get_user_permissions(user_id)
    return [UserPermissionResponse.model_validate(g) for g in grants]


@router.post(
    "/users/{user_id}/permissions",
    response_model=UserPermissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_user_permission(
    user_id: int,
    data: UserPermissionGrant,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "update")),
):
    """Grant a permission directly to a user."""
    grant = await rbac.grant_user_permission(
        user_id,
        data.permission,
        institution_id=data.institution_id,
        polo_id=data.polo_id,
        expires_at=data.expires_at,
    )
    await rbac.commit()
    return UserPermissionResponse.model_validate(grant)


@router.delete("/users/{user_id}/permissions", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_user_permission(
    user_id: int,
    data: UserPermissionRevoke,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "update")),
):
    """Remove a direct grant in exactly the given scope."""
    revoked = await rbac.revoke_user_permission(
        user_id,
        data.permission,
        institution_id=data.institution_id,
        polo_id=data.polo_id,
    )
    if not revoked:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Permission not granted")
    await rbac.commit()


@router.get("/audits", response_model=list[PermissionAuditResponse])
async def list_audits(
    limit: int = Query(50, ge=1, le=500),
    actor_id: int | None = Query(None, alias="actorId"),
    resource: str | None = None,
    rbac: RBACService = Depends(get_rbac_service),
    _: AuthorizationService = Depends(require_permission("permissions", "read")),
):
    """Permission changes, most recent first."""
    entries = await rbac.audit.list_entries(limit=limit, actor_id=actor_id, resource=resource)
    return [PermissionAuditResponse.model_validate(e) for e in entries]
