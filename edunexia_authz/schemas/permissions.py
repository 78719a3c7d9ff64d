"""
Permission and role schemas.

Request bodies accept camelCase (as sent by the portals) or snake_case.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from edunexia_authz.core.auth.context import ConditionContext, DateRange, Grant


def _check_permission(value: str) -> str:
    Grant.parse(value)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PermissionCheckRequest(CamelModel):
    """Static permission check, optionally inside a tenant."""
    resource: str = Field(min_length=1, max_length=100)
    action: str = Field(min_length=1, max_length=100)
    institution_id: int | None = None
    polo_id: int | None = None


class DateRangeSchema(CamelModel):
    start: datetime
    end: datetime


class ConditionCheckRequest(PermissionCheckRequest):
    """Permission check with contextual attributes."""
    entity_id: int | None = None
    subscription_status: str | None = None
    payment_status: str | None = None
    institution_phase: str | None = None
    entity_owner_id: int | None = None
    date_range: DateRangeSchema | None = None

    def to_context(self) -> ConditionContext:
        data = self.model_dump(exclude={"date_range"})
        date_range = None
        if self.date_range is not None:
            date_range = DateRange(start=self.date_range.start, end=self.date_range.end)
        return ConditionContext(**data, date_range=date_range)


class PermissionCheckResponse(CamelModel):
    """Serialized as {"hasPermission": ..., "reason": ...}."""
    has_permission: bool
    reason: str | None = None


class PermissionListRequest(BaseModel):
    """Permissions as 'resource:action' strings."""
    permissions: list[str] = Field(min_length=1)

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v: list[str]) -> list[str]:
        return [_check_permission(p) for p in v]


class RoleCreate(BaseModel):
    """Role creation schema."""
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    permissions: list[str] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v: list[str]) -> list[str]:
        return [_check_permission(p) for p in v]


class RoleUpdate(BaseModel):
    """
    Role update schema.

    Omitted fields are left alone; a permissions list replaces the
    role's permissions wholesale.
    """
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    permissions: list[str] | None = None

    @field_validator("permissions")
    @classmethod
    def validate_permissions(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        return [_check_permission(p) for p in v]


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    resource: str
    action: str
    description: str | None = None


class RoleResponse(BaseModel):
    """Role with its permissions."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    is_system: bool = False
    permissions: list[PermissionResponse] = Field(default_factory=list)


class RoleAssignRequest(CamelModel):
    role_id: int
    institution_id: int | None = None
    polo_id: int | None = None
    valid_until: datetime | None = None


class UserRoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    role_id: int
    role_name: str
    institution_id: int | None = None
    polo_id: int | None = None
    valid_until: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def pull_role_name(cls, data):
        role = getattr(data, "role", None)
        if role is not None:
            return {
                "user_id": data.user_id,
                "role_id": data.role_id,
                "role_name": role.name,
                "institution_id": data.institution_id,
                "polo_id": data.polo_id,
                "valid_until": data.valid_until,
            }
        return data


class UserPermissionGrant(CamelModel):
    """Direct permission for one user, optionally scoped and expiring."""
    permission: str
    institution_id: int | None = None
    polo_id: int | None = None
    expires_at: datetime | None = None

    @field_validator("permission")
    @classmethod
    def validate_permission(cls, v: str) -> str:
        return _check_permission(v)


class UserPermissionRevoke(CamelModel):
    permission: str
    institution_id: int | None = None
    polo_id: int | None = None

    @field_validator("permission")
    @classmethod
    def validate_permission(cls, v: str) -> str:
        return _check_permission(v)


class UserPermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    permission: str
    institution_id: int | None = None
    polo_id: int | None = None
    expires_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten_permission(cls, data):
        permission = getattr(data, "permission", None)
        if permission is not None and not isinstance(permission, str):
            return {
                "id": data.id,
                "user_id": data.user_id,
                "permission": permission.name,
                "institution_id": data.institution_id,
                "polo_id": data.polo_id,
                "expires_at": data.expires_at,
            }
        return data


class PermissionAuditResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: int | None = None
    action: str
    resource: str
    details: dict[str, Any] | None = None
    ip_address: str | None = None
    request_id: str | None = None
    created_at: datetime
