"""
Database models.
"""

from .base import Base, TimestampMixin
from .rbac import Role, Permission, UserRole, UserPermission, role_permissions
from .audit import PermissionAudit

__all__ = [
    "Base",
    "TimestampMixin",
    "Role",
    "Permission",
    "UserRole",
    "UserPermission",
    "PermissionAudit",
    "role_permissions",
]
