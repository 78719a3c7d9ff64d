"""
Policy engines for authorization.

Available engines:
- rbac: Role-based, union of grants across held roles
"""

from .rbac import RBACPolicyEngine

__all__ = ["RBACPolicyEngine"]
