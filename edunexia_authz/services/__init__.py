"""
Application services.
"""

from .rbac import RBACService
from .token import TokenService, TokenClaims

__all__ = ["RBACService", "TokenService", "TokenClaims"]
