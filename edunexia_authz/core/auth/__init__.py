"""
Authorization module - RBAC permissions with ABAC contextual conditions.

Both checks fail closed: anything that is not a clear allow (no subject,
permissions still loading, attribute service down or slow, malformed
context) is a deny.

Usage Levels:
=============

Level 1: Static permission
--------------------------
    auth.has_permission("contacts", "read")

    @router.get("/roles")
    async def handler(_: AuthorizationService = Depends(require_permission("permissions", "read"))):
        ...

Level 2: Contextual conditions
------------------------------
    await auth.check_condition(ConditionContext(
        resource="invoices",
        action="update",
        entity_owner_id=invoice.created_by,
    ))

    await auth.check_condition(
        ConditionContext("enrollments", "issue_certificate", entity_id=7, payment_status="paid"),
        on_error=report,
        timeout=2.0,
    )

Level 3: Guards
---------------
    guard = AuthorizationGuard(auth, "enrollments", "read", entity_id=7)
    await guard.wait()
    guard.select(content, fallback)

Configuration:
==============

- AUTHZ_POLICY_ENGINE: "rbac" (default)
- AUTHZ_ATTRIBUTE_SOURCE: "none" (default), "http", "memory"
- AUTHZ_CHECK_TIMEOUT: 5.0 (seconds)
- AUTHZ_CACHE_TTL: 300 (seconds)

Extensibility:
=============

Add custom conditions:
    @AuthRegistry.condition("enrollment_window")
    class EnrollmentWindowCondition(ConditionEvaluator):
        ...
"""

# Value types
from .context import (
    Grant,
    ScopedGrant,
    RoleAssignment,
    Subject,
    DateRange,
    ConditionContext,
    CONTEXT_ATTRIBUTES,
)

# Errors
from .errors import (
    AuthorizationError,
    Unauthenticated,
    PolicyLoadPending,
    InvalidContext,
    ContextualCheckFailed,
    AttributeSourceTimeout,
)

# Core interfaces (for type hints and custom implementations)
from .interfaces import (
    PolicyEngine,
    ConditionEvaluator,
    ConditionCheck,
    PolicyDecision,
)

# Registry (for extending with custom implementations)
from .registry import AuthRegistry

# Cache
from .cache import PolicyCache, PermissionSnapshot

# Service (main facade) and guard
from .service import AuthorizationService
from .guard import AuthorizationGuard, GuardState

# Dependencies (what you'll use in routes)
from .dependencies import (
    CurrentSubject,
    Authorize,
    get_current_subject,
    get_authorization_service,
    require_permission,
)

# Default implementations (auto-registered)
from .policy import RBACPolicyEngine

__all__ = [
    # Value types
    "Grant",
    "ScopedGrant",
    "RoleAssignment",
    "Subject",
    "DateRange",
    "ConditionContext",
    "CONTEXT_ATTRIBUTES",
    # Errors
    "AuthorizationError",
    "Unauthenticated",
    "PolicyLoadPending",
    "InvalidContext",
    "ContextualCheckFailed",
    "AttributeSourceTimeout",
    # Interfaces
    "PolicyEngine",
    "ConditionEvaluator",
    "ConditionCheck",
    "PolicyDecision",
    # Registry
    "AuthRegistry",
    # Cache
    "PolicyCache",
    "PermissionSnapshot",
    # Service
    "AuthorizationService",
    "AuthorizationGuard",
    "GuardState",
    # Dependencies
    "CurrentSubject",
    "Authorize",
    "get_current_subject",
    "get_authorization_service",
    "require_permission",
    # Default implementations
    "RBACPolicyEngine",
]
