"""
RBAC Policy Engine.

Evaluates static permissions from the roles assigned to a subject.
Effective permissions are the union of grants across every held role
and direct grant; role order never matters. Grants from a scoped
assignment only count when the check names the same tenant.

Reads only from a PolicyCache. If the subject's snapshot is not loaded
yet the engine denies (fail-closed) instead of raising or waiting.
"""

from typing import Any

import structlog

from ..cache import PolicyCache
from ..context import Grant, Subject
from ..interfaces import PolicyEngine, PolicyDecision
from ..registry import AuthRegistry

logger = structlog.get_logger()

MANAGE_ACTION = "manage"


@AuthRegistry.policy_engine("rbac")
class RBACPolicyEngine(PolicyEngine):
    """
    Role-Based Access Control policy engine.

    Evaluates permissions by checking:
    1. Subject is authenticated and its snapshot is loaded
    2. Subject holds the superuser role (if configured)
    3. A global or in-scope grant gives the exact (resource, action) pair
    4. A global or in-scope grant gives (resource, "manage") (if enabled)

    Configuration:
        cache: PolicyCache with the subjects' snapshots
        manage_implies_all: "resource:manage" covers all actions (default: False)
        superuser_role: role name granted everything (default: None)
    """

    def __init__(
        self,
        cache: PolicyCache,
        manage_implies_all: bool = False,
        superuser_role: str | None = None,
        **kwargs: Any,
    ):
        self.cache = cache
        self.manage_implies_all = manage_implies_all
        self.superuser_role = superuser_role

    def evaluate(
        self,
        subject: Subject | None,
        resource: str,
        action: str,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> PolicyDecision:
        if subject is None:
            return PolicyDecision.deny("Not authenticated", code="unauthenticated")

        snapshot = self.cache.peek(subject.id)
        if snapshot is None:
            logger.debug("Policy not loaded, denying", subject_id=subject.id, resource=resource, action=action)
            return PolicyDecision.deny("Permissions not loaded yet", code="policy_load_pending")

        if self.superuser_role and self.superuser_role in snapshot.role_names:
            return PolicyDecision.allow(f"Holds {self.superuser_role}")

        if snapshot.allows(Grant(resource, action), institution_id, polo_id):
            return PolicyDecision.allow(f"Has permission: {resource}:{action}")

        if self.manage_implies_all and snapshot.allows(Grant(resource, MANAGE_ACTION), institution_id, polo_id):
            return PolicyDecision.allow(f"Has permission: {resource}:{MANAGE_ACTION}")

        return PolicyDecision.deny(f"Missing permission: {resource}:{action}", code="missing_permission")

    def get_permissions(
        self,
        subject: Subject | None,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> set[Grant]:
        if subject is None:
            return set()
        snapshot = self.cache.peek(subject.id)
        if snapshot is None:
            return set()
        return snapshot.effective_grants(institution_id, polo_id)

    def get_assigned_tenants(self, subject: Subject | None) -> tuple[frozenset[int], frozenset[int]]:
        if subject is None:
            return frozenset(), frozenset()
        snapshot = self.cache.peek(subject.id)
        if snapshot is None:
            return frozenset(), frozenset()
        return snapshot.institution_ids, snapshot.polo_ids

    def is_ready(self, subject: Subject | None) -> bool:
        return subject is not None and self.cache.peek(subject.id) is not None

    async def prepare(self, subject: Subject) -> None:
        await self.cache.load(subject.id)
