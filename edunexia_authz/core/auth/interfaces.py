"""
Authorization interfaces - Core abstractions.

These define the contracts the evaluators follow. Application code
depends on these interfaces, never on a concrete engine.

Two layers:
- PolicyEngine: static RBAC grants, synchronous over loaded state
- ConditionEvaluator: one contextual (ABAC) predicate per attribute
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from edunexia_authz.core.interfaces.attributes import ContextAttributes

from .context import ConditionContext, Grant, Subject


# ============================================================
# POLICY DECISION
# ============================================================

@dataclass
class PolicyDecision:
    """
    Result of a policy evaluation.

    Attributes:
        allowed: Whether the action is permitted
        reason: Human-readable explanation (for logging)
        metadata: Additional data (failed condition, error code, etc.)
    """
    allowed: bool
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, reason: str | None = None, **metadata: Any) -> "PolicyDecision":
        return cls(allowed=True, reason=reason, metadata=metadata)

    @classmethod
    def deny(cls, reason: str = "Permission denied", **metadata: Any) -> "PolicyDecision":
        return cls(allowed=False, reason=reason, metadata=metadata)


# ============================================================
# POLICY ENGINE
# ============================================================

class PolicyEngine(ABC):
    """
    Abstract policy engine interface.

    Evaluates whether a subject holds a static (resource, action) grant.
    Evaluation is synchronous and must answer deny, not raise, when the
    subject's policy state is not available yet.

    Implementations:
    - RBACPolicyEngine: union of grants across held roles
    """

    @abstractmethod
    def evaluate(
        self,
        subject: Subject | None,
        resource: str,
        action: str,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> PolicyDecision:
        """
        Evaluate a static grant for the subject.

        institution_id / polo_id name the tenant the check happens in;
        grants limited to another tenant (or to any tenant, for an
        unscoped check) do not count.
        """
        pass

    @abstractmethod
    def get_permissions(
        self,
        subject: Subject | None,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> set[Grant]:
        """All grants that hold for the subject in the scope (empty when unknown)."""
        pass

    def get_assigned_tenants(self, subject: Subject | None) -> tuple[frozenset[int], frozenset[int]]:
        """(institution ids, polo ids) the subject reaches through scoped roles."""
        return frozenset(), frozenset()

    @abstractmethod
    async def prepare(self, subject: Subject) -> None:
        """Load whatever state evaluate() needs for the subject."""
        pass

    def is_ready(self, subject: Subject | None) -> bool:
        """Whether evaluate() can answer from loaded state."""
        return subject is not None

    def has_permission(
        self,
        subject: Subject | None,
        resource: str,
        action: str,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> bool:
        """Check if subject holds (resource, action) in the scope."""
        return self.evaluate(subject, resource, action, institution_id, polo_id).allowed


# ============================================================
# CONDITION EVALUATOR
# ============================================================

@dataclass(frozen=True)
class ConditionCheck:
    """
    Everything a condition evaluator may look at.

    attributes is None when no remote lookup happened (no source
    configured or no identifier to look up). institution_ids / polo_ids
    are the tenants the subject reaches through scoped role assignments,
    on top of the ones on the Subject.
    """
    context: ConditionContext
    now: datetime
    attributes: ContextAttributes | None = None
    institution_ids: frozenset[int] = frozenset()
    polo_ids: frozenset[int] = frozenset()


class ConditionEvaluator(ABC):
    """
    Evaluates a single contextual attribute.

    condition_type is the ConditionContext attribute name it handles.
    Evaluators with uses_attributes=True run after the remote attribute
    lookup; the others run first and can deny without a network call.
    """

    uses_attributes: bool = False

    @property
    @abstractmethod
    def condition_type(self) -> str:
        """Attribute name this evaluator handles."""
        pass

    @abstractmethod
    async def evaluate(
        self,
        expected: Any,
        subject: Subject,
        check: ConditionCheck,
    ) -> tuple[bool, str | None]:
        """
        Evaluate the condition.

        Args:
            expected: The value supplied for this attribute
            subject: The acting subject
            check: Context, current time and resolved attributes

        Returns:
            Tuple of (passed: bool, reason: str | None)

        Raises:
            InvalidContext: if the supplied value is malformed
        """
        pass
