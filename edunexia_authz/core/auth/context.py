"""
Value types passed into authorization checks.

- Grant: a (resource, action) pair
- ScopedGrant / RoleAssignment: grants and roles limited to a tenant
- Subject: the acting user as seen by the evaluators
- DateRange / ConditionContext: runtime attributes for contextual checks
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Grant:
    """
    A permission as a (resource, action) pair.

    Matching is exact and case-sensitive.
    """
    resource: str
    action: str

    @classmethod
    def parse(cls, permission: str) -> "Grant":
        """Parse 'resource:action'."""
        resource, sep, action = permission.partition(":")
        if not sep or not resource or not action:
            raise ValueError(f"Permission must be 'resource:action', got {permission!r}")
        return cls(resource=resource, action=action)

    def __str__(self) -> str:
        return f"{self.resource}:{self.action}"


def _scope_matches(
    scope_institution: int | None,
    scope_polo: int | None,
    institution_id: int | None,
    polo_id: int | None,
) -> bool:
    if scope_institution is not None and scope_institution != institution_id:
        return False
    if scope_polo is not None and scope_polo != polo_id:
        return False
    return True


@dataclass(frozen=True)
class ScopedGrant:
    """
    A grant that only applies inside an institution and/or polo.

    With neither set the grant is global. A scoped grant never matches a
    check that does not name its tenant.
    """
    grant: Grant
    institution_id: int | None = None
    polo_id: int | None = None

    @property
    def is_global(self) -> bool:
        return self.institution_id is None and self.polo_id is None

    def applies_to(self, institution_id: int | None = None, polo_id: int | None = None) -> bool:
        return _scope_matches(self.institution_id, self.polo_id, institution_id, polo_id)


@dataclass(frozen=True)
class RoleAssignment:
    """A role held by a user, optionally limited to a tenant."""
    role_id: int
    institution_id: int | None = None
    polo_id: int | None = None

    @property
    def is_global(self) -> bool:
        return self.institution_id is None and self.polo_id is None


@dataclass(frozen=True)
class Subject:
    """
    Authenticated actor.

    institution_ids / polo_ids are the tenants the subject may act in;
    they back the institution and polo scope conditions.
    """
    id: int
    institution_ids: frozenset[int] = field(default_factory=frozenset)
    polo_ids: frozenset[int] = field(default_factory=frozenset)


@dataclass(frozen=True)
class DateRange:
    """Inclusive window. Not validated on construction; start > end is an invalid context."""
    start: datetime
    end: datetime

    @property
    def is_valid(self) -> bool:
        return self.start <= self.end

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


# Attribute names that turn a check into a contextual one.
CONTEXT_ATTRIBUTES = (
    "entity_id",
    "institution_id",
    "polo_id",
    "subscription_status",
    "payment_status",
    "institution_phase",
    "entity_owner_id",
    "date_range",
)


@dataclass(frozen=True)
class ConditionContext:
    """
    Resource/action plus optional contextual attributes.

    Absent (None) attributes are not evaluated.

    Examples:
        ConditionContext("invoices", "update", entity_owner_id=42)
        ConditionContext("enrollments", "issue_certificate", entity_id=7, payment_status="paid")
    """
    resource: str
    action: str
    entity_id: int | None = None
    institution_id: int | None = None
    polo_id: int | None = None
    subscription_status: str | None = None
    payment_status: str | None = None
    institution_phase: str | None = None
    entity_owner_id: int | None = None
    date_range: DateRange | None = None

    def supplied(self) -> dict[str, Any]:
        """Contextual attributes that were actually supplied."""
        return {
            name: getattr(self, name)
            for name in CONTEXT_ATTRIBUTES
            if getattr(self, name) is not None
        }

    @property
    def lookup_ids(self) -> dict[str, int]:
        """Identifiers the attribute source can resolve current state for."""
        ids = {
            "entity_id": self.entity_id,
            "institution_id": self.institution_id,
            "polo_id": self.polo_id,
        }
        return {k: v for k, v in ids.items() if v is not None}

    def fingerprint(self) -> tuple:
        """Input identity used to supersede stale checks."""
        return tuple(getattr(self, f.name) for f in fields(self))
