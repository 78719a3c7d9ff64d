"""
Condition evaluators for contextual authorization.

Built-in conditions (keyed by ConditionContext attribute):
- entity_owner_id: subject owns the entity
- institution_id / polo_id: subject is attached to the tenant
- date_range: now is inside the range
- entity_id: entity resolves through the attribute source
- subscription_status / payment_status / institution_phase: allow-lists per action

Add custom conditions with @AuthRegistry.condition decorator.
"""

from .builtin import (
    EntityOwnerCondition,
    InstitutionScopeCondition,
    PoloScopeCondition,
    DateRangeCondition,
    EntityExistsCondition,
    StatusCondition,
    SubscriptionStatusCondition,
    PaymentStatusCondition,
    InstitutionPhaseCondition,
)
from .rules import ActionRule

__all__ = [
    "EntityOwnerCondition",
    "InstitutionScopeCondition",
    "PoloScopeCondition",
    "DateRangeCondition",
    "EntityExistsCondition",
    "StatusCondition",
    "SubscriptionStatusCondition",
    "PaymentStatusCondition",
    "InstitutionPhaseCondition",
    "ActionRule",
]
