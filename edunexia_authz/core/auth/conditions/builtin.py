"""
Built-in condition evaluators, one per ConditionContext attribute.

Local conditions (tenant scope, date range) only look at the subject,
its assigned tenants and the supplied value. Attribute-backed conditions
(entity, owner, statuses) prefer the current value resolved from the
attribute source over the value the caller supplied.

Usage:
    await auth.check_condition(ConditionContext(
        resource="enrollments",
        action="issue_certificate",
        entity_id=enrollment.id,
        payment_status="paid",
    ))
"""

from typing import Any

from ..context import DateRange, Subject
from ..errors import InvalidContext
from ..interfaces import ConditionCheck, ConditionEvaluator
from ..registry import AuthRegistry
from .rules import (
    ActionRule,
    INSTITUTION_PHASE_RULES,
    PAYMENT_STATUS_RULES,
    SUBSCRIPTION_STATUS_RULES,
    permits,
)


@AuthRegistry.condition("entity_owner_id")
class EntityOwnerCondition(ConditionEvaluator):
    """
    The entity must be owned by the acting subject.

    When the entity was resolved through the attribute source and it
    reports an owner, that owner is checked instead of the supplied one.

    Usage:
        ConditionContext("invoices", "update", entity_owner_id=invoice.created_by)
        ConditionContext("invoices", "update", entity_owner_id=user.id, entity_id=invoice.id)
    """

    condition_type = "entity_owner_id"
    uses_attributes = True

    def __init__(self, **kwargs: Any):
        pass

    async def evaluate(
        self,
        expected: Any,
        subject: Subject,
        check: ConditionCheck,
    ) -> tuple[bool, str | None]:
        owner = expected
        if check.context.entity_id is not None and check.attributes is not None:
            if check.attributes.owner_id is not None:
                owner = check.attributes.owner_id

        if owner != subject.id:
            return False, "Resource belongs to another user"
        return True, None


@AuthRegistry.condition("institution_id")
class InstitutionScopeCondition(ConditionEvaluator):
    """Subject must be attached to the institution, by token or scoped role."""

    condition_type = "institution_id"

    def __init__(self, **kwargs: Any):
        pass

    async def evaluate(
        self,
        expected: Any,
        subject: Subject,
        check: ConditionCheck,
    ) -> tuple[bool, str | None]:
        if expected not in subject.institution_ids and expected not in check.institution_ids:
            return False, f"No access to institution {expected}"
        return True, None


@AuthRegistry.condition("polo_id")
class PoloScopeCondition(ConditionEvaluator):
    """Subject must be attached to the polo, by token or scoped role."""

    condition_type = "polo_id"

    def __init__(self, **kwargs: Any):
        pass

    async def evaluate(
        self,
        expected: Any,
        subject: Subject,
        check: ConditionCheck,
    ) -> tuple[bool, str | None]:
        if expected not in subject.polo_ids and expected not in check.polo_ids:
            return False, f"No access to polo {expected}"
        return True, None


@AuthRegistry.condition("date_range")
class DateRangeCondition(ConditionEvaluator):
    """
    The current time must fall inside the range (inclusive).

    Raises InvalidContext when start is after end or the bounds mix
    naive and aware datetimes.
    """

    condition_type = "date_range"

    def __init__(self, **kwargs: Any):
        pass

    async def evaluate(
        self,
        expected: Any,
        subject: Subject,
        check: ConditionCheck,
    ) -> tuple[bool, str | None]:
        if not isinstance(expected, DateRange):
            raise InvalidContext("date_range must be a DateRange", value=repr(expected))

        try:
            if not expected.is_valid:
                raise InvalidContext(
                    "date_range start is after end",
                    start=expected.start.isoformat(),
                    end=expected.end.isoformat(),
                )
            now = check.now
            if expected.start.tzinfo is None:
                now = now.replace(tzinfo=None)
            inside = expected.contains(now)
        except TypeError as exc:
            raise InvalidContext(f"date_range bounds are not comparable: {exc}") from exc

        if not inside:
            return False, "Outside the allowed period"
        return True, None


@AuthRegistry.condition("entity_id")
class EntityExistsCondition(ConditionEvaluator):
    """
    The entity must resolve through the attribute source.

    Without an attribute source the id is only an identifier and the
    condition holds. A NotFound lookup is handled before evaluators run.
    """

    condition_type = "entity_id"
    uses_attributes = True

    def __init__(self, **kwargs: Any):
        pass

    async def evaluate(
        self,
        expected: Any,
        subject: Subject,
        check: ConditionCheck,
    ) -> tuple[bool, str | None]:
        return True, None


class StatusCondition(ConditionEvaluator):
    """
    Base for status allow-list conditions.

    The current value from the attribute source wins over the supplied
    one; the result must permit the context's action.
    """

    uses_attributes = True
    attribute_name: str = ""
    default_rules: dict[str, ActionRule] = {}

    def __init__(self, rules: dict[str, ActionRule] | None = None, **kwargs: Any):
        self.rules = rules if rules is not None else self.default_rules

    @property
    def condition_type(self) -> str:
        return self.attribute_name

    async def evaluate(
        self,
        expected: Any,
        subject: Subject,
        check: ConditionCheck,
    ) -> tuple[bool, str | None]:
        status = expected
        if check.attributes is not None:
            current = getattr(check.attributes, self.attribute_name)
            if current is not None:
                status = current

        if not isinstance(status, str) or not status:
            raise InvalidContext(f"{self.attribute_name} must be a non-empty string", value=repr(status))

        action = check.context.action
        if not permits(self.rules, status, action):
            return False, f"Action '{action}' not allowed while {self.attribute_name} is '{status}'"
        return True, None


@AuthRegistry.condition("subscription_status")
class SubscriptionStatusCondition(StatusCondition):
    attribute_name = "subscription_status"
    default_rules = SUBSCRIPTION_STATUS_RULES


@AuthRegistry.condition("payment_status")
class PaymentStatusCondition(StatusCondition):
    attribute_name = "payment_status"
    default_rules = PAYMENT_STATUS_RULES


@AuthRegistry.condition("institution_phase")
class InstitutionPhaseCondition(StatusCondition):
    attribute_name = "institution_phase"
    default_rules = INSTITUTION_PHASE_RULES
