"""
Allow-lists mapping a status or lifecycle phase to the actions it permits.

A status missing from a table permits nothing.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ActionRule:
    """
    Actions permitted while an entity is in a given state.

    only: if set, just these actions are permitted
    excluded: actions never permitted in this state
    """
    only: frozenset[str] | None = None
    excluded: frozenset[str] = frozenset()

    def permits(self, action: str) -> bool:
        if action in self.excluded:
            return False
        if self.only is not None:
            return action in self.only
        return True


ANY_ACTION = ActionRule()

READ_ACTIONS = frozenset({"read", "list", "view_history"})

# Actions that release value to the student (certificates, course access).
SETTLEMENT_ACTIONS = frozenset({
    "complete",
    "issue_certificate",
    "grant_access",
    "issue",
    "sign",
    "publish",
})


SUBSCRIPTION_STATUS_RULES: dict[str, ActionRule] = {
    "active": ANY_ACTION,
    "trial": ActionRule(excluded=frozenset({"access_premium_features"})),
    "expired": ActionRule(only=READ_ACTIONS | {"renew"}),
    "suspended": ActionRule(only=READ_ACTIONS | {"reactivate"}),
    "cancelled": ActionRule(only=READ_ACTIONS),
    "canceled": ActionRule(only=READ_ACTIONS),
}


PAYMENT_STATUS_RULES: dict[str, ActionRule] = {
    "paid": ANY_ACTION,
    "pending": ActionRule(excluded=SETTLEMENT_ACTIONS),
    "overdue": ActionRule(excluded=SETTLEMENT_ACTIONS | {"create", "enroll"}),
    "refunded": ActionRule(only=READ_ACTIONS),
    "canceled": ActionRule(only=READ_ACTIONS),
    "cancelled": ActionRule(only=READ_ACTIONS),
}


INSTITUTION_PHASE_RULES: dict[str, ActionRule] = {
    "prospecting": ActionRule(only=frozenset({"read", "list"})),
    "onboarding": ActionRule(excluded=frozenset({"delete", "cancel"})),
    "implementation": ActionRule(excluded=frozenset({"delete", "cancel"})),
    "active": ANY_ACTION,
    "suspended": ActionRule(only=READ_ACTIONS),
    "canceled": ActionRule(only=frozenset({"read", "list"})),
    "cancelled": ActionRule(only=frozenset({"read", "list"})),
}


def permits(rules: dict[str, ActionRule], status: str, action: str) -> bool:
    """True if the rule table lets `action` through while in `status`."""
    rule = rules.get(status.lower())
    if rule is None:
        return False
    return rule.permits(action)
