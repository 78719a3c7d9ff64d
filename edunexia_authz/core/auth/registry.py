"""
Authorization plugin registry.

Allows registering policy engines and condition evaluators without
modifying core code. Implementations register themselves using
decorators.

Usage:
    @AuthRegistry.condition("enrollment_window")
    class EnrollmentWindowCondition(ConditionEvaluator):
        ...

    # Later, get by name:
    evaluator = AuthRegistry.get_condition_evaluator("enrollment_window")
"""

from typing import Type, Callable, Any
from .interfaces import PolicyEngine, ConditionEvaluator


class AuthRegistry:
    """
    Central registry for authorization components.

    Components register themselves using decorators.
    """

    _policy_engines: dict[str, Type[PolicyEngine]] = {}
    _condition_evaluators: dict[str, Type[ConditionEvaluator]] = {}

    # ============================================================
    # REGISTRATION DECORATORS
    # ============================================================

    @classmethod
    def policy_engine(cls, name: str) -> Callable[[Type[PolicyEngine]], Type[PolicyEngine]]:
        """
        Decorator to register a policy engine.

        Usage:
            @AuthRegistry.policy_engine("rbac")
            class RBACPolicyEngine(PolicyEngine):
                ...
        """
        def decorator(engine_class: Type[PolicyEngine]) -> Type[PolicyEngine]:
            cls._policy_engines[name] = engine_class
            return engine_class
        return decorator

    @classmethod
    def condition(cls, condition_type: str) -> Callable[[Type[ConditionEvaluator]], Type[ConditionEvaluator]]:
        """
        Decorator to register a condition evaluator.

        Usage:
            @AuthRegistry.condition("entity_owner_id")
            class EntityOwnerCondition(ConditionEvaluator):
                ...
        """
        def decorator(evaluator_class: Type[ConditionEvaluator]) -> Type[ConditionEvaluator]:
            cls._condition_evaluators[condition_type] = evaluator_class
            return evaluator_class
        return decorator

    # ============================================================
    # GETTERS
    # ============================================================

    @classmethod
    def get_policy_engine(cls, name: str, **kwargs: Any) -> PolicyEngine:
        """
        Get a policy engine by name.

        Raises:
            ValueError: If engine not found
        """
        engine_class = cls._policy_engines.get(name)
        if not engine_class:
            available = list(cls._policy_engines.keys())
            raise ValueError(
                f"Unknown policy engine: '{name}'. "
                f"Available: {available}"
            )
        return engine_class(**kwargs)

    @classmethod
    def get_condition_evaluator(cls, condition_type: str, **kwargs: Any) -> ConditionEvaluator:
        """
        Get a condition evaluator by type.

        Raises:
            ValueError: If condition type not found
        """
        evaluator_class = cls._condition_evaluators.get(condition_type)
        if not evaluator_class:
            available = list(cls._condition_evaluators.keys())
            raise ValueError(
                f"Unknown condition type: '{condition_type}'. "
                f"Available: {available}"
            )
        return evaluator_class(**kwargs)

    # ============================================================
    # INTROSPECTION
    # ============================================================

    @classmethod
    def list_policy_engines(cls) -> list[str]:
        """List all registered policy engine names."""
        return list(cls._policy_engines.keys())

    @classmethod
    def list_conditions(cls) -> list[str]:
        """List all registered condition types."""
        return list(cls._condition_evaluators.keys())

    @classmethod
    def has_condition(cls, condition_type: str) -> bool:
        """Check if a condition type is registered."""
        return condition_type in cls._condition_evaluators
