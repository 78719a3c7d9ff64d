"""
Authorization service - Main facade for authorization.

This is the primary entry point for authorization checks. It binds a
subject to a policy engine (RBAC) and runs the contextual conditions
(ABAC) on top of it.

Every failure resolves to a deny. Errors are logged and handed to the
optional on_error callback; nothing raises across has_permission or
check_condition.

Usage:
    # In route handlers:
    async def handler(auth: Authorize):
        await auth.require("invoices", "update", entity_owner_id=invoice.created_by)

    # Anywhere else:
    auth = AuthorizationService(subject, policy_engine, attribute_source)
    await auth.load()
    auth.has_permission("contacts", "read")
    await auth.check_condition(ConditionContext("enrollments", "issue_certificate", entity_id=7))
"""

import asyncio
import dataclasses
from datetime import datetime, timezone
from typing import Any, Callable

import structlog
from fastapi import HTTPException, status

from edunexia_authz.core.interfaces.attributes import (
    AttributeQuery,
    AttributeSource,
    ContextAttributes,
    Failed,
    Found,
    NotFound,
)

from .context import ConditionContext, Subject
from .errors import (
    AttributeSourceTimeout,
    AuthorizationError,
    ContextualCheckFailed,
    InvalidContext,
    PolicyLoadPending,
    Unauthenticated,
)
from .interfaces import ConditionCheck, ConditionEvaluator, PolicyDecision, PolicyEngine
from .registry import AuthRegistry

logger = structlog.get_logger()

ErrorCallback = Callable[[AuthorizationError], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthorizationService:
    """
    Authorization facade for one subject.

    Combines:
    - Policy engine: static (resource, action) grants
    - Condition evaluators: one per supplied context attribute
    - Attribute source: current subscription/payment/phase values

    A check runs in this order and stops at the first deny:
    1. policy state loaded for the subject
    2. RBAC grant for (resource, action) in the context's tenant
    3. no context attributes supplied -> allow, no remote call
    4. local conditions (institution, polo, date range)
    5. one attribute lookup, bounded by the timeout
    6. attribute-backed conditions (entity, owner, statuses, phase)
    """

    def __init__(
        self,
        subject: Subject | None,
        policy_engine: PolicyEngine,
        attribute_source: AttributeSource | None = None,
        timeout: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.subject = subject
        self.policy_engine = policy_engine
        self.attribute_source = attribute_source
        self.timeout = timeout
        self._clock = clock
        self._evaluators: dict[str, ConditionEvaluator] = {}

    # ============================================================
    # RBAC
    # ============================================================

    async def load(self) -> None:
        """
        Load the subject's role/permission state.

        Failures are logged; has_permission keeps denying until a later
        load succeeds.
        """
        if self.subject is None:
            return
        try:
            await self.policy_engine.prepare(self.subject)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Policy load failed", subject_id=self.subject.id)

    @property
    def is_loaded(self) -> bool:
        return self.policy_engine.is_ready(self.subject)

    def has_permission(
        self,
        resource: str,
        action: str,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> bool:
        """RBAC check over loaded state, in the given tenant. False while loading."""
        return self.policy_engine.has_permission(self.subject, resource, action, institution_id, polo_id)

    def permissions_map(self, institution_id: int | None = None, polo_id: int | None = None) -> dict[str, bool]:
        """Grants that hold in the scope as {"resource:action": True}."""
        grants = self.policy_engine.get_permissions(self.subject, institution_id, polo_id)
        return {str(grant): True for grant in sorted(grants, key=lambda g: (g.resource, g.action))}

    # ============================================================
    # RBAC + ABAC
    # ============================================================

    async def authorize(
        self,
        ctx: ConditionContext,
        on_error: ErrorCallback | None = None,
        timeout: float | None = None,
    ) -> PolicyDecision:
        """
        Check a context. Returns a PolicyDecision and never raises
        (except for cancellation of the calling task).

        Args:
            ctx: resource/action plus optional context attributes
            on_error: called once with the error when the check fails
            timeout: seconds allowed for the attribute lookup
        """
        try:
            decision = await self._authorize(ctx, timeout if timeout is not None else self.timeout)
        except asyncio.CancelledError:
            raise
        except AuthorizationError as exc:
            decision = self._fail(exc, ctx, on_error)
        except Exception as exc:
            logger.exception("Unexpected error during authorization", resource=ctx.resource, action=ctx.action)
            decision = self._fail(ContextualCheckFailed(str(exc) or type(exc).__name__), ctx, on_error)

        if not decision.allowed:
            logger.debug(
                "Authorization denied",
                subject_id=self.subject.id if self.subject else None,
                resource=ctx.resource,
                action=ctx.action,
                reason=decision.reason,
            )
        return decision

    async def check_condition(
        self,
        ctx: ConditionContext,
        on_error: ErrorCallback | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Combined RBAC + contextual check as a boolean."""
        decision = await self.authorize(ctx, on_error=on_error, timeout=timeout)
        return decision.allowed

    async def _authorize(self, ctx: ConditionContext, timeout: float) -> PolicyDecision:
        if self.subject is None:
            return PolicyDecision.deny("Not authenticated", code=Unauthenticated.code)

        if not self.policy_engine.is_ready(self.subject):
            await self.load()
            if not self.policy_engine.is_ready(self.subject):
                raise PolicyLoadPending("Permissions are not loaded", subject_id=self.subject.id)

        decision = self.policy_engine.evaluate(
            self.subject,
            ctx.resource,
            ctx.action,
            institution_id=ctx.institution_id,
            polo_id=ctx.polo_id,
        )
        if not decision.allowed:
            return decision

        supplied = ctx.supplied()
        if not supplied:
            return decision

        institution_ids, polo_ids = self.policy_engine.get_assigned_tenants(self.subject)
        check = ConditionCheck(
            context=ctx,
            now=self._clock(),
            institution_ids=institution_ids,
            polo_ids=polo_ids,
        )

        remote: dict[str, Any] = {}
        for name, expected in supplied.items():
            evaluator = self._get_evaluator(name)
            if evaluator is None:
                return PolicyDecision.deny(f"No evaluator for condition '{name}'", condition=name)
            if evaluator.uses_attributes:
                remote[name] = expected
                continue
            denied = await self._run(evaluator, name, expected, check)
            if denied is not None:
                return denied

        if not remote:
            return decision

        attributes = await self._lookup(ctx, timeout)
        if isinstance(attributes, NotFound):
            return PolicyDecision.deny("Entity not found", code="not_found")

        check = dataclasses.replace(check, attributes=attributes)
        for name, expected in remote.items():
            denied = await self._run(self._evaluators[name], name, expected, check)
            if denied is not None:
                return denied

        return decision

    async def _run(
        self,
        evaluator: ConditionEvaluator,
        name: str,
        expected: Any,
        check: ConditionCheck,
    ) -> PolicyDecision | None:
        passed, reason = await evaluator.evaluate(expected, self.subject, check)
        if passed:
            return None
        return PolicyDecision.deny(reason or f"Condition '{name}' not met", condition=name)

    async def _lookup(
        self,
        ctx: ConditionContext,
        timeout: float,
    ) -> ContextAttributes | NotFound | None:
        """
        Resolve current attributes with a single call.

        Returns None when there is no source or nothing to look up, so
        conditions fall back to the supplied values.
        """
        if self.attribute_source is None or not ctx.lookup_ids:
            return None

        query = AttributeQuery(resource=ctx.resource, **ctx.lookup_ids)
        try:
            result = await asyncio.wait_for(self.attribute_source.fetch(query), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise AttributeSourceTimeout(
                f"Attribute source did not answer within {timeout}s",
                timeout=timeout,
            ) from exc

        match result:
            case Found(attributes=attributes):
                return attributes
            case NotFound():
                return NotFound()
            case Failed(reason=reason, timed_out=True):
                raise AttributeSourceTimeout(reason, timeout=timeout)
            case Failed(reason=reason):
                raise ContextualCheckFailed(reason)
            case _:
                raise ContextualCheckFailed(f"Unexpected attribute lookup result: {result!r}")

    def _get_evaluator(self, name: str) -> ConditionEvaluator | None:
        evaluator = self._evaluators.get(name)
        if evaluator is None:
            if not AuthRegistry.has_condition(name):
                return None
            evaluator = AuthRegistry.get_condition_evaluator(name)
            self._evaluators[name] = evaluator
        return evaluator

    def _fail(
        self,
        error: AuthorizationError,
        ctx: ConditionContext,
        on_error: ErrorCallback | None,
    ) -> PolicyDecision:
        logger.warning(
            "Authorization check failed",
            error=error.code,
            message=error.message,
            resource=ctx.resource,
            action=ctx.action,
        )
        if on_error is not None:
            try:
                on_error(error)
            except Exception:
                logger.exception("on_error callback raised", error=error.code)
        return PolicyDecision.deny(error.message, code=error.code)

    # ============================================================
    # HTTP HELPERS
    # ============================================================

    async def authorize_or_raise(self, ctx: ConditionContext) -> None:
        """
        Check authorization or raise HTTPException(403).

        Raises:
            HTTPException: 403 if not authorized
        """
        decision = await self.authorize(ctx)

        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=decision.reason or "Permission denied",
            )

    async def require(self, resource: str, action: str, **attributes: Any) -> None:
        """
        Convenience method: require authorization or raise.

        Usage:
            await auth.require("permissions", "update")
            await auth.require("invoices", "update", entity_owner_id=invoice.created_by)
        """
        await self.authorize_or_raise(ConditionContext(resource=resource, action=action, **attributes))
