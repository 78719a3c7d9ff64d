"""
Authorization guard - tracks the combined check for one protected element.

The guard starts PENDING and resolves to ALLOWED or DENIED exactly once
per input. A new input supersedes the check in flight: its task is
cancelled and, should a result still arrive, the generation counter
discards it. The element always reflects the latest input.

Usage:
    guard = AuthorizationGuard(auth, "enrollments", "issue_certificate", entity_id=7)
    await guard.wait()
    guard.select(content, fallback)

    guard.submit(ConditionContext("enrollments", "read", entity_id=8))  # resets to PENDING
"""

import asyncio
import enum
from typing import Any, TypeVar

import structlog

from .context import ConditionContext
from .errors import AuthorizationError
from .service import AuthorizationService, ErrorCallback

logger = structlog.get_logger()

T = TypeVar("T")


class GuardState(str, enum.Enum):
    PENDING = "pending"
    ALLOWED = "allowed"
    DENIED = "denied"


class AuthorizationGuard:
    """
    Pending -> Allowed | Denied state machine for one guarded element.

    cancel_superseded=False keeps superseded checks running and only
    discards their results.
    """

    def __init__(
        self,
        service: AuthorizationService,
        resource: str | None = None,
        action: str | None = None,
        *,
        on_error: ErrorCallback | None = None,
        timeout: float | None = None,
        cancel_superseded: bool = True,
        **attributes: Any,
    ):
        self.service = service
        self.on_error = on_error
        self.timeout = timeout
        self.cancel_superseded = cancel_superseded

        self.state = GuardState.PENDING
        self.error: AuthorizationError | None = None
        self.context: ConditionContext | None = None

        self._initial: ConditionContext | None = None
        if resource is not None and action is not None:
            self._initial = ConditionContext(resource=resource, action=action, **attributes)

        self._closed = False
        self._generation = 0
        self._fingerprint: tuple | None = None
        self._task: asyncio.Task[None] | None = None
        self._resolved = asyncio.Event()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_pending(self) -> bool:
        return self.state is GuardState.PENDING

    @property
    def allowed(self) -> bool:
        return self.state is GuardState.ALLOWED

    def submit(self, ctx: ConditionContext) -> asyncio.Task[None] | None:
        """
        Start a check for ctx, superseding any check in flight.

        An input identical to the current one does not re-run. Returns
        the task running the check, or None when nothing was started.

        Raises:
            RuntimeError: the guard was closed
        """
        if self._closed:
            raise RuntimeError("Guard is closed")

        fingerprint = ctx.fingerprint()
        if fingerprint == self._fingerprint:
            return self._task

        if self._task is not None and not self._task.done() and self.cancel_superseded:
            self._task.cancel()

        self._generation += 1
        self._fingerprint = fingerprint
        self.context = ctx
        self.state = GuardState.PENDING
        self.error = None
        self._resolved.clear()

        self._task = asyncio.create_task(self._check(ctx, self._generation))
        return self._task

    async def _check(self, ctx: ConditionContext, generation: int) -> None:
        errors: list[AuthorizationError] = []
        decision = await self.service.authorize(ctx, on_error=errors.append, timeout=self.timeout)

        if generation != self._generation:
            logger.debug(
                "Discarding superseded authorization result",
                resource=ctx.resource,
                action=ctx.action,
                generation=generation,
                current=self._generation,
            )
            return

        self.state = GuardState.ALLOWED if decision.allowed else GuardState.DENIED
        if errors:
            self.error = errors[0]
            if self.on_error is not None:
                try:
                    self.on_error(self.error)
                except Exception:
                    logger.exception("on_error callback raised", error=self.error.code)
        self._resolved.set()

    async def update(self, ctx: ConditionContext | None = None) -> GuardState:
        """Submit ctx (or the initial context) and wait for the result."""
        ctx = ctx or self.context or self._initial
        if ctx is None:
            raise ValueError("No context to check")
        self.submit(ctx)
        return await self.wait()

    @property
    def closed(self) -> bool:
        return self._closed

    async def wait(self) -> GuardState:
        """
        Wait until the latest input resolves.

        Raises:
            RuntimeError: the guard was closed before or while waiting
        """
        if self._closed:
            raise RuntimeError("Guard is closed")
        if self._task is None:
            if self._initial is None:
                raise ValueError("No context submitted")
            self.submit(self._initial)
        await self._resolved.wait()
        if self._closed:
            raise RuntimeError("Guard is closed")
        return self.state

    def select(self, authorized: T, fallback: T | None = None) -> T | None:
        """
        Branch to render: authorized when allowed, fallback when denied,
        None while pending.
        """
        if self.state is GuardState.ALLOWED:
            return authorized
        if self.state is GuardState.DENIED:
            return fallback
        return None

    async def close(self) -> None:
        """
        Cancel the check in flight and stop the guard.

        The state stays as it was (PENDING if nothing resolved), so
        select() keeps withholding the protected branch. Pending wait()
        calls are woken and raise.
        """
        self._closed = True
        self._resolved.set()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
