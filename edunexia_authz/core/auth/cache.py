"""
Per-subject permission cache over a PolicyStore.

The cache is an explicit object: create one, hand it to the policy
engine and to whatever mutates roles, and call invalidate() after
role/permission/assignment changes.

Usage:
    cache = PolicyCache(store, ttl=300)
    snapshot = await cache.load(user_id)
    cache.peek(user_id)            # sync, None when not loaded
    await cache.invalidate_role(role_id)
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Iterable

import structlog

from edunexia_authz.core.interfaces.policy_store import PolicyStore

from .context import Grant, ScopedGrant

logger = structlog.get_logger()


@dataclass(frozen=True)
class PermissionSnapshot:
    """
    Effective permissions of one subject at load time.

    grants hold everywhere; scoped_grants only inside their tenant.
    role_names lists the roles held without a scope. institution_ids /
    polo_ids are the tenants reached through scoped role assignments.
    """
    subject_id: int
    role_ids: frozenset[int]
    role_names: frozenset[str]
    grants: frozenset[Grant]
    loaded_at: float
    scoped_grants: frozenset[ScopedGrant] = frozenset()
    institution_ids: frozenset[int] = frozenset()
    polo_ids: frozenset[int] = frozenset()

    def allows(self, grant: Grant, institution_id: int | None = None, polo_id: int | None = None) -> bool:
        if grant in self.grants:
            return True
        return any(
            sg.grant == grant and sg.applies_to(institution_id, polo_id)
            for sg in self.scoped_grants
        )

    def effective_grants(self, institution_id: int | None = None, polo_id: int | None = None) -> set[Grant]:
        """Grants that hold for a check in the given scope."""
        grants = set(self.grants)
        grants.update(
            sg.grant for sg in self.scoped_grants
            if sg.applies_to(institution_id, polo_id)
        )
        return grants


class PolicyCache:
    """
    Snapshot cache keyed by subject id.

    Concurrent loads for the same subject share a single store
    round-trip. A load that was started before an invalidation is not
    stored, so a stale snapshot never overwrites a fresher state, and
    callers arriving after the invalidation start a fresh load instead
    of joining the stale one.
    """

    def __init__(
        self,
        store: PolicyStore,
        ttl: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.ttl = ttl
        self._clock = clock
        self._snapshots: dict[int, PermissionSnapshot] = {}
        # subject id -> (generation the load started in, task)
        self._inflight: dict[int, tuple[int, asyncio.Task[PermissionSnapshot]]] = {}
        self._generation = 0

    def _is_fresh(self, snapshot: PermissionSnapshot) -> bool:
        if not self.ttl:
            return True
        return self._clock() - snapshot.loaded_at < self.ttl

    def peek(self, subject_id: int) -> PermissionSnapshot | None:
        """Return the cached snapshot, or None if missing or expired."""
        snapshot = self._snapshots.get(subject_id)
        if snapshot is None:
            return None
        if not self._is_fresh(snapshot):
            del self._snapshots[subject_id]
            return None
        return snapshot

    async def load(self, subject_id: int, refresh: bool = False) -> PermissionSnapshot:
        """Return the subject's snapshot, loading it from the store if needed."""
        if not refresh:
            snapshot = self.peek(subject_id)
            if snapshot is not None:
                return snapshot

        inflight = self._inflight.get(subject_id)
        if inflight is not None and inflight[0] == self._generation:
            task = inflight[1]
        else:
            task = asyncio.ensure_future(self._fetch(subject_id, self._generation))
            self._inflight[subject_id] = (self._generation, task)
            task.add_done_callback(lambda t: self._forget(subject_id, t))

        # Shield so one cancelled caller does not abort the shared load.
        return await asyncio.shield(task)

    def _forget(self, subject_id: int, task: asyncio.Task[PermissionSnapshot]) -> None:
        inflight = self._inflight.get(subject_id)
        if inflight is not None and inflight[1] is task:
            del self._inflight[subject_id]

    async def _fetch(self, subject_id: int, generation: int) -> PermissionSnapshot:
        assignments = await self.store.get_user_assignments(subject_id)
        direct = await self.store.get_user_grants(subject_id)

        role_ids = {a.role_id for a in assignments}
        grants_by_role = await self.store.get_role_grants(role_ids) if role_ids else {}
        names = await self.store.get_role_names(role_ids) if role_ids else {}

        grants: set[Grant] = set()
        scoped: set[ScopedGrant] = set()
        for assignment in assignments:
            for grant in grants_by_role.get(assignment.role_id, ()):
                if assignment.is_global:
                    grants.add(grant)
                else:
                    scoped.add(ScopedGrant(grant, assignment.institution_id, assignment.polo_id))
        for scoped_grant in direct:
            if scoped_grant.is_global:
                grants.add(scoped_grant.grant)
            else:
                scoped.add(scoped_grant)

        snapshot = PermissionSnapshot(
            subject_id=subject_id,
            role_ids=frozenset(role_ids),
            role_names=frozenset(
                names[a.role_id] for a in assignments if a.is_global and a.role_id in names
            ),
            grants=frozenset(grants),
            loaded_at=self._clock(),
            scoped_grants=frozenset(scoped),
            institution_ids=frozenset(
                a.institution_id for a in assignments if a.institution_id is not None
            ),
            polo_ids=frozenset(a.polo_id for a in assignments if a.polo_id is not None),
        )

        if generation == self._generation:
            self._snapshots[subject_id] = snapshot
        else:
            logger.debug("Discarding policy snapshot loaded before invalidation", subject_id=subject_id)

        logger.debug(
            "Policy snapshot loaded",
            subject_id=subject_id,
            roles=len(role_ids),
            grants=len(grants),
            scoped_grants=len(scoped),
        )
        return snapshot

    def invalidate(self, subject_ids: Iterable[int] | None = None) -> None:
        """Drop cached snapshots for the given subjects, or for everyone."""
        self._generation += 1
        if subject_ids is None:
            self._snapshots.clear()
            logger.info("Policy cache cleared")
            return

        dropped = [sid for sid in subject_ids if self._snapshots.pop(sid, None) is not None]
        logger.info("Policy cache invalidated", subjects=sorted(dropped))

    async def invalidate_role(self, role_id: int) -> set[int]:
        """
        Invalidate every subject affected by a change to role_id.

        Affected subjects are the current holders in the store plus any
        cached snapshot that still references the role.
        """
        holders = await self.store.get_role_holders(role_id)
        cached = {sid for sid, snap in self._snapshots.items() if role_id in snap.role_ids}
        affected = holders | cached
        self.invalidate(affected)
        return affected
