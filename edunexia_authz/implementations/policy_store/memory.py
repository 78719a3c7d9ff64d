"""
In-memory policy store for development and testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from edunexia_authz.core.auth.context import Grant, RoleAssignment, ScopedGrant


def _as_grant(permission: str | Grant) -> Grant:
    return permission if isinstance(permission, Grant) else Grant.parse(permission)


@dataclass
class _RoleRecord:
    name: str
    grants: set[Grant] = field(default_factory=set)


class MemoryPolicyStore:
    """
    Dict-backed policy store.

    Note: Not shared between processes. Expiry is not modelled; revoke
    instead.

    Usage:
        store = MemoryPolicyStore()
        store.add_role(1, "editor", ["invoices:update"])
        store.assign(42, 1)
        store.assign(43, 1, institution_id=100)
        store.grant_user(44, "reports:export")
    """

    def __init__(self):
        self._roles: dict[int, _RoleRecord] = {}
        # user id -> role id -> assignment (one assignment per user and role)
        self._user_roles: dict[int, dict[int, RoleAssignment]] = {}
        self._user_grants: dict[int, set[ScopedGrant]] = {}
        self.calls = 0

    # ============ Mutation (admin side) ============

    def add_role(self, role_id: int, name: str, permissions: list[str | Grant] | None = None) -> None:
        """Create or replace a role wholesale."""
        grants = {_as_grant(p) for p in permissions or []}
        self._roles[role_id] = _RoleRecord(name=name, grants=grants)

    def remove_role(self, role_id: int) -> None:
        self._roles.pop(role_id, None)
        for held in self._user_roles.values():
            held.pop(role_id, None)

    def assign(
        self,
        user_id: int,
        role_id: int,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> None:
        """Give a role to a user, replacing the scope if already held."""
        self._user_roles.setdefault(user_id, {})[role_id] = RoleAssignment(role_id, institution_id, polo_id)

    def revoke(self, user_id: int, role_id: int) -> None:
        self._user_roles.get(user_id, {}).pop(role_id, None)

    def grant_user(
        self,
        user_id: int,
        permission: str | Grant,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> None:
        self._user_grants.setdefault(user_id, set()).add(
            ScopedGrant(_as_grant(permission), institution_id, polo_id)
        )

    def revoke_user(
        self,
        user_id: int,
        permission: str | Grant,
        institution_id: int | None = None,
        polo_id: int | None = None,
    ) -> None:
        self._user_grants.get(user_id, set()).discard(
            ScopedGrant(_as_grant(permission), institution_id, polo_id)
        )

    # ============ PolicyStore ============

    async def get_user_role_ids(self, user_id: int) -> set[int]:
        return {a.role_id for a in await self.get_user_assignments(user_id)}

    async def get_user_assignments(self, user_id: int) -> set[RoleAssignment]:
        self.calls += 1
        held = self._user_roles.get(user_id, {})
        return {a for rid, a in held.items() if rid in self._roles}

    async def get_user_grants(self, user_id: int) -> set[ScopedGrant]:
        return set(self._user_grants.get(user_id, set()))

    async def get_role_grants(self, role_ids: set[int]) -> dict[int, set[Grant]]:
        return {rid: set(self._roles[rid].grants) for rid in role_ids if rid in self._roles}

    async def get_role_holders(self, role_id: int) -> set[int]:
        return {uid for uid, held in self._user_roles.items() if role_id in held}

    async def get_role_names(self, role_ids: set[int]) -> dict[int, str]:
        return {rid: self._roles[rid].name for rid in role_ids if rid in self._roles}
