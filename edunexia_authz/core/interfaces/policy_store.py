"""
Policy store protocol.
Implementations: MemoryPolicyStore, DatabasePolicyStore

Read access to role -> grants and user -> roles/direct grants. The
evaluators never write through this interface.
"""
from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from edunexia_authz.core.auth.context import Grant, RoleAssignment, ScopedGrant


class PolicyStore(Protocol):
    """
    Protocol for policy stores.

    Example implementations:
    - MemoryPolicyStore: dict-backed (for testing/dev)
    - DatabasePolicyStore: roles/permissions/user_roles/user_permissions tables

    Expired assignments and grants are never returned.
    """

    async def get_user_role_ids(self, user_id: int) -> set[int]:
        """Role ids currently held by the user, in any scope."""
        ...

    async def get_user_assignments(self, user_id: int) -> set[RoleAssignment]:
        """Roles currently held by the user, with their tenant scope."""
        ...

    async def get_user_grants(self, user_id: int) -> set[ScopedGrant]:
        """Direct (non-role) grants of the user, with their tenant scope."""
        ...

    async def get_role_grants(self, role_ids: set[int]) -> dict[int, set[Grant]]:
        """Grants for each of the given roles. Unknown roles are omitted."""
        ...

    async def get_role_holders(self, role_id: int) -> set[int]:
        """User ids holding the role."""
        ...

    async def get_role_names(self, role_ids: set[int]) -> dict[int, str]:
        """Names for the given role ids."""
        ...
