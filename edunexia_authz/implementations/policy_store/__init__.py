"""Policy store implementations."""

from edunexia_authz.implementations.policy_store.memory import MemoryPolicyStore
from edunexia_authz.implementations.policy_store.database import DatabasePolicyStore

__all__ = ["MemoryPolicyStore", "DatabasePolicyStore"]
