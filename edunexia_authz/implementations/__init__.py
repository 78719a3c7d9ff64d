"""
Backend implementations for core interfaces.
"""

from edunexia_authz.implementations.attributes import HttpAttributeSource, MemoryAttributeSource
from edunexia_authz.implementations.policy_store import MemoryPolicyStore, DatabasePolicyStore

__all__ = [
    "HttpAttributeSource",
    "MemoryAttributeSource",
    "MemoryPolicyStore",
    "DatabasePolicyStore",
]
