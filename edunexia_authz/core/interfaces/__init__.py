"""
Core interfaces (protocols) for pluggable backends.
"""

from .attributes import (
    AttributeSource,
    AttributeQuery,
    AttributeLookup,
    ContextAttributes,
    Found,
    NotFound,
    Failed,
    normalize_attributes,
)
from .policy_store import PolicyStore

__all__ = [
    "AttributeSource",
    "AttributeQuery",
    "AttributeLookup",
    "ContextAttributes",
    "Found",
    "NotFound",
    "Failed",
    "normalize_attributes",
    "PolicyStore",
]
