"""Contextual attribute source implementations."""

from edunexia_authz.implementations.attributes.http import HttpAttributeSource
from edunexia_authz.implementations.attributes.memory import MemoryAttributeSource

__all__ = ["HttpAttributeSource", "MemoryAttributeSource"]
