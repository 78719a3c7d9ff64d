"""
In-memory attribute source for development and testing.
"""

from __future__ import annotations

import asyncio
from typing import Any

from edunexia_authz.core.interfaces.attributes import (
    AttributeLookup,
    AttributeQuery,
    Failed,
    NotFound,
    normalize_attributes,
)


class MemoryAttributeSource:
    """
    Dict-backed attribute source.

    Entries are raw payloads, normalized exactly like HTTP responses.
    Lookup order: entity, then institution, then polo.

    Usage:
        source = MemoryAttributeSource()
        source.set_entity(7, {"paymentStatus": "paid"})
        source.set_institution(3, {"phase": "active"}, delay=0.1)
        source.fail_with("billing offline")
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls = 0
        self.queries: list[AttributeQuery] = []
        self._entries: dict[tuple[str, int], tuple[Any, float | None]] = {}
        self._failure: str | None = None

    def set_entity(self, entity_id: int, payload: Any, delay: float | None = None) -> None:
        self._entries[("entity", entity_id)] = (payload, delay)

    def set_institution(self, institution_id: int, payload: Any, delay: float | None = None) -> None:
        self._entries[("institution", institution_id)] = (payload, delay)

    def set_polo(self, polo_id: int, payload: Any, delay: float | None = None) -> None:
        self._entries[("polo", polo_id)] = (payload, delay)

    def fail_with(self, reason: str | None) -> None:
        """Make every fetch return Failed(reason). None restores normal lookups."""
        self._failure = reason

    def _find(self, query: AttributeQuery) -> tuple[Any, float | None] | None:
        for kind, key in (
            ("entity", query.entity_id),
            ("institution", query.institution_id),
            ("polo", query.polo_id),
        ):
            if key is not None and (kind, key) in self._entries:
                return self._entries[(kind, key)]
        return None

    async def fetch(self, query: AttributeQuery) -> AttributeLookup:
        self.calls += 1
        self.queries.append(query)

        entry = self._find(query)
        delay = self.delay
        if entry is not None and entry[1] is not None:
            delay = entry[1]
        if delay:
            await asyncio.sleep(delay)

        if self._failure is not None:
            return Failed(reason=self._failure)
        if entry is None:
            return NotFound()
        return normalize_attributes(entry[0])

    async def close(self) -> None:
        pass
