"""
Contextual attribute source protocol.
Implementations: HttpAttributeSource, MemoryAttributeSource

The source answers "what is the current subscription/payment/phase state
of this entity, institution or polo". Responses are normalized once, at
the boundary, into a tagged result so evaluators match on the variant
instead of probing response shapes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Union


@dataclass(frozen=True)
class AttributeQuery:
    """Identifiers to resolve. At least one should be set."""
    entity_id: int | None = None
    institution_id: int | None = None
    polo_id: int | None = None
    resource: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityId": self.entity_id,
            "institutionId": self.institution_id,
            "poloId": self.polo_id,
            "resource": self.resource,
        }


@dataclass(frozen=True)
class ContextAttributes:
    """Current attribute values. None means the source does not know."""
    subscription_status: str | None = None
    payment_status: str | None = None
    institution_phase: str | None = None
    owner_id: int | None = None


@dataclass(frozen=True)
class Found:
    attributes: ContextAttributes


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Failed:
    reason: str
    timed_out: bool = False


AttributeLookup = Union[Found, NotFound, Failed]


class AttributeSource(Protocol):
    """
    Protocol for contextual attribute sources.

    fetch() must not raise for transport or server errors; those are
    returned as Failed. Cancellation is allowed to propagate.
    """

    async def fetch(self, query: AttributeQuery) -> AttributeLookup:
        """Resolve current attribute values for the query."""
        ...

    async def close(self) -> None:
        """Release underlying resources."""
        ...


# Key spellings seen across billing/subscription providers.
_KEY_ALIASES: dict[str, tuple[str, ...]] = {
    "subscription_status": ("subscription_status", "subscriptionStatus"),
    "payment_status": ("payment_status", "paymentStatus", "status_pagamento"),
    "institution_phase": ("institution_phase", "institutionPhase", "phase"),
    "owner_id": ("owner_id", "ownerId", "created_by", "createdBy", "assigned_to", "assignedTo"),
}


def normalize_attributes(payload: Any) -> AttributeLookup:
    """
    Normalize a raw attribute payload into an AttributeLookup.

    Accepts:
        {"subscriptionStatus": "active", ...}
        {"data": {...}}
        {"found": false}
        None / []  -> NotFound

    Anything else that is not a mapping is a Failed result.
    """
    if payload is None or payload == [] or payload == {}:
        return NotFound()

    if isinstance(payload, list):
        payload = payload[0]

    if not isinstance(payload, dict):
        return Failed(reason=f"Unexpected attribute payload type: {type(payload).__name__}")

    if "data" in payload and isinstance(payload["data"], (dict, list, type(None))):
        return normalize_attributes(payload["data"])

    if payload.get("found") is False:
        return NotFound()

    values: dict[str, Any] = {}
    for name, aliases in _KEY_ALIASES.items():
        for alias in aliases:
            if payload.get(alias) is not None:
                values[name] = payload[alias]
                break

    owner_id = values.get("owner_id")
    if owner_id is not None:
        try:
            values["owner_id"] = int(owner_id)
        except (TypeError, ValueError):
            return Failed(reason=f"Invalid owner id in attribute payload: {owner_id!r}")

    for name in ("subscription_status", "payment_status", "institution_phase"):
        if name in values:
            values[name] = str(values[name]).lower()

    return Found(attributes=ContextAttributes(**values))
