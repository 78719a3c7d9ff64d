"""
HTTP attribute source - asks the billing/subscription service for the
current state of an entity, institution or polo.
"""

from __future__ import annotations

import httpx
import structlog

from edunexia_authz.core.interfaces.attributes import (
    AttributeLookup,
    AttributeQuery,
    Failed,
    NotFound,
    normalize_attributes,
)

logger = structlog.get_logger()


class HttpAttributeSource:
    """
    Attribute source backed by `POST {base_url}/attributes`.

    Request body:  {"entityId": 7, "institutionId": 3, "resource": "enrollments"}
    Response body: {"subscriptionStatus": "active", "paymentStatus": "paid", ...}

    404 means the entity does not exist. Server and transport errors are
    returned as Failed, never raised.

    Usage:
        source = HttpAttributeSource("http://billing.internal/api", token="...")
        result = await source.fetch(AttributeQuery(entity_id=7))
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            base_url: Attribute service root
            token: Bearer token sent with each request
            timeout: Transport timeout; the check timeout is applied on top
            client: Preconfigured client (tests pass one with a MockTransport)
        """
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
        )

    async def fetch(self, query: AttributeQuery) -> AttributeLookup:
        body = {k: v for k, v in query.to_dict().items() if v is not None}

        try:
            response = await self._client.post("/attributes", json=body)
        except httpx.TimeoutException as exc:
            logger.warning("Attribute source timed out", query=body, error=str(exc))
            return Failed(reason="Attribute source timed out", timed_out=True)
        except httpx.HTTPError as exc:
            logger.warning("Attribute source request failed", query=body, error=str(exc))
            return Failed(reason=f"Attribute source unreachable: {exc}")

        if response.status_code == 404:
            return NotFound()

        if response.status_code >= 400:
            logger.warning(
                "Attribute source error response",
                query=body,
                status_code=response.status_code,
            )
            return Failed(reason=f"Attribute source returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            return Failed(reason="Attribute source returned invalid JSON")

        return normalize_attributes(payload)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
