"""
Tests for attribute normalization and the HTTP attribute source.
"""

import json

import httpx
import pytest

from edunexia_authz.core.interfaces import (
    AttributeQuery,
    ContextAttributes,
    Failed,
    Found,
    NotFound,
    normalize_attributes,
)
from edunexia_authz.implementations.attributes import HttpAttributeSource


# ============ normalize_attributes ============


def test_normalize_camel_case():
    result = normalize_attributes({
        "subscriptionStatus": "Active",
        "paymentStatus": "PAID",
        "institutionPhase": "onboarding",
        "ownerId": "42",
    })

    assert result == Found(ContextAttributes(
        subscription_status="active",
        payment_status="paid",
        institution_phase="onboarding",
        owner_id=42,
    ))


def test_normalize_wrapped_and_listed_payloads():
    assert normalize_attributes({"data": {"payment_status": "paid"}}) == Found(
        ContextAttributes(payment_status="paid")
    )
    assert normalize_attributes([{"phase": "active"}, {"phase": "suspended"}]) == Found(
        ContextAttributes(institution_phase="active")
    )


def test_normalize_owner_aliases():
    assert normalize_attributes({"created_by": 7}) == Found(ContextAttributes(owner_id=7))
    assert normalize_attributes({"assignedTo": 8}) == Found(ContextAttributes(owner_id=8))


@pytest.mark.parametrize("payload", [None, [], {}, {"found": False}, {"data": None}])
def test_normalize_not_found(payload):
    assert normalize_attributes(payload) == NotFound()


@pytest.mark.parametrize("payload", ["active", 3, {"ownerId": "someone"}])
def test_normalize_unusable_payload(payload):
    assert isinstance(normalize_attributes(payload), Failed)


# ============ HttpAttributeSource ============


def source_for(handler) -> HttpAttributeSource:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="http://billing.test/api",
    )
    return HttpAttributeSource("http://billing.test/api", client=client)


@pytest.mark.asyncio
async def test_posts_query_and_normalizes():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"paymentStatus": "pending"})

    source = source_for(handler)
    result = await source.fetch(AttributeQuery(entity_id=7, resource="enrollments"))

    assert result == Found(ContextAttributes(payment_status="pending"))
    assert seen["path"] == "/api/attributes"
    assert seen["body"] == {"entityId": 7, "resource": "enrollments"}


@pytest.mark.asyncio
async def test_404_is_not_found():
    source = source_for(lambda request: httpx.Response(404))

    assert await source.fetch(AttributeQuery(entity_id=7)) == NotFound()


@pytest.mark.asyncio
async def test_server_error_is_failed():
    source = source_for(lambda request: httpx.Response(503, text="unavailable"))

    result = await source.fetch(AttributeQuery(entity_id=7))

    assert isinstance(result, Failed)
    assert "503" in result.reason
    assert not result.timed_out


@pytest.mark.asyncio
async def test_transport_error_is_failed():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = await source_for(handler).fetch(AttributeQuery(entity_id=7))

    assert isinstance(result, Failed)
    assert not result.timed_out


@pytest.mark.asyncio
async def test_transport_timeout_is_flagged():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    result = await source_for(handler).fetch(AttributeQuery(entity_id=7))

    assert isinstance(result, Failed)
    assert result.timed_out


@pytest.mark.asyncio
async def test_invalid_json_is_failed():
    source = source_for(lambda request: httpx.Response(200, text="<html>"))

    assert isinstance(await source.fetch(AttributeQuery(entity_id=7)), Failed)


@pytest.mark.asyncio
async def test_token_is_sent_as_bearer():
    source = HttpAttributeSource("http://billing.test/api", token="s3cret")

    assert source._client.headers["Authorization"] == "Bearer s3cret"
    await source.close()
