"""
Tests for the combined RBAC + contextual authorization service.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from edunexia_authz.core.auth import (
    AttributeSourceTimeout,
    AuthRegistry,
    AuthorizationService,
    ConditionContext,
    Subject,
    ContextualCheckFailed,
    DateRange,
    InvalidContext,
    PolicyCache,
    PolicyLoadPending,
)
from edunexia_authz.core.interfaces import AttributeQuery, Failed
from edunexia_authz.implementations.policy_store import MemoryPolicyStore

from tests.conftest import EDITOR, NOBODY, VIEWER


class ErrorRecorder:
    def __init__(self):
        self.errors = []

    def __call__(self, error):
        self.errors.append(error)


class HangingSource:
    """Attribute source that never answers."""

    def __init__(self):
        self.calls = 0

    async def fetch(self, query: AttributeQuery):
        self.calls += 1
        await asyncio.sleep(3600)

    async def close(self) -> None:
        pass


class BrokenStore:
    async def get_user_assignments(self, user_id: int):
        raise ConnectionError("database down")


# ============ RBAC ============


@pytest.mark.asyncio
async def test_has_permission_false_until_loaded(make_auth):
    auth = make_auth(EDITOR)

    assert not auth.has_permission("invoices", "update")
    await auth.load()
    assert auth.has_permission("invoices", "update")


@pytest.mark.asyncio
async def test_subject_without_roles(make_auth):
    auth = make_auth(NOBODY)
    await auth.load()

    assert not auth.has_permission("users", "create")
    assert not await auth.check_condition(ConditionContext("users", "create"))


@pytest.mark.asyncio
async def test_unauthenticated_is_denied(make_auth):
    auth = make_auth(None)
    await auth.load()

    assert not auth.has_permission("contacts", "read")
    assert not await auth.check_condition(ConditionContext("contacts", "read"))


@pytest.mark.asyncio
async def test_permissions_map(editor_auth):
    perms = editor_auth.permissions_map()

    assert perms["invoices:update"] is True
    assert "users:create" not in perms


@pytest.mark.asyncio
async def test_check_condition_loads_permissions_on_demand(make_auth):
    auth = make_auth(EDITOR)

    assert await auth.check_condition(ConditionContext("contacts", "read"))


@pytest.mark.asyncio
async def test_policy_load_failure_denies_and_reports():
    broken = AuthRegistry.get_policy_engine("rbac", cache=PolicyCache(BrokenStore()))
    auth = AuthorizationService(EDITOR, broken)
    recorder = ErrorRecorder()

    assert not await auth.check_condition(ConditionContext("contacts", "read"), on_error=recorder)
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], PolicyLoadPending)


# ============ No context ============


@pytest.mark.asyncio
async def test_no_context_allows_without_network_call(make_auth, attributes):
    auth = make_auth(VIEWER)
    await auth.load()

    assert await auth.check_condition(ConditionContext("contacts", "read"))
    assert attributes.calls == 0


@pytest.mark.asyncio
async def test_rbac_denial_skips_conditions(make_auth, attributes):
    auth = make_auth(VIEWER)
    await auth.load()

    allowed = await auth.check_condition(
        ConditionContext("enrollments", "read", entity_id=7, payment_status="paid")
    )

    assert not allowed
    assert attributes.calls == 0


# ============ Owner scenario ============


@pytest.mark.asyncio
async def test_editor_updates_own_invoice(editor_auth):
    ctx = ConditionContext("invoices", "update", entity_owner_id=EDITOR.id)

    assert await editor_auth.check_condition(ctx)


@pytest.mark.asyncio
async def test_editor_cannot_update_someone_elses_invoice(editor_auth):
    ctx = ConditionContext("invoices", "update", entity_owner_id=VIEWER.id)

    assert not await editor_auth.check_condition(ctx)


# ============ AND semantics ============


def passing_attributes() -> dict:
    now = datetime.now(timezone.utc)
    return {
        "entity_owner_id": EDITOR.id,
        "institution_id": 100,
        "polo_id": 500,
        "date_range": DateRange(now - timedelta(days=1), now + timedelta(days=1)),
        "subscription_status": "active",
        "payment_status": "paid",
        "institution_phase": "active",
    }


FAILING_VALUES = {
    "entity_owner_id": VIEWER.id,
    "institution_id": 999,
    "polo_id": 999,
    "date_range": DateRange(
        datetime(2020, 1, 1, tzinfo=timezone.utc),
        datetime(2020, 12, 31, tzinfo=timezone.utc),
    ),
    "subscription_status": "expired",
    "payment_status": "pending",
    "institution_phase": "prospecting",
}


@pytest.mark.asyncio
async def test_all_predicates_pass(make_auth):
    auth = make_auth(EDITOR, attribute_source=None)
    await auth.load()

    ctx = ConditionContext("enrollments", "issue_certificate", **passing_attributes())

    assert await auth.check_condition(ctx)


@pytest.mark.asyncio
@pytest.mark.parametrize("flipped", sorted(FAILING_VALUES))
async def test_one_failing_predicate_denies(make_auth, flipped):
    auth = make_auth(EDITOR, attribute_source=None)
    await auth.load()

    values = passing_attributes()
    values[flipped] = FAILING_VALUES[flipped]
    ctx = ConditionContext("enrollments", "issue_certificate", **values)

    decision = await auth.authorize(ctx)

    assert not decision.allowed
    assert decision.metadata["condition"] == flipped


# ============ Remote attributes ============


@pytest.mark.asyncio
async def test_remote_status_overrides_supplied_value(editor_auth, attributes):
    attributes.set_entity(7, {"paymentStatus": "PENDING"})
    ctx = ConditionContext("enrollments", "issue_certificate", entity_id=7, payment_status="paid")

    assert not await editor_auth.check_condition(ctx)
    assert attributes.calls == 1
    assert attributes.queries[0] == AttributeQuery(entity_id=7, resource="enrollments")


@pytest.mark.asyncio
async def test_remote_lookup_happens_once_per_check(editor_auth, attributes):
    attributes.set_entity(7, {"paymentStatus": "paid", "subscriptionStatus": "active", "phase": "active"})
    ctx = ConditionContext(
        "enrollments",
        "issue_certificate",
        entity_id=7,
        payment_status="paid",
        subscription_status="active",
        institution_phase="active",
    )

    assert await editor_auth.check_condition(ctx)
    assert attributes.calls == 1


@pytest.mark.asyncio
async def test_local_denial_avoids_network_call(editor_auth, attributes):
    attributes.set_entity(7, {"paymentStatus": "paid"})
    ctx = ConditionContext("enrollments", "issue_certificate", entity_id=7, payment_status="paid", polo_id=999)

    assert not await editor_auth.check_condition(ctx)
    assert attributes.calls == 0


@pytest.mark.asyncio
async def test_unknown_entity_denies_without_error(editor_auth):
    recorder = ErrorRecorder()
    ctx = ConditionContext("enrollments", "read", entity_id=404)

    assert not await editor_auth.check_condition(ctx, on_error=recorder)
    assert recorder.errors == []


@pytest.mark.asyncio
async def test_entity_without_source_is_not_looked_up(make_auth):
    auth = make_auth(EDITOR, attribute_source=None)
    await auth.load()

    assert await auth.check_condition(ConditionContext("enrollments", "read", entity_id=7))


@pytest.mark.asyncio
async def test_owner_only_context_needs_no_lookup(editor_auth, attributes):
    ctx = ConditionContext("invoices", "update", entity_owner_id=EDITOR.id)

    assert await editor_auth.check_condition(ctx)
    assert attributes.calls == 0


# ============ Failures ============


@pytest.mark.asyncio
async def test_source_failure_denies_and_reports_once(editor_auth, attributes):
    attributes.set_entity(7, {"paymentStatus": "paid"})
    attributes.fail_with("billing offline")
    recorder = ErrorRecorder()
    ctx = ConditionContext("enrollments", "issue_certificate", entity_id=7, payment_status="paid")

    assert not await editor_auth.check_condition(ctx, on_error=recorder)
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], ContextualCheckFailed)
    assert not isinstance(recorder.errors[0], AttributeSourceTimeout)


@pytest.mark.asyncio
async def test_timeout_denies_and_reports_once(make_auth):
    source = HangingSource()
    auth = make_auth(EDITOR, attribute_source=source)
    await auth.load()
    recorder = ErrorRecorder()
    ctx = ConditionContext("enrollments", "issue_certificate", entity_id=7, payment_status="paid")

    assert not await auth.check_condition(ctx, on_error=recorder, timeout=0.05)
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], AttributeSourceTimeout)
    assert source.calls == 1


@pytest.mark.asyncio
async def test_source_reported_timeout_maps_to_timeout_error(make_auth):
    class TimedOutSource:
        async def fetch(self, query):
            return Failed(reason="upstream timed out", timed_out=True)

        async def close(self):
            pass

    auth = make_auth(EDITOR, attribute_source=TimedOutSource())
    await auth.load()
    recorder = ErrorRecorder()

    ctx = ConditionContext("enrollments", "read", entity_id=7)
    assert not await auth.check_condition(ctx, on_error=recorder)
    assert isinstance(recorder.errors[0], AttributeSourceTimeout)


@pytest.mark.asyncio
async def test_raising_source_still_denies(make_auth):
    class RaisingSource:
        async def fetch(self, query):
            raise RuntimeError("boom")

        async def close(self):
            pass

    auth = make_auth(EDITOR, attribute_source=RaisingSource())
    await auth.load()
    recorder = ErrorRecorder()

    ctx = ConditionContext("enrollments", "read", entity_id=7)
    assert not await auth.check_condition(ctx, on_error=recorder)
    assert len(recorder.errors) == 1


@pytest.mark.asyncio
async def test_invalid_context_denies_and_reports(editor_auth):
    now = datetime.now(timezone.utc)
    recorder = ErrorRecorder()
    ctx = ConditionContext(
        "invoices",
        "update",
        date_range=DateRange(now + timedelta(days=1), now - timedelta(days=1)),
    )

    assert not await editor_auth.check_condition(ctx, on_error=recorder)
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], InvalidContext)


@pytest.mark.asyncio
async def test_failing_error_callback_does_not_raise(editor_auth, attributes):
    attributes.fail_with("billing offline")

    def explode(error):
        raise RuntimeError("callback bug")

    ctx = ConditionContext("enrollments", "read", entity_id=7)
    assert not await editor_auth.check_condition(ctx, on_error=explode)


# ============ HTTP helpers ============


@pytest.mark.asyncio
async def test_require_raises_403(editor_auth):
    await editor_auth.require("invoices", "update", entity_owner_id=EDITOR.id)

    with pytest.raises(HTTPException) as exc_info:
        await editor_auth.require("invoices", "update", entity_owner_id=VIEWER.id)
    assert exc_info.value.status_code == 403


# ============ Tenant-scoped roles ============


def institution_finance_auth(subject: Subject) -> AuthorizationService:
    """invoices:update held only inside institution 100."""
    store = MemoryPolicyStore()
    store.add_role(1, "finance", ["invoices:update"])
    store.assign(subject.id, 1, institution_id=100)
    engine = AuthRegistry.get_policy_engine("rbac", cache=PolicyCache(store))
    return AuthorizationService(subject, engine)


@pytest.mark.asyncio
async def test_scoped_role_does_not_grant_in_other_institution():
    subject = Subject(id=7, institution_ids=frozenset({100, 200}))
    auth = institution_finance_auth(subject)
    await auth.load()

    assert await auth.check_condition(ConditionContext("invoices", "update", institution_id=100))
    assert not await auth.check_condition(ConditionContext("invoices", "update", institution_id=200))
    assert not await auth.check_condition(ConditionContext("invoices", "update"))
    assert not auth.has_permission("invoices", "update")


@pytest.mark.asyncio
async def test_scoped_role_attaches_subject_to_institution():
    subject = Subject(id=7)
    auth = institution_finance_auth(subject)
    await auth.load()

    decision = await auth.authorize(ConditionContext("invoices", "update", institution_id=100))

    assert decision.allowed
    assert auth.permissions_map(institution_id=100) == {"invoices:update": True}
    assert auth.permissions_map() == {}


# ============ Server-side ownership ============


@pytest.mark.asyncio
async def test_resolved_owner_overrides_claimed_owner(editor_auth, attributes):
    attributes.set_entity(7, {"ownerId": 99})
    ctx = ConditionContext("invoices", "update", entity_id=7, entity_owner_id=EDITOR.id)

    decision = await editor_auth.authorize(ctx)

    assert not decision.allowed
    assert decision.metadata["condition"] == "entity_owner_id"
    assert attributes.calls == 1


@pytest.mark.asyncio
async def test_resolved_owner_matching_subject_allows(editor_auth, attributes):
    attributes.set_entity(7, {"createdBy": EDITOR.id})
    ctx = ConditionContext("invoices", "update", entity_id=7, entity_owner_id=VIEWER.id)

    assert await editor_auth.check_condition(ctx)


@pytest.mark.asyncio
async def test_claimed_owner_used_when_source_reports_none(editor_auth, attributes):
    attributes.set_entity(7, {"paymentStatus": "paid"})

    assert await editor_auth.check_condition(
        ConditionContext("invoices", "update", entity_id=7, entity_owner_id=EDITOR.id)
    )
    assert not await editor_auth.check_condition(
        ConditionContext("invoices", "update", entity_id=7, entity_owner_id=VIEWER.id)
    )
