"""
Tests for the RBAC policy engine.
"""

import itertools

import pytest
import pytest_asyncio

from edunexia_authz.core.auth import AuthRegistry, Grant, PolicyCache, Subject
from edunexia_authz.implementations.policy_store import MemoryPolicyStore

from tests.conftest import EDITOR, NOBODY, VIEWER


@pytest.mark.asyncio
async def test_granted_pair_is_allowed(engine):
    await engine.prepare(EDITOR)

    assert engine.has_permission(EDITOR, "invoices", "update")
    assert engine.has_permission(EDITOR, "contacts", "read")


@pytest.mark.asyncio
async def test_ungranted_pair_is_denied(engine):
    await engine.prepare(VIEWER)

    decision = engine.evaluate(VIEWER, "invoices", "update")
    assert not decision.allowed
    assert decision.metadata["code"] == "missing_permission"


@pytest.mark.asyncio
async def test_matching_is_exact_and_case_sensitive(engine):
    await engine.prepare(EDITOR)

    assert not engine.has_permission(EDITOR, "Invoices", "update")
    assert not engine.has_permission(EDITOR, "invoices", "UPDATE")
    assert not engine.has_permission(EDITOR, "invoices", "updat")


@pytest.mark.asyncio
async def test_subject_without_roles_is_denied_everything(engine):
    await engine.prepare(NOBODY)

    for resource, action in itertools.product(
        ["users", "invoices", "contacts"],
        ["create", "read", "update", "delete"],
    ):
        assert not engine.has_permission(NOBODY, resource, action)
    assert engine.get_permissions(NOBODY) == set()


def test_not_loaded_denies_instead_of_raising(engine):
    decision = engine.evaluate(EDITOR, "invoices", "update")

    assert not decision.allowed
    assert decision.metadata["code"] == "policy_load_pending"
    assert not engine.is_ready(EDITOR)


def test_missing_subject_denies(engine):
    decision = engine.evaluate(None, "invoices", "update")

    assert not decision.allowed
    assert decision.metadata["code"] == "unauthenticated"


@pytest.mark.asyncio
async def test_union_across_roles_ignores_order():
    grants = {
        1: ["invoices:read"],
        2: ["invoices:update"],
        3: ["contacts:read"],
    }
    for order in itertools.permutations(grants):
        store = MemoryPolicyStore()
        for role_id in order:
            store.add_role(role_id, f"role{role_id}", grants[role_id])
            store.assign(7, role_id)
        engine = AuthRegistry.get_policy_engine("rbac", cache=PolicyCache(store))
        subject = Subject(id=7)
        await engine.prepare(subject)

        assert engine.get_permissions(subject) == {
            Grant("invoices", "read"),
            Grant("invoices", "update"),
            Grant("contacts", "read"),
        }


@pytest.mark.asyncio
async def test_manage_implies_all_is_opt_in():
    store = MemoryPolicyStore()
    store.add_role(1, "finance", ["invoices:manage"])
    store.assign(7, 1)
    subject = Subject(id=7)
    cache = PolicyCache(store)

    strict = AuthRegistry.get_policy_engine("rbac", cache=cache)
    lenient = AuthRegistry.get_policy_engine("rbac", cache=cache, manage_implies_all=True)
    await strict.prepare(subject)

    assert not strict.has_permission(subject, "invoices", "delete")
    assert lenient.has_permission(subject, "invoices", "delete")
    assert not lenient.has_permission(subject, "contacts", "read")


@pytest.mark.asyncio
async def test_superuser_role():
    store = MemoryPolicyStore()
    store.add_role(1, "super_admin", [])
    store.assign(7, 1)
    subject = Subject(id=7)
    cache = PolicyCache(store)

    engine = AuthRegistry.get_policy_engine("rbac", cache=cache, superuser_role="super_admin")
    await engine.prepare(subject)

    assert engine.has_permission(subject, "anything", "goes")
    assert not AuthRegistry.get_policy_engine("rbac", cache=cache).has_permission(subject, "anything", "goes")


def test_unknown_engine_name():
    with pytest.raises(ValueError, match="Unknown policy engine"):
        AuthRegistry.get_policy_engine("casbin")


def test_grant_parse():
    assert Grant.parse("invoices:update") == Grant("invoices", "update")
    assert str(Grant("invoices", "update")) == "invoices:update"
    for bad in ["invoices", ":update", "invoices:", ""]:
        with pytest.raises(ValueError):
            Grant.parse(bad)


# ============ Tenant scope ============


@pytest_asyncio.fixture
async def scoped_engine():
    """User 7 holds invoices:update only inside institution 100."""
    store = MemoryPolicyStore()
    store.add_role(1, "finance", ["invoices:update"])
    store.assign(7, 1, institution_id=100)
    engine = AuthRegistry.get_policy_engine("rbac", cache=PolicyCache(store))
    await engine.prepare(Subject(id=7))
    return engine


@pytest.mark.asyncio
async def test_scoped_role_only_applies_in_its_institution(scoped_engine):
    subject = Subject(id=7)

    assert scoped_engine.has_permission(subject, "invoices", "update", institution_id=100)
    assert not scoped_engine.has_permission(subject, "invoices", "update", institution_id=200)
    assert not scoped_engine.has_permission(subject, "invoices", "update")


@pytest.mark.asyncio
async def test_scoped_permissions_listing(scoped_engine):
    subject = Subject(id=7)

    assert scoped_engine.get_permissions(subject) == set()
    assert scoped_engine.get_permissions(subject, institution_id=100) == {Grant("invoices", "update")}
    assert scoped_engine.get_assigned_tenants(subject) == (frozenset({100}), frozenset())


@pytest.mark.asyncio
async def test_polo_scoped_role_needs_matching_polo():
    store = MemoryPolicyStore()
    store.add_role(1, "tutor", ["courses:read"])
    store.assign(7, 1, institution_id=100, polo_id=500)
    engine = AuthRegistry.get_policy_engine("rbac", cache=PolicyCache(store))
    subject = Subject(id=7)
    await engine.prepare(subject)

    assert engine.has_permission(subject, "courses", "read", institution_id=100, polo_id=500)
    assert not engine.has_permission(subject, "courses", "read", institution_id=100, polo_id=501)
    assert not engine.has_permission(subject, "courses", "read", institution_id=100)
    assert not engine.has_permission(subject, "courses", "read", polo_id=500)


@pytest.mark.asyncio
async def test_scoped_superuser_role_is_not_global():
    store = MemoryPolicyStore()
    store.add_role(1, "super_admin", [])
    store.assign(7, 1, institution_id=100)
    subject = Subject(id=7)
    engine = AuthRegistry.get_policy_engine("rbac", cache=PolicyCache(store), superuser_role="super_admin")
    await engine.prepare(subject)

    assert not engine.has_permission(subject, "anything", "goes")


@pytest.mark.asyncio
async def test_direct_user_grant():
    store = MemoryPolicyStore()
    store.grant_user(7, "reports:export")
    engine = AuthRegistry.get_policy_engine("rbac", cache=PolicyCache(store))
    subject = Subject(id=7)
    await engine.prepare(subject)

    assert engine.has_permission(subject, "reports", "export")
    assert engine.has_permission(subject, "reports", "export", institution_id=100)
