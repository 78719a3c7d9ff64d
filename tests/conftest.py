"""
Pytest fixtures for testing.

Provides:
- SQLite database with the authorization schema
- In-memory policy store and attribute source
- Authorization services bound to test subjects
- Test client with auth helpers
"""

import os

# Keep module-level settings off the production database.
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from edunexia_authz.core.auth import (
    AuthRegistry,
    AuthorizationService,
    PolicyCache,
    Subject,
)
from edunexia_authz.core.config import AuthzSettings, DatabaseSettings, Settings
from edunexia_authz.implementations.attributes import MemoryAttributeSource
from edunexia_authz.implementations.policy_store import DatabasePolicyStore, MemoryPolicyStore
from edunexia_authz.main import create_app
from edunexia_authz.models.base import Base
from edunexia_authz.services.rbac import RBACService
from edunexia_authz.services.token import TokenService


EDITOR_ROLE = 1
VIEWER_ROLE = 2

EDITOR = Subject(id=10, institution_ids=frozenset({100}), polo_ids=frozenset({500}))
VIEWER = Subject(id=20, institution_ids=frozenset({100}))
NOBODY = Subject(id=30)


# ============ Settings ============


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        environment="testing",
        log_level="WARNING",
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path}/test.db"),
        authz=AuthzSettings(secret_key="test-secret", check_timeout=1.0),
    )


# ============ Database ============


@pytest_asyncio.fixture(scope="function")
async def db_engine(test_settings: Settings):
    """Create test database engine."""
    engine = create_async_engine(test_settings.database.url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def db_cache(session_factory) -> PolicyCache:
    """Policy cache over the test database."""
    return PolicyCache(DatabasePolicyStore(session_factory))


@pytest_asyncio.fixture
async def rbac(db: AsyncSession, db_cache: PolicyCache) -> RBACService:
    return RBACService(db, cache=db_cache)


# ============ In-memory policy ============


@pytest.fixture
def store() -> MemoryPolicyStore:
    """
    editor: invoices:update, contacts:read, enrollments:*
    viewer: contacts:read
    """
    store = MemoryPolicyStore()
    store.add_role(EDITOR_ROLE, "editor", [
        "invoices:update",
        "contacts:read",
        "enrollments:read",
        "enrollments:issue_certificate",
        "subscriptions:access_premium_features",
        "institutions:delete",
    ])
    store.add_role(VIEWER_ROLE, "viewer", ["contacts:read"])
    store.assign(EDITOR.id, EDITOR_ROLE)
    store.assign(VIEWER.id, VIEWER_ROLE)
    return store


@pytest.fixture
def cache(store: MemoryPolicyStore) -> PolicyCache:
    return PolicyCache(store)


@pytest.fixture
def engine(cache: PolicyCache):
    return AuthRegistry.get_policy_engine("rbac", cache=cache)


@pytest.fixture
def attributes() -> MemoryAttributeSource:
    return MemoryAttributeSource()


@pytest.fixture
def make_auth(engine, attributes):
    """Factory for AuthorizationService bound to a subject."""

    def make(subject: Subject | None, **kwargs) -> AuthorizationService:
        kwargs.setdefault("attribute_source", attributes)
        return AuthorizationService(subject=subject, policy_engine=engine, **kwargs)

    return make


@pytest_asyncio.fixture
async def editor_auth(make_auth) -> AuthorizationService:
    auth = make_auth(EDITOR)
    await auth.load()
    return auth


# ============ HTTP ============


@pytest_asyncio.fixture(scope="function")
async def app(test_settings: Settings, session_factory, attributes):
    return create_app(
        settings=test_settings,
        session_factory=session_factory,
        attribute_source=attributes,
    )


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def token_service(test_settings: Settings) -> TokenService:
    return TokenService(test_settings.authz)


@pytest.fixture
def auth_headers(token_service: TokenService):
    """Build auth headers for a user id (plus tenant claims)."""

    def headers(user_id: int, institution_ids=(), polo_ids=()) -> dict[str, str]:
        token = token_service.create_access_token(user_id, institution_ids, polo_ids)
        return {"Authorization": f"Bearer {token}"}

    return headers


@pytest_asyncio.fixture
async def admin_id(rbac: RBACService) -> int:
    """User 1 holds a role with every permissions:* grant."""
    role = await rbac.create_role(
        "admin",
        permissions=["permissions:read", "permissions:create", "permissions:update", "permissions:delete"],
        is_system=True,
    )
    await rbac.assign_role(1, role.id)
    await rbac.commit()
    return 1
