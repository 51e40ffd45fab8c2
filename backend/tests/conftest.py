"""Root conftest — shared test configuration, in-memory database and auth helpers.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - Tokens are signed with the test secret the app verifies against
    - Two organizations (org_a, org_b) exist for isolation tests

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for store and
      route tests (PostgreSQL-specific features not exercised here)
    - Environment set before any hera_core import so get_settings() sees it
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-hs256-signing-only")
os.environ.setdefault("LOG_FORMAT", "text")

from datetime import datetime, timedelta, timezone  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession, create_async_engine, async_sessionmaker,
)

from hera_core.config import get_settings  # noqa: E402
from hera_core.core.request_context import build_context  # noqa: E402
from hera_core.db.base import Base  # noqa: E402
import hera_core.models  # noqa: E402,F401
from hera_core.services.entity_store import EntityStore, create_organization  # noqa: E402


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def org_a(test_db):
    return await create_organization(test_db, "Salon A", "ORG-A")


@pytest.fixture
async def org_b(test_db):
    return await create_organization(test_db, "Salon B", "ORG-B")


@pytest.fixture
def store_a(test_db, org_a):
    return EntityStore(test_db, org_a.id)


@pytest.fixture
def store_b(test_db, org_b):
    return EntityStore(test_db, org_b.id)


@pytest.fixture
def make_context():
    """Build a Context for (organization, role, permissions) without a token."""
    def _make(org, user_id="u-member", role="member", permissions=("tiles.read",), **kw):
        claims = {
            "user_id": user_id, "role": role,
            "permissions": list(permissions), "organization_id": str(org.id),
        }
        return build_context(claims, str(org.id), **kw)
    return _make


@pytest.fixture
def make_token():
    """Sign an HS256 bearer token with the test secret."""
    def _make(claims: dict, expires_in: int = 300) -> str:
        settings = get_settings()
        payload = {
            **claims,
            "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return _make


@pytest.fixture
def auth_headers(make_token):
    """Authorization + X-Organization-Id headers for a user of org."""
    def _make(org, user_id="u-member", role="member", permissions=("tiles.read",),
              requested_org=None):
        token = make_token({
            "user_id": user_id, "role": role, "permissions": list(permissions),
            "organization_id": str(org.id), "email": f"{user_id}@example.com",
        })
        return {
            "Authorization": f"Bearer {token}",
            "X-Organization-Id": str(requested_org if requested_org is not None else org.id),
        }
    return _make
