"""API test fixtures — FastAPI test client over the in-memory database.

Invariants:
    - get_db overridden to open sessions on the test engine
    - db_manager patched so readiness probes and stat sessions use the test engine
    - Each test gets a fresh RateLimiter (no throttling carried between tests)

Design Decisions:
    - db_manager built with __new__: the real constructor would open a second engine
"""

import pytest
from httpx import ASGITransport, AsyncClient

import hera_core.infrastructure.database as db_module
from hera_core.api.dependencies import get_rate_limiter
from hera_core.core.rate_limit import RateLimiter
from hera_core.infrastructure.database import DatabaseSessionManager, get_db
from hera_core.main import app
from hera_core.services.resource_repository import ResourceRepository

CUSTOMERS_CONFIG = {
    "conditions": [
        {"field": "user.permissions", "operator": "contains", "value": "tiles.read"},
    ],
    "ui": {"title": "Customers", "icon": "users"},
    "stats": [
        {
            "statId": "customers",
            "label": "Customers",
            "query": {
                "table": "core_entities", "operation": "count",
                "conditions": [
                    {"field": "entity_type", "operator": "equals", "value": "customer"},
                ],
            },
        },
        {
            "statId": "broken",
            "label": "Broken",
            "query": {
                "table": "core_entities", "operation": "count",
                "conditions": [{"field": "metadata", "operator": "equals", "value": "x"}],
            },
        },
        {
            "statId": "revenue",
            "label": "Revenue",
            "format": "currency",
            "isPrivate": True,
            "query": {
                "table": "universal_transactions", "operation": "sum",
                "field": "total_amount",
            },
        },
    ],
    "actions": [
        {
            "actionId": "open",
            "label": "Open",
            "actionType": "NAVIGATE",
            "route": "/customers/{{organization.id}}",
        },
        {
            "actionId": "delete-customer",
            "label": "Delete",
            "actionType": "API_CALL",
            "operation": "delete_entity",
            "parameters": {"entity_id": "{{variables.entity_id}}"},
            "requiresConfirmation": True,
            "visibilityConditions": [
                {"field": "user.role", "operator": "equals", "value": "admin"},
            ],
        },
    ],
}


@pytest.fixture
def limiter():
    return RateLimiter(limit_per_minute=1000, burst_limit=0)


@pytest.fixture
async def client(test_engine, test_session_factory, limiter):
    """FastAPI test client with DB dependency overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager.session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


@pytest.fixture
async def customers_resource(test_db, org_a):
    """The customers tile stored for org_a only."""
    repo = ResourceRepository(test_db, org_a.id)
    await repo.save("customers", CUSTOMERS_CONFIG, "HERA.SALON.TILE.CUSTOMERS.v1")
    return "customers"
