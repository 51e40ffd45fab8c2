"""Resource Routes — gateway decisions, stats and two-phase actions over HTTP.

Tests cover:
    - granted caller gets the resolved view without raw conditions
    - org claim/header mismatch -> 403 OrganizationMismatch; no bearer -> 401
    - another tenant's resource is the uniform Denied view, not a 404
    - one failing stat leaves its siblings intact and the response 200
    - admin-only destructive action: member denied with zero mutations,
      admin goes initial (202) -> confirm (200) -> replay (409)
    - POST /resources requires resources.write and a valid config
"""

import pytest

from hera_core.api.dependencies import get_rate_limiter
from hera_core.core.errors import NotFoundError
from hera_core.core.rate_limit import RateLimiter
from hera_core.main import app

CUSTOMER = "HERA.SALON.CUSTOMER.v1"


@pytest.fixture
async def customer(store_a):
    return await store_a.create_entity({
        "entity_type": "customer", "entity_name": "Ana", "smart_code": CUSTOMER,
    })


def _admin(auth_headers, org):
    return auth_headers(org, user_id="u-admin", role="admin",
                        permissions=("tiles.read", "resources.write"))


# ─── Gateway ─────────────────────────────────────────────────────

async def test_granted_view(client, auth_headers, org_a, customers_resource):
    res = await client.get("/api/v1/resource/customers", headers=auth_headers(org_a))
    assert res.status_code == 200
    body = res.json()
    assert body["decision"] == "granted"
    assert body["ui"]["title"] == "Customers"
    assert [s["stat_id"] for s in body["stats"]] == ["customers", "broken"]
    assert [a["action_id"] for a in body["actions"]] == ["open"]
    assert body["actions"][0]["route"] == f"/customers/{org_a.id}"
    assert "conditions" not in res.text


async def test_private_stat_visible_to_admin(client, auth_headers, org_a, customers_resource):
    res = await client.get("/api/v1/resource/customers", headers=_admin(auth_headers, org_a))
    body = res.json()
    assert "revenue" in [s["stat_id"] for s in body["stats"]]
    assert "delete-customer" in [a["action_id"] for a in body["actions"]]


async def test_missing_permission_denied(client, auth_headers, org_a, customers_resource):
    res = await client.get(
        "/api/v1/resource/customers", headers=auth_headers(org_a, permissions=()),
    )
    assert res.status_code == 200
    assert res.json() == {"resource_id": "customers", "decision": "denied"}


async def test_other_tenant_resource_is_denied_not_missing(client, auth_headers, org_b, customers_resource):
    res = await client.get("/api/v1/resource/customers", headers=auth_headers(org_b))
    assert res.json() == {"resource_id": "customers", "decision": "denied"}
    unknown = await client.get("/api/v1/resource/nope", headers=auth_headers(org_b))
    assert unknown.json() == {"resource_id": "nope", "decision": "denied"}


async def test_organization_mismatch(client, auth_headers, org_a, org_b, customers_resource):
    res = await client.get(
        "/api/v1/resource/customers",
        headers=auth_headers(org_a, requested_org=org_b.id),
    )
    assert res.status_code == 403
    assert res.json()["error"] == "OrganizationMismatch"
    assert str(org_a.id) not in res.text


async def test_missing_bearer(client, org_a):
    res = await client.get(
        "/api/v1/resource/customers", headers={"X-Organization-Id": str(org_a.id)},
    )
    assert res.status_code == 401
    assert res.json()["error"] == "MissingAuthorization"


async def test_invalid_bearer(client, org_a):
    res = await client.get(
        "/api/v1/resource/customers",
        headers={"Authorization": "Bearer junk", "X-Organization-Id": str(org_a.id)},
    )
    assert res.status_code == 401
    assert res.json()["error"] == "InvalidTokenFormat"


async def test_expired_bearer(client, make_token, org_a):
    token = make_token({"user_id": "u-1", "organization_id": str(org_a.id)}, expires_in=-10)
    res = await client.get(
        "/api/v1/resource/customers",
        headers={"Authorization": f"Bearer {token}", "X-Organization-Id": str(org_a.id)},
    )
    assert res.status_code == 401


async def test_rate_limited(client, auth_headers, org_a, customers_resource):
    tight = RateLimiter(limit_per_minute=1, burst_limit=0)
    app.dependency_overrides[get_rate_limiter] = lambda: tight
    headers = auth_headers(org_a)
    assert (await client.get("/api/v1/resource/customers", headers=headers)).status_code == 200
    res = await client.get("/api/v1/resource/customers", headers=headers)
    assert res.status_code == 429
    assert res.json()["error"] == "RateLimited"
    assert int(res.headers["Retry-After"]) >= 1


async def test_bad_bearer_flood_is_throttled(client, org_a):
    """Unauthenticated requests spend the client address budget."""
    limiter = RateLimiter(limit_per_minute=5, burst_limit=0)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    headers = {"Authorization": "Bearer garbage", "X-Organization-Id": str(org_a.id)}
    codes = [
        (await client.get("/api/v1/resource/customers", headers=headers)).status_code
        for _ in range(8)
    ]
    assert codes[:5] == [401] * 5
    assert codes[5:] == [429] * 3


# ─── Stats ───────────────────────────────────────────────────────

async def test_stats_partial_failure(client, auth_headers, org_a, store_a, store_b, customers_resource):
    for store, name in ((store_a, "Ana"), (store_a, "Bia"), (store_b, "Eva")):
        await store.create_entity({
            "entity_type": "customer", "entity_name": name, "smart_code": CUSTOMER,
        })
    res = await client.get("/api/v1/resource/customers/stats", headers=auth_headers(org_a))
    assert res.status_code == 200
    stats = {s["stat_id"]: s for s in res.json()["stats"]}
    assert set(stats) == {"customers", "broken"}
    assert stats["customers"]["status"] == "ok"
    assert stats["customers"]["value"] == 2
    assert stats["broken"]["status"] == "error"
    assert stats["broken"]["error"] == "MalformedExpressionError"


async def test_stats_denied_resource_is_empty(client, auth_headers, org_b, customers_resource):
    res = await client.get("/api/v1/resource/customers/stats", headers=auth_headers(org_b))
    assert res.status_code == 200
    assert res.json() == {"resource_id": "customers", "decision": "denied", "stats": []}


async def test_private_stat_computed_for_admin(client, auth_headers, org_a, store_a, customers_resource):
    await store_a.create_transaction(
        {"transaction_type": "sale", "smart_code": "HERA.SALON.TXN.SALE.v1"},
        [{"quantity": 2, "unit_price": "50", "smart_code": "HERA.SALON.TXN.LINE.v1"}],
    )
    res = await client.get(
        "/api/v1/resource/customers/stats", headers=_admin(auth_headers, org_a),
    )
    stats = {s["stat_id"]: s for s in res.json()["stats"]}
    assert stats["revenue"]["value"] == 100
    assert stats["revenue"]["formatted"] == "USD 100.00"
    assert stats["revenue"]["is_private"] is True


# ─── Actions ─────────────────────────────────────────────────────

async def test_member_cannot_run_admin_action(client, auth_headers, org_a, store_a, customer, customers_resource):
    res = await client.post(
        "/api/v1/resource/customers/action/delete-customer",
        headers=auth_headers(org_a),
        json={"variables": {"entity_id": str(customer.id)}},
    )
    assert res.status_code == 403
    assert res.json() == {"error": "Denied"}
    assert (await store_a.get_entity(customer.id)).id == customer.id


async def test_unknown_action_denied(client, auth_headers, org_a, customers_resource):
    res = await client.post(
        "/api/v1/resource/customers/action/nope", headers=auth_headers(org_a), json={},
    )
    assert res.status_code == 403


async def test_two_phase_delete(client, auth_headers, org_a, store_a, customer, customers_resource):
    headers = _admin(auth_headers, org_a)
    url = "/api/v1/resource/customers/action/delete-customer"
    variables = {"entity_id": str(customer.id)}

    pending = await client.post(url, headers=headers, json={"variables": variables})
    assert pending.status_code == 202
    token = pending.json()["confirmation_token"]

    done = await client.post(url, headers=headers, json={
        "phase": "confirm", "confirmation_token": token, "variables": variables,
    })
    assert done.status_code == 200
    assert done.json()["result"]["deleted"]["entity"] == 1
    with pytest.raises(NotFoundError):
        await store_a.get_entity(customer.id)

    replay = await client.post(url, headers=headers, json={
        "phase": "confirm", "confirmation_token": token, "variables": variables,
    })
    assert replay.status_code == 409
    assert replay.json()["error"] == "PendingConfirmationError"


async def test_confirm_without_token(client, auth_headers, org_a, customer, customers_resource):
    res = await client.post(
        "/api/v1/resource/customers/action/delete-customer",
        headers=_admin(auth_headers, org_a),
        json={"phase": "confirm", "variables": {"entity_id": str(customer.id)}},
    )
    assert res.status_code == 409


async def test_navigate_action(client, auth_headers, org_a, customers_resource):
    res = await client.post(
        "/api/v1/resource/customers/action/open", headers=auth_headers(org_a), json={},
    )
    assert res.status_code == 200
    assert res.json()["result"]["route"] == f"/customers/{org_a.id}"


# ─── Resource configs ────────────────────────────────────────────

async def test_create_resource_requires_permission(client, auth_headers, org_a):
    res = await client.post("/api/v1/resources", headers=auth_headers(org_a), json={
        "resource_id": "services", "smart_code": "HERA.SALON.TILE.SERVICES.v1", "config": {},
    })
    assert res.status_code == 403


async def test_create_resource(client, auth_headers, org_a):
    headers = _admin(auth_headers, org_a)
    res = await client.post("/api/v1/resources", headers=headers, json={
        "resource_id": "services",
        "smart_code": "HERA.SALON.TILE.SERVICES.v1",
        "config": {"stats": [{
            "statId": "count", "label": "Services",
            "query": {"table": "core_entities", "operation": "count"},
        }]},
    })
    assert res.status_code == 201
    assert res.json() == {"resource_id": "services", "stats": 1, "actions": 0}

    view = await client.get("/api/v1/resource/services", headers=headers)
    assert view.json()["decision"] == "granted"


async def test_create_resource_rejects_unsafe_condition(client, auth_headers, org_a):
    res = await client.post("/api/v1/resources", headers=_admin(auth_headers, org_a), json={
        "resource_id": "services",
        "smart_code": "HERA.SALON.TILE.SERVICES.v1",
        "config": {"conditions": [
            {"field": "user.role;DROP", "operator": "equals", "value": "x"},
        ]},
    })
    assert res.status_code == 400
    assert res.json() == {
        "error": "MalformedExpressionError", "detail": "rejected: invalid field/path",
    }
    assert "DROP" not in res.text


async def test_create_resource_rejects_bad_smart_code(client, auth_headers, org_a):
    res = await client.post("/api/v1/resources", headers=_admin(auth_headers, org_a), json={
        "resource_id": "services", "smart_code": "tile", "config": {},
    })
    assert res.status_code == 400
    assert res.json()["error"] == "ValidationError"
