"""Action Executor — tests for gated, two-phase action execution.

Tests cover:
    - a caller failing visibility conditions is denied with zero store access
    - requires_permission without actions.execute is denied before any store access
    - requires_confirmation: initial issues a token, confirm consumes it once
    - confirm without (or with a replayed) token -> PendingConfirmationError
    - non-destructive API_CALL runs immediately with resolved parameters
    - NAVIGATE returns the resolved route and parameters
    - unknown operations and missing parameters -> ValidationError
"""

import pytest
from sqlalchemy import func, select

from hera_core.core.domain_types import ActionPhase, ActionStatus, DenialReason
from hera_core.core.errors import NotFoundError, PendingConfirmationError, ValidationError
from hera_core.core.resource_config import parse_action
from hera_core.models import ActionConfirmation
from hera_core.services.action_executor import ActionExecutor
from hera_core.services.confirmation_ledger import ConfirmationLedger

CUSTOMER = "HERA.SALON.CUSTOMER.v1"
ADMIN_ONLY = [{"field": "user.role", "operator": "equals", "value": "admin"}]

DELETE_CUSTOMER = parse_action({
    "action_id": "delete-customer",
    "label": "Delete",
    "action_type": "API_CALL",
    "operation": "delete_entity",
    "parameters": {"entity_id": "{{variables.entity_id}}"},
    "requires_confirmation": True,
    "visibility_conditions": ADMIN_ONLY,
})

ARCHIVE_CUSTOMER = parse_action({
    "action_id": "archive-customer",
    "label": "Archive",
    "action_type": "API_CALL",
    "operation": "update_entity_status",
    "parameters": {"entity_id": "{{variables.entity_id}}", "status": "archived"},
})

OPEN_PROFILE = parse_action({
    "action_id": "open-profile",
    "label": "Open",
    "action_type": "NAVIGATE",
    "route": "/customers/{{variables.entity_id}}",
    "parameters": {"tab": "history"},
})


class SpyStore:
    """Fails the test on any store access."""

    def __getattr__(self, name):
        raise AssertionError(f"store accessed: {name}")


@pytest.fixture
async def customer(store_a):
    return await store_a.create_entity({
        "entity_type": "customer", "entity_name": "Ana", "smart_code": CUSTOMER,
    })


@pytest.fixture
def executor(store_a, test_db):
    return ActionExecutor(store_a, ConfirmationLedger(test_db), confirmation_ttl_seconds=60)


async def _token_count(db):
    return await db.scalar(select(func.count()).select_from(ActionConfirmation))


# ─── Gate ────────────────────────────────────────────────────────

async def test_denied_caller_touches_nothing(test_db, make_context, org_a, customer):
    executor = ActionExecutor(SpyStore(), ConfirmationLedger(test_db))
    ctx = make_context(org_a, role="member", variables={"entity_id": str(customer.id)})

    result = await executor.execute("customers", DELETE_CUSTOMER, ctx)

    assert result.status == ActionStatus.DENIED
    assert result.reason == DenialReason.ACTION_CONDITIONS
    assert await _token_count(test_db) == 0


async def test_permission_gated_action_needs_execute_permission(test_db, make_context, org_a, customer):
    gated = parse_action({
        "action_id": "archive-customer", "label": "Archive", "action_type": "API_CALL",
        "operation": "update_entity_status", "requires_permission": True,
        "parameters": {"entity_id": "{{variables.entity_id}}", "status": "archived"},
    })
    executor = ActionExecutor(SpyStore(), ConfirmationLedger(test_db))
    ctx = make_context(org_a, role="admin", variables={"entity_id": str(customer.id)})

    result = await executor.execute("customers", gated, ctx)

    assert result.status == ActionStatus.DENIED
    assert result.reason == DenialReason.ACTION_PERMISSION


# ─── Two-phase confirmation ──────────────────────────────────────

async def test_initial_phase_only_issues_token(executor, store_a, make_context, org_a, customer):
    ctx = make_context(org_a, role="admin", variables={"entity_id": str(customer.id)})

    result = await executor.execute("customers", DELETE_CUSTOMER, ctx, ActionPhase.INITIAL)

    assert result.status == ActionStatus.PENDING_CONFIRMATION
    assert result.confirmation_token
    body = result.to_response()
    assert body["status"] == "pending_confirmation"
    assert "expires_at" in body
    assert (await store_a.get_entity(customer.id)).id == customer.id


async def test_confirm_without_token_rejected(executor, store_a, make_context, org_a, customer):
    ctx = make_context(org_a, role="admin", variables={"entity_id": str(customer.id)})
    with pytest.raises(PendingConfirmationError):
        await executor.execute("customers", DELETE_CUSTOMER, ctx, ActionPhase.CONFIRM)
    assert (await store_a.get_entity(customer.id)).id == customer.id


async def test_confirm_with_token_runs_once(executor, store_a, make_context, org_a, customer):
    ctx = make_context(org_a, role="admin", variables={"entity_id": str(customer.id)})
    pending = await executor.execute("customers", DELETE_CUSTOMER, ctx)

    done = await executor.execute(
        "customers", DELETE_CUSTOMER, ctx, ActionPhase.CONFIRM, pending.confirmation_token,
    )
    assert done.status == ActionStatus.COMPLETED
    assert done.to_response()["result"] == {
        "deleted": {"entity": 1, "dynamic_fields": 0, "relationships": 0},
    }
    with pytest.raises(NotFoundError):
        await store_a.get_entity(customer.id)

    with pytest.raises(PendingConfirmationError):
        await executor.execute(
            "customers", DELETE_CUSTOMER, ctx, ActionPhase.CONFIRM, pending.confirmation_token,
        )


async def test_token_bound_to_user(executor, make_context, org_a, customer):
    admin = make_context(org_a, user_id="u-admin", role="admin",
                         variables={"entity_id": str(customer.id)})
    other = make_context(org_a, user_id="u-other", role="admin",
                         variables={"entity_id": str(customer.id)})
    pending = await executor.execute("customers", DELETE_CUSTOMER, admin)
    with pytest.raises(PendingConfirmationError):
        await executor.execute(
            "customers", DELETE_CUSTOMER, other, ActionPhase.CONFIRM, pending.confirmation_token,
        )


# ─── Immediate actions ───────────────────────────────────────────

async def test_non_destructive_action_ignores_phase(executor, make_context, org_a, customer):
    ctx = make_context(org_a, variables={"entity_id": str(customer.id)})
    result = await executor.execute("customers", ARCHIVE_CUSTOMER, ctx, ActionPhase.INITIAL)
    assert result.status == ActionStatus.COMPLETED
    assert result.data["status"] == "archived"


async def test_navigate_resolves_route(executor, make_context, org_a):
    ctx = make_context(org_a, variables={"entity_id": "abc"})
    result = await executor.execute("customers", OPEN_PROFILE, ctx)
    assert result.data == {"route": "/customers/abc", "parameters": {"tab": "history"}}
    assert result.to_response()["action_type"] == "NAVIGATE"


async def test_missing_parameter_rejected(executor, make_context, org_a):
    ctx = make_context(org_a)
    with pytest.raises(ValidationError):
        await executor.execute("customers", ARCHIVE_CUSTOMER, ctx)


async def test_unknown_operation_rejected(executor, make_context, org_a):
    action = parse_action({
        "action_id": "drop", "label": "Drop", "action_type": "API_CALL",
        "operation": "drop_tables",
    })
    with pytest.raises(ValidationError):
        await executor.execute("customers", action, make_context(org_a))


async def test_action_cannot_reach_other_organization(executor, make_context, org_a, store_b):
    theirs = await store_b.create_entity({
        "entity_type": "customer", "entity_name": "Eva", "smart_code": CUSTOMER,
    })
    ctx = make_context(org_a, variables={"entity_id": str(theirs.id)})
    with pytest.raises(NotFoundError):
        await executor.execute("customers", ARCHIVE_CUSTOMER, ctx)
