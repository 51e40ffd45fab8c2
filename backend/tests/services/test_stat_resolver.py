"""Stat Resolver — tests for tenant-scoped aggregate SQL and per-stat failure isolation.

Tests cover:
    - counts and sums only see the caller's organization
    - an author-supplied organization_id condition cannot widen the scope
    - templated values resolve from the Context before binding
    - a stat over a non-allow-listed column errors without affecting siblings
    - timeouts mark only the slow stat; one StoreError is retried
"""

import asyncio

import pytest

from hera_core.core.condition_evaluator import Condition
from hera_core.core.domain_types import LogicalRelation, Operator, StatFormat
from hera_core.core.errors import MalformedExpressionError, StoreError
from hera_core.core.stat_query import StatQuery, StatSpec
from hera_core.services.stat_resolver import (
    SQL_OPERATORS, StatResolver, build_statement, compile_condition,
)

CUSTOMER = "HERA.SALON.CUSTOMER.v1"
TXN = "HERA.SALON.TXN.SALE.v1"
LINE = "HERA.SALON.TXN.LINE.v1"


def _stat(stat_id, raw, fmt=StatFormat.NUMBER):
    return StatSpec(stat_id=stat_id, label=stat_id, query=StatQuery.from_dict(raw), format=fmt)


CUSTOMER_COUNT = {
    "table": "core_entities", "operation": "count",
    "conditions": [{"field": "entity_type", "operator": "equals", "value": "customer"}],
}


@pytest.fixture
async def seeded(store_a, store_b):
    for name in ("Ana", "Bia"):
        await store_a.create_entity({
            "entity_type": "customer", "entity_name": name, "smart_code": CUSTOMER,
        })
    for name in ("Caio", "Duda", "Eva"):
        await store_b.create_entity({
            "entity_type": "customer", "entity_name": name, "smart_code": CUSTOMER,
        })
    await store_a.create_transaction(
        {"transaction_type": "sale", "smart_code": TXN},
        [{"quantity": 1, "unit_price": "1200.50", "smart_code": LINE}],
    )
    await store_b.create_transaction(
        {"transaction_type": "sale", "smart_code": TXN},
        [{"quantity": 1, "unit_price": "99999", "smart_code": LINE}],
    )


@pytest.fixture
def resolver(test_session_factory):
    return StatResolver(test_session_factory, currency="USD", timeout_ms=2000, retry_backoff_ms=1)


# ─── Compilation ─────────────────────────────────────────────────

def test_sql_operator_table_covers_every_operator():
    assert set(SQL_OPERATORS) == set(Operator)


def test_unknown_column_rejected_before_sql():
    condition = Condition(field="password_hash", operator="equals", value="x")
    with pytest.raises(MalformedExpressionError):
        compile_condition(LogicalRelation.ENTITIES, condition)


def test_statement_binds_values(make_context, org_a):
    spec = _stat("c", {
        "table": "core_entities", "operation": "count",
        "conditions": [{"field": "entity_name", "operator": "equals", "value": "x' OR '1'='1"}],
    })
    compiled = build_statement(spec, make_context(org_a)).compile()
    assert "x' OR '1'='1" not in str(compiled)
    assert "x' OR '1'='1" in compiled.params.values()


# ─── Execution ───────────────────────────────────────────────────

async def test_count_is_tenant_scoped(seeded, resolver, make_context, org_a):
    result = await resolver.compute_stat(_stat("customers", CUSTOMER_COUNT), make_context(org_a))
    assert result["status"] == "ok"
    assert result["value"] == 2
    assert result["formatted"] == "2"
    assert "error" not in result


async def test_author_org_condition_cannot_widen_scope(seeded, resolver, make_context, org_a, org_b):
    spec = _stat("customers", {
        "table": "core_entities", "operation": "count",
        "conditions": [{"field": "organization_id", "operator": "equals", "value": str(org_b.id)}],
    })
    result = await resolver.compute_stat(spec, make_context(org_a))
    assert result["value"] == 2


async def test_sum_formats_currency(seeded, resolver, make_context, org_a):
    spec = _stat(
        "revenue",
        {"table": "universal_transactions", "operation": "sum", "field": "total_amount"},
        StatFormat.CURRENCY,
    )
    result = await resolver.compute_stat(spec, make_context(org_a))
    assert result["value"] == 1200.5
    assert result["formatted"] == "USD 1,200.50"


async def test_empty_sum_is_zero(resolver, make_context, org_a):
    spec = _stat("revenue", {
        "table": "universal_transactions", "operation": "sum", "field": "total_amount",
    })
    result = await resolver.compute_stat(spec, make_context(org_a))
    assert result["value"] == 0


async def test_template_value_resolved(seeded, resolver, make_context, org_a):
    spec = _stat("named", {
        "table": "core_entities", "operation": "count",
        "conditions": [{"field": "entity_name", "operator": "equals", "value": "{{variables.name}}"}],
    })
    result = await resolver.compute_stat(spec, make_context(org_a, variables={"name": "Bia"}))
    assert result["value"] == 1


async def test_undefined_template_matches_nothing(seeded, resolver, make_context, org_a):
    spec = _stat("named", {
        "table": "core_entities", "operation": "count",
        "conditions": [{"field": "entity_name", "operator": "equals", "value": "{{variables.missing}}"}],
    })
    result = await resolver.compute_stat(spec, make_context(org_a))
    assert result["value"] == 0


async def test_partial_failure_keeps_siblings(seeded, resolver, make_context, org_a):
    bad = _stat("bad", {
        "table": "core_entities", "operation": "count",
        "conditions": [{"field": "metadata", "operator": "equals", "value": "x"}],
    })
    results = await resolver.compute_stats([_stat("ok", CUSTOMER_COUNT), bad], make_context(org_a))
    assert [r["stat_id"] for r in results] == ["ok", "bad"]
    assert results[0]["status"] == "ok" and results[0]["value"] == 2
    assert results[1]["status"] == "error"
    assert results[1]["error"] == "MalformedExpressionError"
    assert results[1]["value"] is None


async def test_timeout_marks_only_slow_stat(resolver, make_context, org_a, monkeypatch):
    real_read = resolver._read

    async def slow_read(stmt):
        if "avg" in str(stmt).lower():
            await asyncio.sleep(1)
        return await real_read(stmt)

    monkeypatch.setattr(resolver, "_read", slow_read)
    slow = _stat("slow", {
        "table": "universal_transactions", "operation": "avg", "field": "total_amount",
    })
    results = await resolver.compute_stats(
        [slow, _stat("fast", CUSTOMER_COUNT)], make_context(org_a), timeout_ms=50,
    )
    assert results[0]["status"] == "error" and results[0]["error"] == "Timeout"
    assert results[1]["status"] == "ok"


async def test_store_error_retried_once(resolver, make_context, org_a, monkeypatch):
    calls = []

    async def flaky_read(stmt):
        calls.append(stmt)
        if len(calls) == 1:
            raise StoreError("execute")
        return 7

    monkeypatch.setattr(resolver, "_read", flaky_read)
    result = await resolver.compute_stat(_stat("c", CUSTOMER_COUNT), make_context(org_a))
    assert len(calls) == 2
    assert result["value"] == 7


async def test_persistent_store_error_is_sanitized(resolver, make_context, org_a, monkeypatch):
    async def broken_read(stmt):
        raise StoreError("execute")

    monkeypatch.setattr(resolver, "_read", broken_read)
    result = await resolver.compute_stat(_stat("c", CUSTOMER_COUNT), make_context(org_a))
    assert result["status"] == "error"
    assert result["error"] == "StoreError"


async def test_unexpected_error_is_internal(resolver, make_context, org_a, monkeypatch):
    async def exploding_read(stmt):
        raise RuntimeError("connection string postgres://secret")

    monkeypatch.setattr(resolver, "_read", exploding_read)
    result = await resolver.compute_stat(_stat("c", CUSTOMER_COUNT), make_context(org_a))
    assert result["error"] == "InternalError"
