"""Stat Resolver — compiles StatQuery specs to tenant-scoped SQL aggregates and runs them.

Invariants:
    - Conditions are first pinned to the caller's organization (core/stat_query.py),
      then the builder ANDs model.organization_id = org again at the SQL level
    - Fields map to columns through a per-relation allow-list; anything else is
      MalformedExpressionError before a statement exists
    - Values are bound parameters only; no string SQL is ever assembled
    - Each stat runs in its own session under the caller deadline; a failure or
      timeout marks only that stat as error
    - StoreError on a stat read is retried once (reads are idempotent)

Design Decisions:
    - Closed operator table keyed by Operator enum, mirroring the evaluator's
      dispatch, so adding an operator fails loudly in both places
    - session_factory injected: tests pass an aiosqlite factory, the app passes
      db_manager.session_factory
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Callable, Sequence
from uuid import UUID

from sqlalchemy import Uuid, false, func, select, true
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hera_core.core.condition_evaluator import Condition
from hera_core.core.domain_types import AggregateOp, LogicalRelation, Operator, StatStatus
from hera_core.core.errors import HeraError, MalformedExpressionError
from hera_core.core.request_context import Context
from hera_core.core.stat_query import StatSpec, format_value, scope_conditions
from hera_core.infrastructure.database import guarded_session, with_read_retry
from hera_core.models import (
    DynamicField, Entity, Relationship, Transaction, TransactionLine,
)

logger = logging.getLogger(__name__)

TIMEOUT_KIND = "Timeout"
INTERNAL_KIND = "InternalError"

RELATION_MODELS = {
    LogicalRelation.ENTITIES: Entity,
    LogicalRelation.DYNAMIC_DATA: DynamicField,
    LogicalRelation.RELATIONSHIPS: Relationship,
    LogicalRelation.TRANSACTIONS: Transaction,
    LogicalRelation.TRANSACTION_LINES: TransactionLine,
}

QUERYABLE_COLUMNS = {
    LogicalRelation.ENTITIES: (
        "id", "organization_id", "entity_type", "entity_name", "entity_code",
        "smart_code", "status", "created_at", "updated_at",
    ),
    LogicalRelation.DYNAMIC_DATA: (
        "organization_id", "entity_id", "field_name", "field_type",
        "field_value_text", "field_value_number", "field_value_boolean", "smart_code",
    ),
    LogicalRelation.RELATIONSHIPS: (
        "organization_id", "from_entity_id", "to_entity_id",
        "relationship_type", "smart_code", "created_at",
    ),
    LogicalRelation.TRANSACTIONS: (
        "id", "organization_id", "transaction_type", "transaction_code",
        "transaction_date", "source_entity_id", "target_entity_id",
        "total_amount", "smart_code", "status", "created_at",
    ),
    LogicalRelation.TRANSACTION_LINES: (
        "organization_id", "transaction_id", "line_number", "entity_id",
        "quantity", "unit_price", "line_amount", "smart_code",
    ),
}


def _column(relation: LogicalRelation, field: str):
    if field not in QUERYABLE_COLUMNS[relation]:
        raise MalformedExpressionError()
    return getattr(RELATION_MODELS[relation], field)


def _coerce(column, value: Any) -> Any:
    """UUID columns need UUID binds; an unparseable id can never match."""
    if not isinstance(column.type, Uuid) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_coerce(column, v) for v in value]
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _contains(column, value):
    return column.contains(str(value), autoescape=True)


def _in(column, value):
    values = [v for v in value if v is not None]
    return column.in_(values) if values else false()


SQL_OPERATORS: dict[Operator, Callable[[Any, Any], Any]] = {
    Operator.EQUALS: lambda c, v: c == v,
    Operator.NOT_EQUALS: lambda c, v: c != v,
    Operator.CONTAINS: _contains,
    Operator.GT: lambda c, v: c > v,
    Operator.LT: lambda c, v: c < v,
    Operator.GTE: lambda c, v: c >= v,
    Operator.LTE: lambda c, v: c <= v,
    Operator.IN: _in,
}


def compile_condition(relation: LogicalRelation, condition: Condition):
    """Condition -> SQLAlchemy boolean clause. Undefined values never match."""
    column = _column(relation, condition.field)
    value = _coerce(column, condition.value)
    if value is None:
        return true() if condition.operator == Operator.NOT_EQUALS else false()
    return SQL_OPERATORS[condition.operator](column, value)


def build_statement(spec: StatSpec, context: Context):
    """Tenant-scoped aggregate SELECT for one stat."""
    query = spec.query
    model = RELATION_MODELS[query.relation]
    if query.operation == AggregateOp.COUNT:
        aggregate = func.count()
    else:
        column = _column(query.relation, query.field)
        aggregate = func.sum(column) if query.operation == AggregateOp.SUM else func.avg(column)
    stmt = select(aggregate).select_from(model).where(
        model.organization_id == UUID(context.organization.id),
    )
    for condition in scope_conditions(query, context):
        stmt = stmt.where(compile_condition(query.relation, condition))
    return stmt


def _plain(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class StatResolver:
    """Computes stats for one request; never raises for a single stat's failure."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        currency: str = "USD",
        timeout_ms: int = 5000,
        retry_backoff_ms: int = 50,
    ):
        self._session_factory = session_factory
        self.currency = currency
        self.timeout_ms = timeout_ms
        self.retry_backoff_ms = retry_backoff_ms

    async def _read(self, stmt) -> Any:
        async with guarded_session(self._session_factory) as db:
            result = await db.execute(stmt)
            return result.scalar()

    def _result(self, spec: StatSpec, **fields) -> dict:
        return {
            "stat_id": spec.stat_id,
            "format": spec.format.value,
            "is_private": spec.is_private,
            **fields,
        }

    def _error(self, spec: StatSpec, kind: str) -> dict:
        return self._result(
            spec, value=None, formatted=None,
            status=StatStatus.ERROR.value, error=kind,
        )

    async def compute_stat(
        self, spec: StatSpec, context: Context, timeout_ms: int | None = None,
    ) -> dict:
        """Run one stat; errors come back as status=error with a sanitized kind."""
        deadline = (timeout_ms or self.timeout_ms) / 1000
        try:
            stmt = build_statement(spec, context)
            async with asyncio.timeout(deadline):
                raw = await with_read_retry(
                    lambda: self._read(stmt), self.retry_backoff_ms,
                )
        except TimeoutError:
            logger.warning("Stat timed out", extra={
                "stat_id": spec.stat_id, "error_kind": TIMEOUT_KIND,
            })
            return self._error(spec, TIMEOUT_KIND)
        except HeraError as e:
            logger.warning("Stat failed", extra={
                "stat_id": spec.stat_id, "error_kind": e.kind,
            })
            return self._error(spec, e.kind)
        except Exception:
            logger.error("Stat failed unexpectedly", extra={
                "stat_id": spec.stat_id, "error_kind": INTERNAL_KIND,
            }, exc_info=True)
            return self._error(spec, INTERNAL_KIND)

        value = _plain(raw)
        return self._result(
            spec, value=value,
            formatted=format_value(value, spec.format, self.currency),
            status=StatStatus.OK.value,
        )

    async def compute_stats(
        self, specs: Sequence[StatSpec], context: Context, timeout_ms: int | None = None,
    ) -> list[dict]:
        """Run stats concurrently, one session each; order follows specs."""
        return list(await asyncio.gather(
            *(self.compute_stat(spec, context, timeout_ms) for spec in specs),
        ))
