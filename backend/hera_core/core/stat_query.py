"""Stat Query — pure half of the Query/Stat Resolver: specs, tenant injection, formatting.

Invariants:
    - relation and operation are closed enums; sum/avg require an aggregate field
    - scope_conditions() ALWAYS yields organization_id = context.organization.id,
      replacing any author-supplied organization_id condition
    - Template values are resolved through the Condition Evaluator before dispatch
    - format_value() never raises: non-numeric values render as str()

Design Decisions:
    - Injection happens here AND again in the SQL builder (services/stat_resolver.py)
      so isolation holds if either layer regresses
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from hera_core.core.condition_evaluator import Condition, parse_conditions, resolve
from hera_core.core.domain_types import AggregateOp, LogicalRelation, Operator, StatFormat
from hera_core.core.errors import MalformedExpressionError
from hera_core.core.expression_guard import check_path, is_template
from hera_core.core.request_context import Context

ORGANIZATION_FIELD = "organization_id"


@dataclass(frozen=True)
class StatQuery:
    relation: LogicalRelation
    operation: AggregateOp
    conditions: tuple[Condition, ...] = ()
    field: str | None = None

    def __post_init__(self):
        if self.field is not None:
            check_path(self.field)
        if self.operation in (AggregateOp.SUM, AggregateOp.AVG) and not self.field:
            raise MalformedExpressionError()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "StatQuery":
        try:
            relation = LogicalRelation(raw.get("table") or raw.get("relation"))
            operation = AggregateOp(raw.get("operation"))
        except ValueError:
            raise MalformedExpressionError()
        return cls(
            relation=relation,
            operation=operation,
            conditions=parse_conditions(raw.get("conditions")),
            field=raw.get("field"),
        )


@dataclass(frozen=True)
class StatSpec:
    stat_id: str
    label: str
    query: StatQuery
    format: StatFormat = StatFormat.NUMBER
    is_private: bool = False
    visibility_conditions: tuple[Condition, ...] = ()


def scope_conditions(query: StatQuery, context: Context) -> tuple[Condition, ...]:
    """Resolve templated values and pin the query to the caller's organization."""
    scoped = [
        Condition(
            field=c.field,
            operator=c.operator,
            value=resolve(c.value, context) if is_template(c.value) else c.value,
        )
        for c in query.conditions
        if c.field != ORGANIZATION_FIELD
    ]
    scoped.insert(0, Condition(
        field=ORGANIZATION_FIELD, operator=Operator.EQUALS,
        value=context.organization.id,
    ))
    return tuple(scoped)


def format_value(value: Any, fmt: StatFormat, currency: str = "USD") -> str:
    """Render an aggregate for display."""
    if value is None:
        value = 0
    if not isinstance(value, (int, float, Decimal)) or isinstance(value, bool):
        return str(value)
    if fmt == StatFormat.CURRENCY:
        return f"{currency} {float(value):,.2f}"
    if fmt == StatFormat.PERCENTAGE:
        return f"{float(value):.1f}%"
    if isinstance(value, int) or float(value).is_integer():
        return f"{int(value):,}"
    return f"{float(value):,.2f}"
