"""Condition Evaluator — flat-AND rule lists and {{path}} templates over a request Context.

Invariants:
    - PURE and deterministic: output depends only on (conditions, context); no IO
    - evaluate([], ctx) is True; a list holds iff ALL conditions hold
    - Every field path and template is validated by expression_guard before resolution
    - Unknown paths resolve to UNDEFINED, which never raises and fails equals/contains/comparisons
    - Operator dispatch is an exhaustive table keyed by the Operator enum

Design Decisions:
    - Path resolution walks mappings and sequences only (no attribute access)
    - Condition values that are templates resolve against the same Context before comparison
    - A template that is exactly one placeholder keeps the resolved value's type
"""

from dataclasses import dataclass
from numbers import Number
from typing import Any, Callable, Iterable, Mapping, Sequence

from hera_core.core.domain_types import Operator
from hera_core.core.errors import MalformedExpressionError
from hera_core.core.expression_guard import (
    PLACEHOLDER_PATTERN, check_path, is_template, template_placeholders,
)
from hera_core.core.request_context import Context


class _Undefined:
    """Sentinel for a path that does not resolve."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


@dataclass(frozen=True)
class Condition:
    """Immutable {field, operator, value} predicate."""
    field: str
    operator: Operator
    value: Any = None

    def __post_init__(self):
        check_path(self.field)
        if not isinstance(self.operator, Operator):
            try:
                object.__setattr__(self, "operator", Operator(self.operator))
            except ValueError:
                raise MalformedExpressionError()
        if is_template(self.value):
            template_placeholders(self.value)
        if self.operator == Operator.IN and not isinstance(self.value, (list, tuple)):
            raise MalformedExpressionError()
        if isinstance(self.value, list):
            object.__setattr__(self, "value", tuple(self.value))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Condition":
        if not isinstance(raw, Mapping) or "field" not in raw or "operator" not in raw:
            raise MalformedExpressionError()
        return cls(field=raw["field"], operator=raw["operator"], value=raw.get("value"))

    def to_dict(self) -> dict:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {"field": self.field, "operator": self.operator.value, "value": value}


def parse_conditions(raw: Iterable[Mapping[str, Any] | Condition] | None) -> tuple[Condition, ...]:
    """Parse a raw condition list; every element is validated."""
    if raw is None:
        return ()
    return tuple(c if isinstance(c, Condition) else Condition.from_dict(c) for c in raw)


# ─── Path resolution ─────────────────────────────────────────────

def resolve_path(path: str, context: Context | Mapping[str, Any]) -> Any:
    """Resolve a dotted path; UNDEFINED when any segment is missing."""
    check_path(path)
    node: Any = context.as_tree() if isinstance(context, Context) else context
    for segment in path.split("."):
        if isinstance(node, Mapping):
            if segment not in node:
                return UNDEFINED
            node = node[segment]
        elif isinstance(node, Sequence) and not isinstance(node, (str, bytes)):
            if not segment.isdigit() or int(segment) >= len(node):
                return UNDEFINED
            node = node[int(segment)]
        else:
            return UNDEFINED
    return node


# ─── Templates ───────────────────────────────────────────────────

def resolve(template: Any, context: Context) -> Any:
    """Substitute {{path}} placeholders. Non-string inputs pass through unchanged."""
    if not isinstance(template, str):
        return template
    paths = template_placeholders(template)
    if not paths:
        return template
    whole = PLACEHOLDER_PATTERN.fullmatch(template.strip())
    if whole is not None and len(paths) == 1:
        value = resolve_path(paths[0], context)
        return None if value is UNDEFINED else value

    def _substitute(match) -> str:
        value = resolve_path(match.group(1).strip(), context)
        return "" if value is UNDEFINED or value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_substitute, template)


def resolve_params(params: Any, context: Context) -> Any:
    """Resolve templates inside a nested dict/list structure."""
    if isinstance(params, Mapping):
        return {key: resolve_params(value, context) for key, value in params.items()}
    if isinstance(params, (list, tuple)):
        return [resolve_params(value, context) for value in params]
    return resolve(params, context)


# ─── Operators ───────────────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _equals(left: Any, right: Any) -> bool:
    if left is UNDEFINED:
        return False
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, tuple):
        left = list(left)
    if isinstance(right, tuple):
        right = list(right)
    return left == right


def _not_equals(left: Any, right: Any) -> bool:
    return not _equals(left, right)


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, str):
        return isinstance(right, str) and right in left
    if isinstance(left, (list, tuple)):
        return any(_equals(item, right) for item in left)
    return False


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def _check(left: Any, right: Any) -> bool:
        if _is_number(left) and _is_number(right):
            return compare(left, right)
        if isinstance(left, str) and isinstance(right, str):
            return compare(left, right)
        return False
    return _check


def _in(left: Any, right: Any) -> bool:
    if left is UNDEFINED or not isinstance(right, (list, tuple)):
        return False
    return any(_equals(left, item) for item in right)


OPERATORS: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.EQUALS: _equals,
    Operator.NOT_EQUALS: _not_equals,
    Operator.CONTAINS: _contains,
    Operator.GT: _ordered(lambda a, b: a > b),
    Operator.LT: _ordered(lambda a, b: a < b),
    Operator.GTE: _ordered(lambda a, b: a >= b),
    Operator.LTE: _ordered(lambda a, b: a <= b),
    Operator.IN: _in,
}


# ─── Evaluation ──────────────────────────────────────────────────

def _resolve_value(value: Any, context: Context) -> Any:
    if isinstance(value, (list, tuple)):
        return [resolve(item, context) if is_template(item) else item for item in value]
    return resolve(value, context) if is_template(value) else value


def evaluate_condition(condition: Condition, context: Context) -> bool:
    left = resolve_path(condition.field, context)
    right = _resolve_value(condition.value, context)
    return OPERATORS[condition.operator](left, right)


def evaluate(
    conditions: Iterable[Condition | Mapping[str, Any]] | None, context: Context,
) -> bool:
    """True iff all conditions hold. Raw dicts are validated before any resolution."""
    parsed = parse_conditions(conditions)
    return all(evaluate_condition(c, context) for c in parsed)
