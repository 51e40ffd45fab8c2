"""Resource Config — typed, validated view of a declarative resource (tile) configuration.

Invariants:
    - parse_resource_config() validates EVERYTHING up front: ids, condition paths,
      operators, stat specs, routes and parameter templates
    - A config that parses is immutable; raw dicts never reach the evaluator
    - Both camelCase (statId, isPrivate) and snake_case keys are accepted

Design Decisions:
    - Configs are tenant data stored as JSON; parsing is the single trust boundary
    - API_CALL actions name an operation from a closed dispatch table
      (services/action_executor.py); NAVIGATE actions carry only a route
"""

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from hera_core.core.condition_evaluator import Condition, parse_conditions
from hera_core.core.domain_types import ActionType, StatFormat
from hera_core.core.errors import MalformedExpressionError, ValidationError
from hera_core.core.expression_guard import check_template, is_template
from hera_core.core.stat_query import StatQuery, StatSpec

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


@dataclass(frozen=True)
class ActionSpec:
    action_id: str
    label: str
    action_type: ActionType
    route: str | None = None
    operation: str | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)
    icon: str | None = None
    is_primary: bool = False
    requires_confirmation: bool = False
    requires_permission: bool = False
    visibility_conditions: tuple[Condition, ...] = ()


@dataclass(frozen=True)
class ResourceConfig:
    resource_id: str
    conditions: tuple[Condition, ...] = ()
    stats: tuple[StatSpec, ...] = ()
    actions: tuple[ActionSpec, ...] = ()
    ui: Mapping[str, Any] = field(default_factory=dict)
    layout: Mapping[str, Any] = field(default_factory=dict)
    enabled: bool = True

    def stat(self, stat_id: str) -> StatSpec | None:
        return next((s for s in self.stats if s.stat_id == stat_id), None)

    def action(self, action_id: str) -> ActionSpec | None:
        return next((a for a in self.actions if a.action_id == action_id), None)


def _pick(raw: Mapping[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in raw:
        return raw[camel]
    return raw.get(snake, default)


def check_identifier(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(f"invalid {field_name}", field=field_name)
    return value


def _check_parameters(params: Any) -> None:
    """Every string inside parameters must be a safe template/literal."""
    if isinstance(params, Mapping):
        for value in params.values():
            _check_parameters(value)
    elif isinstance(params, (list, tuple)):
        for value in params:
            _check_parameters(value)
    elif isinstance(params, str):
        check_template(params)


def parse_stat(raw: Mapping[str, Any]) -> StatSpec:
    if not isinstance(raw, Mapping) or not isinstance(raw.get("query"), Mapping):
        raise ValidationError("stat requires a query", field="stats")
    try:
        fmt = StatFormat(raw.get("format", StatFormat.NUMBER.value))
    except ValueError:
        raise ValidationError("invalid stat format", field="format")
    return StatSpec(
        stat_id=check_identifier(_pick(raw, "statId", "stat_id"), "stat_id"),
        label=str(raw.get("label", "")),
        query=StatQuery.from_dict(raw["query"]),
        format=fmt,
        is_private=bool(_pick(raw, "isPrivate", "is_private", False)),
        visibility_conditions=parse_conditions(
            _pick(raw, "visibilityConditions", "visibility_conditions"),
        ),
    )


def parse_action(raw: Mapping[str, Any]) -> ActionSpec:
    if not isinstance(raw, Mapping):
        raise ValidationError("action must be an object", field="actions")
    try:
        action_type = ActionType(_pick(raw, "actionType", "action_type"))
    except ValueError:
        raise ValidationError("invalid action type", field="action_type")
    route = raw.get("route")
    if route is not None:
        check_template(route)
    parameters = raw.get("parameters") or {}
    if not isinstance(parameters, Mapping):
        raise ValidationError("parameters must be an object", field="parameters")
    _check_parameters(parameters)
    operation = raw.get("operation")
    if action_type == ActionType.API_CALL and operation is not None:
        check_identifier(operation, "operation")
    if action_type == ActionType.NAVIGATE and route is None:
        raise ValidationError("NAVIGATE action requires a route", field="route")
    return ActionSpec(
        action_id=check_identifier(_pick(raw, "actionId", "action_id"), "action_id"),
        label=str(raw.get("label", "")),
        action_type=action_type,
        route=route,
        operation=operation,
        parameters=dict(parameters),
        icon=raw.get("icon"),
        is_primary=bool(_pick(raw, "isPrimary", "is_primary", False)),
        requires_confirmation=bool(
            _pick(raw, "requiresConfirmation", "requires_confirmation", False),
        ),
        requires_permission=bool(
            _pick(raw, "requiresPermission", "requires_permission", False),
        ),
        visibility_conditions=parse_conditions(
            _pick(raw, "visibilityConditions", "visibility_conditions"),
        ),
    )


def _unique(ids: list[str], field_name: str) -> None:
    if len(ids) != len(set(ids)):
        raise ValidationError(f"duplicate {field_name}", field=field_name)


def parse_resource_config(resource_id: str, raw: Mapping[str, Any]) -> ResourceConfig:
    """Validate a stored/submitted config. Raises ValidationError or MalformedExpressionError."""
    if not isinstance(raw, Mapping):
        raise ValidationError("resource config must be an object", field="config")
    ui = raw.get("ui") or {}
    layout = raw.get("layout") or {}
    for blob in (ui, layout):
        if not isinstance(blob, Mapping):
            raise ValidationError("ui/layout must be objects", field="ui")
        _check_display_strings(blob)
    stats = tuple(parse_stat(s) for s in raw.get("stats") or ())
    actions = tuple(parse_action(a) for a in raw.get("actions") or ())
    _unique([s.stat_id for s in stats], "stat_id")
    _unique([a.action_id for a in actions], "action_id")
    return ResourceConfig(
        resource_id=check_identifier(resource_id, "resource_id"),
        conditions=parse_conditions(raw.get("conditions")),
        stats=stats,
        actions=actions,
        ui=dict(ui),
        layout=dict(layout),
        enabled=bool(raw.get("enabled", True)),
    )


def _check_display_strings(blob: Mapping[str, Any]) -> None:
    """Display strings may not smuggle templates; they are never resolved."""
    for value in blob.values():
        if is_template(value):
            raise MalformedExpressionError()
