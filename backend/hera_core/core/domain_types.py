"""Domain Types — closed enums and limits shared across the codebase.

Invariants:
    - Every closed set (operators, aggregates, formats, field types) is an Enum
    - Adding an operator or aggregate is one enumerable change plus its dispatch entry

Design Decisions:
    - str Enums: serialize to JSON without custom encoders
"""

from enum import Enum


# ─── Enums ───────────────────────────────────────────────────────

class FieldType(str, Enum):
    """Typed value column of a dynamic field. Exactly one is populated per row."""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"


class Operator(str, Enum):
    """Closed operator set for conditions."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IN = "in"


class AggregateOp(str, Enum):
    """Closed aggregate set for stats."""
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"


class StatFormat(str, Enum):
    NUMBER = "number"
    CURRENCY = "currency"
    PERCENTAGE = "percentage"


class StatStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


class LogicalRelation(str, Enum):
    """Relations a stat query may aggregate over."""
    ENTITIES = "core_entities"
    DYNAMIC_DATA = "core_dynamic_data"
    RELATIONSHIPS = "core_relationships"
    TRANSACTIONS = "universal_transactions"
    TRANSACTION_LINES = "universal_transaction_lines"


class ActionType(str, Enum):
    NAVIGATE = "NAVIGATE"
    API_CALL = "API_CALL"


class ActionPhase(str, Enum):
    INITIAL = "initial"
    CONFIRM = "confirm"


class ActionStatus(str, Enum):
    COMPLETED = "completed"
    PENDING_CONFIRMATION = "pending_confirmation"
    DENIED = "denied"


class GatewayOutcome(str, Enum):
    """Terminal states of the policy gateway (Error is raised, not returned)."""
    GRANTED = "granted"
    DENIED = "denied"


class DenialReason(str, Enum):
    RESOURCE_CONDITIONS = "resource_conditions"
    RESOURCE_UNAVAILABLE = "resource_unavailable"
    PRIVATE_STAT = "private_stat"
    STAT_CONDITIONS = "stat_conditions"
    ACTION_CONDITIONS = "action_conditions"
    ACTION_PERMISSION = "action_permission"


class EntityStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


# ─── Limits ──────────────────────────────────────────────────────

MAX_PAGE_SIZE = 500
DEFAULT_PAGE_SIZE = 50
