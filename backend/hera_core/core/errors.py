"""Error Hierarchy — typed, categorized exceptions for every failure mode of the core.

Invariants:
    - Every error has a kind (str), category (ErrorCategory), severity (ErrorSeverity)
    - to_response() produces the wire envelope {"error": kind, "detail"?: safe string}
    - detail NEVER carries tenant ids, emails, permission lists or a rejected expression
    - Tenant-boundary and expression errors are never retryable
    - Denied is NOT an exception: it is a GatewayDecision value (core/policy_gateway.py)

Design Decisions:
    - Single hierarchy with HeraError base: FastAPI global handler catches all
    - Safe detail strings are fixed literals chosen at raise sites, not str(exc) of a cause
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    AUTHENTICATION = "authentication"
    ISOLATION = "isolation"
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    DATABASE = "database"
    THROTTLE = "throttle"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Operator-facing context. Logged (after redaction), never sent to clients."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resource_id: str | None = None
    action_id: str | None = None
    operation: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_seconds: float | None = None


class HeraError(Exception):
    """Base for all core errors."""

    retryable: bool = False

    def __init__(
        self,
        kind: str,
        detail: str | None = None,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(detail or kind)
        self.kind = kind
        self.detail = detail
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def message(self) -> str:
        return self.detail or self.kind

    def to_response(self) -> dict:
        """Convert to the public error envelope."""
        body: dict[str, Any] = {"error": self.kind}
        if self.detail:
            body["detail"] = self.detail
        return body


# ─── Gateway: authentication & tenant binding (fatal, pre-evaluation) ──

class MissingAuthorizationError(HeraError):
    """No bearer credential on the request."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "MissingAuthorization", "bearer token required",
            ErrorCategory.AUTHENTICATION, ErrorSeverity.WARNING, context, 401,
        )


class InvalidTokenFormatError(HeraError):
    """Bearer credential could not be decoded or verified."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "InvalidTokenFormat", "bearer token rejected",
            ErrorCategory.AUTHENTICATION, ErrorSeverity.WARNING, context, 401,
        )


class UserNotFoundError(HeraError):
    """Verified token does not identify a user."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "UserNotFound", "identity not recognized",
            ErrorCategory.AUTHENTICATION, ErrorSeverity.WARNING, context, 401,
        )


class OrganizationMismatchError(HeraError):
    """Caller's organization claim differs from the requested organization."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "OrganizationMismatch", "organization not permitted for this identity",
            ErrorCategory.ISOLATION, ErrorSeverity.ERROR, context, 403,
        )


# ─── Store & evaluator errors (400-level) ──────────────────────────────

class ValidationError(HeraError):
    """Input failed validation (bad smart code, missing required field)."""
    def __init__(
        self, detail: str, field: str | None = None, context: ErrorContext | None = None,
    ):
        super().__init__(
            "ValidationError", detail,
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class TypeMismatchError(HeraError):
    """Dynamic field value type conflicts with its declared type."""
    def __init__(self, field_name: str, declared: str, given: str, context: ErrorContext | None = None):
        super().__init__(
            "TypeMismatchError",
            f"field '{field_name}' is declared as {declared}, got {given}",
            ErrorCategory.CONFLICT, ErrorSeverity.ERROR, context, 409,
        )
        self.field_name = field_name
        self.declared = declared
        self.given = given


class CrossTenantError(HeraError):
    """A write would link records across two organizations."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "CrossTenantError", "referenced record is outside the caller's organization",
            ErrorCategory.ISOLATION, ErrorSeverity.ERROR, context, 403,
        )


class NotFoundError(HeraError):
    """Record does not exist in the caller's organization."""
    def __init__(self, resource_type: str, context: ErrorContext | None = None):
        super().__init__(
            "NotFoundError", f"{resource_type} not found",
            ErrorCategory.RESOURCE_NOT_FOUND, ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type


class MalformedExpressionError(HeraError):
    """Field path or template failed the allow-list grammar."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "MalformedExpressionError", "rejected: invalid field/path",
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, context, 400,
        )


class PendingConfirmationError(HeraError):
    """Destructive action replayed without a valid confirmation token."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "PendingConfirmationError", "action requires a valid confirmation token",
            ErrorCategory.CONFLICT, ErrorSeverity.WARNING, context, 409,
        )


class RateLimitedError(HeraError):
    """Identity exceeded its request budget."""
    def __init__(self, retry_after_seconds: float, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.retry_after_seconds = retry_after_seconds
        super().__init__(
            "RateLimited", f"retry after {retry_after_seconds:.1f} seconds",
            ErrorCategory.THROTTLE, ErrorSeverity.WARNING, ctx, 429,
        )


# ─── Infrastructure errors (500-level) ─────────────────────────────────

class StoreError(HeraError):
    """Sanitized wrapper over backing-store failures."""

    retryable = True

    def __init__(self, operation: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.operation = operation
        super().__init__(
            "StoreError", "storage operation failed",
            ErrorCategory.DATABASE, ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.operation = operation
