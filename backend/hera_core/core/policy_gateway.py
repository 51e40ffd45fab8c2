"""Policy Gateway — per-request state machine ending in Granted, Denied or Error.

Invariants:
    - Step 1 (authenticate) and step 2 (bind organization) RAISE typed errors;
      they are fatal, non-retryable and precede any condition evaluation
    - Isolation is never expressed as a rule: bind_organization() compares the
      verified claim with the requested organization before configs are read
    - Steps 3-4 return GatewayDecision values; Denied is never raised
    - An action with requires_permission is Denied unless the caller holds actions.execute
    - A resource the bound organization does not own is Denied exactly like a
      failed condition (no existence oracle)
    - PURE: the verifier is injected, no IO, no logging

Design Decisions:
    - Functions per step plus a thin PolicyGateway holder for injected settings,
      so each step is testable without the others
    - resolved_view() returns resolved display data only; conditions never leave the core
"""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence
from uuid import UUID

from hera_core.core.condition_evaluator import evaluate, resolve, resolve_params
from hera_core.core.domain_types import DenialReason, GatewayOutcome
from hera_core.core.errors import (
    MissingAuthorizationError, OrganizationMismatchError, UserNotFoundError,
)
from hera_core.core.repository_protocols import ClaimsVerifier
from hera_core.core.request_context import Context, build_context
from hera_core.core.resource_config import ActionSpec, ResourceConfig
from hera_core.core.sanitize import clean_display
from hera_core.core.stat_query import StatSpec

BEARER_PREFIX = "Bearer "
PRIVATE_STAT_PERMISSION = "stats.private"
ACTION_PERMISSION = "actions.execute"


@dataclass(frozen=True)
class GatewayDecision:
    outcome: GatewayOutcome
    reason: DenialReason | None = None

    @property
    def granted(self) -> bool:
        return self.outcome == GatewayOutcome.GRANTED


GRANTED = GatewayDecision(GatewayOutcome.GRANTED)


def denied(reason: DenialReason) -> GatewayDecision:
    return GatewayDecision(GatewayOutcome.DENIED, reason)


# ─── Step 1: authenticate ────────────────────────────────────────

def extract_bearer(authorization: str | None) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise MissingAuthorizationError()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise MissingAuthorizationError()
    return token


def authenticate(
    authorization: str | None, verifier: ClaimsVerifier,
) -> Mapping[str, Any]:
    """Bearer header -> verified claim set."""
    claims = verifier(extract_bearer(authorization))
    if not claims.get("user_id"):
        raise UserNotFoundError()
    return claims


# ─── Step 2: bind organization ───────────────────────────────────

def _normalize_org(value: Any) -> str | None:
    if value is None:
        return None
    try:
        return str(UUID(str(value)))
    except ValueError:
        return None


def bind_organization(
    claims: Mapping[str, Any], requested_organization_id: str | None,
) -> Context:
    """Fatal tenant binding. Claim and request must name the same organization."""
    claimed = _normalize_org(claims.get("organization_id"))
    requested = _normalize_org(requested_organization_id)
    if claimed is None or requested is None or claimed != requested:
        raise OrganizationMismatchError()
    return build_context({**claims, "organization_id": claimed}, requested)


# ─── Step 3: resource conditions ─────────────────────────────────

def decide_resource(config: ResourceConfig | None, context: Context) -> GatewayDecision:
    if config is None or not config.enabled:
        return denied(DenialReason.RESOURCE_UNAVAILABLE)
    if not evaluate(config.conditions, context):
        return denied(DenialReason.RESOURCE_CONDITIONS)
    return GRANTED


# ─── Step 4: stat / action gates ─────────────────────────────────

def decide_stat(
    stat: StatSpec, context: Context, private_roles: Sequence[str],
) -> GatewayDecision:
    if stat.is_private and not (
        context.user.role in private_roles
        or context.user.has_permission(PRIVATE_STAT_PERMISSION)
    ):
        return denied(DenialReason.PRIVATE_STAT)
    if not evaluate(stat.visibility_conditions, context):
        return denied(DenialReason.STAT_CONDITIONS)
    return GRANTED


def decide_action(action: ActionSpec, context: Context) -> GatewayDecision:
    if action.requires_permission and not context.user.has_permission(ACTION_PERMISSION):
        return denied(DenialReason.ACTION_PERMISSION)
    if not evaluate(action.visibility_conditions, context):
        return denied(DenialReason.ACTION_CONDITIONS)
    return GRANTED


# ─── Resolved view (GET /resource/{id}) ──────────────────────────

def _action_view(action: ActionSpec, context: Context) -> dict:
    return {
        "action_id": action.action_id,
        "label": clean_display(action.label),
        "icon": action.icon,
        "action_type": action.action_type.value,
        "is_primary": action.is_primary,
        "requires_confirmation": action.requires_confirmation,
        "requires_permission": action.requires_permission,
        "route": resolve(action.route, context) if action.route else None,
        "parameters": resolve_params(dict(action.parameters), context),
    }


def resolved_view(
    config: ResourceConfig, context: Context, private_roles: Sequence[str],
) -> dict:
    """Resolved config for a granted caller: invisible stats/actions removed."""
    return {
        "resource_id": config.resource_id,
        "decision": GatewayOutcome.GRANTED.value,
        "ui": clean_display(dict(config.ui)),
        "layout": dict(config.layout),
        "stats": [
            {
                "stat_id": s.stat_id,
                "label": clean_display(s.label),
                "format": s.format.value,
                "is_private": s.is_private,
            }
            for s in config.stats
            if decide_stat(s, context, private_roles).granted
        ],
        "actions": [
            _action_view(a, context)
            for a in config.actions
            if decide_action(a, context).granted
        ],
    }


def denied_view(resource_id: str) -> dict:
    return {"resource_id": resource_id, "decision": GatewayOutcome.DENIED.value}


class PolicyGateway:
    """Holds injected collaborators; each method is one step of the state machine."""

    def __init__(self, verifier: ClaimsVerifier, private_roles: Sequence[str]):
        self._verifier = verifier
        self.private_roles = tuple(private_roles)

    def open(
        self, authorization: str | None, requested_organization_id: str | None,
    ) -> Context:
        """Steps 1-2. Raises on failure; returns the bound Context."""
        claims = authenticate(authorization, self._verifier)
        return bind_organization(claims, requested_organization_id)

    def check_resource(self, config: ResourceConfig | None, context: Context) -> GatewayDecision:
        return decide_resource(config, context)

    def check_stat(self, stat: StatSpec, context: Context) -> GatewayDecision:
        return decide_stat(stat, context, self.private_roles)

    def check_action(self, action: ActionSpec, context: Context) -> GatewayDecision:
        return decide_action(action, context)
