"""Action Executor — runs a resource action for a granted caller.

Invariants:
    - Action visibility is re-checked here before ANY store access; a denied
      caller causes zero reads, zero writes and no confirmation token
    - requires_confirmation actions follow initial -> confirm: initial only
      issues a token, confirm must consume a valid one or PendingConfirmationError
    - Non-destructive actions ignore phase and run immediately
    - API_CALL operations come from OPERATIONS only; parameters are
      template-resolved against the request Context before dispatch

Design Decisions:
    - Explicit dispatch dict (no reflection or registry decorators)
    - Token is consumed before the operation runs, so a replayed confirm can
      never execute twice even if the first run later fails
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Mapping

from hera_core.core.condition_evaluator import resolve, resolve_params
from hera_core.core.domain_types import ActionPhase, ActionStatus, ActionType, DenialReason
from hera_core.core.errors import PendingConfirmationError, ValidationError
from hera_core.core.policy_gateway import decide_action
from hera_core.core.repository_protocols import ConfirmationRepository
from hera_core.core.request_context import Context
from hera_core.core.resource_config import ActionSpec
from hera_core.services.entity_store import (
    EntityStore, serialize_entity, serialize_field, serialize_relationship,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionResult:
    status: ActionStatus
    action_id: str
    action_type: ActionType | None = None
    data: Mapping[str, Any] = field(default_factory=dict)
    confirmation_token: str | None = None
    expires_at: datetime | None = None
    reason: DenialReason | None = None

    def to_response(self) -> dict:
        body: dict[str, Any] = {"status": self.status.value, "action_id": self.action_id}
        if self.status == ActionStatus.PENDING_CONFIRMATION:
            body["confirmation_token"] = self.confirmation_token
            body["expires_at"] = self.expires_at.isoformat()
        elif self.status == ActionStatus.COMPLETED:
            body["action_type"] = self.action_type.value
            body["result"] = dict(self.data)
        return body


# ─── Operations ──────────────────────────────────────────────────

def _param(params: Mapping[str, Any], name: str) -> Any:
    value = params.get(name)
    if value is None or value == "":
        raise ValidationError(f"missing parameter {name}", field=name)
    return value


async def _delete_entity(store: EntityStore, params: Mapping[str, Any]) -> dict:
    return {"deleted": await store.delete_entity(_param(params, "entity_id"))}


async def _set_dynamic_field(store: EntityStore, params: Mapping[str, Any]) -> dict:
    if "value" not in params:
        raise ValidationError("missing parameter value", field="value")
    field_row = await store.set_dynamic_field(
        _param(params, "entity_id"),
        _param(params, "field_name"),
        params["value"],
        _param(params, "smart_code"),
    )
    return serialize_field(field_row)


async def _update_entity_status(store: EntityStore, params: Mapping[str, Any]) -> dict:
    entity = await store.update_entity(
        _param(params, "entity_id"), {"status": _param(params, "status")},
    )
    return serialize_entity(entity)


async def _create_relationship(store: EntityStore, params: Mapping[str, Any]) -> dict:
    rel = await store.create_relationship(
        _param(params, "from_entity_id"),
        _param(params, "to_entity_id"),
        _param(params, "relationship_type"),
        _param(params, "smart_code"),
        params.get("metadata"),
    )
    return serialize_relationship(rel)


Operation = Callable[[EntityStore, Mapping[str, Any]], Awaitable[dict]]

OPERATIONS: dict[str, Operation] = {
    "delete_entity": _delete_entity,
    "set_dynamic_field": _set_dynamic_field,
    "update_entity_status": _update_entity_status,
    "create_relationship": _create_relationship,
}


# ─── Executor ────────────────────────────────────────────────────

class ActionExecutor:
    """Executes one action per call against a tenant-bound EntityStore."""

    def __init__(
        self,
        store: EntityStore,
        confirmations: ConfirmationRepository,
        confirmation_ttl_seconds: int = 120,
    ):
        self.store = store
        self.confirmations = confirmations
        self.confirmation_ttl_seconds = confirmation_ttl_seconds

    async def execute(
        self,
        resource_id: str,
        action: ActionSpec,
        context: Context,
        phase: ActionPhase = ActionPhase.INITIAL,
        token: str | None = None,
    ) -> ActionResult:
        decision = decide_action(action, context)
        if not decision.granted:
            logger.info("Action denied", extra={
                "resource_id": resource_id, "action_id": action.action_id,
                "outcome": "denied", "reason": decision.reason.value,
            })
            return ActionResult(
                status=ActionStatus.DENIED, action_id=action.action_id,
                reason=decision.reason,
            )

        if action.requires_confirmation:
            binding = {
                "organization_id": context.organization.id,
                "user_id": context.user.id,
                "resource_id": resource_id,
                "action_id": action.action_id,
            }
            if phase == ActionPhase.INITIAL:
                issued, expires_at = await self.confirmations.issue(
                    ttl_seconds=self.confirmation_ttl_seconds, **binding,
                )
                return ActionResult(
                    status=ActionStatus.PENDING_CONFIRMATION,
                    action_id=action.action_id,
                    action_type=action.action_type,
                    confirmation_token=issued,
                    expires_at=expires_at,
                )
            if not await self.confirmations.consume(token=token or "", **binding):
                logger.warning("Confirmation rejected", extra={
                    "resource_id": resource_id, "action_id": action.action_id,
                    "outcome": "rejected",
                })
                raise PendingConfirmationError()

        data = await self._perform(action, context)
        logger.info("Action completed", extra={
            "resource_id": resource_id, "action_id": action.action_id,
            "outcome": "completed",
        })
        return ActionResult(
            status=ActionStatus.COMPLETED, action_id=action.action_id,
            action_type=action.action_type, data=data,
        )

    async def _perform(self, action: ActionSpec, context: Context) -> dict:
        parameters = resolve_params(dict(action.parameters), context)
        if action.action_type == ActionType.NAVIGATE:
            return {"route": resolve(action.route, context), "parameters": parameters}
        operation = OPERATIONS.get(action.operation or "")
        if operation is None:
            raise ValidationError("unknown operation", field="operation")
        return await operation(self.store, parameters)
