"""Resource Routes — resolved configs, stats and actions behind the policy gateway.

Invariants:
    - Every route depends on get_request_context (gateway steps 1-2) first
    - Unknown, disabled and foreign resources produce the same Denied view
    - Raw conditions never appear in a response
    - /stats answers 200 even when individual stats fail
    - Denied actions answer 403 {"error": "Denied"} without touching the store

Design Decisions:
    - Thin routes: decisions in core/policy_gateway.py, IO in services/
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from hera_core.api.dependencies import (
    get_confirmation_ledger, get_deadline_ms, get_entity_store, get_gateway,
    get_request_context, get_resource_repository, get_stat_resolver,
)
from hera_core.config import get_settings
from hera_core.core.domain_types import ActionStatus, GatewayOutcome
from hera_core.core.policy_gateway import PolicyGateway, denied_view, resolved_view
from hera_core.core.request_context import Context
from hera_core.core.resource_config import ResourceConfig
from hera_core.infrastructure.database import get_db, read_with_retry
from hera_core.schemas.resources import ActionRequest, ResourceCreate
from hera_core.services.action_executor import ActionExecutor
from hera_core.services.confirmation_ledger import ConfirmationLedger
from hera_core.services.entity_store import EntityStore
from hera_core.services.resource_repository import ResourceRepository
from hera_core.services.stat_resolver import StatResolver

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["resources"])

RESOURCE_WRITE_PERMISSION = "resources.write"
DENIED_BODY = {"error": "Denied"}


async def _load_config(
    repo: ResourceRepository, db: AsyncSession, resource_id: str,
) -> ResourceConfig | None:
    return await read_with_retry(
        db, lambda: repo.load(resource_id), get_settings().store_retry_backoff_ms,
    )


def _log_decision(resource_id: str, outcome: GatewayOutcome, reason=None) -> None:
    logger.info("Gateway decision", extra={
        "resource_id": resource_id,
        "outcome": outcome.value,
        "reason": reason.value if reason else None,
    })


@router.get("/resource/{resource_id}")
async def get_resource(
    resource_id: str,
    context: Context = Depends(get_request_context),
    gateway: PolicyGateway = Depends(get_gateway),
    repo: ResourceRepository = Depends(get_resource_repository),
    db: AsyncSession = Depends(get_db),
):
    """Resolved config for the caller, or the uniform Denied view."""
    config = await _load_config(repo, db, resource_id)
    decision = gateway.check_resource(config, context)
    _log_decision(resource_id, decision.outcome, decision.reason)
    if not decision.granted:
        return denied_view(resource_id)
    return resolved_view(config, context, gateway.private_roles)


@router.get("/resource/{resource_id}/stats")
async def get_resource_stats(
    resource_id: str,
    context: Context = Depends(get_request_context),
    gateway: PolicyGateway = Depends(get_gateway),
    repo: ResourceRepository = Depends(get_resource_repository),
    resolver: StatResolver = Depends(get_stat_resolver),
    deadline_ms: int = Depends(get_deadline_ms),
    db: AsyncSession = Depends(get_db),
):
    """Visible stats computed concurrently; each carries its own status."""
    config = await _load_config(repo, db, resource_id)
    decision = gateway.check_resource(config, context)
    _log_decision(resource_id, decision.outcome, decision.reason)
    if not decision.granted:
        return {**denied_view(resource_id), "stats": []}
    visible = [s for s in config.stats if gateway.check_stat(s, context).granted]
    stats = await resolver.compute_stats(visible, context, deadline_ms)
    return {
        "resource_id": resource_id,
        "decision": GatewayOutcome.GRANTED.value,
        "stats": stats,
    }


@router.post("/resource/{resource_id}/action/{action_id}")
async def execute_action(
    resource_id: str,
    action_id: str,
    body: ActionRequest,
    context: Context = Depends(get_request_context),
    gateway: PolicyGateway = Depends(get_gateway),
    repo: ResourceRepository = Depends(get_resource_repository),
    store: EntityStore = Depends(get_entity_store),
    ledger: ConfirmationLedger = Depends(get_confirmation_ledger),
    db: AsyncSession = Depends(get_db),
):
    """Run an action: 200 completed, 202 pending confirmation, 403 Denied."""
    config = await _load_config(repo, db, resource_id)
    decision = gateway.check_resource(config, context)
    action = config.action(action_id) if decision.granted else None
    if action is None:
        _log_decision(resource_id, GatewayOutcome.DENIED, decision.reason)
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=DENIED_BODY)

    executor = ActionExecutor(store, ledger, get_settings().confirmation_ttl_seconds)
    result = await executor.execute(
        resource_id, action, context.with_variables(body.variables),
        body.phase, body.confirmation_token,
    )
    if result.status == ActionStatus.DENIED:
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=DENIED_BODY)
    if result.status == ActionStatus.PENDING_CONFIRMATION:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED, content=result.to_response(),
        )
    return result.to_response()


@router.post("/resources", status_code=status.HTTP_201_CREATED)
async def create_resource(
    body: ResourceCreate,
    context: Context = Depends(get_request_context),
    repo: ResourceRepository = Depends(get_resource_repository),
):
    """Store a resource config for the caller's organization."""
    if not context.user.has_permission(RESOURCE_WRITE_PERMISSION):
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=DENIED_BODY)
    parsed = await repo.save(body.resource_id, body.config, body.smart_code)
    return {
        "resource_id": parsed.resource_id,
        "stats": len(parsed.stats),
        "actions": len(parsed.actions),
    }
