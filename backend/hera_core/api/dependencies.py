"""API Dependencies — gateway steps 1-2, rate limiting, deadlines and per-request services.

Invariants:
    - get_request_context() is the only way a route obtains a Context; it runs
      authenticate + bind_organization before any config or store access
    - Rate limiting runs twice: per client address before the gateway, then per
      authenticated user id; a throttled caller never reaches the store
    - Deadline header is clamped to settings.max_request_deadline_ms

Design Decisions:
    - Verifier, gateway and limiter are process singletons (lru_cache), so
      tests swap them with app.dependency_overrides
    - request.state.identity lets the error handlers feed error rates back
      into the limiter
"""

from functools import lru_cache

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hera_core.config import get_settings
from hera_core.core.errors import RateLimitedError
from hera_core.core.policy_gateway import PolicyGateway
from hera_core.core.rate_limit import RateLimiter
from hera_core.core.request_context import Context
from hera_core.infrastructure.database import get_db, get_session_factory
from hera_core.infrastructure.identity import JWTClaimsVerifier
from hera_core.services.confirmation_ledger import ConfirmationLedger
from hera_core.services.entity_store import EntityStore
from hera_core.services.resource_repository import ResourceRepository
from hera_core.services.stat_resolver import StatResolver


@lru_cache
def get_gateway() -> PolicyGateway:
    settings = get_settings()
    return PolicyGateway(
        JWTClaimsVerifier(settings.jwt_secret, settings.jwt_algorithm),
        settings.private_stat_roles,
    )


@lru_cache
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        limit_per_minute=settings.rate_limit_per_minute,
        burst_limit=settings.rate_limit_burst,
        max_identities=settings.rate_limit_max_identities,
    )


def _client_identity(request: Request) -> str:
    return f"addr:{request.client.host}" if request.client else "addr:unknown"


def _enforce(limiter: RateLimiter, identity: str) -> None:
    result = limiter.check(identity)
    if not result.allowed:
        raise RateLimitedError(result.retry_after_seconds)


async def get_request_context(
    request: Request,
    authorization: str | None = Header(None),
    x_organization_id: str | None = Header(None),
    gateway: PolicyGateway = Depends(get_gateway),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Context:
    """Gateway steps 1-2 plus rate limiting. Raises typed errors on failure."""
    request.state.identity = _client_identity(request)
    _enforce(limiter, request.state.identity)
    context = gateway.open(authorization, x_organization_id)
    request.state.identity = f"user:{context.user.id}"
    _enforce(limiter, request.state.identity)
    return context


def get_deadline_ms(x_request_deadline_ms: int | None = Header(None)) -> int:
    """Caller deadline in ms, clamped; defaults to settings.stat_timeout_ms."""
    settings = get_settings()
    if x_request_deadline_ms is None or x_request_deadline_ms <= 0:
        return settings.stat_timeout_ms
    return min(x_request_deadline_ms, settings.max_request_deadline_ms)


async def get_entity_store(
    context: Context = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> EntityStore:
    return EntityStore(db, context.organization.id)


async def get_resource_repository(
    context: Context = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
) -> ResourceRepository:
    return ResourceRepository(db, context.organization.id)


async def get_confirmation_ledger(
    db: AsyncSession = Depends(get_db),
) -> ConfirmationLedger:
    return ConfirmationLedger(db)


def get_stat_resolver() -> StatResolver:
    settings = get_settings()
    return StatResolver(
        get_session_factory(),
        currency=settings.default_currency,
        timeout_ms=settings.stat_timeout_ms,
        retry_backoff_ms=settings.store_retry_backoff_ms,
    )
