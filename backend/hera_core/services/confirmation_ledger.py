"""Confirmation Ledger — DB-backed single-use tokens for two-phase destructive actions.

Invariants:
    - A token is bound to (organization, user, resource, action) and expires after ttl
    - consume() is one conditional UPDATE (consumed_at IS NULL AND expires_at > now);
      exactly one caller sees rowcount == 1, every replay sees 0
    - Tokens are random and URL-safe; they never encode the binding
    - Expired rows are purged on every issue(), so the table holds only live tokens

Design Decisions:
    - Stored in the backing store so the request tier stays stateless across replicas
    - Clock injected so expiry is testable without sleeping
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import UUID

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from hera_core.models import ActionConfirmation

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConfirmationLedger:
    """ConfirmationRepository implementation over action_confirmations."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self._clock = clock

    async def issue(
        self, *, organization_id: str, user_id: str, resource_id: str,
        action_id: str, ttl_seconds: int,
    ) -> tuple[str, datetime]:
        now = self._clock()
        await self._delete_expired(now)
        token = secrets.token_urlsafe(TOKEN_BYTES)
        expires_at = now + timedelta(seconds=ttl_seconds)
        self.db.add(ActionConfirmation(
            token=token,
            organization_id=UUID(str(organization_id)),
            user_id=user_id,
            resource_id=resource_id,
            action_id=action_id,
            expires_at=expires_at,
        ))
        await self.db.commit()
        logger.info("Confirmation issued", extra={
            "resource_id": resource_id, "action_id": action_id, "outcome": "pending",
        })
        return token, expires_at

    async def purge_expired(self) -> int:
        """Delete tokens past their expiry, spent or not. Returns the row count."""
        purged = await self._delete_expired(self._clock())
        await self.db.commit()
        return purged

    async def _delete_expired(self, now: datetime) -> int:
        result = await self.db.execute(
            delete(ActionConfirmation)
            .where(ActionConfirmation.expires_at <= now)
            .execution_options(synchronize_session=False),
        )
        return result.rowcount

    async def consume(
        self, *, token: str, organization_id: str, user_id: str,
        resource_id: str, action_id: str,
    ) -> bool:
        """Atomically mark the token used. False if unknown, foreign, expired or spent."""
        if not token:
            return False
        now = self._clock()
        result = await self.db.execute(
            update(ActionConfirmation)
            .where(
                ActionConfirmation.token == token,
                ActionConfirmation.organization_id == UUID(str(organization_id)),
                ActionConfirmation.user_id == user_id,
                ActionConfirmation.resource_id == resource_id,
                ActionConfirmation.action_id == action_id,
                ActionConfirmation.consumed_at.is_(None),
                ActionConfirmation.expires_at > now,
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False),
        )
        await self.db.commit()
        return result.rowcount == 1
