"""Database Session Manager — async connection pool with automatic rollback and health checks.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - Connection pool uses pool_pre_ping for stale connection detection
    - All SQLAlchemy exceptions mapped to StoreError (core/errors.py); the
      driver message is logged, never returned to the caller
    - Only idempotent reads are retried (with_read_retry); writes never are

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
    - expire_on_commit=False: prevents lazy-load issues in async context
    - session_factory exposed so concurrent stat tasks each open their own session
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.exc import (
    IntegrityError, OperationalError, DBAPIError, SQLAlchemyError,
)
from sqlalchemy import text

from hera_core.core.errors import StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


_OPERATIONS = (
    (IntegrityError, "commit", "DB integrity error"),
    (OperationalError, "execute", "DB operational error"),
    (DBAPIError, "query", "DB driver error"),
    (SQLAlchemyError, "unknown", "SQLAlchemy error"),
)


def to_store_error(exc: SQLAlchemyError) -> StoreError:
    """Log the driver failure by class name only and return the sanitized StoreError."""
    for exc_type, operation, message in _OPERATIONS:
        if isinstance(exc, exc_type):
            logger.error(message, extra={"error_kind": type(exc).__name__})
            return StoreError(operation)
    return StoreError("unknown")


@asynccontextmanager
async def store_operation(session: AsyncSession) -> AsyncGenerator[None, None]:
    """Map store failures inside a request-scoped session without closing it."""
    try:
        yield
    except SQLAlchemyError as e:
        await session.rollback()
        raise to_store_error(e) from None


@asynccontextmanager
async def guarded_session(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session from factory; roll back and map store failures to StoreError."""
    session = factory()
    try:
        yield session
    except SQLAlchemyError as e:
        await session.rollback()
        raise to_store_error(e) from None
    except BaseException:
        await session.rollback()
        raise
    finally:
        await session.close()


class DatabaseSessionManager:
    """Manages async database sessions with pooling, rollback, and health checks."""

    def __init__(
        self, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ):
        engine_kwargs = {"pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=pool_size, max_overflow=max_overflow, pool_recycle=3600,
            )
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    def session(self):
        """Provide session with auto-rollback on exception."""
        return guarded_session(self.session_factory)

    async def health_check(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except StoreError:
            logger.error("DB health check failed")
            return False

    async def close(self) -> None:
        await self.engine.dispose()


async def with_read_retry(
    read: Callable[[], Awaitable[T]], backoff_ms: int = 50,
) -> T:
    """Run an idempotent read, retrying once on StoreError after backoff_ms."""
    try:
        return await read()
    except StoreError as e:
        logger.warning(
            "Store read failed, retrying once",
            extra={"error_kind": e.kind, "attempt": 1},
        )
    await asyncio.sleep(backoff_ms / 1000)
    return await read()


# Singleton (initialized on startup)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs):
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if not db_manager:
        raise RuntimeError("Database not initialized")
    return db_manager.session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    if not db_manager:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session


async def read_with_retry(
    session: AsyncSession, read: Callable[[], Awaitable[T]], backoff_ms: int = 50,
) -> T:
    """with_read_retry for reads on a request-scoped session."""
    async def attempt() -> T:
        async with store_operation(session):
            return await read()
    return await with_read_retry(attempt, backoff_ms)
