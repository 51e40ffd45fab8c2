"""Database layer — StoreError mapping, session guarding and read retry."""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError

from hera_core.core.errors import StoreError
from hera_core.infrastructure.database import (
    DatabaseSessionManager, guarded_session, to_store_error, with_read_retry,
)


def test_integrity_error_maps_to_commit():
    error = to_store_error(IntegrityError("INSERT", {}, Exception("duplicate key")))
    assert isinstance(error, StoreError)
    assert error.operation == "commit"
    assert error.to_response() == {"error": "StoreError", "detail": "storage operation failed"}


def test_operational_error_maps_to_execute():
    error = to_store_error(OperationalError("SELECT", {}, Exception("password=hunter2")))
    assert error.operation == "execute"
    assert "hunter2" not in str(error.to_response())


async def test_guarded_session_maps_driver_failure(test_session_factory):
    with pytest.raises(StoreError):
        async with guarded_session(test_session_factory) as db:
            await db.execute(text("SELECT * FROM no_such_table"))


async def test_guarded_session_propagates_other_errors(test_session_factory):
    with pytest.raises(KeyError):
        async with guarded_session(test_session_factory):
            raise KeyError("x")


async def test_read_retried_once_on_store_error():
    calls = []

    async def read():
        calls.append(1)
        if len(calls) == 1:
            raise StoreError("execute")
        return "ok"

    assert await with_read_retry(read, backoff_ms=1) == "ok"
    assert len(calls) == 2


async def test_read_fails_after_second_store_error():
    calls = []

    async def read():
        calls.append(1)
        raise StoreError("execute")

    with pytest.raises(StoreError):
        await with_read_retry(read, backoff_ms=1)
    assert len(calls) == 2


async def test_non_store_errors_not_retried():
    calls = []

    async def read():
        calls.append(1)
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await with_read_retry(read, backoff_ms=1)
    assert len(calls) == 1


async def test_health_check_reports_connectivity():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    try:
        assert await manager.health_check() is True
    finally:
        await manager.close()
