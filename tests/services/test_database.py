"""Database Session Manager — SQLAlchemy failures translated to domain errors.

Tests cover:
    - Stale optimistic-lock write → ConcurrencyError (409)
    - Integrity / operational / generic failures → DatabaseError (503) with operation
    - session() rolls back and re-raises the translated error
    - health_check reports an unreachable database as False
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from badgeledger.core.errors import ConcurrencyError, DatabaseError
from badgeledger.infrastructure.database import (
    DatabaseSessionManager, translate_db_error,
)


def test_stale_write_is_concurrency_conflict():
    error = translate_db_error(StaleDataError("version mismatch"))
    assert isinstance(error, ConcurrencyError)
    assert error.http_status == 409


@pytest.mark.parametrize("raised, operation", [
    (IntegrityError("INSERT", {}, Exception("duplicate key")), "commit"),
    (OperationalError("SELECT", {}, Exception("connection reset")), "execute"),
    (SQLAlchemyError("mapper misconfigured"), "unknown"),
])
def test_failures_become_database_error(raised, operation):
    error = translate_db_error(raised)
    assert isinstance(error, DatabaseError)
    assert error.operation == operation
    assert error.http_status == 503


async def test_session_translates_and_rolls_back():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    with pytest.raises(DatabaseError):
        async with manager.session():
            raise OperationalError("SELECT", {}, Exception("gone"))
    await manager.dispose()


async def test_health_check_ok_on_sqlite():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    assert await manager.health_check() is True
    await manager.dispose()


async def test_health_check_false_when_unreachable():
    manager = DatabaseSessionManager("sqlite+aiosqlite:////nonexistent-dir/x/db.sqlite")
    assert await manager.health_check() is False
    await manager.dispose()
