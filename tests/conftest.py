"""
Pytest configuration and fixtures.

Fixtures are reusable test setup/teardown functions.
They're automatically discovered by pytest from this file.
"""

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from faultline.core.db import Base
from faultline.domain import ErrorEvent, Level

import faultline.models  # noqa: F401  (registers every table)

from fakes import NOW


# =============================================================================
# DATABASE FIXTURES
# =============================================================================
# SQL adapters run against a throwaway SQLite file through aiosqlite.
# pysqlite's own transaction handling breaks SAVEPOINT, so the driver is
# put in autocommit mode and SQLAlchemy emits BEGIN itself.


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'faultline.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


# =============================================================================
# EVENT FACTORY
# =============================================================================


@pytest.fixture
def make_event():
    """Build an ErrorEvent with sensible defaults; keyword arguments override."""
    counter = {"n": 0}

    def _make(**overrides) -> ErrorEvent:
        counter["n"] += 1
        values = dict(
            id=f"evt-{counter['n']}",
            project_id="project-1",
            timestamp=NOW,
            received_at=NOW,
            level=Level.ERROR,
            message="x is not defined",
            type="ReferenceError",
            platform="javascript",
            fingerprint=["ReferenceError", "x is not defined"],
        )
        values.update(overrides)
        return ErrorEvent(**values)

    return _make
