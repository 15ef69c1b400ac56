"""
Database connection and session management.

SQLAlchemy 2.0 async pattern:
- Engine: manages the connection pool
- AsyncSessionLocal: factory for creating database sessions
- Base: parent class for all our ORM models

The relational store holds projects, error groups, the AI analysis cache
and the event table. Stores receive a session factory instead of importing
the module-level one, so tests can bind them to a throwaway database.
"""

from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from faultline.core.config import settings


# =============================================================================
# DATABASE ENGINE
# =============================================================================
# - echo=settings.debug: when True, logs all SQL statements
# - pool_pre_ping=True: tests connections before using them

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)


# =============================================================================
# SESSION FACTORY
# =============================================================================
# expire_on_commit=False: objects remain usable after commit

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# =============================================================================
# COLUMN TYPES
# =============================================================================
# Open JSON documents are JSONB on PostgreSQL and plain JSON elsewhere.

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp that always round-trips as UTC.

    Naive values are assumed to already be UTC. Backends that drop the
    offset (SQLite) get it re-attached on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# BASE MODEL CLASS
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


# =============================================================================
# DEPENDENCY: GET DATABASE SESSION
# =============================================================================


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency that provides a database session.

    Usage in a route:
        @app.get("/projects")
        async def list_projects(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        yield session
