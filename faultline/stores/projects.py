"""
Project lookups shared by the ingestion service, the read API and AI
usage billing.
"""

import hashlib
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from faultline.models import Project


def hash_secret_key(key: str) -> str:
    """Hash a project secret key for comparison."""
    return hashlib.sha256(key.encode()).hexdigest()


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class SqlProjectDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def get(self, project_id: str) -> Optional[Project]:
        async with self._sessions() as session:
            return await session.get(Project, project_id)

    async def resolve_key(self, project_key: str) -> Optional[Project]:
        """
        Project addressed by a DSN key.

        UUID-shaped keys match the id or the public key, anything else
        only the public key.
        """
        if is_uuid(project_key):
            condition = (Project.id == project_key) | (Project.public_key == project_key)
        else:
            condition = Project.public_key == project_key
        async with self._sessions() as session:
            result = await session.execute(select(Project).where(condition).limit(1))
            return result.scalar_one_or_none()

    async def by_secret_key(self, secret_key: str) -> Optional[Project]:
        query = select(Project).where(Project.secret_key_hash == hash_secret_key(secret_key))
        async with self._sessions() as session:
            result = await session.execute(query)
            return result.scalar_one_or_none()
