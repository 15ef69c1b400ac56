"""
Similarity index over embedded error texts.

Embeddings live in a pgvector column of error_documents. Search runs
entirely in PostgreSQL: candidates are narrowed to one project and
environment, ordered by cosine distance and cut at the limit.
"""

from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import Select, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from faultline.core.db import utcnow
from faultline.domain import SimilarError
from faultline.models import ErrorDocument


class SimilarityIndex(Protocol):
    async def upsert(
        self,
        event_id: str,
        project_id: str,
        environment: str,
        error_type: str,
        content: str,
        embedding: List[float],
        metadata: Dict[str, Any],
    ) -> None: ...

    async def search(
        self,
        embedding: List[float],
        project_id: str,
        environment: Optional[str],
        limit: int,
        min_score: float,
    ) -> List[SimilarError]: ...


def build_search_query(
    embedding: List[float],
    project_id: str,
    environment: Optional[str],
    limit: int,
    min_score: float,
) -> Select:
    """
    Nearest documents by cosine distance.

    Similarity is 1 - distance, so `min_score` becomes an upper bound on
    the distance.
    """
    distance = ErrorDocument.embedding.cosine_distance(embedding)
    query = (
        select(
            ErrorDocument.event_id,
            ErrorDocument.content,
            (1 - distance).label("similarity"),
        )
        .where(
            ErrorDocument.project_id == project_id,
            distance <= 1 - min_score,
        )
        .order_by(distance)
        .limit(limit)
    )
    if environment:
        query = query.where(ErrorDocument.environment == environment)
    return query


def build_upsert(event_id: str, values: Dict[str, Any]):
    """INSERT ... ON CONFLICT (event_id) DO UPDATE: re-indexing replaces the document."""
    stmt = insert(ErrorDocument.__table__).values(event_id=event_id, **values)
    return stmt.on_conflict_do_update(
        index_elements=["event_id"],
        set_={name: stmt.excluded[name] for name in values},
    )


class SqlSimilarityIndex:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def upsert(
        self,
        event_id: str,
        project_id: str,
        environment: str,
        error_type: str,
        content: str,
        embedding: List[float],
        metadata: Dict[str, Any],
    ) -> None:
        values = {
            "project_id": project_id,
            "environment": environment,
            "error_type": error_type,
            "content": content,
            "embedding": list(embedding),
            "metadata": metadata,
            "indexed_at": utcnow(),
        }
        async with self._sessions() as session:
            await session.execute(build_upsert(event_id, values))
            await session.commit()

    async def search(
        self,
        embedding: List[float],
        project_id: str,
        environment: Optional[str],
        limit: int,
        min_score: float,
    ) -> List[SimilarError]:
        query = build_search_query(embedding, project_id, environment, limit, min_score)
        async with self._sessions() as session:
            rows = (await session.execute(query)).all()

        return [
            SimilarError(event_id=row.event_id, similarity=float(row.similarity), content=row.content)
            for row in rows
        ]
