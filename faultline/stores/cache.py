"""
AI cache store - rows of the ai_analysis_cache table.

Several rows may exist for one (fingerprint_hash, analysis_type); lookups
return the best one by confidence, then usage. Privacy filtering happens
on the fetched candidates, which keeps the query portable across
backends (projects_used is a JSON list).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from faultline.domain import AICacheEntry, AnalysisType
from faultline.models import AICacheRecord

logger = logging.getLogger(__name__)


class AICacheStore(Protocol):
    async def lookup(
        self,
        fingerprint_hash: str,
        analysis_type: AnalysisType,
        project_id: Optional[str] = None,
        respect_privacy: bool = True,
    ) -> Optional[AICacheEntry]: ...

    async def insert(self, entry: AICacheEntry) -> AICacheEntry: ...

    async def record_usage(
        self,
        entry_id: str,
        project_id: Optional[str],
        tokens_saved: int,
        cost_saved_cents: int,
        used_at: datetime,
    ) -> None: ...

    async def apply_feedback(
        self, fingerprint_hash: str, analysis_type: AnalysisType, score: float
    ) -> int: ...

    async def stats(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[Dict[str, Any]]: ...


def visible_to(entry: AICacheEntry, project_id: Optional[str], respect_privacy: bool) -> bool:
    """A private entry is only served to projects that already used it."""
    if not respect_privacy or not project_id:
        return True
    return entry.is_public or project_id in entry.projects_used


def lookup_order(entry: AICacheEntry) -> tuple:
    return (-entry.confidence_score, -entry.usage_count)


def updated_average(old_avg: Optional[float], old_count: int, score: float) -> float:
    return ((old_avg or 0.0) * old_count + score) / (old_count + 1)


def record_to_entry(record: AICacheRecord) -> AICacheEntry:
    initial = (record.metadata_ or {}).get("initialTokens") or {}
    return AICacheEntry(
        id=record.id,
        fingerprint_hash=record.fingerprint_hash,
        analysis_type=AnalysisType(record.analysis_type),
        provider=record.provider,
        model=record.model,
        analysis_result=record.analysis_result,
        prompt_hash=record.prompt_hash,
        confidence_score=record.confidence_score,
        is_public=record.is_public,
        error_patterns=list(record.error_patterns or []),
        created_at=record.created_at,
        last_used_at=record.last_used_at,
        usage_count=record.usage_count,
        projects_used=list(record.projects_used or []),
        avg_feedback_score=record.avg_feedback_score,
        feedback_count=record.feedback_count,
        tokens_saved=record.tokens_saved,
        cost_saved_cents=record.cost_saved_cents,
        prompt_tokens=int(initial.get("prompt") or 0),
        completion_tokens=int(initial.get("completion") or 0),
    )


class SqlAICacheStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def lookup(
        self,
        fingerprint_hash: str,
        analysis_type: AnalysisType,
        project_id: Optional[str] = None,
        respect_privacy: bool = True,
    ) -> Optional[AICacheEntry]:
        stmt = (
            select(AICacheRecord)
            .where(
                AICacheRecord.fingerprint_hash == fingerprint_hash,
                AICacheRecord.analysis_type == analysis_type.value,
            )
            .order_by(AICacheRecord.confidence_score.desc(), AICacheRecord.usage_count.desc())
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            for record in result.scalars():
                entry = record_to_entry(record)
                if visible_to(entry, project_id, respect_privacy):
                    return entry
        return None

    async def insert(self, entry: AICacheEntry) -> AICacheEntry:
        record = AICacheRecord(
            fingerprint_hash=entry.fingerprint_hash,
            analysis_type=entry.analysis_type.value,
            provider=entry.provider,
            model=entry.model,
            analysis_result=entry.analysis_result,
            prompt_hash=entry.prompt_hash,
            confidence_score=entry.confidence_score,
            is_public=entry.is_public,
            error_patterns=list(entry.error_patterns),
            created_at=entry.created_at,
            last_used_at=entry.last_used_at,
            usage_count=entry.usage_count,
            projects_used=list(entry.projects_used),
            avg_feedback_score=entry.avg_feedback_score,
            feedback_count=entry.feedback_count,
            tokens_saved=entry.tokens_saved,
            cost_saved_cents=entry.cost_saved_cents,
            metadata_={
                "initialTokens": {
                    "prompt": entry.prompt_tokens,
                    "completion": entry.completion_tokens,
                }
            },
        )
        async with self._sessions() as session:
            session.add(record)
            await session.commit()
        return record_to_entry(record)

    async def record_usage(
        self,
        entry_id: str,
        project_id: Optional[str],
        tokens_saved: int,
        cost_saved_cents: int,
        used_at: datetime,
    ) -> None:
        async with self._sessions() as session:
            async with session.begin():
                record = await session.get(AICacheRecord, entry_id, with_for_update=True)
                if record is None:
                    return
                record.usage_count += 1
                record.last_used_at = used_at
                record.tokens_saved += tokens_saved
                record.cost_saved_cents += cost_saved_cents
                if project_id and project_id not in (record.projects_used or []):
                    record.projects_used = [*(record.projects_used or []), project_id]

    async def apply_feedback(
        self, fingerprint_hash: str, analysis_type: AnalysisType, score: float
    ) -> int:
        """Fold `score` into the running average of every matching row."""
        stmt = (
            select(AICacheRecord)
            .where(
                AICacheRecord.fingerprint_hash == fingerprint_hash,
                AICacheRecord.analysis_type == analysis_type.value,
            )
            .with_for_update()
        )
        async with self._sessions() as session:
            async with session.begin():
                records = (await session.execute(stmt)).scalars().all()
                for record in records:
                    record.avg_feedback_score = updated_average(
                        record.avg_feedback_score, record.feedback_count, score
                    )
                    record.feedback_count += 1
                return len(records)

    async def stats(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Hits and savings per (analysis_type, provider) for entries used in the period."""
        stmt = select(
            AICacheRecord.analysis_type,
            AICacheRecord.provider,
            func.sum(AICacheRecord.usage_count - 1).label("hits"),
            func.sum(AICacheRecord.tokens_saved).label("tokens_saved"),
            func.sum(AICacheRecord.cost_saved_cents).label("cost_saved_cents"),
        ).group_by(AICacheRecord.analysis_type, AICacheRecord.provider)
        if start:
            stmt = stmt.where(AICacheRecord.last_used_at >= start)
        if end:
            stmt = stmt.where(AICacheRecord.last_used_at <= end)

        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()

        return [
            {
                "analysis_type": row.analysis_type,
                "provider": row.provider,
                "hits": int(row.hits or 0),
                "tokens_saved": int(row.tokens_saved or 0),
                "cost_saved_cents": int(row.cost_saved_cents or 0),
            }
            for row in rows
        ]
