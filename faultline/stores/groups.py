"""
Group Repository - transactional storage for error groups (issues).

Concurrency rules:
- find-or-create runs inside one transaction that locks the matching
  (project_id, fingerprint_hash) row with SELECT ... FOR UPDATE
- a row that does not exist yet cannot be locked, so two workers can both
  miss and both insert; the unique constraint rejects the second insert,
  which surfaces as GroupAlreadyExists and is resolved by the caller
- the insert runs in a SAVEPOINT so the surrounding transaction stays
  usable for the re-fetch after a conflict
- statistics and metadata updates lock the row they modify
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from faultline.core.errors import GroupAlreadyExists, GroupNotFound
from faultline.domain import ErrorGroup, GroupMetadata, GroupStats, GroupStatus, NewGroup
from faultline.models import GROUP_UNIQUE_CONSTRAINT, ErrorGroupRecord

logger = logging.getLogger(__name__)


class GroupTransaction(Protocol):
    """Operations that must share one transaction (and its row locks)."""

    async def find_by_fingerprint(
        self, project_id: str, fingerprint_hash: str
    ) -> Optional[ErrorGroup]: ...

    async def create_group(self, new_group: NewGroup) -> ErrorGroup: ...

    async def update_last_seen(self, group_id: str, seen_at: datetime) -> ErrorGroup: ...


class GroupRepository(Protocol):
    def transaction(self) -> Any:
        """Async context manager yielding a GroupTransaction."""
        ...

    async def get(self, group_id: str) -> Optional[ErrorGroup]: ...

    async def update_statistics(self, group_id: str, stats: GroupStats) -> ErrorGroup: ...

    async def merge_metadata(self, group_id: str, key: str, patch: Dict[str, Any]) -> ErrorGroup: ...

    async def record_analysis(
        self, group_id: str, summary: str, analysis: Dict[str, Any], analyzed_at: datetime
    ) -> ErrorGroup: ...


# =============================================================================
# METADATA DOCUMENT
# =============================================================================
# The metadata column is an open JSON document. These two functions are
# the only place that knows its key names.

_KNOWN_KEYS = {
    "level", "environment", "release", "aiAnalysis",
    "lastAnalysisDate", "lastAnalysisCount", "stats",
}


def metadata_to_document(metadata: GroupMetadata) -> Dict[str, Any]:
    document: Dict[str, Any] = dict(metadata.extra)
    if metadata.level is not None:
        document["level"] = metadata.level
    if metadata.environment is not None:
        document["environment"] = metadata.environment
    if metadata.release is not None:
        document["release"] = metadata.release
    if metadata.ai_analysis is not None:
        document["aiAnalysis"] = metadata.ai_analysis
    if metadata.last_analysis_date is not None:
        document["lastAnalysisDate"] = metadata.last_analysis_date.isoformat()
    if metadata.last_analysis_count:
        document["lastAnalysisCount"] = metadata.last_analysis_count
    if metadata.stats is not None:
        document["stats"] = {
            "last24h": metadata.stats.last_24h,
            "last7d": metadata.stats.last_7d,
            "last30d": metadata.stats.last_30d,
        }
    return document


def document_to_metadata(document: Optional[Dict[str, Any]]) -> GroupMetadata:
    document = document or {}
    stats = document.get("stats")
    last_analysis = document.get("lastAnalysisDate")
    return GroupMetadata(
        level=document.get("level"),
        environment=document.get("environment"),
        release=document.get("release"),
        ai_analysis=document.get("aiAnalysis"),
        last_analysis_date=datetime.fromisoformat(last_analysis) if last_analysis else None,
        last_analysis_count=int(document.get("lastAnalysisCount") or 0),
        stats=GroupStats(
            last_24h=stats.get("last24h", 0),
            last_7d=stats.get("last7d", 0),
            last_30d=stats.get("last30d", 0),
        ) if isinstance(stats, dict) else None,
        extra={k: v for k, v in document.items() if k not in _KNOWN_KEYS},
    )


def merge_document(document: Dict[str, Any], key: str, patch: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `patch` into document[key]; sibling keys are left alone."""
    merged = dict(document)
    current = merged.get(key)
    if isinstance(current, dict):
        merged[key] = {**current, **patch}
    else:
        merged[key] = dict(patch)
    return merged


def record_to_group(record: ErrorGroupRecord) -> ErrorGroup:
    return ErrorGroup(
        id=record.id,
        project_id=record.project_id,
        fingerprint_hash=record.fingerprint_hash,
        fingerprint=list(record.fingerprint or []),
        title=record.title,
        type=record.type,
        message=record.message,
        platform=record.platform,
        first_seen=record.first_seen,
        last_seen=record.last_seen,
        status=GroupStatus(record.status),
        event_count=record.event_count,
        user_count=record.user_count,
        ai_summary=record.ai_summary,
        metadata=document_to_metadata(record.metadata_),
    )


def _is_group_conflict(exc: IntegrityError) -> bool:
    orig = exc.orig
    diag = getattr(orig, "diag", None)
    if diag is not None and getattr(diag, "constraint_name", None) == GROUP_UNIQUE_CONSTRAINT:
        return True
    text = str(orig)
    return GROUP_UNIQUE_CONSTRAINT in text or "error_groups.fingerprint_hash" in text


# =============================================================================
# SQL IMPLEMENTATION
# =============================================================================


class SqlGroupTransaction:
    """GroupTransaction bound to one open AsyncSession transaction."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _locked(self, group_id: str) -> ErrorGroupRecord:
        record = await self._session.get(
            ErrorGroupRecord, group_id, with_for_update=True, populate_existing=True
        )
        if record is None:
            raise GroupNotFound(group_id)
        return record

    async def find_by_fingerprint(
        self, project_id: str, fingerprint_hash: str
    ) -> Optional[ErrorGroup]:
        query = (
            select(ErrorGroupRecord)
            .where(
                ErrorGroupRecord.project_id == project_id,
                ErrorGroupRecord.fingerprint_hash == fingerprint_hash,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(query)
        record = result.scalar_one_or_none()
        return record_to_group(record) if record else None

    async def create_group(self, new_group: NewGroup) -> ErrorGroup:
        """
        Insert a group.

        Raises:
            GroupAlreadyExists: another transaction holds the same
                (project_id, fingerprint_hash)
        """
        record = ErrorGroupRecord(
            project_id=new_group.project_id,
            fingerprint_hash=new_group.fingerprint_hash,
            fingerprint=list(new_group.fingerprint),
            title=new_group.title,
            type=new_group.type,
            message=new_group.message,
            platform=new_group.platform,
            first_seen=new_group.first_seen,
            last_seen=new_group.last_seen,
            status=GroupStatus.UNRESOLVED.value,
            event_count=0,
            user_count=0,
            metadata_=metadata_to_document(new_group.metadata),
        )
        try:
            async with self._session.begin_nested():
                self._session.add(record)
                await self._session.flush()
        except IntegrityError as exc:
            if _is_group_conflict(exc):
                raise GroupAlreadyExists(new_group.project_id, new_group.fingerprint_hash) from exc
            raise
        return record_to_group(record)

    async def update_last_seen(self, group_id: str, seen_at: datetime) -> ErrorGroup:
        """Advance last_seen (and pull back first_seen) to cover `seen_at`."""
        record = await self._locked(group_id)
        if seen_at > record.last_seen:
            record.last_seen = seen_at
        if seen_at < record.first_seen:
            record.first_seen = seen_at
        await self._session.flush()
        return record_to_group(record)


class SqlGroupRepository:
    """Group Repository on the error_groups table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlGroupTransaction]:
        async with self._sessions() as session:
            async with session.begin():
                yield SqlGroupTransaction(session)

    async def get(self, group_id: str) -> Optional[ErrorGroup]:
        async with self._sessions() as session:
            record = await session.get(ErrorGroupRecord, group_id)
            return record_to_group(record) if record else None

    async def update_statistics(self, group_id: str, stats: GroupStats) -> ErrorGroup:
        async with self.transaction() as tx:
            record = await tx._locked(group_id)
            record.event_count = stats.count
            record.user_count = stats.unique_users
            metadata = document_to_metadata(record.metadata_)
            metadata.stats = stats
            record.metadata_ = metadata_to_document(metadata)
            return record_to_group(record)

    async def merge_metadata(self, group_id: str, key: str, patch: Dict[str, Any]) -> ErrorGroup:
        async with self.transaction() as tx:
            record = await tx._locked(group_id)
            record.metadata_ = merge_document(record.metadata_ or {}, key, patch)
            return record_to_group(record)

    async def record_analysis(
        self, group_id: str, summary: str, analysis: Dict[str, Any], analyzed_at: datetime
    ) -> ErrorGroup:
        """Store the AI summary and remember the event count it was made at."""
        async with self.transaction() as tx:
            record = await tx._locked(group_id)
            metadata = document_to_metadata(record.metadata_)
            metadata.ai_analysis = analysis
            metadata.last_analysis_date = analyzed_at
            metadata.last_analysis_count = record.event_count
            record.ai_summary = summary
            record.metadata_ = metadata_to_document(metadata)
            return record_to_group(record)
