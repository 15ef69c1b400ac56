"""
Event Store - append-only storage for raw error events.

The store answers point lookups, filtered range queries and the
aggregations used by the pipeline (group statistics, spike windows) and
by the read API (time buckets, top types, summary). After insert, only
group_id and has_been_processed are ever written.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import case, distinct, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from faultline.core.db import utcnow
from faultline.domain import ErrorEvent, EventQuery, GroupStats, Level, RecentCounts
from faultline.models import ErrorEventRecord

logger = logging.getLogger(__name__)

BUCKET_PERIODS = ("hour", "day", "week", "month")
AGGREGATION_WINDOW = timedelta(days=30)


class EventStore(Protocol):
    """What the ingestion service, the pipeline and the read API need."""

    async def store(self, event: ErrorEvent) -> bool: ...

    async def get(self, event_id: str) -> Optional[ErrorEvent]: ...

    async def query(self, params: EventQuery) -> List[ErrorEvent]: ...

    async def assign_group(self, event_id: str, group_id: str) -> None: ...

    async def mark_processed(self, event_id: str) -> None: ...

    async def group_statistics(self, group_id: str, now: Optional[datetime] = None) -> GroupStats: ...

    async def recent_group_counts(
        self, group_id: str, window_minutes: int = 60, now: Optional[datetime] = None
    ) -> RecentCounts: ...


# =============================================================================
# ROW <-> EVENT CONVERSION
# =============================================================================

_EVENT_COLUMNS = (
    "id", "project_id", "timestamp", "received_at", "message", "type", "platform",
    "environment", "handled", "release", "server_name", "transaction", "url",
    "method", "status_code", "user_hash", "session_id", "client_info",
    "sdk_version", "exception", "exception_type", "exception_value",
    "exception_module", "stack_trace", "frames_count", "request", "tags", "extra",
    "breadcrumbs", "contexts", "is_sample", "sample_rate", "group_id",
    "has_been_processed",
)


def event_to_record(event: ErrorEvent) -> ErrorEventRecord:
    values = {name: getattr(event, name) for name in _EVENT_COLUMNS}
    return ErrorEventRecord(
        **values,
        level=event.level.value,
        sdk=event.sdk or {},
        fingerprint=list(event.fingerprint),
    )


def record_to_event(record: ErrorEventRecord) -> ErrorEvent:
    values = {name: getattr(record, name) for name in _EVENT_COLUMNS}
    fingerprint = record.fingerprint
    if isinstance(fingerprint, str):
        fingerprint = [fingerprint]
    return ErrorEvent(
        **values,
        level=Level.parse(record.level),
        sdk=record.sdk or {},
        fingerprint=list(fingerprint or []),
    )


# =============================================================================
# SQL IMPLEMENTATION
# =============================================================================


class SqlEventStore:
    """Event Store on the error_events table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def store(self, event: ErrorEvent) -> bool:
        """
        Insert the event once.

        Returns:
            False when an event with the same id is already stored. The
            stored row is kept as it is.
        """
        async with self._sessions() as session:
            session.add(event_to_record(event))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                if await session.get(ErrorEventRecord, event.id) is None:
                    raise
                logger.info("♻️ Duplicate event %s ignored, keeping the stored copy", event.id)
                return False
        return True

    async def get(self, event_id: str) -> Optional[ErrorEvent]:
        async with self._sessions() as session:
            record = await session.get(ErrorEventRecord, event_id)
            return record_to_event(record) if record else None

    async def query(self, params: EventQuery) -> List[ErrorEvent]:
        """
        Filtered range query, newest first.

        Args:
            params: project, time range, level, environment, free-text
                search over message and type, limit/offset

        Returns:
            Matching events
        """
        stmt = select(ErrorEventRecord)

        if params.project_id:
            stmt = stmt.where(ErrorEventRecord.project_id == params.project_id)
        if params.start:
            stmt = stmt.where(ErrorEventRecord.timestamp >= params.start)
        if params.end:
            stmt = stmt.where(ErrorEventRecord.timestamp <= params.end)
        if params.level:
            stmt = stmt.where(ErrorEventRecord.level == params.level.value)
        if params.environment:
            stmt = stmt.where(ErrorEventRecord.environment == params.environment)
        if params.search:
            pattern = f"%{params.search}%"
            stmt = stmt.where(
                ErrorEventRecord.message.ilike(pattern) | ErrorEventRecord.type.ilike(pattern)
            )

        stmt = (
            stmt.order_by(ErrorEventRecord.timestamp.desc())
            .limit(params.limit)
            .offset(params.offset)
        )

        async with self._sessions() as session:
            result = await session.execute(stmt)
            return [record_to_event(row) for row in result.scalars().all()]

    async def assign_group(self, event_id: str, group_id: str) -> None:
        await self._patch(event_id, group_id=group_id)

    async def mark_processed(self, event_id: str) -> None:
        await self._patch(event_id, has_been_processed=True)

    async def _patch(self, event_id: str, **values: Any) -> None:
        async with self._sessions() as session:
            await session.execute(
                update(ErrorEventRecord)
                .where(ErrorEventRecord.id == event_id)
                .values(**values)
            )
            await session.commit()

    # =========================================================================
    # AGGREGATIONS
    # =========================================================================

    async def group_statistics(self, group_id: str, now: Optional[datetime] = None) -> GroupStats:
        now = now or utcnow()
        ts = ErrorEventRecord.timestamp
        stmt = select(
            func.count(),
            func.count(distinct(ErrorEventRecord.user_hash)),
            func.count(case((ts >= now - timedelta(hours=24), 1))),
            func.count(case((ts >= now - timedelta(days=7), 1))),
            func.count(case((ts >= now - timedelta(days=30), 1))),
        ).where(ErrorEventRecord.group_id == group_id)

        async with self._sessions() as session:
            row = (await session.execute(stmt)).one()

        return GroupStats(
            count=row[0] or 0,
            unique_users=row[1] or 0,
            last_24h=row[2] or 0,
            last_7d=row[3] or 0,
            last_30d=row[4] or 0,
        )

    async def recent_group_counts(
        self, group_id: str, window_minutes: int = 60, now: Optional[datetime] = None
    ) -> RecentCounts:
        now = now or utcnow()
        window = timedelta(minutes=window_minutes)
        ts = ErrorEventRecord.timestamp
        stmt = select(
            func.count(case((ts >= now - window, 1))),
            func.count(case(((ts >= now - 2 * window) & (ts < now - window), 1))),
        ).where(
            ErrorEventRecord.group_id == group_id,
            ts >= now - 2 * window,
        )

        async with self._sessions() as session:
            row = (await session.execute(stmt)).one()

        return RecentCounts(current=row[0] or 0, previous=row[1] or 0)

    async def counts_by_bucket(
        self, project_id: str, period: str = "day", now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Event counts per time bucket over the last month (PostgreSQL date_trunc)."""
        if period not in BUCKET_PERIODS:
            period = "day"
        now = now or utcnow()
        bucket = func.date_trunc(period, ErrorEventRecord.timestamp).label("time_bucket")
        level = ErrorEventRecord.level
        stmt = (
            select(
                bucket,
                func.count().label("count"),
                func.count(case((level == Level.ERROR.value, 1))).label("error_count"),
                func.count(case((level == Level.WARNING.value, 1))).label("warning_count"),
                func.count(case((level == Level.INFO.value, 1))).label("info_count"),
            )
            .where(
                ErrorEventRecord.project_id == project_id,
                ErrorEventRecord.timestamp >= now - AGGREGATION_WINDOW,
            )
            .group_by(bucket)
            .order_by(bucket)
        )

        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()

        return [
            {
                "time_bucket": row.time_bucket.isoformat() if row.time_bucket else None,
                "count": row.count,
                "error_count": row.error_count,
                "warning_count": row.warning_count,
                "info_count": row.info_count,
            }
            for row in rows
        ]

    async def top_types(
        self, project_id: str, limit: int = 10, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        now = now or utcnow()
        count = func.count().label("count")
        stmt = (
            select(
                ErrorEventRecord.type,
                count,
                func.min(ErrorEventRecord.timestamp).label("first_seen"),
                func.max(ErrorEventRecord.timestamp).label("last_seen"),
            )
            .where(
                ErrorEventRecord.project_id == project_id,
                ErrorEventRecord.timestamp >= now - AGGREGATION_WINDOW,
            )
            .group_by(ErrorEventRecord.type)
            .order_by(count.desc())
            .limit(limit)
        )

        async with self._sessions() as session:
            rows = (await session.execute(stmt)).all()

        return [
            {
                "type": row.type,
                "count": row.count,
                "first_seen": _iso(row.first_seen),
                "last_seen": _iso(row.last_seen),
            }
            for row in rows
        ]

    async def summary(self, project_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        level = ErrorEventRecord.level
        ts = ErrorEventRecord.timestamp
        stmt = select(
            func.count().label("total_events"),
            func.count(case((level == Level.ERROR.value, 1))).label("error_count"),
            func.count(case((level == Level.WARNING.value, 1))).label("warning_count"),
            func.count(case((level == Level.INFO.value, 1))).label("info_count"),
            func.count(case((ErrorEventRecord.handled == False, 1))).label("unhandled_count"),  # noqa: E712
            func.count(case((ts >= now - timedelta(days=1), 1))).label("events_24h"),
            func.min(ts).label("first_event"),
            func.max(ts).label("last_event"),
            func.count(distinct(ErrorEventRecord.type)).label("unique_error_types"),
        ).where(
            ErrorEventRecord.project_id == project_id,
            ts >= now - AGGREGATION_WINDOW,
        )

        async with self._sessions() as session:
            row = (await session.execute(stmt)).one()

        return {
            "total_events": row.total_events or 0,
            "error_count": row.error_count or 0,
            "warning_count": row.warning_count or 0,
            "info_count": row.info_count or 0,
            "unhandled_count": row.unhandled_count or 0,
            "events_24h": row.events_24h or 0,
            "first_event": _iso(row.first_event),
            "last_event": _iso(row.last_event),
            "unique_error_types": row.unique_error_types or 0,
        }


def _iso(value: Any) -> Optional[str]:
    # min()/max() over a TypeDecorator column may come back as a raw string on SQLite
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
