"""
Error processing pipeline - turns a stored event into group state.

process_event runs, in order:
1. fetch the event (missing event is a hard failure)
2. fingerprint hash
3. find-or-create the group (row lock + unique constraint)
4. assign the group to the event
5. refresh group statistics
6. AI analysis when due (soft: failures are logged)
7. similarity indexing for new groups and every Nth event (soft)
8. alert intents (soft on publish)
9. mark the event processed

Reprocessing an event is safe: it re-derives the same group and never
moves last_seen backwards.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from faultline.core.config import settings
from faultline.core.db import utcnow
from faultline.core.errors import EventNotFound, GroupAlreadyExists
from faultline.domain import (
    ErrorEvent,
    ErrorGroup,
    GroupMetadata,
    GroupResolution,
    NewGroup,
    ResolutionKind,
)
from faultline.grouping import fingerprint_hash, generate_group_title
from faultline.processing.alerts import AlertDispatcher, evaluate_alerts
from faultline.stores.events import EventStore
from faultline.stores.groups import GroupRepository

logger = logging.getLogger(__name__)

SPIKE_WINDOW_MINUTES = 60


def new_group_from_event(project_id: str, hash_: str, event: ErrorEvent) -> NewGroup:
    return NewGroup(
        project_id=project_id,
        fingerprint_hash=hash_,
        fingerprint=list(event.fingerprint),
        title=generate_group_title(event.message, event.exception_type, event.exception_value),
        type=event.exception_type or event.type,
        message=event.exception_value or event.message,
        platform=event.platform,
        first_seen=event.timestamp,
        last_seen=event.timestamp,
        metadata=GroupMetadata(
            level=event.level.value,
            environment=event.environment,
            release=event.release,
        ),
    )


def should_trigger_ai_analysis(
    group: ErrorGroup,
    now: datetime,
    growth_factor: Optional[int] = None,
    reanalysis_days: Optional[int] = None,
) -> bool:
    """
    True when the group has never been analyzed, has grown by
    `growth_factor` since the last analysis, or the last analysis is
    older than `reanalysis_days`.
    """
    growth_factor = growth_factor or settings.ai_reanalysis_growth_factor
    reanalysis_days = reanalysis_days or settings.ai_reanalysis_days

    if not group.ai_summary:
        return True

    metadata = group.metadata
    if group.event_count >= growth_factor * metadata.last_analysis_count:
        return True

    if metadata.last_analysis_date is not None:
        if now - metadata.last_analysis_date > timedelta(days=reanalysis_days):
            return True

    return False


class ErrorProcessingService:
    """Processing pipeline with its collaborators injected."""

    def __init__(
        self,
        events: EventStore,
        groups: GroupRepository,
        analyzer=None,
        alerts: Optional[AlertDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
        ai_timeout: Optional[float] = None,
        index_every: Optional[int] = None,
    ):
        self.events = events
        self.groups = groups
        self.analyzer = analyzer
        self.alerts = alerts
        self._now = clock or utcnow
        self.ai_timeout = ai_timeout or settings.ai_timeout_seconds
        self.index_every = index_every or settings.index_every_n_events

    async def process_event(self, event_id: str, project_id: Optional[str] = None) -> ErrorGroup:
        logger.info("⚙️ Processing event %s", event_id)
        now = self._now()

        event = await self.events.get(event_id)
        if event is None:
            logger.error("Event %s not found in the event store", event_id)
            raise EventNotFound(event_id)
        project_id = project_id or event.project_id

        hash_ = fingerprint_hash(event.fingerprint)
        resolution = await self.find_or_create_group(project_id, hash_, event)
        group = resolution.group
        logger.info("📦 Error group %s - %s (%s)", group.id, group.title, resolution.kind.value)

        await self.events.assign_group(event.id, group.id)

        stats = await self.events.group_statistics(group.id, now=now)
        group = await self.groups.update_statistics(group.id, stats)

        if self.analyzer is not None and should_trigger_ai_analysis(group, now):
            group = await self._analyze(group, event, now)

        if self.analyzer is not None and (
            resolution.is_new or group.event_count % self.index_every == 0
        ):
            await self._index(event)

        recent = await self.events.recent_group_counts(group.id, SPIKE_WINDOW_MINUTES, now=now)
        await self._dispatch_alerts(group, event, resolution.is_new, recent)

        await self.events.mark_processed(event.id)
        logger.info("✅ Processed event %s", event_id)
        return group

    async def find_or_create_group(
        self, project_id: str, hash_: str, event: ErrorEvent
    ) -> GroupResolution:
        """
        Group for (project_id, hash_), created from `event` if none exists.

        Runs in one transaction holding the row lock. Losing the insert
        race to a concurrent transaction is resolved by re-fetching the
        row that won.
        """
        async with self.groups.transaction() as tx:
            existing = await tx.find_by_fingerprint(project_id, hash_)
            if existing is not None:
                group = await tx.update_last_seen(existing.id, event.timestamp)
                return GroupResolution(ResolutionKind.FOUND, group)

            try:
                created = await tx.create_group(new_group_from_event(project_id, hash_, event))
                return GroupResolution(ResolutionKind.CREATED, created)
            except GroupAlreadyExists:
                logger.debug("Group for %s created concurrently, fetching it", hash_[:12])
                existing = await tx.find_by_fingerprint(project_id, hash_)
                if existing is None:
                    raise
                group = await tx.update_last_seen(existing.id, event.timestamp)
                return GroupResolution(ResolutionKind.CONFLICT_RETRIED, group)

    async def _analyze(self, group: ErrorGroup, event: ErrorEvent, now: datetime) -> ErrorGroup:
        logger.info("🧠 Triggering AI analysis for group %s", group.id)
        try:
            analysis = await asyncio.wait_for(self.analyzer.analyze_error(event), timeout=self.ai_timeout)
            if analysis is None:
                return group
            return await self.groups.record_analysis(
                group.id,
                analysis.summary,
                {
                    "severity": analysis.severity,
                    "category": analysis.category,
                    "possibleCauses": analysis.possible_causes,
                    "suggestedFixes": analysis.suggested_fixes,
                    "relatedErrors": analysis.related_errors,
                    "timestamp": now.isoformat(),
                },
                analyzed_at=now,
            )
        except Exception:
            logger.exception("❌ AI analysis failed for group %s", group.id)
            return group

    async def _index(self, event: ErrorEvent) -> None:
        try:
            await asyncio.wait_for(self.analyzer.index_error(event), timeout=self.ai_timeout)
        except Exception:
            logger.exception("❌ Indexing failed for event %s", event.id)

    async def _dispatch_alerts(self, group, event, is_new, recent) -> None:
        intents = evaluate_alerts(group, event, is_new, recent)
        if self.alerts is None:
            return
        for intent in intents:
            try:
                await self.alerts.dispatch(intent)
            except Exception:
                logger.exception("❌ Failed to dispatch %s alert for group %s", intent.kind.value, group.id)
