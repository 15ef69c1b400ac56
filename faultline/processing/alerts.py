"""
Alert rules evaluated after each processed event.

Rules only decide; delivery belongs to the downstream dispatcher, which
receives the intents through the alerts queue.

- new_error: the event created its group
- error_spike: the last hour is at least `spike_multiplier` times the
  hour before (or at least `spike_min_events` when the hour before was empty)
- high_error_count: every `high_count_alert_every`-th fatal/error event
"""

import logging
from typing import List, Optional, Protocol

from faultline.core.config import settings
from faultline.core.rabbitmq import RabbitPublisher
from faultline.domain import AlertIntent, AlertKind, ErrorEvent, ErrorGroup, Level, RecentCounts

logger = logging.getLogger(__name__)

HIGH_SEVERITY_LEVELS = (Level.FATAL, Level.ERROR)


class AlertDispatcher(Protocol):
    async def dispatch(self, intent: AlertIntent) -> None: ...


# =============================================================================
# RULES
# =============================================================================


def is_spike(recent: RecentCounts, multiplier: int, min_events: int) -> bool:
    if recent.previous == 0:
        return recent.current >= min_events
    return recent.current >= recent.previous * multiplier


def is_high_count(event: ErrorEvent, event_count: int, every: int) -> bool:
    if event.level not in HIGH_SEVERITY_LEVELS or event_count <= 0:
        return False
    return event_count % every == 0


def evaluate_alerts(
    group: ErrorGroup,
    event: ErrorEvent,
    is_new: bool,
    recent: RecentCounts,
    spike_multiplier: Optional[int] = None,
    spike_min_events: Optional[int] = None,
    high_count_every: Optional[int] = None,
) -> List[AlertIntent]:
    """
    Alert intents for one processed event.

    Args:
        group: the group with refreshed statistics
        event: the event being processed
        is_new: the event created the group
        recent: event counts for the last window and the one before

    Returns:
        List of intents (may be empty)
    """
    multiplier = spike_multiplier or settings.spike_multiplier
    min_events = spike_min_events or settings.spike_min_events
    every = high_count_every or settings.high_count_alert_every

    intents = []

    if is_new:
        intents.append(AlertIntent(
            kind=AlertKind.NEW_ERROR,
            group_id=group.id,
            project_id=group.project_id,
            details={"title": group.title, "level": event.level.value},
        ))

    if is_spike(recent, multiplier, min_events):
        details = {"current": recent.current, "previous": recent.previous}
        if recent.previous:
            details["spikeMultiplier"] = recent.current / recent.previous
        intents.append(AlertIntent(
            kind=AlertKind.ERROR_SPIKE,
            group_id=group.id,
            project_id=group.project_id,
            details=details,
        ))

    if is_high_count(event, group.event_count, every):
        intents.append(AlertIntent(
            kind=AlertKind.HIGH_ERROR_COUNT,
            group_id=group.id,
            project_id=group.project_id,
            details={"count": group.event_count},
        ))

    return intents


# =============================================================================
# DISPATCH
# =============================================================================


def intent_message(intent: AlertIntent) -> dict:
    return {
        "type": intent.kind.value,
        "groupId": intent.group_id,
        "projectId": intent.project_id,
        **intent.details,
    }


class RabbitAlertDispatcher:
    """Publishes alert intents to the alerts queue."""

    def __init__(self, publisher: RabbitPublisher, queue: Optional[str] = None):
        self.publisher = publisher
        self.queue = queue or settings.alerts_queue

    async def dispatch(self, intent: AlertIntent) -> None:
        await self.publisher.publish(self.queue, intent_message(intent))
        logger.info("🚨 Alert intent published: %s for group %s", intent.kind.value, intent.group_id)
