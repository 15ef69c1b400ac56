"""
Ingestion - turns a Sentry payload into a stored event and a processing job.

Ordering: the Event Store write completes before the caller gets the id.
The processing job is published afterwards; if publishing fails the event
stays stored and the failure is only logged.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol

from faultline.core.config import settings
from faultline.core.db import utcnow
from faultline.core.rabbitmq import RabbitPublisher
from faultline.domain import ErrorEvent, Level
from faultline.ingestion.schemas import SentryEventPayload
from faultline.stores.events import EventStore

logger = logging.getLogger(__name__)

DEFAULT_TYPE = "Error"
DEFAULT_MESSAGE = "Unknown error"
DEFAULT_ENVIRONMENT = "production"
DEFAULT_SDK = {"name": "unknown", "version": "0.0.0"}
USER_HASH_LENGTH = 8


class JobDispatcher(Protocol):
    async def dispatch(self, event_id: str, project_id: str) -> None: ...


class RabbitJobDispatcher:
    """Publishes process-event jobs for the processing worker."""

    def __init__(self, publisher: RabbitPublisher, queue: Optional[str] = None):
        self.publisher = publisher
        self.queue = queue or settings.events_queue

    async def dispatch(self, event_id: str, project_id: str) -> None:
        await self.publisher.publish(self.queue, {"eventId": event_id, "projectId": project_id})


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _status_code(request: Optional[Dict[str, Any]]) -> Optional[int]:
    if not request or request.get("status_code") is None:
        return None
    try:
        return int(request["status_code"]) or None
    except (TypeError, ValueError):
        return None


def build_event(project_id: str, payload: SentryEventPayload, now: datetime) -> ErrorEvent:
    """Map a payload onto an ErrorEvent, applying defaults and derived fields."""
    first = payload.first_exception
    event_type = first.type if first else DEFAULT_TYPE
    message = payload.message or (first.value if first else None) or DEFAULT_MESSAGE

    request = payload.request or {}
    contexts = payload.contexts or {}
    session = contexts.get("session")
    user_id = (payload.user or {}).get("id")
    stacktrace = first.stacktrace.model_dump(exclude_none=True) if first and first.stacktrace else None
    frames = first.stacktrace.frames if first and first.stacktrace else None

    return ErrorEvent(
        id=payload.event_id or uuid.uuid4().hex,
        project_id=project_id,
        timestamp=_as_utc(payload.timestamp) if payload.timestamp else now,
        received_at=now,
        level=Level.parse(payload.level),
        message=message,
        type=event_type,
        platform=payload.platform,
        fingerprint=list(payload.fingerprint) if payload.fingerprint else [event_type, message],
        environment=payload.environment or DEFAULT_ENVIRONMENT,
        handled=False,
        release=payload.release,
        server_name=payload.server_name,
        transaction=payload.transaction,
        url=request.get("url"),
        method=request.get("method"),
        status_code=_status_code(request),
        user_hash=str(user_id)[:USER_HASH_LENGTH] if user_id else None,
        session_id=session.get("id") if isinstance(session, dict) else None,
        client_info=contexts.get("client"),
        sdk=payload.sdk.model_dump(exclude_none=True) if payload.sdk else dict(DEFAULT_SDK),
        sdk_version=payload.sdk.version if payload.sdk else None,
        exception=payload.exception.model_dump(exclude_none=True) if payload.exception else None,
        exception_type=first.type if first else None,
        exception_value=first.value if first else None,
        exception_module=first.module if first else None,
        stack_trace=stacktrace,
        frames_count=len(frames) if frames is not None else None,
        request=payload.request,
        tags=payload.tags,
        extra=payload.extra,
        breadcrumbs=payload.breadcrumb_list(),
        contexts=payload.contexts,
        is_sample=False,
        sample_rate=1.0,
        group_id=None,
        has_been_processed=False,
    )


class IngestionService:
    def __init__(
        self,
        events: EventStore,
        dispatcher: Optional[JobDispatcher],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.events = events
        self.dispatcher = dispatcher
        self._now = clock or utcnow

    async def store_from_payload(self, project_id: str, payload: SentryEventPayload) -> Dict[str, str]:
        event = build_event(project_id, payload, self._now())

        if not await self.events.store(event):
            logger.info("♻️ Event %s was already received, not dispatching again", event.id)
            return {"id": event.id}

        if self.dispatcher is not None:
            try:
                await self.dispatcher.dispatch(event.id, project_id)
            except Exception:
                logger.exception("❌ Failed to dispatch processing job for event %s", event.id)

        logger.debug("📥 Stored event %s for project %s", event.id, project_id)
        return {"id": event.id}
