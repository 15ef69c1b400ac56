"""
Event viewing routes.

Events are created by the ingestion service. This API provides
read-only access scoped to the authenticated project, plus the AI
suggestions derived from a single event.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from faultline.ai.analysis import AIAnalysisService
from faultline.api.deps import get_analyzer, get_current_project, get_event_store
from faultline.api.schemas import (
    EventListResponse,
    EventResponse,
    SimilarErrorResponse,
    SimilarErrorsResponse,
    SuggestedFixResponse,
)
from faultline.domain import ErrorEvent, EventQuery, Level
from faultline.models import Project
from faultline.stores.events import BUCKET_PERIODS, SqlEventStore

router = APIRouter(
    prefix="/events",
    tags=["Events"],
)


async def _project_event(events: SqlEventStore, event_id: str, project: Project) -> ErrorEvent:
    """The event, if it belongs to `project`; 404 otherwise."""
    event = await events.get(event_id)

    if event is None or event.project_id != project.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )

    return event


# =============================================================================
# LIST EVENTS
# =============================================================================


@router.get(
    "",
    response_model=EventListResponse,
    summary="List events for the project",
)
async def list_events(
    start: Optional[datetime] = Query(default=None, description="Events at or after this time"),
    end: Optional[datetime] = Query(default=None, description="Events at or before this time"),
    level: Optional[Level] = Query(default=None),
    environment: Optional[str] = Query(default=None),
    search: Optional[str] = Query(
        default=None,
        description="Free-text match on message and type",
    ),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    project: Project = Depends(get_current_project),
    events: SqlEventStore = Depends(get_event_store),
) -> EventListResponse:
    """
    List events with optional filtering.

    Events are returned in reverse chronological order (newest first).
    """
    items = await events.query(EventQuery(
        project_id=project.id,
        start=start,
        end=end,
        level=level,
        environment=environment,
        search=search,
        limit=limit,
        offset=offset,
    ))
    return EventListResponse(
        items=[EventResponse.model_validate(item) for item in items],
        limit=limit,
        offset=offset,
    )


# =============================================================================
# STATS
# =============================================================================
# NOTE: This must come BEFORE the /{event_id} route, otherwise FastAPI
# will interpret "stats" as an event_id parameter.


@router.get(
    "/stats",
    summary="Event counts over the last month",
)
async def event_stats(
    period: str = Query(default="day", pattern="^(" + "|".join(BUCKET_PERIODS) + ")$"),
    top: int = Query(default=10, ge=1, le=100),
    project: Project = Depends(get_current_project),
    events: SqlEventStore = Depends(get_event_store),
):
    """Counts per time bucket, the most frequent types and summary totals."""
    return {
        "buckets": await events.counts_by_bucket(project.id, period),
        "top_types": await events.top_types(project.id, limit=top),
        "summary": await events.summary(project.id),
    }


# =============================================================================
# GET SINGLE EVENT
# =============================================================================


@router.get(
    "/{event_id}",
    response_model=EventResponse,
    summary="Get event by ID",
)
async def get_event(
    event_id: str,
    project: Project = Depends(get_current_project),
    events: SqlEventStore = Depends(get_event_store),
) -> EventResponse:
    event = await _project_event(events, event_id, project)
    return EventResponse.model_validate(event)


# =============================================================================
# AI SUGGESTIONS
# =============================================================================


@router.get(
    "/{event_id}/similar",
    response_model=SimilarErrorsResponse,
    summary="Indexed errors similar to this event",
)
async def similar_events(
    event_id: str,
    limit: int = Query(default=5, ge=1, le=20),
    project: Project = Depends(get_current_project),
    events: SqlEventStore = Depends(get_event_store),
    analyzer: AIAnalysisService = Depends(get_analyzer),
) -> SimilarErrorsResponse:
    """
    Nearest indexed errors in the same project and environment.

    Empty when AI analysis is disabled or the embedding call fails.
    """
    event = await _project_event(events, event_id, project)

    # The event itself may be indexed and is dropped from the results
    similar = await analyzer.find_similar_errors(event, limit=limit + 1)

    return SimilarErrorsResponse(
        items=[SimilarErrorResponse.model_validate(item) for item in similar[:limit]],
    )


@router.post(
    "/{event_id}/suggested-fix",
    response_model=SuggestedFixResponse,
    summary="Generate a fix suggestion for this event",
)
async def suggested_fix(
    event_id: str,
    project: Project = Depends(get_current_project),
    events: SqlEventStore = Depends(get_event_store),
    analyzer: AIAnalysisService = Depends(get_analyzer),
) -> SuggestedFixResponse:
    """
    Free-text fix from the AI provider, served from the shared AI cache
    when the same symptom was answered before.

    Raises:
        503 Service Unavailable: AI disabled or the provider failed
    """
    event = await _project_event(events, event_id, project)

    fix = await analyzer.generate_suggested_fix(event)

    if fix is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI analysis unavailable",
        )

    return SuggestedFixResponse(event_id=event.id, suggested_fix=fix)
