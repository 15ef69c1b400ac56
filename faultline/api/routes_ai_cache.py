"""
AI analysis cache routes: savings statistics, cached results and feedback.
"""

import json
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from faultline.ai.cache import AICacheService
from faultline.api.deps import get_cache_service, get_current_project
from faultline.api.schemas import CachedAnalysisResponse, FeedbackRequest, FeedbackResponse
from faultline.core.db import utcnow
from faultline.domain import AnalysisType
from faultline.models import Project

router = APIRouter(
    prefix="/ai-cache",
    tags=["AI Cache"],
)

DEFAULT_STATS_PERIOD = timedelta(days=30)


@router.get(
    "/stats",
    summary="Cache hits and savings",
)
async def cache_stats(
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    project: Project = Depends(get_current_project),
    cache: AICacheService = Depends(get_cache_service),
):
    """Totals over the period (default: the last 30 days)."""
    end = end_date or utcnow()
    start = start_date or end - DEFAULT_STATS_PERIOD

    stats = await cache.get_cache_stats(start, end)
    return {
        **stats,
        "period": {"startDate": start.isoformat(), "endDate": end.isoformat()},
        "savings": {
            "estimatedCostSavedDollars": f"{stats['totalCostSavedCents'] / 100:.2f}",
            "apiCallsSaved": stats["totalCacheHits"],
        },
    }


@router.get(
    "/{fingerprint_hash}/{analysis_type}",
    response_model=CachedAnalysisResponse,
    summary="Get a cached analysis",
)
async def get_cached(
    fingerprint_hash: str,
    analysis_type: AnalysisType,
    project: Project = Depends(get_current_project),
    cache: AICacheService = Depends(get_cache_service),
) -> CachedAnalysisResponse:
    entry = await cache.get_cached_analysis(
        fingerprint_hash, analysis_type, project_id=project.id, respect_privacy=True
    )

    if entry is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No cached analysis found",
        )

    return CachedAnalysisResponse.from_entry(entry, json.loads(entry.analysis_result))


@router.post(
    "/{fingerprint_hash}/{analysis_type}/feedback",
    response_model=FeedbackResponse,
    summary="Rate a cached analysis",
)
async def submit_feedback(
    fingerprint_hash: str,
    analysis_type: AnalysisType,
    body: FeedbackRequest,
    project: Project = Depends(get_current_project),
    cache: AICacheService = Depends(get_cache_service),
) -> FeedbackResponse:
    """Score must be between 0 and 5."""
    updated = await cache.submit_feedback(fingerprint_hash, analysis_type, body.score)

    if updated == 0:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No cached analysis found",
        )

    return FeedbackResponse(updated=updated)
