"""
Pydantic schemas for the read API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from faultline.domain import AICacheEntry, AnalysisType, ErrorGroup, GroupStatus, Level
from faultline.stores.groups import metadata_to_document


class EventResponse(BaseModel):
    """One stored error event."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    timestamp: datetime
    received_at: datetime
    level: Level
    message: str
    type: str
    platform: str
    fingerprint: List[str]
    environment: str
    handled: bool
    release: Optional[str] = None
    server_name: Optional[str] = None
    transaction: Optional[str] = None
    url: Optional[str] = None
    method: Optional[str] = None
    status_code: Optional[int] = None
    user_hash: Optional[str] = None
    sdk: Dict[str, Any] = Field(default_factory=dict)
    exception_type: Optional[str] = None
    exception_value: Optional[str] = None
    stack_trace: Optional[Dict[str, Any]] = None
    tags: Optional[Dict[str, Any]] = None
    extra: Optional[Dict[str, Any]] = None
    breadcrumbs: Optional[List[Dict[str, Any]]] = None
    contexts: Optional[Dict[str, Any]] = None
    group_id: Optional[str] = None
    has_been_processed: bool


class EventListResponse(BaseModel):
    items: List[EventResponse]
    limit: int
    offset: int


class GroupResponse(BaseModel):
    id: str
    project_id: str
    fingerprint_hash: str
    fingerprint: List[str]
    title: str
    type: str
    message: str
    platform: str
    status: GroupStatus
    event_count: int
    user_count: int
    first_seen: datetime
    last_seen: datetime
    ai_summary: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_group(cls, group: ErrorGroup) -> "GroupResponse":
        return cls(
            id=group.id,
            project_id=group.project_id,
            fingerprint_hash=group.fingerprint_hash,
            fingerprint=group.fingerprint,
            title=group.title,
            type=group.type,
            message=group.message,
            platform=group.platform,
            status=group.status,
            event_count=group.event_count,
            user_count=group.user_count,
            first_seen=group.first_seen,
            last_seen=group.last_seen,
            ai_summary=group.ai_summary,
            metadata=metadata_to_document(group.metadata),
        )


class CachedAnalysisResponse(BaseModel):
    fingerprint_hash: str
    analysis_type: AnalysisType
    provider: str
    model: str
    confidence_score: float
    is_public: bool
    usage_count: int
    avg_feedback_score: Optional[float] = None
    feedback_count: int
    created_at: datetime
    last_used_at: datetime
    analysis: Any

    @classmethod
    def from_entry(cls, entry: AICacheEntry, analysis: Any) -> "CachedAnalysisResponse":
        return cls(
            fingerprint_hash=entry.fingerprint_hash,
            analysis_type=entry.analysis_type,
            provider=entry.provider,
            model=entry.model,
            confidence_score=entry.confidence_score,
            is_public=entry.is_public,
            usage_count=entry.usage_count,
            avg_feedback_score=entry.avg_feedback_score,
            feedback_count=entry.feedback_count,
            created_at=entry.created_at,
            last_used_at=entry.last_used_at,
            analysis=analysis,
        )


class FeedbackRequest(BaseModel):
    """Feedback score for a cached analysis."""

    score: float = Field(..., ge=0, le=5, examples=[4, 2.5])


class FeedbackResponse(BaseModel):
    success: bool = True
    updated: int


class SimilarErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: str
    similarity: float
    content: Optional[str] = None


class SimilarErrorsResponse(BaseModel):
    items: List[SimilarErrorResponse]


class SuggestedFixResponse(BaseModel):
    event_id: str
    suggested_fix: str
