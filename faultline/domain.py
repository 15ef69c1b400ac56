"""
Core data types for the error-processing pipeline.

These are what the ingestion service, the pipeline and the AI layer pass
around. Storage adapters (faultline.stores) are the only code that turns
them into ORM rows or open JSON documents and back.
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMS
# =============================================================================


class Level(str, enum.Enum):
    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Level":
        """Map SDK level names onto the five stored levels (default: error)."""
        if not value:
            return cls.ERROR
        normalized = value.lower()
        if normalized in ("warn",):
            return cls.WARNING
        if normalized in ("critical",):
            return cls.FATAL
        try:
            return cls(normalized)
        except ValueError:
            return cls.ERROR


class GroupStatus(str, enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class AnalysisType(str, enum.Enum):
    ERROR_ANALYSIS = "error_analysis"
    SUGGESTED_FIX = "suggested_fix"
    SIMILAR_ERRORS = "similar_errors"


class ResolutionKind(str, enum.Enum):
    """How find-or-create arrived at the group."""
    CREATED = "created"
    FOUND = "found"
    CONFLICT_RETRIED = "conflict_retried"


class AlertKind(str, enum.Enum):
    NEW_ERROR = "new_error"
    ERROR_SPIKE = "error_spike"
    HIGH_ERROR_COUNT = "high_error_count"


# =============================================================================
# EVENTS
# =============================================================================


@dataclass
class ErrorEvent:
    """
    One stored error occurrence.

    Everything except group_id and has_been_processed is fixed once the
    event is written.
    """

    id: str
    project_id: str
    timestamp: datetime
    received_at: datetime
    level: Level
    message: str
    type: str
    platform: str
    fingerprint: List[str]
    environment: str = "production"
    handled: bool = False
    release: Optional[str] = None
    server_name: Optional[str] = None
    transaction: Optional[str] = None
    url: Optional[str] = None
    method: Optional[str] = None
    status_code: Optional[int] = None
    user_hash: Optional[str] = None
    session_id: Optional[str] = None
    client_info: Optional[Dict[str, Any]] = None
    sdk: Dict[str, Any] = field(default_factory=dict)
    sdk_version: Optional[str] = None
    exception: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    exception_value: Optional[str] = None
    exception_module: Optional[str] = None
    stack_trace: Optional[Dict[str, Any]] = None
    frames_count: Optional[int] = None
    request: Optional[Dict[str, Any]] = None
    tags: Optional[Dict[str, Any]] = None
    extra: Optional[Dict[str, Any]] = None
    breadcrumbs: Optional[List[Dict[str, Any]]] = None
    contexts: Optional[Dict[str, Any]] = None
    is_sample: bool = False
    sample_rate: float = 1.0
    group_id: Optional[str] = None
    has_been_processed: bool = False

    @property
    def severity(self) -> Level:
        return self.level


@dataclass
class EventQuery:
    """Filters for the Event Store range query."""

    project_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    level: Optional[Level] = None
    environment: Optional[str] = None
    search: Optional[str] = None
    limit: int = 100
    offset: int = 0


@dataclass
class GroupStats:
    """Aggregates recomputed from the Event Store for one group."""

    count: int = 0
    unique_users: int = 0
    last_24h: int = 0
    last_7d: int = 0
    last_30d: int = 0


@dataclass
class RecentCounts:
    """Events in the current window and in the window before it."""

    current: int
    previous: int


# =============================================================================
# GROUPS
# =============================================================================


@dataclass
class GroupMetadata:
    """
    Typed view of the error_groups.metadata document.

    Keys the pipeline does not know about are kept in `extra` and written
    back untouched.
    """

    level: Optional[str] = None
    environment: Optional[str] = None
    release: Optional[str] = None
    ai_analysis: Optional[Dict[str, Any]] = None
    last_analysis_date: Optional[datetime] = None
    last_analysis_count: int = 0
    stats: Optional[GroupStats] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ErrorGroup:
    """An issue: every event in a project sharing one fingerprint hash."""

    id: str
    project_id: str
    fingerprint_hash: str
    fingerprint: List[str]
    title: str
    type: str
    message: str
    platform: str
    first_seen: datetime
    last_seen: datetime
    status: GroupStatus = GroupStatus.UNRESOLVED
    event_count: int = 0
    user_count: int = 0
    ai_summary: Optional[str] = None
    metadata: GroupMetadata = field(default_factory=GroupMetadata)

    def copy(self, **changes: Any) -> "ErrorGroup":
        return replace(self, **changes)


@dataclass
class NewGroup:
    """Values for inserting a group seeded from its first event."""

    project_id: str
    fingerprint_hash: str
    fingerprint: List[str]
    title: str
    type: str
    message: str
    platform: str
    first_seen: datetime
    last_seen: datetime
    metadata: GroupMetadata = field(default_factory=GroupMetadata)


@dataclass
class GroupResolution:
    """Tagged result of find-or-create."""

    kind: ResolutionKind
    group: ErrorGroup

    @property
    def is_new(self) -> bool:
        return self.kind is ResolutionKind.CREATED


# =============================================================================
# AI
# =============================================================================


@dataclass
class ErrorAnalysis:
    """Structured output of an AI error analysis."""

    summary: str
    severity: str = "medium"
    category: str = "other"
    possible_causes: List[str] = field(default_factory=list)
    suggested_fixes: List[Dict[str, Any]] = field(default_factory=list)
    related_errors: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ErrorAnalysis":
        return cls(
            summary=str(data.get("summary") or ""),
            severity=str(data.get("severity") or "medium"),
            category=str(data.get("category") or "other"),
            possible_causes=list(data.get("possibleCauses") or data.get("possible_causes") or []),
            suggested_fixes=list(data.get("suggestedFixes") or data.get("suggested_fixes") or []),
            related_errors=list(data.get("relatedErrors") or data.get("related_errors") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "severity": self.severity,
            "category": self.category,
            "possibleCauses": self.possible_causes,
            "suggestedFixes": self.suggested_fixes,
            "relatedErrors": self.related_errors,
        }


@dataclass
class AICacheEntry:
    """One cached AI result, keyed by (fingerprint_hash, analysis_type)."""

    fingerprint_hash: str
    analysis_type: AnalysisType
    provider: str
    model: str
    analysis_result: str  # serialized JSON
    prompt_hash: str
    confidence_score: float
    is_public: bool
    created_at: datetime
    last_used_at: datetime
    error_patterns: List[str] = field(default_factory=list)
    usage_count: int = 1
    projects_used: List[str] = field(default_factory=list)
    avg_feedback_score: Optional[float] = None
    feedback_count: int = 0
    tokens_saved: int = 0
    cost_saved_cents: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    id: Optional[str] = None

    @property
    def original_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class SimilarError:
    event_id: str
    similarity: float
    content: Optional[str] = None


@dataclass
class UsageRecord:
    """Token/cost telemetry for one AI call, sent to the billing recorder."""

    project_id: str
    operation: str  # generate | embed
    feature: str
    prompt_tokens: int
    completion_tokens: int
    latency_ms: int
    success: bool
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


# =============================================================================
# ALERTS
# =============================================================================


@dataclass
class AlertIntent:
    """Something the downstream alert dispatcher should be told about."""

    kind: AlertKind
    group_id: str
    project_id: str
    details: Dict[str, Any] = field(default_factory=dict)
