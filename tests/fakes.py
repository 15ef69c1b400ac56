"""
In-memory stand-ins for the stores, the AI provider and the dispatchers.

They implement the same protocols as the SQL/RabbitMQ/OpenAI adapters so
the pipeline and services can be exercised without infrastructure.
"""

import asyncio
import copy
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from faultline.core.errors import GroupAlreadyExists, GroupNotFound
from faultline.domain import (
    AICacheEntry,
    AlertIntent,
    AnalysisType,
    ErrorAnalysis,
    ErrorEvent,
    ErrorGroup,
    EventQuery,
    GroupStats,
    NewGroup,
    RecentCounts,
    SimilarError,
)
from faultline.models import Project
from faultline.stores.cache import lookup_order, updated_average, visible_to
from faultline.stores.groups import merge_document, metadata_to_document, document_to_metadata
from faultline.stores.projects import hash_secret_key, is_uuid

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# EVENT STORE
# =============================================================================


class FakeEventStore:
    def __init__(self, fail_store: bool = False):
        self.events: Dict[str, ErrorEvent] = {}
        self.fail_store = fail_store

    async def store(self, event: ErrorEvent) -> bool:
        if self.fail_store:
            raise ConnectionError("event store unavailable")
        if event.id in self.events:
            return False
        self.events[event.id] = copy.deepcopy(event)
        return True

    async def get(self, event_id: str) -> Optional[ErrorEvent]:
        event = self.events.get(event_id)
        return copy.deepcopy(event) if event else None

    async def query(self, params: EventQuery) -> List[ErrorEvent]:
        items = list(self.events.values())
        if params.project_id:
            items = [e for e in items if e.project_id == params.project_id]
        if params.level:
            items = [e for e in items if e.level == params.level]
        if params.environment:
            items = [e for e in items if e.environment == params.environment]
        items.sort(key=lambda e: e.timestamp, reverse=True)
        return items[params.offset:params.offset + params.limit]

    async def assign_group(self, event_id: str, group_id: str) -> None:
        self.events[event_id].group_id = group_id

    async def mark_processed(self, event_id: str) -> None:
        self.events[event_id].has_been_processed = True

    def _in_group(self, group_id: str) -> List[ErrorEvent]:
        return [e for e in self.events.values() if e.group_id == group_id]

    async def group_statistics(self, group_id: str, now: Optional[datetime] = None) -> GroupStats:
        now = now or NOW
        events = self._in_group(group_id)
        return GroupStats(
            count=len(events),
            unique_users=len({e.user_hash for e in events if e.user_hash}),
            last_24h=sum(1 for e in events if e.timestamp >= now - timedelta(hours=24)),
            last_7d=sum(1 for e in events if e.timestamp >= now - timedelta(days=7)),
            last_30d=sum(1 for e in events if e.timestamp >= now - timedelta(days=30)),
        )

    async def recent_group_counts(
        self, group_id: str, window_minutes: int = 60, now: Optional[datetime] = None
    ) -> RecentCounts:
        now = now or NOW
        window = timedelta(minutes=window_minutes)
        events = self._in_group(group_id)
        return RecentCounts(
            current=sum(1 for e in events if e.timestamp >= now - window),
            previous=sum(1 for e in events if now - 2 * window <= e.timestamp < now - window),
        )


# =============================================================================
# GROUP REPOSITORY
# =============================================================================
# No locks: the sleep(0) calls let concurrent tasks interleave between the
# lookup and the insert, so the duplicate-insert path is really taken.


class FakeGroupTransaction:
    def __init__(self, repo: "FakeGroupRepository"):
        self.repo = repo

    async def find_by_fingerprint(self, project_id: str, fingerprint_hash: str) -> Optional[ErrorGroup]:
        await asyncio.sleep(0)
        group_id = self.repo.by_fingerprint.get((project_id, fingerprint_hash))
        return copy.deepcopy(self.repo.groups[group_id]) if group_id else None

    async def create_group(self, new_group: NewGroup) -> ErrorGroup:
        await asyncio.sleep(0)
        key = (new_group.project_id, new_group.fingerprint_hash)
        if key in self.repo.by_fingerprint:
            self.repo.conflicts += 1
            raise GroupAlreadyExists(*key)
        group = ErrorGroup(
            id=str(uuid.uuid4()),
            project_id=new_group.project_id,
            fingerprint_hash=new_group.fingerprint_hash,
            fingerprint=list(new_group.fingerprint),
            title=new_group.title,
            type=new_group.type,
            message=new_group.message,
            platform=new_group.platform,
            first_seen=new_group.first_seen,
            last_seen=new_group.last_seen,
            metadata=copy.deepcopy(new_group.metadata),
        )
        self.repo.groups[group.id] = group
        self.repo.by_fingerprint[key] = group.id
        return copy.deepcopy(group)

    async def update_last_seen(self, group_id: str, seen_at: datetime) -> ErrorGroup:
        group = self.repo._require(group_id)
        group.last_seen = max(group.last_seen, seen_at)
        group.first_seen = min(group.first_seen, seen_at)
        return copy.deepcopy(group)


class FakeGroupRepository:
    def __init__(self):
        self.groups: Dict[str, ErrorGroup] = {}
        self.by_fingerprint: Dict[tuple, str] = {}
        self.conflicts = 0

    def _require(self, group_id: str) -> ErrorGroup:
        if group_id not in self.groups:
            raise GroupNotFound(group_id)
        return self.groups[group_id]

    @asynccontextmanager
    async def transaction(self):
        yield FakeGroupTransaction(self)

    async def get(self, group_id: str) -> Optional[ErrorGroup]:
        group = self.groups.get(group_id)
        return copy.deepcopy(group) if group else None

    async def update_statistics(self, group_id: str, stats: GroupStats) -> ErrorGroup:
        group = self._require(group_id)
        group.event_count = stats.count
        group.user_count = stats.unique_users
        group.metadata.stats = stats
        return copy.deepcopy(group)

    async def merge_metadata(self, group_id: str, key: str, patch: Dict[str, Any]) -> ErrorGroup:
        group = self._require(group_id)
        document = merge_document(metadata_to_document(group.metadata), key, patch)
        group.metadata = document_to_metadata(document)
        return copy.deepcopy(group)

    async def record_analysis(
        self, group_id: str, summary: str, analysis: Dict[str, Any], analyzed_at: datetime
    ) -> ErrorGroup:
        group = self._require(group_id)
        group.ai_summary = summary
        group.metadata.ai_analysis = analysis
        group.metadata.last_analysis_date = analyzed_at
        group.metadata.last_analysis_count = group.event_count
        return copy.deepcopy(group)


# =============================================================================
# AI CACHE STORE
# =============================================================================


class FakeAICacheStore:
    def __init__(self):
        self.entries: List[AICacheEntry] = []
        self.fail_usage = False

    async def lookup(self, fingerprint_hash, analysis_type, project_id=None, respect_privacy=True):
        candidates = [
            e for e in self.entries
            if e.fingerprint_hash == fingerprint_hash and e.analysis_type == analysis_type
        ]
        for entry in sorted(candidates, key=lookup_order):
            if visible_to(entry, project_id, respect_privacy):
                return copy.deepcopy(entry)
        return None

    async def insert(self, entry: AICacheEntry) -> AICacheEntry:
        stored = copy.deepcopy(entry)
        stored.id = stored.id or str(uuid.uuid4())
        self.entries.append(stored)
        return copy.deepcopy(stored)

    def _by_id(self, entry_id: str) -> Optional[AICacheEntry]:
        return next((e for e in self.entries if e.id == entry_id), None)

    async def record_usage(self, entry_id, project_id, tokens_saved, cost_saved_cents, used_at):
        if self.fail_usage:
            raise ConnectionError("cache store unavailable")
        entry = self._by_id(entry_id)
        if entry is None:
            return
        entry.usage_count += 1
        entry.last_used_at = used_at
        entry.tokens_saved += tokens_saved
        entry.cost_saved_cents += cost_saved_cents
        if project_id and project_id not in entry.projects_used:
            entry.projects_used.append(project_id)

    async def apply_feedback(self, fingerprint_hash, analysis_type, score) -> int:
        updated = 0
        for entry in self.entries:
            if entry.fingerprint_hash == fingerprint_hash and entry.analysis_type == analysis_type:
                entry.avg_feedback_score = updated_average(
                    entry.avg_feedback_score, entry.feedback_count, score
                )
                entry.feedback_count += 1
                updated += 1
        return updated

    async def stats(self, start=None, end=None):
        totals: Dict[tuple, Dict[str, Any]] = {}
        for entry in self.entries:
            if start and entry.last_used_at < start:
                continue
            if end and entry.last_used_at > end:
                continue
            key = (entry.analysis_type.value, entry.provider)
            row = totals.setdefault(key, {
                "analysis_type": key[0],
                "provider": key[1],
                "hits": 0,
                "tokens_saved": 0,
                "cost_saved_cents": 0,
            })
            row["hits"] += entry.usage_count - 1
            row["tokens_saved"] += entry.tokens_saved
            row["cost_saved_cents"] += entry.cost_saved_cents
        return list(totals.values())


# =============================================================================
# AI PROVIDER, ANALYZER, SIMILARITY INDEX
# =============================================================================


ANALYSIS_REPLY = """```json
{
  "summary": "x is used before it is defined",
  "severity": "high",
  "category": "runtime",
  "possibleCauses": ["missing import"],
  "suggestedFixes": [{"description": "declare x", "confidence": 0.9}],
  "relatedErrors": []
}
```"""


class FakeAIProvider:
    name = "fake"
    model = "fake-model"

    def __init__(self, reply: str = ANALYSIS_REPLY, embedding: Optional[List[float]] = None,
                 fail: bool = False, delay: float = 0.0):
        self.reply = reply
        self.embedding = embedding or [1.0, 0.0, 0.0]
        self.fail = fail
        self.delay = delay
        self.prompts: List[str] = []
        self.embedded: List[str] = []

    async def generate(self, prompt: str, temperature: float = 0.7, max_tokens: int = 1000) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("provider down")
        return self.reply

    async def embed(self, texts: List[str]) -> List[List[float]]:
        self.embedded.extend(texts)
        if self.fail:
            raise RuntimeError("provider down")
        return [list(self.embedding) for _ in texts]


class FakeSimilarityIndex:
    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}

    async def upsert(self, event_id, project_id, environment, error_type, content, embedding, metadata):
        self.documents[event_id] = {
            "project_id": project_id,
            "environment": environment,
            "error_type": error_type,
            "content": content,
            "embedding": list(embedding),
            "metadata": metadata,
        }

    async def search(self, embedding, project_id, environment, limit, min_score):
        """Only identical embeddings match, with similarity 1.0."""
        return [
            SimilarError(event_id=event_id, similarity=1.0, content=doc["content"])
            for event_id, doc in self.documents.items()
            if doc["project_id"] == project_id
            and (not environment or doc["environment"] == environment)
            and doc["embedding"] == list(embedding)
        ][:limit]


class FakeAnalyzer:
    """What the pipeline needs from AIAnalysisService."""

    def __init__(self, summary: str = "x is used before it is defined",
                 fail: bool = False, hang: bool = False, fail_index: bool = False):
        self.summary = summary
        self.fail = fail
        self.hang = hang
        self.fail_index = fail_index
        self.analyzed: List[str] = []
        self.indexed: List[str] = []

    async def analyze_error(self, event: ErrorEvent) -> Optional[ErrorAnalysis]:
        self.analyzed.append(event.id)
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail:
            raise RuntimeError("analysis exploded")
        return ErrorAnalysis(summary=self.summary, severity="high", category="runtime")

    async def index_error(self, event: ErrorEvent) -> None:
        if self.fail_index:
            raise RuntimeError("index down")
        self.indexed.append(event.id)


# =============================================================================
# DISPATCHERS AND PROJECTS
# =============================================================================


class FakeAlertDispatcher:
    def __init__(self, fail: bool = False):
        self.intents: List[AlertIntent] = []
        self.fail = fail

    async def dispatch(self, intent: AlertIntent) -> None:
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.intents.append(intent)

    @property
    def kinds(self) -> List[str]:
        return [intent.kind.value for intent in self.intents]


class FakeJobDispatcher:
    def __init__(self, fail: bool = False):
        self.jobs: List[tuple] = []
        self.fail = fail

    async def dispatch(self, event_id: str, project_id: str) -> None:
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.jobs.append((event_id, project_id))


def make_project(
    project_id: Optional[str] = None,
    public_key: str = "publickey123",
    secret_key: Optional[str] = "secret-key",
    status: str = "active",
    organization_id: Optional[str] = None,
) -> Project:
    return Project(
        id=project_id or str(uuid.uuid4()),
        name="Storefront",
        slug=f"storefront-{public_key}",
        platform="javascript",
        public_key=public_key,
        secret_key_hash=hash_secret_key(secret_key) if secret_key else None,
        status=status,
        organization_id=organization_id,
    )


class FakeProjectDirectory:
    def __init__(self, *projects: Project):
        self.projects = list(projects)

    async def get(self, project_id: str) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

    async def resolve_key(self, project_key: str) -> Optional[Project]:
        for project in self.projects:
            if project.public_key == project_key:
                return project
            if is_uuid(project_key) and project.id == project_key:
                return project
        return None

    async def by_secret_key(self, secret_key: str) -> Optional[Project]:
        hashed = hash_secret_key(secret_key)
        return next((p for p in self.projects if p.secret_key_hash == hashed), None)


def cache_entry(**overrides) -> AICacheEntry:
    values = dict(
        fingerprint_hash="fp-1",
        analysis_type=AnalysisType.ERROR_ANALYSIS,
        provider="fake",
        model="fake-model",
        analysis_result='{"summary": "cached"}',
        prompt_hash="0123456789abcdef",
        confidence_score=0.8,
        is_public=False,
        created_at=NOW,
        last_used_at=NOW,
        usage_count=1,
        projects_used=["project-1"],
    )
    values.update(overrides)
    return AICacheEntry(**values)
