"""
Tests for the read API (events, AI suggestions, groups, AI cache).

Requests carry the project secret key as a Bearer token; stores are the
in-memory fakes injected through app.dependency_overrides.
"""

import httpx
import pytest

from faultline.api.deps import (
    get_analyzer,
    get_cache_service,
    get_event_store,
    get_group_repository,
    get_project_directory,
)
from faultline.api.main import app
from faultline.ai.analysis import AIAnalysisService
from faultline.ai.cache import AICacheService
from faultline.core.background import BackgroundTasks
from faultline.domain import ErrorGroup, GroupMetadata, GroupStats, Level

from fakes import (
    NOW,
    FakeAICacheStore,
    FakeAIProvider,
    FakeEventStore,
    FakeGroupRepository,
    FakeProjectDirectory,
    FakeSimilarityIndex,
    cache_entry,
    make_project,
)

AUTH = {"Authorization": "Bearer secret-key"}


class StatsEventStore(FakeEventStore):
    """Event store with canned aggregations."""

    async def counts_by_bucket(self, project_id, period="day", now=None):
        return [{"time_bucket": NOW.isoformat(), "count": 3, "period": period, "project": project_id}]

    async def top_types(self, project_id, limit=10, now=None):
        return [{"type": "TypeError", "count": 3}][:limit]

    async def summary(self, project_id, now=None):
        return {"total_events": 3}


@pytest.fixture
def events():
    return StatsEventStore()


@pytest.fixture
def groups():
    return FakeGroupRepository()


@pytest.fixture
def cache_store():
    return FakeAICacheStore()


@pytest.fixture
def provider():
    return FakeAIProvider(reply="Declare x before the first render.")


@pytest.fixture
def index():
    return FakeSimilarityIndex()


@pytest.fixture
async def client(events, groups, cache_store, provider, index):
    directory = FakeProjectDirectory(
        make_project("project-1", public_key="pk1", secret_key="secret-key"),
        make_project("project-2", public_key="pk2", secret_key="other-key", status="disabled"),
    )
    background = BackgroundTasks()
    cache = AICacheService(cache_store, background)
    analyzer = AIAnalysisService(provider, cache, index, timeout=1.0)
    app.dependency_overrides[get_project_directory] = lambda: directory
    app.dependency_overrides[get_event_store] = lambda: events
    app.dependency_overrides[get_group_repository] = lambda: groups
    app.dependency_overrides[get_cache_service] = lambda: cache
    app.dependency_overrides[get_analyzer] = lambda: analyzer

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await background.drain()
    app.dependency_overrides.clear()


def add_group(groups: FakeGroupRepository, group_id: str, project_id: str) -> ErrorGroup:
    group = ErrorGroup(
        id=group_id,
        project_id=project_id,
        fingerprint_hash="h-" + group_id,
        fingerprint=["TypeError", "boom"],
        title="TypeError: boom",
        type="TypeError",
        message="boom",
        platform="javascript",
        first_seen=NOW,
        last_seen=NOW,
        event_count=7,
        metadata=GroupMetadata(level="error", stats=GroupStats(count=7, last_24h=2, last_7d=5, last_30d=7)),
    )
    groups.groups[group_id] = group
    return group


# =============================================================================
# AUTHENTICATION
# =============================================================================


class TestAuthentication:
    async def test_missing_token(self, client):
        response = await client.get("/api/v1/events")
        assert response.status_code in (401, 403)

    async def test_unknown_key(self, client):
        response = await client.get("/api/v1/events", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid project secret key"

    async def test_inactive_project(self, client):
        response = await client.get("/api/v1/events", headers={"Authorization": "Bearer other-key"})
        assert response.status_code == 401

    async def test_health_is_public(self, client):
        response = await client.get("/api/v1/health")
        assert response.json() == {"status": "healthy", "service": "api"}


# =============================================================================
# EVENTS
# =============================================================================


class TestEvents:
    async def test_list_scoped_to_project(self, client, events, make_event):
        await events.store(make_event(id="mine"))
        await events.store(make_event(id="theirs", project_id="project-2"))

        response = await client.get("/api/v1/events", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert [item["id"] for item in body["items"]] == ["mine"]
        assert body["limit"] == 100
        assert body["items"][0]["level"] == "error"

    async def test_level_filter(self, client, events, make_event):
        await events.store(make_event(id="e1"))
        await events.store(make_event(id="w1", level=Level.WARNING))

        response = await client.get("/api/v1/events", params={"level": "warning"}, headers=AUTH)

        assert [item["id"] for item in response.json()["items"]] == ["w1"]

    async def test_limit_bounds(self, client):
        response = await client.get("/api/v1/events", params={"limit": 0}, headers=AUTH)
        assert response.status_code == 422

    async def test_get_event(self, client, events, make_event):
        await events.store(make_event(id="mine"))

        response = await client.get("/api/v1/events/mine", headers=AUTH)

        assert response.status_code == 200
        assert response.json()["type"] == "ReferenceError"

    async def test_other_projects_event_is_404(self, client, events, make_event):
        await events.store(make_event(id="theirs", project_id="project-2"))

        response = await client.get("/api/v1/events/theirs", headers=AUTH)

        assert response.status_code == 404

    async def test_stats_route_not_shadowed(self, client):
        """/events/stats is not taken for an event id."""
        response = await client.get("/api/v1/events/stats", params={"period": "hour"}, headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["buckets"][0]["period"] == "hour"
        assert body["buckets"][0]["project"] == "project-1"
        assert body["top_types"][0]["type"] == "TypeError"
        assert body["summary"] == {"total_events": 3}

    async def test_stats_rejects_unknown_period(self, client):
        response = await client.get("/api/v1/events/stats", params={"period": "year"}, headers=AUTH)
        assert response.status_code == 422


class TestEventSuggestions:
    """Similar errors and suggested fixes for a single event."""

    async def index_doc(self, index, event_id, project_id="project-1"):
        await index.upsert(event_id, project_id, "production", "ReferenceError", f"doc {event_id}", [1.0, 0.0, 0.0], {})

    async def test_similar_excludes_the_event_itself(self, client, events, index, make_event):
        await events.store(make_event(id="mine"))
        await self.index_doc(index, "mine")
        await self.index_doc(index, "other")
        await self.index_doc(index, "theirs", project_id="project-2")

        response = await client.get("/api/v1/events/mine/similar", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"items": [{"event_id": "other", "similarity": 1.0, "content": "doc other"}]}

    async def test_similar_limit(self, client, events, index, make_event):
        await events.store(make_event(id="mine"))
        for event_id in ("mine", "a", "b", "c"):
            await self.index_doc(index, event_id)

        response = await client.get("/api/v1/events/mine/similar", params={"limit": 2}, headers=AUTH)
        too_many = await client.get("/api/v1/events/mine/similar", params={"limit": 21}, headers=AUTH)

        assert [item["event_id"] for item in response.json()["items"]] == ["a", "b"]
        assert too_many.status_code == 422

    async def test_similar_for_other_projects_event_is_404(self, client, events, make_event):
        await events.store(make_event(id="theirs", project_id="project-2"))

        response = await client.get("/api/v1/events/theirs/similar", headers=AUTH)

        assert response.status_code == 404

    async def test_similar_requires_auth(self, client, events, make_event):
        await events.store(make_event(id="mine"))

        response = await client.get("/api/v1/events/mine/similar")

        assert response.status_code in (401, 403)

    async def test_suggested_fix(self, client, events, provider, make_event):
        await events.store(make_event(id="mine"))

        response = await client.post("/api/v1/events/mine/suggested-fix", headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"event_id": "mine", "suggested_fix": "Declare x before the first render."}
        assert "x is not defined" in provider.prompts[0]

    async def test_suggested_fix_for_other_projects_event_is_404(self, client, events, provider, make_event):
        await events.store(make_event(id="theirs", project_id="project-2"))

        response = await client.post("/api/v1/events/theirs/suggested-fix", headers=AUTH)

        assert response.status_code == 404
        assert provider.prompts == []

    async def test_suggested_fix_provider_failure_is_503(self, client, events, provider, make_event):
        provider.fail = True
        await events.store(make_event(id="mine"))

        response = await client.post("/api/v1/events/mine/suggested-fix", headers=AUTH)

        assert response.status_code == 503
        assert response.json()["detail"] == "AI analysis unavailable"

    async def test_ai_disabled(self, client, events, cache_store, index, make_event):
        """Without a provider the similar list is empty and no fix can be generated."""
        disabled = AIAnalysisService(None, AICacheService(cache_store, BackgroundTasks()), index)
        app.dependency_overrides[get_analyzer] = lambda: disabled
        await events.store(make_event(id="mine"))
        await self.index_doc(index, "other")

        similar = await client.get("/api/v1/events/mine/similar", headers=AUTH)
        fix = await client.post("/api/v1/events/mine/suggested-fix", headers=AUTH)

        assert similar.json() == {"items": []}
        assert fix.status_code == 503


# =============================================================================
# GROUPS
# =============================================================================


class TestGroups:
    async def test_get_group(self, client, groups):
        add_group(groups, "g1", "project-1")

        response = await client.get("/api/v1/groups/g1", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "TypeError: boom"
        assert body["status"] == "unresolved"
        assert body["metadata"]["stats"] == {"last24h": 2, "last7d": 5, "last30d": 7}

    async def test_other_projects_group_is_404(self, client, groups):
        add_group(groups, "g2", "project-2")

        response = await client.get("/api/v1/groups/g2", headers=AUTH)

        assert response.status_code == 404


# =============================================================================
# AI CACHE
# =============================================================================


class TestAICache:
    async def test_get_cached_analysis(self, client, cache_store):
        await cache_store.insert(cache_entry(analysis_result='{"summary": "cached"}'))

        response = await client.get("/api/v1/ai-cache/fp-1/error_analysis", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["analysis"] == {"summary": "cached"}
        assert body["analysis_type"] == "error_analysis"

    async def test_private_entry_of_other_project(self, client, cache_store):
        await cache_store.insert(cache_entry(projects_used=["project-2"], is_public=False))

        response = await client.get("/api/v1/ai-cache/fp-1/error_analysis", headers=AUTH)

        assert response.status_code == 404
        assert response.json()["detail"] == "No cached analysis found"

    async def test_unknown_analysis_type(self, client):
        response = await client.get("/api/v1/ai-cache/fp-1/horoscope", headers=AUTH)
        assert response.status_code == 422

    async def test_feedback(self, client, cache_store):
        await cache_store.insert(cache_entry(avg_feedback_score=4.0, feedback_count=3))

        response = await client.post(
            "/api/v1/ai-cache/fp-1/error_analysis/feedback", json={"score": 2.0}, headers=AUTH
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "updated": 1}
        assert cache_store.entries[0].avg_feedback_score == pytest.approx(3.5)

    @pytest.mark.parametrize("score", [-1, 5.5])
    async def test_feedback_out_of_range(self, client, cache_store, score):
        await cache_store.insert(cache_entry())

        response = await client.post(
            "/api/v1/ai-cache/fp-1/error_analysis/feedback", json={"score": score}, headers=AUTH
        )

        assert response.status_code == 422
        assert cache_store.entries[0].feedback_count == 0

    async def test_feedback_unknown_entry(self, client):
        response = await client.post(
            "/api/v1/ai-cache/missing/error_analysis/feedback", json={"score": 3}, headers=AUTH
        )
        assert response.status_code == 404

    async def test_stats(self, client, cache_store):
        await cache_store.insert(cache_entry(usage_count=3, tokens_saved=800, cost_saved_cents=250))

        response = await client.get(
            "/api/v1/ai-cache/stats",
            params={"start_date": "2026-02-01T00:00:00Z", "end_date": "2026-03-02T00:00:00Z"},
            headers=AUTH,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["totalCacheHits"] == 2
        assert body["totalTokensSaved"] == 800
        assert body["savings"] == {"estimatedCostSavedDollars": "2.50", "apiCallsSaved": 2}
        assert body["period"]["startDate"].startswith("2026-02-01")
