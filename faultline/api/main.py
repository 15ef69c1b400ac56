"""
Read API - project-scoped access to events, groups, AI suggestions and the AI cache.

Authentication: the project's secret key as a Bearer token.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from faultline.ai.analysis import AIAnalysisService
from faultline.ai.cache import AICacheService
from faultline.ai.provider import build_provider
from faultline.ai.similarity import SqlSimilarityIndex
from faultline.ai.usage import UsageRecorder
from faultline.api.routes_ai_cache import router as ai_cache_router
from faultline.api.routes_events import router as events_router
from faultline.api.routes_groups import router as groups_router
from faultline.core.background import BackgroundTasks
from faultline.core.db import AsyncSessionLocal
from faultline.core.logging import configure_logging
from faultline.stores.cache import SqlAICacheStore
from faultline.stores.events import SqlEventStore
from faultline.stores.groups import SqlGroupRepository
from faultline.stores.projects import SqlProjectDirectory

logger = logging.getLogger(__name__)


# =============================================================================
# LIFESPAN MANAGEMENT
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle application startup and shutdown.

    Startup: build the stores the routes read from and the AI analyzer
    Shutdown: wait for pending cache usage write-backs, flush usage records
    """
    configure_logging()
    logger.info("🚀 Starting Faultline API...")

    background = BackgroundTasks()
    app.state.projects = SqlProjectDirectory(AsyncSessionLocal)
    app.state.events = SqlEventStore(AsyncSessionLocal)
    app.state.groups = SqlGroupRepository(AsyncSessionLocal)
    app.state.ai_cache = AICacheService(SqlAICacheStore(AsyncSessionLocal), background)
    usage = UsageRecorder(app.state.projects)
    app.state.analyzer = AIAnalysisService(
        provider=build_provider(),
        cache=app.state.ai_cache,
        index=SqlSimilarityIndex(AsyncSessionLocal),
        usage=usage,
    )

    yield

    await background.drain()
    await usage.aclose()
    logger.info("👋 Shutting down Faultline API...")


# =============================================================================
# CREATE APPLICATION
# =============================================================================


app = FastAPI(
    title="Faultline API",
    description="Error events, groups, similar errors and the AI analysis cache",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# =============================================================================
# REGISTER ROUTERS
# =============================================================================

app.include_router(
    events_router,
    prefix="/api/v1",  # Full path: /api/v1/events, /api/v1/events/stats, ...
)

app.include_router(
    groups_router,
    prefix="/api/v1",  # Full path: /api/v1/groups/{id}
)

app.include_router(
    ai_cache_router,
    prefix="/api/v1",  # Full path: /api/v1/ai-cache/stats, ...
)


# =============================================================================
# HEALTH CHECK
# =============================================================================


@app.get("/health", tags=["Health"])
@app.get("/api/v1/health", tags=["Health"], include_in_schema=False)
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "api"}
