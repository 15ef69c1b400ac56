"""
Processing Worker - groups stored events and keeps group state current.

This service:
1. Consumes process-event jobs from RabbitMQ
2. Runs each through the processing pipeline
3. Publishes alert intents to the alerts queue

It also exposes a simple health check endpoint.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from faultline.ai.analysis import AIAnalysisService
from faultline.ai.cache import AICacheService
from faultline.ai.provider import build_provider
from faultline.ai.similarity import SqlSimilarityIndex
from faultline.ai.usage import UsageRecorder
from faultline.core.background import BackgroundTasks
from faultline.core.config import settings
from faultline.core.db import AsyncSessionLocal
from faultline.core.logging import configure_logging
from faultline.core.rabbitmq import RabbitPublisher
from faultline.processing.alerts import RabbitAlertDispatcher
from faultline.processing.consumer import EventConsumer
from faultline.processing.pipeline import ErrorProcessingService
from faultline.stores.cache import SqlAICacheStore
from faultline.stores.events import SqlEventStore
from faultline.stores.groups import SqlGroupRepository
from faultline.stores.projects import SqlProjectDirectory

logger = logging.getLogger(__name__)


# =============================================================================
# LIFESPAN
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the pipeline, start the consumer, tear both down on shutdown."""
    configure_logging()
    logger.info("🚀 Starting Processing Worker...")

    background = BackgroundTasks()
    usage = UsageRecorder(SqlProjectDirectory(AsyncSessionLocal))
    analyzer = AIAnalysisService(
        provider=build_provider(),
        cache=AICacheService(SqlAICacheStore(AsyncSessionLocal), background),
        index=SqlSimilarityIndex(AsyncSessionLocal),
        usage=usage,
    )
    publisher = RabbitPublisher()
    await publisher.connect(settings.alerts_queue)

    service = ErrorProcessingService(
        events=SqlEventStore(AsyncSessionLocal),
        groups=SqlGroupRepository(AsyncSessionLocal),
        analyzer=analyzer,
        alerts=RabbitAlertDispatcher(publisher),
    )
    consumer_task = asyncio.create_task(EventConsumer(service).start())

    yield

    # Shutdown
    consumer_task.cancel()
    try:
        await consumer_task
    except asyncio.CancelledError:
        pass

    await background.drain()
    await usage.aclose()
    await publisher.disconnect()
    logger.info("👋 Processing Worker stopped")


# =============================================================================
# APP
# =============================================================================


app = FastAPI(
    title="Faultline Processing Worker",
    description="Error grouping, statistics, AI analysis and alerts",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# ENDPOINTS
# =============================================================================


@app.get("/health", tags=["Health"])
@app.get("/api/v1/health", tags=["Health"], include_in_schema=False)
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "processing"}
