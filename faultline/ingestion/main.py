"""
Ingestion Service - Sentry-compatible endpoints that receive error events.

Authentication: the DSN key in the URL
- SDKs address a project by its UUID or its public key
- unknown keys and inactive projects get 401 and nothing is stored

Events are written to the Event Store before the response is sent; the
grouping work happens in the processing worker.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from faultline.core.config import settings
from faultline.core.db import AsyncSessionLocal
from faultline.core.errors import InvalidEnvelope, ProjectUnauthorized
from faultline.core.logging import configure_logging
from faultline.core.rabbitmq import RabbitPublisher
from faultline.ingestion.deps import (
    get_ingestion_service,
    get_project_directory,
    resolve_project,
    unauthorized_response,
)
from faultline.ingestion.envelope import parse_envelope
from faultline.ingestion.schemas import SentryEventPayload, StoreResponse
from faultline.ingestion.service import IngestionService, RabbitJobDispatcher
from faultline.models import Project
from faultline.stores.events import SqlEventStore
from faultline.stores.projects import SqlProjectDirectory

logger = logging.getLogger(__name__)

INVALID_EVENT_BODY = {"error": "Invalid event data"}


# =============================================================================
# LIFESPAN
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown."""
    configure_logging()
    logger.info("🚀 Starting Ingestion Service...")

    publisher = RabbitPublisher()
    await publisher.connect(settings.events_queue)

    app.state.projects = SqlProjectDirectory(AsyncSessionLocal)
    app.state.ingestion = IngestionService(
        events=SqlEventStore(AsyncSessionLocal),
        dispatcher=RabbitJobDispatcher(publisher),
    )

    yield

    await publisher.disconnect()
    logger.info("👋 Ingestion Service stopped")


# =============================================================================
# APP
# =============================================================================


app = FastAPI(
    title="Faultline Ingestion Service",
    description="Sentry-compatible error ingestion endpoints",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# HELPERS
# =============================================================================


async def _ingest(service: IngestionService, project: Project, data: Any) -> dict:
    """Validate `data` and store it; validation errors become 422."""
    if not isinstance(data, dict):
        raise InvalidEnvelope("Event body is not a JSON object")
    try:
        payload = SentryEventPayload.model_validate(data)
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e
    return await service.store_from_payload(project.id, payload)


# =============================================================================
# ENDPOINTS
# =============================================================================


@app.get("/health", tags=["Health"])
@app.get("/api/v1/health", tags=["Health"], include_in_schema=False)
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "ingestion"}


@app.post(
    "/api/{project_key}/store/",
    response_model=StoreResponse,
    status_code=status.HTTP_200_OK,
    tags=["Events"],
    summary="Store an error event",
)
@app.post("/api/{project_key}/store", include_in_schema=False)
async def store_event(
    project_key: str,
    request: Request,
    service: IngestionService = Depends(get_ingestion_service),
    projects: SqlProjectDirectory = Depends(get_project_directory),
):
    """
    Store a Sentry event.

    Example:
    ```
    curl -X POST http://localhost:8001/api/<public_key>/store/ \
      -H "Content-Type: application/json" \
      -d '{"platform": "javascript", "message": "x is not defined"}'
    ```
    """
    try:
        project = await resolve_project(projects, project_key)
    except ProjectUnauthorized:
        return unauthorized_response()

    try:
        data = await request.json()
    except ValueError as e:
        logger.warning("⚠️ Rejected event for project %s: %s", project.id, e)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=INVALID_EVENT_BODY)

    try:
        return await _ingest(service, project, data)
    except InvalidEnvelope as e:
        logger.warning("⚠️ Rejected event for project %s: %s", project.id, e)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=INVALID_EVENT_BODY)


@app.post(
    "/api/{project_key}/envelope/",
    response_model=StoreResponse,
    tags=["Events"],
    summary="Store the event item of a Sentry envelope",
)
@app.post("/api/{project_key}/envelope", include_in_schema=False)
async def store_envelope(
    project_key: str,
    request: Request,
    service: IngestionService = Depends(get_ingestion_service),
    projects: SqlProjectDirectory = Depends(get_project_directory),
):
    try:
        project = await resolve_project(projects, project_key)
    except ProjectUnauthorized:
        return unauthorized_response()

    try:
        data = parse_envelope(await request.body())
        return await _ingest(service, project, data)
    except InvalidEnvelope as e:
        logger.warning("⚠️ Rejected envelope for project %s: %s", project.id, e)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=INVALID_EVENT_BODY)
