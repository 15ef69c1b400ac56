"""
FastAPI dependencies for the ingestion service.

Routes receive their collaborators through these functions; tests swap
them with app.dependency_overrides.
"""

from fastapi import Request
from fastapi.responses import JSONResponse

from faultline.core.errors import ProjectUnauthorized
from faultline.ingestion.service import IngestionService
from faultline.models import Project
from faultline.stores.projects import SqlProjectDirectory

UNAUTHORIZED_BODY = {"error": "Invalid project ID or authentication"}


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion


def get_project_directory(request: Request) -> SqlProjectDirectory:
    return request.app.state.projects


async def resolve_project(directory: SqlProjectDirectory, project_key: str) -> Project:
    """
    Active project addressed by `project_key`.

    Raises:
        ProjectUnauthorized: unknown key or inactive project
    """
    project = await directory.resolve_key(project_key)
    if project is None or not project.is_active:
        raise ProjectUnauthorized(project_key)
    return project


def unauthorized_response() -> JSONResponse:
    return JSONResponse(status_code=401, content=UNAUTHORIZED_BODY)
