"""
FastAPI dependencies for route handlers.

Authentication uses the project's secret key as a Bearer token: the key
is hashed and compared with the stored hash, the matching project scopes
every query.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from faultline.ai.analysis import AIAnalysisService
from faultline.ai.cache import AICacheService
from faultline.models import Project
from faultline.stores.events import SqlEventStore
from faultline.stores.groups import SqlGroupRepository
from faultline.stores.projects import SqlProjectDirectory


# =============================================================================
# HTTP BEARER SCHEME
# =============================================================================

security = HTTPBearer()


# =============================================================================
# COLLABORATORS
# =============================================================================
# Built once in the lifespan and kept on app.state.


def get_project_directory(request: Request) -> SqlProjectDirectory:
    return request.app.state.projects


def get_event_store(request: Request) -> SqlEventStore:
    return request.app.state.events


def get_group_repository(request: Request) -> SqlGroupRepository:
    return request.app.state.groups


def get_cache_service(request: Request) -> AICacheService:
    return request.app.state.ai_cache


def get_analyzer(request: Request) -> AIAnalysisService:
    return request.app.state.analyzer


# =============================================================================
# GET CURRENT PROJECT
# =============================================================================


async def get_current_project(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    projects: SqlProjectDirectory = Depends(get_project_directory),
) -> Project:
    """
    Project owning the secret key in the Authorization header.

    Raises:
        401 Unauthorized: unknown key or inactive project
    """
    project = await projects.by_secret_key(credentials.credentials)

    if project is None or not project.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid project secret key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return project
