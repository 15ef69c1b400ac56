"""
Error group routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from faultline.api.deps import get_current_project, get_group_repository
from faultline.api.schemas import GroupResponse
from faultline.models import Project
from faultline.stores.groups import SqlGroupRepository

router = APIRouter(
    prefix="/groups",
    tags=["Groups"],
)


@router.get(
    "/{group_id}",
    response_model=GroupResponse,
    summary="Get error group by ID",
)
async def get_group(
    group_id: str,
    project: Project = Depends(get_current_project),
    groups: SqlGroupRepository = Depends(get_group_repository),
) -> GroupResponse:
    group = await groups.get(group_id)

    if group is None or group.project_id != project.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Error group not found",
        )

    return GroupResponse.from_group(group)
