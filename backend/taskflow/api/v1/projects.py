"""Projects API endpoints."""

from fastapi import APIRouter, BackgroundTasks, status
from pydantic import BaseModel

from taskflow.api.deps import ActingUserId, Dispatcher, Projects
from taskflow.api.v1.responses import DataResponse
from taskflow.schemas.project import (
    ProjectCreate,
    ProjectDetail,
    ProjectMemberAdd,
    ProjectTaskLink,
    ProjectUpdate,
)
from taskflow.schemas.records import ProjectRecord, TaskRecord
from taskflow.schemas.results import MutationResult

router = APIRouter()


class ProjectMutationResponse(BaseModel):
    data: ProjectRecord
    affected_count: int = 1


class ProjectTaskResponse(BaseModel):
    data: TaskRecord


def _dispatch(result: MutationResult, background_tasks: BackgroundTasks, dispatcher: Dispatcher) -> None:
    if result.has_side_effects:
        background_tasks.add_task(dispatcher.dispatch, result)


@router.post("", response_model=ProjectMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    acting_user_id: ActingUserId,
    service: Projects,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> ProjectMutationResponse:
    """Create a project owned by the actor or someone they outrank."""
    result = await service.create_project(acting_user_id, data)
    _dispatch(result, background_tasks, dispatcher)
    return ProjectMutationResponse(data=result.resource, affected_count=result.affected_count)


@router.get("", response_model=DataResponse[list[ProjectRecord]])
async def list_projects(
    acting_user_id: ActingUserId,
    service: Projects,
) -> DataResponse[list[ProjectRecord]]:
    projects = await service.list_projects(acting_user_id)
    return DataResponse(data=projects)


@router.get("/{project_id}", response_model=DataResponse[ProjectDetail])
async def get_project(
    project_id: int,
    acting_user_id: ActingUserId,
    service: Projects,
) -> DataResponse[ProjectDetail]:
    """Project detail with its live tasks."""
    project = await service.get_project(acting_user_id, project_id)
    return DataResponse(data=project)


@router.patch("/{project_id}", response_model=ProjectMutationResponse)
async def update_project(
    project_id: int,
    data: ProjectUpdate,
    acting_user_id: ActingUserId,
    service: Projects,
) -> ProjectMutationResponse:
    result = await service.update_project(acting_user_id, project_id, data)
    return ProjectMutationResponse(data=result.resource, affected_count=result.affected_count)


# =============================================================================
# Task links
# =============================================================================


@router.post("/{project_id}/add-task", response_model=ProjectTaskResponse)
async def add_task_to_project(
    project_id: int,
    data: ProjectTaskLink,
    acting_user_id: ActingUserId,
    service: Projects,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> ProjectTaskResponse:
    result = await service.add_task(acting_user_id, project_id, data.task_id)
    _dispatch(result, background_tasks, dispatcher)
    return ProjectTaskResponse(data=result.resource)


@router.post("/{project_id}/remove-task", response_model=ProjectTaskResponse)
async def remove_task_from_project(
    project_id: int,
    data: ProjectTaskLink,
    acting_user_id: ActingUserId,
    service: Projects,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> ProjectTaskResponse:
    result = await service.remove_task(acting_user_id, project_id, data.task_id)
    _dispatch(result, background_tasks, dispatcher)
    return ProjectTaskResponse(data=result.resource)


# =============================================================================
# Members
# =============================================================================


@router.post("/{project_id}/members", response_model=ProjectMutationResponse)
async def add_project_member(
    project_id: int,
    data: ProjectMemberAdd,
    acting_user_id: ActingUserId,
    service: Projects,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> ProjectMutationResponse:
    """Owner-only. The new member is notified."""
    result = await service.add_member(acting_user_id, project_id, data.user_id)
    _dispatch(result, background_tasks, dispatcher)
    return ProjectMutationResponse(data=result.resource)


@router.delete("/{project_id}/members/{user_id}", response_model=ProjectMutationResponse)
async def remove_project_member(
    project_id: int,
    user_id: int,
    acting_user_id: ActingUserId,
    service: Projects,
) -> ProjectMutationResponse:
    """Owner-only; refused while the user is still involved in project tasks."""
    result = await service.remove_member(acting_user_id, project_id, user_id)
    return ProjectMutationResponse(data=result.resource)
