"""Tasks API endpoints."""

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Query, status
from pydantic import BaseModel

from taskflow.api.deps import ActingUserId, Dispatcher, LifecycleService, QueryService
from taskflow.api.v1.responses import DataResponse
from taskflow.schemas.activity import ActivityPage
from taskflow.schemas.records import TaskRecord
from taskflow.schemas.results import MutationResult
from taskflow.schemas.task import (
    CommentCreate,
    PriorityUpdate,
    RecurringTaskGroup,
    StatusUpdate,
    SubtaskCreate,
    TaskCreate,
    TaskUpdate,
    TaskWithRoles,
)

router = APIRouter()


class TaskMutationResponse(BaseModel):
    """A mutated task, plus the instance spawned when a recurring task completes."""

    data: TaskRecord
    recurring_instance: TaskRecord | None = None
    affected_count: int = 1


def _respond(
    result: MutationResult[TaskRecord],
    background_tasks: BackgroundTasks,
    dispatcher: Dispatcher,
) -> TaskMutationResponse:
    if result.has_side_effects:
        background_tasks.add_task(dispatcher.dispatch, result)
    return TaskMutationResponse(
        data=result.resource,
        recurring_instance=result.recurring_instance,
        affected_count=result.affected_count,
    )


# =============================================================================
# Collections
# =============================================================================


@router.post("", response_model=TaskMutationResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    data: TaskCreate,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    """Create a top-level task."""
    result = await service.create_task(acting_user_id, data)
    return _respond(result, background_tasks, dispatcher)


@router.get("", response_model=DataResponse[list[TaskRecord]])
async def list_tasks(
    acting_user_id: ActingUserId,
    service: QueryService,
    user_ids: list[int] | None = Query(default=None),
) -> DataResponse[list[TaskRecord]]:
    """Tasks owned by or shared with the given users, within the actor's scope."""
    tasks = await service.list_tasks(acting_user_id, user_ids)
    return DataResponse(data=tasks)


@router.get("/deleted", response_model=DataResponse[list[TaskRecord]])
async def list_deleted_tasks(
    acting_user_id: ActingUserId,
    service: QueryService,
    start: datetime | None = None,
    end: datetime | None = None,
) -> DataResponse[list[TaskRecord]]:
    tasks = await service.list_deleted(acting_user_id, start, end)
    return DataResponse(data=tasks)


@router.get("/recurring", response_model=DataResponse[list[RecurringTaskGroup]])
async def list_recurring_tasks(
    acting_user_id: ActingUserId,
    service: QueryService,
) -> DataResponse[list[RecurringTaskGroup]]:
    groups = await service.list_recurring(acting_user_id)
    return DataResponse(data=groups)


@router.get("/by-user/{user_id}", response_model=DataResponse[list[TaskRecord]])
async def list_user_tasks(
    user_id: int,
    acting_user_id: ActingUserId,
    service: QueryService,
) -> DataResponse[list[TaskRecord]]:
    tasks = await service.list_user_tasks(acting_user_id, user_id)
    return DataResponse(data=tasks)


@router.get("/by-user/{user_id}/deadlines", response_model=DataResponse[list[TaskWithRoles]])
async def list_user_deadlines(
    user_id: int,
    acting_user_id: ActingUserId,
    service: QueryService,
    project_id: int | None = None,
) -> DataResponse[list[TaskWithRoles]]:
    """The user's tasks with their roles; peers may look within a shared project."""
    tasks = await service.list_user_deadlines(acting_user_id, user_id, project_id)
    return DataResponse(data=tasks)


# =============================================================================
# Single task
# =============================================================================


@router.get("/{task_id}", response_model=DataResponse[TaskRecord])
async def get_task(
    task_id: int,
    acting_user_id: ActingUserId,
    service: QueryService,
) -> DataResponse[TaskRecord]:
    task = await service.get_task(acting_user_id, task_id)
    return DataResponse(data=task)


@router.patch("/{task_id}", response_model=TaskMutationResponse)
async def update_task(
    task_id: int,
    data: TaskUpdate,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    """Partial edit. Only the fields sent are considered."""
    result = await service.update_task(acting_user_id, task_id, data)
    return _respond(result, background_tasks, dispatcher)


@router.patch("/{task_id}/status", response_model=TaskMutationResponse)
async def update_task_status(
    task_id: int,
    data: StatusUpdate,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    result = await service.update_status(acting_user_id, task_id, data.status)
    return _respond(result, background_tasks, dispatcher)


@router.put("/{task_id}/priority", response_model=TaskMutationResponse)
async def update_task_priority(
    task_id: int,
    data: PriorityUpdate,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    result = await service.update_priority(acting_user_id, task_id, data.priority_bucket)
    return _respond(result, background_tasks, dispatcher)


@router.post("/{task_id}/delete", response_model=TaskMutationResponse)
async def delete_task(
    task_id: int,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    """Soft-delete the task and its live descendants."""
    result = await service.delete_task(acting_user_id, task_id)
    return _respond(result, background_tasks, dispatcher)


@router.post("/{task_id}/restore", response_model=TaskMutationResponse)
async def restore_task(
    task_id: int,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    result = await service.restore_task(acting_user_id, task_id)
    return _respond(result, background_tasks, dispatcher)


@router.post(
    "/{task_id}/subtask",
    response_model=TaskMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_subtask(
    task_id: int,
    data: SubtaskCreate,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    result = await service.create_subtask(acting_user_id, task_id, data)
    return _respond(result, background_tasks, dispatcher)


@router.post(
    "/{task_id}/comments",
    response_model=TaskMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    task_id: int,
    data: CommentCreate,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    """Comment on a task; mentioned users are notified."""
    result = await service.add_comment(acting_user_id, task_id, data)
    return _respond(result, background_tasks, dispatcher)


@router.post("/{task_id}/stop-recurrence", response_model=TaskMutationResponse)
async def stop_recurrence(
    task_id: int,
    acting_user_id: ActingUserId,
    service: LifecycleService,
    dispatcher: Dispatcher,
    background_tasks: BackgroundTasks,
) -> TaskMutationResponse:
    result = await service.stop_recurrence(acting_user_id, task_id)
    return _respond(result, background_tasks, dispatcher)


# =============================================================================
# Hierarchy and activity
# =============================================================================


@router.get("/{task_id}/ancestors", response_model=DataResponse[list[TaskRecord]])
async def get_ancestors(
    task_id: int,
    acting_user_id: ActingUserId,
    service: QueryService,
) -> DataResponse[list[TaskRecord]]:
    """Ancestors from the root down to the direct parent."""
    tasks = await service.get_ancestors(acting_user_id, task_id)
    return DataResponse(data=tasks)


@router.get("/{task_id}/descendants", response_model=DataResponse[list[TaskRecord]])
async def get_descendants(
    task_id: int,
    acting_user_id: ActingUserId,
    service: QueryService,
) -> DataResponse[list[TaskRecord]]:
    tasks = await service.get_descendants(acting_user_id, task_id)
    return DataResponse(data=tasks)


@router.get("/{task_id}/activity", response_model=ActivityPage)
async def get_activity(
    task_id: int,
    acting_user_id: ActingUserId,
    service: QueryService,
    limit: int | None = None,
    offset: int = 0,
) -> ActivityPage:
    """Newest-first activity feed."""
    return await service.get_activity(acting_user_id, task_id, limit, offset)
