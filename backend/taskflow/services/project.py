"""Project service: CRUD, membership and task linking."""

import structlog

from taskflow.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
)
from taskflow.repositories.base import ProjectRepository, TaskRepository, UserRepository
from taskflow.schemas.activity import ActivityIntent, FieldEdited
from taskflow.schemas.notification import NotificationIntent, NotificationKind
from taskflow.schemas.project import ProjectCreate, ProjectDetail, ProjectUpdate
from taskflow.schemas.records import ProjectRecord, TaskRecord, UserRecord
from taskflow.schemas.results import MutationResult
from taskflow.services import access_control as ac

logger = structlog.get_logger()


class ProjectService:
    """Project operations gated by ownership and the hierarchy rules."""

    def __init__(
        self,
        users: UserRepository,
        projects: ProjectRepository,
        tasks: TaskRepository,
    ):
        self.users = users
        self.projects = projects
        self.tasks = tasks

    async def _actor(self, actor_id: int) -> UserRecord:
        actor = await self.users.get(actor_id)
        if actor is None:
            raise NotFoundError("Acting user not found")
        return actor

    async def _project(self, project_id: int) -> ProjectRecord:
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_project(self, actor_id: int, data: ProjectCreate) -> MutationResult[ProjectRecord]:
        actor = await self._actor(actor_id)
        owner = await self.users.get(data.owner_id or actor.user_id)
        if owner is None:
            raise NotFoundError("Owner not found")
        if not ac.can_create_for(actor, owner):
            raise AuthorizationError("Insufficient permissions to create project for this owner")

        project = await self.projects.insert(
            {
                "name": data.name.strip(),
                "description": data.description,
                "end_date": data.end_date,
                "owner_id": owner.user_id,
                "members": [owner.user_id],
                "tasks": [],
            }
        )
        logger.info(
            "project_created",
            project_id=project.project_id,
            owner_id=owner.user_id,
            actor_id=actor.user_id,
        )
        return MutationResult(resource=project)

    async def get_project(self, actor_id: int, project_id: int) -> ProjectDetail:
        """Project plus its live tasks; a failed task load yields no tasks."""
        actor = await self._actor(actor_id)
        project = await self._project(project_id)
        owner = await self.users.get(project.owner_id)
        if not ac.can_view(actor, project, owner):
            raise AuthorizationError("Forbidden: insufficient permissions to view this project")

        try:
            related = await self.tasks.list_by_project(project.project_id)
        except Exception as e:
            logger.warning("project_tasks_load_failed", project_id=project.project_id, error=str(e))
            related = []
        return ProjectDetail(**project.model_dump(), related_tasks=related)

    async def list_projects(self, actor_id: int) -> list[ProjectRecord]:
        """Projects in the actor's listing scope, plus any they are a member of."""
        actor = await self._actor(actor_id)
        projects = await self.projects.list_all()
        owners = await self.users.get_many(sorted({p.owner_id for p in projects}))
        return [
            p for p in projects
            if ac.can_list_owner(actor, owners.get(p.owner_id)) or ac.is_member(actor, p)
        ]

    async def update_project(
        self, actor_id: int, project_id: int, data: ProjectUpdate
    ) -> MutationResult[ProjectRecord]:
        actor = await self._actor(actor_id)
        project = await self._project(project_id)
        if not ac.is_owner(actor, project):
            raise AuthorizationError("Only the project owner can update this project")

        changes = {k: v for k, v in data.changes().items() if not (k == "name" and v is None)}
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        if not changes:
            return MutationResult(resource=project, affected_count=0)

        updated = await self.projects.update(project.project_id, changes)
        logger.info("project_updated", project_id=project.project_id, fields=sorted(changes))
        return MutationResult(resource=updated)

    # =========================================================================
    # Task linking
    # =========================================================================

    async def _task_for_linking(self, task_id: int) -> TaskRecord:
        task = await self.tasks.get(task_id)
        if task is None or task.is_deleted:
            raise NotFoundError("Task not found")
        return task

    async def _check_task_editable(self, actor: UserRecord, task: TaskRecord) -> None:
        task_owner = await self.users.get(task.owner_id)
        if not ac.can_edit_fields(actor, task, task_owner, ["project_id"]):
            raise AuthorizationError("Forbidden: insufficient permissions to modify this task")

    async def add_task(
        self, actor_id: int, project_id: int, task_id: int
    ) -> MutationResult[TaskRecord]:
        """Link a task to the project.

        The task row is written first. Updating the project's task index and
        pulling the task's participants into its members is best-effort.
        """
        actor = await self._actor(actor_id)
        project = await self._project(project_id)
        project_owner = await self.users.get(project.owner_id)
        if not ac.can_view(actor, project, project_owner):
            raise AuthorizationError(
                "Forbidden: insufficient permissions to add tasks to this project"
            )

        task = await self._task_for_linking(task_id)
        await self._check_task_editable(actor, task)

        if task.project_id == project.project_id:
            updated = task
        else:
            updated = await self.tasks.update(task.task_id, {"project_id": project.project_id})

        participants = [updated.owner_id, updated.assignee_id, *updated.members_id]
        members = list(project.members)
        for uid in participants:
            if uid is not None and uid not in members:
                members.append(uid)
        index = project.tasks if updated.task_id in project.tasks else [*project.tasks, updated.task_id]
        try:
            await self.projects.update(project.project_id, {"tasks": index, "members": members})
        except Exception as e:
            logger.warning(
                "project_task_index_update_failed",
                project_id=project.project_id,
                task_id=updated.task_id,
                error=str(e),
            )

        logger.info("project_task_added", project_id=project.project_id, task_id=updated.task_id)
        activities = []
        if task.project_id != project.project_id:
            activities.append(
                ActivityIntent(
                    updated.task_id,
                    actor.user_id,
                    FieldEdited(field="project_id", from_value=task.project_id, to_value=project.project_id),
                )
            )
        return MutationResult(resource=updated, activities=activities)

    async def remove_task(
        self, actor_id: int, project_id: int, task_id: int
    ) -> MutationResult[TaskRecord]:
        actor = await self._actor(actor_id)
        project = await self._project(project_id)
        project_owner = await self.users.get(project.owner_id)
        if not ac.can_view(actor, project, project_owner):
            raise AuthorizationError("Forbidden: insufficient permissions to view this project")

        task = await self.tasks.get(task_id)
        if task is None or task.project_id != project.project_id:
            raise NotFoundError("Task not found in this project")
        await self._check_task_editable(actor, task)

        updated = await self.tasks.update(task.task_id, {"project_id": None})
        try:
            await self.projects.update(
                project.project_id,
                {"tasks": [t for t in project.tasks if t != task.task_id]},
            )
        except Exception as e:
            logger.warning(
                "project_task_index_update_failed",
                project_id=project.project_id,
                task_id=task.task_id,
                error=str(e),
            )

        logger.info("project_task_removed", project_id=project.project_id, task_id=task.task_id)
        activity = ActivityIntent(
            task.task_id,
            actor.user_id,
            FieldEdited(field="project_id", from_value=project.project_id, to_value=None),
        )
        return MutationResult(resource=updated, activities=[activity])

    # =========================================================================
    # Members
    # =========================================================================

    async def add_member(
        self, actor_id: int, project_id: int, user_id: int
    ) -> MutationResult[ProjectRecord]:
        actor = await self._actor(actor_id)
        project = await self._project(project_id)
        if not ac.is_owner(actor, project):
            raise AuthorizationError("Only project owner can manually add members")

        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.user_id in project.member_ids:
            raise ConflictError("User is already a member of this project")

        updated = await self.projects.update(
            project.project_id, {"members": [*project.members, user.user_id]}
        )
        logger.info("project_member_added", project_id=project.project_id, user_id=user.user_id)

        notifications = []
        if user.user_id != actor.user_id:
            notifications.append(
                NotificationIntent(
                    kind=NotificationKind.MEMBER_ADDED,
                    recipient_ids=[user.user_id],
                    sender_id=actor.user_id,
                    project_id=project.project_id,
                    context={"project_name": project.name, "actor_name": actor.display_name},
                )
            )
        return MutationResult(resource=updated, notifications=notifications)

    async def remove_member(
        self, actor_id: int, project_id: int, user_id: int
    ) -> MutationResult[ProjectRecord]:
        actor = await self._actor(actor_id)
        project = await self._project(project_id)
        if not ac.is_owner(actor, project):
            raise AuthorizationError("Only project owner can remove members")
        if user_id == project.owner_id:
            raise ConflictError("Cannot remove project owner from members")
        if user_id not in project.members:
            raise NotFoundError("User is not a member of this project")

        for task in await self.tasks.list_by_project(project.project_id):
            if user_id in (task.owner_id, task.assignee_id) or user_id in task.member_ids:
                user = await self.users.get(user_id)
                name = user.display_name if user else str(user_id)
                raise ConflictError(
                    f"{name} cannot be removed because they are involved in project tasks"
                )

        updated = await self.projects.update(
            project.project_id, {"members": [m for m in project.members if m != user_id]}
        )
        logger.info("project_member_removed", project_id=project.project_id, user_id=user_id)
        return MutationResult(resource=updated)
