"""Task lifecycle: creation, edits, status/assignment rules and soft delete.

Every mutation is checked in the same order: access, then the
assignment-gated status guard, then priority ownership, then owner
reassignment. Writes go through the injected repositories; activity entries
and notifications come back as intents on the MutationResult for the caller
to dispatch.
"""

from datetime import date, datetime, timezone
from typing import Any, Iterable

import structlog

from taskflow.config import Settings, get_settings
from taskflow.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from taskflow.repositories.base import ProjectRepository, TaskRepository, UserRepository
from taskflow.schemas.activity import (
    ActivityIntent,
    CommentAdded,
    FieldEdited,
    Reassigned,
    StatusChanged,
    TaskCreated,
    TaskDeleted,
    TaskRestored,
)
from taskflow.schemas.notification import NotificationIntent, NotificationKind
from taskflow.schemas.records import TaskRecord, TaskStatus, UserRecord, normalize_status
from taskflow.schemas.results import MutationResult
from taskflow.schemas.task import CommentCreate, SubtaskCreate, TaskCreate, TaskUpdate
from taskflow.services import access_control as ac
from taskflow.services.recurring_task import RecurringTaskService, compute_next_due_date

logger = structlog.get_logger()

# Fields diffed into FIELD_EDITED entries; status and assignee get their own types
PLAIN_FIELDS = (
    "title",
    "description",
    "due_date",
    "priority_bucket",
    "owner_id",
    "members_id",
    "is_recurring",
    "recurrence_type",
    "recurrence_interval",
    "recurrence_end_date",
)


def resolve_status(
    current_status: TaskStatus,
    current_assignee: int | None,
    new_assignee: int | None,
    requested: TaskStatus | None,
) -> TaskStatus:
    """Apply the assignment gate to a requested status.

    - No assignee: only UNASSIGNED is allowed.
    - Newly assigned (or still flagged UNASSIGNED): promoted to ONGOING unless
      another status was asked for.
    - Already assigned: UNASSIGNED cannot be requested without removing the
      assignee.
    """
    if new_assignee is None:
        if requested is not None and requested != TaskStatus.UNASSIGNED:
            raise ConflictError("Assign someone before changing status")
        return TaskStatus.UNASSIGNED

    if requested is None or requested == TaskStatus.UNASSIGNED:
        if current_assignee is None or current_status == TaskStatus.UNASSIGNED:
            return TaskStatus.ONGOING
        if requested == TaskStatus.UNASSIGNED:
            raise ConflictError("Remove the assignee to mark the task unassigned")
        return current_status
    return requested


def _dedupe(ids: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    out = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def _json_value(value: Any) -> Any:
    if isinstance(value, TaskStatus):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, (list, set, tuple)):
        return list(value)
    if hasattr(value, "value"):
        return value.value
    return value


class TaskLifecycleService:
    """Owns every task mutation."""

    def __init__(
        self,
        users: UserRepository,
        tasks: TaskRepository,
        projects: ProjectRepository | None = None,
        recurrence: RecurringTaskService | None = None,
        settings: Settings | None = None,
    ):
        self.users = users
        self.tasks = tasks
        self.projects = projects
        self.recurrence = recurrence or RecurringTaskService(tasks, projects)
        self.settings = settings or get_settings()

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _actor(self, actor_id: int) -> UserRecord:
        actor = await self.users.get(actor_id)
        if actor is None:
            raise NotFoundError("Acting user not found")
        return actor

    async def _user(self, user_id: int, label: str = "User") -> UserRecord:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError(f"{label} not found")
        return user

    async def _task(self, task_id: int, include_deleted: bool = False) -> TaskRecord:
        task = await self.tasks.get(task_id)
        if task is None or (task.is_deleted and not include_deleted):
            raise NotFoundError("Task not found")
        return task

    async def _members(self, member_ids: Iterable[int], owner_id: int) -> list[int]:
        members = _dedupe(int(m) for m in member_ids)
        if owner_id in members:
            raise ValidationError("Owner cannot be a member")
        if members:
            found = await self.users.get_many(members)
            missing = [m for m in members if m not in found]
            if missing:
                raise NotFoundError(f"User {missing[0]} not found")
        return members

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_task(self, actor_id: int, data: TaskCreate) -> MutationResult[TaskRecord]:
        """Create a top-level task for the actor or for someone they outrank."""
        actor = await self._actor(actor_id)
        owner = await self._user(data.owner_id or actor.user_id, "Owner")
        if not ac.can_create_for(actor, owner):
            raise AuthorizationError("Insufficient permissions to create task for this owner")

        if data.is_recurring:
            if data.recurrence_type is None:
                raise ValidationError("recurrence_type is required for recurring tasks")
            if data.due_date is None:
                raise ValidationError("due_date is required for recurring tasks")

        values = await self._new_task_values(
            actor,
            owner,
            title=data.title,
            description=data.description,
            due_date=data.due_date,
            priority_bucket=data.priority_bucket,
            assignee_id=data.assignee_id,
            members_id=data.members_id,
            project_id=data.project_id,
            status=data.status,
        )
        if data.is_recurring:
            values.update(
                is_recurring=True,
                recurrence_type=data.recurrence_type,
                recurrence_interval=data.recurrence_interval,
                recurrence_end_date=data.recurrence_end_date,
                next_due_date=compute_next_due_date(
                    data.due_date, data.recurrence_type, data.recurrence_interval
                ),
            )

        task = await self.tasks.insert(values)
        logger.info(
            "task_created",
            task_id=task.task_id,
            owner_id=task.owner_id,
            actor_id=actor.user_id,
            is_recurring=task.is_recurring,
        )
        await self._index_in_project(task)
        return self._creation_result(actor, task, TaskCreated())

    async def create_subtask(
        self, actor_id: int, parent_task_id: int, data: SubtaskCreate
    ) -> MutationResult[TaskRecord]:
        """Create a task under ``parent_task_id``.

        The actor must be able to see the parent and create for the intended
        owner. Priority and project default to the parent's.
        """
        actor = await self._actor(actor_id)
        parent = await self._task(parent_task_id)
        if data.due_date is None:
            raise ValidationError("due_date is required")

        owner = await self._user(data.owner_id or actor.user_id, "Owner")
        parent_owner = await self.users.get(parent.owner_id)
        if not (ac.can_view(actor, parent, parent_owner) and ac.can_create_for(actor, owner)):
            raise AuthorizationError("Insufficient permissions to create subtask for this task")

        values = await self._new_task_values(
            actor,
            owner,
            title=data.title,
            description=data.description,
            due_date=data.due_date,
            priority_bucket=data.priority_bucket or parent.priority_bucket,
            assignee_id=data.assignee_id,
            members_id=data.members_id,
            project_id=data.project_id if data.project_id is not None else parent.project_id,
            status=data.status,
        )
        values["parent_task_id"] = parent.task_id

        task = await self.tasks.insert(values)
        logger.info(
            "subtask_created",
            task_id=task.task_id,
            parent_task_id=parent.task_id,
            actor_id=actor.user_id,
        )
        await self._index_in_project(task)
        return self._creation_result(actor, task, TaskCreated(parent_task_id=parent.task_id))

    async def _new_task_values(
        self,
        actor: UserRecord,
        owner: UserRecord,
        *,
        title: str,
        description: str | None,
        due_date: date | None,
        priority_bucket: int,
        assignee_id: int | None,
        members_id: Iterable[int],
        project_id: int | None,
        status: TaskStatus | None,
    ) -> dict[str, Any]:
        members = await self._members(members_id, owner.user_id)
        if assignee_id is not None:
            await self._user(assignee_id, "Assignee")
        if project_id is not None:
            await self._check_project_for_task(actor, project_id)

        return {
            "title": title.strip(),
            "description": description,
            "due_date": due_date,
            "priority_bucket": priority_bucket,
            "owner_id": owner.user_id,
            "assignee_id": assignee_id,
            "members_id": members,
            "project_id": project_id,
            "status": resolve_status(TaskStatus.UNASSIGNED, None, assignee_id, status),
        }

    def _creation_result(
        self, actor: UserRecord, task: TaskRecord, created: TaskCreated
    ) -> MutationResult[TaskRecord]:
        activities = [ActivityIntent(task.task_id, actor.user_id, created)]
        notifications = []
        if task.assignee_id is not None:
            activities.append(
                ActivityIntent(
                    task.task_id,
                    actor.user_id,
                    Reassigned(from_assignee=None, to_assignee=task.assignee_id),
                )
            )
            notifications.append(
                self._notification(NotificationKind.TASK_ASSIGNED, [task.assignee_id], actor, task)
            )
        added = [m for m in task.members_id if m != actor.user_id]
        if added:
            notifications.append(self._notification(NotificationKind.MEMBER_ADDED, added, actor, task))
        return MutationResult(resource=task, activities=activities, notifications=notifications)

    # =========================================================================
    # Edits
    # =========================================================================

    async def update_task(
        self, actor_id: int, task_id: int, data: TaskUpdate
    ) -> MutationResult[TaskRecord]:
        """Apply a partial edit; only fields present in ``data`` are considered."""
        changes = data.changes()
        if not changes:
            raise ValidationError("No editable fields provided")

        actor = await self._actor(actor_id)
        task = await self._task(task_id)
        owner = await self.users.get(task.owner_id)

        # (a) access
        if not ac.can_view(actor, task, owner):
            raise AuthorizationError("Forbidden")

        # (b) assignment-gated status
        new_assignee = changes["assignee_id"] if "assignee_id" in changes else task.assignee_id
        if new_assignee is not None and new_assignee != task.assignee_id:
            await self._user(new_assignee, "Assignee")
        new_status = resolve_status(
            task.status, task.assignee_id, new_assignee, changes.get("status")
        )

        # (c) priority is owner-only
        if (
            "priority_bucket" in changes
            and changes["priority_bucket"] is not None
            and not ac.can_edit_fields(actor, task, owner, ["priority_bucket"])
        ):
            raise AuthorizationError("Only the task owner can change the priority")

        values: dict[str, Any] = {}
        for field in ("title", "description", "due_date", "priority_bucket"):
            if field in changes and changes[field] != getattr(task, field):
                if field in ("title", "priority_bucket") and changes[field] is None:
                    continue
                values[field] = changes[field]

        # (d) owner reassignment
        new_owner_id = task.owner_id
        if changes.get("owner_id") is not None and changes["owner_id"] != task.owner_id:
            new_owner = await self._user(changes["owner_id"], "Owner")
            if not ac.can_assign(actor, new_owner):
                raise AuthorizationError("Insufficient permissions to assign this owner")
            new_owner_id = new_owner.user_id
            values["owner_id"] = new_owner_id

        members = list(task.members_id)
        if changes.get("members_id") is not None:
            members = await self._members(changes["members_id"], new_owner_id)
        elif new_owner_id != task.owner_id:
            members = [m for m in members if m != new_owner_id]
        if members != task.members_id:
            values["members_id"] = members

        self._apply_recurrence_changes(task, changes, values)

        if new_assignee != task.assignee_id:
            values["assignee_id"] = new_assignee
        if new_status != task.status:
            values["status"] = new_status

        if not values:
            return MutationResult(resource=task, affected_count=0)

        updated = await self.tasks.update(task.task_id, values)
        logger.info(
            "task_updated",
            task_id=task.task_id,
            actor_id=actor.user_id,
            fields=sorted(values),
        )
        return await self._edit_result(actor, task, updated, values)

    def _apply_recurrence_changes(
        self, task: TaskRecord, changes: dict[str, Any], values: dict[str, Any]
    ) -> None:
        for field in ("is_recurring", "recurrence_type", "recurrence_interval", "recurrence_end_date"):
            if field in changes and changes[field] != getattr(task, field):
                if field == "is_recurring" and changes[field] is None:
                    continue
                value = changes[field]
                values[field] = value.value if hasattr(value, "value") else value

        touched = any(f in values for f in ("is_recurring", "recurrence_type", "recurrence_interval", "due_date"))
        if not touched:
            return

        is_recurring = values.get("is_recurring", task.is_recurring)
        if not is_recurring:
            if "is_recurring" in values:
                values["next_due_date"] = None
            return

        recurrence_type = values.get("recurrence_type", task.recurrence_type)
        due_date = values.get("due_date", task.due_date)
        if recurrence_type is None:
            raise ValidationError("recurrence_type is required for recurring tasks")
        if due_date is None:
            raise ValidationError("due_date is required for recurring tasks")
        values["next_due_date"] = compute_next_due_date(
            due_date,
            recurrence_type,
            values.get("recurrence_interval", task.recurrence_interval),
        )

    async def update_status(self, actor_id: int, task_id: int, status: Any) -> MutationResult[TaskRecord]:
        """Change status only; the same gate as a general edit applies."""
        try:
            requested = normalize_status(status)
        except ValueError:
            raise ValidationError(f"Invalid status: {status}")
        return await self.update_task(actor_id, task_id, TaskUpdate(status=requested))

    async def update_priority(
        self, actor_id: int, task_id: int, priority_bucket: Any
    ) -> MutationResult[TaskRecord]:
        """Change priority; reserved to the task owner even if unchanged."""
        if (
            isinstance(priority_bucket, bool)
            or not isinstance(priority_bucket, int)
            or not 1 <= priority_bucket <= 10
        ):
            raise ValidationError("priority_bucket must be an integer between 1 and 10")

        actor = await self._actor(actor_id)
        task = await self._task(task_id)
        owner = await self.users.get(task.owner_id)
        if not ac.can_view(actor, task, owner):
            raise AuthorizationError("Forbidden")
        if not ac.can_edit_fields(actor, task, owner, ["priority_bucket"]):
            raise AuthorizationError("Only the task owner can change the priority")

        if priority_bucket == task.priority_bucket:
            return MutationResult(resource=task, affected_count=0)

        updated = await self.tasks.update(task.task_id, {"priority_bucket": priority_bucket})
        logger.info(
            "task_priority_changed",
            task_id=task.task_id,
            from_priority=task.priority_bucket,
            to_priority=priority_bucket,
        )
        activity = ActivityIntent(
            task.task_id,
            actor.user_id,
            FieldEdited(field="priority_bucket", from_value=task.priority_bucket, to_value=priority_bucket),
        )
        return MutationResult(resource=updated, activities=[activity])

    async def _edit_result(
        self,
        actor: UserRecord,
        before: TaskRecord,
        after: TaskRecord,
        values: dict[str, Any],
    ) -> MutationResult[TaskRecord]:
        activities = []
        for field in PLAIN_FIELDS:
            if field in values:
                activities.append(
                    ActivityIntent(
                        after.task_id,
                        actor.user_id,
                        FieldEdited(
                            field=field,
                            from_value=_json_value(getattr(before, field)),
                            to_value=_json_value(getattr(after, field)),
                        ),
                    )
                )
        if "status" in values:
            activities.append(
                ActivityIntent(
                    after.task_id,
                    actor.user_id,
                    StatusChanged(from_status=before.status.value, to_status=after.status.value),
                )
            )
        if "assignee_id" in values:
            activities.append(
                ActivityIntent(
                    after.task_id,
                    actor.user_id,
                    Reassigned(from_assignee=before.assignee_id, to_assignee=after.assignee_id),
                )
            )

        notifications = []
        if "assignee_id" in values:
            if before.assignee_id is not None:
                notifications.append(
                    self._notification(
                        NotificationKind.TASK_UNASSIGNED, [before.assignee_id], actor, after
                    )
                )
            if after.assignee_id is not None:
                notifications.append(
                    self._notification(
                        NotificationKind.TASK_ASSIGNED, [after.assignee_id], actor, after
                    )
                )
        if "status" in values:
            recipients = _dedupe(
                uid
                for uid in [after.owner_id, after.assignee_id, *after.members_id]
                if uid is not None and uid != actor.user_id
            )
            if recipients:
                notifications.append(
                    self._notification(
                        NotificationKind.TASK_STATUS_CHANGED,
                        recipients,
                        actor,
                        after,
                        old_status=before.status.value,
                        new_status=after.status.value,
                    )
                )
        if "members_id" in values:
            added = [
                m for m in after.members_id
                if m not in before.member_ids and m != actor.user_id
            ]
            if added:
                notifications.append(
                    self._notification(NotificationKind.MEMBER_ADDED, added, actor, after)
                )

        result = MutationResult(resource=after, activities=activities, notifications=notifications)

        completed_now = (
            values.get("status") == TaskStatus.COMPLETED and before.status != TaskStatus.COMPLETED
        )
        if completed_now and after.is_recurring:
            await self._spawn_recurring(after, actor, result)
        return result

    async def _spawn_recurring(
        self, task: TaskRecord, actor: UserRecord, result: MutationResult[TaskRecord]
    ) -> None:
        # The status change is already written and stays written if this raises
        spawned = await self.recurrence.spawn_next_instance(task, actor.user_id)
        if spawned is None:
            return
        result.recurring_instance = spawned.resource
        result.activities.extend(spawned.activities)

    # =========================================================================
    # Comments
    # =========================================================================

    async def add_comment(
        self, actor_id: int, task_id: int, data: CommentCreate
    ) -> MutationResult[TaskRecord]:
        """Record a comment and notify mentioned users."""
        comment = (data.comment or "").strip()
        if not comment:
            raise ValidationError("comment is required")

        actor = await self._actor(actor_id)
        task = await self._task(task_id)
        owner = await self.users.get(task.owner_id)
        if not ac.can_view(actor, task, owner):
            raise AuthorizationError("Forbidden")

        requested = _dedupe(int(m) for m in data.mentions)
        found = await self.users.get_many(requested) if requested else {}
        mentions = [m for m in requested if m in found]

        preview = comment[: self.settings.comment_preview_length]
        activity = ActivityIntent(
            task.task_id,
            actor.user_id,
            CommentAdded(comment_preview=preview, mentions=mentions),
        )

        notifications = []
        recipients = [m for m in mentions if m != actor.user_id]
        if recipients:
            notifications.append(
                self._notification(
                    NotificationKind.COMMENT_MENTION,
                    recipients,
                    actor,
                    task,
                    comment_preview=preview,
                )
            )

        logger.info(
            "task_comment_added",
            task_id=task.task_id,
            actor_id=actor.user_id,
            mention_count=len(mentions),
        )
        return MutationResult(resource=task, activities=[activity], notifications=notifications)

    # =========================================================================
    # Delete / restore
    # =========================================================================

    async def delete_task(self, actor_id: int, task_id: int) -> MutationResult[TaskRecord]:
        """Soft-delete the task and every non-deleted descendant in one batch."""
        actor = await self._actor(actor_id)
        task = await self._task(task_id, include_deleted=True)
        if not ac.can_delete(actor, task):
            raise AuthorizationError("Only the task owner can delete this task")
        if task.is_deleted:
            raise ConflictError("Task is already deleted")

        to_delete = [task.task_id]
        visited = {task.task_id}
        frontier = [task.task_id]
        while frontier:
            # Deleted children are walked too so their live descendants are reached
            children = await self.tasks.children_of(frontier, include_deleted=True)
            frontier = []
            for child in children:
                if child.task_id in visited:
                    continue
                visited.add(child.task_id)
                frontier.append(child.task_id)
                if not child.is_deleted:
                    to_delete.append(child.task_id)

        deleted_at = datetime.now(timezone.utc)
        affected = await self.tasks.soft_delete_many(to_delete, deleted_at, actor.user_id)
        logger.info(
            "task_deleted",
            task_id=task.task_id,
            actor_id=actor.user_id,
            cascade_count=len(to_delete) - 1,
        )

        activities = [
            ActivityIntent(
                tid,
                actor.user_id,
                TaskDeleted(cascade_root_id=None if tid == task.task_id else task.task_id),
            )
            for tid in to_delete
        ]
        deleted = await self.tasks.get(task.task_id) or task
        return MutationResult(resource=deleted, activities=activities, affected_count=affected)

    async def restore_task(self, actor_id: int, task_id: int) -> MutationResult[TaskRecord]:
        """Restore one task. Descendants deleted with it stay deleted."""
        actor = await self._actor(actor_id)
        task = await self._task(task_id, include_deleted=True)
        if not ac.can_restore(actor, task):
            raise AuthorizationError(
                "Only the task owner or the user who deleted it can restore this task"
            )
        if not task.is_deleted:
            raise ConflictError("Task is not deleted")

        restored = await self.tasks.update(
            task.task_id, {"is_deleted": False, "deleted_at": None, "deleted_by": None}
        )
        logger.info("task_restored", task_id=task.task_id, actor_id=actor.user_id)
        activity = ActivityIntent(task.task_id, actor.user_id, TaskRestored())
        return MutationResult(resource=restored, activities=[activity])

    # =========================================================================
    # Recurrence
    # =========================================================================

    async def stop_recurrence(self, actor_id: int, task_id: int) -> MutationResult[TaskRecord]:
        actor = await self._actor(actor_id)
        task = await self._task(task_id)
        if not ac.is_owner(actor, task):
            raise AuthorizationError("Only the task owner can stop recurrence")
        if not task.is_recurring:
            raise ConflictError("Task is not recurring")

        updated = await self.tasks.update(
            task.task_id, {"is_recurring": False, "next_due_date": None}
        )
        logger.info("task_recurrence_stopped", task_id=task.task_id, actor_id=actor.user_id)
        activity = ActivityIntent(
            task.task_id,
            actor.user_id,
            FieldEdited(field="is_recurring", from_value=True, to_value=False),
        )
        return MutationResult(resource=updated, activities=[activity])

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _check_project_for_task(self, actor: UserRecord, project_id: int) -> None:
        if self.projects is None:
            return
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        project_owner = await self.users.get(project.owner_id)
        if not ac.can_view(actor, project, project_owner):
            raise AuthorizationError(
                "Forbidden: insufficient permissions to add tasks to this project"
            )

    async def _index_in_project(self, task: TaskRecord) -> None:
        if self.projects is None or task.project_id is None:
            return
        try:
            project = await self.projects.get(task.project_id)
            if project is None or task.task_id in project.tasks:
                return
            await self.projects.update(project.project_id, {"tasks": [*project.tasks, task.task_id]})
        except Exception as e:
            logger.warning(
                "project_task_index_update_failed",
                project_id=task.project_id,
                task_id=task.task_id,
                error=str(e),
            )

    def _notification(
        self,
        kind: NotificationKind,
        recipients: list[int],
        actor: UserRecord,
        task: TaskRecord,
        **context: Any,
    ) -> NotificationIntent:
        return NotificationIntent(
            kind=kind,
            recipient_ids=list(recipients),
            sender_id=actor.user_id,
            task_id=task.task_id,
            project_id=task.project_id,
            context={
                "task_title": task.title,
                "due_date": task.due_date.isoformat() if task.due_date else None,
                "actor_name": actor.display_name,
                **context,
            },
        )
