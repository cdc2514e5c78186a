"""Read-side task operations: detail, tree walks, feeds and scoped listings."""

from datetime import datetime

import structlog

from taskflow.config import Settings, get_settings
from taskflow.exceptions import AuthorizationError, NotFoundError
from taskflow.repositories.base import (
    ActivityRecorder,
    ProjectRepository,
    TaskRepository,
    UserRepository,
)
from taskflow.schemas.activity import ActivityPage
from taskflow.schemas.records import TaskRecord, UserRecord
from taskflow.schemas.task import RecurringTaskGroup, TaskWithRoles
from taskflow.services import access_control as ac
from taskflow.services.activity_log import enrich_entries, referenced_user_ids

logger = structlog.get_logger()


class TaskQueryService:
    """Queries over tasks, gated by the same access rules as mutations."""

    def __init__(
        self,
        users: UserRepository,
        tasks: TaskRepository,
        activity: ActivityRecorder | None = None,
        projects: ProjectRepository | None = None,
        settings: Settings | None = None,
    ):
        self.users = users
        self.tasks = tasks
        self.activity = activity
        self.projects = projects
        self.settings = settings or get_settings()

    async def _actor(self, actor_id: int) -> UserRecord:
        actor = await self.users.get(actor_id)
        if actor is None:
            raise NotFoundError("Acting user not found")
        return actor

    async def _viewable_task(
        self, actor: UserRecord, task_id: int, include_deleted: bool = False
    ) -> TaskRecord:
        task = await self.tasks.get(task_id)
        if task is None or (task.is_deleted and not include_deleted):
            raise NotFoundError("Task not found")
        owner = await self.users.get(task.owner_id)
        if not ac.can_view(actor, task, owner):
            raise AuthorizationError("Forbidden")
        return task

    # =========================================================================
    # Single task
    # =========================================================================

    async def get_task(self, actor_id: int, task_id: int) -> TaskRecord:
        actor = await self._actor(actor_id)
        return await self._viewable_task(actor, task_id)

    async def get_ancestors(self, actor_id: int, task_id: int) -> list[TaskRecord]:
        """Ancestors ordered from the root down to the direct parent.

        The walk goes through every parent, but only live ancestors the actor
        may view are returned.
        """
        actor = await self._actor(actor_id)
        task = await self._viewable_task(actor, task_id)

        chain: list[TaskRecord] = []
        visited = {task.task_id}
        parent_id = task.parent_task_id
        while parent_id is not None and parent_id not in visited:
            visited.add(parent_id)
            parent = await self.tasks.get(parent_id)
            if parent is None:
                break
            chain.append(parent)
            parent_id = parent.parent_task_id
        chain.reverse()

        owners = await self.users.get_many(sorted({t.owner_id for t in chain}))
        return [
            t for t in chain
            if not t.is_deleted and ac.can_view(actor, t, owners.get(t.owner_id))
        ]

    async def get_descendants(self, actor_id: int, task_id: int) -> list[TaskRecord]:
        """Non-deleted descendants in breadth-first order."""
        actor = await self._actor(actor_id)
        task = await self._viewable_task(actor, task_id)

        result: list[TaskRecord] = []
        visited = {task.task_id}
        frontier = [task.task_id]
        while frontier:
            children = await self.tasks.children_of(frontier)
            frontier = []
            for child in children:
                if child.task_id in visited:
                    continue
                visited.add(child.task_id)
                frontier.append(child.task_id)
                result.append(child)
        return result

    async def get_activity(
        self,
        actor_id: int,
        task_id: int,
        limit: int | None = None,
        offset: int = 0,
    ) -> ActivityPage:
        """Newest-first activity feed with display names filled in."""
        actor = await self._actor(actor_id)
        task = await self._viewable_task(actor, task_id, include_deleted=True)

        if limit is None:
            limit = self.settings.activity_page_size_default
        limit = max(1, min(int(limit), self.settings.activity_page_size_max))
        offset = max(0, int(offset))

        if self.activity is None:
            return ActivityPage(items=[], limit=limit, offset=offset, total=0)

        entries, total = await self.activity.list_for_task(task.task_id, limit, offset)
        user_ids = referenced_user_ids(entries)
        users = await self.users.get_many(sorted(user_ids)) if user_ids else {}
        names = {uid: u.display_name for uid, u in users.items()}
        return ActivityPage(
            items=enrich_entries(entries, names),
            limit=limit,
            offset=offset,
            total=total,
        )

    # =========================================================================
    # Listings
    # =========================================================================

    async def list_deleted(
        self,
        actor_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TaskRecord]:
        """Deleted tasks whose owners fall inside the actor's listing scope."""
        actor = await self._actor(actor_id)
        deleted = await self.tasks.list_deleted(start, end)
        owners = await self.users.get_many(sorted({t.owner_id for t in deleted}))
        return ac.filter_listable(actor, deleted, owners)

    async def list_recurring(self, actor_id: int) -> list[RecurringTaskGroup]:
        """Recurring originals the actor takes part in, each with its instances."""
        actor = await self._actor(actor_id)
        uid = actor.user_id
        rows = await self.tasks.list_recurring()
        by_id = {t.task_id: t for t in rows}

        def participates(t: TaskRecord) -> bool:
            return t.owner_id == uid or t.assignee_id == uid or uid in t.member_ids

        groups: dict[int, RecurringTaskGroup] = {}
        for t in rows:
            if not participates(t):
                continue
            origin_id = t.parent_recurring_task_id or t.task_id
            origin = by_id.get(origin_id)
            if origin is None:
                continue
            group = groups.get(origin_id)
            if group is None:
                group = groups[origin_id] = RecurringTaskGroup(original_task=origin)
            if t.task_id != origin_id:
                group.instances.append(t)

        for group in groups.values():
            group.instances.sort(key=lambda t: (t.due_date is None, t.due_date, t.task_id))
        return [groups[k] for k in sorted(groups)]

    async def list_tasks(self, actor_id: int, user_ids: list[int] | None = None) -> list[TaskRecord]:
        """Tasks owned by or shared with the requested users the actor may list."""
        actor = await self._actor(actor_id)
        requested = user_ids or [actor.user_id]
        users = await self.users.get_many(requested)
        accessible = {uid for uid, u in users.items() if ac.can_list_owner(actor, u)}
        if not accessible:
            return []

        tasks = await self.tasks.list_by_participants(sorted(accessible))
        return [
            t for t in tasks
            if t.owner_id in accessible or accessible.intersection(t.members_id)
        ]

    async def _target_user(self, user_id: int) -> UserRecord:
        target = await self.users.get(user_id)
        if target is None:
            raise NotFoundError("User not found")
        return target

    async def list_user_tasks(self, actor_id: int, user_id: int) -> list[TaskRecord]:
        """Live tasks the user owns, is assigned to, or is a member of.

        Only the user themselves and anyone outranking them may look.
        """
        actor = await self._actor(actor_id)
        target = await self._target_user(user_id)
        if actor.user_id != target.user_id and not ac.outranks(actor, target):
            raise AuthorizationError("Forbidden: insufficient permissions to view this user's tasks")
        return await self.tasks.list_by_participants([target.user_id])

    async def list_user_deadlines(
        self, actor_id: int, user_id: int, project_id: int | None = None
    ) -> list[TaskWithRoles]:
        """The user's live tasks annotated with their role on each.

        Same rule as list_user_tasks, except that a peer may also look when
        both users belong to ``project_id``.
        """
        actor = await self._actor(actor_id)
        target = await self._target_user(user_id)
        if actor.user_id != target.user_id and not ac.outranks(actor, target):
            if not await self._share_project(actor, target, project_id):
                raise AuthorizationError(
                    "Forbidden: insufficient permissions to view this user's deadlines"
                )

        annotated = []
        for t in await self.tasks.list_by_participants([user_id]):
            roles = []
            if t.owner_id == user_id:
                roles.append("owner")
            if t.assignee_id == user_id:
                roles.append("assignee")
            if user_id in t.member_ids:
                roles.append("member")
            annotated.append(TaskWithRoles(**t.model_dump(), roles=roles))
        return annotated

    async def _share_project(
        self, actor: UserRecord, target: UserRecord, project_id: int | None
    ) -> bool:
        if project_id is None or self.projects is None:
            return False
        project = await self.projects.get(project_id)
        if project is None:
            return False
        return ac.is_member(actor, project) and ac.is_member(target, project)
