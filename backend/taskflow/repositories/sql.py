"""SQLAlchemy implementations of the storage contracts.

Request-scoped repositories share the request session and commit each write
on its own; there is no transaction spanning several rows. The activity and
notification sinks open a fresh session per write so they can run after the
response has been sent and fail independently of the main mutation.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime
from enum import Enum
from typing import Any, Sequence

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskflow.exceptions import NotFoundError, StoreError
from taskflow.models import (
    Notification,
    NotificationPreference,
    Project,
    ReminderLog,
    Task,
    TaskActivityLog,
    TaskReminder,
    User,
)
from taskflow.schemas.activity import ActivityEntry, ActivityIntent
from taskflow.schemas.reminder import ReminderSent, ReminderSettings
from taskflow.schemas.records import (
    NotificationPreferenceRecord,
    NotificationRecord,
    ProjectRecord,
    TaskRecord,
    TaskStatus,
    UserRecord,
)

logger = structlog.get_logger()


@asynccontextmanager
async def _store_errors(session: AsyncSession, operation: str) -> AsyncIterator[None]:
    """Roll back and re-raise database failures as StoreError."""
    try:
        yield
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("store_operation_failed", operation=operation, error=str(e))
        raise StoreError(str(e), operation=operation) from e


def _plain(values: dict[str, Any]) -> dict[str, Any]:
    # Enum members are stored by value
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in values.items()}


# =============================================================================
# Users
# =============================================================================


class SqlUserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> UserRecord | None:
        async with _store_errors(self.db, "get_user"):
            user = await self.db.get(User, user_id)
        return UserRecord.model_validate(user) if user else None

    async def get_many(self, user_ids: Sequence[int]) -> dict[int, UserRecord]:
        ids = {int(i) for i in user_ids if i is not None}
        if not ids:
            return {}
        async with _store_errors(self.db, "get_users"):
            result = await self.db.execute(select(User).where(User.user_id.in_(ids)))
            rows = result.scalars().all()
        return {u.user_id: UserRecord.model_validate(u) for u in rows}

    async def get_preferences_many(
        self, user_ids: Sequence[int]
    ) -> dict[int, NotificationPreferenceRecord]:
        ids = {int(i) for i in user_ids if i is not None}
        if not ids:
            return {}
        async with _store_errors(self.db, "get_notification_prefs"):
            result = await self.db.execute(
                select(NotificationPreference).where(NotificationPreference.user_id.in_(ids))
            )
            rows = result.scalars().all()
        return {p.user_id: NotificationPreferenceRecord.model_validate(p) for p in rows}

    async def get_preferences(self, user_id: int) -> NotificationPreferenceRecord | None:
        async with _store_errors(self.db, "get_notification_prefs"):
            prefs = await self.db.get(NotificationPreference, user_id)
        return NotificationPreferenceRecord.model_validate(prefs) if prefs else None

    async def upsert_preferences(
        self, user_id: int, values: dict[str, Any]
    ) -> NotificationPreferenceRecord:
        async with _store_errors(self.db, "upsert_notification_prefs"):
            prefs = await self.db.get(NotificationPreference, user_id)
            if prefs is None:
                prefs = NotificationPreference(user_id=user_id, in_app=True, email=False)
                self.db.add(prefs)
            for key, value in values.items():
                setattr(prefs, key, value)
            await self.db.commit()
            await self.db.refresh(prefs)
        return NotificationPreferenceRecord.model_validate(prefs)


class SqlUserDirectory:
    """User lookups that open their own session per call.

    Used by side effects, which may run concurrently after the request
    session is gone.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, user_id: int) -> UserRecord | None:
        async with self.session_factory() as session:
            return await SqlUserRepository(session).get(user_id)

    async def get_many(self, user_ids: Sequence[int]) -> dict[int, UserRecord]:
        async with self.session_factory() as session:
            return await SqlUserRepository(session).get_many(user_ids)

    async def get_preferences_many(
        self, user_ids: Sequence[int]
    ) -> dict[int, NotificationPreferenceRecord]:
        async with self.session_factory() as session:
            return await SqlUserRepository(session).get_preferences_many(user_ids)

    async def get_preferences(self, user_id: int) -> NotificationPreferenceRecord | None:
        async with self.session_factory() as session:
            return await SqlUserRepository(session).get_preferences(user_id)

    async def upsert_preferences(
        self, user_id: int, values: dict[str, Any]
    ) -> NotificationPreferenceRecord:
        async with self.session_factory() as session:
            return await SqlUserRepository(session).upsert_preferences(user_id, values)


# =============================================================================
# Tasks
# =============================================================================


class SqlTaskRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, task_id: int) -> Task:
        task = await self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    async def get(self, task_id: int) -> TaskRecord | None:
        async with _store_errors(self.db, "get_task"):
            task = await self.db.get(Task, task_id)
        return TaskRecord.model_validate(task) if task else None

    async def get_many(self, task_ids: Sequence[int]) -> list[TaskRecord]:
        if not task_ids:
            return []
        async with _store_errors(self.db, "get_tasks"):
            result = await self.db.execute(
                select(Task).where(Task.task_id.in_(list(task_ids))).order_by(Task.task_id)
            )
            rows = result.scalars().all()
        return [TaskRecord.model_validate(t) for t in rows]

    async def insert(self, values: dict[str, Any]) -> TaskRecord:
        async with _store_errors(self.db, "insert_task"):
            task = Task(**_plain(values))
            self.db.add(task)
            await self.db.commit()
            await self.db.refresh(task)
        return TaskRecord.model_validate(task)

    async def update(self, task_id: int, values: dict[str, Any]) -> TaskRecord:
        async with _store_errors(self.db, "update_task"):
            task = await self._load(task_id)
            for key, value in _plain(values).items():
                setattr(task, key, value)
            await self.db.commit()
            await self.db.refresh(task)
        return TaskRecord.model_validate(task)

    async def soft_delete_many(
        self, task_ids: Sequence[int], deleted_at: datetime, deleted_by: int
    ) -> int:
        if not task_ids:
            return 0
        async with _store_errors(self.db, "soft_delete_tasks"):
            result = await self.db.execute(
                update(Task)
                .where(Task.task_id.in_(list(task_ids)))
                .values(is_deleted=True, deleted_at=deleted_at, deleted_by=deleted_by)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        # Identity map may hold stale rows after a bulk update
        self.db.expire_all()
        return result.rowcount or 0

    async def children_of(
        self, parent_ids: Sequence[int], include_deleted: bool = False
    ) -> list[TaskRecord]:
        if not parent_ids:
            return []
        query = select(Task).where(Task.parent_task_id.in_(list(parent_ids)))
        if not include_deleted:
            query = query.where(Task.is_deleted == False)  # noqa: E712
        async with _store_errors(self.db, "children_of"):
            result = await self.db.execute(query.order_by(Task.task_id))
            rows = result.scalars().all()
        return [TaskRecord.model_validate(t) for t in rows]

    async def list_deleted(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[TaskRecord]:
        query = select(Task).where(Task.is_deleted == True)  # noqa: E712
        if start is not None:
            query = query.where(Task.deleted_at >= start)
        if end is not None:
            query = query.where(Task.deleted_at <= end)
        async with _store_errors(self.db, "list_deleted"):
            result = await self.db.execute(query.order_by(Task.deleted_at.desc()))
            rows = result.scalars().all()
        return [TaskRecord.model_validate(t) for t in rows]

    async def list_by_participants(self, user_ids: Sequence[int]) -> list[TaskRecord]:
        ids = {int(i) for i in user_ids}
        if not ids:
            return []
        # members_id is a JSON array; membership is checked after loading so the
        # same query runs on PostgreSQL and SQLite
        async with _store_errors(self.db, "list_by_participants"):
            result = await self.db.execute(
                select(Task)
                .where(Task.is_deleted == False)  # noqa: E712
                .order_by(Task.due_date, Task.task_id)
            )
            rows = result.scalars().all()
        return [
            TaskRecord.model_validate(t)
            for t in rows
            if t.owner_id in ids
            or t.assignee_id in ids
            or ids.intersection(t.members_id or [])
        ]

    async def list_recurring(self) -> list[TaskRecord]:
        async with _store_errors(self.db, "list_recurring"):
            result = await self.db.execute(
                select(Task)
                .where(
                    Task.is_deleted == False,  # noqa: E712
                    or_(Task.is_recurring == True, Task.parent_recurring_task_id.is_not(None)),  # noqa: E712
                )
                .order_by(Task.due_date, Task.task_id)
            )
            rows = result.scalars().all()
        return [TaskRecord.model_validate(t) for t in rows]

    async def list_by_project(self, project_id: int) -> list[TaskRecord]:
        async with _store_errors(self.db, "list_by_project"):
            result = await self.db.execute(
                select(Task)
                .where(Task.project_id == project_id, Task.is_deleted == False)  # noqa: E712
                .order_by(Task.task_id)
            )
            rows = result.scalars().all()
        return [TaskRecord.model_validate(t) for t in rows]

    async def list_overdue(self, before: date) -> list[TaskRecord]:
        async with _store_errors(self.db, "list_overdue"):
            result = await self.db.execute(
                select(Task)
                .where(
                    Task.is_deleted == False,  # noqa: E712
                    Task.due_date.is_not(None),
                    Task.due_date < before,
                )
                .order_by(Task.due_date, Task.task_id)
            )
            rows = result.scalars().all()
        # Legacy spellings of COMPLETED only normalize once loaded
        records = [TaskRecord.model_validate(t) for t in rows]
        return [t for t in records if t.status != TaskStatus.COMPLETED]


# =============================================================================
# Projects
# =============================================================================


class SqlProjectRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, project_id: int) -> ProjectRecord | None:
        async with _store_errors(self.db, "get_project"):
            project = await self.db.get(Project, project_id)
        return ProjectRecord.model_validate(project) if project else None

    async def insert(self, values: dict[str, Any]) -> ProjectRecord:
        async with _store_errors(self.db, "insert_project"):
            project = Project(**_plain(values))
            self.db.add(project)
            await self.db.commit()
            await self.db.refresh(project)
        return ProjectRecord.model_validate(project)

    async def update(self, project_id: int, values: dict[str, Any]) -> ProjectRecord:
        async with _store_errors(self.db, "update_project"):
            project = await self.db.get(Project, project_id)
            if project is None:
                raise NotFoundError("Project not found")
            for key, value in _plain(values).items():
                # JSON columns need a fresh list to register the change
                setattr(project, key, list(value) if isinstance(value, (list, set)) else value)
            await self.db.commit()
            await self.db.refresh(project)
        return ProjectRecord.model_validate(project)

    async def list_all(self) -> list[ProjectRecord]:
        async with _store_errors(self.db, "list_projects"):
            result = await self.db.execute(select(Project).order_by(Project.project_id))
            rows = result.scalars().all()
        return [ProjectRecord.model_validate(p) for p in rows]


# =============================================================================
# Side-effect sinks
# =============================================================================


class SqlActivityRecorder:
    """Writes activity rows, one short-lived session per write."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(self, entry: ActivityIntent) -> None:
        async with self.session_factory() as session:
            async with _store_errors(session, "record_activity"):
                session.add(
                    TaskActivityLog(
                        task_id=entry.task_id,
                        author_id=entry.author_id,
                        type=entry.type,
                        summary=entry.summary or "",
                        extra_data=entry.payload(),
                    )
                )
                await session.commit()

    async def record_many(self, entries: Sequence[ActivityIntent]) -> None:
        if not entries:
            return
        async with self.session_factory() as session:
            async with _store_errors(session, "record_activities"):
                session.add_all(
                    [
                        TaskActivityLog(
                            task_id=e.task_id,
                            author_id=e.author_id,
                            type=e.type,
                            summary=e.summary or "",
                            extra_data=e.payload(),
                        )
                        for e in entries
                    ]
                )
                await session.commit()

    async def list_for_task(
        self, task_id: int, limit: int, offset: int
    ) -> tuple[list[ActivityEntry], int]:
        async with self.session_factory() as session:
            async with _store_errors(session, "list_activity"):
                total = await session.scalar(
                    select(func.count())
                    .select_from(TaskActivityLog)
                    .where(TaskActivityLog.task_id == task_id)
                )
                result = await session.execute(
                    select(TaskActivityLog)
                    .where(TaskActivityLog.task_id == task_id)
                    .order_by(TaskActivityLog.created_at.desc(), TaskActivityLog.log_id.desc())
                    .limit(limit)
                    .offset(offset)
                )
                rows = result.scalars().all()
        entries = [
            ActivityEntry(
                id=row.log_id,
                task_id=row.task_id,
                author_id=row.author_id,
                type=row.type,
                summary=row.summary or "",
                metadata=row.extra_data or {},
                created_at=row.created_at,
            )
            for row in rows
        ]
        return entries, total or 0


class SqlNotificationStore:
    """Writes in-app notification rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert(
        self,
        user_id: int,
        kind: str,
        title: str,
        message: str | None = None,
        task_id: int | None = None,
        project_id: int | None = None,
        sender_id: int | None = None,
    ) -> None:
        async with self.session_factory() as session:
            async with _store_errors(session, "insert_notification"):
                session.add(
                    Notification(
                        user_id=user_id,
                        kind=kind,
                        title=title[:500],
                        message=message,
                        task_id=task_id,
                        project_id=project_id,
                        sender_id=sender_id,
                    )
                )
                await session.commit()

    async def list_for_user(
        self, user_id: int, limit: int, offset: int, unread_only: bool = False
    ) -> list[NotificationRecord]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712
        async with self.session_factory() as session:
            async with _store_errors(session, "list_notifications"):
                result = await session.execute(
                    query.order_by(Notification.created_at.desc(), Notification.notification_id.desc())
                    .limit(limit)
                    .offset(offset)
                )
                rows = result.scalars().all()
        return [NotificationRecord.model_validate(n) for n in rows]

    async def mark_read(self, notification_id: int, user_id: int) -> NotificationRecord | None:
        async with self.session_factory() as session:
            async with _store_errors(session, "mark_notification_read"):
                notification = await session.get(Notification, notification_id)
                if notification is None or notification.user_id != user_id:
                    return None
                notification.is_read = True
                await session.commit()
                await session.refresh(notification)
        return NotificationRecord.model_validate(notification)


# =============================================================================
# Reminders
# =============================================================================


class SqlReminderRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, task_id: int) -> ReminderSettings | None:
        async with _store_errors(self.db, "get_reminder"):
            reminder = await self.db.get(TaskReminder, task_id)
        return ReminderSettings.model_validate(reminder) if reminder else None

    async def upsert(self, task_id: int, values: dict[str, Any]) -> ReminderSettings:
        async with _store_errors(self.db, "upsert_reminder"):
            reminder = await self.db.get(TaskReminder, task_id)
            if reminder is None:
                reminder = TaskReminder(task_id=task_id, enabled=False, days_before=3, frequency_per_day=1)
                self.db.add(reminder)
            for key, value in values.items():
                setattr(reminder, key, value)
            await self.db.commit()
            await self.db.refresh(reminder)
        return ReminderSettings.model_validate(reminder)

    async def list_enabled(self) -> list[ReminderSettings]:
        async with _store_errors(self.db, "list_enabled_reminders"):
            result = await self.db.execute(
                select(TaskReminder)
                .where(TaskReminder.enabled == True)  # noqa: E712
                .order_by(TaskReminder.task_id)
            )
            rows = result.scalars().all()
        return [ReminderSettings.model_validate(r) for r in rows]

    async def has_sent(
        self,
        task_id: int,
        user_id: int,
        due_date: date,
        reminder_number: int,
        days_until_due: int | None = None,
    ) -> bool:
        query = select(ReminderLog.log_id).where(
            ReminderLog.task_id == task_id,
            ReminderLog.user_id == user_id,
            ReminderLog.due_date == due_date,
            ReminderLog.reminder_number == reminder_number,
        )
        if days_until_due is not None:
            query = query.where(ReminderLog.days_until_due == days_until_due)
        async with _store_errors(self.db, "check_reminder_log"):
            found = await self.db.scalar(query.limit(1))
        return found is not None

    async def record_sent(self, entry: ReminderSent) -> None:
        async with _store_errors(self.db, "record_reminder"):
            self.db.add(ReminderLog(**entry.model_dump()))
            await self.db.commit()
