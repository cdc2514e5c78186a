"""Storage contracts consumed by the services.

The services only ever see these protocols; SQLAlchemy implementations live
in ``taskflow.repositories.sql`` and tests use in-memory fakes.
"""

from datetime import date, datetime
from typing import Any, Protocol, Sequence

from taskflow.schemas.activity import ActivityEntry, ActivityIntent
from taskflow.schemas.reminder import ReminderSent, ReminderSettings
from taskflow.schemas.records import (
    NotificationPreferenceRecord,
    NotificationRecord,
    ProjectRecord,
    TaskRecord,
    UserRecord,
)


class UserRepository(Protocol):
    async def get(self, user_id: int) -> UserRecord | None: ...

    async def get_many(self, user_ids: Sequence[int]) -> dict[int, UserRecord]: ...

    async def get_preferences_many(
        self, user_ids: Sequence[int]
    ) -> dict[int, NotificationPreferenceRecord]: ...

    async def get_preferences(self, user_id: int) -> NotificationPreferenceRecord | None: ...

    async def upsert_preferences(
        self, user_id: int, values: dict[str, Any]
    ) -> NotificationPreferenceRecord:
        """Create the row with defaults if missing, then apply values."""
        ...


class TaskRepository(Protocol):
    async def get(self, task_id: int) -> TaskRecord | None: ...

    async def get_many(self, task_ids: Sequence[int]) -> list[TaskRecord]: ...

    async def insert(self, values: dict[str, Any]) -> TaskRecord: ...

    async def update(self, task_id: int, values: dict[str, Any]) -> TaskRecord: ...

    async def soft_delete_many(
        self, task_ids: Sequence[int], deleted_at: datetime, deleted_by: int
    ) -> int:
        """Mark all given tasks deleted in one statement; returns rows changed."""
        ...

    async def children_of(
        self, parent_ids: Sequence[int], include_deleted: bool = False
    ) -> list[TaskRecord]:
        """Direct children of any of the given tasks."""
        ...

    async def list_deleted(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[TaskRecord]: ...

    async def list_by_participants(self, user_ids: Sequence[int]) -> list[TaskRecord]:
        """Non-deleted tasks owned by, assigned to, or shared with any given user."""
        ...

    async def list_recurring(self) -> list[TaskRecord]:
        """Non-deleted recurring originals and their spawned instances."""
        ...

    async def list_by_project(self, project_id: int) -> list[TaskRecord]: ...

    async def list_overdue(self, before: date) -> list[TaskRecord]:
        """Non-deleted, unfinished tasks due strictly before the given day."""
        ...


class ProjectRepository(Protocol):
    async def get(self, project_id: int) -> ProjectRecord | None: ...

    async def insert(self, values: dict[str, Any]) -> ProjectRecord: ...

    async def update(self, project_id: int, values: dict[str, Any]) -> ProjectRecord: ...

    async def list_all(self) -> list[ProjectRecord]: ...


class ActivityRecorder(Protocol):
    async def record(self, entry: ActivityIntent) -> None: ...

    async def record_many(self, entries: Sequence[ActivityIntent]) -> None: ...

    async def list_for_task(
        self, task_id: int, limit: int, offset: int
    ) -> tuple[list[ActivityEntry], int]:
        """Newest first, plus the total count for the task."""
        ...


class NotificationStore(Protocol):
    async def insert(
        self,
        user_id: int,
        kind: str,
        title: str,
        message: str | None = None,
        task_id: int | None = None,
        project_id: int | None = None,
        sender_id: int | None = None,
    ) -> None: ...

    async def list_for_user(
        self, user_id: int, limit: int, offset: int, unread_only: bool = False
    ) -> list[NotificationRecord]:
        """Newest first."""
        ...

    async def mark_read(self, notification_id: int, user_id: int) -> NotificationRecord | None:
        """None when the notification does not exist or belongs to someone else."""
        ...


class ReminderRepository(Protocol):
    async def get(self, task_id: int) -> ReminderSettings | None: ...

    async def upsert(self, task_id: int, values: dict[str, Any]) -> ReminderSettings: ...

    async def list_enabled(self) -> list[ReminderSettings]: ...

    async def has_sent(
        self,
        task_id: int,
        user_id: int,
        due_date: date,
        reminder_number: int,
        days_until_due: int | None = None,
    ) -> bool:
        """Whether a matching log row exists; days_until_due None matches any day."""
        ...

    async def record_sent(self, entry: ReminderSent) -> None: ...


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, text: str, html: str) -> None: ...
