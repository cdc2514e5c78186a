"""Read-side records handed to the core.

Repositories return these instead of ORM rows so the services never touch
a session. Stored rows may still carry legacy status strings; they are
normalized on the way in.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class TaskStatus(str, Enum):
    """Task lifecycle states."""
    UNASSIGNED = "UNASSIGNED"
    ONGOING = "ONGOING"
    UNDER_REVIEW = "UNDER_REVIEW"
    COMPLETED = "COMPLETED"


LEGACY_STATUS_MAP = {
    "TO_DO": TaskStatus.ONGOING,
    "IN_PROGRESS": TaskStatus.ONGOING,
    "DONE": TaskStatus.COMPLETED,
    "IN_REVIEW": TaskStatus.UNDER_REVIEW,
}


def normalize_status(value: Any) -> TaskStatus:
    """Map stored or submitted status strings onto TaskStatus.

    Raises ValueError for anything that is neither current nor legacy.
    """
    if isinstance(value, TaskStatus):
        return value
    key = str(value).strip().upper()
    if key in LEGACY_STATUS_MAP:
        return LEGACY_STATUS_MAP[key]
    return TaskStatus(key)


class RecurrenceType(str, Enum):
    """Supported recurrence cadences."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


# =============================================================================
# Records
# =============================================================================


class UserRecord(BaseModel):
    """A user as seen by access checks."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    access_level: int = 0
    team_id: int | None = None
    department_id: int | None = None
    email: str | None = None
    full_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or str(self.user_id)


class NotificationPreferenceRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    in_app: bool = True
    email: bool = False


class NotificationRecord(BaseModel):
    """An in-app notification as shown in the recipient's inbox."""

    model_config = ConfigDict(from_attributes=True)

    notification_id: int
    user_id: int
    kind: str
    title: str
    message: str | None = None
    task_id: int | None = None
    project_id: int | None = None
    sender_id: int | None = None
    is_read: bool = False
    created_at: datetime | None = None


class TaskRecord(BaseModel):
    """Snapshot of a task row."""

    model_config = ConfigDict(from_attributes=True)

    task_id: int
    title: str
    description: str | None = None
    status: TaskStatus = TaskStatus.UNASSIGNED
    priority_bucket: int = 5
    due_date: date | None = None
    owner_id: int
    assignee_id: int | None = None
    members_id: list[int] = Field(default_factory=list)
    parent_task_id: int | None = None
    project_id: int | None = None

    is_deleted: bool = False
    deleted_at: datetime | None = None
    deleted_by: int | None = None

    is_recurring: bool = False
    recurrence_type: str | None = None
    recurrence_interval: int | None = None
    recurrence_end_date: date | None = None
    parent_recurring_task_id: int | None = None
    next_due_date: date | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_legacy_status(cls, v: Any) -> TaskStatus:
        if v is None:
            return TaskStatus.UNASSIGNED
        return normalize_status(v)

    @field_validator("members_id", mode="before")
    @classmethod
    def default_members(cls, v: Any) -> list[int]:
        return list(v or [])

    @property
    def member_ids(self) -> set[int]:
        return set(self.members_id)


class ProjectRecord(BaseModel):
    """Snapshot of a project row."""

    model_config = ConfigDict(from_attributes=True)

    project_id: int
    name: str
    description: str | None = None
    end_date: date | None = None
    owner_id: int
    members: list[int] = Field(default_factory=list)
    tasks: list[int] = Field(default_factory=list)

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("members", "tasks", mode="before")
    @classmethod
    def default_lists(cls, v: Any) -> list[int]:
        return list(v or [])

    @property
    def member_ids(self) -> set[int]:
        # The owner is always implicitly a member
        return set(self.members) | {self.owner_id}
