"""Request models for task operations."""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

from taskflow.schemas.records import RecurrenceType, TaskRecord, TaskStatus, normalize_status


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class TaskCreate(BaseModel):
    """Create a new top-level task."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    due_date: date | None = None
    priority_bucket: int = Field(default=5, ge=1, le=10)
    owner_id: int | None = None  # Defaults to the acting user
    assignee_id: int | None = None
    members_id: list[int] = Field(default_factory=list)
    project_id: int | None = None
    status: TaskStatus | None = None

    # Recurrence
    is_recurring: bool = False
    recurrence_type: RecurrenceType | None = None
    recurrence_interval: int = Field(default=1, ge=1)
    recurrence_end_date: date | None = None

    @field_validator("due_date", "recurrence_end_date", mode="before")
    @classmethod
    def blank_dates(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> TaskStatus | None:
        if v is None:
            return None
        return normalize_status(v)


class SubtaskCreate(BaseModel):
    """Create a task under an existing parent.

    priority_bucket and project_id fall back to the parent's values.
    """

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    due_date: date | None = None
    priority_bucket: int | None = Field(default=None, ge=1, le=10)
    owner_id: int | None = None
    assignee_id: int | None = None
    members_id: list[int] = Field(default_factory=list)
    project_id: int | None = None
    status: TaskStatus | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def blank_due_date(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> TaskStatus | None:
        if v is None:
            return None
        return normalize_status(v)


class TaskUpdate(BaseModel):
    """Partial update. Only fields present in the payload are applied.

    Sending ``assignee_id: null`` explicitly unassigns the task.
    """

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    due_date: date | None = None
    status: TaskStatus | None = None
    priority_bucket: int | None = Field(None, ge=1, le=10)
    owner_id: int | None = None
    assignee_id: int | None = None
    members_id: list[int] | None = None

    is_recurring: bool | None = None
    recurrence_type: RecurrenceType | None = None
    recurrence_interval: int | None = Field(None, ge=1)
    recurrence_end_date: date | None = None

    @field_validator("due_date", "recurrence_end_date", mode="before")
    @classmethod
    def blank_dates(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> TaskStatus | None:
        if v is None:
            return None
        return normalize_status(v)

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


class StatusUpdate(BaseModel):
    status: TaskStatus

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> TaskStatus:
        return normalize_status(v)


class PriorityUpdate(BaseModel):
    priority_bucket: Any = None


class CommentCreate(BaseModel):
    """A comment, optionally mentioning users by id."""

    comment: str = ""
    mentions: list[int] = Field(default_factory=list)


# =============================================================================
# Response models
# =============================================================================


class TaskWithRoles(TaskRecord):
    """A task annotated with how a given user takes part in it."""

    roles: list[str] = Field(default_factory=list)


class RecurringTaskGroup(BaseModel):
    original_task: TaskRecord
    instances: list[TaskRecord] = Field(default_factory=list)
