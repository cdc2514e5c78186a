"""Request models for project operations."""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

from taskflow.schemas.records import ProjectRecord, TaskRecord


class ProjectCreate(BaseModel):
    """Create a new project."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    end_date: date | None = None
    owner_id: int | None = None  # Defaults to the acting user

    @field_validator("end_date", mode="before")
    @classmethod
    def blank_end_date(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ProjectUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    end_date: date | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ProjectMemberAdd(BaseModel):
    user_id: int


class ProjectTaskLink(BaseModel):
    task_id: int


class ProjectDetail(ProjectRecord):
    """A project with its live tasks."""

    related_tasks: list[TaskRecord] = Field(default_factory=list)
