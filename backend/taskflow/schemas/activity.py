"""Activity log payloads.

Metadata is a tagged union keyed by ``type``; each variant carries only the
fields its summary needs. Variants are dumped without the tag when stored,
since the row already has a ``type`` column.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ActivityType(str, Enum):
    """Canonical activity types for task activity logs."""
    STATUS_CHANGED = "status_changed"
    FIELD_EDITED = "field_edited"
    COMMENT_ADDED = "comment_added"
    REASSIGNED = "reassigned"
    TASK_CREATED = "task_created"
    TASK_DELETED = "task_deleted"
    TASK_RESTORED = "task_restored"


# =============================================================================
# Metadata variants
# =============================================================================


class StatusChanged(BaseModel):
    type: Literal["status_changed"] = "status_changed"
    from_status: str | None = None
    to_status: str | None = None


class FieldEdited(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["field_edited"] = "field_edited"
    field: str
    from_value: Any = Field(default=None, alias="from")
    to_value: Any = Field(default=None, alias="to")


class CommentAdded(BaseModel):
    type: Literal["comment_added"] = "comment_added"
    comment_preview: str | None = None
    mentions: list[int] = Field(default_factory=list)


class Reassigned(BaseModel):
    type: Literal["reassigned"] = "reassigned"
    from_assignee: int | None = None
    to_assignee: int | None = None


class TaskCreated(BaseModel):
    type: Literal["task_created"] = "task_created"
    recurring_instance: bool = False
    parent_recurring_task_id: int | None = None
    parent_task_id: int | None = None


class TaskDeleted(BaseModel):
    type: Literal["task_deleted"] = "task_deleted"
    # Set on descendants removed as part of a cascade
    cascade_root_id: int | None = None


class TaskRestored(BaseModel):
    type: Literal["task_restored"] = "task_restored"


ActivityMetadata = Annotated[
    Union[
        StatusChanged,
        FieldEdited,
        CommentAdded,
        Reassigned,
        TaskCreated,
        TaskDeleted,
        TaskRestored,
    ],
    Field(discriminator="type"),
]

_metadata_adapter = TypeAdapter(ActivityMetadata)


def parse_metadata(activity_type: str, data: dict[str, Any] | None) -> ActivityMetadata:
    """Rebuild a typed variant from a stored row's type and metadata."""
    return _metadata_adapter.validate_python({**(data or {}), "type": activity_type})


# =============================================================================
# Intents and read models
# =============================================================================


@dataclass
class ActivityIntent:
    """An activity entry the core wants recorded.

    Attributes:
        task_id: Task the entry belongs to
        author_id: Acting user, if any
        metadata: Typed payload; its tag is the activity type
        summary: Caller-supplied sentence; rendered from metadata when empty
    """
    task_id: int
    author_id: int | None
    metadata: ActivityMetadata
    summary: str | None = None

    @property
    def type(self) -> str:
        return self.metadata.type

    def payload(self) -> dict[str, Any]:
        """Metadata as stored, without the type tag."""
        return self.metadata.model_dump(mode="json", by_alias=True, exclude={"type"})


class ActivityEntry(BaseModel):
    """API-facing activity log entry."""

    id: int
    task_id: int
    author_id: int | None = None
    author_name: str | None = None
    type: str
    summary: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class ActivityPage(BaseModel):
    items: list[ActivityEntry] = Field(default_factory=list)
    limit: int
    offset: int
    total: int
