"""Notification intents and preference requests."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel


class NotificationKind(str, Enum):
    """Trigger points that produce notifications."""
    TASK_ASSIGNED = "task_assigned"
    TASK_UNASSIGNED = "task_unassigned"
    TASK_STATUS_CHANGED = "task_status_changed"
    COMMENT_MENTION = "comment_mention"
    MEMBER_ADDED = "member_added"
    TASK_REMINDER = "task_reminder"
    TASK_OVERDUE = "task_overdue"


@dataclass
class NotificationIntent:
    """A notification the core wants delivered.

    Attributes:
        kind: Trigger point
        recipient_ids: Users to notify; each is gated by their own preferences
        sender_id: Acting user
        task_id: Related task, for navigation
        project_id: Related project, for navigation
        context: Template values (task title, due date, statuses, preview...)
    """
    kind: NotificationKind
    recipient_ids: list[int]
    sender_id: int | None = None
    task_id: int | None = None
    project_id: int | None = None
    context: dict[str, Any] = field(default_factory=dict)


class PreferenceUpdate(BaseModel):
    """Partial update of a user's delivery opt-ins."""

    in_app: bool | None = None
    email: bool | None = None
