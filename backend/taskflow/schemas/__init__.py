"""Pydantic schemas, records and intents."""

from taskflow.schemas.activity import (
    ActivityEntry,
    ActivityIntent,
    ActivityMetadata,
    ActivityPage,
    ActivityType,
    CommentAdded,
    FieldEdited,
    Reassigned,
    StatusChanged,
    TaskCreated,
    TaskDeleted,
    TaskRestored,
)
from taskflow.schemas.notification import NotificationIntent, NotificationKind
from taskflow.schemas.project import (
    ProjectCreate,
    ProjectDetail,
    ProjectMemberAdd,
    ProjectTaskLink,
    ProjectUpdate,
)
from taskflow.schemas.records import (
    NotificationPreferenceRecord,
    ProjectRecord,
    RecurrenceType,
    TaskRecord,
    TaskStatus,
    UserRecord,
    normalize_status,
)
from taskflow.schemas.results import MutationResult
from taskflow.schemas.task import (
    CommentCreate,
    PriorityUpdate,
    RecurringTaskGroup,
    StatusUpdate,
    SubtaskCreate,
    TaskCreate,
    TaskUpdate,
    TaskWithRoles,
)

__all__ = [
    # Records
    "UserRecord",
    "TaskRecord",
    "ProjectRecord",
    "NotificationPreferenceRecord",
    "TaskStatus",
    "RecurrenceType",
    "normalize_status",
    # Requests
    "TaskCreate",
    "SubtaskCreate",
    "TaskUpdate",
    "StatusUpdate",
    "PriorityUpdate",
    "CommentCreate",
    "TaskWithRoles",
    "RecurringTaskGroup",
    "ProjectCreate",
    "ProjectDetail",
    "ProjectUpdate",
    "ProjectMemberAdd",
    "ProjectTaskLink",
    # Activity
    "ActivityType",
    "ActivityMetadata",
    "ActivityIntent",
    "ActivityEntry",
    "ActivityPage",
    "StatusChanged",
    "FieldEdited",
    "CommentAdded",
    "Reassigned",
    "TaskCreated",
    "TaskDeleted",
    "TaskRestored",
    # Notifications
    "NotificationKind",
    "NotificationIntent",
    # Results
    "MutationResult",
]
