"""Storage contracts and their SQLAlchemy implementations."""

from taskflow.repositories.base import (
    ActivityRecorder,
    EmailSender,
    NotificationStore,
    ProjectRepository,
    TaskRepository,
    UserRepository,
)
from taskflow.repositories.sql import (
    SqlActivityRecorder,
    SqlNotificationStore,
    SqlProjectRepository,
    SqlTaskRepository,
    SqlUserDirectory,
    SqlUserRepository,
)

__all__ = [
    "UserRepository",
    "TaskRepository",
    "ProjectRepository",
    "ActivityRecorder",
    "NotificationStore",
    "EmailSender",
    "SqlUserRepository",
    "SqlUserDirectory",
    "SqlTaskRepository",
    "SqlProjectRepository",
    "SqlActivityRecorder",
    "SqlNotificationStore",
]
