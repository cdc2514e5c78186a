"""SQLAlchemy models package."""

from taskflow.models.user import User
from taskflow.models.project import Project, Task
from taskflow.models.activity import (
    Notification,
    NotificationPreference,
    TaskActivityLog,
)
from taskflow.models.reminder import ReminderLog, TaskReminder

__all__ = [
    # Users
    "User",
    # Projects & Tasks
    "Project",
    "Task",
    # Activity & Notifications
    "TaskActivityLog",
    "Notification",
    "NotificationPreference",
    # Reminders
    "TaskReminder",
    "ReminderLog",
]
