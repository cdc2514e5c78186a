"""Services package."""

from taskflow.services.activity_log import ActivityLogService, format_activity_summary
from taskflow.services.notification import NotificationService
from taskflow.services.project import ProjectService
from taskflow.services.recurring_task import RecurringTaskService, compute_next_due_date
from taskflow.services.side_effects import SideEffectDispatcher
from taskflow.services.task_lifecycle import TaskLifecycleService
from taskflow.services.task_queries import TaskQueryService

__all__ = [
    "ActivityLogService",
    "format_activity_summary",
    "NotificationService",
    "ProjectService",
    "RecurringTaskService",
    "compute_next_due_date",
    "SideEffectDispatcher",
    "TaskLifecycleService",
    "TaskQueryService",
]
