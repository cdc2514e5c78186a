"""FastAPI dependencies wiring repositories into services."""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Query, Request

from taskflow.config import get_settings
from taskflow.db.session import DBSession, async_session_factory
from taskflow.repositories.base import (
    ActivityRecorder,
    EmailSender,
    NotificationStore,
    ProjectRepository,
    ReminderRepository,
    TaskRepository,
    UserRepository,
)
from taskflow.repositories.sql import (
    SqlActivityRecorder,
    SqlNotificationStore,
    SqlProjectRepository,
    SqlReminderRepository,
    SqlTaskRepository,
    SqlUserDirectory,
    SqlUserRepository,
)
from taskflow.services.activity_log import ActivityLogService
from taskflow.services.notification import NotificationService
from taskflow.services.project import ProjectService
from taskflow.services.recurring_task import RecurringTaskService
from taskflow.services.reminders import ReminderService
from taskflow.services.side_effects import SideEffectDispatcher
from taskflow.services.task_lifecycle import TaskLifecycleService
from taskflow.services.task_queries import TaskQueryService


@dataclass
class Repositories:
    """Everything the services need for one request.

    Attributes:
        users: User and preference lookups on the request session
        directory: User lookups for side effects (own sessions)
        tasks: Task storage
        projects: Project storage
        activity: Activity log sink (own sessions)
        notifications: In-app notification sink (own sessions)
        reminders: Reminder settings and the sent-reminder log
        mailer: Outbound email, when the host application provides one
    """
    users: UserRepository
    directory: UserRepository
    tasks: TaskRepository
    projects: ProjectRepository
    activity: ActivityRecorder
    notifications: NotificationStore
    reminders: ReminderRepository
    mailer: EmailSender | None = None


async def get_repositories(request: Request, db: DBSession) -> Repositories:
    """SQL-backed repositories bound to the request session."""
    return Repositories(
        users=SqlUserRepository(db),
        directory=SqlUserDirectory(async_session_factory),
        tasks=SqlTaskRepository(db),
        projects=SqlProjectRepository(db),
        activity=SqlActivityRecorder(async_session_factory),
        notifications=SqlNotificationStore(async_session_factory),
        reminders=SqlReminderRepository(db),
        mailer=getattr(request.app.state, "mailer", None),
    )


Repos = Annotated[Repositories, Depends(get_repositories)]

# Every route acts on behalf of an explicit user
ActingUserId = Annotated[int, Query(alias="acting_user_id")]


def get_lifecycle_service(repos: Repos) -> TaskLifecycleService:
    return TaskLifecycleService(
        users=repos.users,
        tasks=repos.tasks,
        projects=repos.projects,
        recurrence=RecurringTaskService(repos.tasks, repos.projects),
        settings=get_settings(),
    )


def get_query_service(repos: Repos) -> TaskQueryService:
    return TaskQueryService(
        users=repos.users,
        tasks=repos.tasks,
        activity=repos.activity,
        projects=repos.projects,
        settings=get_settings(),
    )


def get_project_service(repos: Repos) -> ProjectService:
    return ProjectService(users=repos.users, projects=repos.projects, tasks=repos.tasks)


def get_notification_service(repos: Repos) -> NotificationService:
    return NotificationService(
        users=repos.users,
        store=repos.notifications,
        mailer=repos.mailer,
        settings=get_settings(),
    )


def get_reminder_service(repos: Repos) -> ReminderService:
    return ReminderService(
        users=repos.users,
        tasks=repos.tasks,
        reminders=repos.reminders,
        notifications=get_notification_service(repos),
    )


def get_dispatcher(repos: Repos) -> SideEffectDispatcher:
    return SideEffectDispatcher(
        activity=ActivityLogService(repos.activity),
        notifications=NotificationService(
            users=repos.directory,
            store=repos.notifications,
            mailer=repos.mailer,
            settings=get_settings(),
        ),
    )


LifecycleService = Annotated[TaskLifecycleService, Depends(get_lifecycle_service)]
QueryService = Annotated[TaskQueryService, Depends(get_query_service)]
Projects = Annotated[ProjectService, Depends(get_project_service)]
Notifications = Annotated[NotificationService, Depends(get_notification_service)]
Reminders = Annotated[ReminderService, Depends(get_reminder_service)]
Dispatcher = Annotated[SideEffectDispatcher, Depends(get_dispatcher)]
