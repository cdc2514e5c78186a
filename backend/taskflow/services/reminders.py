"""Due-date reminders and overdue notices.

Reminder settings live per task and only the owner may change them. The two
check jobs are run by a scheduler outside this service; each call looks at
the current state and sends whatever is due, so running a check twice in a
row never notifies anyone twice.
"""

from datetime import date

import structlog

from taskflow.exceptions import AuthorizationError, NotFoundError, ValidationError
from taskflow.repositories.base import ReminderRepository, TaskRepository, UserRepository
from taskflow.schemas.notification import NotificationIntent, NotificationKind
from taskflow.schemas.records import TaskRecord, TaskStatus, UserRecord
from taskflow.schemas.reminder import ReminderSent, ReminderSettings, ReminderUpdate
from taskflow.services import access_control as ac
from taskflow.services.notification import NotificationService

logger = structlog.get_logger()

# reminder_number recorded for overdue notices; reminders count from 1
OVERDUE_REMINDER_NUMBER = 0


def reminder_recipients(task: TaskRecord) -> list[int]:
    """Owner, assignee and members, each once, in that order."""
    candidates = [task.owner_id, task.assignee_id, *task.members_id]
    return list(dict.fromkeys(uid for uid in candidates if uid is not None))


class ReminderService:
    """Per-task reminder settings and the reminder and overdue checks."""

    def __init__(
        self,
        users: UserRepository,
        tasks: TaskRepository,
        reminders: ReminderRepository,
        notifications: NotificationService,
    ):
        self.users = users
        self.tasks = tasks
        self.reminders = reminders
        self.notifications = notifications

    async def _actor(self, actor_id: int) -> UserRecord:
        actor = await self.users.get(actor_id)
        if actor is None:
            raise NotFoundError("Acting user not found")
        return actor

    async def _live_task(self, task_id: int) -> TaskRecord:
        task = await self.tasks.get(task_id)
        if task is None or task.is_deleted:
            raise NotFoundError("Task not found")
        return task

    # =========================================================================
    # Settings
    # =========================================================================

    async def get_reminders(self, actor_id: int, task_id: int) -> ReminderSettings:
        """Stored settings, or the disabled defaults when none were saved."""
        actor = await self._actor(actor_id)
        task = await self._live_task(task_id)
        owner = await self.users.get(task.owner_id)
        if not ac.can_view(actor, task, owner):
            raise AuthorizationError("Forbidden")
        return await self.reminders.get(task_id) or ReminderSettings(task_id=task_id)

    async def update_reminders(
        self, actor_id: int, task_id: int, data: ReminderUpdate
    ) -> ReminderSettings:
        actor = await self._actor(actor_id)
        task = await self._live_task(task_id)
        if not ac.is_owner(actor, task):
            raise AuthorizationError("Only the task owner can set reminders")

        current = await self.reminders.get(task_id) or ReminderSettings(task_id=task_id)
        merged = current.model_copy(update=data.model_dump(exclude_unset=True, exclude_none=True))
        if merged.enabled and task.due_date is None:
            raise ValidationError("Cannot enable reminders for a task without a due date")

        saved = await self.reminders.upsert(
            task_id,
            {
                "enabled": merged.enabled,
                "days_before": merged.days_before,
                "frequency_per_day": merged.frequency_per_day,
            },
        )
        logger.info(
            "task_reminders_updated",
            task_id=task_id,
            enabled=saved.enabled,
            days_before=saved.days_before,
            frequency_per_day=saved.frequency_per_day,
        )
        return saved

    # =========================================================================
    # Checks
    # =========================================================================

    async def check_reminders(self, today: date | None = None) -> list[ReminderSent]:
        """Send due-date reminders for every enabled task inside its window.

        A task is in its window from days_before days ahead up to and
        including the due day. Each check sends a recipient at most one
        reminder per task, and at most frequency_per_day per day.
        """
        today = today or date.today()
        settings = await self.reminders.list_enabled()
        if not settings:
            return []

        tasks = {t.task_id: t for t in await self.tasks.get_many([s.task_id for s in settings])}
        sent: list[ReminderSent] = []

        for reminder in settings:
            task = tasks.get(reminder.task_id)
            if (
                task is None
                or task.is_deleted
                or task.due_date is None
                or task.status == TaskStatus.COMPLETED
            ):
                continue

            days_until_due = (task.due_date - today).days
            if not 0 <= days_until_due <= reminder.days_before:
                continue

            for user_id in reminder_recipients(task):
                number = await self._next_reminder_number(
                    task, user_id, days_until_due, reminder.frequency_per_day
                )
                if number is None:
                    continue
                entry = await self._notify(
                    NotificationKind.TASK_REMINDER, task, user_id, number, days_until_due
                )
                if entry is not None:
                    sent.append(entry)

        logger.info("reminder_check_finished", enabled=len(settings), sent=len(sent))
        return sent

    async def check_overdue(self, today: date | None = None) -> list[ReminderSent]:
        """Notify everyone on an unfinished task whose due date has passed.

        Each recipient hears about a given due date once; moving the due date
        makes the task eligible again.
        """
        today = today or date.today()
        sent: list[ReminderSent] = []

        for task in await self.tasks.list_overdue(today):
            days_until_due = (task.due_date - today).days
            for user_id in reminder_recipients(task):
                if await self.reminders.has_sent(
                    task.task_id, user_id, task.due_date, OVERDUE_REMINDER_NUMBER
                ):
                    continue
                entry = await self._notify(
                    NotificationKind.TASK_OVERDUE,
                    task,
                    user_id,
                    OVERDUE_REMINDER_NUMBER,
                    days_until_due,
                )
                if entry is not None:
                    sent.append(entry)

        logger.info("overdue_check_finished", sent=len(sent))
        return sent

    async def _next_reminder_number(
        self, task: TaskRecord, user_id: int, days_until_due: int, frequency: int
    ) -> int | None:
        for number in range(1, frequency + 1):
            if not await self.reminders.has_sent(
                task.task_id, user_id, task.due_date, number, days_until_due
            ):
                return number
        return None

    async def _notify(
        self,
        kind: NotificationKind,
        task: TaskRecord,
        user_id: int,
        reminder_number: int,
        days_until_due: int,
    ) -> ReminderSent | None:
        delivered = await self.notifications.deliver(
            NotificationIntent(
                kind=kind,
                recipient_ids=[user_id],
                task_id=task.task_id,
                project_id=task.project_id,
                context={
                    "task_title": task.title,
                    "due_date": task.due_date.isoformat(),
                    "days_until_due": days_until_due,
                },
            )
        )
        # Nothing logged when no channel took it, so the next check retries
        if not delivered:
            return None

        entry = ReminderSent(
            task_id=task.task_id,
            user_id=user_id,
            due_date=task.due_date,
            reminder_number=reminder_number,
            days_until_due=days_until_due,
        )
        await self.reminders.record_sent(entry)
        return entry
