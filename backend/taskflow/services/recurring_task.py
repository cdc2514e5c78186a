"""Recurring task service: spawns the next instance when a recurring task completes."""

import calendar
from datetime import date, datetime, timedelta
from typing import Any

import structlog

from taskflow.repositories.base import ProjectRepository, TaskRepository
from taskflow.schemas.activity import ActivityIntent, TaskCreated
from taskflow.schemas.records import RecurrenceType, TaskRecord, TaskStatus
from taskflow.schemas.results import MutationResult

logger = structlog.get_logger()


def _coerce_date(value: Any) -> date | None:
    """Parse a stored due date; None when it is missing or malformed."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


def add_months(start: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's end."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def compute_next_due_date(
    due_date: date,
    recurrence_type: str | None,
    interval: int | None,
) -> date | None:
    """Next due date for one recurrence step, or None when none applies.

    daily/weekly/monthly treat a missing or non-positive interval as 1;
    custom requires an explicit interval of at least 1. Any other type,
    yearly included, never recurs.
    """
    kind = recurrence_type.value if isinstance(recurrence_type, RecurrenceType) else recurrence_type
    kind = (kind or "").strip().lower()

    if kind == RecurrenceType.CUSTOM:
        if interval is None or interval < 1:
            return None
        return due_date + timedelta(days=interval)

    step = interval if interval is not None and interval >= 1 else 1
    if kind == RecurrenceType.DAILY:
        return due_date + timedelta(days=step)
    if kind == RecurrenceType.WEEKLY:
        return due_date + timedelta(weeks=step)
    if kind == RecurrenceType.MONTHLY:
        return add_months(due_date, step)
    return None


def _initial_status(assignee_id: int | None) -> TaskStatus:
    return TaskStatus.ONGOING if assignee_id is not None else TaskStatus.UNASSIGNED


class RecurringTaskService:
    """Creates the follow-up instance of a completed recurring task."""

    def __init__(
        self,
        tasks: TaskRepository,
        projects: ProjectRepository | None = None,
    ):
        self.tasks = tasks
        self.projects = projects

    async def spawn_next_instance(
        self, task: TaskRecord, actor_id: int | None
    ) -> MutationResult[TaskRecord] | None:
        """
        Insert the next instance of ``task`` and clone its direct subtasks.

        Returns None when the instance is suppressed: the due date does not
        parse, the type or interval is unsupported, or the candidate date is
        on or after recurrence_end_date.

        Raises:
            StoreError if inserting the instance itself fails. Failures while
            cloning subtasks or updating the project index are logged only.
        """
        due = _coerce_date(task.due_date)
        if due is None:
            logger.info("recurring_instance_suppressed", task_id=task.task_id, reason="invalid_due_date")
            return None

        candidate = compute_next_due_date(due, task.recurrence_type, task.recurrence_interval)
        if candidate is None:
            logger.info(
                "recurring_instance_suppressed",
                task_id=task.task_id,
                reason="unsupported_recurrence",
                recurrence_type=task.recurrence_type,
                recurrence_interval=task.recurrence_interval,
            )
            return None

        end = _coerce_date(task.recurrence_end_date)
        if end is not None and candidate >= end:
            logger.info(
                "recurring_instance_suppressed",
                task_id=task.task_id,
                reason="past_end_date",
                candidate=str(candidate),
                end_date=str(end),
            )
            return None

        next_due = compute_next_due_date(candidate, task.recurrence_type, task.recurrence_interval)
        if next_due is not None and end is not None and next_due >= end:
            next_due = None

        # Chains always point back at the first task in the series
        origin_id = task.parent_recurring_task_id or task.task_id

        instance = await self.tasks.insert(
            {
                "title": task.title,
                "description": task.description,
                "priority_bucket": task.priority_bucket,
                "due_date": candidate,
                "owner_id": task.owner_id,
                "assignee_id": task.assignee_id,
                "members_id": list(task.members_id),
                "project_id": task.project_id,
                "parent_task_id": None,
                "status": _initial_status(task.assignee_id),
                "is_recurring": True,
                "recurrence_type": task.recurrence_type,
                "recurrence_interval": task.recurrence_interval,
                "recurrence_end_date": task.recurrence_end_date,
                "parent_recurring_task_id": origin_id,
                "next_due_date": next_due,
            }
        )

        logger.info(
            "recurring_instance_created",
            task_id=task.task_id,
            instance_id=instance.task_id,
            due_date=str(candidate),
            next_due_date=str(next_due) if next_due else None,
        )

        cloned = await self._clone_subtasks(task, instance, shift=candidate - due)
        await self._index_in_project(instance)

        activity = ActivityIntent(
            task_id=instance.task_id,
            author_id=actor_id,
            metadata=TaskCreated(recurring_instance=True, parent_recurring_task_id=origin_id),
        )
        return MutationResult(resource=instance, activities=[activity], affected_count=1 + cloned)

    async def _clone_subtasks(self, original: TaskRecord, instance: TaskRecord, shift: timedelta) -> int:
        try:
            subtasks = await self.tasks.children_of([original.task_id])
        except Exception as e:
            logger.warning("recurring_subtask_lookup_failed", task_id=original.task_id, error=str(e))
            return 0

        cloned = 0
        for sub in subtasks:
            sub_due = _coerce_date(sub.due_date)
            try:
                await self.tasks.insert(
                    {
                        "title": sub.title,
                        "description": sub.description,
                        "priority_bucket": sub.priority_bucket,
                        "due_date": sub_due + shift if sub_due else None,
                        "owner_id": sub.owner_id,
                        "assignee_id": sub.assignee_id,
                        "members_id": list(sub.members_id),
                        "project_id": sub.project_id,
                        "parent_task_id": instance.task_id,
                        "status": _initial_status(sub.assignee_id),
                    }
                )
                cloned += 1
            except Exception as e:
                logger.warning(
                    "recurring_subtask_clone_failed",
                    subtask_id=sub.task_id,
                    instance_id=instance.task_id,
                    error=str(e),
                )
        return cloned

    async def _index_in_project(self, instance: TaskRecord) -> None:
        if self.projects is None or instance.project_id is None:
            return
        try:
            project = await self.projects.get(instance.project_id)
            if project is None or instance.task_id in project.tasks:
                return
            await self.projects.update(
                project.project_id, {"tasks": [*project.tasks, instance.task_id]}
            )
        except Exception as e:
            logger.warning(
                "project_task_index_update_failed",
                project_id=instance.project_id,
                task_id=instance.task_id,
                error=str(e),
            )
