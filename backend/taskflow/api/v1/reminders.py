"""Task reminder settings and the reminder/overdue check jobs."""

from datetime import date

from fastapi import APIRouter

from taskflow.api.deps import ActingUserId, Reminders
from taskflow.api.v1.responses import DataResponse
from taskflow.schemas.reminder import (
    ReminderCheckResponse,
    ReminderSent,
    ReminderSettings,
    ReminderUpdate,
)

router = APIRouter()


def _check_response(kind: str, sent: list[ReminderSent]) -> ReminderCheckResponse:
    return ReminderCheckResponse(
        message=f"Processed {kind} check - sent {len(sent)} notifications",
        notifications_sent=sent,
    )


# =============================================================================
# Settings
# =============================================================================


@router.get("/tasks/{task_id}/reminders", response_model=DataResponse[ReminderSettings])
async def get_task_reminders(
    task_id: int,
    acting_user_id: ActingUserId,
    service: Reminders,
) -> DataResponse[ReminderSettings]:
    settings = await service.get_reminders(acting_user_id, task_id)
    return DataResponse(data=settings)


@router.put("/tasks/{task_id}/reminders", response_model=DataResponse[ReminderSettings])
async def update_task_reminders(
    task_id: int,
    data: ReminderUpdate,
    acting_user_id: ActingUserId,
    service: Reminders,
) -> DataResponse[ReminderSettings]:
    """Owner only. Enabling needs a due date on the task."""
    settings = await service.update_reminders(acting_user_id, task_id, data)
    return DataResponse(data=settings)


# =============================================================================
# Scheduled checks
# =============================================================================


@router.post("/reminders/check", response_model=ReminderCheckResponse)
async def run_reminder_check(
    service: Reminders,
    today: date | None = None,
) -> ReminderCheckResponse:
    """Send due-date reminders. Meant for a scheduler; today defaults to the server date."""
    sent = await service.check_reminders(today)
    return _check_response("reminder", sent)


@router.post("/overdue/check", response_model=ReminderCheckResponse)
async def run_overdue_check(
    service: Reminders,
    today: date | None = None,
) -> ReminderCheckResponse:
    sent = await service.check_overdue(today)
    return _check_response("overdue", sent)
