"""Reminder settings, requests and check results."""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class ReminderSettings(BaseModel):
    """Reminder configuration for one task; defaults apply when none is stored."""

    model_config = ConfigDict(from_attributes=True)

    task_id: int
    enabled: bool = False
    days_before: int = 3
    frequency_per_day: int = 1


class ReminderUpdate(BaseModel):
    """Partial update of a task's reminder settings."""

    enabled: bool | None = None
    days_before: int | None = Field(default=None, ge=0, le=30)
    frequency_per_day: int | None = Field(default=None, ge=1, le=24)


class ReminderSent(BaseModel):
    """One reminder or overdue notice that was delivered.

    days_until_due is negative for overdue notices.
    """

    task_id: int
    user_id: int
    due_date: date
    reminder_number: int
    days_until_due: int


class ReminderCheckResponse(BaseModel):
    success: bool = True
    message: str
    notifications_sent: list[ReminderSent]
