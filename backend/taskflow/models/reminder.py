"""Due-date reminder settings and the log of reminders already sent."""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from taskflow.db.base import Base, TimestampMixin


class TaskReminder(Base, TimestampMixin):
    """Reminder settings for one task. Tasks without a row have reminders off."""

    __tablename__ = "task_reminders"

    task_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tasks.task_id", ondelete="CASCADE"),
        primary_key=True,
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    days_before: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    frequency_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ReminderLog(Base):
    """
    One reminder or overdue notice delivered to one user.

    reminder_number 0 marks an overdue notice; reminders count from 1.
    Rows are keyed on the due date so moving the deadline starts over.
    """

    __tablename__ = "reminder_log"
    __table_args__ = (
        Index("ix_reminder_log_delivery", "task_id", "user_id", "due_date", "reminder_number"),
    )

    log_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tasks.task_id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    reminder_number: Mapped[int] = mapped_column(Integer, nullable=False)
    days_until_due: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
