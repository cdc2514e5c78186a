"""Project and task models."""

from datetime import date

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from taskflow.db.base import Base, JSONType, SoftDeleteMixin, TimestampMixin


class Project(Base, TimestampMixin):
    """A container grouping tasks, owned by one user."""

    __tablename__ = "projects"

    project_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    owner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Always contains owner_id
    members: Mapped[list[int]] = mapped_column(JSONType, nullable=False, default=list)

    # Denormalized index of linked task ids, maintained best-effort
    tasks: Mapped[list[int]] = mapped_column(JSONType, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<Project {self.project_id} {self.name[:30]!r}>"


class Task(Base, TimestampMixin, SoftDeleteMixin):
    """Task with an owner, an optional assignee and optional recurrence."""

    __tablename__ = "tasks"

    task_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Basic info
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status and priority
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="UNASSIGNED"
    )  # UNASSIGNED, ONGOING, UNDER_REVIEW, COMPLETED
    priority_bucket: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Ownership and assignment
    owner_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assignee_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.user_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    members_id: Mapped[list[int]] = mapped_column(JSONType, nullable=False, default=list)

    # Tree and grouping
    parent_task_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("tasks.task_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    project_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("projects.project_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Recurrence
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurrence_type: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )  # daily, weekly, monthly, custom
    recurrence_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recurrence_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    parent_recurring_task_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("tasks.task_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    next_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        try:
            return f"<Task {self.title[:30]}>"
        except Exception:
            return f"<Task id={self.task_id}>"
