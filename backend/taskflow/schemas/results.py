"""Result shape returned by every mutating operation."""

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from taskflow.schemas.activity import ActivityIntent
from taskflow.schemas.notification import NotificationIntent
from taskflow.schemas.records import TaskRecord

T = TypeVar("T")


@dataclass
class MutationResult(Generic[T]):
    """The resource after a mutation plus the side effects it asks for.

    Attributes:
        resource: Resulting task or project
        activities: Activity entries to record
        notifications: Notifications to deliver
        recurring_instance: Instance spawned by completing a recurring task
        affected_count: Rows changed (e.g. a delete cascade)
    """
    resource: T
    activities: list[ActivityIntent] = field(default_factory=list)
    notifications: list[NotificationIntent] = field(default_factory=list)
    recurring_instance: TaskRecord | None = None
    affected_count: int = 1

    @property
    def has_side_effects(self) -> bool:
        return bool(self.activities or self.notifications)
