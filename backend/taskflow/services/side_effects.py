"""Executes the side-effect intents carried by a MutationResult.

Activity entries and notifications are independent of each other and of the
mutation that produced them: they run concurrently, and any failure is logged
and discarded.
"""

import asyncio

import structlog

from taskflow.schemas.results import MutationResult
from taskflow.services.activity_log import ActivityLogService
from taskflow.services.notification import NotificationService

logger = structlog.get_logger()


class SideEffectDispatcher:
    """Runs activity recording and notification delivery, best-effort."""

    def __init__(
        self,
        activity: ActivityLogService | None = None,
        notifications: NotificationService | None = None,
    ):
        self.activity = activity
        self.notifications = notifications

    async def dispatch(self, result: MutationResult) -> None:
        """Execute every intent on ``result``. Never raises."""
        jobs = []
        if self.activity is not None and result.activities:
            jobs.append(self.activity.record_many(result.activities))
        if self.notifications is not None:
            jobs.extend(self.notifications.deliver(n) for n in result.notifications)
        if not jobs:
            return

        outcomes = await asyncio.gather(*jobs, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, Exception):
                logger.warning("side_effect_failed", error=str(outcome), error_type=type(outcome).__name__)

        logger.debug(
            "side_effects_dispatched",
            activities=len(result.activities),
            notifications=len(result.notifications),
        )
