"""Notification service: renders intents, delivers them per recipient and serves the inbox."""

import asyncio
from dataclasses import dataclass

import structlog

from taskflow.config import Settings, get_settings
from taskflow.exceptions import NotFoundError
from taskflow.repositories.base import EmailSender, NotificationStore, UserRepository
from taskflow.schemas.notification import NotificationIntent, NotificationKind, PreferenceUpdate
from taskflow.schemas.records import NotificationPreferenceRecord, NotificationRecord, UserRecord
from taskflow.services import notification_templates as templates

logger = structlog.get_logger()


@dataclass
class RenderedNotification:
    """Text for one notification.

    Attributes:
        subject: Email subject, also used as the in-app title
        text: Plain-text body, also used as the in-app message
        html: HTML body for email
    """
    subject: str
    text: str
    html: str


_TEMPLATES = {
    NotificationKind.TASK_ASSIGNED: templates.TASK_ASSIGNED,
    NotificationKind.TASK_UNASSIGNED: templates.TASK_UNASSIGNED,
    NotificationKind.TASK_STATUS_CHANGED: templates.TASK_STATUS_CHANGED,
    NotificationKind.COMMENT_MENTION: templates.COMMENT_MENTION,
    NotificationKind.MEMBER_ADDED: templates.TASK_MEMBER_ADDED,
    NotificationKind.TASK_REMINDER: templates.TASK_REMINDER,
    NotificationKind.TASK_OVERDUE: templates.TASK_OVERDUE,
}


def render_notification(intent: NotificationIntent) -> RenderedNotification:
    """Render the subject and bodies for a notification intent."""
    ctx = intent.context
    variables = {
        **ctx,
        "task_title": ctx.get("task_title") or "",
        "due_date": ctx.get("due_date") or "N/A",
        "actor_name": ctx.get("actor_name") or "Someone",
        "old_status": ctx.get("old_status") or "unknown",
        "new_status": ctx.get("new_status") or "unknown",
        "comment_preview": ctx.get("comment_preview") or "",
    }

    template = _TEMPLATES[intent.kind]
    # MEMBER_ADDED covers projects too
    if intent.kind == NotificationKind.MEMBER_ADDED and ctx.get("project_name") and not ctx.get("task_title"):
        template = templates.PROJECT_MEMBER_ADDED

    return RenderedNotification(
        subject=templates.render_text(template["subject"], variables),
        text=templates.render_text(template["text"], variables),
        html=templates.render_html(template["html"], variables),
    )


class NotificationService:
    """Delivers notifications in-app and by email according to user preferences.

    Recipients without a preference row get in-app notifications only.
    Email goes out only to users who opted in and have an address.
    """

    def __init__(
        self,
        users: UserRepository,
        store: NotificationStore,
        mailer: EmailSender | None = None,
        settings: Settings | None = None,
    ):
        self.users = users
        self.store = store
        self.mailer = mailer
        self.settings = settings or get_settings()

    async def deliver(self, intent: NotificationIntent) -> int:
        """Deliver one intent to all its recipients; returns deliveries made.

        Failures for one recipient never affect the others.
        """
        recipients = list(dict.fromkeys(r for r in intent.recipient_ids if r is not None))
        if not recipients:
            return 0

        users = await self.users.get_many(recipients)
        prefs = await self.users.get_preferences_many(recipients)
        rendered = render_notification(intent)

        results = await asyncio.gather(
            *(
                self._deliver_to(intent, rendered, users.get(uid), prefs.get(uid), uid)
                for uid in recipients
            ),
            return_exceptions=True,
        )

        delivered = 0
        for uid, result in zip(recipients, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "notification_delivery_failed",
                    user_id=uid,
                    kind=intent.kind.value,
                    error=str(result),
                )
            else:
                delivered += result
        return delivered

    async def _deliver_to(
        self,
        intent: NotificationIntent,
        rendered: RenderedNotification,
        user: UserRecord | None,
        prefs: NotificationPreferenceRecord | None,
        user_id: int,
    ) -> int:
        if user is None:
            logger.debug("notification_recipient_missing", user_id=user_id)
            return 0

        prefs = prefs or NotificationPreferenceRecord(user_id=user_id)
        delivered = 0

        if prefs.in_app:
            await self.store.insert(
                user_id=user_id,
                kind=intent.kind.value,
                title=rendered.subject,
                message=rendered.text,
                task_id=intent.task_id,
                project_id=intent.project_id,
                sender_id=intent.sender_id,
            )
            delivered += 1

        if (
            prefs.email
            and user.email
            and self.mailer is not None
            and self.settings.notifications_email_enabled
        ):
            await self.mailer.send(
                to=user.email,
                subject=rendered.subject,
                text=rendered.text,
                html=rendered.html,
            )
            delivered += 1
        else:
            logger.debug(
                "notification_email_skipped",
                user_id=user_id,
                opted_in=prefs.email,
                has_email=bool(user.email),
            )

        logger.info(
            "notification_delivered",
            user_id=user_id,
            channels=delivered,
            kind=intent.kind.value,
            task_id=intent.task_id,
            project_id=intent.project_id,
        )
        return delivered

    # =========================================================================
    # Preferences
    # =========================================================================

    async def _require_user(self, user_id: int) -> None:
        if await self.users.get(user_id) is None:
            raise NotFoundError("User not found")

    async def get_preferences(self, user_id: int) -> NotificationPreferenceRecord:
        """The user's opt-ins, or the delivery defaults when none are stored."""
        await self._require_user(user_id)
        prefs = await self.users.get_preferences(user_id)
        return prefs or NotificationPreferenceRecord(user_id=user_id)

    async def update_preferences(
        self, user_id: int, data: PreferenceUpdate
    ) -> NotificationPreferenceRecord:
        await self._require_user(user_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            prefs = await self.users.get_preferences(user_id)
            return prefs or NotificationPreferenceRecord(user_id=user_id)

        prefs = await self.users.upsert_preferences(user_id, changes)
        logger.info(
            "notification_prefs_updated",
            user_id=user_id,
            in_app=prefs.in_app,
            email=prefs.email,
        )
        return prefs

    # =========================================================================
    # Inbox
    # =========================================================================

    async def list_notifications(
        self, user_id: int, limit: int = 50, offset: int = 0, unread_only: bool = False
    ) -> list[NotificationRecord]:
        """The user's in-app notifications, newest first."""
        limit = max(1, min(limit, 200))
        offset = max(0, offset)
        return await self.store.list_for_user(user_id, limit, offset, unread_only)

    async def mark_read(self, user_id: int, notification_id: int) -> NotificationRecord:
        """Mark one of the user's own notifications read.

        Another user's notification is reported as missing.
        """
        notification = await self.store.mark_read(notification_id, user_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification
