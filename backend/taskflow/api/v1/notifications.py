"""Notification inbox and delivery preferences for the acting user."""

from fastapi import APIRouter, Query

from taskflow.api.deps import ActingUserId, Notifications
from taskflow.api.v1.responses import DataResponse
from taskflow.schemas.notification import PreferenceUpdate
from taskflow.schemas.records import NotificationPreferenceRecord, NotificationRecord

router = APIRouter()


@router.get("", response_model=DataResponse[list[NotificationRecord]])
async def list_notifications(
    acting_user_id: ActingUserId,
    service: Notifications,
    limit: int = Query(default=50),
    offset: int = Query(default=0),
    unread_only: bool = False,
) -> DataResponse[list[NotificationRecord]]:
    """The acting user's notifications, newest first."""
    notifications = await service.list_notifications(acting_user_id, limit, offset, unread_only)
    return DataResponse(data=notifications)


@router.post("/{notification_id}/read", response_model=DataResponse[NotificationRecord])
async def mark_notification_read(
    notification_id: int,
    acting_user_id: ActingUserId,
    service: Notifications,
) -> DataResponse[NotificationRecord]:
    notification = await service.mark_read(acting_user_id, notification_id)
    return DataResponse(data=notification)


# =============================================================================
# Preferences
# =============================================================================


@router.get("/preferences", response_model=DataResponse[NotificationPreferenceRecord])
async def get_preferences(
    acting_user_id: ActingUserId,
    service: Notifications,
) -> DataResponse[NotificationPreferenceRecord]:
    """Stored opt-ins, or in-app only when the user never saved any."""
    prefs = await service.get_preferences(acting_user_id)
    return DataResponse(data=prefs)


@router.patch("/preferences", response_model=DataResponse[NotificationPreferenceRecord])
async def update_preferences(
    data: PreferenceUpdate,
    acting_user_id: ActingUserId,
    service: Notifications,
) -> DataResponse[NotificationPreferenceRecord]:
    prefs = await service.update_preferences(acting_user_id, data)
    return DataResponse(data=prefs)
