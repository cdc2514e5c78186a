"""Task activity log: summaries, feed serialization and best-effort recording."""

from collections.abc import Mapping
from typing import Any, Sequence

import structlog
from pydantic import BaseModel

from taskflow.repositories.base import ActivityRecorder
from taskflow.schemas.activity import ActivityEntry, ActivityIntent, ActivityType

logger = structlog.get_logger()

VALID_TYPES = {t.value for t in ActivityType}

# FIELD_EDITED entries on these fields hold user ids
USER_ID_FIELDS = {"owner_id", "assignee_id"}


def is_valid_activity_type(activity_type: Any) -> bool:
    return isinstance(activity_type, str) and activity_type in VALID_TYPES


def _as_dict(metadata: Any) -> dict[str, Any]:
    if isinstance(metadata, BaseModel):
        return metadata.model_dump(mode="json", by_alias=True, exclude={"type"})
    if isinstance(metadata, Mapping):
        return dict(metadata)
    return {}


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _user_label(value: Any, display_names: Mapping[int, str] | None) -> str:
    if value is None:
        return "Unassigned"
    if display_names:
        try:
            name = display_names.get(int(value))
        except (TypeError, ValueError):
            name = None
        if name:
            return name
    return _text(value)


def format_activity_summary(
    activity_type: str,
    metadata: Any = None,
    display_names: Mapping[int, str] | None = None,
) -> str:
    """Render the one-line summary for an activity entry.

    ``metadata`` may be a stored dict or a typed variant. When
    ``display_names`` is given, user ids in reassignment entries are shown
    by name.
    """
    if isinstance(activity_type, ActivityType):
        activity_type = activity_type.value
    if not is_valid_activity_type(activity_type):
        return "Activity"

    data = _as_dict(metadata)

    if activity_type == ActivityType.STATUS_CHANGED:
        old = data.get("from_status") or data.get("from") or "unknown"
        new = data.get("to_status") or data.get("to") or "unknown"
        return f"Status changed: {old} → {new}"

    if activity_type == ActivityType.FIELD_EDITED:
        field = data.get("field") or "field"
        old, new = data.get("from"), data.get("to")
        if field in USER_ID_FIELDS and display_names:
            old_text = "—" if old is None else _user_label(old, display_names)
            new_text = "—" if new is None else _user_label(new, display_names)
        else:
            old_text = "—" if old is None else _text(old)
            new_text = "—" if new is None else _text(new)
        return f"Edited {field}: {old_text} → {new_text}"

    if activity_type == ActivityType.COMMENT_ADDED:
        preview = str(data.get("comment_preview") or "").strip()
        return f"Comment: {preview}" if preview else "Comment added"

    if activity_type == ActivityType.REASSIGNED:
        old = data.get("from_assignee", data.get("from"))
        new = data.get("to_assignee", data.get("to"))
        return f"Reassigned: {_user_label(old, display_names)} → {_user_label(new, display_names)}"

    if activity_type == ActivityType.TASK_CREATED:
        return "Task created"
    if activity_type == ActivityType.TASK_DELETED:
        return "Task deleted"
    if activity_type == ActivityType.TASK_RESTORED:
        return "Task restored"
    return "Activity"


def referenced_user_ids(entries: Sequence[ActivityEntry]) -> set[int]:
    """Authors and user ids mentioned in reassignment-style metadata."""
    ids: set[int] = set()
    for entry in entries:
        if entry.author_id is not None:
            ids.add(entry.author_id)
        meta = entry.metadata
        if entry.type == ActivityType.REASSIGNED:
            candidates = [meta.get("from_assignee"), meta.get("to_assignee")]
        elif entry.type == ActivityType.FIELD_EDITED and meta.get("field") in USER_ID_FIELDS:
            candidates = [meta.get("from"), meta.get("to")]
        else:
            continue
        for value in candidates:
            if isinstance(value, int) and not isinstance(value, bool):
                ids.add(value)
    return ids


def enrich_entries(
    entries: Sequence[ActivityEntry],
    display_names: Mapping[int, str],
) -> list[ActivityEntry]:
    """Attach author names and re-render summaries that contain user ids."""
    enriched = []
    for entry in entries:
        summary = entry.summary.strip() if entry.summary else ""
        needs_names = entry.type == ActivityType.REASSIGNED or (
            entry.type == ActivityType.FIELD_EDITED
            and entry.metadata.get("field") in USER_ID_FIELDS
        )
        if needs_names or not summary:
            summary = format_activity_summary(entry.type, entry.metadata, display_names)
        enriched.append(
            entry.model_copy(
                update={
                    "summary": summary,
                    "author_name": display_names.get(entry.author_id)
                    if entry.author_id is not None
                    else None,
                }
            )
        )
    return enriched


class ActivityLogService:
    """Records activity entries without ever failing the caller."""

    def __init__(self, recorder: ActivityRecorder):
        self.recorder = recorder

    @staticmethod
    def _with_summary(entry: ActivityIntent) -> ActivityIntent:
        if entry.summary and entry.summary.strip():
            entry.summary = entry.summary.strip()
        else:
            entry.summary = format_activity_summary(entry.type, entry.metadata)
        return entry

    async def record(self, entry: ActivityIntent) -> bool:
        try:
            await self.recorder.record(self._with_summary(entry))
            return True
        except Exception as e:
            logger.warning(
                "activity_record_failed",
                task_id=entry.task_id,
                activity_type=entry.type,
                error=str(e),
            )
            return False

    async def record_many(self, entries: Sequence[ActivityIntent]) -> bool:
        if not entries:
            return True
        try:
            await self.recorder.record_many([self._with_summary(e) for e in entries])
            return True
        except Exception as e:
            logger.warning(
                "activity_batch_record_failed",
                count=len(entries),
                task_ids=sorted({e.task_id for e in entries}),
                error=str(e),
            )
            return False
