"""SQL repositories against an in-memory SQLite database."""

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from taskflow.db.base import Base
from taskflow.exceptions import NotFoundError, StoreError
from taskflow.models import Notification, NotificationPreference, User
from taskflow.repositories.sql import (
    SqlActivityRecorder,
    SqlNotificationStore,
    SqlProjectRepository,
    SqlReminderRepository,
    SqlTaskRepository,
    SqlUserDirectory,
    SqlUserRepository,
)
from taskflow.schemas.activity import ActivityIntent, CommentAdded, TaskCreated
from taskflow.schemas.reminder import ReminderSent
from taskflow.schemas.records import TaskStatus


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all(
            [
                User(user_id=1, access_level=0, team_id=10, full_name="Alice Staff", email="alice@example.com"),
                User(user_id=2, access_level=1, team_id=10, full_name="Carol Manager"),
                NotificationPreference(user_id=1, in_app=False, email=True),
            ]
        )
        await session.commit()

    yield factory
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class TestUsers:
    async def test_lookups(self, db):
        repo = SqlUserRepository(db)
        assert (await repo.get(1)).full_name == "Alice Staff"
        assert await repo.get(404) is None
        assert sorted(await repo.get_many([1, 2, 404])) == [1, 2]
        assert await repo.get_many([]) == {}

    async def test_preferences(self, db):
        prefs = await SqlUserRepository(db).get_preferences_many([1, 2])
        assert list(prefs) == [1]
        assert prefs[1].email is True
        assert prefs[1].in_app is False

    async def test_preference_upsert(self, db):
        repo = SqlUserRepository(db)
        assert await repo.get_preferences(2) is None

        created = await repo.upsert_preferences(2, {"email": True})
        assert (created.in_app, created.email) == (True, True)

        updated = await repo.upsert_preferences(1, {"in_app": True})
        assert (updated.in_app, updated.email) == (True, True)
        assert (await repo.get_preferences(1)).in_app is True

    async def test_directory_uses_own_sessions(self, session_factory):
        directory = SqlUserDirectory(session_factory)
        assert (await directory.get(2)).access_level == 1
        assert list(await directory.get_many([1])) == [1]
        assert list(await directory.get_preferences_many([1])) == [1]
        assert (await directory.get_preferences(1)).email is True


class TestTasks:
    async def test_insert_and_update(self, db):
        repo = SqlTaskRepository(db)
        task = await repo.insert(
            {"title": "Draft", "owner_id": 1, "members_id": [2], "status": TaskStatus.UNASSIGNED}
        )
        assert task.task_id is not None
        assert task.status == TaskStatus.UNASSIGNED
        assert task.members_id == [2]
        assert task.created_at is not None

        updated = await repo.update(
            task.task_id, {"assignee_id": 2, "status": TaskStatus.ONGOING, "members_id": []}
        )
        assert updated.status == TaskStatus.ONGOING
        assert updated.members_id == []
        assert (await repo.get(task.task_id)).assignee_id == 2

    async def test_update_missing(self, db):
        with pytest.raises(NotFoundError):
            await SqlTaskRepository(db).update(404, {"title": "x"})

    async def test_integrity_error_becomes_store_error(self, db):
        repo = SqlTaskRepository(db)
        with pytest.raises(StoreError) as exc_info:
            await repo.insert({"title": None, "owner_id": 1})
        assert exc_info.value.operation == "insert_task"

        # Session is still usable after the rollback
        assert (await repo.insert({"title": "ok", "owner_id": 1})).title == "ok"

    async def test_soft_delete_and_children(self, db):
        repo = SqlTaskRepository(db)
        root = await repo.insert({"title": "root", "owner_id": 1})
        a = await repo.insert({"title": "a", "owner_id": 1, "parent_task_id": root.task_id})
        b = await repo.insert({"title": "b", "owner_id": 1, "parent_task_id": root.task_id})

        when = datetime.now(timezone.utc)
        assert await repo.soft_delete_many([root.task_id, a.task_id], when, deleted_by=1) == 2

        assert [t.task_id for t in await repo.children_of([root.task_id])] == [b.task_id]
        assert [t.task_id for t in await repo.children_of([root.task_id], include_deleted=True)] == [
            a.task_id,
            b.task_id,
        ]
        deleted = await repo.get(a.task_id)
        assert deleted.is_deleted is True
        assert deleted.deleted_by == 1

        listed = await repo.list_deleted(start=when - timedelta(minutes=1))
        assert {t.task_id for t in listed} == {root.task_id, a.task_id}

    async def test_listings(self, db):
        repo = SqlTaskRepository(db)
        owned = await repo.insert({"title": "owned", "owner_id": 1, "due_date": date(2025, 3, 2)})
        shared = await repo.insert(
            {"title": "shared", "owner_id": 2, "members_id": [1], "due_date": date(2025, 3, 1)}
        )
        await repo.insert({"title": "not mine", "owner_id": 2})
        origin = await repo.insert(
            {"title": "r", "owner_id": 1, "is_recurring": True, "recurrence_type": "daily"}
        )

        ids = [t.task_id for t in await repo.list_by_participants([1])]
        assert set(ids) == {owned.task_id, shared.task_id, origin.task_id}
        # Ordered by due date
        assert ids.index(shared.task_id) < ids.index(owned.task_id)

        assert [t.task_id for t in await repo.list_recurring()] == [origin.task_id]
        assert [t.task_id for t in await repo.get_many([shared.task_id, owned.task_id])] == [
            owned.task_id,
            shared.task_id,
        ]

    async def test_list_overdue(self, db):
        repo = SqlTaskRepository(db)
        late = await repo.insert({"title": "late", "owner_id": 1, "due_date": date(2025, 3, 1)})
        await repo.insert({"title": "done", "owner_id": 1, "due_date": date(2025, 3, 1), "status": "DONE"})
        await repo.insert({"title": "today", "owner_id": 1, "due_date": date(2025, 3, 5)})
        await repo.insert({"title": "undated", "owner_id": 1})
        await repo.insert(
            {"title": "gone", "owner_id": 1, "due_date": date(2025, 3, 1), "is_deleted": True}
        )

        assert [t.task_id for t in await repo.list_overdue(date(2025, 3, 5))] == [late.task_id]


class TestProjects:
    async def test_insert_update_and_project_tasks(self, db):
        projects = SqlProjectRepository(db)
        tasks = SqlTaskRepository(db)

        project = await projects.insert({"name": "Launch", "owner_id": 1, "members": [1]})
        task = await tasks.insert({"title": "t", "owner_id": 1, "project_id": project.project_id})
        await tasks.insert(
            {"title": "gone", "owner_id": 1, "project_id": project.project_id, "is_deleted": True}
        )

        updated = await projects.update(project.project_id, {"members": [1, 2], "tasks": [task.task_id]})
        assert updated.members == [1, 2]
        assert updated.tasks == [task.task_id]

        assert [t.task_id for t in await tasks.list_by_project(project.project_id)] == [task.task_id]
        assert [p.project_id for p in await projects.list_all()] == [project.project_id]

    async def test_update_missing(self, db):
        with pytest.raises(NotFoundError, match="Project not found"):
            await SqlProjectRepository(db).update(404, {"name": "x"})


class TestSinks:
    async def test_activity_round_trip(self, session_factory, db):
        task = await SqlTaskRepository(db).insert({"title": "t", "owner_id": 1})
        recorder = SqlActivityRecorder(session_factory)

        await recorder.record(ActivityIntent(task.task_id, 1, TaskCreated(), summary="Task created"))
        await recorder.record_many(
            [
                ActivityIntent(
                    task.task_id, 2, CommentAdded(comment_preview="hi", mentions=[1]), summary="Comment: hi"
                )
            ]
        )

        entries, total = await recorder.list_for_task(task.task_id, limit=10, offset=0)
        assert total == 2
        assert [e.type for e in entries] == ["comment_added", "task_created"]
        assert entries[0].metadata == {"comment_preview": "hi", "mentions": [1]}

        page, _ = await recorder.list_for_task(task.task_id, limit=1, offset=1)
        assert [e.type for e in page] == ["task_created"]

    async def test_notification_insert(self, session_factory):
        store = SqlNotificationStore(session_factory)
        await store.insert(user_id=1, kind="task_assigned", title="x" * 600, task_id=5, sender_id=2)

        async with session_factory() as session:
            row = (await session.execute(select(Notification))).scalar_one()
        assert len(row.title) == 500
        assert row.is_read is False
        assert row.task_id == 5

    async def test_notification_inbox(self, session_factory):
        store = SqlNotificationStore(session_factory)
        await store.insert(user_id=1, kind="task_assigned", title="first")
        await store.insert(user_id=1, kind="task_unassigned", title="second")
        await store.insert(user_id=2, kind="task_assigned", title="other")

        inbox = await store.list_for_user(1, limit=10, offset=0)
        assert [n.title for n in inbox] == ["second", "first"]

        assert await store.mark_read(inbox[0].notification_id, user_id=2) is None
        marked = await store.mark_read(inbox[0].notification_id, user_id=1)
        assert marked.is_read is True
        assert await store.mark_read(404, user_id=1) is None

        unread = await store.list_for_user(1, limit=10, offset=0, unread_only=True)
        assert [n.title for n in unread] == ["first"]


class TestReminders:
    async def test_settings_upsert_and_enabled_listing(self, db):
        tasks = SqlTaskRepository(db)
        repo = SqlReminderRepository(db)
        on = await tasks.insert({"title": "on", "owner_id": 1, "due_date": date(2025, 3, 10)})
        off = await tasks.insert({"title": "off", "owner_id": 1})

        assert await repo.get(on.task_id) is None
        created = await repo.upsert(on.task_id, {"enabled": True})
        assert (created.enabled, created.days_before, created.frequency_per_day) == (True, 3, 1)

        await repo.upsert(off.task_id, {"days_before": 5})
        updated = await repo.upsert(on.task_id, {"frequency_per_day": 2})
        assert updated.frequency_per_day == 2
        assert updated.enabled is True

        assert [r.task_id for r in await repo.list_enabled()] == [on.task_id]

    async def test_reminder_log(self, db):
        task = await SqlTaskRepository(db).insert({"title": "t", "owner_id": 1})
        repo = SqlReminderRepository(db)
        due = date(2025, 3, 10)

        assert await repo.has_sent(task.task_id, 1, due, 1) is False
        await repo.record_sent(
            ReminderSent(task_id=task.task_id, user_id=1, due_date=due, reminder_number=1, days_until_due=2)
        )

        assert await repo.has_sent(task.task_id, 1, due, 1) is True
        assert await repo.has_sent(task.task_id, 1, due, 1, days_until_due=2) is True
        assert await repo.has_sent(task.task_id, 1, due, 1, days_until_due=1) is False
        assert await repo.has_sent(task.task_id, 2, due, 1) is False
        assert await repo.has_sent(task.task_id, 1, date(2025, 3, 11), 1) is False
