"""Tests for task creation, edits, the status gate, delete/restore and recurrence."""

from datetime import date

import pytest

from taskflow.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from taskflow.schemas.notification import NotificationKind
from taskflow.schemas.records import TaskStatus
from taskflow.schemas.task import CommentCreate, SubtaskCreate, TaskCreate, TaskUpdate
from taskflow.services.task_lifecycle import TaskLifecycleService, resolve_status


@pytest.fixture
def service(users, tasks, projects, settings):
    return TaskLifecycleService(users=users, tasks=tasks, projects=projects, settings=settings)


def assert_status_matches_assignee(task):
    assert (task.status == TaskStatus.UNASSIGNED) == (task.assignee_id is None)


# =============================================================================
# Status gate
# =============================================================================


class TestResolveStatus:
    def test_no_assignee_forces_unassigned(self):
        assert resolve_status(TaskStatus.ONGOING, 1, None, None) == TaskStatus.UNASSIGNED

    def test_no_assignee_rejects_other_status(self):
        with pytest.raises(ConflictError, match="Assign someone before changing status"):
            resolve_status(TaskStatus.UNASSIGNED, None, None, TaskStatus.ONGOING)

    def test_new_assignee_promotes_to_ongoing(self):
        assert resolve_status(TaskStatus.UNASSIGNED, None, 2, None) == TaskStatus.ONGOING
        assert resolve_status(TaskStatus.UNASSIGNED, None, 2, TaskStatus.UNASSIGNED) == TaskStatus.ONGOING

    def test_new_assignee_keeps_explicit_status(self):
        assert resolve_status(TaskStatus.UNASSIGNED, None, 2, TaskStatus.UNDER_REVIEW) == TaskStatus.UNDER_REVIEW

    def test_assigned_task_keeps_status(self):
        assert resolve_status(TaskStatus.UNDER_REVIEW, 2, 3, None) == TaskStatus.UNDER_REVIEW

    def test_assigned_task_cannot_be_marked_unassigned(self):
        with pytest.raises(ConflictError, match="Remove the assignee"):
            resolve_status(TaskStatus.ONGOING, 2, 2, TaskStatus.UNASSIGNED)


# =============================================================================
# Creation
# =============================================================================


class TestCreateTask:
    async def test_manager_creates_and_assigns_to_staff(self, service):
        result = await service.create_task(3, TaskCreate(title="Quarterly audit", assignee_id=1))

        task = result.resource
        assert task.owner_id == 3
        assert task.status == TaskStatus.ONGOING
        assert [a.type for a in result.activities] == ["task_created", "reassigned"]
        assert len(result.notifications) == 1
        assert result.notifications[0].kind == NotificationKind.TASK_ASSIGNED
        assert result.notifications[0].recipient_ids == [1]

    async def test_unassigned_task_starts_unassigned(self, service):
        result = await service.create_task(1, TaskCreate(title="  Draft  "))
        assert result.resource.status == TaskStatus.UNASSIGNED
        assert result.resource.title == "Draft"
        assert result.notifications == []

    async def test_status_without_assignee_rejected(self, service, tasks):
        with pytest.raises(ConflictError):
            await service.create_task(1, TaskCreate(title="t", status="ONGOING"))
        assert tasks.rows == {}

    async def test_create_for_higher_or_equal_level_rejected(self, service):
        with pytest.raises(AuthorizationError, match="create task for this owner"):
            await service.create_task(1, TaskCreate(title="t", owner_id=2))

    async def test_create_for_subordinate(self, service):
        result = await service.create_task(5, TaskCreate(title="t", owner_id=3))
        assert result.resource.owner_id == 3

    async def test_owner_cannot_be_member(self, service):
        with pytest.raises(ValidationError, match="Owner cannot be a member"):
            await service.create_task(1, TaskCreate(title="t", members_id=[2, 1]))

    async def test_unknown_member(self, service):
        with pytest.raises(NotFoundError, match="User 99 not found"):
            await service.create_task(1, TaskCreate(title="t", members_id=[99]))

    async def test_unknown_assignee(self, service):
        with pytest.raises(NotFoundError, match="Assignee not found"):
            await service.create_task(1, TaskCreate(title="t", assignee_id=99))

    async def test_members_notified_except_actor(self, service):
        result = await service.create_task(3, TaskCreate(title="t", members_id=[1, 2]))
        kinds = [(n.kind, n.recipient_ids) for n in result.notifications]
        assert kinds == [(NotificationKind.MEMBER_ADDED, [1, 2])]

    async def test_recurring_requires_type_and_due_date(self, service, due):
        with pytest.raises(ValidationError, match="recurrence_type"):
            await service.create_task(1, TaskCreate(title="t", is_recurring=True, due_date=due))
        with pytest.raises(ValidationError, match="due_date"):
            await service.create_task(1, TaskCreate(title="t", is_recurring=True, recurrence_type="daily"))

    async def test_recurring_sets_next_due_date(self, service, due):
        result = await service.create_task(
            1,
            TaskCreate(title="t", is_recurring=True, recurrence_type="weekly", due_date=due),
        )
        assert result.resource.is_recurring
        assert result.resource.recurrence_type == "weekly"
        assert result.resource.next_due_date == date(2025, 3, 17)

    async def test_project_must_be_visible(self, service, projects):
        project = projects.seed(name="Private", owner_id=2, members=[2])
        with pytest.raises(AuthorizationError, match="add tasks to this project"):
            await service.create_task(1, TaskCreate(title="t", project_id=project.project_id))

    async def test_task_indexed_in_project(self, service, projects):
        project = projects.seed(name="Shared", owner_id=2, members=[2, 1])
        result = await service.create_task(1, TaskCreate(title="t", project_id=project.project_id))
        assert projects.rows[project.project_id].tasks == [result.resource.task_id]

    async def test_unknown_project(self, service):
        with pytest.raises(NotFoundError, match="Project not found"):
            await service.create_task(1, TaskCreate(title="t", project_id=404))

    async def test_unknown_actor(self, service):
        with pytest.raises(NotFoundError, match="Acting user not found"):
            await service.create_task(404, TaskCreate(title="t"))


class TestCreateSubtask:
    async def test_inherits_priority_and_project(self, service, tasks, projects, due):
        project = projects.seed(name="P", owner_id=1, members=[1])
        parent = tasks.seed(title="parent", owner_id=1, priority_bucket=2, project_id=project.project_id)

        result = await service.create_subtask(1, parent.task_id, SubtaskCreate(title="child", due_date=due))

        child = result.resource
        assert child.parent_task_id == parent.task_id
        assert child.priority_bucket == 2
        assert child.project_id == project.project_id
        assert result.activities[0].payload()["parent_task_id"] == parent.task_id

    async def test_due_date_required(self, service, tasks):
        parent = tasks.seed(title="parent", owner_id=1)
        with pytest.raises(ValidationError, match="due_date is required"):
            await service.create_subtask(1, parent.task_id, SubtaskCreate(title="child"))

    async def test_parent_must_be_visible(self, service, tasks, due):
        parent = tasks.seed(title="parent", owner_id=2)
        with pytest.raises(AuthorizationError):
            await service.create_subtask(1, parent.task_id, SubtaskCreate(title="c", due_date=due))

    async def test_deleted_parent_not_found(self, service, tasks, due):
        parent = tasks.seed(title="parent", owner_id=1, is_deleted=True)
        with pytest.raises(NotFoundError):
            await service.create_subtask(1, parent.task_id, SubtaskCreate(title="c", due_date=due))


# =============================================================================
# Edits
# =============================================================================


class TestUpdateTask:
    async def test_level_one_peer_cannot_change_status(self, service, tasks):
        task = tasks.seed(title="peer task", owner_id=4, assignee_id=4, status="ONGOING")

        with pytest.raises(AuthorizationError):
            await service.update_status(3, task.task_id, "COMPLETED")

        assert tasks.rows[task.task_id] == task

    async def test_assigning_promotes_to_ongoing(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1)
        result = await service.update_task(1, task.task_id, TaskUpdate(assignee_id=2))

        assert result.resource.status == TaskStatus.ONGOING
        assert [a.type for a in result.activities] == ["status_changed", "reassigned"]
        assert [n.kind for n in result.notifications] == [
            NotificationKind.TASK_ASSIGNED,
            NotificationKind.TASK_STATUS_CHANGED,
        ]

    async def test_removing_assignee_resets_status(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, assignee_id=2, status="UNDER_REVIEW")
        result = await service.update_task(
            1, task.task_id, TaskUpdate.model_validate({"assignee_id": None})
        )

        assert result.resource.assignee_id is None
        assert result.resource.status == TaskStatus.UNASSIGNED
        kinds = [n.kind for n in result.notifications]
        assert NotificationKind.TASK_UNASSIGNED in kinds

    async def test_status_change_without_assignee_rejected(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(ConflictError, match="Assign someone"):
            await service.update_status(1, task.task_id, "ONGOING")

    async def test_unassigned_with_assignee_rejected(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, assignee_id=2, status="ONGOING")
        with pytest.raises(ConflictError, match="Remove the assignee"):
            await service.update_status(1, task.task_id, "UNASSIGNED")

    async def test_status_change_notifies_participants_but_not_actor(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, assignee_id=2, members_id=[7], status="ONGOING")
        result = await service.update_status(7, task.task_id, "UNDER_REVIEW")

        (notification,) = result.notifications
        assert notification.kind == NotificationKind.TASK_STATUS_CHANGED
        assert notification.recipient_ids == [1, 2]
        assert notification.context["old_status"] == "ONGOING"
        assert notification.context["new_status"] == "UNDER_REVIEW"

    async def test_legacy_status_accepted(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, assignee_id=1, status="IN_PROGRESS")
        assert task.status == TaskStatus.ONGOING
        result = await service.update_status(1, task.task_id, "DONE")
        assert result.resource.status == TaskStatus.COMPLETED

    async def test_unknown_status(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, assignee_id=1, status="ONGOING")
        with pytest.raises(ValidationError, match="Invalid status: BOGUS"):
            await service.update_status(1, task.task_id, "BOGUS")

    async def test_empty_update_rejected(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(ValidationError, match="No editable fields"):
            await service.update_task(1, task.task_id, TaskUpdate())

    async def test_unchanged_values_are_no_op(self, service, tasks):
        task = tasks.seed(title="same", owner_id=1)
        result = await service.update_task(1, task.task_id, TaskUpdate(title="same"))
        assert result.affected_count == 0
        assert not result.has_side_effects

    async def test_plain_field_edits_recorded(self, service, tasks, due):
        task = tasks.seed(title="old", owner_id=1)
        result = await service.update_task(1, task.task_id, TaskUpdate(title="new", due_date=due))

        payloads = [a.payload() for a in result.activities]
        assert {"field": "title", "from": "old", "to": "new"} in payloads
        assert {"field": "due_date", "from": None, "to": "2025-03-10"} in payloads

    async def test_member_can_edit_title(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, members_id=[2])
        result = await service.update_task(2, task.task_id, TaskUpdate(title="renamed"))
        assert result.resource.title == "renamed"

    async def test_outsider_cannot_edit(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(AuthorizationError):
            await service.update_task(2, task.task_id, TaskUpdate(title="x"))


class TestPriority:
    async def test_owner_changes_priority(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, priority_bucket=5)
        result = await service.update_priority(1, task.task_id, 2)

        assert result.resource.priority_bucket == 2
        assert result.activities[0].payload() == {"field": "priority_bucket", "from": 5, "to": 2}

    @pytest.mark.parametrize("actor_id", [2, 5, 6])
    async def test_non_owner_editors_rejected(self, service, tasks, actor_id):
        # 2 is a member, 5 and 6 outrank the owner; all may edit other fields
        task = tasks.seed(title="t", owner_id=1, members_id=[2], priority_bucket=5)

        with pytest.raises(AuthorizationError, match="Only the task owner"):
            await service.update_priority(actor_id, task.task_id, 1)
        with pytest.raises(AuthorizationError, match="Only the task owner"):
            await service.update_task(actor_id, task.task_id, TaskUpdate(priority_bucket=1))

        assert tasks.rows[task.task_id].priority_bucket == 5

    async def test_general_edit_with_unchanged_priority_still_owner_only(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, members_id=[2], priority_bucket=5)
        with pytest.raises(AuthorizationError, match="Only the task owner"):
            await service.update_task(2, task.task_id, TaskUpdate(title="x", priority_bucket=5))
        assert tasks.rows[task.task_id].title == "t"

        result = await service.update_task(2, task.task_id, TaskUpdate(title="x"))
        assert result.resource.title == "x"

    @pytest.mark.parametrize("value", [0, 11, "3", 2.5, True, None])
    async def test_invalid_priority(self, service, tasks, value):
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(ValidationError, match="between 1 and 10"):
            await service.update_priority(1, task.task_id, value)


class TestOwnerReassignment:
    async def test_manager_hands_task_to_member(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, members_id=[2])
        result = await service.update_task(3, task.task_id, TaskUpdate(owner_id=2))

        assert result.resource.owner_id == 2
        assert 2 not in result.resource.members_id

    async def test_cannot_assign_to_peer_or_higher(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, members_id=[3])
        with pytest.raises(AuthorizationError, match="assign this owner"):
            await service.update_task(3, task.task_id, TaskUpdate(owner_id=4))

    async def test_members_update_cannot_include_owner(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(ValidationError, match="Owner cannot be a member"):
            await service.update_task(1, task.task_id, TaskUpdate(members_id=[1, 2]))


# =============================================================================
# Comments
# =============================================================================


class TestComments:
    async def test_mentions_filtered_and_notified(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1, members_id=[2])
        result = await service.add_comment(
            2, task.task_id, CommentCreate(comment="ping @alice", mentions=[1, 99, 2, 1])
        )

        (activity,) = result.activities
        assert activity.payload() == {"comment_preview": "ping @alice", "mentions": [1, 2]}
        (notification,) = result.notifications
        assert notification.kind == NotificationKind.COMMENT_MENTION
        assert notification.recipient_ids == [1]

    async def test_preview_truncated(self, service, tasks, settings):
        task = tasks.seed(title="t", owner_id=1)
        long_comment = "x" * (settings.comment_preview_length + 50)
        result = await service.add_comment(1, task.task_id, CommentCreate(comment=long_comment))
        assert len(result.activities[0].payload()["comment_preview"]) == settings.comment_preview_length

    async def test_blank_comment_rejected(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(ValidationError, match="comment is required"):
            await service.add_comment(1, task.task_id, CommentCreate(comment="   "))

    async def test_outsider_cannot_comment(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(AuthorizationError):
            await service.add_comment(2, task.task_id, CommentCreate(comment="hi"))


# =============================================================================
# Delete / restore
# =============================================================================


@pytest.fixture
def tree(tasks):
    """root(1) -> a(2) -> a1(3); root -> b(4, already deleted) -> b1(5)."""
    root = tasks.seed(title="root", owner_id=1)
    a = tasks.seed(title="a", owner_id=1, parent_task_id=root.task_id)
    a1 = tasks.seed(title="a1", owner_id=2, parent_task_id=a.task_id)
    b = tasks.seed(title="b", owner_id=1, parent_task_id=root.task_id, is_deleted=True, deleted_by=2)
    b1 = tasks.seed(title="b1", owner_id=1, parent_task_id=b.task_id)
    return root, a, a1, b, b1


class TestDelete:
    async def test_cascade_shares_timestamp_and_actor(self, service, tasks, tree):
        root, a, a1, b, b1 = tree
        result = await service.delete_task(1, root.task_id)

        deleted_ids = [root.task_id, a.task_id, a1.task_id, b1.task_id]
        assert result.affected_count == 4
        assert tasks.soft_delete_calls == [deleted_ids]
        rows = [tasks.rows[i] for i in deleted_ids]
        assert all(r.is_deleted for r in rows)
        assert len({r.deleted_at for r in rows}) == 1
        assert {r.deleted_by for r in rows} == {1}
        # Previously deleted child keeps its own deletion record
        assert tasks.rows[b.task_id].deleted_by == 2

    async def test_cascade_activity_entries(self, service, tree):
        root, a, a1, _, b1 = tree
        result = await service.delete_task(1, root.task_id)

        payloads = {a.task_id: a.payload() for a in result.activities}
        assert payloads[root.task_id] == {"cascade_root_id": None}
        assert payloads[a1.task_id] == {"cascade_root_id": root.task_id}
        assert len(result.activities) == 4

    async def test_only_owner_deletes(self, service, tree):
        root = tree[0]
        with pytest.raises(AuthorizationError, match="Only the task owner"):
            await service.delete_task(5, root.task_id)

    async def test_already_deleted(self, service, tree):
        b = tree[3]
        with pytest.raises(ConflictError, match="already deleted"):
            await service.delete_task(1, b.task_id)

    async def test_leaf_delete(self, service, tasks, tree):
        a1 = tree[2]
        result = await service.delete_task(2, a1.task_id)
        assert result.affected_count == 1


class TestRestore:
    async def test_restore_does_not_touch_descendants(self, service, tasks, tree):
        root, a, a1, _, b1 = tree
        await service.delete_task(1, root.task_id)

        result = await service.restore_task(1, root.task_id)

        assert result.resource.is_deleted is False
        assert result.resource.deleted_at is None
        assert result.resource.deleted_by is None
        assert all(tasks.rows[t.task_id].is_deleted for t in (a, a1, b1))
        assert result.activities[0].type == "task_restored"

    async def test_deleter_can_restore(self, service, tasks, tree):
        b = tree[3]
        result = await service.restore_task(2, b.task_id)
        assert not result.resource.is_deleted

    async def test_others_cannot_restore(self, service, tree):
        b = tree[3]
        with pytest.raises(AuthorizationError):
            await service.restore_task(6, b.task_id)

    async def test_restore_live_task(self, service, tree):
        with pytest.raises(ConflictError, match="not deleted"):
            await service.restore_task(1, tree[0].task_id)


# =============================================================================
# Recurrence through the status gate
# =============================================================================


def recurring_task(tasks, due_date, recurrence_type="daily", interval=1, end=None):
    return tasks.seed(
        title="recurring",
        owner_id=1,
        assignee_id=1,
        status="ONGOING",
        due_date=due_date,
        is_recurring=True,
        recurrence_type=recurrence_type,
        recurrence_interval=interval,
        recurrence_end_date=end,
    )


class TestRecurrenceOnCompletion:
    async def test_daily_spawns_next_day(self, service, tasks, due):
        task = recurring_task(tasks, due)
        result = await service.update_status(1, task.task_id, "COMPLETED")

        assert result.resource.status == TaskStatus.COMPLETED
        assert result.recurring_instance is not None
        assert result.recurring_instance.due_date == date(2025, 3, 11)
        instances = [t for t in tasks.rows.values() if t.parent_recurring_task_id == task.task_id]
        assert len(instances) == 1
        types = [a.type for a in result.activities]
        assert types == ["status_changed", "task_created"]

    async def test_no_instance_on_end_date(self, service, tasks, due):
        task = recurring_task(tasks, due, end=date(2025, 3, 11))
        result = await service.update_status(1, task.task_id, "COMPLETED")
        assert result.recurring_instance is None
        assert len(tasks.rows) == 1

    async def test_monthly_end_of_month(self, service, tasks):
        task = recurring_task(tasks, date(2025, 1, 31), recurrence_type="monthly")
        result = await service.update_status(1, task.task_id, "COMPLETED")
        assert result.recurring_instance.due_date == date(2025, 2, 28)

    async def test_custom_zero_interval(self, service, tasks, due):
        task = recurring_task(tasks, due, recurrence_type="custom", interval=0)
        result = await service.update_status(1, task.task_id, "COMPLETED")
        assert result.recurring_instance is None

    async def test_spawn_failure_surfaces_after_completion(self, service, tasks, due):
        task = recurring_task(tasks, due)
        tasks.fail_inserts_after = 0
        with pytest.raises(StoreError):
            await service.update_status(1, task.task_id, "COMPLETED")
        assert len(tasks.rows) == 1
        assert tasks.rows[task.task_id].status == TaskStatus.COMPLETED

    async def test_already_completed_does_not_respawn(self, service, tasks, due):
        task = recurring_task(tasks, due)
        await tasks.update(task.task_id, {"status": "COMPLETED"})
        result = await service.update_task(1, task.task_id, TaskUpdate(title="renamed"))
        assert result.recurring_instance is None


class TestStopRecurrence:
    async def test_owner_stops(self, service, tasks, due):
        task = recurring_task(tasks, due)
        result = await service.stop_recurrence(1, task.task_id)

        assert result.resource.is_recurring is False
        assert result.resource.next_due_date is None
        assert result.activities[0].payload() == {"field": "is_recurring", "from": True, "to": False}

    async def test_non_owner_rejected(self, service, tasks, due):
        task = recurring_task(tasks, due)
        with pytest.raises(AuthorizationError):
            await service.stop_recurrence(5, task.task_id)

    async def test_not_recurring(self, service, tasks):
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(ConflictError, match="not recurring"):
            await service.stop_recurrence(1, task.task_id)


# =============================================================================
# Consistency across a sequence of mutations
# =============================================================================


async def test_state_stays_consistent_across_mutations(service, tasks, due):
    result = await service.create_task(3, TaskCreate(title="t", owner_id=1, members_id=[2]))
    task_id = result.resource.task_id
    steps = [
        TaskUpdate(assignee_id=2),
        TaskUpdate(status="UNDER_REVIEW"),
        TaskUpdate(owner_id=2),
        TaskUpdate.model_validate({"assignee_id": None}),
        TaskUpdate(assignee_id=1, members_id=[7]),
        TaskUpdate(status="COMPLETED"),
    ]
    for step in steps:
        updated = (await service.update_task(3, task_id, step)).resource
        assert_status_matches_assignee(updated)
        assert updated.owner_id not in updated.members_id
