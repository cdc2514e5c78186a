"""Tests for project CRUD, task linking and membership."""

import pytest

from taskflow.exceptions import AuthorizationError, ConflictError, NotFoundError
from taskflow.schemas.notification import NotificationKind
from taskflow.schemas.project import ProjectCreate, ProjectUpdate
from taskflow.services.project import ProjectService


@pytest.fixture
def service(users, projects, tasks):
    return ProjectService(users=users, projects=projects, tasks=tasks)


class TestCrud:
    async def test_create_starts_with_owner_as_member(self, service):
        result = await service.create_project(1, ProjectCreate(name="  Launch  "))
        project = result.resource
        assert project.name == "Launch"
        assert project.owner_id == 1
        assert project.members == [1]
        assert project.tasks == []

    async def test_create_for_subordinate_only(self, service):
        assert (await service.create_project(3, ProjectCreate(name="p", owner_id=1))).resource.owner_id == 1
        with pytest.raises(AuthorizationError):
            await service.create_project(1, ProjectCreate(name="p", owner_id=3))

    async def test_create_unknown_owner(self, service):
        with pytest.raises(NotFoundError, match="Owner not found"):
            await service.create_project(1, ProjectCreate(name="p", owner_id=404))

    async def test_get_includes_live_tasks(self, service, projects, tasks):
        project = projects.seed(name="p", owner_id=1, members=[1])
        live = tasks.seed(title="live", owner_id=1, project_id=project.project_id)
        tasks.seed(title="gone", owner_id=1, project_id=project.project_id, is_deleted=True)

        detail = await service.get_project(1, project.project_id)
        assert [t.task_id for t in detail.related_tasks] == [live.task_id]

    async def test_get_forbidden_for_outsider(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1])
        with pytest.raises(AuthorizationError, match="view this project"):
            await service.get_project(2, project.project_id)

    async def test_get_missing(self, service):
        with pytest.raises(NotFoundError, match="Project not found"):
            await service.get_project(1, 404)

    async def test_list_scoped_plus_membership(self, service, projects):
        own = projects.seed(name="own", owner_id=3, members=[3])
        team = projects.seed(name="staff in team", owner_id=1, members=[1])
        member = projects.seed(name="invited", owner_id=5, members=[5, 3])
        projects.seed(name="other team", owner_id=7, members=[7])

        listed = await service.list_projects(3)
        assert [p.project_id for p in listed] == [own.project_id, team.project_id, member.project_id]

    async def test_update_owner_only(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1, 2])
        with pytest.raises(AuthorizationError):
            await service.update_project(2, project.project_id, ProjectUpdate(name="x"))

        result = await service.update_project(1, project.project_id, ProjectUpdate(name=" renamed "))
        assert result.resource.name == "renamed"

    async def test_update_nothing(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1])
        result = await service.update_project(1, project.project_id, ProjectUpdate())
        assert result.affected_count == 0


class TestTaskLinks:
    async def test_add_task_links_and_merges_members(self, service, projects, tasks):
        project = projects.seed(name="p", owner_id=1, members=[1])
        task = tasks.seed(title="t", owner_id=1, assignee_id=2, members_id=[7], status="ONGOING")

        result = await service.add_task(1, project.project_id, task.task_id)

        assert result.resource.project_id == project.project_id
        stored = projects.rows[project.project_id]
        assert stored.tasks == [task.task_id]
        assert stored.members == [1, 2, 7]
        assert result.activities[0].payload() == {
            "field": "project_id",
            "from": None,
            "to": project.project_id,
        }

    async def test_add_task_survives_index_failure(self, service, projects, tasks):
        project = projects.seed(name="p", owner_id=1, members=[1])
        task = tasks.seed(title="t", owner_id=1)
        projects.fail_updates = True

        result = await service.add_task(1, project.project_id, task.task_id)
        assert tasks.rows[task.task_id].project_id == project.project_id
        assert result.resource.project_id == project.project_id

    async def test_add_task_requires_task_edit_rights(self, service, projects, tasks):
        project = projects.seed(name="p", owner_id=1, members=[1])
        task = tasks.seed(title="t", owner_id=2)
        with pytest.raises(AuthorizationError, match="modify this task"):
            await service.add_task(1, project.project_id, task.task_id)

    async def test_add_deleted_task(self, service, projects, tasks):
        project = projects.seed(name="p", owner_id=1, members=[1])
        task = tasks.seed(title="t", owner_id=1, is_deleted=True)
        with pytest.raises(NotFoundError):
            await service.add_task(1, project.project_id, task.task_id)

    async def test_remove_task(self, service, projects, tasks):
        project = projects.seed(name="p", owner_id=1, members=[1])
        task = tasks.seed(title="t", owner_id=1, project_id=project.project_id)
        projects.rows[project.project_id] = projects.rows[project.project_id].model_copy(
            update={"tasks": [task.task_id]}
        )

        result = await service.remove_task(1, project.project_id, task.task_id)

        assert result.resource.project_id is None
        assert projects.rows[project.project_id].tasks == []

    async def test_remove_task_not_in_project(self, service, projects, tasks):
        project = projects.seed(name="p", owner_id=1, members=[1])
        task = tasks.seed(title="t", owner_id=1)
        with pytest.raises(NotFoundError, match="Task not found in this project"):
            await service.remove_task(1, project.project_id, task.task_id)


class TestMembers:
    async def test_add_member_notifies(self, service, projects):
        project = projects.seed(name="Launch", owner_id=1, members=[1])
        result = await service.add_member(1, project.project_id, 2)

        assert result.resource.members == [1, 2]
        (notification,) = result.notifications
        assert notification.kind == NotificationKind.MEMBER_ADDED
        assert notification.recipient_ids == [2]
        assert notification.context["project_name"] == "Launch"

    async def test_add_member_owner_only(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1, 2])
        with pytest.raises(AuthorizationError, match="Only project owner"):
            await service.add_member(2, project.project_id, 7)

    async def test_add_existing_member(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1, 2])
        with pytest.raises(ConflictError, match="already a member"):
            await service.add_member(1, project.project_id, 2)

    async def test_add_unknown_user(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1])
        with pytest.raises(NotFoundError, match="User not found"):
            await service.add_member(1, project.project_id, 404)

    async def test_remove_member(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1, 2])
        result = await service.remove_member(1, project.project_id, 2)
        assert result.resource.members == [1]

    async def test_cannot_remove_owner(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1, 2])
        with pytest.raises(ConflictError, match="Cannot remove project owner"):
            await service.remove_member(1, project.project_id, 1)

    async def test_cannot_remove_non_member(self, service, projects):
        project = projects.seed(name="p", owner_id=1, members=[1])
        with pytest.raises(NotFoundError, match="not a member"):
            await service.remove_member(1, project.project_id, 2)

    async def test_cannot_remove_involved_member(self, service, projects, tasks):
        project = projects.seed(name="p", owner_id=1, members=[1, 2])
        tasks.seed(title="t", owner_id=1, assignee_id=2, status="ONGOING", project_id=project.project_id)
        with pytest.raises(ConflictError, match="Bob Staff cannot be removed"):
            await service.remove_member(1, project.project_id, 2)
