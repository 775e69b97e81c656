"""Tests for project operations and the storage-level purge."""

import pytest

from cairn.core import Cairn, SETTABLE_PROJECT_STATUSES
from cairn.types import ErrorKind, Permission, ProjectStatus


def _ok(outcome):
    assert outcome.ok, outcome.message
    return outcome.value


class TestCreateProject:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Nakatomi Plaza", "nakatomi-plaza"),
            ("my_cool  app", "my-cool-app"),
            ("--Edge--Case--", "edge-case"),
            ("api.v2!", "apiv2"),
        ],
    )
    def test_name_normalized(self, cairn, raw, expected):
        assert _ok(cairn.create_project(raw)).name == expected

    def test_message_and_fields(self, cairn):
        outcome = cairn.create_project("web", description="  Site  ", stack="python, htmx")
        project = outcome.value
        assert outcome.message == f"Project created: [P{project.id}] web"
        assert project.description == "Site"
        assert project.stack == ["python", "htmx"]
        assert project.status == ProjectStatus.ACTIVE
        assert project.permission == Permission.GUARDED

    def test_duplicate_after_normalization(self, cairn, project):
        outcome = cairn.create_project("ALPHA")
        assert outcome.error == ErrorKind.VALIDATION
        assert 'Project "alpha" already exists.' == outcome.message

    def test_unusable_name(self, cairn):
        assert cairn.create_project("!!!").error == ErrorKind.VALIDATION

    def test_cannot_create_deleted(self, cairn):
        outcome = cairn.create_project("ghost", status="deleted")
        assert outcome.error == ErrorKind.VALIDATION
        assert outcome.accepted == SETTABLE_PROJECT_STATUSES

    def test_invalid_status_lists_accepted(self, cairn):
        outcome = cairn.create_project("x", status="finished")
        assert "completed" in outcome.accepted


class TestUpdateProject:
    def test_guarded_update(self, cairn, confirmations, project):
        updated = _ok(cairn.update_project("alpha", description="New", stack=["go"]))
        assert updated.description == "New"
        assert updated.stack == ["go"]
        assert confirmations.calls[-1][0] == "cairn_update"

    def test_rejected_update_changes_nothing(self, cairn, confirmations, storage, project):
        confirmations.answer = False
        outcome = cairn.update_project("alpha", description="New")
        assert outcome.error == ErrorKind.CONFIRMATION_REJECTED
        assert storage.get_project(project.id).description == "Alpha project"

    def test_read_only_project(self, cairn, storage):
        _ok(cairn.create_project("frozen", permission="read_only"))
        outcome = cairn.update_project("frozen", description="x")
        assert outcome.error == ErrorKind.PERMISSION_DENIED

    def test_locked_project(self, cairn):
        _ok(cairn.create_project("vault", permission="locked"))
        outcome = cairn.update_project("vault", description="x")
        assert outcome.error == ErrorKind.PERMISSION_DENIED
        assert "vault" not in outcome.message

    def test_set_status(self, cairn, project):
        assert _ok(cairn.set_project_status("alpha", "paused")).status == ProjectStatus.PAUSED

    def test_status_deleted_refused(self, cairn, project):
        outcome = cairn.set_project_status("alpha", "deleted")
        assert outcome.error == ErrorKind.VALIDATION

    def test_default_memory_permission(self, cairn, project, save):
        _ok(cairn.update_project("alpha", default_memory_permission="read_only"))
        assert save(title="x", project="alpha").permission == Permission.READ_ONLY

    def test_nothing_to_update(self, cairn, project):
        assert cairn.update_project("alpha").error == ErrorKind.VALIDATION

    def test_unknown(self, cairn):
        assert cairn.update_project("nope", description="x").error == ErrorKind.NOT_FOUND


class TestDeleteProject:
    def test_soft_delete_keeps_contents(self, cairn, storage, project, save):
        note = save(title="survivor", project="alpha")
        _ok(cairn.create_task("still here", project="alpha"))
        outcome = cairn.delete_project("alpha")
        assert outcome.message == 'Project "alpha" deleted.'
        assert storage.get_project(project.id).status == ProjectStatus.DELETED
        assert storage.get_memory(note.id) is not None
        assert storage.count_tasks_by_status(project.id)["todo"] == 1

    def test_deleted_hidden_from_listing(self, cairn, project):
        cairn.create_project("beta")
        cairn.delete_project("alpha")
        assert [p.name for p in _ok(cairn.list_projects())] == ["beta"]

    def test_delete_active_project_returns_to_global(self, cairn, storage, project):
        cairn.enter_scope("alpha")
        _ok(cairn.delete_project("alpha"))
        assert storage.read_scope().is_global

    def test_delete_twice(self, cairn, project):
        cairn.delete_project("alpha")
        assert cairn.delete_project("alpha").error == ErrorKind.VALIDATION

    def test_rejected_delete(self, cairn, confirmations, storage, project):
        confirmations.answer = False
        assert cairn.delete_project("alpha").error == ErrorKind.CONFIRMATION_REJECTED
        assert storage.get_project(project.id).status == ProjectStatus.ACTIVE

    def test_name_stays_taken(self, cairn, project):
        cairn.delete_project("alpha")
        assert cairn.create_project("alpha").error == ErrorKind.VALIDATION


class TestListProjects:
    def test_locked_hidden(self, cairn, project):
        cairn.create_project("vault", permission="locked")
        assert [p.name for p in _ok(cairn.list_projects())] == ["alpha"]


class TestPurge:
    def test_facade_has_no_purge(self):
        assert not hasattr(Cairn, "purge_project")

    def test_purge_removes_everything(self, cairn, storage, project, save):
        save(title="one", project="alpha")
        save(title="two", project="alpha")
        parent = _ok(cairn.create_task("parent", project="alpha"))
        _ok(cairn.create_task("child", parent_id=parent.id))

        counts = storage.purge_project(project.id)
        assert counts == {"projects": 1, "memories": 2, "tasks": 2}
        assert storage.get_project(project.id) is None
        assert storage.count_memories(project.id) == 0
        assert storage.get_task(parent.id) is None

    def test_purge_clears_active_pointer(self, cairn, storage, project):
        cairn.enter_scope("alpha")
        storage.purge_project(project.id)
        assert storage.read_scope().is_global
