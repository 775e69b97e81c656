"""Tests for the cairn command line."""

import json

import pytest

from cairn.cli.__main__ import build_parser, main
from cairn.core import Cairn
from cairn.permissions import allow_all
from cairn.storage import SQLiteStorage


@pytest.fixture
def store(db_path):
    """A Cairn on the same file the CLI will open, with one project and note."""
    c = Cairn(storage=SQLiteStorage(db_path=db_path), confirm=allow_all)
    c.create_project("alpha", description="Alpha project")
    c.save_memory("note", "Timeout fix", "raise the timeout", project="alpha", path="Net -> HTTP")
    c.save_memory("note", "Global timeout", "default timeout policy", global_scope=True)
    return c


def run(db_path, *argv):
    main(["--db", str(db_path), *argv])


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_find_type_choices(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["find", "x", "--type", "diary"])


class TestInit:
    def test_creates_store(self, db_path, capsys):
        run(db_path, "init")
        out = capsys.readouterr().out
        assert str(db_path) in out
        assert "memories" in out
        assert "Schema is up to date." in out
        assert db_path.exists()


class TestSettings:
    def test_list_json(self, db_path, capsys):
        run(db_path, "settings", "list", "--json")
        settings = json.loads(capsys.readouterr().out)
        assert settings["search_default_limit"] == "20"

    def test_set_then_get(self, db_path, capsys):
        run(db_path, "settings", "set", "search_default_limit", "5")
        run(db_path, "settings", "get", "search_default_limit")
        out = capsys.readouterr().out.strip().split("\n")
        assert out == ["search_default_limit = 5", "5"]

    def test_get_missing(self, db_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run(db_path, "settings", "get", "no_such_key")
        assert exc_info.value.code == 1
        assert "Setting 'no_such_key' is not set." in capsys.readouterr().out

    def test_set_unknown_key_warns(self, db_path, caplog):
        run(db_path, "settings", "set", "custom_key", "x")
        assert "Setting unknown key 'custom_key'" in caplog.text


class TestScopeCommands:
    def test_find_global(self, store, db_path, capsys):
        run(db_path, "find", "timeout")
        out = capsys.readouterr().out
        assert "Timeout fix (Net -> HTTP)" in out
        assert "Global timeout" in out
        assert "## In Project" not in out

    def test_enter_then_find_is_scoped(self, store, db_path, capsys):
        run(db_path, "enter", "alpha")
        assert "## Project: alpha" in capsys.readouterr().out

        run(db_path, "find", "timeout")
        out = capsys.readouterr().out
        assert "## In Project: alpha (1 matches)" in out
        assert "## Elsewhere (1 matches)" in out
        assert "### Global (1)" in out

    def test_exit(self, store, db_path, capsys):
        run(db_path, "enter", "alpha")
        run(db_path, "exit")
        assert "## Global Mode" in capsys.readouterr().out
        assert store.storage.read_scope().is_global

    def test_enter_unknown_project(self, store, db_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run(db_path, "enter", "nowhere")
        assert exc_info.value.code == 1
        assert 'Project "nowhere" not found.' in capsys.readouterr().out

    def test_find_nothing(self, store, db_path, capsys):
        run(db_path, "find", "zzz-no-match")
        assert "No memories found." in capsys.readouterr().out

    def test_find_json(self, store, db_path, capsys):
        run(db_path, "find", "timeout", "--json")
        data = json.loads(capsys.readouterr().out)
        assert {hit["title"] for hit in data["in_scope"]} == {"Timeout fix", "Global timeout"}

    def test_status_json(self, store, db_path, capsys):
        run(db_path, "enter", "alpha")
        capsys.readouterr()
        run(db_path, "status", "--json")
        data = json.loads(capsys.readouterr().out)
        assert data["project"]["name"] == "alpha"
        assert data["memory_count"] == 1

    def test_status_text(self, store, db_path, capsys):
        run(db_path, "status")
        assert "Cairn Status (global)" in capsys.readouterr().out


class TestRecordCommands:
    def test_show_memory(self, store, db_path, capsys):
        memory = store.save_memory(
            "decision", "Retry budget", "three attempts", project="alpha", tags="net, retry"
        ).value
        run(db_path, "show", str(memory.id))
        out = capsys.readouterr().out
        assert f"# [M{memory.id}] Retry budget" in out
        assert "type: decision | status: draft" in out
        assert "project: alpha" in out
        assert "tags: net, retry" in out
        assert "three attempts" in out

    def test_show_memory_json(self, store, db_path, capsys):
        memory = store.save_memory("note", "Json me", "body", global_scope=True).value
        run(db_path, "show", str(memory.id), "--json")
        data = json.loads(capsys.readouterr().out)
        assert data["title"] == "Json me"
        assert data["project_id"] is None

    def test_show_missing_memory(self, store, db_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run(db_path, "show", "999")
        assert exc_info.value.code == 1

    def test_task_with_subtasks(self, store, db_path, capsys):
        parent = store.create_task("Ship login", project="alpha", description="End to end").value
        child = store.create_task("Write form", parent_id=parent.id).value
        run(db_path, "task", str(parent.id))
        out = capsys.readouterr().out
        assert f"[T{parent.id}] Ship login" in out
        assert "project: alpha" in out
        assert "End to end" in out
        assert "### Subtasks (1)" in out
        assert f"  [T{child.id}] Write form" in out

    def test_task_shows_parent(self, store, db_path, capsys):
        parent = store.create_task("Parent", project="alpha").value
        child = store.create_task("Child", parent_id=parent.id).value
        run(db_path, "task", str(child.id))
        assert f"parent: T{parent.id}" in capsys.readouterr().out

    def test_task_id_must_be_number(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["task", "T7"])


class TestPurge:
    def test_purge_with_yes(self, store, db_path, capsys):
        run(db_path, "purge", "alpha", "--yes")
        assert 'Purged project "alpha": 1 memories, 0 tasks removed.' in capsys.readouterr().out
        assert store.storage.get_project_by_name("alpha") is None

    def test_purge_asks_and_aborts(self, store, db_path, capsys, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda prompt: "n")
        run(db_path, "purge", "alpha")
        assert "Aborted." in capsys.readouterr().out
        assert store.storage.get_project_by_name("alpha") is not None

    def test_purge_confirmed_interactively(self, store, db_path, capsys, monkeypatch):
        prompts = []

        def fake_input(prompt):
            prompts.append(prompt)
            return "yes"

        monkeypatch.setattr("builtins.input", fake_input)
        run(db_path, "purge", "Alpha")
        assert 'Permanently delete project "alpha"' in prompts[0]
        assert store.storage.get_project_by_name("alpha") is None

    def test_purge_unknown(self, store, db_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run(db_path, "purge", "ghost", "--yes")
        assert exc_info.value.code == 1
        assert 'Project "ghost" not found.' in capsys.readouterr().out


class TestFailures:
    def test_migration_failure_exits(self, db_path, monkeypatch):
        from cairn.types import MigrationError

        def broken(*args, **kwargs):
            raise MigrationError("schema step failed")

        monkeypatch.setattr("cairn.cli.__main__.Cairn", broken)
        with pytest.raises(SystemExit) as exc_info:
            run(db_path, "status")
        assert exc_info.value.code == 1
