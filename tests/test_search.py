"""Tests for scoped search through the Cairn facade and the storage scan."""

import pytest

from cairn.formatting import NO_RESULTS, format_find
from cairn.storage import SCOPE_ANY, escape_like_pattern
from cairn.storage.search_impl import LOCKED_PROJECT_LABEL
from cairn.types import ErrorKind, MemoryType, Permission


def _set_updated_at(storage, memory_id, value):
    with storage._connect() as conn:
        conn.execute("UPDATE memories SET updated_at = ? WHERE id = ?", (value, memory_id))


def _ids(hits):
    return [h.id for h in hits]


@pytest.fixture
def alpha(cairn):
    outcome = cairn.create_project("alpha")
    assert outcome.ok
    return outcome.value


class TestGlobalMode:
    def test_single_flat_result(self, cairn, save):
        note = save(title="Connection timeout handling")
        result = cairn.find("timeout").value
        assert result.scope_name is None
        assert result.fallback == []
        assert _ids(result.in_scope) == [note.id]

    def test_matches_content_path_and_tags(self, cairn, save):
        by_content = save(title="one", content="retry after a Timeout")
        by_path = save(title="two", content="x", path="Network -> Timeouts")
        by_tag = save(title="three", content="x", tags=["timeout"])
        save(title="unrelated", content="nothing here")

        result = cairn.find("timeout").value
        assert set(_ids(result.in_scope)) == {by_content.id, by_path.id, by_tag.id}

    def test_case_insensitive(self, cairn, save):
        note = save(title="Retry Policy")
        assert _ids(cairn.find("RETRY POLICY").value.in_scope) == [note.id]

    def test_type_filter(self, cairn, save):
        save("note", "cache note")
        decision = save("decision", "cache decision")
        result = cairn.find("cache", "decision").value
        assert _ids(result.in_scope) == [decision.id]

    def test_invalid_type_lists_accepted_values(self, cairn):
        outcome = cairn.find("x", "tweet")
        assert outcome.error == ErrorKind.VALIDATION
        assert "anti_pattern" in outcome.accepted
        assert "scratchpad" in outcome.accepted

    def test_no_query_lists_everything_visible(self, cairn, save):
        save(title="first")
        result = cairn.find().value
        # two seeded system skills plus the new note
        assert result.total == 3

    def test_most_recently_updated_first(self, cairn, storage, save):
        older = save(title="sorting a")
        newer = save(title="sorting b")
        _set_updated_at(storage, older.id, 9_000_000_000_000)
        assert _ids(cairn.find("sorting").value.in_scope) == [older.id, newer.id]

    def test_result_cap_from_setting(self, cairn, storage, save):
        for i in range(5):
            save(title=f"capped {i}")
        storage.set_setting("search_default_limit", "2")
        assert len(cairn.find("capped").value.in_scope) == 2

    def test_invalid_cap_falls_back_to_default(self, cairn, storage, save):
        for i in range(3):
            save(title=f"capped {i}")
        storage.set_setting("search_default_limit", "lots")
        assert len(cairn.find("capped").value.in_scope) == 3

    def test_empty_result_message(self, cairn):
        assert format_find(cairn.find("nothing matches this").value) == NO_RESULTS


class TestScopedMode:
    def test_alpha_scenario_in_scope_and_global_fallback(self, cairn, alpha, save):
        inside = save(title="Timeout in alpha", project="alpha")
        floating = save(title="Timeout everywhere", global_scope=True)
        cairn.enter_scope("alpha")

        result = cairn.find("timeout").value
        assert result.scope_name == "alpha"
        assert _ids(result.in_scope) == [inside.id]
        assert len(result.fallback) == 1
        assert result.fallback[0].name == "Global"
        assert _ids(result.fallback[0].items) == [floating.id]

        text = format_find(result)
        assert "## In Project: alpha (1 matches)" in text
        assert "### Global (1)" in text
        assert text.index("In Project") < text.index("### Global")

    def test_other_projects_grouped_alphabetically(self, cairn, alpha, save):
        cairn.create_project("zulu")
        cairn.create_project("bravo")
        save(title="shared term", project="zulu")
        save(title="shared term", project="bravo")
        save(title="shared term", global_scope=True)
        cairn.enter_scope("alpha")

        result = cairn.find("shared term").value
        assert result.in_scope == []
        assert [g.name for g in result.fallback] == ["bravo", "zulu", "Global"]

    def test_fallback_only_shows_elsewhere_heading(self, cairn, alpha, save):
        save(title="only global", global_scope=True)
        cairn.enter_scope("alpha")
        text = format_find(cairn.find("only global").value)
        assert "In Project" not in text
        assert "## Elsewhere (1 matches)" in text

    def test_path_shown_in_rows(self, cairn, save):
        note = save(title="pathy", path=["Ops", "Deploys"])
        text = format_find(cairn.find("pathy").value)
        assert text == f"[M{note.id}] [note] pathy (Ops -> Deploys) — draft"


class TestLockedVisibility:
    """Locked memories never show up in search, in either mode."""

    def test_locked_hidden_globally_and_in_scope(self, cairn, storage, alpha, save):
        visible = save(title="timeout visible", global_scope=True)
        for project_id in (None, alpha.id):
            storage.save_memory(
                project_id,
                MemoryType.NOTE,
                "timeout secret",
                "classified",
                permission=Permission.LOCKED,
            )

        assert _ids(cairn.find("timeout").value.in_scope) == [visible.id]
        cairn.enter_scope("alpha")
        result = cairn.find("timeout").value
        all_ids = _ids(result.in_scope) + [h.id for g in result.fallback for h in g.items]
        assert all_ids == [visible.id]

    def test_locked_direct_read_is_denied(self, cairn, storage):
        locked_id = storage.save_memory(
            None, MemoryType.NOTE, "secret title", "secret body", permission=Permission.LOCKED
        )
        outcome = cairn.get_memory(locked_id)
        assert outcome.error == ErrorKind.PERMISSION_DENIED
        assert "secret" not in outcome.message
        assert outcome.value is None

    def test_locked_project_name_not_used_as_group(self, cairn, storage, alpha, save):
        vault = cairn.create_project("vault", permission="locked").value
        storage.save_memory(vault.id, MemoryType.NOTE, "timeout behind the door", "open note")
        cairn.enter_scope("alpha")

        result = cairn.find("timeout").value
        assert [g.name for g in result.fallback] == [LOCKED_PROJECT_LABEL]
        assert "vault" not in format_find(result)


class TestWildcardEscaping:
    def test_escape_like_pattern(self):
        assert escape_like_pattern("100%") == "100\\%"
        assert escape_like_pattern("a_b") == "a\\_b"
        assert escape_like_pattern("c:\\dir") == "c:\\\\dir"

    def test_percent_is_literal(self, cairn, save):
        literal = save(title="100% coverage")
        save(title="1000 coverage")
        assert _ids(cairn.find("100%").value.in_scope) == [literal.id]

    def test_underscore_is_literal(self, cairn, save):
        literal = save(title="snake_case names")
        save(title="snakeXcase names")
        assert _ids(cairn.find("snake_case").value.in_scope) == [literal.id]

    def test_lone_percent_matches_only_literal_percent(self, storage, save):
        save(title="plain")
        hits = storage.search_memories("%", None, None, SCOPE_ANY, 50)
        assert hits == []

    def test_unknown_scope_filter_rejected(self, storage):
        with pytest.raises(ValueError, match="Unknown scope filter"):
            storage.search_memories("x", None, None, "sideways", 10)
