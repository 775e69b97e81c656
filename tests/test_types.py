"""Tests for cairn.types helpers."""

import pytest

from cairn.types import (
    VALID_MEMORY_TYPE_VALUES,
    VALID_PERMISSION_VALUES,
    ErrorKind,
    MemoryType,
    NotFoundError,
    Outcome,
    Permission,
    TaskPriority,
    ValidationError,
    coerce_enum,
    parse_enum,
)


class TestParseEnum:
    def test_member_passes_through(self):
        assert parse_enum(Permission, Permission.OPEN, "permission") is Permission.OPEN

    def test_string_value_trimmed(self):
        assert parse_enum(TaskPriority, " high ", "priority") is TaskPriority.HIGH

    def test_invalid_lists_accepted_values(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_enum(Permission, "secret", "permission")
        err = exc_info.value
        assert err.kind == ErrorKind.VALIDATION
        assert err.accepted == ["open", "guarded", "read_only", "locked"]
        assert "Accepted values: open, guarded, read_only, locked" in err.message

    def test_non_string_rejected(self):
        with pytest.raises(ValidationError):
            parse_enum(MemoryType, 3, "type")

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_enum(MemoryType, "diary", "type")


def test_coerce_enum_falls_back():
    assert coerce_enum(Permission, "bogus", Permission.GUARDED) is Permission.GUARDED
    assert coerce_enum(Permission, "open", Permission.GUARDED) is Permission.OPEN


def test_value_sets_match_enums():
    assert "scratchpad" in VALID_MEMORY_TYPE_VALUES
    assert VALID_PERMISSION_VALUES == {"open", "guarded", "read_only", "locked"}


class TestOutcome:
    def test_success(self):
        outcome = Outcome.success(5, message="done")
        assert outcome.ok
        assert outcome.value == 5
        assert outcome.error is None
        assert outcome.bypassed is False

    def test_failure_carries_kind_and_message(self):
        outcome = Outcome.failure(NotFoundError("Task [T9] not found."))
        assert not outcome.ok
        assert outcome.value is None
        assert outcome.error == ErrorKind.NOT_FOUND
        assert outcome.message == "Task [T9] not found."

    def test_failure_keeps_accepted_values(self):
        outcome = Outcome.failure(ValidationError("bad", accepted=["a", "b"]))
        assert outcome.accepted == ["a", "b"]
