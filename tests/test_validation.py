"""Tests for cairn.validation input helpers."""

import pytest

from cairn.types import ValidationError
from cairn.validation import (
    DEFAULT_SEARCH_LIMIT,
    MAX_SEARCH_LIMIT,
    clamp_search_limit,
    is_true,
    normalize_path,
    normalize_project_name,
    normalize_stack,
    normalize_tags,
    sanitize_optional,
    sanitize_string,
)


class TestSanitizeString:
    def test_strips_control_characters(self):
        assert sanitize_string("a\x00b\x07c\n\td", "field") == "abc\n\td"

    def test_rejects_non_string(self):
        with pytest.raises(ValidationError, match="must be a string"):
            sanitize_string(42, "title")

    def test_rejects_blank_when_required(self):
        with pytest.raises(ValidationError, match="title cannot be empty"):
            sanitize_string("   ", "title")

    def test_optional_none_is_empty(self):
        assert sanitize_string(None, "x", required=False) == ""

    def test_too_long(self):
        with pytest.raises(ValidationError, match="too long"):
            sanitize_string("x" * 11, "title", max_length=10)

    def test_sanitize_optional_blank_is_none(self):
        assert sanitize_optional("   ", "description", 10) is None
        assert sanitize_optional(" hi ", "description", 10) == "hi"


class TestNormalizeProjectName:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Alpha", "alpha"),
            ("Nakatomi Plaza", "nakatomi-plaza"),
            ("a__b  c", "a-b-c"),
            ("über-app", "ber-app"),
            ("-x-", "x"),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert normalize_project_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "!!!", "---"])
    def test_unusable(self, raw):
        with pytest.raises(ValidationError):
            normalize_project_name(raw)


class TestNormalizeTags:
    def test_comma_string(self):
        assert normalize_tags("Auth, API,,auth ") == ["auth", "api"]

    def test_list_keeps_first_appearance_order(self):
        assert normalize_tags(["b", "A", "a", "c"]) == ["b", "a", "c"]

    def test_none(self):
        assert normalize_tags(None) == []


class TestNormalizePath:
    def test_display_string(self):
        assert normalize_path("Backend->Auth ->  Tokens") == "Backend -> Auth -> Tokens"

    def test_segments(self):
        assert normalize_path(["Backend", "Auth"]) == "Backend -> Auth"

    @pytest.mark.parametrize("empty", [None, "", "  ", []])
    def test_empty_is_none(self, empty):
        assert normalize_path(empty) is None

    def test_empty_segment_rejected(self):
        with pytest.raises(ValidationError, match="path segments cannot be empty"):
            normalize_path("A -> -> B")


def test_normalize_stack():
    assert normalize_stack("python, , htmx") == ["python", "htmx"]
    assert normalize_stack(None) == []


class TestClampSearchLimit:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, DEFAULT_SEARCH_LIMIT),
            ("5", 5),
            (" 7 ", 7),
            ("0", 1),
            ("-3", 1),
            ("100000", MAX_SEARCH_LIMIT),
        ],
    )
    def test_bounds(self, raw, expected):
        assert clamp_search_limit(raw) == expected

    def test_garbage_logs_and_defaults(self, caplog):
        assert clamp_search_limit("lots") == DEFAULT_SEARCH_LIMIT
        assert "Invalid search_default_limit" in caplog.text


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("true", True),
        ("TRUE ", True),
        ("1", True),
        ("yes", True),
        ("false", False),
        ("", False),
        (None, False),
    ],
)
def test_is_true(raw, expected):
    assert is_true(raw) is expected
