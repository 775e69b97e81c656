"""Input validation and normalization helpers for Cairn.

Everything a caller supplies passes through here before the storage layer
sees it:

- ``sanitize_string`` strips control characters and enforces length limits
- ``normalize_project_name`` produces the canonical project name
- ``normalize_tags`` / ``normalize_path`` canonicalize classification input
- ``clamp_search_limit`` turns the ``search_default_limit`` setting into a
  usable bound
"""

import logging
import re
from typing import Any, Iterable, List, Optional, Union

from cairn.types import ValidationError

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_PROJECT_NAME_LENGTH = 100
MAX_PROJECT_DESCRIPTION_LENGTH = 500
MAX_TASK_DESCRIPTION_LENGTH = 2000
MAX_CONTENT_LENGTH = 100_000
MAX_TAG_LENGTH = 50
MAX_PATH_LENGTH = 500

DEFAULT_SEARCH_LIMIT = 20
MIN_SEARCH_LIMIT = 1
MAX_SEARCH_LIMIT = 100

PATH_SEPARATOR = " -> "

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_string(
    value: Any, field_name: str, max_length: int = 1000, required: bool = True
) -> str:
    """Sanitize and validate string inputs.

    Args:
        value: The value to sanitize.
        field_name: Name of the field for error messages.
        max_length: Maximum allowed string length.
        required: If True, empty strings are rejected.

    Returns:
        Sanitized string.

    Raises:
        ValidationError: If validation fails.
    """
    if value is None and not required:
        return ""

    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string, got {type(value).__name__}")

    if required and not value.strip():
        raise ValidationError(f"{field_name} cannot be empty")

    if len(value) > max_length:
        raise ValidationError(
            f"{field_name} too long (max {max_length} characters, got {len(value)})"
        )

    # Remove null bytes and control characters except newlines and tabs
    return _CONTROL_CHARS.sub("", value)


def sanitize_optional(value: Optional[str], field_name: str, max_length: int) -> Optional[str]:
    """Like sanitize_string, but None and blank strings become None."""
    if value is None:
        return None
    cleaned = sanitize_string(value, field_name, max_length, required=False).strip()
    return cleaned or None


def normalize_project_name(name: Any) -> str:
    """Canonical project name: lowercase, alphanumerics and single hyphens.

    "Nakatomi Plaza" -> "nakatomi-plaza", "my_cool  app" -> "my-cool-app".

    Raises:
        ValidationError: If nothing usable remains.
    """
    raw = sanitize_string(name, "project name", MAX_PROJECT_NAME_LENGTH)
    normalized = raw.lower().strip()
    normalized = re.sub(r"[\s_]+", "-", normalized)
    normalized = re.sub(r"[^a-z0-9-]", "", normalized)
    normalized = re.sub(r"-+", "-", normalized).strip("-")
    if not normalized:
        raise ValidationError(f"project name {name!r} has no usable characters")
    return normalized


def normalize_tags(tags: Union[None, str, Iterable[str]]) -> List[str]:
    """Lowercase, trim and dedupe tags. Accepts a comma-separated string.

    Empty tags are dropped; order of first appearance is kept.
    """
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    result: List[str] = []
    for tag in tags:
        cleaned = sanitize_string(tag, "tag", MAX_TAG_LENGTH, required=False).strip().lower()
        if cleaned and cleaned not in result:
            result.append(cleaned)
    return result


def normalize_path(path: Union[None, str, Iterable[str]]) -> Optional[str]:
    """Normalize a classification path to its display form ``A -> B -> C``.

    Accepts either the display string or a list of segments. Returns None
    for an empty path.

    Raises:
        ValidationError: If any segment is empty.
    """
    if path is None:
        return None
    if isinstance(path, str):
        if not path.strip():
            return None
        segments = path.split("->")
    else:
        segments = list(path)
        if not segments:
            return None
    cleaned = []
    for segment in segments:
        seg = sanitize_string(segment, "path segment", MAX_PATH_LENGTH, required=False).strip()
        if not seg:
            raise ValidationError("path segments cannot be empty")
        cleaned.append(seg)
    joined = PATH_SEPARATOR.join(cleaned)
    if len(joined) > MAX_PATH_LENGTH:
        raise ValidationError(f"path too long (max {MAX_PATH_LENGTH} characters)")
    return joined


def normalize_stack(stack: Union[None, str, Iterable[str]]) -> List[str]:
    """Tooling list for a project. Accepts a comma-separated string."""
    if stack is None:
        return []
    if isinstance(stack, str):
        stack = stack.split(",")
    result = []
    for item in stack:
        cleaned = sanitize_string(item, "stack item", MAX_TAG_LENGTH * 2, required=False).strip()
        if cleaned:
            result.append(cleaned)
    return result


def clamp_search_limit(raw: Optional[str]) -> int:
    """Turn the ``search_default_limit`` setting value into a bounded int."""
    if raw is None:
        return DEFAULT_SEARCH_LIMIT
    try:
        limit = int(str(raw).strip())
    except ValueError:
        logger.warning(f"Invalid search_default_limit {raw!r}, using {DEFAULT_SEARCH_LIMIT}")
        return DEFAULT_SEARCH_LIMIT
    return max(MIN_SEARCH_LIMIT, min(MAX_SEARCH_LIMIT, limit))


def is_true(raw: Optional[str]) -> bool:
    """Settings store booleans as text."""
    return raw is not None and raw.strip().lower() in ("true", "1", "yes")
