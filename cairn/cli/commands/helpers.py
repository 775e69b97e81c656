"""Shared helper functions for CLI commands."""

import dataclasses
import json
import re
import sys
from typing import Any

from cairn.types import Outcome


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)


def to_jsonable(data: Any) -> Any:
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return dataclasses.asdict(data)
    if isinstance(data, list):
        return [to_jsonable(item) for item in data]
    return data


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(to_jsonable(data), indent=2, default=str))


def unwrap(outcome: Outcome) -> Any:
    """Value of a successful outcome; print the message and exit 1 otherwise."""
    if not outcome.ok:
        print(outcome.message)
        if outcome.accepted:
            print(f"Accepted values: {', '.join(outcome.accepted)}")
        sys.exit(1)
    return outcome.value


def stdin_confirmer(action_kind: str, description: str) -> bool:
    """Ask on the terminal before a guarded mutation runs."""
    try:
        answer = input(f"Confirm {description}? [y/N]: ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print("\nAborted.")
        return False
    return answer in ("y", "yes")
