"""Small shared helpers for Cairn."""

import os
import time
from pathlib import Path


def get_cairn_home() -> Path:
    """Return the Cairn data directory.

    Honors ``CAIRN_DATA_DIR`` when set, otherwise ``~/.cairn``.
    """
    env_dir = os.environ.get("CAIRN_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".cairn"


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)
