"""
Cairn - a permissioned knowledge store for agents.

Projects, memories and tasks in one local SQLite file, with per-record
permissions and project-scoped search.
"""

from .core import Cairn
from .types import ErrorKind, Outcome

try:
    from importlib.metadata import version

    __version__ = version("cairn")
except Exception:
    __version__ = "0.0.0"

__all__ = ["Cairn", "ErrorKind", "Outcome"]
