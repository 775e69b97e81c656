"""Cairn storage backend.

Local-first storage using SQLite. ``ensure_schema`` creates and upgrades the
database; ``SQLiteStorage`` wraps the per-table CRUD modules.
"""

from .schema import ALLOWED_TABLES, ensure_schema, validate_table_name
from .search_impl import SCOPE_ANY, SCOPE_INSIDE, SCOPE_OUTSIDE, escape_like_pattern
from .sqlite import SQLiteStorage

__all__ = [
    "ALLOWED_TABLES",
    "SCOPE_ANY",
    "SCOPE_INSIDE",
    "SCOPE_OUTSIDE",
    "SQLiteStorage",
    "ensure_schema",
    "escape_like_pattern",
    "validate_table_name",
]
