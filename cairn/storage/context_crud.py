"""Context pointer operations for SQLiteStorage.

The pointer is the singleton ``global_context`` row (id=1) holding the active
project and the active identity memory. It is read fresh on every facade
call and never cached.
"""

import logging
import sqlite3
from typing import Optional

from cairn.types import Scope
from cairn.utils import now_ms

logger = logging.getLogger(__name__)


def read_scope(conn: sqlite3.Connection) -> Scope:
    """Current pointer state. A missing row reads as global with no identity."""
    row = conn.execute(
        """
        SELECT gc.active_project_id, gc.active_identity_id, p.name AS project_name
        FROM global_context gc
        LEFT JOIN projects p ON p.id = gc.active_project_id
        WHERE gc.id = 1
        """
    ).fetchone()
    if row is None:
        return Scope()
    return Scope(
        project_id=row["active_project_id"],
        project_name=row["project_name"],
        identity_id=row["active_identity_id"],
    )


def _ensure_context_row(conn: sqlite3.Connection) -> None:
    conn.execute("INSERT OR IGNORE INTO global_context (id) VALUES (1)")


def set_active_project(conn: sqlite3.Connection, project_id: Optional[int]) -> None:
    _ensure_context_row(conn)
    conn.execute(
        "UPDATE global_context SET active_project_id = ?, updated_at = ? WHERE id = 1",
        (project_id, now_ms()),
    )


def set_active_identity(conn: sqlite3.Connection, memory_id: Optional[int]) -> None:
    _ensure_context_row(conn)
    conn.execute(
        "UPDATE global_context SET active_identity_id = ?, updated_at = ? WHERE id = 1",
        (memory_id, now_ms()),
    )
