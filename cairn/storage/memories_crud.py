"""Memory CRUD, tag and relation operations for SQLiteStorage.

All functions take an open connection; SQLiteStorage owns transactions.
Visibility (hiding locked memories) is applied here for listings and
relations; direct reads return the row and leave the decision to the
permission guard.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from cairn.types import (
    Memory,
    MemoryHit,
    MemoryStatus,
    MemoryType,
    Permission,
    coerce_enum,
)
from cairn.utils import now_ms

logger = logging.getLogger(__name__)

UPDATABLE_MEMORY_FIELDS = frozenset({"title", "content", "path", "status"})

MEMORY_SELECT = """
    SELECT m.*, p.name AS project_name
    FROM memories m
    LEFT JOIN projects p ON p.id = m.project_id
"""


def row_to_memory(row: sqlite3.Row) -> Memory:
    return Memory(
        id=row["id"],
        type=coerce_enum(MemoryType, row["type"], MemoryType.NOTE),
        title=row["title"],
        content=row["content"],
        project_id=row["project_id"],
        project_name=row["project_name"],
        path=row["path"],
        status=coerce_enum(MemoryStatus, row["status"], MemoryStatus.DRAFT),
        permission=coerce_enum(Permission, row["permission"], Permission.GUARDED),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def row_to_hit(row: sqlite3.Row) -> MemoryHit:
    return MemoryHit(
        id=row["id"],
        type=coerce_enum(MemoryType, row["type"], MemoryType.NOTE),
        title=row["title"],
        status=coerce_enum(MemoryStatus, row["status"], MemoryStatus.DRAFT),
        project_name=row["project_name"],
        path=row["path"],
        updated_at=row["updated_at"],
    )


def insert_memory(
    conn: sqlite3.Connection,
    project_id: Optional[int],
    memory_type: MemoryType,
    title: str,
    content: str,
    path: Optional[str],
    status: MemoryStatus,
    permission: Permission,
) -> int:
    now = now_ms()
    cursor = conn.execute(
        """
        INSERT INTO memories
        (project_id, type, title, content, path, status, permission, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            project_id,
            memory_type.value,
            title,
            content,
            path,
            status.value,
            permission.value,
            now,
            now,
        ),
    )
    return cursor.lastrowid


def get_memory(conn: sqlite3.Connection, memory_id: int) -> Optional[Memory]:
    """Fetch a memory with its tags and visible related memories."""
    row = conn.execute(f"{MEMORY_SELECT} WHERE m.id = ?", (memory_id,)).fetchone()
    if row is None:
        return None
    memory = row_to_memory(row)
    memory.tags = get_tags(conn, memory_id)
    memory.related = get_related(conn, memory_id)
    return memory


def get_memory_hit(conn: sqlite3.Connection, memory_id: int) -> Optional[MemoryHit]:
    row = conn.execute(f"{MEMORY_SELECT} WHERE m.id = ?", (memory_id,)).fetchone()
    return row_to_hit(row) if row else None


def find_context_memory(conn: sqlite3.Connection, project_id: Optional[int]) -> Optional[Memory]:
    """The session-context memory of a scope (``None`` = global), if any."""
    row = conn.execute(
        f"{MEMORY_SELECT} WHERE m.type = 'context' AND m.project_id IS ? ORDER BY m.id LIMIT 1",
        (project_id,),
    ).fetchone()
    return row_to_memory(row) if row else None


def update_memory(conn: sqlite3.Connection, memory_id: int, fields: Dict[str, Any]) -> bool:
    """Update the given columns and bump ``updated_at``.

    Type and permission are not updatable here.

    Raises:
        ValueError: If a column is not updatable.
    """
    unknown = set(fields) - UPDATABLE_MEMORY_FIELDS
    if unknown:
        raise ValueError(f"Cannot update memory fields: {', '.join(sorted(unknown))}")

    assignments = []
    params: List[Any] = []
    for column, value in fields.items():
        if hasattr(value, "value"):
            value = value.value
        assignments.append(f"{column} = ?")
        params.append(value)
    assignments.append("updated_at = ?")
    params.extend([now_ms(), memory_id])

    cursor = conn.execute(
        f"UPDATE memories SET {', '.join(assignments)} WHERE id = ?",
        params,
    )
    return cursor.rowcount > 0


def touch_memory(conn: sqlite3.Connection, memory_id: int) -> None:
    conn.execute("UPDATE memories SET updated_at = ? WHERE id = ?", (now_ms(), memory_id))


def delete_memory(conn: sqlite3.Connection, memory_id: int) -> bool:
    """Delete a memory. Tag links and relations go with it via cascade."""
    cursor = conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
    return cursor.rowcount > 0


# === Tags ===


def get_tags(conn: sqlite3.Connection, memory_id: int) -> List[str]:
    """Tag names in the order they were attached."""
    rows = conn.execute(
        """
        SELECT t.name FROM tags t
        JOIN memory_tags mt ON mt.tag_id = t.id
        WHERE mt.memory_id = ?
        ORDER BY mt.rowid
        """,
        (memory_id,),
    ).fetchall()
    return [row["name"] for row in rows]


def set_tags(conn: sqlite3.Connection, memory_id: int, tags: List[str]) -> None:
    """Replace a memory's tags. ``tags`` must already be normalized."""
    conn.execute("DELETE FROM memory_tags WHERE memory_id = ?", (memory_id,))
    for name in tags:
        conn.execute(
            "INSERT INTO tags (name) SELECT ? WHERE NOT EXISTS (SELECT 1 FROM tags WHERE name = ?)",
            (name, name),
        )
        conn.execute(
            """
            INSERT OR IGNORE INTO memory_tags (memory_id, tag_id)
            SELECT ?, id FROM tags WHERE name = ?
            """,
            (memory_id, name),
        )


# === Relations ===


def add_relation(conn: sqlite3.Connection, memory_id: int, related_id: int) -> bool:
    """Link two memories. Returns False if they were already linked either way."""
    existing = conn.execute(
        """
        SELECT 1 FROM memory_relations
        WHERE (memory_id = ? AND related_id = ?) OR (memory_id = ? AND related_id = ?)
        """,
        (memory_id, related_id, related_id, memory_id),
    ).fetchone()
    if existing:
        return False
    conn.execute(
        "INSERT INTO memory_relations (memory_id, related_id) VALUES (?, ?)",
        (memory_id, related_id),
    )
    return True


def remove_relation(conn: sqlite3.Connection, memory_id: int, related_id: int) -> bool:
    cursor = conn.execute(
        """
        DELETE FROM memory_relations
        WHERE (memory_id = ? AND related_id = ?) OR (memory_id = ? AND related_id = ?)
        """,
        (memory_id, related_id, related_id, memory_id),
    )
    return cursor.rowcount > 0


def get_related(conn: sqlite3.Connection, memory_id: int) -> List[MemoryHit]:
    """Related memories in either direction, locked ones excluded."""
    rows = conn.execute(
        f"""
        {MEMORY_SELECT}
        WHERE m.permission != 'locked' AND m.id IN (
            SELECT related_id FROM memory_relations WHERE memory_id = ?
            UNION
            SELECT memory_id FROM memory_relations WHERE related_id = ?
        )
        ORDER BY m.updated_at DESC, m.id DESC
        """,
        (memory_id, memory_id),
    ).fetchall()
    return [row_to_hit(row) for row in rows]


# === Counts ===


def count_by_type(conn: sqlite3.Connection, project_id: Optional[int]) -> Dict[str, int]:
    """Visible memory counts per type for one scope (``None`` = global only)."""
    rows = conn.execute(
        """
        SELECT type, COUNT(*) AS n FROM memories
        WHERE project_id IS ? AND permission != 'locked'
        GROUP BY type ORDER BY type
        """,
        (project_id,),
    ).fetchall()
    return {row["type"]: row["n"] for row in rows}


def count_memories(conn: sqlite3.Connection, project_id: Optional[int] = None) -> int:
    """Visible memories in one project, or across the whole store."""
    if project_id is None:
        row = conn.execute("SELECT COUNT(*) FROM memories WHERE permission != 'locked'").fetchone()
    else:
        row = conn.execute(
            "SELECT COUNT(*) FROM memories WHERE project_id = ? AND permission != 'locked'",
            (project_id,),
        ).fetchone()
    return row[0]
