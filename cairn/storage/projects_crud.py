"""Project CRUD operations for SQLiteStorage.

All functions take an open connection; SQLiteStorage owns transactions.
Soft delete is a status update; hard removal lives in ``purge_project`` and is
only reachable from the administrative path.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from cairn.types import Permission, Project, ProjectStatus, coerce_enum
from cairn.utils import now_ms

logger = logging.getLogger(__name__)

# Columns update_project may touch
UPDATABLE_PROJECT_FIELDS = frozenset(
    {"description", "stack", "status", "permission", "default_memory_permission"}
)


def _stack_from_json(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        # Hand-edited rows may hold a plain comma list
        return [s.strip() for s in raw.split(",") if s.strip()]
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)]


def row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        stack=_stack_from_json(row["stack"]),
        status=coerce_enum(ProjectStatus, row["status"], ProjectStatus.ACTIVE),
        permission=coerce_enum(Permission, row["permission"], Permission.GUARDED),
        default_memory_permission=coerce_enum(
            Permission, row["default_memory_permission"], Permission.GUARDED
        ),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def insert_project(
    conn: sqlite3.Connection,
    name: str,
    description: Optional[str],
    stack: List[str],
    status: ProjectStatus,
    permission: Permission,
    default_memory_permission: Permission,
) -> int:
    """Insert a project. The caller has already normalized ``name``."""
    now = now_ms()
    cursor = conn.execute(
        """
        INSERT INTO projects
        (name, description, stack, status, permission, default_memory_permission,
         created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            name,
            description,
            json.dumps(stack) if stack else None,
            status.value,
            permission.value,
            default_memory_permission.value,
            now,
            now,
        ),
    )
    return cursor.lastrowid


def get_project(conn: sqlite3.Connection, project_id: int) -> Optional[Project]:
    row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
    return row_to_project(row) if row else None


def get_project_by_name(conn: sqlite3.Connection, name: str) -> Optional[Project]:
    row = conn.execute("SELECT * FROM projects WHERE name = ?", (name,)).fetchone()
    return row_to_project(row) if row else None


def update_project(conn: sqlite3.Connection, project_id: int, fields: Dict[str, Any]) -> bool:
    """Update the given columns and bump ``updated_at``.

    Args:
        conn: Database connection.
        project_id: Target project.
        fields: Column -> value. Enum values are stored by value and
            ``stack`` lists as JSON.

    Returns:
        True if a row was updated.

    Raises:
        ValueError: If a column is not updatable.
    """
    unknown = set(fields) - UPDATABLE_PROJECT_FIELDS
    if unknown:
        raise ValueError(f"Cannot update project fields: {', '.join(sorted(unknown))}")
    if not fields:
        return False

    assignments = []
    params: List[Any] = []
    for column, value in fields.items():
        if column == "stack":
            value = json.dumps(value) if value else None
        elif hasattr(value, "value"):
            value = value.value
        assignments.append(f"{column} = ?")
        params.append(value)
    assignments.append("updated_at = ?")
    params.extend([now_ms(), project_id])

    cursor = conn.execute(
        f"UPDATE projects SET {', '.join(assignments)} WHERE id = ?",
        params,
    )
    return cursor.rowcount > 0


def list_projects(conn: sqlite3.Connection, limit: Optional[int] = None) -> List[Project]:
    """Projects visible to callers: not soft-deleted and not locked."""
    sql = """
        SELECT * FROM projects
        WHERE status != 'deleted' AND permission != 'locked'
        ORDER BY updated_at DESC, id DESC
    """
    params: tuple = ()
    if limit is not None:
        sql += " LIMIT ?"
        params = (limit,)
    return [row_to_project(row) for row in conn.execute(sql, params).fetchall()]


def count_projects(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        "SELECT COUNT(*) FROM projects WHERE status != 'deleted' AND permission != 'locked'"
    ).fetchone()
    return row[0]


def purge_project(conn: sqlite3.Connection, project_id: int) -> Dict[str, int]:
    """Hard-delete a project and everything filed under it.

    Memories and tasks go through the foreign key cascade; the counts are
    taken first so the caller can report them.
    """
    memories = conn.execute(
        "SELECT COUNT(*) FROM memories WHERE project_id = ?", (project_id,)
    ).fetchone()[0]
    tasks = conn.execute(
        "SELECT COUNT(*) FROM tasks WHERE project_id = ?", (project_id,)
    ).fetchone()[0]
    cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
    logger.info(f"Purged project P{project_id}: {memories} memories, {tasks} tasks")
    return {"projects": cursor.rowcount, "memories": memories, "tasks": tasks}
