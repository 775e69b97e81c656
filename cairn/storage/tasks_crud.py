"""Task CRUD operations for SQLiteStorage.

Tasks nest to any depth through ``parent_id``. Deletion removes the whole
subtree explicitly in addition to relying on the ``ON DELETE CASCADE``
foreign key, so descendants are gone even on connections where foreign key
enforcement was left off.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from cairn.types import Task, TaskPriority, TaskStatus, coerce_enum
from cairn.utils import now_ms

logger = logging.getLogger(__name__)

UPDATABLE_TASK_FIELDS = frozenset({"title", "description", "priority", "status"})

TASK_SELECT = """
    SELECT t.*, p.name AS project_name
    FROM tasks t
    LEFT JOIN projects p ON p.id = t.project_id
"""

# Priority first, then oldest first, so listings read as a work queue
TASK_ORDER = """
    ORDER BY CASE t.priority WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END,
             t.created_at, t.id
"""


def row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        project_id=row["project_id"],
        project_name=row["project_name"],
        parent_id=row["parent_id"],
        description=row["description"],
        priority=coerce_enum(TaskPriority, row["priority"], TaskPriority.MEDIUM),
        status=coerce_enum(TaskStatus, row["status"], TaskStatus.TODO),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def insert_task(
    conn: sqlite3.Connection,
    project_id: Optional[int],
    parent_id: Optional[int],
    title: str,
    description: Optional[str],
    priority: TaskPriority,
    status: TaskStatus = TaskStatus.TODO,
) -> int:
    now = now_ms()
    cursor = conn.execute(
        """
        INSERT INTO tasks
        (project_id, parent_id, title, description, priority, status, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (project_id, parent_id, title, description, priority.value, status.value, now, now),
    )
    return cursor.lastrowid


def get_task(conn: sqlite3.Connection, task_id: int) -> Optional[Task]:
    row = conn.execute(f"{TASK_SELECT} WHERE t.id = ?", (task_id,)).fetchone()
    return row_to_task(row) if row else None


def list_children(conn: sqlite3.Connection, parent_id: int) -> List[Task]:
    rows = conn.execute(f"{TASK_SELECT} WHERE t.parent_id = ? {TASK_ORDER}", (parent_id,))
    return [row_to_task(row) for row in rows.fetchall()]


def list_top_level(
    conn: sqlite3.Connection, project_id: Optional[int], limit: Optional[int] = None
) -> List[Task]:
    """Tasks with no parent.

    Args:
        conn: Database connection.
        project_id: Restrict to one project; None lists across all projects
            and floating tasks.
        limit: Optional cap on the number of rows.
    """
    sql = f"{TASK_SELECT} WHERE t.parent_id IS NULL"
    params: List[Any] = []
    if project_id is not None:
        sql += " AND t.project_id = ?"
        params.append(project_id)
    sql += TASK_ORDER
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    return [row_to_task(row) for row in conn.execute(sql, params).fetchall()]


def list_by_status(
    conn: sqlite3.Connection, project_id: Optional[int], status: TaskStatus, limit: int = 10
) -> List[Task]:
    sql = f"{TASK_SELECT} WHERE t.status = ?"
    params: List[Any] = [status.value]
    if project_id is not None:
        sql += " AND t.project_id = ?"
        params.append(project_id)
    sql += f" {TASK_ORDER} LIMIT ?"
    params.append(limit)
    return [row_to_task(row) for row in conn.execute(sql, params).fetchall()]


def update_task(conn: sqlite3.Connection, task_id: int, fields: Dict[str, Any]) -> bool:
    """Update the given columns and bump ``updated_at``.

    Raises:
        ValueError: If a column is not updatable.
    """
    unknown = set(fields) - UPDATABLE_TASK_FIELDS
    if unknown:
        raise ValueError(f"Cannot update task fields: {', '.join(sorted(unknown))}")

    assignments = []
    params: List[Any] = []
    for column, value in fields.items():
        if hasattr(value, "value"):
            value = value.value
        assignments.append(f"{column} = ?")
        params.append(value)
    assignments.append("updated_at = ?")
    params.extend([now_ms(), task_id])

    cursor = conn.execute(f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ?", params)
    return cursor.rowcount > 0


SUBTREE_SQL = """
    WITH RECURSIVE subtree(id) AS (
        SELECT id FROM tasks WHERE parent_id = ?
        UNION
        SELECT t.id FROM tasks t JOIN subtree s ON t.parent_id = s.id
    )
    SELECT id FROM subtree
"""


def collect_descendants(conn: sqlite3.Connection, task_id: int) -> List[int]:
    """Ids of every task below ``task_id``, at any depth."""
    rows = conn.execute(SUBTREE_SQL, (task_id,)).fetchall()
    return [row[0] for row in rows]


def delete_task(conn: sqlite3.Connection, task_id: int) -> int:
    """Delete a task and its whole subtree.

    Returns:
        Number of tasks removed (0 if the task did not exist).
    """
    if conn.execute("SELECT 1 FROM tasks WHERE id = ?", (task_id,)).fetchone() is None:
        return 0
    descendants = collect_descendants(conn, task_id)
    conn.execute(
        f"DELETE FROM tasks WHERE id = ? OR id IN ({SUBTREE_SQL})",
        (task_id, task_id),
    )
    logger.debug(f"Deleted task T{task_id} with {len(descendants)} descendants")
    return 1 + len(descendants)


def count_by_status(conn: sqlite3.Connection, project_id: Optional[int]) -> Dict[str, int]:
    """Task counts per status for one project, or the whole store when None."""
    if project_id is None:
        rows = conn.execute("SELECT status, COUNT(*) AS n FROM tasks GROUP BY status")
    else:
        rows = conn.execute(
            "SELECT status, COUNT(*) AS n FROM tasks WHERE project_id = ? GROUP BY status",
            (project_id,),
        )
    counts = {status.value: 0 for status in TaskStatus}
    for row in rows.fetchall():
        counts[row["status"]] = row["n"]
    return counts
