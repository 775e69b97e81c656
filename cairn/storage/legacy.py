"""Conversion of data written by older store layouts.

The first generation kept identity, preferences and session summaries as
columns on ``global_context`` and ``projects``, planned work as
goals -> milestones -> tasks, and stored classification paths in a separate
``memory_paths`` table. Each function here converts one of those into the
current records. All of them:

- detect their source by introspection and return 0 when it is absent
- check before inserting, so re-running after a partial failure is harmless
- return the number of rows they converted

They run inside the ``ensure_schema`` transaction, before the legacy columns
and tables are removed.
"""

import json
import logging
import sqlite3
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from cairn.logging_config import log_migration
from cairn.utils import now_ms

from .schema import get_columns, table_exists

logger = logging.getLogger(__name__)

IDENTITY_TITLE_MAX = 100
DEFAULT_IDENTITY_TITLE = "Default Identity"
GLOBAL_CONTEXT_TITLE = "Global Context"

# (preferences section, field, settings key)
PREFERENCE_MAPPINGS = (
    ("memory", "defaultPermission", "default_memory_permission"),
    ("planning", "autoCreateTasks", "auto_create_tasks"),
    ("search", "defaultLimit", "search_default_limit"),
)

# Goal and milestone statuses folded into task progress
LEGACY_STATUS_MAP = {
    "active": "todo",
    "paused": "todo",
    "completed": "done",
    "cancelled": "cancelled",
}


def migrate_legacy_data(conn: sqlite3.Connection) -> int:
    """Run every legacy conversion. Returns the total number of converted rows."""
    converted = 0
    converted += migrate_identity(conn)
    converted += migrate_preferences(conn)
    converted += migrate_global_summary(conn)
    converted += migrate_project_summaries(conn)
    converted += migrate_planning(conn)
    converted += migrate_memory_paths(conn)
    return converted


def _legacy_global_value(conn: sqlite3.Connection, column: str) -> Optional[str]:
    if column not in get_columns(conn, "global_context"):
        return None
    row = conn.execute(f"SELECT {column} FROM global_context WHERE id = 1").fetchone()
    if row is None or row[0] is None:
        return None
    value = str(row[0])
    return value if value.strip() else None


def migrate_identity(conn: sqlite3.Connection) -> int:
    """Legacy identity text -> identity memory, and point the context at it.

    An identity memory with the same content is reused instead of duplicated.
    The pointer is only set when no active identity exists yet.
    """
    identity = _legacy_global_value(conn, "identity")
    if identity is None:
        return 0

    existing = conn.execute(
        """
        SELECT id FROM memories
        WHERE type = 'identity' AND project_id IS NULL AND content = ?
        ORDER BY id LIMIT 1
        """,
        (identity,),
    ).fetchone()

    inserted = 0
    if existing:
        memory_id = existing[0]
    else:
        first_line = identity.split("\n")[0].strip()[:IDENTITY_TITLE_MAX]
        title = first_line or DEFAULT_IDENTITY_TITLE
        now = now_ms()
        cursor = conn.execute(
            """
            INSERT INTO memories (type, title, content, status, permission, created_at, updated_at)
            VALUES ('identity', ?, ?, 'proven', 'guarded', ?, ?)
            """,
            (title, identity, now, now),
        )
        memory_id = cursor.lastrowid
        inserted = 1

    conn.execute(
        """
        UPDATE global_context SET active_identity_id = ?, updated_at = ?
        WHERE id = 1 AND active_identity_id IS NULL
        """,
        (memory_id, now_ms()),
    )
    if inserted:
        logger.info(f"Migrated legacy identity into memory M{memory_id}")
        log_migration("identity", inserted)
    return inserted


def _setting_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def migrate_preferences(conn: sqlite3.Connection) -> int:
    """Legacy preferences JSON -> individual settings via PREFERENCE_MAPPINGS.

    Unparseable JSON is skipped with a warning; there is nothing to recover.
    """
    raw = _legacy_global_value(conn, "preferences")
    if raw is None:
        return 0

    try:
        prefs = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Skipping unparseable legacy preferences: {e}")
        return 0
    if not isinstance(prefs, dict):
        logger.warning("Skipping legacy preferences that are not a JSON object")
        return 0

    count = 0
    for section, field, key in PREFERENCE_MAPPINGS:
        group = prefs.get(section)
        if not isinstance(group, dict) or group.get(field) is None:
            continue
        conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, _setting_value(group[field])),
        )
        count += 1

    if count:
        log_migration("preferences", count)
    return count


def _insert_context_memory(
    conn: sqlite3.Connection, project_id: Optional[int], title: str, content: str
) -> int:
    existing = conn.execute(
        "SELECT id FROM memories WHERE type = 'context' AND project_id IS ? LIMIT 1",
        (project_id,),
    ).fetchone()
    if existing:
        return 0
    now = now_ms()
    conn.execute(
        """
        INSERT INTO memories
        (project_id, type, title, content, status, permission, created_at, updated_at)
        VALUES (?, 'context', ?, ?, 'draft', 'open', ?, ?)
        """,
        (project_id, title, content, now, now),
    )
    return 1


def migrate_global_summary(conn: sqlite3.Connection) -> int:
    """Legacy global session summary -> the global session-context memory."""
    summary = _legacy_global_value(conn, "context_summary")
    if summary is None:
        return 0
    count = _insert_context_memory(conn, None, GLOBAL_CONTEXT_TITLE, summary)
    if count:
        log_migration("global_summary", count)
    return count


def migrate_project_summaries(conn: sqlite3.Connection) -> int:
    """Legacy per-project summaries -> one session-context memory per project."""
    if "context_summary" not in get_columns(conn, "projects"):
        return 0
    rows = conn.execute(
        """
        SELECT id, name, context_summary FROM projects
        WHERE context_summary IS NOT NULL AND TRIM(context_summary) != ''
        ORDER BY id
        """
    ).fetchall()
    count = 0
    for project_id, name, summary in rows:
        count += _insert_context_memory(conn, project_id, f"{name} Context", summary)
    if count:
        log_migration("project_summaries", count)
    return count


def _legacy_rows(conn: sqlite3.Connection, table: str, columns: List[str]) -> List[tuple]:
    """Select ``columns`` from a legacy table, NULL for any it lacks."""
    available = get_columns(conn, table)
    select = ", ".join(c if c in available else f"NULL AS {c}" for c in columns)
    return conn.execute(f"SELECT {select} FROM {table} ORDER BY id").fetchall()


def _find_or_insert_task(
    conn: sqlite3.Connection,
    project_id: Optional[int],
    parent_id: Optional[int],
    title: str,
    description: Optional[str],
    legacy_status: Optional[str],
    created_at: Optional[int],
    updated_at: Optional[int],
) -> Tuple[int, bool]:
    existing = conn.execute(
        """
        SELECT id FROM tasks
        WHERE title = ? AND project_id IS ? AND parent_id IS ? AND description IS ?
        ORDER BY id LIMIT 1
        """,
        (title, project_id, parent_id, description),
    ).fetchone()
    if existing:
        return existing[0], False

    status = LEGACY_STATUS_MAP.get((legacy_status or "").strip(), "todo")
    created = created_at or now_ms()
    cursor = conn.execute(
        """
        INSERT INTO tasks
        (project_id, parent_id, title, description, priority, status, created_at, updated_at)
        VALUES (?, ?, ?, ?, 'medium', ?, ?, ?)
        """,
        (project_id, parent_id, title, description, status, created, updated_at or created),
    )
    return cursor.lastrowid, True


def migrate_planning(conn: sqlite3.Connection) -> int:
    """Goals and milestones -> tasks, keeping the hierarchy.

    Goals become top-level tasks of their project, milestones become children
    of their goal's task, and tasks that pointed at a goal or milestone are
    re-parented under the converted item (inheriting its project).
    """
    columns = ["id", "project_id", "title", "description", "status", "created_at", "updated_at"]
    count = 0

    # legacy id -> (task id, project id)
    goal_map: Dict[int, Tuple[int, Optional[int]]] = {}
    if table_exists(conn, "goals"):
        for gid, project_id, title, description, status, created, updated in _legacy_rows(
            conn, "goals", columns
        ):
            task_id, inserted = _find_or_insert_task(
                conn, project_id, None, title, description, status, created, updated
            )
            goal_map[gid] = (task_id, project_id)
            count += int(inserted)

    milestone_map: Dict[int, Tuple[int, Optional[int]]] = {}
    if table_exists(conn, "milestones"):
        milestone_cols = ["id", "goal_id"] + columns[2:]
        for mid, goal_id, title, description, status, created, updated in _legacy_rows(
            conn, "milestones", milestone_cols
        ):
            parent = goal_map.get(goal_id)
            if parent is None:
                logger.warning(f"Legacy milestone {mid} has no goal, keeping it top-level")
            parent_id, project_id = parent if parent else (None, None)
            task_id, inserted = _find_or_insert_task(
                conn, project_id, parent_id, title, description, status, created, updated
            )
            milestone_map[mid] = (task_id, project_id)
            count += int(inserted)

    task_cols = get_columns(conn, "tasks")
    links = [c for c in ("milestone_id", "goal_id") if c in task_cols]
    if links and (goal_map or milestone_map):
        select = ", ".join(
            c if c in task_cols else f"NULL AS {c}" for c in ("milestone_id", "goal_id")
        )
        where = " OR ".join(f"{c} IS NOT NULL" for c in links)
        rows = conn.execute(
            f"SELECT id, {select} FROM tasks WHERE parent_id IS NULL AND ({where}) ORDER BY id"
        ).fetchall()
        for task_id, milestone_id, goal_id in rows:
            target = milestone_map.get(milestone_id) or goal_map.get(goal_id)
            if target is None:
                continue
            parent_id, project_id = target
            conn.execute(
                "UPDATE tasks SET parent_id = ?, project_id = ? WHERE id = ?",
                (parent_id, project_id, task_id),
            )
            count += 1

    if count:
        logger.info(f"Converted {count} legacy goal/milestone rows into tasks")
        log_migration("planning", count)
    return count


def migrate_memory_paths(conn: sqlite3.Connection) -> int:
    """Legacy path segment rows -> ``memories.path`` where the path is empty."""
    if not table_exists(conn, "memory_paths"):
        return 0

    segments: "OrderedDict[int, List[str]]" = OrderedDict()
    for memory_id, segment in conn.execute(
        "SELECT memory_id, segment FROM memory_paths ORDER BY memory_id, position"
    ).fetchall():
        if segment is not None and str(segment).strip():
            segments.setdefault(memory_id, []).append(str(segment).strip())

    count = 0
    for memory_id, parts in segments.items():
        cursor = conn.execute(
            "UPDATE memories SET path = ? WHERE id = ? AND (path IS NULL OR TRIM(path) = '')",
            (" -> ".join(parts), memory_id),
        )
        count += cursor.rowcount

    if count:
        log_migration("memory_paths", count)
    return count
