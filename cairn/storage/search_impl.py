"""Memory search for SQLiteStorage.

A single filtered scan: LIKE matching (with escaped wildcards) over title,
content, classification path and tag names, locked memories excluded, most
recently updated first. Scope splitting is expressed as a filter so the
caller can run the in-scope and out-of-scope scans independently.
"""

import logging
import sqlite3
from typing import Any, List, Optional

from cairn.types import MemoryHit, MemoryType

from .memories_crud import row_to_hit

logger = logging.getLogger(__name__)

# scope_filter values
SCOPE_ANY = "any"
SCOPE_INSIDE = "inside"
SCOPE_OUTSIDE = "outside"

# Shown in place of the name of a locked project that owns a visible memory
LOCKED_PROJECT_LABEL = "(locked project)"


def escape_like_pattern(pattern: str) -> str:
    """Escape LIKE pattern special characters to prevent pattern injection."""
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_memories(
    conn: sqlite3.Connection,
    query: Optional[str],
    memory_type: Optional[MemoryType],
    project_id: Optional[int],
    scope_filter: str,
    limit: int,
) -> List[MemoryHit]:
    """Search visible memories.

    Args:
        conn: Database connection.
        query: Free text; None or blank matches everything.
        memory_type: Optional type filter.
        project_id: Project used by the scope filter.
        scope_filter: ``any``, ``inside`` (memories of ``project_id``) or
            ``outside`` (global memories and those of other projects).
        limit: Maximum rows returned.

    Returns:
        Hits ordered by ``updated_at`` descending, ties by id descending.
    """
    conditions = ["m.permission != 'locked'"]
    params: List[Any] = []

    if scope_filter == SCOPE_INSIDE:
        conditions.append("m.project_id = ?")
        params.append(project_id)
    elif scope_filter == SCOPE_OUTSIDE:
        conditions.append("(m.project_id IS NULL OR m.project_id != ?)")
        params.append(project_id)
    elif scope_filter != SCOPE_ANY:
        raise ValueError(f"Unknown scope filter: {scope_filter}")

    if memory_type is not None:
        conditions.append("m.type = ?")
        params.append(memory_type.value)

    if query and query.strip():
        pattern = f"%{escape_like_pattern(query.strip())}%"
        conditions.append(
            """(
                m.title LIKE ? ESCAPE '\\'
                OR m.content LIKE ? ESCAPE '\\'
                OR m.path LIKE ? ESCAPE '\\'
                OR EXISTS (
                    SELECT 1 FROM memory_tags mt
                    JOIN tags t ON t.id = mt.tag_id
                    WHERE mt.memory_id = m.id AND t.name LIKE ? ESCAPE '\\'
                )
            )"""
        )
        params.extend([pattern] * 4)

    params.append(limit)
    rows = conn.execute(
        f"""
        SELECT m.id, m.type, m.title, m.path, m.status, m.updated_at,
               CASE WHEN p.permission = 'locked' THEN ? ELSE p.name END AS project_name
        FROM memories m
        LEFT JOIN projects p ON p.id = m.project_id
        WHERE {' AND '.join(conditions)}
        ORDER BY m.updated_at DESC, m.id DESC
        LIMIT ?
        """,
        [LOCKED_PROJECT_LABEL, *params],
    ).fetchall()
    return [row_to_hit(row) for row in rows]
