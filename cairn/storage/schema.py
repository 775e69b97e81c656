"""Database schema and migration logic for Cairn SQLite storage.

Contains:
- Table DDL (TABLE_DDL, INDEXES)
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Structural upgrades (missing columns, legacy table rebuilds)
- Seeding (settings defaults, system skills, core tags)
- ensure_schema, the single entry point run on every open

There is no version number: the legacy shape is detected by introspecting
``PRAGMA table_info`` and ``sqlite_master``. A missing legacy table or column
means there is nothing to migrate.
"""

import logging
import sqlite3
from typing import Dict, List, Set

from cairn.logging_config import log_migration
from cairn.types import MigrationError
from cairn.utils import now_ms

logger = logging.getLogger(__name__)

# Allowed table names for dynamic SQL (security: prevents SQL injection via table names)
ALLOWED_TABLES = frozenset(
    {
        "projects",
        "memories",
        "tasks",
        "tags",
        "memory_tags",
        "memory_relations",
        "settings",
        "global_context",
        # Legacy tables, read once during migration then dropped
        "goals",
        "milestones",
        "memory_paths",
    }
)

LEGACY_TABLES = ("memory_paths", "milestones", "goals")

# Columns removed from the current shape. Their presence triggers a rebuild.
LEGACY_COLUMNS: Dict[str, Set[str]] = {
    "global_context": {"identity", "preferences", "context_summary", "context_updated_at"},
    "projects": {"context_summary", "context_updated_at"},
    "tasks": {"goal_id", "milestone_id"},
}


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Args:
        table: Table name to validate

    Returns:
        The validated table name

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


# Epoch milliseconds without relying on unixepoch('subsecond') (SQLite 3.42+)
NOW_MS = "(CAST((julianday('now') - 2440587.5) * 86400000 AS INTEGER))"

# {name} is the table being created, so the same DDL serves table rebuilds.
TABLE_DDL: Dict[str, str] = {
    "projects": f"""
CREATE TABLE IF NOT EXISTS {{name}} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    description TEXT,
    stack TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    permission TEXT NOT NULL DEFAULT 'guarded',
    default_memory_permission TEXT NOT NULL DEFAULT 'guarded',
    created_at INTEGER NOT NULL DEFAULT {NOW_MS},
    updated_at INTEGER NOT NULL DEFAULT {NOW_MS}
)""",
    "memories": f"""
CREATE TABLE IF NOT EXISTS {{name}} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id INTEGER REFERENCES projects(id) ON DELETE CASCADE,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    path TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    permission TEXT NOT NULL DEFAULT 'guarded',
    created_at INTEGER NOT NULL DEFAULT {NOW_MS},
    updated_at INTEGER NOT NULL DEFAULT {NOW_MS}
)""",
    "tasks": f"""
CREATE TABLE IF NOT EXISTS {{name}} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id INTEGER REFERENCES projects(id) ON DELETE CASCADE,
    parent_id INTEGER REFERENCES tasks(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT,
    priority TEXT NOT NULL DEFAULT 'medium',
    status TEXT NOT NULL DEFAULT 'todo',
    created_at INTEGER NOT NULL DEFAULT {NOW_MS},
    updated_at INTEGER NOT NULL DEFAULT {NOW_MS}
)""",
    "tags": """
CREATE TABLE IF NOT EXISTS {name} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
)""",
    "memory_tags": """
CREATE TABLE IF NOT EXISTS {name} (
    memory_id INTEGER NOT NULL REFERENCES memories(id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (memory_id, tag_id)
)""",
    "memory_relations": """
CREATE TABLE IF NOT EXISTS {name} (
    memory_id INTEGER NOT NULL REFERENCES memories(id) ON DELETE CASCADE,
    related_id INTEGER NOT NULL REFERENCES memories(id) ON DELETE CASCADE,
    PRIMARY KEY (memory_id, related_id)
)""",
    "settings": """
CREATE TABLE IF NOT EXISTS {name} (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
)""",
    "global_context": f"""
CREATE TABLE IF NOT EXISTS {{name}} (
    id INTEGER PRIMARY KEY DEFAULT 1,
    active_project_id INTEGER REFERENCES projects(id) ON DELETE SET NULL,
    active_identity_id INTEGER REFERENCES memories(id) ON DELETE SET NULL,
    created_at INTEGER NOT NULL DEFAULT {NOW_MS},
    updated_at INTEGER NOT NULL DEFAULT {NOW_MS}
)""",
}

INDEXES: List[str] = [
    "CREATE INDEX IF NOT EXISTS idx_memories_project ON memories(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type)",
    "CREATE INDEX IF NOT EXISTS idx_memories_updated ON memories(updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_parent ON tasks(parent_id)",
    "CREATE INDEX IF NOT EXISTS idx_memory_relations_related ON memory_relations(related_id)",
]

# Columns that older stores may lack; ADD COLUMN only allows a NULL default
# together with REFERENCES.
ADDABLE_COLUMNS: Dict[str, Dict[str, str]] = {
    "projects": {
        "stack": "TEXT",
        "permission": "TEXT NOT NULL DEFAULT 'guarded'",
        "default_memory_permission": "TEXT NOT NULL DEFAULT 'guarded'",
    },
    "memories": {
        "path": "TEXT",
        "permission": "TEXT NOT NULL DEFAULT 'guarded'",
    },
    "tasks": {
        "parent_id": "INTEGER REFERENCES tasks(id) ON DELETE CASCADE",
    },
    "global_context": {
        "active_project_id": "INTEGER REFERENCES projects(id) ON DELETE SET NULL",
        "active_identity_id": "INTEGER REFERENCES memories(id) ON DELETE SET NULL",
    },
}

DEFAULT_SETTINGS = (
    ("default_identity", "null"),
    ("force_identity_on_hud", "false"),
    ("ask_before_identity_injection", "true"),
    ("default_memory_permission", "guarded"),
    ("auto_create_tasks", "false"),
    ("search_default_limit", "20"),
    ("activate_identity_on_save", "false"),
    ("dangerously_skip_memory_permission", "false"),
)

CORE_TAGS = ("system", "core", "cairn", "projects", "description", "technical", "human")

SKILL_TECHNICAL = """# Technical Project Descriptions

For software, hardware and technology projects.

## Rules

1. No title. The first line is a short description; previews truncate it.
2. First line format: `[What it is/does]. Role: [ROLE], [boundary]`

## Roles

- Executor: the agent does the work (scripts, automation, CLI tools)
- User: the agent consumes it (libraries, APIs, plugins)
- Meta: the agent develops what it runs (plugins for its own environment)

## Sections

- Stack: languages, frameworks, storage
- Layout: where things live
- Commands: how to build, test and run
- Constraints: what must not change
"""

SKILL_HUMAN = """# Human Project Descriptions

For non-technical projects: recipes, hobbies, collections, learning, creative work.

## Rules

1. No title. The first line is a short description; previews truncate it.
2. First line format: `[What it is/does]. Role: ADVISOR, [boundary]`
3. The agent guides, the human executes anything physical.

## Sections

- Domain: knowledge area and scope
- Resources: tools, materials, references
- Preferences: how the human likes to work
"""

SYSTEM_SKILLS = (
    ("Technical Project Descriptions", SKILL_TECHNICAL, "technical"),
    ("Human Project Descriptions", SKILL_HUMAN, "human"),
)


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def get_columns(conn: sqlite3.Connection, table: str) -> Set[str]:
    """Column names of ``table``; empty when the table does not exist."""
    validate_table_name(table.removesuffix("_new"))
    cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {c[1] for c in cols}


def create_tables(conn: sqlite3.Connection) -> None:
    for table, ddl in TABLE_DDL.items():
        conn.execute(ddl.format(name=validate_table_name(table)))


def create_indexes(conn: sqlite3.Connection) -> None:
    for statement in INDEXES:
        conn.execute(statement)


def add_missing_columns(conn: sqlite3.Connection) -> int:
    """Add current columns missing from tables written by older versions.

    Returns:
        Number of columns added.
    """
    added = 0
    for table, columns in ADDABLE_COLUMNS.items():
        existing = get_columns(conn, table)
        for column, definition in columns.items():
            if column not in existing:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
                logger.info(f"Added column {table}.{column}")
                added += 1
    return added


def rebuild_table(conn: sqlite3.Connection, table: str) -> None:
    """Recreate ``table`` in its current shape, keeping shared columns.

    Foreign keys must be off: dropping the old table would otherwise cascade
    into every referencing row.
    """
    validate_table_name(table)
    new_name = f"{table}_new"
    conn.execute(TABLE_DDL[table].format(name=new_name))
    old_cols = get_columns(conn, table)
    keep = [c for c in _ordered_columns(conn, new_name) if c in old_cols]
    col_list = ", ".join(keep)
    # Older rows may carry NULL timestamps; the current shape requires them
    select_list = ", ".join(
        f"COALESCE({c}, {NOW_MS})" if c in ("created_at", "updated_at") else c for c in keep
    )
    conn.execute(f"INSERT INTO {new_name} ({col_list}) SELECT {select_list} FROM {table}")
    conn.execute(f"DROP TABLE {table}")
    conn.execute(f"ALTER TABLE {new_name} RENAME TO {table}")
    logger.info(f"Rebuilt table {table} without legacy columns")


def _ordered_columns(conn: sqlite3.Connection, table: str) -> List[str]:
    return [c[1] for c in conn.execute(f"PRAGMA table_info({table})").fetchall()]


def drop_legacy_shape(conn: sqlite3.Connection) -> int:
    """Remove legacy columns and tables once their data has been converted.

    Returns:
        Number of tables rebuilt or dropped.
    """
    changed = 0
    for table, legacy_cols in LEGACY_COLUMNS.items():
        if get_columns(conn, table) & legacy_cols:
            rebuild_table(conn, table)
            changed += 1
    for table in LEGACY_TABLES:
        if table_exists(conn, validate_table_name(table)):
            conn.execute(f"DROP TABLE {table}")
            logger.info(f"Dropped legacy table {table}")
            changed += 1
    return changed


def seed_defaults(conn: sqlite3.Connection) -> None:
    """Insert-if-absent seeding, so values migrated from older stores survive."""
    conn.execute("INSERT OR IGNORE INTO global_context (id) VALUES (1)")

    conn.executemany(
        "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)", DEFAULT_SETTINGS
    )

    # A re-run must leave the tags AUTOINCREMENT counter unchanged
    conn.executemany(
        "INSERT INTO tags (name) SELECT ? WHERE NOT EXISTS (SELECT 1 FROM tags WHERE name = ?)",
        [(t, t) for t in CORE_TAGS],
    )

    now = now_ms()
    for title, content, flavor in SYSTEM_SKILLS:
        conn.execute(
            """
            INSERT INTO memories (type, title, content, status, permission, created_at, updated_at)
            SELECT 'skill', ?, ?, 'proven', 'read_only', ?, ?
            WHERE NOT EXISTS (
                SELECT 1 FROM memories WHERE title = ? AND type = 'skill'
            )
            """,
            (title, content, now, now, title),
        )
        tag_names = ("system", "core", "cairn", "projects", "description", flavor)
        placeholders = ", ".join("?" for _ in tag_names)
        conn.execute(
            f"""
            INSERT OR IGNORE INTO memory_tags (memory_id, tag_id)
            SELECT m.id, t.id FROM memories m, tags t
            WHERE m.title = ? AND m.type = 'skill' AND t.name IN ({placeholders})
            """,
            (title, *tag_names),
        )


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create or upgrade the database in place. Safe to call on every open.

    Steps, in one transaction with foreign keys disabled:

    1. Create missing tables
    2. Add missing current columns
    3. Convert legacy data (see :mod:`cairn.storage.legacy`)
    4. Rebuild tables still carrying legacy columns and drop legacy tables
    5. Create indexes and seed defaults

    Running it twice leaves the database byte-for-byte identical.

    Args:
        conn: Connection dedicated to the migration; its transaction mode is
            switched to manual for the duration of the call.

    Raises:
        MigrationError: If any step fails. Nothing is committed in that case.
    """
    from .legacy import migrate_legacy_data

    previous_isolation = conn.isolation_level
    conn.isolation_level = None
    # Must be set outside a transaction to take effect
    conn.execute("PRAGMA foreign_keys=OFF")
    try:
        try:
            conn.execute("BEGIN IMMEDIATE")
            create_tables(conn)
            added = add_missing_columns(conn)
            converted = migrate_legacy_data(conn)
            dropped = drop_legacy_shape(conn)
            create_indexes(conn)
            seed_defaults(conn)
            conn.execute("COMMIT")
        except Exception as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error(f"Schema migration failed, rolled back: {e}")
            raise MigrationError(f"Schema migration failed: {e}") from e
    finally:
        conn.execute("PRAGMA foreign_keys=ON")
        conn.isolation_level = previous_isolation

    if added or converted or dropped:
        logger.info(
            f"Schema upgraded: {added} columns added, {converted} legacy rows converted, "
            f"{dropped} legacy tables reshaped"
        )
        log_migration("ensure_schema", added + converted + dropped)
