"""SQLite storage backend for Cairn.

One connection per operation, opened by ``_connect()``, which commits on
success, rolls back on error and always closes. Every connection enforces
foreign keys, since project and task cascades depend on them.

The store assumes a single writer process. A second process writing the same
file is not detected.
"""

import contextlib
import logging
import os
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional

from cairn.config import get_config
from cairn.types import (
    Memory,
    MemoryHit,
    MemoryStatus,
    MemoryType,
    Permission,
    Project,
    ProjectStatus,
    Scope,
    Task,
    TaskPriority,
    TaskStatus,
)

from . import context_crud, memories_crud, projects_crud, settings_crud, tasks_crud
from .schema import ALLOWED_TABLES, LEGACY_TABLES, ensure_schema, validate_table_name
from .search_impl import search_memories as _search_memories

logger = logging.getLogger(__name__)


class SQLiteStorage:
    """SQLite-backed persistence for projects, memories, tasks and settings."""

    def __init__(self, db_path: Optional[Path] = None, busy_timeout_ms: Optional[int] = None):
        config = get_config()
        self.db_path = Path(db_path) if db_path is not None else config.db_path()
        self.busy_timeout_ms = (
            busy_timeout_ms if busy_timeout_ms is not None else config.busy_timeout_ms
        )

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Create or upgrade the schema. Raises MigrationError on failure."""
        with closing(sqlite3.connect(self.db_path, timeout=self.busy_timeout_ms / 1000)) as conn:
            ensure_schema(conn)

        # Set secure file permissions (owner read/write only)
        try:
            os.chmod(self.db_path, 0o600)
            os.chmod(self.db_path.parent, 0o700)
        except OSError as e:
            logger.warning(f"Could not set secure permissions: {e}")

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_ms / 1000)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that handles transactions AND closes connection.

        - Transaction commit on success
        - Transaction rollback on exception
        - Connection close in all cases
        """
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def close(self) -> None:
        """Connections are per-operation; nothing is held open."""
        pass

    # === Settings ===

    def get_setting(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            return settings_crud.get_setting(conn, key)

    def set_setting(self, key: str, value: str) -> None:
        with self._connect() as conn:
            settings_crud.set_setting(conn, key, value)

    def get_all_settings(self) -> Dict[str, str]:
        with self._connect() as conn:
            return settings_crud.get_all_settings(conn)

    # === Context pointer ===

    def read_scope(self) -> Scope:
        with self._connect() as conn:
            return context_crud.read_scope(conn)

    def set_active_project(self, project_id: Optional[int]) -> None:
        with self._connect() as conn:
            context_crud.set_active_project(conn, project_id)

    def set_active_identity(self, memory_id: Optional[int]) -> None:
        with self._connect() as conn:
            context_crud.set_active_identity(conn, memory_id)

    # === Projects ===

    def create_project(
        self,
        name: str,
        description: Optional[str] = None,
        stack: Optional[List[str]] = None,
        status: ProjectStatus = ProjectStatus.ACTIVE,
        permission: Permission = Permission.GUARDED,
        default_memory_permission: Permission = Permission.GUARDED,
    ) -> int:
        with self._connect() as conn:
            return projects_crud.insert_project(
                conn,
                name,
                description,
                stack or [],
                status,
                permission,
                default_memory_permission,
            )

    def get_project(self, project_id: int) -> Optional[Project]:
        with self._connect() as conn:
            return projects_crud.get_project(conn, project_id)

    def get_project_by_name(self, name: str) -> Optional[Project]:
        with self._connect() as conn:
            return projects_crud.get_project_by_name(conn, name)

    def update_project(self, project_id: int, fields: Dict) -> bool:
        with self._connect() as conn:
            return projects_crud.update_project(conn, project_id, fields)

    def list_projects(self, limit: Optional[int] = None) -> List[Project]:
        with self._connect() as conn:
            return projects_crud.list_projects(conn, limit)

    def count_projects(self) -> int:
        with self._connect() as conn:
            return projects_crud.count_projects(conn)

    def purge_project(self, project_id: int) -> Dict[str, int]:
        """Hard delete. Administrative path only; never exposed on the facade."""
        with self._connect() as conn:
            return projects_crud.purge_project(conn, project_id)

    # === Memories ===

    def save_memory(
        self,
        project_id: Optional[int],
        memory_type: MemoryType,
        title: str,
        content: str,
        path: Optional[str] = None,
        status: MemoryStatus = MemoryStatus.DRAFT,
        permission: Permission = Permission.GUARDED,
        tags: Optional[List[str]] = None,
    ) -> int:
        """Insert a memory and its tags in one transaction."""
        with self._connect() as conn:
            memory_id = memories_crud.insert_memory(
                conn, project_id, memory_type, title, content, path, status, permission
            )
            if tags:
                memories_crud.set_tags(conn, memory_id, tags)
            return memory_id

    def get_memory(self, memory_id: int) -> Optional[Memory]:
        with self._connect() as conn:
            return memories_crud.get_memory(conn, memory_id)

    def get_memory_hit(self, memory_id: int) -> Optional[MemoryHit]:
        with self._connect() as conn:
            return memories_crud.get_memory_hit(conn, memory_id)

    def find_context_memory(self, project_id: Optional[int]) -> Optional[Memory]:
        with self._connect() as conn:
            return memories_crud.find_context_memory(conn, project_id)

    def update_memory(
        self, memory_id: int, fields: Dict, tags: Optional[List[str]] = None
    ) -> bool:
        """Update columns and, when ``tags`` is given, replace the tag set."""
        with self._connect() as conn:
            updated = memories_crud.update_memory(conn, memory_id, fields)
            if tags is not None and updated:
                memories_crud.set_tags(conn, memory_id, tags)
            return updated

    def delete_memory(self, memory_id: int) -> bool:
        with self._connect() as conn:
            return memories_crud.delete_memory(conn, memory_id)

    def relate_memories(self, memory_id: int, related_id: int) -> bool:
        with self._connect() as conn:
            added = memories_crud.add_relation(conn, memory_id, related_id)
            if added:
                memories_crud.touch_memory(conn, memory_id)
            return added

    def unrelate_memories(self, memory_id: int, related_id: int) -> bool:
        with self._connect() as conn:
            removed = memories_crud.remove_relation(conn, memory_id, related_id)
            if removed:
                memories_crud.touch_memory(conn, memory_id)
            return removed

    def count_memories_by_type(self, project_id: Optional[int]) -> Dict[str, int]:
        with self._connect() as conn:
            return memories_crud.count_by_type(conn, project_id)

    def count_memories(self, project_id: Optional[int] = None) -> int:
        with self._connect() as conn:
            return memories_crud.count_memories(conn, project_id)

    def search_memories(
        self,
        query: Optional[str],
        memory_type: Optional[MemoryType],
        project_id: Optional[int],
        scope_filter: str,
        limit: int,
    ) -> List[MemoryHit]:
        with self._connect() as conn:
            return _search_memories(conn, query, memory_type, project_id, scope_filter, limit)

    # === Tasks ===

    def create_task(
        self,
        project_id: Optional[int],
        parent_id: Optional[int],
        title: str,
        description: Optional[str] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
    ) -> int:
        with self._connect() as conn:
            return tasks_crud.insert_task(conn, project_id, parent_id, title, description, priority)

    def get_task(self, task_id: int, with_children: bool = False) -> Optional[Task]:
        with self._connect() as conn:
            task = tasks_crud.get_task(conn, task_id)
            if task is not None and with_children:
                task.children = tasks_crud.list_children(conn, task_id)
            return task

    def list_child_tasks(self, parent_id: int) -> List[Task]:
        with self._connect() as conn:
            return tasks_crud.list_children(conn, parent_id)

    def list_top_level_tasks(
        self, project_id: Optional[int], limit: Optional[int] = None
    ) -> List[Task]:
        with self._connect() as conn:
            return tasks_crud.list_top_level(conn, project_id, limit)

    def list_tasks_by_status(
        self, project_id: Optional[int], status: TaskStatus, limit: int = 10
    ) -> List[Task]:
        with self._connect() as conn:
            return tasks_crud.list_by_status(conn, project_id, status, limit)

    def update_task(self, task_id: int, fields: Dict) -> bool:
        with self._connect() as conn:
            return tasks_crud.update_task(conn, task_id, fields)

    def delete_task(self, task_id: int) -> int:
        with self._connect() as conn:
            return tasks_crud.delete_task(conn, task_id)

    def count_tasks_by_status(self, project_id: Optional[int]) -> Dict[str, int]:
        with self._connect() as conn:
            return tasks_crud.count_by_status(conn, project_id)

    # === Diagnostics ===

    def table_counts(self) -> Dict[str, int]:
        """Row count of every current table."""
        counts = {}
        with self._connect() as conn:
            for table in sorted(ALLOWED_TABLES - set(LEGACY_TABLES)):
                validate_table_name(table)
                counts[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return counts
