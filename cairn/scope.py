"""Context pointer operations: entering and leaving a project scope.

The active project and identity live in the ``global_context`` row and are
read with :func:`load_scope` at the start of every facade call. Nothing here
caches the pointer; other processes may move it between calls.
"""

import logging
from typing import Optional

from cairn.logging_config import log_scope
from cairn.permissions import ensure_visible, project_entity
from cairn.types import (
    MemoryHit,
    MemoryType,
    NotFoundError,
    Permission,
    Project,
    ProjectStatus,
    Scope,
    ScopeSummary,
    StatusSnapshot,
    TaskStatus,
    ValidationError,
)
from cairn.validation import normalize_project_name

logger = logging.getLogger(__name__)

IN_PROGRESS_LIMIT = 10
PROJECT_LIST_LIMIT = 10


def load_scope(storage) -> Scope:
    """Read the context pointer. One call per facade operation."""
    return storage.read_scope()


def resolve_project(storage, name: str, allow_deleted: bool = False) -> Project:
    """Look up a project by (normalized) name.

    Raises:
        ValidationError: Name empty, or the project is soft-deleted.
        NotFoundError: No such project.
        PermissionDeniedError: The project is locked.
    """
    normalized = normalize_project_name(name)
    project = storage.get_project_by_name(normalized)
    if project is None:
        raise NotFoundError(f'Project "{normalized}" not found.')
    ensure_visible(project_entity(project))
    if project.status == ProjectStatus.DELETED and not allow_deleted:
        raise ValidationError(f'Project "{normalized}" has been deleted.')
    return project


def active_identity(storage, scope: Scope) -> Optional[MemoryHit]:
    """The identity the pointer names, if it is still usable in ``scope``.

    The identity must exist, be of type identity, not be locked, and be
    either global or filed under the active project.
    """
    if scope.identity_id is None:
        return None
    memory = storage.get_memory(scope.identity_id)
    if memory is None or memory.type != MemoryType.IDENTITY:
        return None
    if memory.permission == Permission.LOCKED:
        return None
    if memory.project_id is not None and memory.project_id != scope.project_id:
        return None
    return storage.get_memory_hit(memory.id)


def enter_scope(storage, name: str) -> ScopeSummary:
    """Make ``name`` the active project and brief the caller on it."""
    project = resolve_project(storage, name)
    storage.set_active_project(project.id)
    log_scope("enter", project.name)
    logger.info(f"Entered project scope {project.name} [{project.ref}]")

    scope = load_scope(storage)
    return ScopeSummary(
        project=project,
        identity=active_identity(storage, scope),
        memory_counts=storage.count_memories_by_type(project.id),
        task_counts=storage.count_tasks_by_status(project.id),
        in_progress=storage.list_tasks_by_status(
            project.id, TaskStatus.IN_PROGRESS, IN_PROGRESS_LIMIT
        ),
    )


def exit_scope(storage) -> ScopeSummary:
    """Clear the active project and return the global briefing."""
    previous = load_scope(storage)
    storage.set_active_project(None)
    log_scope("exit", None)
    if previous.project_name:
        logger.info(f"Left project scope {previous.project_name}")

    scope = load_scope(storage)
    global_counts = storage.count_memories_by_type(None)
    return ScopeSummary(
        identity=active_identity(storage, scope),
        memory_counts=global_counts,
        task_counts=storage.count_tasks_by_status(None),
        projects=storage.list_projects(PROJECT_LIST_LIMIT),
        global_memory_count=sum(global_counts.values()),
        project_count=storage.count_projects(),
    )


def build_status(storage, scope: Scope) -> StatusSnapshot:
    """Heads-up counts for the active project, or the whole store."""
    project = storage.get_project(scope.project_id) if not scope.is_global else None
    project_id = project.id if project else None
    return StatusSnapshot(
        project=project,
        identity=active_identity(storage, scope),
        project_count=storage.count_projects(),
        memory_count=storage.count_memories(project_id),
        task_counts=storage.count_tasks_by_status(project_id),
    )
