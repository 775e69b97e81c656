"""Task hierarchy for Cairn.

Tasks nest without a depth limit. A subtask always takes its project from
its parent at creation time; an explicitly named project is ignored when a
parent is given. Tasks are not permission-guarded.
"""

import logging
from typing import List, Optional

from cairn.scope import resolve_project
from cairn.search import SEARCH_LIMIT_SETTING
from cairn.types import (
    NotFoundError,
    Scope,
    Task,
    TaskPriority,
    TaskStatus,
    ValidationError,
    parse_enum,
)
from cairn.validation import (
    MAX_TASK_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
    clamp_search_limit,
    sanitize_optional,
    sanitize_string,
)

logger = logging.getLogger(__name__)


def _require_task(storage, task_id: int, with_children: bool = False) -> Task:
    task = storage.get_task(task_id, with_children=with_children)
    if task is None:
        raise NotFoundError(f"Task [T{task_id}] not found.")
    return task


def resolve_task_project(
    storage, scope: Scope, parent_id: Optional[int], project_name: Optional[str]
) -> Optional[int]:
    """Project id a new task belongs to.

    Parent's project if a parent is given, else the named project, else the
    active project, else None (a floating task).

    Raises:
        NotFoundError: Parent or named project does not exist.
    """
    if parent_id is not None:
        parent = storage.get_task(parent_id)
        if parent is None:
            raise NotFoundError(f"Parent task [T{parent_id}] not found.")
        if project_name:
            logger.debug(
                f"Ignoring project {project_name!r} for subtask of T{parent_id}; "
                f"inheriting {parent.project_name or 'no project'}"
            )
        return parent.project_id
    if project_name:
        return resolve_project(storage, project_name).id
    return scope.project_id


def create_task(
    storage,
    scope: Scope,
    title: str,
    parent_id: Optional[int] = None,
    project_name: Optional[str] = None,
    description: Optional[str] = None,
    priority=TaskPriority.MEDIUM,
) -> Task:
    """Create a task (or subtask) and return it."""
    title = sanitize_string(title, "title", MAX_TITLE_LENGTH).strip()
    description = sanitize_optional(description, "description", MAX_TASK_DESCRIPTION_LENGTH)
    priority = parse_enum(TaskPriority, priority, "priority")

    project_id = resolve_task_project(storage, scope, parent_id, project_name)
    task_id = storage.create_task(project_id, parent_id, title, description, priority)
    logger.info(f"Created task T{task_id} (parent={parent_id}, project={project_id})")
    return storage.get_task(task_id)


def get_task(storage, task_id: int) -> Task:
    """A task with its direct children."""
    return _require_task(storage, task_id, with_children=True)


def update_task(
    storage,
    task_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    priority=None,
    status=None,
) -> Task:
    _require_task(storage, task_id)

    fields = {}
    if title is not None:
        fields["title"] = sanitize_string(title, "title", MAX_TITLE_LENGTH).strip()
    if description is not None:
        fields["description"] = sanitize_optional(
            description, "description", MAX_TASK_DESCRIPTION_LENGTH
        )
    if priority is not None:
        fields["priority"] = parse_enum(TaskPriority, priority, "priority")
    if status is not None:
        fields["status"] = parse_enum(TaskStatus, status, "status")
    if not fields:
        raise ValidationError("Nothing to update")

    storage.update_task(task_id, fields)
    return storage.get_task(task_id, with_children=True)


def delete_task(storage, task_id: int) -> int:
    """Delete a task and every descendant. Returns the number removed."""
    removed = storage.delete_task(task_id)
    if removed == 0:
        raise NotFoundError(f"Task [T{task_id}] not found.")
    logger.info(f"Deleted task T{task_id} ({removed} total)")
    return removed


def list_tasks(
    storage,
    scope: Scope,
    parent_id: Optional[int] = None,
    project_name: Optional[str] = None,
) -> List[Task]:
    """List tasks in one of three modes.

    - ``parent_id`` given: that task's direct children.
    - ``project_name`` given, or a project is active: that project's
      top-level tasks.
    - otherwise: top-level tasks across the store, capped at the search
      limit.
    """
    if parent_id is not None:
        _require_task(storage, parent_id)
        return storage.list_child_tasks(parent_id)
    if project_name:
        return storage.list_top_level_tasks(resolve_project(storage, project_name).id)
    if not scope.is_global:
        return storage.list_top_level_tasks(scope.project_id)
    limit = clamp_search_limit(storage.get_setting(SEARCH_LIMIT_SETTING))
    return storage.list_top_level_tasks(None, limit)
