"""
Cairn Core - a permissioned knowledge store for agents.

This module provides the main Cairn class, the primary interface for
project, memory, task and scope operations. Every public method reads the
context pointer once, threads the resulting ``Scope`` through the component
it calls, and returns an ``Outcome``. Only ``MigrationError`` (raised while
opening the store) escapes as an exception.
"""

import functools
import logging
from pathlib import Path
from typing import List, Optional, Union

from cairn import hierarchy, scope as scope_ops, search
from cairn.logging_config import log_store_event
from cairn.permissions import (
    DEFAULT_PERMISSION_SETTING,
    READ,
    Confirmer,
    PermissionGuard,
    ensure_visible,
    memory_entity,
    project_entity,
    resolve_memory_permission,
)
from cairn.storage import SQLiteStorage
from cairn.types import (
    CairnError,
    FindResult,
    Memory,
    MemoryHit,
    MemoryStatus,
    MemoryType,
    MigrationError,
    NotFoundError,
    Outcome,
    Permission,
    Project,
    ProjectStatus,
    ScopeSummary,
    StatusSnapshot,
    Task,
    TaskPriority,
    ValidationError,
    parse_enum,
)
from cairn.validation import (
    MAX_CONTENT_LENGTH,
    MAX_PROJECT_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
    is_true,
    normalize_path,
    normalize_project_name,
    normalize_stack,
    normalize_tags,
    sanitize_optional,
    sanitize_string,
)

logger = logging.getLogger(__name__)

ACTIVATE_IDENTITY_SETTING = "activate_identity_on_save"
GLOBAL_CONTEXT_TITLE = "Global Context"

# Permissions a caller may set explicitly on a new memory
ASSIGNABLE_PERMISSIONS = [p.value for p in Permission if p != Permission.LOCKED]
# Statuses reachable without the soft-delete path
SETTABLE_PROJECT_STATUSES = [s.value for s in ProjectStatus if s != ProjectStatus.DELETED]


def returns_outcome(method):
    """Turn a raising method into one returning ``Outcome``.

    A plain return value becomes ``Outcome.success``; an ``Outcome`` passes
    through unchanged; any CairnError except MigrationError becomes
    ``Outcome.failure``.
    """

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            result = method(*args, **kwargs)
        except MigrationError:
            raise
        except CairnError as e:
            logger.debug(f"{method.__name__} failed: {e.kind.value}: {e.message}")
            return Outcome.failure(e)
        if isinstance(result, Outcome):
            return result
        return Outcome.success(result)

    return wrapper


class Cairn:
    """Main interface for the knowledge store.

    Args:
        storage: Storage backend; created from config when omitted.
        db_path: Database file for the default backend.
        confirm: Confirmation callback for guarded mutations. Without one,
            guarded mutations are refused.

    Raises:
        MigrationError: The store could not be brought up to date.
    """

    def __init__(
        self,
        storage: Optional[SQLiteStorage] = None,
        db_path: Optional[Union[str, Path]] = None,
        confirm: Optional[Confirmer] = None,
    ):
        self.storage = storage if storage is not None else SQLiteStorage(db_path=db_path)
        self.guard = PermissionGuard(self.storage.get_setting, confirm)

    def close(self) -> None:
        self.storage.close()

    # === Internal lookups ===

    def _require_memory(self, memory_id: int) -> Memory:
        memory = self.storage.get_memory(memory_id)
        if memory is None:
            raise NotFoundError(f"Memory [M{memory_id}] not found.")
        return memory

    def _lookup_project(self, name: str) -> Project:
        """Project for a guarded mutation; visibility is the guard's call."""
        normalized = normalize_project_name(name)
        project = self.storage.get_project_by_name(normalized)
        if project is None:
            raise NotFoundError(f'Project "{normalized}" not found.')
        if project.status == ProjectStatus.DELETED:
            raise ValidationError(f'Project "{normalized}" has been deleted.')
        return project

    # === Projects ===

    @returns_outcome
    def create_project(
        self,
        name: str,
        description: Optional[str] = None,
        stack=None,
        status=ProjectStatus.ACTIVE,
        permission=Permission.GUARDED,
        default_memory_permission=Permission.GUARDED,
    ) -> Outcome[Project]:
        normalized = normalize_project_name(name)
        description = sanitize_optional(description, "description", MAX_PROJECT_DESCRIPTION_LENGTH)
        status = parse_enum(ProjectStatus, status, "status")
        if status == ProjectStatus.DELETED:
            raise ValidationError(
                "Projects cannot be created as deleted", accepted=SETTABLE_PROJECT_STATUSES
            )
        permission = parse_enum(Permission, permission, "permission")
        default_memory_permission = parse_enum(
            Permission, default_memory_permission, "default_memory_permission"
        )

        if self.storage.get_project_by_name(normalized) is not None:
            raise ValidationError(f'Project "{normalized}" already exists.')

        project_id = self.storage.create_project(
            normalized,
            description,
            normalize_stack(stack),
            status,
            permission,
            default_memory_permission,
        )
        log_store_event("project", f"action=create | target=P{project_id} | name={normalized}")
        logger.info(f"Created project {normalized} [P{project_id}]")
        return Outcome.success(
            self.storage.get_project(project_id),
            message=f"Project created: [P{project_id}] {normalized}",
        )

    @returns_outcome
    def update_project(
        self,
        name: str,
        description: Optional[str] = None,
        stack=None,
        status=None,
        default_memory_permission=None,
    ) -> Outcome[Project]:
        """Guarded update of a project's description, stack, status or default permission."""
        project = self._lookup_project(name)

        fields = {}
        if description is not None:
            fields["description"] = sanitize_optional(
                description, "description", MAX_PROJECT_DESCRIPTION_LENGTH
            )
        if stack is not None:
            fields["stack"] = normalize_stack(stack)
        if status is not None:
            status = parse_enum(ProjectStatus, status, "status")
            if status == ProjectStatus.DELETED:
                raise ValidationError(
                    "Use delete_project to delete a project", accepted=SETTABLE_PROJECT_STATUSES
                )
            fields["status"] = status
        if default_memory_permission is not None:
            fields["default_memory_permission"] = parse_enum(
                Permission, default_memory_permission, "default_memory_permission"
            )
        if not fields:
            raise ValidationError("Nothing to update")

        def op() -> Project:
            self.storage.update_project(project.id, fields)
            return self.storage.get_project(project.id)

        return self.guard.guarded_action(project_entity(project), "update", op)

    def set_project_status(self, name: str, status) -> Outcome[Project]:
        return self.update_project(name, status=status)

    @returns_outcome
    def delete_project(self, name: str) -> Outcome[Project]:
        """Soft delete: the project's status becomes ``deleted``.

        Memories and tasks stay in place. Hard removal is only available
        through the storage layer's purge.
        """
        project = self._lookup_project(name)
        scope = scope_ops.load_scope(self.storage)

        def op() -> Project:
            self.storage.update_project(project.id, {"status": ProjectStatus.DELETED})
            if scope.project_id == project.id:
                self.storage.set_active_project(None)
            return self.storage.get_project(project.id)

        outcome = self.guard.guarded_action(project_entity(project), "delete", op)
        if outcome.ok:
            outcome.message = f'Project "{project.name}" deleted.'
        return outcome

    @returns_outcome
    def list_projects(self) -> List[Project]:
        return self.storage.list_projects()

    # === Memories ===

    @returns_outcome
    def save_memory(
        self,
        memory_type,
        title: str,
        content: str,
        path=None,
        project: Optional[str] = None,
        status=None,
        permission=None,
        tags=None,
        global_scope: bool = False,
    ) -> Outcome[Memory]:
        """Save a memory.

        Args:
            memory_type: One of MemoryType.
            title: Short title.
            content: Body text.
            path: Classification path, ``"A -> B"`` or a list of segments.
            project: Owning project name. Defaults to the active project.
            status: Maturity; new memories default to draft.
            permission: Explicit permission; ``locked`` is not accepted
                except on scratchpads, which are always open.
            tags: List or comma-separated string.
            global_scope: File the memory globally even when a project is
                active.

        Returns:
            Outcome carrying the saved memory. A ``context`` memory updates
            the scope's existing one (guarded) instead of adding a second.
        """
        memory_type = parse_enum(MemoryType, memory_type, "type")
        status = parse_enum(MemoryStatus, status, "status") if status is not None else None
        explicit = None
        if permission is not None:
            explicit = parse_enum(Permission, permission, "permission")
            if explicit == Permission.LOCKED and memory_type != MemoryType.SCRATCHPAD:
                raise ValidationError(
                    "Permission 'locked' cannot be assigned here", accepted=ASSIGNABLE_PERMISSIONS
                )
        title = sanitize_string(title, "title", MAX_TITLE_LENGTH).strip()
        content = sanitize_string(content, "content", MAX_CONTENT_LENGTH)
        path = normalize_path(path)
        tags = normalize_tags(tags)

        if global_scope and project:
            raise ValidationError("Pass either project or global_scope, not both")

        scope = scope_ops.load_scope(self.storage)
        owner: Optional[Project] = None
        if project:
            owner = scope_ops.resolve_project(self.storage, project)
        elif not global_scope and not scope.is_global:
            owner = self.storage.get_project(scope.project_id)
        owner_id = owner.id if owner else None

        if memory_type == MemoryType.CONTEXT:
            existing = self.storage.find_context_memory(owner_id)
            if existing is not None:
                fields = {"title": title, "content": content}
                if path is not None:
                    fields["path"] = path
                if status is not None:
                    fields["status"] = status

                def op() -> Memory:
                    self.storage.update_memory(existing.id, fields, tags or None)
                    return self.storage.get_memory(existing.id)

                return self.guard.guarded_action(memory_entity(existing), "update", op)

        resolved = resolve_memory_permission(
            memory_type,
            explicit,
            owner.default_memory_permission if owner else None,
            self.storage.get_setting(DEFAULT_PERMISSION_SETTING),
        )
        memory_id = self.storage.save_memory(
            owner_id,
            memory_type,
            title,
            content,
            path,
            status or MemoryStatus.DRAFT,
            resolved,
            tags,
        )
        if memory_type == MemoryType.IDENTITY and is_true(
            self.storage.get_setting(ACTIVATE_IDENTITY_SETTING)
        ):
            self.storage.set_active_identity(memory_id)
            logger.info(f"Activated identity M{memory_id}")

        log_store_event(
            "memory",
            f"action=save | target=M{memory_id} | type={memory_type.value} | "
            f"permission={resolved.value}",
        )
        return Outcome.success(
            self.storage.get_memory(memory_id),
            message=f"Memory saved: [M{memory_id}] {title}",
        )

    def save_context(self, summary: str, project: Optional[str] = None) -> Outcome[Memory]:
        """Write the session context of ``project`` (default: the active scope)."""
        if project:
            name = normalize_project_name(project)
            title = f"{name} Context"
            return self.save_memory(
                MemoryType.CONTEXT, title, summary, project=name, permission=Permission.OPEN
            )
        scope = scope_ops.load_scope(self.storage)
        if scope.is_global:
            title = GLOBAL_CONTEXT_TITLE
        else:
            title = f"{scope.project_name} Context"
        return self.save_memory(MemoryType.CONTEXT, title, summary, permission=Permission.OPEN)

    @returns_outcome
    def get_memory(self, memory_id: int) -> Outcome[Memory]:
        memory = self._require_memory(memory_id)
        return self.guard.guarded_action(memory_entity(memory), READ, lambda: memory)

    @returns_outcome
    def update_memory(
        self,
        memory_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        path=None,
        status=None,
        tags=None,
    ) -> Outcome[Memory]:
        """Guarded update. ``tags`` replaces the existing tag set; ``path=""`` clears it."""
        memory = self._require_memory(memory_id)

        fields = {}
        if title is not None:
            fields["title"] = sanitize_string(title, "title", MAX_TITLE_LENGTH).strip()
        if content is not None:
            fields["content"] = sanitize_string(content, "content", MAX_CONTENT_LENGTH)
        if path is not None:
            fields["path"] = normalize_path(path)
        if status is not None:
            fields["status"] = parse_enum(MemoryStatus, status, "status")
        new_tags = normalize_tags(tags) if tags is not None else None
        if not fields and new_tags is None:
            raise ValidationError("Nothing to update")

        def op() -> Memory:
            self.storage.update_memory(memory_id, fields, new_tags)
            return self.storage.get_memory(memory_id)

        return self.guard.guarded_action(memory_entity(memory), "update", op)

    @returns_outcome
    def delete_memory(self, memory_id: int) -> Outcome[bool]:
        memory = self._require_memory(memory_id)

        def op() -> bool:
            return self.storage.delete_memory(memory_id)

        outcome = self.guard.guarded_action(memory_entity(memory), "delete", op)
        if outcome.ok:
            outcome.message = f"Memory [M{memory_id}] deleted."
            log_store_event("memory", f"action=delete | target=M{memory_id}")
        return outcome

    def _relation_endpoints(self, memory_id: int, related_id: int):
        if memory_id == related_id:
            raise ValidationError("A memory cannot be related to itself")
        source = self._require_memory(memory_id)
        target = self._require_memory(related_id)
        if not self.guard.bypass_active():
            ensure_visible(memory_entity(target))
        return source, target

    @returns_outcome
    def relate_memories(self, memory_id: int, related_id: int) -> Outcome[bool]:
        """Link two memories. Guarded on the source memory."""
        source, target = self._relation_endpoints(memory_id, related_id)

        outcome = self.guard.guarded_action(
            memory_entity(source),
            "relate",
            lambda: self.storage.relate_memories(source.id, target.id),
        )
        if outcome.ok:
            outcome.message = (
                f"Linked [{source.ref}] and [{target.ref}]."
                if outcome.value
                else f"[{source.ref}] and [{target.ref}] are already linked."
            )
        return outcome

    @returns_outcome
    def unrelate_memories(self, memory_id: int, related_id: int) -> Outcome[bool]:
        source, target = self._relation_endpoints(memory_id, related_id)
        return self.guard.guarded_action(
            memory_entity(source),
            "unrelate",
            lambda: self.storage.unrelate_memories(source.id, target.id),
        )

    @returns_outcome
    def set_active_identity(self, memory_id: Optional[int]) -> Optional[MemoryHit]:
        """Point the context at an identity memory, or clear it with None."""
        if memory_id is None:
            self.storage.set_active_identity(None)
            return None
        memory = self._require_memory(memory_id)
        ensure_visible(memory_entity(memory))
        if memory.type != MemoryType.IDENTITY:
            raise ValidationError(
                f"Memory [{memory.ref}] is a {memory.type.value}, not an identity",
                accepted=[MemoryType.IDENTITY.value],
            )
        self.storage.set_active_identity(memory.id)
        log_store_event("scope", f"action=identity | target={memory.ref}")
        return self.storage.get_memory_hit(memory.id)

    @returns_outcome
    def find(self, query: Optional[str] = None, memory_type=None) -> FindResult:
        """Scoped search. See :func:`cairn.search.find`."""
        if memory_type is not None:
            memory_type = parse_enum(MemoryType, memory_type, "type")
        scope = scope_ops.load_scope(self.storage)
        return search.find(self.storage, scope, query, memory_type)

    # === Tasks ===

    @returns_outcome
    def create_task(
        self,
        title: str,
        parent_id: Optional[int] = None,
        project: Optional[str] = None,
        description: Optional[str] = None,
        priority=TaskPriority.MEDIUM,
    ) -> Outcome[Task]:
        scope = scope_ops.load_scope(self.storage)
        task = hierarchy.create_task(
            self.storage, scope, title, parent_id, project, description, priority
        )
        return Outcome.success(task, message=f"Task created: [{task.ref}] {task.title}")

    @returns_outcome
    def get_task(self, task_id: int) -> Task:
        return hierarchy.get_task(self.storage, task_id)

    @returns_outcome
    def update_task(
        self,
        task_id: int,
        title: Optional[str] = None,
        description: Optional[str] = None,
        priority=None,
        status=None,
    ) -> Task:
        return hierarchy.update_task(self.storage, task_id, title, description, priority, status)

    @returns_outcome
    def delete_task(self, task_id: int) -> Outcome[int]:
        removed = hierarchy.delete_task(self.storage, task_id)
        return Outcome.success(removed, message=f"Deleted {removed} task(s).")

    @returns_outcome
    def list_tasks(
        self, parent_id: Optional[int] = None, project: Optional[str] = None
    ) -> List[Task]:
        scope = scope_ops.load_scope(self.storage)
        return hierarchy.list_tasks(self.storage, scope, parent_id, project)

    # === Scope ===

    @returns_outcome
    def enter_scope(self, name: str) -> ScopeSummary:
        return scope_ops.enter_scope(self.storage, name)

    @returns_outcome
    def exit_scope(self) -> ScopeSummary:
        return scope_ops.exit_scope(self.storage)

    @returns_outcome
    def status(self) -> StatusSnapshot:
        scope = scope_ops.load_scope(self.storage)
        return scope_ops.build_status(self.storage, scope)
