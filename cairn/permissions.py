"""Permission guard for Cairn.

Every mutation of a memory or project goes through :class:`PermissionGuard`.
The matrix, by permission level:

============  ==========  ===================================
level         read        mutate / delete
============  ==========  ===================================
open          visible     runs immediately
guarded       visible     runs after the confirmer approves
read_only     visible     blocked
locked        hidden      blocked, message reveals no content
============  ==========  ===================================

The ``dangerously_skip_memory_permission`` setting bypasses the matrix for
emergency administrative use. Bypassed runs are logged at WARNING, recorded
as ``mode=bypass`` guard events and flagged ``bypassed`` on the outcome.
"""

import logging
from typing import Callable, Optional, TypeVar

from cairn.logging_config import log_guard
from cairn.types import (
    DEFAULT_PERMISSION,
    SCRATCHPAD_PERMISSION,
    CairnError,
    ConfirmationRejectedError,
    MemoryType,
    OperationError,
    Outcome,
    Permission,
    PermissionDeniedError,
    ProtectedEntity,
    coerce_enum,
)
from cairn.validation import is_true

logger = logging.getLogger(__name__)

BYPASS_SETTING = "dangerously_skip_memory_permission"
DEFAULT_PERMISSION_SETTING = "default_memory_permission"

READ = "read"

T = TypeVar("T")

SettingsReader = Callable[[str], Optional[str]]
# (action kind, human-readable description) -> approved?
Confirmer = Callable[[str, str], bool]


def deny_all(action_kind: str, description: str) -> bool:
    """Default confirmer: guarded mutations are refused without a human."""
    logger.debug(f"No confirmer configured, denying {action_kind}: {description}")
    return False


def allow_all(action_kind: str, description: str) -> bool:
    """Confirmer for trusted automation (``--yes`` style flags)."""
    return True


def memory_entity(memory) -> ProtectedEntity:
    return ProtectedEntity(memory.id, memory.title, "memory", memory.permission)


def project_entity(project) -> ProtectedEntity:
    return ProtectedEntity(project.id, project.name, "project", project.permission)


def describe_action(entity: ProtectedEntity, action: str) -> str:
    return f'{action} {entity.kind} [{entity.ref}] "{entity.name}"'


def ensure_visible(entity: ProtectedEntity) -> None:
    """Raise PermissionDeniedError for locked records, without naming them."""
    if entity.permission == Permission.LOCKED:
        raise PermissionDeniedError(f"BLOCKED: {entity.kind} [{entity.ref}] is locked.")


def resolve_memory_permission(
    memory_type: MemoryType,
    explicit: Optional[Permission] = None,
    project_default: Optional[Permission] = None,
    setting_value: Optional[str] = None,
) -> Permission:
    """Pick the permission for a new memory.

    First present value wins: explicit argument, the owning project's
    default, the ``default_memory_permission`` setting, DEFAULT_PERMISSION.
    Scratchpads are always SCRATCHPAD_PERMISSION.
    """
    if memory_type == MemoryType.SCRATCHPAD:
        return SCRATCHPAD_PERMISSION

    from_setting = None
    if setting_value:
        from_setting = coerce_enum(Permission, setting_value.strip(), None)
        if from_setting is None:
            logger.warning(f"Ignoring invalid {DEFAULT_PERMISSION_SETTING}: {setting_value!r}")

    for candidate in (explicit, project_default, from_setting):
        if candidate is not None:
            return candidate
    return DEFAULT_PERMISSION


class PermissionGuard:
    """Applies the permission matrix around an operation.

    Args:
        settings_reader: ``get(key) -> str | None``; read on every call so an
            externally flipped bypass flag takes effect immediately.
        confirm: Called for guarded mutations only. Returning falsy or
            raising cancels the operation.
    """

    def __init__(self, settings_reader: SettingsReader, confirm: Optional[Confirmer] = None):
        self._settings = settings_reader
        self._confirm = confirm or deny_all

    def bypass_active(self) -> bool:
        return is_true(self._settings(BYPASS_SETTING))

    def authorize(self, entity: ProtectedEntity, action: str) -> None:
        """Raise if ``action`` may not run against ``entity``.

        Raises:
            PermissionDeniedError: locked, or read_only for a mutation.
            ConfirmationRejectedError: guarded and the confirmer refused.
        """
        ensure_visible(entity)
        if action == READ:
            return

        if entity.permission == Permission.READ_ONLY:
            raise PermissionDeniedError(
                f'BLOCKED: {entity.kind} [{entity.ref}] "{entity.name}" is read-only.'
            )

        if entity.permission == Permission.GUARDED:
            description = describe_action(entity, action)
            try:
                approved = self._confirm(f"cairn_{action}", description)
            except Exception as e:
                logger.warning(f"Confirmation failed for {description}: {e}")
                raise ConfirmationRejectedError(
                    f"CANCELLED: Confirmation failed for {description}."
                ) from e
            if not approved:
                raise ConfirmationRejectedError(f"CANCELLED: User denied {description}.")

    def guarded_action(
        self, entity: ProtectedEntity, action: str, operation: Callable[[], T]
    ) -> Outcome[T]:
        """Run ``operation`` if the matrix allows ``action`` on ``entity``.

        ``operation`` is never called when the action is blocked or refused.
        A CairnError raised by it keeps its kind; any other exception becomes
        an OPERATION failure with the original kept as ``cause``.
        """
        if self.bypass_active():
            logger.warning(f"Permission bypass active: {action} on {entity.kind} [{entity.ref}]")
            outcome = self._execute(entity, action, operation, bypassed=True)
            log_guard(action, entity.ref, _result_label(outcome), mode="bypass")
            return outcome

        try:
            self.authorize(entity, action)
        except CairnError as e:
            if action != READ:
                log_guard(action, entity.ref, e.kind.value)
            return Outcome.failure(e)

        outcome = self._execute(entity, action, operation, bypassed=False)
        if action != READ:
            log_guard(action, entity.ref, _result_label(outcome))
        return outcome

    def _execute(
        self, entity: ProtectedEntity, action: str, operation: Callable[[], T], bypassed: bool
    ) -> Outcome[T]:
        try:
            value = operation()
        except CairnError as e:
            return Outcome.failure(e, bypassed=bypassed)
        except Exception as e:
            logger.error(f"Failed to {action} {entity.kind} [{entity.ref}]: {e}")
            err = OperationError(f"ERROR: Failed to {action} {entity.kind} [{entity.ref}]: {e}")
            err.__cause__ = e
            return Outcome.failure(err, bypassed=bypassed)
        return Outcome.success(value, bypassed=bypassed)


def _result_label(outcome: Outcome) -> str:
    return "ok" if outcome.ok else outcome.error.value
