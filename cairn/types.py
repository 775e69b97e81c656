"""
Shared record types for cairn.

Enums, errors and dataclasses that flow between storage, the components
(permissions, search, hierarchy, scope) and the ``Cairn`` facade. Enum values
are the exact strings persisted in SQLite; callers convert raw strings with
:func:`parse_enum` before anything reaches storage.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

# === Enums ===


class Permission(str, Enum):
    """Per-record protection level, ascending restriction."""

    OPEN = "open"  # Mutations run immediately
    GUARDED = "guarded"  # Mutations need confirmation
    READ_ONLY = "read_only"  # Visible, mutations rejected
    LOCKED = "locked"  # Invisible, mutations rejected


VALID_PERMISSION_VALUES = frozenset(p.value for p in Permission)

DEFAULT_PERMISSION = Permission.GUARDED
SCRATCHPAD_PERMISSION = Permission.OPEN


class MemoryType(str, Enum):
    """Knowledge item type values."""

    SKILL = "skill"
    PATTERN = "pattern"
    ANTI_PATTERN = "anti_pattern"
    DECISION = "decision"
    INSIGHT = "insight"
    COMPARISON = "comparison"
    NOTE = "note"
    LINK = "link"
    ARTICLE = "article"
    VIDEO = "video"
    DOCUMENTATION = "documentation"
    IDENTITY = "identity"
    CONTEXT = "context"  # Session context, one per scope
    SCRATCHPAD = "scratchpad"  # Always open


VALID_MEMORY_TYPE_VALUES = frozenset(m.value for m in MemoryType)


class MemoryStatus(str, Enum):
    """Maturity of a knowledge item."""

    DRAFT = "draft"
    EXPERIMENTAL = "experimental"
    PROVEN = "proven"
    BATTLE_TESTED = "battle_tested"
    DEPRECATED = "deprecated"


VALID_MEMORY_STATUS_VALUES = frozenset(s.value for s in MemoryStatus)


class ProjectStatus(str, Enum):
    """Project lifecycle. DELETED is only set by soft delete."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    DELETED = "deleted"


VALID_PROJECT_STATUS_VALUES = frozenset(s.value for s in ProjectStatus)


class TaskPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


VALID_TASK_PRIORITY_VALUES = frozenset(p.value for p in TaskPriority)


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"


VALID_TASK_STATUS_VALUES = frozenset(s.value for s in TaskStatus)


class ErrorKind(str, Enum):
    """Failure categories surfaced in :class:`Outcome`."""

    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    CONFIRMATION_REJECTED = "confirmation_rejected"
    VALIDATION = "validation"
    OPERATION = "operation"
    MIGRATION = "migration"


# === Errors ===


class CairnError(Exception):
    """Base class for all cairn errors."""

    kind = ErrorKind.OPERATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CairnError):
    """A referenced project, memory, task or parent does not exist."""

    kind = ErrorKind.NOT_FOUND


class PermissionDeniedError(CairnError):
    """A locked or read-only record blocked the operation.

    Messages never carry the record's content.
    """

    kind = ErrorKind.PERMISSION_DENIED


class ConfirmationRejectedError(CairnError):
    """The confirmation callback denied a guarded action or failed."""

    kind = ErrorKind.CONFIRMATION_REJECTED


class ValidationError(CairnError, ValueError):
    """Input outside a closed set, or a required field was empty."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, accepted: Optional[List[str]] = None):
        super().__init__(message)
        self.accepted = accepted


class OperationError(CairnError):
    """Unexpected failure inside a guarded operation body.

    The original exception is kept as ``__cause__``.
    """

    kind = ErrorKind.OPERATION


class MigrationError(CairnError):
    """Schema evolution failed. The store must not be used."""

    kind = ErrorKind.MIGRATION


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Convert a caller-supplied value into a member of ``enum_cls``.

    Args:
        enum_cls: Target enum class.
        value: Raw value (string or enum member).
        field_name: Name used in the error message.

    Returns:
        The matching enum member.

    Raises:
        ValidationError: If the value is not one of the enum's values.
    """
    if isinstance(value, enum_cls):
        return value
    accepted = [member.value for member in enum_cls]
    if isinstance(value, str):
        try:
            return enum_cls(value.strip())
        except ValueError:
            pass
    raise ValidationError(
        f"Invalid {field_name}: {value!r}. Accepted values: {', '.join(accepted)}",
        accepted=accepted,
    )


def coerce_enum(enum_cls: Type[E], value: Any, default: E) -> E:
    """Lenient conversion for values read back from storage.

    Rows written by older versions may carry values outside the current set;
    reads fall back to ``default`` instead of failing.
    """
    try:
        return enum_cls(value)
    except ValueError:
        return default


# === Records ===


@dataclass
class Project:
    """A project (container) record."""

    id: int
    name: str
    description: Optional[str] = None
    stack: List[str] = field(default_factory=list)
    status: ProjectStatus = ProjectStatus.ACTIVE
    permission: Permission = DEFAULT_PERMISSION
    default_memory_permission: Permission = DEFAULT_PERMISSION
    created_at: int = 0  # epoch ms
    updated_at: int = 0

    @property
    def ref(self) -> str:
        return f"P{self.id}"


@dataclass
class MemoryHit:
    """Compact view of a memory, used in search results and listings."""

    id: int
    type: MemoryType
    title: str
    status: MemoryStatus
    project_name: Optional[str] = None  # None = global
    path: Optional[str] = None
    updated_at: int = 0

    @property
    def ref(self) -> str:
        return f"M{self.id}"


@dataclass
class Memory:
    """A knowledge item record."""

    id: int
    type: MemoryType
    title: str
    content: str
    project_id: Optional[int] = None
    project_name: Optional[str] = None
    path: Optional[str] = None  # "A -> B -> C"
    status: MemoryStatus = MemoryStatus.DRAFT
    permission: Permission = DEFAULT_PERMISSION
    tags: List[str] = field(default_factory=list)
    related: List[MemoryHit] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0

    @property
    def ref(self) -> str:
        return f"M{self.id}"


@dataclass
class Task:
    """A work item record."""

    id: int
    title: str
    project_id: Optional[int] = None
    project_name: Optional[str] = None
    parent_id: Optional[int] = None
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    created_at: int = 0
    updated_at: int = 0
    children: List["Task"] = field(default_factory=list)

    @property
    def ref(self) -> str:
        return f"T{self.id}"


# === Component values ===


@dataclass(frozen=True)
class Scope:
    """The active project and identity, read once per call.

    ``project_id`` of None means global mode.
    """

    project_id: Optional[int] = None
    project_name: Optional[str] = None
    identity_id: Optional[int] = None

    @property
    def is_global(self) -> bool:
        return self.project_id is None


@dataclass(frozen=True)
class ProtectedEntity:
    """What the permission guard needs to know about a record."""

    id: int
    name: str
    kind: str  # "memory" or "project"
    permission: Permission

    @property
    def ref(self) -> str:
        prefix = "P" if self.kind == "project" else "M"
        return f"{prefix}{self.id}"


@dataclass
class FallbackGroup:
    """Out-of-scope search hits sharing one owning project."""

    name: str
    items: List[MemoryHit] = field(default_factory=list)


@dataclass
class FindResult:
    """Result of a scoped search.

    In global mode every hit is in ``in_scope`` and ``fallback`` is empty.
    """

    in_scope: List[MemoryHit] = field(default_factory=list)
    fallback: List[FallbackGroup] = field(default_factory=list)
    scope_name: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.in_scope) + sum(len(g.items) for g in self.fallback)


@dataclass
class ScopeSummary:
    """Briefing returned by enter_scope / exit_scope."""

    project: Optional[Project] = None
    identity: Optional[MemoryHit] = None
    memory_counts: Dict[str, int] = field(default_factory=dict)
    task_counts: Dict[str, int] = field(default_factory=dict)
    in_progress: List[Task] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)
    global_memory_count: int = 0
    project_count: int = 0


@dataclass
class StatusSnapshot:
    """Heads-up view of the store for the current scope."""

    project: Optional[Project] = None
    identity: Optional[MemoryHit] = None
    project_count: int = 0
    memory_count: int = 0
    task_counts: Dict[str, int] = field(default_factory=dict)


T = TypeVar("T")


@dataclass
class Outcome(Generic[T]):
    """Typed result of a facade operation.

    Expected failures (not found, permission, confirmation, validation,
    operation) come back here instead of being raised.
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    accepted: Optional[List[str]] = None
    bypassed: bool = False
    cause: Optional[BaseException] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None, message: str = "", bypassed: bool = False):
        return cls(value=value, message=message, bypassed=bypassed)

    @classmethod
    def failure(cls, err: CairnError, bypassed: bool = False):
        return cls(
            error=err.kind,
            message=err.message,
            accepted=getattr(err, "accepted", None),
            bypassed=bypassed,
            cause=err.__cause__,
        )

