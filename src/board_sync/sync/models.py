"""Pydantic models for the entity sync engine.

Defines the data contracts shared by all sync modules:

- ``EntityLevel`` / ``EntityKind``: structural depth and entity kind.
- ``Entity``: one Card, Checklist or Item materialized from a document.
- ``FullMetadata``: an entity with its parent and grandparent.
- ``RequestDescriptor``: abstract remote operation, independent of wire format.
- ``SyncError``: validation, dispatch, transport or position failure value.
- ``CompletionContext``: snapshot threaded into completion continuations.
- ``EntityAction`` / ``ActionResult`` / ``SyncReport``: batch input and output.

All models are frozen (immutable).
"""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel

from ..core.request_builder import (
    EntityKind,
    RequestDescriptor,
    RequestOperation,
)

__all__ = [
    "ActionOutcome",
    "ActionResult",
    "ActionType",
    "CompletionContext",
    "Entity",
    "EntityAction",
    "EntityKind",
    "EntityLevel",
    "ErrorKind",
    "FullMetadata",
    "RequestDescriptor",
    "RequestOperation",
    "SyncError",
    "SyncReport",
    "kind_for_level",
]


class EntityLevel(IntEnum):
    """Structural depth of an entity. Ancestors have smaller values."""

    CARD = 1
    CHECKLIST = 2
    ITEM = 3


_KIND_BY_LEVEL: dict[int, EntityKind] = {
    EntityLevel.CARD: EntityKind.CARD,
    EntityLevel.CHECKLIST: EntityKind.CHECKLIST,
    EntityLevel.ITEM: EntityKind.ITEM,
}


def kind_for_level(level: int) -> EntityKind | None:
    """Return the entity kind for *level*, or ``None`` if unsupported."""
    return _KIND_BY_LEVEL.get(level)


class Entity(BaseModel):
    """A Card, Checklist or Item read from the live document.

    Attributes:
        level: Structural depth (see ``EntityLevel``); may exceed ``ITEM``.
        buffer: Name of the owning document buffer.
        position: Offset of the entity's first character when read.
        name: Title; ``None`` or empty means invalid for sync.
        id: Remote identifier; ``None`` until created remotely.
        marker: Token used to re-find the entity (remote id or placeholder).
        keyword: Org TODO keyword (``DONE`` for checked checkboxes).
        due: Raw Org deadline timestamp (cards only).
        description: Body text (cards only).
        member_ids: Assigned member ids (cards only).
        tags: Org tag string such as ``":a:b:"`` (cards only).
    """

    level: int
    buffer: str
    position: int
    name: str | None = None
    id: str | None = None
    marker: str | None = None
    keyword: str | None = None
    due: str | None = None
    description: str | None = None
    member_ids: list[str] = []
    tags: str | None = None

    model_config = {"frozen": True}

    @property
    def kind(self) -> EntityKind | None:
        return kind_for_level(self.level)


class FullMetadata(BaseModel):
    """An entity together with its structural ancestors."""

    current: Entity
    parent: Entity | None = None
    grandparent: Entity | None = None

    model_config = {"frozen": True}


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    DISPATCH = "dispatch"
    TRANSPORT = "transport"
    POSITION = "position"


class SyncError(BaseModel):
    """Failure value returned in place of a request descriptor.

    Attributes:
        kind: Error category.
        code: Stable code such as ``ERROR-SYNC-ITEM-MISSING-NAME``.
        message: Human-readable explanation.
    """

    kind: ErrorKind
    code: str
    message: str

    model_config = {"frozen": True}


class CompletionContext(BaseModel):
    """State captured when a request is sent, read back on completion.

    ``entity`` is the snapshot taken at request time; ``marker`` is the
    token written into the document to find the entity again.
    """

    entity: Entity
    marker: str

    model_config = {"frozen": True}

    @property
    def buffer(self) -> str:
        return self.entity.buffer

    @property
    def position(self) -> int:
        return self.entity.position

    @property
    def level(self) -> int:
        return self.entity.level

    @property
    def name(self) -> str | None:
        return self.entity.name

    @property
    def entity_id(self) -> str | None:
        return self.entity.id

    @property
    def log_extra(self) -> dict[str, str | None]:
        """Fields attached to log records about this request."""
        return {"buffer": self.buffer, "entity_id": self.entity_id or self.marker}


class ActionType(str, Enum):
    SYNC = "sync"
    DELETE = "delete"
    MOVE = "move"


class ActionOutcome(str, Enum):
    """How a single action ended.

    ``PENDING`` means the request is queued and its continuation will
    report the final outcome when the transport drains.
    """

    APPLIED = "applied"
    PENDING = "pending"
    INVALID = "invalid"
    CANCELLED = "cancelled"
    UNREACHABLE = "unreachable"


class EntityAction(BaseModel):
    """A queued user mutation: act on the entity at *position*."""

    buffer: str
    position: int
    action: ActionType = ActionType.SYNC
    synchronous: bool = False

    model_config = {"frozen": True}


class ActionResult(BaseModel):
    """Result of one action.

    Attributes:
        buffer: Owning buffer name.
        action: Action that was attempted.
        outcome: How the action ended.
        level: Entity level, when an entity was found.
        name: Entity name, when known.
        remote_id: Remote id confirmed or targeted by the action.
        error: Error details when the outcome is not a success.
    """

    buffer: str
    action: ActionType
    outcome: ActionOutcome
    level: int | None = None
    name: str | None = None
    remote_id: str | None = None
    error: SyncError | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return self.outcome in (ActionOutcome.APPLIED, ActionOutcome.PENDING)


class SyncReport(BaseModel):
    """Aggregate report for a batch run.

    Attributes:
        results: Individual action results, in completion order.
        saved_buffers: Buffers persisted by the final flush.
        started_at: ISO 8601 timestamp when the batch started.
        completed_at: ISO 8601 timestamp when the batch finished.
    """

    results: list[ActionResult] = []
    saved_buffers: list[str] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _with(self, outcome: ActionOutcome) -> list[ActionResult]:
        return [r for r in self.results if r.outcome == outcome]

    @property
    def applied(self) -> list[ActionResult]:
        return self._with(ActionOutcome.APPLIED)

    @property
    def pending(self) -> list[ActionResult]:
        return self._with(ActionOutcome.PENDING)

    @property
    def invalid(self) -> list[ActionResult]:
        return self._with(ActionOutcome.INVALID)

    @property
    def cancelled(self) -> list[ActionResult]:
        return self._with(ActionOutcome.CANCELLED)

    @property
    def unreachable(self) -> list[ActionResult]:
        return self._with(ActionOutcome.UNREACHABLE)

    @property
    def errors(self) -> list[ActionResult]:
        """Results that did not succeed."""
        return [r for r in self.results if not r.success]

    def summary(self) -> str:
        """Format a human-readable summary of the batch run."""
        lines = [
            "Sync report",
            f"  Applied:     {len(self.applied)}",
            f"  Pending:     {len(self.pending)}",
            f"  Invalid:     {len(self.invalid)}",
            f"  Cancelled:   {len(self.cancelled)}",
            f"  Unreachable: {len(self.unreachable)}",
            f"  Saved:       {len(self.saved_buffers)}",
            f"  Total:       {len(self.results)}",
        ]
        return "\n".join(lines)
