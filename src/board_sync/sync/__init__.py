"""Entity synchronization between an Org outline and the remote board.

Modules:

- ``engine``        -- ``SyncEngine``: single actions, card/buffer sync and
  the batch loop.
- ``models``        -- ``Entity``, ``FullMetadata``, ``SyncError``,
  ``CompletionContext``, ``ActionResult``, ``SyncReport``.
- ``dispatch``      -- level-indexed handler tables with a too-deep fallback.
- ``validation``    -- validation gates and error codes.
- ``resolver``      -- metadata to ``RequestDescriptor``.
- ``locator``       -- re-find an entity after the document changed.
- ``continuations`` -- completion callbacks and ``MutationGuard``.
- ``regions``       -- spans removed by a delete.
- ``dirty``         -- ``DirtyBuffers`` save tracker.
- ``reporter``      -- human-readable and JSON report formatting.

The engine lives in ``board_sync.sync.engine`` and is not re-exported
here: the document layer imports ``models`` from this package.

Usage example
-------------
::

    from board_sync.core import BoardClient, RequestTransport
    from board_sync.document import DocumentStore
    from board_sync.sync.engine import SyncEngine
    from board_sync.sync import format_sync_report

    store = DocumentStore()
    buffer = store.open("/home/me/board.org")
    engine = SyncEngine(store, RequestTransport(BoardClient(config)))

    results = engine.sync_buffer(buffer.name)
    engine.save_dirty_buffers()
"""

from .models import (
    ActionOutcome,
    ActionResult,
    ActionType,
    CompletionContext,
    Entity,
    EntityAction,
    EntityKind,
    EntityLevel,
    ErrorKind,
    FullMetadata,
    RequestDescriptor,
    RequestOperation,
    SyncError,
    SyncReport,
)
from .reporter import format_sync_report, report_to_json

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
    "format_sync_report",
    "report_to_json",
]
