"""Completion continuations: merge remote results back into the document.

The engine binds a frozen ``CompletionContext`` into each callback with
``functools.partial`` before handing a request to the transport. When the
response arrives the continuation re-locates the entity (its offset may
have moved), applies the change under a ``MutationGuard`` and marks the
buffer dirty. Failures and lost entities come back as typed
``ActionResult`` values; nothing here raises into the transport.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from ..document.buffer import Anchor, OrgBuffer
from ..document.org import find_marker, remove_entity_id, set_entity_id
from ..document.store import DocumentStore

from .dirty import DirtyBuffers
from .locator import locate_entity_start
from .models import (
    ActionOutcome,
    ActionResult,
    ActionType,
    CompletionContext,
    ErrorKind,
    SyncError,
)
from .regions import Region
from .validation import ENTITY_UNREACHABLE

logger = logging.getLogger(__name__)

REQUEST_FAILED = "ERROR-SYNC-REQUEST-FAILED"
MISSING_REMOTE_ID = "ERROR-SYNC-MISSING-REMOTE-ID"


class MutationGuard:
    """Scope for programmatic edits to a buffer.

    Suppresses change hooks and restores the cursor on exit, whether the
    block returns or raises. The cursor is held by an anchor so it stays
    on the same text when edits happen before it.
    """

    def __init__(self, buffer: OrgBuffer) -> None:
        self.buffer = buffer
        self._anchor: Anchor | None = None

    def __enter__(self) -> OrgBuffer:
        self._anchor = self.buffer.create_anchor(self.buffer.point)
        self.buffer.inhibit_notifications()
        return self.buffer

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if self._anchor is not None:
                self.buffer.goto(self._anchor.position)
                self.buffer.release_anchor(self._anchor)
                self._anchor = None
        finally:
            self.buffer.allow_notifications()
        return False


def _drop_placeholder(buffer: OrgBuffer, marker: str) -> None:
    position = find_marker(buffer, marker)
    if position is not None:
        remove_entity_id(buffer, position)


def _response_id(response: Any) -> str | None:
    if isinstance(response, dict) and response.get("id"):
        return str(response["id"])
    return None


class Continuations:
    """Success and failure callbacks for sync, move and delete requests.

    Args:
        store: Buffers the continuations edit.
        dirty: Tracker notified of every buffer changed here.
    """

    def __init__(self, store: DocumentStore, dirty: DirtyBuffers) -> None:
        self.store = store
        self.dirty = dirty

    def _result(
        self,
        ctx: CompletionContext,
        action: ActionType,
        outcome: ActionOutcome,
        remote_id: str | None = None,
        error: SyncError | None = None,
    ) -> ActionResult:
        return ActionResult(
            buffer=ctx.buffer,
            action=action,
            outcome=outcome,
            level=ctx.level,
            name=ctx.name,
            remote_id=remote_id,
            error=error,
        )

    def _unreachable(self, ctx: CompletionContext, action: ActionType) -> ActionResult:
        logger.error(
            "Entity %r (marker %s) is no longer in buffer %s; response dropped",
            ctx.name,
            ctx.marker,
            ctx.buffer,
            extra=ctx.log_extra,
        )
        return self._result(
            ctx,
            action,
            ActionOutcome.UNREACHABLE,
            error=SyncError(
                kind=ErrorKind.POSITION,
                code=ENTITY_UNREACHABLE,
                message=f"Could not find {ctx.name!r} in {ctx.buffer} after the request completed.",
            ),
        )

    def _cancelled(
        self, ctx: CompletionContext, action: ActionType, code: str, message: str
    ) -> ActionResult:
        return self._result(
            ctx,
            action,
            ActionOutcome.CANCELLED,
            remote_id=ctx.entity_id,
            error=SyncError(kind=ErrorKind.TRANSPORT, code=code, message=message),
        )

    def _buffer(self, ctx: CompletionContext) -> OrgBuffer | None:
        try:
            return self.store.get(ctx.buffer)
        except KeyError:
            return None

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync_succeeded(self, ctx: CompletionContext, response: Any) -> ActionResult:
        buffer = self._buffer(ctx)
        if buffer is None:
            return self._unreachable(ctx, ActionType.SYNC)
        remote_id = _response_id(response)
        with MutationGuard(buffer):
            position = locate_entity_start(buffer, ctx.marker, ctx.entity)
            if position is None:
                return self._unreachable(ctx, ActionType.SYNC)
            if ctx.entity_id is None:
                if remote_id is None:
                    _drop_placeholder(buffer, ctx.marker)
                    logger.error(
                        "Create response for %r carried no id", ctx.name, extra=ctx.log_extra
                    )
                    return self._cancelled(
                        ctx,
                        ActionType.SYNC,
                        MISSING_REMOTE_ID,
                        "The server did not return an id for the new entity.",
                    )
                set_entity_id(buffer, position, remote_id)
                logger.info("Created %r as %s", ctx.name, remote_id)
            else:
                remote_id = ctx.entity_id
                logger.info("Updated %r (%s)", ctx.name, remote_id)
        self.dirty.register(ctx.buffer)
        return self._result(ctx, ActionType.SYNC, ActionOutcome.APPLIED, remote_id=remote_id)

    def sync_failed(self, ctx: CompletionContext, exc: Exception) -> ActionResult:
        """Drop the placeholder written for an entity that was never created."""
        buffer = self._buffer(ctx)
        if ctx.entity_id is None and buffer is not None:
            with MutationGuard(buffer):
                _drop_placeholder(buffer, ctx.marker)
        logger.error("Sync of %r failed: %s", ctx.name, exc, extra=ctx.log_extra)
        return self._cancelled(ctx, ActionType.SYNC, REQUEST_FAILED, str(exc))

    # ------------------------------------------------------------------
    # Move
    # ------------------------------------------------------------------

    def move_succeeded(self, ctx: CompletionContext, response: Any) -> ActionResult:
        logger.info("Moved %r (%s)", ctx.name, ctx.entity_id)
        return self._result(
            ctx, ActionType.MOVE, ActionOutcome.APPLIED, remote_id=ctx.entity_id
        )

    def move_failed(self, ctx: CompletionContext, exc: Exception) -> ActionResult:
        logger.error("Move of %r failed: %s", ctx.name, exc, extra=ctx.log_extra)
        return self._cancelled(ctx, ActionType.MOVE, REQUEST_FAILED, str(exc))

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_succeeded(
        self,
        region: Callable[[OrgBuffer, int], Region],
        ctx: CompletionContext,
        response: Any,
    ) -> ActionResult:
        buffer = self._buffer(ctx)
        if buffer is None:
            return self._unreachable(ctx, ActionType.DELETE)
        with MutationGuard(buffer):
            position = locate_entity_start(buffer, ctx.marker, ctx.entity)
            if position is None:
                return self._unreachable(ctx, ActionType.DELETE)
            start, end = region(buffer, position)
            buffer.delete_region(start, end)
        logger.info("Deleted %r (%s)", ctx.name, ctx.entity_id)
        self.dirty.register(ctx.buffer)
        return self._result(
            ctx, ActionType.DELETE, ActionOutcome.APPLIED, remote_id=ctx.entity_id
        )

    def delete_failed(self, ctx: CompletionContext, exc: Exception) -> ActionResult:
        logger.error("Delete of %r failed: %s", ctx.name, exc, extra=ctx.log_extra)
        return self._cancelled(ctx, ActionType.DELETE, REQUEST_FAILED, str(exc))
