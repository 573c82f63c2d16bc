"""Entity synchronization engine.

``SyncEngine`` turns a ``(buffer, position, action)`` request into a
remote call and merges the response back into the document:

1. Materialize ``FullMetadata`` for the entity at *position*.
2. Dispatch on the entity level to a sync or delete handler.
3. Validate, then resolve a ``RequestDescriptor`` (errors short-circuit
   as ``INVALID`` results; the transport is never contacted).
4. For entities without a remote id, write a placeholder marker so the
   entity can be re-found when the response arrives.
5. Submit to the transport with continuations bound to a frozen
   ``CompletionContext``.

Batch runs (``process``) record one result per action, keep going past
failures, drain queued requests and finally save every dirty buffer once.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Iterable

from ..core.transport import RequestTransport
from ..document.buffer import OrgBuffer
from ..document.org import (
    DEFAULT_MARKER_PREFIX,
    card_positions,
    card_start,
    entity_positions,
    metadata_at,
    next_card_heading,
    parse_config,
    set_entity_id,
)
from ..document.store import DocumentStore

from .continuations import Continuations, MutationGuard
from .dirty import DirtyBuffers
from .dispatch import build_delete_table, build_sync_table, dispatch
from .models import (
    ActionOutcome,
    ActionResult,
    ActionType,
    CompletionContext,
    Entity,
    EntityAction,
    EntityLevel,
    ErrorKind,
    FullMetadata,
    RequestDescriptor,
    SyncError,
    SyncReport,
)
from .resolver import card_move_request
from .validation import validation_error

logger = logging.getLogger(__name__)

NO_ENTITY = "ERROR-SYNC-NO-ENTITY"
MOVE_NOT_A_CARD = "ERROR-MOVE-NOT-A-CARD"
UNEXPECTED_ERROR = "ERROR-SYNC-UNEXPECTED"


class SyncEngine:
    """Synchronize outline entities with the remote board.

    Args:
        store: Open document buffers.
        transport: Performs request descriptors against the remote API.
        dirty: Dirty-buffer tracker; a fresh one is created if omitted.
        marker_prefix: Prefix of placeholder markers for unsynced entities.
    """

    def __init__(
        self,
        store: DocumentStore,
        transport: RequestTransport,
        dirty: DirtyBuffers | None = None,
        marker_prefix: str = DEFAULT_MARKER_PREFIX,
    ) -> None:
        self.store = store
        self.transport = transport
        self.dirty = dirty if dirty is not None else DirtyBuffers()
        self.marker_prefix = marker_prefix

        self.sync_table = build_sync_table()
        self.delete_table = build_delete_table()
        self.continuations = Continuations(store, self.dirty)

    # ------------------------------------------------------------------
    # Single-entity operations
    # ------------------------------------------------------------------

    def sync_entity(
        self, buffer_name: str, position: int, synchronous: bool = False
    ) -> ActionResult:
        """Create or update the entity at *position*.

        Returns:
            The final result for synchronous requests and rejected
            entities; a ``PENDING`` result for queued requests.
        """
        buffer = self.store.get(buffer_name)
        config = parse_config(buffer)
        meta = metadata_at(buffer, position, config, self.marker_prefix)
        if meta is None:
            return self._no_entity(buffer_name, position, ActionType.SYNC)

        handler = dispatch(meta.current.level, self.sync_table)
        request = handler.validate(meta)
        if request is None:
            request = handler.resolve(meta, config)
        if isinstance(request, SyncError):
            return self._rejected(meta, ActionType.SYNC, request)

        marker = self._ensure_marker(buffer, meta.current)
        ctx = CompletionContext(entity=meta.current, marker=marker)
        logger.debug(
            "%s %s %r (marker %s)",
            request.operation.value,
            request.kind.value,
            ctx.name,
            marker,
        )
        return self._submit(
            ctx,
            ActionType.SYNC,
            request,
            synchronous,
            partial(self.continuations.sync_succeeded, ctx),
            partial(self.continuations.sync_failed, ctx),
        )

    def delete_entity(
        self, buffer_name: str, position: int, synchronous: bool = False
    ) -> ActionResult:
        """Delete the entity at *position* remotely, then locally."""
        buffer = self.store.get(buffer_name)
        config = parse_config(buffer)
        meta = metadata_at(buffer, position, config, self.marker_prefix)
        if meta is None:
            return self._no_entity(buffer_name, position, ActionType.DELETE)

        handler = dispatch(meta.current.level, self.delete_table)
        request = handler.resolve(meta, config)
        if isinstance(request, SyncError):
            return self._rejected(meta, ActionType.DELETE, request)

        ctx = CompletionContext(entity=meta.current, marker=meta.current.id)
        return self._submit(
            ctx,
            ActionType.DELETE,
            request,
            synchronous,
            partial(self.continuations.delete_succeeded, handler.region, ctx),
            partial(self.continuations.delete_failed, ctx),
        )

    def move_card(
        self, buffer_name: str, position: int, synchronous: bool = False
    ) -> ActionResult:
        """Move a synced card to the list matching its current keyword."""
        buffer = self.store.get(buffer_name)
        config = parse_config(buffer)
        meta = metadata_at(buffer, position, config, self.marker_prefix)
        if meta is None:
            return self._no_entity(buffer_name, position, ActionType.MOVE)
        if meta.current.level != EntityLevel.CARD:
            return self._rejected(
                meta,
                ActionType.MOVE,
                validation_error(MOVE_NOT_A_CARD, "Only cards can be moved between lists."),
            )

        request = card_move_request(meta, config)
        if isinstance(request, SyncError):
            return self._rejected(meta, ActionType.MOVE, request)

        ctx = CompletionContext(entity=meta.current, marker=meta.current.id)
        return self._submit(
            ctx,
            ActionType.MOVE,
            request,
            synchronous,
            partial(self.continuations.move_succeeded, ctx),
            partial(self.continuations.move_failed, ctx),
        )

    # ------------------------------------------------------------------
    # Whole-card and whole-buffer sync
    # ------------------------------------------------------------------

    def sync_card_tree(self, buffer_name: str, position: int) -> list[ActionResult]:
        """Sync a card, then its checklists and items, in document order.

        Requests are synchronous so each child sees its parent's id.
        Positions are re-read after every completion since writing an id
        shifts everything below it.
        """
        buffer = self.store.get(buffer_name)
        start = card_start(buffer, position)
        if start is None:
            return [self._no_entity(buffer_name, position, ActionType.SYNC)]

        results: list[ActionResult] = []
        index = 0
        while True:
            positions = entity_positions(buffer, start, next_card_heading(buffer, start))
            if index >= len(positions):
                break
            results.append(self.sync_entity(buffer_name, positions[index], synchronous=True))
            index += 1
        return results

    def sync_buffer(self, buffer_name: str) -> list[ActionResult]:
        """Sync every card tree in *buffer_name*."""
        buffer = self.store.get(buffer_name)
        results: list[ActionResult] = []
        index = 0
        while True:
            cards = card_positions(buffer)
            if index >= len(cards):
                break
            results.extend(self.sync_card_tree(buffer_name, cards[index]))
            index += 1
        return results

    # ------------------------------------------------------------------
    # Batch loop
    # ------------------------------------------------------------------

    def process(self, actions: Iterable[EntityAction]) -> SyncReport:
        """Run a batch of actions and return the aggregate report.

        Queued requests are drained after the last action, then dirty
        buffers are saved.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        results: list[ActionResult] = []

        for action in actions:
            try:
                result = self._perform(action)
            except Exception as exc:
                logger.error(
                    "Unexpected error during %s at %s:%d: %s",
                    action.action.value,
                    action.buffer,
                    action.position,
                    exc,
                )
                result = _unexpected(action.buffer, action.action, exc)
            if result.outcome != ActionOutcome.PENDING:
                results.append(result)
            if result.outcome == ActionOutcome.CANCELLED:
                logger.info("Action cancelled, continuing with the next one")

        results.extend(self.run_pending())
        saved = self.save_dirty_buffers()
        return SyncReport(
            results=results,
            saved_buffers=saved,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
        )

    def run_pending(self) -> list[ActionResult]:
        """Perform queued requests; return their continuation results."""
        return [r for r in self.transport.drain() if isinstance(r, ActionResult)]

    async def run_pending_async(self) -> list[ActionResult]:
        return [
            r for r in await self.transport.drain_async() if isinstance(r, ActionResult)
        ]

    def save_dirty_buffers(self) -> list[str]:
        """Persist every dirty buffer once; return the names saved."""
        saved = self.dirty.flush(self.store.save)
        if saved:
            logger.info("Saved %d buffer(s)", len(saved))
        return saved

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _perform(self, action: EntityAction) -> ActionResult:
        match action.action:
            case ActionType.SYNC:
                return self.sync_entity(action.buffer, action.position, action.synchronous)
            case ActionType.DELETE:
                return self.delete_entity(action.buffer, action.position, action.synchronous)
            case ActionType.MOVE:
                return self.move_card(action.buffer, action.position, action.synchronous)
        raise ValueError(f"Unknown action: {action.action}")

    def _submit(
        self,
        ctx: CompletionContext,
        action: ActionType,
        request: RequestDescriptor,
        synchronous: bool,
        on_success: Callable[[Any], ActionResult],
        on_failure: Callable[[Exception], ActionResult],
    ) -> ActionResult:
        result = self.transport.submit(
            request,
            synchronous,
            partial(self._guarded, ctx, action, on_success),
            partial(self._guarded, ctx, action, on_failure),
        )
        if isinstance(result, ActionResult):
            return result
        return ActionResult(
            buffer=ctx.buffer,
            action=action,
            outcome=ActionOutcome.PENDING,
            level=ctx.level,
            name=ctx.name,
            remote_id=ctx.entity_id,
        )

    @staticmethod
    def _guarded(
        ctx: CompletionContext,
        action: ActionType,
        callback: Callable[[Any], ActionResult],
        payload: Any,
    ) -> ActionResult:
        """Run a continuation; if it raises, cancel this request only."""
        try:
            return callback(payload)
        except Exception as exc:
            logger.exception(
                "Continuation for %s of %r failed", action.value, ctx.name, extra=ctx.log_extra
            )
            return _unexpected(ctx.buffer, action, exc, level=ctx.level, name=ctx.name)

    def _ensure_marker(self, buffer: OrgBuffer, entity: Entity) -> str:
        """Return the entity's marker, writing a placeholder if it has none."""
        if entity.id:
            return entity.id
        if entity.marker:
            return entity.marker
        marker = f"{self.marker_prefix}{uuid.uuid4().hex}"
        with MutationGuard(buffer):
            set_entity_id(buffer, entity.position, marker)
        return marker

    @staticmethod
    def _rejected(meta: FullMetadata, action: ActionType, error: SyncError) -> ActionResult:
        logger.warning(
            "%s rejected for %r: %s",
            action.value,
            meta.current.name,
            error.code,
            extra={"buffer": meta.current.buffer, "action": action.value},
        )
        return ActionResult(
            buffer=meta.current.buffer,
            action=action,
            outcome=ActionOutcome.INVALID,
            level=meta.current.level,
            name=meta.current.name,
            remote_id=meta.current.id,
            error=error,
        )

    @staticmethod
    def _no_entity(buffer_name: str, position: int, action: ActionType) -> ActionResult:
        logger.warning(
            "No entity at %s:%d",
            buffer_name,
            position,
            extra={"buffer": buffer_name, "action": action.value},
        )
        return ActionResult(
            buffer=buffer_name,
            action=action,
            outcome=ActionOutcome.INVALID,
            error=validation_error(NO_ENTITY, f"No card, checklist or item at offset {position}."),
        )


def _unexpected(
    buffer_name: str, action: ActionType, exc: Exception, **fields: Any
) -> ActionResult:
    return ActionResult(
        buffer=buffer_name,
        action=action,
        outcome=ActionOutcome.CANCELLED,
        error=SyncError(kind=ErrorKind.DISPATCH, code=UNEXPECTED_ERROR, message=str(exc)),
        **fields,
    )
