"""MCP tool handlers for entity synchronization.

Defines the tools:

- ``entity_sync`` -- create or update the card, checklist or item at a position.
- ``entity_delete`` -- delete the entity at a position remotely and locally.
- ``card_move`` -- move a synced card to the list matching its keyword.
- ``card_sync`` -- sync a card with all its checklists and items.
- ``buffer_sync`` -- sync every card in a file.
- ``buffers_save`` -- save every buffer modified by completed requests.

Engine calls run in a worker thread, one tool call at a time.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

import mcp.types as types

from ...core.async_utils import run_sync
from ...document.buffer import OrgBuffer
from ...sync.models import ActionOutcome, ActionResult, SyncReport
from ...sync.reporter import format_sync_report, report_to_json
from .registry import ToolContext, ToolSpec

logger = logging.getLogger(__name__)

_engine_lock = asyncio.Lock()


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_FILE_PROPERTY = {
    "type": "string",
    "description": "Absolute path to the Org outline file",
}

_LOCATION_PROPERTIES = {
    "file": _FILE_PROPERTY,
    "position": {
        "type": "integer",
        "minimum": 0,
        "description": "Character offset inside the entity (takes precedence over line)",
    },
    "line": {
        "type": "integer",
        "minimum": 1,
        "description": "1-based line number of the entity",
    },
    "synchronous": {
        "type": "boolean",
        "description": "Wait for the request before returning (defaults to server config)",
    },
}


def _write_annotations(destructive: bool = False) -> types.ToolAnnotations:
    return types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=destructive,
        idempotentHint=not destructive,
        openWorldHint=True,
    )


ENTITY_SYNC_TOOL = types.Tool(
    name="entity_sync",
    description=(
        "Create or update the card, checklist or item at a position in an Org "
        "outline. New entities get their remote id written back into the file."
    ),
    annotations=_write_annotations(),
    inputSchema={
        "type": "object",
        "properties": _LOCATION_PROPERTIES,
        "required": ["file"],
    },
)

ENTITY_DELETE_TOOL = types.Tool(
    name="entity_delete",
    description=(
        "Delete the card, checklist or item at a position from the board, then "
        "remove it from the Org outline."
    ),
    annotations=_write_annotations(destructive=True),
    inputSchema={
        "type": "object",
        "properties": _LOCATION_PROPERTIES,
        "required": ["file"],
    },
)

CARD_MOVE_TOOL = types.Tool(
    name="card_move",
    description="Move a synced card to the list configured for its current TODO keyword.",
    annotations=_write_annotations(),
    inputSchema={
        "type": "object",
        "properties": _LOCATION_PROPERTIES,
        "required": ["file"],
    },
)

CARD_SYNC_TOOL = types.Tool(
    name="card_sync",
    description="Sync a card, then each of its checklists and items in order.",
    annotations=_write_annotations(),
    inputSchema={
        "type": "object",
        "properties": {
            "file": _FILE_PROPERTY,
            "position": _LOCATION_PROPERTIES["position"],
            "line": _LOCATION_PROPERTIES["line"],
        },
        "required": ["file"],
    },
)

BUFFER_SYNC_TOOL = types.Tool(
    name="buffer_sync",
    description="Sync every card (with checklists and items) in an Org outline file.",
    annotations=_write_annotations(),
    inputSchema={
        "type": "object",
        "properties": {"file": _FILE_PROPERTY},
        "required": ["file"],
    },
)

BUFFERS_SAVE_TOOL = types.Tool(
    name="buffers_save",
    description="Save every outline file modified by completed requests.",
    annotations=types.ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    ),
    inputSchema={"type": "object", "properties": {}, "required": []},
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def resolve_position(buffer: OrgBuffer, args: dict[str, Any]) -> int:
    """Turn ``position`` or 1-based ``line`` arguments into an offset.

    Raises:
        ValueError: If neither is given or the value is out of range.
    """
    if args.get("position") is not None:
        position = int(args["position"])
        if not 0 <= position <= len(buffer):
            raise ValueError(
                f"position {position} is outside the file (0..{len(buffer)})"
            )
        return position
    if args.get("line") is not None:
        line = int(args["line"])
        if line < 1:
            raise ValueError("line must be 1 or greater")
        offset = 0
        for _ in range(line - 1):
            newline = buffer.text.find("\n", offset)
            if newline < 0:
                raise ValueError(f"line {line} is past the end of the file")
            offset = newline + 1
        return offset
    raise ValueError("Provide either 'position' or 'line'")


def _file_arg(args: dict[str, Any]) -> str:
    path = args.get("file")
    if not path:
        raise ValueError("file is required")
    return str(path)


def _report_result(results: list[ActionResult], saved: list[str], started_at: str) -> types.CallToolResult:
    report = SyncReport(
        results=results,
        saved_buffers=saved,
        started_at=started_at,
        completed_at=datetime.now(timezone.utc).isoformat(),
    )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_report(report))],
        structuredContent=report_to_json(report),
    )


async def _run_single(
    ctx: ToolContext,
    args: dict[str, Any],
    operation: Callable[[str, int, bool], ActionResult],
) -> types.CallToolResult:
    started_at = datetime.now(timezone.utc).isoformat()
    synchronous = bool(args.get("synchronous", ctx.synchronous))
    async with _engine_lock:
        buffer = await run_sync(ctx.engine.store.open, _file_arg(args))
        position = resolve_position(buffer, args)
        result = await run_sync(operation, buffer.name, position, synchronous)
        if result.outcome == ActionOutcome.PENDING:
            results = await ctx.engine.run_pending_async()
        else:
            results = [result]
        saved = await run_sync(ctx.engine.save_dirty_buffers)
    return _report_result(results, saved, started_at)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_entity_sync(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    return await _run_single(ctx, args, ctx.engine.sync_entity)


async def _handle_entity_delete(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    return await _run_single(ctx, args, ctx.engine.delete_entity)


async def _handle_card_move(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    return await _run_single(ctx, args, ctx.engine.move_card)


async def _handle_card_sync(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    started_at = datetime.now(timezone.utc).isoformat()
    async with _engine_lock:
        buffer = await run_sync(ctx.engine.store.open, _file_arg(args))
        position = resolve_position(buffer, args)
        results = await run_sync(ctx.engine.sync_card_tree, buffer.name, position)
        saved = await run_sync(ctx.engine.save_dirty_buffers)
    return _report_result(results, saved, started_at)


async def _handle_buffer_sync(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    started_at = datetime.now(timezone.utc).isoformat()
    async with _engine_lock:
        buffer = await run_sync(ctx.engine.store.open, _file_arg(args))
        results = await run_sync(ctx.engine.sync_buffer, buffer.name)
        saved = await run_sync(ctx.engine.save_dirty_buffers)
    return _report_result(results, saved, started_at)


async def _handle_buffers_save(ctx: ToolContext, args: dict[str, Any]) -> types.CallToolResult:
    async with _engine_lock:
        pending = ctx.engine.dirty.pending()
        saved = await run_sync(ctx.engine.save_dirty_buffers)
    failed = [name for name in pending if name not in saved]
    lines = [f"Saved {len(saved)} buffer(s)"]
    lines.extend(f"  {name}" for name in saved)
    if failed:
        lines.append(f"Not saved ({len(failed)}), will retry on next save:")
        lines.extend(f"  {name}" for name in failed)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent={"saved": saved, "failed": failed},
    )


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=ENTITY_SYNC_TOOL, handler=_handle_entity_sync),
    ToolSpec(tool=ENTITY_DELETE_TOOL, handler=_handle_entity_delete),
    ToolSpec(tool=CARD_MOVE_TOOL, handler=_handle_card_move),
    ToolSpec(tool=CARD_SYNC_TOOL, handler=_handle_card_sync),
    ToolSpec(tool=BUFFER_SYNC_TOOL, handler=_handle_buffer_sync),
    ToolSpec(tool=BUFFERS_SAVE_TOOL, handler=_handle_buffers_save),
]

SYNC_TOOLS: list[types.Tool] = [spec.tool for spec in SYNC_SPECS]
