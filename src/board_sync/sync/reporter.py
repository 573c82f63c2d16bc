"""Sync report formatting functions.

- ``format_result`` -- one line per action result.
- ``format_sync_report`` -- full post-batch summary.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ActionResult, SyncReport

_LEVEL_LABELS = {1: "card", 2: "checklist", 3: "item"}


def _label(result: ActionResult) -> str:
    kind = _LEVEL_LABELS.get(result.level or 0, f"level {result.level}")
    name = result.name or "(unnamed)"
    return f"{kind} {name!r}"


def format_result(result: ActionResult) -> str:
    """Format one result as ``[outcome] action kind 'name' ...``."""
    line = f"[{result.outcome.value}] {result.action.value} {_label(result)}"
    if result.remote_id:
        line += f" ({result.remote_id})"
    if result.error:
        line += f": {result.error.code} {result.error.message}"
    return line


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    lines.append("Sync report")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Processed {len(report.results)} actions: "
        f"{len(report.applied)} applied, "
        f"{len(report.invalid)} invalid, "
        f"{len(report.cancelled)} cancelled, "
        f"{len(report.unreachable)} unreachable"
    )
    lines.append("")

    sections = [
        ("Applied:", report.applied),
        ("Pending:", report.pending),
        ("Invalid:", report.invalid),
        ("Cancelled:", report.cancelled),
        ("Unreachable:", report.unreachable),
    ]
    for title, results in sections:
        if not results:
            continue
        lines.append(title)
        for r in results:
            lines.append(f"  {format_result(r)}")
        lines.append("")

    if report.saved_buffers:
        lines.append("Saved:")
        for name in report.saved_buffers:
            lines.append(f"  {name}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: ActionResult) -> dict:
    entry: dict = {
        "buffer": result.buffer,
        "action": result.action.value,
        "outcome": result.outcome.value,
        "success": result.success,
        "level": result.level,
        "name": result.name,
        "remote_id": result.remote_id,
    }
    if result.error:
        entry["error"] = {
            "kind": result.error.kind.value,
            "code": result.error.code,
            "message": result.error.message,
        }
    return entry


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    return {
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "total": len(report.results),
            "applied": len(report.applied),
            "pending": len(report.pending),
            "invalid": len(report.invalid),
            "cancelled": len(report.cancelled),
            "unreachable": len(report.unreachable),
            "saved": len(report.saved_buffers),
        },
        "results": [result_to_json(r) for r in report.results],
        "saved_buffers": list(report.saved_buffers),
    }
