"""MCP tool handlers for board sync operations.

This package wraps the sync engine with async handlers and structured
error responses.
"""

from .errors import build_error_response, translate_http_error
from .registry import ToolContext, ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "build_error_response",
    "translate_http_error",
    # Registry
    "ToolContext",
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
]
