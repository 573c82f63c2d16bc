"""ToolSpec and ToolRegistry for MCP tool dispatch.

Key concepts:
- ToolContext: what every handler receives besides its arguments (the
  sync engine and the configured default request mode).
- ToolSpec: Immutable dataclass linking a Tool definition to an async
  handler with signature (context, args) -> CallToolResult.
- ToolRegistry: provides list_tools() and call_tool() dispatch with
  error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types
import requests

from ...document.store import BufferConflictError
from ...sync.engine import SyncEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Shared state handed to tool handlers.

    Attributes:
        engine: The sync engine owning the open buffers.
        synchronous: Default request mode when a call does not set one.
    """

    engine: SyncEngine
    synchronous: bool = False


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        handler: Async handler with signature (context, args) -> CallToolResult.
    """

    tool: types.Tool
    handler: Callable[[ToolContext, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs keyed by tool name."""

    def __init__(self, specs: list[ToolSpec]):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        context: ToolContext,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Provides centralized error handling for HTTP errors, validation
        errors, missing buffers and unexpected exceptions, translating them
        into structured CallToolResult responses with corrective actions.

        Raises:
            ValueError: If tool name is not registered.
        """
        from .errors import build_error_response, translate_http_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(context, args)
        except requests.HTTPError as e:
            logger.warning("HTTP error in %s: %s", name, e)
            return translate_http_error(e)
        except requests.RequestException as e:
            logger.warning("Request error in %s: %s", name, e)
            return build_error_response(
                "connection_error",
                str(e),
                "Check BOARD_API_URL and network connectivity, then retry.",
            )
        except BufferConflictError as e:
            logger.warning("Conflict in %s: %s", name, e)
            return build_error_response(
                "conflict",
                str(e),
                "Save or discard the outside edits, or restart the server "
                "to drop the unsaved sync results, then retry.",
            )
        except KeyError as e:
            return build_error_response(
                "not_found",
                str(e),
                "Pass the absolute path of an existing outline file.",
            )
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and retry.",
            )
