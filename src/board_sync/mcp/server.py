"""MCP Server for board synchronization using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents push Org outline cards, checklists and items to the remote board.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..logger import setup_logging
from .lifespan import server_lifespan
from .tools import (
    ALL_SPECS,
    ToolContext,
    ToolRegistry,
    build_error_response,
)
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("board-sync")

# Global tool context (initialized in lifespan)
_context: ToolContext | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool
# ---------------------------------------------------------------------------


async def _handle_ping(
    ctx: ToolContext, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- check board API credentials."""
    try:
        username = await run_sync(
            ctx.engine.transport.client.validate_connection
        )
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Board Sync MCP server connected successfully as {username}.",
                )
            ]
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Board API connection failed: {e}. Check BOARD_API_URL, BOARD_API_KEY, BOARD_API_TOKEN.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test board API connectivity and return the authenticated username",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> ToolContext:
    """Get the global ToolContext instance.

    Raises:
        RuntimeError: If the context is not initialized
    """
    if _context is None:
        raise RuntimeError(
            "Sync engine not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: ToolContext | None) -> None:
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available board sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    context = get_context()
    try:
        return await get_registry().call_tool(name, arguments, context)
    except ValueError as e:
        # Unknown tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    board API credentials via the lifespan manager, and starts the server
    with stdio transport for JSON-RPC communication.

    Args:
        config_overrides: Optional dict with config values to override
            (api_url, api_key, api_token, insecure, log_file)
    """
    log_file = (
        config_overrides.get("log_file") if config_overrides else None
    )

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(mode="mcp", log_file=log_file)

    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs)
    logger.info("Registered %d tools", registry.tool_count())
    set_registry(registry)

    # set_context() is called here rather than in the lifespan so that
    # running this file as __main__ does not update a second module copy.
    async with server_lifespan(
        config_overrides=config_overrides
    ) as ctx:
        set_context(
            ToolContext(
                engine=ctx["engine"],
                synchronous=ctx["sync"].synchronous,
            )
        )
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="board-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_context(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Board Sync - MCP server syncing Org outlines with a Trello-compatible board",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or config.yml)
  board-sync

  # Override the API base URL
  board-sync --api-url https://api.trello.com/1

  # Custom log file location
  board-sync --log-file /var/log/board-sync.log

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--api-url",
        help="Override board API base URL (takes precedence over BOARD_API_URL and config files)",
    )
    parser.add_argument(
        "--api-key",
        help="Override board API key (takes precedence over BOARD_API_KEY and config files)",
    )
    parser.add_argument(
        "--api-token",
        help="Override board API token (takes precedence over BOARD_API_TOKEN and config files)"
        " (visible in process list -- prefer BOARD_API_TOKEN env var for security)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/board-sync.log",
        help="Log file path (default: /tmp/board-sync.log)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"board-sync version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    if args.api_url:
        config_overrides["api_url"] = args.api_url
    if args.api_key:
        config_overrides["api_key"] = args.api_key
    if args.api_token:
        config_overrides["api_token"] = args.api_token
    if args.insecure:
        config_overrides["insecure"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file

    if config_overrides:
        override_keys = [
            k for k in config_overrides.keys() if k != "api_token"
        ]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(
            main(
                config_overrides=config_overrides
                if config_overrides
                else None
            )
        )
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
