"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import SyncConfig, build_config
from ..core.async_utils import init_semaphore, run_sync
from ..core.client import BoardClient
from ..core.transport import RequestTransport
from ..document.store import DocumentStore
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create BoardClient and validate credentials
    - Build the document store, transport and sync engine

    On shutdown:
    - Save any buffers still marked dirty

    Args:
        config_overrides: Optional dict with config values from CLI
            (api_url, api_key, api_token, insecure)

    Yields:
        Dict with 'client', 'engine' and 'sync' (the ``SyncConfig``) keys

    Raises:
        RuntimeError: If configuration is invalid or the board API is unreachable.
    """
    logger.info("MCP server starting...")
    _stderr_print("Board Sync MCP Server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        sync_settings = SyncConfig()
        config_files = discover_config_files()
        sources = []

        if config_files:
            config_path = config_files[0]
            raw = load_hierarchical_config()
            unified = build_config(raw)
            yaml_fallbacks = {
                k: v
                for k, v in unified.board.model_dump().items()
                if v is not None
            }
            sync_settings = unified.sync
            sources.append(f"config file: {config_path}")

        overrides = config_overrides or {}
        config = load_config(
            api_key=overrides.get("api_key"),
            api_token=overrides.get("api_token"),
            api_url=overrides.get("api_url"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Board API URL: %s", config.api_url)
        _stderr_print(f"  Board API URL: {config.api_url}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure BOARD_API_KEY and BOARD_API_TOKEN are set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure BOARD_API_KEY and BOARD_API_TOKEN are set."
        ) from e

    logger.info("Validating board API credentials...")
    _stderr_print("  Validating board API credentials...")
    try:
        client = BoardClient(config)
        username = await run_sync(client.validate_connection)
        logger.info("Authenticated as %s", username)
        _stderr_print(f"  Authenticated as {username}")
        init_semaphore(config.max_parallel_requests)
        _stderr_print(
            f"  Parallel requests: {config.max_parallel_requests}"
        )
    except Exception as e:
        logger.error("Failed to connect to board API: %s", e)
        _stderr_print("ERROR: Board API connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check BOARD_API_URL, BOARD_API_KEY, BOARD_API_TOKEN.")
        raise RuntimeError(
            f"Board API connection failed: {e}. Check BOARD_API_URL, BOARD_API_KEY, BOARD_API_TOKEN."
        ) from e

    engine = SyncEngine(
        DocumentStore(),
        RequestTransport(client),
        marker_prefix=sync_settings.marker_prefix,
    )
    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"client": client, "engine": engine, "sync": sync_settings}
    finally:
        if len(engine.dirty):
            saved = engine.save_dirty_buffers()
            logger.info("Saved %d buffer(s) on shutdown", len(saved))
        logger.info("MCP server shutting down")
        _stderr_print("Board Sync MCP Server shutting down.")
