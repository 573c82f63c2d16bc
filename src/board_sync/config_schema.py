"""Unified configuration schema for board_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the board connection, sync behaviour and logging, plus an
adapter to the ``Config`` dataclass used to build the REST client.

Usage:
    from board_sync.config_schema import build_config, to_legacy_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"api_key": "..."})
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config


class BoardConfig(BaseModel):
    """Board REST API connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    api_url: str | None = Field(
        default=None, description="REST API base URL"
    )
    api_key: str | None = Field(default=None, description="API key")
    api_token: str | None = Field(default=None, description="API token")
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    max_parallel_requests: int = Field(
        default=1,
        ge=1,
        le=20,
        description="Maximum concurrent requests when draining queued work (1-20)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Entity sync behaviour.

    Attributes:
        marker_prefix: Prefix of the placeholder written onto entities
            that have no remote id yet.
        synchronous: Default request mode for single-entity actions.
    """

    marker_prefix: str = Field(
        default="orgtrello-marker-",
        min_length=1,
        description="Prefix for local placeholder markers",
    )
    synchronous: bool = Field(
        default=False,
        description="Perform single-entity requests synchronously",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    board: BoardConfig = Field(default_factory=BoardConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top.

    CLI override keys: api_url, api_key, api_token, insecure, debug.

    Returns:
        ``Config`` instance (NOT validated; run ``validate_config()``).
    """
    from .config import DEFAULT_API_URL, Config

    overrides = cli_overrides or {}

    return Config(
        api_key=overrides.get("api_key") or unified.board.api_key or "",
        api_token=overrides.get("api_token")
        or unified.board.api_token
        or "",
        api_url=overrides.get("api_url")
        or unified.board.api_url
        or DEFAULT_API_URL,
        insecure=overrides.get("insecure", False)
        or unified.board.insecure,
        debug=overrides.get("debug", False) or unified.board.debug,
        max_parallel_requests=unified.board.max_parallel_requests,
    )
