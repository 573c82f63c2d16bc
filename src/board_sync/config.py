"""Connection configuration for the board REST API.

Reads board credentials from CLI args, environment variables, .env files,
and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    BOARD_API_URL: REST API base URL (optional, default: https://api.trello.com/1)
    BOARD_API_KEY: API key (required)
    BOARD_API_TOKEN: API token (required)
    BOARD_INSECURE: Skip SSL verification (optional, default: false)
    BOARD_DEBUG: Enable debug logging (optional, default: false)
    BOARD_MAX_PARALLEL_REQUESTS: Max concurrent requests when draining
        queued work asynchronously (optional, default: 1)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.trello.com/1"


@dataclass
class Config:
    api_key: str
    api_token: str
    api_url: str = DEFAULT_API_URL
    insecure: bool = False
    debug: bool = False
    max_parallel_requests: int = 1


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If URL format is invalid or credentials are empty.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if not config.api_key.strip():
        raise ValueError(
            "API key cannot be empty. Set BOARD_API_KEY environment variable."
        )

    if not config.api_token.strip():
        raise ValueError(
            "API token cannot be empty. Set BOARD_API_TOKEN environment variable."
        )

    if not (1 <= config.max_parallel_requests <= 20):
        raise ValueError(
            f"Invalid max_parallel_requests {config.max_parallel_requests}: must be between 1 and 20"
        )

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    api_key: str | None = None,
    api_token: str | None = None,
    api_url: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_key: Override API key.
        api_token: Override API token.
        api_url: Override API base URL.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML config ``board``
            section, used when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If the key or token is missing after checking all
            sources, or if a value is out of range.
    """
    fb = yaml_fallbacks or {}

    final_key = api_key or os.getenv("BOARD_API_KEY") or fb.get("api_key")
    if not final_key:
        raise ValueError(
            "API key not found. Set BOARD_API_KEY environment variable, "
            "pass --api-key CLI argument, or add 'api_key' to config.yml."
        )

    final_token = (
        api_token or os.getenv("BOARD_API_TOKEN") or fb.get("api_token")
    )
    if not final_token:
        raise ValueError(
            "API token not found. Set BOARD_API_TOKEN environment variable, "
            "pass --api-token CLI argument, or add 'api_token' to config.yml."
        )

    final_url = (
        api_url
        or os.getenv("BOARD_API_URL")
        or fb.get("api_url")
        or DEFAULT_API_URL
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("BOARD_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("BOARD_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    max_parallel_raw = os.getenv("BOARD_MAX_PARALLEL_REQUESTS")
    if max_parallel_raw is not None:
        try:
            final_max_parallel = int(max_parallel_raw)
        except ValueError:
            raise ValueError(
                f"Invalid BOARD_MAX_PARALLEL_REQUESTS '{max_parallel_raw}': must be a number between 1 and 20"
            ) from None
    elif "max_parallel_requests" in fb:
        final_max_parallel = int(fb["max_parallel_requests"])
    else:
        final_max_parallel = 1

    config = Config(
        api_key=final_key.strip(),
        api_token=final_token.strip(),
        api_url=final_url,
        insecure=final_insecure,
        debug=final_debug,
        max_parallel_requests=final_max_parallel,
    )

    validate_config(config)

    return config
