"""
Hierarchical YAML configuration loader for board_sync.

Finds config files by convention, supports ``!include`` and ``${VAR}``
interpolation, and merges files with "project wins" semantics.

Usage:
    from board_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BOARD_SYNC_CONFIG"
PROJECT_DIR_NAME = ".board_sync"

# ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` with environment values.

    An unset or empty variable without a default becomes ``""``.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass carrying the ``!include`` constructor.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched.
    """


def _include_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> Any:
    """Load the file named by ``!include path`` relative to the includer."""
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    stack: list[Path] = getattr(loader, "_include_stack", [])
    if target in stack:
        chain = " -> ".join(str(p) for p in [*stack, target])
        raise ValueError(f"Circular include detected: {chain}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {Path(loader.name).resolve()})"
        )
    return load_yaml_file(target, _include_stack=[*stack, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def load_yaml_file(
    path: Path, *, _include_stack: list[Path] | None = None
) -> Any:
    """Parse one YAML file with ``!include`` support."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``BOARD_SYNC_CONFIG`` env var (explicit single path)
        2. ``.board_sync/config.yml`` in CWD (project-level)
        3. ``~/.config/board_sync/config.yml`` (XDG global)
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    candidates.append(Path.cwd() / PROJECT_DIR_NAME / "config.yml")
    candidates.append(
        Path.home() / ".config" / "board_sync" / "config.yml"
    )

    return [p for p in candidates if p.exists()]


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest to highest precedence; each file's
    top-level keys replace (not deep-merge) earlier ones. Environment
    interpolation runs after the merge. Returns ``{}`` when no file exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
