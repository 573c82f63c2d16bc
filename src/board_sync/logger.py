import json
import logging
import os
import sys

_DATEFMT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_LOG_FILE = "/tmp/board-sync.log"

# Set through ``extra=`` by the sync engine
_CONTEXT_FIELDS = ("buffer", "entity_id", "action")


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for piping sync logs into other tools.

    Always has ``time``, ``level``, ``logger``, ``where`` and ``message``.
    Sync context passed via ``extra`` (buffer, entity_id, action) is
    copied when present, and exceptions land under ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "where": f"{record.module}:{record.lineno}",
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(debug_format: str, with_name: bool) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    fmt = "[%(asctime)s] [%(levelname)s] "
    if with_name:
        fmt += "%(name)s "
    return logging.Formatter(fmt + "%(message)s", datefmt=_DATEFMT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var in mcp mode).
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/board-sync.log
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if mode == "mcp":
        # stdio transport owns stdout
        target = log_file or os.getenv("LOG_FILE", _DEFAULT_LOG_FILE)
        handler = logging.FileHandler(target, mode="a", delay=True)
        handler.setFormatter(_make_formatter(debug_format, with_name=True))
        handlers.append(handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            _make_formatter(debug_format, with_name=False)
        )
        handlers.append(stderr_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(
                _make_formatter(debug_format, with_name=True)
            )
            handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers)

    if log_level != logging.DEBUG:
        for name in ("urllib3", "requests", "charset_normalizer"):
            logging.getLogger(name).setLevel(logging.WARNING)
