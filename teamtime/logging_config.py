"""
Logging setup for the client and the CLI.

- Production: one JSON object per line on stderr
- Development / testing: short coloured lines with the workflow context
  (area, import, staging record, transfer) appended
- Level: LOG_LEVEL from the config or the environment
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Extras the gateway and services attach with logger.x(..., extra={...})
CONTEXT_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "area_id",
    "import_id",
    "staging_id",
    "transfer_id",
    "workflow_state",
)

# Short labels used by the readable format; request fields are shown inline
_READABLE_LABELS = {
    "area_id": "area",
    "import_id": "import",
    "staging_id": "staging",
    "transfer_id": "transfer",
    "workflow_state": "state",
}

NOISY_LOGGERS = ("urllib3", "requests")


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """Machine-readable lines for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """One terminal line per record: time, level, logger, message, context."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_color:
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{stamp} {level} {record.name}: {record.getMessage()}"

        context = _context(record)
        tags = [
            f"{label}={context[key]}" for key, label in _READABLE_LABELS.items() if key in context
        ]
        if tags:
            line += f" ({' '.join(tags)})"
        if "duration_ms" in context:
            line += f" [{context['duration_ms']:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(cfg, stream=None) -> None:
    """
    Install a single stderr handler on the root logger.

    Called once by init_client(); calling it again replaces the handler
    instead of adding a second one.
    """
    testing = getattr(cfg, "TESTING", False)
    production = not getattr(cfg, "DEBUG", False) and not testing

    level_name = getattr(cfg, "LOG_LEVEL", None) or os.getenv(
        "LOG_LEVEL", "INFO" if production else "DEBUG"
    )
    level = getattr(logging, level_name.upper(), logging.INFO)

    stream = stream or sys.stderr
    if production:
        formatter = JSONFormatter()
    else:
        formatter = ReadableFormatter(use_color=hasattr(stream, "isatty") and stream.isatty())

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not testing:
        logging.getLogger("teamtime").debug(
            "Logging ready: level=%s format=%s", level_name, "json" if production else "readable"
        )
