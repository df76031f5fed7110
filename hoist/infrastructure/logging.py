"""
Centralized Logging

Architectural Intent:
- One log stream per run: every step, retry and rollback outcome lands here
- Optional structured JSON output for log shippers
- Level chosen by CLI flags (--verbose, --debug) or the config's log_level
"""

import json
import logging
import sys
from datetime import datetime, UTC
from typing import Union


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_format: bool = False,
) -> None:
    """Configure logging for hoist.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ...) as int or name
        json_format: If True, use JSON structured output. Otherwise human-readable.
    """
    level = resolve_level(level)
    root = logging.getLogger("hoist")
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )

    root.addHandler(handler)
