"""
Centralized Logging

Architectural Intent:
- Structured JSON or human-readable logging for every Strata component
- One place configures handlers; modules only call logging.getLogger(__name__)
- Log level comes from config and the CLI's --verbose / --debug flags
"""

import json
import logging
import sys
from datetime import datetime, UTC


# Resource context attached through `extra=` by the engine and adapters.
CONTEXT_FIELDS = ("stack", "logical_id", "operation", "remote_id")


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter.

    Records carrying resource context (see CONTEXT_FIELDS) get those keys
    in the entry, so one stack run can be filtered out of a shared log.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def resolve_level(name: str, default: int = logging.WARNING) -> int:
    """Map a level name such as "info" to its logging constant."""
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default


def configure_logging(
    level: int = logging.WARNING,
    json_format: bool = False,
) -> None:
    """Configure the "strata" logger hierarchy.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, etc.)
        json_format: If True, use JSON structured output. Otherwise human-readable.
    """
    root = logging.getLogger("strata")
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
