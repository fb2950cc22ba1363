"""Logging setup for the dynprof logger hierarchy."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

ROOT_LOGGER_NAME = "dynprof"

_HANDLER_ATTR = "_dynprof_handler"


class JSONFormatter(logging.Formatter):
    """ELK/Datadog style JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def configure_logging(
    level: int | str = logging.INFO,
    structured: bool = False,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Attach a single handler to the dynprof logger.

    Calling this again replaces the handler installed by the previous call
    rather than stacking a second one.

    Args:
        level: Default level for the dynprof hierarchy
        structured: Emit JSON lines instead of plain text
        stream: Output stream (default: stderr)

    Returns:
        The configured dynprof logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)

    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_ATTR, False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if structured:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s")
        )
    setattr(handler, _HANDLER_ATTR, True)

    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
