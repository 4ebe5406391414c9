"""Logging configuration for compdb-capture.

Diagnostics go to stderr so they never mix with the build output that
`run` mirrors on stdout.
"""

import json
import logging
import sys
from typing import Any

ROOT_LOGGER = "compdb_capture"

# Attributes set through `extra=` that JSON logs carry as fields
CONTEXT_FIELDS = ("build", "stream", "source", "reasons")


def setup_logging(
    level: int = logging.INFO,
    json_format: bool = False,
) -> logging.Logger:
    """
    Configure the compdb_capture logger hierarchy.

    Args:
        level: Logging level (default: INFO)
        json_format: If True, output one JSON object per record

    Returns:
        Configured root package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    logger.addHandler(handler)
    return logger


class JsonFormatter(logging.Formatter):
    """Format records as JSON, including capture context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def get_logger(name: str | None = None) -> logging.Logger:
    """Get `compdb_capture.<name>`, or the package logger without a name."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)
