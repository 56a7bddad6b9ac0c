"""Structured logging setup for MarketNews.

Every module logs through a ``marketnews.*`` child logger. Feed-level
records carry the source they concern (``source_id``, ``feed_url``) plus
optional counters, passed via ``extra=source_context(source, ...)``; the
JSON formatter lifts those onto the line and the simple formatter tags the
message with the source id.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from marketnews.config import get_config

ROOT_LOGGER_NAME = "marketnews"

# Record attributes promoted to top-level JSON keys when present
CONTEXT_FIELDS = ("source_id", "feed_url", "items", "attempt")


def source_context(source: Any, **fields: Any) -> dict[str, Any]:
    """Build ``extra=`` for a record about one feed source.

    Args:
        source: Anything with ``id`` and ``feed_url`` (a ``FeedSource``).
        **fields: Additional context fields (see ``CONTEXT_FIELDS``).
    """
    context = {"source_id": source.id, "feed_url": source.feed_url}
    context.update(fields)
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with feed context when the record has it."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class SimpleFormatter(logging.Formatter):
    """Human-readable lines; feed records are tagged ``[source_id]``."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        source_id = getattr(record, "source_id", None)
        return f"{line} [{source_id}]" if source_id else line


_initialized = False


def setup_logging(level: str | None = None, format_type: str | None = None) -> None:
    """Attach a single stderr handler to the ``marketnews`` logger.

    Stdout is left to CLI output (JSON lines, CSV paths). Level and format
    default to ``LOG_LEVEL`` / ``LOG_FORMAT`` from config; repeated calls are
    no-ops until ``reset_logging()``.
    """
    global _initialized
    if _initialized:
        return

    config = get_config()
    log_level = getattr(logging, (level or config.logging.level).upper(), logging.INFO)
    format_type = format_type or config.logging.format

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter() if format_type == "json" else SimpleFormatter())

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(log_level)
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    # caplog hooks the root logger
    package_logger.propagate = True

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Child logger under ``marketnews`` (``"news.pull"`` -> ``marketnews.news.pull``)."""
    setup_logging()

    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def reset_logging() -> None:
    global _initialized
    _initialized = False
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()
