"""Structured logging configuration for payplan."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from payplan.exceptions import ConfigurationError

LOG_FORMATS = ("standard", "json")

# Identifiers the engine attaches through ``extra=``
CONTEXT_FIELDS = ("subject_id", "record_id", "installment_id")

NOISY_LOGGERS = ("confluent_kafka", "psycopg", "faker")


def setup_logging(
    level: str = "INFO",
    format_type: str = "standard",
    stream: TextIO | None = None,
) -> None:
    """Configure the root logger for payplan processes.

    Parameters
    ----------
    level : str
        Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL); unknown
        names fall back to INFO.
    format_type : str
        "standard" for human-readable lines, "json" for one JSON object per line.
    stream : TextIO | None
        Destination stream (default stdout).

    Raises
    ------
    ConfigurationError
        If ``format_type`` is not one of ``LOG_FORMATS``.
    """
    if format_type not in LOG_FORMATS:
        raise ConfigurationError(
            f"Unknown log format {format_type!r}; expected one of {', '.join(LOG_FORMATS)}"
        )
    log_level = getattr(logging, level.upper(), logging.INFO)

    formatter: logging.Formatter
    if format_type == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    logging.getLogger("payplan").setLevel(log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with reconciliation identifiers as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


def get_logger(name: str, **context: Any) -> logging.Logger | logging.LoggerAdapter:
    """Get a logger, optionally bound to reconciliation identifiers.

    ``get_logger(__name__, subject_id="doc-001")`` returns an adapter whose
    records carry ``subject_id`` without passing ``extra=`` on every call.
    """
    logger = logging.getLogger(name)
    if not context:
        return logger
    return logging.LoggerAdapter(logger, context)
