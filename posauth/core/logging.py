"""Logging setup for posauth.

Production emits one JSON object per line; development gets a compact text
format. Secrets must never reach a sink, so structured context passed via
``extra={"context": {...}}`` is masked before it is written.
"""

import json
import logging
import sys
from typing import Literal

LogFormat = Literal["structured", "dev"]

DEV_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S"

REDACTED_FIELDS = frozenset({"password", "passWord", "current_password", "new_password"})
REDACTED = "***HIDDEN***"

# Chatty at INFO; auth events get lost in them
QUIET_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "aiosqlite")


def redact(data: dict) -> dict:
    """Return a shallow copy of ``data`` with secret fields masked."""
    return {key: REDACTED if key in REDACTED_FIELDS else value for key, value in data.items()}


class JSONFormatter(logging.Formatter):
    """Serialize records as JSON; json.dumps handles quotes and newlines in messages."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, ISO_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            entry["context"] = redact(context)

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _build_handler(format_type: LogFormat) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if format_type == "structured":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEV_FORMAT, datefmt="%H:%M:%S"))
    return handler


def setup_logging(level: str = "INFO", format_type: LogFormat = "dev") -> None:
    """Send every record to stdout in the chosen format.

    Calling it again replaces the previous root handler.
    """
    root = logging.getLogger()
    root.handlers = [_build_handler(format_type)]
    root.setLevel(level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if level.upper() == "DEBUG" else logging.WARNING
    )

    get_logger("logging").info(f"Logging configured: level={level}, format={format_type}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``posauth`` namespace."""
    return logging.getLogger(f"posauth.{name}")
