"""
Structured JSON logging.

Logs go to stdout as one JSON object per line so log collectors can index
fields such as subject, path and decision. Structured data is attached with
`logger.info("msg", extra={"auth_data": {...}})`.

Serialization of the structured data goes through `to_json()`, a pure
function with no module state: it either returns the encoded string or
raises LogFormatError. The formatter catches that and degrades to repr(),
so a value that can't be encoded never breaks the request that logged it.
"""

import json
import logging
import sys
from typing import Any


class LogFormatError(ValueError):
    """Raised when a value can't be encoded as JSON for a log line."""


def to_json(value: Any) -> str:
    """
    Encode a value as compact JSON.

    Unknown types (datetimes, UUIDs, paths) are rendered with str().
    Circular references and any other encoding failure raise LogFormatError,
    including exceptions raised by a value's own __str__.
    """
    try:
        return json.dumps(value, default=str, separators=(", ", ": "))
    except Exception as e:
        raise LogFormatError(f"cannot encode {type(value).__name__}: {e}") from e


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,123", "level": "INFO", "logger": "weather-mcp.gate",
         "message": "Session resolved", "subject": "alice", "path": "/mcp"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        auth_data = getattr(record, "auth_data", None)
        if isinstance(auth_data, dict):
            log_entry.update(auth_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        try:
            return to_json(log_entry)
        except LogFormatError as e:
            log_entry = {k: v if isinstance(v, str) else repr(v) for k, v in log_entry.items()}
            log_entry["log_error"] = str(e)
            return json.dumps(log_entry)


def configure_logging(level: str) -> None:
    """Install the JSON formatter on the root logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter())

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )
