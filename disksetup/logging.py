from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, Optional

TEXT_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# Structured fields callers may attach through ``extra=``
EXTRA_FIELDS = ('device', 'unit', 'service', 'binding', 'mode')


class JsonLogFormatter(logging.Formatter):
    """Render log records as JSON lines for the journal or a log shipper."""

    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03dZ"

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - base class contract
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.default_time_format),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                payload[name] = getattr(record, name)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=True)


def init_logging(level: str = "INFO", log_format: str = "text",
                 stream: Optional[Any] = None) -> logging.Handler:
    """Configure the root logger once per process and return the installed handler."""

    handler = logging.StreamHandler(stream or sys.stderr)
    if log_format == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    # Replace handlers from an earlier call to avoid duplicate lines.
    for existing in list(root_logger.handlers):
        if getattr(existing, "_disk_setup", False):
            root_logger.removeHandler(existing)
    handler._disk_setup = True  # type: ignore[attr-defined]

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
