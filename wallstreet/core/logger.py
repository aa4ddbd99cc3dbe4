"""
Root logging setup.

Plain text for local runs, one JSON object per line in production so the
log drain can index ``user_id``, ``event_type`` and the other fields
passed through ``extra=``.
"""
from __future__ import annotations

import json
import logging
import sys
from typing import Any

from wallstreet.core.config import settings

_PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line tagged with service and environment."""

    def __init__(self, service: str | None = None, env: str | None = None):
        super().__init__()
        self.service = service or settings.APP_NAME
        self.env = env or settings.ENV

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service,
            "env": self.env,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        return json.dumps(payload, default=str)


def build_handler(log_format: str | None = None) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if (log_format or settings.LOG_FORMAT).lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
    return handler


def init_logging(level: int | None = None) -> None:
    """Attach the stdout handler once; a host that configured logging first wins."""
    root = logging.getLogger()
    if root.handlers:
        return
    root.setLevel(level or getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.addHandler(build_handler())
