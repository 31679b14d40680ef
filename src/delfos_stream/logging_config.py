"""Structured logging configuration helpers for the market data stream."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict

DEFAULT_ENV = os.getenv("DELFOS_STREAM_ENV", os.getenv("ENV", "local"))

_RESERVED_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter that emits a stable set of fields.

    Values passed through the logging ``extra`` dictionary are preserved so
    callers can attach contextual identifiers (``event``, ``url``,
    ``connection_id``, ``symbol``) to a line. The ``event`` field is a short,
    machine-readable label that downstream alerting can key on, e.g.
    ``stream_reconnect_scheduled``.
    """

    def __init__(self, env: str | None = None) -> None:
        super().__init__()
        self.env = env or DEFAULT_ENV

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        log_time = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": log_time.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "event": getattr(record, "event", None),
            "env": getattr(record, "env", self.env),
            "connection_id": getattr(record, "connection_id", None),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_FIELDS:
                continue
            payload.setdefault(key, value)

        return json.dumps(payload, default=str)


def configure_logging(level: int | str = logging.INFO, env: str | None = None) -> None:
    """Configure root logging with a JSON formatter and stdout handler.

    ``level`` accepts a numeric level or a name such as ``StreamConfig.log_level``.
    """

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(env=env))
    root_logger.addHandler(handler)


def structured_log_extra(
    *,
    env: str | None = None,
    event: str | None = None,
    connection_id: int | None = None,
    url: str | None = None,
    symbol: str | None = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Build a consistent set of logging extras with common fields.

    ``event`` should be a short, stable identifier for the log line. The
    optional identifiers (``url``, ``symbol``) are only included when given;
    any further keyword arguments are forwarded untouched.
    """

    extra: Dict[str, Any] = {
        "event": event,
        "env": env or DEFAULT_ENV,
        "connection_id": connection_id,
    }

    identifier_fields = {"url": url, "symbol": symbol}
    for key, value in identifier_fields.items():
        if value is not None:
            extra[key] = value

    extra.update(kwargs)
    return extra


__all__: list[str] = [
    "JsonFormatter",
    "configure_logging",
    "structured_log_extra",
]
