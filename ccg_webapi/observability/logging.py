"""Structured JSON logging for the host."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging import Logger
from typing import Any

from flask import Flask

DEFAULT_LOGGER_NAME = "ccg.webapi"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    return str(value)


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def __init__(self, *, environment: str | None = None) -> None:
        super().__init__()
        self._environment = environment

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - obvious
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self._environment:
            payload["environment"] = self._environment
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRIBUTES or key in payload or key.startswith("_"):
                continue
            payload[key] = _jsonable(value)

        return json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def configure_structured_logging(app: Flask) -> Logger:
    """Point the application logger at a JSON stream handler."""

    logger_name = app.config.get("LOGGER_NAME", DEFAULT_LOGGER_NAME)
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.handlers = []
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter(environment=app.config.get("APP_ENV")))
    logger.addHandler(handler)
    logger.propagate = bool(app.config.get("LOG_PROPAGATE", False))

    app.logger = logger  # type: ignore[misc]
    return logger
