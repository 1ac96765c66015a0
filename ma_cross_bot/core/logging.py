"""Structured JSON logging for the alerter, backtest and downloader processes.

Every record becomes one JSON line on stdout. Values passed through ``extra=`` are
grouped under ``context``; enums, feed keys and timestamps are rendered as plain
JSON scalars so alert state can be grepped directly from the logs.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from ma_cross_bot.core.types import FeedKey

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()) | {"service"}

# chatty third-party loggers capped at WARNING unless running at DEBUG
_NOISY_LOGGERS = ("websockets", "aiohttp.access", "uvicorn.access", "asyncio")


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return list(value)
    return str(value)


class ServiceFilter(logging.Filter):
    """Stamp each record with the name of the process that emitted it."""

    def __init__(self, service: str) -> None:
        super().__init__()
        self.service = service

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "service", None):
            record.service = self.service
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        service = getattr(record, "service", None)
        if service:
            payload["service"] = service

        context = {
            key: str(value) if isinstance(value, FeedKey) else value
            for key, value in record.__dict__.items()
            if key not in _RESERVED and not key.startswith("_")
        }
        if context:
            payload["context"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=_json_default)


def configure_logging(level: str = "INFO", service: str | None = None) -> None:
    """Install the JSON stdout handler on the root logger; later calls are no-ops."""

    root = logging.getLogger()
    if getattr(root, "_ma_cross_bot_configured", False):
        return

    root.handlers.clear()
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter())
    if service:
        handler.addFilter(ServiceFilter(service))

    root.addHandler(handler)
    root.setLevel(level.upper())
    if root.level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(root.level, logging.WARNING))
    setattr(root, "_ma_cross_bot_configured", True)
