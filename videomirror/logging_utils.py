"""Logging configuration helpers with structured output."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from typing import Any

from .config import AppConfig

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
# Chatty third-party loggers kept at WARNING outside development.
NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "apscheduler.executors.default")
# ``extra=`` keys lifted into the JSON line when a record carries them.
MIRROR_FIELDS: tuple[str, ...] = (
    "job_id",
    "status",
    "duration_ms",
    "video_id",
    "cursor",
    "pages_fetched",
    "inserted",
    "updated",
    "paths",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line: base fields plus any mirror context present."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "event": getattr(record, "event", record.funcName),
            "environment": getattr(record, "environment", "unknown"),
        }
        context = {key: record.__dict__[key] for key in MIRROR_FIELDS if record.__dict__.get(key) is not None}
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextFilter(logging.Filter):
    """Injects common context fields into every log record."""

    def __init__(self, environment: str) -> None:
        super().__init__()
        self._environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = self._environment
        record.event = getattr(record, "event", record.funcName)
        return True


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Emit a compact JSON event line through ``logger``."""
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, separators=(",", ":")))


def configure_logging(config: AppConfig) -> None:
    """Configure console and rotating JSON file outputs on the root logger."""
    root = logging.getLogger()
    development = config.environment == "development"
    root.setLevel(logging.DEBUG if development else logging.INFO)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    context_filter = ContextFilter(config.environment)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    console_handler.addFilter(context_filter)
    root.addHandler(console_handler)

    config.log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = TimedRotatingFileHandler(
        filename=str(config.log_path),
        when="midnight",
        backupCount=14,
        utc=True,
        encoding="utf-8",
    )
    file_handler.setFormatter(JsonFormatter())
    file_handler.addFilter(context_filter)
    root.addHandler(file_handler)

    if not development:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
