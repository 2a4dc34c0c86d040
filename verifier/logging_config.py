"""Logging setup driven by ``LoggingSettings``.

Installs a JSON (default) or plain-text formatter on the root logger so every
module-level ``logging.getLogger(__name__)`` logger shares one output format.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from .config import settings

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def build_formatter(fmt: str) -> logging.Formatter:
    """Return the formatter for a configured format name."""
    if fmt.lower() == "json":
        return JsonFormatter()
    return logging.Formatter(_TEXT_FORMAT)


def setup_logging() -> None:
    """Configure the root logger from settings.

    Safe to call more than once: handlers installed by a previous call are
    replaced rather than duplicated.
    """
    root = logging.getLogger()
    root.setLevel(settings.logging.level.upper())

    for handler in list(root.handlers):
        if getattr(handler, "_verifier_handler", False):
            root.removeHandler(handler)

    formatter = build_formatter(settings.logging.format)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.logging.file:
        handlers.append(logging.FileHandler(settings.logging.file, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._verifier_handler = True
        root.addHandler(handler)

    # uvicorn access logs duplicate RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
