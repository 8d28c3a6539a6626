"""Structured logging for Thread Memory."""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

_LEVEL_ENV = "TMEM_LOG_LEVEL"
_CONTEXT_PREFIX = "ctx_"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra={"ctx_...": ...}`` fields are carried through."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items() if key.startswith(_CONTEXT_PREFIX)
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


class _ThreadMemoryHandler(logging.StreamHandler):
    """Marker type so reconfiguration replaces only our own handler."""


def configure_logging(level: str | int | None = None, use_json: bool = True) -> None:
    """Install a stdout handler on the root logger, replacing a previous one."""
    root = logging.getLogger()
    root.setLevel(level or os.environ.get(_LEVEL_ENV, "INFO"))
    for existing in [h for h in root.handlers if isinstance(h, _ThreadMemoryHandler)]:
        root.removeHandler(existing)
    handler = _ThreadMemoryHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter() if use_json else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    logging.captureWarnings(True)


def get_logger(name: str = "thread_memory") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger"]
