"""Structured logging helpers for the bundle runtime.

Standard output belongs to the launched application, so console diagnostics
always go to standard error.  JSON-lines files are only written when a log
directory is configured.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

__all__ = ["LOGGER_NAME", "JSONFormatter", "get_logger", "setup_logging"]

LOGGER_NAME = "Caxa.Stub"

_CONTEXT_FIELDS = ("stage", "identifier", "attempt", "app_dir", "member")


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string with runtime-specific fields."""

        now = datetime.now(timezone.utc)
        payload = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            payload[field] = getattr(record, field, None)
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def get_logger() -> logging.Logger:
    """Return the runtime logger."""

    return logging.getLogger(LOGGER_NAME)


def setup_logging(
    *,
    level: str = "WARNING",
    log_dir: Optional[Path] = None,
    max_log_size_mb: int = 10,
    propagate: bool = False,
) -> logging.Logger:
    """Configure console logging on stderr plus an optional JSON-lines file.

    Calling this more than once replaces the handlers installed by a previous
    call instead of stacking them.
    """

    logger = get_logger()
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    for handler in list(logger.handlers):
        if getattr(handler, "_caxa_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, RotatingFileHandler):
                handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter("caxa: %(message)s"))
    console_handler._caxa_managed = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"caxa-stub-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._caxa_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
