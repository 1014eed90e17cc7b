"""Centralized logging configuration for the ops app and Celery workers.

Services attach identifiers with ``logger.info(..., extra={...})``; both
formatters render the known ones so a provider call can be traced back to
its brand prompt and task.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from app.core.config import settings

_CONTEXT_FIELDS = ("provider", "model", "brand_id", "brand_prompt_id", "session_id", "task_id")


def _context_of(record: logging.LogRecord) -> dict:
    return {name: getattr(record, name) for name in _CONTEXT_FIELDS if getattr(record, name, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shipping in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_data["exception"] = self.formatException(record.exc_info)
        log_data.update(_context_of(record))
        return json.dumps(log_data, ensure_ascii=False, default=str)


class ContextFormatter(logging.Formatter):
    """Human-readable lines with a trailing ``[key=value ...]`` context block."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context_of(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} [{pairs}]"


def setup_logging(level_name: str | None = None) -> None:
    """Configure the root logger once per process."""
    level = getattr(logging, (level_name or settings.log_level).upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if settings.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            ContextFormatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
    root.addHandler(handler)

    # Provider calls are logged by the gateway; raw client chatter would repeat them
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING if not settings.app_debug else level)
    logging.getLogger("celery").setLevel(max(level, logging.INFO))
