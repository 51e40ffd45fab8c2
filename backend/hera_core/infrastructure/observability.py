"""Structured Logging — JSON formatter, PII redaction filter and setup.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (error_kind, path, resource_id, action_id, stat_id, outcome,
      attempt) surfaced when present
    - Every record passes RedactingFilter: emails masked in the message,
      sensitive keys dropped from structured args
    - JSON format in production, human-readable in development

Design Decisions:
    - JSONFormatter over third-party libs: zero dependencies, full control
    - setup_logging called once on startup via lifespan
    - Redaction reuses core/sanitize.py so logs and API payloads share one rule set
"""

import logging
import json
from datetime import datetime, timezone
from typing import Mapping

from hera_core.core.sanitize import mask_emails, redact

EXTRA_FIELDS = (
    "error_kind", "path", "resource_id", "action_id", "stat_id",
    "outcome", "reason", "attempt", "status_code",
)


class RedactingFilter(logging.Filter):
    """Strip PII from records before any handler formats them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = mask_emails(record.msg)
        if isinstance(record.args, Mapping):
            record.args = redact(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(redact(a) for a in record.args)
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                record.__dict__[key] = redact(val)
        return True


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure logging for the application."""
    handler = logging.StreamHandler()
    handler.addFilter(RedactingFilter())
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
