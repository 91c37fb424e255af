"""
Logging setup for the approval service.

Every record passing the root handler is stamped with the caller's request
context (request id, group, member) by RequestContextFilter, so services
only pass event-specific extras such as ``application_id``.

- Production: one JSON object per line
- Development / tests: a single readable line with a context suffix
- LOG_LEVEL overrides the default level
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Stamped from flask.g for records emitted inside a request
CONTEXT_FIELDS = ("request_id", "group_id", "member_id")
# Passed explicitly via ``extra=`` by the code that logs them
EVENT_FIELDS = ("method", "path", "status", "duration_ms", "application_id")


class RequestContextFilter(logging.Filter):
    """Copy request identity from ``g`` onto the record unless already set."""

    def filter(self, record: logging.LogRecord) -> bool:
        in_request = has_request_context()
        for key in CONTEXT_FIELDS:
            if getattr(record, key, None) is None:
                setattr(record, key, getattr(g, key, None) if in_request else None)
        return True


def _fields(record: logging.LogRecord) -> dict:
    values = {}
    for key in CONTEXT_FIELDS + EVENT_FIELDS:
        val = getattr(record, key, None)
        if val is not None:
            values[key] = val
    return values


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_fields(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO     app.services.x: message [group=1 member=4]``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        context = " ".join(
            f"{key.removesuffix('_id')}={val}"
            for key, val in _fields(record).items()
            if key not in ("method", "path", "request_id")
        )
        line = f"{ts} {record.levelname:<8} {record.name}: {record.getMessage()}"
        if context:
            line += f" [{context}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable")
