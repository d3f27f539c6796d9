"""
Logging setup for the monthly updates service.

Period lifecycle events (rollover, lock, auto-lock, delete) are logged with
``extra={"event_type": ..., "period_id": ..., "project_id": ...}``; both
formatters put those keys ahead of the message so one period's history
can be grepped out of the stream. Request logging adds method, path,
status, duration and request id.

Production writes one JSON object per line, everything else plain text.
LOG_LEVEL overrides the level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

DOMAIN_FIELDS = ("event_type", "project_id", "period_id")
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic", "urllib3")


def _fields(record: logging.LogRecord, names) -> dict:
    return {
        name: getattr(record, name)
        for name in names
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record: domain keys, then the message, then request keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = _fields(record, DOMAIN_FIELDS)
        entry.update({
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        })
        entry.update(_fields(record, REQUEST_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO  period_service [period.lock period=7] Reporting period locked ...``"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        domain = _fields(record, DOMAIN_FIELDS)
        tag = ""
        if domain:
            parts = [str(domain.pop("event_type", "event"))]
            parts += [f"{key.removesuffix('_id')}={value}" for key, value in domain.items()]
            tag = f"[{' '.join(parts)}] "
        line = f"{ts} {record.levelname:<5} {record.name.rsplit('.', 1)[-1]} {tag}{record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for ``app``."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())

    # Replaced on every app build so test apps don't stack handlers.
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured level=%s json=%s", level_name, is_prod)
