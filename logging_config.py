"""
Structured logging for the rank engine.

Production emits one JSON object per line, development a readable text line.
Every record logged while a request is active carries that request's id and,
for student or club routes, the student/club id from the URL, so audit lines
and trend warnings can be traced back to the call that produced them.
"""

from __future__ import annotations

import json
import logging
import time
import uuid

from flask import Flask, g, has_request_context, request

ACCESS_LOGGER = "dojo.access"

_CONTEXT_FIELDS = ("request_id", "club_id", "student_id")
_ACCESS_FIELDS = ("method", "path", "status", "duration_ms")


class RequestContextFilter(logging.Filter):
    """Copy the current request id and URL ids onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = getattr(g, "request_id", "-")
            view_args = request.view_args or {}
            for key in ("club_id", "student_id"):
                if key in view_args and not hasattr(record, key):
                    setattr(record, key, view_args[key])
        return True


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS + _ACCESS_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            "%(asctime)s [%(levelname)s] %(name)s (%(request_id)s): %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return super().format(record)


def init_logging(app: Flask) -> None:
    """Install the root handler and the per-request id/access-log hooks."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, app.config.get("LOG_LEVEL", "INFO").upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(
        JSONFormatter() if app.config.get("LOG_FORMAT", "text") == "json" else TextFormatter()
    )
    root.addHandler(handler)

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    access_log = logging.getLogger(ACCESS_LOGGER)

    @app.before_request
    def _start_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.request_start = time.perf_counter()

    @app.after_request
    def _finish_request(response):
        request_id = getattr(g, "request_id", "-")
        response.headers["X-Request-ID"] = request_id
        started = getattr(g, "request_start", None)
        duration_ms = round((time.perf_counter() - started) * 1000, 1) if started else 0.0
        access_log.info(
            "%s %s -> %s",
            request.method,
            request.path,
            response.status_code,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
