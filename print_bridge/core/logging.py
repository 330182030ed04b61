"""
Logging utilities for Print Bridge.

- RequestIdFilter attaches request_id and path (when in a Flask request context)
- JsonFormatter for structured logs when PRINTBRIDGE_JSON_LOGS=true
- configure_logging() initializes root logging with journald or console, and integrates with Flask's logger

Besides Flask request threads, three kinds of background threads log here:
- "print-bridge-worker": one line per dispatch (job id, kind, attempt number,
  dispatch id) and one per outcome (completed, retry scheduled, failed)
- "print-bridge-poller": one line per newly found order and per failed cycle
- backoff timers ("Thread-N"): the redelivery of a job after its delay
Outside a request those records carry request_id "-", so the thread name in
the format string is what ties a job's lines together in journald.
"""

from __future__ import annotations

import logging
import os


class RequestIdFilter(logging.Filter):
    """
    Attach request-scoped metadata (request_id, path) to log records.
    Safely degrades outside of a Flask request context.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            from flask import g, has_request_context, request  # lazy import

            record.request_id = g.request_id if has_request_context() and hasattr(g, "request_id") else "-"
            record.path = request.path if has_request_context() else "-"
        except Exception:
            record.request_id = "-"
            record.path = "-"
        return True


class JsonFormatter(logging.Formatter):
    """
    Minimal JSON formatter that includes timestamp, level, logger, thread, message, request_id, and path.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        from json import dumps

        base = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        path = getattr(record, "path", None)
        if path is not None:
            base["path"] = path
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)
        return dumps(base, ensure_ascii=False)


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure root logging for the application.

    Behavior:
    - Sets root logger to `level` (PRINTBRIDGE_LOG_LEVEL overrides)
    - Clears any existing handlers to avoid duplicates on reload
    - Chooses JSON or plain formatter based on PRINTBRIDGE_JSON_LOGS
    - Prefer systemd's JournalHandler, fallback to StreamHandler
    - Adds RequestIdFilter so formatters can reference %(request_id)s
    - Ensures Flask app logger propagates to root (no separate handlers)

    Returns the configured root logger.
    """
    root = logging.getLogger()
    env_level = os.environ.get("PRINTBRIDGE_LOG_LEVEL")
    root.setLevel(getattr(logging, env_level.upper(), level) if env_level else level)

    # Avoid duplicate logs in dev reloads or repeated factory calls
    root.handlers = []

    json_logs = os.environ.get("PRINTBRIDGE_JSON_LOGS", "false").lower() in ("1", "true", "yes")
    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("[%(asctime)s] %(levelname)s [%(threadName)s] %(request_id)s %(message)s")

    # Prefer systemd journal when available
    try:
        from systemd.journal import JournalHandler  # type: ignore

        handler: logging.Handler = JournalHandler(SYSLOG_IDENTIFIER="print-bridge")
        handler.setFormatter(formatter)
    except Exception:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)

    handler.addFilter(RequestIdFilter())
    root.addHandler(handler)

    # Make Flask's app logger propagate to root (avoid double formatting)
    flask_logger = logging.getLogger("flask.app")
    flask_logger.handlers = []
    flask_logger.propagate = True

    return root


__all__ = ["JsonFormatter", "RequestIdFilter", "configure_logging"]
