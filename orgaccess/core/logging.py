"""Logging configuration for orgaccess.

TWO KINDS OF LOG LINES
------------------------
The service writes two streams through the same root handler:

  1. OPERATIONAL logs, one logger per module (``orgaccess.api.invitations``,
     ``orgaccess.repos.state_store``...).  Request summaries, store
     conflicts, event publishing failures.  Every line carries the
     ``request_id`` injected by RequestContextMiddleware.

  2. AUDIT records on the ``orgaccess.audit`` logger (see core/audit.py).
     One record per authorization denial and per sensitive allow (invite,
     role change, removal...).  They carry structured fields:

       {"action": "member.remove", "outcome": "allow",
        "user_id": "u-1", "organization_id": "org-9", ...}

     In JSON mode those fields are top-level keys, so the aggregation
     system can answer "who removed whom, and when" with a filter
     instead of a regex.

FORMATTERS
------------
  _ContainerFormatter: single-line text for local dev terminals.
  _JsonFormatter: JSON Lines for production (LOG_JSON=true).
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    """Single-line formatter tuned for container stdout.

    WARNING and above get a ``[filename:lineno]`` suffix so a denied
    request can be traced to the gate that rejected it.
    """

    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # Insert .NNN before the timezone offset (last 5 chars: +0000)
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            self._style._fmt = self._BASE_FMT + self._LOC_SUFFIX
        else:
            self._style._fmt = self._BASE_FMT
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Context attached through ``extra=`` (request middleware, audit
    records) is promoted to top-level keys.
    """

    _CONTEXT_FIELDS = (
        # request context
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        # audit context
        "action",
        "outcome",
        "user_id",
        "organization_id",
        "occurred_at",
        "details",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Configure the root logger for container environments.

    Args:
        level_name: Log level string (debug/info/warning/error)
        json_format: Emit JSON lines instead of text (LOG_JSON).
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # Audit records are always kept, even when LOG_LEVEL=warning
    logging.getLogger("orgaccess.audit").setLevel(logging.INFO)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
