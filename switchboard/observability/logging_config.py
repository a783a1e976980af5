"""
Log output setup and request correlation.

Library modules only ever call logging.getLogger(__name__) and pass
structured fields through `extra=`. This module decides how those
records leave the process:

    production   one JSON object per line on stdout
    anything else  short colored lines on stderr

The environment comes from Settings.env (SWITCHBOARD_ENV, read after
.env is loaded), unless configure_logging() is given one explicitly.

A request_id set with set_request_id() is attached to every record
logged from the same asyncio task:

    configure_logging()
    set_request_id("req-42")
    logger.info("credential_resolved", extra={"provider": "anthropic"})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from switchboard.config.settings import get_settings

# ---------------------------------------------------------------------------
# Request correlation
# ---------------------------------------------------------------------------

_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "switchboard_request_id", default=None
)


def set_request_id(request_id: str) -> None:
    """Tag every record logged from the current task with request_id."""
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def clear_request_id() -> None:
    _request_id.set(None)


def mask_key(key: Optional[str]) -> str:
    """'***' plus the last four characters; keys of 8 chars or fewer show nothing."""
    if not key:
        return "<none>"
    tail = key[-4:] if len(key) > 8 else ""
    return f"***{tail}"


class ContextFilter(logging.Filter):
    """Copies the task's request_id onto each record that passes through."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = get_request_id()
        if request_id:
            record.request_id = request_id  # type: ignore[attr-defined]
        return True


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

# Attributes every LogRecord has; anything else arrived through extra=.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record:

        {"timestamp": "2026-01-05T10:00:00+00:00", "level": "INFO",
         "logger": "switchboard.llm.resolver", "message": "model_resolved",
         "request_id": "req-42", "model": "gpt-4o", "provider": "openai"}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, _json_safe(value))
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """`[HH:MM:SS] LEVEL logger: message [provider=... model=...]`"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }
    RESET = "\033[0m"

    # Fields worth showing inline; the rest only appear in JSON output.
    INLINE_FIELDS = (
        "request_id", "provider", "model", "origin",
        "family", "tool", "workspace_id", "status",
    )

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        inline = " ".join(
            f"{name}={getattr(record, name)}"
            for name in self.INLINE_FIELDS
            if getattr(record, name, None) is not None
        )
        line = (
            f"{self.RESET}[{self.formatTime(record, '%H:%M:%S')}] "
            f"{color}{record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}"
        )
        if inline:
            line += f" [{inline}]"
        if record.exc_info and record.exc_info[1]:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

def configure_logging(
    env: Optional[str] = None,
    level: int = logging.INFO,
) -> None:
    """
    Replace the root logger's handlers with one suited to `env`.

    Args:
        env: "production" for JSON on stdout, anything else for dev
             output on stderr. Defaults to get_settings().env.
        level: Root log level.
    """
    env = (env or get_settings().env).strip().lower()

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter())
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # httpx logs every discovery request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
