"""
Structured logging for the library, its HTTP boundary and the CLI.

Records are written as one JSON object per line.  Inside a request the
middleware stores the request id in a ``ContextVar`` and every record logged
while handling it carries that id.
"""

from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

from advault.config.runtime_paths import logs_dir

DEFAULT_LOG_FILE = "advault.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

_REQUEST_ID: ContextVar[str | None] = ContextVar("advault_request_id", default=None)

# attributes every LogRecord carries; anything else came in through ``extra=``
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "request_id", "taskName"}


class StructuredJsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        extra = {
            key: _jsonable(value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        }
        if extra:
            payload["extra"] = extra
        return json.dumps(payload, ensure_ascii=True)


class RequestContextFilter(logging.Filter):
    """Stamp each record with the request id of the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = _REQUEST_ID.get()
        return True


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


def set_request_id(value: str | None) -> Token:
    return _REQUEST_ID.set(value)


def get_request_id() -> str | None:
    return _REQUEST_ID.get()


def reset_request_id(token: Token) -> None:
    _REQUEST_ID.reset(token)


def default_log_dir() -> Path:
    # read directly so a changed ADVAULT_LOG_DIR wins over the cached roots
    override = os.getenv("ADVAULT_LOG_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return logs_dir()


def init_logging(
    log_dir: str | os.PathLike[str] | None = None,
    *,
    level: str = "INFO",
    console: bool = True,
) -> Path:
    """Replace the root handlers with a rotating JSON file and optional console."""

    base = Path(log_dir).expanduser().resolve() if log_dir else default_log_dir()
    base.mkdir(parents=True, exist_ok=True)
    log_path = base / DEFAULT_LOG_FILE

    root = logging.getLogger()
    resolved = logging.getLevelName(str(level).upper())
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            str(log_path),
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    formatter = StructuredJsonFormatter()
    context = RequestContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context)
        root.addHandler(handler)

    logging.getLogger(__name__).info("Logging initialised at %s", log_path)
    return log_path
