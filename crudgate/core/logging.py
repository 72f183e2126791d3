"""Structured logging for the service.

Log events are dotted names (``rate_limit.rejected``, ``request.completed``)
with their fields passed as ``extra``. A handler built by
``configure_logging`` runs two filters before formatting:

- ``RequestIdFilter`` stamps the current request id from a context variable
- ``SensitiveDataFilter`` replaces credential-like fields with "[REDACTED]"

Components receive their ``logging.Logger`` at construction time; nothing in
here hands out a shared logger object.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from collections import deque
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from crudgate.core.config import LogSettings

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "api_keys",
        "x-api-key",
        "authorization",
        "token",
        "secret",
        "password",
        "cookie",
        "set-cookie",
        "body",
    }
)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    """Bind ``request_id`` to the current context (one pipeline run)."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def _extra_fields(record: LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


def _redact(value: Any, sensitive_keys: frozenset[str]) -> Any:
    """Replace sensitive keys at any depth of nested mappings and lists."""

    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in sensitive_keys else _redact(item, sensitive_keys)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item, sensitive_keys) for item in value]
    return value


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact sensitive ``extra`` fields on the record before formatting."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(
            key.lower() for key in (sensitive_keys or SENSITIVE_KEYS_DEFAULT)
        )

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in _extra_fields(record).items():
            setattr(record, key, _redact({key: value}, self.sensitive_keys)[key])
        return True


class JsonFormatter(logging.Formatter):
    """Render a record and its ``extra`` fields as one JSON object per line."""

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extra_fields(record))

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class MemoryLogHandler(logging.Handler):
    """Keep emitted records in memory.

    Useful for asserting on structured log events in tests and for exposing
    recent errors in diagnostics without shipping logs anywhere.

    Attributes:
        capacity: Maximum records retained (oldest dropped first), or None.
    """

    def __init__(self, level: int = logging.NOTSET, capacity: int | None = 1000) -> None:
        super().__init__(level)
        self.capacity = capacity
        self._records: deque[LogRecord] = deque(maxlen=capacity)
        self._records_lock = threading.Lock()

    def emit(self, record: LogRecord) -> None:
        with self._records_lock:
            self._records.append(record)

    @property
    def records(self) -> list[LogRecord]:
        with self._records_lock:
            return list(self._records)

    def messages(self) -> list[str]:
        return [record.getMessage() for record in self.records]

    def error_records(self) -> list[LogRecord]:
        return [record for record in self.records if record.levelno >= logging.ERROR]

    def clear(self) -> None:
        with self._records_lock:
            self._records.clear()


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    """Stdout by default; a (rotating) file when ``output=file``."""

    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/crudgate.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if log_settings.max_bytes:
        return RotatingFileHandler(
            file_path,
            maxBytes=log_settings.max_bytes,
            backupCount=log_settings.backup_count,
            encoding="utf-8",
        )
    return logging.FileHandler(file_path, encoding="utf-8")


def configure_logging(log_settings: LogSettings) -> None:
    """Install a single root handler per ``log_settings``.

    Args:
        log_settings: Resolved log settings.
    """

    handler = _build_handler(log_settings)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())

    if log_settings.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_settings.level.upper(), logging.INFO))

    # Avoid double logging from uvicorn if it gets re-configured
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
