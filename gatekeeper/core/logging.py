"""Structured logging for admission decisions.

What this module provides:
- Request id propagation via contextvars (set by the HTTP middleware)
- Two scrubbing policies applied to structured ``extra`` fields:
  secrets (API keys, CSRF tokens, credentials) are replaced with
  ``[REDACTED]``; requester identifiers (addresses, user agents, anonymous
  fingerprints) are replaced with a short stable hash so one requester can
  still be followed across events
- A JSON formatter and stdout / rotating-file handlers
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from gatekeeper.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Values that must never reach a log sink
SECRET_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "x-api-key",
        "app_api_keys",
        "authorization",
        "cookie",
        "set-cookie",
        "password",
        "secret",
        "token",
        "csrf_token",
        "_csrf_token",
        "x-csrf-token",
        "old_token",
        "redis_url",
    }
)

# Values that identify a requester: logged as a fingerprint
IDENTIFIER_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "identifier",
        "remote_addr",
        "client_ip",
        "user_agent",
        "user-agent",
        "x-forwarded-for",
        "x-real-ip",
        "cf-connecting-ip",
    }
)

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def set_request_id(request_id: str | None) -> None:
    """Bind a correlation id to the current context."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def fingerprint(value: str) -> str:
    """Short, stable hash of a sensitive value for log correlation.

    Identifiers (IP addresses, user ids, anonymous fingerprints) are logged
    only through this helper so the same requester can be followed across
    events without the raw value reaching the log sink.
    """

    return hashlib.sha256(value.encode()).hexdigest()[:16]


class Scrubber:
    """Apply the secret / identifier policies to structured values.

    Key matching is case-insensitive and recursive through mappings, lists
    and tuples.
    """

    def __init__(
        self,
        secret_keys: Iterable[str] | None = None,
        identifier_keys: Iterable[str] | None = None,
    ) -> None:
        self.secret_keys = {k.lower() for k in (secret_keys if secret_keys is not None else SECRET_KEYS_DEFAULT)}
        self.identifier_keys = {
            k.lower() for k in (identifier_keys if identifier_keys is not None else IDENTIFIER_KEYS_DEFAULT)
        }

    def field(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if lowered in self.secret_keys:
            return REDACTED
        if lowered in self.identifier_keys:
            return fingerprint(str(value)) if value is not None else None
        return self.value(value)

    def value(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {k: self.field(str(k), v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.value(v) for v in value)
        return value

    def record_extras(self, record: LogRecord, *, scrub: bool = True) -> dict[str, Any]:
        """Copy of the fields passed through ``extra=``, scrubbed unless told otherwise."""

        return {
            key: self.field(key, value) if scrub else value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Scrub extras in place so every formatter (plain included) is safe."""

    def __init__(
        self,
        sensitive_keys: Iterable[str] | None = None,
        identifier_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__()
        self.scrubber = Scrubber(sensitive_keys, identifier_keys)

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "_scrubbed", False):
            return True
        for key, value in self.scrubber.record_extras(record).items():
            setattr(record, key, value)
        record._scrubbed = True
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record: fixed envelope plus scrubbed extras."""

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        identifier_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.scrubber = Scrubber(sensitive_keys, identifier_keys)
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        # Records already scrubbed by SensitiveDataFilter must not be hashed twice
        payload.update(self.scrubber.record_extras(record, scrub=not getattr(record, "_scrubbed", False)))

        if record.exc_info:
            payload["exc_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    """Return a stdout handler, or a (rotating) file handler for output=file."""

    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/gatekeeper.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if not log_settings.max_bytes:
        return logging.FileHandler(file_path, encoding="utf-8")
    return RotatingFileHandler(
        file_path,
        maxBytes=log_settings.max_bytes,
        backupCount=log_settings.backup_count,
        encoding="utf-8",
    )


def _build_formatter(log_settings: LogSettings) -> logging.Formatter:
    if log_settings.format.lower() == "plain":
        return logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    return JsonFormatter()


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single scrubbing handler on the root logger.

    Safe to call more than once (each app factory call does); previous root
    handlers are replaced.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(_build_formatter(cfg))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # Uvicorn installs its own handlers; keep its records off the root one
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
