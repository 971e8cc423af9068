"""
Logging setup for the authorization kernel.

Every module logs through ``get_logger(__name__)`` with structured fields in
``extra=``. Production emits one JSON object per line; development emits a
compact single-line format. The request correlation id comes from a
ContextVar bound by ``RequestIdMiddleware``.

Two kernel conventions are enforced here rather than at call sites:
- ``extra={"alert": True}`` marks records that must page someone (store
  outages, internal errors). Dev output flags them; JSON output keeps the key.
- Secret-bearing fields (impersonation tokens, bearer credentials) are masked
  before anything is written.

Usage:
    from src.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Access denied", extra={"reason": verdict.reason.value, "principal_id": p.id})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Correlation id only; principals are always passed explicitly, never via context
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes every LogRecord has; anything else arrived through `extra=`
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "request_id",
}

_SECRET_FIELDS = frozenset({"token", "impersonation_token", "authorization", "password", "secret"})
_MASK = "***"


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def structured_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """The `extra=` fields of a record, secrets masked and Nones dropped."""
    fields: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS or key.startswith("_") or value is None:
            continue
        fields[key] = _MASK if key.lower() in _SECRET_FIELDS else value
    return fields


class RequestIdFilter(logging.Filter):
    """Stamp every record with the active request id (or '-')."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"  # type: ignore[attr-defined]
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id and request_id != "-":
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in structured_fields(record).items():
            payload[key] = value if _json_safe(value) else str(value)
        return json.dumps(payload)


class DevFormatter(logging.Formatter):
    """Single-line human format; appends structured fields as key=value."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)-5s [%(name)s] req=%(request_id)s %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = structured_fields(record)
        alert = fields.pop("alert", False)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if alert:
            line = "[ALERT] " + line
        return line


def _json_safe(value: Any) -> bool:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Configure the root logger once per process.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        environment: 'production' selects JSON output
        debug: Force DEBUG regardless of log_level
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else DevFormatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
