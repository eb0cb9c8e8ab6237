"""JSON structured logging for the import pipeline.

Every line carries ``trace_id``, ``level``, ``logger``, ``msg`` and
``ts_utc``; ``import_id`` is added while an import is bound to the
current thread. Sender addresses and phone numbers from ticket provenance
are masked in the message and in string extras.
"""
import hmac
import json
import logging
import re
import sys
import threading
from datetime import datetime, timezone
from hashlib import sha256
from typing import Any, Optional

from ticketops.core.config import settings

_context = threading.local()

EMAIL_RE = re.compile(r"(\b\S+@\S+\.\S+\b)")
PHONE_RE = re.compile(r"(\+\d[\d \-/]{6,}\d)")

# LogRecord attributes that are not caller-supplied extras
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}


def mask_email(address: str) -> str:
    """``dispatch@example.com`` -> ``d*******@example.com``."""
    user, sep, domain = address.partition("@")
    if not sep:
        return address
    return (user[:1] if len(user) > 1 else "") + "*" * max(len(user) - 1, 1) + "@" + domain


def mask_phone(number: str) -> str:
    return number[:2] + "*" * (len(number) - 2)


def redact(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = EMAIL_RE.sub(lambda m: mask_email(m.group(1)), value)
    return PHONE_RE.sub(lambda m: mask_phone(m.group(1)), value)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "trace_id": getattr(_context, "trace_id", None) or "unknown",
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": redact(record.getMessage()),
            "ts_utc": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
        import_id = getattr(_context, "import_id", None)
        if import_id is not None:
            entry["import_id"] = import_id
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        # explicit extras win over thread context
        entry.update(
            (key, redact(value))
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        )
        return json.dumps(entry, default=str)


def set_trace_id(trace_id: Optional[str]) -> None:
    """Set trace ID for current thread context."""
    _context.trace_id = trace_id


def set_import_id(import_id: Optional[int]) -> None:
    """Bind the import being processed to log lines of the current thread."""
    _context.import_id = import_id


def init_logging() -> None:
    """Initialize JSON logging with mandatory fields."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    for handler in root.handlers[:]:
        if isinstance(handler.formatter, JSONFormatter):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get logger with JSON formatting."""
    return logging.getLogger(name)


# Convenience logger
logger = get_logger("ticketops")


def hash_actor_token(token: str) -> str:
    """Return an HMAC-SHA256 hash of a sensitive token using CURSOR_HMAC_KEY.

    The raw token must never be logged. This helper produces a stable hash for
    audit purposes without exposing the original value.
    """
    key = settings.CURSOR_HMAC_KEY.encode()
    return hmac.new(key, token.encode(), sha256).hexdigest()
