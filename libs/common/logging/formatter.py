"""Single-line JSON log records.

Shape of one line (keys always present unless noted):
    {
        "timestamp": "2026-10-19T08:15:02.417Z",
        "level": "INFO",
        "service": "payment_gateway",
        "trace_id": "0f8fad5b-...",
        "principal_id": "6f1c...",          # null before authentication
        "message": "order_verified",
        "context": {"order_id": "k3j9x0a1bc"},   # only when non-empty
        "exception": {...},                        # only with exc_info
        "source": {"file": ..., "line": ..., "function": ...}
    }

Credential material never reaches the output: context keys that look like
secrets are replaced with ``"[REDACTED]"`` before serialisation.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

REDACTED = "[REDACTED]"

# Substring match on lower-cased keys
SENSITIVE_KEY_FRAGMENTS = ("password", "secret", "token", "authorization")

# Attributes every LogRecord carries, plus ones set by formatters or our filter
_RESERVED_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
    "trace_id",
    "principal_id",
    "context",
}


def redact(context: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``context`` with sensitive keys masked (recursive)."""
    cleaned: dict[str, Any] = {}
    for key, value in context.items():
        lowered = str(key).lower()
        if any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS):
            cleaned[key] = REDACTED
        elif isinstance(value, dict):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


def _utc_millis(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """Render records in the gateway's JSON line format.

    Context comes from an explicit ``extra={"context": {...}}`` when given;
    otherwise any non-standard attributes passed via ``extra`` are gathered.
    """

    def __init__(
        self, service_name: str, include_context: bool = True, *args: Any, **kwargs: Any
    ) -> None:
        super().__init__(*args, **kwargs)
        self.service_name = service_name
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _utc_millis(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "trace_id": getattr(record, "trace_id", None),
            "principal_id": getattr(record, "principal_id", None),
            "message": record.getMessage(),
        }

        context = self._context_of(record) if self.include_context else {}
        if context:
            entry["context"] = redact(context)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value is not None else None,
                "traceback": self.formatException(record.exc_info),
            }

        entry["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }
        return json.dumps(entry, default=str)

    @staticmethod
    def _context_of(record: logging.LogRecord) -> dict[str, Any]:
        explicit = getattr(record, "context", None)
        if isinstance(explicit, dict) and explicit:
            return dict(explicit)
        return {
            key: value for key, value in vars(record).items() if key not in _RESERVED_FIELDS
        }
