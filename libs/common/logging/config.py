"""Root logger setup for the gateway process."""

import logging
import sys

from libs.common.logging.context import get_bound_principal_id, get_trace_id
from libs.common.logging.formatter import JSONFormatter

# uvicorn's access log duplicates the request lines the gateway already emits
QUIET_LOGGERS = ("uvicorn.access",)


class RequestContextFilter(logging.Filter):
    """Stamp ``trace_id`` and ``principal_id`` onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id()
        record.principal_id = get_bound_principal_id()
        return True


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return level


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    include_context: bool = True,
) -> logging.Logger:
    """Route all logging through one JSON handler on stdout.

    Safe to call more than once; the root logger's handlers are replaced each
    time, so reloads under uvicorn do not duplicate output.

    Raises:
        ValueError: If log_level is not a standard level name
    """
    level = _resolve_level(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JSONFormatter(service_name=service_name, include_context=include_context))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return root


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    **context_fields: object,
) -> None:
    """Emit ``message`` with ``context_fields`` nested under ``context``.

    Example:
        >>> log_with_context(logger, "WARNING", "cas_conflict", order_id="k3j9x0a1bc")
    """
    logger.log(_resolve_level(level), message, extra={"context": context_fields})
