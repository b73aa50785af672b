"""Structured JSON logging with trace ID and principal correlation.

Usage:
    # At service startup
    from libs.common.logging import configure_logging
    configure_logging(service_name="payment_gateway", log_level="INFO")

    # In request handlers
    from libs.common.logging import get_logger, log_with_context
    logger = get_logger(__name__)
    log_with_context(logger, "INFO", "order_created", order_id="k3j9x0a1bc")
"""

from libs.common.logging.config import (
    RequestContextFilter,
    configure_logging,
    get_logger,
    log_with_context,
)
from libs.common.logging.context import (
    TRACE_ID_HEADER,
    LogContext,
    accept_trace_id,
    bind_principal_id,
    clear_trace_id,
    generate_trace_id,
    get_bound_principal_id,
    get_or_create_trace_id,
    get_trace_id,
    set_trace_id,
)
from libs.common.logging.formatter import JSONFormatter, redact

__all__ = [
    "configure_logging",
    "get_logger",
    "log_with_context",
    "RequestContextFilter",
    "generate_trace_id",
    "accept_trace_id",
    "get_trace_id",
    "set_trace_id",
    "clear_trace_id",
    "get_or_create_trace_id",
    "bind_principal_id",
    "get_bound_principal_id",
    "LogContext",
    "TRACE_ID_HEADER",
    "JSONFormatter",
    "redact",
]
