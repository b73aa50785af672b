"""Request-scoped correlation for log records.

Two context variables travel with each request: the trace id (echoed to the
caller in ``X-Trace-ID``) and the id of the authenticated principal. Both are
read by ``RequestContextFilter`` so handlers never pass them explicitly.

Caller-supplied trace ids are only adopted when they look like identifiers;
anything else is replaced with a fresh UUIDv4 so header values never reach
the log stream verbatim.
"""

import contextvars
import re
import uuid
from types import TracebackType

TRACE_ID_HEADER = "X-Trace-ID"

_TRACE_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

_trace_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("trace_id", default=None)
_principal_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "log_principal_id", default=None
)


def generate_trace_id() -> str:
    return str(uuid.uuid4())


def accept_trace_id(candidate: str | bytes | None) -> str:
    """Return the caller's trace id if well-formed, otherwise a new one."""
    if isinstance(candidate, bytes):
        candidate = candidate.decode("latin-1")
    if candidate and _TRACE_ID_PATTERN.match(candidate):
        return candidate
    return generate_trace_id()


def get_trace_id() -> str | None:
    return _trace_id.get()


def set_trace_id(trace_id: str) -> None:
    """Bind ``trace_id`` to the current context.

    Raises:
        ValueError: If trace_id is empty
    """
    if not trace_id:
        raise ValueError("Trace ID cannot be empty")
    _trace_id.set(trace_id)


def clear_trace_id() -> None:
    _trace_id.set(None)


def get_or_create_trace_id() -> str:
    trace_id = _trace_id.get()
    if trace_id is None:
        trace_id = generate_trace_id()
        _trace_id.set(trace_id)
    return trace_id


def bind_principal_id(principal_id: str | None) -> None:
    """Attribute subsequent log records to ``principal_id`` (None unbinds)."""
    _principal_id.set(principal_id)


def get_bound_principal_id() -> str | None:
    return _principal_id.get()


class LogContext:
    """Scope a trace id, and optionally a principal, to a ``with`` block.

    Used for work that runs outside a request, such as startup tasks, so its
    log lines still group together. Prior bindings are restored on exit.

    Example:
        >>> with LogContext("bootstrap", principal_id=owner.id) as trace_id:
        ...     logger.info("owner_bootstrapped")
    """

    def __init__(self, trace_id: str | None = None, principal_id: str | None = None) -> None:
        self.trace_id = trace_id or generate_trace_id()
        self.principal_id = principal_id
        self._tokens: list[tuple[contextvars.ContextVar[str | None], contextvars.Token]] = []

    def __enter__(self) -> str:
        self._tokens.append((_trace_id, _trace_id.set(self.trace_id)))
        if self.principal_id is not None:
            self._tokens.append((_principal_id, _principal_id.set(self.principal_id)))
        return self.trace_id

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
