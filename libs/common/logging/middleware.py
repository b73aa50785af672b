"""Trace id middleware for the gateway.

Runs at the raw ASGI layer so the ``X-Trace-ID`` header is attached even to
responses rendered by exception handlers.
"""

from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any

from fastapi import FastAPI
from starlette.types import ASGIApp

from libs.common.logging.context import (
    TRACE_ID_HEADER,
    accept_trace_id,
    bind_principal_id,
    clear_trace_id,
    set_trace_id,
)

Message = MutableMapping[str, Any]

_HEADER_KEY = TRACE_ID_HEADER.lower().encode()


class ASGITraceIDMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(
        self,
        scope: MutableMapping[str, Any],
        receive: Callable[[], Awaitable[Message]],
        send: Callable[[Message], Awaitable[None]],
    ) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        incoming = next(
            (value for key, value in scope.get("headers", []) if key == _HEADER_KEY), None
        )
        trace_id = accept_trace_id(incoming)
        set_trace_id(trace_id)

        async def send_with_trace(message: Message) -> None:
            if message["type"] == "http.response.start":
                message["headers"] = [
                    *message.get("headers", []),
                    (_HEADER_KEY, trace_id.encode()),
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_with_trace)
        finally:
            # The authenticator binds the principal mid-request; neither id
            # may leak into the next request served by this task.
            clear_trace_id()
            bind_principal_id(None)


def add_trace_id_middleware(app: FastAPI) -> None:
    app.add_middleware(ASGITraceIDMiddleware)
