"""
CORS Middleware
===============

Pure ASGI middleware that stamps a fixed set of CORS headers on every
HTTP response, whatever the wrapped application returns. ``OPTIONS``
requests are answered with ``200`` directly and never reach the wrapped
application.
"""

from __future__ import annotations

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

CORS_HEADERS: tuple[tuple[str, str], ...] = (
    ("Access-Control-Allow-Origin", "*"),
    (
        "Access-Control-Allow-Headers",
        "Content-Type,AccessToken,X-CSRF-Token,Authorization,Token,X-Token,X-User-Id",
    ),
    ("Access-Control-Allow-Methods", "POST,GET,OPTIONS,DELETE,PUT"),
    (
        "Access-Control-Expose-Headers",
        "Content-Length,Access-Control-Allow-Origin,Access-Control-Allow-Headers,Content-Type",
    ),
    ("Access-Control-Allow-Credentials", "true"),
)


def _apply_cors_headers(message: Message) -> None:
    message.setdefault("headers", [])
    headers = MutableHeaders(scope=message)
    for name, value in CORS_HEADERS:
        headers[name] = value


class CORSMiddleware:
    """Wrap an ASGI app so every HTTP response carries the CORS headers."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope.get("method") == "OPTIONS":
            start: Message = {
                "type": "http.response.start",
                "status": 200,
                "headers": [(b"content-length", b"0")],
            }
            _apply_cors_headers(start)
            await send(start)
            await send({"type": "http.response.body", "body": b""})
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                _apply_cors_headers(message)
            await send(message)

        await self.app(scope, receive, send_wrapper)
