"""
Request Handlers
================

A handler is the ASGI application at the root of the gateway. It owns a
router, asks it for a :class:`~micro_api.routers.Route`, and forwards
the request to the first node of the route with ``httpx``.

Built-in handlers:
- http:  reverse proxy, path unchanged
- web:   reverse proxy, service path segment stripped
- rpc:   JSON RPC call ``{"service", "endpoint", "request"}`` to ``/rpc``
- api:   RPC call carrying the full HTTP request envelope
- event: publishes the request as an event to every node at ``/event``

Routing failures become ``404`` and upstream transport failures ``502``
JSON error responses; they never escape the handler.

Configuration (keyword options):
- router:    the owning router (required)
- transport: optional ``httpx`` transport, used by tests and embedders
- timeout:   upstream timeout in seconds (default: 30)
"""

import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import httpx
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocket

from .errors import EndpointNotFound, RouteNotFound
from .routers import Route, Router

logger = logging.getLogger(__name__)

ERROR_ID = "go.micro.api"
DEFAULT_TIMEOUT = 30.0

# Headers that must not be copied between the client and upstream connections
_HOP_BY_HOP = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
        "content-encoding",
    }
)


class BadRequest(Exception):
    """Raised when a request body cannot be decoded."""


def error_response(code: int, detail: str) -> JSONResponse:
    """Build the gateway's JSON error body."""
    return JSONResponse(
        {
            "id": ERROR_ID,
            "code": code,
            "detail": detail,
            "status": HTTPStatus(code).phrase,
        },
        status_code=code,
    )


def node_url(node: str, path: str = "/") -> str:
    """Build an upstream URL from a ``host:port`` node address."""
    base = node if node.startswith(("http://", "https://")) else f"http://{node}"
    return base.rstrip("/") + "/" + path.lstrip("/")


def multi_dict(items) -> Dict[str, List[str]]:
    """Group ``(key, value)`` pairs into ``{key: [values]}``."""
    grouped: Dict[str, List[str]] = {}
    for key, value in items:
        grouped.setdefault(key, []).append(value)
    return grouped


class Handler(ABC):
    """
    Abstract base class for gateway handlers.

    Subclasses implement :meth:`handle`, which receives the request and
    its route and returns a Starlette response.
    """

    def __init__(
        self,
        router: Optional[Router] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
        **_options: Any,
    ) -> None:
        if router is None:
            raise TypeError(f"{self.__class__.__name__} requires a router")
        self.router = router
        self._transport = transport
        self._timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            websocket = WebSocket(scope, receive, send)
            await websocket.close(code=1003)
            return
        if scope["type"] != "http":
            return

        request = Request(scope, receive)
        try:
            route = self.router.route(request)
            response = await self.handle(request, route)
        except (EndpointNotFound, RouteNotFound) as e:
            logger.debug(f"No route for {request.method} {request.url.path}: {e}")
            response = error_response(404, str(e))
        except BadRequest as e:
            response = error_response(400, str(e))
        except httpx.HTTPError as e:
            logger.warning(f"Upstream request for {request.url.path} failed: {e}")
            response = error_response(502, f"upstream error: {e}")

        await response(scope, receive, send)

    @abstractmethod
    async def handle(self, request: Request, route: Route) -> Response:
        """Serve a routed request."""

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    @staticmethod
    def _forward_headers(request: Request) -> List[tuple]:
        headers = [
            (k, v)
            for k, v in request.headers.items()
            if k.lower() not in _HOP_BY_HOP
        ]
        if request.client:
            headers.append(("x-forwarded-for", request.client.host))
        if "host" in request.headers:
            headers.append(("x-forwarded-host", request.headers["host"]))
        return headers

    @staticmethod
    def _relay(upstream: httpx.Response) -> Response:
        response = Response(content=upstream.content, status_code=upstream.status_code)
        for key, value in upstream.headers.multi_items():
            if key.lower() not in _HOP_BY_HOP:
                response.headers.append(key, value)
        return response

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(router={self.router!r})"


class HTTPHandler(Handler):
    """Reverse proxy to the first node of the route."""

    def upstream_path(self, request: Request, route: Route) -> str:
        return request.url.path

    async def handle(self, request: Request, route: Route) -> Response:
        url = node_url(route.nodes[0], self.upstream_path(request, route))
        if request.url.query:
            url = f"{url}?{request.url.query}"
        body = await request.body()

        async with self._client() as client:
            upstream = await client.request(
                request.method,
                url,
                content=body,
                headers=self._forward_headers(request),
            )
        return self._relay(upstream)


class WebHandler(HTTPHandler):
    """Reverse proxy that strips the service segment from the path."""

    def upstream_path(self, request: Request, route: Route) -> str:
        parts = [p for p in request.url.path.split("/") if p]
        return "/" + "/".join(parts[1:])


class RPCHandler(Handler):
    """
    Translate HTTP requests into JSON RPC calls.

    GET and DELETE requests use the query parameters as the RPC request,
    other methods the JSON body.
    """

    async def handle(self, request: Request, route: Route) -> Response:
        payload = {
            "service": route.service,
            "endpoint": route.method,
            "request": await self.build_request(request),
        }
        async with self._client() as client:
            upstream = await client.post(
                node_url(route.nodes[0], "/rpc"),
                json=payload,
                headers=self._forward_headers(request),
            )
        return self.build_response(upstream)

    async def build_request(self, request: Request) -> Any:
        if request.method in ("GET", "DELETE"):
            return dict(request.query_params)
        body = await request.body()
        if not body:
            return {}
        try:
            return json.loads(body)
        except ValueError as e:
            raise BadRequest(f"invalid JSON body: {e}") from e

    def build_response(self, upstream: httpx.Response) -> Response:
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            media_type=upstream.headers.get("content-type", "application/json"),
        )


class APIHandler(RPCHandler):
    """
    RPC handler that sends the full HTTP request envelope.

    The upstream answers ``{"statusCode", "header", "body"}``, which is
    translated back into an HTTP response.
    """

    async def build_request(self, request: Request) -> Any:
        body = await request.body()
        return {
            "method": request.method,
            "path": request.url.path,
            "header": multi_dict(request.headers.items()),
            "get": multi_dict(request.query_params.multi_items()),
            "body": body.decode("utf-8", errors="replace"),
            "url": str(request.url),
        }

    def build_response(self, upstream: httpx.Response) -> Response:
        if upstream.status_code >= 400:
            return super().build_response(upstream)
        try:
            data = upstream.json()
        except ValueError:
            return error_response(502, "upstream returned invalid JSON")
        if not isinstance(data, dict):
            return error_response(502, "upstream response is not an object")

        body = data.get("body") or ""
        status_code = data.get("statusCode") or 200
        header = data.get("header") or {}
        if not isinstance(body, str):
            return error_response(502, "upstream body is not a string")
        if not isinstance(status_code, int) or not 100 <= status_code <= 599:
            return error_response(502, f"upstream status {status_code!r} is invalid")
        if not isinstance(header, dict):
            return error_response(502, "upstream header is not an object")

        response = Response(content=body, status_code=status_code)
        for key, values in header.items():
            # A bare string is a single header value
            if isinstance(values, str):
                values = [values]
            if not isinstance(values, list):
                return error_response(502, f"upstream header {key!r} is invalid")
            for value in values:
                response.headers.append(key, str(value))
        return response


class EventHandler(Handler):
    """
    Publish requests as events.

    The topic is the resolved service name and the event type the second
    path segment (``/user/login/extra`` -> type ``login``).
    """

    async def handle(self, request: Request, route: Route) -> Response:
        parts = [p for p in request.url.path.split("/") if p]
        body = await request.body()
        event = {
            "id": str(uuid.uuid4()),
            "topic": route.service,
            "type": parts[1] if len(parts) > 1 else "",
            "timestamp": int(time.time()),
            "header": multi_dict(request.headers.items()),
            "data": body.decode("utf-8", errors="replace"),
        }

        async with self._client() as client:
            for node in route.nodes:
                upstream = await client.post(node_url(node, "/event"), json=event)
                upstream.raise_for_status()
        logger.debug(f"Published event {event['id']} to {route.service}")
        return Response(status_code=200)
