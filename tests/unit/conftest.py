"""
Pytest configuration for unit tests.

Provides request builders and recording stub strategies shared by the
registry, configuration, assembly, and command tests.
"""

import socket
from typing import Optional

import pytest
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from micro_api.registry import Axis, StrategyRegistry


def make_request(
    path: str = "/",
    method: str = "GET",
    headers: Optional[dict] = None,
    query_string: bytes = b"",
) -> Request:
    """Build a Starlette request from a minimal ASGI scope."""
    raw_headers = [
        (k.lower().encode("latin-1"), v.encode("latin-1"))
        for k, v in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "method": method,
        "scheme": "http",
        "path": path,
        "root_path": "",
        "query_string": query_string,
        "headers": raw_headers,
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 12345),
    }
    return Request(scope)


@pytest.fixture
def build_request():
    """Factory fixture for Starlette requests."""
    return make_request


class StubResolver:
    """Resolver stub that records its construction options."""

    def __init__(self, **options):
        self.options = options
        self.namespace = options.get("namespace")
        self.handler = options.get("handler", "")


class StubRouter:
    """Router stub that records the resolver it was given."""

    def __init__(self, resolver=None, **options):
        self.resolver = resolver
        self.options = options


class StubHandler:
    """ASGI handler stub that counts invocations."""

    def __init__(self, router=None, **options):
        self.router = router
        self.options = options
        self.calls = 0

    async def __call__(self, scope, receive, send):
        self.calls += 1
        response = PlainTextResponse("stub", headers={"X-Stub": "1"})
        await response(scope, receive, send)


STUB_NAMES = {
    Axis.ROUTER: (StubRouter, ["registry", "static"]),
    Axis.RESOLVER: (StubResolver, ["grpc", "host", "path", "vpath"]),
    Axis.HANDLER: (StubHandler, ["api", "event", "http", "rpc", "web"]),
}


@pytest.fixture
def stub_registry() -> StrategyRegistry:
    """A registry where every built-in name maps to a recording stub."""
    registry = StrategyRegistry()
    for axis, (factory, names) in STUB_NAMES.items():
        for name in names:
            registry.register(axis, name, factory)
    return registry


@pytest.fixture
def busy_port():
    """A localhost port that is already bound and listening."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    yield sock.getsockname()[1]
    sock.close()
