"""
Name Resolvers
==============

A resolver maps an incoming HTTP request to an :class:`Endpoint`, the
logical service name the router then looks up.

Built-in resolvers:
- host:  the request ``Host`` header is the service name
- path:  ``/foo/bar`` -> ``<namespace>.foo``
- vpath: ``/v1/foo/bar`` -> ``<namespace>.v1.foo``, otherwise like path
- grpc:  ``/greeter.Greeter/Hello`` -> ``<namespace>.greeter``

Every resolver factory accepts the keyword options ``namespace`` (a
callable taking the request and returning the namespace prefix) and
``handler`` (the handler protocol the gateway serves). Unknown options
are ignored so factories stay interchangeable.

Usage:
    from micro_api.resolvers import PathResolver, StaticNamespace

    resolver = PathResolver(namespace=StaticNamespace("acme"), handler="rpc")
    endpoint = resolver.resolve(request)
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from starlette.requests import Request

from .errors import EndpointNotFound

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "go.micro"

VERSION_RE = re.compile(r"^v[0-9]+$")

Namespace = Callable[[Optional[Request]], str]


class StaticNamespace:
    """Namespace callable that ignores the request and returns a fixed value."""

    def __init__(self, namespace: str) -> None:
        self.value = namespace

    def __call__(self, request: Optional[Request] = None) -> str:
        return self.value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StaticNamespace) and other.value == self.value

    def __repr__(self) -> str:
        return f"StaticNamespace({self.value!r})"


@dataclass(frozen=True)
class Endpoint:
    """Result of resolving a request."""

    name: str
    """Fully qualified service name."""

    method: str
    """HTTP method of the request."""

    host: str
    """Host header of the request."""

    path: str
    """Request path."""


class Resolver(ABC):
    """
    Abstract base class for name resolvers.

    Subclasses implement :meth:`_resolve_name`; the base class builds the
    :class:`Endpoint` and rejects requests that name no service.
    """

    def __init__(
        self,
        namespace: Optional[Namespace] = None,
        handler: str = "",
        **_options: Any,
    ) -> None:
        self.namespace: Namespace = namespace or StaticNamespace(DEFAULT_NAMESPACE)
        self.handler = handler

    def resolve(self, request: Request) -> Endpoint:
        """
        Resolve a request to an endpoint.

        Raises:
            EndpointNotFound: If the request does not name a service
        """
        path = request.url.path
        name = self._resolve_name(request, path)
        if not name:
            raise EndpointNotFound(f"unknown name for path {path!r}")
        return Endpoint(
            name=name,
            method=request.method,
            host=request.headers.get("host", ""),
            path=path,
        )

    @abstractmethod
    def _resolve_name(self, request: Request, path: str) -> str:
        """Return the service name for the request, or an empty string."""

    def _with_namespace(self, request: Request, *parts: str) -> str:
        ns = self.namespace(request)
        if not ns:
            return ".".join(parts)
        return ".".join((ns,) + parts)

    @staticmethod
    def _segments(path: str) -> list[str]:
        if path in ("", "/"):
            return []
        return path.lstrip("/").split("/")

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(namespace={self.namespace!r}, "
            f"handler={self.handler!r})"
        )


class HostResolver(Resolver):
    """Resolve the service name from the ``Host`` header."""

    def _resolve_name(self, request: Request, path: str) -> str:
        return request.headers.get("host", "")


class PathResolver(Resolver):
    """Resolve the service name from the first path segment."""

    def _resolve_name(self, request: Request, path: str) -> str:
        parts = self._segments(path)
        if not parts or not parts[0]:
            return ""
        return self._with_namespace(request, parts[0])


class VPathResolver(Resolver):
    """
    Versioned path resolver.

    A leading ``v<N>`` segment is treated as part of the service name, so
    ``/v1/foo/bar`` resolves to ``<namespace>.v1.foo`` while ``/foo/bar``
    resolves to ``<namespace>.foo``.
    """

    def _resolve_name(self, request: Request, path: str) -> str:
        parts = self._segments(path)
        if not parts or not parts[0]:
            return ""
        if len(parts) == 1:
            return self._with_namespace(request, parts[0])
        if VERSION_RE.match(parts[0]):
            return self._with_namespace(request, *parts[0:2])
        return self._with_namespace(request, parts[0])


class GRPCResolver(Resolver):
    """Resolve ``/package.Service/Method`` to ``<namespace>.package``."""

    def _resolve_name(self, request: Request, path: str) -> str:
        parts = self._segments(path)
        if not parts or not parts[0]:
            return ""
        service = parts[0].split(".")[0]
        return self._with_namespace(request, service)
