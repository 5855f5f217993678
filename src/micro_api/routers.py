"""
Routers
=======

A router owns a resolver and turns a request into a :class:`Route`: the
resolved endpoint, the RPC method derived from the path, and the node
addresses that serve the endpoint.

Built-in routers:
- registry: looks endpoints up in a :class:`ServiceRegistry`
- static:   looks endpoints up in a fixed table

Node selection is left to the handler; routers return nodes in
registration order.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from starlette.requests import Request

from .errors import RouteNotFound
from .resolvers import VERSION_RE, Endpoint, Resolver, VPathResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    """Result of routing a request."""

    endpoint: Endpoint
    service: str
    method: str
    nodes: List[str] = field(default_factory=list)


def method_from_path(path: str) -> str:
    """
    Derive an RPC method name from a request path.

    ``/greeter/say/hello`` -> ``Say.Hello``
    ``/greeter/hello``     -> ``Greeter.Hello``
    ``/greeter``           -> ``Greeter.Call``

    A leading version segment (``/v1/...``) is skipped.
    """
    parts = [p for p in path.split("/") if p]
    if parts and VERSION_RE.match(parts[0]):
        parts = parts[1:]
    if not parts:
        return ""
    if len(parts) == 1:
        return f"{parts[0].title()}.Call"
    return f"{parts[-2].title()}.{parts[-1].title()}"


class ServiceRegistry:
    """
    Thread-safe in-memory table of service name -> node addresses.

    Nodes are ``host:port`` strings.
    """

    def __init__(self, services: Optional[Mapping[str, Iterable[str]]] = None) -> None:
        self._services: Dict[str, List[str]] = {}
        self._lock = threading.RLock()
        for name, nodes in (services or {}).items():
            for node in nodes:
                self.register(name, node)

    def register(self, name: str, node: str) -> None:
        """Add a node for a service (duplicates are ignored)."""
        with self._lock:
            nodes = self._services.setdefault(name, [])
            if node not in nodes:
                nodes.append(node)
                logger.info(f"Registered node {node} for service {name}")

    def deregister(self, name: str, node: str) -> bool:
        """
        Remove a node from a service.

        Returns:
            True if the node was removed, False if it was not registered
        """
        with self._lock:
            nodes = self._services.get(name, [])
            if node not in nodes:
                return False
            nodes.remove(node)
            if not nodes:
                del self._services[name]
            logger.info(f"Deregistered node {node} for service {name}")
            return True

    def get_service(self, name: str) -> List[str]:
        """Return a copy of the nodes registered for a service."""
        with self._lock:
            return list(self._services.get(name, []))

    def list_services(self) -> List[str]:
        with self._lock:
            return list(self._services.keys())


class Router(ABC):
    """
    Abstract base class for routers.

    The router exclusively owns its resolver.
    """

    def __init__(self, resolver: Optional[Resolver] = None, **_options: Any) -> None:
        self.resolver = resolver or VPathResolver()

    def route(self, request: Request) -> Route:
        """
        Route a request.

        Raises:
            EndpointNotFound: If the resolver cannot name a service
            RouteNotFound: If no node serves the resolved endpoint
        """
        endpoint = self.resolver.resolve(request)
        nodes = self._lookup(endpoint)
        if not nodes:
            raise RouteNotFound(f"service {endpoint.name} not found")
        return Route(
            endpoint=endpoint,
            service=endpoint.name,
            method=method_from_path(endpoint.path),
            nodes=nodes,
        )

    @abstractmethod
    def _lookup(self, endpoint: Endpoint) -> List[str]:
        """Return the nodes for an endpoint (empty when unknown)."""


class RegistryRouter(Router):
    """
    Route endpoints through a :class:`ServiceRegistry`.

    ``services`` is a registry shared with the caller, or a plain
    ``name -> [nodes]`` mapping used to seed a new one.
    """

    def __init__(
        self,
        resolver: Optional[Resolver] = None,
        services: Optional[Union[ServiceRegistry, Mapping[str, Iterable[str]]]] = None,
        **options: Any,
    ) -> None:
        super().__init__(resolver=resolver, **options)
        if isinstance(services, ServiceRegistry):
            self.services = services
        else:
            self.services = ServiceRegistry(services)

    def _lookup(self, endpoint: Endpoint) -> List[str]:
        return self.services.get_service(endpoint.name)


class StaticRouter(Router):
    """
    Route endpoints through a fixed table built at startup.

    ``routes`` and ``services`` are both ``name -> [nodes]`` mappings;
    ``services`` is the option the command line fills in.
    """

    def __init__(
        self,
        resolver: Optional[Resolver] = None,
        routes: Optional[Mapping[str, Iterable[str]]] = None,
        services: Optional[Mapping[str, Iterable[str]]] = None,
        **options: Any,
    ) -> None:
        super().__init__(resolver=resolver, **options)
        self._routes: Dict[str, List[str]] = {}
        for table in (routes or {}, services or {}):
            for name, nodes in table.items():
                self.add_route(name, *nodes)

    def add_route(self, name: str, *nodes: str) -> None:
        known = self._routes.setdefault(name, [])
        for node in nodes:
            if node not in known:
                known.append(node)
        logger.debug(f"Static route {name} -> {self._routes[name]}")

    def _lookup(self, endpoint: Endpoint) -> List[str]:
        return list(self._routes.get(endpoint.name, []))
