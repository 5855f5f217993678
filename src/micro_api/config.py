"""
Gateway Configuration
=====================

Startup options and the resolution of strategy names into factories.

Resolution rules, per axis:
- empty kind:      the built-in default factory, registry not consulted
- registered kind: the registered factory
- unknown kind:    :class:`~micro_api.errors.UnknownStrategyError`

Axes are resolved in the order router, handler, resolver. The handler
kind is also passed to the resolver (``handler=<kind>``), and the
namespace is passed to the resolver as a static namespace.

Static service entries (``name=host:port[,host:port...]``) are parsed
into ``services=<name -> [nodes]>`` for the router. Names are full
service names, namespace included (``go.micro.greeter``).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from .errors import ServiceSpecError, UnknownStrategyError
from .handlers import RPCHandler
from .registry import Axis, Factory, StrategyRegistry
from .resolvers import StaticNamespace, VPathResolver
from .routers import RegistryRouter

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = ":8080"
DEFAULT_NAMESPACE = "go.micro"
DEFAULT_ROUTER = "registry"
DEFAULT_RESOLVER = "vpath"
DEFAULT_HANDLER = "rpc"
DEFAULT_DESCRIPTION = "a go-micro-api service"
DEFAULT_LOG_LEVEL = "info"

# Factories used when a kind is left empty
DEFAULT_FACTORIES: Dict[Axis, Factory] = {
    Axis.ROUTER: RegistryRouter,
    Axis.RESOLVER: VPathResolver,
    Axis.HANDLER: RPCHandler,
}


@dataclass(frozen=True)
class GatewayConfig:
    """Startup options for the gateway process."""

    name: str = ""
    version: str = ""
    description: str = DEFAULT_DESCRIPTION
    server_address: str = DEFAULT_ADDRESS
    namespace: str = DEFAULT_NAMESPACE
    router: str = DEFAULT_ROUTER
    resolver: str = DEFAULT_RESOLVER
    handler: str = DEFAULT_HANDLER
    log_level: str = DEFAULT_LOG_LEVEL
    services: Tuple[str, ...] = ()


@dataclass
class ResolvedStrategies:
    """Factories and construction options selected from a configuration."""

    address: str
    router_factory: Factory
    resolver_factory: Factory
    handler_factory: Factory
    router_options: Dict[str, Any] = field(default_factory=dict)
    resolver_options: Dict[str, Any] = field(default_factory=dict)
    handler_options: Dict[str, Any] = field(default_factory=dict)


def parse_services(entries: Iterable[str]) -> Dict[str, List[str]]:
    """
    Parse ``name=host:port[,host:port...]`` entries into a service table.

    Repeated names accumulate nodes.

    Raises:
        ServiceSpecError: If an entry has no name or no nodes
    """
    services: Dict[str, List[str]] = {}
    for entry in entries:
        name, sep, nodes = entry.partition("=")
        name = name.strip()
        node_list = [n.strip() for n in nodes.split(",") if n.strip()]
        if not sep or not name or not node_list:
            raise ServiceSpecError(entry)
        services.setdefault(name, []).extend(node_list)
    return services


def _select(registry: StrategyRegistry, axis: Axis, kind: str) -> Factory:
    if not kind:
        logger.debug(f"No {axis.value} configured, using default")
        return DEFAULT_FACTORIES[axis]

    factory = registry.lookup(axis, kind)
    if factory is None:
        logger.error(
            f"{axis.value.capitalize()} {kind} is not found "
            f"(available: {', '.join(registry.names(axis)) or 'none'})"
        )
        raise UnknownStrategyError(axis.value, kind)

    logger.info(f"Selected {axis.value}: {kind}")
    return factory


def resolve_strategies(
    config: GatewayConfig, registry: StrategyRegistry
) -> ResolvedStrategies:
    """
    Select the router, handler and resolver factories for a configuration.

    The registry is frozen; later registrations raise ``RuntimeError``.

    Raises:
        UnknownStrategyError: If a non-empty kind has no registered factory
        ServiceSpecError: If a static service entry is malformed
    """
    registry.freeze()

    resolver_options: Dict[str, Any] = {}
    router_options: Dict[str, Any] = {}

    if config.services:
        router_options["services"] = parse_services(config.services)

    address = config.server_address or DEFAULT_ADDRESS

    if config.namespace:
        resolver_options["namespace"] = StaticNamespace(config.namespace)

    router_factory = _select(registry, Axis.ROUTER, config.router)

    # The resolver needs to know which handler protocol it resolves for,
    # so the handler is selected before the resolver.
    if config.handler:
        resolver_options["handler"] = config.handler
    handler_factory = _select(registry, Axis.HANDLER, config.handler)

    resolver_factory = _select(registry, Axis.RESOLVER, config.resolver)

    return ResolvedStrategies(
        address=address,
        router_factory=router_factory,
        resolver_factory=resolver_factory,
        handler_factory=handler_factory,
        router_options=router_options,
        resolver_options=resolver_options,
    )
