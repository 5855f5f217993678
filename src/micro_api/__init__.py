"""
micro-api
=========

Command-line bootstrap for an API gateway process.

String-keyed configuration selects a router, a resolver, and a handler
from a :class:`StrategyRegistry`; the selected strategies are assembled
into a single CORS-wrapped HTTP entry point served by uvicorn, and a
:class:`Lifecycle` starts the server, waits for SIGINT/SIGTERM, and
stops it.

Usage:
    from micro_api import Command

    raise SystemExit(Command(name="gateway", version="1.0.0").run())

Programmatic assembly:
    from micro_api import GatewayConfig, assemble_pipeline, default_registry, resolve_strategies

    resolved = resolve_strategies(GatewayConfig(handler="http"), default_registry())
    pipeline = assemble_pipeline(resolved)
"""

from .assembly import Pipeline, assemble_pipeline
from .cli import Command, main
from .config import GatewayConfig, ResolvedStrategies, resolve_strategies
from .cors import CORS_HEADERS, CORSMiddleware
from .errors import (
    AddressError,
    ConfigurationError,
    EndpointNotFound,
    LifecycleError,
    MicroAPIError,
    RouteNotFound,
    ServerStartError,
    ServerStopError,
    ServiceSpecError,
    UnknownStrategyError,
)
from .lifecycle import Lifecycle, LifecycleState, ShutdownSignal
from .registry import Axis, StrategyRegistry, default_registry
from .resolvers import Endpoint, Resolver, StaticNamespace
from .routers import Route, Router, ServiceRegistry
from .handlers import Handler
from .server import HTTPServer, parse_address

__version__ = "0.1.0"
__all__ = [
    # Command
    "Command",
    "main",
    # Configuration and assembly
    "GatewayConfig",
    "ResolvedStrategies",
    "resolve_strategies",
    "Pipeline",
    "assemble_pipeline",
    # Registry
    "Axis",
    "StrategyRegistry",
    "default_registry",
    # Strategy contracts
    "Endpoint",
    "Resolver",
    "StaticNamespace",
    "Route",
    "Router",
    "ServiceRegistry",
    "Handler",
    # Server and lifecycle
    "CORS_HEADERS",
    "CORSMiddleware",
    "HTTPServer",
    "parse_address",
    "Lifecycle",
    "LifecycleState",
    "ShutdownSignal",
    # Errors
    "MicroAPIError",
    "ConfigurationError",
    "UnknownStrategyError",
    "AddressError",
    "ServiceSpecError",
    "LifecycleError",
    "ServerStartError",
    "ServerStopError",
    "EndpointNotFound",
    "RouteNotFound",
]
