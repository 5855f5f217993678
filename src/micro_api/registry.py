"""
Strategy Registry
=================

Maps strategy names to factories on three independent axes: routers,
resolvers, and handlers.

Every factory follows the same construction contract::

    factory(**options) -> instance

A registry is an explicit object. :func:`default_registry` builds one
pre-populated with the built-in strategies; embedding applications add
or replace factories before the registry is handed to
:func:`micro_api.config.resolve_strategies`, which freezes it.

Usage:
    from micro_api.registry import Axis, default_registry

    registry = default_registry()
    registry.register(Axis.ROUTER, "custom", MyRouter)
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .handlers import APIHandler, EventHandler, HTTPHandler, RPCHandler, WebHandler
from .resolvers import GRPCResolver, HostResolver, PathResolver, VPathResolver
from .routers import RegistryRouter, StaticRouter

logger = logging.getLogger(__name__)

Factory = Callable[..., Any]


class Axis(str, Enum):
    """A pluggable dimension of the gateway pipeline."""

    ROUTER = "router"
    RESOLVER = "resolver"
    HANDLER = "handler"


DEFAULT_ROUTERS: Dict[str, Factory] = {
    "registry": RegistryRouter,
    "static": StaticRouter,
}

DEFAULT_RESOLVERS: Dict[str, Factory] = {
    "grpc": GRPCResolver,
    "host": HostResolver,
    "path": PathResolver,
    "vpath": VPathResolver,
}

DEFAULT_HANDLERS: Dict[str, Factory] = {
    "api": APIHandler,
    "event": EventHandler,
    "http": HTTPHandler,
    "rpc": RPCHandler,
    "web": WebHandler,
}


class StrategyRegistry:
    """
    Thread-safe name -> factory mappings, one per :class:`Axis`.

    Keys are unique per axis; registering an existing name overwrites it.
    The registry becomes read-only once :meth:`freeze` is called.
    """

    def __init__(self) -> None:
        self._factories: Dict[Axis, Dict[str, Factory]] = {axis: {} for axis in Axis}
        self._frozen = False
        self._lock = threading.RLock()

    def register(self, axis: Union[Axis, str], name: str, factory: Factory) -> None:
        """
        Register a factory for ``name`` on ``axis``.

        Raises:
            RuntimeError: If the registry has been frozen
            ValueError: If the name is empty or the axis is unknown
            TypeError: If the factory is not callable
        """
        axis = Axis(axis)
        if not name:
            raise ValueError(f"Cannot register a {axis.value} with an empty name")
        if not callable(factory):
            raise TypeError(f"{axis.value} factory {name!r} is not callable")

        with self._lock:
            if self._frozen:
                raise RuntimeError(
                    f"Cannot register {axis.value} {name!r}: registry is frozen"
                )
            replaced = name in self._factories[axis]
            self._factories[axis][name] = factory

        if replaced:
            logger.info(f"Replaced {axis.value} factory: {name}")
        else:
            logger.debug(f"Registered {axis.value} factory: {name}")

    def lookup(self, axis: Union[Axis, str], name: str) -> Optional[Factory]:
        """Return the factory for ``name`` on ``axis``, or None if not found."""
        axis = Axis(axis)
        with self._lock:
            return self._factories[axis].get(name)

    def names(self, axis: Union[Axis, str]) -> List[str]:
        """List the registered names on an axis."""
        axis = Axis(axis)
        with self._lock:
            return sorted(self._factories[axis])

    def freeze(self) -> None:
        """Make the registry read-only."""
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __repr__(self) -> str:
        summary = ", ".join(f"{axis.value}s={self.names(axis)}" for axis in Axis)
        return f"StrategyRegistry({summary})"


def default_registry() -> StrategyRegistry:
    """Build a new registry holding the built-in strategies."""
    registry = StrategyRegistry()
    for name, factory in DEFAULT_ROUTERS.items():
        registry.register(Axis.ROUTER, name, factory)
    for name, factory in DEFAULT_RESOLVERS.items():
        registry.register(Axis.RESOLVER, name, factory)
    for name, factory in DEFAULT_HANDLERS.items():
        registry.register(Axis.HANDLER, name, factory)
    return registry
