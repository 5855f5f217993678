"""
Gateway Exceptions
==================

Configuration errors are raised while the pipeline is being resolved and
assembled, before any socket is opened. Lifecycle errors are raised by
the server start/stop path. Both propagate to the command entry point,
which maps them to an exit code.

Request-time errors (``EndpointNotFound``, ``RouteNotFound``) belong to
the strategies and are turned into HTTP responses by the handlers.
"""


class MicroAPIError(Exception):
    """Base class for all gateway errors."""


class ConfigurationError(MicroAPIError):
    """Raised when startup configuration is invalid."""


class UnknownStrategyError(ConfigurationError):
    """Raised when a configured strategy name has no registered factory."""

    def __init__(self, axis: str, kind: str) -> None:
        self.axis = axis
        self.kind = kind
        super().__init__(f"{axis.capitalize()} {kind} is not found (axis: {axis})")


class AddressError(ConfigurationError):
    """Raised when a bind address cannot be parsed."""

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        super().__init__(f"Invalid server address {address!r}: {reason}")


class ServiceSpecError(ConfigurationError):
    """Raised when a static service entry is not ``name=node[,node...]``."""

    def __init__(self, entry: str) -> None:
        self.entry = entry
        super().__init__(
            f"Invalid service {entry!r}: expected name=host:port[,host:port...]"
        )


class LifecycleError(MicroAPIError):
    """Raised on an invalid lifecycle transition."""


class ServerStartError(LifecycleError):
    """Raised when the server fails to open its listener."""


class ServerStopError(LifecycleError):
    """Raised when the server fails to stop."""


class EndpointNotFound(MicroAPIError):
    """Raised by a resolver when a request maps to no endpoint."""


class RouteNotFound(MicroAPIError):
    """Raised by a router when an endpoint has no route."""
