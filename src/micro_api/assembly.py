"""
Pipeline Assembly
=================

Builds the request pipeline from resolved strategies::

    resolver -> router -> handler -> CORSMiddleware -> HTTPServer("/")

Each layer is constructed once and exclusively owns the layer below it.
Assembly is synchronous and opens no socket; the server starts listening
only when the lifecycle starts it.
"""

import logging
from dataclasses import dataclass
from typing import Any

from starlette.types import ASGIApp

from .config import ResolvedStrategies
from .cors import CORSMiddleware
from .server import HTTPServer

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """The assembled gateway."""

    resolver: Any
    router: Any
    handler: Any
    app: ASGIApp
    server: HTTPServer


def assemble_pipeline(
    resolved: ResolvedStrategies,
    *,
    title: str = "micro-api",
    log_level: str = "info",
) -> Pipeline:
    """
    Construct resolver, router, handler, middleware, and server.

    Raises:
        AddressError: If the configured address is malformed
    """
    resolver = resolved.resolver_factory(**resolved.resolver_options)
    router = resolved.router_factory(resolver=resolver, **resolved.router_options)
    handler = resolved.handler_factory(router=router, **resolved.handler_options)
    app = CORSMiddleware(handler)

    server = HTTPServer(resolved.address, title=title, log_level=log_level)
    server.handle("/", app)

    logger.info(
        f"Assembled pipeline: resolver={type(resolver).__name__} "
        f"router={type(router).__name__} handler={type(handler).__name__} "
        f"address={resolved.address}"
    )
    return Pipeline(
        resolver=resolver,
        router=router,
        handler=handler,
        app=app,
        server=server,
    )
