"""
micro-api Command
=================

Command-line bootstrap for the gateway process:

1. Parse flags (defaults overridable by environment variables)
2. Resolve router / handler / resolver names against the registry
3. Assemble the pipeline (no socket opened yet)
4. Start the server, wait for SIGINT/SIGTERM, stop the server

Usage:
    micro-api --server_address=:8080 --router=registry --resolver=vpath --handler=rpc
    micro-api --service go.micro.greeter=10.0.0.1:9000,10.0.0.2:9000
    python -m micro_api --handler=http --namespace=acme

Environment Variables:
    MICRO_API_SERVER_ADDRESS  Default for --server_address (default: :8080)
    MICRO_API_NAMESPACE       Default for --namespace (default: go.micro)
    MICRO_API_ROUTER          Default for --router (default: registry)
    MICRO_API_RESOLVER        Default for --resolver (default: vpath)
    MICRO_API_HANDLER         Default for --handler (default: rpc)
    MICRO_API_LOG_LEVEL       Default for --log_level (default: info)
    MICRO_API_SERVICES        Default for --service, entries separated by ";"

Exit codes:
    0    clean shutdown after a termination signal
    1    configuration error (unknown strategy, malformed address or service)
    2    invalid command-line usage (argparse)
    255  server start or stop failure

Embedding:
    from micro_api.cli import Command
    from micro_api.registry import Axis

    cmd = Command(name="my-gateway", version="1.0.0")
    cmd.registry.register(Axis.HANDLER, "custom", CustomHandler)
    raise SystemExit(cmd.run())
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional, Sequence

from .assembly import Pipeline, assemble_pipeline
from .config import (
    DEFAULT_ADDRESS,
    DEFAULT_DESCRIPTION,
    DEFAULT_HANDLER,
    DEFAULT_LOG_LEVEL,
    DEFAULT_NAMESPACE,
    DEFAULT_RESOLVER,
    DEFAULT_ROUTER,
    GatewayConfig,
    resolve_strategies,
)
from .errors import ConfigurationError, LifecycleError
from .lifecycle import Lifecycle, ShutdownSignal
from .server import LOG_LEVELS
from .registry import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_SERVER_ERROR = 255

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    """Configure the root logger for the gateway process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


class Command:
    """
    The gateway command.

    ``registry`` is the extension point: add or replace factories on it
    before :meth:`run` or :meth:`init` is called. Once a configuration has
    been resolved the registry is frozen.
    """

    def __init__(
        self,
        name: str = "micro-api",
        version: str = "",
        description: str = "",
        registry: Optional[StrategyRegistry] = None,
    ) -> None:
        self.name = name
        self.version = version
        self.description = description or DEFAULT_DESCRIPTION
        self.registry = registry if registry is not None else default_registry()

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(prog=self.name, description=self.description)
        parser.add_argument(
            "--server_address",
            type=str,
            default=os.getenv("MICRO_API_SERVER_ADDRESS", DEFAULT_ADDRESS),
            help="--server_address=[server_address] (default: :8080)",
        )
        parser.add_argument(
            "--namespace",
            type=str,
            default=os.getenv("MICRO_API_NAMESPACE", DEFAULT_NAMESPACE),
            help="--namespace=[namespace] (default: go.micro)",
        )
        parser.add_argument(
            "--router",
            type=str,
            default=os.getenv("MICRO_API_ROUTER", DEFAULT_ROUTER),
            help="--router=[router] (default: registry)",
        )
        parser.add_argument(
            "--resolver",
            type=str,
            default=os.getenv("MICRO_API_RESOLVER", DEFAULT_RESOLVER),
            help="--resolver=[resolver] (default: vpath)",
        )
        parser.add_argument(
            "--handler",
            type=str,
            default=os.getenv("MICRO_API_HANDLER", DEFAULT_HANDLER),
            help="--handler=[handler] (default: rpc)",
        )
        parser.add_argument(
            "--log_level",
            type=str.lower,
            choices=LOG_LEVELS,
            default=os.getenv("MICRO_API_LOG_LEVEL", DEFAULT_LOG_LEVEL),
            help="Log level (default: info)",
        )
        parser.add_argument(
            "--service",
            action="append",
            metavar="NAME=HOST:PORT[,HOST:PORT]",
            help="Static service nodes for the router, repeatable "
            "(e.g. go.micro.greeter=10.0.0.1:9000)",
        )
        if self.version:
            parser.add_argument(
                "--version", action="version", version=f"%(prog)s {self.version}"
            )
        return parser

    def parse(self, argv: Optional[Sequence[str]] = None) -> GatewayConfig:
        """Parse command-line flags into a :class:`GatewayConfig`."""
        args = self.build_parser().parse_args(argv)
        services = args.service
        if services is None:
            env_services = os.getenv("MICRO_API_SERVICES", "")
            services = [s.strip() for s in env_services.split(";") if s.strip()]
        return GatewayConfig(
            name=self.name,
            version=self.version,
            description=self.description,
            server_address=args.server_address,
            namespace=args.namespace,
            router=args.router,
            resolver=args.resolver,
            handler=args.handler,
            log_level=args.log_level,
            services=tuple(services),
        )

    def build(self, config: GatewayConfig) -> Pipeline:
        """
        Resolve strategies and assemble the pipeline for a configuration.

        Raises:
            ConfigurationError: On an unknown strategy or malformed address
        """
        resolved = resolve_strategies(config, self.registry)
        return assemble_pipeline(resolved, title=self.name, log_level=config.log_level)

    def init(self, argv: Optional[Sequence[str]] = None) -> Pipeline:
        """Parse flags and assemble the pipeline."""
        return self.build(self.parse(argv))

    async def serve(
        self, pipeline: Pipeline, shutdown: Optional[ShutdownSignal] = None
    ) -> None:
        """
        Run the pipeline's server until SIGINT/SIGTERM (or ``shutdown``).

        Raises:
            LifecycleError: If the server fails to start or stop
        """
        shutdown = shutdown or ShutdownSignal()
        shutdown.install()
        try:
            await Lifecycle(pipeline.server).run(shutdown)
        finally:
            shutdown.uninstall()

    def run(
        self,
        argv: Optional[Sequence[str]] = None,
        shutdown: Optional[ShutdownSignal] = None,
    ) -> int:
        """Run the command and return the process exit code."""
        config = self.parse(argv)
        configure_logging(config.log_level)

        print(f"🚀 Starting {self.name} {self.version}".rstrip())
        print(f"   Address: {config.server_address}")
        print(f"   Namespace: {config.namespace}")
        print(f"   Router: {config.router} | Resolver: {config.resolver} | Handler: {config.handler}")

        try:
            pipeline = self.build(config)
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return EXIT_CONFIG_ERROR

        try:
            asyncio.run(self.serve(pipeline, shutdown))
        except LifecycleError as e:
            logger.error(f"Server error: {e}")
            return EXIT_SERVER_ERROR

        return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Console-script entry point."""
    sys.exit(Command().run(argv))


if __name__ == "__main__":
    main()
