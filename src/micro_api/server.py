"""
HTTP Server
===========

Binds the assembled gateway application to an address and serves it with
uvicorn on a dedicated thread.

Constructing an :class:`HTTPServer` only parses the address; no socket
is opened until :meth:`HTTPServer.start`. ``start`` binds and listens
synchronously, so errors such as an address already in use are raised
to the caller instead of being logged by a background thread.

Address syntax:
- ``:8080``          all interfaces, port 8080 (IPv4 and IPv6 where the
                     host supports a dual-stack socket, IPv4 otherwise)
- ``127.0.0.1:8080`` a specific host
- ``[::1]:8080``     an IPv6 host
- port ``0``         an ephemeral port (see :attr:`HTTPServer.bound_address`)
"""

import errno
import logging
import socket
import threading
import time
from typing import Optional, Tuple

import uvicorn
from fastapi import FastAPI
from starlette.types import ASGIApp

from .errors import AddressError, ConfigurationError, ServerStartError, ServerStopError

logger = logging.getLogger(__name__)

# Empty host: all interfaces
ALL_INTERFACES = ""
LOG_LEVELS = ("critical", "error", "warning", "info", "debug", "trace")
START_TIMEOUT = 10.0
STOP_TIMEOUT = 10.0


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split a ``host:port`` address.

    An empty host (``:8080``) is returned as ``""``, meaning all interfaces.

    Raises:
        AddressError: If the address has no valid port
    """
    host, sep, port_str = address.rpartition(":")
    if not sep:
        raise AddressError(address, "missing port")

    if host.startswith("["):
        if not host.endswith("]"):
            raise AddressError(address, "unterminated IPv6 host")
        host = host[1:-1]
    elif ":" in host:
        raise AddressError(address, "IPv6 hosts must be enclosed in brackets")

    try:
        port = int(port_str)
    except ValueError:
        raise AddressError(address, f"invalid port {port_str!r}") from None
    if not 0 <= port <= 65535:
        raise AddressError(address, f"port {port} out of range")

    return host, port


class HTTPServer:
    """
    uvicorn-backed server for the gateway application.

    Applications are mounted with :meth:`handle` before :meth:`start`.
    ``start`` and ``stop`` are each meant to be called once.
    """

    def __init__(
        self,
        address: str,
        *,
        title: str = "micro-api",
        log_level: str = "info",
        access_log: bool = True,
    ) -> None:
        self.address = address
        self.host, self.port = parse_address(address)
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log level {log_level!r} (choose from: {', '.join(LOG_LEVELS)})"
            )
        self._log_level = log_level
        self._access_log = access_log
        self.app = FastAPI(title=title, docs_url=None, redoc_url=None, openapi_url=None)

        self._socket: Optional[socket.socket] = None
        self._bound: Optional[Tuple[str, int]] = None
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

    def handle(self, path: str, app: ASGIApp) -> None:
        """Mount an ASGI application at ``path``."""
        self.app.mount(path, app)
        logger.debug(f"Mounted {app!r} at {path}")

    @property
    def started(self) -> bool:
        return self._server is not None and self._server.started

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """The ``(host, port)`` the listener is bound to, once started."""
        return self._bound

    def _bind(
        self, family: socket.AddressFamily, host: str, dual_stack: bool = False
    ) -> socket.socket:
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if dual_stack:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
            sock.bind((host, self.port))
            sock.listen(socket.SOMAXCONN)
        except OSError:
            sock.close()
            raise
        return sock

    def _listen(self) -> socket.socket:
        if self.host != ALL_INTERFACES:
            family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
            return self._bind(family, self.host)

        if socket.has_ipv6:
            try:
                return self._bind(socket.AF_INET6, "::", dual_stack=True)
            except OSError as e:
                if e.errno not in (errno.EAFNOSUPPORT, errno.EADDRNOTAVAIL):
                    raise
                logger.debug(f"IPv6 unavailable ({e}), listening on IPv4 only")
        return self._bind(socket.AF_INET, "0.0.0.0")

    def _abort_start(self, message: str) -> ServerStartError:
        """Release the listener and the server thread after a failed start."""
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(STOP_TIMEOUT)
        if self._socket is not None:
            self._socket.close()
        return ServerStartError(message)

    def start(self) -> None:
        """
        Open the listener and start serving on a background thread.

        Raises:
            ServerStartError: If the server was already started, the address
                cannot be bound, or uvicorn fails to come up
        """
        if self._thread is not None:
            raise ServerStartError(f"Server on {self.address} already started")

        try:
            self._socket = self._listen()
        except OSError as e:
            raise ServerStartError(f"Failed to listen on {self.address}: {e}") from e
        self._bound = self._socket.getsockname()[:2]

        try:
            config = uvicorn.Config(
                self.app,
                log_level=self._log_level,
                access_log=self._access_log,
                lifespan="auto",
            )
            self._server = uvicorn.Server(config)
            self._thread = threading.Thread(
                target=self._server.run,
                kwargs={"sockets": [self._socket]},
                name="micro-api-server",
                daemon=True,
            )
            self._thread.start()
        except Exception as e:
            raise self._abort_start(
                f"Failed to start server on {self.address}: {e}"
            ) from e

        deadline = time.monotonic() + START_TIMEOUT
        while not self._server.started:
            if not self._thread.is_alive():
                raise self._abort_start(f"Server on {self.address} exited during startup")
            if time.monotonic() > deadline:
                raise self._abort_start(f"Server on {self.address} did not start in time")
            time.sleep(0.01)

        logger.info(f"Listening on {self._bound[0]}:{self._bound[1]}")

    def stop(self, timeout: float = STOP_TIMEOUT) -> None:
        """
        Stop serving and release the listening socket.

        In-flight requests get uvicorn's native shutdown handling; there is
        no additional drain.

        Raises:
            ServerStopError: If the server is not running or does not exit
        """
        if self._server is None or self._thread is None:
            raise ServerStopError(f"Server on {self.address} is not running")
        if self._stopped:
            raise ServerStopError(f"Server on {self.address} already stopped")

        self._server.should_exit = True
        self._thread.join(timeout)
        if self._thread.is_alive():
            self._server.force_exit = True
            self._thread.join(timeout)
        if self._thread.is_alive():
            raise ServerStopError(f"Server on {self.address} did not stop in time")

        if self._socket is not None:
            self._socket.close()
        self._stopped = True
        logger.info(f"Server on {self.address} stopped")
