"""
Lifecycle Controller
====================

Owns the server start/stop state machine::

    IDLE -> STARTING -> RUNNING -> STOPPING -> STOPPED

``FAILED`` is entered from ``STARTING`` or ``STOPPING``.

:meth:`Lifecycle.run` starts the server, awaits a :class:`ShutdownSignal`,
and stops the server. The wait is the only blocking point. OS signals are
not handled here: the entry point translates ``SIGINT``/``SIGTERM`` into
the shutdown signal with :meth:`ShutdownSignal.install`.

Start and stop failures move the lifecycle to ``FAILED`` and propagate to
the caller; nothing is retried.

Usage:
    shutdown = ShutdownSignal()
    shutdown.install()
    await Lifecycle(server).run(shutdown)
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import threading
from enum import Enum
from typing import Iterable, Optional, Protocol

from .errors import LifecycleError

logger = logging.getLogger(__name__)

TERMINATION_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class Server(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class LifecycleState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class ShutdownSignal:
    """
    One-shot shutdown token.

    The first :meth:`trigger` wins and wakes every waiter; later triggers
    are ignored. A trigger that happens before :meth:`wait` is not lost.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._signum: Optional[int] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: list[signal.Signals] = []
        self._previous: dict[signal.Signals, object] = {}

    @property
    def triggered(self) -> bool:
        return self._event.is_set()

    @property
    def signum(self) -> Optional[int]:
        """The signal number that triggered shutdown, if any."""
        return self._signum

    def trigger(self, signum: Optional[int] = None) -> None:
        """Request shutdown. Must be called from the event loop thread."""
        if self._event.is_set():
            logger.debug(f"Shutdown already requested, ignoring signal {signum}")
            return
        self._signum = signum
        if signum is not None:
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self._event.set()

    async def wait(self) -> Optional[int]:
        """Block until shutdown is triggered and return the signal number."""
        await self._event.wait()
        return self._signum

    def install(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        signals: Iterable[signal.Signals] = TERMINATION_SIGNALS,
    ) -> None:
        """
        Trigger this token when one of ``signals`` is delivered.

        Must be called from the main thread with a running (or given) loop.
        """
        self._loop = loop or asyncio.get_running_loop()
        for sig in signals:
            if sys.platform == "win32":
                self._previous[sig] = signal.signal(sig, self._threadsafe_trigger)
            else:
                self._loop.add_signal_handler(sig, self.trigger, int(sig))
            self._installed.append(sig)
        logger.debug(
            f"Shutdown signal handlers installed: {[s.name for s in self._installed]}"
        )

    def uninstall(self) -> None:
        """Remove the handlers registered by :meth:`install`."""
        for sig in self._installed:
            if sys.platform == "win32":
                signal.signal(sig, self._previous.pop(sig, signal.SIG_DFL))
            elif self._loop is not None and not self._loop.is_closed():
                self._loop.remove_signal_handler(sig)
        self._installed = []

    def _threadsafe_trigger(self, signum: int, frame: object) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self.trigger, signum)


class Lifecycle:
    """
    Start/stop state machine around a server.

    ``start`` and ``stop`` run once per process; a restart is not
    supported. ``stop`` is a no-op once stopping has begun, so repeated
    shutdown requests never stop the server twice.
    """

    def __init__(self, server: Server) -> None:
        self.server = server
        self._state = LifecycleState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> LifecycleState:
        return self._state

    def _transition(self, new_state: LifecycleState) -> None:
        logger.debug(f"Lifecycle {self._state.value} -> {new_state.value}")
        self._state = new_state

    def start(self) -> None:
        """
        Start the server.

        Raises:
            LifecycleError: If the lifecycle is not idle
            Exception: Whatever the server raised on start (state becomes FAILED)
        """
        with self._lock:
            if self._state is not LifecycleState.IDLE:
                raise LifecycleError(f"Cannot start from state {self._state.value}")
            self._transition(LifecycleState.STARTING)

        try:
            self.server.start()
        except Exception:
            self._transition(LifecycleState.FAILED)
            raise

        self._transition(LifecycleState.RUNNING)

    def stop(self) -> None:
        """
        Stop the server if it is running.

        Raises:
            LifecycleError: If the server was never started
            Exception: Whatever the server raised on stop (state becomes FAILED)
        """
        with self._lock:
            if self._state in (LifecycleState.STOPPING, LifecycleState.STOPPED):
                logger.debug("Stop already in progress or complete")
                return
            if self._state is not LifecycleState.RUNNING:
                raise LifecycleError(f"Cannot stop from state {self._state.value}")
            self._transition(LifecycleState.STOPPING)

        try:
            self.server.stop()
        except Exception:
            self._transition(LifecycleState.FAILED)
            raise

        self._transition(LifecycleState.STOPPED)

    async def run(self, shutdown: ShutdownSignal) -> None:
        """
        Start the server, wait for shutdown, then stop the server.

        A start failure propagates before the wait is entered.
        """
        await asyncio.to_thread(self.start)
        logger.info("Gateway running, waiting for shutdown signal")

        await shutdown.wait()

        await asyncio.to_thread(self.stop)
        logger.info("Gateway stopped")
