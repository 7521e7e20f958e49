"""Lifecycle Controller - STARTING -> SERVING -> DRAINING -> STOPPED.

Invariants:
    - SERVING only after the listener is bound
    - SIGTERM and SIGINT share one path (request_shutdown); a second signal
      while draining is ignored
    - DRAINING -> STOPPED only after the listener closed and the pool drained;
      a drain failure is logged, never raised
    - exit_code: OK on graceful shutdown, POOL_FAULT after any pool fault
    - Health probe results never touch lifecycle state

Design Decisions:
    - uvicorn.Server subclass routes signals into the controller and does not
      re-raise them after serve(), so the process exits with exit_code
    - The pool drain runs from the FastAPI lifespan shutdown, which uvicorn
      reaches after closing listeners and finishing in-flight requests
"""

import contextlib
import logging
import signal
import threading
from collections.abc import Callable
from typing import Any

import uvicorn

from app.core.domain_types import (
    ExitCode, LifecycleState, can_transition,
)
from app.core.errors import PoolFault
from app.core.repository_protocols import DrainablePool
from app.core.service_config import ServiceConfig

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleController:
    """Supervises the HTTP listener and the connection pool."""

    def __init__(
        self,
        config: ServiceConfig,
        pool: DrainablePool,
        server_factory: Callable[[Any, "LifecycleController"], Any] | None = None,
    ):
        self._config = config
        self._pool = pool
        self._server_factory = server_factory or build_server
        self._server = None
        self._state = LifecycleState.STARTING
        self._fault: PoolFault | None = None
        pool.subscribe_faults(self.report_pool_fault)

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.POOL_FAULT if self._fault else ExitCode.OK

    def _transition(self, target: LifecycleState) -> bool:
        if not can_transition(self._state, target):
            return False
        logger.info(
            f"Lifecycle {self._state.value} -> {target.value}",
            extra={"state": target.value},
        )
        self._state = target
        return True

    # ─── Events ─────────────────────────────────────────────────

    def mark_serving(self) -> None:
        """Called once the listener is bound."""
        self._transition(LifecycleState.SERVING)

    def request_shutdown(self, signal_name: str | None = None) -> None:
        """Single shutdown path for every termination signal."""
        if not self._transition(LifecycleState.DRAINING):
            logger.info(
                f"{signal_name or 'Shutdown'} received while "
                f"{self._state.value}; ignoring",
                extra={"signal": signal_name, "state": self._state.value},
            )
            return
        logger.info(
            f"[System] {signal_name or 'Shutdown'} received, shutting down...",
            extra={"signal": signal_name},
        )
        if self._server is not None:
            self._server.should_exit = True

    def report_pool_fault(self, fault: PoolFault) -> None:
        """Pool fault subscriber: fatal for the whole process."""
        if self._fault is None:
            self._fault = fault
        logger.critical(
            f"[PostgreSQL] Unexpected pool fault: {fault.message}",
            extra={"error_code": fault.code, "state": self._state.value},
        )
        self.request_shutdown("POOL_FAULT")

    async def complete_shutdown(self) -> None:
        """Drain the pool and stop. Safe to call more than once."""
        if self._state is LifecycleState.STOPPED:
            return
        self._transition(LifecycleState.DRAINING)
        try:
            result = await self._pool.drain(self._config.drain_timeout_seconds)
            if not result.completed:
                logger.warning(
                    "Connections not returned before drain timeout",
                    extra={"outstanding": list(result.outstanding)},
                )
        except Exception as e:
            logger.error(f"[System] Error closing database pool: {e}", exc_info=True)
        self._transition(LifecycleState.STOPPED)

    # ─── Run ────────────────────────────────────────────────────

    async def run(self, app) -> ExitCode:
        """Serve ``app`` until shutdown; returns the process exit code."""
        self._server = self._server_factory(app, self)
        await self._server.serve()
        # lifespan shutdown did not run (e.g. the server never started)
        await self.complete_shutdown()
        return self.exit_code


class GatewayServer(uvicorn.Server):
    """uvicorn server reporting bind and signals to a LifecycleController."""

    def __init__(self, config: uvicorn.Config, controller: LifecycleController):
        super().__init__(config)
        self._controller = controller

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if self.started:
            self._controller.mark_serving()

    def handle_exit(self, sig: int, frame) -> None:
        # uvicorn reads a SIGINT arriving after should_exit as a forced exit
        super().handle_exit(sig, frame)
        self._controller.request_shutdown(signal.Signals(sig).name)

    @contextlib.contextmanager
    def capture_signals(self):
        # unlike uvicorn's default, signals are not re-raised afterwards
        if threading.current_thread() is not threading.main_thread():
            yield
            return
        original = {
            sig: signal.signal(sig, self.handle_exit) for sig in HANDLED_SIGNALS
        }
        try:
            yield
        finally:
            for sig, handler in original.items():
                signal.signal(sig, handler)


def build_server(app, controller: LifecycleController) -> GatewayServer:
    config = controller.config
    return GatewayServer(
        uvicorn.Config(
            app, host=config.host, port=config.port,
            log_config=None, lifespan="on",
        ),
        controller,
    )
