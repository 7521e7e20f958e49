"""Connection Resource Manager - bounded async pool with leases, drain and health probe.

Invariants:
    - At most pool_max connections exist; waiting longer than acquire_timeout
      raises PoolExhausted
    - Every acquired connection is released exactly once, also on cancellation;
      invalidated (broken) connections are discarded on release, never reused
    - Connections idle longer than idle_timeout are discarded at next checkout
    - A failure to establish a connection is a PoolFault, published to every
      fault subscriber unless the caller opted out (health probe, introspection)
    - Security settings are applied with set_config(..., true): transaction-local,
      gone when the transaction ends
    - After drain() starts, acquire() raises PoolExhausted

Design Decisions:
    - One ConnectionPool instance built in main() and passed by handle; no
      module-level db_manager singleton
    - SQLAlchemy AsyncAdaptedQueuePool with pool_pre_ping for stale connection
      detection; idle eviction via pool checkout/checkin events
"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event, text
from sqlalchemy.exc import (
    DBAPIError, DisconnectionError, SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from app.core.domain_types import SecurityContext
from app.core.errors import ErrorContext, GatewayError, PoolExhausted, PoolFault
from app.core.repository_protocols import DrainResult, FaultListener, ProbeResult
from app.core.service_config import ServiceConfig, mask_database_url

logger = logging.getLogger(__name__)

HEALTH_QUERY = text("SELECT CURRENT_TIMESTAMP AS now")
SET_LOCAL_SETTING = text("SELECT set_config(:name, :value, true)")


class ConnectionPool:
    """Owns the database engine and every connection checked out of it."""

    def __init__(
        self,
        database_url: str,
        *,
        pool_max: int = 20,
        acquire_timeout: float = 10.0,
        idle_timeout: float = 30.0,
        recycle_seconds: int = 3600,
    ):
        self.engine = create_async_engine(
            database_url,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=pool_max,
            max_overflow=0,
            pool_timeout=acquire_timeout,
            pool_pre_ping=True,
            pool_recycle=recycle_seconds,
        )
        self.pool_max = pool_max
        self.acquire_timeout = acquire_timeout
        self.idle_timeout = idle_timeout
        self._fault_listeners: list[FaultListener] = []
        self._leases: dict[int, str] = {}
        self._lease_seq = 0
        self._all_returned = asyncio.Event()
        self._all_returned.set()
        self._draining = False
        self._closed = False
        self._install_idle_eviction()
        logger.info(
            f"Connection pool configured for {mask_database_url(database_url)}",
        )

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "ConnectionPool":
        return cls(
            config.database_url,
            pool_max=config.pool_max,
            acquire_timeout=config.acquire_timeout_seconds,
            idle_timeout=config.idle_timeout_seconds,
        )

    @property
    def checked_out(self) -> tuple[str, ...]:
        """Labels of connections currently leased out."""
        return tuple(sorted(self._leases.values()))

    @property
    def draining(self) -> bool:
        return self._draining

    def subscribe_faults(self, listener: FaultListener) -> None:
        self._fault_listeners.append(listener)

    # ─── Acquire / Release ──────────────────────────────────────

    async def acquire(
        self, label: str = "request", *, report_faults: bool = True,
    ) -> AsyncConnection:
        """Check out a connection. Raises PoolExhausted or PoolFault."""
        if self._draining:
            raise PoolExhausted(
                "Connection pool is draining",
                context=ErrorContext(connection_label=label),
            )
        try:
            conn = await self.engine.connect()
        except PoolTimeoutError as e:
            raise PoolExhausted(
                f"No database connection available within "
                f"{self.acquire_timeout}s (pool max {self.pool_max})",
                context=ErrorContext(connection_label=label),
            ) from e
        except (DBAPIError, OSError) as e:
            fault = PoolFault(
                f"Cannot reach database: {e}",
                context=ErrorContext(connection_label=label),
            )
            logger.error(
                f"PostgreSQL connection failed: {e}",
                extra={"error_code": fault.code, "connection_label": label},
            )
            if report_faults:
                self._publish_fault(fault)
            raise fault from e

        self._lease_seq += 1
        self._leases[id(conn)] = f"{label}-{self._lease_seq}"
        self._all_returned.clear()
        return conn

    async def release(self, conn: AsyncConnection) -> None:
        """Return ``conn`` to the pool (or discard it if invalidated)."""
        lease = self._leases.pop(id(conn), None)
        if lease is None:
            logger.warning("Release of a connection this pool did not lease")
        try:
            if conn.invalidated:
                logger.warning(
                    "Discarding broken connection",
                    extra={"connection_label": lease},
                )
            # close() rolls back any open transaction; shield it from
            # request cancellation so the pool slot is never lost
            await asyncio.shield(conn.close())
        finally:
            if not self._leases:
                self._all_returned.set()

    @asynccontextmanager
    async def connection(
        self, label: str = "request", *, report_faults: bool = True,
    ) -> AsyncGenerator[AsyncConnection, None]:
        """Provide a leased connection, released on exit."""
        conn = await self.acquire(label, report_faults=report_faults)
        try:
            yield conn
        finally:
            await self.release(conn)

    @asynccontextmanager
    async def transaction(
        self, settings: SecurityContext | None = None, label: str = "request",
    ) -> AsyncGenerator[AsyncConnection, None]:
        """Provide a connection inside one transaction with ``settings`` applied.

        Commits on normal exit, rolls back on exception.
        """
        async with self.connection(label) as conn:
            async with conn.begin():
                await apply_settings(conn, settings or {})
                yield conn

    # ─── Health / Shutdown ──────────────────────────────────────

    async def probe(self) -> ProbeResult:
        """Trivial round-trip for readiness checks. Never publishes faults."""
        try:
            async with self.connection("health", report_faults=False) as conn:
                result = await conn.execute(HEALTH_QUERY)
                db_time = result.scalar_one()
        except (GatewayError, SQLAlchemyError, OSError) as e:
            logger.error(f"DB health check failed: {e}")
            return ProbeResult(ok=False, error=str(e))
        return ProbeResult(ok=True, db_time=db_time)

    async def drain(self, timeout: float) -> DrainResult:
        """Stop leasing, wait up to ``timeout`` for leases, dispose the engine."""
        if self._closed:
            return DrainResult(completed=True)
        self._draining = True
        if self._leases:
            logger.info(
                f"Waiting up to {timeout}s for {len(self._leases)} "
                "connection(s) to return",
            )
            try:
                await asyncio.wait_for(self._all_returned.wait(), timeout)
            except asyncio.TimeoutError:
                pass
        outstanding = self.checked_out
        await self.engine.dispose()
        self._closed = True
        if outstanding:
            logger.warning(
                f"Pool drained with {len(outstanding)} connection(s) not returned",
                extra={"outstanding": list(outstanding)},
            )
        else:
            logger.info("Database pool closed")
        return DrainResult(completed=not outstanding, outstanding=outstanding)

    # ─── Internals ──────────────────────────────────────────────

    def _publish_fault(self, fault: PoolFault) -> None:
        for listener in list(self._fault_listeners):
            listener(fault)

    def _install_idle_eviction(self) -> None:
        idle_timeout = self.idle_timeout

        @event.listens_for(self.engine.sync_engine, "checkin")
        def _stamp_checkin(dbapi_connection, record):
            record.info["last_checkin"] = time.monotonic()

        @event.listens_for(self.engine.sync_engine, "checkout")
        def _evict_idle(dbapi_connection, record, proxy):
            last = record.info.get("last_checkin")
            if last is not None and time.monotonic() - last > idle_timeout:
                # the pool discards this connection and opens a fresh one
                raise DisconnectionError("connection idle timeout exceeded")


async def apply_settings(conn: AsyncConnection, settings: SecurityContext) -> None:
    """Set each context entry as a transaction-local PostgreSQL setting."""
    for name, value in settings.items():
        await conn.execute(SET_LOCAL_SETTING, {"name": name, "value": str(value)})
