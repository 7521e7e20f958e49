"""Boundary Protocols - contracts between core and shell.

Invariants:
    - Core NEVER imports from shell; dependency arrows point inward only
    - Routes, engine and lifecycle depend on these Protocols, not on the
      concrete ConnectionPool, so tests can substitute fakes

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
"""

from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Protocol

from app.core.domain_types import SecurityContext
from app.core.errors import PoolFault


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one liveness round-trip."""
    ok: bool
    db_time: Any = None
    error: str | None = None


@dataclass(frozen=True)
class DrainResult:
    """Outcome of ConnectionPool.drain()."""
    completed: bool
    outstanding: tuple[str, ...] = ()


FaultListener = Callable[[PoolFault], None]


class SettingsResolver(Protocol):
    """Per-request settings callback handed to the schema-graph engine."""
    def __call__(self, headers: Mapping[str, str]) -> SecurityContext: ...


class ConnectionSource(Protocol):
    """What request handlers and the engine need from the pool."""
    async def acquire(
        self, label: str = ..., *, report_faults: bool = ...,
    ) -> Any: ...

    async def release(self, conn: Any) -> None: ...

    def connection(
        self, label: str = ..., *, report_faults: bool = ...,
    ) -> AbstractAsyncContextManager[Any]: ...

    def transaction(
        self, settings: SecurityContext | None = ..., label: str = ...,
    ) -> AbstractAsyncContextManager[Any]: ...

    async def probe(self) -> ProbeResult: ...


class DrainablePool(Protocol):
    """What the lifecycle controller needs from the pool."""
    def subscribe_faults(self, listener: FaultListener) -> None: ...
    async def drain(self, timeout: float) -> DrainResult: ...
