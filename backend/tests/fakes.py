"""Test doubles for PostgreSQL-only paths (set_config, information_schema).

FakePool implements the ConnectionSource / DrainablePool protocols and
records every statement executed through its connections.
"""

from contextlib import asynccontextmanager

from app.core.repository_protocols import DrainResult, ProbeResult
from app.infrastructure.database import apply_settings


class FakeResult:
    def __init__(self, rows=None):
        self._rows = rows or []

    def mappings(self):
        return self

    def all(self):
        return list(self._rows)

    def __iter__(self):
        return iter(self._rows)

    def scalar_one(self):
        return self._rows[0]


class FakeTransaction:
    def __init__(self, conn):
        self._conn = conn

    async def commit(self):
        self._conn.events.append("commit")

    async def rollback(self):
        self._conn.events.append("rollback")


class FakeConnection:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.executed = []
        self.events = []

    async def begin(self):
        self.events.append("begin")
        return FakeTransaction(self)

    async def execute(self, statement, params=None):
        self.executed.append((str(statement), params))
        if self.error is not None and "set_config" not in str(statement):
            raise self.error
        return FakeResult(self.rows)


class FakePool:
    def __init__(self, rows=None, error=None, acquire_error=None, probe=None):
        self.conn = FakeConnection(rows=rows, error=error)
        self.acquire_error = acquire_error
        self.probe_result = probe or ProbeResult(ok=True, db_time="2026-01-01")
        self.acquired = 0
        self.released = 0
        self.listeners = []
        self.drain_calls = []
        self.drain_error = None
        self.drain_result = DrainResult(completed=True)

    async def acquire(self, label="request", *, report_faults=True):
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        return self.conn

    async def release(self, conn):
        self.released += 1

    @asynccontextmanager
    async def connection(self, label="request", *, report_faults=True):
        conn = await self.acquire(label, report_faults=report_faults)
        try:
            yield conn
        finally:
            await self.release(conn)

    @asynccontextmanager
    async def transaction(self, settings=None, label="request"):
        async with self.connection(label) as conn:
            await apply_settings(conn, settings or {})
            yield conn

    async def probe(self):
        return self.probe_result

    def subscribe_faults(self, listener):
        self.listeners.append(listener)

    async def drain(self, timeout):
        self.drain_calls.append(timeout)
        if self.drain_error is not None:
            raise self.drain_error
        return self.drain_result
