"""Root conftest - shared test configuration and fixtures.

Invariants:
    - Tests never read a developer's real DATABASE_URL / JWT_SECRET
    - Every pool fixture is drained at teardown
"""

import os
from dataclasses import replace

import pytest

from app.core.domain_types import Tier
from app.core.service_config import ServiceConfig
from app.infrastructure.database import ConnectionPool

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("JWT_SECRET", "test-secret-0123456789-0123456789-abcdef")

TEST_SECRET = "test-secret-0123456789-0123456789-abcdef"


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}"


@pytest.fixture
def make_config(sqlite_url):
    """Factory for ServiceConfig pointing at the per-test SQLite file."""
    base = ServiceConfig(
        database_url=sqlite_url,
        jwt_secret=TEST_SECRET,
        tier=Tier.NON_PRODUCTION,
        database_schema="main",
        drain_timeout_seconds=0.5,
    )

    def _make(**overrides) -> ServiceConfig:
        return replace(base, **overrides)

    return _make


@pytest.fixture
async def pool(sqlite_url):
    pool = ConnectionPool(
        sqlite_url, pool_max=2, acquire_timeout=0.2, idle_timeout=30.0,
    )
    yield pool
    await pool.drain(timeout=0.1)
