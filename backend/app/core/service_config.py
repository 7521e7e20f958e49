"""Service Configuration - the immutable record every component is built from.

Invariants:
    - Constructed once at startup by the validator (app/config.py), never mutated
    - repr() never shows the JWT secret; redacted_summary() never shows
      credentials embedded in the database URL

Design Decisions:
    - Frozen dataclass in core/: passed by handle to the pool, resolver, engine
      builder and lifecycle controller instead of a module-level singleton
"""

import re
from dataclasses import dataclass, field

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from app.core.domain_types import Tier

MIN_PRODUCTION_SECRET_LENGTH = 32

_URL_PASSWORD = re.compile(r":[^:@/]+@")


@dataclass(frozen=True)
class ServiceConfig:
    """Validated, immutable service configuration."""

    database_url: str = field(repr=False)
    jwt_secret: str = field(repr=False)
    tier: Tier
    environment_name: str = "development"

    # Listener
    host: str = "0.0.0.0"
    port: int = 4004
    cors_origins: tuple[str, ...] = ("*",)

    # Pool
    pool_max: int = 20
    acquire_timeout_seconds: float = 10.0
    idle_timeout_seconds: float = 30.0
    drain_timeout_seconds: float = 10.0

    # Engine
    graphql_route: str = "/graphql"
    graphiql_route: str = "/graphiql"
    database_schema: str = "public"
    schema_tables: tuple[str, ...] = ("users", "tenants")
    schema_watch_interval_seconds: float = 5.0
    max_query_complexity: int = 1000
    max_query_depth: int = 10

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def masked_database_url(self) -> str:
        return mask_database_url(self.database_url)

    def redacted_summary(self) -> dict:
        """Loggable view of the config. Secrets appear only as lengths."""
        return {
            "environment": self.environment_name,
            "tier": self.tier.value,
            "host": self.host,
            "port": self.port,
            "database": self.masked_database_url,
            "database_schema": self.database_schema,
            "pool_max": self.pool_max,
            "acquire_timeout_seconds": self.acquire_timeout_seconds,
            "idle_timeout_seconds": self.idle_timeout_seconds,
            "jwt_secret": f"<redacted, {len(self.jwt_secret)} chars>",
            "graphql_route": self.graphql_route,
        }


def mask_database_url(url: str) -> str:
    """Hide the password of a connection string before it is logged."""
    if not url:
        return "DATABASE_URL not set"
    try:
        return make_url(url).render_as_string(hide_password=True)
    except (ArgumentError, ValueError):
        return _URL_PASSWORD.sub(":***@", url)
