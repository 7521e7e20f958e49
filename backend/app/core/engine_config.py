"""Tier-Gated Engine Configuration - the single source of truth for tier behaviour.

Invariants:
    - build_engine_config() is a pure function of its arguments
    - Production: no explorer, no schema watch, no extended errors, no stack,
      complexity and depth capped
    - Non-production: explorer, watch, extended errors and stack enabled,
      no caps
    - No other module branches on Tier for engine behaviour

Design Decisions:
    - Frozen dataclass: the engine receives one immutable value at construction
"""

from dataclasses import dataclass

from app.core.domain_types import Tier

VERBOSE_ERROR_FIELDS = ("hint", "detail", "errcode")


@dataclass(frozen=True)
class EngineConfig:
    """Operational options handed to the schema-graph engine."""
    tier: Tier
    graphql_route: str
    graphiql: bool
    graphiql_route: str | None
    watch: bool
    extended_errors: tuple[str, ...]
    show_error_stack: bool
    max_complexity: int | None
    max_depth: int | None
    database_schema: str = "public"
    watch_interval_seconds: float = 5.0
    retry_on_init_fail: bool = True
    mask_errors: bool = False


def build_engine_config(
    tier: Tier,
    *,
    max_complexity: int = 1000,
    max_depth: int = 10,
    graphql_route: str = "/graphql",
    graphiql_route: str = "/graphiql",
    database_schema: str = "public",
    watch_interval_seconds: float = 5.0,
) -> EngineConfig:
    """Assemble engine options for ``tier``.

    ``max_complexity`` and ``max_depth`` are the production caps; they are
    ignored outside production.
    """
    production = tier.is_production
    return EngineConfig(
        tier=tier,
        graphql_route=graphql_route,
        graphiql=not production,
        graphiql_route=None if production else graphiql_route,
        watch=not production,
        extended_errors=() if production else VERBOSE_ERROR_FIELDS,
        show_error_stack=not production,
        max_complexity=max_complexity if production else None,
        max_depth=max_depth if production else None,
        database_schema=database_schema,
        watch_interval_seconds=watch_interval_seconds,
        mask_errors=production,
    )
