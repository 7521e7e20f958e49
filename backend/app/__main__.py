"""Process entry point: ``python -m app`` or the ``graph-gateway`` script.

Invariants:
    - Configuration is validated before any pool or listener exists
    - ConfigError -> exit CONFIG_ERROR without binding a socket
    - Otherwise the exit status is the LifecycleController's exit_code
"""

import asyncio
import logging
import os
import sys

from app.config import load_config
from app.core.domain_types import ExitCode
from app.core.engine_config import build_engine_config
from app.core.errors import ConfigError, MissingRequiredVar
from app.core.security_context import CredentialResolver
from app.infrastructure.database import ConnectionPool
from app.infrastructure.graph_engine import SchemaGraphEngine
from app.infrastructure.observability import setup_logging
from app.main import create_app
from app.services.lifecycle import LifecycleController

logger = logging.getLogger("app")


async def serve(config) -> ExitCode:
    pool = ConnectionPool.from_config(config)
    engine = SchemaGraphEngine(
        pool,
        CredentialResolver(config.jwt_secret),
        build_engine_config(
            config.tier,
            max_complexity=config.max_query_complexity,
            max_depth=config.max_query_depth,
            graphql_route=config.graphql_route,
            graphiql_route=config.graphiql_route,
            database_schema=config.database_schema,
            watch_interval_seconds=config.schema_watch_interval_seconds,
        ),
    )
    controller = LifecycleController(config, pool)
    app = create_app(config, pool, engine=engine, lifecycle=controller)
    return await controller.run(app)


def main() -> None:
    setup_logging(
        os.environ.get("LOG_LEVEL", "INFO"), os.environ.get("LOG_FORMAT", "json"),
    )
    try:
        config = load_config()
    except ConfigError as e:
        logger.critical(f"[FATAL] {e.message}", extra={"error_code": e.code})
        if isinstance(e, MissingRequiredVar):
            logger.critical("[FATAL] Please set these environment variables and restart the service.")
        sys.exit(ExitCode.CONFIG_ERROR)
    setup_logging(config.log_level, config.log_format)
    sys.exit(asyncio.run(serve(config)))


if __name__ == "__main__":
    main()
