"""Graph Gateway API - FastAPI application factory.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map GatewayError -> structured JSON responses
    - CORS configured from ServiceConfig (not hardcoded)
    - Config, pool, engine and lifecycle are injected; nothing is built at import time
    - Lifespan shutdown stops the engine, then completes the lifecycle drain

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - create_app() factory instead of a module-level app: tests build apps
      around fakes or SQLite pools
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import register_error_handlers
from app.api.routes import health, schema
from app.core.repository_protocols import ConnectionSource
from app.core.service_config import ServiceConfig
from app.infrastructure.graph_engine import SchemaGraphEngine
from app.services.lifecycle import LifecycleController

logger = logging.getLogger(__name__)


def create_app(
    config: ServiceConfig,
    pool: ConnectionSource,
    engine: SchemaGraphEngine | None = None,
    lifecycle: LifecycleController | None = None,
) -> FastAPI:
    """Wire routes, middleware and error handlers around injected services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            await engine.start()
        logger.info(
            f"GraphQL Service running on port {config.port}",
            extra={"tier": config.tier.value},
        )
        if engine is not None and engine.config.graphiql:
            logger.info(f"GraphiQL: {engine.config.graphiql_route}")
        else:
            logger.info("GraphiQL: DISABLED")
        try:
            yield
        finally:
            logger.info("[System] HTTP server closed")
            if engine is not None:
                await engine.stop()
            if lifecycle is not None:
                await lifecycle.complete_shutdown()

    app = FastAPI(title="Graph Gateway", version="1.0.0", lifespan=lifespan)
    app.state.config = config
    app.state.pool = pool

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(schema.router)
    if engine is not None:
        engine.mount(app)

    register_error_handlers(app)
    return app
