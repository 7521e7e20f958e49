"""Schema-Graph Engine - strawberry GraphQL over the introspected PostgreSQL schema.

Invariants:
    - resolve_settings(request.headers) is called exactly once per request; its
      result is applied to exactly one transaction, opened lazily on first use
    - Resolvers of one request share that transaction and never run
      statements on it concurrently (QueryScope lock)
    - The transaction is committed, or rolled back after a failed statement,
      and its connection released when the request ends, including on
      client disconnect
    - Only tables present in the introspected catalog can be queried
    - Tier behaviour comes from EngineConfig only (explorer, watch, error
      detail, depth and complexity caps)

Design Decisions:
    - Thin default engine: catalog + generic JSON rows, enough to serve the
      pool/settings/config contract without an ORM model layer
    - Initial introspection failure does not block startup when
      retry_on_init_fail is set; a background task keeps retrying
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from functools import partial

import strawberry
from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import RedirectResponse
from graphql import GraphQLError
from sqlalchemy import literal_column, select, table as sql_table, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from strawberry.extensions import AddValidationRules, MaskErrors, QueryDepthLimiter
from strawberry.fastapi import GraphQLRouter
from strawberry.scalars import JSON
from strawberry.types import Info

from app.core.domain_types import SecurityContext
from app.core.engine_config import EngineConfig
from app.core.errors import GatewayError, PoolExhausted, QueryError
from app.core.query_limits import max_complexity_rule
from app.core.repository_protocols import ConnectionSource, SettingsResolver
from app.core.schema_catalog import ColumnInfo, fingerprint, group_columns
from app.infrastructure.database import apply_settings

logger = logging.getLogger(__name__)

INTROSPECTION_QUERY = text(
    "SELECT table_name, column_name, data_type, is_nullable "
    "FROM information_schema.columns "
    "WHERE table_schema = :schema "
    "ORDER BY table_name, ordinal_position"
)
MAX_PAGE_SIZE = 1000
RETRY_BASE_DELAY_SECONDS = 1.0
RETRY_MAX_DELAY_SECONDS = 30.0


# ─── GraphQL Types ──────────────────────────────────────────────

@strawberry.type
class Column:
    name: str
    type: str
    nullable: bool


@strawberry.type
class Table:
    name: str
    columns: list[Column]


@strawberry.type
class Query:
    @strawberry.field(description="Tables exposed through this gateway")
    def tables(self, info: Info) -> list[Table]:
        catalog = info.context["engine"].catalog
        return [
            Table(
                name=name,
                columns=[
                    Column(name=c.name, type=c.type, nullable=c.nullable)
                    for c in columns
                ],
            )
            for name, columns in catalog.items()
        ]

    @strawberry.field(
        description="Rows of one table, filtered by row-level security",
    )
    async def rows(
        self, info: Info, table: str, first: int = 100, offset: int = 0,
    ) -> list[JSON]:
        engine: SchemaGraphEngine = info.context["engine"]
        return await engine.fetch_rows(
            info.context["scope"], table, first=first, offset=offset,
        )


# ─── Request Scope ──────────────────────────────────────────────

class QueryScope:
    """One request's security context and its lazily opened transaction."""

    def __init__(self, pool: ConnectionSource, settings: SecurityContext):
        self.settings = settings
        self._pool = pool
        self._lock = asyncio.Lock()
        self._conn = None
        self._transaction = None
        self._failed = False

    @property
    def opened(self) -> bool:
        return self._conn is not None

    @asynccontextmanager
    async def connection(self):
        async with self._lock:
            if self._conn is None:
                conn = await self._pool.acquire("graphql")
                try:
                    self._transaction = await conn.begin()
                    await apply_settings(conn, self.settings)
                except BaseException:
                    await self._pool.release(conn)
                    raise
                self._conn = conn
            yield self._conn

    def mark_failed(self) -> None:
        self._failed = True

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            if self._failed:
                await self._transaction.rollback()
            else:
                await self._transaction.commit()
        finally:
            await self._pool.release(conn)


# ─── Engine ─────────────────────────────────────────────────────

def _should_mask_error(error: GraphQLError) -> bool:
    original = error.original_error
    if original is None:
        return False  # validation / syntax errors stay readable
    return not isinstance(original, (GraphQLError, QueryError, PoolExhausted))


class SchemaGraphEngine:
    """Serves GraphQL over ``pool`` using per-request ``resolve_settings``."""

    def __init__(
        self,
        pool: ConnectionSource,
        resolve_settings: SettingsResolver,
        config: EngineConfig,
    ):
        self.config = config
        self.catalog: dict[str, list[ColumnInfo]] = {}
        self._pool = pool
        self._resolve_settings = resolve_settings
        self._fingerprint: str | None = None
        self._tasks: list[asyncio.Task] = []
        self.schema = strawberry.Schema(
            query=Query, extensions=self._build_extensions(),
        )
        self.router = GraphQLRouter(
            self.schema,
            context_getter=self._make_context_getter(),
            graphql_ide="graphiql" if config.graphiql else None,
        )

    def _build_extensions(self) -> list:
        """Extension factories; strawberry builds fresh instances per request."""
        extensions: list = []
        if self.config.max_depth is not None:
            extensions.append(partial(
                QueryDepthLimiter, max_depth=self.config.max_depth,
            ))
        if self.config.max_complexity is not None:
            extensions.append(partial(
                AddValidationRules,
                [max_complexity_rule(self.config.max_complexity)],
            ))
        if self.config.mask_errors:
            extensions.append(partial(
                MaskErrors, should_mask_error=_should_mask_error,
            ))
        return extensions

    def _make_context_getter(self):
        async def query_scope(request: Request) -> AsyncGenerator[QueryScope, None]:
            scope = QueryScope(self._pool, self.resolve_settings(request.headers))
            try:
                yield scope
            finally:
                await scope.close()

        async def get_context(scope: QueryScope = Depends(query_scope)) -> dict:
            return {"engine": self, "scope": scope}

        return get_context

    def resolve_settings(self, headers: Mapping[str, str]) -> SecurityContext:
        return self._resolve_settings(headers)

    def mount(self, app: FastAPI) -> None:
        """Attach the GraphQL route (and explorer redirect) to ``app``."""
        app.include_router(self.router, prefix=self.config.graphql_route)
        if self.config.graphiql and self.config.graphiql_route:
            target = self.config.graphql_route

            async def graphiql_redirect() -> RedirectResponse:
                return RedirectResponse(target)

            app.add_api_route(
                self.config.graphiql_route, graphiql_redirect,
                methods=["GET"], include_in_schema=False,
            )

    # ─── Queries ────────────────────────────────────────────────

    async def fetch_rows(
        self, scope: QueryScope, table: str, *, first: int, offset: int,
    ) -> list[dict]:
        if table not in self.catalog:
            raise GraphQLError(f'Unknown table "{table}"')
        if not 0 < first <= MAX_PAGE_SIZE or offset < 0:
            raise GraphQLError(
                f"first must be between 1 and {MAX_PAGE_SIZE}; offset must be >= 0",
            )
        stmt = (
            select(literal_column("*"))
            .select_from(sql_table(table, schema=self.config.database_schema))
            .limit(first)
            .offset(offset)
        )
        try:
            async with scope.connection() as conn:
                result = await conn.execute(stmt)
                rows = [dict(row._mapping) for row in result]
        except DBAPIError as e:
            scope.mark_failed()
            logger.warning(
                f"Query on {table} failed: {e.orig}", extra={"table": table},
            )
            raise QueryError(
                e, self.config.extended_errors, self.config.show_error_stack,
            ) from e
        return jsonable_encoder(rows)

    # ─── Introspection ──────────────────────────────────────────

    async def introspect(self) -> dict[str, list[ColumnInfo]]:
        async with self._pool.connection(
            "introspection", report_faults=False,
        ) as conn:
            result = await conn.execute(
                INTROSPECTION_QUERY, {"schema": self.config.database_schema},
            )
            return group_columns(result.mappings())

    async def refresh(self) -> bool:
        """Re-read the catalog. Returns True if it changed."""
        tables = await self.introspect()
        digest = fingerprint(tables)
        if digest == self._fingerprint:
            return False
        if self._fingerprint is not None:
            logger.info(
                f"Schema change detected in {self.config.database_schema}; "
                "catalog refreshed",
            )
        self.catalog = tables
        self._fingerprint = digest
        return True

    async def start(self) -> None:
        try:
            await self.refresh()
            logger.info(f"Introspected {len(self.catalog)} table(s)")
        except (GatewayError, SQLAlchemyError, OSError) as e:
            if not self.config.retry_on_init_fail:
                raise
            logger.warning(f"Schema introspection failed, retrying: {e}")
            self._tasks.append(asyncio.create_task(self._retry_introspection()))
        if self.config.watch:
            self._tasks.append(asyncio.create_task(self._watch()))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def _retry_introspection(self) -> None:
        delay = RETRY_BASE_DELAY_SECONDS
        attempt = 1
        while True:
            await asyncio.sleep(delay)
            attempt += 1
            try:
                await self.refresh()
            except (GatewayError, SQLAlchemyError, OSError) as e:
                logger.warning(
                    f"Schema introspection failed: {e}", extra={"attempt": attempt},
                )
                delay = min(delay * 2, RETRY_MAX_DELAY_SECONDS)
                continue
            logger.info(f"Introspected {len(self.catalog)} table(s)")
            return

    async def _watch(self) -> None:
        while True:
            await asyncio.sleep(self.config.watch_interval_seconds)
            try:
                await self.refresh()
            except (GatewayError, SQLAlchemyError, OSError) as e:
                logger.warning(f"Schema watch refresh failed: {e}")
