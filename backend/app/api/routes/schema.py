"""Schema Summary - column listing for the allow-listed tables.

Invariants:
    - Only tables in config.schema_tables of config.database_schema are reported
    - Query failure -> 500 with a generic message (details only in logs)
    - PoolExhausted is left to the global handler (503, retryable)
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies import get_config, get_pool
from app.core.errors import PoolFault
from app.core.repository_protocols import ConnectionSource
from app.core.schema_catalog import group_columns, tables_response
from app.core.service_config import ServiceConfig

logger = logging.getLogger(__name__)
router = APIRouter(tags=["schema"])

ALLOWED_TABLES_QUERY = text(
    "SELECT table_name, column_name, data_type, is_nullable "
    "FROM information_schema.columns "
    "WHERE table_schema = :schema AND table_name IN :tables "
    "ORDER BY table_name, ordinal_position"
).bindparams(bindparam("tables", expanding=True))


@router.get("/schema")
async def schema_info(
    pool: ConnectionSource = Depends(get_pool),
    config: ServiceConfig = Depends(get_config),
):
    """Columns of the allow-listed tables."""
    try:
        async with pool.connection("schema") as conn:
            result = await conn.execute(
                ALLOWED_TABLES_QUERY,
                {
                    "schema": config.database_schema,
                    "tables": list(config.schema_tables),
                },
            )
            rows = result.mappings().all()
    except (PoolFault, SQLAlchemyError, OSError) as e:
        logger.error(f"Schema query error: {e}", extra={"path": "/schema"})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to fetch schema"},
        )
    return tables_response(group_columns(rows))
