"""Health Probe - database round-trip readiness check.

Invariants:
    - GET /health returns 200 with database "connected" when SELECT succeeds
    - GET /health returns 503 with database "disconnected" otherwise
    - A failed probe never changes lifecycle state or tears down the pool
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.api.dependencies import get_pool
from app.core.repository_protocols import ConnectionSource

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

SERVICE_NAME = "graphql-service"


@router.get("/health")
async def health_check(pool: ConnectionSource = Depends(get_pool)):
    """Readiness probe including database connectivity."""
    result = await pool.probe()
    if not result.ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "degraded",
                "service": SERVICE_NAME,
                "database": "disconnected",
                "error": "Database connection failed",
            },
        )
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "database": "connected",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db_time": jsonable_encoder(result.db_time),
    }
