"""Error Handlers - map gateway errors onto HTTP responses.

Invariants:
    - GatewayError -> its own http_status with the to_response() envelope
    - Retryable errors (PoolExhausted) carry a Retry-After header in seconds
    - Any other exception -> 500 INTERNAL_ERROR in the same envelope, no detail

Design Decisions:
    - Registered once from create_app(); routes raise, they do not format
    - GraphQL errors never reach these handlers; strawberry formats them
"""

import logging
import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import ErrorCategory, ErrorContext, ErrorSeverity, GatewayError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, _handle_gateway_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)


async def _handle_gateway_error(request: Request, exc: GatewayError):
    exc.context.path = request.url.path
    log = logger.warning if exc.retryable else logger.error
    log(
        f"{exc.code} on {request.url.path}: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path},
    )
    headers = None
    if exc.retryable:
        headers = {"Retry-After": str(math.ceil(exc.context.retry_after_ms / 1000))}
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


async def _handle_unexpected_error(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception on {request.url.path}: {exc}",
        exc_info=True, extra={"path": request.url.path},
    )
    internal = GatewayError(
        "An unexpected error occurred", "INTERNAL_ERROR",
        ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ErrorContext(path=request.url.path), 500,
    )
    return JSONResponse(status_code=500, content=internal.to_response())
