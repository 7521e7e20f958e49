"""Error Hierarchy - typed, categorized exceptions for all gateway failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Fatal errors (config, pool fault) terminate the process; transient ones
      (pool exhausted) reach the caller as retryable responses
    - CredentialInvalid never reaches an HTTP response (downgraded to anonymous)
    - to_response() never carries secrets, hints or stack traces

Design Decisions:
    - Single hierarchy with GatewayError base: FastAPI global handler catches all
    - QueryError carries GraphQL extensions computed from the tier-gated
      EngineConfig, so graphql-core copies them onto the located error
"""

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    DATABASE = "database"
    QUERY = "query"
    INTERNAL = "internal"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    path: str | None = None
    connection_label: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def retryable(self) -> bool:
        return self.context.retry_after_ms is not None

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "retryable": self.retryable,
                "context": {
                    "path": self.context.path,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Startup Errors (fatal) ─────────────────────────────────────

class ConfigError(GatewayError):
    """Configuration is unusable; the process must not start."""
    def __init__(self, message: str, code: str = "CONFIG_ERROR"):
        super().__init__(
            message, code, ErrorCategory.CONFIGURATION,
            ErrorSeverity.CRITICAL, None, 500,
        )


class MissingRequiredVar(ConfigError):
    """One or more required environment variables are unset or empty."""
    def __init__(self, missing: dict[str, str]):
        lines = "\n".join(f"  - {name}: {desc}" for name, desc in missing.items())
        super().__init__(
            f"Missing required environment variables:\n{lines}",
            "MISSING_REQUIRED_VAR",
        )
        self.missing = tuple(missing)


class InsecureSecret(ConfigError):
    """JWT secret is shorter than the production minimum."""
    def __init__(self, length: int, minimum: int):
        super().__init__(
            f"JWT_SECRET must be at least {minimum} characters in production "
            f"(got {length})",
            "INSECURE_SECRET",
        )
        self.length = length
        self.minimum = minimum


# ─── Pool Errors ────────────────────────────────────────────────

class PoolExhausted(GatewayError):
    """No connection became available within the acquire timeout."""
    def __init__(
        self, message: str, retry_after_ms: int = 1000,
        context: ErrorContext | None = None,
    ):
        context = context or ErrorContext()
        context.retry_after_ms = retry_after_ms
        super().__init__(
            message, "POOL_EXHAUSTED", ErrorCategory.TIMEOUT,
            ErrorSeverity.WARNING, context, 503,
        )


class PoolFault(GatewayError):
    """The pool cannot reach the database. Fatal for the whole process."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "POOL_FAULT", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )


# ─── Request Errors ─────────────────────────────────────────────

class CredentialInvalid(GatewayError):
    """Bearer token failed verification (malformed, bad signature, expired)."""
    def __init__(self, reason: str):
        super().__init__(
            f"Credential rejected: {reason}",
            "CREDENTIAL_INVALID", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.INFO, None, 401,
        )
        self.reason = reason


class QueryError(GatewayError):
    """A database query issued on behalf of a caller failed.

    ``extended_errors`` names the driver attributes (hint, detail, errcode)
    copied into ``extensions``; ``show_stack`` adds the formatted traceback.
    Both are empty/false in production, leaving a generic message only.
    """

    GENERIC_MESSAGE = "Query failed"

    def __init__(
        self,
        cause: BaseException,
        extended_errors: tuple[str, ...] = (),
        show_stack: bool = False,
    ):
        verbose = bool(extended_errors) or show_stack
        message = _driver_message(cause) if verbose else self.GENERIC_MESSAGE
        super().__init__(
            message, "QUERY_ERROR", ErrorCategory.QUERY,
            ErrorSeverity.ERROR, None, 400,
        )
        self.extensions: dict[str, Any] = {}
        details = _driver_details(cause)
        for key in extended_errors:
            if details.get(key) is not None:
                self.extensions[key] = details[key]
        if show_stack:
            self.extensions["stack"] = traceback.format_exception(
                type(cause), cause, cause.__traceback__,
            )


def _driver_error(cause: BaseException) -> BaseException:
    """Unwrap SQLAlchemy's DBAPIError down to the driver exception."""
    orig = getattr(cause, "orig", None) or cause
    # asyncpg errors sit behind SQLAlchemy's adapted dbapi exception
    return orig.__cause__ or orig


def _driver_message(cause: BaseException) -> str:
    return str(_driver_error(cause)).strip() or QueryError.GENERIC_MESSAGE


def _driver_details(cause: BaseException) -> dict[str, Any]:
    driver = _driver_error(cause)
    return {
        "hint": getattr(driver, "hint", None),
        "detail": getattr(driver, "detail", None),
        "errcode": getattr(driver, "sqlstate", None)
        or getattr(driver, "pgcode", None),
    }
