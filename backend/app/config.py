"""Application Configuration - environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - validate_config() is the only way to obtain a ServiceConfig
    - Missing DATABASE_URL / JWT_SECRET and short production secrets are fatal
    - The resolved config is logged once, redacted

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Settings holds raw values; ServiceConfig (core/) is the frozen validated record
    - No cached get_settings(): main() builds the config once and passes it down
"""

import logging

from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.domain_types import Tier
from app.core.errors import ConfigError, InsecureSecret, MissingRequiredVar
from app.core.service_config import MIN_PRODUCTION_SECRET_LENGTH, ServiceConfig

logger = logging.getLogger(__name__)

REQUIRED_VARS = {
    "DATABASE_URL": "PostgreSQL connection string",
    "JWT_SECRET": "JWT secret key for token verification",
}


class Settings(BaseSettings):
    """Raw settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore",
        populate_by_name=True,
    )

    # Required (validated in validate_config, empty means unset)
    database_url: str = ""
    jwt_secret: SecretStr = SecretStr("")

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str):
            for prefix in ("postgresql://", "postgres://"):
                if v.startswith(prefix):
                    return v.replace(prefix, "postgresql+asyncpg://", 1)
        return v

    # Tier
    app_env: str = Field(
        "development", validation_alias=AliasChoices("app_env", "node_env"),
    )

    # Listener
    host: str = "0.0.0.0"
    port: int = Field(4004, gt=0, lt=65536)
    cors_origins: list[str] = ["*"]

    # Database pool
    database_pool_max: int = Field(20, gt=0)
    database_acquire_timeout_seconds: float = Field(10.0, gt=0)
    database_idle_timeout_seconds: float = Field(30.0, gt=0)
    drain_timeout_seconds: float = Field(10.0, ge=0)

    # GraphQL engine
    graphql_route: str = "/graphql"
    graphiql_route: str = "/graphiql"
    database_schema: str = "public"
    schema_tables: list[str] = ["users", "tenants"]
    schema_watch_interval_seconds: float = Field(5.0, gt=0)
    max_query_complexity: int = Field(1000, gt=0)
    max_query_depth: int = Field(10, gt=0)

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


def load_config(**overrides) -> ServiceConfig:
    """Read the environment and validate it. Raises ConfigError."""
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid environment configuration:\n{e}") from e
    return validate_config(settings)


def validate_config(settings: Settings) -> ServiceConfig:
    """Check required values and secret strength, then freeze the config."""
    secret = settings.jwt_secret.get_secret_value()
    values = {"DATABASE_URL": settings.database_url, "JWT_SECRET": secret}
    missing = {
        name: description
        for name, description in REQUIRED_VARS.items()
        if not values[name]
    }
    if missing:
        raise MissingRequiredVar(missing)

    tier = Tier.from_environment_name(settings.app_env)
    if len(secret) < MIN_PRODUCTION_SECRET_LENGTH:
        if tier.is_production:
            raise InsecureSecret(len(secret), MIN_PRODUCTION_SECRET_LENGTH)
        logger.warning(
            f"JWT_SECRET should be at least {MIN_PRODUCTION_SECRET_LENGTH} "
            "characters; this would be fatal in production",
            extra={"tier": tier.value},
        )

    config = ServiceConfig(
        database_url=settings.database_url,
        jwt_secret=secret,
        tier=tier,
        environment_name=settings.app_env,
        host=settings.host,
        port=settings.port,
        cors_origins=tuple(settings.cors_origins),
        pool_max=settings.database_pool_max,
        acquire_timeout_seconds=settings.database_acquire_timeout_seconds,
        idle_timeout_seconds=settings.database_idle_timeout_seconds,
        drain_timeout_seconds=settings.drain_timeout_seconds,
        graphql_route=settings.graphql_route,
        graphiql_route=settings.graphiql_route,
        database_schema=settings.database_schema,
        schema_tables=tuple(settings.schema_tables),
        schema_watch_interval_seconds=settings.schema_watch_interval_seconds,
        max_query_complexity=settings.max_query_complexity,
        max_query_depth=settings.max_query_depth,
        log_level=settings.log_level,
        log_format=settings.log_format,
    )
    summary = config.redacted_summary()
    logger.info(
        f"Environment validation passed (environment={config.environment_name}, "
        f"database={summary['database']})",
        extra={"tier": tier.value, "config": summary},
    )
    return config
