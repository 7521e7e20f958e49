"""Configuration Validator - required vars, secret strength, idempotence.

Invariants:
    - Missing DATABASE_URL or JWT_SECRET -> MissingRequiredVar
    - Production with a secret under 32 chars -> InsecureSecret
    - Non-production with a short secret -> warning only
    - Same environment -> same ServiceConfig or same error
"""

import logging

import pytest

from app.config import Settings, load_config, validate_config
from app.core.domain_types import Tier
from app.core.errors import ConfigError, InsecureSecret, MissingRequiredVar

URL = "postgresql://gateway:pw@db:5432/app"
STRONG = "s" * 32


def _settings(**kw) -> Settings:
    values = {"database_url": URL, "jwt_secret": STRONG, "app_env": "development"}
    values.update(kw)
    return Settings(_env_file=None, **values)


def test_missing_database_url_is_fatal():
    with pytest.raises(MissingRequiredVar) as exc:
        validate_config(_settings(database_url=""))
    assert exc.value.missing == ("DATABASE_URL",)


def test_missing_both_required_vars_lists_both():
    with pytest.raises(MissingRequiredVar) as exc:
        validate_config(_settings(database_url="", jwt_secret=""))
    assert exc.value.missing == ("DATABASE_URL", "JWT_SECRET")


def test_production_short_secret_is_fatal():
    with pytest.raises(InsecureSecret) as exc:
        validate_config(_settings(app_env="production", jwt_secret="x" * 16))
    assert exc.value.length == 16


def test_non_production_short_secret_only_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="app.config"):
        config = validate_config(_settings(jwt_secret="short"))
    assert config.tier is Tier.NON_PRODUCTION
    assert "JWT_SECRET should be at least 32" in caplog.text


def test_production_with_strong_secret_passes():
    config = validate_config(_settings(app_env="production"))
    assert config.tier is Tier.PRODUCTION


def test_validation_is_idempotent():
    assert validate_config(_settings()) == validate_config(_settings())
    for _ in range(2):
        with pytest.raises(InsecureSecret):
            validate_config(_settings(app_env="production", jwt_secret="short"))


def test_postgres_urls_are_converted_to_asyncpg():
    assert validate_config(_settings()).database_url.startswith(
        "postgresql+asyncpg://",
    )
    heroku = validate_config(_settings(database_url="postgres://u:p@h/d"))
    assert heroku.database_url == "postgresql+asyncpg://u:p@h/d"


def test_summary_log_is_redacted(caplog):
    with caplog.at_level(logging.INFO, logger="app.config"):
        validate_config(_settings())
    assert "gateway:***@db" in caplog.text
    assert ":pw@" not in caplog.text
    assert STRONG not in caplog.text


def test_node_env_is_accepted_as_tier_alias(monkeypatch):
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.setenv("NODE_ENV", "production")
    settings = Settings(_env_file=None, database_url=URL, jwt_secret=STRONG)
    assert validate_config(settings).tier is Tier.PRODUCTION


def test_environment_values_are_read(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", URL)
    monkeypatch.setenv("JWT_SECRET", STRONG)
    monkeypatch.setenv("DATABASE_POOL_MAX", "5")
    monkeypatch.setenv("PORT", "9000")
    config = load_config(_env_file=None)
    assert config.pool_max == 5
    assert config.port == 9000


def test_invalid_values_become_config_error(monkeypatch):
    monkeypatch.setenv("DATABASE_POOL_MAX", "0")
    with pytest.raises(ConfigError):
        load_config(_env_file=None)
