"""
Tests for application configuration and settings validation.
"""

import os
import pytest
from unittest.mock import patch


def test_settings_loads_defaults():
    """Settings should load with sensible defaults in development."""
    from popdash.config import get_settings
    get_settings.cache_clear()

    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "DATABASE_URL": "postgresql+asyncpg://localhost/test",
        "SECRET_KEY": "change-me-in-production",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.environment == "development"
        assert settings.is_production is False
        assert settings.campaign_api_timeout == 5.0
        assert settings.popunder_session_key == "popunder_triggered"
        get_settings.cache_clear()


def test_plain_postgres_url_is_rewritten_for_asyncpg():
    from popdash.config import Settings
    settings = Settings(database_url="postgresql://db-host/popdash")
    assert settings.database_url == "postgresql+asyncpg://db-host/popdash"


def test_settings_cors_origin_list():
    """CORS origins string should be split into a list."""
    from popdash.config import get_settings
    get_settings.cache_clear()

    with patch.dict(os.environ, {
        "ENVIRONMENT": "development",
        "DATABASE_URL": "postgresql+asyncpg://localhost/test",
        "CORS_ORIGINS": "http://localhost:3000, http://example.com",
    }, clear=False):
        get_settings.cache_clear()
        settings = get_settings()
        origins = settings.cors_origin_list
        assert len(origins) == 2
        assert "http://localhost:3000" in origins
        assert "http://example.com" in origins
        get_settings.cache_clear()


def test_production_rejects_default_secret():
    """Production mode should reject the default secret key."""
    from popdash.config import get_settings, Settings
    get_settings.cache_clear()

    with pytest.raises(ValueError, match="SECRET_KEY must be set"):
        Settings(
            environment="production",
            secret_key="change-me-in-production",
            encryption_key="some-key",
            database_url="postgresql+asyncpg://prod-host/db",
        )
    get_settings.cache_clear()


def test_production_requires_encryption_key():
    from popdash.config import Settings
    with pytest.raises(ValueError, match="ENCRYPTION_KEY must be set"):
        Settings(
            environment="production",
            secret_key="a-real-secret-key-that-is-not-the-default",
            encryption_key="",
            database_url="postgresql+asyncpg://prod-host/db",
        )


def test_production_accepts_real_secrets():
    """Production mode should accept a real secret key and encryption key."""
    from popdash.config import Settings
    settings = Settings(
        environment="production",
        secret_key="a-real-secret-key-that-is-not-the-default",
        encryption_key="some-key",
        database_url="postgresql+asyncpg://prod-host/db",
    )
    assert settings.is_production is True
    assert settings.secret_key == "a-real-secret-key-that-is-not-the-default"


def test_engine_kwargs_sqlite_has_no_pool_or_ssl():
    from popdash.database import _get_engine_kwargs
    assert _get_engine_kwargs("sqlite+aiosqlite:///./popdash.db") == {}


def test_engine_kwargs_ssl_only_when_sslmode_required():
    from popdash.database import _get_engine_kwargs
    plain = _get_engine_kwargs("postgresql+asyncpg://user@db.example.net:5432/popdash")
    assert "ssl" not in plain["connect_args"]
    assert plain["pool_pre_ping"] is True

    secure = _get_engine_kwargs("postgresql+asyncpg://user@db.example.net:5432/popdash?sslmode=require")
    assert "ssl" in secure["connect_args"]
