"""Tests for application and database settings."""

import pytest
from pydantic import ValidationError

from config.database import DatabaseSettings, get_database_settings
from config.settings import Settings, StartupSecurityError, get_settings, validate_startup_security
from database.memory_store import InMemoryUnitOfWorkFactory
from services import build_services

STRONG_KEY = "k" * 40


class TestSettings:
    """Tests for Settings."""

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("APP_ENVIRONMENT", "staging")
        monkeypatch.setenv("APP_AUDIT_ENABLED", "false")
        settings = Settings()
        assert settings.is_production is True
        assert settings.audit_enabled is False

    def test_log_level_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_encryption_key_fallback(self, monkeypatch):
        monkeypatch.setenv("ENCRYPTION_MASTER_KEY", STRONG_KEY)
        assert Settings().resolved_encryption_key() == STRONG_KEY
        assert Settings(encryption_key="own-key").resolved_encryption_key() == "own-key"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestProductionSecurity:
    """Tests for production security validation."""

    def test_non_production_is_not_checked(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_MASTER_KEY", raising=False)
        settings = Settings(environment="development", encrypt_pii=False)
        assert settings.validate_production_security() == []
        assert validate_startup_security(settings) is True

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("ENCRYPTION_MASTER_KEY", raising=False)
        errors = Settings(environment="production").validate_production_security()
        assert len(errors) == 1
        assert errors[0].startswith("ENCRYPTION_MASTER_KEY: Required")

    def test_short_key(self):
        errors = Settings(environment="prod", encryption_key="short").validate_production_security()
        assert errors == ["ENCRYPTION_MASTER_KEY: Must be at least 32 characters"]

    def test_pii_and_audit_required(self):
        settings = Settings(environment="staging", encrypt_pii=False, audit_enabled=False)
        assert len(settings.validate_production_security()) == 2
        with pytest.raises(StartupSecurityError):
            validate_startup_security(settings)

    def test_valid_production(self):
        settings = Settings(environment="production", encryption_key=STRONG_KEY)
        assert validate_startup_security(settings) is True

    def test_services_refuse_insecure_production_settings(self):
        settings = Settings(environment="production", encrypt_pii=False)
        with pytest.raises(StartupSecurityError):
            build_services(InMemoryUnitOfWorkFactory(), settings)

    def test_services_built_for_valid_production(self):
        settings = Settings(environment="production", encryption_key=STRONG_KEY)
        services = build_services(InMemoryUnitOfWorkFactory(), settings)
        assert services.recalculation is services.field_updates._recalculation


class TestDatabaseSettings:
    """Tests for DatabaseSettings."""

    def test_sqlite_file_url(self, tmp_path):
        path = tmp_path / "db" / "fields.db"
        settings = DatabaseSettings(url=None, sqlite_path=path, query_timeout=5)

        assert settings.async_url == f"sqlite+aiosqlite:///{path.absolute()}"
        assert settings.driver == "sqlite+aiosqlite"
        assert settings.is_memory is False
        assert settings.sqlite_file == path
        assert settings.get_connect_args() == {"check_same_thread": False, "timeout": 5}

    def test_url_from_environment(self, monkeypatch):
        monkeypatch.setenv("DB_URL", "sqlite+aiosqlite:///:memory:")
        get_database_settings.cache_clear()
        settings = get_database_settings()
        assert settings.async_url == "sqlite+aiosqlite:///:memory:"
        assert settings.is_memory is True
        assert settings.sqlite_file is None

    def test_postgres_url(self):
        settings = DatabaseSettings(url="postgresql+asyncpg://svc:pw@db:5433/fields")
        assert settings.driver == "postgresql+asyncpg"
        assert settings.is_sqlite is False
        assert settings.sqlite_file is None
        assert settings.get_connect_args() == {"command_timeout": settings.query_timeout}

    def test_query_timeout_bounds(self):
        with pytest.raises(ValidationError):
            DatabaseSettings(query_timeout=0)
