"""Application settings using Pydantic Settings.

Centralized configuration for the field recalculation engine.

SECURITY: Production requires the following environment variables:
- APP_ENCRYPTION_KEY or ENCRYPTION_MASTER_KEY: PII encryption key (min 32 chars)

Generate secrets with: python -c "import secrets; print(secrets.token_hex(32))"
"""

import os
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development", description="Environment name")

    # PII
    encrypt_pii: bool = Field(
        default=True,
        description="Encrypt SSN/EIN-shaped values before they reach the store"
    )
    encryption_key: Optional[str] = Field(
        default=None,
        description="PII encryption key (falls back to ENCRYPTION_MASTER_KEY)"
    )

    # Audit
    audit_enabled: bool = Field(default=True, description="Write hash-chained audit entries")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")

    def resolved_encryption_key(self) -> Optional[str]:
        """Configured key, or ENCRYPTION_MASTER_KEY from the environment."""
        return self.encryption_key or os.environ.get("ENCRYPTION_MASTER_KEY")

    def validate_production_security(self) -> List[str]:
        """
        Validate security requirements for production.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.is_production:
            return errors

        if self.encrypt_pii:
            key = self.resolved_encryption_key()
            if not key:
                errors.append(
                    "ENCRYPTION_MASTER_KEY: Required in production for PII encryption. "
                    "Generate with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
            elif len(key) < 32:
                errors.append("ENCRYPTION_MASTER_KEY: Must be at least 32 characters")
        else:
            errors.append("APP_ENCRYPT_PII: Must be True in production")

        if not self.audit_enabled:
            errors.append("APP_AUDIT_ENABLED: Must be True in production")

        return errors


class StartupSecurityError(Exception):
    """Raised when security validation fails at startup."""
    pass


def validate_startup_security(settings: Settings) -> bool:
    """
    Validate security settings at startup.

    Raises:
        StartupSecurityError: If any production requirement is missing
    """
    errors = settings.validate_production_security()

    if not errors:
        if settings.is_production:
            logger.info("Production security validation PASSED")
        return True

    error_msg = "Security configuration errors:\n" + "\n".join(
        f"  {i}. {err}" for i, err in enumerate(errors, 1)
    )
    logger.critical(error_msg)
    raise StartupSecurityError(error_msg)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings loaded from environment.
    """
    return Settings()
