"""Database configuration using Pydantic Settings.

The SQL field store runs on a SQLite file through aiosqlite unless
``DB_URL`` names another SQLAlchemy async URL (``sqlite+aiosqlite:///:memory:``
in tests, ``postgresql+asyncpg://...`` with the ``postgres`` extra).
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

SQLITE_DRIVER = "sqlite+aiosqlite"


class DatabaseSettings(BaseSettings):
    """
    Field store database settings.

    Example environment variables:
        DB_URL=postgresql+asyncpg://svc:secret@db:5432/tax_fields
        DB_SQLITE_PATH=data/tax_fields.db
        DB_ECHO_SQL=true
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: Optional[str] = Field(
        default=None,
        description="Full async database URL; takes precedence over sqlite_path"
    )
    sqlite_path: Path = Field(
        default=Path("data/tax_fields.db"),
        description="SQLite database file used when no URL is set"
    )
    echo_sql: bool = Field(default=False, description="Log all SQL statements")
    query_timeout: int = Field(
        default=30,
        ge=1,
        description="Seconds a statement may wait on a lock or the server"
    )

    @computed_field
    @property
    def async_url(self) -> str:
        if self.url:
            return self.url
        return f"{SQLITE_DRIVER}:///{self.sqlite_path.absolute()}"

    @property
    def driver(self) -> str:
        """Dialect and driver part of the URL (``sqlite+aiosqlite``)."""
        return self.async_url.split("://", 1)[0]

    @property
    def is_sqlite(self) -> bool:
        return self.driver.startswith("sqlite")

    @property
    def is_memory(self) -> bool:
        """In-memory SQLite lives as long as its single shared connection."""
        return self.is_sqlite and ":memory:" in self.async_url

    @property
    def sqlite_file(self) -> Optional[Path]:
        """Database file to create the parent directory for, if any."""
        if self.url or not self.is_sqlite:
            return None
        return self.sqlite_path

    def get_connect_args(self) -> dict:
        """Driver connection arguments carrying the query timeout."""
        if self.is_sqlite:
            return {"check_same_thread": False, "timeout": self.query_timeout}
        if self.driver == "postgresql+asyncpg":
            return {"command_timeout": self.query_timeout}
        return {}


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Cached database settings loaded from the environment."""
    return DatabaseSettings()
