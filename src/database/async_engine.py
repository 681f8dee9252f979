"""Async engine and sessions for the SQL field store.

SQLite is adjusted for the store's transaction shape: pysqlite's implicit
transaction handling is switched off so SQLAlchemy emits BEGIN itself and
the SAVEPOINT around each audit insert nests inside the unit of work's
transaction. An in-memory database is held on one shared connection.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from config.database import DatabaseSettings, get_database_settings

logger = logging.getLogger(__name__)


def create_engine(settings: Optional[DatabaseSettings] = None) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    Args:
        settings: Database settings. If None, loads from environment.
    """
    settings = settings or get_database_settings()

    options = {}
    if settings.is_memory:
        options["poolclass"] = StaticPool
    elif settings.is_sqlite:
        options["poolclass"] = NullPool
    else:
        options["pool_pre_ping"] = True

    if settings.sqlite_file is not None:
        settings.sqlite_file.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        settings.async_url,
        echo=settings.echo_sql,
        connect_args=settings.get_connect_args(),
        **options,
    )
    if settings.is_sqlite:
        _use_explicit_sqlite_transactions(engine)

    logger.info(
        "Field store engine created",
        extra={"extra_data": {"driver": settings.driver, "in_memory": settings.is_memory}},
    )
    return engine


def _use_explicit_sqlite_transactions(engine: AsyncEngine) -> None:
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for units of work; sessions never autoflush or expire on commit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(engine: AsyncEngine) -> None:
    """Create the returns, fields, audit and event tables that do not exist yet."""
    from database.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Field store schema initialized")


async def check_database_connection(engine: AsyncEngine) -> bool:
    """
    Check if the database is accessible.

    Returns:
        bool: True if database is accessible, False otherwise.
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def close_database(engine: AsyncEngine) -> None:
    """Dispose of the engine's connections at shutdown."""
    logger.info("Closing field store engine")
    await engine.dispose()
