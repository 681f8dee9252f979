"""
Database Layer for the field recalculation engine.

This module provides:
- SQLAlchemy ORM models for returns, fields, audit log and event log
- Async database engine and session factories
- SQL and in-memory field stores with matching units of work
- Field identifier migration for exported field documents
"""

from .models import (
    Base,
    ReturnRecord,
    FieldRecord,
    AuditRecord,
    ReturnEventRecord,
)

from .async_engine import (
    create_engine,
    get_session_factory,
    check_database_connection,
    init_database,
    close_database,
)

from .field_store import SqlFieldStore
from .unit_of_work import SqlUnitOfWork, SqlUnitOfWorkFactory
from .memory_store import InMemoryFieldStore, InMemoryUnitOfWork, InMemoryUnitOfWorkFactory
from .field_id_migration import (
    FieldIdMapping,
    FieldIdMigration,
    FieldIdMigrationError,
    MigrationReport,
)

__all__ = [
    # Models
    "Base",
    "ReturnRecord",
    "FieldRecord",
    "AuditRecord",
    "ReturnEventRecord",
    # Engine
    "create_engine",
    "get_session_factory",
    "check_database_connection",
    "init_database",
    "close_database",
    # Stores
    "SqlFieldStore",
    "SqlUnitOfWork",
    "SqlUnitOfWorkFactory",
    "InMemoryFieldStore",
    "InMemoryUnitOfWork",
    "InMemoryUnitOfWorkFactory",
    # Migration
    "FieldIdMapping",
    "FieldIdMigration",
    "FieldIdMigrationError",
    "MigrationReport",
]
