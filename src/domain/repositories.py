"""
Repository Interfaces for the field recalculation engine.

The field store is the only suspension point of the engine: every method is
async. Implementations live in the database package (SQLAlchemy and
in-memory).

This abstraction allows:
1. Swapping storage backends (SQLite -> PostgreSQL)
2. Testing with in-memory implementations
3. Keeping the engine and orchestrator free of storage details
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .aggregates import AuditEntry, Field, FieldPatch, ReturnPatch, TaxReturn
from .events import DomainEvent


class IFieldStore(ABC):
    """
    Field Store Interface.

    Fields are addressed by canonical ``(return_id, form_id, field_id)``;
    callers canonicalize before lookup. ``patch_field`` uses the surrogate
    ``Field.id``.
    """

    # -- returns -------------------------------------------------------------

    @abstractmethod
    async def get_return(self, return_id: str) -> Optional[TaxReturn]:
        """
        Retrieve a return by ID.

        Returns:
            The return if found, None otherwise
        """
        pass

    @abstractmethod
    async def add_return(self, tax_return: TaxReturn) -> None:
        """Store a new return."""
        pass

    @abstractmethod
    async def patch_return(self, return_id: str, patch: ReturnPatch) -> None:
        """Apply a partial update to a return."""
        pass

    # -- fields --------------------------------------------------------------

    @abstractmethod
    async def get_fields(self, return_id: str) -> List[Field]:
        """All fields of a return, in a stable store-defined order."""
        pass

    @abstractmethod
    async def get_field(self, return_id: str, form_id: str, field_id: str) -> Optional[Field]:
        """
        Retrieve one field by canonical composite key.

        A field stored under a legacy id (``1040`` / ``1040_FS``) is found
        by its canonical id (``1040`` / ``FS``) and the other way round.

        Args:
            return_id: Owning return
            form_id: Form id, any dialect
            field_id: Field id, any dialect

        Returns:
            The field if found, None otherwise
        """
        pass

    @abstractmethod
    async def add_field(self, field: Field) -> None:
        """
        Store a new field (form-set instantiation).

        Raises:
            DuplicateField: If the return has a field with the same canonical key
        """
        pass

    @abstractmethod
    async def patch_field(self, field_pk: str, patch: FieldPatch) -> None:
        """Apply a partial update to a field by surrogate id."""
        pass

    # -- audit ---------------------------------------------------------------

    @abstractmethod
    async def insert_audit(self, entry: AuditEntry) -> None:
        """Append one audit entry."""
        pass

    @abstractmethod
    async def get_audit_entries(self, return_id: str) -> List[AuditEntry]:
        """Audit entries of a return, oldest first."""
        pass

    @abstractmethod
    async def get_latest_audit_hash(self, return_id: str) -> Optional[str]:
        """Hash of the newest audit entry of a return, None when empty."""
        pass

    # -- event log -----------------------------------------------------------

    @abstractmethod
    async def append_event(self, event: DomainEvent) -> None:
        """Append an event to its return's event log."""
        pass

    @abstractmethod
    async def get_events(self, return_id: str) -> List[Dict[str, Any]]:
        """Event log entries of a return, oldest first."""
        pass


class IUnitOfWork(ABC):
    """
    Unit of Work Interface.

    Coordinates field store operations as a single transaction. Collected
    events are published only after a successful commit.
    """

    @property
    @abstractmethod
    def store(self) -> IFieldStore:
        """Field store bound to this unit of work."""
        pass

    @abstractmethod
    def collect_event(self, event: DomainEvent) -> None:
        """Queue an event for publication after commit."""
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Commit all changes."""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback all changes."""
        pass

    @abstractmethod
    async def __aenter__(self) -> 'IUnitOfWork':
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context (commit or rollback)."""
        pass
