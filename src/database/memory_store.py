"""In-memory Field Store.

Dict-backed IFieldStore for tests and embedding. A field's identity is its
canonical key, so composite-key lookups go through an index keyed by
``(return_id, canonical key)`` whatever dialect the field was stored under.
The fields of a return are listed through a per-return index. The matching
unit of work snapshots the whole store on entry and restores it on rollback.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from domain.aggregates import AuditEntry, Field, FieldPatch, ReturnPatch, TaxReturn
from domain.events import DomainEvent
from domain.event_bus import EventBus, publish_events
from domain.exceptions import DuplicateField
from domain.field_ids import compose_key
from domain.repositories import IFieldStore, IUnitOfWork

logger = logging.getLogger(__name__)

# (return_id, canonical key)
CompositeKey = Tuple[str, str]


class InMemoryFieldStore(IFieldStore):
    """Dict-backed field store. Fields are returned in insertion order."""

    def __init__(self):
        self._returns: Dict[str, TaxReturn] = {}
        self._fields: Dict[str, Field] = {}
        self._index: Dict[CompositeKey, str] = {}
        self._by_return: Dict[str, List[str]] = {}
        self._audit: Dict[str, List[AuditEntry]] = {}
        self._events: Dict[str, List[Dict[str, Any]]] = {}
        self._audit_sequence = 0

    # -- snapshot support ----------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy({
            "returns": self._returns,
            "fields": self._fields,
            "index": self._index,
            "by_return": self._by_return,
            "audit": self._audit,
            "events": self._events,
            "audit_sequence": self._audit_sequence,
        })

    def restore(self, state: Dict[str, Any]) -> None:
        state = copy.deepcopy(state)
        self._returns = state["returns"]
        self._fields = state["fields"]
        self._index = state["index"]
        self._by_return = state["by_return"]
        self._audit = state["audit"]
        self._events = state["events"]
        self._audit_sequence = state["audit_sequence"]

    # -- returns -------------------------------------------------------------

    async def get_return(self, return_id: str) -> Optional[TaxReturn]:
        return self._returns.get(return_id)

    async def add_return(self, tax_return: TaxReturn) -> None:
        if tax_return.return_id in self._returns:
            raise ValueError(f"Return already exists: {tax_return.return_id}")
        self._returns[tax_return.return_id] = tax_return

    async def patch_return(self, return_id: str, patch: ReturnPatch) -> None:
        current = self._returns.get(return_id)
        if current is not None:
            self._returns[return_id] = current.apply(patch)

    # -- fields --------------------------------------------------------------

    async def get_fields(self, return_id: str) -> List[Field]:
        return [self._fields[pk] for pk in self._by_return.get(return_id, [])]

    async def get_field(self, return_id: str, form_id: str, field_id: str) -> Optional[Field]:
        field_pk = self._index.get((return_id, compose_key(form_id, field_id)))
        return self._fields.get(field_pk) if field_pk is not None else None

    async def add_field(self, field: Field) -> None:
        key = (field.return_id, field.key)
        if key in self._index:
            raise DuplicateField(field.return_id, field.key)
        self._fields[field.id] = field
        self._index[key] = field.id
        self._by_return.setdefault(field.return_id, []).append(field.id)

    async def patch_field(self, field_pk: str, patch: FieldPatch) -> None:
        current = self._fields.get(field_pk)
        if current is not None:
            self._fields[field_pk] = current.apply(patch)

    # -- audit ---------------------------------------------------------------

    async def insert_audit(self, entry: AuditEntry) -> None:
        self._audit_sequence += 1
        stored = entry.model_copy(update={"sequence": self._audit_sequence})
        self._audit.setdefault(entry.return_id, []).append(stored)

    async def get_audit_entries(self, return_id: str) -> List[AuditEntry]:
        entries = self._audit.get(return_id, [])
        return sorted(entries, key=lambda e: (e.created_at, e.sequence))

    async def get_latest_audit_hash(self, return_id: str) -> Optional[str]:
        entries = await self.get_audit_entries(return_id)
        return entries[-1].hash_chain_entry if entries else None

    # -- event log -----------------------------------------------------------

    async def append_event(self, event: DomainEvent) -> None:
        self._events.setdefault(event.return_id, []).append(event.to_log_entry())

    async def get_events(self, return_id: str) -> List[Dict[str, Any]]:
        return list(self._events.get(return_id, []))


class InMemoryUnitOfWork(IUnitOfWork):
    """
    Unit of Work over an InMemoryFieldStore.

    Usage:
        store = InMemoryFieldStore()
        async with InMemoryUnitOfWork(store) as uow:
            await uow.store.patch_field(field.id, patch)
            # Auto-commits on clean exit

    Any exception inside the block restores the store to its state at entry.
    """

    def __init__(self, store: Optional[InMemoryFieldStore] = None, bus: Optional[EventBus] = None):
        self._store = store if store is not None else InMemoryFieldStore()
        self._bus = bus
        self._saved: Optional[Dict[str, Any]] = None
        self._committed = False
        self._pending_events: List[DomainEvent] = []

    @property
    def store(self) -> InMemoryFieldStore:
        return self._store

    def collect_event(self, event: DomainEvent) -> None:
        self._pending_events.append(event)

    async def commit(self) -> None:
        if self._committed:
            return
        self._committed = True
        self._saved = None
        logger.debug("InMemoryUnitOfWork committed")

        events, self._pending_events = self._pending_events, []
        await publish_events(events, self._bus)

    async def rollback(self) -> None:
        if self._saved is not None:
            self._store.restore(self._saved)
        self._pending_events.clear()
        logger.debug("InMemoryUnitOfWork rolled back")

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self._saved = self._store.snapshot()
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            await self.rollback()
            logger.debug(f"InMemoryUnitOfWork rolled back due to: {exc_type.__name__}")
        elif not self._committed:
            await self.commit()


class InMemoryUnitOfWorkFactory:
    """Creates units of work sharing one in-memory store."""

    def __init__(self, store: Optional[InMemoryFieldStore] = None, bus: Optional[EventBus] = None):
        self.store = store if store is not None else InMemoryFieldStore()
        self.bus = bus

    def __call__(self) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self.store, self.bus)
