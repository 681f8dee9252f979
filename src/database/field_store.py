"""Async SQL Field Store Implementation.

Implements IFieldStore using SQLAlchemy async sessions. The store never
commits: transaction boundaries belong to SqlUnitOfWork.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.aggregates import AuditEntry, Field, FieldPatch, ReturnPatch, TaxReturn
from domain.events import DomainEvent
from domain.exceptions import DuplicateField
from domain.field_ids import compose_key
from domain.repositories import IFieldStore
from domain.value_objects import value_to_json

from .models import AuditRecord, FieldRecord, ReturnEventRecord, ReturnRecord

logger = logging.getLogger(__name__)


def _field_columns(patch: FieldPatch) -> Dict[str, Any]:
    values = patch.changes()
    if "value" in values:
        values["value"] = value_to_json(values["value"])
    return values


def _return_columns(patch: ReturnPatch) -> Dict[str, Any]:
    values = patch.changes()
    if "diagnostics" in values:
        values["diagnostics"] = [d.model_dump(mode="json") for d in values["diagnostics"]]
    return values


class SqlFieldStore(IFieldStore):
    """
    Async implementation of IFieldStore.

    Composite-key lookups use the unique (return_id, canonical_key) index,
    so a field stored under a legacy id is found by its canonical id.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize store with a session.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    # -- returns -------------------------------------------------------------

    async def get_return(self, return_id: str) -> Optional[TaxReturn]:
        record = await self._session.get(ReturnRecord, return_id, populate_existing=True)
        return record.to_domain() if record is not None else None

    async def add_return(self, tax_return: TaxReturn) -> None:
        self._session.add(ReturnRecord.from_domain(tax_return))
        await self._session.flush()

    async def patch_return(self, return_id: str, patch: ReturnPatch) -> None:
        values = _return_columns(patch)
        if not values:
            return
        await self._session.execute(
            update(ReturnRecord)
            .where(ReturnRecord.return_id == return_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    # -- fields --------------------------------------------------------------

    async def get_fields(self, return_id: str) -> List[Field]:
        result = await self._session.execute(
            select(FieldRecord)
            .where(FieldRecord.return_id == return_id)
            .order_by(FieldRecord.form_id, FieldRecord.field_id)
            .execution_options(populate_existing=True)
        )
        return [record.to_domain() for record in result.scalars()]

    async def get_field(self, return_id: str, form_id: str, field_id: str) -> Optional[Field]:
        record = await self._get_record(return_id, compose_key(form_id, field_id))
        return record.to_domain() if record is not None else None

    async def add_field(self, field: Field) -> None:
        """
        Store a new field.

        Raises:
            DuplicateField: If the return already has a field with the same
                canonical key, in any dialect
        """
        if await self._get_record(field.return_id, field.key) is not None:
            raise DuplicateField(field.return_id, field.key)
        self._session.add(FieldRecord.from_domain(field))
        await self._session.flush()

    async def _get_record(self, return_id: str, canonical_key: str) -> Optional[FieldRecord]:
        result = await self._session.execute(
            select(FieldRecord)
            .where(
                FieldRecord.return_id == return_id,
                FieldRecord.canonical_key == canonical_key,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def patch_field(self, field_pk: str, patch: FieldPatch) -> None:
        values = _field_columns(patch)
        if not values:
            return
        await self._session.execute(
            update(FieldRecord)
            .where(FieldRecord.id == field_pk)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    # -- audit ---------------------------------------------------------------

    async def insert_audit(self, entry: AuditEntry) -> None:
        """
        Insert an audit row inside a SAVEPOINT.

        A failed insert rolls back only the savepoint, leaving the
        surrounding unit of work usable.
        """
        async with self._session.begin_nested():
            self._session.add(AuditRecord.from_domain(entry))

    async def get_audit_entries(self, return_id: str) -> List[AuditEntry]:
        result = await self._session.execute(
            select(AuditRecord)
            .where(AuditRecord.return_id == return_id)
            .order_by(AuditRecord.created_at, AuditRecord.sequence)
        )
        return [record.to_domain() for record in result.scalars()]

    async def get_latest_audit_hash(self, return_id: str) -> Optional[str]:
        result = await self._session.execute(
            select(AuditRecord.hash_chain_entry)
            .where(AuditRecord.return_id == return_id)
            .order_by(AuditRecord.created_at.desc(), AuditRecord.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # -- event log -----------------------------------------------------------

    async def append_event(self, event: DomainEvent) -> None:
        self._session.add(ReturnEventRecord(
            event_id=str(event.event_id),
            return_id=event.return_id,
            event_type=event.event_type.value,
            payload=event.to_log_entry(),
            occurred_at=event.occurred_at,
        ))
        await self._session.flush()

    async def get_events(self, return_id: str) -> List[Dict[str, Any]]:
        result = await self._session.execute(
            select(ReturnEventRecord.payload)
            .where(ReturnEventRecord.return_id == return_id)
            .order_by(ReturnEventRecord.id)
        )
        return list(result.scalars())
