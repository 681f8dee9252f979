"""
SQLAlchemy ORM Models for the field store.

Architecture:
- Primary Keys: string UUIDs for returns and fields (portable across
  SQLite and PostgreSQL); autoincrement sequence for audit and event rows
- Secondary Keys: unique (return_id, canonical_key) for fields; the stored
  form_id and field_id keep whatever dialect the producer wrote
- Data Types: Numeric(12, 2) for monetary aggregates, JSON for field values
- Field values are stored in their tagged JSON form, so a stored value
  always reloads as the same variant
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, ForeignKey, Index, Integer,
    JSON, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from domain.aggregates import AuditEntry, Field, TaxReturn
from domain.value_objects import Diagnostic, value_from_json, value_to_json


# Cross-database compatible JSON type
# Uses JSONB on PostgreSQL, JSON on SQLite/others
class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        else:
            return dialect.type_descriptor(JSON())


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReturnRecord(Base):
    """
    Tax return aggregate row.

    Primary Key: return_id
    ``refund``, ``tax_liability`` and ``diagnostics`` cache the last
    recalculation.
    """
    __tablename__ = "tax_returns"

    return_id = Column(String(36), primary_key=True)
    taxpayer_id = Column(String(64), nullable=True, index=True)
    tax_year = Column(Integer, nullable=False, index=True)

    # Lock (set on acceptance by the filing authority)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    locked_by = Column(String(64), nullable=True)

    refund = Column(Numeric(12, 2), nullable=False, default=0)
    tax_liability = Column(Numeric(12, 2), nullable=False, default=0)
    diagnostics = Column(JSONB, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def to_domain(self) -> TaxReturn:
        return TaxReturn(
            return_id=self.return_id,
            taxpayer_id=self.taxpayer_id,
            year=self.tax_year,
            is_locked=bool(self.is_locked),
            locked_at=self.locked_at,
            locked_by=self.locked_by,
            refund=Decimal(self.refund or 0),
            tax_liability=Decimal(self.tax_liability or 0),
            diagnostics=[Diagnostic.model_validate(d) for d in (self.diagnostics or [])],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_domain(cls, tax_return: TaxReturn) -> "ReturnRecord":
        return cls(
            return_id=tax_return.return_id,
            taxpayer_id=tax_return.taxpayer_id,
            tax_year=tax_return.year,
            is_locked=tax_return.is_locked,
            locked_at=tax_return.locked_at,
            locked_by=tax_return.locked_by,
            refund=tax_return.refund,
            tax_liability=tax_return.tax_liability,
            diagnostics=[d.model_dump(mode="json") for d in tax_return.diagnostics],
            created_at=tax_return.created_at,
            updated_at=tax_return.updated_at,
        )


class FieldRecord(Base):
    """
    One form field of a return.

    Primary Key: id (surrogate, used for patching)
    Secondary Key: (return_id, canonical_key) - unique, so two legacy
    spellings of one field cannot both be stored
    """
    __tablename__ = "fields"

    id = Column(String(36), primary_key=True)
    return_id = Column(String(36), ForeignKey("tax_returns.return_id"), nullable=False)
    form_id = Column(String(64), nullable=False)
    field_id = Column(String(128), nullable=False)
    canonical_key = Column(String(193), nullable=False, comment="compose_key(form_id, field_id)")

    value = Column(JSONB, nullable=True, comment="Tagged FieldValue JSON")
    calculated = Column(Boolean, nullable=False, default=False)
    overridden = Column(Boolean, nullable=False, default=False)
    estimated = Column(Boolean, nullable=False, default=False)

    label = Column(String(255), nullable=True)
    field_type = Column(String(32), nullable=True)
    last_modified_by = Column(String(64), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("return_id", "canonical_key", name="uq_field_canonical_key"),
        Index("ix_fields_return", "return_id"),
    )

    def to_domain(self) -> Field:
        return Field(
            id=self.id,
            return_id=self.return_id,
            form_id=self.form_id,
            field_id=self.field_id,
            value=value_from_json(self.value),
            calculated=bool(self.calculated),
            overridden=bool(self.overridden),
            estimated=bool(self.estimated),
            label=self.label,
            field_type=self.field_type,
            last_modified_by=self.last_modified_by,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_domain(cls, f: Field) -> "FieldRecord":
        return cls(
            id=f.id,
            return_id=f.return_id,
            form_id=f.form_id,
            field_id=f.field_id,
            canonical_key=f.key,
            value=value_to_json(f.value),
            calculated=f.calculated,
            overridden=f.overridden,
            estimated=f.estimated,
            label=f.label,
            field_type=f.field_type,
            last_modified_by=f.last_modified_by,
            updated_at=f.updated_at,
        )


class AuditRecord(Base):
    """
    Hash-chained audit entry.

    ``sequence`` orders entries written within the same millisecond.
    """
    __tablename__ = "audit_log"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    entry_id = Column(String(36), nullable=False, unique=True)
    return_id = Column(String(36), nullable=False)
    form_id = Column(String(64), nullable=False, default="")
    field_id = Column(String(128), nullable=False, default="")
    user_id = Column(String(64), nullable=False, default="")
    user_name = Column(String(255), nullable=True)
    action = Column(String(64), nullable=False)
    previous_value = Column(JSONB, nullable=True)
    new_value = Column(JSONB, nullable=True)
    trigger_source = Column(String(32), nullable=True)
    reason = Column(Text, nullable=True)
    session_id = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(BigInteger, nullable=False, comment="Epoch milliseconds")
    hash_chain_entry = Column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_audit_return_sequence", "return_id", "sequence"),
    )

    def to_domain(self) -> AuditEntry:
        return AuditEntry(
            entry_id=self.entry_id,
            sequence=self.sequence or 0,
            return_id=self.return_id,
            form_id=self.form_id or "",
            field_id=self.field_id or "",
            user_id=self.user_id or "",
            user_name=self.user_name,
            action=self.action,
            previous_value=self.previous_value,
            new_value=self.new_value,
            trigger_source=self.trigger_source,
            reason=self.reason,
            session_id=self.session_id,
            ip_address=self.ip_address,
            created_at=self.created_at,
            hash_chain_entry=self.hash_chain_entry,
        )

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditRecord":
        data: Dict[str, Any] = entry.model_dump(exclude={"sequence"})
        return cls(**data)


class ReturnEventRecord(Base):
    """Append-only event log of a return."""
    __tablename__ = "return_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), nullable=False, unique=True)
    return_id = Column(String(36), nullable=False)
    event_type = Column(String(64), nullable=False)
    payload = Column(JSONB, nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_return_events_return", "return_id", "id"),
    )
