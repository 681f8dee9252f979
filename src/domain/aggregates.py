"""
Domain Aggregates for the field recalculation engine.

A TaxReturn is the aggregate root; it owns many Fields, grouped by form id.
Fields are never deleted while the return lives, only patched. Patches are
explicit objects so that an engine write structurally cannot carry the
user-owned ``overridden`` flag.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator

from .field_ids import compose_key, split_key
from .value_objects import NULL, Diagnostic, FieldValue, wrap_value


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# FIELD
# =============================================================================

class Field(BaseModel):
    """
    One named value on a tax form.

    Identity is ``(return_id, form_id, field_id)``; ``id`` is the store's
    surrogate key used for patching.

    Invariants:
    - ``overridden`` fields are never written by recalculation
    - ``estimated`` is advisory and never blocks a write
    """

    id: str = PydanticField(default_factory=lambda: str(uuid4()))
    return_id: str
    form_id: str
    field_id: str

    value: FieldValue = NULL
    calculated: bool = False
    overridden: bool = False
    estimated: bool = False

    label: Optional[str] = None
    field_type: Optional[str] = PydanticField(
        default=None,
        description="Display type hint: currency, number, text, date"
    )
    last_modified_by: Optional[str] = None
    updated_at: datetime = PydanticField(default_factory=utc_now)

    @field_validator("value", mode="before")
    @classmethod
    def _wrap_plain_value(cls, value: Any) -> Any:
        if isinstance(value, dict) and "kind" in value:
            return value
        return wrap_value(value)

    @property
    def key(self) -> str:
        """Canonical ``form.field`` key."""
        return compose_key(self.form_id, self.field_id)

    @property
    def canonical_form_id(self) -> str:
        return split_key(self.key)[0]

    @property
    def canonical_field_id(self) -> str:
        return split_key(self.key)[1]

    def with_value(self, value: FieldValue) -> "Field":
        """Copy of this field carrying a different value."""
        return self.model_copy(update={"value": value})

    def apply(self, patch: "FieldPatch") -> "Field":
        """Copy of this field with a patch applied."""
        return self.model_copy(update=patch.changes())


class FieldPatch(BaseModel):
    """
    Partial update for a Field. Only explicitly set attributes are applied.
    """

    value: Optional[FieldValue] = None
    calculated: Optional[bool] = None
    overridden: Optional[bool] = None
    estimated: Optional[bool] = None
    last_modified_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def engine_write(cls, value: FieldValue, at: Optional[datetime] = None) -> "FieldPatch":
        """Patch for an automated write: value and provenance, never the override flag."""
        return cls(value=value, calculated=True, updated_at=at or utc_now())

    def changes(self) -> Dict[str, Any]:
        """Attributes set on this patch."""
        data = {}
        for name in self.model_fields_set:
            data[name] = getattr(self, name)
        return data

    @property
    def touches_override(self) -> bool:
        return "overridden" in self.model_fields_set


# =============================================================================
# TAX RETURN AGGREGATE
# =============================================================================

class TaxReturn(BaseModel):
    """
    Tax Return Aggregate Root.

    Invariants:
    - Once ``is_locked`` is set (e.g. after acceptance by the filing
      authority) no field of the return may be mutated.
    - ``refund``, ``tax_liability`` and ``diagnostics`` are outputs of the
      last recalculation.
    """

    return_id: str = PydanticField(default_factory=lambda: str(uuid4()))
    taxpayer_id: Optional[str] = None
    year: int

    is_locked: bool = False
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None

    refund: Decimal = Decimal("0.00")
    tax_liability: Decimal = Decimal("0.00")
    diagnostics: List[Diagnostic] = PydanticField(default_factory=list)

    created_at: datetime = PydanticField(default_factory=utc_now)
    updated_at: datetime = PydanticField(default_factory=utc_now)

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.diagnostics if not d.is_error)

    def apply(self, patch: "ReturnPatch") -> "TaxReturn":
        return self.model_copy(update=patch.changes())


class ReturnPatch(BaseModel):
    """Partial update for a TaxReturn."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    refund: Optional[Decimal] = None
    tax_liability: Optional[Decimal] = None
    diagnostics: Optional[List[Diagnostic]] = None
    is_locked: Optional[bool] = None
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


# =============================================================================
# AUDIT ENTRY
# =============================================================================

class AuditEntry(BaseModel):
    """
    One hash-chained audit record.

    ``created_at`` is epoch milliseconds; it is part of the hashed payload,
    so it is kept as an integer to hash identically after storage.
    ``previous_value`` and ``new_value`` hold ``value_to_json`` output.
    """

    entry_id: str = PydanticField(default_factory=lambda: str(uuid4()))
    sequence: int = 0
    return_id: str
    form_id: str = ""
    field_id: str = ""
    user_id: str = ""
    user_name: Optional[str] = None
    action: str
    previous_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    trigger_source: Optional[str] = None
    reason: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: int
    hash_chain_entry: str = ""
