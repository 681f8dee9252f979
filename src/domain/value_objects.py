"""
Domain value objects for the field recalculation engine.

Field values are a small closed sum type instead of an untyped blob. Every
variant carries a ``kind`` tag, so stored JSON round-trips to the same variant
and calculation and diagnostics code can branch on the variant exhaustively.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# =============================================================================
# FIELD VALUES
# =============================================================================

class _ValueBase(BaseModel):
    """Common behavior for field value variants."""

    model_config = ConfigDict(frozen=True)

    def unwrap(self) -> Any:
        """Return the plain Python value."""
        return getattr(self, "value", None)

    def as_decimal(self) -> Decimal:
        """Numeric reading of the value; non-numeric values read as zero."""
        return Decimal("0")

    def is_empty(self) -> bool:
        return False


class StringValue(_ValueBase):
    kind: Literal["string"] = "string"
    value: str

    def as_decimal(self) -> Decimal:
        text = self.value.strip().replace(",", "").lstrip("$")
        if not text:
            return Decimal("0")
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return Decimal("0")
        return parsed if parsed.is_finite() else Decimal("0")

    def is_empty(self) -> bool:
        return not self.value.strip()


class NumberValue(_ValueBase):
    kind: Literal["number"] = "number"
    value: Decimal

    def as_decimal(self) -> Decimal:
        return self.value


class BooleanValue(_ValueBase):
    kind: Literal["boolean"] = "boolean"
    value: bool


class NullValue(_ValueBase):
    kind: Literal["null"] = "null"

    def unwrap(self) -> Any:
        return None

    def is_empty(self) -> bool:
        return True


class StructuredValue(_ValueBase):
    kind: Literal["structured"] = "structured"
    value: Union[Dict[str, Any], List[Any]]

    def is_empty(self) -> bool:
        return len(self.value) == 0


FieldValue = Annotated[
    Union[StringValue, NumberValue, BooleanValue, NullValue, StructuredValue],
    Field(discriminator="kind"),
]

_field_value_adapter: TypeAdapter = TypeAdapter(FieldValue)

NULL = NullValue()


def wrap_value(raw: Any) -> FieldValue:
    """
    Build the FieldValue variant for a plain Python value.

    Variants pass through unchanged. ``bool`` is checked before numbers since
    it is an ``int`` subclass; floats go through ``str`` to keep their printed
    representation.

    Examples:
        >>> wrap_value(10000)
        NumberValue(kind='number', value=Decimal('10000'))
        >>> wrap_value(None)
        NullValue(kind='null')
    """
    if isinstance(raw, _ValueBase):
        return raw
    if raw is None:
        return NULL
    if isinstance(raw, bool):
        return BooleanValue(value=raw)
    if isinstance(raw, (int, Decimal)):
        return NumberValue(value=Decimal(raw))
    if isinstance(raw, float):
        return NumberValue(value=Decimal(str(raw)))
    if isinstance(raw, str):
        return StringValue(value=raw)
    if isinstance(raw, (dict, list, tuple)):
        return StructuredValue(value=list(raw) if isinstance(raw, tuple) else raw)
    raise TypeError(f"Unsupported field value type: {type(raw).__name__}")


_TRUE_STRINGS = frozenset({"true", "yes", "y", "1", "x", "on"})


def is_truthy(value: Optional[FieldValue]) -> bool:
    """
    Checkbox reading of a field value.

    Booleans read as themselves, numbers as nonzero, and strings as one of
    the usual checkbox spellings ("true", "yes", "x", ...).
    """
    if value is None:
        return False
    if isinstance(value, BooleanValue):
        return value.value
    if isinstance(value, NumberValue):
        return value.value != 0
    if isinstance(value, StringValue):
        return value.value.strip().lower() in _TRUE_STRINGS
    return False


def value_to_json(value: FieldValue) -> Dict[str, Any]:
    """Serialize a FieldValue to a JSON-safe dict (Decimals become strings)."""
    return value.model_dump(mode="json")


def value_from_json(data: Optional[Dict[str, Any]]) -> FieldValue:
    """Rebuild a FieldValue from ``value_to_json`` output."""
    if data is None:
        return NULL
    return _field_value_adapter.validate_python(data)


# =============================================================================
# DIAGNOSTICS
# =============================================================================

class DiagnosticSeverity(str, Enum):
    """Diagnostic severity."""
    ERROR = "error"
    WARNING = "warning"


class Diagnostic(BaseModel):
    """
    A validation finding about the current field set.

    ``field_id`` always holds the canonical ``form.field`` key.
    """

    model_config = ConfigDict(frozen=True)

    field_id: str
    form_id: str = ""
    severity: DiagnosticSeverity
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity == DiagnosticSeverity.ERROR


# =============================================================================
# UPDATE REQUEST CONTEXT
# =============================================================================

class TriggerSource(str, Enum):
    """Where a field change came from."""
    MANUAL = "manual"
    AI_EXTRACTION = "ai_extraction"
    IMPORT = "import"
    CALCULATION = "calculation"
    FILING = "filing"


class Actor(BaseModel):
    """Who is performing a mutation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    name: Optional[str] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.user_id


SYSTEM_ACTOR = Actor(user_id="system", name="recalculation")


class FieldUpdateMeta(BaseModel):
    """
    Optional flags sent with a user edit.

    ``is_override`` and ``is_estimated`` are tri-state: ``None`` means the
    request did not mention the flag and the stored flag is left alone.
    Accepts the camelCase keys used by clients (``isOverride``).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    is_override: Optional[bool] = Field(default=None, alias="isOverride")
    is_estimated: Optional[bool] = Field(default=None, alias="isEstimated")
    trigger_source: TriggerSource = Field(default=TriggerSource.MANUAL, alias="triggerSource")
    reason: Optional[str] = None


class ReturnAggregate(BaseModel):
    """Running totals for a return (refund monitor view)."""
    return_id: str
    refund: Decimal = Decimal("0.00")
    tax_liability: Decimal = Decimal("0.00")
    error_count: int = 0
    warning_count: int = 0
    is_locked: bool = False
    last_updated: Optional[datetime] = None
