"""
Domain Events for the field recalculation engine.

Domain events are immutable records of something that happened to a return.
They are appended to the return's event log inside the unit of work and
published on the in-process bus after commit.

Events are used for:
1. Audit trails - what changed, by whom, from which source
2. Integration - triggering side effects (refund monitor, notifications)
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """Types of domain events. Values double as audit action names."""
    # Field events
    FIELD_UPDATE = "field:update"
    FIELD_OVERRIDE = "field:override"
    FIELD_CALCULATED = "field:calculated"

    # Return events
    CALCULATION_RUN = "calculation:run"
    RETURN_LOCKED = "return:locked"
    RETURN_UNLOCKED = "return:unlocked"


class DomainEvent(BaseModel):
    """
    Base class for all domain events.

    All events are immutable and contain:
    - Unique event ID
    - When the event occurred
    - Metadata about context (user, session, trigger source)
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = Field(default=1, description="Event schema version")

    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context (user_id, session_id, trigger_source, etc.)"
    )

    return_id: str

    def to_log_entry(self) -> Dict[str, Any]:
        """JSON-safe form stored in a return's event log."""
        return self.model_dump(mode="json")


# =============================================================================
# FIELD EVENTS
# =============================================================================

class FieldUpdated(DomainEvent):
    """Event raised when a user (or import) writes a field value."""
    event_type: EventType = EventType.FIELD_UPDATE

    form_id: str
    field_id: str
    user_id: str
    previous_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    overridden: bool = False
    estimated: bool = False


# =============================================================================
# RETURN EVENTS
# =============================================================================

class ReturnRecalculated(DomainEvent):
    """Event raised after the engine's outputs have been written to a return."""
    event_type: EventType = EventType.CALCULATION_RUN

    tax_year: int
    refund: Decimal
    tax_liability: Decimal
    fields_written: List[str] = Field(default_factory=list)
    fields_skipped_override: List[str] = Field(default_factory=list)
    error_count: int = 0
    warning_count: int = 0
    computation_time_ms: int = Field(default=0, description="Time to recalculate in milliseconds")


class ReturnLockChanged(DomainEvent):
    """Event raised when a return is locked or unlocked."""
    event_type: EventType = EventType.RETURN_LOCKED

    locked: bool
    user_id: str
    reason: Optional[str] = None
