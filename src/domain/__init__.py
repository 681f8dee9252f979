"""
Domain layer for the field recalculation engine.

This module contains the core domain models, value objects, events,
identifier canonicalization, the static dependency graph, and the store
interfaces the services are written against.
"""

from .exceptions import (
    FieldEngineError,
    ReturnNotFound,
    FieldNotFound,
    DuplicateField,
    ReturnLocked,
    InvalidFieldIdentifier,
    UnknownFilingStatus,
    UnsupportedTaxYear,
    DependencyCycleError,
)
from .field_ids import (
    FieldKey,
    to_canonical,
    split_key,
    compose_key,
    resolve_key,
    to_underscore,
    to_colon,
)
from .value_objects import (
    FieldValue,
    StringValue,
    NumberValue,
    BooleanValue,
    NullValue,
    StructuredValue,
    NULL,
    wrap_value,
    is_truthy,
    value_to_json,
    value_from_json,
    Diagnostic,
    DiagnosticSeverity,
    TriggerSource,
    Actor,
    SYSTEM_ACTOR,
    FieldUpdateMeta,
    ReturnAggregate,
)
from .aggregates import (
    Field,
    FieldPatch,
    TaxReturn,
    ReturnPatch,
    AuditEntry,
)
from .events import (
    EventType,
    DomainEvent,
    FieldUpdated,
    ReturnRecalculated,
    ReturnLockChanged,
)
from .dependency_graph import DependencyGraph, DEFAULT_DEPENDENCY_GRAPH
from .repositories import IFieldStore, IUnitOfWork
from .event_bus import EventBus, get_event_bus, publish_events

__all__ = [
    # Exceptions
    "FieldEngineError",
    "ReturnNotFound",
    "FieldNotFound",
    "DuplicateField",
    "ReturnLocked",
    "InvalidFieldIdentifier",
    "UnknownFilingStatus",
    "UnsupportedTaxYear",
    "DependencyCycleError",
    # Field identifiers
    "FieldKey",
    "to_canonical",
    "split_key",
    "compose_key",
    "resolve_key",
    "to_underscore",
    "to_colon",
    # Value objects
    "FieldValue",
    "StringValue",
    "NumberValue",
    "BooleanValue",
    "NullValue",
    "StructuredValue",
    "NULL",
    "wrap_value",
    "is_truthy",
    "value_to_json",
    "value_from_json",
    "Diagnostic",
    "DiagnosticSeverity",
    "TriggerSource",
    "Actor",
    "SYSTEM_ACTOR",
    "FieldUpdateMeta",
    "ReturnAggregate",
    # Aggregates
    "Field",
    "FieldPatch",
    "TaxReturn",
    "ReturnPatch",
    "AuditEntry",
    # Events
    "EventType",
    "DomainEvent",
    "FieldUpdated",
    "ReturnRecalculated",
    "ReturnLockChanged",
    # Dependency graph
    "DependencyGraph",
    "DEFAULT_DEPENDENCY_GRAPH",
    # Repositories
    "IFieldStore",
    "IUnitOfWork",
    # Event Bus
    "EventBus",
    "get_event_bus",
    "publish_events",
]
