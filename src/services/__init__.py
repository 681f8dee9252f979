"""
Services Module - application services for the field recalculation engine.

Application Services (orchestration):
- FieldUpdateService: user writes, lock changes, update + recalc
- RecalculationService: override-aware engine runs, diagnostics, aggregates
- RawValueCascadeService: auxiliary raw-copy cascade along the dependency graph

Infrastructure Services:
- Logging and observability
"""

from dataclasses import dataclass
from typing import Optional

from .logging_config import (
    ContextLogger,
    JsonFormatter,
    ReadableFormatter,
    RecalculationLogger,
    configure_logging,
    get_logger,
)
from .recalculation_service import RecalculationResult, RecalculationService, UnitOfWorkFactory
from .field_update_service import FieldUpdateResult, FieldUpdateService
from .cascade_service import CascadeResult, RawValueCascadeService


@dataclass
class EngineServices:
    """Services sharing one unit of work factory and PII boundary."""
    field_updates: FieldUpdateService
    recalculation: RecalculationService
    cascade: RawValueCascadeService


def build_services(uow_factory: UnitOfWorkFactory, settings=None) -> EngineServices:
    """
    Wire the application services from settings.

    Args:
        uow_factory: Callable returning a fresh unit of work
        settings: Application settings (loaded from the environment when omitted)

    Raises:
        StartupSecurityError: If the settings fail production security checks
    """
    from config.settings import get_settings, validate_startup_security
    from security.encryption import build_value_transformer

    settings = settings or get_settings()
    validate_startup_security(settings)
    transformer = build_value_transformer(
        settings.encrypt_pii, settings.resolved_encryption_key()
    )
    recalculation = RecalculationService(
        uow_factory, transformer=transformer, audit_enabled=settings.audit_enabled
    )
    return EngineServices(
        field_updates=FieldUpdateService(
            uow_factory,
            transformer=transformer,
            recalculation=recalculation,
            audit_enabled=settings.audit_enabled,
        ),
        recalculation=recalculation,
        cascade=RawValueCascadeService(uow_factory, audit_enabled=settings.audit_enabled),
    )


__all__ = [
    # Logging
    "ContextLogger",
    "JsonFormatter",
    "ReadableFormatter",
    "RecalculationLogger",
    "configure_logging",
    "get_logger",
    # Services
    "RecalculationResult",
    "RecalculationService",
    "UnitOfWorkFactory",
    "FieldUpdateResult",
    "FieldUpdateService",
    "CascadeResult",
    "RawValueCascadeService",
    "EngineServices",
    "build_services",
]
