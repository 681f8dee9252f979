"""
Recalculation Service - override-aware application of engine results.

Reloads a whole return, runs the pure calculation engine, and writes the
engine's outputs back to every field that is present and not overridden.
The return's cached diagnostics and running totals are refreshed in the
same unit of work, so a failure part way through leaves nothing behind.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from audit.audit_trail import AuditRecorder
from calculator.engine import CalculationBreakdown, FieldCalculationEngine, build_snapshot
from calculator.tax_year_config import config_for
from domain.aggregates import Field, FieldPatch, ReturnPatch, TaxReturn, utc_now
from domain.events import EventType, ReturnRecalculated
from domain.exceptions import ReturnLocked, ReturnNotFound, UnsupportedTaxYear
from domain.repositories import IUnitOfWork
from domain.value_objects import (
    SYSTEM_ACTOR,
    Diagnostic,
    ReturnAggregate,
    TriggerSource,
)
from security.encryption import PassthroughTransformer, ValueTransformer
from validation.diagnostics import DEFAULT_DEPENDENT_AGE_LIMIT, run_diagnostics

from .logging_config import RecalculationLogger, get_logger

logger = get_logger(__name__)

UnitOfWorkFactory = Callable[[], IUnitOfWork]


@dataclass
class RecalculationResult:
    """Outcome of one recalculation run."""
    return_id: str
    tax_year: int
    refund: Decimal
    tax_liability: Decimal
    diagnostics: List[Diagnostic] = field(default_factory=list)
    fields_written: List[str] = field(default_factory=list)
    fields_skipped_override: List[str] = field(default_factory=list)
    fields_missing: List[str] = field(default_factory=list)
    breakdown: Optional[CalculationBreakdown] = None
    computation_time_ms: int = 0

    @property
    def error_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_error)

    @property
    def warning_count(self) -> int:
        return len(self.diagnostics) - self.error_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "return_id": self.return_id,
            "tax_year": self.tax_year,
            "refund": str(self.refund),
            "tax_liability": str(self.tax_liability),
            "diagnostics": [d.model_dump(mode="json") for d in self.diagnostics],
            "fields_written": self.fields_written,
            "fields_skipped_override": self.fields_skipped_override,
            "fields_missing": self.fields_missing,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
            "computation_time_ms": self.computation_time_ms,
        }


async def load_return(uow: IUnitOfWork, return_id: str) -> TaxReturn:
    """
    Load a return or fail.

    Raises:
        ReturnNotFound: If the return does not exist
    """
    tax_return = await uow.store.get_return(return_id)
    if tax_return is None:
        raise ReturnNotFound(return_id)
    return tax_return


async def load_mutable_return(uow: IUnitOfWork, return_id: str) -> TaxReturn:
    """
    Load a return that is about to be mutated.

    Raises:
        ReturnNotFound: If the return does not exist
        ReturnLocked: If the return has been locked for filing
    """
    tax_return = await load_return(uow, return_id)
    if tax_return.is_locked:
        raise ReturnLocked(return_id)
    return tax_return


class RecalculationService:
    """
    Orchestrates engine runs against a field store.

    The engine is authoritative for the fields it computes, except where a
    user has overridden a field: overridden fields are never written.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        engine: Optional[FieldCalculationEngine] = None,
        transformer: Optional[ValueTransformer] = None,
        audit_enabled: bool = True,
    ):
        """
        Initialize RecalculationService.

        Args:
            uow_factory: Callable returning a fresh unit of work
            engine: Calculation engine (year config loaded per return when omitted)
            transformer: PII boundary used to reveal stored values
            audit_enabled: Record a hash-chained entry for each engine write
        """
        self._uow_factory = uow_factory
        self._engine = engine or FieldCalculationEngine()
        self._transformer = transformer or PassthroughTransformer()
        self._audit_enabled = audit_enabled

    async def recalculate(self, return_id: str) -> RecalculationResult:
        """
        Recalculate a return in its own unit of work.

        Raises:
            ReturnNotFound: If the return does not exist
            ReturnLocked: If the return is locked (nothing is written)
            UnknownFilingStatus: If 1040.FS holds an unrecognized value
        """
        async with self._uow_factory() as uow:
            return await self.recalculate_in(uow, return_id)

    async def recalculate_in(self, uow: IUnitOfWork, return_id: str) -> RecalculationResult:
        """Recalculate inside a unit of work owned by the caller."""
        store = uow.store
        tax_return = await load_mutable_return(uow, return_id)

        fields = await store.get_fields(return_id)
        revealed = [self._reveal(f) for f in fields]

        rlog = RecalculationLogger(return_id)
        rlog.start(tax_return.year, len(fields))
        started = time.perf_counter()

        result = self._engine.calculate(tax_return.year, build_snapshot(revealed))

        by_key: Dict[str, Field] = {f.key: f for f in fields}
        patched: Dict[str, Field] = {}
        written: List[str] = []
        skipped: List[str] = []
        missing: List[str] = []
        audit = AuditRecorder(store, enabled=self._audit_enabled)
        now = utc_now()

        for item in result.updated_fields:
            target = by_key.get(item.key)
            if target is None:
                rlog.field_missing(item.key)
                missing.append(item.key)
                continue
            if target.overridden:
                rlog.override_skipped(item.key)
                skipped.append(item.key)
                continue

            new_value = item.field_value
            patch = FieldPatch.engine_write(new_value, at=now)
            await store.patch_field(target.id, patch)
            patched[target.id] = target.apply(patch)
            written.append(item.key)
            rlog.field_written(item.key, str(item.value))

            await audit.record_field_change(
                SYSTEM_ACTOR,
                return_id,
                target.canonical_form_id,
                target.canonical_field_id,
                previous_value=target.value,
                new_value=new_value,
                action=EventType.FIELD_CALCULATED,
                trigger_source=TriggerSource.CALCULATION,
            )

        post_write = [patched.get(f.id, f) for f in revealed]
        diagnostics = list(result.diagnostics) + run_diagnostics(
            post_write, self._dependent_age_limit(tax_return.year)
        )

        await store.patch_return(return_id, ReturnPatch(
            refund=result.refund,
            tax_liability=result.tax_liability,
            diagnostics=diagnostics,
            updated_at=now,
        ))

        outcome = RecalculationResult(
            return_id=return_id,
            tax_year=tax_return.year,
            refund=result.refund,
            tax_liability=result.tax_liability,
            diagnostics=diagnostics,
            fields_written=written,
            fields_skipped_override=skipped,
            fields_missing=missing,
            breakdown=result.breakdown,
            computation_time_ms=int((time.perf_counter() - started) * 1000),
        )

        event = ReturnRecalculated(
            return_id=return_id,
            tax_year=tax_return.year,
            refund=outcome.refund,
            tax_liability=outcome.tax_liability,
            fields_written=written,
            fields_skipped_override=skipped,
            error_count=outcome.error_count,
            warning_count=outcome.warning_count,
            computation_time_ms=outcome.computation_time_ms,
        )
        await store.append_event(event)
        uow.collect_event(event)

        rlog.result(
            str(outcome.refund),
            str(outcome.tax_liability),
            outcome.error_count,
            outcome.warning_count,
        )
        return outcome

    async def run_diagnostics_for_return(self, return_id: str) -> List[Diagnostic]:
        """
        Run the validator over a return's current fields without writing.

        Raises:
            ReturnNotFound: If the return does not exist
        """
        async with self._uow_factory() as uow:
            tax_return = await load_return(uow, return_id)
            fields = await uow.store.get_fields(return_id)
            return run_diagnostics(
                [self._reveal(f) for f in fields],
                self._dependent_age_limit(tax_return.year),
            )

    async def get_aggregate(self, return_id: str) -> ReturnAggregate:
        """
        Running totals for a return, as last persisted by a recalculation.

        Raises:
            ReturnNotFound: If the return does not exist
        """
        async with self._uow_factory() as uow:
            tax_return = await load_return(uow, return_id)
            return ReturnAggregate(
                return_id=tax_return.return_id,
                refund=tax_return.refund,
                tax_liability=tax_return.tax_liability,
                error_count=tax_return.error_count,
                warning_count=tax_return.warning_count,
                is_locked=tax_return.is_locked,
                last_updated=tax_return.updated_at,
            )

    def _reveal(self, f: Field) -> Field:
        revealed = self._transformer.reveal(f.value)
        return f if revealed is f.value else f.with_value(revealed)

    def _dependent_age_limit(self, tax_year: int) -> int:
        try:
            return config_for(tax_year, self._engine.config).dependent_age_limit
        except UnsupportedTaxYear:
            logger.warning(
                f"No tax parameters for {tax_year}; using default dependent age limit",
                extra={'extra_data': {'tax_year': tax_year}},
            )
            return DEFAULT_DEPENDENT_AGE_LIMIT
