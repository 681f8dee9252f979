"""Tests for the override-aware recalculation service."""

from decimal import Decimal

import pytest

from audit.audit_trail import AuditRecorder
from domain.aggregates import FieldPatch, ReturnPatch
from domain.events import EventType, ReturnRecalculated
from domain.exceptions import ReturnLocked, ReturnNotFound, UnknownFilingStatus
from domain.value_objects import NULL, DiagnosticSeverity, wrap_value
from services.recalculation_service import RecalculationService

ENGINE_KEYS = [
    "1040.line1z", "1040.line3", "1040.line11", "1040.line12", "1040.line15", "1040.line24",
]


@pytest.fixture
def service(uow_factory):
    return RecalculationService(uow_factory)


class TestRecalculate:
    """Tests for RecalculationService.recalculate."""

    @pytest.mark.asyncio
    async def test_wage_earner_return(self, service, memory_store, seeded_return):
        result = await service.recalculate(seeded_return)

        assert result.tax_year == 2025
        assert result.refund == Decimal("0.00")
        assert result.tax_liability == Decimal("7788.00")
        assert result.fields_written == ENGINE_KEYS
        assert result.fields_skipped_override == []
        assert result.fields_missing == []
        assert result.diagnostics == []

        line24 = await memory_store.get_field(seeded_return, "1040", "line24")
        assert line24.value.as_decimal() == Decimal("7788.00")
        assert line24.calculated is True

        tax_return = await memory_store.get_return(seeded_return)
        assert tax_return.tax_liability == Decimal("7788.00")
        assert tax_return.diagnostics == []

    @pytest.mark.asyncio
    async def test_overridden_fields_are_never_written(self, service, memory_store, seeded_return):
        line11 = await memory_store.get_field(seeded_return, "1040", "line11")
        await memory_store.patch_field(line11.id, FieldPatch(value=wrap_value(123), overridden=True))

        result = await service.recalculate(seeded_return)

        assert result.fields_skipped_override == ["1040.line11"]
        assert "1040.line11" not in result.fields_written
        after = await memory_store.get_field(seeded_return, "1040", "line11")
        assert after.value.as_decimal() == Decimal("123")
        assert after.overridden is True

    @pytest.mark.asyncio
    async def test_all_overridden_writes_nothing(self, service, memory_store, seeded_return):
        for f in await memory_store.get_fields(seeded_return):
            await memory_store.patch_field(f.id, FieldPatch(overridden=True))

        result = await service.recalculate(seeded_return)

        assert result.fields_written == []
        assert result.fields_skipped_override == ENGINE_KEYS
        assert await memory_store.get_audit_entries(seeded_return) == []

    @pytest.mark.asyncio
    async def test_missing_fields_are_not_created(self, service, memory_store, seed):
        await seed(memory_store, "r-partial", {"W2.box1": 50000, "W2.EIN": "12-3456789",
                                               "1040.FS": "single", "1040.line11": None})
        result = await service.recalculate("r-partial")

        assert result.fields_written == ["1040.line11"]
        assert "1040.line24" in result.fields_missing
        assert await memory_store.get_field("r-partial", "1040", "line24") is None
        assert len(await memory_store.get_fields("r-partial")) == 4

    @pytest.mark.asyncio
    async def test_legacy_field_ids_are_targeted(self, service, memory_store, seed):
        await seed(memory_store, "r-legacy", {"W2.box1": 1000, "1040.FS": "single", "1040.1040_line1z": None})
        result = await service.recalculate("r-legacy")

        assert "1040.line1z" in result.fields_written
        legacy = await memory_store.get_field("r-legacy", "1040", "1040_line1z")
        assert legacy.value.as_decimal() == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_locked_return_rejected_without_writes(self, service, memory_store, seeded_return):
        await memory_store.patch_return(seeded_return, ReturnPatch(is_locked=True))

        with pytest.raises(ReturnLocked):
            await service.recalculate(seeded_return)

        line24 = await memory_store.get_field(seeded_return, "1040", "line24")
        assert line24.value == NULL
        assert await memory_store.get_audit_entries(seeded_return) == []

    @pytest.mark.asyncio
    async def test_missing_return(self, service):
        with pytest.raises(ReturnNotFound):
            await service.recalculate("does-not-exist")

    @pytest.mark.asyncio
    async def test_unknown_filing_status_rolls_back(self, service, memory_store, seed):
        await seed(memory_store, "r-bad", {"W2.box1": 1, "1040.FS": "married-ish", "1040.line11": None})

        with pytest.raises(UnknownFilingStatus):
            await service.recalculate("r-bad")

        assert (await memory_store.get_field("r-bad", "1040", "line11")).value == NULL
        assert await memory_store.get_events("r-bad") == []

    @pytest.mark.asyncio
    async def test_engine_diagnostics_precede_validator_diagnostics(self, service, memory_store, seed):
        await seed(memory_store, "r-diag", {"W2.box1": 250000, "W2.ssn": "123456789"})

        result = await service.recalculate("r-diag")

        assert [d.field_id for d in result.diagnostics] == [
            "1040.line19", "W2.EIN", "W2.ssn", "1040.FS",
        ]
        assert result.error_count == 3
        assert result.warning_count == 1
        stored = await memory_store.get_return("r-diag")
        assert stored.diagnostics == result.diagnostics
        assert stored.diagnostics[0].severity == DiagnosticSeverity.WARNING

    @pytest.mark.asyncio
    async def test_event_published_and_logged(self, service, memory_store, event_bus, seeded_return):
        received = []
        event_bus.subscribe(ReturnRecalculated, received.append)

        await service.recalculate(seeded_return)

        assert len(received) == 1
        assert received[0].tax_liability == Decimal("7788.00")
        assert received[0].fields_written == ENGINE_KEYS
        log = await memory_store.get_events(seeded_return)
        assert [e["event_type"] for e in log] == [EventType.CALCULATION_RUN.value]

    @pytest.mark.asyncio
    async def test_engine_writes_are_audited(self, service, memory_store, seeded_return):
        await service.recalculate(seeded_return)

        entries = await memory_store.get_audit_entries(seeded_return)
        assert len(entries) == len(ENGINE_KEYS)
        assert {e.user_id for e in entries} == {"system"}
        assert {e.action for e in entries} == {"field:calculated"}
        assert entries[-1].new_value == {"kind": "number", "value": "7788.00"}
        assert (await AuditRecorder(memory_store).verify(seeded_return)).valid

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_fail_recalculation(
        self, service, memory_store, seeded_return, monkeypatch
    ):
        async def broken_insert(entry):
            raise RuntimeError("audit table unavailable")

        monkeypatch.setattr(memory_store, "insert_audit", broken_insert)

        result = await service.recalculate(seeded_return)

        assert result.fields_written == ENGINE_KEYS
        line24 = await memory_store.get_field(seeded_return, "1040", "line24")
        assert line24.value.as_decimal() == Decimal("7788.00")

    @pytest.mark.asyncio
    async def test_audit_can_be_disabled(self, uow_factory, memory_store, seeded_return):
        await RecalculationService(uow_factory, audit_enabled=False).recalculate(seeded_return)
        assert await memory_store.get_audit_entries(seeded_return) == []

    @pytest.mark.asyncio
    async def test_idempotent(self, service, memory_store, seeded_return):
        first = await service.recalculate(seeded_return)
        second = await service.recalculate(seeded_return)
        assert first.refund == second.refund
        assert first.tax_liability == second.tax_liability
        assert first.fields_written == second.fields_written


class TestReadPaths:
    """Tests for diagnostics and aggregates."""

    @pytest.mark.asyncio
    async def test_get_aggregate(self, service, seeded_return):
        before = await service.get_aggregate(seeded_return)
        assert before.tax_liability == Decimal("0.00")

        await service.recalculate(seeded_return)
        after = await service.get_aggregate(seeded_return)
        assert after.tax_liability == Decimal("7788.00")
        assert after.refund == Decimal("0.00")
        assert after.error_count == 0
        assert after.is_locked is False

    @pytest.mark.asyncio
    async def test_run_diagnostics_does_not_write(self, service, memory_store, seed):
        await seed(memory_store, "r-check", {"W2.EIN": "1234"})

        diagnostics = await service.run_diagnostics_for_return("r-check")

        assert [d.field_id for d in diagnostics] == ["W2.EIN", "1040.FS"]
        assert (await memory_store.get_return("r-check")).diagnostics == []

    @pytest.mark.asyncio
    async def test_read_paths_missing_return(self, service):
        with pytest.raises(ReturnNotFound):
            await service.get_aggregate("nope")
        with pytest.raises(ReturnNotFound):
            await service.run_diagnostics_for_return("nope")

    @pytest.mark.asyncio
    async def test_result_to_dict(self, service, seeded_return):
        data = (await service.recalculate(seeded_return)).to_dict()
        assert data["tax_liability"] == "7788.00"
        assert data["breakdown"]["filing_status"] == "single"
