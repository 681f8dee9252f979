"""Tests for the SQLAlchemy field store against in-memory SQLite."""

from decimal import Decimal

import pytest

from audit.audit_trail import AuditRecorder
from config.database import DatabaseSettings
from config.settings import Settings
from database.async_engine import (
    check_database_connection,
    close_database,
    create_engine,
    get_session_factory,
    init_database,
)
from database.field_store import SqlFieldStore
from database.unit_of_work import SqlUnitOfWork, SqlUnitOfWorkFactory
from domain.aggregates import AuditEntry, Field, FieldPatch, ReturnPatch, TaxReturn
from domain.events import ReturnRecalculated
from domain.exceptions import DuplicateField
from domain.value_objects import Diagnostic, NumberValue, StructuredValue, wrap_value
from services import build_services


@pytest.fixture
async def sql_engine():
    engine = create_engine(DatabaseSettings(url="sqlite+aiosqlite:///:memory:"))
    await init_database(engine)
    yield engine
    await close_database(engine)


@pytest.fixture
def session_factory(sql_engine):
    return get_session_factory(sql_engine)


@pytest.fixture
async def sql_seeded(session_factory, seed):
    async with SqlUnitOfWork(session_factory) as uow:
        await seed(uow.store)
    return "ret-2025-0001"


class TestAsyncEngine:
    """Tests for engine creation."""

    @pytest.mark.asyncio
    async def test_connection_check(self, sql_engine):
        assert await check_database_connection(sql_engine) is True

    @pytest.mark.asyncio
    async def test_sqlite_file_database(self, tmp_path):
        settings = DatabaseSettings(url=None, sqlite_path=tmp_path / "data" / "fields.db")
        engine = create_engine(settings)
        try:
            await init_database(engine)
            factory = get_session_factory(engine)
            async with SqlUnitOfWork(factory) as uow:
                await uow.store.add_return(TaxReturn(return_id="r-file", year=2025))
                await uow.store.add_field(Field(return_id="r-file", form_id="W2", field_id="box1", value=1))
                assert await uow.store.get_field("r-file", "W2", "box1") is not None
        finally:
            await close_database(engine)

        assert (tmp_path / "data" / "fields.db").is_file()

    @pytest.mark.asyncio
    async def test_unreachable_database_reports_false(self, tmp_path):
        engine = create_engine(DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path}/missing/dir/x.db"))
        try:
            assert await check_database_connection(engine) is False
        finally:
            await close_database(engine)


class TestSqlFieldStore:
    """Tests for SqlFieldStore."""

    @pytest.mark.asyncio
    async def test_round_trip_return_and_fields(self, session_factory, sql_seeded):
        async with SqlUnitOfWork(session_factory) as uow:
            tax_return = await uow.store.get_return(sql_seeded)
            assert tax_return.year == 2025
            box1 = await uow.store.get_field(sql_seeded, "W2", "box1")
            assert box1.value == NumberValue(value=Decimal("50000"))
            assert len(await uow.store.get_fields(sql_seeded)) == 10
            assert await uow.store.get_field(sql_seeded, "W2", "nope") is None

    @pytest.mark.asyncio
    async def test_canonical_duplicate_rejected(self, session_factory, sql_seeded):
        async with SqlUnitOfWork(session_factory) as uow:
            with pytest.raises(DuplicateField):
                await uow.store.add_field(Field(return_id=sql_seeded, form_id="1040", field_id="1040_FS"))

        async with SqlUnitOfWork(session_factory) as uow:
            keys = [f.key for f in await uow.store.get_fields(sql_seeded)]
            assert keys.count("1040.FS") == 1

    @pytest.mark.asyncio
    async def test_legacy_stored_field_found_by_canonical_id(self, session_factory):
        async with SqlUnitOfWork(session_factory) as uow:
            await uow.store.add_return(TaxReturn(return_id="r-legacy", year=2025))
            await uow.store.add_field(Field(return_id="r-legacy", form_id="1040", field_id="1040_line1z", value=7))

        async with SqlUnitOfWork(session_factory) as uow:
            found = await uow.store.get_field("r-legacy", "1040", "line1z")
            assert found.field_id == "1040_line1z"
            assert found.value.as_decimal() == Decimal("7")
            assert (await uow.store.get_field("r-legacy", "1040", "1040:line1z")).id == found.id

    @pytest.mark.asyncio
    async def test_structured_value_round_trip(self, session_factory, sql_seeded):
        value = StructuredValue(value={"_encrypted": True, "data": "abc"})
        async with SqlUnitOfWork(session_factory) as uow:
            await uow.store.add_field(Field(return_id=sql_seeded, form_id="1040", field_id="ssn", value=value))
        async with SqlUnitOfWork(session_factory) as uow:
            assert (await uow.store.get_field(sql_seeded, "1040", "ssn")).value == value

    @pytest.mark.asyncio
    async def test_patch_field_sets_only_given_columns(self, session_factory, sql_seeded):
        async with SqlUnitOfWork(session_factory) as uow:
            f = await uow.store.get_field(sql_seeded, "1040", "line11")
            await uow.store.patch_field(f.id, FieldPatch(overridden=True))
            await uow.store.patch_field(f.id, FieldPatch.engine_write(wrap_value(42)))

        async with SqlUnitOfWork(session_factory) as uow:
            f = await uow.store.get_field(sql_seeded, "1040", "line11")
            assert f.overridden is True
            assert f.calculated is True
            assert f.value.as_decimal() == Decimal("42")

    @pytest.mark.asyncio
    async def test_patch_return_diagnostics(self, session_factory, sql_seeded):
        diag = Diagnostic(field_id="1040.FS", form_id="1040", severity="error", message="Filing Status is required")
        async with SqlUnitOfWork(session_factory) as uow:
            await uow.store.patch_return(sql_seeded, ReturnPatch(
                refund=Decimal("1812.00"), diagnostics=[diag],
            ))
        async with SqlUnitOfWork(session_factory) as uow:
            tax_return = await uow.store.get_return(sql_seeded)
            assert tax_return.refund == Decimal("1812.00")
            assert tax_return.diagnostics == [diag]

    @pytest.mark.asyncio
    async def test_audit_order_and_latest_hash(self, session_factory, sql_seeded):
        async with SqlUnitOfWork(session_factory) as uow:
            for h in ["h1", "h2", "h3"]:
                await uow.store.insert_audit(AuditEntry(
                    return_id=sql_seeded, action="field:update", created_at=1000, hash_chain_entry=h,
                ))
            assert await uow.store.get_latest_audit_hash(sql_seeded) == "h3"

        async with SqlUnitOfWork(session_factory) as uow:
            entries = await uow.store.get_audit_entries(sql_seeded)
            assert [e.hash_chain_entry for e in entries] == ["h1", "h2", "h3"]
            assert entries[0].sequence < entries[1].sequence < entries[2].sequence

    @pytest.mark.asyncio
    async def test_failed_audit_insert_does_not_poison_unit_of_work(self, session_factory, sql_seeded):
        """A duplicate entry id fails inside its savepoint only."""
        entry = AuditEntry(return_id=sql_seeded, action="a", created_at=1, hash_chain_entry="h")
        async with SqlUnitOfWork(session_factory) as uow:
            await uow.store.insert_audit(entry)
            with pytest.raises(Exception):
                await uow.store.insert_audit(entry)
            f = await uow.store.get_field(sql_seeded, "W2", "box1")
            await uow.store.patch_field(f.id, FieldPatch(value=wrap_value(60000)))

        async with SqlUnitOfWork(session_factory) as uow:
            f = await uow.store.get_field(sql_seeded, "W2", "box1")
            assert f.value.as_decimal() == Decimal("60000")
            assert len(await uow.store.get_audit_entries(sql_seeded)) == 1

    @pytest.mark.asyncio
    async def test_event_log(self, session_factory, sql_seeded):
        event = ReturnRecalculated(
            return_id=sql_seeded, tax_year=2025, refund=Decimal("0"), tax_liability=Decimal("7788.00"),
        )
        async with SqlUnitOfWork(session_factory) as uow:
            await uow.store.append_event(event)
        async with SqlUnitOfWork(session_factory) as uow:
            log = await uow.store.get_events(sql_seeded)
        assert log[0]["event_type"] == "calculation:run"
        assert log[0]["tax_liability"] == "7788.00"


class TestSqlUnitOfWork:
    """Tests for SqlUnitOfWork."""

    @pytest.mark.asyncio
    async def test_rollback_on_exception(self, session_factory, sql_seeded):
        with pytest.raises(RuntimeError):
            async with SqlUnitOfWork(session_factory) as uow:
                f = await uow.store.get_field(sql_seeded, "W2", "box1")
                await uow.store.patch_field(f.id, FieldPatch(value=wrap_value(1)))
                raise RuntimeError("boom")

        async with SqlUnitOfWork(session_factory) as uow:
            f = await uow.store.get_field(sql_seeded, "W2", "box1")
            assert f.value.as_decimal() == Decimal("50000")

    @pytest.mark.asyncio
    async def test_store_requires_context(self, session_factory):
        with pytest.raises(RuntimeError):
            SqlUnitOfWork(session_factory).store

    @pytest.mark.asyncio
    async def test_events_published_after_commit(self, session_factory, event_bus):
        received = []
        event_bus.subscribe(ReturnRecalculated, received.append)
        factory = SqlUnitOfWorkFactory(session_factory, event_bus)

        async with factory() as uow:
            await uow.store.add_return(TaxReturn(return_id="r-events", year=2025))
            uow.collect_event(ReturnRecalculated(
                return_id="r-events", tax_year=2025, refund=Decimal("0"), tax_liability=Decimal("0"),
            ))
            assert received == []

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_store_is_usable_directly_with_session(self, session_factory):
        async with session_factory() as session:
            store = SqlFieldStore(session)
            await store.add_return(TaxReturn(return_id="r-direct", year=2024))
            await session.commit()
            assert (await store.get_return("r-direct")).year == 2024


class TestSqlEndToEnd:
    """Services wired over the SQL unit of work."""

    @pytest.mark.asyncio
    async def test_update_recalculate_and_verify(self, session_factory, sql_seeded, actor):
        settings = Settings(encrypt_pii=True, encryption_key="e2e-master-key-0123456789abcdefghij")
        services = build_services(SqlUnitOfWorkFactory(session_factory), settings)

        result = await services.field_updates.update_field_and_recalculate(
            actor, sql_seeded, "W2", "W2_box1", 60000
        )
        assert result.recalculation.tax_liability > Decimal("7788.00")

        await services.field_updates.apply_field_update(actor, sql_seeded, "W2", "box1", 50000)
        await services.field_updates.apply_field_update(actor, sql_seeded, "W2", "EIN", "98-7654321")
        recalculated = await services.recalculation.recalculate(sql_seeded)
        assert recalculated.tax_liability == Decimal("7788.00")
        assert recalculated.diagnostics == []

        async with SqlUnitOfWork(session_factory) as uow:
            stored = await uow.store.get_field(sql_seeded, "W2", "EIN")
            assert isinstance(stored.value, StructuredValue)
            assert (await AuditRecorder(uow.store).verify(sql_seeded)).valid

        aggregate = await services.recalculation.get_aggregate(sql_seeded)
        assert aggregate.tax_liability == Decimal("7788.00")
