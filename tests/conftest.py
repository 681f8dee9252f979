"""Pytest configuration and fixtures for test suite."""

import os
import sys
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_MASTER_KEY", "test-master-key-" + "0" * 32)

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from calculator.tax_year_config import TaxYearConfig
from database.memory_store import InMemoryFieldStore, InMemoryUnitOfWorkFactory
from domain.aggregates import Field, TaxReturn
from domain.event_bus import EventBus
from domain.value_objects import Actor


TEST_RETURN_ID = "ret-2025-0001"
TEST_ACTOR = Actor(user_id="user-1", name="Test Preparer", session_id="sess-1")

# Form set instantiated for a W-2 wage earner
W2_FORM_SET = {
    "W2.box1": 50000,
    "W2.EIN": "12-3456789",
    "1040.FS": "single",
    "1040.line1z": None,
    "1040.line3": None,
    "1040.line11": None,
    "1040.line12": None,
    "1040.line15": None,
    "1040.line24": None,
    "SchSE.seTax": None,
}


def make_fields(return_id, values):
    """Build Field records from a ``{"form.field": value}`` mapping."""
    fields = []
    for key, value in values.items():
        form_id, field_id = key.split(".", 1)
        fields.append(Field(return_id=return_id, form_id=form_id, field_id=field_id, value=value))
    return fields


async def seed_return(store, return_id=TEST_RETURN_ID, values=None, year=2025, **return_kwargs):
    """Add a return and its fields to a store."""
    await store.add_return(TaxReturn(return_id=return_id, year=year, **return_kwargs))
    for f in make_fields(return_id, W2_FORM_SET if values is None else values):
        await store.add_field(f)
    return return_id


@pytest.fixture
def config_2025():
    """Tax constants for 2025."""
    return TaxYearConfig.for_2025()


@pytest.fixture
def event_bus():
    """Isolated event bus."""
    return EventBus()


@pytest.fixture
def memory_store():
    """Empty in-memory field store."""
    return InMemoryFieldStore()


@pytest.fixture
def uow_factory(memory_store, event_bus):
    """Unit of work factory over the in-memory store."""
    return InMemoryUnitOfWorkFactory(memory_store, event_bus)


@pytest.fixture
async def seeded_return(memory_store):
    """Return id of a 2025 W-2 return seeded into the in-memory store."""
    return await seed_return(memory_store)


@pytest.fixture
def seed():
    """The ``seed_return`` helper, for tests that build their own form set."""
    return seed_return


@pytest.fixture
def actor():
    return TEST_ACTOR
