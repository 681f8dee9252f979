"""
Root pytest configuration.

This conftest is loaded before test collection to ensure
src is in the Python path for all imports.
"""

import sys
from pathlib import Path

# Add src to path IMMEDIATELY when this file is loaded
src_path = Path(__file__).parent / "src"
src_str = str(src_path.absolute())

# Ensure it's at the very front
if src_str in sys.path:
    sys.path.remove(src_str)
sys.path.insert(0, src_str)


import pytest


@pytest.fixture(autouse=True)
def _reset_process_singletons():
    """Reset cached settings, tax config and the event bus between tests."""
    yield
    from config.settings import get_settings
    from config.database import get_database_settings
    from config.tax_config_loader import clear_config_cache
    from domain.event_bus import reset_event_bus

    get_settings.cache_clear()
    get_database_settings.cache_clear()
    clear_config_cache()
    reset_event_bus()


def pytest_configure(config):
    """Additional path setup during pytest configuration."""
    if src_str not in sys.path:
        sys.path.insert(0, src_str)
