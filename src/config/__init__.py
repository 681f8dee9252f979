"""Configuration module for the field recalculation engine."""

from .database import DatabaseSettings, get_database_settings
from .settings import Settings, get_settings
from .tax_config_loader import TaxConfigLoader, TaxConfigError, get_config_loader, clear_config_cache

__all__ = [
    "DatabaseSettings",
    "get_database_settings",
    "Settings",
    "get_settings",
    "TaxConfigLoader",
    "TaxConfigError",
    "get_config_loader",
    "clear_config_cache",
]
