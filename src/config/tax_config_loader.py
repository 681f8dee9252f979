"""
Tax Configuration Loader.

Loads year-versioned tax constants from YAML configuration files, enabling:
- Annual updates without code changes
- Environment-specific overrides
- One explicit configuration object per tax year, injected into the engine
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from domain.exceptions import UnsupportedTaxYear

logger = logging.getLogger(__name__)

# Default config directory
CONFIG_DIR = Path(__file__).parent / "tax_parameters"

REQUIRED_PARAMETERS = (
    "standard_deduction",
    "additional_standard_deduction",
    "se_tax_rate",
    "marginal_rate",
    "ctc_agi_threshold",
)


class TaxConfigError(ValueError):
    """Raised when a tax configuration file is incomplete or malformed."""
    pass


@dataclass
class ConfigMetadata:
    """Metadata about a configuration file."""
    version: str
    tax_year: int
    effective_date: str = ""
    source: str = "IRS"  # "IRS", "custom"
    irs_references: List[str] = field(default_factory=list)
    last_updated: str = ""
    notes: str = ""


def _parse_scalar(value: str) -> Any:
    if '.' in value:
        try:
            return float(value)
        except ValueError:
            return value
    if value.isdigit():
        return int(value)
    return value


class TaxConfigLoader:
    """
    Loads and caches tax configuration from YAML files.

    Features:
    - File discovery by tax year (``tax_year_<year>.yaml``)
    - Environment variable overrides
    - Required-parameter validation
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize the config loader.

        Args:
            config_dir: Directory containing YAML config files.
                       Defaults to src/config/tax_parameters/
        """
        self.config_dir = Path(config_dir) if config_dir else CONFIG_DIR
        self._configs: Dict[int, Dict[str, Any]] = {}
        self._year_configs: Dict[int, Any] = {}
        self._metadata: Dict[int, ConfigMetadata] = {}

    def available_years(self) -> List[int]:
        """Tax years with a configuration file, ascending."""
        years = []
        for path in self.config_dir.glob("tax_year_*.yaml"):
            suffix = path.stem[len("tax_year_"):]
            if suffix.isdigit():
                years.append(int(suffix))
        return sorted(years)

    def load_config(self, tax_year: int) -> Dict[str, Any]:
        """
        Load raw parameters for a specific tax year.

        Raises:
            UnsupportedTaxYear: If no file exists for the year
            TaxConfigError: If required parameters are missing
        """
        if tax_year in self._configs:
            return self._configs[tax_year]

        config = self._load_from_file(tax_year)
        config = self._apply_env_overrides(config, tax_year)
        self._validate_config(config, tax_year)

        self._configs[tax_year] = config
        return config

    def get_year_config(self, tax_year: int):
        """
        Load the TaxYearConfig for a tax year.

        Raises:
            UnsupportedTaxYear: If no file exists for the year
        """
        if tax_year not in self._year_configs:
            from calculator.tax_year_config import TaxYearConfig

            self._year_configs[tax_year] = TaxYearConfig.from_mapping(
                tax_year, self.load_config(tax_year)
            )
        return self._year_configs[tax_year]

    def _load_from_file(self, tax_year: int) -> Dict[str, Any]:
        year_file = self.config_dir / f"tax_year_{tax_year}.yaml"
        if not year_file.exists():
            logger.warning(f"No config file found for tax year {tax_year}")
            raise UnsupportedTaxYear(tax_year)

        logger.info(f"Loading tax config from {year_file}")
        with open(year_file, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise TaxConfigError(f"{year_file} must contain a mapping")

        if '_metadata' in data:
            self._metadata[tax_year] = ConfigMetadata(**data.pop('_metadata'))
        return data

    def _apply_env_overrides(self, config: Dict[str, Any], tax_year: int) -> Dict[str, Any]:
        """
        Apply environment variable overrides to configuration.

        ``TAX_2025_MARGINAL_RATE=0.24`` replaces a scalar;
        ``TAX_2025_STANDARD_DEDUCTION_SINGLE=15000`` replaces one row of a
        per-filing-status table.
        """
        prefix = f"TAX_{tax_year}_"

        for key, value in os.environ.items():
            if not key.startswith(prefix):
                continue
            param_name = key[len(prefix):].lower()
            parsed = _parse_scalar(value)

            table_name = next(
                (name for name, table in config.items()
                 if isinstance(table, dict) and param_name.startswith(name + "_")),
                None,
            )
            if table_name is not None:
                row = param_name[len(table_name) + 1:]
                config[table_name] = {**config[table_name], row: parsed}
            else:
                config[param_name] = parsed
            logger.info(f"Applied env override: {param_name}={value}")

        return config

    def _validate_config(self, config: Dict[str, Any], tax_year: int) -> None:
        missing = [p for p in REQUIRED_PARAMETERS if p not in config]
        if missing:
            raise TaxConfigError(f"Missing required parameters for {tax_year}: {missing}")

        if "single" not in config["standard_deduction"]:
            raise TaxConfigError(f"standard_deduction for {tax_year} has no 'single' row")
        if "single" not in config["ctc_agi_threshold"]:
            raise TaxConfigError(f"ctc_agi_threshold for {tax_year} has no 'single' row")

    def get_parameter(
        self,
        param_name: str,
        tax_year: int,
        filing_status: Optional[str] = None,
        default: Any = None
    ) -> Any:
        """
        Get a specific parameter value.

        If the parameter is a per-filing-status table and ``filing_status``
        is given, returns that row (falling back to ``single``).
        """
        config = self.load_config(tax_year)
        value = config.get(param_name, default)

        if isinstance(value, dict) and filing_status:
            return value.get(filing_status, value.get('single', default))

        return value

    def get_metadata(self, tax_year: int) -> Optional[ConfigMetadata]:
        """Get metadata for a tax year's configuration."""
        self.load_config(tax_year)
        return self._metadata.get(tax_year)

    def compare_years(self, year1: int, year2: int) -> Dict[str, Dict[str, Any]]:
        """
        Compare configuration between two tax years.

        Returns:
            Dictionary with 'added', 'removed', 'changed' keys
        """
        config1 = self.load_config(year1)
        config2 = self.load_config(year2)

        keys1 = set(config1.keys())
        keys2 = set(config2.keys())

        return {
            'added': {k: config2[k] for k in keys2 - keys1},
            'removed': {k: config1[k] for k in keys1 - keys2},
            'changed': {
                k: {'old': config1[k], 'new': config2[k]}
                for k in keys1 & keys2
                if config1[k] != config2[k]
            }
        }


# Global singleton
_config_loader: Optional[TaxConfigLoader] = None


def get_config_loader() -> TaxConfigLoader:
    """Get the global config loader instance."""
    global _config_loader
    if _config_loader is None:
        _config_loader = TaxConfigLoader()
    return _config_loader


def clear_config_cache() -> None:
    """Clear the configuration cache (useful for testing)."""
    global _config_loader
    _config_loader = None
