from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from domain.exceptions import UnknownFilingStatus

from .decimal_math import to_decimal
from .filing_status import FilingStatus


DecimalTable = Dict[str, Decimal]


def _decimal_table(raw: Mapping[str, Any]) -> DecimalTable:
    return {str(k): to_decimal(v) for k, v in raw.items()}


@dataclass(frozen=True)
class TaxYearConfig:
    """
    Centralized constants for a given tax year.

    NOTE: Values are loaded from ``config/tax_parameters/tax_year_<year>.yaml``
    and should be reviewed annually against IRS published figures. The engine
    takes an instance as input; no call site carries its own literals.
    """

    tax_year: int
    standard_deduction: DecimalTable
    additional_standard_deduction: Decimal
    se_tax_rate: Decimal
    marginal_rate: Decimal
    ctc_agi_threshold: DecimalTable
    default_withholding: Decimal = Decimal("2000")
    dependent_age_limit: int = 18
    source: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def standard_deduction_for(self, filing_status: FilingStatus) -> Decimal:
        """
        Base standard deduction for a filing status.

        Raises:
            UnknownFilingStatus: If the table has no row for the status
        """
        try:
            return self.standard_deduction[filing_status.value]
        except KeyError:
            raise UnknownFilingStatus(filing_status.value, self.tax_year) from None

    def ctc_threshold_for(self, filing_status: FilingStatus) -> Decimal:
        """AGI at which the child tax credit is no longer available."""
        table = self.ctc_agi_threshold
        if filing_status.value in table:
            return table[filing_status.value]
        return table[FilingStatus.SINGLE.value]

    @classmethod
    def from_mapping(cls, tax_year: int, data: Mapping[str, Any]) -> "TaxYearConfig":
        """
        Build a config from a parsed YAML mapping.

        Raises:
            KeyError: If a required parameter is missing
        """
        return cls(
            tax_year=tax_year,
            standard_deduction=_decimal_table(data["standard_deduction"]),
            additional_standard_deduction=to_decimal(data["additional_standard_deduction"]),
            se_tax_rate=to_decimal(data["se_tax_rate"]),
            marginal_rate=to_decimal(data["marginal_rate"]),
            ctc_agi_threshold=_decimal_table(data["ctc_agi_threshold"]),
            default_withholding=to_decimal(data.get("default_withholding", 2000)),
            dependent_age_limit=int(data.get("dependent_age_limit", 18)),
            source=dict(data),
        )

    @staticmethod
    def for_year(tax_year: int) -> "TaxYearConfig":
        """
        Load tax configuration for any configured year.

        Raises:
            UnsupportedTaxYear: If no YAML file exists for the year
        """
        from config.tax_config_loader import get_config_loader

        return get_config_loader().get_year_config(tax_year)

    @staticmethod
    def for_2025() -> "TaxYearConfig":
        return TaxYearConfig.for_year(2025)

    @staticmethod
    def for_2024() -> "TaxYearConfig":
        """
        Load 2024 tax year configuration.

        HISTORICAL YEAR - Use for amended returns and year-over-year comparisons only.
        """
        return TaxYearConfig.for_year(2024)


def config_for(tax_year: int, override: Optional[TaxYearConfig] = None) -> TaxYearConfig:
    """Use ``override`` when given, else load the year's configuration."""
    if override is not None:
        return override
    return TaxYearConfig.for_year(tax_year)
