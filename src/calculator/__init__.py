from .engine import (
    FieldCalculationEngine,
    CalculationResult,
    CalculationBreakdown,
    UpdatedField,
    build_snapshot,
    calculate,
)
from .filing_status import FilingStatus, parse_filing_status
from .tax_year_config import TaxYearConfig

__all__ = [
    "FieldCalculationEngine",
    "CalculationResult",
    "CalculationBreakdown",
    "UpdatedField",
    "build_snapshot",
    "calculate",
    "FilingStatus",
    "parse_filing_status",
    "TaxYearConfig",
]
