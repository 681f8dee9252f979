"""
Filing status parsing.

Returns store the filing status as free text in ``1040.FS``. Producers use
the long names, short aliases or the IRS numeric codes (1-5); all of them
normalize to one FilingStatus. A missing status reads as single.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from domain.exceptions import UnknownFilingStatus


class FilingStatus(str, Enum):
    SINGLE = "single"
    MARRIED_JOINT = "married_joint"
    MARRIED_SEPARATE = "married_separate"
    HEAD_OF_HOUSEHOLD = "head_of_household"
    QUALIFYING_WIDOW = "qualifying_widow"


_ALIASES = {
    "single": FilingStatus.SINGLE,
    "s": FilingStatus.SINGLE,
    "1": FilingStatus.SINGLE,
    "married_joint": FilingStatus.MARRIED_JOINT,
    "married_filing_jointly": FilingStatus.MARRIED_JOINT,
    "mfj": FilingStatus.MARRIED_JOINT,
    "2": FilingStatus.MARRIED_JOINT,
    "married_separate": FilingStatus.MARRIED_SEPARATE,
    "married_filing_separately": FilingStatus.MARRIED_SEPARATE,
    "mfs": FilingStatus.MARRIED_SEPARATE,
    "3": FilingStatus.MARRIED_SEPARATE,
    "head_of_household": FilingStatus.HEAD_OF_HOUSEHOLD,
    "hoh": FilingStatus.HEAD_OF_HOUSEHOLD,
    "4": FilingStatus.HEAD_OF_HOUSEHOLD,
    "qualifying_widow": FilingStatus.QUALIFYING_WIDOW,
    "qualifying_widower": FilingStatus.QUALIFYING_WIDOW,
    "qualifying_surviving_spouse": FilingStatus.QUALIFYING_WIDOW,
    "qw": FilingStatus.QUALIFYING_WIDOW,
    "qss": FilingStatus.QUALIFYING_WIDOW,
    "5": FilingStatus.QUALIFYING_WIDOW,
}


def parse_filing_status(raw: Any, tax_year: Optional[int] = None) -> FilingStatus:
    """
    Normalize a stored filing status.

    Examples:
        >>> parse_filing_status("Married Filing Jointly")
        <FilingStatus.MARRIED_JOINT: 'married_joint'>
        >>> parse_filing_status(None)
        <FilingStatus.SINGLE: 'single'>

    Raises:
        UnknownFilingStatus: If the value is not a recognized spelling
    """
    if raw is None:
        return FilingStatus.SINGLE
    if isinstance(raw, FilingStatus):
        return raw
    if isinstance(raw, Decimal) and raw.is_finite() and raw == raw.to_integral_value():
        raw = int(raw)
    text = str(raw).strip().lower()
    if not text:
        return FilingStatus.SINGLE
    key = "_".join(text.replace("-", " ").split())
    try:
        return _ALIASES[key]
    except KeyError:
        raise UnknownFilingStatus(str(raw), tax_year) from None
