from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from domain.aggregates import Field
from domain.field_ids import compose_key, split_key
from domain.value_objects import (
    Diagnostic,
    DiagnosticSeverity,
    FieldValue,
    NumberValue,
    is_truthy,
)
from calculator.decimal_math import add, money, multiply, non_negative, subtract, to_decimal
from calculator.filing_status import FilingStatus, parse_filing_status
from calculator.tax_year_config import TaxYearConfig, config_for

logger = logging.getLogger(__name__)


# formId -> fieldId -> value, canonical ids
FormsSnapshot = Mapping[str, Mapping[str, FieldValue]]

CTC_DIAGNOSTIC_FIELD = "1040.line19"
CTC_DIAGNOSTIC_MESSAGE = "AGI too high for Child Tax Credit"
MISSING_EIN_FIELD = "W2.EIN"
MISSING_EIN_MESSAGE = "Missing EIN"


@dataclass(frozen=True)
class UpdatedField:
    """A value the engine wants written. Carries no knowledge of override locks."""
    form_id: str
    field_id: str
    value: Decimal

    @property
    def key(self) -> str:
        return compose_key(self.form_id, self.field_id)

    @property
    def field_value(self) -> NumberValue:
        return NumberValue(value=self.value)


@dataclass
class CalculationBreakdown:
    """Intermediate figures behind a calculation result."""
    tax_year: int
    filing_status: str

    wages: Decimal = Decimal("0.00")
    business_profit: Decimal = Decimal("0.00")
    agi: Decimal = Decimal("0.00")
    deduction_type: str = "standard"  # "standard" or "itemized"
    standard_deduction: Decimal = Decimal("0.00")
    itemized_deduction: Decimal = Decimal("0.00")
    deduction_amount: Decimal = Decimal("0.00")
    taxable_income: Decimal = Decimal("0.00")
    income_tax: Decimal = Decimal("0.00")
    self_employment_tax: Decimal = Decimal("0.00")
    total_tax: Decimal = Decimal("0.00")
    withholding: Decimal = Decimal("0.00")
    withholding_source: str = "default"  # "default" or "W2.box2"
    ctc_eligible: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}


@dataclass
class CalculationResult:
    refund: Decimal
    tax_liability: Decimal
    diagnostics: List[Diagnostic] = field(default_factory=list)
    updated_fields: List[UpdatedField] = field(default_factory=list)
    breakdown: Optional[CalculationBreakdown] = None

    def updated_value(self, key: str) -> Optional[Decimal]:
        """Value the engine computed for a canonical key, if any."""
        for item in self.updated_fields:
            if item.key == key:
                return item.value
        return None


def build_snapshot(fields: Iterable[Field]) -> Dict[str, Dict[str, FieldValue]]:
    """
    Group stored fields into a forms snapshot keyed by canonical ids.

    Legacy ids in any dialect land under the same canonical form/field.
    """
    forms: Dict[str, Dict[str, FieldValue]] = {}
    for f in fields:
        form_id, field_id = split_key(f.key)
        forms.setdefault(form_id, {})[field_id] = f.value
    return forms


class FieldCalculationEngine:
    """
    Pure, stateless federal calculation over a forms snapshot.

    The engine only reads values and reports what it would write. It never
    touches a store, so it is safe to call concurrently for different returns.

    Figures (year-versioned constants from TaxYearConfig):
    - deduction = max(standard deduction for filing status + qualifiers, itemized)
    - AGI = wages + business profit
    - SE tax = se_tax_rate x positive business profit
    - liability = max(AGI - deduction, 0) x marginal_rate + SE tax
    - refund = max(0, withholding - liability)
    """

    def __init__(self, config: Optional[TaxYearConfig] = None):
        self.config = config

    def calculate(self, year: int, forms: FormsSnapshot) -> CalculationResult:
        config = config_for(year, self.config)
        reader = _SnapshotReader(forms)

        filing_status = parse_filing_status(reader.raw("1040", "FS"), config.tax_year)
        breakdown = CalculationBreakdown(tax_year=config.tax_year, filing_status=filing_status.value)
        diagnostics: List[Diagnostic] = []

        wages = reader.number("W2", "box1")
        profit = reader.number("SchC", "netProfit")
        itemized = reader.number("1040", "itemizedDeduction")

        # Deduction
        standard = self._standard_deduction(config, filing_status, reader)
        deduction = standard if standard >= itemized else itemized
        breakdown.deduction_type = "standard" if standard >= itemized else "itemized"

        agi = add(wages, profit)

        # Child Tax Credit eligibility
        threshold = config.ctc_threshold_for(filing_status)
        if agi >= threshold:
            breakdown.ctc_eligible = False
            diagnostics.append(Diagnostic(
                field_id=CTC_DIAGNOSTIC_FIELD,
                form_id="1040",
                severity=DiagnosticSeverity.WARNING,
                message=CTC_DIAGNOSTIC_MESSAGE,
            ))

        se_tax = money(multiply(profit, config.se_tax_rate)) if profit > 0 else Decimal("0.00")

        taxable_income = non_negative(subtract(agi, deduction))
        income_tax = money(multiply(taxable_income, config.marginal_rate))
        liability = money(add(income_tax, se_tax))

        if reader.present("W2", "box2"):
            withholding = money(reader.number("W2", "box2"))
            breakdown.withholding_source = "W2.box2"
        else:
            withholding = money(config.default_withholding)
        refund = money(non_negative(subtract(withholding, liability)))

        # Missing EIN
        if not reader.present("W2", "EIN"):
            diagnostics.append(Diagnostic(
                field_id=MISSING_EIN_FIELD,
                form_id="W2",
                severity=DiagnosticSeverity.ERROR,
                message=MISSING_EIN_MESSAGE,
            ))

        updated = [
            UpdatedField("1040", "line1z", money(wages)),
            UpdatedField("1040", "line3", money(profit)),
        ]
        if profit > 0:
            updated.append(UpdatedField("SchSE", "seTax", se_tax))
        updated.extend([
            UpdatedField("1040", "line11", money(agi)),
            UpdatedField("1040", "line12", money(deduction)),
            UpdatedField("1040", "line15", money(taxable_income)),
            UpdatedField("1040", "line24", liability),
        ])

        breakdown.wages = money(wages)
        breakdown.business_profit = money(profit)
        breakdown.agi = money(agi)
        breakdown.standard_deduction = money(standard)
        breakdown.itemized_deduction = money(itemized)
        breakdown.deduction_amount = money(deduction)
        breakdown.taxable_income = money(taxable_income)
        breakdown.income_tax = income_tax
        breakdown.self_employment_tax = se_tax
        breakdown.total_tax = liability
        breakdown.withholding = withholding

        logger.debug(
            f"Calculated tax year {config.tax_year}: agi={breakdown.agi} "
            f"liability={liability} refund={refund}"
        )

        return CalculationResult(
            refund=refund,
            tax_liability=liability,
            diagnostics=diagnostics,
            updated_fields=updated,
            breakdown=breakdown,
        )

    def _standard_deduction(
        self,
        config: TaxYearConfig,
        filing_status: FilingStatus,
        reader: "_SnapshotReader",
    ) -> Decimal:
        base = config.standard_deduction_for(filing_status)

        # Age and blindness each count for the primary taxpayer
        qualifiers = Decimal("0")
        if is_truthy(reader.get("1040", "age65OrOlder")):
            qualifiers += 1
        if is_truthy(reader.get("1040", "blind")):
            qualifiers += 1
        extra = reader.number("1040", "extraDeductionQualifiers")
        if extra > 0:
            qualifiers += extra.to_integral_value()

        return add(base, multiply(qualifiers, config.additional_standard_deduction))


class _SnapshotReader:
    """Typed access to a snapshot; absent fields read as empty."""

    def __init__(self, forms: FormsSnapshot):
        self._forms = forms

    def get(self, form_id: str, field_id: str) -> Optional[FieldValue]:
        return self._forms.get(form_id, {}).get(field_id)

    def raw(self, form_id: str, field_id: str) -> Any:
        value = self.get(form_id, field_id)
        return value.unwrap() if value is not None else None

    def present(self, form_id: str, field_id: str) -> bool:
        value = self.get(form_id, field_id)
        return value is not None and not value.is_empty()

    def number(self, form_id: str, field_id: str) -> Decimal:
        value = self.get(form_id, field_id)
        if value is None:
            return Decimal("0")
        return to_decimal(value.as_decimal())


def calculate(
    year: int,
    forms: FormsSnapshot,
    config: Optional[TaxYearConfig] = None,
) -> CalculationResult:
    """
    Calculate a return from its forms snapshot.

    Args:
        year: Tax year of the return
        forms: formId -> fieldId -> FieldValue, canonical ids
        config: Constants to use; loaded for ``year`` when omitted

    Raises:
        UnknownFilingStatus: If ``1040.FS`` holds an unrecognized status
        UnsupportedTaxYear: If no constants exist for ``year``
    """
    return FieldCalculationEngine(config).calculate(year, forms)
