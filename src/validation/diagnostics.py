"""
Return diagnostics.

A fixed, ordered list of rules, each a pure function of the full field list.
The runner concatenates their findings in rule order, so identical input
always yields identical output. Rules tolerate empty or partial input and
never raise: a finding is data on the return, not an exception.

Diagnostic ``field_id`` is always the canonical ``form.field`` key.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, List, Optional, Sequence

from domain.aggregates import Field
from domain.field_ids import split_key
from domain.value_objects import (
    Diagnostic,
    DiagnosticSeverity,
    NumberValue,
    StringValue,
    is_truthy,
)

FILING_STATUS_KEY = "1040.FS"
CTC_CLAIM_KEY = "1040.claimCTC"
DEFAULT_DEPENDENT_AGE_LIMIT = 18

SSN_PATTERN = re.compile(r"^\d{3}-\d{2}-\d{4}$")
EIN_PATTERN = re.compile(r"^\d{2}-\d{7}$")
AMOUNT_FIELD_PATTERN = re.compile(r"amt|amount|wages", re.IGNORECASE)

Rule = Callable[[Sequence[Field]], List[Diagnostic]]


def _diagnostic(f: Field, severity: DiagnosticSeverity, message: str) -> Diagnostic:
    form_id, _ = split_key(f.key)
    return Diagnostic(field_id=f.key, form_id=form_id, severity=severity, message=message)


def _text(f: Field) -> Optional[str]:
    """String form of a scalar value, None when empty or not scalar text."""
    if isinstance(f.value, StringValue):
        text = f.value.value.strip()
        return text or None
    if isinstance(f.value, NumberValue):
        return str(f.value.value)
    return None


def _is_ein_field(field_part: str) -> bool:
    return field_part.lower() == "ein" or field_part.endswith(("EIN", "Ein"))


# =============================================================================
# RULES
# =============================================================================

def ssn_rule(fields: Sequence[Field]) -> List[Diagnostic]:
    """SSN fields must read XXX-XX-XXXX."""
    results = []
    for f in fields:
        if "ssn" not in split_key(f.key)[1].lower():
            continue
        text = _text(f)
        if text is not None and not SSN_PATTERN.match(text):
            results.append(_diagnostic(
                f, DiagnosticSeverity.ERROR, "Invalid SSN format (expected XXX-XX-XXXX)"
            ))
    return results


def ein_rule(fields: Sequence[Field]) -> List[Diagnostic]:
    """EIN fields must read XX-XXXXXXX."""
    results = []
    for f in fields:
        if not _is_ein_field(split_key(f.key)[1]):
            continue
        text = _text(f)
        if text is not None and not EIN_PATTERN.match(text):
            results.append(_diagnostic(
                f, DiagnosticSeverity.ERROR, "Invalid EIN format (expected XX-XXXXXXX)"
            ))
    return results


def positive_amount_rule(fields: Sequence[Field]) -> List[Diagnostic]:
    results = []
    for f in fields:
        if not AMOUNT_FIELD_PATTERN.search(split_key(f.key)[1]):
            continue
        if isinstance(f.value, NumberValue) and f.value.value < 0:
            results.append(_diagnostic(f, DiagnosticSeverity.ERROR, "Value must be positive"))
    return results


def filing_status_rule(fields: Sequence[Field]) -> List[Diagnostic]:
    """Exactly one error when 1040.FS is absent or empty."""
    for f in fields:
        if f.key == FILING_STATUS_KEY and not f.value.is_empty():
            return []
    return [Diagnostic(
        field_id=FILING_STATUS_KEY,
        form_id="1040",
        severity=DiagnosticSeverity.ERROR,
        message="Filing Status is required",
    )]


def make_dependent_age_rule(age_limit: int = DEFAULT_DEPENDENT_AGE_LIMIT) -> Rule:
    """
    Build the dependent age rule for an age limit.

    Only applies when the return claims the Child Tax Credit; then every
    dependent age field must be under ``age_limit``.
    """

    def dependent_age_rule(fields: Sequence[Field]) -> List[Diagnostic]:
        claim = next((f for f in fields if f.key == CTC_CLAIM_KEY), None)
        if claim is None or not is_truthy(claim.value):
            return []

        results = []
        for f in fields:
            key = f.key
            if "dependent" not in key.lower():
                continue
            if not split_key(key)[1].lower().endswith("age"):
                continue
            if f.value.is_empty():
                continue
            if f.value.as_decimal() >= age_limit:
                results.append(_diagnostic(
                    f,
                    DiagnosticSeverity.ERROR,
                    f"Dependent must be under {age_limit} to claim the Child Tax Credit",
                ))
        return results

    return dependent_age_rule


def estimated_value_rule(fields: Sequence[Field]) -> List[Diagnostic]:
    return [
        _diagnostic(f, DiagnosticSeverity.WARNING, "Estimated value; confirm before filing")
        for f in fields
        if f.estimated
    ]


def default_rules(dependent_age_limit: int = DEFAULT_DEPENDENT_AGE_LIMIT) -> List[Rule]:
    return [
        ssn_rule,
        ein_rule,
        positive_amount_rule,
        filing_status_rule,
        make_dependent_age_rule(dependent_age_limit),
        estimated_value_rule,
    ]


# =============================================================================
# RUNNER
# =============================================================================

class DiagnosticsRunner:
    """Runs an ordered rule list over a field set."""

    def __init__(self, rules: Optional[Iterable[Rule]] = None):
        self.rules: List[Rule] = list(rules) if rules is not None else default_rules()

    def run(self, fields: Iterable[Field]) -> List[Diagnostic]:
        snapshot = list(fields)
        results: List[Diagnostic] = []
        for rule in self.rules:
            results.extend(rule(snapshot))
        return results


def run_diagnostics(
    fields: Iterable[Field],
    dependent_age_limit: int = DEFAULT_DEPENDENT_AGE_LIMIT,
) -> List[Diagnostic]:
    """
    Run every rule over the field set, in rule order.

    Example:
        >>> [d.field_id for d in run_diagnostics([])]
        ['1040.FS']
    """
    return DiagnosticsRunner(default_rules(dependent_age_limit)).run(fields)
