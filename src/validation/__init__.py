"""Return diagnostics module."""

from .diagnostics import (
    DiagnosticsRunner,
    run_diagnostics,
    default_rules,
    ssn_rule,
    ein_rule,
    positive_amount_rule,
    filing_status_rule,
    make_dependent_age_rule,
    estimated_value_rule,
    FILING_STATUS_KEY,
    CTC_CLAIM_KEY,
)

__all__ = [
    'DiagnosticsRunner',
    'run_diagnostics',
    'default_rules',
    'ssn_rule',
    'ein_rule',
    'positive_amount_rule',
    'filing_status_rule',
    'make_dependent_age_rule',
    'estimated_value_rule',
    'FILING_STATUS_KEY',
    'CTC_CLAIM_KEY',
]
