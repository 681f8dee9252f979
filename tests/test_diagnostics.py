"""Tests for the return diagnostics pipeline."""

from domain.aggregates import Field
from domain.value_objects import DiagnosticSeverity
from validation.diagnostics import (
    DiagnosticsRunner,
    ein_rule,
    estimated_value_rule,
    filing_status_rule,
    make_dependent_age_rule,
    positive_amount_rule,
    run_diagnostics,
    ssn_rule,
)


def field(key, value=None, **kwargs):
    form_id, field_id = key.split(".", 1)
    return Field(return_id="r1", form_id=form_id, field_id=field_id, value=value, **kwargs)


FILED = field("1040.FS", "single")


class TestFilingStatusRule:
    """Tests for the required filing status."""

    def test_missing_filing_status_yields_exactly_one_error(self):
        diagnostics = run_diagnostics([field("W2.box1", 100)])
        assert len(diagnostics) == 1
        assert diagnostics[0].field_id == "1040.FS"
        assert diagnostics[0].form_id == "1040"
        assert diagnostics[0].severity == DiagnosticSeverity.ERROR

    def test_empty_filing_status_counts_as_missing(self):
        assert len(filing_status_rule([field("1040.FS", "  ")])) == 1

    def test_legacy_key_satisfies_rule(self):
        legacy = Field(return_id="r1", form_id="1040", field_id="1040_FS", value="single")
        assert filing_status_rule([legacy]) == []

    def test_empty_input(self):
        assert [d.field_id for d in run_diagnostics([])] == ["1040.FS"]


class TestIdentifierRules:
    """Tests for SSN and EIN formats."""

    def test_bad_ssn(self):
        diagnostics = ssn_rule([field("1040.taxpayerSSN", "123456789")])
        assert len(diagnostics) == 1
        assert diagnostics[0].field_id == "1040.taxpayerSSN"
        assert "XXX-XX-XXXX" in diagnostics[0].message

    def test_good_or_empty_ssn(self):
        assert ssn_rule([field("1040.ssn", "123-45-6789"), field("1040.spouseSsn", "")]) == []

    def test_bad_ein(self):
        diagnostics = ein_rule([field("W2.EIN", "12345")])
        assert [d.message for d in diagnostics] == ["Invalid EIN format (expected XX-XXXXXXX)"]

    def test_employer_ein_suffix(self):
        assert len(ein_rule([field("W2.employerEIN", "1-1")])) == 1
        assert ein_rule([field("W2.employerEIN", "12-3456789")]) == []

    def test_non_identifier_fields_ignored(self):
        assert ein_rule([field("1040.line1z", "abc")]) == []


class TestAmountRule:
    """Tests for the positive amount rule."""

    def test_negative_amount(self):
        diagnostics = positive_amount_rule([field("W2.wages", -5), field("SchA.giftAmt", -1)])
        assert [d.field_id for d in diagnostics] == ["W2.wages", "SchA.giftAmt"]
        assert all(d.message == "Value must be positive" for d in diagnostics)

    def test_non_amount_fields_may_be_negative(self):
        assert positive_amount_rule([field("SchC.netProfit", -500)]) == []


class TestDependentAgeRule:
    """Tests for the child tax credit dependent age rule."""

    def test_only_applies_when_claiming_ctc(self):
        rule = make_dependent_age_rule(18)
        assert rule([field("Dependents.dependent1Age", 19)]) == []

    def test_flags_dependents_at_or_over_limit(self):
        rule = make_dependent_age_rule(18)
        diagnostics = rule([
            field("1040.claimCTC", True),
            field("Dependents.dependent1Age", 17),
            field("Dependents.dependent2Age", 18),
            field("Dependents.dependent3Age", None),
        ])
        assert [d.field_id for d in diagnostics] == ["Dependents.dependent2Age"]
        assert diagnostics[0].message == "Dependent must be under 18 to claim the Child Tax Credit"

    def test_limit_comes_from_configuration(self):
        fields = [FILED, field("1040.claimCTC", "yes"), field("Dependents.dependentAge", 17)]
        assert run_diagnostics(fields, dependent_age_limit=18) == []
        assert len(run_diagnostics(fields, dependent_age_limit=17)) == 1


class TestEstimatedRule:
    def test_estimated_fields_warn(self):
        diagnostics = estimated_value_rule([field("W2.box1", 100, estimated=True), FILED])
        assert len(diagnostics) == 1
        assert diagnostics[0].severity == DiagnosticSeverity.WARNING


class TestDiagnosticsRunner:
    """Tests for rule ordering and determinism."""

    def test_results_follow_rule_order(self):
        fields = [
            field("W2.EIN", "bad"),
            field("1040.ssn", "bad"),
            field("W2.wages", -1),
        ]
        assert [d.field_id for d in run_diagnostics(fields)] == [
            "1040.ssn", "W2.EIN", "W2.wages", "1040.FS",
        ]

    def test_deterministic(self):
        fields = [field("W2.EIN", "bad"), field("1040.ssn", "bad"), field("W2.box1", 1, estimated=True)]
        assert run_diagnostics(fields) == run_diagnostics(list(fields))

    def test_custom_rule_list(self):
        runner = DiagnosticsRunner([filing_status_rule])
        assert len(runner.run([field("W2.EIN", "bad")])) == 1
