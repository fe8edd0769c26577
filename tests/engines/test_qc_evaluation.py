"""
Tests for the QC evaluation engine.

Covers:
- Inclusive bounds for RANGE / MIN / MAX
- Fail reasons carry the measured value and the criterion
- Wrong-kind values are rejected, never silently failed
- Aggregation of result rows into a batch QC status
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from fulfillment_engines import criteria_text, evaluate, summarize, validate_rule
from fulfillment_engines.qc_evaluation import coerce_numeric
from fulfillment_engines.tracer import fingerprint
from fulfillment_kernel.domain.qc import AcceptanceRule, QcResultState, RuleType
from fulfillment_kernel.exceptions import ValidationError

PH_RULE = AcceptanceRule(RuleType.RANGE, Decimal("4.5"), Decimal("7.5"), "pH")
PURITY_RULE = AcceptanceRule(RuleType.MIN, Decimal("95"), None, "%")
ENDOTOXIN_RULE = AcceptanceRule(RuleType.MAX, None, Decimal("17.5"), "EU/mL")
STERILITY_RULE = AcceptanceRule(RuleType.PASS_FAIL)


class TestRangeRule:

    @pytest.mark.parametrize("value", ["4.5", "6.0", "7.5"])
    def test_bounds_are_inclusive(self, value):
        assert evaluate(rule=PH_RULE, value=Decimal(value)).passed

    def test_below_range(self):
        result = evaluate(rule=PH_RULE, value=Decimal("4.4"))
        assert not result.passed
        assert result.fail_reason == "Value 4.4 pH is outside range 4.5–7.5 pH"

    def test_above_range(self):
        result = evaluate(rule=PH_RULE, value=Decimal("8"))
        assert not result.passed
        assert "8 pH" in result.fail_reason

    def test_accepts_int_and_float(self):
        assert evaluate(rule=PH_RULE, value=6).passed
        assert evaluate(rule=PH_RULE, value=7.5).passed

    @given(st.decimals(min_value=Decimal("-100"), max_value=Decimal("100"), places=3))
    def test_pass_iff_within_bounds(self, value):
        passed = evaluate(rule=PH_RULE, value=value).passed
        assert passed == (Decimal("4.5") <= value <= Decimal("7.5"))


class TestMinMaxRules:

    def test_min_at_bound_passes(self):
        assert evaluate(rule=PURITY_RULE, value=Decimal("95.0")).passed

    def test_min_below_bound(self):
        result = evaluate(rule=PURITY_RULE, value=Decimal("94.99"))
        assert not result.passed
        assert result.fail_reason == "Value 94.99 % is below minimum 95 %"

    def test_max_at_bound_passes(self):
        assert evaluate(rule=ENDOTOXIN_RULE, value=Decimal("17.5")).passed

    def test_max_above_bound(self):
        result = evaluate(rule=ENDOTOXIN_RULE, value=Decimal("17.6"))
        assert not result.passed
        assert result.fail_reason == "Value 17.6 EU/mL exceeds maximum 17.5 EU/mL"

    def test_rule_without_unit(self):
        rule = AcceptanceRule(RuleType.MIN, Decimal("1"))
        assert evaluate(rule=rule, value=Decimal("0.5")).fail_reason == (
            "Value 0.5 is below minimum 1"
        )


class TestPassFailRule:

    def test_true_passes(self):
        result = evaluate(rule=STERILITY_RULE, value=True)
        assert result.passed
        assert result.fail_reason is None

    def test_false_fails(self):
        result = evaluate(rule=STERILITY_RULE, value=False)
        assert not result.passed
        assert result.fail_reason == "Test marked as failed"

    @pytest.mark.parametrize("value", [1, Decimal("1"), "true"])
    def test_non_boolean_rejected(self, value):
        with pytest.raises(ValidationError):
            evaluate(rule=STERILITY_RULE, value=value)


class TestValueValidation:

    def test_boolean_rejected_for_numeric_rule(self):
        with pytest.raises(ValidationError):
            evaluate(rule=PH_RULE, value=True)

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", None, [6]])
    def test_non_numbers_rejected(self, value):
        with pytest.raises(ValidationError):
            coerce_numeric(value)

    def test_numeric_string_accepted(self):
        assert coerce_numeric("6.80") == Decimal("6.80")

    def test_float_goes_through_str(self):
        assert coerce_numeric(0.1) == Decimal("0.1")


class TestRuleValidation:

    def test_range_needs_both_bounds(self):
        with pytest.raises(ValidationError):
            validate_rule(AcceptanceRule(RuleType.RANGE, Decimal("1"), None))

    def test_range_min_above_max(self):
        with pytest.raises(ValidationError):
            validate_rule(AcceptanceRule(RuleType.RANGE, Decimal("8"), Decimal("7")))

    def test_min_needs_min(self):
        with pytest.raises(ValidationError):
            validate_rule(AcceptanceRule(RuleType.MIN, None, Decimal("7")))

    def test_max_needs_max(self):
        with pytest.raises(ValidationError):
            validate_rule(AcceptanceRule(RuleType.MAX, Decimal("1"), None))

    def test_degenerate_range_is_valid(self):
        rule = AcceptanceRule(RuleType.RANGE, Decimal("7"), Decimal("7"))
        validate_rule(rule)
        assert evaluate(rule=rule, value=Decimal("7")).passed


class TestCriteriaText:

    def test_all_rule_types(self):
        assert criteria_text(PH_RULE) == "4.5–7.5 pH"
        assert criteria_text(PURITY_RULE) == "≥95 %"
        assert criteria_text(ENDOTOXIN_RULE) == "≤17.5 EU/mL"
        assert criteria_text(STERILITY_RULE) == "Pass/Fail"

    def test_trailing_zeros_dropped(self):
        rule = AcceptanceRule(RuleType.MIN, Decimal("95.000000000"), None, "%")
        assert criteria_text(rule) == "≥95 %"

    def test_no_exponent_notation(self):
        # Decimal("100.0").normalize() is Decimal("1E+2").
        rule = AcceptanceRule(RuleType.MAX, None, Decimal("100.0"), "MBq")
        assert criteria_text(rule) == "≤100 MBq"


class TestSummarize:

    def test_empty(self):
        summary = summarize([])
        assert summary.total == 0
        assert summary.progress_percent == 0
        assert summary.is_complete

    def test_counts_and_progress(self):
        summary = summarize([
            QcResultState(is_required=True, completed=True, passed=True),
            QcResultState(is_required=True, completed=True, passed=False),
            QcResultState(is_required=True, completed=False, passed=None),
        ])
        assert summary.total == 3
        assert summary.completed == 2
        assert summary.passed == 1
        assert summary.failed == 1
        assert summary.pending == 1
        assert summary.progress_percent == 66
        assert not summary.is_complete
        assert not summary.is_passed

    def test_optional_tests_do_not_gate_completion(self):
        summary = summarize([
            QcResultState(is_required=True, completed=True, passed=True),
            QcResultState(is_required=False, completed=False, passed=None),
        ])
        assert summary.is_complete
        assert summary.is_passed
        assert summary.progress_percent == 50

    def test_optional_failure_does_not_fail_batch(self):
        summary = summarize([
            QcResultState(is_required=True, completed=True, passed=True),
            QcResultState(is_required=False, completed=True, passed=False),
        ])
        assert summary.failed == 1
        assert summary.is_passed

    @given(st.lists(
        st.builds(
            QcResultState,
            is_required=st.booleans(),
            completed=st.booleans(),
            passed=st.sampled_from([True, False]),
        ),
        max_size=20,
    ))
    def test_invariants(self, rows):
        summary = summarize(rows)
        assert summary.completed <= summary.total
        assert summary.passed + summary.failed == summary.completed
        assert summary.required_completed <= summary.required_total
        assert 0 <= summary.progress_percent <= 100
        if summary.is_passed:
            assert summary.is_complete


class TestTracing:

    def trace(self, captured_logs) -> list[dict]:
        return [r for r in captured_logs() if r["message"] == "ENGINE_TRACE"]

    def test_positional_and_keyword_calls_fingerprint_alike(self, captured_logs):
        evaluate(PH_RULE, Decimal("6.0"))
        evaluate(rule=PH_RULE, value=Decimal("6.00"))
        first, second = self.trace(captured_logs)
        assert first["engine_name"] == "qc_evaluation"
        assert len(first["input_fingerprint"]) == 16
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_different_inputs_differ(self, captured_logs):
        evaluate(PH_RULE, Decimal("6.0"))
        evaluate(PH_RULE, Decimal("8.0"))
        first, second = self.trace(captured_logs)
        assert first["input_fingerprint"] != second["input_fingerprint"]
        assert (first["outcome"], second["outcome"]) == ("passed", "failed")

    def test_fingerprint_ignores_unlisted_fields(self):
        assert fingerprint(("value",), {"value": 1, "other": 2}) == fingerprint(
            ("value",), {"value": 1}
        )
        assert fingerprint(("value",), {}) == fingerprint(("value",), {"value": None})
