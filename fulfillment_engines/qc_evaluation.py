"""
Module: fulfillment_engines.qc_evaluation
Responsibility:
    Evaluate a measured QC value against its acceptance rule, aggregate
    the QC rows of a batch into a status summary, and render acceptance
    criteria as text.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import fulfillment_kernel domain types and exceptions.

Invariants enforced:
    - Bounds are inclusive: RANGE passes on min <= v <= max, MIN on
      v >= min, MAX on v <= max.
    - A numeric rule only accepts a number and PASS_FAIL only accepts a
      boolean; anything else is a ValidationError, never a silent fail.
    - Decimal-only arithmetic; floats are converted through ``str``.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from decimal import Decimal
    from fulfillment_engines.qc_evaluation import evaluate
    from fulfillment_kernel.domain.qc import AcceptanceRule, RuleType

    rule = AcceptanceRule(RuleType.RANGE, Decimal("4.5"), Decimal("7.5"), "pH")
    evaluate(rule=rule, value=Decimal("7.5"))   # QcEvaluation(passed=True)
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Iterable

from fulfillment_engines.tracer import traced_engine
from fulfillment_kernel.domain.qc import (
    AcceptanceRule,
    QcEvaluation,
    QcResultState,
    QcStatusSummary,
    QcValue,
    RuleType,
)
from fulfillment_kernel.exceptions import ValidationError


def _fmt(value: Decimal) -> str:
    """Render a Decimal without trailing zeros or exponent notation."""
    return f"{value.normalize():f}"


def _with_unit(text: str, unit: str | None) -> str:
    return f"{text} {unit}" if unit else text


def coerce_numeric(value: object) -> Decimal:
    """Convert a numeric QC input to Decimal.

    Raises:
        ValidationError: For booleans, non-numbers and non-finite values.
    """
    if isinstance(value, bool):
        raise ValidationError("value", "numeric test requires a number, got a boolean")
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float, str)):
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError("value", f"not a number: {value!r}") from None
    else:
        raise ValidationError("value", f"numeric test requires a number, got {type(value).__name__}")
    if not number.is_finite():
        raise ValidationError("value", f"not a finite number: {value!r}")
    return number


def validate_rule(rule: AcceptanceRule) -> None:
    """Reject rules whose bounds do not fit their type."""
    if rule.rule_type == RuleType.RANGE:
        if rule.min_value is None or rule.max_value is None:
            raise ValidationError("rule", "RANGE requires both min and max")
        if rule.min_value > rule.max_value:
            raise ValidationError(
                "rule", f"RANGE min {rule.min_value} exceeds max {rule.max_value}"
            )
    elif rule.rule_type == RuleType.MIN and rule.min_value is None:
        raise ValidationError("rule", "MIN requires a min value")
    elif rule.rule_type == RuleType.MAX and rule.max_value is None:
        raise ValidationError("rule", "MAX requires a max value")


@traced_engine("qc_evaluation", "1.0", fingerprint_fields=("rule", "value"))
def evaluate(rule: AcceptanceRule, value: QcValue) -> QcEvaluation:
    """Evaluate ``value`` against ``rule``.

    Raises:
        ValidationError: On a value of the wrong kind for the rule, or a
            malformed rule.
    """
    validate_rule(rule)

    if rule.rule_type == RuleType.PASS_FAIL:
        if not isinstance(value, bool):
            raise ValidationError("value", "pass/fail test requires a boolean")
        if value:
            return QcEvaluation(passed=True)
        return QcEvaluation(passed=False, fail_reason="Test marked as failed")

    number = coerce_numeric(value)
    shown = _with_unit(_fmt(number), rule.unit)

    if rule.rule_type == RuleType.MIN:
        if number >= rule.min_value:
            return QcEvaluation(passed=True)
        return QcEvaluation(
            passed=False,
            fail_reason=f"Value {shown} is below minimum {_with_unit(_fmt(rule.min_value), rule.unit)}",
        )

    if rule.rule_type == RuleType.MAX:
        if number <= rule.max_value:
            return QcEvaluation(passed=True)
        return QcEvaluation(
            passed=False,
            fail_reason=f"Value {shown} exceeds maximum {_with_unit(_fmt(rule.max_value), rule.unit)}",
        )

    # RANGE
    if rule.min_value <= number <= rule.max_value:
        return QcEvaluation(passed=True)
    return QcEvaluation(
        passed=False,
        fail_reason=f"Value {shown} is outside range {criteria_text(rule)}",
    )


@traced_engine("qc_summary", "1.0")
def summarize(results: Iterable[QcResultState]) -> QcStatusSummary:
    """Aggregate QC result rows.

    ``is_complete`` holds once every *required* row is completed and
    ``is_passed`` once, in addition, no required row failed.  Optional rows
    count toward the totals and progress only.
    """
    rows = list(results)
    total = len(rows)
    completed = sum(1 for r in rows if r.completed)
    passed = sum(1 for r in rows if r.completed and r.passed)
    failed = sum(1 for r in rows if r.completed and r.passed is False)
    required = [r for r in rows if r.is_required]
    required_completed = sum(1 for r in required if r.completed)
    required_failed = sum(1 for r in required if r.completed and r.passed is False)
    progress = (completed * 100) // total if total else 0

    return QcStatusSummary(
        total=total,
        completed=completed,
        passed=passed,
        failed=failed,
        required_total=len(required),
        required_completed=required_completed,
        required_failed=required_failed,
        progress_percent=progress,
    )


def criteria_text(rule: AcceptanceRule) -> str:
    """Human-readable acceptance criterion, e.g. ``4.5–7.5 pH`` or ``≥95 %``."""
    if rule.rule_type == RuleType.PASS_FAIL:
        return "Pass/Fail"
    if rule.rule_type == RuleType.MIN:
        return _with_unit(f"≥{_fmt(rule.min_value)}", rule.unit)
    if rule.rule_type == RuleType.MAX:
        return _with_unit(f"≤{_fmt(rule.max_value)}", rule.unit)
    return _with_unit(f"{_fmt(rule.min_value)}–{_fmt(rule.max_value)}", rule.unit)
