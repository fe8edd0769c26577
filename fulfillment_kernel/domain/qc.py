"""
QC domain types (``fulfillment_kernel.domain.qc``).

Pure value objects describing acceptance rules, the evaluation of a single
measured value, and the aggregate QC status of a batch.  The evaluation
functions themselves live in ``fulfillment_engines.qc_evaluation``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

QcValue = Union[Decimal, bool]


class RuleType(str, Enum):
    """Acceptance-rule kinds."""

    RANGE = "RANGE"
    MIN = "MIN"
    MAX = "MAX"
    PASS_FAIL = "PASS_FAIL"


NUMERIC_RULE_TYPES: frozenset[RuleType] = frozenset({
    RuleType.RANGE,
    RuleType.MIN,
    RuleType.MAX,
})


class TemplateStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    RETIRED = "RETIRED"


@dataclass(frozen=True)
class AcceptanceRule:
    """Acceptance criterion for one QC test.

    RANGE uses both bounds, MIN only ``min_value``, MAX only
    ``max_value``.  PASS_FAIL uses neither.
    """

    rule_type: RuleType
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    unit: str | None = None

    @property
    def is_numeric(self) -> bool:
        return self.rule_type in NUMERIC_RULE_TYPES


@dataclass(frozen=True)
class QcEvaluation:
    """Result of evaluating one value against one rule."""

    passed: bool
    fail_reason: str | None = None


@dataclass(frozen=True)
class QcResultState:
    """Minimal view of a QC result row needed for aggregation."""

    is_required: bool
    completed: bool
    passed: bool | None


@dataclass(frozen=True)
class QcStatusSummary:
    """Aggregate QC status for a batch."""

    total: int
    completed: int
    passed: int
    failed: int
    required_total: int
    required_completed: int
    required_failed: int
    progress_percent: int

    @property
    def pending(self) -> int:
        return self.total - self.completed

    @property
    def required_pending(self) -> int:
        return self.required_total - self.required_completed

    @property
    def is_complete(self) -> bool:
        return self.required_completed == self.required_total

    @property
    def is_passed(self) -> bool:
        return self.is_complete and self.required_failed == 0
