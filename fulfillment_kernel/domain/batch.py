"""
Batch domain types (``fulfillment_kernel.domain.batch``).

Responsibility
--------------
Pure value objects for the production / QC / release lifecycle of a
batch, and the rules that mirror batch status onto attached orders.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``BATCH_TRANSITIONS`` defines the only valid status transitions.
* RELEASED, REJECTED and FAILED_QC are terminal.
* RELEASED is reachable only from QC_PASSED.
"""

from __future__ import annotations

from enum import Enum

from fulfillment_kernel.domain.order import OrderStatus


class BatchStatus(str, Enum):
    """Batch lifecycle states."""

    CREATED = "CREATED"
    IN_PRODUCTION = "IN_PRODUCTION"
    QC_PENDING = "QC_PENDING"
    QC_PASSED = "QC_PASSED"
    FAILED_QC = "FAILED_QC"
    ON_HOLD = "ON_HOLD"
    RELEASED = "RELEASED"
    REJECTED = "REJECTED"


BATCH_TRANSITIONS: dict[BatchStatus, frozenset[BatchStatus]] = {
    BatchStatus.CREATED: frozenset({BatchStatus.IN_PRODUCTION}),
    BatchStatus.IN_PRODUCTION: frozenset({BatchStatus.QC_PENDING}),
    BatchStatus.QC_PENDING: frozenset({
        BatchStatus.QC_PASSED,
        BatchStatus.FAILED_QC,
        BatchStatus.ON_HOLD,
    }),
    BatchStatus.QC_PASSED: frozenset({
        BatchStatus.RELEASED,
        BatchStatus.REJECTED,
        BatchStatus.ON_HOLD,
    }),
    BatchStatus.ON_HOLD: frozenset({
        BatchStatus.QC_PENDING,
        BatchStatus.REJECTED,
    }),
    BatchStatus.RELEASED: frozenset(),
    BatchStatus.REJECTED: frozenset(),
    BatchStatus.FAILED_QC: frozenset(),
}

TERMINAL_BATCH_STATUSES: frozenset[BatchStatus] = frozenset({
    BatchStatus.RELEASED,
    BatchStatus.REJECTED,
    BatchStatus.FAILED_QC,
})


class BatchAction(str, Enum):
    """Permission actions on resource ``batch``."""

    SCHEDULE = "schedule"
    START_PRODUCTION = "start_production"
    SUBMIT_QC = "submit_qc"
    COMPLETE_QC = "complete_qc"
    RELEASE = "release"
    REJECT = "reject"
    HOLD = "hold"
    RESUME = "resume"


class SodMode(str, Enum):
    """How separation of duties is enforced on batch release."""

    # Role-level only: permission conflicts held by the same actor.
    ROLE = "role"
    # Role-level, plus: whoever recorded a QC result may not release.
    PER_BATCH_ACTOR = "per_batch_actor"


class ReleaseType(str, Enum):
    FULL = "FULL"


# batch status entered -> (attached order statuses affected, new order status)
BATCH_ORDER_CASCADE: dict[BatchStatus, tuple[frozenset[OrderStatus], OrderStatus]] = {
    BatchStatus.IN_PRODUCTION: (
        frozenset({OrderStatus.SCHEDULED, OrderStatus.REWORK}),
        OrderStatus.IN_PRODUCTION,
    ),
    BatchStatus.QC_PENDING: (
        frozenset({OrderStatus.IN_PRODUCTION}),
        OrderStatus.QC_PENDING,
    ),
    BatchStatus.RELEASED: (
        frozenset({OrderStatus.QC_PENDING}),
        OrderStatus.RELEASED,
    ),
    BatchStatus.FAILED_QC: (
        frozenset({OrderStatus.QC_PENDING}),
        OrderStatus.FAILED_QC,
    ),
    BatchStatus.REJECTED: (
        frozenset({OrderStatus.QC_PENDING}),
        OrderStatus.FAILED_QC,
    ),
}


def allowed_batch_targets(status: BatchStatus) -> tuple[BatchStatus, ...]:
    targets = BATCH_TRANSITIONS[BatchStatus(status)]
    return tuple(s for s in BatchStatus if s in targets)


def can_transition_batch(current: BatchStatus, target: BatchStatus) -> bool:
    return BatchStatus(target) in BATCH_TRANSITIONS[BatchStatus(current)]
