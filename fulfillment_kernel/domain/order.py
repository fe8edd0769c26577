"""
Order domain types (``fulfillment_kernel.domain.order``).

Responsibility
--------------
Pure value objects for the order lifecycle: the status enum, the fixed
adjacency table, the permission action required to enter each status,
and the cross-entity gate that guards it.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``ORDER_TRANSITIONS`` defines the only valid status transitions.
  Terminal states have no outgoing edges.
* Every non-initial status has exactly one permission action.
"""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    VALIDATED = "VALIDATED"
    SCHEDULED = "SCHEDULED"
    IN_PRODUCTION = "IN_PRODUCTION"
    QC_PENDING = "QC_PENDING"
    RELEASED = "RELEASED"
    DISPATCHED = "DISPATCHED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    FAILED_QC = "FAILED_QC"
    REWORK = "REWORK"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.DRAFT: frozenset({
        OrderStatus.SUBMITTED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.SUBMITTED: frozenset({
        OrderStatus.VALIDATED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.VALIDATED: frozenset({
        OrderStatus.SCHEDULED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.SCHEDULED: frozenset({
        OrderStatus.IN_PRODUCTION,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.IN_PRODUCTION: frozenset({
        OrderStatus.QC_PENDING,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.QC_PENDING: frozenset({
        OrderStatus.RELEASED,
        OrderStatus.FAILED_QC,
    }),
    OrderStatus.RELEASED: frozenset({OrderStatus.DISPATCHED}),
    OrderStatus.DISPATCHED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.REJECTED: frozenset({OrderStatus.DRAFT}),
    OrderStatus.FAILED_QC: frozenset({
        OrderStatus.REWORK,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.REWORK: frozenset({
        OrderStatus.IN_PRODUCTION,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_ORDER_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})

# Permission action (resource "order") required to move INTO a status.
ORDER_TARGET_ACTIONS: dict[OrderStatus, str] = {
    OrderStatus.SUBMITTED: "submit",
    OrderStatus.VALIDATED: "validate",
    OrderStatus.REJECTED: "reject",
    OrderStatus.CANCELLED: "cancel",
    OrderStatus.SCHEDULED: "schedule",
    OrderStatus.IN_PRODUCTION: "produce",
    OrderStatus.QC_PENDING: "produce",
    OrderStatus.RELEASED: "release",
    OrderStatus.FAILED_QC: "fail_qc",
    OrderStatus.DISPATCHED: "dispatch",
    OrderStatus.DELIVERED: "deliver",
    OrderStatus.REWORK: "rework",
    OrderStatus.DRAFT: "revise",
}


class OrderGate(str, Enum):
    """Cross-entity preconditions guarding order transitions."""

    BATCH_ATTACHED = "batch_attached"
    BATCH_ACTIVE = "batch_active"
    BATCH_RELEASED = "batch_released"
    BATCH_FAILED = "batch_failed"
    SHIPMENT_ACTIVE = "shipment_active"


# Gates checked, in order, before entering a status.
ORDER_TARGET_GATES: dict[OrderStatus, tuple[OrderGate, ...]] = {
    OrderStatus.SCHEDULED: (OrderGate.BATCH_ATTACHED, OrderGate.BATCH_ACTIVE),
    OrderStatus.IN_PRODUCTION: (OrderGate.BATCH_ATTACHED, OrderGate.BATCH_ACTIVE),
    OrderStatus.QC_PENDING: (OrderGate.BATCH_ATTACHED, OrderGate.BATCH_ACTIVE),
    OrderStatus.RELEASED: (OrderGate.BATCH_ATTACHED, OrderGate.BATCH_RELEASED),
    OrderStatus.FAILED_QC: (OrderGate.BATCH_ATTACHED, OrderGate.BATCH_FAILED),
    OrderStatus.DISPATCHED: (
        OrderGate.BATCH_ATTACHED,
        OrderGate.BATCH_RELEASED,
        OrderGate.SHIPMENT_ACTIVE,
    ),
}


def allowed_targets(status: OrderStatus) -> tuple[OrderStatus, ...]:
    """Statuses reachable from ``status`` in one step, in declaration order."""
    targets = ORDER_TRANSITIONS[OrderStatus(status)]
    return tuple(s for s in OrderStatus if s in targets)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


def required_action(target: OrderStatus) -> str:
    """Permission action on resource ``order`` needed to enter ``target``."""
    return ORDER_TARGET_ACTIONS[OrderStatus(target)]
