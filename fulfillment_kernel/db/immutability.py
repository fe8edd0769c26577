"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Regulatory records must be tamper-proof.  Once a batch is released under an
electronic signature, or a payment is confirmed and a receipt voucher
issued, those records can never be edited or removed; corrections happen
through new records that leave a visible trail.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update event] --> _block_update() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _block_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | When Immutable                      | Why
----------------------|-------------------------------------|------------------------------
BatchRelease          | ALWAYS (from creation)              | Signed regulatory release
ReceiptVoucher        | ALWAYS (from creation)              | Proof of confirmed payment
Payment               | ALWAYS (from creation)              | Append-only payment ledger
OrderTimelineEvent    | ALWAYS (from creation)              | Order history
BatchEvent            | ALWAYS (from creation)              | Batch history
AuditEvent            | ALWAYS (from creation)              | Audit trail
Order                 | After status DELIVERED / CANCELLED  | Terminal orders are final
Batch                 | After RELEASED / REJECTED / FAILED_QC | Terminal batches are final

Bulk ``update()`` statements bypass these listeners.  The only bulk
updates the kernel issues are compare-and-swap status changes whose WHERE
clause names a non-terminal expected status, so a terminal row never
matches.

Usage:
    register_immutability_listeners()  # Called once at startup
"""

from sqlalchemy import event, inspect

from fulfillment_kernel.exceptions import ImmutabilityViolationError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _violation(target, operation: str, reason: str) -> ImmutabilityViolationError:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _block_update(mapper, connection, target):
    raise _violation(
        target, "UPDATE", f"{type(target).__name__} records are immutable"
    )


def _block_delete(mapper, connection, target):
    raise _violation(
        target, "DELETE", f"{type(target).__name__} records cannot be deleted"
    )


def _persisted_status(target) -> str | None:
    """Status as loaded from the database, before any pending change."""
    history = inspect(target).attrs.status.history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _check_order_terminal(mapper, connection, target):
    from fulfillment_kernel.domain.order import (
        TERMINAL_ORDER_STATUSES,
        OrderStatus,
    )

    status = _persisted_status(target)
    if status is not None and OrderStatus(status) in TERMINAL_ORDER_STATUSES:
        raise _violation(
            target, "UPDATE", f"Order is {status} and final"
        )


def _check_batch_terminal(mapper, connection, target):
    from fulfillment_kernel.domain.batch import (
        TERMINAL_BATCH_STATUSES,
        BatchStatus,
    )

    status = _persisted_status(target)
    if status is not None and BatchStatus(status) in TERMINAL_BATCH_STATUSES:
        raise _violation(
            target, "UPDATE", f"Batch is {status} and final"
        )


def _listeners():
    from fulfillment_kernel.models.audit_event import AuditEvent
    from fulfillment_kernel.models.batch import Batch, BatchEvent, BatchRelease
    from fulfillment_kernel.models.invoice import Payment, ReceiptVoucher
    from fulfillment_kernel.models.order import Order, OrderTimelineEvent

    pairs = []
    for model in (
        BatchRelease,
        ReceiptVoucher,
        Payment,
        OrderTimelineEvent,
        BatchEvent,
        AuditEvent,
    ):
        pairs.append((model, "before_update", _block_update))
        pairs.append((model, "before_delete", _block_delete))
    pairs.append((Order, "before_update", _check_order_terminal))
    pairs.append((Batch, "before_update", _check_batch_terminal))
    return pairs


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call this after all models are imported but before any database
    operations begin.
    """
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to bypass the rules.
    """
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
