"""
OrderService -- the order state machine.

Responsibility:
    Creates orders and moves them along ``ORDER_TRANSITIONS``.  Each
    transition runs three checks in a fixed order (permission, adjacency,
    cross-entity gates), then applies a compare-and-swap status update,
    appends a timeline event and, on entry into QC_PENDING, seeds QC for
    the attached batch.

Architecture position:
    Kernel > Services -- imperative shell.  Batch status changes cascade
    into attached orders through ``apply_transition`` (see BatchService).

Invariants enforced:
    - Status only moves along the fixed adjacency table; terminal orders
      (DELIVERED, CANCELLED) never change again.
    - RELEASED / DISPATCHED require the attached batch to be RELEASED;
      DISPATCHED additionally requires an active shipment.
    - Every status change leaves exactly one timeline event.

Failure modes:
    - PermissionDeniedError: actor lacks ``order:<action>`` for the target.
    - TransitionNotAllowedError: target not adjacent to current status.
    - GateNotSatisfiedError: batch / shipment gate failed (``gate`` names it).
    - ConcurrencyConflictError: status changed since it was read.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.audit import AuditAction, AuditRecord
from fulfillment_kernel.domain.authorization import Actor
from fulfillment_kernel.domain.batch import TERMINAL_BATCH_STATUSES, BatchStatus
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.dtos import OrderSnapshot
from fulfillment_kernel.domain.order import (
    ORDER_TARGET_GATES,
    OrderGate,
    OrderStatus,
    allowed_targets,
    can_transition,
    required_action,
)
from fulfillment_kernel.domain.outcomes import Outcome, SideEffect, SideEffectKind
from fulfillment_kernel.domain.shipment import ShipmentDirectory
from fulfillment_kernel.exceptions import (
    GateNotSatisfiedError,
    TransitionNotAllowedError,
    ValidationError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.batch import Batch
from fulfillment_kernel.models.order import Order, OrderTimelineEvent
from fulfillment_kernel.services.authorization_gate import AuthorizationGate
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.qc_service import QcService

logger = get_logger("services.order")

_BATCH_FAILED_STATUSES = frozenset({BatchStatus.FAILED_QC, BatchStatus.REJECTED})


def _coerce_status(value: OrderStatus | str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError("target", f"unknown order status {value!r}") from None


class OrderService(BaseService[Order]):
    """Order lifecycle operations."""

    def __init__(
        self,
        session: Session,
        gate: AuthorizationGate,
        qc: QcService,
        shipments: ShipmentDirectory | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._gate = gate
        self._qc = qc
        self._shipments = shipments

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_order(
        self,
        actor: Actor,
        customer_id: UUID,
        product_id: UUID,
        requested_activity: Decimal,
        activity_unit: str = "mCi",
        delivery_window_start: datetime | None = None,
        delivery_window_end: datetime | None = None,
        order_number: str | None = None,
        comment: str | None = None,
    ) -> Outcome[OrderSnapshot]:
        """Create a DRAFT order with its first timeline event."""
        self._gate.require(actor, "order", "create")

        activity = Decimal(str(requested_activity))
        if activity <= 0:
            raise ValidationError("requested_activity", "must be positive")
        if (
            delivery_window_start is not None
            and delivery_window_end is not None
            and delivery_window_end < delivery_window_start
        ):
            raise ValidationError("delivery_window", "end precedes start")

        now = self.clock.now()
        order = Order(
            id=uuid4(),
            order_number=order_number or f"ORD-{uuid4().hex[:10].upper()}",
            status=OrderStatus.DRAFT.value,
            customer_id=customer_id,
            product_id=product_id,
            requested_activity=activity,
            activity_unit=activity_unit,
            delivery_window_start=delivery_window_start,
            delivery_window_end=delivery_window_end,
            created_by_id=actor.actor_id,
            created_at=now,
        )
        self.session.add(order)
        self.session.flush()
        self._append_event(order.id, None, OrderStatus.DRAFT, actor, comment or "Order created")

        logger.info(
            "order_created",
            extra={"order_id": str(order.id), "order_number": order.order_number},
        )
        return Outcome(
            snapshot=self._snapshot(order),
            to_status=OrderStatus.DRAFT.value,
            audit_records=(
                AuditRecord(
                    entity_type="Order",
                    entity_id=order.id,
                    action=AuditAction.ORDER_CREATED,
                    actor_id=actor.actor_id,
                    occurred_at=now,
                    payload={
                        "order_number": order.order_number,
                        "customer_id": customer_id,
                        "product_id": product_id,
                        "requested_activity": activity,
                        "activity_unit": activity_unit,
                    },
                ),
            ),
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        order_id: UUID,
        target: OrderStatus | str,
        actor: Actor,
        comment: str | None = None,
    ) -> Outcome[OrderSnapshot]:
        """
        Move an order to ``target``.

        Checks run in order: permission, adjacency, gates.  The error type
        identifies which one failed.
        """
        target = _coerce_status(target)
        self._gate.require(actor, "order", required_action(target))
        order = self._get_or_raise(Order, order_id, "Order")

        from_status, side_effects, records = self.apply_transition(
            order, target, actor, comment,
        )
        return Outcome(
            snapshot=self._snapshot(order),
            from_status=from_status.value,
            to_status=target.value,
            side_effects=side_effects,
            audit_records=records,
        )

    def apply_transition(
        self,
        order: Order,
        target: OrderStatus,
        actor: Actor,
        comment: str | None = None,
        cascaded_from: str | None = None,
    ) -> tuple[OrderStatus, tuple[SideEffect, ...], tuple[AuditRecord, ...]]:
        """
        Adjacency, gates, compare-and-swap, timeline and QC seeding.

        The permission check is the caller's: ``transition`` checks
        ``order:<action>``, a batch cascade is covered by the batch action.

        Returns:
            (previous status, side effects, audit records)
        """
        current = OrderStatus(order.status)
        if not can_transition(current, target):
            raise TransitionNotAllowedError(
                "Order",
                str(order.id),
                current.value,
                target.value,
                tuple(s.value for s in allowed_targets(current)),
            )

        values: dict = {"status": target.value}
        shipment_id = self._check_gates(order, current, target)
        if shipment_id is not None:
            values["shipment_id"] = shipment_id

        self._compare_and_set(
            order, "Order", expected={"status": current.value}, values=values,
        )
        now = self.clock.now()
        self._append_event(order.id, current, target, actor, comment)

        side_effects: list[SideEffect] = []
        records: list[AuditRecord] = [
            AuditRecord(
                entity_type="Order",
                entity_id=order.id,
                action=AuditAction.ORDER_TRANSITIONED,
                actor_id=actor.actor_id,
                occurred_at=now,
                payload={
                    "from_status": current.value,
                    "to_status": target.value,
                    "comment": comment,
                    "cascaded_from": cascaded_from,
                },
            )
        ]
        if cascaded_from is not None:
            side_effects.append(
                SideEffect(
                    SideEffectKind.ORDER_CASCADED, "Order", order.id,
                    {"from_status": current.value, "to_status": target.value},
                )
            )

        if target == OrderStatus.QC_PENDING:
            batch = self.session.get(Batch, order.batch_id)
            rows, created = self._qc.seed(batch, actor)
            if created:
                side_effects.append(
                    SideEffect(
                        SideEffectKind.QC_INITIALIZED, "Batch", batch.id,
                        {"test_count": len(rows)},
                    )
                )
                records.append(self._qc.seed_audit_record(batch.id, actor, len(rows)))

        logger.info(
            "order_transitioned",
            extra={
                "order_id": str(order.id),
                "from_status": current.value,
                "to_status": target.value,
                "cascaded_from": cascaded_from,
            },
        )
        return current, tuple(side_effects), tuple(records)

    def _check_gates(
        self, order: Order, current: OrderStatus, target: OrderStatus,
    ) -> UUID | None:
        """Evaluate the cross-entity gates for ``target``.

        Returns the active shipment id when the shipment gate applies.
        """
        shipment_id = None
        batch = None
        for gate in ORDER_TARGET_GATES.get(target, ()):
            if gate == OrderGate.BATCH_ATTACHED:
                batch = self.session.get(Batch, order.batch_id) if order.batch_id else None
                if batch is None:
                    self._gate_failed(order, current, target, gate, "no batch attached")
            elif gate == OrderGate.BATCH_ACTIVE:
                if BatchStatus(batch.status) in TERMINAL_BATCH_STATUSES:
                    self._gate_failed(
                        order, current, target, gate,
                        f"batch {batch.batch_number} is {batch.status}; schedule a new batch",
                    )
            elif gate == OrderGate.BATCH_RELEASED:
                if BatchStatus(batch.status) != BatchStatus.RELEASED:
                    self._gate_failed(
                        order, current, target, gate,
                        f"batch {batch.batch_number} is {batch.status}, not RELEASED",
                    )
            elif gate == OrderGate.BATCH_FAILED:
                if BatchStatus(batch.status) not in _BATCH_FAILED_STATUSES:
                    self._gate_failed(
                        order, current, target, gate,
                        f"batch {batch.batch_number} is {batch.status}, not failed",
                    )
            elif gate == OrderGate.SHIPMENT_ACTIVE:
                info = (
                    self._shipments.shipment_for_order(order.id)
                    if self._shipments is not None
                    else None
                )
                if info is None or not info.is_active:
                    detail = (
                        "no shipment for order"
                        if info is None
                        else f"shipment {info.shipment_id} is {info.status.value}"
                    )
                    self._gate_failed(order, current, target, gate, detail)
                shipment_id = info.shipment_id
        return shipment_id

    def _gate_failed(
        self,
        order: Order,
        current: OrderStatus,
        target: OrderStatus,
        gate: OrderGate,
        detail: str,
    ) -> None:
        logger.info(
            "order_gate_blocked",
            extra={"order_id": str(order.id), "gate": gate.value, "detail": detail},
        )
        raise GateNotSatisfiedError(
            "Order", str(order.id), current.value, target.value, gate.value, detail,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def allowed_targets(
        self, order_id: UUID, actor: Actor | None = None,
    ) -> tuple[OrderStatus, ...]:
        """Statuses adjacent to the order's current one.

        With ``actor``, only targets the actor holds the permission for.
        Gates are not evaluated.
        """
        order = self._get_or_raise(Order, order_id, "Order")
        targets = allowed_targets(OrderStatus(order.status))
        if actor is None:
            return targets
        return tuple(
            t for t in targets if self._gate.allows(actor, "order", required_action(t))
        )

    def attached_orders(
        self, batch_id: UUID, statuses: Iterable[OrderStatus] | None = None,
    ) -> list[Order]:
        stmt = select(Order).where(Order.batch_id == batch_id)
        if statuses is not None:
            stmt = stmt.where(Order.status.in_([s.value for s in statuses]))
        return list(self.session.execute(stmt.order_by(Order.order_number)).scalars().all())

    def _append_event(
        self,
        order_id: UUID,
        from_status: OrderStatus | None,
        to_status: OrderStatus,
        actor: Actor,
        comment: str | None,
    ) -> None:
        last_seq = self.session.execute(
            select(func.coalesce(func.max(OrderTimelineEvent.seq), 0)).where(
                OrderTimelineEvent.order_id == order_id
            )
        ).scalar_one()
        self.session.add(
            OrderTimelineEvent(
                order_id=order_id,
                seq=last_seq + 1,
                from_status=from_status.value if from_status else None,
                to_status=to_status.value,
                actor_id=actor.actor_id,
                actor_role=actor.acting_role,
                comment=comment,
                occurred_at=self.clock.now(),
            )
        )
        self.session.flush()

    def _snapshot(self, order: Order) -> OrderSnapshot:
        self.session.flush()
        self.session.expire(order)
        return order.to_dto()
