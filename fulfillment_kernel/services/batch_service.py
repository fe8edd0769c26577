"""
BatchService -- batch production, QC completion and the release gate.

Responsibility:
    Schedules batches for validated orders and drives each batch through
    ``BATCH_TRANSITIONS``: production start, QC submission and completion,
    hold / resume, and the two terminal decisions, signed release or
    rejection.  Every batch status change is mirrored onto the attached
    orders through ``BATCH_ORDER_CASCADE``.

Architecture position:
    Kernel > Services -- imperative shell.  Uses QcService for seeding and
    aggregation and OrderService for order cascades.

Invariants enforced:
    - RELEASED only from QC_PASSED, and only if every required QC test of
      the batch passed.
    - At most one BatchRelease per batch (service check + UNIQUE(batch_id)).
    - A release carries a non-empty signature bound to one of the
      BATCH_RELEASE signature meanings by ``signature_hash``.
    - Separation of duties: configured permission conflicts always apply;
      in ``per_batch_actor`` mode whoever recorded QC for the batch may not
      release it.
    - Status writes are compare-and-swap on the expected pre-status.

Failure modes:
    - ValidationError: empty signature / reason, unknown signature meaning,
      empty or inconsistent order list on scheduling.
    - PermissionDeniedError, SeparationOfDutiesError.
    - InvalidStateError (and TransitionNotAllowedError, QcIncompleteError).
    - ConcurrencyConflictError: lost a race against another transition.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fulfillment_kernel.domain.audit import AuditAction, AuditRecord
from fulfillment_kernel.domain.authorization import Actor
from fulfillment_kernel.domain.batch import (
    BATCH_ORDER_CASCADE,
    BatchAction,
    TERMINAL_BATCH_STATUSES,
    BatchStatus,
    ReleaseType,
    allowed_batch_targets,
    can_transition_batch,
)
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.dtos import BatchSnapshot, QcResultSnapshot
from fulfillment_kernel.domain.order import OrderStatus
from fulfillment_kernel.domain.outcomes import Outcome, SideEffect, SideEffectKind
from fulfillment_kernel.domain.signatures import (
    SignatureCategory,
    default_meaning,
    is_valid_meaning,
)
from fulfillment_kernel.exceptions import (
    InvalidStateError,
    QcIncompleteError,
    TransitionNotAllowedError,
    ValidationError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.batch import Batch, BatchEvent, BatchRelease
from fulfillment_kernel.models.order import Order
from fulfillment_kernel.services.authorization_gate import AuthorizationGate
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.order_service import OrderService
from fulfillment_kernel.services.qc_service import QcService
from fulfillment_kernel.utils.hashing import hash_signature

logger = get_logger("services.batch")

# Order statuses that may be attached to a new batch.
_SCHEDULABLE_ORDER_STATUSES = frozenset({OrderStatus.VALIDATED, OrderStatus.REWORK})


def _require_text(field: str, value: str | None) -> str:
    if value is None or not value.strip():
        raise ValidationError(field, "must not be empty")
    return value.strip()


class BatchService(BaseService[Batch]):
    """Batch lifecycle operations."""

    def __init__(
        self,
        session: Session,
        gate: AuthorizationGate,
        orders: OrderService,
        qc: QcService,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._gate = gate
        self._orders = orders
        self._qc = qc

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule_batch(
        self,
        product_id: UUID,
        order_ids: Sequence[UUID],
        actor: Actor,
        batch_number: str | None = None,
        planned_start: datetime | None = None,
        comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        """
        Create a batch for ``product_id`` and attach the given orders.

        VALIDATED orders move to SCHEDULED.  REWORK orders are re-attached
        and stay in REWORK until production starts.
        """
        self._gate.require(actor, "batch", BatchAction.SCHEDULE.value)
        if not order_ids:
            raise ValidationError("order_ids", "at least one order is required")
        if len(set(order_ids)) != len(order_ids):
            raise ValidationError("order_ids", "duplicate order id")

        orders = [self._get_or_raise(Order, oid, "Order") for oid in order_ids]
        for order in orders:
            status = OrderStatus(order.status)
            if status not in _SCHEDULABLE_ORDER_STATUSES:
                raise InvalidStateError(
                    "Order", str(order.id), order.status, "schedule",
                )
            if order.product_id != product_id:
                raise ValidationError(
                    "order_ids",
                    f"order {order.order_number} is for a different product",
                )
            if self._holds_live_batch(order, status):
                raise InvalidStateError(
                    "Order", str(order.id), order.status, "schedule",
                    message=f"Order {order.order_number} is already attached to a batch",
                )
        # Attachment is conditional on the link as read here.
        read_state = {o.id: {"status": o.status, "batch_id": o.batch_id} for o in orders}

        now = self.clock.now()
        batch = Batch(
            id=uuid4(),
            batch_number=batch_number or f"B-{now:%Y%m%d}-{uuid4().hex[:6].upper()}",
            status=BatchStatus.CREATED.value,
            product_id=product_id,
            planned_start=planned_start,
            created_by_id=actor.actor_id,
            created_at=now,
        )
        self.session.add(batch)
        self.session.flush()
        self._append_event(batch.id, None, BatchStatus.CREATED, actor, comment or "Batch scheduled")

        side_effects: list[SideEffect] = []
        records: list[AuditRecord] = [
            AuditRecord(
                entity_type="Batch",
                entity_id=batch.id,
                action=AuditAction.BATCH_SCHEDULED,
                actor_id=actor.actor_id,
                occurred_at=now,
                payload={
                    "batch_number": batch.batch_number,
                    "product_id": product_id,
                    "order_ids": [o.id for o in orders],
                },
            )
        ]
        for order in orders:
            self._compare_and_set(
                order, "Order", expected=read_state[order.id], values={"batch_id": batch.id},
            )
            side_effects.append(
                SideEffect(SideEffectKind.ORDER_ATTACHED, "Order", order.id, {"batch_id": batch.id})
            )
            if OrderStatus(order.status) == OrderStatus.VALIDATED:
                _, effects, order_records = self._orders.apply_transition(
                    order, OrderStatus.SCHEDULED, actor,
                    comment=f"Scheduled on batch {batch.batch_number}",
                    cascaded_from=batch.batch_number,
                )
                side_effects.extend(effects)
                records.extend(order_records)

        logger.info(
            "batch_scheduled",
            extra={
                "batch_id": str(batch.id),
                "batch_number": batch.batch_number,
                "order_count": len(orders),
            },
        )
        return Outcome(
            snapshot=self._snapshot(batch),
            to_status=BatchStatus.CREATED.value,
            side_effects=tuple(side_effects),
            audit_records=tuple(records),
        )

    def _holds_live_batch(self, order: Order, status: OrderStatus) -> bool:
        """A VALIDATED order may not hold any batch; a REWORK order only a finished one."""
        if order.batch_id is None:
            return False
        if status == OrderStatus.VALIDATED:
            return True
        current = self.session.get(Batch, order.batch_id)
        return current is not None and BatchStatus(current.status) not in TERMINAL_BATCH_STATUSES

    # ------------------------------------------------------------------
    # Production and QC
    # ------------------------------------------------------------------

    def start_production(
        self, batch_id: UUID, actor: Actor, comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        self._gate.require(actor, "batch", BatchAction.START_PRODUCTION.value)
        batch = self._get_or_raise(Batch, batch_id, "Batch")
        return self._finish(batch, *self._transition(batch, BatchStatus.IN_PRODUCTION, actor, comment))

    def submit_for_qc(
        self, batch_id: UUID, actor: Actor, comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        """IN_PRODUCTION -> QC_PENDING, seeding QC before orders follow."""
        self._gate.require(actor, "batch", BatchAction.SUBMIT_QC.value)
        batch = self._get_or_raise(Batch, batch_id, "Batch")
        return self._finish(batch, *self._transition(batch, BatchStatus.QC_PENDING, actor, comment))

    def initialize_qc(
        self, batch_id: UUID, actor: Actor,
    ) -> Outcome[tuple[QcResultSnapshot, ...]]:
        """Seed QC rows for the batch if not yet seeded (idempotent)."""
        return self._qc.initialize_qc(batch_id, actor)

    def complete_qc(
        self, batch_id: UUID, actor: Actor, comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        """
        Close QC: QC_PASSED when no required test failed, else FAILED_QC.

        Raises:
            QcIncompleteError: Required tests still pending.
        """
        self._gate.require(actor, "batch", BatchAction.COMPLETE_QC.value)
        batch = self._get_or_raise(Batch, batch_id, "Batch")

        if BatchStatus(batch.status) != BatchStatus.QC_PENDING:
            raise InvalidStateError("Batch", str(batch.id), batch.status, "complete QC for")

        summary = self._qc.get_batch_qc_status(batch.id)
        if summary.total == 0:
            raise InvalidStateError(
                "Batch", str(batch.id), batch.status, "complete QC for",
                message=f"QC has not been initialized for batch {batch.batch_number}",
            )
        if not summary.is_complete:
            raise QcIncompleteError(str(batch.id), batch.status, summary.required_pending)

        target = BatchStatus.QC_PASSED if summary.is_passed else BatchStatus.FAILED_QC
        from_status, _, effects, records = self._transition(batch, target, actor, comment)
        records = records + (
            AuditRecord(
                entity_type="Batch",
                entity_id=batch.id,
                action=AuditAction.QC_COMPLETED,
                actor_id=actor.actor_id,
                occurred_at=self.clock.now(),
                payload={
                    "outcome": target.value,
                    "total": summary.total,
                    "passed": summary.passed,
                    "failed": summary.failed,
                    "required_failed": summary.required_failed,
                },
            ),
        )
        logger.info(
            "qc_completed",
            extra={
                "batch_id": str(batch.id),
                "outcome": target.value,
                "failed": summary.failed,
            },
        )
        return self._finish(batch, from_status, target, effects, records)

    def hold(
        self, batch_id: UUID, actor: Actor, reason: str,
    ) -> Outcome[BatchSnapshot]:
        reason = _require_text("reason", reason)
        self._gate.require(actor, "batch", BatchAction.HOLD.value)
        batch = self._get_or_raise(Batch, batch_id, "Batch")
        return self._finish(batch, *self._transition(batch, BatchStatus.ON_HOLD, actor, reason))

    def resume(
        self, batch_id: UUID, actor: Actor, comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        """ON_HOLD -> QC_PENDING; QC must be completed again afterwards."""
        self._gate.require(actor, "batch", BatchAction.RESUME.value)
        batch = self._get_or_raise(Batch, batch_id, "Batch")
        return self._finish(batch, *self._transition(batch, BatchStatus.QC_PENDING, actor, comment))

    # ------------------------------------------------------------------
    # Release decision
    # ------------------------------------------------------------------

    def release(
        self,
        batch_id: UUID,
        actor: Actor,
        signature: str,
        notes: str | None = None,
        meaning: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        """
        Sign and release a QC_PASSED batch.

        Creates the single BatchRelease row, sets RELEASED and moves every
        attached QC_PENDING order to RELEASED.
        """
        signature = _require_text("signature", signature)
        meaning = meaning or default_meaning(SignatureCategory.BATCH_RELEASE)
        if not is_valid_meaning(SignatureCategory.BATCH_RELEASE, meaning):
            raise ValidationError("meaning", f"not a batch release meaning: {meaning!r}")

        self._gate.require(actor, "batch", BatchAction.RELEASE.value)
        self._gate.require_no_permission_conflict(actor, "batch", BatchAction.RELEASE.value)

        batch = self._get_or_raise(Batch, batch_id, "Batch")
        current = BatchStatus(batch.status)
        if not can_transition_batch(current, BatchStatus.RELEASED):
            raise TransitionNotAllowedError(
                "Batch", str(batch.id), current.value, BatchStatus.RELEASED.value,
                tuple(s.value for s in allowed_batch_targets(current)),
            )

        if self._gate.per_batch_actor:
            self._gate.require_separation(
                actor,
                "per_batch_actor",
                self._qc.recorders_of(batch.id),
                f"actor recorded QC results for batch {batch.batch_number}",
            )

        summary = self._qc.get_batch_qc_status(batch.id)
        if summary.total == 0 or not summary.is_passed:
            raise InvalidStateError(
                "Batch", str(batch.id), current.value, "release",
                message=f"Batch {batch.batch_number} has not passed all required QC tests",
            )
        existing = self.session.execute(
            select(BatchRelease.id).where(BatchRelease.batch_id == batch.id)
        ).scalar_one_or_none()
        if existing is not None:
            raise InvalidStateError(
                "Batch", str(batch.id), current.value, "release",
                message=f"Batch {batch.batch_number} already has a release record",
            )

        from_status, _, effects, records = self._transition(
            batch, BatchStatus.RELEASED, actor, notes,
            before_cascade=lambda: self._create_release(batch.id, actor, signature, meaning, notes),
        )
        release = self.session.execute(
            select(BatchRelease).where(BatchRelease.batch_id == batch.id)
        ).scalar_one()

        effects = (
            SideEffect(
                SideEffectKind.RELEASE_CREATED, "BatchRelease", release.id,
                {"batch_id": batch.id},
            ),
        ) + effects
        records = (
            AuditRecord(
                entity_type="Batch",
                entity_id=batch.id,
                action=AuditAction.BATCH_RELEASED,
                actor_id=actor.actor_id,
                occurred_at=release.released_at,
                payload={
                    "release_id": release.id,
                    "signature_meaning": meaning,
                    "signature_hash": release.signature_hash,
                    "notes": notes,
                },
            ),
        ) + records

        logger.info(
            "batch_released",
            extra={
                "batch_id": str(batch.id),
                "release_id": str(release.id),
                "released_by": str(actor.actor_id),
            },
        )
        return self._finish(batch, from_status, BatchStatus.RELEASED, effects, records)

    def _create_release(
        self,
        batch_id: UUID,
        actor: Actor,
        signature: str,
        meaning: str,
        notes: str | None,
    ) -> None:
        now = self.clock.now()
        self.session.add(
            BatchRelease(
                batch_id=batch_id,
                released_by_id=actor.actor_id,
                signature=signature,
                signature_meaning=meaning,
                signature_hash=hash_signature(batch_id, actor.actor_id, signature, meaning, now),
                release_type=ReleaseType.FULL.value,
                notes=notes,
                released_at=now,
            )
        )
        self.session.flush()

    def reject(
        self, batch_id: UUID, actor: Actor, reason: str,
    ) -> Outcome[BatchSnapshot]:
        """
        Reject a QC_PASSED (or ON_HOLD) batch.

        No BatchRelease is created; attached QC_PENDING orders move to
        FAILED_QC.
        """
        reason = _require_text("reason", reason)
        self._gate.require(actor, "batch", BatchAction.REJECT.value)
        batch = self._get_or_raise(Batch, batch_id, "Batch")

        from_status, _, effects, records = self._transition(batch, BatchStatus.REJECTED, actor, reason)
        records = (
            AuditRecord(
                entity_type="Batch",
                entity_id=batch.id,
                action=AuditAction.BATCH_REJECTED,
                actor_id=actor.actor_id,
                occurred_at=self.clock.now(),
                payload={"reason": reason},
            ),
        ) + records
        logger.info(
            "batch_rejected",
            extra={"batch_id": str(batch.id), "rejected_by": str(actor.actor_id)},
        )
        return self._finish(batch, from_status, BatchStatus.REJECTED, effects, records)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        batch: Batch,
        target: BatchStatus,
        actor: Actor,
        comment: str | None,
        before_cascade=None,
    ) -> tuple[BatchStatus, BatchStatus, tuple[SideEffect, ...], tuple[AuditRecord, ...]]:
        """Adjacency check, compare-and-swap, event, QC seeding, order cascade."""
        current = BatchStatus(batch.status)
        if not can_transition_batch(current, target):
            raise TransitionNotAllowedError(
                "Batch", str(batch.id), current.value, target.value,
                tuple(s.value for s in allowed_batch_targets(current)),
            )

        self._compare_and_set(
            batch, "Batch", expected={"status": current.value}, values={"status": target.value},
        )
        self._append_event(batch.id, current, target, actor, comment)
        if before_cascade is not None:
            before_cascade()

        side_effects: list[SideEffect] = []
        records: list[AuditRecord] = [
            AuditRecord(
                entity_type="Batch",
                entity_id=batch.id,
                action=AuditAction.BATCH_TRANSITIONED,
                actor_id=actor.actor_id,
                occurred_at=self.clock.now(),
                payload={
                    "from_status": current.value,
                    "to_status": target.value,
                    "comment": comment,
                },
            )
        ]

        if target == BatchStatus.QC_PENDING:
            rows, created = self._qc.seed(batch, actor)
            if created:
                side_effects.append(
                    SideEffect(
                        SideEffectKind.QC_INITIALIZED, "Batch", batch.id,
                        {"test_count": len(rows)},
                    )
                )
                records.append(self._qc.seed_audit_record(batch.id, actor, len(rows)))

        cascade = BATCH_ORDER_CASCADE.get(target)
        if cascade is not None:
            sources, order_target = cascade
            for order in self._orders.attached_orders(batch.id, sources):
                _, effects, order_records = self._orders.apply_transition(
                    order, order_target, actor,
                    comment=f"Batch {batch.batch_number} {target.value}",
                    cascaded_from=batch.batch_number,
                )
                side_effects.extend(effects)
                records.extend(order_records)

        logger.info(
            "batch_transitioned",
            extra={
                "batch_id": str(batch.id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return current, target, tuple(side_effects), tuple(records)

    def _append_event(
        self,
        batch_id: UUID,
        from_status: BatchStatus | None,
        to_status: BatchStatus,
        actor: Actor,
        comment: str | None,
    ) -> None:
        last_seq = self.session.execute(
            select(func.coalesce(func.max(BatchEvent.seq), 0)).where(
                BatchEvent.batch_id == batch_id
            )
        ).scalar_one()
        self.session.add(
            BatchEvent(
                batch_id=batch_id,
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

    def _finish(
        self,
        batch: Batch,
        from_status: BatchStatus,
        to_status: BatchStatus,
        side_effects: tuple[SideEffect, ...],
        records: tuple[AuditRecord, ...],
    ) -> Outcome[BatchSnapshot]:
        return Outcome(
            snapshot=self._snapshot(batch),
            from_status=from_status.value,
            to_status=to_status.value,
            side_effects=side_effects,
            audit_records=records,
        )

    def _snapshot(self, batch: Batch) -> BatchSnapshot:
        self.session.flush()
        self.session.expire(batch)
        return batch.to_dto()
