"""
fulfillment_services.engine -- Unit-of-work facade over the kernel services.

Responsibility:
    The synchronous entry point a request-handling layer calls.  Each
    operation runs in exactly one session transaction: services are wired
    per session, the transaction commits on success and rolls back on any
    exception.  After a successful commit the operation's audit records are
    handed to the ``AuditRecorder``; a recorder failure is logged and never
    reaches the caller.

Architecture position:
    Services -- stateful orchestration over the kernel.  The only place
    where kernel services are constructed and composed.

Invariants enforced:
    - One operation == one transaction; no partial application.
    - Audit is post-commit and best-effort: it can neither roll back nor
      fail the business operation.
    - No retries: ConcurrencyConflictError propagates to the caller.
    - Immutability listeners are registered before any operation runs.

Usage:
    from fulfillment_config import get_active_config
    from fulfillment_services import FulfillmentEngine

    engine = FulfillmentEngine.from_config(get_active_config())
    outcome = engine.release_batch(batch_id, actor, signature="J. Doe")
    outcome.snapshot.status        # BatchStatus.RELEASED
    outcome.side_effects           # release created, orders cascaded
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Sequence, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fulfillment_config.schema import EngineConfig
from fulfillment_kernel.db.engine import get_session_factory, init_engine_from_url, session_scope
from fulfillment_kernel.db.immutability import register_immutability_listeners
from fulfillment_kernel.domain.audit import AuditRecorder
from fulfillment_kernel.domain.authorization import Actor, PermissionChecker
from fulfillment_kernel.domain.batch import SodMode
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import (
    BatchSnapshot,
    InvoiceSnapshot,
    OrderSnapshot,
    PaymentRequestSnapshot,
    PaymentStats,
    QcResultSnapshot,
    ReceiptVoucherSnapshot,
)
from fulfillment_kernel.domain.order import OrderStatus
from fulfillment_kernel.domain.outcomes import Outcome
from fulfillment_kernel.domain.payment import PaymentMethod
from fulfillment_kernel.domain.qc import QcStatusSummary, QcValue
from fulfillment_kernel.domain.shipment import ShipmentDirectory
from fulfillment_kernel.exceptions import FulfillmentError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.selectors.fulfillment_selector import FulfillmentSelector
from fulfillment_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    DatabaseAuditRecorder,
)
from fulfillment_kernel.services.authorization_gate import AuthorizationGate
from fulfillment_kernel.services.batch_service import BatchService
from fulfillment_kernel.services.order_service import OrderService
from fulfillment_kernel.services.payment_service import PaymentService
from fulfillment_kernel.services.qc_service import QcService
from fulfillment_services.rbac_authority import RoleBasedAuthority

logger = get_logger("services.engine")

T = TypeVar("T")


@dataclass(frozen=True)
class KernelServices:
    """Kernel services wired to one session."""

    session: Session
    qc: QcService
    orders: OrderService
    batches: BatchService
    payments: PaymentService
    selector: FulfillmentSelector


class FulfillmentEngine:
    """Facade running each workflow operation as one unit of work."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        checker: PermissionChecker,
        *,
        sod_mode: SodMode | str = SodMode.PER_BATCH_ACTOR,
        permission_conflicts: Iterable[tuple[str, str]] = (),
        shipments: ShipmentDirectory | None = None,
        audit_recorder: AuditRecorder | None = None,
        clock: Clock | None = None,
        voucher_prefix: str = "RV",
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._gate = AuthorizationGate(checker, permission_conflicts, SodMode(sod_mode))
        self._shipments = shipments
        self._audit = audit_recorder or DatabaseAuditRecorder(session_factory)
        self._voucher_prefix = voucher_prefix
        register_immutability_listeners()

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        session_factory: Callable[[], Session] | None = None,
        shipments: ShipmentDirectory | None = None,
        audit_recorder: AuditRecorder | None = None,
        clock: Clock | None = None,
    ) -> FulfillmentEngine:
        """Build an engine from configuration.

        Without ``session_factory`` the module-level database engine is
        initialized from ``config.database_url``.
        """
        if session_factory is None:
            init_engine_from_url(config.database_url)
            session_factory = get_session_factory()
        authority = RoleBasedAuthority.from_config(config.rbac)
        return cls(
            session_factory,
            authority,
            sod_mode=config.sod_mode,
            permission_conflicts=authority.permission_conflicts,
            shipments=shipments,
            audit_recorder=audit_recorder,
            clock=clock,
            voucher_prefix=config.voucher_prefix,
        )

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _services(self, session: Session) -> KernelServices:
        qc = QcService(session, self._gate, self._clock)
        orders = OrderService(session, self._gate, qc, self._shipments, self._clock)
        return KernelServices(
            session=session,
            qc=qc,
            orders=orders,
            batches=BatchService(session, self._gate, orders, qc, self._clock),
            payments=PaymentService(session, self._gate, self._clock, self._voucher_prefix),
            selector=FulfillmentSelector(session),
        )

    def _run(
        self,
        operation: str,
        actor: Actor | None,
        fn: Callable[[KernelServices], T],
        entity_type: str | None = None,
        entity_id: UUID | None = None,
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor.actor_id) if actor is not None else None,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            operation=operation,
        ):
            try:
                with session_scope(self._session_factory) as session:
                    result = fn(self._services(session))
            except FulfillmentError as exc:
                logger.warning(
                    "operation_rejected",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                raise

            if isinstance(result, Outcome):
                self._publish(result)
            return result

    def _publish(self, outcome: Outcome[Any]) -> None:
        """Hand committed audit records to the recorder; never raises."""
        for record in outcome.audit_records:
            try:
                self._audit.append(record)
            except Exception:
                logger.error(
                    "audit_append_failed",
                    exc_info=True,
                    extra={
                        "audit_action": record.action.value,
                        "audited_entity_type": record.entity_type,
                        "audited_entity_id": str(record.entity_id),
                    },
                )

    # ------------------------------------------------------------------
    # Orders
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
        return self._run(
            "create_order",
            actor,
            lambda s: s.orders.create_order(
                actor,
                customer_id,
                product_id,
                requested_activity,
                activity_unit=activity_unit,
                delivery_window_start=delivery_window_start,
                delivery_window_end=delivery_window_end,
                order_number=order_number,
                comment=comment,
            ),
            entity_type="Order",
        )

    def transition_order(
        self,
        order_id: UUID,
        target: OrderStatus | str,
        actor: Actor,
        comment: str | None = None,
    ) -> Outcome[OrderSnapshot]:
        return self._run(
            "transition_order",
            actor,
            lambda s: s.orders.transition(order_id, target, actor, comment),
            entity_type="Order",
            entity_id=order_id,
        )

    def allowed_order_targets(
        self, order_id: UUID, actor: Actor | None = None,
    ) -> tuple[OrderStatus, ...]:
        return self._run(
            "allowed_order_targets",
            actor,
            lambda s: s.orders.allowed_targets(order_id, actor),
            entity_type="Order",
            entity_id=order_id,
        )

    # ------------------------------------------------------------------
    # Batches and QC
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
        return self._run(
            "schedule_batch",
            actor,
            lambda s: s.batches.schedule_batch(
                product_id, order_ids, actor,
                batch_number=batch_number, planned_start=planned_start, comment=comment,
            ),
            entity_type="Batch",
        )

    def start_production(
        self, batch_id: UUID, actor: Actor, comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        return self._run(
            "start_production", actor,
            lambda s: s.batches.start_production(batch_id, actor, comment),
            entity_type="Batch", entity_id=batch_id,
        )

    def submit_for_qc(
        self, batch_id: UUID, actor: Actor, comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        return self._run(
            "submit_for_qc", actor,
            lambda s: s.batches.submit_for_qc(batch_id, actor, comment),
            entity_type="Batch", entity_id=batch_id,
        )

    def initialize_qc(
        self, batch_id: UUID, actor: Actor,
    ) -> Outcome[tuple[QcResultSnapshot, ...]]:
        return self._run(
            "initialize_qc", actor,
            lambda s: s.batches.initialize_qc(batch_id, actor),
            entity_type="Batch", entity_id=batch_id,
        )

    def record_qc_result(
        self, batch_id: UUID, test_result_id: UUID, value: QcValue, actor: Actor,
    ) -> Outcome[QcResultSnapshot]:
        return self._run(
            "record_qc_result", actor,
            lambda s: s.qc.record_result(batch_id, test_result_id, value, actor),
            entity_type="Batch", entity_id=batch_id,
        )

    def get_batch_qc_status(self, batch_id: UUID) -> QcStatusSummary:
        return self._run(
            "get_batch_qc_status", None,
            lambda s: s.qc.get_batch_qc_status(batch_id),
            entity_type="Batch", entity_id=batch_id,
        )

    def complete_qc(
        self, batch_id: UUID, actor: Actor, comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        return self._run(
            "complete_qc", actor,
            lambda s: s.batches.complete_qc(batch_id, actor, comment),
            entity_type="Batch", entity_id=batch_id,
        )

    def release_batch(
        self,
        batch_id: UUID,
        actor: Actor,
        signature: str,
        notes: str | None = None,
        meaning: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        return self._run(
            "release_batch", actor,
            lambda s: s.batches.release(batch_id, actor, signature, notes, meaning),
            entity_type="Batch", entity_id=batch_id,
        )

    def reject_batch(
        self, batch_id: UUID, actor: Actor, reason: str,
    ) -> Outcome[BatchSnapshot]:
        return self._run(
            "reject_batch", actor,
            lambda s: s.batches.reject(batch_id, actor, reason),
            entity_type="Batch", entity_id=batch_id,
        )

    def hold_batch(
        self, batch_id: UUID, actor: Actor, reason: str,
    ) -> Outcome[BatchSnapshot]:
        return self._run(
            "hold_batch", actor,
            lambda s: s.batches.hold(batch_id, actor, reason),
            entity_type="Batch", entity_id=batch_id,
        )

    def resume_batch(
        self, batch_id: UUID, actor: Actor, comment: str | None = None,
    ) -> Outcome[BatchSnapshot]:
        return self._run(
            "resume_batch", actor,
            lambda s: s.batches.resume(batch_id, actor, comment),
            entity_type="Batch", entity_id=batch_id,
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def submit_payment_request(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod | str,
        actor: Actor,
        reference: str | None = None,
        currency: str | None = None,
    ) -> Outcome[PaymentRequestSnapshot]:
        return self._run(
            "submit_payment_request", actor,
            lambda s: s.payments.submit_request(
                invoice_id, amount, method, actor, reference=reference, currency=currency,
            ),
            entity_type="Invoice", entity_id=invoice_id,
        )

    def confirm_payment(
        self, request_id: UUID, actor: Actor, notes: str | None = None,
    ) -> Outcome[ReceiptVoucherSnapshot]:
        return self._run(
            "confirm_payment", actor,
            lambda s: s.payments.confirm(request_id, actor, notes),
            entity_type="PaymentRequest", entity_id=request_id,
        )

    def reject_payment(
        self, request_id: UUID, actor: Actor, reason: str,
    ) -> Outcome[PaymentRequestSnapshot]:
        return self._run(
            "reject_payment", actor,
            lambda s: s.payments.reject(request_id, actor, reason),
            entity_type="PaymentRequest", entity_id=request_id,
        )

    def payment_stats(self, invoice_id: UUID | None = None) -> PaymentStats:
        return self._run("payment_stats", None, lambda s: s.payments.payment_stats(invoice_id))

    def list_receipts(self, invoice_id: UUID | None = None) -> list[ReceiptVoucherSnapshot]:
        return self._run("list_receipts", None, lambda s: s.payments.list_receipts(invoice_id))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID) -> OrderSnapshot | None:
        return self._run("get_order", None, lambda s: s.selector.get_order(order_id))

    def get_batch(self, batch_id: UUID) -> BatchSnapshot | None:
        return self._run("get_batch", None, lambda s: s.selector.get_batch(batch_id))

    def list_qc_results(self, batch_id: UUID) -> list[QcResultSnapshot]:
        return self._run("list_qc_results", None, lambda s: s.selector.list_qc_results(batch_id))

    def get_invoice(self, invoice_id: UUID) -> InvoiceSnapshot | None:
        return self._run("get_invoice", None, lambda s: s.selector.get_invoice(invoice_id))

    def get_payment_request(self, request_id: UUID) -> PaymentRequestSnapshot | None:
        return self._run(
            "get_payment_request", None, lambda s: s.selector.get_payment_request(request_id),
        )

    def audit_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        """Hash-chained audit events for one entity (database recorder only)."""
        return self._run(
            "audit_trace", None,
            lambda s: AuditorService(s.session).get_trace(entity_type, entity_id),
        )

    def validate_audit_chain(self) -> bool:
        return self._run(
            "validate_audit_chain", None,
            lambda s: AuditorService(s.session).validate_chain(),
        )
