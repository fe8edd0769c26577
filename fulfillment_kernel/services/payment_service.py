"""
PaymentService -- payment-request review and invoice reconciliation.

Responsibility:
    Accepts payment requests against invoices and resolves them.  A
    confirmation applies, as one unit of work: request CONFIRMED, a receipt
    voucher with a sequence-backed number, a payment ledger row, and the
    invoice's new paid amount with its derived status.

Architecture position:
    Kernel > Services -- imperative shell.  Voucher numbers come from
    SequenceService; invoice status derivation is the pure
    ``invoice_status_for`` rule.

Invariants enforced:
    - PENDING -> {CONFIRMED | REJECTED}, each terminal; the request status
      write is a compare-and-swap, so a request resolves at most once.
    - ``paid_amount`` never decreases: it is only written through a
      compare-and-swap on its previous value, and amounts are positive.
    - Invoice status is recomputed from the new running total in the same
      write that changes the total.
    - Exactly one ReceiptVoucher per confirmed request (UNIQUE
      payment_request_id) with a unique voucher number.

Failure modes:
    - ValidationError: non-positive amount, empty rejection reason,
      currency mismatch.
    - NotFoundError: unknown invoice or request.
    - InvalidStateError: request already resolved, invoice closed.
    - ConcurrencyConflictError: request or invoice changed concurrently.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fulfillment_kernel.domain.audit import AuditAction, AuditRecord
from fulfillment_kernel.domain.authorization import Actor
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.dtos import (
    PaymentRequestSnapshot,
    PaymentStats,
    ReceiptVoucherSnapshot,
)
from fulfillment_kernel.domain.outcomes import Outcome, SideEffect, SideEffectKind
from fulfillment_kernel.domain.payment import (
    CLOSED_INVOICE_STATUSES,
    InvoiceStatus,
    PaymentMethod,
    PaymentRequestStatus,
    format_voucher_number,
    invoice_status_for,
)
from fulfillment_kernel.exceptions import InvalidStateError, ValidationError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.invoice import (
    Invoice,
    Payment,
    PaymentRequest,
    ReceiptVoucher,
)
from fulfillment_kernel.selectors.fulfillment_selector import FulfillmentSelector
from fulfillment_kernel.services.authorization_gate import AuthorizationGate
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.services.sequence_service import SequenceService

logger = get_logger("services.payment")


class PaymentService(BaseService[PaymentRequest]):
    """Payment request lifecycle and invoice reconciliation."""

    def __init__(
        self,
        session: Session,
        gate: AuthorizationGate,
        clock: Clock | None = None,
        voucher_prefix: str = "RV",
    ):
        super().__init__(session, clock)
        self._gate = gate
        self._voucher_prefix = voucher_prefix
        self._sequences = SequenceService(session)

    def submit_request(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod | str,
        actor: Actor,
        reference: str | None = None,
        currency: str | None = None,
    ) -> Outcome[PaymentRequestSnapshot]:
        """Create a PENDING payment request against an open invoice."""
        self._gate.require(actor, "payment_request", "submit")

        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError("amount", "must be positive")
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError("method", f"unknown payment method {method!r}") from None

        invoice = self._get_or_raise(Invoice, invoice_id, "Invoice")
        if InvoiceStatus(invoice.status) in CLOSED_INVOICE_STATUSES:
            raise InvalidStateError(
                "Invoice", str(invoice.id), invoice.status, "submit a payment request for",
            )
        if currency is not None and currency != invoice.currency:
            raise ValidationError(
                "currency", f"{currency} does not match invoice currency {invoice.currency}",
            )

        now = self.clock.now()
        request = PaymentRequest(
            id=uuid4(),
            invoice_id=invoice.id,
            amount=amount,
            currency=invoice.currency,
            method=method.value,
            reference=reference,
            status=PaymentRequestStatus.PENDING.value,
            submitted_by_id=actor.actor_id,
            submitted_at=now,
        )
        self.session.add(request)
        self.session.flush()

        logger.info(
            "payment_request_submitted",
            extra={
                "payment_request_id": str(request.id),
                "invoice_id": str(invoice.id),
                "amount": amount,
            },
        )
        return Outcome(
            snapshot=request.to_dto(),
            to_status=PaymentRequestStatus.PENDING.value,
            audit_records=(
                AuditRecord(
                    entity_type="PaymentRequest",
                    entity_id=request.id,
                    action=AuditAction.PAYMENT_REQUEST_SUBMITTED,
                    actor_id=actor.actor_id,
                    occurred_at=now,
                    payload={
                        "invoice_id": invoice.id,
                        "amount": amount,
                        "method": method.value,
                        "reference": reference,
                    },
                ),
            ),
        )

    def _pending_request(self, request_id: UUID, action: str) -> PaymentRequest:
        request = self._get_or_raise(PaymentRequest, request_id, "PaymentRequest")
        if PaymentRequestStatus(request.status) != PaymentRequestStatus.PENDING:
            raise InvalidStateError(
                "PaymentRequest", str(request.id), request.status, action,
            )
        return request

    def confirm(
        self,
        request_id: UUID,
        actor: Actor,
        notes: str | None = None,
    ) -> Outcome[ReceiptVoucherSnapshot]:
        """
        Confirm a PENDING request.

        Returns the issued receipt voucher.  All writes happen in the
        caller's transaction; any failure leaves none of them applied.
        """
        self._gate.require(actor, "payment_request", "confirm")
        self._gate.require_no_permission_conflict(actor, "payment_request", "confirm")
        request = self._pending_request(request_id, "confirm")
        invoice = self._get_or_raise(Invoice, request.invoice_id, "Invoice")
        if InvoiceStatus(invoice.status) == InvoiceStatus.VOIDED:
            raise InvalidStateError(
                "Invoice", str(invoice.id), invoice.status, "confirm a payment for",
            )

        now = self.clock.now()
        amount = request.amount
        previous_paid = invoice.paid_amount
        previous_status = InvoiceStatus(invoice.status)
        new_paid = previous_paid + amount
        new_status = invoice_status_for(new_paid, invoice.total_amount)

        # 1. request
        self._compare_and_set(
            request,
            "PaymentRequest",
            expected={"status": PaymentRequestStatus.PENDING.value},
            values={
                "status": PaymentRequestStatus.CONFIRMED.value,
                "reviewed_by_id": actor.actor_id,
                "reviewed_at": now,
                "review_notes": notes,
            },
        )

        # 2. voucher
        seq = self._sequences.next_value(SequenceService.RECEIPT_VOUCHER)
        voucher = ReceiptVoucher(
            id=uuid4(),
            voucher_number=format_voucher_number(self._voucher_prefix, now.year, seq),
            invoice_id=invoice.id,
            payment_request_id=request.id,
            amount=amount,
            currency=request.currency,
            confirmed_by_id=actor.actor_id,
            confirmed_at=now,
            notes=notes,
        )
        self.session.add(voucher)

        # 3. ledger
        payment = Payment(
            id=uuid4(),
            invoice_id=invoice.id,
            payment_request_id=request.id,
            amount=amount,
            method=request.method,
            payment_date=now,
            reference=request.reference or voucher.voucher_number,
            notes=notes,
            recorded_by_id=actor.actor_id,
        )
        self.session.add(payment)
        self.session.flush()

        # 4 + 5. invoice total and derived status, in one conditional write
        self._compare_and_set(
            invoice,
            "Invoice",
            expected={"paid_amount": previous_paid, "status": previous_status.value},
            values={"paid_amount": new_paid, "status": new_status.value},
        )

        logger.info(
            "payment_confirmed",
            extra={
                "payment_request_id": str(request.id),
                "invoice_id": str(invoice.id),
                "voucher_number": voucher.voucher_number,
                "amount": amount,
                "invoice_status": new_status.value,
            },
        )

        return Outcome(
            snapshot=voucher.to_dto(),
            from_status=PaymentRequestStatus.PENDING.value,
            to_status=PaymentRequestStatus.CONFIRMED.value,
            side_effects=(
                SideEffect(
                    SideEffectKind.VOUCHER_ISSUED, "ReceiptVoucher", voucher.id,
                    {"voucher_number": voucher.voucher_number},
                ),
                SideEffect(
                    SideEffectKind.PAYMENT_APPENDED, "Payment", payment.id,
                    {"amount": amount},
                ),
                SideEffect(
                    SideEffectKind.INVOICE_UPDATED, "Invoice", invoice.id,
                    {
                        "paid_amount": new_paid,
                        "from_status": previous_status.value,
                        "to_status": new_status.value,
                    },
                ),
            ),
            audit_records=(
                AuditRecord(
                    entity_type="PaymentRequest",
                    entity_id=request.id,
                    action=AuditAction.PAYMENT_CONFIRMED,
                    actor_id=actor.actor_id,
                    occurred_at=now,
                    payload={
                        "invoice_id": invoice.id,
                        "amount": amount,
                        "voucher_number": voucher.voucher_number,
                        "paid_amount": new_paid,
                        "invoice_status": new_status.value,
                    },
                ),
            ),
        )

    def reject(
        self,
        request_id: UUID,
        actor: Actor,
        reason: str,
    ) -> Outcome[PaymentRequestSnapshot]:
        """Reject a PENDING request. No financial side effects."""
        if reason is None or not reason.strip():
            raise ValidationError("reason", "must not be empty")
        self._gate.require(actor, "payment_request", "reject")
        request = self._pending_request(request_id, "reject")

        now = self.clock.now()
        self._compare_and_set(
            request,
            "PaymentRequest",
            expected={"status": PaymentRequestStatus.PENDING.value},
            values={
                "status": PaymentRequestStatus.REJECTED.value,
                "reviewed_by_id": actor.actor_id,
                "reviewed_at": now,
                "reject_reason": reason.strip(),
            },
        )

        logger.info(
            "payment_rejected",
            extra={"payment_request_id": str(request.id), "invoice_id": str(request.invoice_id)},
        )
        return Outcome(
            snapshot=request.to_dto(),
            from_status=PaymentRequestStatus.PENDING.value,
            to_status=PaymentRequestStatus.REJECTED.value,
            audit_records=(
                AuditRecord(
                    entity_type="PaymentRequest",
                    entity_id=request.id,
                    action=AuditAction.PAYMENT_REJECTED,
                    actor_id=actor.actor_id,
                    occurred_at=now,
                    payload={"invoice_id": request.invoice_id, "reason": reason.strip()},
                ),
            ),
        )

    # Reads

    def payment_stats(self, invoice_id: UUID | None = None) -> PaymentStats:
        return FulfillmentSelector(self.session).payment_stats(invoice_id)

    def list_receipts(self, invoice_id: UUID | None = None) -> list[ReceiptVoucherSnapshot]:
        return FulfillmentSelector(self.session).list_receipts(invoice_id)
