"""
Module: fulfillment_kernel.selectors.fulfillment_selector
Responsibility: Read-only query access to orders, batches, QC results,
    invoices, payment requests and receipt vouchers.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ DTOs and selectors/base.py.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - Returns None or an empty list when nothing matches; never raises on
      absence of data.
    - Deterministic ordering: orders by number, QC rows by display order,
      receipts by voucher number.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

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
from fulfillment_kernel.domain.payment import PaymentRequestStatus
from fulfillment_kernel.models.batch import Batch
from fulfillment_kernel.models.invoice import Invoice, PaymentRequest, ReceiptVoucher
from fulfillment_kernel.models.order import Order
from fulfillment_kernel.models.qc import QcTestResult
from fulfillment_kernel.selectors.base import BaseSelector


class FulfillmentSelector(BaseSelector[Order]):
    """Read path for the fulfillment workflow."""

    # Orders and batches

    def get_order(self, order_id: UUID) -> OrderSnapshot | None:
        order = self.session.get(Order, order_id)
        return order.to_dto() if order is not None else None

    def list_orders(
        self,
        status: OrderStatus | None = None,
        batch_id: UUID | None = None,
    ) -> list[OrderSnapshot]:
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == OrderStatus(status).value)
        if batch_id is not None:
            stmt = stmt.where(Order.batch_id == batch_id)
        orders = self.session.execute(stmt.order_by(Order.order_number)).scalars().all()
        return [o.to_dto() for o in orders]

    def get_batch(self, batch_id: UUID) -> BatchSnapshot | None:
        batch = self.session.get(Batch, batch_id)
        return batch.to_dto() if batch is not None else None

    def list_qc_results(self, batch_id: UUID) -> list[QcResultSnapshot]:
        rows = self.session.execute(
            select(QcTestResult)
            .where(QcTestResult.batch_id == batch_id)
            .order_by(QcTestResult.display_order, QcTestResult.test_name)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    # Payments

    def get_invoice(self, invoice_id: UUID) -> InvoiceSnapshot | None:
        invoice = self.session.get(Invoice, invoice_id)
        return invoice.to_dto() if invoice is not None else None

    def get_payment_request(self, request_id: UUID) -> PaymentRequestSnapshot | None:
        request = self.session.get(PaymentRequest, request_id)
        return request.to_dto() if request is not None else None

    def list_payment_requests(
        self,
        invoice_id: UUID | None = None,
        status: PaymentRequestStatus | None = None,
    ) -> list[PaymentRequestSnapshot]:
        stmt = select(PaymentRequest)
        if invoice_id is not None:
            stmt = stmt.where(PaymentRequest.invoice_id == invoice_id)
        if status is not None:
            stmt = stmt.where(PaymentRequest.status == PaymentRequestStatus(status).value)
        requests = self.session.execute(
            stmt.order_by(PaymentRequest.submitted_at, PaymentRequest.id)
        ).scalars().all()
        return [r.to_dto() for r in requests]

    def list_receipts(self, invoice_id: UUID | None = None) -> list[ReceiptVoucherSnapshot]:
        stmt = select(ReceiptVoucher)
        if invoice_id is not None:
            stmt = stmt.where(ReceiptVoucher.invoice_id == invoice_id)
        vouchers = self.session.execute(
            stmt.order_by(ReceiptVoucher.voucher_number)
        ).scalars().all()
        return [v.to_dto() for v in vouchers]

    def payment_stats(self, invoice_id: UUID | None = None) -> PaymentStats:
        """Counts and amounts of payment requests by status."""
        stmt = select(
            PaymentRequest.status,
            func.count(PaymentRequest.id),
            func.coalesce(func.sum(PaymentRequest.amount), 0),
        ).group_by(PaymentRequest.status)
        if invoice_id is not None:
            stmt = stmt.where(PaymentRequest.invoice_id == invoice_id)

        counts = {s: 0 for s in PaymentRequestStatus}
        amounts = {s: Decimal("0") for s in PaymentRequestStatus}
        for status, count, amount in self.session.execute(stmt).all():
            key = PaymentRequestStatus(status)
            counts[key] = count
            amounts[key] = Decimal(str(amount))

        return PaymentStats(
            pending=counts[PaymentRequestStatus.PENDING],
            confirmed=counts[PaymentRequestStatus.CONFIRMED],
            rejected=counts[PaymentRequestStatus.REJECTED],
            pending_amount=amounts[PaymentRequestStatus.PENDING],
            confirmed_amount=amounts[PaymentRequestStatus.CONFIRMED],
        )
