"""
Module: fulfillment_kernel.models.invoice
Responsibility: ORM persistence for invoices, payment requests, receipt
    vouchers and the payment ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - invoice.paid_amount never decreases; it only changes through a
      compare-and-swap on its previous value (PaymentService.confirm).
    - One ReceiptVoucher per PaymentRequest: UNIQUE(payment_request_id).
    - Voucher numbers are unique: UNIQUE(voucher_number).
    - ReceiptVoucher and Payment rows are immutable once created.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, UUIDString
from fulfillment_kernel.domain.payment import (
    InvoiceStatus,
    PaymentMethod,
    PaymentRequestStatus,
)

if TYPE_CHECKING:
    from fulfillment_kernel.domain.dtos import (
        InvoiceSnapshot,
        PaymentRequestSnapshot,
        ReceiptVoucherSnapshot,
    )

_INVOICE_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in InvoiceStatus)
_REQUEST_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in PaymentRequestStatus)


class Invoice(Base):
    """Customer invoice reconciled against confirmed payment requests."""

    __tablename__ = "invoices"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_INVOICE_STATUS_VALUES})",
            name="ck_invoices_valid_status",
        ),
        CheckConstraint("paid_amount >= 0", name="ck_invoices_paid_nonnegative"),
        CheckConstraint("total_amount > 0", name="ck_invoices_total_positive"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    customer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.ISSUED.value,
    )
    issued_at: Mapped[datetime] = mapped_column(nullable=False)

    payment_requests: Mapped[list["PaymentRequest"]] = relationship(
        "PaymentRequest", back_populates="invoice", order_by="PaymentRequest.submitted_at",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.paid_amount}/{self.total_amount}>"

    def to_dto(self) -> InvoiceSnapshot:
        from fulfillment_kernel.domain.dtos import InvoiceSnapshot

        return InvoiceSnapshot(
            id=self.id,
            invoice_number=self.invoice_number,
            customer_id=self.customer_id,
            total_amount=self.total_amount,
            paid_amount=self.paid_amount,
            currency=self.currency,
            status=InvoiceStatus(self.status),
        )


class PaymentRequest(Base):
    """A customer's claim of payment, pending finance review."""

    __tablename__ = "payment_requests"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_REQUEST_STATUS_VALUES})",
            name="ck_payment_requests_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_payment_requests_amount_positive"),
        Index("ix_payment_requests_status", "status"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentRequestStatus.PENDING.value,
    )
    submitted_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="payment_requests")

    def to_dto(self) -> PaymentRequestSnapshot:
        from fulfillment_kernel.domain.dtos import PaymentRequestSnapshot

        return PaymentRequestSnapshot(
            id=self.id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            currency=self.currency,
            method=PaymentMethod(self.method),
            reference=self.reference,
            status=PaymentRequestStatus(self.status),
            submitted_by_id=self.submitted_by_id,
            submitted_at=self.submitted_at,
            reviewed_by_id=self.reviewed_by_id,
            reviewed_at=self.reviewed_at,
            reject_reason=self.reject_reason,
            review_notes=self.review_notes,
        )


class ReceiptVoucher(Base):
    """Proof of a confirmed payment. Created once, never modified."""

    __tablename__ = "receipt_vouchers"

    voucher_number: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False,
    )
    payment_request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payment_requests.id"), nullable=False, unique=True,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    confirmed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    confirmed_at: Mapped[datetime] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ReceiptVoucher {self.voucher_number} {self.amount}>"

    def to_dto(self) -> ReceiptVoucherSnapshot:
        from fulfillment_kernel.domain.dtos import ReceiptVoucherSnapshot

        return ReceiptVoucherSnapshot(
            id=self.id,
            voucher_number=self.voucher_number,
            invoice_id=self.invoice_id,
            payment_request_id=self.payment_request_id,
            amount=self.amount,
            currency=self.currency,
            confirmed_by_id=self.confirmed_by_id,
            confirmed_at=self.confirmed_at,
            notes=self.notes,
        )


class Payment(Base):
    """Payment ledger row. Append-only."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("ix_payments_invoice", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False,
    )
    payment_request_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("payment_requests.id"), nullable=True,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
