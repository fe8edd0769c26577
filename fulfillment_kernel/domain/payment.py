"""
Payment domain types (``fulfillment_kernel.domain.payment``).

Invoice and payment-request lifecycles plus the pure reconciliation rule
that derives an invoice status from its paid amount.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


class InvoiceStatus(str, Enum):
    ISSUED = "ISSUED"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    VOIDED = "VOIDED"


class PaymentRequestStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


PAYMENT_REQUEST_TRANSITIONS: dict[PaymentRequestStatus, frozenset[PaymentRequestStatus]] = {
    PaymentRequestStatus.PENDING: frozenset({
        PaymentRequestStatus.CONFIRMED,
        PaymentRequestStatus.REJECTED,
    }),
    PaymentRequestStatus.CONFIRMED: frozenset(),
    PaymentRequestStatus.REJECTED: frozenset(),
}

# Invoices in these statuses accept no further payment requests.
CLOSED_INVOICE_STATUSES: frozenset[InvoiceStatus] = frozenset({
    InvoiceStatus.PAID,
    InvoiceStatus.VOIDED,
})


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"
    CHEQUE = "CHEQUE"
    CARD = "CARD"
    OTHER = "OTHER"


def invoice_status_for(paid_amount: Decimal, total_amount: Decimal) -> InvoiceStatus:
    """PAID once paid covers the total, PARTIALLY_PAID while anything is paid."""
    if paid_amount >= total_amount:
        return InvoiceStatus.PAID
    if paid_amount > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.ISSUED


def format_voucher_number(prefix: str, year: int, value: int) -> str:
    """``RV-2024-000042`` style receipt voucher number."""
    return f"{prefix}-{year}-{value:06d}"
