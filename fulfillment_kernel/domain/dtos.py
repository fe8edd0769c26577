"""
Frozen snapshots returned across the kernel boundary.

ORM models convert themselves with ``to_dto()``; callers never receive
live ORM instances.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fulfillment_kernel.domain.batch import BatchStatus, ReleaseType
from fulfillment_kernel.domain.order import OrderStatus
from fulfillment_kernel.domain.payment import (
    InvoiceStatus,
    PaymentMethod,
    PaymentRequestStatus,
)
from fulfillment_kernel.domain.qc import AcceptanceRule


@dataclass(frozen=True)
class TimelineEntry:
    """One status change on an order or batch."""

    from_status: str | None
    to_status: str
    actor_id: UUID
    actor_role: str | None
    comment: str | None
    occurred_at: datetime


@dataclass(frozen=True)
class OrderSnapshot:
    id: UUID
    order_number: str
    status: OrderStatus
    customer_id: UUID
    product_id: UUID
    requested_activity: Decimal
    activity_unit: str
    delivery_window_start: datetime | None
    delivery_window_end: datetime | None
    batch_id: UUID | None
    shipment_id: UUID | None
    timeline: tuple[TimelineEntry, ...] = ()


@dataclass(frozen=True)
class BatchReleaseSnapshot:
    id: UUID
    batch_id: UUID
    released_by_id: UUID
    signature: str
    signature_meaning: str
    signature_hash: str
    release_type: ReleaseType
    notes: str | None
    released_at: datetime


@dataclass(frozen=True)
class BatchSnapshot:
    id: UUID
    batch_number: str
    status: BatchStatus
    product_id: UUID
    order_ids: tuple[UUID, ...]
    release: BatchReleaseSnapshot | None
    timeline: tuple[TimelineEntry, ...] = ()


@dataclass(frozen=True)
class QcResultSnapshot:
    id: UUID
    batch_id: UUID
    test_definition_id: UUID
    test_name: str
    rule: AcceptanceRule
    is_required: bool
    display_order: int
    numeric_value: Decimal | None
    pass_fail_value: bool | None
    passed: bool | None
    completed: bool
    fail_reason: str | None
    entered_by_id: UUID | None
    entered_at: datetime | None


@dataclass(frozen=True)
class InvoiceSnapshot:
    id: UUID
    invoice_number: str
    customer_id: UUID
    total_amount: Decimal
    paid_amount: Decimal
    currency: str
    status: InvoiceStatus

    @property
    def outstanding(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, Decimal("0"))


@dataclass(frozen=True)
class PaymentRequestSnapshot:
    id: UUID
    invoice_id: UUID
    amount: Decimal
    currency: str
    method: PaymentMethod
    reference: str | None
    status: PaymentRequestStatus
    submitted_by_id: UUID
    submitted_at: datetime
    reviewed_by_id: UUID | None
    reviewed_at: datetime | None
    reject_reason: str | None
    review_notes: str | None


@dataclass(frozen=True)
class ReceiptVoucherSnapshot:
    id: UUID
    voucher_number: str
    invoice_id: UUID
    payment_request_id: UUID
    amount: Decimal
    currency: str
    confirmed_by_id: UUID
    confirmed_at: datetime
    notes: str | None


@dataclass(frozen=True)
class PaymentStats:
    """Counts of payment requests by status plus the pending amount."""

    pending: int
    confirmed: int
    rejected: int
    pending_amount: Decimal
    confirmed_amount: Decimal
