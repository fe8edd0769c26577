"""ORM models for the fulfillment kernel."""

from fulfillment_kernel.models.audit_event import AuditEvent
from fulfillment_kernel.models.batch import Batch, BatchEvent, BatchRelease
from fulfillment_kernel.models.invoice import (
    Invoice,
    Payment,
    PaymentRequest,
    ReceiptVoucher,
)
from fulfillment_kernel.models.order import Order, OrderTimelineEvent
from fulfillment_kernel.models.qc import (
    QcTemplate,
    QcTemplateLine,
    QcTestDefinition,
    QcTestResult,
)

__all__ = [
    "AuditEvent",
    "Batch",
    "BatchEvent",
    "BatchRelease",
    "Invoice",
    "Order",
    "OrderTimelineEvent",
    "Payment",
    "PaymentRequest",
    "QcTemplate",
    "QcTemplateLine",
    "QcTestDefinition",
    "QcTestResult",
    "ReceiptVoucher",
]
