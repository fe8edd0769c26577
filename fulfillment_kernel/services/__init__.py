"""Services for the fulfillment kernel (write side)."""

from fulfillment_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
    DatabaseAuditRecorder,
    InMemoryAuditRecorder,
)
from fulfillment_kernel.services.authorization_gate import AuthorizationGate
from fulfillment_kernel.services.batch_service import BatchService
from fulfillment_kernel.services.order_service import OrderService
from fulfillment_kernel.services.payment_service import PaymentService
from fulfillment_kernel.services.qc_service import QcService
from fulfillment_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "AuthorizationGate",
    "BatchService",
    "DatabaseAuditRecorder",
    "InMemoryAuditRecorder",
    "OrderService",
    "PaymentService",
    "QcService",
    "SequenceCounter",
    "SequenceService",
]
