"""Pure domain types for the fulfillment kernel (zero I/O)."""

from fulfillment_kernel.domain.audit import AuditAction, AuditRecord, AuditRecorder
from fulfillment_kernel.domain.authorization import Actor, PermissionChecker
from fulfillment_kernel.domain.batch import (
    BATCH_TRANSITIONS,
    TERMINAL_BATCH_STATUSES,
    BatchStatus,
    SodMode,
)
from fulfillment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fulfillment_kernel.domain.order import (
    ORDER_TRANSITIONS,
    TERMINAL_ORDER_STATUSES,
    OrderGate,
    OrderStatus,
    allowed_targets,
)
from fulfillment_kernel.domain.outcomes import Outcome, SideEffect, SideEffectKind
from fulfillment_kernel.domain.payment import InvoiceStatus, PaymentRequestStatus
from fulfillment_kernel.domain.qc import AcceptanceRule, QcStatusSummary, RuleType
from fulfillment_kernel.domain.shipment import ShipmentDirectory, ShipmentInfo

__all__ = [
    "AcceptanceRule",
    "Actor",
    "AuditAction",
    "AuditRecord",
    "AuditRecorder",
    "BATCH_TRANSITIONS",
    "BatchStatus",
    "Clock",
    "DeterministicClock",
    "InvoiceStatus",
    "ORDER_TRANSITIONS",
    "OrderGate",
    "OrderStatus",
    "Outcome",
    "PaymentRequestStatus",
    "PermissionChecker",
    "QcStatusSummary",
    "RuleType",
    "ShipmentDirectory",
    "ShipmentInfo",
    "SideEffect",
    "SideEffectKind",
    "SodMode",
    "SystemClock",
    "TERMINAL_BATCH_STATUSES",
    "TERMINAL_ORDER_STATUSES",
    "allowed_targets",
]
