"""
Audit domain types (``fulfillment_kernel.domain.audit``).

An ``AuditRecord`` is produced by each successful mutation and handed to
an ``AuditRecorder`` once the business unit of work has committed.
Recording is a best-effort side channel: a recorder failure never fails
or rolls back the business operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from uuid import UUID


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Order lifecycle
    ORDER_CREATED = "order_created"
    ORDER_TRANSITIONED = "order_transitioned"

    # Batch lifecycle
    BATCH_SCHEDULED = "batch_scheduled"
    BATCH_TRANSITIONED = "batch_transitioned"
    BATCH_RELEASED = "batch_released"
    BATCH_REJECTED = "batch_rejected"

    # Quality control
    QC_INITIALIZED = "qc_initialized"
    QC_RESULT_RECORDED = "qc_result_recorded"
    QC_COMPLETED = "qc_completed"

    # Payments
    PAYMENT_REQUEST_SUBMITTED = "payment_request_submitted"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_REJECTED = "payment_rejected"


@dataclass(frozen=True)
class AuditRecord:
    """One audit entry describing a committed mutation."""

    entity_type: str
    entity_id: UUID
    action: AuditAction
    actor_id: UUID
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class AuditRecorder(Protocol):
    """Append-only audit sink."""

    def append(self, record: AuditRecord) -> None:
        ...
