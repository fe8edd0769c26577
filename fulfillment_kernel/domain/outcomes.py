"""
Operation outcomes.

Every mutating operation returns an ``Outcome``: the snapshot of the
entity after the change, the side effects it triggered (for the caller to
invalidate caches or emit notifications) and the audit records to append
once the unit of work commits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from fulfillment_kernel.domain.audit import AuditRecord

SnapshotT = TypeVar("SnapshotT")


class SideEffectKind(str, Enum):
    ORDER_CASCADED = "order_cascaded"
    ORDER_ATTACHED = "order_attached"
    QC_INITIALIZED = "qc_initialized"
    RELEASE_CREATED = "release_created"
    VOUCHER_ISSUED = "voucher_issued"
    PAYMENT_APPENDED = "payment_appended"
    INVOICE_UPDATED = "invoice_updated"


@dataclass(frozen=True)
class SideEffect:
    kind: SideEffectKind
    entity_type: str
    entity_id: UUID
    detail: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Outcome(Generic[SnapshotT]):
    snapshot: SnapshotT
    from_status: str | None = None
    to_status: str | None = None
    side_effects: tuple[SideEffect, ...] = ()
    audit_records: tuple[AuditRecord, ...] = ()

    def effects_of(self, kind: SideEffectKind) -> tuple[SideEffect, ...]:
        return tuple(e for e in self.side_effects if e.kind == kind)
