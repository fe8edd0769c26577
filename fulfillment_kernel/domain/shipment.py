"""
Shipment view consumed by the order DISPATCHED gate.

Shipments are owned by the logistics system.  The kernel only asks whether
an order has an active shipment, through an injected ``ShipmentDirectory``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID


class ShipmentStatus(str, Enum):
    PLANNED = "PLANNED"
    PACKED = "PACKED"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


ACTIVE_SHIPMENT_STATUSES: frozenset[ShipmentStatus] = frozenset({
    ShipmentStatus.PLANNED,
    ShipmentStatus.PACKED,
    ShipmentStatus.IN_TRANSIT,
})


@dataclass(frozen=True)
class ShipmentInfo:
    shipment_id: UUID
    order_id: UUID
    status: ShipmentStatus

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_SHIPMENT_STATUSES


@runtime_checkable
class ShipmentDirectory(Protocol):
    """Read-only lookup of the shipment carrying an order."""

    def shipment_for_order(self, order_id: UUID) -> ShipmentInfo | None:
        ...
