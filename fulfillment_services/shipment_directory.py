"""
fulfillment_services.shipment_directory -- In-process shipment lookup.

Responsibility:
    A ``ShipmentDirectory`` holding shipment state registered by the
    surrounding logistics integration (or by tests).  The order DISPATCHED
    gate reads it; the engine never writes shipment state itself.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from fulfillment_kernel.domain.shipment import ShipmentInfo, ShipmentStatus


class StaticShipmentDirectory:
    """Shipments keyed by order id."""

    def __init__(self, shipments: dict[UUID, ShipmentInfo] | None = None):
        self._by_order: dict[UUID, ShipmentInfo] = dict(shipments or {})

    def register(
        self,
        order_id: UUID,
        status: ShipmentStatus = ShipmentStatus.PLANNED,
        shipment_id: UUID | None = None,
    ) -> ShipmentInfo:
        """Record (or replace) the shipment carrying ``order_id``."""
        info = ShipmentInfo(
            shipment_id=shipment_id or uuid4(),
            order_id=order_id,
            status=ShipmentStatus(status),
        )
        self._by_order[order_id] = info
        return info

    def remove(self, order_id: UUID) -> None:
        self._by_order.pop(order_id, None)

    def shipment_for_order(self, order_id: UUID) -> ShipmentInfo | None:
        return self._by_order.get(order_id)
