"""
Module: fulfillment_kernel.models.order
Responsibility: ORM persistence for orders and their status timeline.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - Status is one of OrderStatus (DB check constraint); transitions are
      enforced by OrderService with compare-and-swap updates.
    - Timeline rows are append-only (ORM listener, see db/immutability.py).
    - DELIVERED / CANCELLED orders are never modified again.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of a timeline row, or on
      any UPDATE of a terminal order through the ORM.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, UUIDString
from fulfillment_kernel.domain.order import OrderStatus

if TYPE_CHECKING:
    from fulfillment_kernel.domain.dtos import OrderSnapshot, TimelineEntry
    from fulfillment_kernel.models.batch import Batch

_ORDER_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in OrderStatus)


class Order(Base):
    """A customer order for a radiopharmaceutical product."""

    __tablename__ = "orders"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_ORDER_STATUS_VALUES})",
            name="ck_orders_valid_status",
        ),
        Index("ix_orders_status", "status"),
        Index("ix_orders_batch", "batch_id"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=OrderStatus.DRAFT.value,
    )
    customer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requested_activity: Mapped[Decimal] = mapped_column(nullable=False)
    activity_unit: Mapped[str] = mapped_column(String(10), nullable=False, default="mCi")
    delivery_window_start: Mapped[datetime | None] = mapped_column(nullable=True)
    delivery_window_end: Mapped[datetime | None] = mapped_column(nullable=True)
    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=True,
    )
    shipment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    batch: Mapped["Batch | None"] = relationship(
        "Batch", back_populates="orders", foreign_keys=[batch_id],
    )
    timeline: Mapped[list["OrderTimelineEvent"]] = relationship(
        "OrderTimelineEvent",
        back_populates="order",
        order_by="OrderTimelineEvent.seq",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status}>"

    def to_dto(self) -> OrderSnapshot:
        """Convert ORM model to frozen domain DTO."""
        from fulfillment_kernel.domain.dtos import OrderSnapshot

        return OrderSnapshot(
            id=self.id,
            order_number=self.order_number,
            status=OrderStatus(self.status),
            customer_id=self.customer_id,
            product_id=self.product_id,
            requested_activity=self.requested_activity,
            activity_unit=self.activity_unit,
            delivery_window_start=self.delivery_window_start,
            delivery_window_end=self.delivery_window_end,
            batch_id=self.batch_id,
            shipment_id=self.shipment_id,
            timeline=tuple(e.to_dto() for e in self.timeline),
        )


class OrderTimelineEvent(Base):
    """One status change of an order. Append-only."""

    __tablename__ = "order_timeline_events"

    __table_args__ = (
        Index("ix_order_timeline_order", "order_id", "seq"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str | None] = mapped_column(String(100), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="timeline")

    def to_dto(self) -> TimelineEntry:
        from fulfillment_kernel.domain.dtos import TimelineEntry

        return TimelineEntry(
            from_status=self.from_status,
            to_status=self.to_status,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            comment=self.comment,
            occurred_at=self.occurred_at,
        )
