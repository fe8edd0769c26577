"""
Module: fulfillment_kernel.models.batch
Responsibility: ORM persistence for production batches, their status
    timeline, and the single regulatory release record.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - At most one BatchRelease per batch: UNIQUE(batch_id).
    - BatchRelease and BatchEvent rows are immutable once created.
    - RELEASED / REJECTED / FAILED_QC batches are never modified again.

Failure modes:
    - IntegrityError on a second BatchRelease for the same batch.
    - ImmutabilityViolationError on UPDATE/DELETE of a release or event.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, UUIDString
from fulfillment_kernel.domain.batch import BatchStatus, ReleaseType

if TYPE_CHECKING:
    from fulfillment_kernel.domain.dtos import (
        BatchReleaseSnapshot,
        BatchSnapshot,
        TimelineEntry,
    )
    from fulfillment_kernel.models.order import Order
    from fulfillment_kernel.models.qc import QcTestResult

_BATCH_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in BatchStatus)


class Batch(Base):
    """A production batch serving one or more orders of one product."""

    __tablename__ = "batches"

    __table_args__ = (
        CheckConstraint(
            f"status IN ({_BATCH_STATUS_VALUES})",
            name="ck_batches_valid_status",
        ),
        Index("ix_batches_status", "status"),
    )

    batch_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=BatchStatus.CREATED.value,
    )
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    planned_start: Mapped[datetime | None] = mapped_column(nullable=True)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    qc_initialized_at: Mapped[datetime | None] = mapped_column(nullable=True)

    orders: Mapped[list["Order"]] = relationship(
        "Order", back_populates="batch", order_by="Order.order_number",
    )
    qc_results: Mapped[list["QcTestResult"]] = relationship(
        "QcTestResult",
        back_populates="batch",
        order_by="QcTestResult.display_order",
    )
    release: Mapped["BatchRelease | None"] = relationship(
        "BatchRelease", back_populates="batch", uselist=False,
    )
    timeline: Mapped[list["BatchEvent"]] = relationship(
        "BatchEvent",
        back_populates="batch",
        order_by="BatchEvent.seq",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Batch {self.batch_number} status={self.status}>"

    def to_dto(self) -> BatchSnapshot:
        """Convert ORM model to frozen domain DTO."""
        from fulfillment_kernel.domain.dtos import BatchSnapshot

        return BatchSnapshot(
            id=self.id,
            batch_number=self.batch_number,
            status=BatchStatus(self.status),
            product_id=self.product_id,
            order_ids=tuple(o.id for o in self.orders),
            release=self.release.to_dto() if self.release is not None else None,
            timeline=tuple(e.to_dto() for e in self.timeline),
        )


class BatchEvent(Base):
    """One status change of a batch. Append-only."""

    __tablename__ = "batch_events"

    __table_args__ = (
        Index("ix_batch_events_batch", "batch_id", "seq"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str | None] = mapped_column(String(100), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    batch: Mapped["Batch"] = relationship("Batch", back_populates="timeline")

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


class BatchRelease(Base):
    """Signed regulatory release of a batch. Immutable."""

    __tablename__ = "batch_releases"

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False, unique=True,
    )
    released_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    signature: Mapped[str] = mapped_column(Text, nullable=False)
    signature_meaning: Mapped[str] = mapped_column(String(200), nullable=False)
    signature_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    release_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ReleaseType.FULL.value,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    released_at: Mapped[datetime] = mapped_column(nullable=False)

    batch: Mapped["Batch"] = relationship("Batch", back_populates="release")

    def __repr__(self) -> str:
        return f"<BatchRelease batch={self.batch_id} by={self.released_by_id}>"

    def to_dto(self) -> BatchReleaseSnapshot:
        from fulfillment_kernel.domain.dtos import BatchReleaseSnapshot

        return BatchReleaseSnapshot(
            id=self.id,
            batch_id=self.batch_id,
            released_by_id=self.released_by_id,
            signature=self.signature,
            signature_meaning=self.signature_meaning,
            signature_hash=self.signature_hash,
            release_type=ReleaseType(self.release_type),
            notes=self.notes,
            released_at=self.released_at,
        )
