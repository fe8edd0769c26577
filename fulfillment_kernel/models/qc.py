"""
Module: fulfillment_kernel.models.qc
Responsibility: ORM persistence for QC master data (test definitions,
    templates, template lines) and per-batch QC result rows.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - A product has at most one ACTIVE template.  QcService reports more
      than one as a ValidationError when seeding.
    - Each batch has at most one result row per test definition:
      UNIQUE(batch_id, test_definition_id), so seeding is idempotent even
      under a concurrent second seeding attempt.
    - Result rows carry a snapshot of the acceptance rule taken at seeding
      time; later edits to master data never change an in-flight batch.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, UUIDString
from fulfillment_kernel.domain.qc import AcceptanceRule, RuleType, TemplateStatus

if TYPE_CHECKING:
    from fulfillment_kernel.domain.dtos import QcResultSnapshot
    from fulfillment_kernel.models.batch import Batch

_RULE_TYPE_VALUES = ", ".join(f"'{r.value}'" for r in RuleType)


class QcTestDefinition(Base):
    """Master data: a QC test and its acceptance criterion."""

    __tablename__ = "qc_test_definitions"

    __table_args__ = (
        CheckConstraint(
            f"rule_type IN ({_RULE_TYPE_VALUES})",
            name="ck_qc_test_definitions_rule_type",
        ),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    rule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    min_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    method: Mapped[str | None] = mapped_column(Text, nullable=True)

    def rule(self) -> AcceptanceRule:
        return AcceptanceRule(
            rule_type=RuleType(self.rule_type),
            min_value=self.min_value,
            max_value=self.max_value,
            unit=self.unit,
        )


class QcTemplate(Base):
    """Master data: the ordered set of QC tests for a product."""

    __tablename__ = "qc_templates"

    __table_args__ = (
        Index("ix_qc_templates_product_status", "product_id", "status"),
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TemplateStatus.DRAFT.value,
    )

    lines: Mapped[list["QcTemplateLine"]] = relationship(
        "QcTemplateLine",
        back_populates="template",
        order_by="QcTemplateLine.display_order",
        lazy="selectin",
    )


class QcTemplateLine(Base):
    """One test of a template, with its required flag and position."""

    __tablename__ = "qc_template_lines"

    __table_args__ = (
        UniqueConstraint(
            "template_id", "test_definition_id",
            name="uq_qc_template_lines_test",
        ),
    )

    template_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("qc_templates.id"), nullable=False,
    )
    test_definition_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("qc_test_definitions.id"), nullable=False,
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    template: Mapped["QcTemplate"] = relationship("QcTemplate", back_populates="lines")
    test_definition: Mapped["QcTestDefinition"] = relationship(
        "QcTestDefinition", lazy="joined",
    )


class QcTestResult(Base):
    """QC result row for one test of one batch."""

    __tablename__ = "qc_test_results"

    __table_args__ = (
        UniqueConstraint(
            "batch_id", "test_definition_id",
            name="uq_qc_test_results_batch_test",
        ),
        Index("ix_qc_test_results_batch", "batch_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False,
    )
    test_definition_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("qc_test_definitions.id"), nullable=False,
    )
    test_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Rule snapshot taken at seeding time
    rule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    min_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    numeric_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    pass_fail_value: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fail_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    entered_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    entered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    batch: Mapped["Batch"] = relationship("Batch", back_populates="qc_results")

    def rule(self) -> AcceptanceRule:
        return AcceptanceRule(
            rule_type=RuleType(self.rule_type),
            min_value=self.min_value,
            max_value=self.max_value,
            unit=self.unit,
        )

    def to_dto(self) -> QcResultSnapshot:
        from fulfillment_kernel.domain.dtos import QcResultSnapshot

        return QcResultSnapshot(
            id=self.id,
            batch_id=self.batch_id,
            test_definition_id=self.test_definition_id,
            test_name=self.test_name,
            rule=self.rule(),
            is_required=self.is_required,
            display_order=self.display_order,
            numeric_value=self.numeric_value,
            pass_fail_value=self.pass_fail_value,
            passed=self.passed,
            completed=self.completed,
            fail_reason=self.fail_reason,
            entered_by_id=self.entered_by_id,
            entered_at=self.entered_at,
        )
