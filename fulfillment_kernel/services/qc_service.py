"""
QcService -- QC seeding, result entry and batch QC status.

Responsibility:
    Seeds a batch's QC result rows from the product's ACTIVE template
    (exactly once), records measured values and derives ``passed`` through
    the pure QC evaluation engine, and aggregates the batch QC status.

Architecture position:
    Kernel > Services -- imperative shell.  Delegates rule evaluation and
    aggregation to ``fulfillment_engines.qc_evaluation``.

Invariants enforced:
    - Seeding is idempotent: the ``qc_initialized_at IS NULL`` guard is a
      compare-and-swap, and UNIQUE(batch_id, test_definition_id) backs it.
    - Results are only recorded while the batch is QC_PENDING.
    - Each result row is updated independently; no batch-level lock is
      taken, so different tests of one batch may be recorded concurrently.
    - ``get_batch_qc_status`` never locks and never writes.

Failure modes:
    - NotFoundError: unknown batch or result row.
    - ValidationError: no / several ACTIVE templates, empty template, or a
      value of the wrong kind for the rule.
    - InvalidStateError: batch not QC_PENDING.
    - PermissionDeniedError: actor lacks ``qc:record_result``.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment_engines.qc_evaluation import coerce_numeric, evaluate, summarize
from fulfillment_kernel.domain.audit import AuditAction, AuditRecord
from fulfillment_kernel.domain.authorization import Actor
from fulfillment_kernel.domain.batch import BatchStatus
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.dtos import QcResultSnapshot
from fulfillment_kernel.domain.outcomes import Outcome, SideEffect, SideEffectKind
from fulfillment_kernel.domain.qc import (
    QcResultState,
    QcStatusSummary,
    QcValue,
    RuleType,
    TemplateStatus,
)
from fulfillment_kernel.exceptions import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.batch import Batch
from fulfillment_kernel.models.qc import QcTemplate, QcTestResult
from fulfillment_kernel.services.authorization_gate import AuthorizationGate
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.qc")


class QcService(BaseService[QcTestResult]):
    """QC result lifecycle for batches."""

    def __init__(
        self,
        session: Session,
        gate: AuthorizationGate,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._gate = gate

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def _active_template(self, product_id: UUID) -> QcTemplate:
        templates = self.session.execute(
            select(QcTemplate).where(
                QcTemplate.product_id == product_id,
                QcTemplate.status == TemplateStatus.ACTIVE.value,
            )
        ).scalars().all()

        if not templates:
            raise ValidationError(
                "qc_template", f"no active QC template for product {product_id}",
            )
        if len(templates) > 1:
            raise ValidationError(
                "qc_template",
                f"{len(templates)} active QC templates for product {product_id}",
            )
        template = templates[0]
        if not template.lines:
            raise ValidationError(
                "qc_template", f"active QC template {template.name} has no tests",
            )
        return template

    def _existing_rows(self, batch_id: UUID) -> list[QcTestResult]:
        return list(
            self.session.execute(
                select(QcTestResult)
                .where(QcTestResult.batch_id == batch_id)
                .order_by(QcTestResult.display_order)
            ).scalars().all()
        )

    def seed(self, batch: Batch, actor: Actor) -> tuple[list[QcTestResult], bool]:
        """
        Seed QC rows for ``batch`` unless already seeded.

        Used by the batch and order services inside their own operation;
        performs no permission check of its own.

        Returns:
            (rows, created) -- ``created`` is False when the batch was
            already seeded.
        """
        if batch.qc_initialized_at is not None:
            return self._existing_rows(batch.id), False

        existing = self._existing_rows(batch.id)
        if existing:
            return existing, False

        template = self._active_template(batch.product_id)
        now = self.clock.now()

        self._compare_and_set(
            batch,
            "Batch",
            expected={"qc_initialized_at": None},
            values={"qc_initialized_at": now},
        )

        rows = []
        for line in template.lines:
            definition = line.test_definition
            row = QcTestResult(
                batch_id=batch.id,
                test_definition_id=definition.id,
                test_name=definition.name,
                rule_type=definition.rule_type,
                min_value=definition.min_value,
                max_value=definition.max_value,
                unit=definition.unit,
                is_required=line.is_required,
                display_order=line.display_order,
                completed=False,
            )
            self.session.add(row)
            rows.append(row)
        self.session.flush()

        logger.info(
            "qc_initialized",
            extra={
                "batch_id": str(batch.id),
                "template_id": str(template.id),
                "test_count": len(rows),
                "actor_id": str(actor.actor_id),
            },
        )
        return rows, True

    def initialize_qc(
        self, batch_id: UUID, actor: Actor,
    ) -> Outcome[tuple[QcResultSnapshot, ...]]:
        """Seed QC rows for a batch (idempotent).

        Raises:
            NotFoundError: Unknown batch.
            ValidationError: No usable ACTIVE template.
        """
        self._gate.require(actor, "qc", "initialize")
        batch = self._get_or_raise(Batch, batch_id, "Batch")
        rows, created = self.seed(batch, actor)
        snapshots = tuple(r.to_dto() for r in rows)
        if not created:
            return Outcome(snapshot=snapshots)

        return Outcome(
            snapshot=snapshots,
            side_effects=(
                SideEffect(
                    SideEffectKind.QC_INITIALIZED, "Batch", batch.id,
                    {"test_count": len(rows)},
                ),
            ),
            audit_records=(self.seed_audit_record(batch.id, actor, len(rows)),),
        )

    def seed_audit_record(self, batch_id: UUID, actor: Actor, test_count: int) -> AuditRecord:
        return AuditRecord(
            entity_type="Batch",
            entity_id=batch_id,
            action=AuditAction.QC_INITIALIZED,
            actor_id=actor.actor_id,
            occurred_at=self.clock.now(),
            payload={"test_count": test_count},
        )

    # ------------------------------------------------------------------
    # Result entry
    # ------------------------------------------------------------------

    def record_result(
        self,
        batch_id: UUID,
        test_result_id: UUID,
        value: QcValue,
        actor: Actor,
    ) -> Outcome[QcResultSnapshot]:
        """
        Record a measured value for one QC test of a batch.

        ``value`` is a number for RANGE / MIN / MAX tests and a bool for
        PASS_FAIL tests.  Re-recording a test overwrites its value while
        the batch is still QC_PENDING.
        """
        self._gate.require(actor, "qc", "record_result")
        batch = self._get_or_raise(Batch, batch_id, "Batch")
        row = self.session.get(QcTestResult, test_result_id)
        if row is None or row.batch_id != batch.id:
            raise NotFoundError("QcTestResult", str(test_result_id))

        if BatchStatus(batch.status) != BatchStatus.QC_PENDING:
            raise InvalidStateError(
                "Batch", str(batch.id), batch.status, "record QC results for",
            )

        evaluation = evaluate(rule=row.rule(), value=value)
        now = self.clock.now()

        if RuleType(row.rule_type) == RuleType.PASS_FAIL:
            row.pass_fail_value = value
            row.numeric_value = None
        else:
            row.numeric_value = coerce_numeric(value)
            row.pass_fail_value = None
        row.passed = evaluation.passed
        row.fail_reason = evaluation.fail_reason
        row.completed = True
        row.entered_by_id = actor.actor_id
        row.entered_at = now
        self.session.flush()

        logger.info(
            "qc_result_recorded",
            extra={
                "batch_id": str(batch.id),
                "test_result_id": str(row.id),
                "test_name": row.test_name,
                "passed": evaluation.passed,
                "actor_id": str(actor.actor_id),
            },
        )

        return Outcome(
            snapshot=row.to_dto(),
            audit_records=(
                AuditRecord(
                    entity_type="Batch",
                    entity_id=batch.id,
                    action=AuditAction.QC_RESULT_RECORDED,
                    actor_id=actor.actor_id,
                    occurred_at=now,
                    payload={
                        "test_result_id": row.id,
                        "test_name": row.test_name,
                        "value": value,
                        "passed": evaluation.passed,
                        "fail_reason": evaluation.fail_reason,
                    },
                ),
            ),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_batch_qc_status(self, batch_id: UUID) -> QcStatusSummary:
        """Aggregate QC status of a batch. Read-only, never locks."""
        self._get_or_raise(Batch, batch_id, "Batch")
        rows = self.session.execute(
            select(
                QcTestResult.is_required,
                QcTestResult.completed,
                QcTestResult.passed,
            ).where(QcTestResult.batch_id == batch_id)
        ).all()
        return summarize(
            QcResultState(is_required=r.is_required, completed=r.completed, passed=r.passed)
            for r in rows
        )

    def recorders_of(self, batch_id: UUID) -> set[UUID]:
        """Actors who recorded any QC result for the batch."""
        ids = self.session.execute(
            select(QcTestResult.entered_by_id)
            .where(
                QcTestResult.batch_id == batch_id,
                QcTestResult.entered_by_id.is_not(None),
            )
            .distinct()
        ).scalars().all()
        return set(ids)
