"""
QC seeding and result entry tests.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment_kernel.domain.audit import AuditAction
from fulfillment_kernel.domain.outcomes import SideEffectKind
from fulfillment_kernel.domain.qc import RuleType, TemplateStatus
from fulfillment_kernel.exceptions import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from fulfillment_kernel.models.qc import QcTestDefinition
from tests.conftest import PH, PURITY, STERILITY, WorkflowDriver, messages


def row_named(fulfillment, batch_id, name):
    return next(r for r in fulfillment.list_qc_results(batch_id) if r.test_name == name)


class TestInitializeQc:

    def test_explicit_initialize_is_idempotent(self, workflow, fulfillment, production_manager, qc_analyst):
        batch_id, _ = workflow.scheduled_batch()
        fulfillment.start_production(batch_id, production_manager)

        first = fulfillment.initialize_qc(batch_id, qc_analyst)
        assert len(first.snapshot) == 3
        assert first.effects_of(SideEffectKind.QC_INITIALIZED)

        second = fulfillment.initialize_qc(batch_id, qc_analyst)
        assert [r.id for r in second.snapshot] == [r.id for r in first.snapshot]
        assert not second.side_effects
        assert not second.audit_records

        outcome = fulfillment.submit_for_qc(batch_id, production_manager)
        assert not outcome.effects_of(SideEffectKind.QC_INITIALIZED)
        assert len(fulfillment.list_qc_results(batch_id)) == 3

    def test_rows_snapshot_the_rule(self, workflow, fulfillment):
        batch_id, _ = workflow.batch_in_qc()
        rows = fulfillment.list_qc_results(batch_id)

        assert [r.display_order for r in rows] == [1, 2, 3]
        assert all(r.is_required for r in rows)
        assert all(not r.completed for r in rows)
        ph = rows[0]
        assert ph.rule.rule_type == RuleType.RANGE
        assert ph.rule.min_value == Decimal("4.5")
        assert ph.rule.max_value == Decimal("7.5")
        assert ph.rule.unit == "pH"

    def test_master_data_edits_do_not_touch_seeded_rows(
        self, workflow, fulfillment, session_factory, qc_analyst,
    ):
        batch_id, _ = workflow.batch_in_qc()
        ph = row_named(fulfillment, batch_id, PH.name)
        with session_factory() as s:
            definition = s.get(QcTestDefinition, ph.test_definition_id)
            definition.max_value = Decimal("8.5")
            s.commit()

        outcome = fulfillment.record_qc_result(batch_id, ph.id, Decimal("8.0"), qc_analyst)
        assert outcome.snapshot.rule.max_value == Decimal("7.5")
        assert outcome.snapshot.passed is False

    def test_two_active_templates(self, fulfillment, actors, create_qc_template, production_manager):
        product_id = uuid4()
        create_qc_template(product_id)
        create_qc_template(product_id, name="Second panel")
        driver = WorkflowDriver(fulfillment, product_id, actors)
        batch_id, _ = driver.scheduled_batch()
        fulfillment.start_production(batch_id, production_manager)
        with pytest.raises(ValidationError):
            fulfillment.submit_for_qc(batch_id, production_manager)

    def test_draft_template_ignored(self, fulfillment, actors, create_qc_template, production_manager):
        product_id = uuid4()
        create_qc_template(product_id, status=TemplateStatus.DRAFT)
        driver = WorkflowDriver(fulfillment, product_id, actors)
        batch_id, _ = driver.scheduled_batch()
        fulfillment.start_production(batch_id, production_manager)
        with pytest.raises(ValidationError):
            fulfillment.submit_for_qc(batch_id, production_manager)

    def test_empty_template(self, fulfillment, actors, create_qc_template, production_manager):
        product_id = uuid4()
        create_qc_template(product_id, tests=())
        driver = WorkflowDriver(fulfillment, product_id, actors)
        batch_id, _ = driver.scheduled_batch()
        fulfillment.start_production(batch_id, production_manager)
        with pytest.raises(ValidationError):
            fulfillment.submit_for_qc(batch_id, production_manager)

    def test_requires_permission(self, workflow, fulfillment, production_manager, sales):
        batch_id, _ = workflow.scheduled_batch()
        with pytest.raises(PermissionDeniedError):
            fulfillment.initialize_qc(batch_id, sales)


class TestRecordResult:

    def test_numeric_pass(self, workflow, fulfillment, qc_analyst, clock, audit_recorder):
        batch_id, _ = workflow.batch_in_qc()
        ph = row_named(fulfillment, batch_id, PH.name)

        outcome = fulfillment.record_qc_result(batch_id, ph.id, Decimal("6.9"), qc_analyst)
        row = outcome.snapshot
        assert row.completed
        assert row.passed is True
        assert row.fail_reason is None
        assert row.numeric_value == Decimal("6.9")
        assert row.pass_fail_value is None
        assert row.entered_by_id == qc_analyst.actor_id
        assert row.entered_at is not None
        assert audit_recorder.actions()[-1] == AuditAction.QC_RESULT_RECORDED

    def test_numeric_fail_reason(self, workflow, fulfillment, qc_analyst):
        batch_id, _ = workflow.batch_in_qc()
        purity = row_named(fulfillment, batch_id, PURITY.name)
        outcome = fulfillment.record_qc_result(batch_id, purity.id, Decimal("93.5"), qc_analyst)
        assert outcome.snapshot.passed is False
        assert outcome.snapshot.fail_reason == "Value 93.5 % is below minimum 95 %"

    def test_pass_fail(self, workflow, fulfillment, qc_analyst):
        batch_id, _ = workflow.batch_in_qc()
        sterility = row_named(fulfillment, batch_id, STERILITY.name)
        outcome = fulfillment.record_qc_result(batch_id, sterility.id, False, qc_analyst)
        assert outcome.snapshot.pass_fail_value is False
        assert outcome.snapshot.numeric_value is None
        assert outcome.snapshot.fail_reason == "Test marked as failed"

    def test_re_record_overwrites(self, workflow, fulfillment, qc_analyst):
        batch_id, _ = workflow.batch_in_qc()
        ph = row_named(fulfillment, batch_id, PH.name)
        fulfillment.record_qc_result(batch_id, ph.id, Decimal("9.0"), qc_analyst)
        outcome = fulfillment.record_qc_result(batch_id, ph.id, Decimal("7.0"), qc_analyst)
        assert outcome.snapshot.passed is True
        assert outcome.snapshot.fail_reason is None

    def test_wrong_kind_rejected_without_change(self, workflow, fulfillment, qc_analyst):
        batch_id, _ = workflow.batch_in_qc()
        ph = row_named(fulfillment, batch_id, PH.name)
        with pytest.raises(ValidationError):
            fulfillment.record_qc_result(batch_id, ph.id, True, qc_analyst)
        assert not row_named(fulfillment, batch_id, PH.name).completed

    def test_row_of_other_batch(self, workflow, fulfillment, qc_analyst):
        batch_a, _ = workflow.batch_in_qc()
        batch_b, _ = workflow.batch_in_qc()
        row_of_b = fulfillment.list_qc_results(batch_b)[0]
        with pytest.raises(NotFoundError):
            fulfillment.record_qc_result(batch_a, row_of_b.id, Decimal("6"), qc_analyst)

    def test_unknown_row(self, workflow, fulfillment, qc_analyst):
        batch_id, _ = workflow.batch_in_qc()
        with pytest.raises(NotFoundError):
            fulfillment.record_qc_result(batch_id, uuid4(), Decimal("6"), qc_analyst)

    def test_only_while_qc_pending(self, workflow, fulfillment, qc_analyst):
        batch_id, _ = workflow.passed_batch()
        ph = row_named(fulfillment, batch_id, PH.name)
        with pytest.raises(InvalidStateError):
            fulfillment.record_qc_result(batch_id, ph.id, Decimal("6"), qc_analyst)

    def test_requires_permission(self, workflow, fulfillment, qp):
        batch_id, _ = workflow.batch_in_qc()
        ph = row_named(fulfillment, batch_id, PH.name)
        with pytest.raises(PermissionDeniedError):
            fulfillment.record_qc_result(batch_id, ph.id, Decimal("6"), qp)

    def test_logs_result(self, workflow, fulfillment, qc_analyst, captured_logs):
        batch_id, _ = workflow.batch_in_qc()
        ph = row_named(fulfillment, batch_id, PH.name)
        fulfillment.record_qc_result(batch_id, ph.id, Decimal("6"), qc_analyst)
        records = captured_logs()
        assert "qc_result_recorded" in messages(records)
        assert "ENGINE_TRACE" in messages(records)


class TestBatchQcStatus:

    def test_progress(self, workflow, fulfillment, qc_analyst):
        batch_id, _ = workflow.batch_in_qc()
        status = fulfillment.get_batch_qc_status(batch_id)
        assert (status.total, status.completed, status.progress_percent) == (3, 0, 0)

        ph = row_named(fulfillment, batch_id, PH.name)
        fulfillment.record_qc_result(batch_id, ph.id, Decimal("10"), qc_analyst)
        status = fulfillment.get_batch_qc_status(batch_id)
        assert status.completed == 1
        assert status.failed == 1
        assert status.progress_percent == 33
        assert not status.is_complete

    def test_unknown_batch(self, fulfillment):
        with pytest.raises(NotFoundError):
            fulfillment.get_batch_qc_status(uuid4())
