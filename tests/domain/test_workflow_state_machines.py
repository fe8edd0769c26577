"""
Tests for the pure workflow tables.

These tests verify:
- Order and batch adjacency tables match the documented lifecycle
- Terminal statuses have no outgoing edges
- Every reachable order status has a permission action
- Batch -> order cascade rules only target adjacent order statuses
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from fulfillment_kernel.domain.batch import (
    BATCH_ORDER_CASCADE,
    BATCH_TRANSITIONS,
    TERMINAL_BATCH_STATUSES,
    BatchStatus,
    allowed_batch_targets,
    can_transition_batch,
)
from fulfillment_kernel.domain.order import (
    ORDER_TARGET_ACTIONS,
    ORDER_TARGET_GATES,
    ORDER_TRANSITIONS,
    TERMINAL_ORDER_STATUSES,
    OrderGate,
    OrderStatus,
    allowed_targets,
    can_transition,
    required_action,
)


class TestOrderTransitions:

    def test_every_status_has_an_entry(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize("status", sorted(TERMINAL_ORDER_STATUSES))
    def test_terminal_statuses_have_no_targets(self, status):
        assert allowed_targets(status) == ()

    def test_happy_path_is_a_chain_of_single_steps(self):
        path = [
            OrderStatus.DRAFT,
            OrderStatus.SUBMITTED,
            OrderStatus.VALIDATED,
            OrderStatus.SCHEDULED,
            OrderStatus.IN_PRODUCTION,
            OrderStatus.QC_PENDING,
            OrderStatus.RELEASED,
            OrderStatus.DISPATCHED,
            OrderStatus.DELIVERED,
        ]
        for current, target in zip(path, path[1:]):
            assert can_transition(current, target), f"{current} -> {target}"

    def test_qc_pending_cannot_be_cancelled(self):
        assert not can_transition(OrderStatus.QC_PENDING, OrderStatus.CANCELLED)

    def test_rejected_order_returns_to_draft(self):
        assert allowed_targets(OrderStatus.REJECTED) == (OrderStatus.DRAFT,)

    def test_failed_qc_offers_rework_or_cancel(self):
        assert set(allowed_targets(OrderStatus.FAILED_QC)) == {
            OrderStatus.REWORK, OrderStatus.CANCELLED,
        }

    def test_allowed_targets_follow_declaration_order(self):
        assert allowed_targets(OrderStatus.SUBMITTED) == (
            OrderStatus.VALIDATED,
            OrderStatus.CANCELLED,
            OrderStatus.REJECTED,
        )

    def test_accepts_plain_strings(self):
        assert can_transition("DRAFT", "SUBMITTED")

    def test_every_non_initial_status_has_an_action(self):
        reachable = set().union(*ORDER_TRANSITIONS.values())
        assert reachable <= set(ORDER_TARGET_ACTIONS)

    def test_dispatch_requires_release_and_shipment(self):
        assert ORDER_TARGET_GATES[OrderStatus.DISPATCHED] == (
            OrderGate.BATCH_ATTACHED,
            OrderGate.BATCH_RELEASED,
            OrderGate.SHIPMENT_ACTIVE,
        )

    @pytest.mark.parametrize(
        "target", [OrderStatus.SCHEDULED, OrderStatus.IN_PRODUCTION, OrderStatus.QC_PENDING],
    )
    def test_production_statuses_need_live_batch(self, target):
        assert ORDER_TARGET_GATES[target] == (OrderGate.BATCH_ATTACHED, OrderGate.BATCH_ACTIVE)

    def test_required_action_for_release(self):
        assert required_action(OrderStatus.RELEASED) == "release"

    @given(st.sampled_from(list(OrderStatus)), st.sampled_from(list(OrderStatus)))
    def test_can_transition_agrees_with_allowed_targets(self, current, target):
        assert can_transition(current, target) == (target in allowed_targets(current))

    @given(st.sampled_from(list(OrderStatus)))
    def test_no_self_loops(self, status):
        assert not can_transition(status, status)


class TestBatchTransitions:

    def test_every_status_has_an_entry(self):
        assert set(BATCH_TRANSITIONS) == set(BatchStatus)

    @pytest.mark.parametrize("status", sorted(TERMINAL_BATCH_STATUSES))
    def test_terminal_statuses_have_no_targets(self, status):
        assert allowed_batch_targets(status) == ()

    def test_released_only_reachable_from_qc_passed(self):
        sources = {s for s, targets in BATCH_TRANSITIONS.items() if BatchStatus.RELEASED in targets}
        assert sources == {BatchStatus.QC_PASSED}

    def test_on_hold_resumes_into_qc_pending(self):
        assert set(allowed_batch_targets(BatchStatus.ON_HOLD)) == {
            BatchStatus.QC_PENDING, BatchStatus.REJECTED,
        }

    def test_failed_qc_is_terminal(self):
        assert BatchStatus.FAILED_QC in TERMINAL_BATCH_STATUSES

    @given(st.sampled_from(list(BatchStatus)), st.sampled_from(list(BatchStatus)))
    def test_can_transition_agrees_with_allowed_targets(self, current, target):
        assert can_transition_batch(current, target) == (target in allowed_batch_targets(current))


class TestCascadeRules:

    @pytest.mark.parametrize("batch_status", list(BATCH_ORDER_CASCADE))
    def test_cascade_targets_are_adjacent_to_every_source(self, batch_status):
        sources, target = BATCH_ORDER_CASCADE[batch_status]
        for source in sources:
            assert can_transition(source, target), f"{source} -> {target}"

    def test_release_moves_qc_pending_orders_to_released(self):
        assert BATCH_ORDER_CASCADE[BatchStatus.RELEASED] == (
            frozenset({OrderStatus.QC_PENDING}), OrderStatus.RELEASED,
        )

    def test_rejection_fails_attached_orders(self):
        _, target = BATCH_ORDER_CASCADE[BatchStatus.REJECTED]
        assert target == OrderStatus.FAILED_QC

    def test_hold_does_not_cascade(self):
        assert BatchStatus.ON_HOLD not in BATCH_ORDER_CASCADE
