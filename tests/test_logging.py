"""Tests for the structured logging system (fulfillment_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from fulfillment_kernel.domain.batch import BatchStatus
from fulfillment_kernel.exceptions import SeparationOfDutiesError
from fulfillment_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


class JsonStream:
    """StringIO-backed handler whose output parses back into dicts."""

    def __init__(self):
        self.stream = StringIO()
        self.handler = logging.StreamHandler(self.stream)
        self.handler.setFormatter(StructuredFormatter())

    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    def first(self) -> dict:
        return self.records()[0]


@pytest.fixture
def out() -> JsonStream:
    sink = JsonStream()
    configure_logging(handler=sink.handler)
    return sink


@pytest.fixture
def log() -> logging.Logger:
    return get_logger("test")


class TestStructuredFormatter:

    def test_base_fields(self, out, log):
        log.info("hello")
        record = out.first()
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "fulfillment_kernel.test"
        assert "ts" in record

    def test_extra_fields(self, out, log):
        log.info("batch_released", extra={"seq": 42, "status": "RELEASED"})
        record = out.first()
        assert (record["seq"], record["status"]) == (42, "RELEASED")

    def test_domain_values_serialized(self, out, log):
        batch_id = uuid4()
        log.info(
            "qc_recorded",
            extra={
                "batch_id": batch_id,
                "value": Decimal("6.50"),
                "batch_status": BatchStatus.QC_PENDING,
            },
        )
        record = out.first()
        assert record["batch_id"] == str(batch_id)
        assert record["value"] == "6.50"
        assert record["batch_status"] == "QC_PENDING"

    def test_context_fields(self, out, log):
        LogContext.set(correlation_id="abc-123", operation="release_batch")
        log.info("test_msg")
        record = out.first()
        assert record["correlation_id"] == "abc-123"
        assert record["operation"] == "release_batch"

    def test_no_context_fields_when_empty(self, out, log):
        log.info("bare_message")
        assert not set(CONTEXT_FIELDS) & set(out.first())

    def test_plain_exception(self, out, log):
        try:
            raise ValueError("boom")
        except ValueError:
            log.error("failed", exc_info=True)
        record = out.first()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "traceback" in record

    def test_kernel_exception_attributes(self, out, log):
        try:
            raise SeparationOfDutiesError("actor-1", "per_batch_actor", "recorded QC")
        except SeparationOfDutiesError:
            log.error("release_blocked", exc_info=True)
        record = out.first()
        assert record["exc_code"] == "SEPARATION_OF_DUTIES"
        assert record["exc_type"] == "SeparationOfDutiesError"
        assert record["exc_rule"] == "per_batch_actor"
        assert record["exc_actor_id"] == "actor-1"

    def test_default_level_drops_debug(self, out, log):
        log.info("first")
        log.warning("second", extra={"k": "v"})
        log.debug("third")
        assert [r["message"] for r in out.records()] == ["first", "second"]


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", entity_type="Batch")
        assert LogContext.get_all() == {"correlation_id": "x", "entity_type": "Batch"}

    def test_set_is_additive(self):
        LogContext.set(correlation_id="a")
        LogContext.set(actor_id="b", correlation_id=None)
        assert LogContext.get_all() == {"correlation_id": "a", "actor_id": "b"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(batch_id="b-1")

    def test_bind_restores_previous_value(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", operation="complete_qc"):
            assert LogContext.get_all() == {"correlation_id": "inner", "operation": "complete_qc"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id="a-1"):
                raise RuntimeError("inside")
        assert LogContext.get_all() == {}

    def test_bind_stringifies(self):
        entity_id = uuid4()
        with LogContext.bind(entity_id=entity_id, entity_type=None):
            assert LogContext.get_all() == {"entity_id": str(entity_id)}

    def test_all_fields(self):
        LogContext.set(**{name: name.upper() for name in CONTEXT_FIELDS})
        assert LogContext.get_all() == {name: name.upper() for name in CONTEXT_FIELDS}

    def test_engine_binds_operation_context(self, fulfillment, sales, product_id):
        # The database fixture has already configured logging; attach directly.
        sink = JsonStream()
        root = logging.getLogger("fulfillment_kernel")
        root.addHandler(sink.handler)
        root.setLevel(logging.INFO)
        fulfillment.create_order(sales, uuid4(), product_id, Decimal("10"))

        created = next(r for r in sink.records() if r["message"] == "order_created")
        assert created["operation"] == "create_order"
        assert created["actor_id"] == str(sales.actor_id)
        assert "correlation_id" in created
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        configure_logging(handler=JsonStream().handler)
        configure_logging(handler=JsonStream().handler)
        assert len(logging.getLogger("fulfillment_kernel").handlers) == 1

    def test_reset_allows_reconfigure(self):
        first, second = JsonStream(), JsonStream()
        configure_logging(handler=first.handler)
        reset_logging()
        configure_logging(handler=second.handler)
        get_logger("test").info("after_reset")
        assert first.records() == []
        assert second.first()["message"] == "after_reset"

    def test_get_logger_namespace(self):
        assert get_logger("services.batch").name == "fulfillment_kernel.services.batch"

    def test_child_loggers_inherit_handler(self):
        sink = JsonStream()
        configure_logging(handler=sink.handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")
        record = sink.first()
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "fulfillment_kernel.deep.nested.module"
