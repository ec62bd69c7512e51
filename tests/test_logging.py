"""Tests for the structured logging system (saf_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from saf_engines.types import BatchStatus
from saf_kernel.exceptions import InsufficientCapacityError
from saf_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "saf_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("batch_allocated", extra={"attempt": 2, "status": "partially_allocated"})

        record = _parse_log(stream)
        assert record["attempt"] == 2
        assert record["status"] == "partially_allocated"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", entity_id="batch-9")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["entity_id"] == "batch-9"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_fields_extracted(self):
        """Kernel exceptions carry a code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InsufficientCapacityError("batch B-1", Decimal("3001"), Decimal("3000"))
        except InsufficientCapacityError:
            get_logger("test").error("allocation_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_CAPACITY"
        assert record["exc_type"] == "InsufficientCapacityError"
        assert record["exc_source_id"] == "batch B-1"
        assert record["exc_requested_volume"] == "3001"
        assert record["exc_available_volume"] == "3000"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "entity_id" not in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_values", extra={
            "batch_id": uid,
            "volume": Decimal("12.500"),
            "batch_status": BatchStatus.FULLY_ALLOCATED,
        })

        record = _parse_log(stream)
        assert record["batch_id"] == str(uid)
        assert record["volume"] == "12.500"
        assert record["batch_status"] == "fully_allocated"

    def test_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(entity_id="outer")
        with LogContext.bind(entity_id="inner"):
            assert LogContext.get_all()["entity_id"] == "inner"
        assert LogContext.get_all()["entity_id"] == "outer"

    def test_bind_restores_none(self):
        assert "correlation_id" not in LogContext.get_all()
        with LogContext.bind(correlation_id="temp"):
            assert LogContext.get_all()["correlation_id"] == "temp"
        assert "correlation_id" not in LogContext.get_all()

    def test_bind_skips_none_values(self):
        LogContext.set(entity_id="kept")
        with LogContext.bind(entity_id=None, actor_id="a"):
            assert LogContext.get_all() == {"entity_id": "kept", "actor_id": "a"}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c", actor_id="a", entity_id="e", trace_id="t",
            batch_id="b", contract_id="k", bid_id="d",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 7
        assert ctx["trace_id"] == "t"
        assert ctx["contract_id"] == "k"

    def test_bind_stringifies_ledger_keys(self):
        batch_id = uuid4()
        with LogContext.bind(batch_id=batch_id, bid_id=None):
            assert LogContext.get_all() == {"batch_id": str(batch_id)}
        assert LogContext.get_all() == {}

    def test_bind_rejects_unknown_field(self):
        with pytest.raises(ValueError):
            LogContext.bind(plant_id="p")

    def test_ledger_keys_in_formatted_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(contract_id="C-1"):
            get_logger("test").info("delivery_logged")

        assert _parse_log(stream)["contract_id"] == "C-1"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert logging.getLogger("saf_kernel").handlers == [h1]

    def test_does_not_propagate(self):
        configure_logging(handler=_make_handler()[0])
        assert logging.getLogger("saf_kernel").propagate is False

    def test_get_logger_returns_child(self):
        assert get_logger("services.base").name == "saf_kernel.services.base"

    def test_logger_hierarchy(self):
        """Child loggers inherit the saf_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("modules.contracts.service").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "saf_kernel.modules.contracts.service"
