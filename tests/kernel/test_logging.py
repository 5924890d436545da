"""Tests for the structured logging system (pharmacy_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from pharmacy_kernel.domain.types import AlertType
from pharmacy_kernel.exceptions import InsufficientStockError
from pharmacy_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's configuration."""
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


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_all_logs(stream)[0]
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "pharmacy_kernel.test"
        assert "ts" in record

    def test_extra_and_context_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", document_code="PX-20240601-001")
        get_logger("test").info("issue_created", extra={"line_count": 2})

        record = _parse_all_logs(stream)[0]
        assert record["line_count"] == 2
        assert record["correlation_id"] == "abc-123"
        assert record["document_code"] == "PX-20240601-001"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "values",
            extra={"lot_id": uid, "total": Decimal("12.50"), "expiry": date(2025, 1, 31)},
        )

        record = _parse_all_logs(stream)[0]
        assert record["lot_id"] == str(uid)
        assert record["total"] == "12.50"
        assert record["expiry"] == "2025-01-31"

    def test_enums_and_sets_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "alert_created",
            extra={"alert_type": AlertType.LOW_STOCK, "lot_numbers": {"B-2", "A-1"}},
        )

        record = _parse_all_logs(stream)[0]
        assert record["alert_type"] == "LOW_STOCK"
        assert record["lot_numbers"] == ["A-1", "B-2"]

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        shortage = {"product_id": "p", "product_name": "Amoxicillin", "requested": 5,
                    "available": 2, "shortage": 3, "message": "Amoxicillin: requested 5, available 2"}
        try:
            raise InsufficientStockError([shortage])
        except InsufficientStockError:
            get_logger("test").error("issue_failed", exc_info=True)

        record = _parse_all_logs(stream)[0]
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_kind"] == "insufficient_stock"
        assert record["exc_shortages"] == [shortage]
        assert "traceback" in record

    def test_debug_suppressed_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.debug("second")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first"]


class TestLogContext:

    def test_bind_restores_previous_value(self):
        LogContext.set(job_name="outer")
        with LogContext.bind(job_name="inner"):
            assert LogContext.get_all()["job_name"] == "inner"
        assert LogContext.get_all()["job_name"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(actor_id="a"):
            assert LogContext.get_all() == {"actor_id": "a"}
        assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(correlation_id="x", actor_id="y")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_fields_set_inside_bind_do_not_leak(self):
        with LogContext.bind(actor_id="pharmacist"):
            LogContext.set(document_code="PX-20240601-001")
            assert LogContext.get_all()["document_code"] == "PX-20240601-001"
        assert LogContext.get_all() == {}

    def test_values_stored_as_strings(self):
        actor = uuid4()
        LogContext.set(actor_id=actor)
        assert LogContext.get_all() == {"actor_id": str(actor)}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(lot_id="x")
        with pytest.raises(TypeError):
            with LogContext.bind(warehouse="x"):
                pass


class TestConfigureLogging:

    def test_idempotent(self):
        root = logging.getLogger("pharmacy_kernel")
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        attached = list(root.handlers)
        h2, _ = _make_handler()
        configure_logging(handler=h2)

        assert h1 in root.handlers
        assert h2 not in root.handlers
        assert root.handlers == attached

    def test_get_logger_returns_child(self):
        assert get_logger("services.stock_movement").name == "pharmacy_kernel.services.stock_movement"
