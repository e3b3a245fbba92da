"""Tests for the structured logging system (pos_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from pos_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


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
        assert record["logger"] == "pos_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("sale_recorded", extra={"line_count": 3, "method": "cash"})

        record = _parse_log(stream)
        assert record["line_count"] == 3
        assert record["method"] == "cash"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(terminal_id="till-2", session_id="s-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["terminal_id"] == "till-2"
        assert record["session_id"] == "s-1"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from decimal import Decimal

        from pos_kernel.exceptions import InsufficientTenderError

        try:
            raise InsufficientTenderError(Decimal("32.48"), Decimal("30.00"), Decimal("-2.48"))
        except InsufficientTenderError:
            get_logger("test").error("sale_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_TENDER"
        assert record["exc_type"] == "InsufficientTenderError"
        assert record["exc_total"] == "32.48"
        assert record["exc_change_due"] == "-2.48"
        assert "traceback" in record

    def test_exception_cause_recorded(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from pos_kernel.exceptions import PersistenceError

        try:
            try:
                raise OSError("disk gone")
            except OSError as exc:
                raise PersistenceError("record_sale", "OSError") from exc
        except PersistenceError:
            get_logger("test").error("persistence_failure", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_cause_type"] == "OSError"
        assert record["exc_operation"] == "record_sale"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "session_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"transaction_id": uid})

        assert _parse_log(stream)["transaction_id"] == str(uid)

    def test_debug_suppressed_at_info(self):
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

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", receipt_number="R-1")
        assert LogContext.get_all() == {"correlation_id": "x", "receipt_number": "R-1"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner"):
            assert LogContext.get_all()["operation"] == "inner"
        assert LogContext.get_all()["operation"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(session_id="temp"):
            assert LogContext.get_all()["session_id"] == "temp"
        assert "session_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(not_a_field="x", operation="op"):
            assert LogContext.get_all() == {"operation": "op"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        handlers = logging.getLogger("pos_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers
        structured = [h for h in handlers if isinstance(h.formatter, StructuredFormatter)]
        assert structured == [h1]

    def test_get_logger_returns_child(self):
        assert get_logger("services.transaction_ledger").name == "pos_kernel.services.transaction_ledger"

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="DEBUG")
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "pos_kernel.deep.nested.module"
