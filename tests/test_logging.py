"""Tests for the structured logging system (farm_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from farm_kernel.exceptions import StorageConflictError
from farm_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from farm_kernel.models.event import EventStatus


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
        assert record["logger"] == "farm_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("event_posted", extra={"attempt": 2, "site_id": "north"})

        record = _parse_log(stream)
        assert record["attempt"] == 2
        assert record["site_id"] == "north"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(tenant_id="farm-1", event_id="evt-456")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["tenant_id"] == "farm-1"
        assert record["event_id"] == "evt-456"

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

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise StorageConflictError("InventoryBalance", "north/corn", expected_version=3)
        except StorageConflictError:
            get_logger("test").warning("inventory_conflict", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "STORAGE_CONFLICT"
        assert record["exc_type"] == "StorageConflictError"
        assert record["exc_entity_type"] == "InventoryBalance"
        assert record["exc_expected_version"] == 3

    def test_uuid_decimal_and_enum_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed_values",
            extra={"entry_id": uid, "total": Decimal("510.00"), "status": EventStatus.POSTED},
        )

        record = _parse_log(stream)
        assert record["entry_id"] == str(uid)
        assert record["total"] == "510.00"
        assert record["status"] == "POSTED"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "tenant_id" not in record
        assert "event_id" not in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")  # below the default INFO level

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", event_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "event_id": "y"}

    def test_none_values_are_ignored(self):
        LogContext.set(tenant_id="farm-1")
        LogContext.set(tenant_id=None)
        assert LogContext.get_all() == {"tenant_id": "farm-1"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(producer="p")

    def test_bind_context_manager(self):
        LogContext.set(locker_id="outer")
        with LogContext.bind(locker_id="inner"):
            assert LogContext.get_all()["locker_id"] == "inner"
        assert LogContext.get_all()["locker_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        with LogContext.bind(event_id="temp"):
            assert LogContext.get_all()["event_id"] == "temp"
        assert "event_id" not in LogContext.get_all()

    def test_bind_stringifies_uuid(self):
        uid = uuid4()
        with LogContext.bind(event_id=uid):
            assert LogContext.get_all()["event_id"] == str(uid)

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            tenant_id="t",
            event_id="e",
            locker_id="l",
            actor_id="a",
            entry_id="n",
        )
        assert len(LogContext.get_all()) == 6


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        root = logging.getLogger("farm_kernel")
        present = list(root.handlers)
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is a no-op
        installed = [h for h in root.handlers if h not in present]
        assert installed == [h1]

    def test_reset_detaches_every_handler(self):
        root = logging.getLogger("farm_kernel")
        stray = logging.StreamHandler(StringIO())
        root.addHandler(stray)
        configure_logging(handler=_make_handler()[0])
        reset_logging()
        assert root.handlers == []

    def test_get_logger_returns_child(self):
        assert get_logger("services.posting_engine").name == "farm_kernel.services.posting_engine"

    def test_logger_hierarchy(self):
        """Child loggers inherit the farm_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "farm_kernel.deep.nested.module"
