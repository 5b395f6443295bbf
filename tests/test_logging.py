"""Tests for planning_kernel.logging_config: JSON lines, edit context, setup."""

import json
import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from planning_kernel.domain.values import AggregationType
from planning_kernel.exceptions import EditStageFailedError, NodeNotFoundError
from planning_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    """Start each test unconfigured; hand the suite's DEBUG setup back afterwards."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def json_lines():
    """Configure logging onto a buffer; calling the fixture returns the parsed lines."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    configure_logging(handler=handler)

    def _lines() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _lines


log = get_logger("tests.logging")


class TestJsonLines:

    def test_envelope(self, json_lines):
        log.info("edit_cell_started")

        (record,) = json_lines()
        assert record["level"] == "INFO"
        assert record["message"] == "edit_cell_started"
        assert record["logger"] == "planning_kernel.tests.logging"
        assert datetime.fromisoformat(record["ts"]).tzinfo is not None

    def test_extra_fields(self, json_lines):
        log.info("cells_upserted", extra={"cell_count": 42, "stage": "save"})

        (record,) = json_lines()
        assert record["cell_count"] == 42
        assert record["stage"] == "save"

    def test_bound_context_fields(self, json_lines):
        with LogContext.bind(correlation_id="edit-1", node_id="node-456"):
            log.info("spread_completed")
        log.info("after_edit")

        inside, after = json_lines()
        assert inside["correlation_id"] == "edit-1"
        assert inside["node_id"] == "node-456"
        assert "correlation_id" not in after
        assert "node_id" not in after

    def test_context_wins_over_extra(self, json_lines):
        LogContext.set(version_id="from-context")
        log.info("grid_loaded", extra={"version_id": "from-extra"})

        assert json_lines()[0]["version_id"] == "from-context"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (Decimal("33.34"), "33.34"),
            (datetime(2025, 2, 1, 9, 30, tzinfo=UTC), "2025-02-01T09:30:00+00:00"),
            (date(2025, 2, 1), "2025-02-01"),
            (AggregationType.WEIGHTED_AVG, "WEIGHTED_AVG"),
        ],
    )
    def test_value_serialization(self, json_lines, value, expected):
        log.info("value_logged", extra={"new_value": value})

        assert json_lines()[0]["new_value"] == expected

    def test_uuid_serialized(self, json_lines):
        period_id = uuid4()
        log.info("value_logged", extra={"period_id": period_id})

        assert json_lines()[0]["period_id"] == str(period_id)

    def test_level_threshold(self, json_lines):
        log.info("first")
        log.warning("second")
        log.debug("dropped at the default INFO level")

        assert [r["message"] for r in json_lines()] == ["first", "second"]


class TestExceptionFields:

    def test_plain_exception(self, json_lines):
        try:
            raise ValueError("boom")
        except ValueError:
            log.error("recalc_failed", exc_info=True)

        (record,) = json_lines()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_error_code_and_identifiers(self, json_lines):
        node_id = uuid4()
        try:
            raise NodeNotFoundError(node_id)
        except NodeNotFoundError:
            log.error("catalog_error", exc_info=True)

        (record,) = json_lines()
        assert record["exc_code"] == "NODE_NOT_FOUND"
        assert record["exc_type"] == "NodeNotFoundError"
        assert record["exc_node_id"] == str(node_id)

    def test_stage_failure_progress(self, json_lines):
        try:
            raise EditStageFailedError("aggregate_time", ["save", "recalc"])
        except EditStageFailedError:
            log.error("edit_failed", exc_info=True)

        (record,) = json_lines()
        assert record["exc_code"] == "EDIT_STAGE_FAILED"
        assert record["exc_stage"] == "aggregate_time"
        assert record["exc_completed_stages"] == ["save", "recalc"]


class TestLogContext:

    def test_set_merges(self):
        LogContext.set(correlation_id="a")
        LogContext.set(version_id="b", node_id=None)

        assert LogContext.get_all() == {"correlation_id": "a", "version_id": "b"}

    def test_every_field_settable(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            version_id="v",
            node_id="n",
            measure_id="m",
            trace_id="t",
        )

        assert set(LogContext.get_all()) == {
            "correlation_id", "actor_id", "version_id", "node_id", "measure_id", "trace_id",
        }

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()

        assert LogContext.get_all() == {}

    def test_nested_bind_restores_each_level(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", node_id="n1"):
            with LogContext.bind(version_id="v1"):
                assert LogContext.get_all() == {
                    "correlation_id": "inner", "node_id": "n1", "version_id": "v1",
                }
            assert "version_id" not in LogContext.get_all()
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(measure_id="sales"):
                raise RuntimeError("stage failed")

        assert LogContext.get_all() == {}

    def test_bind_skips_none_values(self):
        LogContext.set(actor_id="planner")
        with LogContext.bind(actor_id=None, node_id="n"):
            assert LogContext.get_all() == {"actor_id": "planner", "node_id": "n"}

    def test_returned_mapping_is_a_copy(self):
        LogContext.set(node_id="n")
        LogContext.get_all()["node_id"] = "changed"

        assert LogContext.get_all() == {"node_id": "n"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="period_id"):
            LogContext.set(period_id="p")
        with pytest.raises(TypeError):
            with LogContext.bind(spread_mode="even"):
                pass

        assert LogContext.get_all() == {}


class TestSetup:

    def test_configure_is_idempotent(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))

        assert len(logging.getLogger("planning_kernel").handlers) == 1

    def test_records_do_not_propagate(self, json_lines):
        assert logging.getLogger("planning_kernel").propagate is False

    def test_reset_allows_reconfigure(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()

        kernel_logger = logging.getLogger("planning_kernel")
        assert kernel_logger.handlers == []
        assert kernel_logger.level == logging.WARNING

    def test_child_logger_name(self):
        assert get_logger("services.cell_edit_orchestrator").name == (
            "planning_kernel.services.cell_edit_orchestrator"
        )

    def test_nested_child_uses_kernel_handler(self, json_lines):
        logging.getLogger("planning_kernel").setLevel(logging.DEBUG)
        get_logger("engines.spreading.detail").debug("hierarchy_test")

        (record,) = json_lines()
        assert record["logger"] == "planning_kernel.engines.spreading.detail"
