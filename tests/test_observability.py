"""Tests for the observability module.

Tests for metrics collection, timing, tracing and logging configuration.
"""
import logging
import time
from unittest.mock import patch

import pytest

from groundwave_zk.observability import (
    ROOT_LOGGER_NAME,
    MetricsCollector,
    configure_logging,
    is_logging_configured,
    timed_operation,
    traced,
)


@pytest.fixture
def collector():
    """A fresh collector patched in as the global one."""
    fresh = MetricsCollector()
    with patch("groundwave_zk.observability.metrics", fresh):
        yield fresh


@pytest.fixture
def clean_root_logger():
    """Remove handlers added by configure_logging after the test."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    before = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    def test_record_successful_operation(self):
        """Test recording a successful operation."""
        mc = MetricsCollector()
        mc.record_operation("build_link_index", 100.0, True)

        metrics = mc.get_metrics()
        assert metrics["build_link_index"]["count"] == 1
        assert metrics["build_link_index"]["success_count"] == 1
        assert metrics["build_link_index"]["error_count"] == 0
        assert metrics["build_link_index"]["avg_duration_ms"] == 100.0
        assert metrics["build_link_index"]["last_error"] is None

    def test_record_failed_operation(self):
        """Test recording a failed operation with error."""
        mc = MetricsCollector()
        mc.record_operation("render_note", 50.0, False, "GET failed: HTTP 500")

        m = mc.get_metrics()["render_note"]
        assert m["error_count"] == 1
        assert m["success_rate"] == 0
        assert m["last_error"] == "GET failed: HTTP 500"
        assert m["last_error_time"] is not None

    def test_multiple_operations_aggregated(self):
        mc = MetricsCollector()
        mc.record_operation("op", 100.0, True)
        mc.record_operation("op", 200.0, True)
        mc.record_operation("op", 300.0, False, "Error")

        m = mc.get_metrics()["op"]
        assert m["count"] == 3
        assert m["avg_duration_ms"] == 200.0
        assert m["min_duration_ms"] == 100.0
        assert m["max_duration_ms"] == 300.0

    def test_get_summary(self):
        mc = MetricsCollector()
        mc.record_operation("op1", 100.0, True)
        mc.record_operation("op2", 200.0, False, "Error")

        summary = mc.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_success"] == 1
        assert summary["total_errors"] == 1
        assert summary["overall_success_rate"] == 0.5
        assert sorted(summary["operations_tracked"]) == ["op1", "op2"]

    def test_empty_summary(self):
        assert MetricsCollector().get_summary()["overall_success_rate"] == 1.0

    def test_reset_metrics(self):
        mc = MetricsCollector()
        mc.record_operation("op", 100.0, True)
        mc.reset()
        assert mc.get_metrics() == {}


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_records_success(self, collector):
        with timed_operation("refresh_all") as op:
            time.sleep(0.01)
            op["files"] = 3

        m = collector.get_metrics()["refresh_all"]
        assert m["success_count"] == 1
        assert m["avg_duration_ms"] >= 10

    def test_records_failure_and_reraises(self, collector):
        with pytest.raises(ValueError):
            with timed_operation("refresh_all"):
                raise ValueError("listing failed")

        m = collector.get_metrics()["refresh_all"]
        assert m["error_count"] == 1
        assert m["last_error"] == "listing failed"

    def test_yields_correlation_id(self, collector):
        with timed_operation("op") as op:
            assert len(op["correlation_id"]) == 8


class TestTraced:
    """Tests for the traced decorator."""

    def test_uses_given_name(self, collector):
        class Service:
            @traced("render_note")
            def render(self, note_id):
                return note_id

        assert Service().render("abc") == "abc"
        assert collector.get_metrics()["render_note"]["success_count"] == 1

    def test_defaults_to_function_name(self, collector):
        @traced()
        def list_notes():
            return [1, 2]

        assert list_notes() == [1, 2]
        assert "list_notes" in collector.get_metrics()

    def test_records_error(self, collector):
        @traced("resolve_note_id")
        def resolve(note_id):
            raise KeyError(note_id)

        with pytest.raises(KeyError):
            resolve(note_id="x")
        assert collector.get_metrics()["resolve_note_id"]["error_count"] == 1

    def test_preserves_metadata(self):
        @traced()
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_creates_directory_and_file(self, tmp_path, clean_root_logger):
        log_dir = tmp_path / "logs"
        result = configure_logging(log_dir=log_dir, console=False)

        assert result == log_dir
        assert log_dir.is_dir()
        assert (log_dir / "groundwave-zk.log").exists()
        assert is_logging_configured()

    def test_sets_level(self, tmp_path, clean_root_logger):
        configure_logging(log_dir=tmp_path, level=logging.DEBUG, console=False)
        assert clean_root_logger.level == logging.DEBUG

    def test_module_loggers_write_to_file(self, tmp_path, clean_root_logger):
        configure_logging(log_dir=tmp_path, console=False)
        logging.getLogger("groundwave_zk.services.link_index").info("built index")
        for handler in clean_root_logger.handlers:
            handler.flush()
        assert "built index" in (tmp_path / "groundwave-zk.log").read_text(encoding="utf-8")
