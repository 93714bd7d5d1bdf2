"""Tests for logging configuration, metrics and tracing."""

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from notes_engine.observability import (
    MetricsCollector,
    _sanitize_error_message,
    configure_logging,
    is_logging_configured,
    timed_operation,
    traced,
)


class TestErrorMessageSanitization:
    """Tests for _sanitize_error_message."""

    def test_sanitize_none_returns_none(self):
        assert _sanitize_error_message(None) is None

    def test_sanitize_removes_home_directory(self):
        home = str(Path.home())
        result = _sanitize_error_message(f"{home}/notes/local_storage.json: denied")
        assert home not in result
        assert result.startswith("~/notes")

    def test_sanitize_flattens_whitespace(self):
        assert _sanitize_error_message("  line one\nline   two\r\n ") == "line one line two"

    def test_sanitize_truncates_long_messages(self):
        result = _sanitize_error_message("x" * 500, max_length=50)
        assert len(result) == 50
        assert result.endswith("...")


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_collector(self, tmp_path):
        return MetricsCollector(metrics_file=tmp_path / "metrics.json")

    def test_record_successful_operation(self, metrics_collector):
        metrics_collector.record_operation("update", 100.0, True)

        metrics = metrics_collector.get_metrics()
        assert metrics["update"]["count"] == 1
        assert metrics["update"]["success_count"] == 1
        assert metrics["update"]["error_count"] == 0
        assert metrics["update"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self, metrics_collector):
        metrics_collector.record_operation("update", 50.0, False, "Network unreachable")

        metrics = metrics_collector.get_metrics()
        assert metrics["update"]["error_count"] == 1
        assert metrics["update"]["last_error"] == "Network unreachable"
        assert metrics["update"]["last_error_time"] is not None

    def test_multiple_operations_aggregated(self, metrics_collector):
        metrics_collector.record_operation("delete", 100.0, True)
        metrics_collector.record_operation("delete", 200.0, True)
        metrics_collector.record_operation("delete", 300.0, False, "Error")

        metrics = metrics_collector.get_metrics()["delete"]
        assert metrics["count"] == 3
        assert metrics["avg_duration_ms"] == 200.0
        assert metrics["min_duration_ms"] == 100.0
        assert metrics["max_duration_ms"] == 300.0

    def test_save_metrics(self, metrics_collector, tmp_path):
        metrics_collector.record_operation("create", 10.0, True)
        assert metrics_collector.save_metrics()

        with open(tmp_path / "metrics.json") as f:
            data = json.load(f)
        assert data["operations"]["create"]["count"] == 1

    def test_save_without_file_is_noop(self):
        assert MetricsCollector().save_metrics() is False

    def test_summary_and_reset(self, metrics_collector):
        metrics_collector.record_operation("op1", 100.0, True)
        metrics_collector.record_operation("op2", 200.0, False, "Error")

        summary = metrics_collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_errors"] == 1
        assert set(summary["operations_tracked"]) == {"op1", "op2"}

        metrics_collector.reset()
        assert metrics_collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for timed_operation and traced."""

    def test_timed_operation_records_failure(self):
        collector = MetricsCollector()
        with patch("notes_engine.observability.metrics", collector):
            with pytest.raises(ValueError):
                with timed_operation("update", slug="x"):
                    raise ValueError("Test error")

        metrics = collector.get_metrics()
        assert metrics["update"]["error_count"] == 1
        assert "Test error" in metrics["update"]["last_error"]

    def test_traced_records_success(self):
        collector = MetricsCollector()

        class Store:
            @traced("list_things")
            def list_things(self, slug):
                return [1, 2, 3]

        with patch("notes_engine.observability.metrics", collector):
            assert Store().list_things("a") == [1, 2, 3]

        assert collector.get_metrics()["list_things"]["success_count"] == 1

    def test_store_calls_are_traced(self, store):
        collector = MetricsCollector()
        with patch("notes_engine.observability.metrics", collector):
            store.list_public_notes()
        assert "list_public_notes" in collector.get_metrics()


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_configure_logging_creates_directory(self, tmp_path):
        log_dir = tmp_path / "logs"
        result = configure_logging(log_dir=log_dir, console=False)
        assert result == log_dir
        assert log_dir.is_dir()
        assert is_logging_configured()

    def test_configure_logging_sets_level(self, tmp_path):
        configure_logging(log_dir=tmp_path / "logs", level=logging.DEBUG, console=False)
        assert logging.getLogger("notes_engine").level == logging.DEBUG
