"""Tests for the in-process metrics collector."""

from __future__ import annotations

import threading

from sturdyhttp.observability.metrics import MetricsCollector, get_metrics, reset_metrics


class TestCounters:
    """Tests for counter metrics."""

    def test_default_counters_start_at_zero(self) -> None:
        """Built-in counters exist and start empty."""
        metrics = MetricsCollector()
        for name in MetricsCollector.DEFAULT_COUNTERS:
            assert metrics.get_counter(name) == 0.0

    def test_labels_are_independent(self) -> None:
        """Each label set has its own value."""
        metrics = MetricsCollector()
        metrics.increment_counter("sturdyhttp_retries_total", {"reason": "503"})
        metrics.increment_counter("sturdyhttp_retries_total", {"reason": "503"})
        metrics.increment_counter("sturdyhttp_retries_total", {"reason": "transport"})
        assert metrics.get_counter("sturdyhttp_retries_total", {"reason": "503"}) == 2.0
        assert metrics.get_counter("sturdyhttp_retries_total", {"reason": "transport"}) == 1.0
        assert metrics.get_counter("sturdyhttp_retries_total") == 0.0

    def test_increment_by_value(self) -> None:
        """Counters can grow by more than one."""
        metrics = MetricsCollector()
        metrics.increment_counter("sturdyhttp_body_drained_bytes_total", value=4096)
        assert metrics.get_counter("sturdyhttp_body_drained_bytes_total") == 4096.0

    def test_unknown_metrics_ignored(self) -> None:
        """Recording an unregistered metric is a no-op."""
        metrics = MetricsCollector()
        metrics.increment_counter("no_such_counter")
        metrics.observe_histogram("no_such_histogram", 1.0)
        assert metrics.get_counter("no_such_counter") == 0.0

    def test_register_counter(self) -> None:
        """Custom counters can be registered and used."""
        metrics = MetricsCollector()
        metrics.register_counter("app_uploads_total", "Uploads")
        metrics.increment_counter("app_uploads_total")
        assert metrics.get_counter("app_uploads_total") == 1.0

    def test_concurrent_increments(self) -> None:
        """Increments from many threads are not lost."""
        metrics = MetricsCollector()

        def work() -> None:
            for _ in range(1000):
                metrics.increment_counter("sturdyhttp_attempts_total")

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert metrics.get_counter("sturdyhttp_attempts_total") == 8000.0


class TestHistograms:
    """Tests for histogram metrics."""

    def test_observe_counts(self) -> None:
        """Observations are counted per label set."""
        metrics = MetricsCollector()
        metrics.observe_histogram("sturdyhttp_request_duration_seconds", 0.2)
        metrics.observe_histogram("sturdyhttp_request_duration_seconds", 3.0)
        assert metrics.get_histogram_count("sturdyhttp_request_duration_seconds") == 2.0


class TestPrometheusExport:
    """Tests for export_prometheus()."""

    def test_export_format(self) -> None:
        """Counters and histograms are rendered in text exposition format."""
        metrics = MetricsCollector()
        metrics.increment_counter("sturdyhttp_requests_total", {"outcome": "success"})
        metrics.observe_histogram("sturdyhttp_request_duration_seconds", 0.07)
        output = metrics.export_prometheus()

        assert "# TYPE sturdyhttp_requests_total counter" in output
        assert 'sturdyhttp_requests_total{outcome="success"} 1.0' in output
        assert "# TYPE sturdyhttp_request_duration_seconds histogram" in output
        assert 'sturdyhttp_request_duration_seconds_bucket{le="0.05"} 0.0' in output
        assert 'sturdyhttp_request_duration_seconds_bucket{le="0.1"} 1.0' in output
        assert 'sturdyhttp_request_duration_seconds_bucket{le="+Inf"} 1.0' in output
        assert "sturdyhttp_request_duration_seconds_count 1.0" in output
        assert output.endswith("\n")

    def test_empty_metrics_exported_as_zero(self) -> None:
        """Metrics without observations still appear."""
        output = MetricsCollector().export_prometheus()
        assert "sturdyhttp_dial_blocked_total 0" in output
        assert "sturdyhttp_request_duration_seconds_count 0" in output

    def test_label_values_escaped(self) -> None:
        """Quotes and backslashes in label values are escaped."""
        metrics = MetricsCollector()
        metrics.increment_counter("sturdyhttp_retries_total", {"reason": 'a"b\\c'})
        assert 'reason="a\\"b\\\\c"' in metrics.export_prometheus()


class TestGlobalCollector:
    """Tests for the process-wide collector."""

    def test_singleton_and_reset(self) -> None:
        """get_metrics() returns one collector; reset_metrics() clears it."""
        metrics = get_metrics()
        assert get_metrics() is metrics
        metrics.increment_counter("sturdyhttp_attempts_total")
        reset_metrics()
        assert metrics.get_counter("sturdyhttp_attempts_total") == 0.0
