"""In-process metrics for sturdyhttp clients.

Counters and histograms are recorded by the retry loop, the restricted dialer
and the response drain, and can be exported in Prometheus text format.

Example:
    >>> from sturdyhttp.observability.metrics import get_metrics
    >>> metrics = get_metrics()
    >>> metrics.get_counter("sturdyhttp_attempts_total")
    0.0
    >>> print(metrics.export_prometheus())
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import ClassVar

LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


@dataclass
class Counter:
    """A monotonically increasing counter metric."""

    name: str
    help_text: str
    values: dict[LabelKey, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self, labels: dict[str, str] | None = None, value: float = 1.0) -> None:
        key = _label_key(labels)
        with self._lock:
            self.values[key] = self.values.get(key, 0.0) + value

    def get(self, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self.values.get(_label_key(labels), 0.0)


# Default histogram buckets for request latency (in seconds)
DEFAULT_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


@dataclass
class _HistogramSeries:
    buckets: dict[float, float]
    total: float = 0.0
    count: float = 0.0


@dataclass
class Histogram:
    """A histogram metric for measuring distributions."""

    name: str
    help_text: str
    buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS
    values: dict[LabelKey, _HistogramSeries] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        with self._lock:
            series = self.values.get(key)
            if series is None:
                series = _HistogramSeries(buckets=dict.fromkeys(self.buckets, 0.0))
                self.values[key] = series
            for bound in self.buckets:
                if value <= bound:
                    series.buckets[bound] += 1.0
            series.total += value
            series.count += 1.0

    def get_count(self, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            series = self.values.get(_label_key(labels))
            return series.count if series is not None else 0.0


class MetricsCollector:
    """Thread-safe collection of counters and histograms.

    Unknown metric names are ignored by the record methods, so callers never
    fail because a metric was not registered.
    """

    DEFAULT_COUNTERS: ClassVar[dict[str, str]] = {
        "sturdyhttp_attempts_total": "Total number of request attempts sent",
        "sturdyhttp_retries_total": "Total number of retries scheduled, by reason",
        "sturdyhttp_requests_total": "Total number of Client.do calls, by outcome",
        "sturdyhttp_dial_blocked_total": "Total number of connections rejected by the restricted dialer",
        "sturdyhttp_body_drained_bytes_total": "Total number of unread response bytes discarded on close",
    }

    DEFAULT_HISTOGRAMS: ClassVar[dict[str, str]] = {
        "sturdyhttp_request_duration_seconds": "Duration of Client.do calls including retries",
    }

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, Counter] = {
            name: Counter(name=name, help_text=help_text)
            for name, help_text in self.DEFAULT_COUNTERS.items()
        }
        self._histograms: dict[str, Histogram] = {
            name: Histogram(name=name, help_text=help_text)
            for name, help_text in self.DEFAULT_HISTOGRAMS.items()
        }

    def register_counter(self, name: str, help_text: str) -> None:
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name=name, help_text=help_text)

    def register_histogram(
        self, name: str, help_text: str, buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS
    ) -> None:
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name=name, help_text=help_text, buckets=buckets)

    def increment_counter(
        self, name: str, labels: dict[str, str] | None = None, value: float = 1.0
    ) -> None:
        with self._lock:
            counter = self._counters.get(name)
        if counter is not None:
            counter.increment(labels, value)

    def observe_histogram(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        with self._lock:
            histogram = self._histograms.get(name)
        if histogram is not None:
            histogram.observe(value, labels)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            counter = self._counters.get(name)
        return counter.get(labels) if counter is not None else 0.0

    def get_histogram_count(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            histogram = self._histograms.get(name)
        return histogram.get_count(labels) if histogram is not None else 0.0

    @staticmethod
    def _format_labels(labels: LabelKey, extra: str = "") -> str:
        parts = [
            '{}="{}"'.format(k, v.replace("\\", "\\\\").replace('"', '\\"')) for k, v in labels
        ]
        if extra:
            parts.append(extra)
        return "{" + ",".join(parts) + "}" if parts else ""

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus text exposition format."""
        lines: list[str] = []
        with self._lock:
            counters = list(self._counters.values())
            histograms = list(self._histograms.values())

        for counter in counters:
            lines.append(f"# HELP {counter.name} {counter.help_text}")
            lines.append(f"# TYPE {counter.name} counter")
            with counter._lock:
                items = list(counter.values.items())
            if not items:
                lines.append(f"{counter.name} 0")
            for key, value in items:
                lines.append(f"{counter.name}{self._format_labels(key)} {value}")

        for histogram in histograms:
            lines.append(f"# HELP {histogram.name} {histogram.help_text}")
            lines.append(f"# TYPE {histogram.name} histogram")
            with histogram._lock:
                series_items = list(histogram.values.items())
            if not series_items:
                for bound in histogram.buckets:
                    lines.append(f'{histogram.name}_bucket{{le="{bound}"}} 0')
                lines.append(f'{histogram.name}_bucket{{le="+Inf"}} 0')
                lines.append(f"{histogram.name}_sum 0")
                lines.append(f"{histogram.name}_count 0")
            for key, series in series_items:
                cumulative = 0.0
                for bound in histogram.buckets:
                    cumulative += series.buckets.get(bound, 0.0)
                    label_str = self._format_labels(key, f'le="{bound}"')
                    lines.append(f"{histogram.name}_bucket{label_str} {cumulative}")
                label_str = self._format_labels(key, 'le="+Inf"')
                lines.append(f"{histogram.name}_bucket{label_str} {series.count}")
                lines.append(f"{histogram.name}_sum{self._format_labels(key)} {series.total}")
                lines.append(f"{histogram.name}_count{self._format_labels(key)} {series.count}")

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Reset all metrics to zero. Useful for testing."""
        with self._lock:
            for counter in self._counters.values():
                with counter._lock:
                    counter.values.clear()
            for histogram in self._histograms.values():
                with histogram._lock:
                    histogram.values.clear()


_metrics_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _metrics_collector
    with _collector_lock:
        if _metrics_collector is None:
            _metrics_collector = MetricsCollector()
        return _metrics_collector


def reset_metrics() -> None:
    """Reset the global metrics collector. Useful for testing."""
    with _collector_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset()
