"""
Unit tests for Metrics System (core/metrics.py)

Tests:
- Latency recording and histogram calculation
- Labelled counters and gauges
- Percentile calculations
- Metrics export
- LatencyTimer context manager
"""

import time

import pytest

from curve_engine.core.metrics import (
    LatencyTimer,
    MetricsCollector,
    get_metrics,
    init_metrics,
)


class TestMetricsCollector:
    """Test metrics collection functionality"""

    def test_record_latency(self, metrics_collector):
        metrics_collector.record_latency("snapshot_fetch", 100.5)
        metrics_collector.record_latency("snapshot_fetch", 200.3)
        metrics_collector.record_latency("snapshot_fetch", 150.7)

        stats = metrics_collector.get_histogram_stats("snapshot_fetch")

        assert stats is not None
        assert stats.count == 3
        assert stats.min == pytest.approx(100.5)
        assert stats.max == pytest.approx(200.3)
        assert metrics_collector.get_counter("snapshot_fetch_count") == 3

    def test_latency_with_labels(self, metrics_collector):
        """Labels split the call counter, not the histogram"""
        metrics_collector.record_latency("snapshot_fetch", 150.0, labels={"commitment": "confirmed"})
        metrics_collector.record_latency("snapshot_fetch", 200.0, labels={"commitment": "finalized"})

        assert metrics_collector.get_counter("snapshot_fetch_count", labels={"commitment": "confirmed"}) == 1
        assert metrics_collector.get_counter("snapshot_fetch_count", labels={"commitment": "finalized"}) == 1
        assert metrics_collector.get_counter("snapshot_fetch_count") == 0
        assert metrics_collector.get_histogram_stats("snapshot_fetch").count == 2

    def test_histogram_disabled(self):
        metrics = MetricsCollector(enable_histogram=False)
        metrics.record_latency("sol_price_fetch", 10.0)

        assert metrics.get_histogram_stats("sol_price_fetch") is None
        assert metrics.get_counter("sol_price_fetch_count") == 1

    def test_percentile_calculations(self, metrics_collector):
        for i in range(100):
            metrics_collector.record_latency("test_op", float(i))

        stats = metrics_collector.get_histogram_stats("test_op")

        assert stats.p50 == pytest.approx(49.5)
        assert stats.p95 == pytest.approx(94.05)
        assert stats.p99 == pytest.approx(98.01)
        assert stats.mean == pytest.approx(49.5)

    def test_single_sample_percentiles(self, metrics_collector):
        metrics_collector.record_latency("test_op", 42.0)
        stats = metrics_collector.get_histogram_stats("test_op")
        assert stats.p50 == stats.p99 == 42.0

    def test_increment_counter(self, metrics_collector):
        metrics_collector.increment_counter("snapshot_fetch_success")
        metrics_collector.increment_counter("snapshot_fetch_success", value=5)

        assert metrics_collector.get_counter("snapshot_fetch_success") == 6
        assert metrics_collector.get_counter("never_touched") == 0

    def test_counter_label_order_irrelevant(self, metrics_collector):
        metrics_collector.increment_counter("errors", labels={"reason": "timeout", "kind": "rpc"})
        metrics_collector.increment_counter("errors", labels={"kind": "rpc", "reason": "timeout"})

        assert metrics_collector.get_counter("errors", labels={"reason": "timeout", "kind": "rpc"}) == 2

    def test_gauge_with_labels(self, metrics_collector):
        metrics_collector.set_gauge("sol_price_usd", 150.0)
        metrics_collector.set_gauge("sol_price_usd", 1.0, labels={"currency": "eur"})

        assert metrics_collector.get_gauge("sol_price_usd") == 150.0
        assert metrics_collector.get_gauge("sol_price_usd", labels={"currency": "eur"}) == 1.0

    def test_export_metrics(self, metrics_collector):
        metrics_collector.increment_counter("snapshot_fetch_success", value=100)
        metrics_collector.increment_counter("snapshot_fetch_errors", labels={"reason": "timeout"})
        metrics_collector.set_gauge("sol_price_usd", 75.5)
        metrics_collector.record_latency("snapshot_fetch", 150.0)
        metrics_collector.record_latency("snapshot_fetch", 200.0)

        exported = metrics_collector.export_metrics()

        assert exported["counters"]["snapshot_fetch_success"] == 100
        assert "snapshot_fetch_errors" not in exported["counters"]
        assert exported["gauges"]["sol_price_usd"] == 75.5
        assert exported["histograms"]["snapshot_fetch"]["count"] == 2

    def test_reset_metrics(self, metrics_collector):
        metrics_collector.increment_counter("test", value=10)
        metrics_collector.set_gauge("gauge", 5.0)
        metrics_collector.record_latency("latency", 100.0)

        metrics_collector.reset()

        assert metrics_collector.get_counter("test") == 0
        assert metrics_collector.get_gauge("gauge") == 0.0
        assert metrics_collector.get_histogram_stats("latency") is None

    def test_histogram_max_size(self, metrics_collector):
        for i in range(15000):
            metrics_collector.record_latency("test_op", float(i))

        stats = metrics_collector.get_histogram_stats("test_op")

        assert stats.count == 10000
        assert stats.min >= 5000.0


class TestLatencyTimer:
    """Test LatencyTimer context manager"""

    def test_latency_timer_basic(self, metrics_collector):
        with LatencyTimer(metrics_collector, "snapshot_fetch") as timer:
            time.sleep(0.01)

        stats = metrics_collector.get_histogram_stats("snapshot_fetch")
        assert stats.count == 1
        assert timer.latency_ms >= 10.0

    def test_latency_timer_records_on_error(self, metrics_collector):
        with pytest.raises(RuntimeError):
            with LatencyTimer(metrics_collector, "sol_price_fetch"):
                raise RuntimeError("boom")

        assert metrics_collector.get_histogram_stats("sol_price_fetch").count == 1


class TestGlobalMetrics:
    """Module-level collector"""

    def test_init_replaces_global(self):
        metrics = init_metrics(enable_histogram=False)
        assert get_metrics() is metrics
        assert metrics.enable_histogram is False
