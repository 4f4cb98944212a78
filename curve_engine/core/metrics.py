"""
Metrics collection for the curve engine clients
Counts snapshot reads, oracle lookups and their latencies
"""

import statistics
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple


MetricKey = Tuple[str, Tuple[Tuple[str, str], ...]]

DEFAULT_HISTOGRAM_BUCKETS = [1, 5, 10, 50, 100, 500, 1000]


def _key(name: str, labels: Optional[Dict[str, str]]) -> MetricKey:
    return name, tuple(sorted((labels or {}).items()))


@dataclass
class HistogramStats:
    """Statistical summary of recorded latencies (milliseconds)"""
    operation: str
    count: int
    p50: float
    p95: float
    p99: float
    mean: float
    min: float
    max: float


class MetricsCollector:
    """
    In-process counters, gauges and latency histograms

    Labelled and unlabelled values share one store keyed by
    (name, sorted label pairs).
    """

    def __init__(self, enable_histogram: bool = True, histogram_buckets: Optional[List[float]] = None):
        self.enable_histogram = enable_histogram
        self.histogram_buckets = histogram_buckets or list(DEFAULT_HISTOGRAM_BUCKETS)

        self._latencies: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=10000))
        self._counters: Dict[MetricKey, int] = defaultdict(int)
        self._gauges: Dict[MetricKey, float] = {}

    def record_latency(
        self,
        operation: str,
        latency_ms: float,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record one latency sample and bump the operation's call counter

        Args:
            operation: Operation name (e.g., "snapshot_fetch")
            latency_ms: Latency in milliseconds
            labels: Optional labels for the call counter
        """
        if self.enable_histogram:
            self._latencies[operation].append(latency_ms)
        self._counters[_key(f"{operation}_count", labels)] += 1

    def increment_counter(
        self,
        metric_name: str,
        value: int = 1,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        self._counters[_key(metric_name, labels)] += value

    def set_gauge(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ) -> None:
        self._gauges[_key(metric_name, labels)] = value

    def get_counter(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> int:
        return self._counters.get(_key(metric_name, labels), 0)

    def get_gauge(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> float:
        return self._gauges.get(_key(metric_name, labels), 0.0)

    def get_histogram_stats(self, operation: str) -> Optional[HistogramStats]:
        """
        Summarise latencies for an operation

        Returns:
            HistogramStats or None if nothing was recorded
        """
        samples = sorted(self._latencies.get(operation, []))
        if not samples:
            return None

        return HistogramStats(
            operation=operation,
            count=len(samples),
            p50=self._percentile(samples, 50),
            p95=self._percentile(samples, 95),
            p99=self._percentile(samples, 99),
            mean=statistics.mean(samples),
            min=samples[0],
            max=samples[-1]
        )

    def export_metrics(self) -> Dict:
        """
        Export unlabelled counters, gauges and histogram summaries

        Returns:
            JSON-serializable dictionary
        """
        exported = {
            "counters": {name: value for (name, labels), value in self._counters.items() if not labels},
            "gauges": {name: value for (name, labels), value in self._gauges.items() if not labels},
            "histograms": {}
        }

        for operation in list(self._latencies.keys()):
            stats = self.get_histogram_stats(operation)
            if stats:
                exported["histograms"][operation] = {
                    "count": stats.count,
                    "p50": stats.p50,
                    "p95": stats.p95,
                    "p99": stats.p99,
                    "mean": stats.mean,
                    "min": stats.min,
                    "max": stats.max
                }

        return exported

    def reset(self) -> None:
        """Reset all metrics (useful for testing)"""
        self._latencies.clear()
        self._counters.clear()
        self._gauges.clear()

    @staticmethod
    def _percentile(sorted_data: List[float], percentile: float) -> float:
        # Linear interpolation between closest ranks
        if len(sorted_data) == 1:
            return sorted_data[0]

        index = (percentile / 100) * (len(sorted_data) - 1)
        lower = int(index)
        if lower + 1 >= len(sorted_data):
            return sorted_data[-1]

        weight = index - lower
        return sorted_data[lower] * (1 - weight) + sorted_data[lower + 1] * weight


class LatencyTimer:
    """Context manager for measuring operation latency"""

    def __init__(self, metrics: MetricsCollector, operation: str, labels: Optional[Dict[str, str]] = None):
        self.metrics = metrics
        self.operation = operation
        self.labels = labels
        self.start_time: Optional[float] = None
        self.latency_ms: Optional[float] = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.latency_ms = (time.perf_counter() - self.start_time) * 1000
            self.metrics.record_latency(self.operation, self.latency_ms, self.labels)


# Global metrics instance (replaced by init_metrics)
_global_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance"""
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def init_metrics(enable_histogram: bool = True, histogram_buckets: Optional[List[float]] = None) -> MetricsCollector:
    """Initialize global metrics collector"""
    global _global_metrics
    _global_metrics = MetricsCollector(enable_histogram, histogram_buckets)
    return _global_metrics
