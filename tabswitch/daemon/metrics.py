"""Latency and counter metrics for rpc handling."""

from collections import defaultdict, deque
from typing import Any, Deque, Dict


class LatencyStats:
    """Running count, mean and max, with percentiles over the latest samples."""

    def __init__(self, window: int = 256):
        self.count = 0
        self.total_ms = 0.0
        self.max_ms = 0.0
        self._recent: Deque[float] = deque(maxlen=window)

    def record(self, latency_ms: float) -> None:
        self.count += 1
        self.total_ms += latency_ms
        self.max_ms = max(self.max_ms, latency_ms)
        self._recent.append(latency_ms)

    def percentile(self, pct: float) -> float:
        if not self._recent:
            return 0.0
        ordered = sorted(self._recent)
        return ordered[min(len(ordered) - 1, int(len(ordered) * pct / 100))]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "mean": round(self.total_ms / self.count, 2) if self.count else 0.0,
            "p50": round(self.percentile(50), 2),
            "p95": round(self.percentile(95), 2),
            "max": round(self.max_ms, 2),
        }


class MetricsCollector:
    """Per-method rpc latencies and named counters."""

    def __init__(self):
        self.latencies: Dict[str, LatencyStats] = {}
        self.counters = defaultdict(int)

    def record_latency(self, metric_name: str, latency_ms: float) -> None:
        if metric_name not in self.latencies:
            self.latencies[metric_name] = LatencyStats()
        self.latencies[metric_name].record(latency_ms)

    def increment_counter(self, counter_name: str, amount: int = 1) -> None:
        self.counters[counter_name] += amount

    def get_all_metrics(self) -> Dict[str, Any]:
        return {
            "latencies": {name: s.to_dict() for name, s in sorted(self.latencies.items())},
            "counters": dict(self.counters),
        }
