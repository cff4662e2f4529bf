"""Tests for rpc metrics."""

from tabswitch.daemon.metrics import LatencyStats, MetricsCollector


def test_latency_stats():
    stats = LatencyStats()
    for ms in (4.0, 1.0, 3.0, 2.0):
        stats.record(ms)

    summary = stats.to_dict()
    assert summary["count"] == 4
    assert summary["mean"] == 2.5
    assert summary["p50"] == 3.0
    assert summary["p95"] == 4.0
    assert summary["max"] == 4.0


def test_percentiles_follow_the_recent_window():
    stats = LatencyStats(window=2)
    for ms in (100.0, 1.0, 1.0):
        stats.record(ms)

    assert stats.percentile(95) == 1.0
    # Totals still cover every sample
    assert stats.to_dict()["max"] == 100.0
    assert stats.count == 3


def test_empty_stats():
    assert LatencyStats().to_dict() == {"count": 0, "mean": 0.0, "p50": 0.0, "p95": 0.0, "max": 0.0}


def test_collector_exports_latencies_and_counters():
    metrics = MetricsCollector()
    metrics.record_latency("rpc.listTabs", 2.0)
    metrics.increment_counter("rpc.listTabs.ok")
    metrics.increment_counter("rpc.listTabs.ok")

    exported = metrics.get_all_metrics()
    assert exported["latencies"]["rpc.listTabs"]["count"] == 1
    assert exported["counters"] == {"rpc.listTabs.ok": 2}
