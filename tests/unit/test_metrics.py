"""
Unit tests for MetricsCollector.

Tests:
- Operation timing, request charges and counters
- Thread-safety under concurrent recording
- Bounded storage with LRU eviction
"""

import threading

import pytest

from mdb_dataservices.observability import MetricsCollector


@pytest.mark.unit
class TestRecording:
    """Test recording operations, charges and counters."""

    def test_record_operation(self):
        collector = MetricsCollector()
        collector.record_operation("repository.get_item", duration_ms=100.0)

        entry = collector.get_metrics()["metrics"]["repository.get_item"]
        assert entry["count"] == 1
        assert entry["avg_duration_ms"] == 100.0
        assert entry["error_count"] == 0

    def test_tags_create_separate_keys(self):
        collector = MetricsCollector()
        collector.record_operation("repository.get_item", 5.0, model="ProductDocument")
        collector.record_operation("repository.get_item", 5.0, model="OrderDocument")

        keys = set(collector.get_metrics()["metrics"])
        assert keys == {
            "repository.get_item[model=ProductDocument]",
            "repository.get_item[model=OrderDocument]",
        }
        assert collector.get_operation_count("repository.get_item") == 2

    def test_failures_counted(self):
        collector = MetricsCollector()
        collector.record_operation("repository.create_item", 1.0)
        collector.record_operation("repository.create_item", 1.0, success=False)

        entry = collector.get_metrics()["metrics"]["repository.create_item"]
        assert entry["error_count"] == 1
        assert entry["error_rate_percent"] == 50.0

    def test_request_charge_accumulates(self):
        collector = MetricsCollector()
        collector.record_request_charge("ProductDocument", "repository.query", 2.5)
        collector.record_request_charge("ProductDocument", "repository.query", 1.5)
        collector.record_request_charge("OrderDocument", "repository.query", 1.0)

        assert collector.get_request_charge("repository.query") == 5.0
        entry = collector.get_metrics()["metrics"]["repository.query[model=ProductDocument]"]
        assert entry["total_request_charge"] == 4.0

    def test_counters(self):
        collector = MetricsCollector()
        collector.record_cache_miss("ProductDocument")
        collector.record_cache_hit("ProductDocument")
        collector.record_cache_hit("ProductDocument")
        collector.increment("custom", amount=3)

        assert collector.get_counter("count_cache.hit", model="ProductDocument") == 2
        assert collector.get_counter("count_cache.miss", model="ProductDocument") == 1
        assert collector.get_counter("count_cache.hit", model="OrderDocument") == 0
        assert collector.get_counter("custom") == 3

    def test_get_metrics_filtered(self):
        collector = MetricsCollector()
        collector.record_operation("repository.get_item", 10.0)
        collector.record_operation("repository.query", 20.0)
        collector.record_operation("bulk.execute", 30.0)

        metrics = collector.get_metrics("repository")
        assert set(metrics["metrics"]) == {"repository.get_item", "repository.query"}
        assert metrics["total_operations"] == 3

    def test_get_summary_aggregates_across_tags(self):
        collector = MetricsCollector()
        collector.record_operation("repository.query", 10.0, model="ProductDocument")
        collector.record_operation("repository.query", 30.0, model="OrderDocument")
        collector.record_request_charge("OrderDocument", "repository.query", 2.0)

        summary = collector.get_summary()["summary"]["repository.query"]
        assert summary["count"] == 2
        assert summary["avg_duration_ms"] == 20.0
        assert summary["min_duration_ms"] == 10.0
        assert summary["total_request_charge"] == 2.0

    def test_empty_summary(self):
        summary = MetricsCollector().get_summary()
        assert summary["total_operations"] == 0
        assert summary["summary"] == {}

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_operation("repository.get_item", 10.0)
        collector.record_cache_hit("ProductDocument")
        collector.reset()

        metrics = collector.get_metrics()
        assert metrics["metrics"] == {}
        assert metrics["counters"] == {}


@pytest.mark.unit
class TestThreadSafety:
    """Test concurrent access from worker threads."""

    def test_concurrent_record_operation(self):
        collector = MetricsCollector()
        num_threads = 10
        operations_per_thread = 100
        barrier = threading.Barrier(num_threads)

        def record(thread_id: int):
            barrier.wait()
            for i in range(operations_per_thread):
                collector.record_operation(
                    "repository.create_item", duration_ms=1.0 + i, model=f"Model{thread_id}"
                )
                collector.record_cache_hit(f"Model{thread_id}")

        threads = [threading.Thread(target=record, args=(i,)) for i in range(num_threads)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        total = num_threads * operations_per_thread
        assert collector.get_operation_count("repository.create_item") == total
        assert sum(collector.get_metrics()["counters"].values()) == total

    def test_concurrent_reads_during_writes(self):
        collector = MetricsCollector()
        errors = []

        def write():
            for i in range(200):
                collector.record_operation(f"repository.op_{i % 20}", 1.0)

        def read():
            try:
                for _ in range(50):
                    collector.get_metrics()
                    collector.get_summary()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=write) for _ in range(3)]
        threads += [threading.Thread(target=read) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []


@pytest.mark.unit
class TestBoundedStorage:
    """Test bounded storage and LRU eviction."""

    def test_max_metrics_limit(self):
        collector = MetricsCollector(max_metrics=5)
        for i in range(8):
            collector.record_operation(f"repository.op_{i}", 10.0)

        assert len(collector.get_metrics()["metrics"]) == 5

    def test_least_recently_used_evicted(self):
        collector = MetricsCollector(max_metrics=3)
        collector.record_operation("repository.op_0", 10.0)
        collector.record_operation("repository.op_1", 10.0)
        collector.record_operation("repository.op_2", 10.0)

        collector.get_metrics("repository.op_0")
        collector.record_operation("repository.op_3", 10.0)

        keys = set(collector.get_metrics()["metrics"])
        assert keys == {"repository.op_0", "repository.op_2", "repository.op_3"}

    def test_update_does_not_evict(self):
        collector = MetricsCollector(max_metrics=3)
        for i in range(3):
            collector.record_operation(f"repository.op_{i}", 10.0)

        collector.record_operation("repository.op_0", 20.0)

        metrics = collector.get_metrics()["metrics"]
        assert len(metrics) == 3
        assert metrics["repository.op_0"]["count"] == 2
