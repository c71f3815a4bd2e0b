"""
Metrics collection for MDB_DATASERVICES.

MetricsCollector aggregates per-operation timings, request charges and
counters. Instances are created by the process and injected into
repositories and the service factory; nothing here is global.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class OperationMetrics:
    """Metrics for a single operation."""

    operation_name: str
    count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float("inf")
    max_duration_ms: float = 0.0
    error_count: int = 0
    total_request_charge: float = 0.0
    last_execution: datetime | None = None

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count > 0 else 0.0

    @property
    def error_rate(self) -> float:
        """Error rate as a percentage."""
        return (self.error_count / self.count * 100) if self.count > 0 else 0.0

    def record(self, duration_ms: float, success: bool = True) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        self.min_duration_ms = min(self.min_duration_ms, duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if not success:
            self.error_count += 1
        self.last_execution = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation_name,
            "count": self.count,
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "min_duration_ms": (
                round(self.min_duration_ms, 2) if self.min_duration_ms != float("inf") else 0.0
            ),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "error_count": self.error_count,
            "error_rate_percent": round(self.error_rate, 2),
            "total_request_charge": round(self.total_request_charge, 2),
            "last_execution": (self.last_execution.isoformat() if self.last_execution else None),
        }


def _key(name: str, tags: dict[str, Any]) -> str:
    if not tags:
        return name
    tag_str = "_".join(f"{k}={v}" for k, v in sorted(tags.items()))
    return f"{name}[{tag_str}]"


class MetricsCollector:
    """
    Thread-safe metrics sink for the data services.

    Collects:
    - Operation durations and error counts (per model and operation)
    - Request charge totals
    - Named counters (count cache hits and misses)

    Args:
        max_metrics: Maximum number of metric keys kept before the least
            recently used is evicted. Defaults to 10000.
    """

    def __init__(self, max_metrics: int = 10000):
        self._metrics: OrderedDict[str, OperationMetrics] = OrderedDict()
        self._counters: dict[str, int] = {}
        self._lock = threading.Lock()
        self._max_metrics = max_metrics

    def _entry(self, operation_name: str, tags: dict[str, Any]) -> OperationMetrics:
        # Caller holds the lock
        key = _key(operation_name, tags)
        is_new = key not in self._metrics

        if is_new and len(self._metrics) >= self._max_metrics:
            self._metrics.popitem(last=False)

        if is_new:
            self._metrics[key] = OperationMetrics(operation_name=operation_name)
        else:
            self._metrics.move_to_end(key)
        return self._metrics[key]

    def record_operation(
        self, operation_name: str, duration_ms: float, success: bool = True, **tags: Any
    ) -> None:
        """
        Record an operation execution.

        Args:
            operation_name: Name of the operation (e.g., "repository.get_item")
            duration_ms: Duration in milliseconds
            success: Whether the operation succeeded
            **tags: Additional tags (model, etc.)
        """
        with self._lock:
            self._entry(operation_name, tags).record(duration_ms, success)

    def record_request_charge(self, model: str, operation: str, charge: float) -> None:
        """Add backend request charge to the total for ``model``/``operation``."""
        with self._lock:
            self._entry(operation, {"model": model}).total_request_charge += charge

    def increment(self, counter_name: str, amount: int = 1, **tags: Any) -> None:
        with self._lock:
            key = _key(counter_name, tags)
            self._counters[key] = self._counters.get(key, 0) + amount

    def record_cache_hit(self, model: str) -> None:
        self.increment("count_cache.hit", model=model)

    def record_cache_miss(self, model: str) -> None:
        self.increment("count_cache.miss", model=model)

    def get_counter(self, counter_name: str, **tags: Any) -> int:
        with self._lock:
            return self._counters.get(_key(counter_name, tags), 0)

    def get_metrics(self, operation_name: str | None = None) -> dict[str, Any]:
        """
        Get metrics for operations.

        Args:
            operation_name: Optional operation name prefix to filter by
        """
        with self._lock:
            if operation_name:
                metrics = {
                    k: v.to_dict() for k, v in self._metrics.items() if k.startswith(operation_name)
                }
                for key in list(self._metrics.keys()):
                    if key.startswith(operation_name):
                        self._metrics.move_to_end(key)
            else:
                metrics = {k: v.to_dict() for k, v in self._metrics.items()}
                for key in list(self._metrics.keys()):
                    self._metrics.move_to_end(key)

            total_operations = len(self._metrics)
            counters = dict(self._counters)

        return {
            "timestamp": datetime.now().isoformat(),
            "metrics": metrics,
            "counters": counters,
            "total_operations": total_operations,
        }

    def get_summary(self) -> dict[str, Any]:
        """Aggregate metrics by operation name, across tags."""
        with self._lock:
            if not self._metrics:
                return {
                    "timestamp": datetime.now().isoformat(),
                    "total_operations": 0,
                    "summary": {},
                }

            aggregated: dict[str, OperationMetrics] = {}

            for metric in self._metrics.values():
                base_name = metric.operation_name
                if base_name not in aggregated:
                    aggregated[base_name] = OperationMetrics(operation_name=base_name)

                agg = aggregated[base_name]
                agg.count += metric.count
                agg.total_duration_ms += metric.total_duration_ms
                agg.min_duration_ms = min(agg.min_duration_ms, metric.min_duration_ms)
                agg.max_duration_ms = max(agg.max_duration_ms, metric.max_duration_ms)
                agg.error_count += metric.error_count
                agg.total_request_charge += metric.total_request_charge
                if metric.last_execution and (
                    not agg.last_execution or metric.last_execution > agg.last_execution
                ):
                    agg.last_execution = metric.last_execution

            total_operations = len(self._metrics)
            summary = {name: m.to_dict() for name, m in aggregated.items()}

        return {
            "timestamp": datetime.now().isoformat(),
            "total_operations": total_operations,
            "summary": summary,
        }

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._counters.clear()

    def get_operation_count(self, operation_name: str) -> int:
        """Get the count of executions for an operation across all tags."""
        with self._lock:
            return sum(
                metric.count
                for metric in self._metrics.values()
                if metric.operation_name == operation_name
            )

    def get_request_charge(self, operation_name: str) -> float:
        """Total request charge for an operation across all tags."""
        with self._lock:
            return sum(
                metric.total_request_charge
                for metric in self._metrics.values()
                if metric.operation_name == operation_name
            )
