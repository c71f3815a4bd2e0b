"""
Time-bounded cache of per-partition document counts.
"""

import logging
import threading
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from ..constants import MAX_COUNT_CACHE_SIZE
from ..models.results import CachedCountEntry
from ..observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CountCache:
    """
    Per-partition count cache.

    Entries are immutable and replaced wholesale on refresh. Concurrent
    misses for the same partition each run the loader; the last one to
    finish wins. The least recently used entry is evicted once
    ``max_entries`` is reached.

    Args:
        max_entries: Maximum number of cached partitions
        clock: Returns the current UTC time
        metrics: Optional sink for hit/miss counters
        model_name: Tag used for metrics
    """

    def __init__(
        self,
        max_entries: int = MAX_COUNT_CACHE_SIZE,
        clock: Callable[[], datetime] = _utc_now,
        metrics: Optional[MetricsCollector] = None,
        model_name: str = "",
    ):
        self._entries: OrderedDict[str, CachedCountEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._max_entries = max_entries
        self._clock = clock
        self._metrics = metrics
        self._model_name = model_name

    @staticmethod
    def _cache_key(partition_key: Any) -> str:
        return str(partition_key)

    def get_entry(self, partition_key: Any) -> Optional[CachedCountEntry]:
        with self._lock:
            return self._entries.get(self._cache_key(partition_key))

    def _lookup(self, key: str) -> Optional[CachedCountEntry]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry

    def _store(self, entry: CachedCountEntry) -> None:
        with self._lock:
            if entry.partition_key in self._entries:
                self._entries.move_to_end(entry.partition_key)
            elif len(self._entries) >= self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Count cache full, evicted partition '{evicted}'")
            self._entries[entry.partition_key] = entry

    async def get_count_with_cache(
        self,
        partition_key: Any,
        expiry_minutes: float,
        loader: Callable[[], Awaitable[int]],
    ) -> int:
        """
        Return the cached count for ``partition_key`` or load and cache it.

        ``expiry_minutes`` of 0 bypasses the cache entirely.
        """
        if expiry_minutes == 0:
            return await loader()

        key = self._cache_key(partition_key)
        entry = self._lookup(key)
        if entry is not None:
            if self._metrics:
                self._metrics.record_cache_hit(self._model_name)
            logger.debug(f"Count cache hit for partition '{key}': {entry.count}")
            return entry.count

        if self._metrics:
            self._metrics.record_cache_miss(self._model_name)
        count = await loader()
        self._store(
            CachedCountEntry(
                partition_key=key,
                count=count,
                expires_at_utc=self._clock() + timedelta(minutes=expiry_minutes),
            )
        )
        logger.debug(f"Count cache miss for partition '{key}', cached {count}")
        return count

    def invalidate(self, partition_key: Any) -> None:
        """Drop the entry for ``partition_key``. Missing or empty keys are a no-op."""
        if partition_key is None or partition_key == "":
            return
        with self._lock:
            self._entries.pop(self._cache_key(partition_key), None)

    def __len__(self) -> int:
        return len(self._entries)
