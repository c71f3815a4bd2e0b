"""
Result types returned by repositories and services.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, List, NamedTuple, Optional, Tuple, TypeVar

from ..constants import RETRYABLE_STATUS_CODES

T = TypeVar("T")


@dataclass(frozen=True)
class BulkItemFailure(Generic[T]):
    """
    One item that a bulk call could not write.

    ``status_code`` is None when the failure did not come with a backend
    status (for example, a client-side exception for the whole batch).
    """

    item: T
    status_code: Optional[int]
    error_message: str
    exception: Optional[BaseException] = None

    @property
    def is_retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES


@dataclass(frozen=True)
class BatchExecuteResult(Generic[T]):
    """Outcome of a single dispatched batch."""

    batch_index: int
    successful_items: Tuple[T, ...] = ()
    failed_items: Tuple[BulkItemFailure[T], ...] = ()
    request_units: float = 0.0
    exception: Optional[BaseException] = None


@dataclass(frozen=True)
class BulkExecuteResult(Generic[T]):
    """
    Aggregated outcome of a bulk call.

    Item ordering follows batch completion, not input order.
    """

    successful_items: Tuple[T, ...] = ()
    failed_items: Tuple[BulkItemFailure[T], ...] = ()
    total_request_units: float = 0.0
    batch_results: Tuple[BatchExecuteResult[T], ...] = field(default=(), repr=False)

    @property
    def is_success(self) -> bool:
        return not self.failed_items

    @property
    def total_items(self) -> int:
        return len(self.successful_items) + len(self.failed_items)

    @property
    def success_rate(self) -> float:
        """Percentage of submitted items that succeeded (100 for an empty call)."""
        if self.total_items == 0:
            return 100.0
        return len(self.successful_items) / self.total_items * 100

    @property
    def retryable_items(self) -> List[T]:
        return [failure.item for failure in self.failed_items if failure.is_retryable]

    @classmethod
    def aggregate(
        cls,
        batch_results: List[BatchExecuteResult[T]],
        rejected: Tuple[BulkItemFailure[T], ...] = (),
    ) -> "BulkExecuteResult[T]":
        """Combine per-batch results and pre-dispatch rejections."""
        successful: List[T] = []
        failed: List[BulkItemFailure[T]] = list(rejected)
        total_units = 0.0
        for batch in batch_results:
            successful.extend(batch.successful_items)
            failed.extend(batch.failed_items)
            total_units += batch.request_units
        return cls(
            successful_items=tuple(successful),
            failed_items=tuple(failed),
            total_request_units=total_units,
            batch_results=tuple(batch_results),
        )


@dataclass(frozen=True)
class CachedCountEntry:
    """A cached partition count. Replaced wholesale on refresh."""

    partition_key: str
    count: int
    expires_at_utc: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at_utc


class Page(NamedTuple):
    items: List[Any]
    continuation_token: Optional[str]


class CountedPage(NamedTuple):
    items: List[Any]
    continuation_token: Optional[str]
    total_count: Optional[int]
