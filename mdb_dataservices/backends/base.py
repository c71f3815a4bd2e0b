"""
Document store contract.

Repositories talk to storage only through DocumentStore. Stores address
documents by (id, partition key), report a status code and request charge
per call, and raise DocumentStoreError for failures. DocumentStoreError is
backend-internal: repositories wrap it before it reaches callers.
"""

import base64
import binascii
import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from ..constants import STATUS_BAD_REQUEST
from ..models.enums import BulkOperationType
from ..models.filters import PatchOperation, QueryDefinition


class DocumentStoreError(Exception):
    """
    Failure reported by a document store.

    Attributes:
        status_code: HTTP-style status (404 not found, 409 conflict, 429
            throttled, ...), or None when the store could not be reached
        request_charge: Capacity consumed before the failure
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        request_charge: float = 0.0,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.request_charge = request_charge

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"[{self.status_code}] {self.message}"


class InvalidContinuationTokenError(DocumentStoreError):
    """A continuation token was malformed or issued for a different query."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=STATUS_BAD_REQUEST)


@dataclass(frozen=True)
class StoreResponse:
    """Result of a point operation."""

    document: Optional[Dict[str, Any]]
    status_code: int
    request_charge: float = 0.0


@dataclass(frozen=True)
class BatchOperation:
    operation_type: BulkOperationType
    document: Dict[str, Any]


@dataclass(frozen=True)
class BatchItemResult:
    status_code: int
    document: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class BatchResponse:
    """Per-item results, in the order the operations were submitted."""

    results: List[BatchItemResult]
    request_charge: float = 0.0


@dataclass(frozen=True)
class FeedPage:
    """One page of query results."""

    items: List[Any]
    continuation_token: Optional[str] = None
    request_charge: float = 0.0


class DocumentStore(ABC):
    """
    Abstract document store.

    Implementations:
        InMemoryDocumentStore: process-local store for tests and development
        MongoDocumentStore: MongoDB collection via motor
    """

    @abstractmethod
    async def read_item(self, item_id: str, partition_key: Any) -> StoreResponse:
        """Read one document. Raises DocumentStoreError(404) when missing."""
        pass

    @abstractmethod
    async def create_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        """Insert a document. Raises DocumentStoreError(409) on id conflicts."""
        pass

    @abstractmethod
    async def replace_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        """Replace an existing document. Raises DocumentStoreError(404) when missing."""
        pass

    @abstractmethod
    async def upsert_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        """Insert or replace. status_code is 201 when created, 200 when replaced."""
        pass

    @abstractmethod
    async def delete_item(self, item_id: str, partition_key: Any) -> StoreResponse:
        pass

    @abstractmethod
    async def patch_item(
        self, item_id: str, partition_key: Any, operations: Sequence[PatchOperation]
    ) -> StoreResponse:
        pass

    @abstractmethod
    async def execute_batch(
        self, partition_key: Any, operations: Sequence[BatchOperation]
    ) -> BatchResponse:
        """
        Execute create/upsert operations for one partition.

        Each operation succeeds or fails on its own. Raises DocumentStoreError
        only when the batch as a whole could not be dispatched.
        """
        pass

    @abstractmethod
    async def query_page(
        self,
        query: QueryDefinition,
        partition_key: Any = None,
        page_size: Optional[int] = None,
        continuation_token: Optional[str] = None,
    ) -> FeedPage:
        """
        Return one page of results.

        ``partition_key`` of None runs the query across partitions. Count
        queries return a single page holding one integer.
        """
        pass

    async def query_items(
        self,
        query: QueryDefinition,
        partition_key: Any = None,
        page_size: Optional[int] = None,
        continuation_token: Optional[str] = None,
    ) -> AsyncIterator[FeedPage]:
        """Yield pages, following continuation tokens until exhausted."""
        while True:
            page = await self.query_page(query, partition_key, page_size, continuation_token)
            yield page
            continuation_token = page.continuation_token
            if continuation_token is None:
                return

    async def close(self) -> None:
        """Release backend resources."""
        return None


# ============================================================================
# CONTINUATION TOKENS
# ============================================================================


def query_fingerprint(query: QueryDefinition, partition_key: Any) -> str:
    """Stable digest of a query, its parameters and its partition scope."""
    payload = json.dumps(
        [query.query_text, sorted(query.parameters.items()), partition_key],
        default=str,
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def encode_continuation(query: QueryDefinition, partition_key: Any, position: int) -> str:
    raw = json.dumps({"q": query_fingerprint(query, partition_key), "p": position})
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_continuation(token: str, query: QueryDefinition, partition_key: Any) -> int:
    """
    Return the resume position encoded in ``token``.

    Raises:
        InvalidContinuationTokenError: If the token is malformed or was
            issued for a different query
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
        fingerprint = payload["q"]
        position = int(payload["p"])
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeError) as e:
        raise InvalidContinuationTokenError(f"Malformed continuation token: {e}") from e
    if fingerprint != query_fingerprint(query, partition_key):
        raise InvalidContinuationTokenError(
            "Continuation token was issued for a different query"
        )
    if position < 0:
        raise InvalidContinuationTokenError("Continuation token position is negative")
    return position
