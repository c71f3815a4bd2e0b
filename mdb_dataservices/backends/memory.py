"""
In-memory document store.

Process-local implementation of DocumentStore for tests and development.
Queries are parsed and evaluated in-process; continuation tokens encode a
position plus a fingerprint of the query that issued them.
"""

import asyncio
import copy
import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..constants import (
    STATUS_BAD_REQUEST,
    STATUS_CONFLICT,
    STATUS_CREATED,
    STATUS_NO_CONTENT,
    STATUS_NOT_FOUND,
    STATUS_OK,
)
from ..models.enums import BulkOperationType, PatchOperationType
from ..models.filters import PatchOperation, QueryDefinition
from ..query.evaluator import matches, sort_documents
from ..query.parser import parse_query, resolve_paging
from .base import (
    BatchItemResult,
    BatchOperation,
    BatchResponse,
    DocumentStore,
    DocumentStoreError,
    FeedPage,
    StoreResponse,
    decode_continuation,
    encode_continuation,
)

logger = logging.getLogger(__name__)


def apply_patch(document: Dict[str, Any], operations: Sequence[PatchOperation]) -> None:
    """Apply patch operations to ``document`` in place."""
    for operation in operations:
        segments = operation.segments
        if not segments:
            raise DocumentStoreError(
                f"Patch path '{operation.path}' is empty", status_code=STATUS_BAD_REQUEST
            )
        parent = document
        for segment in segments[:-1]:
            child = parent.get(segment)
            if not isinstance(child, dict):
                if operation.operation_type in (PatchOperationType.REPLACE, PatchOperationType.REMOVE):
                    raise DocumentStoreError(
                        f"Patch path '{operation.path}' does not exist",
                        status_code=STATUS_BAD_REQUEST,
                    )
                child = parent[segment] = {}
            parent = child
        leaf = segments[-1]

        kind = operation.operation_type
        if kind in (PatchOperationType.ADD, PatchOperationType.SET):
            parent[leaf] = copy.deepcopy(operation.value)
        elif kind == PatchOperationType.REPLACE:
            if leaf not in parent:
                raise DocumentStoreError(
                    f"Patch path '{operation.path}' does not exist", status_code=STATUS_BAD_REQUEST
                )
            parent[leaf] = copy.deepcopy(operation.value)
        elif kind == PatchOperationType.REMOVE:
            if leaf not in parent:
                raise DocumentStoreError(
                    f"Patch path '{operation.path}' does not exist", status_code=STATUS_BAD_REQUEST
                )
            del parent[leaf]
        elif kind == PatchOperationType.INCREMENT:
            current = parent.get(leaf, 0)
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                raise DocumentStoreError(
                    f"Cannot increment non-numeric value at '{operation.path}'",
                    status_code=STATUS_BAD_REQUEST,
                )
            parent[leaf] = current + operation.value


class InMemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed document store.

    Every call is counted in ``operation_counts``. Faults can be injected
    per item id with :meth:`fail_item`, and the whole store can be taken
    offline with ``available = False``.

    Args:
        partition_key_property: Document field holding the partition key
        request_charge_per_item: Capacity charged per document touched
        latency: Seconds each call sleeps before running
    """

    def __init__(
        self,
        partition_key_property: str,
        request_charge_per_item: float = 1.0,
        latency: float = 0.0,
    ):
        self.partition_key_property = partition_key_property
        self.request_charge_per_item = request_charge_per_item
        self.latency = latency
        self.available = True
        self.operation_counts: Counter = Counter()
        self.in_flight = 0
        self.max_in_flight = 0
        self._documents: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._faults: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_item(self, item_id: str, status_code: int) -> None:
        """Make every write of ``item_id`` fail with ``status_code``."""
        self._faults[item_id] = status_code

    def clear_faults(self) -> None:
        self._faults.clear()

    def __len__(self) -> int:
        return len(self._documents)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _key(partition_key: Any, item_id: str) -> Tuple[str, str]:
        return (repr(partition_key), item_id)

    async def _enter(self, operation: str) -> None:
        self.operation_counts[operation] += 1
        if not self.available:
            raise DocumentStoreError(f"Document store unavailable during {operation}")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
        except BaseException:
            self.in_flight -= 1
            raise

    def _exit(self) -> None:
        self.in_flight -= 1

    def _check_fault(self, item_id: str) -> None:
        status = self._faults.get(item_id)
        if status is not None:
            raise DocumentStoreError(f"Injected fault for '{item_id}'", status_code=status)

    def _check_partition(self, document: Dict[str, Any], partition_key: Any) -> None:
        if document.get(self.partition_key_property) != partition_key:
            raise DocumentStoreError(
                f"Document partition key {document.get(self.partition_key_property)!r} "
                f"does not match {partition_key!r}",
                status_code=STATUS_BAD_REQUEST,
            )

    def _write(self, document: Dict[str, Any], partition_key: Any, upsert: bool, create: bool) -> int:
        item_id = document.get("id")
        self._check_fault(item_id)
        self._check_partition(document, partition_key)
        key = self._key(partition_key, item_id)
        exists = key in self._documents
        if create and exists:
            raise DocumentStoreError(
                f"Document '{item_id}' already exists", status_code=STATUS_CONFLICT
            )
        if not create and not upsert and not exists:
            raise DocumentStoreError(f"Document '{item_id}' not found", status_code=STATUS_NOT_FOUND)
        self._documents[key] = copy.deepcopy(document)
        return STATUS_OK if exists else STATUS_CREATED

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------

    async def read_item(self, item_id: str, partition_key: Any) -> StoreResponse:
        await self._enter("read_item")
        try:
            document = self._documents.get(self._key(partition_key, item_id))
            if document is None:
                raise DocumentStoreError(
                    f"Document '{item_id}' not found", status_code=STATUS_NOT_FOUND,
                    request_charge=self.request_charge_per_item,
                )
            return StoreResponse(copy.deepcopy(document), STATUS_OK, self.request_charge_per_item)
        finally:
            self._exit()

    async def create_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        await self._enter("create_item")
        try:
            status = self._write(document, partition_key, upsert=False, create=True)
            return StoreResponse(copy.deepcopy(document), status, self.request_charge_per_item)
        finally:
            self._exit()

    async def replace_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        await self._enter("replace_item")
        try:
            status = self._write(document, partition_key, upsert=False, create=False)
            return StoreResponse(copy.deepcopy(document), status, self.request_charge_per_item)
        finally:
            self._exit()

    async def upsert_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        await self._enter("upsert_item")
        try:
            status = self._write(document, partition_key, upsert=True, create=False)
            return StoreResponse(copy.deepcopy(document), status, self.request_charge_per_item)
        finally:
            self._exit()

    async def delete_item(self, item_id: str, partition_key: Any) -> StoreResponse:
        await self._enter("delete_item")
        try:
            self._check_fault(item_id)
            if self._documents.pop(self._key(partition_key, item_id), None) is None:
                raise DocumentStoreError(
                    f"Document '{item_id}' not found", status_code=STATUS_NOT_FOUND
                )
            return StoreResponse(None, STATUS_NO_CONTENT, self.request_charge_per_item)
        finally:
            self._exit()

    async def patch_item(
        self, item_id: str, partition_key: Any, operations: Sequence[PatchOperation]
    ) -> StoreResponse:
        await self._enter("patch_item")
        try:
            self._check_fault(item_id)
            key = self._key(partition_key, item_id)
            current = self._documents.get(key)
            if current is None:
                raise DocumentStoreError(
                    f"Document '{item_id}' not found", status_code=STATUS_NOT_FOUND
                )
            patched = copy.deepcopy(current)
            apply_patch(patched, operations)
            self._check_partition(patched, partition_key)
            self._documents[key] = patched
            return StoreResponse(copy.deepcopy(patched), STATUS_OK, self.request_charge_per_item)
        finally:
            self._exit()

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def execute_batch(
        self, partition_key: Any, operations: Sequence[BatchOperation]
    ) -> BatchResponse:
        await self._enter("execute_batch")
        try:
            results: List[BatchItemResult] = []
            charge = 0.0
            for operation in operations:
                try:
                    status = self._write(
                        operation.document,
                        partition_key,
                        upsert=operation.operation_type == BulkOperationType.UPSERT,
                        create=operation.operation_type == BulkOperationType.CREATE,
                    )
                except DocumentStoreError as e:
                    results.append(BatchItemResult(e.status_code, error_message=e.message))
                    continue
                charge += self.request_charge_per_item
                results.append(BatchItemResult(status, copy.deepcopy(operation.document)))
            return BatchResponse(results, charge)
        finally:
            self._exit()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query_page(
        self,
        query: QueryDefinition,
        partition_key: Any = None,
        page_size: Optional[int] = None,
        continuation_token: Optional[str] = None,
    ) -> FeedPage:
        await self._enter("query_page")
        try:
            parsed = parse_query(query.query_text)
            parameters = dict(query.parameters)

            candidates = [
                doc
                for doc in self._documents.values()
                if partition_key is None or doc.get(self.partition_key_property) == partition_key
            ]
            selected = [
                doc
                for doc in candidates
                if parsed.where is None or matches(parsed.where, doc, parameters)
            ]

            if parsed.is_count:
                return FeedPage([len(selected)], None, self.request_charge_per_item)

            if parsed.order_by:
                selected = sort_documents(selected, parsed.order_by)
            offset = resolve_paging(parsed.offset, parameters, "OFFSET") or 0
            limit = resolve_paging(parsed.limit, parameters, "LIMIT")
            window = selected[offset:] if limit is None else selected[offset:offset + limit]

            position = 0
            if continuation_token:
                position = decode_continuation(continuation_token, query, partition_key)
            end = len(window) if page_size is None else position + page_size
            items = [copy.deepcopy(doc) for doc in window[position:end]]
            next_token = (
                encode_continuation(query, partition_key, end) if end < len(window) else None
            )
            charge = max(1, len(items)) * self.request_charge_per_item
            logger.debug(
                f"In-memory query returned {len(items)} items (position={position}, "
                f"more={next_token is not None})"
            )
            return FeedPage(items, next_token, charge)
        finally:
            self._exit()
