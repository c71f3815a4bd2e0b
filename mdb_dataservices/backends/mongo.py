"""
MongoDB document store.

Implements DocumentStore on a motor collection. Documents are keyed by a
compound ``_id`` of partition key and id, so ids are unique per partition.
Query text is parsed and translated into MongoDB filter/sort/skip/limit
arguments; continuation tokens carry the resume position.

pymongo errors are mapped onto store status codes:
- DuplicateKeyError -> 409
- ExecutionTimeout / NetworkTimeout -> 408
- AutoReconnect / ConnectionFailure -> 503
- Document validation failures and oversized documents -> 400
- Anything else -> 500
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from bson import encode as bson_encode
from bson.errors import InvalidDocument
from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, InsertOne, ReplaceOne, ReturnDocument
from pymongo.errors import (
    AutoReconnect,
    BulkWriteError,
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    NetworkTimeout,
    OperationFailure,
    PyMongoError,
)

from ..constants import (
    DEFAULT_QUERY_TIMEOUT_MS,
    DUPLICATE_KEY_ERROR_CODE,
    MAX_DOCUMENT_SIZE,
    MAX_FILTER_DEPTH,
    STATUS_BAD_REQUEST,
    STATUS_CONFLICT,
    STATUS_CREATED,
    STATUS_INTERNAL_SERVER_ERROR,
    STATUS_NO_CONTENT,
    STATUS_NOT_FOUND,
    STATUS_OK,
    STATUS_REQUEST_TIMEOUT,
    STATUS_SERVICE_UNAVAILABLE,
)
from ..exceptions import UnsupportedSpecificationError
from ..models.enums import BulkOperationType, PatchOperationType
from ..models.filters import PatchOperation, QueryDefinition
from ..query.evaluator import compare, resolve_operand
from ..query.parser import (
    And,
    ArrayContains,
    Comparison,
    Condition,
    InList,
    Literal,
    Not,
    Or,
    ParsedQuery,
    PropertyPath,
    parse_query,
    resolve_paging,
)
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

_VALIDATION_ERROR_CODES = (2, 9, 121)
_MATCH_NONE: Dict[str, Any] = {"_id": {"$exists": False}}
_FLIPPED = {">": "<", "<": ">", ">=": "<=", "<=": ">=", "=": "=", "<>": "<>"}
_MONGO_OPERATORS = {">": "$gt", "<": "$lt", ">=": "$gte", "<=": "$lte"}
_NO_ID = {"_id": False}


def _status_for_code(code: Optional[int]) -> int:
    if code == DUPLICATE_KEY_ERROR_CODE:
        return STATUS_CONFLICT
    if code in _VALIDATION_ERROR_CODES:
        return STATUS_BAD_REQUEST
    return STATUS_INTERNAL_SERVER_ERROR


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    """Re-raise pymongo/bson failures as DocumentStoreError."""
    try:
        yield
    except DocumentStoreError:
        raise
    except DuplicateKeyError as e:
        raise DocumentStoreError(f"{operation}: duplicate document", STATUS_CONFLICT) from e
    except (ExecutionTimeout, NetworkTimeout) as e:
        logger.warning(f"MongoDB timeout in {operation}: {e}")
        raise DocumentStoreError(f"{operation}: request timed out", STATUS_REQUEST_TIMEOUT) from e
    except (AutoReconnect, ConnectionFailure) as e:
        logger.warning(f"MongoDB unavailable in {operation}: {e}")
        raise DocumentStoreError(
            f"{operation}: service unavailable", STATUS_SERVICE_UNAVAILABLE
        ) from e
    except OperationFailure as e:
        logger.error(f"MongoDB operation failed in {operation}: {e.details}", exc_info=True)
        raise DocumentStoreError(f"{operation}: {e}", _status_for_code(e.code)) from e
    except InvalidDocument as e:
        raise DocumentStoreError(f"{operation}: invalid document: {e}", STATUS_BAD_REQUEST) from e
    except PyMongoError as e:
        logger.error(f"Unexpected MongoDB error in {operation}: {e}", exc_info=True)
        raise DocumentStoreError(f"{operation}: {e}", STATUS_INTERNAL_SERVER_ERROR) from e


# ============================================================================
# QUERY TRANSLATION
# ============================================================================


def _check_depth(value: Any, max_depth: int, depth: int = 0) -> None:
    if depth > max_depth:
        raise UnsupportedSpecificationError(
            f"Query nesting exceeds maximum depth of {max_depth}",
            specification_type="SqlSpecification",
        )
    if isinstance(value, Mapping):
        for child in value.values():
            _check_depth(child, max_depth, depth + 1)
    elif isinstance(value, list):
        for child in value:
            _check_depth(child, max_depth, depth + 1)


def _comparison_filter(condition: Comparison, parameters: Mapping[str, Any]) -> Dict[str, Any]:
    left, operator, right = condition.left, condition.operator, condition.right
    if not isinstance(left, PropertyPath) and isinstance(right, PropertyPath):
        left, right, operator = right, left, _FLIPPED[operator]

    if not isinstance(left, PropertyPath):
        constant = compare(
            resolve_operand(left, {}, parameters), operator, resolve_operand(right, {}, parameters)
        )
        return {} if constant else dict(_MATCH_NONE)

    field = left.dotted
    if isinstance(right, PropertyPath):
        expression = {"=": "$eq", "<>": "$ne", **_MONGO_OPERATORS}[operator]
        return {"$expr": {expression: [f"${field}", f"${right.dotted}"]}}

    value = resolve_operand(right, {}, parameters)
    if operator == "=":
        if value is None:
            return {field: {"$type": "null"}}
        return {field: value}
    if operator == "<>":
        return {field: {"$exists": True, "$ne": value}}
    return {field: {_MONGO_OPERATORS[operator]: value}}


def to_mongo_filter(condition: Optional[Condition], parameters: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate a parsed WHERE condition into a MongoDB filter document."""
    if condition is None:
        return {}
    if isinstance(condition, And):
        return {"$and": [to_mongo_filter(term, parameters) for term in condition.terms]}
    if isinstance(condition, Or):
        return {"$or": [to_mongo_filter(term, parameters) for term in condition.terms]}
    if isinstance(condition, Not):
        return {"$nor": [to_mongo_filter(condition.term, parameters)]}
    if isinstance(condition, Comparison):
        return _comparison_filter(condition, parameters)
    if isinstance(condition, InList):
        if not isinstance(condition.operand, PropertyPath):
            raise UnsupportedSpecificationError(
                "IN requires a property path on the left-hand side",
                specification_type="SqlSpecification",
            )
        values = [resolve_operand(v, {}, parameters) for v in condition.values]
        if condition.negated:
            return {condition.operand.dotted: {"$exists": True, "$nin": values}}
        return {condition.operand.dotted: {"$in": values}}
    if isinstance(condition, ArrayContains):
        value = resolve_operand(condition.value, {}, parameters)
        if condition.partial and isinstance(value, Mapping):
            return {condition.array.dotted: {"$elemMatch": dict(value)}}
        return {condition.array.dotted: value}
    if isinstance(condition, Literal):
        return {} if condition.value is True else dict(_MATCH_NONE)
    if isinstance(condition, PropertyPath):
        return {condition.dotted: True}
    raise UnsupportedSpecificationError(
        f"Unsupported condition {condition!r}", specification_type="SqlSpecification"
    )


def _sort_spec(parsed: ParsedQuery) -> List[Tuple[str, int]]:
    if not parsed.order_by:
        return [("_id", ASCENDING)]
    return [
        (item.path.dotted, DESCENDING if item.descending else ASCENDING)
        for item in parsed.order_by
    ]


def _patch_update(operations: Sequence[PatchOperation]) -> Dict[str, Dict[str, Any]]:
    update: Dict[str, Dict[str, Any]] = {}
    for operation in operations:
        path = ".".join(operation.segments)
        if not path:
            raise DocumentStoreError(
                f"Patch path '{operation.path}' is empty", STATUS_BAD_REQUEST
            )
        kind = operation.operation_type
        if kind in (PatchOperationType.ADD, PatchOperationType.SET, PatchOperationType.REPLACE):
            update.setdefault("$set", {})[path] = operation.value
        elif kind == PatchOperationType.REMOVE:
            update.setdefault("$unset", {})[path] = ""
        elif kind == PatchOperationType.INCREMENT:
            update.setdefault("$inc", {})[path] = operation.value
    return update


# ============================================================================
# STORE
# ============================================================================


class MongoDocumentStore(DocumentStore):
    """
    DocumentStore backed by a MongoDB collection.

    MongoDB has no request-unit accounting, so every request charge is 0.0.

    Args:
        collection: Motor collection holding the documents
        partition_key_property: Document field holding the partition key
        query_timeout_ms: maxTimeMS applied to reads and queries
        max_filter_depth: Nesting limit for translated filters
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        partition_key_property: str,
        query_timeout_ms: int = DEFAULT_QUERY_TIMEOUT_MS,
        max_filter_depth: int = MAX_FILTER_DEPTH,
    ):
        self._collection = collection
        self.partition_key_property = partition_key_property
        self.query_timeout_ms = query_timeout_ms
        self.max_filter_depth = max_filter_depth

    @staticmethod
    def _key(partition_key: Any, item_id: str) -> Dict[str, Any]:
        return {"_id": {"pk": partition_key, "id": item_id}}

    def _prepare(self, document: Dict[str, Any], partition_key: Any) -> Dict[str, Any]:
        if document.get(self.partition_key_property) != partition_key:
            raise DocumentStoreError(
                f"Document partition key {document.get(self.partition_key_property)!r} "
                f"does not match {partition_key!r}",
                STATUS_BAD_REQUEST,
            )
        stored = {**self._key(partition_key, document.get("id")), **document}
        try:
            size = len(bson_encode(stored))
        except InvalidDocument as e:
            raise DocumentStoreError(f"Document cannot be encoded: {e}", STATUS_BAD_REQUEST) from e
        if size > MAX_DOCUMENT_SIZE:
            raise DocumentStoreError(
                f"Document size {size} bytes exceeds maximum {MAX_DOCUMENT_SIZE} bytes",
                STATUS_BAD_REQUEST,
            )
        return stored

    async def ensure_indexes(self) -> None:
        """Create the partition-key index used by partition-scoped queries."""
        with _translate_errors("ensure_indexes"):
            await self._collection.create_index([(self.partition_key_property, ASCENDING)])

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------

    async def read_item(self, item_id: str, partition_key: Any) -> StoreResponse:
        with _translate_errors("read_item"):
            document = await self._collection.find_one(
                self._key(partition_key, item_id), _NO_ID, max_time_ms=self.query_timeout_ms
            )
        if document is None:
            raise DocumentStoreError(f"Document '{item_id}' not found", STATUS_NOT_FOUND)
        return StoreResponse(document, STATUS_OK)

    async def create_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        stored = self._prepare(document, partition_key)
        with _translate_errors("create_item"):
            await self._collection.insert_one(stored)
        return StoreResponse(dict(document), STATUS_CREATED)

    async def replace_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        stored = self._prepare(document, partition_key)
        with _translate_errors("replace_item"):
            result = await self._collection.replace_one(
                self._key(partition_key, document.get("id")), stored
            )
        if result.matched_count == 0:
            raise DocumentStoreError(
                f"Document '{document.get('id')}' not found", STATUS_NOT_FOUND
            )
        return StoreResponse(dict(document), STATUS_OK)

    async def upsert_item(self, document: Dict[str, Any], partition_key: Any) -> StoreResponse:
        stored = self._prepare(document, partition_key)
        with _translate_errors("upsert_item"):
            result = await self._collection.replace_one(
                self._key(partition_key, document.get("id")), stored, upsert=True
            )
        status = STATUS_CREATED if result.upserted_id is not None else STATUS_OK
        return StoreResponse(dict(document), status)

    async def delete_item(self, item_id: str, partition_key: Any) -> StoreResponse:
        with _translate_errors("delete_item"):
            result = await self._collection.delete_one(self._key(partition_key, item_id))
        if result.deleted_count == 0:
            raise DocumentStoreError(f"Document '{item_id}' not found", STATUS_NOT_FOUND)
        return StoreResponse(None, STATUS_NO_CONTENT)

    async def patch_item(
        self, item_id: str, partition_key: Any, operations: Sequence[PatchOperation]
    ) -> StoreResponse:
        if any(op.segments[:1] == (self.partition_key_property,) for op in operations):
            raise DocumentStoreError(
                f"Patch cannot modify partition key '{self.partition_key_property}'",
                STATUS_BAD_REQUEST,
            )
        update = _patch_update(operations)
        with _translate_errors("patch_item"):
            document = await self._collection.find_one_and_update(
                self._key(partition_key, item_id),
                update,
                projection=_NO_ID,
                return_document=ReturnDocument.AFTER,
            )
        if document is None:
            raise DocumentStoreError(f"Document '{item_id}' not found", STATUS_NOT_FOUND)
        return StoreResponse(document, STATUS_OK)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def execute_batch(
        self, partition_key: Any, operations: Sequence[BatchOperation]
    ) -> BatchResponse:
        results: List[Optional[BatchItemResult]] = [None] * len(operations)
        requests = []
        request_index: List[int] = []
        for index, operation in enumerate(operations):
            try:
                stored = self._prepare(operation.document, partition_key)
            except DocumentStoreError as e:
                results[index] = BatchItemResult(e.status_code, error_message=e.message)
                continue
            if operation.operation_type == BulkOperationType.CREATE:
                requests.append(InsertOne(stored))
            else:
                requests.append(
                    ReplaceOne(self._key(partition_key, operation.document.get("id")), stored, upsert=True)
                )
            request_index.append(index)

        if not requests:
            return BatchResponse([r for r in results if r is not None])

        errors: Dict[int, Dict[str, Any]] = {}
        upserted: set = set()
        with _translate_errors("execute_batch"):
            try:
                result = await self._collection.bulk_write(requests, ordered=False)
                upserted = set(result.upserted_ids or {})
            except BulkWriteError as e:
                details = e.details or {}
                errors = {err["index"]: err for err in details.get("writeErrors", [])}
                upserted = {entry["index"] for entry in details.get("upserted", [])}

        for position, index in enumerate(request_index):
            operation = operations[index]
            error = errors.get(position)
            if error is not None:
                results[index] = BatchItemResult(
                    _status_for_code(error.get("code")), error_message=error.get("errmsg")
                )
            elif operation.operation_type == BulkOperationType.CREATE or position in upserted:
                results[index] = BatchItemResult(STATUS_CREATED, dict(operation.document))
            else:
                results[index] = BatchItemResult(STATUS_OK, dict(operation.document))

        if errors:
            logger.warning(
                f"Batch for partition {partition_key!r}: {len(errors)} of {len(requests)} "
                "writes failed"
            )
        return BatchResponse([r for r in results if r is not None])

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _filter(self, parsed: ParsedQuery, parameters: Mapping[str, Any], partition_key: Any) -> Dict[str, Any]:
        query_filter = to_mongo_filter(parsed.where, parameters)
        if partition_key is not None:
            scope = {self.partition_key_property: partition_key}
            query_filter = {"$and": [scope, query_filter]} if query_filter else scope
        _check_depth(query_filter, self.max_filter_depth)
        return query_filter

    async def query_page(
        self,
        query: QueryDefinition,
        partition_key: Any = None,
        page_size: Optional[int] = None,
        continuation_token: Optional[str] = None,
    ) -> FeedPage:
        parsed = parse_query(query.query_text)
        parameters = dict(query.parameters)
        query_filter = self._filter(parsed, parameters, partition_key)

        if parsed.is_count:
            with _translate_errors("count"):
                count = await self._collection.count_documents(
                    query_filter, maxTimeMS=self.query_timeout_ms
                )
            return FeedPage([count])

        offset = resolve_paging(parsed.offset, parameters, "OFFSET") or 0
        limit = resolve_paging(parsed.limit, parameters, "LIMIT")
        position = 0
        if continuation_token:
            position = decode_continuation(continuation_token, query, partition_key)

        remaining = None if limit is None else max(limit - position, 0)
        take = remaining if page_size is None else (
            page_size if remaining is None else min(page_size, remaining)
        )
        if take == 0:
            return FeedPage([])

        # One extra document tells us whether another page exists
        fetch = 0 if take is None else take + 1
        with _translate_errors("query"):
            cursor = self._collection.find(
                query_filter,
                _NO_ID,
                sort=_sort_spec(parsed),
                skip=offset + position,
                limit=fetch,
                max_time_ms=self.query_timeout_ms,
            )
            documents = await cursor.to_list(length=None)

        next_token = None
        if take is not None and len(documents) > take:
            documents = documents[:take]
            end = position + take
            if remaining is None or end < limit:
                next_token = encode_continuation(query, partition_key, end)
        logger.debug(
            f"MongoDB query returned {len(documents)} documents "
            f"(skip={offset + position}, more={next_token is not None})"
        )
        return FeedPage(documents, next_token)
