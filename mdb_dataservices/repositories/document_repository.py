"""
Document repository.

DocumentRepository is the DAO-level data access object for one registered
model type. It validates input, stamps audit fields, runs the compiled
queries against the read or write DocumentStore, keeps the count cache
current and converts backend failures into BackendOperationError.

This module follows the repository pattern:
- Point reads and writes address documents by (id, partition key)
- Streams are async generators that pull one backend page at a time
- Bulk writes go through BulkExecutor and report failures in-band
"""

import logging
import time
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Sequence,
    TypeVar,
)

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..audit.audit_fields import AuditFieldManager
from ..backends.base import DocumentStore, DocumentStoreError, InvalidContinuationTokenError
from ..config import COUNT_CACHE_EXPIRY_MINUTES
from ..constants import (
    CREATE_OPERATION,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_STREAM_PAGE_SIZE,
    DELETED_FIELD,
    STATUS_CREATED,
    STATUS_NOT_FOUND,
)
from ..exceptions import BackendOperationError, DataServiceError, MappingError, ValidationError
from ..models.enums import BulkOperationType, DeleteOptions, OperationKind
from ..models.filters import PatchSpecification, PropertyFilter, QueryDefinition, Specification
from ..models.results import BulkExecuteResult, CountedPage, Page
from ..observability.logging import (
    get_logger,
    log_operation,
    reset_operation_context,
    set_operation_context,
)
from ..observability.metrics import MetricsCollector
from ..query import compiler
from ..validation.registry import ModelBinding
from ..validation.validator import DocumentValidator
from .bulk_executor import BulkExecutor
from .count_cache import CountCache

logger = logging.getLogger(__name__)
operation_logger = get_logger(f"{__name__}.operations")

T = TypeVar("T")
R = TypeVar("R")


class DocumentRepository(Generic[T]):
    """
    Data access for one stored model type.

    Reads go to ``read_store`` and writes to ``write_store`` (the same store
    when only one is given). Soft-deleted documents are hidden from reads
    unless a method says otherwise.

    Args:
        binding: Registration record for the model type
        read_store: Store serving reads and queries
        write_store: Store serving writes (defaults to ``read_store``)
        validator: Input checks (defaults to DocumentValidator())
        audit_manager: Audit stamping (defaults to AuditFieldManager())
        metrics: Optional metrics sink for timings and request charges
        count_cache: Partition count cache (created when omitted)
        count_cache_expiry_minutes: Default expiry for get_count_with_cache

    Example:
        binding = ModelRegistry().register(ProductDocument, "category")
        repository = DocumentRepository(binding, InMemoryDocumentStore("category"))
        await repository.create_item(ProductDocument(id="p1", category="electronics"))
    """

    def __init__(
        self,
        binding: ModelBinding,
        read_store: DocumentStore,
        write_store: Optional[DocumentStore] = None,
        validator: Optional[DocumentValidator] = None,
        audit_manager: Optional[AuditFieldManager] = None,
        metrics: Optional[MetricsCollector] = None,
        count_cache: Optional[CountCache] = None,
        count_cache_expiry_minutes: float = COUNT_CACHE_EXPIRY_MINUTES,
    ):
        self.binding = binding
        self.count_cache_expiry_minutes = count_cache_expiry_minutes
        self._read_store = read_store
        self._write_store = write_store or read_store
        self._validator = validator or DocumentValidator()
        self._audit_manager = audit_manager or AuditFieldManager()
        self._metrics = metrics
        self._count_cache = count_cache or CountCache(metrics=metrics, model_name=binding.model_name)
        self._adapter: TypeAdapter = TypeAdapter(binding.model_type)
        self._bulk_executor = BulkExecutor(
            self._write_store, self._validator, self._audit_manager, metrics
        )

    @property
    def model_name(self) -> str:
        return self.binding.model_name

    @property
    def partition_key_property(self) -> str:
        return self.binding.partition_key_property

    # ------------------------------------------------------------------
    # Conversion and backend calls
    # ------------------------------------------------------------------

    def _to_document(self, item: T) -> Dict[str, Any]:
        return self._adapter.dump_python(item)

    def _from_document(self, document: Dict[str, Any]) -> T:
        try:
            return self._adapter.validate_python(document)
        except PydanticValidationError as e:
            raise MappingError(
                f"Stored document '{document.get('id')}' does not match {self.model_name}: {e}",
                source_type="dict",
                target_type=self.model_name,
            ) from e

    async def _call(
        self,
        operation: str,
        call: Callable[[], Awaitable[R]],
        partition_key: Any = None,
        missing_ok: bool = False,
    ) -> Optional[R]:
        """
        Run one backend call, recording timing and request charge.

        Records logged during the call carry the model and partition key.
        DocumentStoreError and unexpected exceptions are wrapped once in
        BackendOperationError. With ``missing_ok`` a 404 returns None.
        """
        context_token = set_operation_context(self.model_name, partition_key, operation=operation)
        start_time = time.perf_counter()
        success = False
        charge = 0.0
        try:
            response = await call()
            charge = getattr(response, "request_charge", 0.0)
            success = True
            return response
        except InvalidContinuationTokenError as e:
            raise ValidationError(
                f"Invalid continuation token for {operation}: {e.message}", operation=operation
            ) from e
        except DocumentStoreError as e:
            charge = e.request_charge
            if missing_ok and e.status_code == STATUS_NOT_FOUND:
                success = True
                return None
            logger.error(f"{self.model_name}.{operation} failed: {e}", exc_info=True)
            raise BackendOperationError(
                f"{operation} failed for {self.model_name}: {e.message}",
                operation=operation,
                status_code=e.status_code,
                context={"model": self.model_name},
            ) from e
        except DataServiceError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error in {self.model_name}.{operation}: {e}", exc_info=True)
            raise BackendOperationError(
                f"{operation} failed for {self.model_name}: {e}",
                operation=operation,
                context={"model": self.model_name},
            ) from e
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            if self._metrics:
                self._metrics.record_operation(
                    f"repository.{operation}", duration_ms, success, model=self.model_name
                )
                self._metrics.record_request_charge(
                    self.model_name, f"repository.{operation}", charge
                )
            log_operation(
                operation_logger,
                f"{self.model_name}.{operation}",
                level=logging.DEBUG,
                success=success,
                duration_ms=duration_ms,
                request_charge=charge,
            )
            reset_operation_context(context_token)

    async def _stream(
        self,
        operation: str,
        query: QueryDefinition,
        partition_key: Any = None,
        page_size: int = DEFAULT_STREAM_PAGE_SIZE,
    ) -> AsyncIterator[List[T]]:
        """Yield one converted page at a time, holding at most one backend page."""
        pages = self._read_store.query_items(query, partition_key, page_size)
        try:
            while True:
                page = await self._call(operation, pages.__anext__, partition_key)
                yield [self._from_document(document) for document in page.items]
                if page.continuation_token is None:
                    return
        finally:
            await pages.aclose()

    async def _items(
        self,
        operation: str,
        query: QueryDefinition,
        partition_key: Any = None,
        page_size: int = DEFAULT_STREAM_PAGE_SIZE,
    ) -> AsyncIterator[T]:
        async for page in self._stream(operation, query, partition_key, page_size):
            for item in page:
                yield item

    async def _scalar(self, operation: str, query: QueryDefinition, partition_key: Any) -> int:
        page = await self._call(
            operation, lambda: self._read_store.query_page(query, partition_key), partition_key
        )
        return int(page.items[0]) if page.items else 0

    # ------------------------------------------------------------------
    # Point operations
    # ------------------------------------------------------------------

    async def get_item(
        self, item_id: str, partition_key: Any, include_deleted: bool = False
    ) -> Optional[T]:
        """Read one document; None when missing or soft-deleted (unless included)."""
        self._validator.validate_id_and_partition_key(item_id, partition_key, "GetItem")
        response = await self._call(
            "get_item",
            lambda: self._read_store.read_item(item_id, partition_key),
            partition_key,
            missing_ok=True,
        )
        if response is None:
            logger.debug(f"{self.model_name} '{item_id}' not found in partition '{partition_key}'")
            return None
        item = self._from_document(response.document)
        if not include_deleted and getattr(item, DELETED_FIELD, False):
            logger.debug(f"{self.model_name} '{item_id}' is soft-deleted, returning None")
            return None
        return item

    async def create_item(self, item: T) -> T:
        self._validator.validate_document(item, CREATE_OPERATION, self.binding.get_partition_key)
        self._audit_manager.set_create_audit_fields(item)
        partition_key = self.binding.get_partition_key(item)
        response = await self._call(
            "create_item",
            lambda: self._write_store.create_item(self._to_document(item), partition_key),
            partition_key,
        )
        logger.info(f"Created {self.model_name} '{item.id}' in partition '{partition_key}'")
        self._count_cache.invalidate(partition_key)
        return self._from_document(response.document)

    async def replace_item(self, item: T) -> T:
        self._validator.validate_document(item, "Replace", self.binding.get_partition_key)
        self._audit_manager.set_update_audit_fields(item)
        partition_key = self.binding.get_partition_key(item)
        response = await self._call(
            "replace_item",
            lambda: self._write_store.replace_item(self._to_document(item), partition_key),
            partition_key,
        )
        logger.info(f"Replaced {self.model_name} '{item.id}' in partition '{partition_key}'")
        return self._from_document(response.document)

    async def upsert_item(self, item: T, operation_kind: Optional[OperationKind] = None) -> T:
        """
        Create or replace ``item``.

        Audit stamping runs first so items without a creation timestamp can
        be upserted as new documents. The count cache is invalidated only
        when the store reports that it created the document.
        """
        if item is None:
            raise ValidationError("Document cannot be null", operation="Upsert")
        self._audit_manager.set_upsert_audit_fields(item, operation_kind)
        self._validator.validate_document(item, "Upsert", self.binding.get_partition_key)
        partition_key = self.binding.get_partition_key(item)
        response = await self._call(
            "upsert_item",
            lambda: self._write_store.upsert_item(self._to_document(item), partition_key),
            partition_key,
        )
        created = response.status_code == STATUS_CREATED
        logger.info(
            f"Upserted {self.model_name} '{item.id}' in partition '{partition_key}' "
            f"({'created' if created else 'replaced'})"
        )
        if created:
            self._count_cache.invalidate(partition_key)
        return self._from_document(response.document)

    async def delete_item(
        self,
        item_id: str,
        partition_key: Any,
        options: DeleteOptions = DeleteOptions.HARD_DELETE,
    ) -> None:
        """
        Delete a document.

        A soft delete marks the document deleted and replaces it; soft
        deleting a missing document is a no-op.
        """
        self._validator.validate_id_and_partition_key(item_id, partition_key, "Delete")
        if options == DeleteOptions.SOFT_DELETE:
            item = await self.get_item(item_id, partition_key, include_deleted=True)
            if item is None:
                logger.debug(f"Soft delete skipped: {self.model_name} '{item_id}' not found")
                return
            setattr(item, DELETED_FIELD, True)
            await self.replace_item(item)
        else:
            await self._call(
                "delete_item",
                lambda: self._write_store.delete_item(item_id, partition_key),
                partition_key,
            )
            logger.info(f"Deleted {self.model_name} '{item_id}' from partition '{partition_key}'")
        self._count_cache.invalidate(partition_key)

    async def patch_item(
        self, item_id: str, partition_key: Any, patch_spec: PatchSpecification
    ) -> T:
        self._validator.validate_id_and_partition_key(item_id, partition_key, "Patch")
        if patch_spec is None or not patch_spec.operations:
            raise ValidationError("Patch requires at least one operation", operation="Patch")
        protected = {"id", self.partition_key_property}
        for operation in patch_spec.operations:
            if operation.segments[:1] and operation.segments[0] in protected:
                raise ValidationError(
                    f"Patch cannot modify '{operation.segments[0]}'", operation="Patch"
                )
        response = await self._call(
            "patch_item",
            lambda: self._write_store.patch_item(item_id, partition_key, patch_spec.operations),
            partition_key,
        )
        if any(op.segments[:1] == (DELETED_FIELD,) for op in patch_spec.operations):
            self._count_cache.invalidate(partition_key)
        return self._from_document(response.document)

    # ------------------------------------------------------------------
    # Streaming queries
    # ------------------------------------------------------------------

    def get_all(self) -> AsyncIterator[T]:
        """Every non-deleted document across partitions."""
        return self._items("get_all", compiler.all_items_query())

    def get_all_in_partition(self, partition_key: Any) -> AsyncIterator[T]:
        self._validator.validate_partition_key(partition_key, "GetAll")
        query = compiler.partition_items_query(self.partition_key_property, partition_key)
        return self._items("get_all_in_partition", query, partition_key)

    def get_all_paged(self, limit: int, offset: int, count: int) -> AsyncIterator[T]:
        """
        Stream up to ``count`` non-deleted documents starting at ``offset``,
        fetched in pages of ``limit``.
        """
        self._validator.validate_paging_parameters(limit, "GetAllPaged")
        if offset < 0 or count < 0:
            raise ValidationError(
                f"Offset and count cannot be negative (offset={offset}, count={count})",
                operation="GetAllPaged",
            )
        query = compiler.offset_items_query(offset, count)
        return self._items("get_all_paged", query, page_size=limit)

    def query(self, specification: Specification, partition_key: Any = None) -> AsyncIterator[T]:
        query = compiler.to_query(specification)
        return self._items("query", query, partition_key)

    def bulk_read(
        self, specification: Specification, partition_key: Any, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[List[T]]:
        """Yield lists of at most ``batch_size`` documents, one backend page each."""
        self._validator.validate_partition_key(partition_key, "BulkRead")
        self._validator.validate_paging_parameters(batch_size, "BulkRead")
        query = compiler.to_query(specification)
        return self._nonempty_pages(self._stream("bulk_read", query, partition_key, batch_size))

    @staticmethod
    async def _nonempty_pages(pages: AsyncIterator[List[T]]) -> AsyncIterator[List[T]]:
        async for page in pages:
            if page:
                yield page

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    async def get_count(self, partition_key: Any) -> int:
        """Number of non-deleted documents in the partition."""
        self._validator.validate_partition_key(partition_key, "GetCount")
        query = compiler.count_query(self.partition_key_property, partition_key)
        return await self._scalar("get_count", query, partition_key)

    async def get_total_count(self, partition_key: Any) -> int:
        """Number of documents in the partition, soft-deleted included. Never cached."""
        self._validator.validate_partition_key(partition_key, "GetTotalCount")
        query = compiler.count_query(
            self.partition_key_property, partition_key, include_deleted=True
        )
        return await self._scalar("get_total_count", query, partition_key)

    async def get_count_with_cache(
        self, partition_key: Any, expiry_minutes: Optional[float] = None
    ) -> int:
        if expiry_minutes is None:
            expiry_minutes = self.count_cache_expiry_minutes
        self._validator.validate_partition_key(partition_key, "GetCountWithCache")
        self._validator.validate_cache_expiry(expiry_minutes)
        return await self._count_cache.get_count_with_cache(
            partition_key, expiry_minutes, lambda: self.get_count(partition_key)
        )

    def invalidate_count_cache(self, partition_key: Any) -> None:
        self._count_cache.invalidate(partition_key)
        logger.debug(f"Invalidated count cache for {self.model_name} partition '{partition_key}'")

    # ------------------------------------------------------------------
    # Paging
    # ------------------------------------------------------------------

    async def get_page(
        self,
        specification: Specification,
        partition_key: Any,
        page_size: int,
        continuation_token: Optional[str] = None,
    ) -> Page:
        """
        Return one page and the token for the next (None after the last).

        Raises:
            ValidationError: For an invalid page size or a token issued for a
                different query
        """
        self._validator.validate_partition_key(partition_key, "GetPage")
        self._validator.validate_paging_parameters(page_size, "GetPage")
        query = compiler.to_query(specification)
        page = await self._call(
            "get_page",
            lambda: self._read_store.query_page(
                query, partition_key, page_size, continuation_token or None
            ),
            partition_key,
        )
        items = [self._from_document(document) for document in page.items]
        logger.debug(
            f"{self.model_name}.get_page returned {len(items)} items for partition "
            f"'{partition_key}' ({page.request_charge} RUs)"
        )
        return Page(items, page.continuation_token)

    async def get_page_with_count(
        self,
        specification: Specification,
        partition_key: Any,
        page_size: int,
        continuation_token: Optional[str] = None,
    ) -> CountedPage:
        """Like get_page, plus the total match count on the first page only."""
        page = await self.get_page(specification, partition_key, page_size, continuation_token)
        total: Optional[int] = None
        if not continuation_token:
            count_query = compiler.to_count_query(specification)
            total = await self._scalar("get_page_count", count_query, partition_key)
        return CountedPage(page.items, page.continuation_token, total)

    # ------------------------------------------------------------------
    # Filtered queries
    # ------------------------------------------------------------------

    async def get_all_by_array_property(
        self,
        array_name: str,
        element_property_name: str,
        element_value: Any,
        include_deleted: bool = False,
    ) -> List[T]:
        """Documents whose ``array_name`` holds an element with the given property value."""
        self._validator.validate_array_property_query(
            array_name, element_property_name, element_value
        )
        query = compiler.array_property_query(
            array_name, element_property_name, element_value, include_deleted
        )
        return [item async for item in self._items("get_all_by_array_property", query)]

    async def get_all_by_property_comparison(
        self, filters: Sequence[PropertyFilter], include_deleted: bool = False
    ) -> List[T]:
        self._validator.validate_property_filters(filters)
        query = compiler.property_comparison_query(list(filters), include_deleted)
        return [item async for item in self._items("get_all_by_property_comparison", query)]

    # ------------------------------------------------------------------
    # Bulk writes
    # ------------------------------------------------------------------

    async def _bulk(
        self,
        items: Sequence[T],
        partition_key: Any,
        operation_type: BulkOperationType,
        batch_size: int,
        max_concurrency: int,
    ) -> BulkExecuteResult[T]:
        try:
            result = await self._bulk_executor.execute(
                items,
                partition_key,
                self.binding,
                operation_type,
                batch_size,
                max_concurrency,
                self._to_document,
            )
        except BackendOperationError as e:
            if e.bulk_result is not None and e.bulk_result.successful_items:
                self._count_cache.invalidate(partition_key)
            raise
        if result.successful_items:
            self._count_cache.invalidate(partition_key)
        return result

    async def bulk_upsert(
        self,
        items: Sequence[T],
        partition_key: Any,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> BulkExecuteResult[T]:
        return await self._bulk(
            items, partition_key, BulkOperationType.UPSERT, batch_size, max_concurrency
        )

    async def bulk_insert(
        self,
        items: Sequence[T],
        partition_key: Any,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> BulkExecuteResult[T]:
        return await self._bulk(
            items, partition_key, BulkOperationType.CREATE, batch_size, max_concurrency
        )
