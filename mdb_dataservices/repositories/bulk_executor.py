"""
Concurrent bulk write orchestration.

BulkExecutor splits a single-partition item set into batches, dispatches
them with bounded concurrency and aggregates per-item outcomes into a
BulkExecuteResult. Nothing is retried here; failures are classified so
the caller can decide.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..audit.audit_fields import AuditFieldManager
from ..backends.base import BatchOperation, DocumentStore, DocumentStoreError
from ..constants import (
    CREATE_OPERATION,
    STATUS_BAD_REQUEST,
    STATUS_INTERNAL_SERVER_ERROR,
    STATUS_SERVICE_UNAVAILABLE,
)
from ..exceptions import BackendOperationError, ValidationError
from ..models.enums import BulkOperationType
from ..models.results import BatchExecuteResult, BulkExecuteResult, BulkItemFailure
from ..observability.logging import get_logger, reset_operation_context, set_operation_context
from ..observability.metrics import MetricsCollector
from ..validation.registry import ModelBinding
from ..validation.validator import DocumentValidator

logger = get_logger(__name__)

_CONNECTIVITY_STATUSES = (None, STATUS_SERVICE_UNAVAILABLE)


def _batches(items: Sequence[Any], batch_size: int) -> List[List[Any]]:
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


def _is_dispatch_failure(batch: BatchExecuteResult) -> bool:
    return (
        batch.exception is not None
        and getattr(batch.exception, "status_code", None) in _CONNECTIVITY_STATUSES
    )


class BulkExecutor:
    """
    Runs bulk create/upsert calls against a DocumentStore.

    Stages per call: validate, stamp audit fields, batch, dispatch with at
    most ``max_concurrency`` batches in flight, aggregate.

    Items that fail validation are reported in-band with status 400 and
    never reach the store. A batch that raises fails every item in it
    with the exception's status. When every dispatched batch failed for
    connectivity reasons and nothing succeeded, BackendOperationError is
    raised with the partial result attached.

    Args:
        store: Write store
        validator: Parameter and document checks
        audit_manager: Audit stamping
        metrics: Optional metrics sink
    """

    def __init__(
        self,
        store: DocumentStore,
        validator: DocumentValidator,
        audit_manager: AuditFieldManager,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._store = store
        self._validator = validator
        self._audit_manager = audit_manager
        self._metrics = metrics

    def _reject(
        self,
        items: Sequence[Any],
        partition_key: Any,
        binding: ModelBinding,
    ) -> Tuple[List[Any], Tuple[BulkItemFailure, ...]]:
        # Audit stamping supplies created_on_utc, so existing-document
        # checks do not apply before it runs
        violations = self._validator.collect_bulk_item_errors(
            items, partition_key, binding.get_partition_key, CREATE_OPERATION
        )
        accepted = [item for index, item in enumerate(items) if index not in violations]
        rejected = tuple(
            BulkItemFailure(
                item=items[index],
                status_code=STATUS_BAD_REQUEST,
                error_message="; ".join(errors),
            )
            for index, errors in violations.items()
        )
        if rejected:
            logger.warning(
                f"Bulk {binding.model_name}: rejected {len(rejected)} of {len(items)} items "
                f"for partition '{partition_key}' during validation"
            )
        return accepted, rejected

    async def _run_batch(
        self,
        batch_index: int,
        batch: List[Any],
        partition_key: Any,
        operation_type: BulkOperationType,
        to_document: Callable[[Any], Dict[str, Any]],
        semaphore: asyncio.Semaphore,
    ) -> BatchExecuteResult:
        async with semaphore:
            try:
                operations = [BatchOperation(operation_type, to_document(item)) for item in batch]
                response = await self._store.execute_batch(partition_key, operations)
            except DocumentStoreError as e:
                logger.error(
                    f"Batch {batch_index}: store error for {len(batch)} items: {e}", exc_info=True
                )
                failures = tuple(
                    BulkItemFailure(item, e.status_code, e.message, e) for item in batch
                )
                return BatchExecuteResult(
                    batch_index, failed_items=failures, request_units=e.request_charge, exception=e
                )
            except Exception as e:  # noqa: BLE001
                logger.error(f"Batch {batch_index}: exception during execution: {e}", exc_info=True)
                failures = tuple(BulkItemFailure(item, None, str(e), e) for item in batch)
                return BatchExecuteResult(batch_index, failed_items=failures, exception=e)

        successful: List[Any] = []
        failed: List[BulkItemFailure] = []
        for position, item in enumerate(batch):
            if position >= len(response.results):
                failed.append(
                    BulkItemFailure(
                        item, STATUS_INTERNAL_SERVER_ERROR, "Store returned no result for item"
                    )
                )
                continue
            result = response.results[position]
            if result.is_success:
                successful.append(item)
            else:
                failed.append(
                    BulkItemFailure(
                        item,
                        result.status_code,
                        result.error_message or f"Write failed with status {result.status_code}",
                    )
                )
        logger.debug(
            f"Batch {batch_index}: {len(successful)} succeeded, {len(failed)} failed, "
            f"{response.request_charge} RUs consumed"
        )
        return BatchExecuteResult(
            batch_index,
            successful_items=tuple(successful),
            failed_items=tuple(failed),
            request_units=response.request_charge,
        )

    async def execute(
        self,
        items: Sequence[Any],
        partition_key: Any,
        binding: ModelBinding,
        operation_type: BulkOperationType,
        batch_size: int,
        max_concurrency: int,
        to_document: Callable[[Any], Dict[str, Any]],
    ) -> BulkExecuteResult:
        """
        Execute one bulk call.

        Raises:
            ValidationError: For invalid parameters, a None item set or an
                empty partition key
            BackendOperationError: On total dispatch failure
        """
        operation_name = "BulkInsert" if operation_type == BulkOperationType.CREATE else "BulkUpsert"
        self._validator.validate_bulk_operation_parameters(batch_size, max_concurrency)
        if items is None:
            raise ValidationError("Items cannot be null", operation=operation_name)
        self._validator.validate_partition_key(partition_key, operation_name)

        items = list(items)
        if not items:
            return BulkExecuteResult()

        context_token = set_operation_context(
            binding.model_name, partition_key, operation=operation_name
        )
        try:
            return await self._dispatch(
                items,
                partition_key,
                binding,
                operation_type,
                operation_name,
                batch_size,
                max_concurrency,
                to_document,
            )
        finally:
            reset_operation_context(context_token)

    async def _dispatch(
        self,
        items: List[Any],
        partition_key: Any,
        binding: ModelBinding,
        operation_type: BulkOperationType,
        operation_name: str,
        batch_size: int,
        max_concurrency: int,
        to_document: Callable[[Any], Dict[str, Any]],
    ) -> BulkExecuteResult:
        accepted, rejected = self._reject(items, partition_key, binding)
        self._audit_manager.set_bulk_audit_fields(
            accepted, is_create_operation=operation_type == BulkOperationType.CREATE
        )

        batches = _batches(accepted, batch_size)
        semaphore = asyncio.Semaphore(max_concurrency)
        start_time = time.perf_counter()
        tasks = [
            asyncio.create_task(
                self._run_batch(index, batch, partition_key, operation_type, to_document, semaphore)
            )
            for index, batch in enumerate(batches)
        ]
        try:
            batch_results = list(await asyncio.gather(*tasks))
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning(
                f"Bulk {binding.model_name} cancelled with {len(tasks)} batches outstanding"
            )
            raise

        result = BulkExecuteResult.aggregate(batch_results, rejected)
        duration_ms = (time.perf_counter() - start_time) * 1000
        if self._metrics:
            self._metrics.record_request_charge(
                binding.model_name, "repository.bulk_execute", result.total_request_units
            )
            self._metrics.record_operation(
                "repository.bulk_execute",
                duration_ms,
                success=result.is_success,
                model=binding.model_name,
            )

        if batch_results and not result.successful_items and all(
            _is_dispatch_failure(batch) for batch in batch_results
        ):
            logger.error(
                f"Bulk {binding.model_name}: all {len(batch_results)} batches failed to dispatch "
                f"for partition '{partition_key}'"
            )
            raise BackendOperationError(
                f"{operation_name} could not reach the document store: "
                f"{len(result.failed_items)} items failed",
                operation=operation_name,
                status_code=getattr(batch_results[0].exception, "status_code", None),
                bulk_result=result,
            ) from batch_results[0].exception

        log = logger.info if result.is_success else logger.warning
        log(
            f"{operation_name} {binding.model_name}: {len(result.successful_items)} succeeded, "
            f"{len(result.failed_items)} failed ({len(result.retryable_items)} retryable), "
            f"{result.total_request_units:.2f} RUs in {len(batches)} batches "
            f"({duration_ms:.2f}ms)"
        )
        return result
