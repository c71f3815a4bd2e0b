"""
Unit tests for BulkExecutor.

Tests the bulk pipeline:
- Parameter validation before any store call
- In-band rejection of invalid items
- Bounded batch concurrency
- Failure classification and total dispatch failure
- Cancellation
"""

import asyncio
from dataclasses import asdict

import pytest

from conftest import FIXED_NOW, make_product
from mdb_dataservices.backends import InMemoryDocumentStore
from mdb_dataservices.exceptions import BackendOperationError, ValidationError
from mdb_dataservices.models import BulkOperationType
from mdb_dataservices.repositories import BulkExecutor


def to_document(item):
    return asdict(item)


def products(count, prefix="p", category="electronics"):
    return [make_product(f"{prefix}{i}", category=category) for i in range(count)]


@pytest.fixture
def executor_factory(validator, audit_manager, metrics):
    def build(store):
        return BulkExecutor(store, validator, audit_manager, metrics)

    return build


async def run(executor, items, binding, operation_type=BulkOperationType.UPSERT, **kwargs):
    kwargs.setdefault("batch_size", 10)
    kwargs.setdefault("max_concurrency", 5)
    return await executor.execute(
        items,
        "electronics",
        binding,
        operation_type,
        to_document=to_document,
        **kwargs,
    )


@pytest.mark.unit
class TestParameterValidation:
    """Test that invalid calls never reach the store."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("batch_size, max_concurrency", [(0, 5), (101, 5), (10, 0), (10, 51)])
    async def test_invalid_parameters(
        self, executor_factory, memory_store, product_binding, batch_size, max_concurrency
    ):
        executor = executor_factory(memory_store)
        with pytest.raises(ValidationError):
            await run(
                executor,
                products(3),
                product_binding,
                batch_size=batch_size,
                max_concurrency=max_concurrency,
            )
        assert not memory_store.operation_counts

    @pytest.mark.asyncio
    async def test_null_items(self, executor_factory, memory_store, product_binding):
        with pytest.raises(ValidationError, match="Items cannot be null"):
            await run(executor_factory(memory_store), None, product_binding)

    @pytest.mark.asyncio
    async def test_empty_partition_key(self, executor_factory, memory_store, product_binding):
        executor = executor_factory(memory_store)
        with pytest.raises(ValidationError):
            await executor.execute(
                products(1), "", product_binding, BulkOperationType.UPSERT, 10, 5, to_document
            )

    @pytest.mark.asyncio
    async def test_empty_items(self, executor_factory, memory_store, product_binding):
        result = await run(executor_factory(memory_store), [], product_binding)
        assert result.total_items == 0
        assert result.is_success
        assert not memory_store.operation_counts


@pytest.mark.unit
class TestExecution:
    """Test batching, stamping and aggregation."""

    @pytest.mark.asyncio
    async def test_all_items_written(self, executor_factory, memory_store, product_binding):
        items = products(25)

        result = await run(executor_factory(memory_store), items, product_binding)

        assert len(result.successful_items) == 25
        assert result.success_rate == 100.0
        assert result.total_request_units == 25.0
        assert memory_store.operation_counts["execute_batch"] == 3
        assert len(memory_store) == 25

    @pytest.mark.asyncio
    async def test_items_are_audit_stamped(self, executor_factory, memory_store, product_binding):
        items = products(2)
        await run(executor_factory(memory_store), items, product_binding, BulkOperationType.CREATE)

        stored = await memory_store.read_item("p0", "electronics")
        assert stored.document["created_on_utc"] == FIXED_NOW
        assert stored.document["created_by"] == "tester"

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, executor_factory, product_binding):
        store = InMemoryDocumentStore("category", latency=0.01)

        result = await run(
            executor_factory(store), products(40), product_binding, batch_size=5, max_concurrency=3
        )

        assert result.is_success
        assert store.operation_counts["execute_batch"] == 8
        assert 1 < store.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_malformed_item_rejected_in_band(
        self, executor_factory, memory_store, product_binding
    ):
        items = products(4)
        items[2] = make_product("stray", category="books")

        result = await run(executor_factory(memory_store), items, product_binding)

        assert len(result.successful_items) == 3
        assert len(result.failed_items) == 1
        failure = result.failed_items[0]
        assert failure.item is items[2]
        assert failure.status_code == 400
        assert "partition key mismatch" in failure.error_message
        assert not failure.is_retryable
        assert items[2].created_on_utc is None

    @pytest.mark.asyncio
    async def test_failure_classification(self, executor_factory, memory_store, product_binding):
        memory_store.fail_item("p1", 429)
        memory_store.fail_item("p2", 409)
        items = products(4)

        result = await run(executor_factory(memory_store), items, product_binding)

        statuses = {f.item.id: f.status_code for f in result.failed_items}
        assert statuses == {"p1": 429, "p2": 409}
        assert [item.id for item in result.retryable_items] == ["p1"]
        assert result.success_rate == 50.0

    @pytest.mark.asyncio
    async def test_insert_conflicts_reported(self, executor_factory, memory_store, product_binding):
        executor = executor_factory(memory_store)
        await run(executor, products(2), product_binding, BulkOperationType.CREATE)

        result = await run(executor, products(3), product_binding, BulkOperationType.CREATE)

        assert [f.status_code for f in result.failed_items] == [409, 409]
        assert [item.id for item in result.successful_items] == ["p2"]

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, executor_factory, memory_store, product_binding, metrics):
        await run(executor_factory(memory_store), products(3), product_binding)

        assert metrics.get_operation_count("repository.bulk_execute") == 1
        assert metrics.get_request_charge("repository.bulk_execute") == 3.0


@pytest.mark.unit
class TestDispatchFailures:
    """Test whole-batch failures."""

    @pytest.mark.asyncio
    async def test_total_dispatch_failure_raises(
        self, executor_factory, memory_store, product_binding
    ):
        memory_store.available = False

        with pytest.raises(BackendOperationError) as exc_info:
            await run(executor_factory(memory_store), products(12), product_binding, batch_size=5)

        partial = exc_info.value.bulk_result
        assert partial is not None
        assert len(partial.failed_items) == 12
        assert not partial.successful_items
        assert all(f.status_code is None for f in partial.failed_items)

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_batch(
        self, executor_factory, memory_store, product_binding
    ):
        calls = []

        async def flaky(partition_key, operations):
            calls.append(len(operations))
            if len(calls) == 1:
                raise ValueError("boom")
            return await InMemoryDocumentStore.execute_batch(memory_store, partition_key, operations)

        memory_store.execute_batch = flaky

        result = await run(
            executor_factory(memory_store), products(4), product_binding,
            batch_size=2, max_concurrency=1,
        )

        assert len(result.successful_items) == 2
        assert len(result.failed_items) == 2
        assert all(f.status_code is None for f in result.failed_items)
        assert isinstance(result.failed_items[0].exception, ValueError)

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, executor_factory, product_binding):
        store = InMemoryDocumentStore("category", latency=0.5)
        executor = executor_factory(store)

        task = asyncio.create_task(run(executor, products(10), product_binding, batch_size=2))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert store.in_flight == 0
