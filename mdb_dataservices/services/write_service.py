"""
DTO-level write service.
"""

import logging
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from ..constants import DEFAULT_BATCH_SIZE, DEFAULT_MAX_CONCURRENCY
from ..exceptions import ValidationError
from ..mapping.mapper import ItemMapper
from ..models.enums import DeleteOptions, OperationKind
from ..models.filters import PatchSpecification
from ..models.results import BulkExecuteResult
from ..repositories.document_repository import DocumentRepository

logger = logging.getLogger(__name__)

TDto = TypeVar("TDto")
TDao = TypeVar("TDao")


class DataWriteService(Generic[TDto, TDao]):
    """
    Write operations that accept domain objects.

    DTOs are mapped to documents, written through the repository and the
    stored result mapped back. Bulk results keep the stored documents as
    their items.
    """

    def __init__(self, repository: DocumentRepository[TDao], mapper: ItemMapper[TDto, TDao]):
        self._repository = repository
        self._mapper = mapper

    @property
    def repository(self) -> DocumentRepository[TDao]:
        return self._repository

    def _require(self, dto: Optional[TDto], operation: str) -> None:
        if dto is None:
            raise ValidationError(f"{operation} requires a document", operation=operation)

    async def create(self, dto: TDto) -> TDto:
        self._require(dto, "Create")
        created = await self._repository.create_item(self._mapper.to_dao(dto))
        return self._mapper.from_dao(created)

    async def replace(self, dto: TDto) -> TDto:
        self._require(dto, "Replace")
        replaced = await self._repository.replace_item(self._mapper.to_dao(dto))
        return self._mapper.from_dao(replaced)

    async def upsert(self, dto: TDto, operation_kind: Optional[OperationKind] = None) -> TDto:
        self._require(dto, "Upsert")
        upserted = await self._repository.upsert_item(self._mapper.to_dao(dto), operation_kind)
        return self._mapper.from_dao(upserted)

    async def patch(self, item_id: str, partition_key: Any, patch_spec: PatchSpecification) -> TDto:
        patched = await self._repository.patch_item(item_id, partition_key, patch_spec)
        return self._mapper.from_dao(patched)

    async def delete(
        self,
        item_id: str,
        partition_key: Any,
        options: DeleteOptions = DeleteOptions.HARD_DELETE,
    ) -> None:
        await self._repository.delete_item(item_id, partition_key, options)

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    def _prepare_bulk(
        self,
        dtos: Iterable[TDto],
        partition_key_selector: Callable[[TDto], Any],
        configure_item: Optional[Callable[[TDto], None]],
        operation: str,
    ) -> tuple:
        if dtos is None:
            raise ValidationError("Items cannot be null", operation=operation)
        if partition_key_selector is None:
            raise ValidationError("A partition key selector is required", operation=operation)
        dto_list = list(dtos)
        if not dto_list:
            return None, []

        partition_keys = []
        for dto in dto_list:
            key = partition_key_selector(dto)
            if key not in partition_keys:
                partition_keys.append(key)
        if len(partition_keys) != 1:
            raise ValidationError(
                f"All items in a bulk operation must belong to the same partition. "
                f"Found {len(partition_keys)} distinct partition keys: "
                f"{', '.join(str(k) for k in partition_keys)}",
                operation=operation,
            )

        daos = []
        for dto in dto_list:
            if configure_item is not None:
                configure_item(dto)
            daos.append(self._mapper.to_dao(dto))
        return partition_keys[0], daos

    async def bulk_upsert(
        self,
        dtos: Iterable[TDto],
        partition_key_selector: Callable[[TDto], Any],
        configure_item: Optional[Callable[[TDto], None]] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> BulkExecuteResult[TDao]:
        partition_key, daos = self._prepare_bulk(
            dtos, partition_key_selector, configure_item, "BulkUpsert"
        )
        if not daos:
            logger.debug("bulk_upsert called with an empty collection, skipping")
            return BulkExecuteResult()
        return await self._repository.bulk_upsert(daos, partition_key, batch_size, max_concurrency)

    async def bulk_insert(
        self,
        dtos: Iterable[TDto],
        partition_key_selector: Callable[[TDto], Any],
        configure_item: Optional[Callable[[TDto], None]] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> BulkExecuteResult[TDao]:
        partition_key, daos = self._prepare_bulk(
            dtos, partition_key_selector, configure_item, "BulkInsert"
        )
        if not daos:
            logger.debug("bulk_insert called with an empty collection, skipping")
            return BulkExecuteResult()
        return await self._repository.bulk_insert(daos, partition_key, batch_size, max_concurrency)
