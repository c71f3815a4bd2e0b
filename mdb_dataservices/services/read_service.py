"""
DTO-level read service.
"""

import logging
from typing import Any, AsyncIterator, Generic, List, Optional, Sequence, TypeVar

from ..constants import DEFAULT_BATCH_SIZE
from ..exceptions import MappingError
from ..mapping.mapper import ItemMapper
from ..models.filters import PropertyFilter, Specification
from ..models.results import CountedPage, Page
from ..repositories.document_repository import DocumentRepository

logger = logging.getLogger(__name__)

TDto = TypeVar("TDto")
TDao = TypeVar("TDao")


class DataReadService(Generic[TDto, TDao]):
    """
    Read operations that return domain objects.

    Each call delegates to the repository and maps results through the
    registered ItemMapper. Streams map one document at a time.
    """

    def __init__(self, repository: DocumentRepository[TDao], mapper: ItemMapper[TDto, TDao]):
        self._repository = repository
        self._mapper = mapper

    @property
    def repository(self) -> DocumentRepository[TDao]:
        return self._repository

    def _map_optional(self, dao: Optional[TDao]) -> Optional[TDto]:
        return None if dao is None else self._mapper.from_dao(dao)

    # ------------------------------------------------------------------
    # Point reads and filtered queries
    # ------------------------------------------------------------------

    async def get_by_id(
        self, item_id: str, partition_key: Any, include_deleted: bool = False
    ) -> Optional[TDto]:
        dao = await self._repository.get_item(item_id, partition_key, include_deleted)
        return self._map_optional(dao)

    async def get_all_by_array_property(
        self,
        array_name: str,
        element_property_name: str,
        element_value: Any,
        include_deleted: bool = False,
    ) -> List[TDto]:
        daos = await self._repository.get_all_by_array_property(
            array_name, element_property_name, element_value, include_deleted
        )
        return list(self._mapper.from_daos(daos))

    async def get_all_by_property_comparison(
        self, filters: Sequence[PropertyFilter], include_deleted: bool = False
    ) -> List[TDto]:
        daos = await self._repository.get_all_by_property_comparison(filters, include_deleted)
        return list(self._mapper.from_daos(daos))

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def get_all(self) -> AsyncIterator[TDto]:
        return self._mapper.from_daos_async(self._repository.get_all())

    def get_all_in_partition(self, partition_key: Any) -> AsyncIterator[TDto]:
        return self._mapper.from_daos_async(self._repository.get_all_in_partition(partition_key))

    def get_all_paged(self, limit: int, offset: int, count: int) -> AsyncIterator[TDto]:
        return self._mapper.from_daos_async(self._repository.get_all_paged(limit, offset, count))

    def query(self, specification: Specification, partition_key: Any = None) -> AsyncIterator[TDto]:
        return self._mapper.from_daos_async(self._repository.query(specification, partition_key))

    def bulk_read(
        self, specification: Specification, partition_key: Any, batch_size: int = DEFAULT_BATCH_SIZE
    ) -> AsyncIterator[List[TDto]]:
        """
        Stream batches of mapped items.

        Each batch is mapped as a unit; if any item in it fails, the call
        aborts with a MappingError naming the batch.
        """
        return self._map_batches(
            self._repository.bulk_read(specification, partition_key, batch_size)
        )

    async def _map_batches(self, batches: AsyncIterator[List[TDao]]) -> AsyncIterator[List[TDto]]:
        batch_index = 0
        async for batch in batches:
            try:
                mapped = list(self._mapper.from_daos(batch))
            except MappingError as e:
                logger.error(f"Bulk read batch {batch_index} failed to map: {e}")
                raise MappingError(
                    f"Failed to map bulk read batch {batch_index} ({len(batch)} items): {e.message}",
                    source_type=e.source_type,
                    target_type=e.target_type,
                    context={"batch_index": batch_index},
                ) from e
            yield mapped
            batch_index += 1

    # ------------------------------------------------------------------
    # Counts and paging
    # ------------------------------------------------------------------

    async def get_count(self, partition_key: Any) -> int:
        return await self._repository.get_count(partition_key)

    async def get_total_count(self, partition_key: Any) -> int:
        return await self._repository.get_total_count(partition_key)

    async def get_count_with_cache(
        self, partition_key: Any, expiry_minutes: Optional[float] = None
    ) -> int:
        return await self._repository.get_count_with_cache(partition_key, expiry_minutes)

    async def get_page(
        self,
        specification: Specification,
        partition_key: Any,
        page_size: int,
        continuation_token: Optional[str] = None,
    ) -> Page:
        page = await self._repository.get_page(
            specification, partition_key, page_size, continuation_token
        )
        return Page(list(self._mapper.from_daos(page.items)), page.continuation_token)

    async def get_page_with_count(
        self,
        specification: Specification,
        partition_key: Any,
        page_size: int,
        continuation_token: Optional[str] = None,
    ) -> CountedPage:
        page = await self._repository.get_page_with_count(
            specification, partition_key, page_size, continuation_token
        )
        return CountedPage(
            list(self._mapper.from_daos(page.items)), page.continuation_token, page.total_count
        )
