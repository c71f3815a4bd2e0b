"""
DTO <-> DAO mapping.

ItemMapper defines the two conversions; the batch and streaming forms are
derived from them. DefaultItemMapper does a structural round-trip through a
plain dict tree using pydantic TypeAdapters, matching field names
case-insensitively.
"""

import dataclasses
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, AsyncIterable, AsyncIterator, Dict, Generic, Iterable, Iterator, Type, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import MappingError

logger = logging.getLogger(__name__)

TDto = TypeVar("TDto")
TDao = TypeVar("TDao")


class ItemMapper(ABC, Generic[TDto, TDao]):
    """
    Converts between a domain object and its stored document.

    Implementations must be pure: no I/O, no mutation of the source.
    """

    @abstractmethod
    def to_dao(self, dto: TDto) -> TDao:
        pass

    @abstractmethod
    def from_dao(self, dao: TDao) -> TDto:
        pass

    def from_daos(self, daos: Iterable[TDao]) -> Iterator[TDto]:
        """Lazily map each document; restartable iff ``daos`` is."""
        for dao in daos:
            yield self.from_dao(dao)

    async def from_daos_async(self, daos: AsyncIterable[TDao]) -> AsyncIterator[TDto]:
        """Map an async stream one element at a time."""
        async for dao in daos:
            yield self.from_dao(dao)


def _field_names(target_type: type) -> Dict[str, str]:
    if isinstance(target_type, type) and issubclass(target_type, BaseModel):
        names = list(target_type.model_fields)
    elif dataclasses.is_dataclass(target_type):
        names = [f.name for f in dataclasses.fields(target_type) if f.init]
    else:
        raise MappingError(
            f"Cannot map to {getattr(target_type, '__name__', target_type)}: "
            "target must be a dataclass or a pydantic model",
            target_type=getattr(target_type, "__name__", str(target_type)),
        )
    return {name.lower(): name for name in names}


class StructuralConverter:
    """One-directional converter between two structurally similar types."""

    def __init__(self, source_type: type, target_type: type):
        self.source_type = source_type
        self.target_type = target_type
        self._target_fields = _field_names(target_type)
        self._target_adapter = TypeAdapter(target_type)
        self._source_adapter = (
            None if issubclass(source_type, Mapping) else TypeAdapter(source_type)
        )

    def dump(self, source: Any) -> Dict[str, Any]:
        if isinstance(source, Mapping):
            return dict(source)
        if self._source_adapter is not None and isinstance(source, self.source_type):
            return self._source_adapter.dump_python(source)
        return TypeAdapter(type(source)).dump_python(source)

    def convert(self, source: Any) -> Any:
        source_name = type(source).__name__
        target_name = self.target_type.__name__
        if source is None:
            raise MappingError(
                f"Cannot map null to {target_name}",
                source_type=self.source_type.__name__,
                target_type=target_name,
            )
        try:
            tree = self.dump(source)
            data = {}
            for key, value in tree.items():
                name = self._target_fields.get(str(key).lower())
                if name is not None:
                    data[name] = value
            return self._target_adapter.validate_python(data)
        except (PydanticValidationError, TypeError, ValueError) as e:
            raise MappingError(
                f"Failed to map {source_name} to {target_name}: {e}",
                source_type=source_name,
                target_type=target_name,
            ) from e


class DefaultItemMapper(ItemMapper[TDto, TDao]):
    """
    Zero-configuration mapper for structurally similar DTO and DAO types.

    Storage-only fields on the DAO (audit fields) are dropped when the DTO
    does not declare them, and keep their defaults when mapping a DTO in.
    """

    def __init__(self, dto_type: Type[TDto], dao_type: Type[TDao]):
        self.dto_type = dto_type
        self.dao_type = dao_type
        self._to_dao = StructuralConverter(dto_type, dao_type)
        self._from_dao = StructuralConverter(dao_type, dto_type)

    def to_dao(self, dto: TDto) -> TDao:
        return self._to_dao.convert(dto)

    def from_dao(self, dao: TDao) -> TDto:
        return self._from_dao.convert(dao)
