"""
Type-keyed mapper registry.

One mapper per (DTO type, DAO type) pair, chosen at registration time.
"""

import logging
import threading
from typing import Any, Dict, Optional, Tuple, Type

from ..exceptions import ConfigurationError
from .mapper import DefaultItemMapper, ItemMapper

logger = logging.getLogger(__name__)


class MapperRegistry:
    """Holds the mapper for each registered DTO/DAO pair."""

    def __init__(self):
        self._mappers: Dict[Tuple[type, type], ItemMapper[Any, Any]] = {}
        self._lock = threading.Lock()

    def register(
        self,
        dto_type: Type[Any],
        dao_type: Type[Any],
        mapper: Optional[ItemMapper[Any, Any]] = None,
    ) -> ItemMapper[Any, Any]:
        """Register ``mapper`` (or a DefaultItemMapper) for the pair and return it."""
        if mapper is None:
            mapper = DefaultItemMapper(dto_type, dao_type)
        elif not isinstance(mapper, ItemMapper):
            raise ConfigurationError(
                f"Mapper for {dto_type.__name__}/{dao_type.__name__} must be an ItemMapper, "
                f"got {type(mapper).__name__}",
                config_key="mapper",
            )
        with self._lock:
            self._mappers[(dto_type, dao_type)] = mapper
        logger.debug(
            f"Registered {type(mapper).__name__} for {dto_type.__name__} <-> {dao_type.__name__}"
        )
        return mapper

    def get(self, dto_type: Type[Any], dao_type: Type[Any]) -> ItemMapper[Any, Any]:
        mapper = self._mappers.get((dto_type, dao_type))
        if mapper is None:
            raise ConfigurationError(
                f"No mapper registered for {dto_type.__name__} <-> {dao_type.__name__}",
                config_key="mapper",
            )
        return mapper

    def resolve(self, dto_type: Type[Any], dao_type: Type[Any]) -> ItemMapper[Any, Any]:
        """Return the registered mapper, registering the default one if needed."""
        mapper = self._mappers.get((dto_type, dao_type))
        if mapper is None:
            mapper = self.register(dto_type, dao_type)
        return mapper
