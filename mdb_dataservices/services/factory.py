"""
Service factory.

DataServiceFactory turns a DataServicesConfig into repositories and
read/write services. Each registered DAO type gets one repository, built
lazily from the store of its read profile and the store of its write
profile.
"""

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type

from ..audit.audit_fields import AuditFieldManager
from ..audit.user_context import UserContext
from ..backends.base import DocumentStore
from ..backends.connection import MongoClientPool
from ..backends.mongo import MongoDocumentStore
from ..config import ConnectionProfile, DataServicesConfig, ModelConfiguration
from ..exceptions import ConfigurationError
from ..mapping.mapper import ItemMapper
from ..mapping.registry import MapperRegistry
from ..observability.metrics import MetricsCollector
from ..repositories.document_repository import DocumentRepository
from ..validation.registry import ModelBinding, ModelRegistry
from ..validation.validator import DocumentValidator
from .read_service import DataReadService
from .write_service import DataWriteService

logger = logging.getLogger(__name__)

StoreProvider = Callable[[ConnectionProfile, ModelConfiguration], DocumentStore]
"""Builds the store for one model on one connection profile."""


class DataServiceFactory:
    """
    Builds and owns repositories and services for registered types.

    Stores come from ``store_providers`` keyed by profile name; profiles
    without a provider get a MongoDocumentStore on a pooled motor client.

    Example:
        factory = DataServiceFactory(config, metrics=MetricsCollector())
        factory.register(ProductDto, ProductDocument)
        reader = factory.read_service(ProductDto)
        writer = factory.write_service(ProductDto)

    Args:
        config: Validated on construction
        store_providers: Optional store builders per profile name
        user_context: Actor source for audit fields
        metrics: Optional metrics sink shared by every repository
        validator: Input checks shared by every repository
        client_pool: Motor client pool for Mongo-backed profiles
    """

    def __init__(
        self,
        config: DataServicesConfig,
        store_providers: Optional[Mapping[str, StoreProvider]] = None,
        user_context: Optional[UserContext] = None,
        metrics: Optional[MetricsCollector] = None,
        validator: Optional[DocumentValidator] = None,
        client_pool: Optional[MongoClientPool] = None,
    ):
        config.validate()
        self._config = config
        self._store_providers: Dict[str, StoreProvider] = dict(store_providers or {})
        self._metrics = metrics
        self._validator = validator or DocumentValidator()
        self._audit_manager = AuditFieldManager(user_context)
        self._client_pool = client_pool or MongoClientPool()
        self._models = ModelRegistry(self._validator)
        self._mappers = MapperRegistry()
        self._dao_for_dto: Dict[type, type] = {}
        self._stores: Dict[Tuple[str, str], DocumentStore] = {}
        self._repositories: Dict[type, DocumentRepository[Any]] = {}
        self._lock = threading.RLock()

        unknown = set(self._store_providers) - {p.name for p in config.profiles}
        if unknown:
            raise ConfigurationError(
                f"Store providers given for unknown profiles: {', '.join(sorted(unknown))}",
                config_key="store_providers",
                config_value=sorted(unknown),
            )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        dto_type: Type[Any],
        dao_type: Type[Any],
        mapper: Optional[ItemMapper[Any, Any]] = None,
    ) -> ModelBinding:
        """
        Register a DTO/DAO pair.

        The DAO type must have a model configuration named after it.

        Raises:
            ConfigurationError: If the DAO has no configuration, is not a
                valid stored type, or the mapper is not an ItemMapper
        """
        model_config = self._config.model(dao_type.__name__)
        binding = self._models.register(dao_type, model_config.partition_key)
        self._mappers.register(dto_type, dao_type, mapper)
        with self._lock:
            previous = self._dao_for_dto.get(dto_type)
            if previous is not None and previous is not dao_type:
                raise ConfigurationError(
                    f"{dto_type.__name__} is already registered with {previous.__name__}",
                    config_key="dto_type",
                    config_value=dto_type.__name__,
                )
            self._dao_for_dto[dto_type] = dao_type
        logger.info(
            f"Registered {dto_type.__name__} -> {dao_type.__name__} "
            f"({model_config.database_name}.{model_config.collection_name}, "
            f"pk={model_config.partition_key})"
        )
        return binding

    # ------------------------------------------------------------------
    # Stores and repositories
    # ------------------------------------------------------------------

    def _mongo_store(
        self, profile: ConnectionProfile, model_config: ModelConfiguration
    ) -> DocumentStore:
        client = self._client_pool.get(profile)
        collection = client[model_config.database_name][model_config.collection_name]
        return MongoDocumentStore(collection, model_config.partition_key)

    def _store(self, profile_name: str, model_config: ModelConfiguration) -> DocumentStore:
        key = (profile_name, model_config.model_name)
        with self._lock:
            store = self._stores.get(key)
            if store is None:
                profile = self._config.profile(profile_name)
                provider = self._store_providers.get(profile_name, self._mongo_store)
                store = provider(profile, model_config)
                self._stores[key] = store
                logger.debug(
                    f"Created {type(store).__name__} for {model_config.model_name} "
                    f"on profile '{profile_name}'"
                )
            return store

    def repository(self, dao_type: Type[Any]) -> DocumentRepository[Any]:
        """Return the repository for a registered DAO type, creating it on first use."""
        with self._lock:
            repository = self._repositories.get(dao_type)
            if repository is not None:
                return repository

            binding = self._models.get(dao_type)
            model_config = self._config.model(binding.model_name)
            repository = DocumentRepository(
                binding,
                read_store=self._store(model_config.read_profile, model_config),
                write_store=self._store(model_config.write_profile, model_config),
                validator=self._validator,
                audit_manager=self._audit_manager,
                metrics=self._metrics,
                count_cache_expiry_minutes=self._config.count_cache_expiry_minutes,
            )
            self._repositories[dao_type] = repository
            return repository

    def _resolve(self, dto_type: Type[Any]) -> Tuple[DocumentRepository[Any], ItemMapper[Any, Any]]:
        dao_type = self._dao_for_dto.get(dto_type)
        if dao_type is None:
            raise ConfigurationError(
                f"{getattr(dto_type, '__name__', dto_type)} has not been registered",
                config_key="dto_type",
            )
        return self.repository(dao_type), self._mappers.get(dto_type, dao_type)

    def read_service(self, dto_type: Type[Any]) -> DataReadService[Any, Any]:
        repository, mapper = self._resolve(dto_type)
        return DataReadService(repository, mapper)

    def write_service(self, dto_type: Type[Any]) -> DataWriteService[Any, Any]:
        repository, mapper = self._resolve(dto_type)
        return DataWriteService(repository, mapper)

    async def ensure_indexes(self) -> None:
        """
        Create partition-key indexes for every registered model.

        Builds any repository not yet created, then asks each MongoDB store
        to create its index. Other stores are skipped.
        """
        with self._lock:
            dao_types = list(dict.fromkeys(self._dao_for_dto.values()))
        for dao_type in dao_types:
            self.repository(dao_type)
        with self._lock:
            stores = [s for s in self._stores.values() if isinstance(s, MongoDocumentStore)]
        for store in stores:
            await store.ensure_indexes()
        logger.info(f"Ensured indexes for {len(stores)} MongoDB stores")

    async def close(self) -> None:
        """Close every store this factory created and its motor clients."""
        with self._lock:
            stores = list(self._stores.values())
            self._stores.clear()
            self._repositories.clear()
        for store in stores:
            await store.close()
        self._client_pool.close()
        logger.info(f"Closed data service factory ({len(stores)} stores)")
