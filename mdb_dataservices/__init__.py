"""
MDB_DATASERVICES - Typed data services for partitioned document stores

Repository engine with streaming queries, continuation-token paging,
concurrent bulk writes, count caching, audit stamping and DTO/DAO mapping
on top of MongoDB.
"""

# Audit
from .audit import AuditFieldManager, DelegateUserContext, SystemUserContext, UserContext
# Backends
from .backends import (DocumentStore, InMemoryDocumentStore, MongoClientPool,
                       MongoDocumentStore)
# Configuration
from .config import ConnectionProfile, DataServicesConfig, ModelConfiguration
# Errors
from .exceptions import (BackendOperationError, ConfigurationError, DataServiceError,
                         MappingError, UnsupportedOperatorError,
                         UnsupportedSpecificationError, ValidationError)
# Mapping
from .mapping import DefaultItemMapper, ItemMapper, MapperRegistry
# Models
from .models import (BulkExecuteResult, BulkItemFailure, BulkOperationType,
                     ComparisonOperator, CountedPage, DeleteOptions, Document,
                     OperationKind, Page, PatchOperation, PatchOperationType,
                     PatchSpecification, PropertyFilter, SqlSpecification)
# Observability
from .observability import MetricsCollector
# Repositories and services
from .repositories import DocumentRepository
from .services import DataReadService, DataServiceFactory, DataWriteService
# Validation
from .validation import DocumentValidator, ModelRegistry

__version__ = "0.1.0"

__all__ = [
    # Services
    "DataServiceFactory",
    "DataReadService",
    "DataWriteService",
    "DocumentRepository",
    # Configuration
    "DataServicesConfig",
    "ConnectionProfile",
    "ModelConfiguration",
    # Backends
    "DocumentStore",
    "MongoDocumentStore",
    "InMemoryDocumentStore",
    "MongoClientPool",
    # Models
    "Document",
    "PropertyFilter",
    "ComparisonOperator",
    "SqlSpecification",
    "PatchOperation",
    "PatchOperationType",
    "PatchSpecification",
    "BulkOperationType",
    "OperationKind",
    "DeleteOptions",
    "BulkExecuteResult",
    "BulkItemFailure",
    "Page",
    "CountedPage",
    # Mapping
    "ItemMapper",
    "DefaultItemMapper",
    "MapperRegistry",
    # Audit
    "AuditFieldManager",
    "UserContext",
    "SystemUserContext",
    "DelegateUserContext",
    # Validation
    "DocumentValidator",
    "ModelRegistry",
    # Observability
    "MetricsCollector",
    # Errors
    "DataServiceError",
    "ValidationError",
    "MappingError",
    "UnsupportedSpecificationError",
    "UnsupportedOperatorError",
    "ConfigurationError",
    "BackendOperationError",
]
