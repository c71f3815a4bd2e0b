"""
Data models.

Document base class, query filters and specifications, enums, and the
result types returned by repositories and services.
"""

from .document import Document
from .enums import BulkOperationType, DeleteOptions, OperationKind, PatchOperationType
from .filters import (
    ComparisonOperator,
    PatchOperation,
    PatchSpecification,
    PropertyFilter,
    QueryDefinition,
    Specification,
    SqlSpecification,
)
from .results import (
    BatchExecuteResult,
    BulkExecuteResult,
    BulkItemFailure,
    CachedCountEntry,
    CountedPage,
    Page,
)

__all__ = [
    # Documents
    "Document",
    # Enums
    "BulkOperationType",
    "DeleteOptions",
    "OperationKind",
    "PatchOperationType",
    # Filters
    "ComparisonOperator",
    "PropertyFilter",
    "Specification",
    "SqlSpecification",
    "QueryDefinition",
    "PatchOperation",
    "PatchSpecification",
    # Results
    "BulkItemFailure",
    "BatchExecuteResult",
    "BulkExecuteResult",
    "CachedCountEntry",
    "Page",
    "CountedPage",
]
