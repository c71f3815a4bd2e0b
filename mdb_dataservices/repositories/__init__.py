"""
Repository layer.

DocumentRepository provides DAO-level access for one model type, backed by
a DocumentStore, a CountCache and a BulkExecutor.
"""

from .bulk_executor import BulkExecutor
from .count_cache import CountCache
from .document_repository import DocumentRepository

__all__ = [
    "BulkExecutor",
    "CountCache",
    "DocumentRepository",
]
