"""
Document store backends.

DocumentStore is the contract repositories depend on; MongoDocumentStore
serves it from MongoDB via motor, InMemoryDocumentStore from a dict.
"""

from .base import (
    BatchItemResult,
    BatchOperation,
    BatchResponse,
    DocumentStore,
    DocumentStoreError,
    FeedPage,
    InvalidContinuationTokenError,
    StoreResponse,
)
from .connection import MongoClientPool, create_motor_client
from .memory import InMemoryDocumentStore, apply_patch
from .mongo import MongoDocumentStore, to_mongo_filter

__all__ = [
    # Contract
    "DocumentStore",
    "DocumentStoreError",
    "InvalidContinuationTokenError",
    "StoreResponse",
    "BatchOperation",
    "BatchItemResult",
    "BatchResponse",
    "FeedPage",
    # Implementations
    "InMemoryDocumentStore",
    "MongoDocumentStore",
    "apply_patch",
    "to_mongo_filter",
    # Connections
    "MongoClientPool",
    "create_motor_client",
]
