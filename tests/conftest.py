"""
Pytest configuration and shared fixtures for MDB_DATASERVICES tests.

This module provides:
- Sample stored and domain types
- In-memory store and repository fixtures
- Mock motor collection fixtures
- Test data factories
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import BaseModel

from mdb_dataservices.audit import AuditFieldManager, SystemUserContext
from mdb_dataservices.backends import InMemoryDocumentStore
from mdb_dataservices.models import Document
from mdb_dataservices.observability import MetricsCollector
from mdb_dataservices.repositories import DocumentRepository
from mdb_dataservices.validation import DocumentValidator, ModelRegistry

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no external services")


# ============================================================================
# SAMPLE TYPES
# ============================================================================


@dataclass
class Tag:
    name: str
    weight: int = 0


@dataclass(kw_only=True)
class ProductDocument(Document):
    category: str
    name: str = ""
    price: float = 0.0
    status: str = "active"
    tags: List[Tag] = field(default_factory=list)


class ProductDto(BaseModel):
    id: str
    category: str
    name: str = ""
    price: float = 0.0
    status: str = "active"
    tags: List[Dict[str, Any]] = []


def make_product(
    item_id: str,
    category: str = "electronics",
    name: Optional[str] = None,
    price: float = 10.0,
    status: str = "active",
    tags: Optional[List[Tag]] = None,
) -> ProductDocument:
    """Factory for ProductDocument test data."""
    return ProductDocument(
        id=item_id,
        category=category,
        name=name or f"Product {item_id}",
        price=price,
        status=status,
        tags=tags or [],
    )


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Clock pinned to FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def audit_manager(clock) -> AuditFieldManager:
    return AuditFieldManager(SystemUserContext("tester"), clock=clock)


@pytest.fixture
def validator() -> DocumentValidator:
    return DocumentValidator()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def product_binding(validator):
    return ModelRegistry(validator).register(ProductDocument, "category")


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    """Empty in-memory store partitioned by category."""
    return InMemoryDocumentStore("category")


@pytest.fixture
def repository_factory(product_binding, validator, audit_manager, metrics):
    """Build a ProductDocument repository over a given store."""

    def build(store, **kwargs) -> DocumentRepository[ProductDocument]:
        return DocumentRepository(
            product_binding,
            store,
            validator=validator,
            audit_manager=audit_manager,
            metrics=metrics,
            **kwargs,
        )

    return build


@pytest.fixture
def repository(repository_factory, memory_store) -> DocumentRepository[ProductDocument]:
    return repository_factory(memory_store)


# ============================================================================
# MOCK MOTOR FIXTURES
# ============================================================================


@pytest.fixture
def mock_mongo_collection() -> MagicMock:
    """Create a mock motor collection with async methods."""
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = "products"
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="test_id"))
    collection.replace_one = AsyncMock(
        return_value=MagicMock(matched_count=1, modified_count=1, upserted_id=None)
    )
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.bulk_write = AsyncMock(return_value=MagicMock(upserted_ids={}))
    collection.count_documents = AsyncMock(return_value=0)
    collection.create_index = AsyncMock(return_value="category_1")
    cursor = MagicMock()
    cursor.to_list = AsyncMock(return_value=[])
    collection.find = MagicMock(return_value=cursor)
    return collection
