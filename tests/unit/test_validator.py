"""
Unit tests for DocumentValidator.

Tests input checks run before any backend call:
- Document ids and partition keys
- Document audit-field consistency
- Paging and bulk parameters
- Property filters and array-property queries
- Model configuration at registration time
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import pytest

from conftest import FIXED_NOW, ProductDocument, make_product
from mdb_dataservices.exceptions import ConfigurationError, ValidationError
from mdb_dataservices.models import Document, PropertyFilter
from mdb_dataservices.validation import DocumentValidator


def get_category(item):
    return item.category


@pytest.mark.unit
class TestIdAndPartitionKey:
    """Test point-operation address validation."""

    def test_valid_address(self, validator):
        validator.validate_id_and_partition_key("p1", "electronics", "GetItem")

    @pytest.mark.parametrize("item_id", [None, "", "   "])
    def test_empty_id_rejected(self, validator, item_id):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_id_and_partition_key(item_id, "electronics", "GetItem")
        assert exc_info.value.operation == "GetItem"
        assert "Document id cannot be null or empty" in exc_info.value.errors

    def test_id_too_long(self, validator):
        with pytest.raises(ValidationError, match="cannot exceed 255"):
            validator.validate_id_and_partition_key("x" * 256, "electronics", "GetItem")

    def test_id_at_maximum_length_accepted(self, validator):
        validator.validate_id_and_partition_key("x" * 255, "electronics", "GetItem")

    @pytest.mark.parametrize("item_id", ["a/b", "a\\b", "a?b", "a#b"])
    def test_invalid_characters(self, validator, item_id):
        with pytest.raises(ValidationError, match="invalid characters"):
            validator.validate_id_and_partition_key(item_id, "electronics", "Delete")

    def test_empty_partition_key(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_id_and_partition_key("p1", "", "Delete")
        assert "Partition key cannot be null or empty" in exc_info.value.errors

    def test_all_errors_reported_together(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_id_and_partition_key("a/b", None, "Patch")
        assert len(exc_info.value.errors) == 2


@pytest.mark.unit
class TestDocumentValidation:
    """Test document checks for writes."""

    def test_new_document_valid_for_create(self, validator):
        validator.validate_document(make_product("p1"), "Create", get_category)

    def test_existing_document_needs_created_timestamp(self, validator):
        with pytest.raises(ValidationError, match="created_on_utc must have a value"):
            validator.validate_document(make_product("p1"), "Replace", get_category)

    def test_created_after_updated_rejected(self, validator):
        item = make_product("p1")
        item.created_on_utc = FIXED_NOW
        item.updated_on_utc = FIXED_NOW - timedelta(minutes=1)
        with pytest.raises(ValidationError, match="cannot be after"):
            validator.validate_document(item, "Replace", get_category)

    def test_mixed_timezone_conventions_rejected(self, validator):
        item = make_product("p1")
        item.created_on_utc = FIXED_NOW
        item.updated_on_utc = datetime(2024, 5, 2)
        with pytest.raises(ValidationError, match="timezone convention"):
            validator.validate_document(item, "Replace", get_category)

    def test_null_document(self, validator):
        with pytest.raises(ValidationError, match="Document cannot be null"):
            validator.validate_document(None, "Create", get_category)

    def test_empty_partition_key_value(self, validator):
        with pytest.raises(ValidationError, match="Partition key value"):
            validator.validate_document(make_product("p1", category=" "), "Create", get_category)

    def test_unreadable_partition_key(self, validator):
        def broken(item):
            raise AttributeError("no such field")

        with pytest.raises(ValidationError, match="Unable to read partition key"):
            validator.validate_document(make_product("p1"), "Create", broken)

    def test_violations_collected_in_one_error(self, validator):
        item = make_product("", category="")
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_document(item, "Upsert", get_category)
        assert len(exc_info.value.errors) == 3


@pytest.mark.unit
class TestParameterValidation:
    """Test paging and bulk parameter checks."""

    @pytest.mark.parametrize("page_size", [0, -1, 1001])
    def test_page_size_out_of_range(self, validator, page_size):
        with pytest.raises(ValidationError, match="Page size"):
            validator.validate_paging_parameters(page_size, "GetPage")

    def test_page_size_bounds_accepted(self, validator):
        validator.validate_paging_parameters(1, "GetPage")
        validator.validate_paging_parameters(1000, "GetPage")

    def test_bulk_parameters_reported_together(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_bulk_operation_parameters(0, 51)
        assert len(exc_info.value.errors) == 2

    def test_bulk_ceilings_are_configurable(self):
        validator = DocumentValidator(max_batch_size=500, max_concurrency=100)
        validator.validate_bulk_operation_parameters(500, 100)

    def test_negative_cache_expiry(self, validator):
        with pytest.raises(ValidationError, match="Cache expiry"):
            validator.validate_cache_expiry(-1)


@pytest.mark.unit
class TestBulkItemValidation:
    """Test whole-set bulk item validation."""

    def test_empty_items_are_a_no_op(self, validator):
        validator.validate_bulk_items([], "electronics", get_category, "Create")

    def test_null_items(self, validator):
        with pytest.raises(ValidationError, match="Items cannot be null"):
            validator.validate_bulk_items(None, "electronics", get_category, "Create")

    def test_partition_mismatch_names_the_item(self, validator):
        items = [make_product("p1"), make_product("p2", category="books")]
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_bulk_items(items, "electronics", get_category, "Create")
        assert "Item[1] (ID: p2)" in str(exc_info.value)
        assert "partition key mismatch" in str(exc_info.value)

    def test_collect_keys_errors_by_index(self, validator):
        items = [make_product("p1"), make_product("bad/id"), make_product("p3", category="books")]
        violations = validator.collect_bulk_item_errors(
            items, "electronics", get_category, "Create"
        )
        assert sorted(violations) == [1, 2]


@pytest.mark.unit
class TestQueryInputValidation:
    """Test property filter and array query checks."""

    def test_null_filters(self, validator):
        with pytest.raises(ValidationError):
            validator.validate_property_filters(None)

    def test_empty_property_name(self, validator):
        with pytest.raises(ValidationError, match=r"Filter\[1\]"):
            validator.validate_property_filters(
                [PropertyFilter("price", 5), PropertyFilter("", 5)]
            )

    def test_empty_filter_list_is_valid(self, validator):
        validator.validate_property_filters([])

    def test_array_query_errors(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_array_property_query("", " ", None)
        assert len(exc_info.value.errors) == 3


@pytest.mark.unit
class TestModelConfiguration:
    """Test registration-time model checks."""

    def test_valid_model(self, validator):
        validator.validate_model_configuration(ProductDocument, "category")

    def test_non_dataclass_rejected(self, validator):
        class NotADataclass:
            pass

        with pytest.raises(ConfigurationError, match="must be a dataclass"):
            validator.validate_model_configuration(NotADataclass, "category")

    def test_missing_partition_key_property(self, validator):
        with pytest.raises(ConfigurationError, match="not found"):
            validator.validate_model_configuration(ProductDocument, "region")

    def test_unsupported_partition_key_type(self, validator):
        with pytest.raises(ConfigurationError, match="unsupported type"):
            validator.validate_model_configuration(ProductDocument, "tags")

    def test_optional_partition_key_accepted(self, validator):
        @dataclass(kw_only=True)
        class RegionDocument(Document):
            region: Optional[str] = None

        validator.validate_model_configuration(RegionDocument, "region")

    def test_missing_audit_fields(self, validator):
        @dataclass
        class Bare:
            id: str
            category: str

        with pytest.raises(ConfigurationError, match="missing required fields"):
            validator.validate_model_configuration(Bare, "category")
