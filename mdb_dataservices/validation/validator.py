"""
Input validation for data service operations.

Every public repository operation runs these checks before it reaches the
document store, so a ValidationError never leaves a partially applied write.

Checks:
- Document ids and partition keys
- Document audit-field consistency
- Paging and bulk operation parameters
- Property filters and array-property queries
- Per-type model configuration (once, at registration)
"""

import dataclasses
import logging
import typing
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..constants import (
    CREATE_OPERATION,
    INVALID_ID_CHARACTERS,
    MAX_BATCH_SIZE,
    MAX_CONCURRENCY,
    MAX_DOCUMENT_ID_LENGTH,
    MAX_PAGE_SIZE,
    REQUIRED_MODEL_FIELDS,
    SUPPORTED_PARTITION_KEY_TYPES,
)
from ..exceptions import ConfigurationError, ValidationError
from ..models.filters import PropertyFilter

logger = logging.getLogger(__name__)

PartitionKeyAccessor = Callable[[Any], Any]


def is_empty(value: Any) -> bool:
    """True for None, empty strings and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


class DocumentValidator:
    """
    Stateless validator for ids, documents, filters and operation parameters.

    The bulk ceilings are soft performance guards and can be raised per
    instance.
    """

    def __init__(
        self,
        max_page_size: int = MAX_PAGE_SIZE,
        max_batch_size: int = MAX_BATCH_SIZE,
        max_concurrency: int = MAX_CONCURRENCY,
    ):
        """
        Initialize the validator.

        Args:
            max_page_size: Largest page size accepted by paged queries
            max_batch_size: Largest batch size accepted by bulk calls
            max_concurrency: Largest number of concurrent batches accepted by bulk calls
        """
        self.max_page_size = max_page_size
        self.max_batch_size = max_batch_size
        self.max_concurrency = max_concurrency

    # ------------------------------------------------------------------
    # Ids and partition keys
    # ------------------------------------------------------------------

    def id_errors(self, document_id: Any) -> List[str]:
        """Return the problems with ``document_id`` (empty when valid)."""
        if is_empty(document_id):
            return ["Document id cannot be null or empty"]
        errors = []
        document_id = str(document_id)
        if len(document_id) > MAX_DOCUMENT_ID_LENGTH:
            errors.append(
                f"Document id cannot exceed {MAX_DOCUMENT_ID_LENGTH} characters "
                f"(got {len(document_id)})"
            )
        found = [ch for ch in INVALID_ID_CHARACTERS if ch in document_id]
        if found:
            errors.append(
                f"Document id contains invalid characters: {' '.join(found)}"
            )
        return errors

    def validate_partition_key(self, partition_key: Any, operation_name: str) -> None:
        if is_empty(partition_key):
            raise ValidationError(
                f"Partition key cannot be null or empty for {operation_name}",
                operation=operation_name,
            )

    def validate_id_and_partition_key(
        self, document_id: Any, partition_key: Any, operation_name: str
    ) -> None:
        """
        Validate a point-operation address.

        Raises:
            ValidationError: If the id is empty, too long or contains invalid
                characters, or if the partition key is empty
        """
        errors = self.id_errors(document_id)
        if is_empty(partition_key):
            errors.append("Partition key cannot be null or empty")
        if errors:
            raise ValidationError(
                f"Invalid arguments for {operation_name}: {'; '.join(errors)}",
                operation=operation_name,
                errors=errors,
            )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def document_errors(
        self, item: Any, operation_name: str, get_partition_key: PartitionKeyAccessor
    ) -> List[str]:
        """Collect every violation for ``item`` without raising."""
        if item is None:
            return ["Document cannot be null"]

        errors = self.id_errors(getattr(item, "id", None))

        try:
            partition_value = get_partition_key(item)
        except (AttributeError, KeyError, TypeError) as e:
            errors.append(f"Unable to read partition key value: {e}")
        else:
            if is_empty(partition_value):
                errors.append("Partition key value cannot be null or empty")

        created = getattr(item, "created_on_utc", None)
        updated = getattr(item, "updated_on_utc", None)
        if operation_name != CREATE_OPERATION and created is None:
            errors.append("created_on_utc must have a value for existing documents")
        if isinstance(created, datetime) and isinstance(updated, datetime):
            try:
                out_of_order = created > updated
            except TypeError:
                errors.append("created_on_utc and updated_on_utc must share a timezone convention")
            else:
                if out_of_order:
                    errors.append("created_on_utc cannot be after updated_on_utc")
        return errors

    def validate_document(
        self, item: Any, operation_name: str, get_partition_key: PartitionKeyAccessor
    ) -> None:
        """
        Validate a document before a write.

        All violations are reported together in a single ValidationError.
        """
        errors = self.document_errors(item, operation_name, get_partition_key)
        if errors:
            raise ValidationError(
                f"Document validation failed for {operation_name}: {'; '.join(errors)}",
                operation=operation_name,
                errors=errors,
            )

    # ------------------------------------------------------------------
    # Paging and bulk parameters
    # ------------------------------------------------------------------

    def validate_paging_parameters(self, page_size: int, operation_name: str) -> None:
        if page_size <= 0 or page_size > self.max_page_size:
            raise ValidationError(
                f"Page size must be between 1 and {self.max_page_size} (got {page_size})",
                operation=operation_name,
            )

    def validate_bulk_operation_parameters(self, batch_size: int, max_concurrency: int) -> None:
        errors = []
        if batch_size <= 0:
            errors.append(f"Batch size must be positive (got {batch_size})")
        elif batch_size > self.max_batch_size:
            errors.append(f"Batch size cannot exceed {self.max_batch_size} (got {batch_size})")
        if max_concurrency <= 0:
            errors.append(f"Max concurrency must be positive (got {max_concurrency})")
        elif max_concurrency > self.max_concurrency:
            errors.append(
                f"Max concurrency cannot exceed {self.max_concurrency} (got {max_concurrency})"
            )
        if errors:
            raise ValidationError(
                f"Invalid bulk operation parameters: {'; '.join(errors)}",
                operation="BulkOperation",
                errors=errors,
            )

    def collect_bulk_item_errors(
        self,
        items: Sequence[Any],
        partition_key_value: Any,
        get_partition_key: PartitionKeyAccessor,
        operation_name: str,
    ) -> Dict[int, List[str]]:
        """
        Return per-item violations keyed by item index.

        Items whose partition key disagrees with ``partition_key_value`` are
        reported alongside ordinary document violations.
        """
        violations: Dict[int, List[str]] = {}
        expected = str(partition_key_value)
        for index, item in enumerate(items):
            errors = self.document_errors(item, operation_name, get_partition_key)
            if item is not None:
                try:
                    actual = get_partition_key(item)
                except (AttributeError, KeyError, TypeError):
                    actual = None
                if actual is not None and str(actual) != expected:
                    errors.append(
                        f"partition key mismatch - expected '{expected}', got '{actual}'"
                    )
            if errors:
                violations[index] = errors
        return violations

    def validate_bulk_items(
        self,
        items: Optional[Sequence[Any]],
        partition_key_value: Any,
        get_partition_key: PartitionKeyAccessor,
        operation_name: str,
    ) -> None:
        """
        Validate a whole bulk item set, failing on the first bad call.

        Empty collections are valid no-ops.
        """
        if items is None:
            raise ValidationError("Items cannot be null", operation=operation_name)
        self.validate_partition_key(partition_key_value, operation_name)
        if not items:
            return

        violations = self.collect_bulk_item_errors(
            items, partition_key_value, get_partition_key, operation_name
        )
        if violations:
            errors = [
                f"Item[{index}] (ID: {getattr(items[index], 'id', None)}): {'; '.join(problems)}"
                for index, problems in violations.items()
            ]
            raise ValidationError(
                f"Bulk validation failed for {operation_name}: {' | '.join(errors)}",
                operation=operation_name,
                errors=errors,
            )

    # ------------------------------------------------------------------
    # Query inputs
    # ------------------------------------------------------------------

    def validate_property_filters(self, filters: Optional[Iterable[PropertyFilter]]) -> None:
        if filters is None:
            raise ValidationError("Property filters cannot be null", operation="PropertyFilter")
        errors = []
        for index, property_filter in enumerate(filters):
            if property_filter is None:
                errors.append(f"Filter[{index}] cannot be null")
            elif is_empty(property_filter.property_name):
                errors.append(f"Filter[{index}] property name cannot be empty")
        if errors:
            raise ValidationError(
                f"Invalid property filters: {'; '.join(errors)}",
                operation="PropertyFilter",
                errors=errors,
            )

    def validate_array_property_query(
        self, array_name: str, element_property_name: str, element_value: Any
    ) -> None:
        errors = []
        if is_empty(array_name):
            errors.append("Array property name cannot be empty")
        if is_empty(element_property_name):
            errors.append("Element property name cannot be empty")
        if element_value is None:
            errors.append("Element property value cannot be null")
        if errors:
            raise ValidationError(
                f"Invalid array property query: {'; '.join(errors)}",
                operation="ArrayPropertyQuery",
                errors=errors,
            )

    def validate_cache_expiry(self, expiry_minutes: float) -> None:
        if expiry_minutes < 0:
            raise ValidationError(
                f"Cache expiry cannot be negative (got {expiry_minutes})",
                operation="CountCache",
            )

    # ------------------------------------------------------------------
    # Model configuration
    # ------------------------------------------------------------------

    def validate_model_configuration(self, model_type: type, partition_key_property: str) -> None:
        """
        Check that ``model_type`` can be stored by a repository.

        Runs once per type at registration time.

        Raises:
            ConfigurationError: If the partition-key field is missing or has an
                unsupported type, or an audit field is missing
        """
        type_name = getattr(model_type, "__name__", repr(model_type))
        if not dataclasses.is_dataclass(model_type):
            raise ConfigurationError(
                f"Model type {type_name} must be a dataclass",
                config_key="model_type",
                config_value=type_name,
            )
        if is_empty(partition_key_property):
            raise ConfigurationError(
                f"Partition key property is required for {type_name}",
                config_key="partition_key",
            )

        hints = typing.get_type_hints(model_type)
        field_names = {f.name for f in dataclasses.fields(model_type)}

        missing = [name for name in REQUIRED_MODEL_FIELDS if name not in field_names]
        if missing:
            raise ConfigurationError(
                f"Model type {type_name} is missing required fields: {', '.join(missing)}",
                config_key="model_type",
                config_value=type_name,
            )

        if partition_key_property not in field_names:
            raise ConfigurationError(
                f"Partition key property '{partition_key_property}' not found on {type_name}",
                config_key="partition_key",
                config_value=partition_key_property,
            )

        declared = _unwrap_optional(hints.get(partition_key_property))
        if declared not in SUPPORTED_PARTITION_KEY_TYPES:
            raise ConfigurationError(
                f"Partition key property '{partition_key_property}' on {type_name} has "
                f"unsupported type {declared!r}; expected one of "
                f"{', '.join(t.__name__ for t in SUPPORTED_PARTITION_KEY_TYPES)}",
                config_key="partition_key",
                config_value=partition_key_property,
            )
        logger.debug(f"Validated model configuration for {type_name} (pk={partition_key_property})")


def _unwrap_optional(annotation: Any) -> Any:
    """Return ``X`` for ``Optional[X]`` / ``X | None``, otherwise the annotation."""
    args = [a for a in typing.get_args(annotation) if a is not type(None)]
    if args and type(None) in typing.get_args(annotation) and len(args) == 1:
        return args[0]
    return annotation
