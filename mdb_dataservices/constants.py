"""
Constants for MDB_DATASERVICES.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# DOCUMENT VALIDATION CONSTANTS
# ============================================================================

MAX_DOCUMENT_ID_LENGTH: Final[int] = 255
"""Maximum length of a document id."""

INVALID_ID_CHARACTERS: Final[tuple[str, ...]] = ("/", "\\", "?", "#")
"""Characters that may not appear in a document id."""

SUPPORTED_PARTITION_KEY_TYPES: Final[tuple[type, ...]] = (str, int, float, bool)
"""Primitive types a partition-key property may be declared with."""

CREATE_OPERATION: Final[str] = "Create"
"""Operation name for which an unset created timestamp is allowed."""

SYSTEM_USER: Final[str] = "System"
"""Fallback actor identity used for audit stamping."""

# ============================================================================
# AUDIT FIELD NAMES
# ============================================================================

ID_FIELD: Final[str] = "id"
CREATED_ON_FIELD: Final[str] = "created_on_utc"
UPDATED_ON_FIELD: Final[str] = "updated_on_utc"
CREATED_BY_FIELD: Final[str] = "created_by"
UPDATED_BY_FIELD: Final[str] = "updated_by"
DELETED_FIELD: Final[str] = "deleted"

REQUIRED_MODEL_FIELDS: Final[tuple[str, ...]] = (
    ID_FIELD,
    CREATED_ON_FIELD,
    UPDATED_ON_FIELD,
    CREATED_BY_FIELD,
    UPDATED_BY_FIELD,
    DELETED_FIELD,
)
"""Fields every registered document type must expose."""

# ============================================================================
# PAGING AND BULK LIMITS
# ============================================================================

MAX_PAGE_SIZE: Final[int] = 1000
"""Backend page-size ceiling for paged queries."""

DEFAULT_STREAM_PAGE_SIZE: Final[int] = 100
"""Backend page size used by streaming queries (at most MAX_PAGE_SIZE)."""

MAX_BATCH_SIZE: Final[int] = 100
"""Default ceiling for bulk batch size (soft performance guard)."""

MAX_CONCURRENCY: Final[int] = 50
"""Default ceiling for concurrently dispatched bulk batches."""

DEFAULT_BATCH_SIZE: Final[int] = 100
"""Default bulk batch size."""

DEFAULT_MAX_CONCURRENCY: Final[int] = 10
"""Default number of bulk batches in flight."""

# ============================================================================
# STATUS CODES
# ============================================================================

STATUS_OK: Final[int] = 200
STATUS_CREATED: Final[int] = 201
STATUS_NO_CONTENT: Final[int] = 204
STATUS_BAD_REQUEST: Final[int] = 400
STATUS_NOT_FOUND: Final[int] = 404
STATUS_REQUEST_TIMEOUT: Final[int] = 408
STATUS_CONFLICT: Final[int] = 409
STATUS_TOO_MANY_REQUESTS: Final[int] = 429
STATUS_INTERNAL_SERVER_ERROR: Final[int] = 500
STATUS_SERVICE_UNAVAILABLE: Final[int] = 503

RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset(
    {
        STATUS_REQUEST_TIMEOUT,
        STATUS_TOO_MANY_REQUESTS,
        STATUS_SERVICE_UNAVAILABLE,
        STATUS_INTERNAL_SERVER_ERROR,
    }
)
"""Backend statuses a caller may safely retry."""

# ============================================================================
# CACHE CONSTANTS
# ============================================================================

MAX_COUNT_CACHE_SIZE: Final[int] = 1000
"""Maximum cached partition counts before LRU eviction."""

# ============================================================================
# MONGODB BACKEND CONSTANTS
# ============================================================================

DEFAULT_QUERY_TIMEOUT_MS: Final[int] = 30000
"""Default maxTimeMS applied to backend queries."""

MAX_FILTER_DEPTH: Final[int] = 10
"""Maximum nesting depth for translated MongoDB filters."""

MAX_DOCUMENT_SIZE: Final[int] = 16 * 1024 * 1024  # 16MB
"""Maximum BSON document size accepted by MongoDB."""

DUPLICATE_KEY_ERROR_CODE: Final[int] = 11000
"""MongoDB server error code for duplicate keys."""
