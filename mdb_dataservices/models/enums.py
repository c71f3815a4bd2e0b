"""Enumerations shared by repositories and services."""

from enum import Enum


class BulkOperationType(str, Enum):
    """How a bulk call writes its items."""

    CREATE = "Create"
    UPSERT = "Upsert"


class OperationKind(str, Enum):
    """Explicit write intent, used instead of inferring it from audit fields."""

    CREATE = "Create"
    UPDATE = "Update"


class DeleteOptions(str, Enum):
    """Delete strategy."""

    HARD_DELETE = "HardDelete"
    SOFT_DELETE = "SoftDelete"


class PatchOperationType(str, Enum):
    """Partial update operation kinds."""

    ADD = "Add"
    SET = "Set"
    REPLACE = "Replace"
    REMOVE = "Remove"
    INCREMENT = "Increment"
