"""
Query filters and specifications.

PropertyFilter sequences are compiled to parameterized WHERE clauses;
SqlSpecification carries caller-written query text. Both are immutable.
"""

from abc import ABC
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Tuple

from .enums import PatchOperationType


class ComparisonOperator(str, Enum):
    """Comparison operators accepted in a PropertyFilter."""

    EQUAL = "="
    NOT_EQUAL = "!="
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN_OR_EQUAL = "<="
    IN = "IN"


@dataclass(frozen=True)
class PropertyFilter:
    """
    A single property comparison.

    ``operator`` may be a ComparisonOperator or its string form ("=", "IN",
    ...). Unknown operators are rejected when the filter is compiled, not
    here, so callers get UnsupportedOperatorError at the query boundary.
    """

    property_name: str
    property_value: Any
    operator: Any = ComparisonOperator.EQUAL


class Specification(ABC):
    """Marker base for provider-specific query descriptors."""


def _freeze(parameters: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(parameters or {}))


class SqlSpecification(Specification):
    """Parameterized query text. Text and parameters are read-only."""

    __slots__ = ("_query_text", "_parameters")

    def __init__(self, query_text: str, parameters: Optional[Mapping[str, Any]] = None) -> None:
        if not query_text or not query_text.strip():
            raise ValueError("query_text must not be empty")
        self._query_text = query_text
        self._parameters = _freeze(parameters)

    @property
    def query_text(self) -> str:
        return self._query_text

    @property
    def parameters(self) -> Mapping[str, Any]:
        return self._parameters

    def __repr__(self) -> str:
        return f"SqlSpecification({self._query_text!r}, {dict(self._parameters)!r})"


@dataclass(frozen=True)
class QueryDefinition:
    """Query text plus bound parameters, as handed to a DocumentStore."""

    query_text: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", _freeze(self.parameters))

    def with_parameter(self, name: str, value: Any) -> "QueryDefinition":
        """Return a copy with ``name`` bound to ``value``."""
        if not name.startswith("@"):
            name = f"@{name}"
        return QueryDefinition(self.query_text, {**self.parameters, name: value})


@dataclass(frozen=True)
class PatchOperation:
    """A single partial update addressed by a ``/a/b`` path."""

    operation_type: PatchOperationType
    path: str
    value: Any = None

    @property
    def segments(self) -> Tuple[str, ...]:
        return tuple(part for part in self.path.split("/") if part)


@dataclass(frozen=True)
class PatchSpecification:
    operations: Sequence[PatchOperation]
