"""
Filter and specification compiler.

Turns PropertyFilter sequences and specifications into parameterized query
text for a DocumentStore, and builds the standard repository queries.
"""

import logging
import re
from typing import Any, Iterable, List, Sequence

from ..constants import DELETED_FIELD
from ..exceptions import (UnsupportedOperatorError, UnsupportedSpecificationError,
                          ValidationError)
from ..models.filters import ComparisonOperator, PropertyFilter, QueryDefinition, Specification, SqlSpecification
from .parser import parse_query

logger = logging.getLogger(__name__)

ALIAS = "c"
MATCH_ALL = "1=1"

_SQL_OPERATORS = {
    ComparisonOperator.EQUAL: "=",
    ComparisonOperator.NOT_EQUAL: "<>",
    ComparisonOperator.GREATER_THAN: ">",
    ComparisonOperator.LESS_THAN: "<",
    ComparisonOperator.GREATER_THAN_OR_EQUAL: ">=",
    ComparisonOperator.LESS_THAN_OR_EQUAL: "<=",
    ComparisonOperator.IN: "IN",
}

_SELECT_ALL_PREFIX = re.compile(r"^\s*SELECT\s+\*\s+FROM", re.IGNORECASE)
_COUNT_PREFIX = "SELECT VALUE COUNT(1) FROM"


def _operator(property_filter: PropertyFilter) -> ComparisonOperator:
    try:
        return ComparisonOperator(property_filter.operator)
    except ValueError:
        raise UnsupportedOperatorError(
            f"Comparison operator {property_filter.operator!r} is not supported "
            f"for property '{property_filter.property_name}'",
            operator=property_filter.operator,
        ) from None


def _column(property_name: str) -> str:
    return property_name.lstrip("@")


def _placeholders(filters: Sequence[PropertyFilter]) -> List[str]:
    """
    Placeholder per filter, shared by build_where_clause and add_parameters.

    Repeated properties get a numeric suffix so that range filters such as
    price > @price AND price < @price_1 bind independently.
    """
    seen: dict = {}
    names = []
    for property_filter in filters:
        base = re.sub(r"\W", "_", _column(property_filter.property_name))
        count = seen.get(base, 0)
        seen[base] = count + 1
        names.append(f"@{base}" if count == 0 else f"@{base}_{count}")
    return names


def format_literal(value: Any) -> str:
    """Render ``value`` as an inline query literal."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def _in_values(value: Any) -> List[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return [value]
    return list(value)


def build_where_clause(filters: Iterable[PropertyFilter]) -> str:
    """
    Compile property filters into an ANDed WHERE clause body.

    IN values are inlined as literals rather than bound, and are trusted as
    already sanitized by the caller. An empty filter list matches everything.

    Raises:
        UnsupportedOperatorError: If a filter uses an unknown operator
        ValidationError: If an IN filter has no values
    """
    filters = list(filters)
    if not filters:
        return MATCH_ALL

    clauses = []
    for property_filter, placeholder in zip(filters, _placeholders(filters)):
        operator = _operator(property_filter)
        column = f"{ALIAS}.{_column(property_filter.property_name)}"
        if operator == ComparisonOperator.IN:
            values = _in_values(property_filter.property_value)
            if not values:
                raise ValidationError(
                    f"IN filter on '{property_filter.property_name}' needs at least one value",
                    operation="PropertyFilter",
                )
            literals = ", ".join(format_literal(v) for v in values)
            clauses.append(f"{column} IN ({literals})")
        else:
            clauses.append(f"{column} {_SQL_OPERATORS[operator]} {placeholder}")
    return " AND ".join(clauses)


def add_parameters(filters: Iterable[PropertyFilter], query: QueryDefinition) -> QueryDefinition:
    """Bind every non-IN filter value; use the same filters as build_where_clause."""
    filters = list(filters)
    for property_filter, placeholder in zip(filters, _placeholders(filters)):
        if _operator(property_filter) == ComparisonOperator.IN:
            continue
        query = query.with_parameter(placeholder, property_filter.property_value)
    return query


def _require_sql(specification: Specification, operation: str) -> SqlSpecification:
    if not isinstance(specification, SqlSpecification):
        raise UnsupportedSpecificationError(
            f"{operation} only supports SqlSpecification, got {type(specification).__name__}",
            specification_type=type(specification).__name__,
        )
    return specification


def to_query(specification: Specification) -> QueryDefinition:
    """Convert a specification to a backend query."""
    spec = _require_sql(specification, "to_query")
    return QueryDefinition(spec.query_text, dict(spec.parameters))


def to_count_query(specification: Specification) -> QueryDefinition:
    """
    Derive a count query from a ``SELECT * FROM`` specification.

    The leading projection is rewritten to ``SELECT VALUE COUNT(1) FROM``
    and all parameters are copied. Backends ignore ORDER BY when counting.

    Raises:
        UnsupportedSpecificationError: For non-SQL specifications, or text
            that does not start with ``SELECT * FROM``
    """
    spec = _require_sql(specification, "to_count_query")
    if not _SELECT_ALL_PREFIX.match(spec.query_text):
        raise UnsupportedSpecificationError(
            "Count queries can only be derived from 'SELECT * FROM ...' specifications",
            specification_type=type(spec).__name__,
            context={"query": spec.query_text},
        )
    count_text = _SELECT_ALL_PREFIX.sub(_COUNT_PREFIX, spec.query_text, count=1)
    parse_query(count_text)
    return QueryDefinition(count_text, dict(spec.parameters))


# ============================================================================
# STANDARD REPOSITORY QUERIES
# ============================================================================

_NOT_DELETED = f"{ALIAS}.{DELETED_FIELD} = false"


def all_items_query() -> QueryDefinition:
    return QueryDefinition(f"SELECT * FROM {ALIAS} WHERE {_NOT_DELETED}")


def partition_items_query(partition_key_property: str, partition_key: Any) -> QueryDefinition:
    return QueryDefinition(
        f"SELECT * FROM {ALIAS} WHERE {ALIAS}.{partition_key_property} = @pk AND {_NOT_DELETED}",
        {"@pk": partition_key},
    )


def offset_items_query(offset: int, limit: int) -> QueryDefinition:
    return QueryDefinition(
        f"SELECT * FROM {ALIAS} WHERE {_NOT_DELETED} ORDER BY {ALIAS}.id OFFSET @offset LIMIT @limit",
        {"@offset": offset, "@limit": limit},
    )


def count_query(
    partition_key_property: str, partition_key: Any, include_deleted: bool = False
) -> QueryDefinition:
    text = f"SELECT VALUE COUNT(1) FROM {ALIAS} WHERE {ALIAS}.{partition_key_property} = @pk"
    if not include_deleted:
        text += f" AND {_NOT_DELETED}"
    return QueryDefinition(text, {"@pk": partition_key})


def array_property_query(
    array_name: str, element_property_name: str, element_value: Any, include_deleted: bool = False
) -> QueryDefinition:
    element = element_property_name.replace("'", "\\'")
    where = f"ARRAY_CONTAINS({ALIAS}.{array_name}, {{ '{element}': @value }}, true)"
    if not include_deleted:
        where += f" AND {_NOT_DELETED}"
    return QueryDefinition(f"SELECT * FROM {ALIAS} WHERE {where}", {"@value": element_value})


def property_comparison_query(
    filters: Sequence[PropertyFilter], include_deleted: bool = False
) -> QueryDefinition:
    if not filters:
        where = _NOT_DELETED if not include_deleted else MATCH_ALL
    else:
        where = build_where_clause(filters)
        if not include_deleted:
            where += f" AND {_NOT_DELETED}"
    return add_parameters(filters, QueryDefinition(f"SELECT * FROM {ALIAS} WHERE {where}"))
