"""
In-process evaluation of parsed queries against plain documents.

Values of different kinds never compare (a string is neither equal to
nor greater than a number), and a missing property fails every
comparison, mirroring document-store semantics.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping

from ..exceptions import UnsupportedSpecificationError
from .parser import (
    And,
    ArrayContains,
    Comparison,
    Condition,
    InList,
    Literal,
    Not,
    ObjectLiteral,
    Operand,
    Or,
    Parameter,
    PropertyPath,
)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def resolve_path(document: Mapping[str, Any], path: PropertyPath) -> Any:
    value: Any = document
    for part in path.parts:
        if not isinstance(value, Mapping) or part not in value:
            return MISSING
        value = value[part]
    return value


def resolve_operand(operand: Operand, document: Mapping[str, Any], parameters: Mapping[str, Any]) -> Any:
    if isinstance(operand, PropertyPath):
        return resolve_path(document, operand)
    if isinstance(operand, Parameter):
        if operand.name not in parameters:
            raise UnsupportedSpecificationError(
                f"Query parameter {operand.name} is not bound",
                specification_type="SqlSpecification",
            )
        return parameters[operand.name]
    if isinstance(operand, Literal):
        return operand.value
    if isinstance(operand, ObjectLiteral):
        return {key: resolve_operand(value, document, parameters) for key, value in operand.items}
    raise UnsupportedSpecificationError(f"Unsupported operand {operand!r}")


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def compare(left: Any, operator: str, right: Any) -> bool:
    """Apply a comparison operator with document-store typing rules."""
    if left is MISSING or right is MISSING:
        return False
    if _kind(left) != _kind(right):
        return False
    if operator == "=":
        return left == right
    if operator in ("<>", "!="):
        return left != right
    if _kind(left) in ("null", "object", "array"):
        return False
    try:
        if operator == ">":
            return left > right
        if operator == "<":
            return left < right
        if operator == ">=":
            return left >= right
        if operator == "<=":
            return left <= right
    except TypeError:
        return False
    raise UnsupportedSpecificationError(f"Unsupported comparison operator {operator!r}")


def _array_contains(array: Any, value: Any, partial: bool) -> bool:
    if not isinstance(array, (list, tuple)):
        return False
    for element in array:
        if partial and isinstance(value, Mapping) and isinstance(element, Mapping):
            if all(compare(element.get(k, MISSING), "=", v) for k, v in value.items()):
                return True
        elif compare(element, "=", value):
            return True
    return False


def matches(condition: Condition, document: Mapping[str, Any], parameters: Mapping[str, Any]) -> bool:
    """Evaluate ``condition`` for ``document``."""
    if isinstance(condition, And):
        return all(matches(term, document, parameters) for term in condition.terms)
    if isinstance(condition, Or):
        return any(matches(term, document, parameters) for term in condition.terms)
    if isinstance(condition, Not):
        return not matches(condition.term, document, parameters)
    if isinstance(condition, Comparison):
        return compare(
            resolve_operand(condition.left, document, parameters),
            condition.operator,
            resolve_operand(condition.right, document, parameters),
        )
    if isinstance(condition, InList):
        value = resolve_operand(condition.operand, document, parameters)
        if value is MISSING:
            return False
        found = any(
            compare(value, "=", resolve_operand(candidate, document, parameters))
            for candidate in condition.values
        )
        return found != condition.negated
    if isinstance(condition, ArrayContains):
        return _array_contains(
            resolve_path(document, condition.array),
            resolve_operand(condition.value, document, parameters),
            condition.partial,
        )
    if isinstance(condition, Literal):
        return condition.value is True
    if isinstance(condition, PropertyPath):
        return resolve_path(document, condition) is True
    raise UnsupportedSpecificationError(f"Unsupported condition {condition!r}")


_KIND_RANK = {"missing": 0, "null": 1, "bool": 2, "number": 3, "string": 4, "datetime": 5}


def _sort_value(value: Any) -> tuple:
    kind = "missing" if value is MISSING else _kind(value)
    rank = _KIND_RANK.get(kind, 6)
    if rank in (0, 1):
        return (rank, 0)
    if rank == 6:
        return (rank, repr(value))
    return (rank, value)


def sort_documents(documents: List[Dict[str, Any]], order_by: tuple) -> List[Dict[str, Any]]:
    """Stable multi-key sort honoring ASC/DESC per key."""
    ordered = list(documents)
    for item in reversed(order_by):
        ordered.sort(
            key=lambda doc, path=item.path: _sort_value(resolve_path(doc, path)),
            reverse=item.descending,
        )
    return ordered
