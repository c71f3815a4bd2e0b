"""
Query compilation, parsing and in-process evaluation.
"""

from .compiler import (
    add_parameters,
    all_items_query,
    array_property_query,
    build_where_clause,
    count_query,
    format_literal,
    offset_items_query,
    partition_items_query,
    property_comparison_query,
    to_count_query,
    to_query,
)
from .evaluator import matches, sort_documents
from .parser import ParsedQuery, parse_query

__all__ = [
    # Compiler
    "build_where_clause",
    "add_parameters",
    "to_query",
    "to_count_query",
    "format_literal",
    "all_items_query",
    "partition_items_query",
    "offset_items_query",
    "count_query",
    "array_property_query",
    "property_comparison_query",
    # Parser
    "ParsedQuery",
    "parse_query",
    # Evaluation
    "matches",
    "sort_documents",
]
