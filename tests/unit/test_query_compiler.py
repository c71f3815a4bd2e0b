"""
Unit tests for the filter and specification compiler.
"""

import pytest

from mdb_dataservices.exceptions import (UnsupportedOperatorError,
                                         UnsupportedSpecificationError,
                                         ValidationError)
from mdb_dataservices.models import (ComparisonOperator, PropertyFilter,
                                     QueryDefinition, Specification,
                                     SqlSpecification)
from mdb_dataservices.query import (add_parameters, array_property_query,
                                    build_where_clause, count_query,
                                    format_literal, offset_items_query,
                                    partition_items_query,
                                    property_comparison_query, to_count_query,
                                    to_query)


class OtherSpecification(Specification):
    pass


@pytest.mark.unit
class TestBuildWhereClause:
    """Test property filter compilation."""

    def test_single_equality(self):
        assert build_where_clause([PropertyFilter("status", "active")]) == "c.status = @status"

    def test_not_equal_renders_as_sql_operator(self):
        where = build_where_clause([PropertyFilter("status", "x", ComparisonOperator.NOT_EQUAL)])
        assert where == "c.status <> @status"

    def test_string_operators_accepted(self):
        where = build_where_clause([PropertyFilter("price", 5, ">=")])
        assert where == "c.price >= @price"

    def test_filters_are_anded(self):
        where = build_where_clause(
            [PropertyFilter("status", "active"), PropertyFilter("price", 10, "<")]
        )
        assert where == "c.status = @status AND c.price < @price"

    def test_repeated_property_gets_distinct_placeholders(self):
        filters = [PropertyFilter("price", 5, ">"), PropertyFilter("price", 20, "<")]
        assert build_where_clause(filters) == "c.price > @price AND c.price < @price_1"

        query = add_parameters(filters, QueryDefinition("SELECT * FROM c"))
        assert dict(query.parameters) == {"@price": 5, "@price_1": 20}

    def test_nested_property_placeholder(self):
        where = build_where_clause([PropertyFilter("address.city", "Oslo")])
        assert where == "c.address.city = @address_city"

    def test_in_values_are_inlined(self):
        where = build_where_clause([PropertyFilter("status", ["active", "it's"], "IN")])
        assert where == "c.status IN ('active', 'it\\'s')"

    def test_in_parameters_not_bound(self):
        filters = [PropertyFilter("status", ["a"], "IN"), PropertyFilter("price", 3)]
        query = add_parameters(filters, QueryDefinition("SELECT * FROM c"))
        assert dict(query.parameters) == {"@price": 3}

    def test_in_with_scalar_value(self):
        assert build_where_clause([PropertyFilter("price", 3, "IN")]) == "c.price IN (3)"

    def test_empty_in_rejected(self):
        with pytest.raises(ValidationError, match="at least one value") as exc_info:
            build_where_clause([PropertyFilter("status", [], "IN")])
        assert exc_info.value.context["operation"] == "PropertyFilter"

    def test_in_quotes_are_backslash_escaped(self):
        assert format_literal("it's") == "'it\\'s'"
        assert format_literal("a\\b") == "'a\\\\b'"

    def test_unknown_operator(self):
        with pytest.raises(UnsupportedOperatorError) as exc_info:
            build_where_clause([PropertyFilter("status", "x", "LIKE")])
        assert exc_info.value.operator == "LIKE"

    def test_empty_filters_match_everything(self):
        assert build_where_clause([]) == "1=1"


@pytest.mark.unit
class TestFormatLiteral:
    """Test inline literal rendering."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "null"),
            (True, "true"),
            (False, "false"),
            (42, "42"),
            (2.5, "2.5"),
            ("plain", "'plain'"),
            ("a\\b", "'a\\\\b'"),
        ],
    )
    def test_literals(self, value, expected):
        assert format_literal(value) == expected


@pytest.mark.unit
class TestSpecifications:
    """Test specification conversion."""

    def test_to_query_copies_text_and_parameters(self):
        spec = SqlSpecification("SELECT * FROM c WHERE c.price > @min", {"@min": 5})
        query = to_query(spec)
        assert query.query_text == spec.query_text
        assert dict(query.parameters) == {"@min": 5}

    def test_to_count_query(self):
        spec = SqlSpecification(
            "select *  from c WHERE c.status = @status ORDER BY c.name", {"@status": "active"}
        )
        query = to_count_query(spec)
        assert query.query_text == (
            "SELECT VALUE COUNT(1) FROM c WHERE c.status = @status ORDER BY c.name"
        )
        assert dict(query.parameters) == {"@status": "active"}

    def test_to_count_query_requires_select_all(self):
        spec = SqlSpecification("SELECT VALUE COUNT(1) FROM c")
        with pytest.raises(UnsupportedSpecificationError, match="SELECT \\* FROM"):
            to_count_query(spec)

    def test_unsupported_specification_type(self):
        with pytest.raises(UnsupportedSpecificationError) as exc_info:
            to_query(OtherSpecification())
        assert exc_info.value.specification_type == "OtherSpecification"

    def test_specification_is_read_only(self):
        spec = SqlSpecification("SELECT * FROM c", {"@a": 1})
        with pytest.raises(TypeError):
            spec.parameters["@a"] = 2

    def test_empty_specification_text(self):
        with pytest.raises(ValueError):
            SqlSpecification("   ")


@pytest.mark.unit
class TestStandardQueries:
    """Test the repository's built-in queries."""

    def test_partition_items_query(self):
        query = partition_items_query("category", "books")
        assert query.query_text == (
            "SELECT * FROM c WHERE c.category = @pk AND c.deleted = false"
        )
        assert dict(query.parameters) == {"@pk": "books"}

    def test_offset_items_query(self):
        query = offset_items_query(10, 5)
        assert query.query_text.endswith("ORDER BY c.id OFFSET @offset LIMIT @limit")
        assert dict(query.parameters) == {"@offset": 10, "@limit": 5}

    def test_count_query_including_deleted(self):
        query = count_query("category", "books", include_deleted=True)
        assert "deleted" not in query.query_text

    def test_array_property_query(self):
        query = array_property_query("tags", "name", "sale")
        assert query.query_text == (
            "SELECT * FROM c WHERE ARRAY_CONTAINS(c.tags, { 'name': @value }, true) "
            "AND c.deleted = false"
        )
        assert dict(query.parameters) == {"@value": "sale"}

    def test_property_comparison_query(self):
        query = property_comparison_query([PropertyFilter("price", 5, ">")])
        assert query.query_text == "SELECT * FROM c WHERE c.price > @price AND c.deleted = false"
        assert dict(query.parameters) == {"@price": 5}

    def test_property_comparison_without_filters(self):
        assert property_comparison_query([]).query_text == (
            "SELECT * FROM c WHERE c.deleted = false"
        )
        assert property_comparison_query([], include_deleted=True).query_text == (
            "SELECT * FROM c WHERE 1=1"
        )
