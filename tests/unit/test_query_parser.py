"""
Unit tests for the query dialect parser and in-process evaluator.
"""

from datetime import datetime, timezone

import pytest

from mdb_dataservices.exceptions import UnsupportedSpecificationError
from mdb_dataservices.query import matches, parse_query, sort_documents
from mdb_dataservices.query.parser import (And, ArrayContains, Comparison,
                                          InList, Literal, Not, Or,
                                          Parameter, PropertyPath,
                                          resolve_paging)

DOCS = [
    {"id": "a", "price": 5, "status": "active", "tags": [{"name": "sale", "weight": 1}]},
    {"id": "b", "price": 15, "status": "retired", "tags": []},
    {"id": "c", "price": 25, "status": "active", "tags": [{"name": "new", "weight": 3}]},
    {"id": "d", "status": None, "tags": ["plain"]},
]


def select(text, parameters=None):
    where = parse_query(text).where
    return [doc["id"] for doc in DOCS if matches(where, doc, parameters or {})]


@pytest.mark.unit
class TestParser:
    """Test parsing of the supported dialect."""

    def test_select_all(self):
        parsed = parse_query("SELECT * FROM c")
        assert not parsed.is_count
        assert parsed.alias == "c"
        assert parsed.where is None

    def test_count_projection(self):
        assert parse_query("SELECT VALUE COUNT(1) FROM c WHERE c.deleted = false").is_count

    def test_comparison_tree(self):
        parsed = parse_query("SELECT * FROM c WHERE c.price >= @min")
        assert parsed.where == Comparison(PropertyPath(("price",)), ">=", Parameter("@min"))

    def test_bang_equal_is_normalized(self):
        parsed = parse_query("SELECT * FROM c WHERE c.status != 'x'")
        assert parsed.where.operator == "<>"

    def test_precedence(self):
        parsed = parse_query("select * from c where c.a = 1 or c.b = 2 and not c.d")
        assert isinstance(parsed.where, Or)
        assert isinstance(parsed.where.terms[1], And)
        assert isinstance(parsed.where.terms[1].terms[1], Not)

    def test_in_and_not_in(self):
        parsed = parse_query("SELECT * FROM c WHERE c.s NOT IN ('a', 'b')")
        assert parsed.where == InList(
            PropertyPath(("s",)), (Literal("a"), Literal("b")), negated=True
        )

    def test_array_contains_partial(self):
        parsed = parse_query("SELECT * FROM c WHERE ARRAY_CONTAINS(c.tags, {'name': @v}, true)")
        assert isinstance(parsed.where, ArrayContains)
        assert parsed.where.partial is True

    def test_order_and_paging(self):
        parsed = parse_query(
            "SELECT * FROM c ORDER BY c.price DESC, c.id OFFSET 10 LIMIT @limit"
        )
        assert [o.descending for o in parsed.order_by] == [True, False]
        assert parsed.offset == Literal(10)
        assert parsed.limit == Parameter("@limit")

    def test_nested_path(self):
        parsed = parse_query("SELECT * FROM p WHERE p.address.city = 'Oslo'")
        assert parsed.where.left == PropertyPath(("address", "city"))

    @pytest.mark.parametrize(
        "text",
        [
            "SELECT c.id FROM c",
            "SELECT * FROM c WHERE x.price = 1",
            "SELECT * FROM c WHERE c.price =",
            "SELECT * FROM c GROUP BY c.status",
            "SELECT * FROM c WHERE c.price ~ 1",
            "SELECT * FROM c WHERE c = 1",
            "SELECT * FROM c WHERE 5",
        ],
    )
    def test_unsupported_text(self, text):
        with pytest.raises(UnsupportedSpecificationError):
            parse_query(text)

    def test_resolve_paging(self):
        assert resolve_paging(Parameter("@n"), {"@n": 3}, "LIMIT") == 3
        assert resolve_paging(None, {}, "LIMIT") is None
        with pytest.raises(UnsupportedSpecificationError):
            resolve_paging(Parameter("@n"), {"@n": -1}, "LIMIT")
        with pytest.raises(UnsupportedSpecificationError):
            resolve_paging(Parameter("@n"), {"@n": True}, "OFFSET")


@pytest.mark.unit
class TestEvaluator:
    """Test in-process condition evaluation."""

    def test_equality_and_range(self):
        assert select("SELECT * FROM c WHERE c.status = 'active'") == ["a", "c"]
        assert select("SELECT * FROM c WHERE c.price > @p", {"@p": 10}) == ["b", "c"]

    def test_missing_fields_never_match(self):
        assert select("SELECT * FROM c WHERE c.price <> 5") == ["b", "c"]

    def test_mixed_types_do_not_compare(self):
        assert select("SELECT * FROM c WHERE c.price > 'a'") == []

    def test_null_literal(self):
        assert select("SELECT * FROM c WHERE c.status = null") == ["d"]

    def test_in_list(self):
        assert select("SELECT * FROM c WHERE c.price IN (5, 25)") == ["a", "c"]
        assert select("SELECT * FROM c WHERE c.price NOT IN (5)") == ["b", "c"]

    def test_array_contains_partial_match(self):
        assert select(
            "SELECT * FROM c WHERE ARRAY_CONTAINS(c.tags, {'name': 'new'}, true)"
        ) == ["c"]

    def test_array_contains_exact_match(self):
        assert select("SELECT * FROM c WHERE ARRAY_CONTAINS(c.tags, {'name': 'new'})") == []
        assert select("SELECT * FROM c WHERE ARRAY_CONTAINS(c.tags, 'plain')") == ["d"]

    def test_constant_conditions(self):
        assert select("SELECT * FROM c WHERE 1=1") == ["a", "b", "c", "d"]
        assert select("SELECT * FROM c WHERE false") == []

    def test_unbound_parameter(self):
        with pytest.raises(UnsupportedSpecificationError, match="not bound"):
            select("SELECT * FROM c WHERE c.price = @missing")

    def test_datetimes_compare(self):
        doc = {"at": datetime(2024, 1, 2, tzinfo=timezone.utc)}
        where = parse_query("SELECT * FROM c WHERE c.at > @t").where
        assert matches(where, doc, {"@t": datetime(2024, 1, 1, tzinfo=timezone.utc)})

    def test_sort_documents(self):
        order_by = parse_query("SELECT * FROM c ORDER BY c.status, c.price DESC").order_by
        ordered = [doc["id"] for doc in sort_documents(DOCS, order_by)]
        assert ordered == ["d", "c", "a", "b"]
