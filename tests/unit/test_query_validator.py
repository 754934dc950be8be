"""
Unit tests for migration list query validation.
"""

import pytest

from appwrite_transfer.client.exceptions import QueryValidationError
from appwrite_transfer.validation import MigrationQueryValidator, Query, parse_filter_option


@pytest.fixture
def validator():
    return MigrationQueryValidator()


class TestQueryParse:
    """Tests for Query.parse."""

    def test_parse_json_text(self):
        query = Query.parse('{"method": "equal", "attribute": "status", "values": ["failed"]}')

        assert query == Query("equal", "status", ("failed",))

    def test_parse_scalar_value(self):
        assert Query.parse({"method": "limit", "values": 5}).values == (5,)

    def test_round_trip_json(self):
        query = Query("contains", "resources", ("users",))

        assert Query.parse(query.to_json()) == query

    @pytest.mark.parametrize("raw", ["not json", "[]", '{"attribute": "status"}'])
    def test_malformed(self, raw):
        with pytest.raises(QueryValidationError):
            Query.parse(raw)


class TestMigrationQueryValidator:
    """Tests for allowed attributes and methods."""

    def test_valid_queries_pass_through(self, validator):
        queries = [
            Query("equal", "status", ("failed", "completed")),
            Query("contains", "resources", ("users",)),
            Query("greaterThan", "$createdAt", ("2024-01-01T00:00:00+00:00",)),
            Query("orderDesc", "$updatedAt"),
            Query("limit", values=(10,)),
            Query("offset", values=(0,)),
        ]

        assert validator.validate(queries) == queries

    def test_credentials_are_not_queryable(self, validator):
        with pytest.raises(QueryValidationError, match="not allowed"):
            validator.validate([Query("equal", "credentials", ("x",))])

    def test_unknown_method(self, validator):
        with pytest.raises(QueryValidationError, match="Invalid query method"):
            validator.validate([Query("search", "status", ("x",))])

    def test_array_attribute_requires_contains(self, validator):
        with pytest.raises(QueryValidationError, match="use contains"):
            validator.validate([Query("equal", "resources", ("users",))])

    def test_contains_on_scalar_attribute(self, validator):
        with pytest.raises(QueryValidationError):
            validator.validate([Query("contains", "status", ("failed",))])

    def test_cannot_order_by_array(self, validator):
        with pytest.raises(QueryValidationError):
            validator.validate([Query("orderAsc", "errors")])

    @pytest.mark.parametrize("value", [0, 5001, "10", True])
    def test_limit_bounds(self, validator, value):
        with pytest.raises(QueryValidationError):
            validator.validate([Query("limit", values=(value,))])

    def test_paging_given_twice(self, validator):
        with pytest.raises(QueryValidationError, match="more than once"):
            validator.validate([Query("limit", values=(1,)), Query("limit", values=(2,))])

    def test_datetime_values_must_be_iso(self, validator):
        with pytest.raises(QueryValidationError, match="ISO 8601"):
            validator.validate([Query("lessThan", "$createdAt", ("yesterday",))])

    def test_filter_needs_values(self, validator):
        with pytest.raises(QueryValidationError):
            validator.validate([Query("equal", "status")])

    def test_empty_cursor(self, validator):
        with pytest.raises(QueryValidationError):
            validator.validate([Query("cursorAfter", values=("",))])


class TestParseFilterOption:
    """Tests for the CLI filter shorthand."""

    def test_equal(self):
        assert parse_filter_option("status=failed") == Query("equal", "status", ("failed",))

    def test_contains(self):
        assert parse_filter_option("resources~users") == Query(
            "contains", "resources", ("users",)
        )

    def test_missing_operator(self):
        with pytest.raises(QueryValidationError):
            parse_filter_option("status")
