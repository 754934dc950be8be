"""Validation of list queries against migration records.

Queries use the platform's JSON form, for example
``{"method": "equal", "attribute": "status", "values": ["failed"]}``.
Only a fixed set of attributes may be filtered or ordered on.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from appwrite_transfer.client.exceptions import QueryValidationError
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)

MAX_LIMIT = 5000
MAX_OFFSET = 5000

SCALAR_FILTERS = frozenset({"equal", "notEqual", "lessThan", "greaterThan", "startsWith"})
ARRAY_FILTERS = frozenset({"contains"})
ORDER_METHODS = frozenset({"orderAsc", "orderDesc"})
PAGING_METHODS = frozenset({"limit", "offset", "cursorAfter"})


@dataclass(frozen=True)
class AttributeSpec:
    """Queryable attribute of a collection."""

    key: str
    type: str  # "string" or "datetime"
    array: bool = False


@dataclass(frozen=True)
class Query:
    """One parsed list query."""

    method: str
    attribute: str | None = None
    values: tuple[Any, ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, raw: str | dict[str, Any]) -> "Query":
        """Parse a query from its JSON text or decoded mapping.

        Raises:
            QueryValidationError: If the query is not well formed
        """
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                raise QueryValidationError(f"Invalid query: {e}") from e
        if not isinstance(raw, dict) or not isinstance(raw.get("method"), str):
            raise QueryValidationError("Invalid query: a method is required")

        values = raw.get("values", [])
        if not isinstance(values, list):
            values = [values]
        attribute = raw.get("attribute")
        return cls(method=raw["method"], attribute=attribute or None, values=tuple(values))

    def to_json(self) -> str:
        """Serialize back to the JSON form."""
        payload: dict[str, Any] = {"method": self.method}
        if self.attribute is not None:
            payload["attribute"] = self.attribute
        payload["values"] = list(self.values)
        return json.dumps(payload)


class QueryValidator:
    """Validates queries against a set of allowed attributes.

    Internal attributes ``$id``, ``$createdAt`` and ``$updatedAt`` are always
    queryable in addition to the collection's allowed attributes.
    """

    def __init__(self, collection: str, attributes: list[AttributeSpec]):
        self.collection = collection
        self.attributes: dict[str, AttributeSpec] = {spec.key: spec for spec in attributes}
        for spec in (
            AttributeSpec("$id", "string"),
            AttributeSpec("$createdAt", "datetime"),
            AttributeSpec("$updatedAt", "datetime"),
        ):
            self.attributes.setdefault(spec.key, spec)

    def validate(self, queries: list[Query]) -> list[Query]:
        """Validate a list of queries.

        Args:
            queries: Parsed queries

        Returns:
            The same queries, for chaining

        Raises:
            QueryValidationError: On the first invalid query
        """
        seen_paging: set[str] = set()
        for query in queries:
            if query.method in PAGING_METHODS:
                if query.method in seen_paging:
                    raise QueryValidationError(
                        f"Invalid query: {query.method} given more than once"
                    )
                seen_paging.add(query.method)
                self._validate_paging(query)
            elif query.method in ORDER_METHODS:
                self._validate_order(query)
            elif query.method in SCALAR_FILTERS or query.method in ARRAY_FILTERS:
                self._validate_filter(query)
            else:
                raise QueryValidationError(f"Invalid query method: {query.method}")

        logger.debug("queries_validated", collection=self.collection, count=len(queries))
        return queries

    def _attribute(self, query: Query) -> AttributeSpec:
        if not query.attribute:
            raise QueryValidationError(f"Invalid query: {query.method} requires an attribute")
        spec = self.attributes.get(query.attribute)
        if spec is None:
            raise QueryValidationError(
                f"Attribute not allowed in {self.collection} queries: {query.attribute}"
            )
        return spec

    def _validate_paging(self, query: Query) -> None:
        if len(query.values) != 1:
            raise QueryValidationError(f"Invalid query: {query.method} takes exactly one value")
        value = query.values[0]

        if query.method == "cursorAfter":
            if not isinstance(value, str) or not value:
                raise QueryValidationError("Invalid cursor: must be a non-empty document ID")
            return

        if isinstance(value, bool) or not isinstance(value, int):
            raise QueryValidationError(f"Invalid {query.method}: value must be an integer")
        if query.method == "limit" and not 1 <= value <= MAX_LIMIT:
            raise QueryValidationError(f"Invalid limit: value must be between 1 and {MAX_LIMIT}")
        if query.method == "offset" and not 0 <= value <= MAX_OFFSET:
            raise QueryValidationError(f"Invalid offset: value must be between 0 and {MAX_OFFSET}")

    def _validate_order(self, query: Query) -> None:
        spec = self._attribute(query)
        if spec.array:
            raise QueryValidationError(f"Cannot order by array attribute: {spec.key}")
        if query.values:
            raise QueryValidationError(f"Invalid query: {query.method} takes no values")

    def _validate_filter(self, query: Query) -> None:
        spec = self._attribute(query)
        if not query.values:
            raise QueryValidationError(f"Invalid query: {query.method} requires at least one value")
        if spec.array and query.method not in ARRAY_FILTERS:
            raise QueryValidationError(
                f"Cannot apply {query.method} to array attribute {spec.key}; use contains"
            )
        if not spec.array and query.method in ARRAY_FILTERS:
            raise QueryValidationError(
                f"Cannot apply {query.method} to scalar attribute {spec.key}"
            )
        for value in query.values:
            if not isinstance(value, str):
                raise QueryValidationError(
                    f"Invalid value for {spec.key}: expected string, got {type(value).__name__}"
                )
            if spec.type == "datetime":
                try:
                    datetime.fromisoformat(value)
                except ValueError as e:
                    raise QueryValidationError(
                        f"Invalid value for {spec.key}: not an ISO 8601 datetime"
                    ) from e


class MigrationQueryValidator(QueryValidator):
    """Queries allowed when listing migrations."""

    ALLOWED_ATTRIBUTES = (
        AttributeSpec("status", "string"),
        AttributeSpec("source", "string"),
        AttributeSpec("resources", "string", array=True),
        AttributeSpec("statusCounters", "string"),
        AttributeSpec("resourceData", "string"),
        AttributeSpec("errors", "string", array=True),
    )

    def __init__(self) -> None:
        super().__init__("migrations", list(self.ALLOWED_ATTRIBUTES))


def parse_filter_option(option: str) -> Query:
    """Turn a CLI ``attribute=value`` filter into an equality query.

    ``attribute~value`` produces a ``contains`` query for array attributes.

    Raises:
        QueryValidationError: If the option has no operator
    """
    if "~" in option:
        attribute, _, value = option.partition("~")
        return Query("contains", attribute.strip(), (value.strip(),))
    if "=" in option:
        attribute, _, value = option.partition("=")
        return Query("equal", attribute.strip(), (value.strip(),))
    raise QueryValidationError(f"Invalid filter '{option}': expected attribute=value")
