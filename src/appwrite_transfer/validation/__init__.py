"""Validation module for Appwrite Transfer.

This module validates list queries before they reach the state database.
"""

from appwrite_transfer.validation.query_validator import (
    MigrationQueryValidator,
    Query,
    QueryValidator,
    parse_filter_option,
)

__all__ = [
    "MigrationQueryValidator",
    "Query",
    "QueryValidator",
    "parse_filter_option",
]
