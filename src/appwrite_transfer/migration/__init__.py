"""
Migration module for appwrite-transfer.

This module provides the state database, typed records, the temporary
credential lifecycle, the transfer coordinator and the worker state
machine.
"""

from appwrite_transfer.migration.records import (
    ApiKey,
    Migration,
    Project,
    Stage,
    Status,
)

__all__ = [
    "ApiKey",
    "Migration",
    "Project",
    "Stage",
    "Status",
]
