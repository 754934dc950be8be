"""
Shared test fixtures for appwrite-transfer.

Usage:
    from tests.fixtures import FakeSource, FakeDestination, users, databases
"""

from tests.fixtures.adapters import (
    FakeDestination,
    FakeSource,
    collections,
    databases,
    users,
)

__all__ = [
    "FakeDestination",
    "FakeSource",
    "collections",
    "databases",
    "users",
]
