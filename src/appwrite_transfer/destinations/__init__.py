"""Destination adapters."""

from appwrite_transfer.destinations.base import Destination, PushResult, PushStatus

__all__ = [
    "Destination",
    "PushResult",
    "PushStatus",
]
