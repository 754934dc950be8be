"""Source adapters."""

from appwrite_transfer.sources.base import FetchResult, Source

__all__ = [
    "FetchResult",
    "Source",
]
