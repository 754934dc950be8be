"""
In-memory source and destination adapters for tests.

FakeSource serves a fixed set of resources and can be told to fail on
particular IDs. FakeDestination records what it was asked to push and can
fail, skip or slow down individual pushes.
"""

import asyncio
from collections.abc import AsyncIterator

from appwrite_transfer.client.exceptions import NetworkError
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.destinations.base import Destination, PushResult
from appwrite_transfer.resources import Resource, ResourceScope
from appwrite_transfer.sources.base import FetchResult, Source


class FakeSource(Source):
    """Source backed by a dict of resources per type."""

    provider = "nhost"
    supported_resources = ("users", "databases", "collections", "documents", "buckets", "files")

    def __init__(
        self,
        items: dict[str, list[Resource]] | None = None,
        fail_ids: set[str] | None = None,
        unreachable: bool = False,
        config: WorkerConfig | None = None,
    ):
        super().__init__(config)
        self.items = items or {}
        self.fail_ids = fail_ids or set()
        self.unreachable = unreachable
        self.closed = 0
        self.fatal_signals = 0

    async def _count(self, resource_type: str, scope: ResourceScope | None) -> int:
        if self.unreachable:
            raise NetworkError("connection refused")
        return len(self.items.get(resource_type, []))

    async def _export(
        self, resource_type: str, scope: ResourceScope | None
    ) -> AsyncIterator[FetchResult]:
        for resource in self.items.get(resource_type, []):
            if resource.id in self.fail_ids:
                try:
                    raise ValueError("boom")
                except ValueError as e:
                    yield self.fetch_failure(resource_type, resource.id, e, resource.parents)
                continue
            yield FetchResult.success(resource)

    async def _close(self) -> None:
        self.closed += 1

    async def signal_fatal(self) -> None:
        self.fatal_signals += 1
        await super().signal_fatal()


class FakeDestination(Destination):
    """Destination that keeps pushed resources in a list."""

    provider = "appwrite"

    def __init__(
        self,
        fail_ids: set[str] | None = None,
        skip_ids: set[str] | None = None,
        delay: float = 0,
        config: WorkerConfig | None = None,
    ):
        super().__init__(config)
        self.fail_ids = fail_ids or set()
        self.skip_ids = skip_ids or set()
        self.delay = delay
        self.pushed: list[Resource] = []
        self.active = 0
        self.max_active = 0
        self.closed = 0
        self.fatal_signals = 0

    async def _push(self, resource: Resource) -> PushResult:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if resource.id in self.fail_ids:
                raise ValueError(f"rejected {resource.id}")
            if resource.id in self.skip_ids:
                return PushResult.skipped("Already exists with identical content")
            self.pushed.append(resource)
            return PushResult.success()
        finally:
            self.active -= 1

    async def _close(self) -> None:
        self.closed += 1

    async def signal_fatal(self) -> None:
        self.fatal_signals += 1
        await super().signal_fatal()


def users(*ids: str) -> list[Resource]:
    """User resources with a derived email address."""
    return [Resource(type="users", id=i, data={"email": f"{i}@example.com"}) for i in ids]


def databases(*ids: str) -> list[Resource]:
    return [Resource(type="databases", id=i, data={"name": i}) for i in ids]


def collections(database_id: str, *ids: str) -> list[Resource]:
    return [
        Resource(
            type="collections", id=i, data={"name": i}, parents=(("databases", database_id),)
        )
        for i in ids
    ]
