"""
Transfer coordinator.

Runs the resource loop between one source and one destination:

- requested types are processed in dependency order (a type starts only
  after every instance of the previous type has been attempted)
- each instance is registered as pending, then pushed with bounded
  concurrency
- fetch failures are recorded as errors and never pushed
- after each instance completes, the progress sink receives a snapshot

The coordinator loop is the only writer of progress checkpoints. A sink
that raises aborts the run: in-flight pushes are cancelled and the
exception propagates.
"""

import asyncio
import contextlib
import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

from appwrite_transfer.destinations.base import Destination, PushResult, PushStatus
from appwrite_transfer.resources import (
    RESOURCE_REGISTRY,
    Resource,
    ResourceScope,
    ResourceTypeInfo,
)
from appwrite_transfer.sources.base import FetchResult, Source
from appwrite_transfer.utils.logging import get_logger, log_migration_progress

logger = get_logger(__name__)

PENDING = "pending"
COUNTER_KEYS = (
    PENDING,
    PushStatus.SUCCESS.value,
    PushStatus.SKIPPED.value,
    PushStatus.ERROR.value,
)


@dataclass
class TransferRecord:
    """Per-instance status kept in the transfer cache."""

    status: str = PENDING
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"status": self.status, "message": self.message}


class TransferCache:
    """Statuses of every instance seen in a run, keyed by type then cache key.

    Guarded by a lock so snapshots can be taken from other threads while
    pushes complete.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, TransferRecord]] = {}
        self._lock = threading.Lock()

    def register_type(self, resource_type: str) -> None:
        with self._lock:
            self._records.setdefault(resource_type, {})

    def set(self, resource_type: str, cache_key: str, status: str, message: str = "") -> None:
        with self._lock:
            self._records.setdefault(resource_type, {})[cache_key] = TransferRecord(
                status, message
            )

    def snapshot(self) -> dict[str, dict[str, dict[str, str]]]:
        with self._lock:
            return {
                resource_type: {key: record.to_dict() for key, record in records.items()}
                for resource_type, records in self._records.items()
            }

    def counters(self) -> dict[str, dict[str, int]]:
        with self._lock:
            counters: dict[str, dict[str, int]] = {}
            for resource_type, records in self._records.items():
                counts = dict.fromkeys(COUNTER_KEYS, 0)
                for record in records.values():
                    counts[record.status] = counts.get(record.status, 0) + 1
                counters[resource_type] = counts
            return counters


@dataclass(frozen=True)
class TransferSnapshot:
    """Progress after one instance completed."""

    resource_type: str
    cache_key: str
    status: str
    message: str = ""
    cache: dict[str, Any] = field(default_factory=dict)
    counters: dict[str, dict[str, int]] = field(default_factory=dict)


class ProgressSink(Protocol):
    """Receives a snapshot after every completed instance."""

    async def report(self, snapshot: TransferSnapshot) -> None: ...


class Transfer:
    """Moves resources from a source into a destination."""

    def __init__(
        self,
        source: Source,
        destination: Destination,
        max_concurrent: int = 5,
        registry: dict[str, ResourceTypeInfo] | None = None,
    ):
        """Initialize transfer.

        Args:
            source: Adapter to read from
            destination: Adapter to write into
            max_concurrent: Maximum pushes in flight within one type
            registry: Resource type registry used for ordering
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.source = source
        self.destination = destination
        self.max_concurrent = max_concurrent
        self.registry = registry if registry is not None else RESOURCE_REGISTRY
        self._cache = TransferCache()

    def _ordered(self, resources: list[str], scope: ResourceScope | None) -> list[str]:
        ordered = []
        for resource_type in dict.fromkeys(resources):
            if resource_type not in self.registry:
                logger.warning("transfer_unknown_resource_type", resource_type=resource_type)
                continue
            if scope is not None and not scope.includes_type(resource_type):
                logger.info(
                    "transfer_resource_type_out_of_scope",
                    resource_type=resource_type,
                    scope_type=scope.resource_type,
                )
                continue
            ordered.append(resource_type)
        return sorted(ordered, key=lambda x: self.registry[x].migration_order)

    async def run(
        self,
        resources: list[str],
        progress: ProgressSink,
        resource_id: str | None = None,
        resource_type: str | None = None,
    ) -> None:
        """Transfer every requested resource type.

        Args:
            resources: Requested resource types, in any order
            progress: Sink called after each completed instance
            resource_id: Optional root resource to scope the run to
            resource_type: Type of ``resource_id``

        Raises:
            Exception: Whatever the progress sink raised
        """
        scope = None
        if resource_id and resource_type:
            scope = ResourceScope(resource_type=resource_type, resource_id=resource_id)

        types = self._ordered(resources, scope)
        for name in types:
            self._cache.register_type(name)

        logger.info("transfer_started", resource_types=types, max_concurrent=self.max_concurrent)

        for name in types:
            await self._run_type(name, scope, progress)
            log_migration_progress(logger, name, self._cache.counters().get(name, {}))

        logger.info("transfer_finished", counters=self._cache.counters())

    async def _run_type(
        self, resource_type: str, scope: ResourceScope | None, progress: ProgressSink
    ) -> None:
        in_flight: set[asyncio.Task[tuple[Resource, PushResult]]] = set()

        try:
            async with contextlib.aclosing(self.source.export(resource_type, scope)) as results:
                async for result in results:
                    resource = result.resource
                    if not result.ok or resource is None:
                        await self._complete_failed_fetch(result, progress)
                        continue

                    self._cache.set(resource_type, resource.cache_key, PENDING)

                    if len(in_flight) >= self.max_concurrent:
                        await self._drain(in_flight, progress)

                    in_flight.add(asyncio.create_task(self._push(resource)))

            while in_flight:
                await self._drain(in_flight, progress)
        finally:
            if in_flight:
                for task in in_flight:
                    task.cancel()
                await asyncio.gather(*in_flight, return_exceptions=True)
                logger.warning(
                    "transfer_pushes_cancelled", resource_type=resource_type, count=len(in_flight)
                )

    async def _push(self, resource: Resource) -> tuple[Resource, PushResult]:
        return resource, await self.destination.push(resource)

    async def _drain(
        self,
        in_flight: set[asyncio.Task[tuple[Resource, PushResult]]],
        progress: ProgressSink,
    ) -> None:
        """Wait for at least one push to finish and report each completed one.

        Finished tasks are removed from ``in_flight`` in place.
        """
        done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
        in_flight.difference_update(done)
        for task in done:
            resource, result = task.result()
            status = result.status.value
            self._cache.set(resource.type, resource.cache_key, status, result.message)
            await progress.report(
                self._snapshot(resource.type, resource.cache_key, status, result.message)
            )

    async def _complete_failed_fetch(self, result: FetchResult, progress: ProgressSink) -> None:
        message = result.error.message if result.error is not None else ""
        self._cache.set(result.resource_type, result.cache_key, PushStatus.ERROR.value, message)
        await progress.report(
            self._snapshot(result.resource_type, result.cache_key, PushStatus.ERROR.value, message)
        )

    def _snapshot(
        self, resource_type: str, cache_key: str, status: str, message: str
    ) -> TransferSnapshot:
        return TransferSnapshot(
            resource_type=resource_type,
            cache_key=cache_key,
            status=status,
            message=message,
            cache=self.get_cache(),
            counters=self.get_status_counters(),
        )

    def get_cache(self) -> dict[str, dict[str, dict[str, str]]]:
        """Copy of every instance's status: ``{type: {cache_key: {status, message}}}``."""
        return copy.deepcopy(self._cache.snapshot())

    def get_status_counters(self) -> dict[str, dict[str, int]]:
        """Per-type counts of pending, success, skipped and error instances."""
        return self._cache.counters()
