"""Base class for source adapters.

A source reports how many resources it holds and streams them out one
instance at a time. Failures to read a single instance are captured as
:class:`TransferError` values and yielded as failed results; they never
escape the adapter. Only connectivity problems during :meth:`Source.report`
are raised, as :class:`ConnectivityError`.
"""

import contextlib
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, ClassVar

from appwrite_transfer.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    ConnectivityError,
    NetworkError,
    TransferEngineError,
    TransferError,
)
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.resources import Resource, ResourceScope, get_singular
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FetchResult:
    """Outcome of reading one resource instance."""

    resource_type: str
    cache_key: str
    resource: Resource | None = None
    error: TransferError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, resource: Resource) -> "FetchResult":
        return cls(resource_type=resource.type, cache_key=resource.cache_key, resource=resource)


class Source(ABC):
    """Reads resources from one provider."""

    provider: ClassVar[str]
    supported_resources: ClassVar[tuple[str, ...]]

    # Exceptions treated as "could not read this" rather than as bugs
    fetch_errors: ClassVar[tuple[type[BaseException], ...]] = (
        TransferEngineError,
        OSError,
        ValueError,
        KeyError,
    )
    connectivity_errors: ClassVar[tuple[type[BaseException], ...]] = (
        APIError,
        NetworkError,
        OSError,
    )

    def __init__(self, config: WorkerConfig | None = None):
        self.config = config or WorkerConfig()
        self._errors: list[TransferError] = []
        self._shut_down = False

    @property
    def errors(self) -> tuple[TransferError, ...]:
        """Fetch failures captured so far, in the order they happened."""
        return tuple(self._errors)

    def record_error(
        self,
        resource_type: str,
        resource_id: str,
        message: str,
        cause: BaseException | None = None,
    ) -> TransferError:
        """Capture a fetch failure."""
        error = TransferError(get_singular(resource_type), resource_id, message, cause)
        self._errors.append(error)
        logger.warning(
            "source_fetch_failed",
            provider=self.provider,
            resource_type=resource_type,
            resource_id=resource_id,
            error=message,
        )
        return error

    def fetch_failure(
        self,
        resource_type: str,
        resource_id: str,
        cause: BaseException,
        parents: tuple[tuple[str, str], ...] = (),
    ) -> FetchResult:
        """Record a failure to read one instance and wrap it as a result."""
        error = self.record_error(resource_type, resource_id, str(cause), cause)
        cache_key = "/".join([*(parent_id for _, parent_id in parents), resource_id])
        return FetchResult(resource_type=resource_type, cache_key=cache_key, error=error)

    def supports(self, resource_type: str) -> bool:
        return resource_type in self.supported_resources

    async def report(
        self, resources: list[str], scope: ResourceScope | None = None
    ) -> dict[str, int]:
        """Count the resources of each requested type.

        Unsupported types are reported as zero.

        Raises:
            ConnectivityError: If the provider cannot be reached or rejects
                the credentials
        """
        counts: dict[str, int] = {}
        try:
            for resource_type in resources:
                if not self.supports(resource_type):
                    logger.info(
                        "resource_type_unsupported",
                        provider=self.provider,
                        resource_type=resource_type,
                    )
                    counts[resource_type] = 0
                    continue
                counts[resource_type] = await self._count(resource_type, scope)
        except (AuthenticationError, AuthorizationError) as e:
            raise ConnectivityError(f"{self.provider} source rejected the credentials: {e}") from e
        except self.connectivity_errors as e:
            raise ConnectivityError(f"Unable to reach {self.provider} source: {e}") from e

        logger.info("source_report", provider=self.provider, counts=counts)
        return counts

    async def export(
        self, resource_type: str, scope: ResourceScope | None = None
    ) -> AsyncIterator[FetchResult]:
        """Stream every instance of ``resource_type`` as fetch results.

        A failure that prevents listing the type at all is recorded with an
        empty resource ID and ends the stream for that type.
        """
        if not self.supports(resource_type):
            logger.info(
                "resource_type_unsupported", provider=self.provider, resource_type=resource_type
            )
            return

        try:
            async with contextlib.aclosing(self._export(resource_type, scope)) as results:
                async for result in results:
                    if scope is not None and result.resource is not None:
                        if not scope.includes(result.resource):
                            continue
                    yield result
        except self.fetch_errors as e:
            self.record_error(resource_type, "", f"Failed to list {resource_type}: {e}", e)

    async def shut_down(self) -> None:
        """Release connections. Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True
        await self._close()
        logger.debug("source_shut_down", provider=self.provider)

    async def signal_fatal(self) -> None:
        """Called once when the run is abandoned as failed."""
        logger.error("source_run_failed", provider=self.provider, errors=len(self._errors))

    @abstractmethod
    async def _count(self, resource_type: str, scope: ResourceScope | None) -> int:
        """Number of instances of a supported type."""

    @abstractmethod
    def _export(
        self, resource_type: str, scope: ResourceScope | None
    ) -> AsyncIterator[FetchResult]:
        """Yield results for a supported type."""

    async def _close(self) -> None:
        """Subclass hook for releasing connections."""


def require(data: dict[str, Any], *keys: str) -> None:
    """Raise ValueError naming the first missing key of a provider payload."""
    for key in keys:
        if key not in data:
            raise ValueError(f"missing field '{key}'")
