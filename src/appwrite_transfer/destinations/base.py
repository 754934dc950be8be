"""Base class for destination adapters.

A destination writes one resource instance at a time. Every outcome is
returned as a :class:`PushResult`; failures are additionally captured as
:class:`TransferError` values in :attr:`Destination.errors` and are never
raised to the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar

from appwrite_transfer.client.exceptions import TransferEngineError, TransferError
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.resources import Resource
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


class PushStatus(StrEnum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class PushResult:
    """Outcome of writing one resource instance."""

    status: PushStatus
    message: str = ""

    @classmethod
    def success(cls) -> "PushResult":
        return cls(PushStatus.SUCCESS)

    @classmethod
    def skipped(cls, message: str = "") -> "PushResult":
        return cls(PushStatus.SKIPPED, message)


class Destination(ABC):
    """Writes resources into one provider."""

    provider: ClassVar[str]

    push_errors: ClassVar[tuple[type[BaseException], ...]] = (
        TransferEngineError,
        OSError,
        ValueError,
        KeyError,
    )

    def __init__(self, config: WorkerConfig | None = None):
        self.config = config or WorkerConfig()
        self._errors: list[TransferError] = []
        self._shut_down = False

    @property
    def errors(self) -> tuple[TransferError, ...]:
        """Push failures captured so far, in the order they happened."""
        return tuple(self._errors)

    def record_error(
        self, resource: Resource, message: str, cause: BaseException | None = None
    ) -> TransferError:
        """Capture a push failure."""
        error = TransferError(resource.name, resource.id, message, cause)
        self._errors.append(error)
        logger.warning(
            "destination_push_failed",
            provider=self.provider,
            resource_type=resource.type,
            resource_id=resource.cache_key,
            error=message,
        )
        return error

    async def push(self, resource: Resource) -> PushResult:
        """Write one resource.

        Returns:
            success, skipped (already present and unchanged) or error
        """
        try:
            return await self._push(resource)
        except self.push_errors as e:
            error = self.record_error(resource, str(e), e)
            return PushResult(PushStatus.ERROR, error.message)

    async def shut_down(self) -> None:
        """Release connections. Safe to call more than once."""
        if self._shut_down:
            return
        self._shut_down = True
        await self._close()
        logger.debug("destination_shut_down", provider=self.provider)

    async def signal_fatal(self) -> None:
        """Called once when the run is abandoned as failed."""
        logger.error("destination_run_failed", provider=self.provider, errors=len(self._errors))

    @abstractmethod
    async def _push(self, resource: Resource) -> PushResult:
        """Write ``resource``; raise on failure."""

    async def _close(self) -> None:
        """Subclass hook for releasing connections."""
