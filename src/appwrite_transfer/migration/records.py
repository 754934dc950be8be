"""Typed records for the documents the worker reads and writes.

Only the provider credentials remain a free-form map; every other field of
a migration is typed. State changes go through :meth:`Migration.advance`,
which refuses to move a record backwards.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from appwrite_transfer.client.exceptions import InvalidTransitionError


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


class Stage(StrEnum):
    """Where a migration is in its lifecycle."""

    PENDING = "pending"
    PROCESSING = "processing"
    MIGRATING = "migrating"
    FINISHED = "finished"


class Status(StrEnum):
    """Outcome of a migration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


STAGE_ORDER: dict[Stage, int] = {stage: index for index, stage in enumerate(Stage)}
TERMINAL_STATUSES = frozenset({Status.COMPLETED, Status.FAILED})


class Project(BaseModel):
    """A tenant project."""

    model_config = ConfigDict(frozen=True)

    id: str
    internal_id: int | None = None
    name: str = ""
    team_id: str = ""


class ApiKey(BaseModel):
    """An API key document. The secret never leaves this process in logs."""

    model_config = ConfigDict(frozen=True)

    id: str
    internal_id: int | None = None
    project_id: str
    project_internal_id: int | None = None
    name: str
    scopes: tuple[str, ...] = ()
    expire: datetime | None = None
    secret: str = Field(repr=False)
    sdks: tuple[str, ...] = ()
    accessed_at: datetime | None = None


class Migration(BaseModel):
    """The authoritative migration record.

    ``resource_data`` and ``status_counters`` hold JSON text exactly as it is
    stored and published, so they round-trip unchanged.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = ""
    internal_id: int | None = None
    project_id: str = ""
    source: str = ""
    destination: str = ""
    credentials: dict[str, Any] = Field(default_factory=dict, repr=False)
    resources: list[str] = Field(default_factory=list)
    resource_id: str | None = None
    resource_type: str | None = None
    stage: Stage = Stage.PENDING
    status: Status = Status.PENDING
    resource_data: str = "{}"
    status_counters: str = "{}"
    errors: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_empty(self) -> bool:
        """True for a placeholder returned when nothing was stored."""
        return not self.id

    @property
    def is_terminal(self) -> bool:
        """True once the migration finished as completed or failed."""
        return self.status in TERMINAL_STATUSES

    def advance(self, stage: Stage | None = None, status: Status | None = None) -> None:
        """Move the record forward.

        Args:
            stage: New stage; must not precede the current one
            status: New status; a terminal status can never change

        Raises:
            InvalidTransitionError: On a backwards or post-terminal change
        """
        if self.is_terminal and status is not None and status != self.status:
            raise InvalidTransitionError(
                f"Migration {self.id} already {self.status}; cannot become {status}"
            )
        if stage is not None and STAGE_ORDER[stage] < STAGE_ORDER[self.stage]:
            raise InvalidTransitionError(
                f"Migration {self.id} cannot move from stage {self.stage} back to {stage}"
            )
        if stage is not None:
            self.stage = stage
        if status is not None:
            self.status = status

    def restart(self) -> None:
        """Begin a fresh pass: errors cleared, back to processing.

        A record left in ``processing`` or ``migrating`` by a crashed worker
        is restarted from the beginning when its job is delivered again.

        Raises:
            InvalidTransitionError: If the migration already finished
        """
        if self.is_terminal:
            raise InvalidTransitionError(f"Migration {self.id} already {self.status}")
        self.errors = []
        self.stage = Stage.PROCESSING
        self.status = Status.PROCESSING

    def add_errors(self, messages: list[str]) -> None:
        """Append formatted error messages."""
        self.errors = [*self.errors, *messages]

    def to_public_dict(self) -> dict[str, Any]:
        """Document as published to live-update subscribers.

        Credentials are never included.
        """
        return {
            "$id": self.id,
            "$createdAt": self.created_at.isoformat(),
            "$updatedAt": self.updated_at.isoformat(),
            "status": str(self.status),
            "stage": str(self.stage),
            "source": self.source,
            "destination": self.destination,
            "resources": list(self.resources),
            "resourceId": self.resource_id,
            "resourceType": self.resource_type,
            "statusCounters": self.status_counters,
            "resourceData": self.resource_data,
            "errors": list(self.errors),
        }
