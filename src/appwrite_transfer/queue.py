"""Inbound queue messages.

A message names the project and the migration to process. Messages that
carry ``events`` are echoes of the worker's own updates and are ignored
by :meth:`MigrationWorker.handle`.
"""

import json
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from appwrite_transfer.client.exceptions import InvalidJobError


class DocumentRef(BaseModel):
    """Reference to a document by ID; accepts ``$id`` or ``id``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str = Field(min_length=1)

    @classmethod
    def from_payload(cls, value: Any) -> "DocumentRef":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(id=value)
        if isinstance(value, dict):
            return cls(id=value.get("$id") or value.get("id") or "")
        raise ValueError("expected a document or an ID")


class MigrationJob(BaseModel):
    """One ``{events, project, migration}`` queue message."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    events: list[str] = Field(default_factory=list)
    project: DocumentRef
    migration: DocumentRef

    @field_validator("project", "migration", mode="before")
    @classmethod
    def parse_reference(cls, v: Any) -> DocumentRef:
        return DocumentRef.from_payload(v)

    @property
    def is_echo(self) -> bool:
        """True when the message reports a change rather than requesting work."""
        return bool(self.events)

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> "MigrationJob":
        """Validate a decoded message.

        Raises:
            InvalidJobError: If the payload is empty or malformed
        """
        if not payload:
            raise InvalidJobError("Missing payload")
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise InvalidJobError(f"Invalid migration job: {e}") from e


def parse_lines(lines: Iterator[str]) -> Iterator[MigrationJob]:
    """Decode one JSON message per line, skipping blank lines.

    Raises:
        InvalidJobError: On a line that is not a valid message
    """
    for number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except ValueError as e:
            raise InvalidJobError(f"Line {number} is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise InvalidJobError(f"Line {number} is not a JSON object")
        yield MigrationJob.from_payload(payload)
