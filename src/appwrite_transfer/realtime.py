"""Live-update notifications for migration records.

Every persisted change to a migration is published twice: once to the
console project (the dashboard) and once to the project that owns the
migration. Delivery goes through a :class:`NotificationSink`; which sink
is used is a configuration choice.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from appwrite_transfer.client.exceptions import ConfigurationError
from appwrite_transfer.config import PlatformConfig, RealtimeConfig
from appwrite_transfer.migration.records import Migration, Project
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)

CHANNELS = ("console",)


class NotificationSink(Protocol):
    """Delivers one event to subscribers of a project."""

    async def send(
        self,
        project_id: str,
        payload: dict[str, Any],
        events: list[str],
        channels: list[str],
        roles: list[str],
    ) -> None: ...


def generate_events(pattern: str, migration_id: str) -> list[str]:
    """Expand an event pattern into the names subscribers listen on.

    Examples:
        >>> generate_events("migrations.[migrationId].update", "m1")
        ['migrations.m1.update', 'migrations.*.update', 'migrations.m1', 'migrations.*']
    """
    parts = pattern.split(".")
    if len(parts) < 2 or not parts[1].startswith("["):
        raise ValueError(f"Unsupported event pattern: {pattern}")

    collection, action = parts[0], ".".join(parts[2:])
    events = []
    for identifier in (migration_id, "*"):
        if action:
            events.append(f"{collection}.{identifier}.{action}")
    for identifier in (migration_id, "*"):
        events.append(f"{collection}.{identifier}")
    return events


@dataclass
class SentNotification:
    project_id: str
    payload: dict[str, Any]
    events: list[str]
    channels: list[str]
    roles: list[str]


@dataclass
class InMemoryNotificationSink:
    """Keeps every notification in a list."""

    sent: list[SentNotification] = field(default_factory=list)

    async def send(
        self,
        project_id: str,
        payload: dict[str, Any],
        events: list[str],
        channels: list[str],
        roles: list[str],
    ) -> None:
        self.sent.append(SentNotification(project_id, payload, events, channels, roles))


class LoggingNotificationSink:
    """Writes notifications to the structured log."""

    async def send(
        self,
        project_id: str,
        payload: dict[str, Any],
        events: list[str],
        channels: list[str],
        roles: list[str],
    ) -> None:
        logger.info(
            "realtime_notification",
            target_project_id=project_id,
            events=events,
            channels=channels,
            roles=roles,
            status=payload.get("status"),
            stage=payload.get("stage"),
        )


class HttpNotificationSink:
    """POSTs notifications as JSON to a realtime gateway."""

    def __init__(
        self,
        url: str,
        timeout: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def send(
        self,
        project_id: str,
        payload: dict[str, Any],
        events: list[str],
        channels: list[str],
        roles: list[str],
    ) -> None:
        response = await self.client.post(
            self.url,
            json={
                "projectId": project_id,
                "payload": payload,
                "events": events,
                "channels": channels,
                "roles": roles,
            },
        )
        response.raise_for_status()

    async def close(self) -> None:
        await self.client.aclose()


class RealtimeNotifier:
    """Publishes migration updates to the console and the owning project."""

    def __init__(self, sink: NotificationSink, platform: PlatformConfig | None = None):
        self.sink = sink
        self.platform = platform or PlatformConfig()

    async def migration_updated(self, migration: Migration, project: Project) -> None:
        """Send the update event for ``migration``.

        Raises:
            Whatever the sink raises; callers decide whether that matters
        """
        payload = migration.to_public_dict()
        events = generate_events("migrations.[migrationId].update", migration.id)
        channels = list(CHANNELS)
        roles = [f"team:{project.team_id}"]

        for target in (self.platform.console_project_id, project.id):
            await self.sink.send(target, payload, events, channels, roles)

        logger.debug(
            "migration_update_published",
            events=events,
            status=payload["status"],
            stage=payload["stage"],
        )


def create_sink(config: RealtimeConfig) -> NotificationSink:
    """Build the sink named by the configuration."""
    if config.sink == "http":
        if not config.url:
            raise ConfigurationError("realtime.url is required for the http sink")
        return HttpNotificationSink(config.url, timeout=config.timeout)
    if config.sink == "memory":
        return InMemoryNotificationSink()
    return LoggingNotificationSink()
