"""
Migration worker: the state machine around one transfer run.

A run moves the migration record through

    (pending, pending) -> (processing, processing) -> (migrating, processing)
        -> (finished, completed) | (finished, failed)

persisting and publishing the record at every step. The temporary
credential issued at the start is revoked on every exit path, exactly
once, before the final record is written.
"""

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from appwrite_transfer.client.exceptions import (
    MigrationFailedError,
    MigrationNotFoundError,
    PersistenceError,
)
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.destinations.base import Destination
from appwrite_transfer.migration.credentials import CredentialManager, TemporaryCredential
from appwrite_transfer.migration.documents import DocumentStore
from appwrite_transfer.migration.errors import collect_error_messages, format_structural_error
from appwrite_transfer.migration.records import Migration, Project, Stage, Status
from appwrite_transfer.migration.transfer import Transfer, TransferSnapshot
from appwrite_transfer.providers import Provider, create_destination, create_source
from appwrite_transfer.queue import MigrationJob
from appwrite_transfer.realtime import LoggingNotificationSink, RealtimeNotifier
from appwrite_transfer.resources import ResourceScope
from appwrite_transfer.sources.base import Source
from appwrite_transfer.utils.logging import bound_migration_context, get_logger, log_error

logger = get_logger(__name__)

SourceFactory = Callable[[str, dict[str, Any], WorkerConfig], Source]
DestinationFactory = Callable[[str, dict[str, Any], WorkerConfig], Destination]


@dataclass
class MigrationRun:
    """Everything one processing attempt creates and must clean up."""

    migration: Migration
    project: Project
    credential: TemporaryCredential | None = None
    credentials: dict[str, Any] = field(default_factory=dict)
    source: Source | None = None
    destination: Destination | None = None
    transfer: Transfer | None = None
    failure: BaseException | None = None
    finalized: bool = False


class CheckpointSink:
    """Progress sink that writes transfer snapshots onto the migration record."""

    def __init__(self, worker: "MigrationWorker", run: MigrationRun):
        self.worker = worker
        self.run = run

    async def report(self, snapshot: TransferSnapshot) -> None:
        migration = self.run.migration
        migration.resource_data = json.dumps(snapshot.cache)
        migration.status_counters = json.dumps(snapshot.counters)
        await self.worker.persist(self.run)


class MigrationWorker:
    """Processes migration jobs one at a time."""

    def __init__(
        self,
        store: DocumentStore,
        credentials: CredentialManager | None = None,
        notifier: RealtimeNotifier | None = None,
        config: WorkerConfig | None = None,
        source_factory: SourceFactory | None = None,
        destination_factory: DestinationFactory | None = None,
    ):
        """Initialize worker.

        Args:
            store: Platform document store
            credentials: Temporary key manager (built from ``store`` when omitted)
            notifier: Live-update publisher (logs notifications when omitted)
            config: Worker configuration
            source_factory: Builds source adapters from (provider, credentials, config)
            destination_factory: Builds destination adapters likewise
        """
        self.config = config or WorkerConfig()
        self.store = store
        self.credentials = credentials or CredentialManager(store, self.config.platform)
        self.notifier = notifier or RealtimeNotifier(
            LoggingNotificationSink(), self.config.platform
        )
        self.source_factory = source_factory or create_source
        self.destination_factory = destination_factory or create_destination

    async def handle(self, job: MigrationJob) -> Migration | None:
        """Queue entry point.

        Change echoes and jobs for the console project are ignored.

        Returns:
            The final migration record, or None when the job was ignored
        """
        if job.is_echo:
            logger.debug("migration_job_echo_ignored", events=job.events)
            return None
        if job.project.id == self.config.platform.console_project_id:
            logger.debug("migration_job_console_ignored", migration_id=job.migration.id)
            return None
        return await self.process(job.project.id, job.migration.id)

    async def process(self, project_id: str, migration_id: str) -> Migration:
        """Run one migration to a terminal state.

        Returns:
            The final migration record

        Raises:
            MigrationNotFoundError: If the project or migration does not exist
            MigrationFailedError: If the migration finished as failed
            PersistenceError: If the final record cannot be written
        """
        project = await asyncio.to_thread(self.store.get_document, "projects", project_id)
        if project is None:
            raise MigrationNotFoundError(f"Project not found: {project_id}")

        migration = await asyncio.to_thread(self.store.get_document, "migrations", migration_id)
        if migration is None or migration.project_id != project_id:
            raise MigrationNotFoundError(f"Migration not found: {project_id}/{migration_id}")

        with bound_migration_context(project_id, migration_id):
            if migration.is_terminal:
                logger.info("migration_already_finished", status=str(migration.status))
                return migration

            run = MigrationRun(migration=migration, project=project)
            try:
                await self._execute(run)
            except Exception as e:
                run.failure = e
                self._fail(run, e)
            finally:
                await self.finalize(run)

        return migration

    async def _execute(self, run: MigrationRun) -> None:
        migration = run.migration
        logger.info(
            "migration_started",
            source=migration.source,
            destination=migration.destination,
            resources=migration.resources,
        )

        migration.restart()
        run.credential = await asyncio.to_thread(self.credentials.issue, run.project)
        run.credentials = self._platform_credentials(run)
        await self.persist(run)

        run.source = self.source_factory(migration.source, run.credentials, self.config)
        run.destination = self.destination_factory(
            migration.destination, run.credentials, self.config
        )

        scope = None
        if migration.resource_id and migration.resource_type:
            scope = ResourceScope(migration.resource_type, migration.resource_id)
        await run.source.report(migration.resources, scope)

        migration.advance(stage=Stage.MIGRATING)
        await self.persist(run)

        run.transfer = Transfer(
            run.source,
            run.destination,
            max_concurrent=self.config.performance.max_concurrent_pushes,
        )
        await run.transfer.run(
            migration.resources,
            CheckpointSink(self, run),
            resource_id=migration.resource_id,
            resource_type=migration.resource_type,
        )

        await self._shut_down_adapters(run)

        messages = collect_error_messages(run.source.errors, run.destination.errors)
        if messages:
            migration.add_errors(messages)
            migration.advance(stage=Stage.FINISHED, status=Status.FAILED)
            logger.warning("migration_finished_with_errors", errors=len(messages))
        else:
            migration.advance(stage=Stage.FINISHED, status=Status.COMPLETED)
            logger.info("migration_completed", counters=migration.status_counters)

    def _platform_credentials(self, run: MigrationRun) -> dict[str, Any]:
        """Credentials for this run's adapters.

        The platform's own endpoint and the temporary key fill only fields
        the caller left empty, so a peer-to-peer transfer keeps the
        credentials of the other instance. The result lives on the run and
        is never written back to the migration record.
        """
        migration = run.migration
        credentials = dict(migration.credentials)
        if Provider.APPWRITE not in (migration.source, migration.destination):
            return credentials

        defaults = {
            "projectId": run.project.id,
            "endpoint": self.config.platform.internal_endpoint,
            "apiKey": run.credential.secret if run.credential else None,
        }
        for key, value in defaults.items():
            if credentials.get(key) is None:
                credentials[key] = value
        return credentials

    def _fail(self, run: MigrationRun, error: Exception) -> None:
        """Mark the run failed after an error that aborted it."""
        log_error(logger, error, "migration_run")
        migration = run.migration

        messages = collect_error_messages(
            run.source.errors if run.source else (),
            run.destination.errors if run.destination else (),
        )
        messages.append(format_structural_error(error))

        migration.errors = messages
        if not migration.is_terminal:
            migration.stage = Stage.FINISHED
            migration.status = Status.FAILED

    async def finalize(self, run: MigrationRun) -> None:
        """Revoke the credential, release adapters and persist the final record.

        Runs once per run; later calls do nothing.

        Raises:
            MigrationFailedError: If the final status is failed
        """
        if run.finalized:
            return
        run.finalized = True
        migration = run.migration

        try:
            await asyncio.to_thread(self.credentials.revoke, run.credential)
        except PersistenceError as e:
            log_error(logger, e, "credential_revoke")

        await self._shut_down_adapters(run)
        await self.persist(run)

        if migration.status == Status.FAILED:
            logger.error(
                "migration_failed",
                project_internal_id=run.project.internal_id,
                migration_internal_id=migration.internal_id,
                errors=len(migration.errors),
            )
            for adapter in (run.destination, run.source):
                if adapter is not None:
                    await adapter.signal_fatal()
            raise MigrationFailedError(migration.id, migration.errors) from run.failure

    async def _shut_down_adapters(self, run: MigrationRun) -> None:
        for adapter in (run.destination, run.source):
            if adapter is None:
                continue
            try:
                await adapter.shut_down()
            except OSError as e:
                log_error(logger, e, "adapter_shut_down", provider=adapter.provider)

    async def persist(self, run: MigrationRun) -> None:
        """Write the migration record and publish the change.

        Raises:
            PersistenceError: If the record cannot be written
        """
        migration = run.migration
        await asyncio.to_thread(self.store.update_document, "migrations", migration.id, migration)
        await self._notify(run)

    async def _notify(self, run: MigrationRun) -> None:
        try:
            await self.notifier.migration_updated(run.migration, run.project)
        except Exception as e:
            logger.warning(
                "realtime_notification_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
