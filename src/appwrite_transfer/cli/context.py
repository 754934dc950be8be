"""
CLI context for appwrite-transfer.

This module provides the context object that is passed to all CLI commands,
containing configuration, the state database and the worker.
"""

from dataclasses import dataclass, field
from pathlib import Path

from appwrite_transfer.config import WorkerConfig, load_config
from appwrite_transfer.migration.credentials import CredentialManager
from appwrite_transfer.migration.database import StateDatabase
from appwrite_transfer.migration.documents import DocumentStore
from appwrite_transfer.migration.worker import MigrationWorker
from appwrite_transfer.realtime import RealtimeNotifier, create_sink
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TransferContext:
    """
    Context object for CLI commands.

    Holds configuration and lazily created services shared across
    commands. It is passed via Click's context mechanism.

    Attributes:
        config_path: Optional path to a YAML configuration file
        log_level: Console logging level
        log_file: Optional log file path
    """

    config_path: Path | None = None
    log_level: str = "INFO"
    log_file: Path | None = None

    # Lazy-loaded attributes
    _config: WorkerConfig | None = field(default=None, init=False, repr=False)
    _database: StateDatabase | None = field(default=None, init=False, repr=False)
    _store: DocumentStore | None = field(default=None, init=False, repr=False)
    _worker: MigrationWorker | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> WorkerConfig:
        """Get or load worker configuration."""
        if self._config is None:
            logger.debug("config_loading", config_path=str(self.config_path))
            self._config = load_config(self.config_path)
            logger.debug("config_loaded")
        return self._config

    @property
    def database(self) -> StateDatabase:
        """Get or open the state database."""
        if self._database is None:
            self._database = StateDatabase(self.config.database)
        return self._database

    @property
    def store(self) -> DocumentStore:
        """Get or create the document store."""
        if self._store is None:
            self._store = DocumentStore(self.database)
        return self._store

    @property
    def worker(self) -> MigrationWorker:
        """Get or create the migration worker."""
        if self._worker is None:
            config = self.config
            self._worker = MigrationWorker(
                store=self.store,
                credentials=CredentialManager(self.store, config.platform),
                notifier=RealtimeNotifier(create_sink(config.realtime), config.platform),
                config=config,
            )
        return self._worker

    def cleanup(self) -> None:
        """Release the database engine."""
        if self._database is not None:
            logger.debug("database_disposing")
            self._database.dispose()

    def __enter__(self) -> "TransferContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
