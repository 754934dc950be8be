"""
Shared pytest fixtures for the appwrite-transfer tests.

This module provides:
- A SQLite state database and document store under tmp_path
- A registered project and a factory for pending migrations
- An in-memory notification sink and the notifier around it
- A worker configuration tuned for fast tests
"""

from collections.abc import Callable, Generator
from typing import Any

import pytest

from appwrite_transfer.config import DatabaseConfig, PerformanceConfig, WorkerConfig
from appwrite_transfer.migration.database import StateDatabase
from appwrite_transfer.migration.documents import DocumentStore
from appwrite_transfer.migration.records import Migration, Project
from appwrite_transfer.realtime import InMemoryNotificationSink, RealtimeNotifier


@pytest.fixture
def worker_config() -> WorkerConfig:
    """Configuration with no rate limiting delays worth noticing."""
    return WorkerConfig(
        performance=PerformanceConfig(rate_limit=100, max_concurrent_pushes=3, page_size=2)
    )


@pytest.fixture
def state_database(tmp_path) -> Generator[StateDatabase, None, None]:
    """Fresh SQLite state database with all tables created."""
    database = StateDatabase(DatabaseConfig(url=f"sqlite:///{tmp_path / 'state.db'}"))
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def store(state_database: StateDatabase) -> DocumentStore:
    return DocumentStore(state_database)


@pytest.fixture
def project(store: DocumentStore) -> Project:
    """A registered tenant project."""
    return store.create_document("projects", Project(id="p1", name="Shop", team_id="t1"))


@pytest.fixture
def make_migration(store: DocumentStore, project: Project) -> Callable[..., Migration]:
    """Factory storing a pending migration owned by ``project``."""
    counter = 0

    def factory(**overrides: Any) -> Migration:
        nonlocal counter
        counter += 1
        values: dict[str, Any] = {
            "id": f"m{counter}",
            "project_id": project.id,
            "source": "nhost",
            "destination": "appwrite",
            "resources": ["users", "databases"],
        }
        values.update(overrides)
        return store.create_document("migrations", Migration(**values))

    return factory


@pytest.fixture
def sink() -> InMemoryNotificationSink:
    return InMemoryNotificationSink()


@pytest.fixture
def notifier(sink: InMemoryNotificationSink, worker_config: WorkerConfig) -> RealtimeNotifier:
    return RealtimeNotifier(sink, worker_config.platform)
