"""
Document-level access to the platform database.

DocumentStore exposes the handful of operations the worker needs
(get/create/update/delete by collection and ID, cache purge and filtered
listing) and converts between SQLAlchemy rows and typed records.
"""

import threading
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy import String, cast, select

from appwrite_transfer.client.exceptions import PersistenceError
from appwrite_transfer.migration.database import StateDatabase
from appwrite_transfer.migration.models import Base, KeyRow, MigrationRow, ProjectRow
from appwrite_transfer.migration.records import ApiKey, Migration, Project, utc_now
from appwrite_transfer.utils.logging import get_logger
from appwrite_transfer.validation.query_validator import MigrationQueryValidator, Query

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

COLLECTIONS: dict[str, tuple[type[Base], type[BaseModel]]] = {
    "projects": (ProjectRow, Project),
    "keys": (KeyRow, ApiKey),
    "migrations": (MigrationRow, Migration),
}

# Only project documents are read often enough to be worth caching
CACHED_COLLECTIONS = frozenset({"projects"})

MIGRATION_QUERY_COLUMNS = {
    "$id": MigrationRow.id,
    "$createdAt": MigrationRow.created_at,
    "$updatedAt": MigrationRow.updated_at,
    "status": MigrationRow.status,
    "source": MigrationRow.source,
    "resources": MigrationRow.resources,
    "statusCounters": MigrationRow.status_counters,
    "resourceData": MigrationRow.resource_data,
    "errors": MigrationRow.errors,
}

DEFAULT_LIST_LIMIT = 25


def _column_names(row_cls: type[Base]) -> set[str]:
    return {column.key for column in row_cls.__table__.columns}


def _to_column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return list(value)
    return value


def _as_utc(value: Any) -> Any:
    # SQLite hands timezone-aware columns back as naive datetimes
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class DocumentStore:
    """
    Collection/ID access to projects, keys and migrations.

    Reads of ``projects`` are cached until purged with
    :meth:`purge_cached_document`. The cache is guarded by a lock because
    the worker persists from a thread pool.
    """

    def __init__(self, database: StateDatabase):
        self.database = database
        self._cache: dict[tuple[str, str], BaseModel] = {}
        self._cache_lock = threading.Lock()
        self._query_validator = MigrationQueryValidator()

    @staticmethod
    def _collection(collection: str) -> tuple[type[Base], type[BaseModel]]:
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise PersistenceError(f"Unknown collection: {collection}") from None

    @staticmethod
    def _to_record(row: Base, record_cls: type[RecordT]) -> RecordT:
        values = {
            name: _as_utc(getattr(row, name))
            for name in _column_names(type(row))
            if name in record_cls.model_fields
        }
        return record_cls.model_validate(values)

    @staticmethod
    def _apply(row: Base, record: BaseModel) -> None:
        columns = _column_names(type(row))
        for name, value in record.model_dump().items():
            if name in columns and name != "internal_id":
                setattr(row, name, _to_column_value(value))

    def get_document(self, collection: str, document_id: str) -> Any:
        """
        Fetch a document by ID.

        Returns:
            The typed record, or None when it does not exist

        Raises:
            PersistenceError: If the database cannot be read
        """
        row_cls, record_cls = self._collection(collection)
        cache_key = (collection, document_id)

        if collection in CACHED_COLLECTIONS:
            with self._cache_lock:
                cached = self._cache.get(cache_key)
            if cached is not None:
                return cached

        with self.database.session() as session:
            row = session.scalar(select(row_cls).where(row_cls.id == document_id))
            record = self._to_record(row, record_cls) if row is not None else None

        if record is not None and collection in CACHED_COLLECTIONS:
            with self._cache_lock:
                self._cache[cache_key] = record

        return record

    def create_document(self, collection: str, record: RecordT) -> RecordT:
        """
        Insert a new document.

        Returns:
            The stored record with its internal ID

        Raises:
            PersistenceError: If the insert fails (including duplicate IDs)
        """
        row_cls, record_cls = self._collection(collection)
        now = utc_now()

        with self.database.session() as session:
            row = row_cls()
            self._apply(row, record)
            if "created_at" in _column_names(row_cls):
                row.created_at = getattr(record, "created_at", None) or now
                row.updated_at = now
            session.add(row)
            session.flush()
            stored = self._to_record(row, record_cls)

        logger.debug("document_created", collection=collection, document_id=stored.id)
        return stored

    def update_document(self, collection: str, document_id: str, record: RecordT) -> RecordT:
        """
        Overwrite a document with the fields of ``record``.

        ``updated_at`` is refreshed and written back onto ``record`` when the
        record carries one.

        Raises:
            PersistenceError: If the document does not exist or the update fails
        """
        row_cls, record_cls = self._collection(collection)
        now = utc_now()

        with self.database.session() as session:
            row = session.scalar(select(row_cls).where(row_cls.id == document_id))
            if row is None:
                raise PersistenceError(f"Document not found: {collection}/{document_id}")
            self._apply(row, record)
            if "updated_at" in _column_names(row_cls):
                row.updated_at = now
            session.flush()
            stored = self._to_record(row, record_cls)

        if "updated_at" in type(record).model_fields and not record.model_config.get("frozen"):
            record.updated_at = stored.updated_at  # type: ignore[attr-defined]

        self.purge_cached_document(collection, document_id)
        return stored

    def delete_document(self, collection: str, document_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted, False if it did not exist
        """
        row_cls, _ = self._collection(collection)

        with self.database.session() as session:
            row = session.scalar(select(row_cls).where(row_cls.id == document_id))
            if row is None:
                deleted = False
            else:
                session.delete(row)
                deleted = True

        self.purge_cached_document(collection, document_id)
        logger.debug(
            "document_deleted", collection=collection, document_id=document_id, deleted=deleted
        )
        return deleted

    def purge_cached_document(self, collection: str, document_id: str) -> None:
        """Drop any cached copy of a document."""
        with self._cache_lock:
            self._cache.pop((collection, document_id), None)

    def find_migrations(
        self, project_id: str, queries: list[Query] | None = None
    ) -> list[Migration]:
        """
        List the migrations of a project.

        Args:
            project_id: Owning project
            queries: Validated list queries (filters, order, limit, offset, cursor)

        Returns:
            Matching migration records

        Raises:
            QueryValidationError: If a query is not allowed
            PersistenceError: If the database cannot be read
        """
        queries = self._query_validator.validate(list(queries or []))

        statement = select(MigrationRow).where(MigrationRow.project_id == project_id)
        limit = DEFAULT_LIST_LIMIT
        offset = 0
        cursor: str | None = None
        ordered = False

        for query in queries:
            if query.method == "limit":
                limit = query.values[0]
            elif query.method == "offset":
                offset = query.values[0]
            elif query.method == "cursorAfter":
                cursor = query.values[0]
            elif query.method == "orderAsc":
                statement = statement.order_by(MIGRATION_QUERY_COLUMNS[query.attribute].asc())
                ordered = True
            elif query.method == "orderDesc":
                statement = statement.order_by(MIGRATION_QUERY_COLUMNS[query.attribute].desc())
                ordered = True
            else:
                statement = statement.where(self._filter_clause(query))

        statement = statement.order_by(MigrationRow.internal_id.asc())

        with self.database.session() as session:
            if cursor is not None:
                if ordered:
                    raise PersistenceError("cursorAfter cannot be combined with custom ordering")
                anchor = session.scalar(
                    select(MigrationRow.internal_id).where(MigrationRow.id == cursor)
                )
                if anchor is None:
                    raise PersistenceError(f"Cursor document not found: {cursor}")
                statement = statement.where(MigrationRow.internal_id > anchor)

            rows = session.scalars(statement.limit(limit).offset(offset)).all()
            return [self._to_record(row, Migration) for row in rows]

    @staticmethod
    def _filter_clause(query: Query) -> Any:
        column = MIGRATION_QUERY_COLUMNS[query.attribute]
        values = list(query.values)
        if query.attribute in ("$createdAt", "$updatedAt"):
            values = [_as_utc(datetime.fromisoformat(value)) for value in values]

        if query.method == "contains":
            # JSON arrays are matched on their serialized form
            text = cast(column, String)
            clause = text.like(f'%"{values[0]}"%')
            for value in values[1:]:
                clause = clause | text.like(f'%"{value}"%')
            return clause
        if query.method == "equal":
            return column.in_(values)
        if query.method == "notEqual":
            return column.not_in(values)
        if query.method == "lessThan":
            return column < values[0]
        if query.method == "greaterThan":
            return column > values[0]
        if query.method == "startsWith":
            return column.startswith(values[0])
        raise PersistenceError(f"Unsupported query method: {query.method}")
