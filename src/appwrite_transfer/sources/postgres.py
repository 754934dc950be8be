"""Shared base for Postgres-backed sources (Supabase and NHost).

Both platforms keep auth users, storage metadata and application tables in
one Postgres database. The ``public`` schema is exposed as a single
database whose tables become collections and whose rows become documents.
File contents are downloaded through each platform's storage REST API.
"""

import datetime as dt
import decimal
import json
import uuid
from abc import abstractmethod
from collections.abc import AsyncIterator
from typing import Any, ClassVar, Protocol

import asyncpg

from appwrite_transfer.client.base_client import BaseAPIClient
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.resources import Resource, ResourceScope
from appwrite_transfer.sources.base import FetchResult, Source
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)

PUBLIC_SCHEMA = "public"
STRING_SIZE_DEFAULT = 1_000_000

TABLES_QUERY = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = $1 AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

COLUMNS_QUERY = """
    SELECT column_name, data_type, is_nullable, column_default, character_maximum_length
    FROM information_schema.columns
    WHERE table_schema = $1 AND table_name = $2
    ORDER BY ordinal_position
"""

PRIMARY_KEY_QUERY = """
    SELECT kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
      ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema
    WHERE tc.table_schema = $1 AND tc.table_name = $2 AND tc.constraint_type = 'PRIMARY KEY'
    ORDER BY kcu.ordinal_position
"""

INTEGER_TYPES = frozenset({"smallint", "integer", "bigint"})
FLOAT_TYPES = frozenset({"real", "double precision", "numeric", "decimal"})
DATETIME_TYPES = frozenset(
    {
        "date",
        "timestamp without time zone",
        "timestamp with time zone",
    }
)


class RowFetcher(Protocol):
    """The part of an asyncpg pool the sources use."""

    async def fetch(self, query: str, *args: Any) -> list[Any]: ...

    async def fetchval(self, query: str, *args: Any) -> Any: ...


def quote_identifier(name: str) -> str:
    """Quote a Postgres identifier."""
    return '"' + name.replace('"', '""') + '"'


def column_to_attribute(column: dict[str, Any]) -> dict[str, Any]:
    """Map an information_schema column onto an attribute definition."""
    data_type = column["data_type"]
    attribute: dict[str, Any] = {
        "key": column["column_name"],
        "required": column["is_nullable"] == "NO" and column["column_default"] is None,
        "array": data_type == "ARRAY",
    }

    if data_type in INTEGER_TYPES:
        attribute["type"] = "integer"
    elif data_type in FLOAT_TYPES:
        attribute["type"] = "float"
    elif data_type == "boolean":
        attribute["type"] = "boolean"
    elif data_type in DATETIME_TYPES:
        attribute["type"] = "datetime"
    else:
        attribute["type"] = "string"
        size = column.get("character_maximum_length")
        attribute["size"] = size if size else (36 if data_type == "uuid" else STRING_SIZE_DEFAULT)

    return attribute


def convert_value(value: Any) -> Any:
    """Convert a column value into a JSON-compatible document value."""
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (dict,)):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        return [convert_value(item) for item in value]
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return value


class PostgresSource(Source):
    """Base for sources that read users, tables and storage from Postgres."""

    supported_resources = (
        "users",
        "databases",
        "collections",
        "documents",
        "buckets",
        "files",
    )

    fetch_errors = Source.fetch_errors + (asyncpg.PostgresError, asyncpg.InterfaceError)
    connectivity_errors = Source.connectivity_errors + (
        asyncpg.PostgresError,
        asyncpg.InterfaceError,
    )

    users_query: ClassVar[str]
    users_count_query: ClassVar[str]
    buckets_query: ClassVar[str]
    buckets_count_query: ClassVar[str]
    files_query: ClassVar[str]
    files_count_query: ClassVar[str]

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        username: str,
        password: str,
        storage: BaseAPIClient,
        config: WorkerConfig | None = None,
        pool: RowFetcher | None = None,
    ):
        super().__init__(config)
        self.host = host
        self.port = port
        self.database = database
        self.username = username
        self._password = password
        self.storage = storage
        self.page_size = self.config.performance.page_size
        self._pool: RowFetcher | None = pool
        self._owns_pool = pool is None

    async def _db(self) -> RowFetcher:
        if self._pool is None:
            logger.debug("postgres_pool_connecting", host=self.host, database=self.database)
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self._password,
                min_size=1,
                max_size=4,
                timeout=self.config.performance.request_timeout,
                statement_cache_size=0,
            )
        return self._pool

    async def _tables(self, scope: ResourceScope | None) -> list[str]:
        if scope is not None and scope.resource_type == "databases":
            if scope.resource_id != PUBLIC_SCHEMA:
                return []
        db = await self._db()
        tables = [row["table_name"] for row in await db.fetch(TABLES_QUERY, PUBLIC_SCHEMA)]
        if scope is not None and scope.resource_type == "collections":
            tables = [table for table in tables if table == scope.resource_id]
        return tables

    async def _count(self, resource_type: str, scope: ResourceScope | None) -> int:
        db = await self._db()
        if resource_type == "users":
            return int(await db.fetchval(self.users_count_query))
        if resource_type == "databases":
            return 1
        if resource_type == "collections":
            return len(await self._tables(scope))
        if resource_type == "documents":
            total = 0
            for table in await self._tables(scope):
                relation = f"{quote_identifier(PUBLIC_SCHEMA)}.{quote_identifier(table)}"
                total += int(await db.fetchval(f"SELECT COUNT(*) FROM {relation}"))
            return total
        if resource_type == "buckets":
            return int(await db.fetchval(self.buckets_count_query))
        if resource_type == "files":
            return int(await db.fetchval(self.files_count_query))
        return 0

    async def _export(
        self, resource_type: str, scope: ResourceScope | None
    ) -> AsyncIterator[FetchResult]:
        db = await self._db()

        if resource_type == "users":
            for row in await db.fetch(self.users_query):
                user_id = str(row["id"])
                try:
                    yield FetchResult.success(
                        Resource(type="users", id=user_id, data=self.convert_user(dict(row)))
                    )
                except self.fetch_errors as e:
                    yield self.fetch_failure("users", user_id, e)

        elif resource_type == "databases":
            yield FetchResult.success(
                Resource(type="databases", id=PUBLIC_SCHEMA, data={"name": PUBLIC_SCHEMA})
            )

        elif resource_type == "collections":
            for table in await self._tables(scope):
                yield await self._collection(db, table)

        elif resource_type == "documents":
            for table in await self._tables(scope):
                async for result in self._documents(db, table):
                    yield result

        elif resource_type == "buckets":
            for row in await db.fetch(self.buckets_query):
                bucket_id = str(row["id"])
                try:
                    yield FetchResult.success(
                        Resource(type="buckets", id=bucket_id, data=self.convert_bucket(dict(row)))
                    )
                except self.fetch_errors as e:
                    yield self.fetch_failure("buckets", bucket_id, e)

        elif resource_type == "files":
            for row in await db.fetch(self.files_query):
                yield await self._file(dict(row))

    async def _collection(self, db: RowFetcher, table: str) -> FetchResult:
        parents = (("databases", PUBLIC_SCHEMA),)
        try:
            columns = [dict(row) for row in await db.fetch(COLUMNS_QUERY, PUBLIC_SCHEMA, table)]
            primary_key = await self._primary_key(db, table)
            attributes = [
                column_to_attribute(column)
                for column in columns
                if column["column_name"] != primary_key
            ]
        except self.fetch_errors as e:
            return self.fetch_failure("collections", table, e, parents)

        data = {
            "name": table,
            "documentSecurity": False,
            "attributes": attributes,
            "indexes": [],
        }
        return FetchResult.success(
            Resource(type="collections", id=table, data=data, parents=parents)
        )

    async def _primary_key(self, db: RowFetcher, table: str) -> str | None:
        rows = await db.fetch(PRIMARY_KEY_QUERY, PUBLIC_SCHEMA, table)
        return rows[0]["column_name"] if len(rows) == 1 else None

    async def _documents(self, db: RowFetcher, table: str) -> AsyncIterator[FetchResult]:
        parents = (("databases", PUBLIC_SCHEMA), ("collections", table))
        primary_key = await self._primary_key(db, table)
        relation = f"{quote_identifier(PUBLIC_SCHEMA)}.{quote_identifier(table)}"
        order = quote_identifier(primary_key) if primary_key else "ctid"

        offset = 0
        while True:
            rows = await db.fetch(
                f"SELECT * FROM {relation} ORDER BY {order} LIMIT $1 OFFSET $2",
                self.page_size,
                offset,
            )
            for position, row in enumerate(rows, start=offset + 1):
                record = dict(row)
                document_id = str(record.get(primary_key)) if primary_key else str(position)
                try:
                    data = {
                        key: convert_value(value)
                        for key, value in record.items()
                        if key != primary_key
                    }
                except self.fetch_errors as e:
                    yield self.fetch_failure("documents", document_id, e, parents)
                    continue
                yield FetchResult.success(
                    Resource(type="documents", id=document_id, data=data, parents=parents)
                )

            if len(rows) < self.page_size:
                break
            offset += self.page_size

    async def _file(self, row: dict[str, Any]) -> FetchResult:
        bucket_id = str(row["bucket_id"])
        file_id = str(row["id"])
        parents = (("buckets", bucket_id),)
        try:
            content = await self.download(row)
        except self.fetch_errors as e:
            return self.fetch_failure("files", file_id, e, parents)

        data = {
            "name": row.get("name") or file_id,
            "mimeType": row.get("mime_type"),
            "content": content,
        }
        return FetchResult.success(Resource(type="files", id=file_id, data=data, parents=parents))

    @abstractmethod
    def convert_user(self, row: dict[str, Any]) -> dict[str, Any]:
        """Map an auth user row onto the provider-neutral user shape."""

    @abstractmethod
    def convert_bucket(self, row: dict[str, Any]) -> dict[str, Any]:
        """Map a storage bucket row onto bucket attributes."""

    @abstractmethod
    async def download(self, row: dict[str, Any]) -> bytes:
        """Download the content of a storage file row."""

    async def _close(self) -> None:
        if self._owns_pool and self._pool is not None:
            await self._pool.close()  # type: ignore[attr-defined]
        await self.storage.close()
