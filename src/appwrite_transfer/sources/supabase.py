"""Supabase source adapter.

Users, buckets and object metadata are read straight from the project's
Postgres database. Object contents come from the Storage API using the
service key.
"""

from typing import Any

import httpx

from appwrite_transfer.client.base_client import BaseAPIClient
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.providers import SupabaseCredentials
from appwrite_transfer.sources.base import require
from appwrite_transfer.sources.postgres import PostgresSource, RowFetcher
from appwrite_transfer.utils.logging import get_logger
from appwrite_transfer.utils.retry import retry_api_call

logger = get_logger(__name__)


class SupabaseStorageClient(BaseAPIClient):
    """Client for the Supabase Storage API."""

    def __init__(self, endpoint: str, api_key: str, **kwargs: Any):
        self.api_key = api_key
        super().__init__(base_url=f"{endpoint}/storage/v1", **kwargs)

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        headers["apikey"] = self.api_key
        headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @retry_api_call
    async def download(self, bucket_id: str, name: str) -> bytes:
        return await self.get_bytes(f"object/{bucket_id}/{name}")


class SupabaseSource(PostgresSource):
    """Reads users, tables and storage from a Supabase project."""

    provider = "supabase"

    users_query = """
        SELECT id, email, phone, encrypted_password,
               raw_user_meta_data->>'full_name' AS name
        FROM auth.users
        ORDER BY created_at, id
    """
    users_count_query = "SELECT COUNT(*) FROM auth.users"
    buckets_query = """
        SELECT id, name, public, file_size_limit
        FROM storage.buckets
        ORDER BY created_at, id
    """
    buckets_count_query = "SELECT COUNT(*) FROM storage.buckets"
    files_query = """
        SELECT id, bucket_id, name, metadata->>'mimetype' AS mime_type
        FROM storage.objects
        ORDER BY created_at, id
    """
    files_count_query = "SELECT COUNT(*) FROM storage.objects"

    def __init__(
        self,
        credentials: SupabaseCredentials,
        config: WorkerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        pool: RowFetcher | None = None,
    ):
        config = config or WorkerConfig()
        performance = config.performance
        storage = SupabaseStorageClient(
            endpoint=credentials.endpoint,
            api_key=credentials.api_key,
            timeout=performance.request_timeout,
            rate_limit=performance.rate_limit,
            max_connections=performance.http_max_connections,
            max_keepalive_connections=performance.http_max_keepalive_connections,
            transport=transport,
        )
        super().__init__(
            host=credentials.database_host,
            port=credentials.port,
            database=credentials.database,
            username=credentials.username,
            password=credentials.password,
            storage=storage,
            config=config,
            pool=pool,
        )

    def convert_user(self, row: dict[str, Any]) -> dict[str, Any]:
        if not row.get("email") and not row.get("phone"):
            raise ValueError("user has neither an email nor a phone number")

        data: dict[str, Any] = {}
        if row.get("email"):
            data["email"] = row["email"]
        if row.get("phone"):
            phone = str(row["phone"])
            data["phone"] = phone if phone.startswith("+") else f"+{phone}"
        if row.get("name"):
            data["name"] = row["name"]
        if row.get("encrypted_password"):
            data["passwordHash"] = {"algorithm": "bcrypt", "hash": row["encrypted_password"]}
        return data

    def convert_bucket(self, row: dict[str, Any]) -> dict[str, Any]:
        require(row, "name")
        data: dict[str, Any] = {
            "name": row["name"],
            "enabled": True,
            "fileSecurity": not row.get("public", False),
        }
        if row.get("file_size_limit"):
            data["maximumFileSize"] = int(row["file_size_limit"])
        return data

    async def download(self, row: dict[str, Any]) -> bytes:
        storage: SupabaseStorageClient = self.storage  # type: ignore[assignment]
        return await storage.download(str(row["bucket_id"]), row["name"])
