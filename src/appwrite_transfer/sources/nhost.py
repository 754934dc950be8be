"""NHost source adapter.

NHost runs Hasura on top of Postgres. Auth users and storage metadata
live in the ``auth`` and ``storage`` schemas; file contents are served by
the Hasura Storage service and require the admin secret.
"""

from typing import Any

import httpx

from appwrite_transfer.client.base_client import BaseAPIClient
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.providers import NhostCredentials
from appwrite_transfer.sources.postgres import PostgresSource, RowFetcher
from appwrite_transfer.utils.logging import get_logger
from appwrite_transfer.utils.retry import retry_api_call

logger = get_logger(__name__)


class NhostStorageClient(BaseAPIClient):
    """Client for the Hasura Storage API of an NHost project."""

    def __init__(self, endpoint: str, admin_secret: str, **kwargs: Any):
        self.admin_secret = admin_secret
        super().__init__(base_url=endpoint, **kwargs)

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        headers["x-hasura-admin-secret"] = self.admin_secret
        return headers

    @retry_api_call
    async def download(self, file_id: str) -> bytes:
        return await self.get_bytes(f"files/{file_id}")


class NhostSource(PostgresSource):
    """Reads users, tables and storage from an NHost project."""

    provider = "nhost"

    users_query = """
        SELECT id, email, phone_number, password_hash, display_name
        FROM auth.users
        ORDER BY created_at, id
    """
    users_count_query = "SELECT COUNT(*) FROM auth.users"
    buckets_query = """
        SELECT id, max_upload_file_size
        FROM storage.buckets
        ORDER BY created_at, id
    """
    buckets_count_query = "SELECT COUNT(*) FROM storage.buckets"
    files_query = """
        SELECT id, bucket_id, name, mime_type
        FROM storage.files
        WHERE is_uploaded
        ORDER BY created_at, id
    """
    files_count_query = "SELECT COUNT(*) FROM storage.files WHERE is_uploaded"

    def __init__(
        self,
        credentials: NhostCredentials,
        config: WorkerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        pool: RowFetcher | None = None,
    ):
        config = config or WorkerConfig()
        performance = config.performance
        storage = NhostStorageClient(
            endpoint=credentials.storage_endpoint,
            admin_secret=credentials.admin_secret,
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
        if not row.get("email") and not row.get("phone_number"):
            raise ValueError("user has neither an email nor a phone number")

        data: dict[str, Any] = {}
        if row.get("email"):
            data["email"] = row["email"]
        if row.get("phone_number"):
            data["phone"] = row["phone_number"]
        if row.get("display_name"):
            data["name"] = row["display_name"]
        if row.get("password_hash"):
            data["passwordHash"] = {"algorithm": "bcrypt", "hash": row["password_hash"]}
        return data

    def convert_bucket(self, row: dict[str, Any]) -> dict[str, Any]:
        data: dict[str, Any] = {"name": str(row["id"]), "enabled": True, "fileSecurity": False}
        if row.get("max_upload_file_size"):
            data["maximumFileSize"] = int(row["max_upload_file_size"])
        return data

    async def download(self, row: dict[str, Any]) -> bytes:
        storage: NhostStorageClient = self.storage  # type: ignore[assignment]
        return await storage.download(str(row["id"]))
