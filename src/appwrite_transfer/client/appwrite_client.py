"""Appwrite REST client shared by the appwrite source and destination.

This client extends BaseAPIClient with project/key authentication headers,
cursor pagination and the path layout of every transferable resource.
"""

import json
from collections.abc import AsyncGenerator, Mapping
from typing import Any

import httpx

from appwrite_transfer.client.base_client import BaseAPIClient
from appwrite_transfer.resources import get_singular
from appwrite_transfer.utils.logging import get_logger
from appwrite_transfer.utils.retry import retry_api_call

logger = get_logger(__name__)

# Collection paths; placeholders are filled from the resource's parents
RESOURCE_PATHS: dict[str, str] = {
    "users": "users",
    "teams": "teams",
    "memberships": "teams/{teams}/memberships",
    "databases": "databases",
    "collections": "databases/{databases}/collections",
    "documents": "databases/{databases}/collections/{collections}/documents",
    "buckets": "storage/buckets",
    "files": "storage/buckets/{buckets}/files",
    "functions": "functions",
}


def query(method: str, *values: Any, attribute: str | None = None) -> str:
    """Encode one list query in the JSON form the API accepts.

    Examples:
        >>> query("limit", 25)
        '{"method": "limit", "values": [25]}'
    """
    payload: dict[str, Any] = {"method": method}
    if attribute is not None:
        payload["attribute"] = attribute
    payload["values"] = list(values)
    return json.dumps(payload)


class AppwriteClient(BaseAPIClient):
    """Client for one project on an Appwrite instance."""

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        timeout: int = 30,
        rate_limit: int = 20,
        max_connections: int = 50,
        max_keepalive_connections: int = 20,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Appwrite client.

        Args:
            endpoint: API endpoint, e.g. https://cloud.appwrite.io/v1
            project_id: Project the key belongs to
            api_key: Secret of a project API key
            timeout: Request timeout in seconds
            rate_limit: Maximum requests per second
            max_connections: Maximum number of connections in pool
            max_keepalive_connections: Maximum keep-alive connections
            log_payloads: Enable request/response payload logging
            max_payload_size: Maximum payload size to log before truncation
            transport: Optional custom transport (used by tests)
        """
        self.project_id = project_id
        self.api_key = api_key
        super().__init__(
            base_url=endpoint,
            timeout=timeout,
            rate_limit=rate_limit,
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
            log_payloads=log_payloads,
            max_payload_size=max_payload_size,
            transport=transport,
        )

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        headers["X-Appwrite-Project"] = self.project_id
        headers["X-Appwrite-Key"] = self.api_key
        return headers

    @staticmethod
    def collection_path(resource_type: str, parents: Mapping[str, str] | None = None) -> str:
        """Build the collection path for ``resource_type``.

        Args:
            resource_type: Registry resource type
            parents: Parent IDs keyed by parent resource type

        Raises:
            KeyError: If the type is unknown or a parent ID is missing
        """
        return RESOURCE_PATHS[resource_type].format(**(parents or {}))

    @staticmethod
    def id_field(resource_type: str) -> str:
        """Name of the create-payload ID parameter (``userId``, ``bucketId`` ...)."""
        return f"{get_singular(resource_type)}Id"

    @retry_api_call
    async def list_page(
        self, path: str, limit: int, cursor: str | None = None
    ) -> dict[str, Any]:
        """Fetch one page of a list endpoint."""
        queries = [query("limit", limit)]
        if cursor:
            queries.append(query("cursorAfter", cursor))
        return await self.get(path, params={"queries[]": queries})

    async def iterate(
        self, path: str, list_key: str, page_size: int = 100
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield every item of a list endpoint using cursor pagination.

        Args:
            path: Collection path
            list_key: Key of the item array in the response body
            page_size: Items per page
        """
        cursor: str | None = None
        fetched = 0
        while True:
            response = await self.list_page(path, page_size, cursor)
            items = response.get(list_key, [])
            for item in items:
                yield item
            fetched += len(items)

            logger.debug("page_fetched", path=path, items_this_page=len(items), total=fetched)

            if len(items) < page_size:
                break
            cursor = items[-1]["$id"]

    @retry_api_call
    async def count(self, path: str) -> int:
        """Total number of items behind a list endpoint."""
        response = await self.get(path, params={"queries[]": [query("limit", 1)]})
        return int(response.get("total", 0))

    @retry_api_call
    async def get_one(self, path: str, resource_id: str) -> dict[str, Any]:
        """Fetch a single item by ID."""
        return await self.get(f"{path}/{resource_id}")

    @retry_api_call
    async def find_first(self, path: str, list_key: str, *queries: str) -> dict[str, Any] | None:
        """First item of a list endpoint matching ``queries``, or None."""
        response = await self.get(path, params={"queries[]": [query("limit", 1), *queries]})
        items = response.get(list_key, [])
        return items[0] if items else None

    @retry_api_call
    async def download(self, path: str, resource_id: str) -> bytes:
        """Download the content of a storage file."""
        return await self.get_bytes(f"{path}/{resource_id}/download")

    async def create(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Create an item. Not retried: a timed-out create may have succeeded."""
        return await self.post(path, json_data=payload)

    async def upload(
        self,
        path: str,
        file_id: str,
        filename: str,
        content: bytes,
        mime_type: str = "application/octet-stream",
        permissions: list[str] | None = None,
    ) -> dict[str, Any]:
        """Upload a file as multipart form data."""
        data: dict[str, Any] = {"fileId": file_id}
        if permissions:
            data["permissions[]"] = permissions
        return await self.request(
            "POST",
            path,
            data=data,
            files={"file": (filename, content, mime_type)},
        )

    async def health(self) -> None:
        """Verify the endpoint is reachable and the key is accepted.

        Raises:
            AuthenticationError: When the key is rejected
            NetworkError: When the endpoint cannot be reached
        """
        await self.get("users", params={"queries[]": [query("limit", 1)]})
