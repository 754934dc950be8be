"""Appwrite destination adapter.

Resources are created through the project's REST API with the temporary
transfer key. Before creating anything the destination looks the resource
up (by ID, or by user for memberships): an existing copy with the same
content fingerprint is reported as skipped, a different one as an error.
An existing collection still gets the attributes and indexes it lacks.
"""

import asyncio
from typing import Any

import httpx

from appwrite_transfer.client.appwrite_client import AppwriteClient, query
from appwrite_transfer.client.exceptions import NotFoundError, TransferEngineError
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.destinations.base import Destination, PushResult
from appwrite_transfer.providers import AppwriteCredentials
from appwrite_transfer.resources import Resource
from appwrite_transfer.utils.idempotency import compare_resources
from appwrite_transfer.utils.logging import get_logger
from appwrite_transfer.utils.retry import retry_with_rate_limit_handling

logger = get_logger(__name__)

PASSWORD_HASH_ALGORITHMS = frozenset(
    {"argon2", "bcrypt", "md5", "phpass", "scrypt", "scrypt-modified", "sha"}
)

ATTRIBUTE_POLL_ATTEMPTS = 30
ATTRIBUTE_POLL_INTERVAL = 1.0

# Upper bound on attributes and indexes per collection
SCHEMA_LIST_LIMIT = 5000

# Attribute endpoints are keyed by format for formatted strings
FORMATTED_ATTRIBUTES = frozenset({"email", "url", "ip", "enum"})


class AppwriteDestinationError(TransferEngineError):
    """A resource exists at the destination with different content."""


class AppwriteDestination(Destination):
    """Writes resources into an Appwrite project."""

    provider = "appwrite"

    def __init__(
        self,
        credentials: AppwriteCredentials,
        config: WorkerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        attribute_poll_interval: float = ATTRIBUTE_POLL_INTERVAL,
    ):
        super().__init__(config)
        performance = self.config.performance
        self.credentials = credentials
        self.attribute_poll_interval = attribute_poll_interval
        self.client = AppwriteClient(
            endpoint=credentials.endpoint,
            project_id=credentials.project_id,
            api_key=credentials.api_key,
            timeout=performance.request_timeout,
            rate_limit=performance.rate_limit,
            max_connections=performance.http_max_connections,
            max_keepalive_connections=performance.http_max_keepalive_connections,
            log_payloads=self.config.logging.log_payloads,
            max_payload_size=self.config.logging.max_payload_size,
            transport=transport,
        )
        self.schema = self.config.schema_descriptor

    async def _push(self, resource: Resource) -> PushResult:
        path = AppwriteClient.collection_path(resource.type, dict(resource.parents))
        data = self.schema.strip(resource.data)

        existing = await self._find_existing(path, resource, data)
        if existing is not None:
            view = self._fingerprint_view(resource.type, data)
            if not compare_resources(
                view, existing, ignore_fields=self.schema.internal_attributes
            ):
                raise AppwriteDestinationError(
                    f"{resource.name} already exists at the destination with different content"
                )
            if resource.type == "collections":
                created = await self._push_schema(path, resource, data, existing=True)
                if created:
                    logger.info(
                        "collection_schema_completed", collection_id=resource.id, created=created
                    )
                    return PushResult.success()
            logger.debug(
                "resource_unchanged", resource_type=resource.type, resource_id=resource.id
            )
            return PushResult.skipped("Already exists with identical content")

        if resource.type == "files":
            await self._push_file(path, resource, data)
        elif resource.type == "users":
            await self._push_user(path, resource, data)
        else:
            await self._create(path, self._payload(resource, data))
            if resource.type == "collections":
                await self._push_schema(path, resource, data)

        return PushResult.success()

    async def _find_existing(
        self, path: str, resource: Resource, data: dict[str, Any]
    ) -> dict[str, Any] | None:
        """The destination's copy of ``resource``, if it has one.

        Memberships get a new ID when created, so they are matched by user.
        """
        if resource.type == "memberships":
            return await self.client.find_first(
                path, "memberships", query("equal", data["userId"], attribute="userId")
            )
        try:
            return await self.client.get_one(path, resource.id)
        except NotFoundError:
            return None

    async def _create(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await retry_with_rate_limit_handling(
            lambda: self.client.create(path, payload),
            max_attempts=self.config.performance.retry_attempts,
            min_wait=self.config.performance.retry_backoff_min,
            max_wait=self.config.performance.retry_backoff_max,
        )

    def _payload(self, resource: Resource, data: dict[str, Any]) -> dict[str, Any]:
        id_field = AppwriteClient.id_field(resource.type)

        if resource.type == "documents":
            payload: dict[str, Any] = {id_field: resource.id, "data": data}
            permissions = resource.data.get("$permissions")
            if permissions:
                payload["permissions"] = permissions
            return payload

        if resource.type == "memberships":
            return {
                "userId": data["userId"],
                "roles": data.get("roles", []),
            }

        payload = {id_field: resource.id}
        payload.update(
            {k: v for k, v in data.items() if k not in ("attributes", "indexes")}
        )
        permissions = resource.data.get("$permissions")
        if permissions:
            payload["permissions"] = permissions
        return payload

    @staticmethod
    def _fingerprint_view(resource_type: str, data: dict[str, Any]) -> dict[str, Any]:
        """Fields of ``data`` the stored copy must match to count as unchanged."""
        if resource_type == "files":
            return {"name": data.get("name"), "sizeOriginal": len(data.get("content", b""))}
        if resource_type == "users":
            return {k: data[k] for k in ("email", "name", "phone") if k in data}
        if resource_type == "memberships":
            return {"userId": data.get("userId"), "roles": data.get("roles", [])}
        if resource_type == "collections":
            return {k: v for k, v in data.items() if k not in ("attributes", "indexes")}
        return data

    async def _push_user(self, path: str, resource: Resource, data: dict[str, Any]) -> None:
        payload: dict[str, Any] = {"userId": resource.id}
        for key in ("email", "phone", "name"):
            if data.get(key):
                payload[key] = data[key]

        password_hash = data.get("passwordHash")
        if password_hash:
            algorithm = password_hash.get("algorithm")
            if algorithm not in PASSWORD_HASH_ALGORITHMS:
                raise AppwriteDestinationError(f"Unsupported password hash algorithm: {algorithm}")
            payload["password"] = password_hash["hash"]
            payload.update(
                {k: v for k, v in password_hash.items() if k not in ("algorithm", "hash")}
            )
            path = f"{path}/{algorithm}"
        elif data.get("password"):
            payload["password"] = data["password"]

        await self._create(path, payload)

    async def _push_file(self, path: str, resource: Resource, data: dict[str, Any]) -> None:
        await self.client.upload(
            path,
            file_id=resource.id,
            filename=data.get("name") or resource.id,
            content=data.get("content", b""),
            mime_type=data.get("mimeType") or "application/octet-stream",
            permissions=resource.data.get("$permissions"),
        )

    async def _push_schema(
        self, path: str, resource: Resource, data: dict[str, Any], existing: bool = False
    ) -> int:
        """Create the attributes and indexes the destination collection lacks.

        A freshly created collection lacks all of them. For one that already
        existed, keys present at the destination are left alone.

        Returns:
            Number of attributes and indexes created
        """
        collection_path = f"{path}/{resource.id}"
        attributes = data.get("attributes", [])
        indexes = data.get("indexes", [])
        if existing:
            present = await self._schema_keys(collection_path, "attributes")
            attributes = [a for a in attributes if a["key"] not in present]
            present = await self._schema_keys(collection_path, "indexes")
            indexes = [i for i in indexes if i["key"] not in present]

        for attribute in attributes:
            kind = attribute["type"]
            if attribute.get("format") in FORMATTED_ATTRIBUTES:
                kind = attribute["format"]
            payload = {
                k: v for k, v in attribute.items() if k not in ("type", "format", "status", "error")
            }
            await self._create(f"{collection_path}/attributes/{kind}", payload)

        if attributes:
            await self._wait_for_attributes(collection_path)

        for index in indexes:
            payload = {k: v for k, v in index.items() if k not in ("status", "error")}
            await self._create(f"{collection_path}/indexes", payload)

        return len(attributes) + len(indexes)

    async def _schema_keys(self, collection_path: str, kind: str) -> set[str]:
        """Keys of the attributes or indexes a collection already has."""
        response = await self.client.list_page(f"{collection_path}/{kind}", SCHEMA_LIST_LIMIT)
        return {item["key"] for item in response.get(kind, [])}

    async def _wait_for_attributes(self, collection_path: str) -> None:
        """Wait until the destination finished building new attributes."""
        for _ in range(ATTRIBUTE_POLL_ATTEMPTS):
            response = await self.client.get(f"{collection_path}/attributes")
            statuses = [attribute.get("status") for attribute in response.get("attributes", [])]
            if "failed" in statuses:
                raise AppwriteDestinationError(f"Attribute creation failed in {collection_path}")
            if all(status == "available" for status in statuses):
                return
            await asyncio.sleep(self.attribute_poll_interval)

        raise AppwriteDestinationError(f"Timed out waiting for attributes in {collection_path}")

    async def _close(self) -> None:
        await self.client.close()
