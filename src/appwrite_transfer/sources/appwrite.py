"""Appwrite source adapter.

Reads resources from another Appwrite project (a "peer") through its REST
API. Nested resources are listed per parent, walking the parent chain
from the root.
"""

from collections.abc import AsyncIterator
from typing import Any

import httpx

from appwrite_transfer.client.appwrite_client import AppwriteClient
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.providers import AppwriteCredentials
from appwrite_transfer.resources import Resource, ResourceScope, get_ancestors
from appwrite_transfer.sources.base import FetchResult, Source
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)

ParentChain = tuple[tuple[str, str], ...]

# Fields copied from listed items, per type; $permissions is kept separately
COPIED_FIELDS: dict[str, tuple[str, ...]] = {
    "teams": ("name",),
    "memberships": ("userId", "roles"),
    "databases": ("name", "enabled"),
    "collections": ("name", "enabled", "documentSecurity", "attributes", "indexes"),
    "buckets": (
        "name",
        "enabled",
        "fileSecurity",
        "maximumFileSize",
        "allowedFileExtensions",
        "compression",
        "encryption",
        "antivirus",
    ),
    "functions": (
        "name",
        "runtime",
        "execute",
        "events",
        "schedule",
        "timeout",
        "enabled",
        "entrypoint",
        "commands",
    ),
}

# Hash option names differ between the user object and the import endpoints
HASH_ALGORITHMS: dict[str, tuple[str, dict[str, str]]] = {
    "argon2": ("argon2", {}),
    "bcrypt": ("bcrypt", {}),
    "md5": ("md5", {}),
    "phpass": ("phpass", {}),
    "sha": ("sha", {"version": "passwordVersion"}),
    "scrypt": (
        "scrypt",
        {
            "salt": "passwordSalt",
            "costCpu": "passwordCpu",
            "costMemory": "passwordMemory",
            "costParallel": "passwordParallel",
            "length": "passwordLength",
        },
    ),
    "scryptMod": (
        "scrypt-modified",
        {
            "salt": "passwordSalt",
            "saltSeparator": "passwordSaltSeparator",
            "signerKey": "passwordSignerKey",
        },
    ),
}


def convert_user(user: dict[str, Any]) -> dict[str, Any]:
    """Map an Appwrite user object onto the provider-neutral user shape."""
    data: dict[str, Any] = {k: user[k] for k in ("email", "name", "phone") if user.get(k)}

    algorithm = user.get("hash")
    if user.get("password") and algorithm in HASH_ALGORITHMS:
        target, option_names = HASH_ALGORITHMS[algorithm]
        options = user.get("hashOptions") or {}
        password_hash = {"algorithm": target, "hash": user["password"]}
        for option, parameter in option_names.items():
            if option in options:
                password_hash[parameter] = options[option]
        data["passwordHash"] = password_hash

    return data


class AppwriteSource(Source):
    """Reads resources from an Appwrite project."""

    provider = "appwrite"
    supported_resources = (
        "users",
        "teams",
        "memberships",
        "databases",
        "collections",
        "documents",
        "buckets",
        "files",
        "functions",
    )

    def __init__(
        self,
        credentials: AppwriteCredentials,
        config: WorkerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config)
        performance = self.config.performance
        self.credentials = credentials
        self.page_size = performance.page_size
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

    async def _parent_chains(
        self, resource_type: str, scope: ResourceScope | None
    ) -> list[ParentChain]:
        """Every parent chain under which ``resource_type`` instances live."""
        chains: list[ParentChain] = [()]
        for ancestor in reversed(get_ancestors(resource_type)):
            extended: list[ParentChain] = []
            for chain in chains:
                path = AppwriteClient.collection_path(ancestor, dict(chain))
                async for item in self.client.iterate(path, ancestor, self.page_size):
                    if (
                        scope is not None
                        and scope.resource_type == ancestor
                        and item["$id"] != scope.resource_id
                    ):
                        continue
                    extended.append((*chain, (ancestor, item["$id"])))
            chains = extended
        return chains

    async def _count(self, resource_type: str, scope: ResourceScope | None) -> int:
        total = 0
        for chain in await self._parent_chains(resource_type, scope):
            total += await self.client.count(
                AppwriteClient.collection_path(resource_type, dict(chain))
            )
        return total

    async def _export(
        self, resource_type: str, scope: ResourceScope | None
    ) -> AsyncIterator[FetchResult]:
        for chain in await self._parent_chains(resource_type, scope):
            path = AppwriteClient.collection_path(resource_type, dict(chain))
            async for item in self.client.iterate(path, resource_type, self.page_size):
                if resource_type == "files":
                    yield await self._fetch_file(path, item, chain)
                    continue
                yield FetchResult.success(self._to_resource(resource_type, item, chain))

    def _to_resource(
        self, resource_type: str, item: dict[str, Any], parents: ParentChain
    ) -> Resource:
        if resource_type == "users":
            data = convert_user(item)
        elif resource_type == "documents":
            data = dict(item)
        else:
            data = {k: item[k] for k in COPIED_FIELDS[resource_type] if k in item}
            if item.get("$permissions"):
                data["$permissions"] = item["$permissions"]
        return Resource(type=resource_type, id=item["$id"], data=data, parents=parents)

    async def _fetch_file(
        self, path: str, item: dict[str, Any], parents: ParentChain
    ) -> FetchResult:
        try:
            content = await self.client.download(path, item["$id"])
        except self.fetch_errors as e:
            return self.fetch_failure("files", item["$id"], e, parents)

        data = {
            "name": item.get("name", item["$id"]),
            "mimeType": item.get("mimeType"),
            "content": content,
        }
        if item.get("$permissions"):
            data["$permissions"] = item["$permissions"]
        return FetchResult.success(
            Resource(type="files", id=item["$id"], data=data, parents=parents)
        )

    async def _close(self) -> None:
        await self.client.close()
