"""Firebase source adapter.

Authenticates with a service account through
``firebase_admin.credentials.Certificate`` and reads, over REST:

- Auth users through the Identity Toolkit API
- The default Firestore database, its root collections and their documents
- Cloud Storage buckets and objects through the JSON API

Firestore is schemaless; collection attributes are inferred from the
first page of documents.
"""

import asyncio
import hashlib
import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from firebase_admin import credentials as firebase_credentials
from google.auth.exceptions import RefreshError, TransportError

from appwrite_transfer.client.base_client import BaseAPIClient
from appwrite_transfer.client.exceptions import AuthenticationError, NetworkError
from appwrite_transfer.config import WorkerConfig
from appwrite_transfer.providers import FirebaseCredentials, ServiceAccount
from appwrite_transfer.resources import Resource, ResourceScope
from appwrite_transfer.sources.base import FetchResult, Source, require
from appwrite_transfer.utils.logging import get_logger
from appwrite_transfer.utils.retry import retry_api_call, retry_api_call_short

logger = get_logger(__name__)

IDENTITY_TOOLKIT = "https://identitytoolkit.googleapis.com"
FIRESTORE = "https://firestore.googleapis.com/v1"
CLOUD_STORAGE = "https://storage.googleapis.com/storage/v1"

DATABASE_ID = "default"
TOKEN_REFRESH_MARGIN = timedelta(seconds=60)

# Firestore value kinds onto attribute types
VALUE_TYPES: dict[str, str] = {
    "stringValue": "string",
    "integerValue": "integer",
    "doubleValue": "float",
    "booleanValue": "boolean",
    "timestampValue": "datetime",
    "referenceValue": "string",
    "bytesValue": "string",
    "mapValue": "string",
    "geoPointValue": "string",
}

STRING_SIZE_DEFAULT = 1_000_000


class AccessTokenProvider(Protocol):
    """What the client needs from a Google credential.

    ``firebase_admin.credentials.Certificate`` satisfies it.
    """

    def get_access_token(self) -> Any: ...


def load_certificate(account: ServiceAccount) -> AccessTokenProvider:
    """Build the firebase_admin credential for a service account.

    Raises:
        AuthenticationError: If the key file is rejected (e.g. a malformed private key)
    """
    try:
        return firebase_credentials.Certificate(account.key_file())
    except ValueError as e:
        raise AuthenticationError(f"Invalid service account: {e}") from e


def convert_value(value: dict[str, Any]) -> Any:
    """Convert a typed Firestore value into a plain document value."""
    if "nullValue" in value:
        return None
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "arrayValue" in value:
        return [convert_value(item) for item in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        fields = value["mapValue"].get("fields", {})
        return json.dumps({k: convert_value(v) for k, v in fields.items()})
    if "geoPointValue" in value:
        return json.dumps(value["geoPointValue"])
    for kind in ("stringValue", "booleanValue", "timestampValue", "referenceValue", "bytesValue"):
        if kind in value:
            return value[kind]
    raise ValueError(f"unsupported Firestore value: {sorted(value)}")


def infer_attributes(documents: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Infer attribute definitions from a sample of Firestore documents.

    A field seen with more than one kind is stored as a string.
    """
    kinds: dict[str, tuple[str, bool]] = {}
    for document in documents:
        for key, value in document.get("fields", {}).items():
            is_array = "arrayValue" in value
            if is_array:
                items = value["arrayValue"].get("values", [])
                value = items[0] if items else {"stringValue": ""}
            kind = next((VALUE_TYPES[k] for k in value if k in VALUE_TYPES), None)
            if kind is None:
                continue
            seen = kinds.get(key)
            if seen is not None and seen != (kind, is_array):
                kind = "string"
            kinds[key] = (kind, is_array)

    attributes = []
    for key, (kind, is_array) in kinds.items():
        attribute: dict[str, Any] = {"key": key, "type": kind, "required": False, "array": is_array}
        if kind == "string":
            attribute["size"] = STRING_SIZE_DEFAULT
        attributes.append(attribute)
    return attributes


def file_id(object_name: str) -> str:
    """Stable resource ID for a Cloud Storage object name."""
    return hashlib.sha1(object_name.encode()).hexdigest()[:36]


class GoogleClient(BaseAPIClient):
    """HTTP client that authenticates as a Google service account."""

    def __init__(
        self,
        account: ServiceAccount,
        credential: AccessTokenProvider | None = None,
        **kwargs: Any,
    ):
        self.account = account
        self._credential = credential
        self._token: str | None = None
        self._token_expiry: datetime | None = None
        super().__init__(base_url=FIRESTORE, **kwargs)

    async def _authorization(self) -> dict[str, str]:
        if self._token is None or self._token_expired():
            await self._refresh_token()
        return {"Authorization": f"Bearer {self._token}"}

    def _token_expired(self) -> bool:
        expiry = self._token_expiry
        if expiry is None:
            return False
        # google-auth reports expiry as naive UTC
        if expiry.tzinfo is not None:
            expiry = expiry.astimezone(UTC).replace(tzinfo=None)
        return datetime.now(UTC).replace(tzinfo=None) >= expiry - TOKEN_REFRESH_MARGIN

    @retry_api_call_short
    async def _refresh_token(self) -> None:
        if self._credential is None:
            self._credential = load_certificate(self.account)
        try:
            info = await asyncio.to_thread(self._credential.get_access_token)
        except RefreshError as e:
            raise AuthenticationError(f"Google rejected the service account: {e}") from e
        except TransportError as e:
            raise NetworkError(f"Unable to obtain a Google access token: {e}") from e

        self._token = info.access_token
        self._token_expiry = info.expiry
        logger.debug("google_token_refreshed", client_email=self.account.client_email)

    @retry_api_call
    async def call(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
    ) -> Any:
        headers = await self._authorization()
        return await self.request(method, url, params=params, json_data=json_data, headers=headers)

    @retry_api_call
    async def download(self, url: str) -> bytes:
        headers = await self._authorization()
        return await self.get_bytes(url, params={"alt": "media"}, headers=headers)

    async def pages(
        self,
        url: str,
        items_key: str,
        params: dict[str, Any] | None = None,
        token_param: str = "pageToken",
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield items across a token-paginated GET listing."""
        params = dict(params or {})
        while True:
            response = await self.call("GET", url, params=params)
            for item in response.get(items_key, []):
                yield item
            token = response.get("nextPageToken")
            if not token:
                return
            params[token_param] = token


class FirebaseSource(Source):
    """Reads users, Firestore and Cloud Storage from a Firebase project."""

    provider = "firebase"
    supported_resources = (
        "users",
        "databases",
        "collections",
        "documents",
        "buckets",
        "files",
    )

    def __init__(
        self,
        credentials: FirebaseCredentials,
        config: WorkerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        credential: AccessTokenProvider | None = None,
    ):
        super().__init__(config)
        performance = self.config.performance
        self.account = credentials.service_account
        self.project_id = self.account.project_id
        self.page_size = performance.page_size
        self.client = GoogleClient(
            self.account,
            credential=credential,
            timeout=performance.request_timeout,
            rate_limit=performance.rate_limit,
            max_connections=performance.http_max_connections,
            max_keepalive_connections=performance.http_max_keepalive_connections,
            log_payloads=self.config.logging.log_payloads,
            max_payload_size=self.config.logging.max_payload_size,
            transport=transport,
        )
        self._hash_config: dict[str, Any] | None = None

    @property
    def documents_root(self) -> str:
        return f"{FIRESTORE}/projects/{self.project_id}/databases/(default)/documents"

    async def _count(self, resource_type: str, scope: ResourceScope | None) -> int:
        if resource_type == "databases":
            return 1
        if resource_type == "documents":
            total = 0
            for collection in await self._collection_ids(scope):
                total += await self._count_documents(collection)
            return total

        total = 0
        async for _ in self._listing(resource_type, scope):
            total += 1
        return total

    async def _listing(
        self, resource_type: str, scope: ResourceScope | None
    ) -> AsyncIterator[Any]:
        """Raw items of the types counted by walking their listing."""
        if resource_type == "users":
            async for user in self._users():
                yield user
        elif resource_type == "collections":
            for collection in await self._collection_ids(scope):
                yield collection
        elif resource_type == "buckets":
            async for bucket in self._buckets(scope):
                yield bucket
        elif resource_type == "files":
            async for bucket in self._buckets(scope):
                async for item in self._objects(bucket["name"]):
                    yield item

    async def _export(
        self, resource_type: str, scope: ResourceScope | None
    ) -> AsyncIterator[FetchResult]:
        if resource_type == "users":
            hash_config = await self._password_hash_config()
            async for user in self._users():
                user_id = str(user.get("localId", ""))
                try:
                    data = self.convert_user(user, hash_config)
                except self.fetch_errors as e:
                    yield self.fetch_failure("users", user_id, e)
                    continue
                yield FetchResult.success(Resource(type="users", id=user_id, data=data))

        elif resource_type == "databases":
            yield FetchResult.success(
                Resource(type="databases", id=DATABASE_ID, data={"name": "Default"})
            )

        elif resource_type == "collections":
            for collection in await self._collection_ids(scope):
                yield await self._collection(collection)

        elif resource_type == "documents":
            for collection in await self._collection_ids(scope):
                async for result in self._documents(collection):
                    yield result

        elif resource_type == "buckets":
            async for bucket in self._buckets(scope):
                data = {"name": bucket["name"], "enabled": True, "fileSecurity": False}
                yield FetchResult.success(Resource(type="buckets", id=bucket["name"], data=data))

        elif resource_type == "files":
            async for bucket in self._buckets(scope):
                async for item in self._objects(bucket["name"]):
                    yield await self._file(bucket["name"], item)

    async def _users(self) -> AsyncIterator[dict[str, Any]]:
        url = f"{IDENTITY_TOOLKIT}/v1/projects/{self.project_id}/accounts:batchGet"
        async for user in self.client.pages(
            url, "users", params={"maxResults": self.page_size}, token_param="nextPageToken"
        ):
            yield user

    async def _password_hash_config(self) -> dict[str, Any]:
        if self._hash_config is None:
            url = f"{IDENTITY_TOOLKIT}/admin/v2/projects/{self.project_id}/config"
            response = await self.client.call("GET", url)
            self._hash_config = response.get("signIn", {}).get("hashConfig", {})
        return self._hash_config

    @staticmethod
    def convert_user(user: dict[str, Any], hash_config: dict[str, Any]) -> dict[str, Any]:
        """Map an Identity Toolkit account onto the provider-neutral user shape."""
        require(user, "localId")
        if not user.get("email") and not user.get("phoneNumber"):
            raise ValueError("user has neither an email nor a phone number")

        data: dict[str, Any] = {}
        if user.get("email"):
            data["email"] = user["email"]
        if user.get("phoneNumber"):
            data["phone"] = user["phoneNumber"]
        if user.get("displayName"):
            data["name"] = user["displayName"]

        if user.get("passwordHash") and hash_config.get("algorithm") == "SCRYPT":
            data["passwordHash"] = {
                "algorithm": "scrypt-modified",
                "hash": user["passwordHash"],
                "passwordSalt": user.get("salt", ""),
                "passwordSaltSeparator": hash_config.get("saltSeparator", ""),
                "passwordSignerKey": hash_config.get("signerKey", ""),
            }
        return data

    async def _collection_ids(self, scope: ResourceScope | None) -> list[str]:
        if scope is not None and scope.resource_type == "databases":
            if scope.resource_id != DATABASE_ID:
                return []

        collections: list[str] = []
        body: dict[str, Any] = {"pageSize": self.page_size}
        while True:
            response = await self.client.call(
                "POST", f"{self.documents_root}:listCollectionIds", json_data=body
            )
            collections.extend(response.get("collectionIds", []))
            token = response.get("nextPageToken")
            if not token:
                break
            body["pageToken"] = token

        if scope is not None and scope.resource_type == "collections":
            collections = [c for c in collections if c == scope.resource_id]
        return collections

    async def _count_documents(self, collection: str) -> int:
        body = {
            "structuredAggregationQuery": {
                "structuredQuery": {"from": [{"collectionId": collection}]},
                "aggregations": [{"alias": "total", "count": {}}],
            }
        }
        response = await self.client.call(
            "POST", f"{self.documents_root}:runAggregationQuery", json_data=body
        )
        # The endpoint streams a JSON array of partial results
        results = response if isinstance(response, list) else [response]
        for part in results:
            fields = part.get("result", {}).get("aggregateFields", {})
            if "total" in fields:
                return int(fields["total"].get("integerValue", 0))
        return 0

    async def _collection(self, collection: str) -> FetchResult:
        parents = (("databases", DATABASE_ID),)
        try:
            response = await self.client.call(
                "GET",
                f"{self.documents_root}/{collection}",
                params={"pageSize": self.page_size},
            )
        except self.fetch_errors as e:
            return self.fetch_failure("collections", collection, e, parents)

        data = {
            "name": collection,
            "documentSecurity": False,
            "attributes": infer_attributes(response.get("documents", [])),
            "indexes": [],
        }
        return FetchResult.success(
            Resource(type="collections", id=collection, data=data, parents=parents)
        )

    async def _documents(self, collection: str) -> AsyncIterator[FetchResult]:
        parents = (("databases", DATABASE_ID), ("collections", collection))
        async for document in self.client.pages(
            f"{self.documents_root}/{collection}", "documents", params={"pageSize": self.page_size}
        ):
            document_id = document.get("name", "").rsplit("/", 1)[-1]
            try:
                data = {k: convert_value(v) for k, v in document.get("fields", {}).items()}
            except self.fetch_errors as e:
                yield self.fetch_failure("documents", document_id, e, parents)
                continue
            yield FetchResult.success(
                Resource(type="documents", id=document_id, data=data, parents=parents)
            )

    async def _buckets(self, scope: ResourceScope | None) -> AsyncIterator[dict[str, Any]]:
        async for bucket in self.client.pages(
            f"{CLOUD_STORAGE}/b", "items", params={"project": self.project_id}
        ):
            if scope is not None and scope.resource_type == "buckets":
                if bucket["name"] != scope.resource_id:
                    continue
            yield bucket

    async def _objects(self, bucket: str) -> AsyncIterator[dict[str, Any]]:
        async for item in self.client.pages(
            f"{CLOUD_STORAGE}/b/{quote(bucket, safe='')}/o",
            "items",
            params={"maxResults": self.page_size},
        ):
            # Folder placeholders have no content
            if item.get("name", "").endswith("/"):
                continue
            yield item

    async def _file(self, bucket: str, item: dict[str, Any]) -> FetchResult:
        name = item["name"]
        resource_id = file_id(name)
        parents = (("buckets", bucket),)
        try:
            content = await self.client.download(
                f"{CLOUD_STORAGE}/b/{quote(bucket, safe='')}/o/{quote(name, safe='')}"
            )
        except self.fetch_errors as e:
            return self.fetch_failure("files", resource_id, e, parents)

        data = {
            "name": name.rsplit("/", 1)[-1],
            "mimeType": item.get("contentType"),
            "content": content,
        }
        return FetchResult.success(
            Resource(type="files", id=resource_id, data=data, parents=parents)
        )

    async def _close(self) -> None:
        await self.client.close()
