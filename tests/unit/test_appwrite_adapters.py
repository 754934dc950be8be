"""
Unit tests for the Appwrite source and destination.

Both adapters talk to a fake Appwrite REST API served by an httpx
MockTransport.
"""

import json

import httpx
import pytest

from appwrite_transfer.client.appwrite_client import AppwriteClient, query
from appwrite_transfer.destinations.appwrite import AppwriteDestination
from appwrite_transfer.destinations.base import PushStatus
from appwrite_transfer.providers import AppwriteCredentials
from appwrite_transfer.resources import Resource, ResourceScope
from appwrite_transfer.sources.appwrite import AppwriteSource, convert_user

CREDENTIALS = AppwriteCredentials(
    projectId="peer", endpoint="https://peer.example/v1", apiKey="peer-key"
)


class FakeAppwrite:
    """In-memory Appwrite project keyed by collection path."""

    def __init__(self, lists: dict[str, list[dict]] | None = None):
        self.lists = lists or {}
        self.created: list[tuple[str, dict]] = []
        self.requests: list[httpx.Request] = []
        self.attribute_polls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/v1/")

        if request.method == "GET":
            if path.endswith(("/attributes", "/indexes")) and path in self.lists:
                if path.endswith("/attributes"):
                    self.attribute_polls += 1
                items = self.lists[path]
                return httpx.Response(
                    200, json={"total": len(items), path.rsplit("/", 1)[-1]: items}
                )
            if path.endswith("/indexes"):
                return httpx.Response(200, json={"total": 0, "indexes": []})
            if path.endswith("/attributes"):
                self.attribute_polls += 1
                status = "processing" if self.attribute_polls == 1 else "available"
                attributes = [{"key": "title", "status": status}]
                return httpx.Response(200, json={"attributes": attributes})
            if path.endswith("/download"):
                return httpx.Response(200, content=b"contents of " + path.encode())
            if path in self.lists:
                return self._page(request, self.lists[path], path.rsplit("/", 1)[-1])
            parent, _, item_id = path.rpartition("/")
            for item in self.lists.get(parent, []):
                if item["$id"] == item_id:
                    return httpx.Response(200, json=item)
            return httpx.Response(404, json={"message": "not found"})

        if request.method == "POST":
            if request.headers.get("content-type", "").startswith("multipart/form-data"):
                self.created.append((path, {"multipart": request.content}))
            else:
                self.created.append((path, json.loads(request.content)))
            return httpx.Response(201, json={"$id": "created"})

        return httpx.Response(405)

    def _page(self, request: httpx.Request, items: list[dict], key: str) -> httpx.Response:
        queries = [json.loads(q) for q in request.url.params.get_list("queries[]")]
        limit = next(q["values"][0] for q in queries if q["method"] == "limit")
        cursor = next((q["values"][0] for q in queries if q["method"] == "cursorAfter"), None)
        for q in queries:
            if q["method"] == "equal":
                items = [item for item in items if item.get(q["attribute"]) in q["values"]]
        start = 0
        if cursor is not None:
            start = next(i for i, item in enumerate(items) if item["$id"] == cursor) + 1
        return httpx.Response(
            200, json={"total": len(items), key: items[start : start + limit]}
        )


class TestAppwriteClient:
    def test_query_encoding(self):
        assert json.loads(query("cursorAfter", "u1")) == {"method": "cursorAfter", "values": ["u1"]}
        assert json.loads(query("equal", "x", attribute="name"))["attribute"] == "name"

    def test_collection_paths(self):
        assert AppwriteClient.collection_path(
            "documents", {"databases": "db1", "collections": "c1"}
        ) == "databases/db1/collections/c1/documents"
        assert AppwriteClient.id_field("buckets") == "bucketId"

    def test_missing_parent(self):
        with pytest.raises(KeyError):
            AppwriteClient.collection_path("files")


class TestConvertUser:
    def test_scrypt_options_are_renamed(self):
        data = convert_user(
            {
                "email": "a@example.com",
                "name": "",
                "password": "h",
                "hash": "scryptMod",
                "hashOptions": {"salt": "s", "saltSeparator": "ss", "signerKey": "k"},
            }
        )

        assert data == {
            "email": "a@example.com",
            "passwordHash": {
                "algorithm": "scrypt-modified",
                "hash": "h",
                "passwordSalt": "s",
                "passwordSaltSeparator": "ss",
                "passwordSignerKey": "k",
            },
        }

    def test_unknown_hash_is_dropped(self):
        assert "passwordHash" not in convert_user({"email": "a", "password": "h", "hash": "rot13"})


class TestAppwriteSource:
    """Tests for reading from a peer project."""

    @pytest.fixture
    def api(self):
        return FakeAppwrite(
            {
                "users": [
                    {"$id": f"u{i}", "email": f"u{i}@example.com", "name": ""} for i in range(5)
                ],
                "databases": [
                    {"$id": "db1", "name": "Main", "enabled": True},
                    {"$id": "db2", "name": "Logs", "enabled": True},
                ],
                "databases/db1/collections": [
                    {
                        "$id": "c1",
                        "name": "Posts",
                        "attributes": [],
                        "$permissions": ['read("any")'],
                    }
                ],
                "databases/db2/collections": [{"$id": "c2", "name": "Events"}],
                "storage/buckets": [{"$id": "b1", "name": "Avatars"}],
                "storage/buckets/b1/files": [
                    {"$id": "f1", "name": "me.png", "mimeType": "image/png"}
                ],
                "functions": [],
            }
        )

    @pytest.fixture
    async def source(self, api, worker_config):
        source = AppwriteSource(CREDENTIALS, worker_config, transport=httpx.MockTransport(api))
        yield source
        await source.shut_down()

    @pytest.mark.asyncio
    async def test_cursor_pagination(self, source, api):
        """Five users across pages of two are all read."""
        results = [r async for r in source.export("users")]

        assert [r.resource.id for r in results] == ["u0", "u1", "u2", "u3", "u4"]
        assert len([r for r in api.requests if r.url.path == "/v1/users"]) == 3

    @pytest.mark.asyncio
    async def test_auth_headers(self, source, api):
        [r async for r in source.export("databases")]

        headers = api.requests[0].headers
        assert headers["X-Appwrite-Project"] == "peer"
        assert headers["X-Appwrite-Key"] == "peer-key"

    @pytest.mark.asyncio
    async def test_nested_resources_carry_parents(self, source):
        results = [r async for r in source.export("collections")]

        assert [r.cache_key for r in results] == ["db1/c1", "db2/c2"]
        assert results[0].resource.data["$permissions"] == ['read("any")']

    @pytest.mark.asyncio
    async def test_scope_restricts_parent_walk(self, source):
        scope = ResourceScope("databases", "db2")

        results = [r async for r in source.export("collections", scope)]

        assert [r.cache_key for r in results] == ["db2/c2"]

    @pytest.mark.asyncio
    async def test_files_are_downloaded(self, source):
        (result,) = [r async for r in source.export("files")]

        assert result.resource.data["content"].endswith(b"storage/buckets/b1/files/f1/download")
        assert result.resource.data["mimeType"] == "image/png"

    @pytest.mark.asyncio
    async def test_report(self, source):
        counts = await source.report(["users", "collections", "functions"])

        assert counts == {"users": 5, "collections": 2, "functions": 0}


class TestAppwriteDestination:
    """Tests for writing into a project."""

    @pytest.fixture
    def api(self):
        return FakeAppwrite(
            {
                "users": [{"$id": "existing", "email": "same@example.com", "name": "Same"}],
                "databases": [{"$id": "db1", "name": "Main", "enabled": True}],
                "databases/db1/collections": [
                    {"$id": "c1", "name": "Posts"},
                    {"$id": "c2", "name": "Tags"},
                ],
                "databases/db1/collections/c1/attributes": [
                    {"key": "title", "type": "string", "status": "available"}
                ],
                "databases/db1/collections/c2/attributes": [
                    {"key": "label", "type": "string", "status": "available"}
                ],
                "databases/db1/collections/c2/indexes": [
                    {"key": "by_label", "type": "key", "status": "available"}
                ],
                "teams/t1/memberships": [
                    {"$id": "dm1", "userId": "u1", "roles": ["owner"], "teamId": "t1"}
                ],
            }
        )

    @pytest.fixture
    async def destination(self, api, worker_config):
        destination = AppwriteDestination(
            CREDENTIALS,
            worker_config,
            transport=httpx.MockTransport(api),
            attribute_poll_interval=0,
        )
        yield destination
        await destination.shut_down()

    @pytest.mark.asyncio
    async def test_user_with_hash_uses_algorithm_endpoint(self, destination, api):
        user = Resource(
            type="users",
            id="u1",
            data={
                "email": "a@example.com",
                "passwordHash": {"algorithm": "bcrypt", "hash": "$2a$10$x"},
            },
        )

        result = await destination.push(user)

        assert result.status == PushStatus.SUCCESS
        assert api.created == [
            ("users/bcrypt", {"userId": "u1", "email": "a@example.com", "password": "$2a$10$x"})
        ]

    @pytest.mark.asyncio
    async def test_identical_existing_resource_is_skipped(self, destination, api):
        user = Resource(
            type="users", id="existing", data={"email": "same@example.com", "name": "Same"}
        )

        result = await destination.push(user)

        assert result.status == PushStatus.SKIPPED
        assert api.created == []

    @pytest.mark.asyncio
    async def test_different_existing_resource_is_an_error(self, destination, api):
        database = Resource(type="databases", id="db1", data={"name": "Other", "enabled": True})

        result = await destination.push(database)

        assert result.status == PushStatus.ERROR
        assert "different content" in result.message
        assert destination.errors[0].resource_name == "database"

    @pytest.mark.asyncio
    async def test_internal_attributes_are_stripped(self, destination, api):
        document = Resource(
            type="documents",
            id="d1",
            data={"title": "x", "$createdAt": "2024", "$permissions": ['read("any")']},
            parents=(("databases", "db1"), ("collections", "c1")),
        )

        await destination.push(document)

        path, payload = api.created[0]
        assert path == "databases/db1/collections/c1/documents"
        assert payload == {
            "documentId": "d1",
            "data": {"title": "x"},
            "permissions": ['read("any")'],
        }

    @pytest.mark.asyncio
    async def test_collection_schema_waits_for_attributes(self, destination, api):
        collection = Resource(
            type="collections",
            id="c9",
            data={
                "name": "Posts",
                "attributes": [
                    {"key": "title", "type": "string", "size": 120, "required": True},
                ],
                "indexes": [{"key": "by_title", "type": "key", "attributes": ["title"]}],
            },
            parents=(("databases", "db1"),),
        )

        result = await destination.push(collection)

        assert result.status == PushStatus.SUCCESS
        paths = [path for path, _ in api.created]
        assert paths == [
            "databases/db1/collections",
            "databases/db1/collections/c9/attributes/string",
            "databases/db1/collections/c9/indexes",
        ]
        assert api.created[0][1] == {"collectionId": "c9", "name": "Posts"}
        assert api.attribute_polls == 2

    @pytest.mark.asyncio
    async def test_file_upload_is_multipart(self, destination, api):
        file = Resource(
            type="files",
            id="f1",
            data={"name": "me.png", "mimeType": "image/png", "content": b"PNGDATA"},
            parents=(("buckets", "b1"),),
        )

        result = await destination.push(file)

        assert result.status == PushStatus.SUCCESS
        path, payload = api.created[0]
        assert path == "storage/buckets/b1/files"
        assert b"PNGDATA" in payload["multipart"]
        assert b'name="fileId"' in payload["multipart"]

    @pytest.mark.asyncio
    async def test_unsupported_hash_is_an_error(self, destination):
        user = Resource(
            type="users",
            id="u2",
            data={"email": "b@example.com", "passwordHash": {"algorithm": "rot13", "hash": "x"}},
        )

        result = await destination.push(user)

        assert result.status == PushStatus.ERROR
        assert "Unsupported password hash algorithm" in result.message

    @pytest.mark.asyncio
    async def test_existing_membership_is_matched_by_user(self, destination, api):
        """A membership created earlier carries a new ID, so the user identifies it."""
        membership = Resource(
            type="memberships",
            id="sm1",
            data={"userId": "u1", "roles": ["owner"]},
            parents=(("teams", "t1"),),
        )

        result = await destination.push(membership)

        assert result.status == PushStatus.SKIPPED
        assert api.created == []
        (lookup,) = api.requests
        assert lookup.url.path == "/v1/teams/t1/memberships"
        queries = [json.loads(q) for q in lookup.url.params.get_list("queries[]")]
        assert {"method": "equal", "attribute": "userId", "values": ["u1"]} in queries

    @pytest.mark.asyncio
    async def test_membership_with_other_roles_is_an_error(self, destination, api):
        membership = Resource(
            type="memberships",
            id="sm1",
            data={"userId": "u1", "roles": ["developer"]},
            parents=(("teams", "t1"),),
        )

        result = await destination.push(membership)

        assert result.status == PushStatus.ERROR
        assert "different content" in result.message

    @pytest.mark.asyncio
    async def test_new_membership_is_created(self, destination, api):
        membership = Resource(
            type="memberships",
            id="sm2",
            data={"userId": "u2", "roles": []},
            parents=(("teams", "t1"),),
        )

        result = await destination.push(membership)

        assert result.status == PushStatus.SUCCESS
        assert api.created == [("teams/t1/memberships", {"userId": "u2", "roles": []})]

    @pytest.mark.asyncio
    async def test_existing_collection_gets_missing_schema(self, destination, api):
        """A collection left half-built by an earlier run is completed."""
        collection = Resource(
            type="collections",
            id="c1",
            data={
                "name": "Posts",
                "attributes": [
                    {"key": "title", "type": "string", "size": 120, "required": True},
                    {"key": "body", "type": "string", "size": 5000, "required": False},
                ],
                "indexes": [{"key": "by_title", "type": "key", "attributes": ["title"]}],
            },
            parents=(("databases", "db1"),),
        )

        result = await destination.push(collection)

        assert result.status == PushStatus.SUCCESS
        assert [path for path, _ in api.created] == [
            "databases/db1/collections/c1/attributes/string",
            "databases/db1/collections/c1/indexes",
        ]
        assert api.created[0][1]["key"] == "body"
        assert api.created[1][1]["key"] == "by_title"

    @pytest.mark.asyncio
    async def test_existing_collection_with_full_schema_is_skipped(self, destination, api):
        collection = Resource(
            type="collections",
            id="c2",
            data={
                "name": "Tags",
                "attributes": [{"key": "label", "type": "string", "size": 64}],
                "indexes": [{"key": "by_label", "type": "key", "attributes": ["label"]}],
            },
            parents=(("databases", "db1"),),
        )

        result = await destination.push(collection)

        assert result.status == PushStatus.SKIPPED
        assert api.created == []
