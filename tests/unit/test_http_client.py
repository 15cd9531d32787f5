"""
Unit tests for the HTTP sync client.

The delivery API is faked with httpx.MockTransport.

Tests cover:
- Request shape (path, params, auth)
- Paging and token extraction
- Status code handling (400, 429, 5xx)
- Transport and parse errors
"""

import httpx
import pytest

from replica.cms_replica.sync import (
    HttpSyncClient,
    SyncClient,
    SyncConnectionError,
    SyncError,
    SyncQuery,
    SyncRequestError,
    is_token_invalid,
)
from tests.factories import make_asset, make_deleted_entry, make_entry

BASE_URL = "https://cdn.example.com"
SYNC_URL = f"{BASE_URL}/spaces/space1/environments/master/sync"


def make_client(handler, **kwargs):
    return HttpSyncClient(
        space_id="space1",
        access_token="secret",
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestHttpSyncClient:
    """Tests for HttpSyncClient against a mocked API."""

    @pytest.mark.asyncio
    async def test_initial_sync_request(self):
        """Initial sync sends initial=true with a bearer token."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={"items": [make_entry("e1")], "nextSyncUrl": f"{SYNC_URL}?sync_token=T1"},
            )

        client = make_client(handler)
        await client.connect()
        collection = await client.sync(SyncQuery.initial_sync())
        await client.close()

        assert seen[0].url.path == "/spaces/space1/environments/master/sync"
        assert seen[0].url.params["initial"] == "true"
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert collection.next_sync_token == "T1"
        assert [i["sys"]["id"] for i in collection.entries] == ["e1"]

    @pytest.mark.asyncio
    async def test_incremental_sync_sends_token(self):
        """A continuation query sends sync_token."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"items": [], "nextSyncUrl": f"{SYNC_URL}?sync_token=T2"})

        client = make_client(handler)
        await client.connect()
        collection = await client.sync(SyncQuery.from_token("T1"))

        assert seen[0].url.params["sync_token"] == "T1"
        assert "initial" not in seen[0].url.params
        assert collection.next_sync_token == "T2"
        assert len(collection) == 0

    @pytest.mark.asyncio
    async def test_follows_pages_and_groups_items(self):
        """Every page is fetched; items are grouped by sys.type."""

        def handler(request):
            if request.url.params.get("sync_token") == "page2":
                return httpx.Response(
                    200,
                    json={
                        "items": [make_deleted_entry("e0"), make_asset("a1")],
                        "nextSyncUrl": f"{SYNC_URL}?sync_token=FINAL",
                    },
                )
            return httpx.Response(
                200,
                json={
                    "items": [make_entry("e1"), make_entry("e2")],
                    "nextPageUrl": f"{SYNC_URL}?sync_token=page2",
                },
            )

        client = make_client(handler)
        await client.connect()
        collection = await client.sync(SyncQuery.initial_sync())

        assert [i["sys"]["id"] for i in collection.entries] == ["e1", "e2"]
        assert [i["sys"]["id"] for i in collection.assets] == ["a1"]
        assert [i["sys"]["id"] for i in collection.deleted_entries] == ["e0"]
        assert collection.next_sync_token == "FINAL"

    @pytest.mark.asyncio
    async def test_unknown_item_types_are_skipped(self):
        """Items of unknown sys.type are dropped from the collection."""

        def handler(request):
            return httpx.Response(
                200,
                json={
                    "items": [{"sys": {"id": "x", "type": "ContentType"}}, make_entry("e1")],
                    "nextSyncUrl": f"{SYNC_URL}?sync_token=T",
                },
            )

        client = make_client(handler)
        await client.connect()
        collection = await client.sync(SyncQuery.initial_sync())

        assert len(collection) == 1

    @pytest.mark.asyncio
    async def test_bad_token_raises_400(self):
        """A 400 becomes a token-invalid SyncRequestError."""

        def handler(request):
            return httpx.Response(400, json={"sys": {"id": "BadRequest"}})

        client = make_client(handler)
        await client.connect()

        with pytest.raises(SyncRequestError) as exc_info:
            await client.sync(SyncQuery.from_token("expired"))

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "Request failed with status code 400"
        assert exc_info.value.url == SYNC_URL
        assert is_token_invalid(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error_is_not_token_invalid(self):
        """A 5xx propagates as a SyncRequestError that is not a token error."""

        def handler(request):
            return httpx.Response(503)

        client = make_client(handler)
        await client.connect()

        with pytest.raises(SyncRequestError) as exc_info:
            await client.sync(SyncQuery.initial_sync())

        assert exc_info.value.status_code == 503
        assert not is_token_invalid(exc_info.value)

    @pytest.mark.asyncio
    async def test_rate_limit_waits_and_retries(self):
        """A 429 is retried after the reset header's delay."""
        responses = [
            httpx.Response(429, headers={"X-Contentful-RateLimit-Reset": "0"}),
            httpx.Response(200, json={"items": [], "nextSyncUrl": f"{SYNC_URL}?sync_token=T"}),
        ]
        calls = []

        def handler(request):
            calls.append(request)
            return responses[len(calls) - 1]

        client = make_client(handler)
        await client.connect()
        collection = await client.sync(SyncQuery.initial_sync())

        assert len(calls) == 2
        assert collection.next_sync_token == "T"

    @pytest.mark.asyncio
    async def test_rate_limit_without_header(self):
        """A 429 with no reset header is an error."""

        def handler(request):
            return httpx.Response(429)

        client = make_client(handler)
        await client.connect()

        with pytest.raises(SyncError):
            await client.sync(SyncQuery.initial_sync())

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Network failures become SyncConnectionError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        await client.connect()

        with pytest.raises(SyncConnectionError):
            await client.sync(SyncQuery.initial_sync())

    @pytest.mark.asyncio
    async def test_invalid_body(self):
        """A body that is not a sync page is a SyncError."""

        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        client = make_client(handler)
        await client.connect()

        with pytest.raises(SyncError):
            await client.sync(SyncQuery.initial_sync())

    @pytest.mark.asyncio
    async def test_missing_next_sync_url(self):
        """The last page must carry nextSyncUrl."""

        def handler(request):
            return httpx.Response(200, json={"items": []})

        client = make_client(handler)
        await client.connect()

        with pytest.raises(SyncError):
            await client.sync(SyncQuery.initial_sync())

    @pytest.mark.asyncio
    async def test_sync_requires_connection(self):
        """sync() before connect() fails."""
        client = make_client(lambda request: httpx.Response(200))

        assert isinstance(client, SyncClient)
        with pytest.raises(SyncConnectionError):
            await client.sync(SyncQuery.initial_sync())

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self):
        """Connecting twice keeps one client; close releases it."""
        client = make_client(lambda request: httpx.Response(200))

        await client.connect()
        await client.connect()
        assert client.is_connected

        await client.close()
        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_page_fetch_after_close(self):
        """Fetching a page on a closed client is a connection error."""
        client = make_client(lambda request: httpx.Response(200))
        await client.connect()
        await client.close()

        with pytest.raises(SyncConnectionError, match="Not connected"):
            await client._get_page(SYNC_URL)
