"""Tests for the OneDrive remote tree client.

Graph responses are served by an httpx.MockTransport, so these tests
cover the wire contract without network access.
"""

from __future__ import annotations

import httpx
import pytest

from flixdex.services.onedrive import (
    SELECT_FIELDS,
    OneDriveClient,
    RemoteAuthExpiredError,
    RemoteEntryKind,
    RemoteProtocolError,
    RemoteRateLimitError,
    RemoteTransientError,
    RequestPacer,
)

BASE_URL = "https://graph.test/v1.0"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def make_client():
    """Build a client whose HTTP traffic is answered by ``handler``."""
    clients: list[OneDriveClient] = []

    def _make(handler, page_size: int = 50) -> OneDriveClient:
        client = OneDriveClient(
            base_url=BASE_URL,
            page_size=page_size,
            pacer=RequestPacer(min_delay=0, requests_per_minute=10_000),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.close()


def json_response(body, status_code: int = 200, headers: dict | None = None):
    return httpx.Response(status_code, json=body, headers=headers)


# =============================================================================
# Request Tests
# =============================================================================


class TestListChildrenRequest:
    """Tests for the outgoing listing request."""

    async def test_first_page_request(self, make_client):
        """The first page targets the children endpoint with select and top."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response({"value": []})

        client = make_client(handler, page_size=25)
        await client.list_children("token-abc", "root")

        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/v1.0/me/drive/items/root/children"
        assert request.url.params["$select"] == SELECT_FIELDS
        assert request.url.params["$top"] == "25"
        assert request.headers["Authorization"] == "Bearer token-abc"

    async def test_cursor_is_requested_verbatim(self, make_client):
        """A next link is fetched as-is, without rebuilding the query."""
        seen: list[httpx.Request] = []
        next_link = f"{BASE_URL}/me/drive/items/root/children?$skiptoken=abc123"

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response({"value": []})

        client = make_client(handler)
        await client.list_children("token", "root", cursor=next_link)

        assert len(seen) == 1
        assert seen[0].url.path == "/v1.0/me/drive/items/root/children"
        assert seen[0].url.params["$skiptoken"] == "abc123"
        assert "$select" not in seen[0].url.params

    def test_children_url_escapes_folder_id(self):
        client = OneDriveClient(base_url=BASE_URL + "/")
        assert (
            client.children_url("ABC!123")
            == f"{BASE_URL}/me/drive/items/ABC%21123/children"
        )


# =============================================================================
# Parsing Tests
# =============================================================================


class TestListChildrenParsing:
    """Tests for turning listing bodies into pages."""

    async def test_parses_folders_and_files(self, make_client):
        body = {
            "value": [
                {"id": "f1", "name": "X", "folder": {"childCount": 2}},
                {
                    "id": "i1",
                    "name": "movie.mp4",
                    "size": 1000,
                    "file": {"mimeType": "video/mp4"},
                    "@microsoft.graph.downloadUrl": "https://dl.example/i1",
                },
            ],
            "@odata.nextLink": f"{BASE_URL}/next",
        }
        client = make_client(lambda request: json_response(body))

        page = await client.list_children("token", "root")

        assert page.next_cursor == f"{BASE_URL}/next"
        folder, movie = page.entries
        assert folder.kind == RemoteEntryKind.FOLDER
        assert folder.is_folder
        assert folder.id == "f1"
        assert movie.kind == RemoteEntryKind.FILE
        assert movie.name == "movie.mp4"
        assert movie.size == 1000
        assert movie.mime_type == "video/mp4"
        assert movie.download_url == "https://dl.example/i1"

    async def test_last_page_has_no_cursor(self, make_client):
        client = make_client(lambda request: json_response({"value": []}))
        page = await client.list_children("token", "root")
        assert page.entries == []
        assert page.next_cursor is None

    async def test_file_without_facet_mime_type(self, make_client):
        """A file with no declared MIME type still parses; size may be absent."""
        body = {"value": [{"id": "i1", "name": "clip.mkv", "file": {}}]}
        client = make_client(lambda request: json_response(body))

        page = await client.list_children("token", "root")

        entry = page.entries[0]
        assert entry.mime_type is None
        assert entry.size is None
        assert entry.download_url is None

    async def test_skips_items_that_are_neither_file_nor_folder(self, make_client):
        body = {
            "value": [
                {"id": "nb", "name": "Notebook", "package": {"type": "oneNote"}},
                {"id": "i1", "name": "a.mp4", "file": {"mimeType": "video/mp4"}},
            ]
        }
        client = make_client(lambda request: json_response(body))

        page = await client.list_children("token", "root")

        assert [entry.id for entry in page.entries] == ["i1"]

    async def test_non_json_body_is_protocol_error(self, make_client):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(RemoteProtocolError):
            await client.list_children("token", "root")

    async def test_missing_value_is_protocol_error(self, make_client):
        client = make_client(lambda request: json_response({"items": []}))
        with pytest.raises(RemoteProtocolError):
            await client.list_children("token", "root")

    async def test_item_without_id_is_protocol_error(self, make_client):
        body = {"value": [{"name": "orphan.mp4", "file": {}}]}
        client = make_client(lambda request: json_response(body))
        with pytest.raises(RemoteProtocolError):
            await client.list_children("token", "root")

    async def test_non_string_next_link_is_protocol_error(self, make_client):
        body = {"value": [], "@odata.nextLink": 42}
        client = make_client(lambda request: json_response(body))
        with pytest.raises(RemoteProtocolError):
            await client.list_children("token", "root")

    async def test_relative_next_link_is_protocol_error(self, make_client):
        body = {"value": [], "@odata.nextLink": "children?$skiptoken=abc"}
        client = make_client(lambda request: json_response(body))
        with pytest.raises(RemoteProtocolError):
            await client.list_children("token", "root")

    async def test_unparseable_cursor_is_protocol_error(self, make_client):
        """A cursor httpx cannot parse fails the folder, not the whole scan."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return json_response({"value": []})

        client = make_client(handler)
        with pytest.raises(RemoteProtocolError):
            await client.list_children("token", "root", cursor=f"{BASE_URL}/next\x00")
        assert seen == []

    @pytest.mark.parametrize(
        "item",
        [
            {"id": "i1", "name": 123, "file": {"mimeType": "video/mp4"}},
            {"id": "i1", "name": "a.mp4", "file": {"mimeType": 7}},
            {
                "id": "i1",
                "name": "a.mp4",
                "file": {"mimeType": "video/mp4"},
                "@microsoft.graph.downloadUrl": {"href": "https://dl.example/i1"},
            },
            {"id": "f1", "name": ["Movies"], "folder": {"childCount": 1}},
        ],
    )
    async def test_wrongly_typed_item_field_is_protocol_error(self, make_client, item):
        client = make_client(lambda request: json_response({"value": [item]}))
        with pytest.raises(RemoteProtocolError) as exc_info:
            await client.list_children("token", "root")
        assert "malformed item" in str(exc_info.value)


# =============================================================================
# Error Classification Tests
# =============================================================================


class TestErrorClassification:
    """Tests for mapping failures to remote tree errors."""

    async def test_401_is_auth_expired(self, make_client):
        client = make_client(
            lambda request: json_response(
                {"error": {"code": "InvalidAuthenticationToken"}}, status_code=401
            )
        )
        with pytest.raises(RemoteAuthExpiredError):
            await client.list_children("expired", "root")

    async def test_429_is_rate_limit_with_retry_after(self, make_client):
        client = make_client(
            lambda request: json_response(
                {"error": {"code": "TooManyRequests"}},
                status_code=429,
                headers={"Retry-After": "7"},
            )
        )
        with pytest.raises(RemoteRateLimitError) as exc_info:
            await client.list_children("token", "root")

        assert exc_info.value.retry_after == 7
        assert isinstance(exc_info.value, RemoteTransientError)

    async def test_429_without_retry_after(self, make_client):
        client = make_client(lambda request: httpx.Response(429))
        with pytest.raises(RemoteRateLimitError) as exc_info:
            await client.list_children("token", "root")
        assert exc_info.value.retry_after is None

    @pytest.mark.parametrize("status_code", [500, 502, 503, 504])
    async def test_5xx_is_transient(self, make_client, status_code):
        client = make_client(lambda request: httpx.Response(status_code))
        with pytest.raises(RemoteTransientError):
            await client.list_children("token", "root")

    @pytest.mark.parametrize("status_code", [400, 403, 404])
    async def test_other_4xx_is_protocol_error(self, make_client, status_code):
        client = make_client(
            lambda request: json_response(
                {"error": {"code": "itemNotFound"}}, status_code=status_code
            )
        )
        with pytest.raises(RemoteProtocolError) as exc_info:
            await client.list_children("token", "missing")
        if status_code == 404:
            assert "itemNotFound" in str(exc_info.value)

    async def test_network_error_is_transient(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(RemoteTransientError):
            await client.list_children("token", "root")

    async def test_timeout_is_transient(self, make_client):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(RemoteTransientError):
            await client.list_children("token", "root")


class TestClientLifecycle:
    """Tests for HTTP client management."""

    async def test_close_releases_client(self, make_client):
        client = make_client(lambda request: json_response({"value": []}))
        await client.list_children("token", "root")

        await client.close()

        assert client._client is None

    async def test_lazily_creates_client(self):
        client = OneDriveClient(base_url=BASE_URL)
        http_client = await client._get_client()
        assert http_client is await client._get_client()
        await client.close()


class TestRequestPacer:
    """Tests for RequestPacer."""

    async def test_acquire_records_requests(self):
        pacer = RequestPacer(min_delay=0, requests_per_minute=100)
        await pacer.acquire()
        await pacer.acquire()
        assert len(pacer._request_times) == 2
