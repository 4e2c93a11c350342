"""Tests for the backend HTTP clients."""

import json
from pathlib import Path

import httpx
import pytest

from contentops.client.api import (
    APIError,
    AuthenticationError,
    NotFoundError,
    RecordsClient,
    StorageClient,
)
from contentops.client.transfers import (
    LocalFile,
    TransferError,
    TransferNetworkError,
    TransferServerError,
)
from contentops.core.config import BackendConfig


@pytest.fixture
def config() -> BackendConfig:
    return BackendConfig(
        api_url="http://db.test",
        api_key="anon-key",
        storage_url="http://storage.test",
        storage_key="storage-key",
    )


def rows_url(resource_id: str, columns: str = "*") -> httpx.URL:
    return httpx.URL(
        "http://db.test/rest/v1/projectsPreview",
        params={"id": f"eq.{resource_id}", "select": columns},
    )


class TestRecordsClient:
    """Tests for RecordsClient."""

    @pytest.mark.asyncio
    async def test_read_one(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return the first matching row."""
        httpx_mock.add_response(
            url=rows_url("42", "versions"),
            json=[{"versions": ["a", "b"]}],
        )

        async with RecordsClient(config) as client:
            row = await client.read_one("projectsPreview", "42", "versions")

        assert row == {"versions": ["a", "b"]}
        request = httpx_mock.get_request()
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_read_one_object_body(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should accept a single object body."""
        httpx_mock.add_response(url=rows_url("42"), json={"id": "42"})

        async with RecordsClient(config) as client:
            assert await client.read_one("projectsPreview", "42") == {"id": "42"}

    @pytest.mark.asyncio
    async def test_read_one_missing(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise NotFoundError for an empty result."""
        httpx_mock.add_response(url=rows_url("404"), json=[])

        async with RecordsClient(config) as client:
            with pytest.raises(NotFoundError):
                await client.read_one("projectsPreview", "404")

    @pytest.mark.asyncio
    async def test_read_one_unauthorized(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise AuthenticationError on 401."""
        httpx_mock.add_response(url=rows_url("42"), status_code=401)

        async with RecordsClient(config) as client:
            with pytest.raises(AuthenticationError) as exc_info:
                await client.read_one("projectsPreview", "42")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_read_one_server_error(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should carry the error message of the body."""
        httpx_mock.add_response(url=rows_url("42"), status_code=500, json={"message": "boom"})

        async with RecordsClient(config) as client:
            with pytest.raises(APIError) as exc_info:
                await client.read_one("projectsPreview", "42")

        assert str(exc_info.value) == "boom"
        assert exc_info.value.status_code == 500


class TestStorageClientListing:
    """Tests for StorageClient listings and deletes."""

    @pytest.mark.asyncio
    async def test_health_check(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should report a healthy proxy."""
        httpx_mock.add_response(url="http://storage.test/health", json={"status": "ok"})

        async with StorageClient(config) as client:
            assert await client.health_check() is True

    @pytest.mark.asyncio
    async def test_list_files(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should parse the listing."""
        httpx_mock.add_response(
            url=httpx.URL("http://storage.test/files", params={"path": "/projects/42"}),
            json={
                "files": [
                    {"name": "a.png", "size": 1200, "isDirectory": False, "modified": "2024-05-01T10:00:00Z"},
                    {"name": "renders", "size": 0, "isDirectory": True},
                ]
            },
        )

        async with StorageClient(config) as client:
            records = await client.list_files("/projects/42")

        assert [r.name for r in records] == ["a.png", "renders"]
        assert records[0].size == 1200
        assert records[0].modified is not None and records[0].modified.year == 2024
        assert records[1].is_directory is True
        assert records[1].modified is None
        assert httpx_mock.get_request().headers["x-api-key"] == "storage-key"

    @pytest.mark.asyncio
    async def test_list_files_server_error(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise TransferServerError on a non-2xx status."""
        httpx_mock.add_response(
            url=httpx.URL("http://storage.test/files", params={"path": "/p"}),
            status_code=502,
        )

        async with StorageClient(config) as client:
            with pytest.raises(TransferServerError) as exc_info:
                await client.list_files("/p")

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_list_files_unreachable(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise TransferNetworkError when the proxy is unreachable."""
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))

        async with StorageClient(config) as client:
            with pytest.raises(TransferNetworkError, match="connection refused"):
                await client.list_files("/p")

    @pytest.mark.asyncio
    async def test_list_files_invalid_body(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise TransferError on a malformed listing."""
        httpx_mock.add_response(
            url=httpx.URL("http://storage.test/files", params={"path": "/p"}),
            json={"files": [{"size": 1}]},
        )

        async with StorageClient(config) as client:
            with pytest.raises(TransferError, match="Invalid listing response"):
                await client.list_files("/p")

    @pytest.mark.asyncio
    async def test_delete(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return the status of the delete."""
        httpx_mock.add_response(
            method="DELETE",
            url=httpx.URL("http://storage.test/file", params={"path": "/p/a.png"}),
            status_code=200,
            json={"deleted": True},
        )

        async with StorageClient(config) as client:
            response = await client.delete("/p/a.png")

        assert response.ok is True
        assert response.body == {"deleted": True}

    @pytest.mark.asyncio
    async def test_delete_rejected(self, config, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return a non-ok response instead of raising."""
        httpx_mock.add_response(
            method="DELETE",
            url=httpx.URL("http://storage.test/file", params={"path": "/p/a.png"}),
            status_code=403,
            text="forbidden",
        )

        async with StorageClient(config) as client:
            response = await client.delete("/p/a.png")

        assert response.ok is False
        assert response.status_code == 403
        assert response.body == "forbidden"


class TestStorageClientUpload:
    """Tests for multipart uploads with progress."""

    @pytest.mark.asyncio
    async def test_upload_reports_progress(self, config: BackendConfig, tmp_path: Path) -> None:
        """Should stream the multipart body and report progress up to the total."""
        source_path = tmp_path / "cover.png"
        source_path.write_bytes(b"\x89PNG" + b"x" * 2048)
        received: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(201, json={"name": "cover.png"})

        ticks: list[tuple[int, int]] = []
        async with StorageClient(config, transport=httpx.MockTransport(handler)) as client:
            response = await client.upload(
                "/projects/42",
                LocalFile.from_path(source_path),
                on_progress=lambda sent, total: ticks.append((sent, total)),
            )

        assert response.ok is True
        assert response.body == {"name": "cover.png"}

        (request,) = received
        assert request.url.path == "/upload"
        assert request.url.params["path"] == "/projects/42"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'filename="cover.png"' in request.content
        assert b"x" * 2048 in request.content

        total = int(request.headers["Content-Length"])
        assert total == len(request.content)
        assert ticks
        assert ticks[-1] == (total, total)
        sent = [s for s, _ in ticks]
        assert sent == sorted(sent)

    @pytest.mark.asyncio
    async def test_upload_server_rejection(self, config: BackendConfig, tmp_path: Path) -> None:
        """Should return the rejection status without raising."""
        source_path = tmp_path / "a.png"
        source_path.write_bytes(b"data")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text=json.dumps({"detail": "disk full"}))

        async with StorageClient(config, transport=httpx.MockTransport(handler)) as client:
            response = await client.upload("/p", LocalFile.from_path(source_path))

        assert response.ok is False
        assert response.status_code == 500
        assert response.body == {"detail": "disk full"}

    @pytest.mark.asyncio
    async def test_upload_network_error(self, config: BackendConfig, tmp_path: Path) -> None:
        """Should raise TransferNetworkError when no response arrives."""
        source_path = tmp_path / "a.png"
        source_path.write_bytes(b"data")

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with StorageClient(config, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(TransferNetworkError, match="connection refused"):
                await client.upload("/p", LocalFile.from_path(source_path))

    @pytest.mark.asyncio
    async def test_upload_unreadable_source(self, config: BackendConfig, tmp_path: Path) -> None:
        """Should raise TransferError when the source cannot be opened."""
        source_path = tmp_path / "a.png"
        source_path.write_bytes(b"data")
        source = LocalFile.from_path(source_path)
        source_path.unlink()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201)

        async with StorageClient(config, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(TransferError, match="Cannot read a.png"):
                await client.upload("/p", source)
