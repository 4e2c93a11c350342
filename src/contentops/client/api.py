"""HTTP clients for the data backend and the storage proxy.

This module provides:
- RecordsClient: single-row reads against the data backend (baseline reads)
- StorageClient: upload/list/delete against the storage proxy
- APIError hierarchy raised on unexpected responses
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import httpx

from contentops.client.transfers.types import (
    FileRecord,
    TransferError,
    TransferNetworkError,
    TransferResponse,
    TransferServerError,
)

if TYPE_CHECKING:
    from contentops.client.transfers.types import ProgressCallback, UploadSource
    from contentops.core.config import BackendConfig

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


def _detail(response: httpx.Response, default: str) -> str:
    """Extract an error message from a JSON error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or default
    if isinstance(data, dict):
        return str(data.get("detail") or data.get("message") or default)
    return default


class RecordsClient:
    """HTTP client for row-level reads against the data backend."""

    def __init__(
        self,
        config: BackendConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the records client.

        Args:
            config: Backend configuration.
            transport: Optional transport override.
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
            headers={
                "apikey": config.api_key,
                "Authorization": f"Bearer {config.api_key}",
                "Accept": "application/json",
            },
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> RecordsClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.aclose()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid or expired key", response.status_code)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code >= 400:
            raise APIError(_detail(response, "Unknown error"), response.status_code)
        return response

    async def read_one(
        self,
        collection: str,
        resource_id: str,
        columns: str = "*",
    ) -> dict[str, Any]:
        """Read a single record by id.

        Args:
            collection: Name of the collection (table).
            resource_id: Id of the record.
            columns: Comma-separated column selection.

        Returns:
            The record as a dictionary.

        Raises:
            NotFoundError: If no record has this id.
            APIError: On any other error response.
        """
        response = self._handle_response(
            await self._client.get(
                f"/rest/v1/{collection}",
                params={"id": f"eq.{resource_id}", "select": columns},
            )
        )
        rows = response.json()
        if isinstance(rows, dict):
            return rows
        if not rows:
            raise NotFoundError(f"{collection} {resource_id} not found", 404)
        return dict(rows[0])


class StorageClient:
    """HTTP client for the storage proxy.

    Implements the TransferEndpoint capability: multipart uploads with
    progress, directory listings and deletes. Upload and delete return the
    raw status so callers decide what a rejection means.
    """

    def __init__(
        self,
        config: BackendConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the storage client.

        Args:
            config: Backend configuration (storage_url, storage_key).
            transport: Optional transport override.
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.storage_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
            headers={"x-api-key": config.storage_key},
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> StorageClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.aclose()

    async def health_check(self) -> bool:
        """Check if the storage proxy is reachable."""
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Listing ===

    async def list_files(self, path: str) -> list[FileRecord]:
        """List the entries of a remote directory.

        Args:
            path: Remote directory path.

        Returns:
            File records, directories included.

        Raises:
            TransferNetworkError: If the proxy could not be reached.
            TransferServerError: On a non-2xx status.
        """
        try:
            response = await self._client.get("/files", params={"path": path})
        except httpx.RequestError as e:
            raise TransferNetworkError(str(e) or type(e).__name__) from e
        if not response.is_success:
            raise TransferServerError(
                f"Listing failed (HTTP {response.status_code})",
                response.status_code,
            )
        try:
            return [FileRecord.from_dict(f) for f in response.json().get("files", [])]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TransferError(f"Invalid listing response: {e}") from e

    # === Mutations ===

    async def delete(self, path: str) -> TransferResponse:
        """Delete a remote file.

        Args:
            path: Full remote path of the file.

        Raises:
            TransferNetworkError: If the proxy could not be reached.
        """
        try:
            response = await self._client.delete("/file", params={"path": path})
        except httpx.RequestError as e:
            raise TransferNetworkError(str(e) or type(e).__name__) from e
        return TransferResponse(status_code=response.status_code, body=_body(response))

    async def upload(
        self,
        path: str,
        source: UploadSource,
        on_progress: ProgressCallback | None = None,
    ) -> TransferResponse:
        """Upload one file as a multipart body.

        Progress is reported as (bytes_sent, bytes_total) of the encoded
        body while it is streamed.

        Args:
            path: Remote destination directory.
            source: File to upload.
            on_progress: Optional progress callback.

        Raises:
            TransferNetworkError: If the transfer failed without a response.
            TransferError: If the source could not be read.
        """
        try:
            with source.open() as fh:
                multipart = self._client.build_request(
                    "POST",
                    "/upload",
                    params={"path": path},
                    files={"file": (source.name, fh, source.content_type)},
                )
                length = multipart.headers.get("Content-Length")
                total = int(length) if length else source.size_bytes

                async def counted() -> AsyncIterator[bytes]:
                    sent = 0
                    async for chunk in multipart.stream:  # type: ignore[union-attr]
                        yield chunk
                        sent += len(chunk)
                        if on_progress:
                            on_progress(min(sent, total), total)

                headers = {"Content-Type": multipart.headers["Content-Type"]}
                if length:
                    headers["Content-Length"] = length
                request = self._client.build_request(
                    "POST",
                    "/upload",
                    params={"path": path},
                    headers=headers,
                    content=counted(),
                )
                response = await self._client.send(request)
        except httpx.RequestError as e:
            raise TransferNetworkError(str(e) or type(e).__name__) from e
        except OSError as e:
            raise TransferError(f"Cannot read {source.name}: {e}") from e

        logger.debug("Upload %s -> %s: HTTP %d", source.name, path, response.status_code)
        return TransferResponse(status_code=response.status_code, body=_body(response))


def _body(response: httpx.Response) -> Any:
    """Decode a JSON body, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text
