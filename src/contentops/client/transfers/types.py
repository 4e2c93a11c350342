"""Shared types and dataclasses for transfer operations.

This module provides:
- TransferError and its subclasses: the per-item / per-inventory error taxonomy
- UploadStatus, UploadItem: one file's upload lifecycle
- UploadSource, LocalFile: what can be uploaded
- FileRecord, TransferResponse: storage proxy payloads
- TransferEndpoint: the storage capability the queue and inventory consume
- Type aliases for callbacks
"""

from __future__ import annotations

import math
import mimetypes
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import IO, Any, Protocol


class TransferError(Exception):
    """Base exception for transfer errors."""


class TransferNetworkError(TransferError):
    """Transport-level failure, no response received."""


class TransferServerError(TransferError):
    """The storage proxy answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class DeleteError(TransferError):
    """A delete was not confirmed; the inventory is left unchanged."""


class RefreshError(TransferError):
    """A listing failed; the previous inventory snapshot is retained."""


# Type alias for progress callback (bytes_sent, bytes_total)
ProgressCallback = Callable[[int, int], None]


class UploadStatus(str, Enum):
    """Status of an upload item."""

    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition can happen."""
        return self in (UploadStatus.SUCCESS, UploadStatus.ERROR)


@dataclass
class UploadItem:
    """One file's transfer as shown to the caller.

    Terminal states never revert; progress only moves forward while the
    item is uploading.

    Attributes:
        id: Locally generated, unique within the queue's lifetime.
        name: Source file name.
        size_bytes: Source file size.
        progress_percent: 0-100.
        status: Current status.
        error_detail: Human-readable error, set only in ERROR status.
    """

    name: str
    size_bytes: int
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    progress_percent: int = 0
    status: UploadStatus = UploadStatus.PENDING
    error_detail: str | None = None

    @property
    def is_active(self) -> bool:
        """Check if the item is pending or uploading."""
        return not self.status.is_terminal

    def mark_uploading(self) -> None:
        """Move a pending item to uploading."""
        if self.status == UploadStatus.PENDING:
            self.status = UploadStatus.UPLOADING

    def update_progress(self, bytes_sent: int, bytes_total: int) -> None:
        """Apply a progress tick; ignored outside of UPLOADING."""
        if self.status != UploadStatus.UPLOADING or bytes_total <= 0:
            return
        # Half-up rounding, not banker's rounding
        percent = math.floor(bytes_sent / bytes_total * 100 + 0.5)
        percent = max(0, min(percent, 100))
        if percent > self.progress_percent:
            self.progress_percent = percent

    def mark_success(self) -> None:
        """Terminal success."""
        if self.status.is_terminal:
            return
        self.status = UploadStatus.SUCCESS
        self.progress_percent = 100

    def mark_error(self, detail: str) -> None:
        """Terminal error."""
        if self.status.is_terminal:
            return
        self.status = UploadStatus.ERROR
        self.error_detail = detail

    def to_dict(self) -> dict[str, Any]:
        """Convert to the {name, progress, status, error} rendering shape."""
        return {
            "id": self.id,
            "name": self.name,
            "progress": self.progress_percent,
            "status": self.status.value,
            "error": self.error_detail,
        }


class UploadSource(Protocol):
    """Something that can be streamed to the storage proxy."""

    @property
    def name(self) -> str: ...

    @property
    def size_bytes(self) -> int: ...

    @property
    def content_type(self) -> str: ...

    def open(self) -> IO[bytes]: ...


@dataclass(frozen=True)
class LocalFile:
    """A file on the local filesystem selected for upload."""

    path: Path
    name: str
    size_bytes: int
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Path | str) -> LocalFile:
        """Create from a filesystem path.

        Raises:
            FileNotFoundError: If the path does not exist.
        """
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            path=path,
            name=path.name,
            size_bytes=path.stat().st_size,
            content_type=guessed or "application/octet-stream",
        )

    def open(self) -> IO[bytes]:
        """Open the file for reading."""
        return self.path.open("rb")


@dataclass
class FileRecord:
    """Remote file metadata from the storage proxy."""

    name: str
    size: int
    is_directory: bool
    modified: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileRecord:
        """Create from API response dictionary."""
        modified = data.get("modified")
        return cls(
            name=data["name"],
            size=int(data.get("size") or 0),
            is_directory=bool(data.get("isDirectory", False)),
            modified=(
                datetime.fromisoformat(modified.replace("Z", "+00:00"))
                if modified
                else None
            ),
        )


@dataclass
class TransferResponse:
    """Status and body returned by an upload or delete call."""

    status_code: int
    body: Any = None

    @property
    def ok(self) -> bool:
        """Check for a 2xx status."""
        return 200 <= self.status_code < 300


class TransferEndpoint(Protocol):
    """Storage capability consumed by UploadQueue and FileInventory."""

    async def upload(
        self,
        path: str,
        source: UploadSource,
        on_progress: ProgressCallback | None = None,
    ) -> TransferResponse: ...

    async def list_files(self, path: str) -> list[FileRecord]: ...

    async def delete(self, path: str) -> TransferResponse: ...
