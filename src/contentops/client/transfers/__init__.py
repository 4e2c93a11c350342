"""Concurrent transfers and the remote file inventory.

This package provides:
- UploadQueue: parallel, progress-reporting uploads to one remote path
- FileInventory: reconciled listing of the remote path
- UploadItem, UploadStatus: per-file transfer state
- UploadPolicy: selection limits applied before enqueueing
- TransferError and subclasses: the transfer error taxonomy

Usage:
    from contentops.client.transfers import FileInventory, LocalFile, UploadQueue

    inventory = FileInventory(storage)
    await inventory.refresh("/projects/42")
    queue = UploadQueue(storage, "/projects/42", inventory=inventory, max_concurrent=4)
    queue.enqueue([LocalFile.from_path("cover.png")])
    await queue.join()
"""

from contentops.client.transfers.inventory import FileInventory, join_path
from contentops.client.transfers.policy import GALLERY_POLICY, UploadPolicy, format_bytes
from contentops.client.transfers.queue import UploadQueue
from contentops.client.transfers.types import (
    DeleteError,
    FileRecord,
    LocalFile,
    ProgressCallback,
    RefreshError,
    TransferEndpoint,
    TransferError,
    TransferNetworkError,
    TransferResponse,
    TransferServerError,
    UploadItem,
    UploadSource,
    UploadStatus,
)

__all__ = [
    # Errors
    "DeleteError",
    "RefreshError",
    "TransferError",
    "TransferNetworkError",
    "TransferServerError",
    # Types
    "FileRecord",
    "LocalFile",
    "ProgressCallback",
    "TransferEndpoint",
    "TransferResponse",
    "UploadItem",
    "UploadSource",
    "UploadStatus",
    # Components
    "FileInventory",
    "UploadQueue",
    # Policy
    "GALLERY_POLICY",
    "UploadPolicy",
    "format_bytes",
    "join_path",
]
