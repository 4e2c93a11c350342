"""Concurrent upload queue with per-item progress.

This module provides:
- UploadQueue: transfers a selection of files in parallel to one remote path

Each item runs in its own task and settles independently: a failing item
never aborts its siblings. Tasks wait for one of a bounded number of upload
slots before they start transferring.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from contentops.client.transfers.types import (
    TransferError,
    TransferNetworkError,
    TransferServerError,
    UploadItem,
)
from contentops.core.config import DEFAULT_MAX_CONCURRENT_UPLOADS

if TYPE_CHECKING:
    from contentops.client.transfers.inventory import FileInventory
    from contentops.client.transfers.policy import UploadPolicy
    from contentops.client.transfers.types import TransferEndpoint, UploadSource

logger = logging.getLogger(__name__)


class UploadQueue:
    """Uploads files to a remote path, tracking each one independently.

    Items are only ever appended; clear_finished() filters out the
    terminal ones.

    Usage:
        queue = UploadQueue(storage, "/projects/42", inventory=inventory)
        queue.enqueue([LocalFile.from_path(p) for p in paths])
        await queue.join()
        failed = [i for i in queue.items if i.status == UploadStatus.ERROR]
    """

    def __init__(
        self,
        endpoint: TransferEndpoint,
        path: str,
        inventory: FileInventory | None = None,
        max_concurrent: int | None = DEFAULT_MAX_CONCURRENT_UPLOADS,
        policy: UploadPolicy | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            endpoint: Storage endpoint receiving the uploads.
            path: Remote destination directory.
            inventory: Inventory refreshed after each successful upload.
            max_concurrent: Upload slots; None transfers everything at once.
            policy: Optional selection policy applied by enqueue().
        """
        if max_concurrent is not None and max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._endpoint = endpoint
        self._path = path
        self._inventory = inventory
        self._policy = policy
        self._max_concurrent = max_concurrent
        self._slots = asyncio.Semaphore(max_concurrent) if max_concurrent else None

        self._items: list[UploadItem] = []
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._rejections: list[str] = []

    @property
    def path(self) -> str:
        """Get the remote destination directory."""
        return self._path

    @property
    def items(self) -> list[UploadItem]:
        """Get the visible items, in enqueue order."""
        return list(self._items)

    @property
    def rejections(self) -> list[str]:
        """Get the policy rejections of the last enqueue()."""
        return list(self._rejections)

    @property
    def active_count(self) -> int:
        """Get number of pending or uploading items."""
        return sum(1 for item in self._items if item.is_active)

    @property
    def overall_progress(self) -> int:
        """Get the size-weighted progress of the visible items (0-100)."""
        if not self._items:
            return 0
        total = sum(item.size_bytes for item in self._items)
        if total == 0:
            return round(sum(i.progress_percent for i in self._items) / len(self._items))
        done = sum(item.size_bytes * item.progress_percent for item in self._items)
        return round(done / total)

    def get(self, item_id: str) -> UploadItem | None:
        """Get a visible item by id."""
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def is_busy(self) -> bool:
        """Check if any item is pending or uploading."""
        return any(item.is_active for item in self._items)

    def enqueue(self, sources: Iterable[UploadSource]) -> list[UploadItem]:
        """Create one pending item per source and start its transfer.

        Must be called from a running event loop.

        Args:
            sources: Files to upload.

        Returns:
            The created items.
        """
        selected = list(sources)
        self._rejections = []
        if self._policy is not None:
            selected, self._rejections = self._policy.validate(selected)
            for message in self._rejections:
                logger.warning("Rejected: %s", message)

        created: list[UploadItem] = []
        for source in selected:
            item = UploadItem(name=source.name, size_bytes=source.size_bytes)
            self._items.append(item)
            created.append(item)
            task = asyncio.create_task(self._transfer(item, source), name=f"upload-{item.name}")
            task.add_done_callback(lambda t, item=item: self._on_task_done(item, t))
            self._tasks[item.id] = task
        if created:
            logger.info("Enqueued %d uploads to %s", len(created), self._path)
        return created

    def clear_finished(self) -> int:
        """Drop success/error items from the visible set.

        Returns:
            Number of items removed.
        """
        before = len(self._items)
        self._items = [item for item in self._items if item.is_active]
        return before - len(self._items)

    def cancel(self, item_id: str) -> bool:
        """Abort a pending or uploading item.

        Returns:
            True if cancellation was requested.
        """
        task = self._tasks.get(item_id)
        item = self.get(item_id)
        if task is None or item is None or not item.is_active:
            return False
        task.cancel()
        logger.info("Cancellation requested for: %s", item.name)
        return True

    async def join(self) -> None:
        """Wait until every started transfer has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def remove(self, filename: str) -> bool:
        """Delete a remote file from the destination directory.

        The inventory record is dropped only after the delete is confirmed.

        Returns:
            True if the delete was confirmed.
        """
        if self._inventory is None:
            raise RuntimeError("Cannot remove files without an inventory")
        return await self._inventory.delete(filename, path=self._path)

    async def aclose(self) -> None:
        """Cancel every unfinished transfer and wait for them."""
        for task in list(self._tasks.values()):
            task.cancel()
        await self.join()

    def _on_task_done(self, item: UploadItem, task: asyncio.Task[None]) -> None:
        self._tasks.pop(item.id, None)
        # Cancelled before its first step
        if task.cancelled():
            item.mark_error("Upload cancelled")

    async def _transfer(self, item: UploadItem, source: UploadSource) -> None:
        """Run one item's transfer to a terminal state."""
        try:
            async with self._slots or contextlib.nullcontext():
                item.mark_uploading()
                logger.debug("Uploading %s (%d bytes)", item.name, item.size_bytes)
                response = await self._endpoint.upload(
                    self._path, source, on_progress=item.update_progress
                )
        except asyncio.CancelledError:
            item.mark_error("Upload cancelled")
            logger.info("Upload cancelled: %s", item.name)
            return
        except TransferNetworkError as e:
            item.mark_error(f"Network error: {e}")
            logger.warning("Upload of %s failed: network error: %s", item.name, e)
            return
        except TransferError as e:
            item.mark_error(str(e))
            logger.warning("Upload of %s failed: %s", item.name, e)
            return
        except Exception as e:
            item.mark_error(str(e) or type(e).__name__)
            logger.exception("Unexpected error uploading %s", item.name)
            return

        if not response.ok:
            error = TransferServerError(
                f"Server rejected upload (HTTP {response.status_code})",
                response.status_code,
            )
            item.mark_error(str(error))
            logger.warning("Upload of %s failed: %s", item.name, error)
            return

        item.mark_success()
        logger.info("Uploaded %s to %s", item.name, self._path)
        if self._inventory is not None:
            await self._inventory.refresh(self._path)
