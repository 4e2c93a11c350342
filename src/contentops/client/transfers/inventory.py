"""Reconciled listing of one remote directory.

This module provides:
- FileInventory: remote file records for the current path

Every refresh and delete takes a sequence number when it is issued. A
response is applied only if it is newer than the last applied one and its
path is still current, so a slow listing can never overwrite a newer
snapshot or leak into another path after clear().
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING

from contentops.client.transfers.types import DeleteError, RefreshError, TransferError

if TYPE_CHECKING:
    from contentops.client.transfers.types import FileRecord, TransferEndpoint

logger = logging.getLogger(__name__)


def join_path(folder: str, filename: str) -> str:
    """Join a remote folder and a file name."""
    return f"{folder.rstrip('/')}/{filename}"


class FileInventory:
    """Authoritative remote listing for one storage path at a time.

    Snapshots are replaced wholesale on refresh and shrunk record by record
    on confirmed deletes. Failures are kept in `error` instead of raised.
    """

    def __init__(self, endpoint: TransferEndpoint) -> None:
        """Initialize the inventory.

        Args:
            endpoint: Storage endpoint used for listings and deletes.
        """
        self._endpoint = endpoint
        self._path: str | None = None
        self._entries: list[FileRecord] = []
        self._error: TransferError | None = None
        self._in_flight = 0
        self._seq = itertools.count(1)
        self._applied_seq = 0

    @property
    def path(self) -> str | None:
        """Get the path the inventory currently mirrors."""
        return self._path

    @property
    def entries(self) -> list[FileRecord]:
        """Get all records, directories included."""
        return list(self._entries)

    @property
    def files(self) -> list[FileRecord]:
        """Get the non-directory records."""
        return [r for r in self._entries if not r.is_directory]

    @property
    def loading(self) -> bool:
        """Check if a refresh is in flight."""
        return self._in_flight > 0

    @property
    def error(self) -> TransferError | None:
        """Get the last refresh or delete failure."""
        return self._error

    def clear_error(self) -> None:
        """Forget the last failure."""
        self._error = None

    def clear(self) -> None:
        """Drop the listing and detach from the current path.

        Responses to requests issued before this call are discarded.
        """
        self._path = None
        self._entries = []
        self._error = None
        self._applied_seq = next(self._seq)

    def _is_current(self, seq: int, path: str) -> bool:
        return path == self._path and seq > self._applied_seq

    async def refresh(self, path: str | None = None) -> bool:
        """Replace the listing with the remote directory content.

        Args:
            path: Directory to mirror; defaults to the current path.

        Returns:
            True if the fetched listing was applied.

        Raises:
            ValueError: If no path is given and none is current.
        """
        if path is None:
            if self._path is None:
                raise ValueError("No path to refresh")
            path = self._path
        if path != self._path:
            self._path = path
            self._entries = []
            self._error = None

        seq = next(self._seq)
        self._in_flight += 1
        try:
            records = await self._endpoint.list_files(path)
        except TransferError as e:
            if self._is_current(seq, path):
                self._error = RefreshError(f"Error fetching files: {e}")
            logger.warning("Listing %s failed: %s", path, e)
            return False
        finally:
            self._in_flight -= 1

        if not self._is_current(seq, path):
            logger.debug("Discarded stale listing of %s (seq %d)", path, seq)
            return False

        self._entries = list(records)
        self._applied_seq = seq
        self._error = None
        logger.debug("Listing of %s: %d entries", path, len(records))
        return True

    async def delete(self, filename: str, path: str | None = None) -> bool:
        """Delete a remote file and drop its record once confirmed.

        Args:
            filename: Name of the file in the directory.
            path: Directory of the file; defaults to the current path.

        Returns:
            True if the delete was confirmed.

        Raises:
            ValueError: If no path is given and none is current.
        """
        folder = path or self._path
        if folder is None:
            raise ValueError("No path to delete from")

        seq = next(self._seq)
        try:
            response = await self._endpoint.delete(join_path(folder, filename))
        except TransferError as e:
            self._error = DeleteError(f"Error deleting {filename}: {e}")
            logger.warning("%s", self._error)
            return False

        if not response.ok:
            self._error = DeleteError(f"Error deleting {filename}: HTTP {response.status_code}")
            logger.warning("%s", self._error)
            return False

        logger.info("Deleted %s", join_path(folder, filename))
        if folder != self._path:
            return True

        for i, record in enumerate(self._entries):
            if record.name == filename:
                self._entries = self._entries[:i] + self._entries[i + 1 :]
                break
        self._applied_seq = max(self._applied_seq, seq)
        return True
