"""In-memory collaborators for driving trackers and transfers in tests."""

from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field
from typing import IO, Any

from contentops.client.feed import ChangeEvent, ChangeFilter, SubscriptionError
from contentops.client.transfers.types import (
    FileRecord,
    ProgressCallback,
    TransferResponse,
    UploadSource,
)
from contentops.core.types import ChangeKind

_END = object()


async def settle(rounds: int = 20) -> None:
    """Let every ready task on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def versions_update(resource_id: str, count: int, collection: str = "projectsPreview") -> ChangeEvent:
    """An UPDATE whose new row carries `count` versions."""
    return ChangeEvent(
        kind=ChangeKind.UPDATE,
        collection=collection,
        old={"id": resource_id},
        new={"id": resource_id, "versions": [f"v{i}" for i in range(count)]},
    )


def row_insert(resource_id: str, collection: str = "projectsPreview") -> ChangeEvent:
    """An INSERT of a row with the given id."""
    return ChangeEvent(kind=ChangeKind.INSERT, collection=collection, new={"id": resource_id})


class FakeSubscription:
    """Subscription whose events are pushed by the test."""

    def __init__(self, feed: FakeFeed, handle: str, collection: str, change_filter: ChangeFilter) -> None:
        self.handle = handle
        self.collection = collection
        self.change_filter = change_filter
        self.closed = False
        self._feed = feed
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    def push(self, change: ChangeEvent) -> None:
        """Queue a change for delivery (even after close, like a late frame)."""
        self._queue.put_nowait(change)

    def fail(self, message: str) -> None:
        """Queue a connection failure."""
        self._queue.put_nowait(SubscriptionError(message))

    def __aiter__(self) -> FakeSubscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END or self.closed:
            raise StopAsyncIteration
        if isinstance(item, SubscriptionError):
            raise item
        return item  # type: ignore[no-any-return]

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_END)
        self._feed.released.append(self.handle)


class FakeFeed:
    """ChangeFeed handing out FakeSubscriptions."""

    def __init__(self, fail_with: str | None = None) -> None:
        self.fail_with = fail_with
        self.subscriptions: list[FakeSubscription] = []
        self.released: list[str] = []

    @property
    def latest(self) -> FakeSubscription:
        return self.subscriptions[-1]

    async def subscribe(self, collection: str, change_filter: ChangeFilter) -> FakeSubscription:
        await asyncio.sleep(0)
        if self.fail_with:
            raise SubscriptionError(self.fail_with)
        sub = FakeSubscription(self, f"{collection}-{len(self.subscriptions) + 1}", collection, change_filter)
        self.subscriptions.append(sub)
        return sub

    async def unsubscribe(self, handle: str) -> None:
        for sub in self.subscriptions:
            if sub.handle == handle:
                await sub.close()


class FakeRecords:
    """RecordReader serving fixed rows, optionally held back by a gate."""

    def __init__(
        self,
        records: dict[str, dict[str, Any]] | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.records = records or {}
        self.error = error
        self.gate = gate
        self.calls: list[tuple[str, str, str]] = []

    async def read_one(self, collection: str, resource_id: str, columns: str = "*") -> dict[str, Any]:
        self.calls.append((collection, resource_id, columns))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.records[resource_id]


@dataclass
class MemorySource:
    """UploadSource backed by bytes."""

    name: str
    data: bytes = b"0123456789"
    content_type: str = "image/png"
    size_override: int | None = None

    @property
    def size_bytes(self) -> int:
        return self.size_override if self.size_override is not None else len(self.data)

    def open(self) -> IO[bytes]:
        return io.BytesIO(self.data)


@dataclass
class ListingStep:
    """One scripted list_files answer, released when its gate is set."""

    result: list[FileRecord] | Exception
    gate: asyncio.Event | None = None


@dataclass
class FakeEndpoint:
    """TransferEndpoint with scripted outcomes per file name."""

    outcomes: dict[str, int | Exception] = field(default_factory=dict)
    gates: dict[str, asyncio.Event] = field(default_factory=dict)
    listing: list[FileRecord] = field(default_factory=list)
    listing_steps: list[ListingStep] = field(default_factory=list)
    delete_outcome: int | Exception = 204
    ticks: int = 4

    active: int = 0
    max_active: int = 0
    uploaded: list[str] = field(default_factory=list)
    list_calls: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    async def upload(
        self,
        path: str,
        source: UploadSource,
        on_progress: ProgressCallback | None = None,
    ) -> TransferResponse:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            total = source.size_bytes
            gate = self.gates.get(source.name)
            for i in range(1, self.ticks + 1):
                await asyncio.sleep(0)
                if on_progress:
                    on_progress(total * i // self.ticks, total)
                if gate is not None and i == self.ticks // 2:
                    await gate.wait()
            outcome = self.outcomes.get(source.name, 200)
            if isinstance(outcome, Exception):
                raise outcome
            self.uploaded.append(f"{path}/{source.name}")
            return TransferResponse(status_code=outcome, body={"name": source.name})
        finally:
            self.active -= 1

    async def list_files(self, path: str) -> list[FileRecord]:
        self.list_calls.append(path)
        if self.listing_steps:
            step = self.listing_steps.pop(0)
            if step.gate is not None:
                await step.gate.wait()
            if isinstance(step.result, Exception):
                raise step.result
            return list(step.result)
        await asyncio.sleep(0)
        return list(self.listing)

    async def delete(self, path: str) -> TransferResponse:
        await asyncio.sleep(0)
        self.deleted.append(path)
        if isinstance(self.delete_outcome, Exception):
            raise self.delete_outcome
        return TransferResponse(status_code=self.delete_outcome)


def record(name: str, size: int = 10, is_directory: bool = False) -> FileRecord:
    """Build a FileRecord."""
    return FileRecord(name=name, size=size, is_directory=is_directory)
