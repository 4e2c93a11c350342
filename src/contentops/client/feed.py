"""Change feed client for real-time row notifications.

This module provides:
- ChangeEvent, ChangeFilter: what the feed delivers and how it is narrowed
- ChangeFeed, Subscription: the capability consumed by CompletionTracker
- RealtimeFeed: WebSocket implementation multiplexing subscriptions

Architecture:
    Backend ─push─► RealtimeFeed ─► FeedSubscription (queue) ─► CompletionTracker

Wire format (JSON text frames):
    client: {"type": "subscribe", "ref": "...", "collection": "...",
             "events": ["UPDATE"], "filter": "id=eq.42"}
    server: {"type": "subscribed", "ref": "..."}
    server: {"type": "change", "ref": "...", "event": "UPDATE",
             "collection": "...", "old": {...}, "new": {...}}
    server: {"type": "error", "ref": "...", "message": "..."}
    client: {"type": "unsubscribe", "ref": "..."}
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import websockets
from websockets.exceptions import WebSocketException

from contentops.core.types import ChangeKind

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from websockets.asyncio.client import ClientConnection

    from contentops.core.config import BackendConfig

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Error connecting to realtime updates"


class SubscriptionError(Exception):
    """The feed connection failed or a subscription was rejected."""


@dataclass(frozen=True)
class ChangeEvent:
    """A row-level change notification.

    Attributes:
        kind: INSERT, UPDATE or DELETE.
        collection: Collection (table) of the row.
        old: Row before the change, if the backend sends it.
        new: Row after the change.
    """

    kind: ChangeKind
    collection: str
    old: dict[str, Any] | None = None
    new: dict[str, Any] | None = None

    @property
    def record(self) -> dict[str, Any]:
        """The most recent known version of the row."""
        return self.new or self.old or {}

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> ChangeEvent:
        """Create from a decoded "change" frame.

        Raises:
            ValueError: If the event kind is unknown.
        """
        return cls(
            kind=ChangeKind(str(data.get("event", "")).upper()),
            collection=data.get("collection", ""),
            old=data.get("old") or None,
            new=data.get("new") or None,
        )


@dataclass(frozen=True)
class ChangeFilter:
    """Narrows a subscription to some change kinds and, optionally, one row.

    Attributes:
        kinds: Change kinds to deliver.
        column: Column compared with value (usually "id").
        value: Expected column value; None disables row filtering.
    """

    kinds: tuple[ChangeKind, ...]
    column: str = "id"
    value: str | None = None

    @property
    def expression(self) -> str | None:
        """Server-side filter expression, e.g. "id=eq.42"."""
        if self.value is None:
            return None
        return f"{self.column}=eq.{self.value}"

    def matches(self, change: ChangeEvent) -> bool:
        """Check a change against the filter on the client side."""
        if change.kind not in self.kinds:
            return False
        if self.value is None:
            return True
        return str(change.record.get(self.column)) == self.value


class Subscription(Protocol):
    """A live, exclusively owned stream of change events."""

    handle: str

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def close(self) -> None: ...


class ChangeFeed(Protocol):
    """Push-based change notifications for rows of named collections."""

    async def subscribe(self, collection: str, change_filter: ChangeFilter) -> Subscription: ...

    async def unsubscribe(self, handle: str) -> None: ...


_CLOSED = object()


class FeedSubscription:
    """Subscription delivered by RealtimeFeed.

    Iterating yields ChangeEvents until the subscription is closed locally;
    a feed failure is raised from the iterator as SubscriptionError.
    """

    def __init__(
        self,
        feed: RealtimeFeed,
        handle: str,
        change_filter: ChangeFilter,
        client_side_filter: bool,
    ) -> None:
        self.handle = handle
        self.change_filter = change_filter
        self._feed = feed
        self._client_side_filter = client_side_filter
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Check if the subscription was released."""
        return self._closed

    def _deliver(self, change: ChangeEvent) -> None:
        if self._closed:
            return
        if self._client_side_filter and not self.change_filter.matches(change):
            logger.debug("Dropped change for other row on %s", self.handle)
            return
        self._queue.put_nowait(change)

    def _fail(self, error: SubscriptionError) -> None:
        if not self._closed:
            self._queue.put_nowait(error)

    def __aiter__(self) -> FeedSubscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self._closed:
            raise StopAsyncIteration
        if isinstance(item, SubscriptionError):
            raise item
        return item  # type: ignore[no-any-return]

    def _release(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def close(self) -> None:
        """Release the subscription; idempotent."""
        if self._closed:
            return
        self._release()
        await self._feed.unsubscribe(self.handle)


class RealtimeFeed:
    """WebSocket client multiplexing change subscriptions on one connection.

    The connection is opened lazily on the first subscribe. A connection
    loss fails every open subscription; there is no automatic reconnect,
    callers re-subscribe.

    Usage:
        feed = RealtimeFeed(config)
        sub = await feed.subscribe("projects", ChangeFilter((ChangeKind.UPDATE,), value="42"))
        async for change in sub:
            ...
        await sub.close()
        await feed.close()
    """

    def __init__(
        self,
        config: BackendConfig,
        server_side_filter: bool = True,
        join_timeout: float = 10.0,
    ) -> None:
        """Initialize the feed.

        Args:
            config: Backend configuration with URL and key.
            server_side_filter: Send the row filter to the server. When False
                the subscription receives the whole collection and filters
                on the client side.
            join_timeout: Seconds to wait for a subscription acknowledgement.
        """
        self._config = config
        self._server_side_filter = server_side_filter
        self._join_timeout = join_timeout

        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._subscriptions: dict[str, FeedSubscription] = {}
        self._joins: dict[str, asyncio.Future[None]] = {}
        self._refs = itertools.count(1)
        self._connect_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._ws is not None

    @property
    def ws_url(self) -> str:
        """Get the WebSocket URL."""
        return self._config.realtime_url

    async def _ensure_connected(self) -> ClientConnection:
        """Establish the WebSocket connection if needed.

        Concurrent callers share a single connection attempt.
        """
        async with self._connect_lock:
            if self._ws is None:
                self._ws = await self._connect()
                self._reader = asyncio.create_task(self._read_messages(self._ws))
                logger.info("Change feed connected")
            return self._ws

    async def _connect(self) -> ClientConnection:
        """Open the WebSocket connection."""
        ssl_context: ssl.SSLContext | None = None
        if self.ws_url.startswith("wss://"):
            ssl_context = ssl.create_default_context()
            if not self._config.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

        try:
            return await websockets.connect(
                self.ws_url,
                ssl=ssl_context,
                open_timeout=self._config.timeout,
                close_timeout=5,
            )
        except (WebSocketException, OSError, TimeoutError) as e:
            logger.warning("Change feed connection failed: %s", e)
            raise SubscriptionError(DEFAULT_ERROR_MESSAGE) from e

    async def subscribe(
        self,
        collection: str,
        change_filter: ChangeFilter,
    ) -> FeedSubscription:
        """Open a subscription and wait for the server to acknowledge it.

        Args:
            collection: Collection (table) to watch.
            change_filter: Change kinds and row to deliver.

        Returns:
            The live subscription.

        Raises:
            SubscriptionError: If the connection failed or the join was
                rejected or not acknowledged in time.
        """
        ws = await self._ensure_connected()

        handle = f"{collection}-{next(self._refs)}"
        client_side = not self._server_side_filter and change_filter.value is not None
        subscription = FeedSubscription(self, handle, change_filter, client_side)
        joined: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._subscriptions[handle] = subscription
        self._joins[handle] = joined

        frame: dict[str, Any] = {
            "type": "subscribe",
            "ref": handle,
            "collection": collection,
            "events": [kind.value for kind in change_filter.kinds],
        }
        if self._server_side_filter and change_filter.expression:
            frame["filter"] = change_filter.expression

        try:
            await ws.send(json.dumps(frame))
            await asyncio.wait_for(joined, timeout=self._join_timeout)
        except TimeoutError as e:
            self._subscriptions.pop(handle, None)
            raise SubscriptionError(f"Subscription {handle} not acknowledged") from e
        except (WebSocketException, OSError) as e:
            self._subscriptions.pop(handle, None)
            raise SubscriptionError(DEFAULT_ERROR_MESSAGE) from e
        except SubscriptionError:
            self._subscriptions.pop(handle, None)
            raise
        finally:
            self._joins.pop(handle, None)

        logger.info("Subscribed %s (%s)", handle, frame.get("filter", "unfiltered"))
        return subscription

    async def unsubscribe(self, handle: str) -> None:
        """Release a subscription; unknown handles are ignored."""
        subscription = self._subscriptions.pop(handle, None)
        if subscription is None:
            return
        subscription._release()
        if self._ws is not None:
            with contextlib.suppress(WebSocketException, OSError):
                await self._ws.send(json.dumps({"type": "unsubscribe", "ref": handle}))
        logger.debug("Unsubscribed %s", handle)

    async def close(self) -> None:
        """Close every subscription and the connection."""
        for handle in list(self._subscriptions):
            await self.unsubscribe(handle)
        if self._reader is not None:
            self._reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None
        if self._ws is not None:
            with contextlib.suppress(WebSocketException, OSError):
                await self._ws.close()
            self._ws = None
        logger.info("Change feed closed")

    async def _read_messages(self, ws: ClientConnection) -> None:
        """Dispatch incoming frames until the connection drops."""
        try:
            async for message in ws:
                self._handle_message(message)
        except WebSocketException as e:
            logger.warning("Change feed disconnected: %s", e)
        except OSError as e:
            logger.warning("Change feed connection lost: %s", e)
        if self._ws is ws:
            self._ws = None
            self._fail_all(SubscriptionError(DEFAULT_ERROR_MESSAGE))

    def _fail_all(self, error: SubscriptionError) -> None:
        """Fail pending joins and open subscriptions."""
        for joined in self._joins.values():
            if not joined.done():
                joined.set_exception(error)
        for subscription in self._subscriptions.values():
            subscription._fail(error)

    def _handle_message(self, message: str | bytes) -> None:
        """Handle one incoming frame.

        Args:
            message: Raw message.
        """
        if isinstance(message, bytes):
            message = message.decode("utf-8")
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Invalid message received: %s", message[:100])
            return
        if not isinstance(data, dict):
            logger.warning("Invalid message received: %s", message[:100])
            return

        msg_type = data.get("type")
        ref = data.get("ref")

        if msg_type == "subscribed":
            joined = self._joins.get(ref)
            if joined is not None and not joined.done():
                joined.set_result(None)

        elif msg_type == "error":
            error = SubscriptionError(data.get("message") or DEFAULT_ERROR_MESSAGE)
            joined = self._joins.get(ref)
            if joined is not None and not joined.done():
                joined.set_exception(error)
            elif ref in self._subscriptions:
                logger.warning("Subscription %s failed: %s", ref, error)
                self._subscriptions[ref]._fail(error)

        elif msg_type == "change":
            subscription = self._subscriptions.get(ref)
            if subscription is None:
                logger.debug("Change for released subscription %s ignored", ref)
                return
            try:
                change = ChangeEvent.from_message(data)
            except ValueError:
                logger.warning("Invalid change message: %s", data)
                return
            logger.debug("Received %s on %s", change.kind.value, ref)
            subscription._deliver(change)

        # Ignore other message types (heartbeats, presence, etc.)
