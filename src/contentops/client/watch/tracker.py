"""Completion tracking for long-running external jobs.

This module provides:
- WatchStatus: lifecycle of a watch session
- WatchSession: one completion-tracking attempt
- CompletionTracker: flips a completion flag from a change feed, once

State machine:
    idle ─start─► initializing ─subscribed─► watching ─► completed
                        │                        └─────► errored
                        └──────── subscription failure ─► errored
    stop_watching() or a new start_watching() from any state ─► idle

The baseline read and the subscription run concurrently, so a change can
arrive before the baseline is known. Such changes are buffered on the
session and evaluated, in arrival order, once the baseline resolves.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from contentops.client.feed import SubscriptionError

if TYPE_CHECKING:
    from contentops.client.feed import ChangeEvent, ChangeFeed, Subscription
    from contentops.client.watch.conditions import WatchCondition

logger = logging.getLogger(__name__)


class BaselineReadError(Exception):
    """The baseline read failed; completion detection is disabled."""


class RecordReader(Protocol):
    """Single-record reads used for the baseline."""

    async def read_one(
        self,
        collection: str,
        resource_id: str,
        columns: str = "*",
    ) -> dict[str, Any]: ...


class WatchStatus(str, Enum):
    """Status of a watch session."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    WATCHING = "watching"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass
class WatchSession:
    """One activation of the tracker for a resource.

    Attributes:
        resource_id: Id of the watched record.
        status: Current lifecycle status.
        baseline_metric: Metric at watch start, None until the read resolves.
        baseline_error: Why the baseline read failed, if it did.
        error: Subscription failure message.
        match_count: Satisfying notifications seen so far.
        subscription: Live feed subscription, owned by the session.
        pending: Changes received before the baseline resolved.
    """

    resource_id: str
    status: WatchStatus = WatchStatus.INITIALIZING
    baseline_metric: int | None = None
    baseline_error: str | None = None
    error: str | None = None
    match_count: int = 0
    subscription: Subscription | None = None
    pending: list[ChangeEvent] = field(default_factory=list)
    done: asyncio.Event = field(default_factory=asyncio.Event)
    tasks: list[asyncio.Task[None]] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        """Check if the external job was detected as finished."""
        return self.status == WatchStatus.COMPLETED

    @property
    def active(self) -> bool:
        """Check if notifications are still evaluated for this session."""
        return self.status in (
            WatchStatus.INITIALIZING,
            WatchStatus.WATCHING,
            WatchStatus.COMPLETED,
        )


class CompletionTracker:
    """Answers "has the external job on this resource finished?".

    One tracker serves one trigger; starting a new watch supersedes the
    previous session and releases its subscription.

    Usage:
        tracker = CompletionTracker(feed, records, count_growth("projectsPreview"))
        await tracker.start_watching("42")
        if await tracker.wait(timeout=300):
            ...
        await tracker.stop_watching()
    """

    def __init__(
        self,
        feed: ChangeFeed,
        records: RecordReader,
        condition: WatchCondition,
        buffer_early_events: bool = True,
    ) -> None:
        """Initialize the tracker.

        Args:
            feed: Change feed to subscribe to.
            records: Reader used for the baseline.
            condition: What "finished" means for this trigger.
            buffer_early_events: Keep changes that arrive before the
                baseline and evaluate them once it resolves. When False
                they are discarded.
        """
        self._feed = feed
        self._records = records
        self._condition = condition
        self._buffer_early_events = buffer_early_events
        self._session: WatchSession | None = None

    @property
    def session(self) -> WatchSession | None:
        """Get the current session, if any."""
        return self._session

    @property
    def status(self) -> WatchStatus:
        """Get the current status (IDLE without a session)."""
        return self._session.status if self._session else WatchStatus.IDLE

    @property
    def completed(self) -> bool:
        """Check if the current session detected completion."""
        return self._session is not None and self._session.completed

    @property
    def error(self) -> str | None:
        """Get the subscription error of the current session."""
        return self._session.error if self._session else None

    async def start_watching(
        self,
        resource_id: str | int | None,
        trigger_active: bool = True,
    ) -> WatchSession | None:
        """Start a watch session, superseding any previous one.

        Args:
            resource_id: Id of the record to watch.
            trigger_active: Whether the external job is running.

        Returns:
            The new session, or None when the tracker stays inert.
        """
        await self.stop_watching()
        if not trigger_active or resource_id is None:
            logger.debug("Tracker inert (trigger_active=%s, id=%s)", trigger_active, resource_id)
            return None

        condition = self._condition
        session = WatchSession(resource_id=str(resource_id))
        self._session = session
        logger.info(
            "Watching %s %s for %s", condition.collection, session.resource_id, condition.name
        )

        if condition.needs_baseline:
            session.tasks.append(asyncio.create_task(self._read_baseline(session)))
        else:
            session.baseline_metric = 0

        try:
            subscription = await self._feed.subscribe(
                condition.collection, condition.change_filter(session.resource_id)
            )
        except SubscriptionError as e:
            if session is self._session:
                self._fail(session, str(e))
            await self._cancel_tasks(session)
            return session

        if session is not self._session:
            # Superseded or stopped while the subscription was opening
            await subscription.close()
            return session

        session.subscription = subscription
        if session.status == WatchStatus.INITIALIZING:
            session.status = WatchStatus.WATCHING
        session.tasks.append(asyncio.create_task(self._listen(session, subscription)))
        return session

    def on_notification(self, event: ChangeEvent) -> bool:
        """Evaluate a change against the current session.

        Args:
            event: Change delivered by the feed.

        Returns:
            True if this change completed the session.
        """
        session = self._session
        if session is None or not session.active:
            return False
        return self._evaluate(session, event)

    async def stop_watching(self) -> None:
        """Release the current session and its subscription; idempotent."""
        session, self._session = self._session, None
        if session is None:
            return

        # Detached above, before any suspension point
        if session.status in (WatchStatus.INITIALIZING, WatchStatus.WATCHING):
            session.status = WatchStatus.IDLE
        session.pending.clear()
        session.done.set()

        await self._cancel_tasks(session)
        if session.subscription is not None:
            await session.subscription.close()
        logger.info("Stopped watching %s", session.resource_id)

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until the current session completes, fails or is stopped.

        Returns:
            True if the session completed.
        """
        session = self._session
        if session is None:
            return False
        try:
            await asyncio.wait_for(session.done.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return session.completed

    def _evaluate(self, session: WatchSession, change: ChangeEvent) -> bool:
        """Apply one change to a session."""
        if session.baseline_metric is None:
            if session.baseline_error is None and self._buffer_early_events:
                session.pending.append(change)
                logger.debug("Buffered %s before baseline", change.kind.value)
            else:
                logger.debug("Dropped %s without baseline", change.kind.value)
            return False

        if not self._condition.is_satisfied(session.baseline_metric, change):
            return False

        session.match_count += 1
        if session.status == WatchStatus.COMPLETED:
            return False
        session.status = WatchStatus.COMPLETED
        session.done.set()
        logger.info("External job on %s completed", session.resource_id)
        return True

    async def _cancel_tasks(self, session: WatchSession) -> None:
        """Cancel and await the session's tasks, except the calling one."""
        current = asyncio.current_task()
        tasks = [task for task in session.tasks if task is not current]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _fail(self, session: WatchSession, message: str) -> None:
        session.status = WatchStatus.ERRORED
        session.error = message
        session.done.set()
        logger.warning("Watch on %s failed: %s", session.resource_id, message)

    async def _read_baseline(self, session: WatchSession) -> None:
        """Read the baseline metric, then replay buffered changes."""
        condition = self._condition
        try:
            record = await self._records.read_one(
                condition.collection,
                session.resource_id,
                condition.baseline_columns or "*",
            )
        except Exception as e:
            if session is not self._session:
                return
            error = BaselineReadError(f"Baseline read failed for {session.resource_id}: {e}")
            session.baseline_error = str(error)
            session.pending.clear()
            logger.error("%s; completion detection disabled", error)
            return

        if session is not self._session:
            return
        session.baseline_metric = condition.metric(record)
        logger.debug("Baseline for %s: %d", session.resource_id, session.baseline_metric)

        pending, session.pending = session.pending, []
        for change in pending:
            self._evaluate(session, change)

    async def _listen(self, session: WatchSession, subscription: Subscription) -> None:
        """Consume the subscription until released or failed."""
        try:
            async for change in subscription:
                if session is not self._session:
                    break
                self._evaluate(session, change)
        except SubscriptionError as e:
            if session is not self._session:
                return
            if session.status == WatchStatus.COMPLETED:
                # Completion is final; keep the error for display only
                session.error = str(e)
                logger.warning("Feed for %s lost after completion: %s", session.resource_id, e)
            elif session.active:
                self._fail(session, str(e))
        finally:
            await subscription.close()
