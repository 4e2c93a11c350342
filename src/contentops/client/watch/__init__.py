"""Completion tracking for external jobs.

This package provides:
- CompletionTracker: one-shot completion flag driven by a change feed
- WatchCondition: what "finished" means for a trigger
- count_growth, record_inserted: the stock conditions

Usage:
    from contentops.client.watch import CompletionTracker, count_growth

    tracker = CompletionTracker(feed, records, count_growth("projectsPreview"))
    await tracker.start_watching(project_id)
"""

from contentops.client.watch.conditions import (
    WatchCondition,
    count_growth,
    list_length,
    record_inserted,
)
from contentops.client.watch.tracker import (
    BaselineReadError,
    CompletionTracker,
    RecordReader,
    WatchSession,
    WatchStatus,
)

__all__ = [
    # Conditions
    "WatchCondition",
    "count_growth",
    "list_length",
    "record_inserted",
    # Tracker
    "BaselineReadError",
    "CompletionTracker",
    "RecordReader",
    "WatchSession",
    "WatchStatus",
]
