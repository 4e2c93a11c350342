"""Completion conditions for CompletionTracker.

A WatchCondition says which changes to subscribe to, how to turn a record
into an integer metric, and when a change means the external job finished.
"""

from __future__ import annotations

from collections.abc import Callable, Sized
from dataclasses import dataclass
from typing import Any

from contentops.client.feed import ChangeEvent, ChangeFilter
from contentops.core.types import ChangeKind

Record = dict[str, Any]
Metric = Callable[[Record | None], int]
ChangePredicate = Callable[[Record | None, Record | None], bool]


def list_length(field: str) -> Metric:
    """Metric counting the items of a list column (missing/null counts 0)."""

    def metric(record: Record | None) -> int:
        if not record:
            return 0
        value = record.get(field)
        if isinstance(value, Sized) and not isinstance(value, str):
            return len(value)
        return 0

    return metric


@dataclass(frozen=True)
class WatchCondition:
    """Parameterizes the tracker state machine for one kind of trigger.

    Attributes:
        name: Label used in logs.
        collection: Collection (table) holding the watched record.
        kinds: Change kinds to subscribe to.
        metric: Record -> integer, compared against the baseline.
        column: Column matched against the resource id.
        baseline_columns: Columns for the baseline read; None means no read
            and an implicit baseline of 0.
        predicate: Optional extra (old, new) check a change must pass.
    """

    name: str
    collection: str
    kinds: tuple[ChangeKind, ...]
    metric: Metric
    column: str = "id"
    baseline_columns: str | None = "*"
    predicate: ChangePredicate | None = None

    @property
    def needs_baseline(self) -> bool:
        """Check if a baseline read must resolve before completion."""
        return self.baseline_columns is not None

    def change_filter(self, resource_id: str) -> ChangeFilter:
        """Build the subscription filter for a resource."""
        return ChangeFilter(kinds=self.kinds, column=self.column, value=resource_id)

    def is_satisfied(self, baseline: int, change: ChangeEvent) -> bool:
        """Check whether a change reports a metric strictly above baseline."""
        if change.kind not in self.kinds:
            return False
        if self.predicate is not None and not self.predicate(change.old, change.new):
            return False
        return self.metric(change.new) > baseline


def count_growth(collection: str, field: str = "versions") -> WatchCondition:
    """The record grew: a list column got more items than at watch start."""
    return WatchCondition(
        name=f"{field}-growth",
        collection=collection,
        kinds=(ChangeKind.UPDATE,),
        metric=list_length(field),
        baseline_columns=field,
    )


def record_inserted(collection: str, column: str = "id") -> WatchCondition:
    """A new record appeared whose column matches the resource id."""
    return WatchCondition(
        name="inserted",
        collection=collection,
        kinds=(ChangeKind.INSERT,),
        metric=lambda record: 1,
        column=column,
        baseline_columns=None,
    )
